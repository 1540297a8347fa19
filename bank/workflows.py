"""Payment and refund workflows.

``create_payment`` holds funds first, then persists the payment, then
either withdraws the hold or releases it. No hold outlives the call: if
persisting fails, or the call is interrupted before a decision is
committed, the hold is released before control goes back to the caller.

``create_refund`` adds to the running refund total of an approved payment
while holding the per-payment refund lock.
"""
import uuid
from dataclasses import dataclass, field
from datetime import timedelta

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from bank import holds, payments, refunds
from bank.accounts import AccountService, DeclineReason, HoldToken
from bank.config import get_settings
from bank.database import SessionLocal
from bank.errors import (
    FundsAuthorityError,
    InstrumentAlreadyUsed,
    LedgerInconsistency,
    ProcessingError,
    ValidationError,
    ZeroAmount,
)
from bank.locks import KeyedLock
from bank.models import HoldState, Payment, PaymentStatus, Refund

logger = structlog.get_logger(__name__)

NIL_ID = uuid.UUID(int=0)


def _default_grace() -> timedelta:
    return timedelta(seconds=get_settings().hold_recovery_grace_seconds)


@dataclass
class BankContext:
    """Collaborators shared by every request, built once at startup."""

    accounts: AccountService
    session_factory: sessionmaker = SessionLocal
    refund_locks: KeyedLock = field(default_factory=KeyedLock)
    hold_recovery_grace: timedelta = field(default_factory=_default_grace)

    def session(self):
        return self.session_factory()


@dataclass(frozen=True)
class PaymentOutcome:
    amount: int
    account_reference: str
    status: PaymentStatus
    payment: Payment | None = None
    decline_reason: DeclineReason | None = None

    @property
    def id(self) -> uuid.UUID:
        return self.payment.id if self.payment is not None else NIL_ID

    @property
    def approved(self) -> bool:
        return self.status is PaymentStatus.APPROVED


def create_payment(ctx: BankContext, amount: int, account_reference: str) -> PaymentOutcome:
    if amount == 0:
        raise ZeroAmount()

    log = logger.bind(amount=amount, account_suffix=holds.account_suffix(account_reference))

    with ctx.session() as db:
        entry_id = holds.open_entry(db, amount, account_reference).id
        db.commit()

    try:
        hold = ctx.accounts.place_hold(account_reference, amount, str(entry_id))
    except FundsAuthorityError as err:
        # entry stays pending; the recovery sweep looks the hold up by key
        log.error("hold_outcome_unknown", journal_id=str(entry_id), error=err.message)
        raise ProcessingError() from err
    if isinstance(hold, DeclineReason):
        return _declined(ctx, entry_id, amount, account_reference, hold, log)

    try:
        with ctx.session() as db:
            holds.attach_token(db, entry_id, hold)
            db.commit()
            payment = payments.insert(db, amount, account_reference)
            holds.decide_withdraw(db, entry_id, payment.id)
            db.commit()
    except IntegrityError:
        _release(ctx, entry_id, hold, log)
        if not _card_taken(ctx, account_reference):
            log.exception("payment_persist_failed")
            raise
        log.info("payment_conflict")
        raise InstrumentAlreadyUsed()
    except BaseException:
        log.exception("payment_persist_failed")
        try:
            _release(ctx, entry_id, hold, log)
        except FundsAuthorityError:
            log.exception("hold_release_failed", journal_id=str(entry_id))
        raise

    log = log.bind(payment_id=str(payment.id))
    try:
        ctx.accounts.withdraw_funds(hold)
    except FundsAuthorityError as err:
        log.critical("withdraw_failed_after_persist", error=str(err))
        raise LedgerInconsistency(f"payment {payment.id}: {err.message}") from err

    with ctx.session() as db:
        holds.settle(db, entry_id, HoldState.WITHDRAWN)
        db.commit()

    log.info("payment_approved")
    return PaymentOutcome(
        amount=payment.amount,
        account_reference=payment.account_reference,
        status=PaymentStatus.APPROVED,
        payment=payment,
    )


def _declined(ctx, entry_id, amount, account_reference, reason, log) -> PaymentOutcome:
    with ctx.session() as db:
        holds.settle(db, entry_id, HoldState.DECLINED)
        db.commit()

    log.info("payment_declined", reason=reason.value)
    if reason is DeclineReason.INVALID_AMOUNT:
        raise ValidationError()
    if reason is DeclineReason.OTHER:
        raise ProcessingError()

    return PaymentOutcome(
        amount=amount,
        account_reference=account_reference,
        status=PaymentStatus.DECLINED,
        decline_reason=reason,
    )


def _release(ctx: BankContext, entry_id: uuid.UUID, hold: HoldToken, log) -> None:
    ctx.accounts.release_hold(hold)
    with ctx.session() as db:
        holds.settle(db, entry_id, HoldState.RELEASED)
        db.commit()
    log.info("hold_released", journal_id=str(entry_id))


def _card_taken(ctx, account_reference):
    with ctx.session() as db:
        return payments.find_by_account(db, account_reference) is not None


def get_payment(ctx: BankContext, payment_id: uuid.UUID) -> Payment:
    with ctx.session() as db:
        return payments.get(db, payment_id)


def create_refund(ctx: BankContext, payment_id: uuid.UUID, amount: int) -> Refund:
    """Refund ``amount`` now; the stored refund keeps the running total."""
    if amount <= 0:
        raise ValidationError("refund amount must be positive")

    with ctx.refund_locks.hold(payment_id):
        try:
            refund = _accumulate(ctx, payment_id, amount)
        except IntegrityError:
            # another process created the refund row first; read it again
            logger.info("refund_insert_raced", payment_id=str(payment_id))
            refund = _accumulate(ctx, payment_id, amount)

    logger.info("refund_accumulated", payment_id=str(payment_id), amount=amount, total=refund.amount)
    return refund


def _accumulate(ctx, payment_id, amount):
    with ctx.session() as db:
        refund = refunds.insert(db, payment_id, amount)
        db.commit()
    return refund


def get_refund(ctx: BankContext, refund_id: uuid.UUID) -> Refund:
    with ctx.session() as db:
        return refunds.get(db, refund_id)


def get_refund_for_payment(ctx: BankContext, payment_id: uuid.UUID) -> Refund | None:
    with ctx.session() as db:
        return refunds.get_payment_refund(db, payment_id)


def recover_pending_holds(ctx: BankContext):
    return holds.recover(ctx.session, ctx.accounts, ctx.hold_recovery_grace)
