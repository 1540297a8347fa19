from collections import Counter
from datetime import timezone

import structlog
from sqlalchemy import select

from bank.accounts import HoldToken
from bank.errors import FundsAuthorityError
from bank.models import HoldJournal, HoldState, utcnow

logger = structlog.get_logger(__name__)

WITHDRAW = "withdraw"


def account_suffix(account_reference):
    return account_reference[-4:]


def open_entry(db, amount, account_reference):
    entry = HoldJournal(amount=amount, account_suffix=account_suffix(account_reference))
    db.add(entry)
    db.flush()
    return entry


def attach_token(db, entry_id, hold):
    db.get(HoldJournal, entry_id).hold_token = hold.value


def decide_withdraw(db, entry_id, payment_id):
    entry = db.get(HoldJournal, entry_id)
    entry.decision = WITHDRAW
    entry.payment_id = payment_id


def settle(db, entry_id, state):
    db.get(HoldJournal, entry_id).state = state.value


def pending(db):
    stmt = select(HoldJournal).where(HoldJournal.state == HoldState.PENDING.value)
    return list(db.execute(stmt).scalars())


def _aware(value):
    # sqlite hands timestamps back without tzinfo
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _finish(accounts, entry):
    if entry.hold_token is None:
        # the hold request may have timed out after funds were reserved
        hold = accounts.find_hold(str(entry.id))
        if hold is None:
            return HoldState.ABANDONED
        accounts.release_hold(hold)
        return HoldState.RELEASED

    hold = HoldToken(entry.hold_token)
    if entry.decision == WITHDRAW:
        accounts.withdraw_funds(hold)
        return HoldState.WITHDRAWN
    accounts.release_hold(hold)
    return HoldState.RELEASED


def recover(session_factory, accounts, grace, now=None):
    """Withdraw or release holds left open for longer than ``grace``.

    Returns a count per outcome: ``withdrawn``, ``released``,
    ``abandoned`` (no hold was ever granted) and ``failed`` (the account
    service refused; the entry stays open for the next run).
    """
    cutoff = (now or utcnow()) - grace
    counts = Counter()

    with session_factory() as db:
        stale = [e for e in pending(db) if _aware(e.updated_at) < cutoff]

    for entry in stale:
        log = logger.bind(journal_id=str(entry.id), account_suffix=entry.account_suffix)
        try:
            state = _finish(accounts, entry)
        except FundsAuthorityError as err:
            log.error("hold_recovery_failed", decision=entry.decision, error=str(err))
            counts["failed"] += 1
            continue

        with session_factory() as db:
            settle(db, entry.id, state)
            db.commit()
        log.info("hold_recovered", state=state.value)
        counts[state.value] += 1

    return counts
