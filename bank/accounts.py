"""Funds authority: the account service that holds and moves money.

The workflows only ever need three operations from it: place a hold,
withdraw the held funds, or release the hold. ``StripeAccountService``
implements them with manual-capture PaymentIntents.
"""
import abc
import enum
from dataclasses import dataclass

import stripe
import structlog

from bank.config import get_settings
from bank.errors import FundsAuthorityError

logger = structlog.get_logger(__name__)


class DeclineReason(str, enum.Enum):
    INVALID_ACCOUNT_NUMBER = "invalid_account_number"
    INVALID_AMOUNT = "invalid_amount"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    OTHER = "other"


@dataclass(frozen=True)
class HoldToken:
    """Funds reserved on an account but not yet withdrawn."""

    value: str


class AccountService(abc.ABC):

    @abc.abstractmethod
    def place_hold(self, account_reference: str, amount: int,
                   idempotency_key: str) -> HoldToken | DeclineReason:
        """Reserve ``amount`` on the account, or say why it cannot be done.

        Raises FundsAuthorityError when the outcome is unknown. A hold may
        still have been placed; ``find_hold`` looks it up by the same key.
        """

    @abc.abstractmethod
    def find_hold(self, idempotency_key: str) -> HoldToken | None:
        """Open hold placed under ``idempotency_key``, if there is one."""

    @abc.abstractmethod
    def withdraw_funds(self, hold: HoldToken) -> None:
        """Move held funds. Raises FundsAuthorityError on failure."""

    @abc.abstractmethod
    def release_hold(self, hold: HoldToken) -> None:
        """Give held funds back. Raises FundsAuthorityError on failure."""


_CARD_NUMBER_CODES = {"incorrect_number", "invalid_number", "invalid_card_type", "expired_card"}
_AMOUNT_CODES = {"amount_too_small", "amount_too_large", "invalid_charge_amount"}


def decline_reason_for(err: stripe.StripeError) -> DeclineReason:
    code = getattr(err, "code", None)
    body = getattr(err, "json_body", None) or {}
    decline_code = body.get("error", {}).get("decline_code")

    if code in _CARD_NUMBER_CODES or getattr(err, "param", None) == "payment_method":
        return DeclineReason.INVALID_ACCOUNT_NUMBER
    if code in _AMOUNT_CODES or getattr(err, "param", None) == "amount":
        return DeclineReason.INVALID_AMOUNT
    if "insufficient_funds" in (code, decline_code):
        return DeclineReason.INSUFFICIENT_FUNDS
    return DeclineReason.OTHER


class StripeAccountService(AccountService):

    def __init__(self, api_key: str | None = None, currency: str | None = None):
        settings = get_settings()
        self.api_key = api_key or settings.stripe_secret_key
        self.currency = currency or settings.currency

    def place_hold(self, account_reference: str, amount: int,
                   idempotency_key: str) -> HoldToken | DeclineReason:
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount,
                currency=self.currency,
                payment_method=account_reference,
                payment_method_types=["card"],
                capture_method="manual",
                confirm=True,
                metadata={"hold_key": idempotency_key},
                idempotency_key=idempotency_key,
                api_key=self.api_key,
            )
        except (stripe.CardError, stripe.InvalidRequestError) as err:
            reason = decline_reason_for(err)
            logger.info("hold_declined", reason=reason.value, stripe_code=getattr(err, "code", None))
            return reason
        except stripe.StripeError as err:
            raise FundsAuthorityError(f"hold {idempotency_key} not confirmed: {err}") from err

        hold = HoldToken(intent.id)
        if intent.status != "requires_capture":
            # confirmed without reserving funds (e.g. needs 3DS); drop it
            logger.warning("hold_not_capturable", intent_id=intent.id, intent_status=intent.status)
            self.release_hold(hold)
            return DeclineReason.OTHER

        return hold

    def find_hold(self, idempotency_key: str) -> HoldToken | None:
        try:
            found = stripe.PaymentIntent.search(
                query=f"metadata['hold_key']:'{idempotency_key}'",
                api_key=self.api_key,
            )
        except stripe.StripeError as err:
            raise FundsAuthorityError(f"lookup of hold {idempotency_key} failed: {err}") from err
        for intent in found.data:
            if intent.status not in ("canceled", "succeeded"):
                return HoldToken(intent.id)
        return None

    def withdraw_funds(self, hold: HoldToken) -> None:
        try:
            stripe.PaymentIntent.capture(hold.value, api_key=self.api_key)
        except stripe.StripeError as err:
            raise FundsAuthorityError(f"capture of {hold.value} failed: {err}") from err

    def release_hold(self, hold: HoldToken) -> None:
        try:
            stripe.PaymentIntent.cancel(hold.value, api_key=self.api_key)
        except stripe.StripeError as err:
            raise FundsAuthorityError(f"cancel of {hold.value} failed: {err}") from err
