"""Errors raised by the payment and refund workflows.

Declines are not errors: they come back as a ``Declined`` outcome. Every
class here carries the HTTP-like ``code`` and ``error`` message the
transport layer answers with.
"""


class BankError(Exception):
    code = 500
    error = "internal error"

    def __init__(self, message: str | None = None):
        self.message = message or self.error
        super().__init__(self.message)


class ValidationError(BankError):
    code = 400
    error = "invalid amount"


class ZeroAmount(ValidationError):
    code = 204
    error = "zero amount"


class InstrumentAlreadyUsed(BankError):
    code = 422
    error = "card_number already used"


class ProcessingError(BankError):
    code = 503
    error = "cannot process the request"


class PaymentNotExist(BankError):
    code = 404
    error = "payment does not exist"


class PaymentNotFound(PaymentNotExist):
    error = "payment not found"


class PaymentNotApproved(PaymentNotExist):
    error = "payment not approved"


class RefundNotFound(BankError):
    code = 404
    error = "refund not found"


class AmountRefundFailed(BankError):
    code = 422
    error = "The amount is more than the refundable amount"


class FundsAuthorityError(BankError):
    """The account service failed to withdraw or release a hold."""

    code = 502
    error = "account service failure"


class LedgerInconsistency(BankError):
    """Funds could not be withdrawn for a payment already persisted."""

    code = 500
    error = "payment persisted but funds were not withdrawn"
