import uuid

from fastapi import APIRouter, Depends, Request, Response

from bank import workflows
from bank.accounts import DeclineReason
from bank.auth import verify_token
from bank.schemas import (
    PaymentData,
    PaymentRequest,
    PaymentResponse,
    RefundData,
    RefundDetail,
    RefundDetailResponse,
    RefundRequest,
    RefundResponse,
)
from bank.workflows import BankContext

router = APIRouter(prefix="/api", dependencies=[Depends(verify_token)])

DECLINE_STATUS = {
    DeclineReason.INVALID_ACCOUNT_NUMBER: 403,
    DeclineReason.INSUFFICIENT_FUNDS: 402,
}


def get_context(request: Request) -> BankContext:
    return request.app.state.bank


def _payment_data(payment_id, amount, card_number, status) -> PaymentResponse:
    return PaymentResponse(
        data=PaymentData(id=payment_id, amount=amount, card_number=card_number, status=status)
    )


@router.post("/payments", status_code=201, response_model=PaymentResponse)
def create_payment_api(request: PaymentRequest, response: Response,
                       ctx: BankContext = Depends(get_context)):
    outcome = workflows.create_payment(ctx, request.payment.amount, request.payment.card_number)
    if not outcome.approved:
        response.status_code = DECLINE_STATUS[outcome.decline_reason]
    return _payment_data(outcome.id, outcome.amount, outcome.account_reference, outcome.status)


@router.get("/payments/{payment_id}", response_model=PaymentResponse)
def get_payment_api(payment_id: uuid.UUID, ctx: BankContext = Depends(get_context)):
    payment = workflows.get_payment(ctx, payment_id)
    return _payment_data(payment.id, payment.amount, payment.account_reference, payment.status)


@router.post("/refunds", status_code=201, response_model=RefundResponse)
def create_refund_api(request: RefundRequest, ctx: BankContext = Depends(get_context)):
    refund = workflows.create_refund(ctx, request.refund.payment_id, request.refund.amount)
    return RefundResponse(
        data=RefundData(id=refund.id, payment_id=refund.payment_id, amount=refund.amount)
    )


@router.get("/refunds/{refund_id}", response_model=RefundDetailResponse)
def get_refund_api(refund_id: uuid.UUID, ctx: BankContext = Depends(get_context)):
    refund = workflows.get_refund(ctx, refund_id)
    return RefundDetailResponse(
        data=RefundDetail(
            id=refund.id,
            payment_id=refund.payment_id,
            amount=refund.amount,
            inserted_at=refund.inserted_at,
            updated_at=refund.updated_at,
        )
    )


@router.post("/holds/recover")
def recover_holds_api(ctx: BankContext = Depends(get_context)):
    return dict(workflows.recover_pending_holds(ctx))
