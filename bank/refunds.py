"""Refund ledger.

A refund is always tied to a payment and there is at most one refund row
per payment. The row holds the running total: each partial refund adds to
it, and the total can never pass the payment amount.

Callers must serialize ``insert`` per payment (see ``bank.locks``); the
payment row is also locked with ``SELECT ... FOR UPDATE`` where the
database supports it.
"""
import uuid

from sqlalchemy.orm import Session

from bank import payments
from bank.errors import AmountRefundFailed, PaymentNotApproved, RefundNotFound
from bank.models import PaymentStatus, Refund


def insert(db: Session, payment_id: uuid.UUID, amount: int) -> Refund:
    payment = payments.get(db, payment_id, for_update=True)
    if payment.status != PaymentStatus.APPROVED.value:
        raise PaymentNotApproved(f"payment {payment_id} is {payment.status}")

    refund = get_payment_refund(db, payment_id)
    total = amount if refund is None else refund.amount + amount
    if total > payment.amount:
        raise AmountRefundFailed()

    if refund is None:
        refund = Refund(payment_id=payment_id, amount=total)
        db.add(refund)
    else:
        refund.amount = total
    db.flush()
    return refund


def get(db: Session, refund_id: uuid.UUID) -> Refund:
    refund = db.get(Refund, refund_id)
    if refund is None:
        raise RefundNotFound(f"refund {refund_id} not found")
    return refund


def get_payment_refund(db: Session, payment_id: uuid.UUID) -> Refund | None:
    return db.query(Refund).filter_by(payment_id=payment_id).first()
