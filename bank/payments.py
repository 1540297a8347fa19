from sqlalchemy import select

from bank.errors import PaymentNotFound
from bank.models import Payment, PaymentStatus


def insert(db, amount, account_reference, status=PaymentStatus.APPROVED):
    # flushed so a reused card raises IntegrityError here
    payment = Payment(amount=amount, account_reference=account_reference, status=status.value)
    db.add(payment)
    db.flush()
    return payment


def get(db, payment_id, for_update=False):
    stmt = select(Payment).where(Payment.id == payment_id)
    if for_update:
        stmt = stmt.with_for_update()
    payment = db.execute(stmt).scalar_one_or_none()
    if payment is None:
        raise PaymentNotFound(f"payment {payment_id} not found")
    return payment


def find_by_account(db, account_reference):
    return db.query(Payment).filter_by(account_reference=account_reference).first()
