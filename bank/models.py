import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Uuid

from bank.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentStatus(str, enum.Enum):
    APPROVED = "Approved"
    DECLINED = "Declined"


class HoldState(str, enum.Enum):
    PENDING = "pending"
    DECLINED = "declined"
    WITHDRAWN = "withdrawn"
    RELEASED = "released"
    ABANDONED = "abandoned"


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    amount = Column(Integer, nullable=False)
    # card number; only approved payments are stored, so unique is enough
    account_reference = Column(String, unique=True, index=True, nullable=False)
    status = Column(String, nullable=False, default=PaymentStatus.APPROVED.value)
    inserted_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class Refund(Base):
    """Running refund total for one payment."""

    __tablename__ = "refunds"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    payment_id = Column(Uuid, ForeignKey("payments.id"), unique=True, index=True, nullable=False)
    amount = Column(Integer, nullable=False)
    inserted_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class HoldJournal(Base):
    """Durable trace of a hold between placement and withdraw/release."""

    __tablename__ = "hold_journal"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    amount = Column(Integer, nullable=False)
    account_suffix = Column(String, nullable=False)
    hold_token = Column(String, nullable=True)
    decision = Column(String, nullable=True)    # withdraw | release
    state = Column(String, nullable=False, default=HoldState.PENDING.value, index=True)
    payment_id = Column(Uuid, ForeignKey("payments.id"), nullable=True)
    inserted_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
