import uuid
from datetime import datetime

from pydantic import BaseModel

from bank.models import PaymentStatus


class PaymentRequestData(BaseModel):
    amount: int
    card_number: str


class PaymentRequest(BaseModel):
    payment: PaymentRequestData


class PaymentData(BaseModel):
    id: uuid.UUID
    amount: int
    card_number: str
    status: PaymentStatus


class PaymentResponse(BaseModel):
    data: PaymentData


class RefundRequestData(BaseModel):
    payment_id: uuid.UUID
    amount: int


class RefundRequest(BaseModel):
    refund: RefundRequestData


class RefundData(BaseModel):
    id: uuid.UUID
    payment_id: uuid.UUID
    amount: int


class RefundDetail(RefundData):
    inserted_at: datetime
    updated_at: datetime


class RefundResponse(BaseModel):
    data: RefundData


class RefundDetailResponse(BaseModel):
    data: RefundDetail


class ErrorResponse(BaseModel):
    error: str
