"""Payout schemas."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from services.ledger_service.models.enums import PaymentMethod, PayoutStatus


class PayoutCreateRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    payment_method: PaymentMethod
    payment_details: dict = Field(default_factory=dict)


class PayoutResponse(BaseModel):
    id: uuid.UUID
    companion_id: str
    requested_amount: Optional[Decimal] = None
    amount: Decimal
    status: PayoutStatus
    payment_method: PaymentMethod
    rejection_reason: Optional[str] = None
    rejection_code: Optional[str] = None
    admin_notes: Optional[str] = None
    processed_date: Optional[datetime] = None
    processed_by: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PayoutListResponse(BaseModel):
    payouts: list[PayoutResponse]
    total: int


class PayoutOutcome(BaseModel):
    id: str
    status: str
    reason: Optional[str] = None
    message: Optional[str] = None
    amount: Optional[Decimal] = None


class ProcessPayoutsResponse(BaseModel):
    success: bool = True
    message: str
    processed: int
    approved: int
    rejected: int
    skipped: int
    results: list[PayoutOutcome]


class CompletePayoutRequest(BaseModel):
    admin_notes: Optional[str] = None


class RejectPayoutRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)
    admin_notes: Optional[str] = None


class ReleaseClaimsResponse(BaseModel):
    success: bool = True
    released: int
