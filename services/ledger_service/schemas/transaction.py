"""Ledger entry schemas."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict
from services.ledger_service.models.enums import (
    TransactionDirection,
    TransactionStatus,
    TransactionType,
)


class TransactionResponse(BaseModel):
    id: uuid.UUID
    user_id: str
    sequence: int
    idempotency_key: str
    transaction_type: TransactionType
    direction: TransactionDirection
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    status: TransactionStatus
    description: str
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    initiated_by: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TransactionListResponse(BaseModel):
    transactions: list[TransactionResponse]
    total: int
    skip: int
    limit: int
