"""WalletTransaction model: immutable ledger."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.ledger_service.models.enums import (
    TransactionDirection,
    TransactionStatus,
    TransactionType,
    enum_values,
)
from sqlalchemy import JSON, CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column


class WalletTransaction(Base):
    """Append-only ledger of every balance change. Source of truth."""

    __tablename__ = "wallet_transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(
        String, ForeignKey("users.id"), nullable=False, index=True
    )
    # Position in the user's chain, 1-based
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    idempotency_key: Mapped[str] = mapped_column(
        String, unique=True, index=True, nullable=False
    )
    transaction_type: Mapped[TransactionType] = mapped_column(
        SAEnum(
            TransactionType,
            name="transaction_type_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    direction: Mapped[TransactionDirection] = mapped_column(
        SAEnum(
            TransactionDirection,
            name="transaction_direction_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    balance_before: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[TransactionStatus] = mapped_column(
        SAEnum(
            TransactionStatus,
            name="transaction_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=TransactionStatus.COMPLETED,
        nullable=False,
    )
    description: Mapped[str] = mapped_column(String, nullable=False)
    service_source: Mapped[str] = mapped_column(
        String, default="ledger_service", nullable=False
    )
    reference_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    reference_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    initiated_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    txn_metadata: Mapped[Optional[dict]] = mapped_column(
        "txn_metadata", JSON, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transaction_amount_positive"),
        UniqueConstraint("user_id", "sequence", name="uq_wallet_transactions_user_sequence"),
        Index("ix_wallet_transactions_reference", "reference_type", "reference_id"),
    )

    @property
    def signed_amount(self) -> Decimal:
        if self.direction == TransactionDirection.DEBIT:
            return -self.amount
        return self.amount

    def __repr__(self) -> str:
        return (
            f"<WalletTransaction {self.user_id}#{self.sequence} "
            f"{self.direction.value} {self.amount}>"
        )
