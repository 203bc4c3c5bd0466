"""User model: the ledger-facing view of an account."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.ledger_service.models.enums import UserRole, enum_values
from sqlalchemy import Boolean, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Index, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column


class User(Base):
    """Account holder. ``wallet_balance`` is a cache of the ledger tip."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    email: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    user_role: Mapped[UserRole] = mapped_column(
        SAEnum(
            UserRole,
            name="user_role_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=UserRole.SEEKER,
        nullable=False,
    )
    wallet_balance: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0"), nullable=False
    )
    # Optimistic concurrency token; equals the sequence of the ledger tail.
    ledger_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    onboarding_completed: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    # Unique case-insensitively, see uq_users_my_referral_code_upper
    my_referral_code: Mapped[Optional[str]] = mapped_column(
        String, index=True, nullable=True
    )
    campaign_referral_code: Mapped[Optional[str]] = mapped_column(
        String, index=True, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    def __repr__(self) -> str:
        return f"<User {self.id} balance={self.wallet_balance} v{self.ledger_version}>"


Index(
    "uq_users_my_referral_code_upper",
    func.upper(User.my_referral_code),
    unique=True,
)
