"""Referral and CampaignReferral models."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.ledger_service.models.enums import (
    ReferralStatus,
    ReferralType,
    RewardType,
    enum_values,
)
from sqlalchemy import Boolean, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column


class Referral(Base):
    """One referral event.

    Peer referrals are created ``completed`` and credited synchronously;
    campaign signups are created ``pending`` and credited by the batch job.
    For campaign signups the signup user is both referrer and referee.
    """

    __tablename__ = "referrals"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    referrer_id: Mapped[str] = mapped_column(
        String, ForeignKey("users.id"), nullable=False, index=True
    )
    referee_id: Mapped[str] = mapped_column(
        String, ForeignKey("users.id"), nullable=False, index=True
    )
    referral_code: Mapped[str] = mapped_column(String, nullable=False)
    referral_type: Mapped[ReferralType] = mapped_column(
        SAEnum(
            ReferralType,
            name="referral_type_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    status: Mapped[ReferralStatus] = mapped_column(
        SAEnum(
            ReferralStatus,
            name="referral_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=ReferralStatus.PENDING,
        nullable=False,
    )
    reward_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0"), nullable=False
    )
    rewarded_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    needs_review: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    __table_args__ = (
        # A user can be referred at most once per referral type
        UniqueConstraint(
            "referee_id", "referral_type", name="uq_referrals_referee_type"
        ),
        Index("ix_referrals_status_created", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Referral {self.id} {self.referral_type.value} {self.status.value}>"


class CampaignReferral(Base):
    """Marketing campaign whose code new users enter at signup.

    The reserved ``SYSTEM`` campaign carries the peer-referral reward.
    """

    __tablename__ = "campaign_referrals"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # Stored upper-case
    code: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    campaign_name: Mapped[str] = mapped_column(String, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    referral_reward_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0"), nullable=False
    )
    referral_reward_type: Mapped[RewardType] = mapped_column(
        SAEnum(
            RewardType,
            name="reward_type_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=RewardType.WALLET_CREDIT,
        nullable=False,
    )
    total_signups: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_companions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_seekers: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    @property
    def grants_wallet_credit(self) -> bool:
        return (
            self.referral_reward_type == RewardType.WALLET_CREDIT
            and self.referral_reward_amount > 0
        )

    def __repr__(self) -> str:
        return f"<CampaignReferral {self.code} active={self.is_active}>"
