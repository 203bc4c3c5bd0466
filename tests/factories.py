"""
Model factories for creating valid test data.

Every factory produces a valid, insertable SQLAlchemy model instance.
Override any field via kwargs.

Usage:
    user = UserFactory.create(user_role=UserRole.COMPANION)
    db_session.add(user)
    await db_session.commit()
"""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _uuid() -> uuid.UUID:
    return uuid.uuid4()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def minutes_before_now(minutes: int) -> datetime:
    return _now() - timedelta(minutes=minutes)


def _unique_email() -> str:
    return f"test-{uuid.uuid4().hex[:8]}@test.com"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserFactory:
    @staticmethod
    def create(**overrides):
        from services.ledger_service.models import User, UserRole

        defaults = {
            "id": f"user-{uuid.uuid4().hex[:10]}",
            "email": _unique_email(),
            "display_name": "Test User",
            "user_role": UserRole.SEEKER,
            "wallet_balance": Decimal("0"),
            "ledger_version": 0,
            "onboarding_completed": True,
            "my_referral_code": None,
            "campaign_referral_code": None,
            "created_at": _now(),
            "updated_at": _now(),
        }
        defaults.update(overrides)
        return User(**defaults)


# ---------------------------------------------------------------------------
# Campaigns and referrals
# ---------------------------------------------------------------------------


class CampaignFactory:
    @staticmethod
    def create(**overrides):
        from services.ledger_service.models import CampaignReferral, RewardType

        defaults = {
            "id": _uuid(),
            "code": f"CAMP{uuid.uuid4().hex[:6].upper()}",
            "campaign_name": "Test Campaign",
            "is_active": True,
            "referral_reward_amount": Decimal("50"),
            "referral_reward_type": RewardType.WALLET_CREDIT,
            "total_signups": 0,
            "total_companions": 0,
            "total_seekers": 0,
            "created_at": _now(),
            "updated_at": _now(),
        }
        defaults.update(overrides)
        return CampaignReferral(**defaults)


class ReferralFactory:
    @staticmethod
    def create(referrer_id, referee_id=None, **overrides):
        from services.ledger_service.models import (
            Referral,
            ReferralStatus,
            ReferralType,
        )

        defaults = {
            "id": _uuid(),
            "referrer_id": referrer_id,
            "referee_id": referee_id or referrer_id,
            "referral_code": "TESTCODE",
            "referral_type": ReferralType.CAMPAIGN_SIGNUP,
            "status": ReferralStatus.PENDING,
            "reward_amount": Decimal("0"),
            "needs_review": False,
            "created_at": _now(),
            "updated_at": _now(),
        }
        defaults.update(overrides)
        return Referral(**defaults)


# ---------------------------------------------------------------------------
# Payouts and bookings
# ---------------------------------------------------------------------------


class PayoutFactory:
    @staticmethod
    def create(companion_id, **overrides):
        from services.ledger_service.models import (
            PaymentMethod,
            Payout,
            PayoutStatus,
        )

        defaults = {
            "id": _uuid(),
            "companion_id": companion_id,
            "requested_amount": None,
            "amount": Decimal("500"),
            "status": PayoutStatus.PENDING,
            "payment_method": PaymentMethod.UPI,
            "payment_details": {"upi_id": "companion@upi"},
            "created_at": _now(),
            "updated_at": _now(),
        }
        defaults.update(overrides)
        return Payout(**defaults)


class BookingFactory:
    @staticmethod
    def create(companion_id, **overrides):
        from services.ledger_service.models import (
            Booking,
            BookingStatus,
            EscrowStatus,
        )

        defaults = {
            "id": _uuid(),
            "companion_id": companion_id,
            "seeker_id": f"user-{uuid.uuid4().hex[:10]}",
            "status": BookingStatus.COMPLETED,
            "escrow_status": EscrowStatus.RELEASED,
            "companion_payout": Decimal("1000"),
            "created_at": _now(),
        }
        defaults.update(overrides)
        return Booking(**defaults)
