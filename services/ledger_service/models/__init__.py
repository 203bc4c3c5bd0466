"""Ledger Service models package.

Re-exports all models and enums so that:
  - ``from services.ledger_service.models import Payout`` works
  - Alembic env.py sees every table through one import
  - SQLAlchemy's mapper registry sees every model class on import

IMPORTANT: Every model class AND enum must be listed here.
"""

from services.ledger_service.models.booking import Booking  # noqa: F401
from services.ledger_service.models.enums import (  # noqa: F401
    BookingStatus,
    EscrowStatus,
    NotificationStatus,
    NotificationType,
    PaymentMethod,
    PayoutStatus,
    ReferralStatus,
    ReferralType,
    RewardType,
    TransactionDirection,
    TransactionStatus,
    TransactionType,
    UserRole,
)
from services.ledger_service.models.notification import Notification  # noqa: F401
from services.ledger_service.models.payout import Payout  # noqa: F401
from services.ledger_service.models.referral import (  # noqa: F401
    CampaignReferral,
    Referral,
)
from services.ledger_service.models.transaction import WalletTransaction  # noqa: F401
from services.ledger_service.models.user import User  # noqa: F401

__all__ = [
    # Enums
    "BookingStatus",
    "EscrowStatus",
    "NotificationStatus",
    "NotificationType",
    "PaymentMethod",
    "PayoutStatus",
    "ReferralStatus",
    "ReferralType",
    "RewardType",
    "TransactionDirection",
    "TransactionStatus",
    "TransactionType",
    "UserRole",
    # Models
    "Booking",
    "CampaignReferral",
    "Notification",
    "Payout",
    "Referral",
    "User",
    "WalletTransaction",
]
