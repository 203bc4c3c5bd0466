"""Enums for the Ledger Service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class UserRole(str, enum.Enum):
    COMPANION = "companion"
    SEEKER = "seeker"
    ADMIN = "admin"


class TransactionType(str, enum.Enum):
    REFERRAL_BONUS = "referral_bonus"
    CAMPAIGN_BONUS = "campaign_bonus"
    PAYOUT = "payout"
    REFUND = "refund"


class TransactionDirection(str, enum.Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class ReferralType(str, enum.Enum):
    USER_REFERRAL = "user_referral"
    CAMPAIGN_SIGNUP = "campaign_signup"


class ReferralStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REWARDED = "rewarded"


class RewardType(str, enum.Enum):
    NONE = "none"
    WALLET_CREDIT = "wallet_credit"
    DISCOUNT = "discount"


class PayoutStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PROCESSING = "processing"
    REJECTED = "rejected"
    COMPLETED = "completed"


class PaymentMethod(str, enum.Enum):
    UPI = "upi"
    BANK_TRANSFER = "bank_transfer"


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class EscrowStatus(str, enum.Enum):
    HELD = "held"
    RELEASED = "released"
    REFUNDED = "refunded"


class NotificationStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class NotificationType(str, enum.Enum):
    REFERRAL_REWARD = "referral_reward"
    CAMPAIGN_REWARD = "campaign_reward"
    PAYOUT_APPROVED = "payout_approved"
    PAYOUT_REJECTED = "payout_rejected"
    PAYOUT_COMPLETED = "payout_completed"
