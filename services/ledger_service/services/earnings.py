"""Earnings aggregator: derives a user's withdrawable balance.

Pure read-side computation over settled events. Never reads
``User.wallet_balance``; any read failure propagates to the caller.
"""

import uuid
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Optional

from services.ledger_service.models import (
    Booking,
    BookingStatus,
    EscrowStatus,
    Payout,
    PayoutStatus,
    Referral,
    ReferralStatus,
    ReferralType,
    TransactionType,
    WalletTransaction,
)
from services.ledger_service.services.campaigns import get_system_reward_amount
from services.ledger_service.services.ledger_ops import to_money
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

IN_FLIGHT_PAYOUT_STATUSES = (PayoutStatus.APPROVED, PayoutStatus.PROCESSING)
CREDITED_REFERRAL_STATUSES = (ReferralStatus.COMPLETED, ReferralStatus.REWARDED)


@dataclass
class BalanceBreakdown:
    user_id: str
    booking_earnings: Decimal
    referral_earnings: Decimal
    campaign_earnings: Decimal
    completed_withdrawals: Decimal
    in_flight_withdrawals: Decimal

    @property
    def available(self) -> Decimal:
        return (
            self.booking_earnings
            + self.referral_earnings
            + self.campaign_earnings
            - self.completed_withdrawals
            - self.in_flight_withdrawals
        )

    def as_dict(self) -> dict:
        data = asdict(self)
        data["available"] = self.available
        return data


async def list_settled_earnings(db: AsyncSession, user_id: str) -> list[Decimal]:
    """Companion payouts of completed bookings whose escrow was released."""
    result = await db.execute(
        select(Booking.companion_payout).where(
            Booking.companion_id == user_id,
            Booking.status == BookingStatus.COMPLETED,
            Booking.escrow_status == EscrowStatus.RELEASED,
        )
    )
    return [to_money(amount) for amount in result.scalars().all()]


async def _count_credited_peer_referrals(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(Referral)
        .where(
            or_(Referral.referrer_id == user_id, Referral.referee_id == user_id),
            Referral.referral_type == ReferralType.USER_REFERRAL,
            Referral.status.in_(CREDITED_REFERRAL_STATUSES),
        )
    )
    return result.scalar() or 0


async def _sum_campaign_bonuses(db: AsyncSession, user_id: str) -> Decimal:
    result = await db.execute(
        select(func.coalesce(func.sum(WalletTransaction.amount), 0)).where(
            WalletTransaction.user_id == user_id,
            WalletTransaction.transaction_type == TransactionType.CAMPAIGN_BONUS,
        )
    )
    return to_money(result.scalar())


async def _sum_payouts(
    db: AsyncSession,
    user_id: str,
    statuses: tuple[PayoutStatus, ...],
    exclude_payout_id: Optional[uuid.UUID],
) -> Decimal:
    # requested_amount is pre-fee; subtracting ``amount`` would under-count
    gross = func.coalesce(Payout.requested_amount, Payout.amount)
    query = select(func.coalesce(func.sum(gross), 0)).where(
        Payout.companion_id == user_id,
        Payout.status.in_(statuses),
    )
    if exclude_payout_id is not None:
        query = query.where(Payout.id != exclude_payout_id)
    result = await db.execute(query)
    return to_money(result.scalar())


async def compute_balance_breakdown(
    db: AsyncSession,
    user_id: str,
    exclude_payout_id: Optional[uuid.UUID] = None,
) -> BalanceBreakdown:
    """Every component of the available balance, for audit and display."""
    booking_earnings = sum(await list_settled_earnings(db, user_id), Decimal("0"))
    referral_count = await _count_credited_peer_referrals(db, user_id)
    system_reward = await get_system_reward_amount(db)

    return BalanceBreakdown(
        user_id=user_id,
        booking_earnings=to_money(booking_earnings),
        referral_earnings=to_money(system_reward * referral_count),
        campaign_earnings=await _sum_campaign_bonuses(db, user_id),
        completed_withdrawals=await _sum_payouts(
            db, user_id, (PayoutStatus.COMPLETED,), exclude_payout_id
        ),
        in_flight_withdrawals=await _sum_payouts(
            db, user_id, IN_FLIGHT_PAYOUT_STATUSES, exclude_payout_id
        ),
    )


async def compute_available_balance(
    db: AsyncSession,
    user_id: str,
    exclude_payout_id: Optional[uuid.UUID] = None,
) -> Decimal:
    breakdown = await compute_balance_breakdown(db, user_id, exclude_payout_id)
    return breakdown.available
