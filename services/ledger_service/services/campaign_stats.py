"""Campaign stats reconciler: recounts signup counters from the referral log."""

from typing import Optional

from libs.common.logging import get_logger
from services.ledger_service.models import (
    CampaignReferral,
    Referral,
    ReferralStatus,
    ReferralType,
    User,
    UserRole,
)
from services.ledger_service.services.campaigns import normalize_code
from services.ledger_service.services.errors import NotFoundError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

COUNTED_STATUSES = (ReferralStatus.COMPLETED, ReferralStatus.REWARDED)


async def _count_signups_by_role(db: AsyncSession, code: str) -> dict[UserRole, int]:
    result = await db.execute(
        select(User.user_role, func.count(Referral.id))
        .join(User, User.id == Referral.referee_id)
        .where(
            Referral.referral_type == ReferralType.CAMPAIGN_SIGNUP,
            Referral.status.in_(COUNTED_STATUSES),
            func.upper(Referral.referral_code) == code,
        )
        .group_by(User.user_role)
    )
    return {role: count for role, count in result.all()}


async def _count_signups(db: AsyncSession, code: str) -> int:
    # Counted separately so referrals whose user row is gone still count
    result = await db.execute(
        select(func.count())
        .select_from(Referral)
        .where(
            Referral.referral_type == ReferralType.CAMPAIGN_SIGNUP,
            Referral.status.in_(COUNTED_STATUSES),
            func.upper(Referral.referral_code) == code,
        )
    )
    return result.scalar() or 0


async def recalculate_campaign_stats(
    db: AsyncSession, campaign_code: Optional[str] = None
) -> dict:
    """Overwrite each campaign's counters with counts derived from referrals.

    Idempotent: running it twice without new referrals changes nothing.
    """
    query = (
        select(CampaignReferral)
        .order_by(CampaignReferral.code)
        .execution_options(populate_existing=True)
    )
    if campaign_code:
        query = query.where(CampaignReferral.code == normalize_code(campaign_code))
    campaigns = list((await db.execute(query)).scalars().all())
    if campaign_code and not campaigns:
        raise NotFoundError(f"Campaign {campaign_code} not found", code="campaign_not_found")

    updates = []
    for campaign in campaigns:
        code = normalize_code(campaign.code)
        total = await _count_signups(db, code)
        by_role = await _count_signups_by_role(db, code)

        previous = campaign.total_signups
        campaign.total_signups = total
        campaign.total_companions = by_role.get(UserRole.COMPANION, 0)
        campaign.total_seekers = by_role.get(UserRole.SEEKER, 0)
        updates.append(
            {
                "campaign_code": campaign.code,
                "previous_total_signups": previous,
                "total_signups": campaign.total_signups,
                "total_companions": campaign.total_companions,
                "total_seekers": campaign.total_seekers,
            }
        )

    await db.commit()
    logger.info("Recalculated stats for %d campaigns", len(updates))
    return {"success": True, "updates": updates}
