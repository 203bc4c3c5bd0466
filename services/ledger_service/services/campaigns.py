"""Campaign lookups and the reserved SYSTEM campaign."""

from decimal import Decimal
from typing import Optional

from libs.common.config import get_settings
from libs.common.logging import get_logger
from services.ledger_service.models import CampaignReferral, RewardType
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


def normalize_code(code: Optional[str]) -> str:
    """Codes are stored upper-case and matched case-insensitively."""
    return (code or "").strip().upper()


async def get_campaign_by_code(
    db: AsyncSession, code: Optional[str]
) -> Optional[CampaignReferral]:
    normalized = normalize_code(code)
    if not normalized:
        return None
    result = await db.execute(
        select(CampaignReferral).where(func.upper(CampaignReferral.code) == normalized)
    )
    return result.scalar_one_or_none()


async def get_system_reward_amount(db: AsyncSession) -> Decimal:
    """Peer-referral reward; read-only, falls back to the configured default."""
    settings = get_settings()
    campaign = await get_campaign_by_code(db, settings.SYSTEM_CAMPAIGN_CODE)
    if campaign is None:
        return Decimal(settings.DEFAULT_REFERRAL_REWARD)
    return campaign.referral_reward_amount


async def get_or_create_system_campaign(db: AsyncSession) -> CampaignReferral:
    """Return the SYSTEM campaign, creating it with the default reward if absent.

    Commits when it creates the row.
    """
    settings = get_settings()
    campaign = await get_campaign_by_code(db, settings.SYSTEM_CAMPAIGN_CODE)
    if campaign:
        return campaign

    campaign = CampaignReferral(
        code=normalize_code(settings.SYSTEM_CAMPAIGN_CODE),
        campaign_name="Peer referral rewards",
        is_active=True,
        referral_reward_amount=Decimal(settings.DEFAULT_REFERRAL_REWARD),
        referral_reward_type=RewardType.WALLET_CREDIT,
    )
    db.add(campaign)
    try:
        await db.commit()
    except IntegrityError:
        # Created concurrently
        await db.rollback()
        campaign = await get_campaign_by_code(db, settings.SYSTEM_CAMPAIGN_CODE)
        if campaign is None:
            raise
        return campaign

    logger.info(
        "Created %s campaign with default reward %s",
        campaign.code,
        campaign.referral_reward_amount,
    )
    return campaign
