"""Stuck referral reconciliation.

A referral is ``completed`` with a positive reward only while it is being
credited. If it stays there past the threshold the crediting process died
part-way; resume it through the same idempotent ledger keys, or flag it for
review when resuming fails.
"""

import uuid
from typing import Optional

from libs.common.config import get_settings
from libs.common.datetime_utils import minutes_ago
from libs.common.logging import get_logger
from services.ledger_service.models import (
    Referral,
    ReferralStatus,
    ReferralType,
)
from services.ledger_service.services.campaign_rewards import credit_campaign_referral
from services.ledger_service.services.errors import LedgerError
from services.ledger_service.services.ledger_ops import ZERO
from services.ledger_service.services.referral_processor import credit_peer_referral
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def _resume(db: AsyncSession, referral_id: uuid.UUID) -> None:
    referral = await db.get(Referral, referral_id, populate_existing=True)
    if referral is None or referral.status != ReferralStatus.COMPLETED:
        return
    if referral.referral_type == ReferralType.USER_REFERRAL:
        await credit_peer_referral(db, referral_id)
    else:
        await credit_campaign_referral(
            db,
            referral_id=referral_id,
            user_id=referral.referrer_id,
            amount=referral.reward_amount,
            campaign_code=referral.referral_code,
        )


async def _flag_for_review(db: AsyncSession, referral_id: uuid.UUID, error: str) -> None:
    await db.execute(
        update(Referral)
        .where(Referral.id == referral_id, Referral.status == ReferralStatus.COMPLETED)
        .values(needs_review=True, last_error=error[:1000])
        .execution_options(synchronize_session=False)
    )
    await db.commit()


async def reconcile_stuck_referrals(
    db: AsyncSession, *, older_than_minutes: Optional[int] = None
) -> dict:
    """Resume crediting of referrals left ``completed``; flag the ones that fail."""
    settings = get_settings()
    if older_than_minutes is None:
        older_than_minutes = settings.STUCK_REFERRAL_THRESHOLD_MINUTES

    result = await db.execute(
        select(Referral.id)
        .where(
            Referral.status == ReferralStatus.COMPLETED,
            Referral.reward_amount > ZERO,
            Referral.needs_review.is_(False),
            Referral.updated_at <= minutes_ago(older_than_minutes),
        )
        .order_by(Referral.created_at.asc())
        .limit(settings.REFERRAL_BATCH_SIZE)
    )
    referral_ids = list(result.scalars().all())

    results: list[dict] = []
    resumed = flagged = 0
    for referral_id in referral_ids:
        try:
            await _resume(db, referral_id)
        except Exception as exc:
            await db.rollback()
            message = exc.message if isinstance(exc, LedgerError) else str(exc)
            logger.error("Could not resume referral %s: %s", referral_id, message)
            await _flag_for_review(db, referral_id, message)
            flagged += 1
            results.append(
                {"referral_id": str(referral_id), "status": "flagged", "error": message}
            )
            continue

        resumed += 1
        results.append({"referral_id": str(referral_id), "status": "resumed"})

    if referral_ids:
        logger.warning(
            "Stuck referral reconciliation: %d resumed, %d flagged", resumed, flagged
        )
    return {"success": True, "resumed": resumed, "flagged": flagged, "results": results}
