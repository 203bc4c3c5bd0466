"""Scheduled ledger jobs.

Each job opens its own session so a failure in one never leaks state into
another.
"""

from libs.common.logging import get_logger
from libs.db.config import AsyncSessionLocal
from services.ledger_service.services.campaign_rewards import (
    distribute_referral_rewards,
)
from services.ledger_service.services.notifications import (
    deliver_pending_notifications,
)
from services.ledger_service.services.payout_processor import (
    process_payouts,
    release_stale_payout_claims,
)
from services.ledger_service.services.reconciliation import reconcile_stuck_referrals

logger = get_logger(__name__)


async def run_payout_processing(worker_id: str = "system_auto") -> dict:
    async with AsyncSessionLocal() as db:
        return await process_payouts(db, worker_id=worker_id)


async def run_reward_distribution() -> dict:
    async with AsyncSessionLocal() as db:
        return await distribute_referral_rewards(db)


async def run_referral_reconciliation() -> dict:
    async with AsyncSessionLocal() as db:
        return await reconcile_stuck_referrals(db)


async def run_stale_claim_release() -> int:
    async with AsyncSessionLocal() as db:
        return await release_stale_payout_claims(db)


async def run_notification_delivery() -> dict:
    async with AsyncSessionLocal() as db:
        summary = await deliver_pending_notifications(db)
    if summary["failed"]:
        logger.warning("%d notifications failed permanently", summary["failed"])
    return summary
