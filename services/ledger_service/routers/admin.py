"""Admin ledger endpoints: batch jobs, payout review, campaign tooling."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from libs.auth.dependencies import require_admin
from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.ledger_service.schemas import (
    BalanceBreakdownResponse,
    CompletePayoutRequest,
    DistributeRewardsResponse,
    LedgerChainResponse,
    ManualRewardRequest,
    ManualRewardResponse,
    PayoutResponse,
    ProcessPayoutsResponse,
    RecalculateStatsRequest,
    RecalculateStatsResponse,
    ReconcileResponse,
    RejectPayoutRequest,
    ReleaseClaimsResponse,
)
from services.ledger_service.services.campaign_rewards import (
    distribute_referral_rewards,
    manually_reward_campaign_user,
)
from services.ledger_service.services.campaign_stats import recalculate_campaign_stats
from services.ledger_service.services.earnings import compute_balance_breakdown
from services.ledger_service.services.ledger_ops import get_user, verify_ledger_chain
from services.ledger_service.services.payout_processor import (
    complete_payout,
    process_payouts,
    reject_payout,
    release_stale_payout_claims,
)
from services.ledger_service.services.reconciliation import reconcile_stuck_referrals
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)
router = APIRouter(prefix="/admin/ledger", tags=["admin-ledger"])


# ---------------------------------------------------------------------------
# Payouts
# ---------------------------------------------------------------------------


@router.post("/payouts/process", response_model=ProcessPayoutsResponse)
async def run_payout_processing(
    limit: Optional[int] = Query(None, ge=1, le=1000),
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Validate and resolve pending payouts now instead of waiting for cron."""
    logger.info("Payout processing triggered by %s", admin.user_id)
    return await process_payouts(db, worker_id=admin.user_id, limit=limit)


@router.post("/payouts/release-stale", response_model=ReleaseClaimsResponse)
async def release_stale_claims(
    older_than_minutes: Optional[int] = Query(None, ge=0),
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    released = await release_stale_payout_claims(
        db, older_than_minutes=older_than_minutes
    )
    return ReleaseClaimsResponse(released=released)


@router.post("/payouts/{payout_id}/complete", response_model=PayoutResponse)
async def mark_payout_completed(
    payout_id: uuid.UUID,
    body: CompletePayoutRequest,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Record that an approved payout has been paid out."""
    payout = await complete_payout(
        db, payout_id, admin_id=admin.user_id, notes=body.admin_notes
    )
    return PayoutResponse.model_validate(payout)


@router.post("/payouts/{payout_id}/reject", response_model=PayoutResponse)
async def reject_payout_request(
    payout_id: uuid.UUID,
    body: RejectPayoutRequest,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Reject a pending or approved payout and refund the companion."""
    payout = await reject_payout(
        db,
        payout_id,
        admin_id=admin.user_id,
        reason=body.reason,
        notes=body.admin_notes,
    )
    return PayoutResponse.model_validate(payout)


# ---------------------------------------------------------------------------
# Referrals and campaigns
# ---------------------------------------------------------------------------


@router.post("/referrals/distribute", response_model=DistributeRewardsResponse)
async def run_reward_distribution(
    limit: Optional[int] = Query(None, ge=1, le=5000),
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    logger.info("Referral reward distribution triggered by %s", admin.user_id)
    return await distribute_referral_rewards(db, limit=limit)


@router.post("/referrals/reconcile", response_model=ReconcileResponse)
async def run_referral_reconciliation(
    older_than_minutes: Optional[int] = Query(None, ge=0),
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Resume referrals whose crediting was interrupted."""
    return await reconcile_stuck_referrals(db, older_than_minutes=older_than_minutes)


@router.post("/campaigns/manual-reward", response_model=ManualRewardResponse)
async def manual_campaign_reward(
    body: ManualRewardRequest,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Reward one user for a campaign, bypassing the onboarding check."""
    return await manually_reward_campaign_user(
        db, email=body.email, campaign_code=body.campaign_code, admin_id=admin.user_id
    )


@router.post("/campaigns/recalculate-stats", response_model=RecalculateStatsResponse)
async def recalculate_stats(
    body: RecalculateStatsRequest,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await recalculate_campaign_stats(db, body.campaign_code)


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


@router.get("/users/{user_id}/chain", response_model=LedgerChainResponse)
async def get_ledger_chain_report(
    user_id: str,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Replay a user's ledger and report breaks or cache drift."""
    return await verify_ledger_chain(db, user_id)


@router.get(
    "/users/{user_id}/available-balance", response_model=BalanceBreakdownResponse
)
async def get_available_balance(
    user_id: str,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    await get_user(db, user_id)
    breakdown = await compute_balance_breakdown(db, user_id)
    return BalanceBreakdownResponse(**breakdown.as_dict())
