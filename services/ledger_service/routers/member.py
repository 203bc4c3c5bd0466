"""Member-facing ledger endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from libs.common.rate_limit import money_limit
from libs.db.session import get_async_db
from services.ledger_service.models import TransactionType
from services.ledger_service.schemas import (
    ApplyReferralRequest,
    BalanceBreakdownResponse,
    BalanceResponse,
    PayoutCreateRequest,
    PayoutListResponse,
    PayoutResponse,
    ReferralOutcomeResponse,
    TransactionListResponse,
    TransactionResponse,
)
from services.ledger_service.services.earnings import compute_balance_breakdown
from services.ledger_service.services.ledger_ops import (
    count_ledger_entries,
    get_ledger_balance,
    get_user,
    list_ledger_entries,
    to_money,
)
from services.ledger_service.services.payout_processor import (
    list_payouts_for_user,
    request_payout,
)
from services.ledger_service.services.referral_processor import process_referral
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)
router = APIRouter(prefix="/ledger", tags=["ledger"])


# ---------------------------------------------------------------------------
# Balance and history
# ---------------------------------------------------------------------------


@router.get("/me/balance", response_model=BalanceResponse)
async def get_my_balance(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Ledger balance, cached balance and withdrawable amount."""
    user = await get_user(db, current_user.user_id)
    ledger_balance = await get_ledger_balance(db, user.id)
    breakdown = await compute_balance_breakdown(db, user.id)
    return BalanceResponse(
        user_id=user.id,
        ledger_balance=ledger_balance,
        cached_balance=to_money(user.wallet_balance),
        available_balance=breakdown.available,
    )


@router.get("/me/earnings", response_model=BalanceBreakdownResponse)
async def get_my_earnings(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    await get_user(db, current_user.user_id)
    breakdown = await compute_balance_breakdown(db, current_user.user_id)
    return BalanceBreakdownResponse(**breakdown.as_dict())


@router.get("/me/transactions", response_model=TransactionListResponse)
async def list_my_transactions(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    transaction_type: Optional[TransactionType] = None,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Ledger entries in chain order."""
    entries = await list_ledger_entries(
        db,
        current_user.user_id,
        transaction_type=transaction_type,
        skip=skip,
        limit=limit,
    )
    total = await count_ledger_entries(db, current_user.user_id)
    return TransactionListResponse(
        transactions=[TransactionResponse.model_validate(e) for e in entries],
        total=total,
        skip=skip,
        limit=limit,
    )


# ---------------------------------------------------------------------------
# Referrals
# ---------------------------------------------------------------------------


@router.post("/referrals/apply", response_model=ReferralOutcomeResponse)
@money_limit
async def apply_referral_code(
    request: Request,
    body: ApplyReferralRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Apply another user's referral code to the caller's account.

    Business rejections (invalid code, self referral, already used) come back
    with ``success: false`` and a reason code.
    """
    outcome = await process_referral(
        db, actor_id=current_user.user_id, code=body.referral_code
    )
    return ReferralOutcomeResponse(**outcome.as_dict())


# ---------------------------------------------------------------------------
# Payouts
# ---------------------------------------------------------------------------


@router.post(
    "/payouts", response_model=PayoutResponse, status_code=status.HTTP_201_CREATED
)
@money_limit
async def create_payout_request(
    request: Request,
    body: PayoutCreateRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Request a withdrawal. The amount is reserved until the payout resolves."""
    payout = await request_payout(
        db,
        companion_id=current_user.user_id,
        requested_amount=body.amount,
        payment_method=body.payment_method,
        payment_details=body.payment_details,
    )
    return PayoutResponse.model_validate(payout)


@router.get("/payouts", response_model=PayoutListResponse)
async def list_my_payouts(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    payouts = await list_payouts_for_user(db, current_user.user_id)
    return PayoutListResponse(
        payouts=[PayoutResponse.model_validate(p) for p in payouts],
        total=len(payouts),
    )
