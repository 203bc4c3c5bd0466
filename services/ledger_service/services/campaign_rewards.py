"""Campaign signup bonuses: signup trigger, batch distributor, manual path."""

import uuid
from decimal import Decimal
from typing import Optional

from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.ledger_service.models import (
    CampaignReferral,
    NotificationType,
    Referral,
    ReferralStatus,
    ReferralType,
    RewardType,
    TransactionType,
    User,
    UserRole,
    WalletTransaction,
)
from services.ledger_service.services.campaigns import (
    get_campaign_by_code,
    normalize_code,
)
from services.ledger_service.services.errors import (
    ConflictError,
    InactiveCampaignError,
    LedgerError,
    NotFoundError,
    ValidationError,
)
from services.ledger_service.services.ledger_ops import (
    ZERO,
    append_ledger_entry,
    get_user,
    get_user_by_email,
)
from services.ledger_service.services.notifications import build_notification
from services.ledger_service.services.referral_processor import referral_credit_key
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def _get_campaign_referral(db: AsyncSession, user_id: str) -> Optional[Referral]:
    result = await db.execute(
        select(Referral)
        .where(
            Referral.referee_id == user_id,
            Referral.referral_type == ReferralType.CAMPAIGN_SIGNUP,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _transition_referral(
    db: AsyncSession,
    referral_id: uuid.UUID,
    *,
    from_statuses: tuple[ReferralStatus, ...],
    **values,
) -> bool:
    result = await db.execute(
        update(Referral)
        .where(Referral.id == referral_id, Referral.status.in_(from_statuses))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def credit_campaign_referral(
    db: AsyncSession,
    *,
    referral_id: uuid.UUID,
    user_id: str,
    amount: Decimal,
    campaign_code: str,
    initiated_by: str = "system",
) -> WalletTransaction:
    """Credit a campaign signup bonus and mark the referral rewarded.

    Uses the same idempotency key for the batch, manual and reconciliation
    paths, so at most one ``campaign_bonus`` entry exists per referral.
    """
    txn = await append_ledger_entry(
        db,
        user_id=user_id,
        amount=amount,
        transaction_type=TransactionType.CAMPAIGN_BONUS,
        idempotency_key=referral_credit_key(referral_id, "reward"),
        description=f"Campaign signup bonus for {campaign_code}",
        reference_type="Referral",
        reference_id=str(referral_id),
        initiated_by=initiated_by,
        attach=[
            build_notification(
                user_id=user_id,
                notification_type=NotificationType.CAMPAIGN_REWARD,
                title="Campaign signup bonus",
                message=f"You received ₹{amount} for signing up with code {campaign_code}!",
                amount=amount,
            )
        ],
    )
    await _transition_referral(
        db,
        referral_id,
        from_statuses=(ReferralStatus.PENDING, ReferralStatus.COMPLETED),
        status=ReferralStatus.REWARDED,
        reward_amount=amount,
        rewarded_at=utc_now(),
        needs_review=False,
        last_error=None,
    )
    logger.info(
        "Campaign referral %s rewarded: user=%s campaign=%s amount=%s",
        referral_id,
        user_id,
        campaign_code,
        amount,
    )
    return txn


# ---------------------------------------------------------------------------
# Signup trigger
# ---------------------------------------------------------------------------


async def update_campaign_referral_stats(db: AsyncSession, user_id: str) -> dict:
    """Record a campaign signup: pending referral plus counter increments.

    Both writes share one transaction; a retried trigger hits the unique
    referee constraint and leaves the counters untouched.
    """
    user = await get_user(db, user_id)
    code = normalize_code(user.campaign_referral_code)
    if not code:
        return {"recorded": False, "reason": "no_campaign_code"}
    user_role = user.user_role

    campaign = await get_campaign_by_code(db, code)
    if campaign is None:
        return {"recorded": False, "reason": "campaign_not_found"}
    if not campaign.is_active:
        return {"recorded": False, "reason": "campaign_inactive"}
    campaign_id = campaign.id

    if await _get_campaign_referral(db, user_id):
        return {"recorded": False, "reason": "already_recorded"}

    counters = {"total_signups": CampaignReferral.total_signups + 1}
    if user_role == UserRole.COMPANION:
        counters["total_companions"] = CampaignReferral.total_companions + 1
    elif user_role == UserRole.SEEKER:
        counters["total_seekers"] = CampaignReferral.total_seekers + 1

    db.add(
        Referral(
            referrer_id=user_id,
            referee_id=user_id,
            referral_code=campaign.code,
            referral_type=ReferralType.CAMPAIGN_SIGNUP,
            status=ReferralStatus.PENDING,
            reward_amount=ZERO,
        )
    )
    await db.execute(
        update(CampaignReferral)
        .where(CampaignReferral.id == campaign_id)
        .values(**counters)
        .execution_options(synchronize_session=False)
    )
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        return {"recorded": False, "reason": "already_recorded"}

    logger.info("Recorded campaign signup for user %s on %s", user_id, code)
    return {"recorded": True, "campaign_code": code}


# ---------------------------------------------------------------------------
# Batch distributor
# ---------------------------------------------------------------------------


async def _distribute_one(db: AsyncSession, referral_id: uuid.UUID) -> dict:
    referral = await db.get(Referral, referral_id, populate_existing=True)
    if referral is None or referral.status != ReferralStatus.PENDING:
        return {"referral_id": str(referral_id), "status": "skipped", "reason": "already_processed"}

    referee = await db.get(User, referral.referee_id)
    if referee is None:
        raise NotFoundError("Referee not found", code="referee_not_found")
    if not referee.onboarding_completed:
        return {
            "referral_id": str(referral_id),
            "status": "skipped",
            "reason": "onboarding_incomplete",
        }

    campaign = await get_campaign_by_code(db, referral.referral_code)
    if campaign is None:
        raise NotFoundError(
            f"Campaign {referral.referral_code} not found", code="campaign_not_found"
        )
    if not campaign.is_active:
        raise InactiveCampaignError(f"Campaign {campaign.code} is not active")

    if not campaign.grants_wallet_credit:
        await _transition_referral(
            db,
            referral_id,
            from_statuses=(ReferralStatus.PENDING,),
            status=ReferralStatus.COMPLETED,
            reward_amount=ZERO,
        )
        return {
            "referral_id": str(referral_id),
            "status": "completed",
            "reason": "no_wallet_reward",
        }

    referrer = await db.get(User, referral.referrer_id)
    if referrer is None:
        raise NotFoundError("Referrer not found", code="referrer_not_found")
    user_id = referrer.id
    amount = campaign.referral_reward_amount
    campaign_code = campaign.code

    # Record the amount before crediting so a crash leaves a resumable state
    claimed = await _transition_referral(
        db,
        referral_id,
        from_statuses=(ReferralStatus.PENDING,),
        status=ReferralStatus.COMPLETED,
        reward_amount=amount,
    )
    if not claimed:
        return {"referral_id": str(referral_id), "status": "skipped", "reason": "already_processed"}

    txn = await credit_campaign_referral(
        db,
        referral_id=referral_id,
        user_id=user_id,
        amount=amount,
        campaign_code=campaign_code,
    )
    return {
        "referral_id": str(referral_id),
        "user_id": user_id,
        "status": "rewarded",
        "amount": amount,
        "new_balance": txn.balance_after,
    }


async def distribute_referral_rewards(
    db: AsyncSession, *, limit: Optional[int] = None
) -> dict:
    """Credit every eligible pending campaign referral.

    One failing referral is recorded in ``errors`` and never aborts the batch.
    """
    limit = limit or get_settings().REFERRAL_BATCH_SIZE
    result = await db.execute(
        select(Referral.id)
        .where(
            Referral.status == ReferralStatus.PENDING,
            Referral.referral_type == ReferralType.CAMPAIGN_SIGNUP,
        )
        .order_by(Referral.created_at.asc())
        .limit(limit)
    )
    referral_ids = list(result.scalars().all())

    results: list[dict] = []
    errors: list[dict] = []
    counts = {"rewarded": 0, "completed": 0, "skipped": 0}

    for referral_id in referral_ids:
        try:
            outcome = await _distribute_one(db, referral_id)
        except LedgerError as exc:
            await db.rollback()
            logger.warning(
                "Campaign referral %s not rewarded: %s (%s)",
                referral_id,
                exc.message,
                exc.code,
            )
            errors.append(
                {"referral_id": str(referral_id), "code": exc.code, "error": exc.message}
            )
            continue
        except Exception as exc:
            await db.rollback()
            logger.exception("Campaign referral %s failed", referral_id)
            errors.append(
                {"referral_id": str(referral_id), "code": "system_error", "error": str(exc)}
            )
            continue

        counts[outcome["status"]] += 1
        results.append(outcome)

    logger.info(
        "Referral reward distribution: %d rewarded, %d completed, %d skipped, %d errors",
        counts["rewarded"],
        counts["completed"],
        counts["skipped"],
        len(errors),
    )
    return {
        "success": True,
        "rewarded_count": counts["rewarded"],
        "completed_count": counts["completed"],
        "skipped_count": counts["skipped"],
        "error_count": len(errors),
        "results": results,
        "errors": errors,
    }


# ---------------------------------------------------------------------------
# Manual path
# ---------------------------------------------------------------------------


async def manually_reward_campaign_user(
    db: AsyncSession,
    *,
    email: str,
    campaign_code: str,
    admin_id: str,
) -> dict:
    """Admin override: reward one user for a campaign, bypassing onboarding."""
    user = await get_user_by_email(db, email)
    user_id = user.id
    user_email = user.email

    campaign = await get_campaign_by_code(db, campaign_code)
    if campaign is None:
        raise NotFoundError(f"Campaign {campaign_code} not found", code="campaign_not_found")
    if (
        campaign.referral_reward_type != RewardType.WALLET_CREDIT
        or campaign.referral_reward_amount <= ZERO
    ):
        raise ValidationError(
            "Campaign has no wallet credit reward configured", code="no_wallet_reward"
        )
    code = campaign.code
    amount = campaign.referral_reward_amount

    referral = await _get_campaign_referral(db, user_id)
    if referral is not None:
        if normalize_code(referral.referral_code) != code:
            raise ConflictError(
                f"User signed up with campaign {referral.referral_code}",
                code="campaign_mismatch",
            )
        if referral.status == ReferralStatus.REWARDED:
            raise ConflictError(
                "User already received this reward", code="already_rewarded"
            )
        referral_id = referral.id
        await _transition_referral(
            db,
            referral_id,
            from_statuses=(ReferralStatus.PENDING, ReferralStatus.COMPLETED),
            status=ReferralStatus.COMPLETED,
            reward_amount=amount,
        )
    else:
        referral = Referral(
            referrer_id=user_id,
            referee_id=user_id,
            referral_code=code,
            referral_type=ReferralType.CAMPAIGN_SIGNUP,
            status=ReferralStatus.COMPLETED,
            reward_amount=amount,
        )
        db.add(referral)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictError(
                "Campaign referral was created concurrently; retry", code="conflict"
            )
        referral_id = referral.id

    txn = await credit_campaign_referral(
        db,
        referral_id=referral_id,
        user_id=user_id,
        amount=amount,
        campaign_code=code,
        initiated_by=admin_id,
    )
    logger.info(
        "Admin %s manually rewarded %s with %s for campaign %s",
        admin_id,
        user_email,
        amount,
        code,
    )
    return {
        "success": True,
        "user_id": user_id,
        "email": user_email,
        "referral_id": referral_id,
        "amount": amount,
        "old_balance": txn.balance_before,
        "new_balance": txn.balance_after,
        "message": f"Rewarded {user_email} with ₹{amount} for campaign {code}",
    }
