"""Peer-to-peer referral processing.

Sequence per referral: create (``completed``) -> credit referrer -> credit
referee -> mark ``rewarded``. Each credit is an idempotent ledger append, so
a referral left ``completed`` by a crash can be resumed safely (see
``reconciliation.reconcile_stuck_referrals``).
"""

import uuid
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.ledger_service.models import (
    NotificationType,
    Referral,
    ReferralStatus,
    ReferralType,
    TransactionType,
    User,
)
from services.ledger_service.services.campaigns import (
    get_or_create_system_campaign,
    normalize_code,
)
from services.ledger_service.services.errors import (
    ConflictError,
    LedgerError,
    NotFoundError,
)
from services.ledger_service.services.ledger_ops import (
    ZERO,
    append_ledger_entry,
    get_user,
)
from services.ledger_service.services.notifications import build_notification
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass
class ReferralOutcome:
    success: bool
    code: str
    message: str
    reward_amount: Optional[Decimal] = None
    referral_id: Optional[uuid.UUID] = None

    def as_dict(self) -> dict:
        return asdict(self)


def referral_credit_key(referral_id: uuid.UUID, party: str) -> str:
    return f"referral:{referral_id}:{party}"


async def _find_code_owner(db: AsyncSession, code: str) -> Optional[User]:
    result = await db.execute(
        select(User).where(func.upper(User.my_referral_code) == code)
    )
    return result.scalar_one_or_none()


async def _get_referee_referral(db: AsyncSession, referee_id: str) -> Optional[Referral]:
    """Any referral held by ``referee_id``, preferring a peer referral."""
    result = await db.execute(
        select(Referral)
        .where(Referral.referee_id == referee_id)
        .execution_options(populate_existing=True)
    )
    referrals = list(result.scalars().all())
    for referral in referrals:
        if referral.referral_type == ReferralType.USER_REFERRAL:
            return referral
    return referrals[0] if referrals else None


async def mark_referral_rewarded(
    db: AsyncSession,
    referral_id: uuid.UUID,
    *,
    from_status: ReferralStatus,
) -> bool:
    """Conditionally move a referral to ``rewarded``; commits."""
    result = await db.execute(
        update(Referral)
        .where(Referral.id == referral_id, Referral.status == from_status)
        .values(
            status=ReferralStatus.REWARDED,
            rewarded_at=utc_now(),
            needs_review=False,
            last_error=None,
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def credit_peer_referral(db: AsyncSession, referral_id: uuid.UUID) -> Referral:
    """Credit both parties of a ``completed`` peer referral and mark it rewarded.

    Safe to call repeatedly: each credit uses a per-party idempotency key and
    the final transition is conditional.
    """
    referral = await db.get(Referral, referral_id, populate_existing=True)
    if referral is None:
        raise NotFoundError(f"Referral {referral_id} not found", code="referral_not_found")
    if referral.status == ReferralStatus.REWARDED:
        return referral

    referrer_id = referral.referrer_id
    referee_id = referral.referee_id
    amount = referral.reward_amount

    if amount > ZERO:
        # Balances are re-read under the row lock inside each append
        await append_ledger_entry(
            db,
            user_id=referrer_id,
            amount=amount,
            transaction_type=TransactionType.REFERRAL_BONUS,
            idempotency_key=referral_credit_key(referral_id, "referrer"),
            description="Referral bonus - a friend joined using your code",
            reference_type="Referral",
            reference_id=str(referral_id),
            attach=[
                build_notification(
                    user_id=referrer_id,
                    notification_type=NotificationType.REFERRAL_REWARD,
                    title="Referral bonus earned",
                    message=f"You earned ₹{amount} because a friend joined with your code.",
                    amount=amount,
                )
            ],
        )
        await append_ledger_entry(
            db,
            user_id=referee_id,
            amount=amount,
            transaction_type=TransactionType.REFERRAL_BONUS,
            idempotency_key=referral_credit_key(referral_id, "referee"),
            description="Welcome bonus for joining with a referral code",
            reference_type="Referral",
            reference_id=str(referral_id),
            attach=[
                build_notification(
                    user_id=referee_id,
                    notification_type=NotificationType.REFERRAL_REWARD,
                    title="Welcome bonus received",
                    message=f"You received ₹{amount} for joining with a referral code.",
                    amount=amount,
                )
            ],
        )

    await mark_referral_rewarded(db, referral_id, from_status=ReferralStatus.COMPLETED)
    logger.info(
        "Referral %s rewarded: referrer=%s referee=%s amount=%s",
        referral_id,
        referrer_id,
        referee_id,
        amount,
    )
    return await db.get(Referral, referral_id, populate_existing=True)


async def _replay_or_reject(
    db: AsyncSession,
    existing: Referral,
    *,
    referrer_id: str,
    code: str,
) -> ReferralOutcome:
    """Resolve a request against the referral already held by the actor."""
    if (
        existing.referral_type != ReferralType.USER_REFERRAL
        or existing.referrer_id != referrer_id
        or normalize_code(existing.referral_code) != code
    ):
        raise ConflictError("You have already used a referral code", code="already_used")

    referral_id = existing.id
    if existing.status != ReferralStatus.REWARDED:
        existing = await credit_peer_referral(db, referral_id)
    return ReferralOutcome(
        success=True,
        code="already_processed",
        message="Referral already processed",
        reward_amount=existing.reward_amount,
        referral_id=referral_id,
    )


async def _apply_referral(db: AsyncSession, actor_id: str, code: str) -> ReferralOutcome:
    actor = await get_user(db, actor_id)
    if actor.campaign_referral_code:
        raise ConflictError(
            "You signed up with a campaign code and cannot also use a referral code",
            code="campaign_referral_exists",
        )

    referrer = await _find_code_owner(db, code)
    if referrer is None:
        raise NotFoundError("Invalid referral code", code="invalid_code")
    referrer_id = referrer.id
    if referrer_id == actor_id:
        raise ConflictError("Cannot use your own referral code", code="self_referral")

    existing = await _get_referee_referral(db, actor_id)
    if existing:
        return await _replay_or_reject(db, existing, referrer_id=referrer_id, code=code)

    system_campaign = await get_or_create_system_campaign(db)
    reward_amount = system_campaign.referral_reward_amount

    referral = Referral(
        referrer_id=referrer_id,
        referee_id=actor_id,
        referral_code=code,
        referral_type=ReferralType.USER_REFERRAL,
        status=ReferralStatus.COMPLETED,
        reward_amount=reward_amount,
    )
    db.add(referral)
    try:
        await db.commit()
    except IntegrityError:
        # Another request claimed this referee first
        await db.rollback()
        existing = await _get_referee_referral(db, actor_id)
        if existing is None:
            raise
        return await _replay_or_reject(db, existing, referrer_id=referrer_id, code=code)

    referral_id = referral.id
    logger.info(
        "Referral %s created: %s referred %s with code %s",
        referral_id,
        referrer_id,
        actor_id,
        code,
    )
    await credit_peer_referral(db, referral_id)

    return ReferralOutcome(
        success=True,
        code="referral_applied",
        message=f"Referral applied. You and your friend each received ₹{reward_amount}",
        reward_amount=reward_amount,
        referral_id=referral_id,
    )


async def process_referral(
    db: AsyncSession, *, actor_id: str, code: Optional[str]
) -> ReferralOutcome:
    """Apply a peer referral code for ``actor_id`` exactly once.

    Business rejections come back as ``success=False`` outcomes with a reason
    code; only unexpected failures raise.
    """
    normalized = normalize_code(code)
    if not normalized:
        return ReferralOutcome(
            success=True, code="no_code", message="No referral code provided"
        )

    try:
        return await _apply_referral(db, actor_id, normalized)
    except LedgerError as exc:
        logger.info(
            "Referral code %s rejected for user %s: %s (%s)",
            normalized,
            actor_id,
            exc.message,
            exc.code,
        )
        return ReferralOutcome(success=False, code=exc.code, message=exc.message)
