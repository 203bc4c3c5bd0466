"""Payout validation and resolution.

Every payout is claimed (``pending -> processing``) with a conditional update
before it is validated, so concurrent workers never resolve the same payout.
Every terminal transition is conditional on the status the worker expects.
"""

import uuid
from decimal import Decimal
from typing import Optional

from libs.common.config import get_settings
from libs.common.datetime_utils import minutes_ago, utc_now
from libs.common.logging import get_logger
from services.ledger_service.models import (
    NotificationType,
    PaymentMethod,
    Payout,
    PayoutStatus,
    TransactionType,
    UserRole,
)
from services.ledger_service.services.earnings import compute_available_balance
from services.ledger_service.services.errors import (
    ConflictError,
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
)
from services.ledger_service.services.ledger_ops import (
    ZERO,
    append_ledger_entry,
    get_transaction_by_key,
    get_user,
    to_money,
)
from services.ledger_service.services.notifications import (
    build_notification,
    enqueue_notification,
)
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

SYSTEM_ACTOR = "system_auto"
AUTO_APPROVAL_NOTE = "Auto-approved by system after validation"
DUPLICATE_STATUSES = (PayoutStatus.PENDING, PayoutStatus.APPROVED, PayoutStatus.PROCESSING)
BANK_FIELDS = ("bank_name", "account_number", "ifsc_code", "account_holder_name")


def payout_reserve_key(payout_id: uuid.UUID) -> str:
    return f"payout:{payout_id}:reserve"


def payout_refund_key(payout_id: uuid.UUID) -> str:
    return f"payout:{payout_id}:refund"


def validate_payment_details(
    payment_method: PaymentMethod, payment_details: Optional[dict]
) -> Optional[str]:
    """Return an error message, or None when the details are usable."""
    details = payment_details or {}
    if payment_method == PaymentMethod.UPI:
        upi_id = details.get("upi_id")
        if not isinstance(upi_id, str) or not upi_id.strip():
            return "Invalid UPI ID"
    elif payment_method == PaymentMethod.BANK_TRANSFER:
        for field in BANK_FIELDS:
            value = details.get(field)
            if value is None or not str(value).strip():
                return "Incomplete bank details"
    return None


def _transition(payout_id: uuid.UUID, from_statuses: tuple[PayoutStatus, ...], **values):
    return (
        update(Payout)
        .where(Payout.id == payout_id, Payout.status.in_(from_statuses))
        .values(updated_at=utc_now(), **values)
        .execution_options(synchronize_session=False)
    )


async def _reload(db: AsyncSession, payout_id: uuid.UUID) -> Payout:
    payout = await db.get(Payout, payout_id, populate_existing=True)
    if payout is None:
        raise NotFoundError(f"Payout {payout_id} not found", code="payout_not_found")
    return payout


# ---------------------------------------------------------------------------
# Request (companion)
# ---------------------------------------------------------------------------


async def request_payout(
    db: AsyncSession,
    *,
    companion_id: str,
    requested_amount: Decimal,
    payment_method: PaymentMethod,
    payment_details: Optional[dict],
) -> Payout:
    """Create a pending payout and reserve the requested amount on the ledger.

    Validation happens later in ``process_payouts``; this only checks input.
    """
    requested_amount = to_money(requested_amount)
    if requested_amount <= ZERO:
        raise ValidationError("Payout amount must be positive", code="invalid_amount")

    companion = await get_user(db, companion_id)
    if companion.user_role != UserRole.COMPANION:
        raise ValidationError("Only companions can request payouts", code="not_a_companion")

    fee_percent = Decimal(str(get_settings().PAYOUT_PLATFORM_FEE_PERCENT))
    fee = to_money(requested_amount * fee_percent / Decimal("100"))

    payout = Payout(
        id=uuid.uuid4(),
        companion_id=companion_id,
        requested_amount=requested_amount,
        amount=requested_amount - fee,
        status=PayoutStatus.PENDING,
        payment_method=payment_method,
        payment_details=payment_details or {},
    )
    await append_ledger_entry(
        db,
        user_id=companion_id,
        amount=requested_amount,
        transaction_type=TransactionType.PAYOUT,
        idempotency_key=payout_reserve_key(payout.id),
        description=f"Payout request via {payment_method.value}",
        reference_type="Payout",
        reference_id=str(payout.id),
        initiated_by=companion_id,
        attach=[payout],
    )
    logger.info(
        "Payout %s requested by %s: requested=%s net=%s",
        payout.id,
        companion_id,
        requested_amount,
        payout.amount,
    )
    return await _reload(db, payout.id)


# ---------------------------------------------------------------------------
# Terminal transitions
# ---------------------------------------------------------------------------


async def _reject(
    db: AsyncSession,
    payout_id: uuid.UUID,
    *,
    from_statuses: tuple[PayoutStatus, ...],
    reason: str,
    code: str,
    actor: str,
    refund: bool,
    notes: Optional[str] = None,
) -> bool:
    """Reject a payout, optionally refunding the gross amount atomically."""
    payout = await _reload(db, payout_id)
    companion_id = payout.companion_id
    gross = payout.gross_amount
    net = payout.amount

    statement = _transition(
        payout_id,
        from_statuses,
        status=PayoutStatus.REJECTED,
        rejection_reason=reason,
        rejection_code=code,
        admin_notes=notes,
        processed_date=utc_now(),
        processed_by=actor,
    )
    notification = build_notification(
        user_id=companion_id,
        notification_type=NotificationType.PAYOUT_REJECTED,
        title="Payout request rejected",
        message=(
            f"Your payout request of ₹{net} was rejected: {reason}."
            + (" The amount was refunded to your wallet." if refund else "")
        ),
        amount=net,
    )

    if not refund:
        result = await db.execute(statement)
        if result.rowcount != 1:
            await db.rollback()
            return False
        db.add(notification)
        await db.commit()
        return True

    async def _apply_rejection(session: AsyncSession) -> None:
        result = await session.execute(statement)
        if result.rowcount != 1:
            raise ConflictError(
                f"Payout {payout_id} was resolved concurrently",
                code="payout_already_resolved",
            )

    await append_ledger_entry(
        db,
        user_id=companion_id,
        amount=gross,
        transaction_type=TransactionType.REFUND,
        idempotency_key=payout_refund_key(payout_id),
        description=f"Payout rejection refund: {reason}",
        reference_type="Payout",
        reference_id=str(payout_id),
        initiated_by=actor,
        attach=[notification],
        before_commit=_apply_rejection,
    )
    # A replayed refund skips the hook; the conditional update is a no-op otherwise
    await db.execute(statement)
    await db.commit()
    payout = await _reload(db, payout_id)
    return payout.status == PayoutStatus.REJECTED


async def _approve(db: AsyncSession, payout_id: uuid.UUID) -> bool:
    payout = await _reload(db, payout_id)
    result = await db.execute(
        _transition(
            payout_id,
            (PayoutStatus.PROCESSING,),
            status=PayoutStatus.APPROVED,
            admin_notes=AUTO_APPROVAL_NOTE,
            processed_date=utc_now(),
            processed_by=SYSTEM_ACTOR,
        )
    )
    if result.rowcount != 1:
        await db.rollback()
        return False
    enqueue_notification(
        db,
        user_id=payout.companion_id,
        notification_type=NotificationType.PAYOUT_APPROVED,
        title="Payout approved",
        message=(
            f"Your payout request of ₹{payout.amount} has been approved "
            "and will be processed shortly."
        ),
        amount=payout.amount,
    )
    await db.commit()
    return True


# ---------------------------------------------------------------------------
# Batch resolver
# ---------------------------------------------------------------------------


async def _claim(db: AsyncSession, payout_id: uuid.UUID, worker_id: str) -> bool:
    result = await db.execute(
        _transition(
            payout_id,
            (PayoutStatus.PENDING,),
            status=PayoutStatus.PROCESSING,
            claimed_at=utc_now(),
            claimed_by=worker_id,
        )
    )
    await db.commit()
    return result.rowcount == 1


async def _has_recent_duplicate(db: AsyncSession, payout: Payout) -> bool:
    window = get_settings().PAYOUT_DUPLICATE_WINDOW_MINUTES
    result = await db.execute(
        select(Payout.id)
        .where(
            Payout.companion_id == payout.companion_id,
            Payout.id != payout.id,
            Payout.amount == payout.amount,
            Payout.status.in_(DUPLICATE_STATUSES),
            Payout.created_at >= minutes_ago(window),
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def _ensure_funds(db: AsyncSession, payout: Payout) -> None:
    available = await compute_available_balance(
        db, payout.companion_id, exclude_payout_id=payout.id
    )
    gross = payout.gross_amount
    if gross > available:
        raise InsufficientFundsError(
            f"Insufficient balance: available ₹{available:.2f}, requested ₹{gross:.2f}"
        )


async def _is_reserved(db: AsyncSession, payout_id: uuid.UUID) -> bool:
    return await get_transaction_by_key(db, payout_reserve_key(payout_id)) is not None


async def _resolve_claimed(db: AsyncSession, payout_id: uuid.UUID) -> dict:
    """Validate a claimed payout in order, stopping at the first failure."""
    payout = await _reload(db, payout_id)

    try:
        await _ensure_funds(db, payout)
    except InsufficientFundsError as exc:
        await _reject(
            db,
            payout_id,
            from_statuses=(PayoutStatus.PROCESSING,),
            reason=exc.message,
            code=exc.code,
            actor=SYSTEM_ACTOR,
            refund=True,
        )
        return {"id": str(payout_id), "status": "rejected", "reason": exc.code, "message": exc.message}

    payout = await _reload(db, payout_id)
    reserved = await _is_reserved(db, payout_id)

    if await _has_recent_duplicate(db, payout):
        reason = "Duplicate payout request detected"
        await _reject(
            db,
            payout_id,
            from_statuses=(PayoutStatus.PROCESSING,),
            reason=reason,
            code="duplicate",
            actor=SYSTEM_ACTOR,
            refund=reserved,
        )
        return {"id": str(payout_id), "status": "rejected", "reason": "duplicate", "message": reason}

    details_error = validate_payment_details(payout.payment_method, payout.payment_details)
    if details_error:
        await _reject(
            db,
            payout_id,
            from_statuses=(PayoutStatus.PROCESSING,),
            reason=details_error,
            code="invalid_details",
            actor=SYSTEM_ACTOR,
            refund=reserved,
        )
        return {"id": str(payout_id), "status": "rejected", "reason": "invalid_details", "message": details_error}

    amount = payout.amount
    if not await _approve(db, payout_id):
        return {"id": str(payout_id), "status": "skipped", "reason": "already_resolved"}
    return {"id": str(payout_id), "status": "approved", "amount": amount}


async def _fail_claimed(db: AsyncSession, payout_id: uuid.UUID, exc: Exception) -> dict:
    """Terminate a claimed payout as rejected after an unexpected error.

    The reservation is refunded when there is one. If the refund itself
    fails the payout is still rejected without it; if that fails too it is
    left in ``processing`` for ``release_stale_payout_claims``.
    """
    reason = f"System error: {exc}"[:1000]
    try:
        await _reject(
            db,
            payout_id,
            from_statuses=(PayoutStatus.PROCESSING,),
            reason=reason,
            code="system_error",
            actor=SYSTEM_ACTOR,
            refund=await _is_reserved(db, payout_id),
        )
    except Exception:
        await db.rollback()
        logger.exception("Could not refund payout %s, rejecting without refund", payout_id)
        try:
            await db.execute(
                _transition(
                    payout_id,
                    (PayoutStatus.PROCESSING,),
                    status=PayoutStatus.REJECTED,
                    rejection_reason=reason,
                    rejection_code="system_error",
                    processed_date=utc_now(),
                    processed_by=SYSTEM_ACTOR,
                )
            )
            await db.commit()
        except Exception:
            await db.rollback()
            logger.exception("Could not mark payout %s as rejected", payout_id)
    return {"id": str(payout_id), "status": "error", "reason": "system_error", "message": reason}


async def process_payouts(
    db: AsyncSession,
    *,
    worker_id: str = SYSTEM_ACTOR,
    limit: Optional[int] = None,
) -> dict:
    """Resolve pending payouts, newest first.

    At most one payout per companion is approved per run; later payouts for
    an approved companion stay pending for the next run.
    """
    limit = limit or get_settings().PAYOUT_BATCH_SIZE
    result = await db.execute(
        select(Payout.id, Payout.companion_id)
        .where(Payout.status == PayoutStatus.PENDING)
        .order_by(Payout.created_at.desc())
        .limit(limit)
    )
    candidates = list(result.all())

    approved_companions: set[str] = set()
    results: list[dict] = []
    skipped = 0

    for payout_id, companion_id in candidates:
        if companion_id in approved_companions:
            skipped += 1
            continue
        if not await _claim(db, payout_id, worker_id):
            skipped += 1
            continue

        try:
            outcome = await _resolve_claimed(db, payout_id)
        except Exception as exc:
            await db.rollback()
            logger.exception("Payout %s failed during processing", payout_id)
            outcome = await _fail_claimed(db, payout_id, exc)

        if outcome["status"] == "approved":
            approved_companions.add(companion_id)
        elif outcome["status"] == "skipped":
            skipped += 1
            continue
        results.append(outcome)

    approved = sum(1 for r in results if r["status"] == "approved")
    rejected = len(results) - approved
    logger.info(
        "Payout processing completed: %d approved, %d rejected/errored, %d skipped",
        approved,
        rejected,
        skipped,
    )
    return {
        "success": True,
        "message": "Payout processing completed",
        "processed": len(results),
        "approved": approved,
        "rejected": rejected,
        "skipped": skipped,
        "results": results,
    }


# ---------------------------------------------------------------------------
# Admin actions and maintenance
# ---------------------------------------------------------------------------


async def complete_payout(
    db: AsyncSession, payout_id: uuid.UUID, *, admin_id: str, notes: Optional[str] = None
) -> Payout:
    """Mark an approved payout as paid out."""
    payout = await _reload(db, payout_id)
    values = {
        "status": PayoutStatus.COMPLETED,
        "completed_at": utc_now(),
        "processed_by": admin_id,
    }
    if notes:
        values["admin_notes"] = notes
    result = await db.execute(_transition(payout_id, (PayoutStatus.APPROVED,), **values))
    if result.rowcount != 1:
        await db.rollback()
        raise ConflictError(
            f"Payout {payout_id} is {payout.status.value}, expected approved",
            code="invalid_payout_state",
        )
    enqueue_notification(
        db,
        user_id=payout.companion_id,
        notification_type=NotificationType.PAYOUT_COMPLETED,
        title="Payout sent",
        message=f"Your payout of ₹{payout.amount} has been sent.",
        amount=payout.amount,
    )
    await db.commit()
    logger.info("Payout %s completed by %s", payout_id, admin_id)
    return await _reload(db, payout_id)


async def reject_payout(
    db: AsyncSession,
    payout_id: uuid.UUID,
    *,
    admin_id: str,
    reason: str,
    notes: Optional[str] = None,
) -> Payout:
    """Admin rejection; reverses the ledger reservation when there is one."""
    if not reason or not reason.strip():
        raise ValidationError("Rejection reason is required", code="reason_required")
    payout = await _reload(db, payout_id)
    if payout.status not in (PayoutStatus.PENDING, PayoutStatus.APPROVED):
        raise ConflictError(
            f"Payout {payout_id} is {payout.status.value} and cannot be rejected",
            code="invalid_payout_state",
        )
    reserved = await _is_reserved(db, payout_id)
    rejected = await _reject(
        db,
        payout_id,
        from_statuses=(PayoutStatus.PENDING, PayoutStatus.APPROVED),
        reason=reason.strip(),
        code="admin_rejected",
        actor=admin_id,
        refund=reserved,
        notes=notes,
    )
    if not rejected:
        raise ConflictError(
            f"Payout {payout_id} was resolved concurrently", code="payout_already_resolved"
        )
    logger.info("Payout %s rejected by %s: %s", payout_id, admin_id, reason)
    return await _reload(db, payout_id)


async def release_stale_payout_claims(
    db: AsyncSession, *, older_than_minutes: Optional[int] = None
) -> int:
    """Return payouts stuck in an unfinished claim to ``pending``."""
    if older_than_minutes is None:
        older_than_minutes = get_settings().PAYOUT_CLAIM_TIMEOUT_MINUTES
    result = await db.execute(
        update(Payout)
        .where(
            Payout.status == PayoutStatus.PROCESSING,
            Payout.processed_date.is_(None),
            Payout.claimed_at < minutes_ago(older_than_minutes),
        )
        .values(status=PayoutStatus.PENDING, claimed_at=None, claimed_by=None)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    if result.rowcount:
        logger.warning("Released %d stale payout claims", result.rowcount)
    return result.rowcount


async def list_payouts_for_user(db: AsyncSession, companion_id: str) -> list[Payout]:
    result = await db.execute(
        select(Payout)
        .where(Payout.companion_id == companion_id)
        .order_by(Payout.created_at.desc())
    )
    return list(result.scalars().all())
