"""Ledger store: atomic, idempotent appends with per-user serialization."""

from decimal import Decimal
from typing import Awaitable, Callable, Iterable, Optional, Union

from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.ledger_service.models import (
    TransactionDirection,
    TransactionStatus,
    TransactionType,
    User,
    WalletTransaction,
)
from services.ledger_service.services.errors import (
    LedgerSystemError,
    NotFoundError,
    ValidationError,
)
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

logger = get_logger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")

TRANSACTION_DIRECTIONS = {
    TransactionType.REFERRAL_BONUS: TransactionDirection.CREDIT,
    TransactionType.CAMPAIGN_BONUS: TransactionDirection.CREDIT,
    TransactionType.REFUND: TransactionDirection.CREDIT,
    TransactionType.PAYOUT: TransactionDirection.DEBIT,
}


def to_money(value: Union[Decimal, int, float, str, None]) -> Decimal:
    """Coerce a numeric value (or NULL aggregate) to a 2dp Decimal."""
    if value is None:
        return ZERO.quantize(CENT)
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


async def get_user(db: AsyncSession, user_id: str) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found", code="user_not_found")
    return user


async def get_user_by_email(db: AsyncSession, email: str) -> User:
    result = await db.execute(
        select(User).where(func.lower(User.email) == email.strip().lower())
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError(f"No user with email {email}", code="user_not_found")
    return user


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def get_transaction_by_key(
    db: AsyncSession, idempotency_key: str
) -> Optional[WalletTransaction]:
    result = await db.execute(
        select(WalletTransaction).where(
            WalletTransaction.idempotency_key == idempotency_key
        )
    )
    return result.scalar_one_or_none()


async def get_ledger_tail(
    db: AsyncSession, user_id: str
) -> Optional[WalletTransaction]:
    """Return the latest entry in the user's chain, if any."""
    result = await db.execute(
        select(WalletTransaction)
        .where(WalletTransaction.user_id == user_id)
        .order_by(WalletTransaction.sequence.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_ledger_balance(db: AsyncSession, user_id: str) -> Decimal:
    """Authoritative balance: the tail entry's ``balance_after``."""
    tail = await get_ledger_tail(db, user_id)
    return to_money(tail.balance_after if tail else None)


async def list_ledger_entries(
    db: AsyncSession,
    user_id: str,
    *,
    transaction_type: Optional[TransactionType] = None,
    skip: int = 0,
    limit: Optional[int] = None,
) -> list[WalletTransaction]:
    query = select(WalletTransaction).where(WalletTransaction.user_id == user_id)
    if transaction_type:
        query = query.where(WalletTransaction.transaction_type == transaction_type)
    query = query.order_by(WalletTransaction.sequence.asc()).offset(skip)
    if limit is not None:
        query = query.limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def count_ledger_entries(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(WalletTransaction)
        .where(WalletTransaction.user_id == user_id)
    )
    return result.scalar() or 0


# ---------------------------------------------------------------------------
# Append (atomic)
# ---------------------------------------------------------------------------


async def append_ledger_entry(
    db: AsyncSession,
    *,
    user_id: str,
    amount: Union[Decimal, int],
    transaction_type: TransactionType,
    idempotency_key: str,
    description: str,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
    initiated_by: Optional[str] = "system",
    metadata: Optional[dict] = None,
    attach: Iterable[object] = (),
    before_commit: Optional[Callable[[AsyncSession], Awaitable[None]]] = None,
) -> WalletTransaction:
    """Append one entry to a user's ledger and update the cached balance.

    1. Idempotency check: return the existing entry if the key was used
    2. SELECT FOR UPDATE on the user row, read the ledger tail
    3. Compare-and-swap ``ledger_version`` while writing the cached balance
    4. Insert the entry at ``tail.sequence + 1`` (unique per user)
    5. Commit; on a lost race roll back and retry from 1

    The session is committed. Objects in ``attach`` are written in the same
    transaction as the entry (e.g. outbox notifications, a new payout row),
    and ``before_commit`` runs inside that transaction on every attempt; if it
    raises, the transaction is rolled back and the error propagates. Other
    pending changes in the session are lost if a retry rolls back.
    """
    amount = to_money(amount)
    if amount <= ZERO:
        raise ValidationError(
            f"Ledger amount must be positive, got {amount}", code="invalid_amount"
        )
    direction = TRANSACTION_DIRECTIONS[transaction_type]
    attach = list(attach)
    max_attempts = get_settings().LEDGER_APPEND_MAX_ATTEMPTS

    for attempt in range(1, max_attempts + 1):
        existing = await get_transaction_by_key(db, idempotency_key)
        if existing:
            logger.info(
                "Idempotent replay for key=%s -> txn=%s", idempotency_key, existing.id
            )
            return existing

        result = await db.execute(
            select(User)
            .where(User.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError(f"User {user_id} not found", code="user_not_found")

        version = user.ledger_version
        tail = await get_ledger_tail(db, user_id)
        sequence = (tail.sequence if tail else 0) + 1
        balance_before = to_money(tail.balance_after if tail else None)
        if direction == TransactionDirection.CREDIT:
            balance_after = balance_before + amount
        else:
            balance_after = balance_before - amount

        cas = await db.execute(
            update(User)
            .where(User.id == user_id, User.ledger_version == version)
            .values(
                ledger_version=sequence,
                wallet_balance=balance_after,
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        if cas.rowcount != 1:
            await db.rollback()
            logger.warning(
                "Ledger version moved for user %s (attempt %d/%d), retrying",
                user_id,
                attempt,
                max_attempts,
            )
            continue

        txn = WalletTransaction(
            user_id=user_id,
            sequence=sequence,
            idempotency_key=idempotency_key,
            transaction_type=transaction_type,
            direction=direction,
            amount=amount,
            balance_before=balance_before,
            balance_after=balance_after,
            status=TransactionStatus.COMPLETED,
            description=description,
            reference_type=reference_type,
            reference_id=reference_id,
            initiated_by=initiated_by,
            txn_metadata=metadata,
        )
        db.add(txn)
        db.add_all(attach)
        if before_commit is not None:
            try:
                await before_commit(db)
            except Exception:
                await db.rollback()
                raise

        try:
            await db.commit()
        except IntegrityError as exc:
            await db.rollback()
            logger.warning(
                "Ledger append conflict for user %s key=%s (attempt %d/%d): %s",
                user_id,
                idempotency_key,
                attempt,
                max_attempts,
                exc.orig,
            )
            continue

        set_committed_value(user, "ledger_version", sequence)
        set_committed_value(user, "wallet_balance", balance_after)
        logger.info(
            "Ledger %s %s user=%s amount=%s key=%s balance %s -> %s",
            direction.value,
            transaction_type.value,
            user_id,
            amount,
            idempotency_key,
            balance_before,
            balance_after,
        )
        return txn

    raise LedgerSystemError(
        f"Could not append ledger entry for user {user_id} after {max_attempts} attempts",
        code="ledger_contention",
    )


# ---------------------------------------------------------------------------
# Chain verification
# ---------------------------------------------------------------------------


async def verify_ledger_chain(db: AsyncSession, user_id: str) -> dict:
    """Replay a user's chain and report breaks and cache drift."""
    user = await get_user(db, user_id)
    entries = await list_ledger_entries(db, user_id)

    breaks: list[dict] = []
    running = to_money(None)
    expected_sequence = 1
    for entry in entries:
        if entry.sequence != expected_sequence:
            breaks.append(
                {
                    "sequence": entry.sequence,
                    "issue": "sequence_gap",
                    "expected": str(expected_sequence),
                    "actual": str(entry.sequence),
                }
            )
        if to_money(entry.balance_before) != running:
            breaks.append(
                {
                    "sequence": entry.sequence,
                    "issue": "balance_before_mismatch",
                    "expected": str(running),
                    "actual": str(to_money(entry.balance_before)),
                }
            )
        computed = to_money(entry.balance_before) + entry.signed_amount
        if computed != to_money(entry.balance_after):
            breaks.append(
                {
                    "sequence": entry.sequence,
                    "issue": "arithmetic_mismatch",
                    "expected": str(computed),
                    "actual": str(to_money(entry.balance_after)),
                }
            )
        running = to_money(entry.balance_after)
        expected_sequence = entry.sequence + 1

    cached = to_money(user.wallet_balance)
    return {
        "user_id": user_id,
        "ok": not breaks,
        "entries": len(entries),
        "final_balance": running,
        "cached_balance": cached,
        "cache_in_sync": cached == running,
        "breaks": breaks,
    }
