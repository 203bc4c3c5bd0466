"""Unit tests for peer referral processing."""

import asyncio
from decimal import Decimal

import pytest
from services.ledger_service.models import (
    CampaignReferral,
    Notification,
    Referral,
    ReferralStatus,
    ReferralType,
    TransactionType,
    WalletTransaction,
)
from services.ledger_service.services.campaign_rewards import manually_reward_campaign_user
from services.ledger_service.services.ledger_ops import (
    append_ledger_entry,
    get_ledger_balance,
    list_ledger_entries,
)
from services.ledger_service.services.referral_processor import (
    credit_peer_referral,
    process_referral,
    referral_credit_key,
)
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from tests.factories import CampaignFactory, ReferralFactory, UserFactory

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _make_pair(db, code="ABC123", **referee_overrides):
    referrer = UserFactory.create(my_referral_code=code)
    referee = UserFactory.create(**referee_overrides)
    db.add_all([referrer, referee])
    await db.commit()
    return referrer, referee


async def _count(db, model, *criteria):
    result = await db.execute(select(func.count()).select_from(model).where(*criteria))
    return result.scalar()


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_referral_credits_both_parties_once(db_session):
    referrer, referee = await _make_pair(db_session)

    outcome = await process_referral(db_session, actor_id=referee.id, code="abc123")

    assert outcome.success is True
    assert outcome.code == "referral_applied"
    assert outcome.reward_amount == Decimal("100")

    for user_id in (referrer.id, referee.id):
        entries = await list_ledger_entries(db_session, user_id)
        assert len(entries) == 1
        assert entries[0].transaction_type == TransactionType.REFERRAL_BONUS
        assert entries[0].amount == Decimal("100")
        assert await get_ledger_balance(db_session, user_id) == Decimal("100")

    referral = await db_session.get(Referral, outcome.referral_id, populate_existing=True)
    assert referral.status == ReferralStatus.REWARDED
    assert referral.rewarded_at is not None
    assert await _count(db_session, Notification) == 2


@pytest.mark.asyncio
@pytest.mark.unit
async def test_system_campaign_is_created_with_default_reward(db_session):
    _, referee = await _make_pair(db_session)

    await process_referral(db_session, actor_id=referee.id, code="ABC123")

    result = await db_session.execute(
        select(CampaignReferral).where(CampaignReferral.code == "SYSTEM")
    )
    system = result.scalar_one()
    assert system.referral_reward_amount == Decimal("100")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_configured_system_reward_is_used(db_session):
    db_session.add(CampaignFactory.create(code="SYSTEM", referral_reward_amount=Decimal("40")))
    referrer, referee = await _make_pair(db_session)

    outcome = await process_referral(db_session, actor_id=referee.id, code="ABC123")

    assert outcome.reward_amount == Decimal("40")
    assert await get_ledger_balance(db_session, referrer.id) == Decimal("40")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_retry_returns_already_processed_without_new_entries(db_session):
    referrer, referee = await _make_pair(db_session)
    await process_referral(db_session, actor_id=referee.id, code="ABC123")

    retry = await process_referral(db_session, actor_id=referee.id, code="ABC123")

    assert retry.success is True
    assert retry.code == "already_processed"
    assert retry.reward_amount == Decimal("100")
    assert await _count(db_session, WalletTransaction) == 2
    assert await _count(db_session, Referral) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_blank_code_is_a_no_op(db_session):
    _, referee = await _make_pair(db_session)

    outcome = await process_referral(db_session, actor_id=referee.id, code="   ")

    assert outcome.success is True
    assert outcome.code == "no_code"
    assert await _count(db_session, Referral) == 0


# ---------------------------------------------------------------------------
# Rejections
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_unknown_code_rejected(db_session):
    _, referee = await _make_pair(db_session)

    outcome = await process_referral(db_session, actor_id=referee.id, code="NOPE99")

    assert outcome.success is False
    assert outcome.code == "invalid_code"
    assert outcome.message == "Invalid referral code"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_own_code_rejected(db_session):
    referrer, _ = await _make_pair(db_session)

    outcome = await process_referral(db_session, actor_id=referrer.id, code="ABC123")

    assert outcome.success is False
    assert outcome.code == "self_referral"
    assert outcome.message == "Cannot use your own referral code"
    assert await _count(db_session, WalletTransaction) == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_campaign_signup_cannot_also_use_peer_code(db_session):
    _, referee = await _make_pair(db_session, campaign_referral_code="SUMMER26")

    outcome = await process_referral(db_session, actor_id=referee.id, code="ABC123")

    assert outcome.success is False
    assert outcome.code == "campaign_referral_exists"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_second_code_rejected_after_first_referral(db_session):
    _, referee = await _make_pair(db_session)
    other = UserFactory.create(my_referral_code="XYZ789")
    db_session.add(other)
    await db_session.commit()
    await process_referral(db_session, actor_id=referee.id, code="ABC123")

    outcome = await process_referral(db_session, actor_id=referee.id, code="XYZ789")

    assert outcome.success is False
    assert outcome.code == "already_used"
    assert await get_ledger_balance(db_session, other.id) == Decimal("0")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_manually_rewarded_campaign_user_cannot_use_peer_code(db_session):
    """A campaign referral created by an admin blocks peer codes too."""
    referrer, referee = await _make_pair(db_session)
    db_session.add(
        CampaignFactory.create(code="SUMMER26", referral_reward_amount=Decimal("50"))
    )
    await db_session.commit()
    referrer_id, referee_id = referrer.id, referee.id
    await manually_reward_campaign_user(
        db_session, email=referee.email, campaign_code="SUMMER26", admin_id="admin-1"
    )

    outcome = await process_referral(db_session, actor_id=referee_id, code="ABC123")

    assert outcome.success is False
    assert outcome.code == "already_used"
    assert await _count(
        db_session,
        Referral,
        Referral.referee_id == referee_id,
        Referral.referral_type == ReferralType.USER_REFERRAL,
    ) == 0
    assert await get_ledger_balance(db_session, referrer_id) == Decimal("0")
    assert await get_ledger_balance(db_session, referee_id) == Decimal("50")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_referral_codes_are_unique_ignoring_case(db_session):
    db_session.add(UserFactory.create(my_referral_code="abc1"))
    await db_session.commit()

    db_session.add(UserFactory.create(my_referral_code="ABC1"))
    with pytest.raises(IntegrityError):
        await db_session.commit()


# ---------------------------------------------------------------------------
# Resuming
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_credit_resumes_after_partial_failure(db_session):
    """A referral left completed with only the referrer credited finishes cleanly."""
    referrer, referee = await _make_pair(db_session)
    referral = ReferralFactory.create(
        referrer.id,
        referee.id,
        referral_code="ABC123",
        referral_type=ReferralType.USER_REFERRAL,
        status=ReferralStatus.COMPLETED,
        reward_amount=Decimal("100"),
    )
    db_session.add(referral)
    await db_session.commit()

    await append_ledger_entry(
        db_session,
        user_id=referrer.id,
        amount=Decimal("100"),
        transaction_type=TransactionType.REFERRAL_BONUS,
        idempotency_key=referral_credit_key(referral.id, "referrer"),
        description="Referral bonus",
    )

    resumed = await credit_peer_referral(db_session, referral.id)

    assert resumed.status == ReferralStatus.REWARDED
    assert await get_ledger_balance(db_session, referrer.id) == Decimal("100")
    assert await get_ledger_balance(db_session, referee.id) == Decimal("100")
    assert await _count(db_session, WalletTransaction) == 2


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_concurrent_applications_create_one_referral(session_factory):
    async with session_factory() as db:
        referrer, referee = await _make_pair(db)
        db.add(CampaignFactory.create(code="SYSTEM", referral_reward_amount=Decimal("100")))
        await db.commit()
        referrer_id, referee_id = referrer.id, referee.id

    async def _apply():
        async with session_factory() as db:
            return await process_referral(db, actor_id=referee_id, code="ABC123")

    first, second = await asyncio.gather(_apply(), _apply())

    assert first.success is True
    assert second.success is True
    assert sorted([first.code, second.code]) == ["already_processed", "referral_applied"]
    assert first.referral_id == second.referral_id

    async with session_factory() as db:
        assert await _count(
            db,
            Referral,
            Referral.referee_id == referee_id,
            Referral.referral_type == ReferralType.USER_REFERRAL,
        ) == 1
        assert await _count(db, WalletTransaction) == 2
        assert await get_ledger_balance(db, referrer_id) == Decimal("100")
        assert await get_ledger_balance(db, referee_id) == Decimal("100")
        referral = await db.get(Referral, first.referral_id)
        assert referral.status == ReferralStatus.REWARDED
