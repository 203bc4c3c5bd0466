"""Unit tests for stuck referral reconciliation."""

from decimal import Decimal

import pytest
from services.ledger_service.models import (
    Referral,
    ReferralStatus,
    ReferralType,
    TransactionType,
)
from services.ledger_service.services import reconciliation
from services.ledger_service.services.ledger_ops import (
    append_ledger_entry,
    get_ledger_balance,
    list_ledger_entries,
)
from services.ledger_service.services.reconciliation import reconcile_stuck_referrals
from services.ledger_service.services.referral_processor import referral_credit_key
from tests.factories import ReferralFactory, UserFactory, minutes_before_now


async def _make_users(db, count):
    users = [UserFactory.create() for _ in range(count)]
    db.add_all(users)
    await db.commit()
    return users


async def _add_stuck_referral(db, referrer_id, referee_id=None, minutes=60, **overrides):
    defaults = {
        "status": ReferralStatus.COMPLETED,
        "reward_amount": Decimal("50"),
        "updated_at": minutes_before_now(minutes),
        "created_at": minutes_before_now(minutes),
    }
    defaults.update(overrides)
    referral = ReferralFactory.create(referrer_id, referee_id, **defaults)
    db.add(referral)
    await db.commit()
    return referral


async def _reload(db, referral_id):
    return await db.get(Referral, referral_id, populate_existing=True)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_stuck_campaign_referral_is_credited(db_session):
    (user,) = await _make_users(db_session, 1)
    referral = await _add_stuck_referral(db_session, user.id, referral_code="WINTER50")

    result = await reconcile_stuck_referrals(db_session)

    assert result["resumed"] == 1
    assert result["flagged"] == 0
    assert (await _reload(db_session, referral.id)).status == ReferralStatus.REWARDED
    entries = await list_ledger_entries(db_session, user.id)
    assert [e.transaction_type for e in entries] == [TransactionType.CAMPAIGN_BONUS]
    assert entries[0].amount == Decimal("50")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_half_credited_peer_referral_finishes_without_double_credit(db_session):
    referrer, referee = await _make_users(db_session, 2)
    referral = await _add_stuck_referral(
        db_session,
        referrer.id,
        referee.id,
        referral_type=ReferralType.USER_REFERRAL,
        reward_amount=Decimal("100"),
    )
    await append_ledger_entry(
        db_session,
        user_id=referrer.id,
        amount=Decimal("100"),
        transaction_type=TransactionType.REFERRAL_BONUS,
        idempotency_key=referral_credit_key(referral.id, "referrer"),
        description="Referral bonus",
    )

    result = await reconcile_stuck_referrals(db_session)

    assert result["resumed"] == 1
    assert await get_ledger_balance(db_session, referrer.id) == Decimal("100")
    assert await get_ledger_balance(db_session, referee.id) == Decimal("100")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_recent_and_zero_reward_referrals_are_left_alone(db_session):
    (user, other) = await _make_users(db_session, 2)
    recent = await _add_stuck_referral(db_session, user.id, minutes=1)
    no_reward = await _add_stuck_referral(db_session, other.id, reward_amount=Decimal("0"))

    result = await reconcile_stuck_referrals(db_session, older_than_minutes=15)

    assert result["resumed"] == 0
    assert (await _reload(db_session, recent.id)).status == ReferralStatus.COMPLETED
    assert (await _reload(db_session, no_reward.id)).status == ReferralStatus.COMPLETED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_failed_resume_is_flagged_for_review(db_session, monkeypatch):
    (user,) = await _make_users(db_session, 1)
    referral = await _add_stuck_referral(db_session, user.id)
    referral_id = referral.id

    async def _broken(*args, **kwargs):
        raise RuntimeError("ledger unavailable")

    monkeypatch.setattr(reconciliation, "credit_campaign_referral", _broken)

    result = await reconcile_stuck_referrals(db_session)

    assert result["flagged"] == 1
    assert result["results"][0]["error"] == "ledger unavailable"
    flagged = await _reload(db_session, referral_id)
    assert flagged.needs_review is True
    assert flagged.last_error == "ledger unavailable"
    assert flagged.status == ReferralStatus.COMPLETED

    # Flagged referrals wait for a human
    again = await reconcile_stuck_referrals(db_session)
    assert again["resumed"] == 0
    assert again["flagged"] == 0
