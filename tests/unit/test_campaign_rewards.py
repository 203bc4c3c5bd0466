"""Unit tests for campaign signup bonuses: trigger, batch and manual paths."""

from decimal import Decimal

import pytest
from services.ledger_service.models import (
    CampaignReferral,
    Referral,
    ReferralStatus,
    RewardType,
    TransactionType,
    UserRole,
    WalletTransaction,
)
from services.ledger_service.services.campaign_rewards import (
    distribute_referral_rewards,
    manually_reward_campaign_user,
    update_campaign_referral_stats,
)
from services.ledger_service.services.errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
)
from services.ledger_service.services.ledger_ops import (
    get_ledger_balance,
    list_ledger_entries,
)
from sqlalchemy import func, select
from tests.factories import CampaignFactory, ReferralFactory, UserFactory

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _make_campaign(db, **overrides):
    campaign = CampaignFactory.create(**overrides)
    db.add(campaign)
    await db.commit()
    return campaign


async def _make_signup(db, campaign_code, **user_overrides):
    """A user who signed up with a campaign code, with its pending referral."""
    user = UserFactory.create(campaign_referral_code=campaign_code, **user_overrides)
    db.add(user)
    await db.commit()
    referral = ReferralFactory.create(user.id, referral_code=campaign_code)
    db.add(referral)
    await db.commit()
    return user, referral


async def _reload_referral(db, referral_id):
    return await db.get(Referral, referral_id, populate_existing=True)


async def _reload_campaign(db, code):
    result = await db.execute(
        select(CampaignReferral)
        .where(CampaignReferral.code == code)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def _ledger_count(db):
    result = await db.execute(select(func.count()).select_from(WalletTransaction))
    return result.scalar()


# ---------------------------------------------------------------------------
# update_campaign_referral_stats (signup trigger)
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_signup_creates_pending_referral_and_counts(db_session):
    await _make_campaign(db_session, code="SUMMER26")
    user = UserFactory.create(
        campaign_referral_code="summer26", user_role=UserRole.COMPANION
    )
    db_session.add(user)
    await db_session.commit()

    result = await update_campaign_referral_stats(db_session, user.id)

    assert result == {"recorded": True, "campaign_code": "SUMMER26"}
    campaign = await _reload_campaign(db_session, "SUMMER26")
    assert campaign.total_signups == 1
    assert campaign.total_companions == 1
    assert campaign.total_seekers == 0

    referral = (await db_session.execute(select(Referral))).scalar_one()
    assert referral.status == ReferralStatus.PENDING
    assert referral.referrer_id == user.id
    assert referral.referee_id == user.id


@pytest.mark.asyncio
@pytest.mark.unit
async def test_repeated_signup_trigger_changes_nothing(db_session):
    await _make_campaign(db_session, code="SUMMER26")
    user = UserFactory.create(campaign_referral_code="SUMMER26")
    db_session.add(user)
    await db_session.commit()

    await update_campaign_referral_stats(db_session, user.id)
    again = await update_campaign_referral_stats(db_session, user.id)

    assert again == {"recorded": False, "reason": "already_recorded"}
    campaign = await _reload_campaign(db_session, "SUMMER26")
    assert campaign.total_signups == 1
    assert campaign.total_seekers == 1


@pytest.mark.asyncio
@pytest.mark.unit
@pytest.mark.parametrize(
    "user_code,is_active,reason",
    [
        (None, True, "no_campaign_code"),
        ("UNKNOWN1", True, "campaign_not_found"),
        ("SUMMER26", False, "campaign_inactive"),
    ],
)
async def test_signup_trigger_ignores_unusable_codes(db_session, user_code, is_active, reason):
    await _make_campaign(db_session, code="SUMMER26", is_active=is_active)
    user = UserFactory.create(campaign_referral_code=user_code)
    db_session.add(user)
    await db_session.commit()

    result = await update_campaign_referral_stats(db_session, user.id)

    assert result == {"recorded": False, "reason": reason}


# ---------------------------------------------------------------------------
# distribute_referral_rewards
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_distribution_credits_onboarded_user(db_session):
    await _make_campaign(db_session, code="WINTER50", referral_reward_amount=Decimal("50"))
    user, referral = await _make_signup(db_session, "WINTER50")

    result = await distribute_referral_rewards(db_session)

    assert result["rewarded_count"] == 1
    assert result["error_count"] == 0
    assert result["results"][0]["amount"] == Decimal("50")
    assert result["results"][0]["new_balance"] == Decimal("50")

    entries = await list_ledger_entries(db_session, user.id)
    assert len(entries) == 1
    assert entries[0].transaction_type == TransactionType.CAMPAIGN_BONUS
    assert entries[0].idempotency_key == f"referral:{referral.id}:reward"

    refreshed = await _reload_referral(db_session, referral.id)
    assert refreshed.status == ReferralStatus.REWARDED
    assert refreshed.reward_amount == Decimal("50")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_zero_reward_campaign_completes_without_ledger_entries(db_session):
    await _make_campaign(
        db_session,
        code="SUMMER26",
        referral_reward_amount=Decimal("0"),
        referral_reward_type=RewardType.NONE,
    )
    user, referral = await _make_signup(db_session, "SUMMER26")

    result = await distribute_referral_rewards(db_session)

    assert result["completed_count"] == 1
    assert result["rewarded_count"] == 0
    assert result["results"][0]["reason"] == "no_wallet_reward"
    assert await _ledger_count(db_session) == 0
    refreshed = await _reload_referral(db_session, referral.id)
    assert refreshed.status == ReferralStatus.COMPLETED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_incomplete_onboarding_is_skipped_and_left_pending(db_session):
    await _make_campaign(db_session, code="WINTER50")
    _, referral = await _make_signup(db_session, "WINTER50", onboarding_completed=False)

    result = await distribute_referral_rewards(db_session)

    assert result["skipped_count"] == 1
    assert result["results"][0]["reason"] == "onboarding_incomplete"
    refreshed = await _reload_referral(db_session, referral.id)
    assert refreshed.status == ReferralStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.unit
async def test_one_bad_referral_does_not_abort_the_batch(db_session):
    await _make_campaign(db_session, code="WINTER50", referral_reward_amount=Decimal("50"))
    await _make_campaign(db_session, code="PAUSED1", is_active=False)
    _, inactive = await _make_signup(db_session, "PAUSED1")
    _, missing = await _make_signup(db_session, "GONE42")
    good_user, _ = await _make_signup(db_session, "WINTER50")
    # Failed items roll the session back, which expires loaded objects
    inactive_id, missing_id, good_user_id = inactive.id, missing.id, good_user.id

    result = await distribute_referral_rewards(db_session)

    assert result["rewarded_count"] == 1
    assert result["error_count"] == 2
    codes = {e["referral_id"]: e["code"] for e in result["errors"]}
    assert codes[str(inactive_id)] == "campaign_inactive"
    assert codes[str(missing_id)] == "campaign_not_found"
    assert await get_ledger_balance(db_session, good_user_id) == Decimal("50")
    assert (await _reload_referral(db_session, inactive_id)).status == ReferralStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.unit
async def test_second_run_credits_nothing(db_session):
    await _make_campaign(db_session, code="WINTER50", referral_reward_amount=Decimal("50"))
    user, _ = await _make_signup(db_session, "WINTER50")

    await distribute_referral_rewards(db_session)
    second = await distribute_referral_rewards(db_session)

    assert second["rewarded_count"] == 0
    assert await get_ledger_balance(db_session, user.id) == Decimal("50")
    assert await _ledger_count(db_session) == 1


# ---------------------------------------------------------------------------
# manually_reward_campaign_user
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_manual_reward_bypasses_onboarding(db_session):
    await _make_campaign(db_session, code="WINTER50", referral_reward_amount=Decimal("50"))
    user, referral = await _make_signup(
        db_session, "WINTER50", onboarding_completed=False, email="late@test.com"
    )

    result = await manually_reward_campaign_user(
        db_session, email="LATE@test.com", campaign_code="winter50", admin_id="admin-1"
    )

    assert result["success"] is True
    assert result["referral_id"] == referral.id
    assert result["old_balance"] == Decimal("0")
    assert result["new_balance"] == Decimal("50")
    refreshed = await _reload_referral(db_session, referral.id)
    assert refreshed.status == ReferralStatus.REWARDED
    entries = await list_ledger_entries(db_session, user.id)
    assert entries[0].initiated_by == "admin-1"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_manual_reward_creates_missing_referral(db_session):
    await _make_campaign(db_session, code="WINTER50", referral_reward_amount=Decimal("50"))
    user = UserFactory.create(email="nocampaign@test.com")
    db_session.add(user)
    await db_session.commit()

    result = await manually_reward_campaign_user(
        db_session, email="nocampaign@test.com", campaign_code="WINTER50", admin_id="admin-1"
    )

    referral = await _reload_referral(db_session, result["referral_id"])
    assert referral.status == ReferralStatus.REWARDED
    assert referral.referral_code == "WINTER50"
    assert await get_ledger_balance(db_session, user.id) == Decimal("50")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_manual_reward_rejects_second_reward(db_session):
    await _make_campaign(db_session, code="WINTER50", referral_reward_amount=Decimal("50"))
    user, _ = await _make_signup(db_session, "WINTER50", email="twice@test.com")
    await manually_reward_campaign_user(
        db_session, email="twice@test.com", campaign_code="WINTER50", admin_id="admin-1"
    )

    with pytest.raises(ConflictError) as exc_info:
        await manually_reward_campaign_user(
            db_session, email="twice@test.com", campaign_code="WINTER50", admin_id="admin-1"
        )

    assert exc_info.value.code == "already_rewarded"
    assert exc_info.value.message == "User already received this reward"
    assert await get_ledger_balance(db_session, user.id) == Decimal("50")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_manual_reward_validates_campaign(db_session):
    await _make_campaign(
        db_session,
        code="DISCOUNT1",
        referral_reward_type=RewardType.DISCOUNT,
        referral_reward_amount=Decimal("10"),
    )
    await _make_campaign(db_session, code="WINTER50")
    await _make_signup(db_session, "WINTER50", email="member@test.com")

    with pytest.raises(NotFoundError):
        await manually_reward_campaign_user(
            db_session, email="member@test.com", campaign_code="NOPE", admin_id="a"
        )
    with pytest.raises(ValidationError) as no_reward:
        await manually_reward_campaign_user(
            db_session, email="member@test.com", campaign_code="DISCOUNT1", admin_id="a"
        )
    assert no_reward.value.code == "no_wallet_reward"

    await _make_campaign(db_session, code="OTHER20", referral_reward_amount=Decimal("20"))
    with pytest.raises(ConflictError) as mismatch:
        await manually_reward_campaign_user(
            db_session, email="member@test.com", campaign_code="OTHER20", admin_id="a"
        )
    assert mismatch.value.code == "campaign_mismatch"
