"""Unit tests for the UTC helpers used for stale-claim and stuck-referral cutoffs."""

from datetime import timedelta, timezone

from libs.common.datetime_utils import minutes_ago, utc_now


class TestUtcHelpers:
    def test_utc_now_is_timezone_aware(self):
        now = utc_now()
        assert now.tzinfo is not None
        assert now.utcoffset() == timedelta(0)
        assert now.tzinfo == timezone.utc

    def test_minutes_ago_is_in_the_past(self):
        before = utc_now()
        cutoff = minutes_ago(30)
        after = utc_now()

        assert before - timedelta(minutes=30) <= cutoff <= after - timedelta(minutes=30)

    def test_minutes_ago_zero_is_now(self):
        cutoff = minutes_ago(0)
        # Exactly now should not be "greater than now"
        assert not (cutoff > utc_now())
