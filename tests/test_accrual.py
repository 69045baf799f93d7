"""
tests/test_accrual.py — Unit Tests for the Accrual Engine
==========================================================

Pure calculation tests (no I/O, no database).
"""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta
from types import SimpleNamespace

import pytest

from conftest import T0
from userservice.engine.accrual import UserAggregate, accrue, payout_rate
from userservice.engine.events import ChatEvent

WINDOW = timedelta(seconds=300)
RATE = 60.0  # per minute → 1 per second


@pytest.fixture
def event():
    return ChatEvent(channel_id="abc", display_name="Alice")


@pytest.fixture
def seen_user():
    """A viewer first seen at T0 with nothing accrued yet."""
    return UserAggregate.new("abc", "Alice", T0)


def _accrue(prior, event, now, groups=()):
    return accrue(prior, event, now, active_window=WINDOW, base_rate=RATE, groups=groups)


# ---------------------------------------------------------------------------
# First sighting
# ---------------------------------------------------------------------------
class TestNewViewer:
    def test_first_event_creates_empty_aggregate(self, event):
        result = _accrue(None, event, T0)
        user = result.user

        assert result.created
        assert user.channel_id == "abc"
        assert user.display_name == "Alice"
        assert user.watch_time == timedelta(0)
        assert user.balance == 0.0
        assert user.first_seen_at == T0
        assert user.last_seen_at == T0

    def test_group_bonus_ignored_for_new_viewer(self, event):
        groups = [SimpleNamespace(bonus_payout=100.0)]
        result = _accrue(None, event, T0, groups)
        assert result.user.balance == 0.0


# ---------------------------------------------------------------------------
# Continuous watching
# ---------------------------------------------------------------------------
class TestWithinWindow:
    def test_second_message_after_30s(self, seen_user, event):
        result = _accrue(seen_user, event, T0 + timedelta(seconds=30))

        assert result.user.watch_time == timedelta(seconds=30)
        assert result.user.balance == pytest.approx(30.0)
        assert result.user.last_seen_at == T0 + timedelta(seconds=30)
        assert result.user.first_seen_at == T0

    @pytest.mark.parametrize(
        "elapsed",
        [
            timedelta(0),
            timedelta(microseconds=1),
            timedelta(seconds=1, microseconds=250_000),
            timedelta(seconds=299, microseconds=999_999),
        ],
    )
    def test_watch_time_grows_by_exact_elapsed(self, seen_user, event, elapsed):
        prior = replace(seen_user, watch_time=timedelta(hours=2, microseconds=7))
        result = _accrue(prior, event, T0 + elapsed)
        assert result.user.watch_time == prior.watch_time + elapsed

    def test_balance_doubles_with_elapsed(self, seen_user, event):
        short = _accrue(seen_user, event, T0 + timedelta(seconds=40))
        long = _accrue(seen_user, event, T0 + timedelta(seconds=80))
        assert long.credited_balance == pytest.approx(2 * short.credited_balance)

    def test_group_bonuses_add_to_base_rate(self, seen_user, event):
        groups = [SimpleNamespace(bonus_payout=30.0), SimpleNamespace(bonus_payout=30.0)]
        result = _accrue(seen_user, event, T0 + timedelta(seconds=60), groups)
        # (60 + 30 + 30) per minute for one minute
        assert result.user.balance == pytest.approx(120.0)

    def test_balance_linear_in_rate(self, seen_user, event):
        base = _accrue(seen_user, event, T0 + timedelta(seconds=45))
        doubled = _accrue(
            seen_user, event, T0 + timedelta(seconds=45), [SimpleNamespace(bonus_payout=RATE)]
        )
        assert doubled.credited_balance == pytest.approx(2 * base.credited_balance)

    def test_display_name_follows_latest_event(self, seen_user):
        renamed = ChatEvent(channel_id="abc", display_name="Alice (live)")
        result = _accrue(seen_user, renamed, T0 + timedelta(seconds=10))
        assert result.user.display_name == "Alice (live)"


# ---------------------------------------------------------------------------
# Absences
# ---------------------------------------------------------------------------
class TestOutsideWindow:
    def test_gap_longer_than_window_credits_nothing(self, seen_user, event):
        result = _accrue(seen_user, event, T0 + timedelta(seconds=600))

        assert result.user.watch_time == timedelta(0)
        assert result.user.balance == 0.0
        assert result.user.last_seen_at == T0 + timedelta(seconds=600)

    def test_gap_equal_to_window_is_an_absence(self, seen_user, event):
        result = _accrue(seen_user, event, T0 + WINDOW)
        assert result.user.watch_time == timedelta(0)
        assert result.user.last_seen_at == T0 + WINDOW

    def test_absence_keeps_previous_totals(self, seen_user, event):
        prior = replace(seen_user, watch_time=timedelta(minutes=10), balance=42.5)
        result = _accrue(prior, event, T0 + timedelta(hours=3))
        assert result.user.watch_time == timedelta(minutes=10)
        assert result.user.balance == 42.5

    def test_display_name_updated_on_absence(self, seen_user):
        renamed = ChatEvent(channel_id="abc", display_name="Bob")
        result = _accrue(seen_user, renamed, T0 + timedelta(hours=1))
        assert result.user.display_name == "Bob"


# ---------------------------------------------------------------------------
# Replays & out-of-order delivery
# ---------------------------------------------------------------------------
class TestReplay:
    def test_earlier_now_changes_nothing(self, seen_user, event):
        prior = replace(
            seen_user,
            watch_time=timedelta(seconds=90),
            balance=90.0,
            last_seen_at=T0 + timedelta(seconds=90),
        )
        result = _accrue(prior, event, T0 + timedelta(seconds=30))

        assert result.user.watch_time == prior.watch_time
        assert result.user.balance == prior.balance
        assert result.user.last_seen_at == prior.last_seen_at
        assert result.credited_time == timedelta(0)

    def test_replay_with_same_now_is_idempotent(self, seen_user, event):
        now = T0 + timedelta(seconds=30)
        once = _accrue(seen_user, event, now).user
        twice = _accrue(once, event, now).user
        assert twice.watch_time == once.watch_time
        assert twice.balance == once.balance
        assert twice.last_seen_at == once.last_seen_at

    @pytest.mark.parametrize("offset", [0, 1, 15, 30])
    def test_replays_never_decrease_totals(self, seen_user, event, offset):
        latest = _accrue(seen_user, event, T0 + timedelta(seconds=30)).user
        replayed = _accrue(latest, event, T0 + timedelta(seconds=offset)).user
        assert replayed.watch_time >= latest.watch_time
        assert replayed.balance >= latest.balance
        assert replayed.last_seen_at >= latest.last_seen_at


class TestPayoutRate:
    def test_no_groups_is_base_rate(self):
        assert payout_rate(2.5, []) == 2.5

    def test_negative_bonus_never_below_zero(self):
        assert payout_rate(1.0, [SimpleNamespace(bonus_payout=-5.0)]) == 0.0

    def test_none_bonus_treated_as_zero(self):
        assert payout_rate(1.0, [SimpleNamespace(bonus_payout=None)]) == 1.0
