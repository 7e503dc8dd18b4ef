"""
Unit Tests for the OTP Countdown
Tests for: server window, formatting, resend gating, clock independence
"""
from datetime import datetime, timedelta, timezone

import pytest

from campus_connect.services.otp_countdown import OtpCountdown

ISSUED = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeMonotonic:
    def __init__(self):
        self.value = 1000.0

    def __call__(self):
        return self.value


@pytest.fixture
def ticks():
    return FakeMonotonic()


@pytest.fixture
def countdown(ticks):
    return OtpCountdown(monotonic=ticks)


class TestCountdown:
    """Test countdown arithmetic"""

    def test_idle_countdown(self, countdown):
        assert countdown.tick() == 0
        assert not countdown.is_running
        assert countdown.formatted == "0:00"

    def test_starts_from_server_window(self, countdown):
        countdown.start(ISSUED, ISSUED + timedelta(minutes=10))

        assert countdown.remaining_seconds == 600
        assert countdown.formatted == "10:00"
        assert countdown.is_running
        assert not countdown.can_resend

    def test_ticks_down(self, countdown, ticks):
        countdown.start(ISSUED, ISSUED + timedelta(minutes=10))
        ticks.value += 541

        assert countdown.tick() == 59
        assert countdown.formatted == "0:59"

    def test_partial_second_rounds_up(self, countdown, ticks):
        countdown.start(ISSUED, ISSUED + timedelta(minutes=10))
        ticks.value += 599.5

        assert countdown.tick() == 1

    def test_reaches_zero_and_enables_resend(self, countdown, ticks):
        countdown.start(ISSUED, ISSUED + timedelta(minutes=10))
        ticks.value += 900

        assert countdown.tick() == 0
        assert countdown.can_resend
        assert not countdown.is_running

    def test_sync_restarts_window(self, countdown, ticks):
        countdown.start(ISSUED, ISSUED + timedelta(minutes=10))
        ticks.value += 700
        countdown.tick()

        later = ISSUED + timedelta(minutes=12)
        countdown.sync(later, later + timedelta(minutes=10))

        assert countdown.remaining_seconds == 600
        assert not countdown.can_resend

    def test_stop(self, countdown):
        countdown.start(ISSUED, ISSUED + timedelta(minutes=10))
        countdown.stop()

        assert countdown.tick() == 0
        assert not countdown.is_running

    def test_window_ignores_local_wall_clock(self, countdown):
        # Server timestamps far from local time still yield the full lifetime.
        skewed = datetime(2001, 1, 1, tzinfo=timezone.utc)
        countdown.start(skewed, skewed + timedelta(minutes=10))

        assert countdown.tick() == 600

    def test_inverted_window_is_zero(self, countdown):
        countdown.start(ISSUED, ISSUED - timedelta(seconds=5))

        assert countdown.tick() == 0
        assert countdown.can_resend
