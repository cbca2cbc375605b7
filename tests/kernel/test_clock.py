"""Tests for the clock abstraction."""

from datetime import datetime, timedelta, timezone

from materials_kernel.domain.clock import DeterministicClock, SystemClock


class TestDeterministicClock:
    def test_default_time(self):
        assert DeterministicClock().now() == datetime(2024, 1, 1, 12, tzinfo=timezone.utc)

    def test_stable_until_advanced(self):
        clock = DeterministicClock()
        first = clock.now()
        assert clock.now() == first
        clock.advance(90)
        assert clock.now() == first + timedelta(seconds=90)

    def test_tick(self):
        clock = DeterministicClock()
        start = clock.now()
        assert clock.tick() == start + timedelta(seconds=1)

    def test_set_time_resets_advance(self):
        clock = DeterministicClock()
        clock.advance(10)
        target = datetime(2025, 6, 1, tzinfo=timezone.utc)
        clock.set_time(target)
        assert clock.now() == target

    def test_epoch_millis(self):
        clock = DeterministicClock(datetime(2024, 1, 1, tzinfo=timezone.utc))
        assert clock.epoch_millis() == 1704067200000
        clock.advance(1.5)
        assert clock.epoch_millis() == 1704067201500

    def test_now_utc_converts_offset(self):
        ist = timezone(timedelta(hours=5, minutes=30))
        clock = DeterministicClock(datetime(2024, 1, 1, 17, 30, tzinfo=ist))
        assert clock.now_utc() == datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
        assert clock.now_utc().tzinfo == timezone.utc


class TestSystemClock:
    def test_aware(self):
        assert SystemClock().now().tzinfo is not None
