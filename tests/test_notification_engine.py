"""Tests for the notification engine and its timer table."""

import pytest

from strikewatch.exchanges.protocol import Tick
from strikewatch.notifications.engine import NotificationEngine
from strikewatch.notifications.models import (
    ApeInNotification,
    DetectorKind,
    StrikeNotification,
)
from strikewatch.notifications.timers import TimerTable
from strikewatch.registry import RegistryDiff
from strikewatch.settings import ApeInSettings, StrikeSettings

from conftest import descriptor


@pytest.fixture
def emitted():
    return []


@pytest.fixture
def engine(registry, fake_loop, emitted):
    eng = NotificationEngine(
        registry,
        StrikeSettings(unit_percent=0.05, decay_minutes=60),
        ApeInSettings(start_percentage=-10, increment_percentage=-5, reset_hours=24),
        emit=emitted.append,
        loop=fake_loop,
    )
    eng.apply_diff(RegistryDiff(added=list(registry)))
    return eng


class TestTimerTable:
    """Tests for keyed timer scheduling."""

    def test_reschedule_cancels_previous(self, fake_loop):
        """Test scheduling the same key twice leaves one live timer."""
        timers = TimerTable(fake_loop)
        fired = []
        timers.schedule("BTC", DetectorKind.STRIKE, 10, lambda: fired.append("first"))
        timers.schedule("BTC", DetectorKind.STRIKE, 20, lambda: fired.append("second"))

        assert len(timers) == 1
        assert len(fake_loop.active()) == 1

        fake_loop.advance(30)
        assert fired == ["second"]
        assert not timers.is_scheduled("BTC", DetectorKind.STRIKE)

    def test_kinds_are_independent(self, fake_loop):
        """Test strike and ape-in timers for one pair do not interfere."""
        timers = TimerTable(fake_loop)
        timers.schedule("BTC", DetectorKind.STRIKE, 10, lambda: None)
        timers.schedule("BTC", DetectorKind.APE_IN, 10, lambda: None)

        assert timers.cancel("BTC", DetectorKind.STRIKE)
        assert timers.is_scheduled("BTC", DetectorKind.APE_IN)

    def test_cancel_is_idempotent(self, fake_loop):
        """Test cancelling twice, or after firing, is harmless."""
        timers = TimerTable(fake_loop)
        fired = []
        timers.schedule("BTC", DetectorKind.STRIKE, 5, lambda: fired.append(1))

        assert timers.cancel("BTC", DetectorKind.STRIKE)
        assert not timers.cancel("BTC", DetectorKind.STRIKE)

        timers.schedule("BTC", DetectorKind.STRIKE, 5, lambda: fired.append(2))
        fake_loop.advance(5)
        assert not timers.cancel("BTC", DetectorKind.STRIKE)
        assert fired == [2]

    def test_cancel_all_and_clear(self, fake_loop):
        """Test bulk cancellation."""
        timers = TimerTable(fake_loop)
        timers.schedule("BTC", DetectorKind.STRIKE, 5, lambda: None)
        timers.schedule("BTC", DetectorKind.APE_IN, 5, lambda: None)
        timers.schedule("ETH", DetectorKind.STRIKE, 5, lambda: None)

        timers.cancel_all("BTC")
        assert len(timers) == 1

        timers.clear()
        assert len(timers) == 0
        assert fake_loop.active() == []


class TestStrikeThroughEngine:
    """Tests for strike handling inside the engine."""

    def test_worked_example_emits_on_second_strike(self, engine, emitted):
        """Test the 100/106/111 sequence emits exactly one alert."""
        for price in (100, 106):
            assert engine.process_tick("btcusdt", Tick(last_price=price)) == []

        result = engine.process_tick("btcusdt", Tick(last_price=111))

        assert len(result) == 1
        assert isinstance(result[0], StrikeNotification)
        assert result[0].strike_count == 2
        assert emitted == result
        state = engine.strike_state("BTC")
        assert (state.strike_count, state.buy_price, state.unit_price) == (2, 115, 5)

    def test_decay_timer_rescheduled_and_resets_state(self, engine, fake_loop):
        """Test decay duration tracks strike count and firing resets the ladder."""
        for price in (100, 106):
            engine.process_tick("btcusdt", Tick(last_price=price))
        assert [h.when for h in fake_loop.active()] == [3600]

        engine.process_tick("btcusdt", Tick(last_price=111))
        assert [h.when for h in fake_loop.active()] == [7200]

        fake_loop.advance(7200)
        state = engine.strike_state("BTC")
        assert (state.buy_price, state.strike_count, state.unit_price) == (0, 0, 0)

    def test_ladder_restarts_after_decay(self, engine, fake_loop, emitted):
        """Test a decayed ladder must re-arm before alerting again."""
        for price in (100, 106, 111):
            engine.process_tick("btcusdt", Tick(last_price=price))
        fake_loop.advance(7200)
        emitted.clear()

        engine.process_tick("btcusdt", Tick(last_price=120))
        engine.process_tick("btcusdt", Tick(last_price=126))

        assert emitted == []
        assert engine.strike_state("BTC").strike_count == 1

    def test_pairs_are_independent(self, engine):
        """Test that ticks for one pair leave others alone."""
        engine.process_tick("btcusdt", Tick(last_price=100))
        engine.process_tick("btcusdt", Tick(last_price=106))

        assert engine.strike_state("BTC").strike_count == 1
        assert engine.strike_state("ETH").strike_count == 0

    def test_untracked_symbol_ignored(self, engine, emitted):
        """Test that ticks for unknown symbols are dropped."""
        assert engine.process_tick("dogeusdt", Tick(last_price=1)) == []
        assert engine.strike_state("DOGE") is None
        assert emitted == []


class TestApeInThroughEngine:
    """Tests for ape-in handling inside the engine."""

    def test_trigger_and_reset(self, engine, fake_loop):
        """Test ape-in escalates, then resets after the configured hours."""
        result = engine.process_tick("ethusdt", Tick(last_price=85, high=100))

        assert [type(n) for n in result] == [ApeInNotification]
        assert result[0].percent_change == -15.0
        assert engine.ape_in_state("ETH").threshold == -15

        result = engine.process_tick("ethusdt", Tick(last_price=86, high=100))
        assert result == []

        result = engine.process_tick("ethusdt", Tick(last_price=79, high=100))
        assert len(result) == 1
        assert engine.ape_in_state("ETH").threshold == -20
        assert [h.when for h in fake_loop.active()] == [24 * 3600]

        fake_loop.advance(24 * 3600)
        assert engine.ape_in_state("ETH").threshold == -10

    def test_minus_hundred_ignored(self, engine, fake_loop):
        """Test -100% readings never notify or schedule timers."""
        assert engine.process_tick("ethusdt", Tick(last_price=0, high=100)) == []
        assert fake_loop.active() == []
        assert engine.ape_in_state("ETH").threshold == -10

    def test_both_ladders_on_one_tick(self, engine):
        """Test a tick can feed both detectors."""
        engine.process_tick("btcusdt", Tick(last_price=100, high=100))
        engine.process_tick("btcusdt", Tick(last_price=106, high=200))
        result = engine.process_tick("btcusdt", Tick(last_price=111, high=200))

        kinds = sorted(type(n).__name__ for n in result)
        assert kinds == ["ApeInNotification", "StrikeNotification"]


class TestRegistryDiffs:
    """Tests for state lifecycle on reconciliation."""

    def test_removed_pair_drops_state_and_timers(self, engine, registry, fake_loop):
        """Test removal cancels both timers and forgets the ladders."""
        engine.process_tick("btcusdt", Tick(last_price=100))
        engine.process_tick("btcusdt", Tick(last_price=106, high=200))
        assert len(fake_loop.active()) == 2

        diff = registry.reconcile([descriptor("eth", "usdt")])
        engine.apply_diff(diff)

        assert engine.strike_state("BTC") is None
        assert engine.ape_in_state("BTC") is None
        assert fake_loop.active() == []

    def test_swap_starts_fresh_state(self, engine, registry, fake_loop):
        """Test a quote-asset swap carries no state to the new pair."""
        engine.process_tick("ethusdt", Tick(last_price=100))
        engine.process_tick("ethusdt", Tick(last_price=106))
        assert engine.strike_state("ETH").strike_count == 1

        diff = registry.reconcile([
            descriptor("btc", "usdt"),
            descriptor("eth", "usdt", state="offline"),
            descriptor("eth", "btc", price_precision=6),
        ])
        engine.apply_diff(diff)

        assert engine.strike_state("ETH").strike_count == 0
        assert engine.strike_state("ETH").buy_price == 0
        assert fake_loop.active() == []
        assert engine.process_tick("ethusdt", Tick(last_price=1000)) == []
        engine.process_tick("ethbtc", Tick(last_price=0.05))
        assert engine.strike_state("ETH").buy_price == 0.0525

    def test_close_cancels_everything(self, engine, fake_loop):
        """Test engine shutdown clears the timer table."""
        engine.process_tick("btcusdt", Tick(last_price=100))
        engine.process_tick("btcusdt", Tick(last_price=106))
        engine.close()
        assert fake_loop.active() == []
