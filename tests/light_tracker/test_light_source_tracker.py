"""
Tests for the light source tracker.

Verifies that:
1. A light that runs out during a tick is deleted exactly once and the owner regathered
2. Remaining lights are decremented by the interval and written back
3. Ticks are no-ops while stopped, paused, disabled or on a player instance
4. Player toggles are forwarded to the GM over the relay
5. Missing owners/items and store failures do not abort the tick
6. Settings changes start, stop and reconfigure the tracker
"""

import asyncio

import pytest

from src.data_models import ItemDocument, ItemType
from src.game_state.settings import TrackerConfig
from src.integrations.foundry.socket_relay import AuthorityRole
from src.light_tracker.effect_sweeper import EffectExpirySweeper
from src.light_tracker.light_source_tracker import LightSourceTracker
from src.light_tracker.tracker_state import InvalidTransitionError, TrackerState
from src.observability.notifications import NotificationLevel
from src.observability.run_log import get_run_log
from tests.helpers import make_effect, make_light


def config(interval: float = 60, **kwargs) -> TrackerConfig:
    return TrackerConfig(tick_interval_seconds=interval, **kwargs)


async def remaining_secs(store, actor_id: str, item_id: str):
    item = await store.get_item(item_id, actor_id=actor_id)
    return item.light["remainingSecs"] if item else None


# =============================================================================
# LIFECYCLE
# =============================================================================


class TestLifecycle:
    """Tests for starting and stopping."""

    @pytest.mark.asyncio
    async def test_start_gathers_active_players(self, gm_tracker):
        assert await gm_tracker.start(config()) is True

        assert gm_tracker.state == TrackerState.RUNNING
        assert list(gm_tracker.monitored) == ["kell"]
        assert set(gm_tracker.monitored["kell"].resources) == {"torch1", "lantern1"}
        assert gm_tracker.update_interval == 60

        await gm_tracker.stop()

    @pytest.mark.asyncio
    async def test_monitor_inactive_owners(self, gm_tracker):
        await gm_tracker.start(config(monitor_inactive_owners=True))

        assert set(gm_tracker.monitored) == {"kell", "ralina"}

        await gm_tracker.stop()

    @pytest.mark.asyncio
    async def test_start_twice(self, gm_tracker):
        await gm_tracker.start(config())
        assert await gm_tracker.start(config()) is False
        await gm_tracker.stop()

    @pytest.mark.asyncio
    async def test_disabled(self, gm_tracker):
        assert await gm_tracker.start(config(enabled=False)) is False
        assert gm_tracker.state == TrackerState.STOPPED

    @pytest.mark.asyncio
    async def test_player_never_starts(self, player_tracker):
        assert await player_tracker.start(config()) is False
        assert player_tracker.state == TrackerState.STOPPED

    @pytest.mark.asyncio
    async def test_zero_interval_uses_default(self, gm_tracker):
        await gm_tracker.start(config(interval=0))
        assert gm_tracker.update_interval == 60
        await gm_tracker.stop()

    @pytest.mark.asyncio
    async def test_open_on_start(self, gm_tracker):
        await gm_tracker.start(config(open_on_start=True))
        assert gm_tracker.interface_open is True
        await gm_tracker.stop()

    @pytest.mark.asyncio
    async def test_stop(self, gm_tracker):
        await gm_tracker.start(config())

        assert await gm_tracker.stop() is True
        assert gm_tracker.state == TrackerState.STOPPED
        assert await gm_tracker.stop() is False

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, gm_tracker):
        await gm_tracker.start(config())

        gm_tracker.pause()
        assert gm_tracker.is_paused()
        gm_tracker.resume()
        assert not gm_tracker.is_paused()

        await gm_tracker.stop()

    def test_pause_while_stopped_raises(self, gm_tracker):
        with pytest.raises(InvalidTransitionError):
            gm_tracker.pause()

    @pytest.mark.asyncio
    async def test_timer_ticks(self, gm_tracker):
        await gm_tracker.start(config(interval=0.01))
        await asyncio.sleep(0.1)
        await gm_tracker.stop()

        ticks = get_run_log().get_ticks()
        assert len(ticks) >= 1
        count = len(ticks)
        await asyncio.sleep(0.05)
        assert len(get_run_log().get_ticks()) == count


# =============================================================================
# TICKS
# =============================================================================


class TestTick:
    """Tests for burning fuel."""

    @pytest.mark.asyncio
    async def test_expired_light_deleted_and_owner_regathered(self, gm_tracker, store):
        """Test a 45s torch ticked at 60s burns out while the lantern keeps burning."""
        await gm_tracker.start(config(interval=60))

        result = await gm_tracker.perform_tick()

        assert result.performed
        assert result.expired == [("kell", "torch1")]
        assert result.updated == [("kell", "lantern1")]
        assert await store.get_item("torch1", actor_id="kell") is None
        assert list(gm_tracker.monitored["kell"].resources) == ["lantern1"]
        assert await remaining_secs(store, "kell", "lantern1") == 540
        assert gm_tracker.monitored["kell"].resources["lantern1"].remaining_seconds == 540

        await gm_tracker.stop()

    @pytest.mark.asyncio
    async def test_expiry_happens_once(self, gm_tracker, store):
        await gm_tracker.start(config(interval=60))

        await gm_tracker.perform_tick()
        second = await gm_tracker.perform_tick()

        assert second.expired == []
        assert store.operations.count(("delete_item", "torch1")) == 1
        assert len(get_run_log().get_expiries()) == 1
        assert await remaining_secs(store, "kell", "lantern1") == 480

        await gm_tracker.stop()

    @pytest.mark.asyncio
    async def test_each_light_decremented_once_per_tick(self, gm_tracker, store):
        await gm_tracker.start(config(interval=10))

        result = await gm_tracker.perform_tick()

        assert sorted(result.updated) == [("kell", "lantern1"), ("kell", "torch1")]
        assert await remaining_secs(store, "kell", "torch1") == 35
        assert await remaining_secs(store, "kell", "lantern1") == 590

        await gm_tracker.stop()

    @pytest.mark.asyncio
    async def test_stopped_tick_is_noop(self, gm_tracker, store):
        await gm_tracker.gather()
        result = await gm_tracker.perform_tick()

        assert result.performed is False
        assert store.operations == []

    @pytest.mark.asyncio
    async def test_paused_tick_is_noop(self, gm_tracker, store):
        await gm_tracker.start(config())
        gm_tracker.pause()

        result = await gm_tracker.perform_tick()

        assert result.performed is False
        assert store.operations == []
        await gm_tracker.stop()

    @pytest.mark.asyncio
    async def test_global_pause_suspends_ticks(self, gm_tracker, store, clock):
        await gm_tracker.start(config())
        clock.set_paused(True)

        assert (await gm_tracker.perform_tick()).performed is False
        assert store.operations == []

        clock.set_paused(False)
        assert (await gm_tracker.perform_tick()).performed is True
        await gm_tracker.stop()

    @pytest.mark.asyncio
    async def test_global_pause_ignored_when_configured(self, gm_tracker, clock):
        await gm_tracker.start(config(pause_with_global_pause=False))
        clock.set_paused(True)

        assert (await gm_tracker.perform_tick()).performed is True
        await gm_tracker.stop()

    @pytest.mark.asyncio
    async def test_player_tick_is_noop(self, player_tracker, store):
        await player_tracker.gather()
        result = await player_tracker.perform_tick()

        assert result.performed is False
        assert store.operations == []

    @pytest.mark.asyncio
    async def test_missing_owner_skipped(self, gm_tracker, store):
        await gm_tracker.start(config(interval=10))
        await store.delete_actor("kell")

        result = await gm_tracker.perform_tick()

        assert sorted(result.skipped) == [("kell", "lantern1"), ("kell", "torch1")]
        assert result.updated == []
        await gm_tracker.stop()

    @pytest.mark.asyncio
    async def test_missing_item_skipped(self, gm_tracker, store):
        await gm_tracker.start(config(interval=10))
        await store.delete_item("lantern1", actor_id="kell")

        result = await gm_tracker.perform_tick()

        assert result.skipped == [("kell", "lantern1")]
        assert result.updated == [("kell", "torch1")]
        await gm_tracker.stop()

    @pytest.mark.asyncio
    async def test_store_failure_does_not_abort_tick(self, gm_tracker, store):
        await gm_tracker.start(config(interval=10))
        store.fail_on_update.add("torch1")

        result = await gm_tracker.perform_tick()

        assert len(result.errors) == 1
        assert result.updated == [("kell", "lantern1")]
        assert await remaining_secs(store, "kell", "torch1") == 45
        assert gm_tracker.monitored["kell"].resources["torch1"].remaining_seconds == 45
        await gm_tracker.stop()

    @pytest.mark.asyncio
    async def test_failed_delete_retried_next_tick(self, gm_tracker, store):
        await gm_tracker.start(config(interval=60))
        store.fail_on_update.add("torch1")

        first = await gm_tracker.perform_tick()
        assert first.expired == []
        assert len(first.errors) == 1

        store.fail_on_update.clear()
        second = await gm_tracker.perform_tick()
        assert second.expired == [("kell", "torch1")]
        await gm_tracker.stop()

    @pytest.mark.asyncio
    async def test_tick_logged(self, gm_tracker):
        await gm_tracker.start(config(interval=60))
        await gm_tracker.perform_tick()

        tick = get_run_log().get_ticks()[0]
        assert tick.expired == 1
        assert tick.updated == 1
        await gm_tracker.stop()


# =============================================================================
# USER ACTIONS
# =============================================================================


class TestUserActions:
    """Tests for toggles, the interface and settings."""

    @pytest.mark.asyncio
    async def test_player_toggle_forwarded_to_gm(self, gm_tracker, player_tracker, relay):
        await player_tracker.toggle_light_source("kell", "torch1")

        assert relay.sent == [
            {"type": "toggleLightSource", "data": {"actor": "kell", "item": "torch1"}}
        ]
        assert "kell" in gm_tracker.monitored
        assert player_tracker.monitored == {}

    @pytest.mark.asyncio
    async def test_gm_toggle_regathers(self, gm_tracker, store, relay):
        await gm_tracker.start(config())
        await store.update_item("lantern1", {"system.light.active": False}, actor_id="kell")

        await gm_tracker.toggle_light_source("kell", "lantern1")

        assert list(gm_tracker.monitored["kell"].resources) == ["torch1"]
        assert relay.sent == []
        await gm_tracker.stop()

    def test_player_cannot_open_interface(self, player_tracker):
        assert player_tracker.toggle_interface() is False

        notice = player_tracker.notifications.notifications[0]
        assert notice.level == NotificationLevel.ERROR
        assert notice.permanent is True
        assert "GM required" in notice.message

    def test_gm_toggles_interface(self, gm_tracker):
        assert gm_tracker.toggle_interface() is True
        assert gm_tracker.toggle_interface() is False

    @pytest.mark.asyncio
    async def test_disabling_stops_tracker(self, gm_tracker, settings):
        await gm_tracker.start()
        gm_tracker.toggle_interface()

        await settings.set("track_light_sources", False)

        assert gm_tracker.state == TrackerState.STOPPED
        assert gm_tracker.monitored == {}
        assert gm_tracker.interface_open is False

    @pytest.mark.asyncio
    async def test_enabling_starts_tracker(self, gm_tracker, settings):
        await settings.set("track_light_sources", False)
        await settings.set("track_light_sources", True)

        assert gm_tracker.state == TrackerState.RUNNING
        await gm_tracker.stop()

    @pytest.mark.asyncio
    async def test_interval_change_applies_while_running(self, gm_tracker, settings):
        await gm_tracker.start()
        await settings.set("track_light_sources_interval", 120)

        assert gm_tracker.update_interval == 120
        await gm_tracker.stop()

    @pytest.mark.asyncio
    async def test_stopped_tracker_ignores_other_settings(self, gm_tracker, settings):
        await settings.set("track_light_sources_interval", 120)
        assert gm_tracker.state == TrackerState.STOPPED

    @pytest.mark.asyncio
    async def test_observer_errors_are_contained(self, gm_tracker):
        seen = []

        def broken(_tracker):
            raise RuntimeError("boom")

        gm_tracker.add_observer(broken)
        gm_tracker.add_observer(lambda tracker: seen.append(tracker.state))
        await gm_tracker.start(config())

        assert seen[-1] == TrackerState.RUNNING
        await gm_tracker.stop()

    @pytest.mark.asyncio
    async def test_status(self, gm_tracker):
        await gm_tracker.start(config())
        status = gm_tracker.get_status()

        assert status["state"] == "running"
        assert status["interval"] == 60
        assert status["owners"][0]["owner_id"] == "kell"
        await gm_tracker.stop()


def test_player_tracker_registers_no_relay_handler(store, settings, clock, relay):
    LightSourceTracker(store, settings, clock, role=AuthorityRole.PLAYER, relay=relay)
    assert relay._handlers == {}


# =============================================================================
# MALFORMED ITEMS
# =============================================================================


class TestMalformedItems:
    """Items with unexpected data shapes must not stop the rest of the batch."""

    @pytest.mark.asyncio
    async def test_non_mapping_light_ignored_by_gather(self, gm_tracker, store):
        store.add_item(
            ItemDocument("weird", "Weird", ItemType.BASIC, system={"light": "bright"}),
            actor_id="kell",
        )

        assert await gm_tracker.start(config()) is True

        assert gm_tracker.state == TrackerState.RUNNING
        assert set(gm_tracker.monitored["kell"].resources) == {"torch1", "lantern1"}
        await gm_tracker.stop()

    @pytest.mark.asyncio
    async def test_non_numeric_burn_time_uses_longevity(self, gm_tracker, store):
        store.add_item(make_light("candle", "Candle", remaining="lots"), actor_id="kell")
        await gm_tracker.start(config())

        assert gm_tracker.monitored["kell"].resources["candle"].remaining_seconds == 3600
        result = await gm_tracker.perform_tick()

        assert ("kell", "candle") in result.updated
        assert await remaining_secs(store, "kell", "candle") == 3540
        assert await remaining_secs(store, "kell", "lantern1") == 540
        await gm_tracker.stop()

    @pytest.mark.asyncio
    async def test_malformed_effect_does_not_abort_tick(self, store, settings, clock):
        store.add_item(
            ItemDocument("odd", "Odd", ItemType.EFFECT, system={"duration": "5 minutes"}),
            actor_id="kell",
        )
        store.add_item(make_effect("bless", "Blessed", value=1), actor_id="ralina")
        tracker = LightSourceTracker(
            store, settings, clock, sweeper=EffectExpirySweeper(store, clock)
        )
        await tracker.start(config())
        clock.advance(60)

        result = await tracker.perform_tick()

        assert ("ralina", "bless") in result.expired_effects
        assert await remaining_secs(store, "kell", "lantern1") == 540
        assert len(get_run_log().get_ticks()) == 1
        await tracker.stop()
