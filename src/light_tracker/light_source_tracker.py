"""
Light source tracker.

Keeps a working set of the active light sources carried by each player's
character and burns them down on a fixed interval. A light whose fuel runs out
is deleted from its owner exactly once and the working set is rebuilt;
otherwise the remaining fuel is written back to the item.

Only the GM instance runs the timer and mutates documents. Player instances
forward toggle requests over the socket relay.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional
import asyncio
import logging

from src.data_models import DEFAULT_UPDATE_INTERVAL_SECS, OwnerSnapshot
from src.documents.document_store import DocumentStore, DocumentStoreError
from src.documents.timed_resource import fuel_resource_from_item
from src.game_state.settings import GameSettings, TrackerConfig
from src.game_state.world_clock import WorldClock
from src.integrations.foundry.socket_relay import (
    AuthorityRole,
    PermissionDeniedError,
    RelayMessage,
    RelayMessageType,
    SocketRelay,
    require_authority,
)
from src.light_tracker.tracker_state import TrackerState, TrackerStateMachine
from src.observability.notifications import NotificationSink
from src.observability.run_log import get_run_log

logger = logging.getLogger(__name__)

# Settings whose change triggers a reload
TRACKER_SETTING_KEYS = (
    "track_light_sources",
    "track_light_sources_interval",
    "pause_light_tracking_with_game",
    "track_inactive_user_light_sources",
)


@dataclass
class TickResult:
    """Outcome of one tick; entries are (owner_id, resource_id) pairs."""
    updated: list[tuple[str, str]] = field(default_factory=list)
    expired: list[tuple[str, str]] = field(default_factory=list)
    skipped: list[tuple[str, str]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    expired_effects: list[tuple[str, str]] = field(default_factory=list)
    performed: bool = False  # False when the tick was a no-op


class LightSourceTracker:
    """
    Ticks down the fuel of every monitored light source.

    Example:
        tracker = LightSourceTracker(store, settings, clock)
        await tracker.start()
        ...
        await tracker.stop()
    """

    def __init__(
        self,
        store: DocumentStore,
        settings: GameSettings,
        clock: WorldClock,
        role: AuthorityRole = AuthorityRole.GAME_MASTER,
        relay: Optional[SocketRelay] = None,
        notifications: Optional[NotificationSink] = None,
        sweeper: Optional[Any] = None,
    ):
        self.store = store
        self.settings = settings
        self.clock = clock
        self.role = role
        self.relay = relay
        self.notifications = notifications or NotificationSink()
        self.sweeper = sweeper

        self.config = TrackerConfig.from_settings(settings)
        self.monitored: dict[str, OwnerSnapshot] = {}
        self.update_interval: float = DEFAULT_UPDATE_INTERVAL_SECS
        self.interface_open = False

        self._state = TrackerStateMachine()
        self._timer: Optional[asyncio.Task] = None
        self._ticking = False
        self._observers: list[Callable[["LightSourceTracker"], None]] = []

        self.clock.register_pause_callback(self.on_game_pause_changed)
        for key in TRACKER_SETTING_KEYS:
            settings.on_change(key, self._setting_listener(key))

        if relay is not None and role.is_authoritative:
            relay.register_handler(
                RelayMessageType.TOGGLE_LIGHT_SOURCE, self._on_relay_toggle
            )

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def state(self) -> TrackerState:
        return self._state.current_state

    @property
    def state_machine(self) -> TrackerStateMachine:
        return self._state

    def is_enabled(self) -> bool:
        return bool(self.config.enabled)

    def is_paused(self) -> bool:
        """Paused explicitly, or by the global pause when configured to follow it."""
        if self.state == TrackerState.PAUSED:
            return True
        return self.clock.paused and self.config.pause_with_global_pause

    def _can_mutate(self) -> bool:
        return self.is_enabled() and self.role.is_authoritative

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self, config: Optional[TrackerConfig] = None) -> bool:
        """
        Start tracking on the GM instance.

        Args:
            config: Tracker configuration; read from settings when omitted

        Returns:
            True if the tracker is now running
        """
        self.config = config or TrackerConfig.from_settings(self.settings)

        if not self.is_enabled():
            logger.info("Disabled in Settings")
            return False

        # Only the GM instance runs the timer
        if not self.role.is_authoritative:
            return False

        if self.state != TrackerState.STOPPED:
            logger.debug(f"Tracker already {self.state.value}")
            return False

        logger.info("Starting")
        await self.gather()

        self.update_interval = self.config.tick_interval_seconds or DEFAULT_UPDATE_INTERVAL_SECS
        self._state.transition("start", {"interval": self.update_interval})
        self._timer = asyncio.create_task(self._run_timer())
        logger.info(f"Updating every {self.update_interval} secs.")

        if self.config.open_on_start:
            self.interface_open = True
        self._notify_observers()
        return True

    async def stop(self) -> bool:
        """
        Stop the timer. A tick already in progress runs to completion.

        Returns:
            True if the tracker was running or paused
        """
        if self.state == TrackerState.STOPPED:
            return False

        self._state.transition("stop")
        timer, self._timer = self._timer, None
        if timer is not None and not self._ticking and timer is not asyncio.current_task():
            timer.cancel()
            try:
                await timer
            except asyncio.CancelledError:
                pass

        logger.info("Stopped")
        self._notify_observers()
        return True

    def pause(self) -> TrackerState:
        """Suspend ticks. Raises InvalidTransitionError unless running."""
        new_state = self._state.transition("pause")
        self._notify_observers()
        return new_state

    def resume(self) -> TrackerState:
        """Resume ticks. Raises InvalidTransitionError unless paused."""
        new_state = self._state.transition("resume")
        self._notify_observers()
        return new_state

    def on_game_pause_changed(self, paused: bool) -> None:
        if self.config.pause_with_global_pause and self.state != TrackerState.STOPPED:
            logger.info(f"Light tracking {'suspended' if paused else 'resumed'} with game pause")
        self._notify_observers()

    async def _run_timer(self) -> None:
        # Exits once stop() or a restart replaces the timer
        while self._timer is asyncio.current_task():
            await asyncio.sleep(self.update_interval)
            if self._timer is not asyncio.current_task():
                break
            try:
                await self.perform_tick()
            except Exception as e:
                logger.error(f"Error during light tracker tick: {e}")

    # =========================================================================
    # WORKING SET
    # =========================================================================

    async def gather(self) -> dict[str, OwnerSnapshot]:
        """Rebuild the working set from the characters of non-GM users."""
        monitored: dict[str, OwnerSnapshot] = {}

        for user in await self.store.list_users():
            if user.is_gm:
                continue
            if not (user.active or self.config.monitor_inactive_owners):
                continue
            if not user.character_id:
                continue

            actor = await self.store.get_actor(user.character_id)
            if actor is None:
                logger.debug(f"Character {user.character_id} of {user.name} not found")
                continue

            snapshot = OwnerSnapshot(owner_id=actor.actor_id, owner_name=actor.name)
            for item in actor.get_active_light_sources():
                snapshot.resources[item.item_id] = fuel_resource_from_item(item, actor.actor_id)
            monitored[actor.actor_id] = snapshot

        self.monitored = monitored
        get_run_log().log_gather(
            owner_count=len(monitored),
            resource_count=sum(len(s.resources) for s in monitored.values()),
        )
        return monitored

    # =========================================================================
    # TICK
    # =========================================================================

    async def perform_tick(self) -> TickResult:
        """
        Burn one interval of fuel from every monitored light source.

        The (owner, resource) pairs are captured up front. Each one is looked
        up again in the current working set, which an expiry may have rebuilt,
        so every light is decremented at most once per tick.
        """
        result = TickResult()
        logger.debug("Performing Tick.")

        if not self._can_mutate() or self.state == TrackerState.STOPPED:
            return result
        if self.is_paused():
            return result

        result.performed = True
        self._ticking = True
        try:
            pairs = [
                (owner_id, resource_id)
                for owner_id, snapshot in self.monitored.items()
                for resource_id in snapshot.resources
            ]
            for owner_id, resource_id in pairs:
                await self._tick_resource(owner_id, resource_id, result)
                self._notify_observers()

            if self.sweeper is not None:
                result.expired_effects = await self.sweeper.sweep()
        finally:
            self._ticking = False

        get_run_log().log_tick(
            interval_seconds=self.update_interval,
            updated=len(result.updated),
            expired=len(result.expired),
            skipped=len(result.skipped),
            errors=len(result.errors),
        )
        self._notify_observers()
        return result

    async def _tick_resource(self, owner_id: str, resource_id: str, result: TickResult) -> None:
        snapshot = self.monitored.get(owner_id)
        resource = snapshot.resources.get(resource_id) if snapshot else None
        if resource is None:
            result.skipped.append((owner_id, resource_id))
            return

        actor = await self.store.get_actor(owner_id)
        if actor is None:
            logger.warning(f"Owner {owner_id} of light source {resource.name} no longer exists")
            result.skipped.append((owner_id, resource_id))
            return

        remaining = (resource.remaining_seconds or 0) - self.update_interval

        try:
            if remaining <= 0:
                await self.store.delete_item(resource_id, actor_id=owner_id)
                result.expired.append((owner_id, resource_id))
                logger.info(f"{resource.name} carried by {actor.name} has burnt out")
                get_run_log().log_expiry(
                    owner_id=owner_id,
                    resource_id=resource_id,
                    name=resource.name,
                    kind=resource.kind.value,
                )
                await self.gather()
                return

            item = await self.store.get_item(resource_id, actor_id=owner_id)
            if item is None:
                logger.warning(f"Light source {resource.name} no longer exists on {actor.name}")
                result.skipped.append((owner_id, resource_id))
                return

            await self.store.update_item(
                resource_id,
                {"system.light.remainingSecs": remaining},
                actor_id=owner_id,
            )
            resource.remaining_seconds = remaining
            resource.light["remainingSecs"] = remaining
            result.updated.append((owner_id, resource_id))
        except DocumentStoreError as e:
            message = f"Failed to update light source {resource.name} on {actor.name}: {e}"
            logger.error(message)
            result.errors.append(message)

    # =========================================================================
    # USER ACTIONS
    # =========================================================================

    async def toggle_light_source(self, actor_id: str, item_id: str) -> None:
        """React to a light being lit or doused; players forward to the GM."""
        if not self.is_enabled():
            return

        if not self.role.is_authoritative:
            if self.relay is None:
                logger.warning("No socket relay available to forward light toggle")
                return
            await self.relay.emit(
                RelayMessage(
                    message_type=RelayMessageType.TOGGLE_LIGHT_SOURCE,
                    data={"actor": actor_id, "item": item_id},
                )
            )
            return

        await self._update_light_sources()

    async def _on_relay_toggle(self, data: dict[str, Any]) -> None:
        await self.toggle_light_source(data.get("actor"), data.get("item"))

    async def _update_light_sources(self) -> None:
        if not self._can_mutate():
            return
        logger.info("Updating light sources")
        await self.gather()
        self._notify_observers()

    def toggle_interface(self) -> bool:
        """
        Open or close the tracker interface.

        Returns:
            Whether the interface is open afterwards
        """
        try:
            require_authority(self.role, "open the light tracker")
        except PermissionDeniedError as e:
            self.notifications.error(str(e), permanent=True)
            return False

        self.interface_open = not self.interface_open
        self._notify_observers()
        return self.interface_open

    async def settings_changed(self) -> None:
        """Reload configuration after settings changed externally."""
        if not self.role.is_authoritative:
            return

        self.config = TrackerConfig.from_settings(self.settings)

        if self.is_enabled():
            if self.state == TrackerState.STOPPED:
                await self.start(self.config)
            else:
                self.update_interval = (
                    self.config.tick_interval_seconds or DEFAULT_UPDATE_INTERVAL_SECS
                )
                await self.gather()
        else:
            await self.stop()
            self.interface_open = False
            self.monitored = {}
        self._notify_observers()

    def _setting_listener(self, key: str) -> Callable[[Any], Any]:
        async def listener(value: Any) -> None:
            # A stopped tracker only reacts to being switched on
            if self.state == TrackerState.STOPPED and key != "track_light_sources":
                return
            await self.settings_changed()

        return listener

    # =========================================================================
    # OBSERVERS
    # =========================================================================

    def add_observer(self, callback: Callable[["LightSourceTracker"], None]) -> None:
        """Register a callback run whenever the tracker's view changes."""
        self._observers.append(callback)

    def _notify_observers(self) -> None:
        for callback in self._observers:
            try:
                callback(self)
            except Exception as e:
                logger.error(f"Error in light tracker observer: {e}")

    def get_status(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "enabled": self.is_enabled(),
            "paused": self.is_paused(),
            "interval": self.update_interval,
            "interface_open": self.interface_open,
            "owners": [snapshot.to_dict() for snapshot in self.monitored.values()],
        }
