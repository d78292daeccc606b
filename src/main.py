"""
Shadowdark VTT Core - Main Entry Point

Runs the rules-system core against an in-memory world: data migrations on
startup, then the light source tracker burning down the fuel of every
player's active light sources.

This module provides the main entry point and the ShadowdarkCore class that
wires the subsystems together.
"""

import sys
from pathlib import Path

# Add the project root to the Python path for module discovery
_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import argparse
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

from src.data_models import (
    ActorDocument,
    ActorType,
    ItemDocument,
    ItemType,
    UserDocument,
)
from src.documents import (
    CompendiumPack,
    InMemoryDocumentStore,
    light_remaining_string,
)
from src.game_state import GameSettings, TrackerConfig, WorldClock
from src.integrations.foundry import AuthorityRole, LocalSocketRelay
from src.light_tracker import (
    EffectExpirySweeper,
    LightSourceTracker,
    SceneLightHandler,
    TickResult,
)
from src.migrations import MigrationReport, MigrationRunner
from src.observability import NotificationSink, get_run_log


# Configure logging
def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


logger = logging.getLogger(__name__)

# Schema version shipped with this system release
SYSTEM_SCHEMA_VERSION = 230601.1

# Stored schema version of the bundled demo world, which predates every update
DEMO_WORLD_SCHEMA_VERSION = 230401


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class CoreConfig:
    """Configuration for a demo run."""

    settings_file: Optional[Path] = None
    ticks: int = 5
    tick_interval: Optional[int] = None  # Overrides the stored setting
    monitor_inactive: bool = False
    role: AuthorityRole = AuthorityRole.GAME_MASTER
    run_log_file: Optional[Path] = None
    verbose: bool = False


# =============================================================================
# CORE
# =============================================================================

class ShadowdarkCore:
    """
    Wires the store, settings, clock and relay into the tracker and runner.

    Args:
        store: Document store of the world
        settings: System settings
        clock: World clock
        role: Role of this process; only the GM mutates documents
        relay: Socket relay shared with other instances
        system_schema_version: Schema version of the installed system
    """

    def __init__(
        self,
        store: InMemoryDocumentStore,
        settings: GameSettings,
        clock: Optional[WorldClock] = None,
        role: AuthorityRole = AuthorityRole.GAME_MASTER,
        relay: Optional[LocalSocketRelay] = None,
        system_schema_version: float = SYSTEM_SCHEMA_VERSION,
    ):
        self.store = store
        self.settings = settings
        self.clock = clock or WorldClock()
        self.role = role
        self.relay = relay or LocalSocketRelay()
        self.notifications = NotificationSink()

        self.sweeper = EffectExpirySweeper(store, self.clock)
        self.tracker = LightSourceTracker(
            store,
            settings,
            self.clock,
            role=role,
            relay=self.relay,
            notifications=self.notifications,
            sweeper=self.sweeper,
        )
        self.scene_lights = SceneLightHandler(
            store, role=role, relay=self.relay, tracker=self.tracker
        )
        self.migrations = MigrationRunner(
            store,
            settings,
            system_schema_version=system_schema_version,
            notifications=self.notifications,
        )

        get_run_log().set_game_time_provider(lambda: f"{self.clock.now():.0f}s")

    async def startup(self, tracker_config: Optional[TrackerConfig] = None) -> MigrationReport:
        """Migrate world data (GM only), then start the light tracker."""
        report = MigrationReport(start_version=self.settings.get("schema_version"))
        if self.role.is_authoritative:
            report = await self.migrations.run()
        await self.tracker.start(tracker_config)
        return report

    async def advance(self, seconds: Optional[float] = None) -> TickResult:
        """Advance world time by one tick interval and run a tracker tick."""
        self.clock.advance(seconds if seconds is not None else self.tracker.update_interval)
        return await self.tracker.perform_tick()

    async def shutdown(self) -> None:
        await self.tracker.stop()

    async def light_status(self) -> list[str]:
        """One line per monitored light source."""
        lines = []
        for snapshot in self.tracker.monitored.values():
            for resource_id, resource in snapshot.resources.items():
                item = await self.store.get_item(resource_id, actor_id=snapshot.owner_id)
                remaining = light_remaining_string(item) if item else "missing"
                lines.append(f"  {snapshot.owner_name}: {resource.name} - {remaining}")
        return lines or ["  No light sources burning"]

    def status(self) -> dict[str, Any]:
        return {
            "schema_version": self.settings.get("schema_version"),
            "time": self.clock.get_time_summary(),
            "tracker": self.tracker.get_status(),
        }


# =============================================================================
# DEMO WORLD
# =============================================================================

async def create_demo_world(settings: GameSettings) -> InMemoryDocumentStore:
    """
    Build an old-format world: minute-based lights, effects without a start
    time, a legacy tracker setting and one corrupt character.
    """
    store = InMemoryDocumentStore()

    if settings.get("schema_version") == 0:
        await settings.set("schema_version", DEMO_WORLD_SCHEMA_VERSION)
        settings.set_legacy("track_light_sources_interval_mins", 0.5)

    store.add_raw_actor({
        "_id": "kell00000000000a",
        "name": "Kell the Bold",
        "type": "Player",
        "system": {"light": {"active": True}},
        "items": [
            {
                "_id": "torch00000000001",
                "name": "Torch",
                "type": "Basic",
                "system": {
                    "light": {
                        "isSource": True,
                        "active": True,
                        "template": "torch",
                        "remainingMins": 2,
                    },
                },
            },
            {
                "_id": "bless00000000001",
                "name": "Blessed",
                "type": "Effect",
                "system": {"duration": {"type": "minutes", "value": "1"}},
            },
        ],
    })
    store.add_raw_actor({
        "_id": "ralina0000000000",
        "name": "Ralina",
        "type": "Player",
        "system": {},
        "items": [
            {
                "_id": "lantern000000001",
                "name": "Lantern",
                "type": "Basic",
                "system": {
                    "light": {
                        "isSource": True,
                        "active": True,
                        "template": "lantern",
                        "remainingSecs": 50,
                        "longevitySecs": 3600,
                    },
                },
            },
        ],
    })
    # Fails validation; reachable only through the raw fallback
    store.add_raw_actor({
        "_id": "broken0000000000",
        "name": None,
        "type": "Player",
        "system": {"light": {"active": False}},
        "items": [],
    })
    store.add_raw_item({
        "_id": "torch00000000002",
        "name": "Spare Torch",
        "type": "Basic",
        "system": {"light": {"isSource": True, "active": False, "remainingMins": 60}},
    })

    pack = CompendiumPack("world.adventuring-gear", "Item", package_type="world", locked=True)
    pack.add_document(ItemDocument(
        item_id="packeffect000001",
        name="Light Spell",
        item_type=ItemType.EFFECT,
        system={"duration": {"type": "hours", "value": 1.0}},
    ))
    store.add_pack(pack)
    store.add_pack(CompendiumPack("shadowdark.gear", "Item", package_type="system"))
    store.add_pack(CompendiumPack("world.scenes", "Scene", package_type="world"))

    store.add_user(UserDocument("gm000000000000", "Game Master", is_gm=True))
    store.add_user(UserDocument("alice0000000000", "Alice", character_id="kell00000000000a"))
    store.add_user(UserDocument(
        "bob000000000000", "Bob", active=False, character_id="ralina0000000000"
    ))
    store.add_actor(ActorDocument("goblin0000000000", "Goblin", ActorType.NPC))
    return store


async def run_demo(config: CoreConfig) -> ShadowdarkCore:
    """Migrate the demo world and run the configured number of ticks."""
    settings = GameSettings()
    if config.settings_file and config.settings_file.exists():
        settings.load(config.settings_file)
    store = await create_demo_world(settings)

    core = ShadowdarkCore(store, settings, role=config.role)
    if config.monitor_inactive:
        await settings.set("track_inactive_user_light_sources", True)

    report = await core.startup()
    print(f"\nMigrated schema {report.start_version} -> {report.end_version}: "
          f"{report.migrated} documents updated, {len(report.failures)} failed")

    if config.tick_interval:
        await settings.set("track_light_sources_interval", config.tick_interval)

    print("\nLight sources:")
    print("\n".join(await core.light_status()))

    for tick in range(1, config.ticks + 1):
        result = await core.advance()
        print(f"\nTick {tick} (world time {core.clock.now():.0f}s): "
              f"{len(result.updated)} updated, {len(result.expired)} burnt out, "
              f"{len(result.expired_effects)} effects expired")
        print("\n".join(await core.light_status()))

    await core.shutdown()

    if config.settings_file:
        settings.save(config.settings_file)
    if config.run_log_file:
        get_run_log().save(str(config.run_log_file))

    return core


# =============================================================================
# CLI INTERFACE
# =============================================================================

def parse_arguments(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Shadowdark VTT Core - light tracking and data migrations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m src.main                          # Migrate the demo world, run 5 ticks
  python -m src.main --ticks 10 --interval 60 # Ten one-minute ticks
  python -m src.main --monitor-inactive       # Also burn lights of offline players
  python -m src.main --settings settings.json # Load and save settings
        """
    )

    parser.add_argument(
        "--ticks",
        type=int,
        default=5,
        help="Number of tracker ticks to run (default: 5)",
    )
    parser.add_argument(
        "--interval",
        type=int,
        help="Seconds between ticks (default: the stored setting)",
    )
    parser.add_argument(
        "--settings",
        type=Path,
        help="JSON settings file to load before and save after the run",
    )
    parser.add_argument(
        "--monitor-inactive",
        action="store_true",
        help="Track light sources of players who are not connected",
    )
    parser.add_argument(
        "--player",
        action="store_true",
        help="Run as a player instance (requests are forwarded to the GM)",
    )
    parser.add_argument(
        "--run-log",
        type=Path,
        help="Write the run log to this JSON file",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    return parser.parse_args(argv)


def create_config_from_args(args: argparse.Namespace) -> CoreConfig:
    """Create CoreConfig from parsed arguments."""
    return CoreConfig(
        settings_file=args.settings,
        ticks=args.ticks,
        tick_interval=args.interval,
        monitor_inactive=args.monitor_inactive,
        role=AuthorityRole.PLAYER if args.player else AuthorityRole.GAME_MASTER,
        run_log_file=args.run_log,
        verbose=args.verbose,
    )


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

def main(argv: Optional[list[str]] = None) -> ShadowdarkCore:
    """Main entry point for CLI usage."""
    args = parse_arguments(argv)
    setup_logging(args.verbose)

    print("=" * 60)
    print("SHADOWDARK VTT CORE v0.1.0")
    print("Light source tracking and data migrations")
    print("=" * 60)

    config = create_config_from_args(args)
    core = asyncio.run(run_demo(config))

    print("\n" + "=" * 60)
    print(get_run_log().format_log(max_events=10))
    print("=" * 60)
    return core


if __name__ == "__main__":
    main()
