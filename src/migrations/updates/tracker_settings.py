"""Light tracker interval moves to seconds; actor-level light data is retired."""

from typing import Any
import logging

from src.data_models import ActorType
from src.game_state.settings import GameSettings
from src.migrations.migration_step import MigrationStep

logger = logging.getLogger(__name__)

LEGACY_INTERVAL_KEY = "track_light_sources_interval_mins"


class Migration230601_1_TrackerSettings(MigrationStep):
    """Rename the tracker interval setting and drop ``system.light`` from characters."""
    version = 230601.1
    description = "Light tracker interval in seconds"

    async def update_settings(self, settings: GameSettings) -> None:
        legacy = settings.get_legacy(LEGACY_INTERVAL_KEY)
        if legacy is None:
            return
        seconds = int(float(legacy) * 60)
        await settings.set("track_light_sources_interval", seconds)
        settings.delete_legacy(LEGACY_INTERVAL_KEY)
        logger.info(f"Converted {LEGACY_INTERVAL_KEY}={legacy} to {seconds} seconds")

    async def update_actor(self, actor_source: dict[str, Any]) -> dict[str, Any]:
        # Dropped scene lights keep their light configuration
        if actor_source.get("type") not in (ActorType.PLAYER.value, ActorType.NPC.value):
            return {}
        system = actor_source.get("system")
        if isinstance(system, dict) and "light" in system:
            return {"system.-=light": None}
        return {}
