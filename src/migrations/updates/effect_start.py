"""Effects record when they started."""

from typing import Any, Optional

from src.data_models import ItemType, get_property
from src.migrations.migration_step import MigrationStep


class Migration230505_1_EffectStart(MigrationStep):
    """Backfill ``system.start`` on effects and store durations as integers."""
    version = 230505.1
    description = "Effect start time and integer durations"

    async def update_item(
        self,
        item_source: dict[str, Any],
        actor_source: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        if item_source.get("type") != ItemType.EFFECT.value:
            return {}

        update: dict[str, Any] = {}

        if not isinstance(get_property(item_source, "system.start"), dict):
            update["system.start"] = {"value": 0, "combatTime": None}

        value = get_property(item_source, "system.duration.value")
        if value is not None and type(value) is not int:
            update["system.duration.value"] = int(float(value)) if value != "" else 0

        return update
