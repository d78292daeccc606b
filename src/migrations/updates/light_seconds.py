"""Light sources track burn time in seconds instead of minutes."""

from typing import Any, Optional

from src.data_models import DEFAULT_LIGHT_LONGEVITY_SECS, get_property
from src.migrations.migration_step import MigrationStep


class Migration230417_2_LightSeconds(MigrationStep):
    """Convert legacy minute-based light fields to seconds."""
    version = 230417.2
    description = "Light source burn time in seconds"

    async def update_item(
        self,
        item_source: dict[str, Any],
        actor_source: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        light = get_property(item_source, "system.light")
        if not isinstance(light, dict):
            return {}

        update: dict[str, Any] = {}

        if "remainingMins" in light:
            if "remainingSecs" not in light:
                update["system.light.remainingSecs"] = int(float(light["remainingMins"] or 0) * 60)
            update["system.light.-=remainingMins"] = None

        if light.get("isSource") and "longevitySecs" not in light:
            longevity_mins = light.get("longevityMins")
            update["system.light.longevitySecs"] = (
                int(float(longevity_mins) * 60)
                if longevity_mins
                else DEFAULT_LIGHT_LONGEVITY_SECS
            )
        if "longevityMins" in light:
            update["system.light.-=longevityMins"] = None

        return update
