"""Historical migration steps, oldest first."""

from src.migrations.updates.light_seconds import Migration230417_2_LightSeconds
from src.migrations.updates.effect_start import Migration230505_1_EffectStart
from src.migrations.updates.tracker_settings import Migration230601_1_TrackerSettings

ALL_MIGRATIONS = [
    Migration230417_2_LightSeconds,
    Migration230505_1_EffectStart,
    Migration230601_1_TrackerSettings,
]

__all__ = [
    "ALL_MIGRATIONS",
    "Migration230417_2_LightSeconds",
    "Migration230505_1_EffectStart",
    "Migration230601_1_TrackerSettings",
]
