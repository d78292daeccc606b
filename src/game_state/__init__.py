"""World clock and system settings."""

from src.game_state.world_clock import WorldClock
from src.game_state.settings import (
    GameSettings,
    SettingDefinition,
    SettingNotRegisteredError,
    TrackerConfig,
    register_system_settings,
)

__all__ = [
    "WorldClock",
    "GameSettings",
    "SettingDefinition",
    "SettingNotRegisteredError",
    "TrackerConfig",
    "register_system_settings",
]
