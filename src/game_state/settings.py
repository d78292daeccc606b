"""
System settings for the Shadowdark VTT core.

Settings are registered once with a default and a type, read synchronously,
and written asynchronously so that change callbacks (which may touch the
document store) can be awaited. Values persist to a JSON file. Values loaded
from disk for keys that are no longer registered are kept as raw legacy values
so that migrations can read and retire them.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional
import inspect
import json
import logging

from src.data_models import LIGHT_TRACKER_UPDATE_INTERVAL_SECS, SYSTEM_ID

logger = logging.getLogger(__name__)


class SettingNotRegisteredError(KeyError):
    """Raised when reading or writing a setting that was never registered."""

    pass


@dataclass
class SettingDefinition:
    """A registered setting."""
    key: str
    default: Any
    setting_type: Optional[type] = None
    description: str = ""
    on_change: list[Callable[[Any], Any]] = field(default_factory=list)

    def coerce(self, value: Any) -> Any:
        """Convert JSON-loaded or user-provided values to the declared type."""
        if value is None or self.setting_type is None:
            return value
        if self.setting_type is bool:
            if isinstance(value, str):
                return value.strip().lower() in ("1", "true", "yes", "on")
            return bool(value)
        if self.setting_type in (int, float):
            return self.setting_type(value)
        return value


class GameSettings:
    """
    Process-wide named settings for one system namespace.

    Example:
        settings = GameSettings()
        settings.get("track_light_sources")          # True
        await settings.set("track_light_sources", False)
    """

    def __init__(self, namespace: str = SYSTEM_ID, register_defaults: bool = True):
        self.namespace = namespace
        self._definitions: dict[str, SettingDefinition] = {}
        self._values: dict[str, Any] = {}
        self._legacy: dict[str, Any] = {}
        if register_defaults:
            register_system_settings(self)

    def register(
        self,
        key: str,
        default: Any,
        setting_type: Optional[type] = None,
        description: str = "",
        on_change: Optional[Callable[[Any], Any]] = None,
    ) -> SettingDefinition:
        """Register a setting. Re-registering keeps the stored value."""
        definition = SettingDefinition(
            key=key,
            default=default,
            setting_type=setting_type,
            description=description,
        )
        if on_change:
            definition.on_change.append(on_change)
        self._definitions[key] = definition

        if key in self._legacy:
            self._values[key] = definition.coerce(self._legacy.pop(key))

        logger.debug(f"Registered setting {self.namespace}.{key}")
        return definition

    def is_registered(self, key: str) -> bool:
        return key in self._definitions

    def on_change(self, key: str, callback: Callable[[Any], Any]) -> None:
        """Subscribe to changes of a registered setting."""
        self._definition(key).on_change.append(callback)

    def get(self, key: str) -> Any:
        """Current value, or the registered default."""
        definition = self._definition(key)
        return self._values.get(key, definition.default)

    async def set(self, key: str, value: Any) -> Any:
        """Store a value and await any change callbacks."""
        definition = self._definition(key)
        value = definition.coerce(value)
        self._values[key] = value
        logger.debug(f"Setting {self.namespace}.{key} = {value!r}")

        for callback in definition.on_change:
            result = callback(value)
            if inspect.isawaitable(result):
                await result
        return value

    # =========================================================================
    # LEGACY VALUES
    # =========================================================================

    def get_legacy(self, key: str, default: Any = None) -> Any:
        """Raw value of an unregistered key loaded from disk."""
        return self._legacy.get(key, default)

    def delete_legacy(self, key: str) -> None:
        self._legacy.pop(key, None)

    def set_legacy(self, key: str, value: Any) -> None:
        """Seed a raw legacy value (used when importing old worlds)."""
        self._legacy[key] = value

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def to_dict(self) -> dict[str, Any]:
        values = {**self._legacy, **self._values}
        return {"namespace": self.namespace, "values": values}

    def save(self, filepath: Path | str) -> Path:
        """Write stored values (not defaults) to a JSON file."""
        path = Path(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.info(f"Settings saved to {path}")
        return path

    def load(self, filepath: Path | str) -> None:
        """
        Load stored values from a JSON file.

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file belongs to another namespace
        """
        path = Path(filepath)
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        namespace = data.get("namespace", self.namespace)
        if namespace != self.namespace:
            raise ValueError(
                f"Settings file {path} is for namespace '{namespace}', "
                f"expected '{self.namespace}'"
            )

        for key, value in data.get("values", {}).items():
            if key in self._definitions:
                self._values[key] = self._definitions[key].coerce(value)
            else:
                self._legacy[key] = value

        logger.info(f"Settings loaded from {path}: {len(data.get('values', {}))} values")

    def _definition(self, key: str) -> SettingDefinition:
        if key not in self._definitions:
            raise SettingNotRegisteredError(f"Setting {self.namespace}.{key} is not registered")
        return self._definitions[key]


def register_system_settings(settings: GameSettings) -> None:
    """Register every setting the tracker and migration runner read."""
    settings.register(
        "track_light_sources", True, bool,
        "Track the remaining burn time of active light sources",
    )
    settings.register(
        "track_light_sources_interval", LIGHT_TRACKER_UPDATE_INTERVAL_SECS, int,
        "Seconds between light tracker updates",
    )
    settings.register(
        "pause_light_tracking_with_game", True, bool,
        "Stop burning light sources while the game is paused",
    )
    settings.register(
        "track_inactive_user_light_sources", False, bool,
        "Also track light sources of players who are not connected",
    )
    settings.register(
        "track_light_sources_open", False, bool,
        "Open the light tracker interface when tracking starts",
    )
    settings.register(
        "schema_version", 0, float,
        "Last fully applied data migration",
    )


@dataclass
class TrackerConfig:
    """Light tracker configuration, read from settings at start and on reload."""
    enabled: bool = True
    tick_interval_seconds: float = LIGHT_TRACKER_UPDATE_INTERVAL_SECS
    pause_with_global_pause: bool = True
    monitor_inactive_owners: bool = False
    open_on_start: bool = False

    @classmethod
    def from_settings(cls, settings: GameSettings) -> "TrackerConfig":
        return cls(
            enabled=settings.get("track_light_sources"),
            tick_interval_seconds=settings.get("track_light_sources_interval"),
            pause_with_global_pause=settings.get("pause_light_tracking_with_game"),
            monitor_inactive_owners=settings.get("track_inactive_user_light_sources"),
            open_on_start=settings.get("track_light_sources_open"),
        )
