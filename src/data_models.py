"""
Shared data structures for the Shadowdark VTT core.

Documents mirror the host's raw document shape: a typed header plus a nested
``system`` dict that migrations can rewrite freely. Timed resources and owner
snapshots are the light tracker's working set; they are always rebuilt from
documents and never persisted on their own.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional
import copy
import math
import uuid


# =============================================================================
# ENUMS
# =============================================================================


class ItemType(str, Enum):
    """Item document types known to the Shadowdark system."""
    ARMOR = "Armor"
    BASIC = "Basic"
    EFFECT = "Effect"
    GEM = "Gem"
    NPC_ATTACK = "NPC Attack"
    NPC_FEATURE = "NPC Feature"
    POTION = "Potion"
    SCROLL = "Scroll"
    SPELL = "Spell"
    TALENT = "Talent"
    WAND = "Wand"
    WEAPON = "Weapon"


class ActorType(str, Enum):
    """Actor document types."""
    PLAYER = "Player"
    NPC = "NPC"
    LIGHT = "Light"  # A light source dropped on a scene


class DurationType(str, Enum):
    """Duration units an effect can be configured with."""
    INSTANT = "instant"
    ROUNDS = "rounds"
    SECONDS = "seconds"
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"
    REAL_TIME = "realTime"
    FOCUS = "focus"
    PERMANENT = "permanent"
    UNLIMITED = "unlimited"


class ResourceKind(str, Enum):
    """The closed set of timed resources the tracker understands."""
    FUEL_LIGHT = "fuel_light"  # Burns down by remaining seconds
    ROUND_EFFECT = "round_effect"  # Measured in combat rounds
    TIMED_EFFECT = "timed_effect"  # Measured against world time
    UNLIMITED_EFFECT = "unlimited_effect"  # Never expires


# =============================================================================
# SYSTEM CONSTANTS
# =============================================================================

SYSTEM_ID = "shadowdark"

# Seconds per duration unit. A round is fixed at 360 seconds of world time.
DURATION_UNITS: dict[DurationType, int] = {
    DurationType.SECONDS: 1,
    DurationType.MINUTES: 60,
    DurationType.ROUNDS: 360,
    DurationType.HOURS: 3600,
    DurationType.DAYS: 86400,
}

UNLIMITED_DURATIONS = frozenset(
    {DurationType.UNLIMITED, DurationType.FOCUS, DurationType.PERMANENT}
)
INSTANT_DURATIONS = frozenset({DurationType.INSTANT})

LIGHT_TRACKER_UPDATE_INTERVAL_SECS = 30
DEFAULT_UPDATE_INTERVAL_SECS = 60
DEFAULT_LIGHT_LONGEVITY_SECS = 3600

# Generic icon the host assigns to new items
DEFAULT_ITEM_ICON = "icons/svg/item-bag.svg"

DEFAULT_ITEM_IMAGES: dict[ItemType, str] = {
    ItemType.ARMOR: "icons/equipment/chest/breastplate-banded-steel-gold.webp",
    ItemType.BASIC: "icons/containers/bags/pouch-simple-brown.webp",
    ItemType.EFFECT: "icons/commodities/tech/cog-brass.webp",
    ItemType.GEM: "icons/commodities/gems/gem-faceted-navette-red.webp",
    ItemType.NPC_ATTACK: "icons/skills/melee/weapons-crossed-swords-yellow.webp",
    ItemType.NPC_FEATURE: "icons/creatures/abilities/dragon-breath-purple.webp",
    ItemType.POTION: "icons/consumables/potions/bottle-corked-red.webp",
    ItemType.SCROLL: "icons/sundries/scrolls/scroll-runed-brown-purple.webp",
    ItemType.SPELL: "icons/magic/symbols/runes-star-blue.webp",
    ItemType.TALENT: "icons/sundries/books/book-worn-brown-grey.webp",
    ItemType.WAND: "icons/weapons/wands/wand-gem-violet.webp",
    ItemType.WEAPON: "icons/weapons/swords/sword-guard-brown.webp",
}


# =============================================================================
# UPDATE PATH HELPERS
# =============================================================================

# Prefix marking a key for deletion in an update, e.g. {"system.-=legacy": None}
DELETION_PREFIX = "-="


def is_empty(update: Optional[dict[str, Any]]) -> bool:
    """True when an update carries no changes."""
    return not update


def get_property(data: dict[str, Any], path: str, default: Any = None) -> Any:
    """Read a dotted path such as ``system.light.remainingSecs``."""
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def set_property(data: dict[str, Any], path: str, value: Any) -> None:
    """
    Write a dotted path, creating intermediate dicts as needed.

    A final segment starting with ``-=`` removes that key instead.
    """
    parts = path.split(".")
    current = data
    for part in parts[:-1]:
        if not isinstance(current.get(part), dict):
            current[part] = {}
        current = current[part]

    last = parts[-1]
    if last.startswith(DELETION_PREFIX):
        current.pop(last[len(DELETION_PREFIX):], None)
    elif isinstance(value, dict) and isinstance(current.get(last), dict):
        merge_update(current[last], value)
    else:
        current[last] = copy.deepcopy(value)


def merge_update(target: dict[str, Any], update: dict[str, Any]) -> dict[str, Any]:
    """Apply a (possibly dotted, possibly nested) update to ``target`` in place."""
    for key, value in update.items():
        set_property(target, key, value)
    return target


# =============================================================================
# COMBAT AND DURATION
# =============================================================================


@dataclass(frozen=True)
class CombatPosition:
    """A point in combat: round number plus turn index within the round."""
    round: int
    turn: int

    def to_combat_time(self) -> str:
        """Stored form on effect documents, e.g. ``"3.1"``."""
        return f"{self.round}.{self.turn}"

    @classmethod
    def from_combat_time(cls, value: Any) -> Optional["CombatPosition"]:
        """Parse ``"round.turn"``; returns None for missing or malformed values."""
        if value is None or value == "":
            return None
        parts = str(value).split(".")
        if len(parts) != 2:
            return None
        try:
            return cls(round=int(parts[0]), turn=int(parts[1]))
        except ValueError:
            return None


@dataclass(frozen=True)
class Duration:
    """An effect duration as configured on the item (type plus count)."""
    duration_type: DurationType
    value: float = 0

    def total_seconds(self) -> float:
        """
        Total duration in world seconds.

        Unlimited kinds are infinite, instant is zero, and units missing
        from the unit table contribute nothing.
        """
        if self.duration_type in UNLIMITED_DURATIONS:
            return math.inf
        if self.duration_type in INSTANT_DURATIONS:
            return 0
        return self.value * DURATION_UNITS.get(self.duration_type, 0)

    @classmethod
    def from_system(cls, duration: Optional[dict[str, Any]]) -> "Duration":
        """
        Build from an item's ``system.duration`` dict.

        Raises:
            ValueError: If the duration is not a mapping, its type is unknown or
                its value is not numeric
        """
        duration = duration or {}
        if not isinstance(duration, dict):
            raise ValueError(f"Duration must be a mapping, got {duration!r}")
        duration_type = DurationType(duration.get("type", DurationType.INSTANT.value))
        raw_value = duration.get("value", 0)
        value = float(raw_value) if raw_value not in (None, "") else 0
        return cls(duration_type=duration_type, value=value)


@dataclass(frozen=True)
class DurationStatus:
    """Result of evaluating a timed resource against the clocks."""
    expired: bool
    remaining: float
    progress: int  # 0..100


# =============================================================================
# DOCUMENTS
# =============================================================================


def new_document_id() -> str:
    """Generate a 16 character document id in the host's style."""
    return uuid.uuid4().hex[:16]


@dataclass
class ItemDocument:
    """An item, either embedded in an actor or stored at world level."""
    item_id: str
    name: str
    item_type: ItemType
    system: dict[str, Any] = field(default_factory=dict)
    img: Optional[str] = None
    actor_id: Optional[str] = None  # Owning actor for embedded items

    @property
    def light(self) -> dict[str, Any]:
        light = self.system.get("light")
        return light if isinstance(light, dict) else {}

    def is_light(self) -> bool:
        return (
            self.item_type in (ItemType.BASIC, ItemType.EFFECT)
            and bool(self.light.get("isSource"))
        )

    def is_active_light(self) -> bool:
        return self.is_light() and bool(self.light.get("active"))

    def is_effect(self) -> bool:
        return self.item_type == ItemType.EFFECT

    def to_object(self) -> dict[str, Any]:
        """Raw source snapshot, safe to hand to migrations."""
        return {
            "_id": self.item_id,
            "name": self.name,
            "type": self.item_type.value,
            "img": self.img,
            "system": copy.deepcopy(self.system),
        }

    @classmethod
    def from_object(cls, data: dict[str, Any], actor_id: Optional[str] = None) -> "ItemDocument":
        """
        Validate and build from raw source.

        Raises:
            KeyError, TypeError, ValueError: If the source fails validation
        """
        item_id = data["_id"]
        name = data["name"]
        if not isinstance(item_id, str) or not item_id:
            raise ValueError(f"Invalid item id: {item_id!r}")
        if not isinstance(name, str):
            raise TypeError(f"Item name must be a string, got {type(name).__name__}")
        system = data.get("system") or {}
        if not isinstance(system, dict):
            raise TypeError("Item system data must be a mapping")
        return cls(
            item_id=item_id,
            name=name,
            item_type=ItemType(data["type"]),
            system=copy.deepcopy(system),
            img=data.get("img"),
            actor_id=actor_id,
        )

    def apply_update(self, update: dict[str, Any]) -> None:
        """Apply a partial update such as ``{"system.light.active": False}``."""
        source = merge_update(self.to_object(), update)
        self.name = source["name"]
        self.item_type = ItemType(source["type"])
        self.img = source.get("img")
        self.system = source.get("system") or {}


@dataclass
class ActorDocument:
    """A character, NPC or scene light, with its embedded items."""
    actor_id: str
    name: str
    actor_type: ActorType
    system: dict[str, Any] = field(default_factory=dict)
    items: dict[str, ItemDocument] = field(default_factory=dict)
    img: Optional[str] = None

    def get_item(self, item_id: str) -> Optional[ItemDocument]:
        return self.items.get(item_id)

    def get_active_light_sources(self) -> list[ItemDocument]:
        """All embedded items currently burning as light sources."""
        return [item for item in self.items.values() if item.is_active_light()]

    def get_effects(self) -> list[ItemDocument]:
        return [item for item in self.items.values() if item.is_effect()]

    def to_object(self) -> dict[str, Any]:
        return {
            "_id": self.actor_id,
            "name": self.name,
            "type": self.actor_type.value,
            "img": self.img,
            "system": copy.deepcopy(self.system),
            "items": [item.to_object() for item in self.items.values()],
        }

    @classmethod
    def from_object(cls, data: dict[str, Any]) -> "ActorDocument":
        """
        Validate and build the actor header from raw source.

        Embedded items are not parsed here; the store validates them one by
        one so a single corrupt item does not invalidate its owner.

        Raises:
            KeyError, TypeError, ValueError: If the source fails validation
        """
        actor_id = data["_id"]
        name = data["name"]
        if not isinstance(actor_id, str) or not actor_id:
            raise ValueError(f"Invalid actor id: {actor_id!r}")
        if not isinstance(name, str):
            raise TypeError(f"Actor name must be a string, got {type(name).__name__}")
        system = data.get("system") or {}
        if not isinstance(system, dict):
            raise TypeError("Actor system data must be a mapping")
        return cls(
            actor_id=actor_id,
            name=name,
            actor_type=ActorType(data["type"]),
            system=copy.deepcopy(system),
            img=data.get("img"),
        )

    def apply_update(self, update: dict[str, Any]) -> None:
        """Apply a partial update to the actor header and system data."""
        source = self.to_object()
        source.pop("items")
        merge_update(source, update)
        self.name = source["name"]
        self.actor_type = ActorType(source["type"])
        self.img = source.get("img")
        self.system = source.get("system") or {}


@dataclass
class UserDocument:
    """A connected (or known) user and the character they play."""
    user_id: str
    name: str
    is_gm: bool = False
    active: bool = True
    character_id: Optional[str] = None


# =============================================================================
# TIMED RESOURCES
# =============================================================================


@dataclass
class TimedResource:
    """
    One expirable thing owned by a character: light fuel or a timed effect.

    Which fields matter depends on ``kind``: fuel lights use
    ``remaining_seconds`` and ``longevity_seconds``; timed and unlimited
    effects use ``start_time`` and ``duration``; round effects use
    ``start_round``, ``start_turn`` and ``duration_rounds``.
    """
    resource_id: str
    owner_id: str
    name: str
    kind: ResourceKind
    remaining_seconds: Optional[float] = None
    longevity_seconds: float = 0
    start_time: float = 0
    duration: Optional[Duration] = None
    start_round: Optional[int] = None
    start_turn: Optional[int] = None
    duration_rounds: int = 0
    light: dict[str, Any] = field(default_factory=dict)

    @property
    def total_duration(self) -> float:
        """Derived total duration in seconds."""
        if self.kind == ResourceKind.FUEL_LIGHT:
            return self.longevity_seconds
        if self.kind == ResourceKind.UNLIMITED_EFFECT:
            return math.inf
        if self.kind in (ResourceKind.TIMED_EFFECT, ResourceKind.ROUND_EFFECT):
            return self.duration.total_seconds() if self.duration else 0
        raise ValueError(f"Unknown resource kind: {self.kind}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "resource_id": self.resource_id,
            "owner_id": self.owner_id,
            "name": self.name,
            "kind": self.kind.value,
            "remaining_seconds": self.remaining_seconds,
            "total_duration": self.total_duration,
        }


@dataclass
class OwnerSnapshot:
    """All monitored resources of one owner, keyed by resource id."""
    owner_id: str
    owner_name: str
    resources: dict[str, TimedResource] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "owner_id": self.owner_id,
            "owner_name": self.owner_name,
            "resources": {rid: r.to_dict() for rid, r in self.resources.items()},
        }


@dataclass
class TransitionLog:
    """Log entry for a state transition."""
    timestamp: datetime
    from_state: str
    to_state: str
    trigger: str
    context: dict[str, Any] = field(default_factory=dict)
