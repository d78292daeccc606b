"""
Timed resource evaluation.

Turns item documents into TimedResource records and evaluates them against
the world clock: light fuel burning down, effects measured in world time, and
effects measured in combat rounds.
"""

from typing import Any, Optional
import logging
import math

from src.data_models import (
    DEFAULT_ITEM_ICON,
    DEFAULT_ITEM_IMAGES,
    DEFAULT_LIGHT_LONGEVITY_SECS,
    CombatPosition,
    Duration,
    DurationStatus,
    DurationType,
    ItemDocument,
    ResourceKind,
    TimedResource,
    UNLIMITED_DURATIONS,
)
from src.game_state.world_clock import WorldClock

logger = logging.getLogger(__name__)


class EffectCreationError(Exception):
    """Raised when an effect cannot be created in the current game state."""

    pass


# =============================================================================
# DURATIONS
# =============================================================================


def item_duration(item: ItemDocument) -> Duration:
    """
    Configured duration of an item.

    Malformed durations are logged and treated as instant, so the effect
    expires rather than lingering forever.
    """
    try:
        return Duration.from_system(item.system.get("duration"))
    except (TypeError, ValueError) as e:
        logger.warning(f"Invalid duration on item '{item.name}' ({item.item_id}): {e}")
        return Duration(DurationType.INSTANT)


def total_duration(item: ItemDocument) -> float:
    """Total duration of an item's effect in seconds (may be infinite)."""
    return item_duration(item).total_seconds()


# =============================================================================
# RESOURCE CONSTRUCTION
# =============================================================================


def _seconds(value: Any) -> Optional[float]:
    """Numeric seconds from stored light data, or None when unusable."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _start_data(item: ItemDocument) -> dict[str, Any]:
    start = item.system.get("start")
    return start if isinstance(start, dict) else {}


def fuel_resource_from_item(item: ItemDocument, owner_id: str) -> TimedResource:
    """
    Monitored light source record for a burning light item.

    Missing or non-numeric burn times fall back to the full default longevity.
    """
    light = dict(item.light)
    longevity = _seconds(light.get("longevitySecs")) or DEFAULT_LIGHT_LONGEVITY_SECS
    remaining = _seconds(light.get("remainingSecs"))
    return TimedResource(
        resource_id=item.item_id,
        owner_id=owner_id,
        name=item.name,
        kind=ResourceKind.FUEL_LIGHT,
        remaining_seconds=float(remaining) if remaining is not None else float(longevity),
        longevity_seconds=float(longevity),
        light=light,
    )


def resource_from_item(item: ItemDocument, owner_id: str) -> Optional[TimedResource]:
    """
    Classify an item into a timed resource.

    Effects are classified by their duration type; other light items burn
    fuel. Returns None for items that are neither.
    """
    if not item.is_effect():
        if item.is_light():
            return fuel_resource_from_item(item, owner_id)
        return None

    duration = item_duration(item)
    start = _start_data(item)

    if duration.duration_type == DurationType.ROUNDS:
        position = CombatPosition.from_combat_time(start.get("combatTime"))
        return TimedResource(
            resource_id=item.item_id,
            owner_id=owner_id,
            name=item.name,
            kind=ResourceKind.ROUND_EFFECT,
            duration=duration,
            start_round=position.round if position else None,
            start_turn=position.turn if position else None,
            duration_rounds=int(duration.value),
        )

    kind = (
        ResourceKind.UNLIMITED_EFFECT
        if duration.duration_type in UNLIMITED_DURATIONS
        else ResourceKind.TIMED_EFFECT
    )
    return TimedResource(
        resource_id=item.item_id,
        owner_id=owner_id,
        name=item.name,
        kind=kind,
        duration=duration,
        start_time=_seconds(start.get("value")) or 0,
    )


# =============================================================================
# EVALUATION
# =============================================================================


def _clamp_progress(value: float) -> int:
    return int(min(100, max(0, value)))


def _status_from_remaining(remaining: float, total: float) -> DurationStatus:
    """Shared continuous-time result; remaining at or below zero is expired."""
    if remaining <= 0:
        return DurationStatus(expired=True, remaining=0, progress=100)
    elapsed = total - remaining
    # Rounded down on elapsed time, not 100 minus rounded remaining as round
    # effects do; 5 of 6 minutes gone reads 83 rather than 84.
    return DurationStatus(
        expired=False,
        remaining=remaining,
        progress=_clamp_progress(math.floor(100 * elapsed / total)),
    )


def _evaluate_rounds(
    resource: TimedResource, position: Optional[CombatPosition]
) -> Optional[DurationStatus]:
    # Round timers only make sense inside combat
    if position is None:
        return DurationStatus(expired=True, remaining=0, progress=100)
    if resource.start_round is None or resource.start_turn is None:
        return DurationStatus(expired=True, remaining=0, progress=100)

    # Not evaluated on the turn it was created
    if position.round == resource.start_round and position.turn == resource.start_turn:
        return None

    duration = resource.duration_rounds
    if duration <= 0:
        return DurationStatus(expired=True, remaining=0, progress=100)

    remaining = resource.start_round + duration - position.round
    if remaining <= 0:
        return DurationStatus(expired=True, remaining=0, progress=100)
    return DurationStatus(
        expired=False,
        remaining=remaining,
        progress=_clamp_progress(100 - math.floor(100 * remaining / duration)),
    )


def _evaluate_continuous(resource: TimedResource, now: float) -> DurationStatus:
    total = resource.total_duration
    if math.isinf(total):
        return DurationStatus(expired=False, remaining=math.inf, progress=0)
    if not total:
        return DurationStatus(expired=True, remaining=0, progress=0)
    return _status_from_remaining(resource.start_time + total - now, total)


def _evaluate_fuel(resource: TimedResource) -> DurationStatus:
    remaining = resource.remaining_seconds or 0
    total = resource.total_duration
    if remaining <= 0:
        return DurationStatus(expired=True, remaining=0, progress=100)
    if not total or math.isinf(total):
        return DurationStatus(expired=False, remaining=remaining, progress=0)
    return _status_from_remaining(remaining, total)


def evaluate(resource: TimedResource, clock: WorldClock) -> Optional[DurationStatus]:
    """
    Evaluate a timed resource against the clocks.

    Args:
        resource: The resource to evaluate
        clock: World clock supplying world time and the combat position

    Returns:
        DurationStatus, or None when a round-based resource is evaluated on
        the same round and turn it was created (callers skip it this tick)

    Raises:
        ValueError: If the resource kind is unknown
    """
    if resource.kind == ResourceKind.ROUND_EFFECT:
        return _evaluate_rounds(resource, clock.combat_position())
    if resource.kind in (ResourceKind.TIMED_EFFECT, ResourceKind.UNLIMITED_EFFECT):
        return _evaluate_continuous(resource, clock.now())
    if resource.kind == ResourceKind.FUEL_LIGHT:
        return _evaluate_fuel(resource)
    raise ValueError(f"Unknown resource kind: {resource.kind}")


def remaining_duration(item: ItemDocument, clock: WorldClock) -> Optional[DurationStatus]:
    """
    Remaining duration of an effect item.

    Returns None for non-effect items and for round effects on their
    creation turn.
    """
    if not item.is_effect():
        return None
    resource = resource_from_item(item, item.actor_id or "")
    return evaluate(resource, clock)


# =============================================================================
# DOCUMENT LIFECYCLE
# =============================================================================


def prepare_effect_for_create(item: ItemDocument, clock: WorldClock) -> dict[str, Any]:
    """
    Stamp a new item before it is created.

    Replaces the generic item icon with the type's default image and records
    the creation world time and combat position on effects.

    Returns:
        The update applied to the item (empty when nothing changed)

    Raises:
        EffectCreationError: If a round-based effect is created outside combat
    """
    update: dict[str, Any] = {}

    default_image = DEFAULT_ITEM_IMAGES.get(item.item_type)
    if default_image and item.img in (None, DEFAULT_ITEM_ICON):
        update["img"] = default_image

    if item.is_effect():
        duration = item.system.get("duration")
        duration_type = duration.get("type") if isinstance(duration, dict) else None
        position = clock.combat_position()
        if duration_type == DurationType.ROUNDS.value and position is None:
            raise EffectCreationError(
                f"Cannot add round-based effect '{item.name}' outside of combat"
            )
        update["system.start"] = {
            "value": clock.now(),
            "combatTime": position.to_combat_time() if position else None,
        }

    if update:
        item.apply_update(update)
    return update


def light_remaining_string(item: ItemDocument) -> Optional[str]:
    """Short burn-time label for a light item, or None for other items."""
    if not item.is_light():
        return None

    remaining_secs = _seconds(item.light.get("remainingSecs")) or 0
    if remaining_secs < 60:
        return "less than a minute remaining"
    return f"{math.ceil(remaining_secs / 60)} mins remaining"
