"""Light source tracking, effect expiry and scene lights."""

from src.light_tracker.tracker_state import (
    InvalidTransitionError,
    TrackerState,
    TrackerStateMachine,
)
from src.light_tracker.light_source_tracker import LightSourceTracker, TickResult
from src.light_tracker.effect_sweeper import EffectExpirySweeper
from src.light_tracker.scene_lights import LIGHT_TEMPLATES, SceneLightHandler

__all__ = [
    "InvalidTransitionError",
    "TrackerState",
    "TrackerStateMachine",
    "LightSourceTracker",
    "TickResult",
    "EffectExpirySweeper",
    "LIGHT_TEMPLATES",
    "SceneLightHandler",
]
