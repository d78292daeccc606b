"""
World clock for the Shadowdark VTT core.

Two independent time sources live here: continuous world time in seconds and
the discrete round/turn counter of the active combat. Rounds only advance
through combat calls, never through world time. World time may be rewound by
the GM, so consumers must recompute rather than assume monotonic time.
"""

from typing import Any, Callable, Optional
import logging

from src.data_models import CombatPosition

logger = logging.getLogger(__name__)


class WorldClock:
    """
    Read side used by timed resources plus the controls the host drives.

    Attributes:
        combatant_count: Turns per round in the active combat
    """

    def __init__(self, world_time: float = 0.0, paused: bool = False):
        self._world_time = float(world_time)
        self._paused = paused
        self._combat: Optional[CombatPosition] = None
        self.combatant_count = 1
        self._pause_callbacks: list[Callable[[bool], None]] = []

    # =========================================================================
    # WORLD TIME
    # =========================================================================

    def now(self) -> float:
        """Elapsed world seconds since the world epoch."""
        return self._world_time

    def advance(self, seconds: float) -> float:
        """Advance world time and return the new value."""
        self._world_time += seconds
        return self._world_time

    def set_time(self, world_time: float) -> None:
        """Jump to an absolute world time; rewinding is allowed."""
        if world_time < self._world_time:
            logger.info(f"World time rewound from {self._world_time} to {world_time}")
        self._world_time = float(world_time)

    # =========================================================================
    # GLOBAL PAUSE
    # =========================================================================

    @property
    def paused(self) -> bool:
        return self._paused

    def set_paused(self, paused: bool) -> None:
        """Set the global pause flag and notify listeners on change."""
        if paused == self._paused:
            return
        self._paused = paused
        for callback in self._pause_callbacks:
            try:
                callback(paused)
            except Exception as e:
                logger.error(f"Error in pause callback: {e}")

    def register_pause_callback(self, callback: Callable[[bool], None]) -> None:
        self._pause_callbacks.append(callback)

    # =========================================================================
    # COMBAT
    # =========================================================================

    @property
    def in_combat(self) -> bool:
        return self._combat is not None

    def combat_position(self) -> Optional[CombatPosition]:
        """Current (round, turn), or None when no combat is active."""
        return self._combat

    def start_combat(self, combatant_count: int = 1) -> CombatPosition:
        """Begin combat at round 1, turn 0."""
        self.combatant_count = max(1, combatant_count)
        self._combat = CombatPosition(round=1, turn=0)
        logger.debug(f"Combat started with {self.combatant_count} combatants")
        return self._combat

    def next_turn(self) -> CombatPosition:
        """Advance one turn, rolling into the next round after the last combatant."""
        if self._combat is None:
            raise RuntimeError("No active combat")
        turn = self._combat.turn + 1
        if turn >= self.combatant_count:
            return self.next_round()
        self._combat = CombatPosition(round=self._combat.round, turn=turn)
        return self._combat

    def next_round(self) -> CombatPosition:
        if self._combat is None:
            raise RuntimeError("No active combat")
        self._combat = CombatPosition(round=self._combat.round + 1, turn=0)
        return self._combat

    def end_combat(self) -> None:
        self._combat = None
        logger.debug("Combat ended")

    def get_time_summary(self) -> dict[str, Any]:
        return {
            "world_time": self._world_time,
            "paused": self._paused,
            "combat": self._combat.to_combat_time() if self._combat else None,
        }
