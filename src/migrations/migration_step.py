"""
Base class for versioned data migrations.

Each step carries the schema version it brings the world to. The runner hands
it raw document sources (plain dicts) and writes back whatever partial update
it returns. Steps must be idempotent: running one twice over the same data
returns an empty update the second time.
"""

from typing import Any, Optional

from src.game_state.settings import GameSettings


class MigrationError(Exception):
    """A migration failed for a single document."""

    def __init__(
        self,
        message: str,
        document_type: str = "",
        name: str = "",
        pack: Optional[str] = None,
    ):
        super().__init__(message)
        self.document_type = document_type
        self.name = name
        self.pack = pack


class MigrationStep:
    """Base class for all migration steps."""
    version: float = 0
    description = "Base Migration"

    async def update_actor(self, actor_source: dict[str, Any]) -> dict[str, Any]:
        """Partial update for an actor source; empty means unchanged."""
        return {}

    async def update_item(
        self,
        item_source: dict[str, Any],
        actor_source: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """Partial update for an item source, with its owner's source if embedded."""
        return {}

    async def update_settings(self, settings: GameSettings) -> None:
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(version={self.version})"
