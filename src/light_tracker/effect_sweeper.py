"""
Removes expired effects from actors.

Effects are evaluated against the world clock and the combat counter. An
effect evaluated on its creation turn is left alone until the next one.
"""

import logging

from src.documents.document_store import DocumentStore
from src.documents.timed_resource import remaining_duration
from src.game_state.world_clock import WorldClock
from src.observability.run_log import get_run_log

logger = logging.getLogger(__name__)


class EffectExpirySweeper:
    """Deletes every expired effect item in the store."""

    def __init__(self, store: DocumentStore, clock: WorldClock):
        self.store = store
        self.clock = clock

    async def sweep(self) -> list[tuple[str, str]]:
        """
        Evaluate every effect on every actor and delete the expired ones.

        Returns:
            (actor_id, item_id) pairs of the deleted effects
        """
        expired: list[tuple[str, str]] = []

        for actor in await self.store.list_actors():
            for item in actor.get_effects():
                try:
                    status = remaining_duration(item, self.clock)
                    if status is None or not status.expired:
                        continue
                    await self.store.delete_item(item.item_id, actor_id=actor.actor_id)
                except Exception as e:
                    # A broken effect is skipped, the sweep goes on
                    logger.error(f"Failed to expire effect {item.name} on {actor.name}: {e}")
                    continue

                expired.append((actor.actor_id, item.item_id))
                logger.info(f"Effect {item.name} on {actor.name} has expired")
                get_run_log().log_expiry(
                    owner_id=actor.actor_id,
                    resource_id=item.item_id,
                    name=item.name,
                    kind="effect",
                )

        return expired
