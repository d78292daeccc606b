"""
Dropping light sources on the scene and picking them up again.

A dropped light becomes a stand-alone ``Light`` actor that carries the item's
source (including its remaining fuel), so picking it up recreates the same
light on a character. Both operations need GM permissions; players forward
them over the socket relay.
"""

from typing import Any, Optional
import logging

from src.data_models import (
    ActorDocument,
    ActorType,
    ItemDocument,
    new_document_id,
)
from src.documents.document_store import DocumentNotFoundError, DocumentStore
from src.integrations.foundry.socket_relay import (
    AuthorityRole,
    RelayMessage,
    RelayMessageType,
    SocketRelay,
    require_authority,
)

logger = logging.getLogger(__name__)

# Token light configuration per light template
LIGHT_TEMPLATES: dict[str, dict[str, Any]] = {
    "torch": {
        "bright": 15,
        "dim": 30,
        "color": "#d1c846",
        "alpha": 0.2,
        "animation": {"type": "torch", "speed": 3, "intensity": 3},
    },
    "lantern": {
        "bright": 15,
        "dim": 30,
        "color": "#d1c846",
        "alpha": 0.15,
        "animation": {"type": "flame", "speed": 2, "intensity": 2},
    },
    "lightSpellNear": {
        "bright": 15,
        "dim": 30,
        "color": "#ffffff",
        "alpha": 0.1,
        "animation": {"type": "pulse", "speed": 1, "intensity": 1},
    },
    "lightSpellDouble": {
        "bright": 30,
        "dim": 60,
        "color": "#ffffff",
        "alpha": 0.1,
        "animation": {"type": "pulse", "speed": 1, "intensity": 1},
    },
}


class SceneLightHandler:
    """Drop and pickup of light sources, with relay forwarding for players."""

    def __init__(
        self,
        store: DocumentStore,
        role: AuthorityRole = AuthorityRole.GAME_MASTER,
        relay: Optional[SocketRelay] = None,
        tracker: Optional[Any] = None,
    ):
        self.store = store
        self.role = role
        self.relay = relay
        self.tracker = tracker

        if relay is not None and role.is_authoritative:
            relay.register_handler(RelayMessageType.DROP_LIGHT_SOURCE_ON_SCENE, self._on_drop)
            relay.register_handler(
                RelayMessageType.PICKUP_LIGHT_SOURCE_FROM_SCENE, self._on_pickup
            )

    # =========================================================================
    # REQUESTS
    # =========================================================================

    async def request_drop(
        self, owner_id: str, item_id: str, x: float = 0, y: float = 0
    ) -> Optional[ActorDocument]:
        """
        Drop a carried light at (x, y).

        Returns:
            The new Light actor, or None when the request was forwarded
        """
        if not self.role.is_authoritative:
            await self._forward(
                RelayMessageType.DROP_LIGHT_SOURCE_ON_SCENE,
                {"owner": owner_id, "item": item_id, "x": x, "y": y},
            )
            return None
        return await self.drop_light_source(owner_id, item_id, x, y)

    async def request_pickup(
        self, character_id: str, light_actor_id: str
    ) -> Optional[ItemDocument]:
        """
        Pick up a dropped light.

        Returns:
            The recreated item, or None when the request was forwarded
        """
        if not self.role.is_authoritative:
            await self._forward(
                RelayMessageType.PICKUP_LIGHT_SOURCE_FROM_SCENE,
                {"character": character_id, "lightActor": light_actor_id},
            )
            return None
        return await self.pickup_light_source(character_id, light_actor_id)

    async def _forward(self, message_type: RelayMessageType, data: dict[str, Any]) -> None:
        if self.relay is None:
            logger.warning(f"No socket relay available to forward {message_type.value}")
            return
        await self.relay.emit(RelayMessage(message_type=message_type, data=data))

    async def _on_drop(self, data: dict[str, Any]) -> None:
        await self.drop_light_source(
            data["owner"], data["item"], data.get("x", 0), data.get("y", 0)
        )

    async def _on_pickup(self, data: dict[str, Any]) -> None:
        await self.pickup_light_source(data["character"], data["lightActor"])

    # =========================================================================
    # GM OPERATIONS
    # =========================================================================

    async def drop_light_source(
        self, owner_id: str, item_id: str, x: float = 0, y: float = 0
    ) -> ActorDocument:
        """
        Replace a carried light with a Light actor on the scene.

        Raises:
            PermissionDeniedError: If not called on the GM instance
            DocumentNotFoundError: If the item does not exist on the owner
            ValueError: If the item is not a light source or has no known template
        """
        require_authority(self.role, "drop a light source")

        item = await self.store.get_item(item_id, actor_id=owner_id)
        if item is None:
            raise DocumentNotFoundError(f"Item {item_id} not found on actor {owner_id}")
        if not item.is_light():
            raise ValueError(f"{item.name} is not a light source")

        template = item.light.get("template")
        if template not in LIGHT_TEMPLATES:
            raise ValueError(f"Unknown light template {template!r} on {item.name}")

        light_actor = ActorDocument(
            actor_id=new_document_id(),
            name=f"{item.name} (dropped)",
            actor_type=ActorType.LIGHT,
            img=item.img,
            system={
                "light": {"template": template, **LIGHT_TEMPLATES[template]},
                "position": {"x": x, "y": y},
                "lightSource": item.to_object(),
            },
        )
        await self.store.create_actor(light_actor)
        await self.store.delete_item(item_id, actor_id=owner_id)
        logger.info(f"{item.name} dropped on the scene at ({x}, {y})")

        if self.tracker is not None:
            await self.tracker.gather()
        return light_actor

    async def pickup_light_source(self, character_id: str, light_actor_id: str) -> ItemDocument:
        """
        Move a dropped light back onto a character, lit.

        Raises:
            PermissionDeniedError: If not called on the GM instance
            DocumentNotFoundError: If the character or Light actor does not exist
            ValueError: If the actor is not a dropped light
        """
        require_authority(self.role, "pick up a light source")

        light_actor = await self.store.get_actor(light_actor_id)
        if light_actor is None:
            raise DocumentNotFoundError(f"Light actor {light_actor_id} not found")
        source = light_actor.system.get("lightSource")
        if light_actor.actor_type != ActorType.LIGHT or not source:
            raise ValueError(f"{light_actor.name} is not a dropped light source")

        if await self.store.get_actor(character_id) is None:
            raise DocumentNotFoundError(f"Actor {character_id} not found")

        item = ItemDocument.from_object({**source, "_id": new_document_id()}, actor_id=character_id)
        item.apply_update({"system.light.active": True})
        await self.store.create_item(item, actor_id=character_id)
        await self.store.delete_actor(light_actor_id)
        logger.info(f"{item.name} picked up by {character_id}")

        if self.tracker is not None:
            await self.tracker.gather()
        return item
