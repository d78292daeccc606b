"""
Socket relay between players and the GM instance.

Only the GM instance may mutate documents. Player instances forward the
handful of mutating requests they can trigger (toggling a light, dropping or
picking up a light on the scene) as socket messages on the system channel.
Delivery is fire-and-forget and at most once; the GM side dispatches each
message to the handler registered for its type.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional
import inspect
import logging

from src.data_models import SYSTEM_ID

logger = logging.getLogger(__name__)

SOCKET_CHANNEL = f"system.{SYSTEM_ID}"


class AuthorityRole(str, Enum):
    """Role of the local process."""
    GAME_MASTER = "game_master"
    PLAYER = "player"

    @property
    def is_authoritative(self) -> bool:
        return self == AuthorityRole.GAME_MASTER


class PermissionDeniedError(Exception):
    """Raised when a non-authoritative role attempts a GM-only action."""

    pass


def require_authority(role: AuthorityRole, action: str) -> None:
    """
    Check that ``role`` may perform ``action`` directly.

    Raises:
        PermissionDeniedError: If the role is not authoritative
    """
    if not role.is_authoritative:
        raise PermissionDeniedError(f"GM required to {action}")


class RelayMessageType(str, Enum):
    """Requests a player instance can forward to the GM."""
    TOGGLE_LIGHT_SOURCE = "toggleLightSource"
    PICKUP_LIGHT_SOURCE_FROM_SCENE = "pickupLightSourceFromScene"
    DROP_LIGHT_SOURCE_ON_SCENE = "dropLightSourceOnScene"


@dataclass
class RelayMessage:
    """A message on the system socket channel."""
    message_type: RelayMessageType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_socket_message(self) -> dict[str, Any]:
        """Wire format: ``{"type": ..., "data": ...}``."""
        return {
            "type": self.message_type.value,
            "data": self.data,
        }

    @classmethod
    def from_socket_message(cls, message: dict[str, Any]) -> Optional["RelayMessage"]:
        """Parse a wire message; returns None for unknown message types."""
        try:
            message_type = RelayMessageType(message.get("type"))
        except ValueError:
            return None
        return cls(message_type=message_type, data=dict(message.get("data") or {}))


RelayHandler = Callable[[dict[str, Any]], Optional[Awaitable[None]]]


class SocketRelay(ABC):
    """Transport seam for forwarding requests to the authoritative instance."""

    channel: str = SOCKET_CHANNEL

    @abstractmethod
    def register_handler(self, message_type: RelayMessageType, handler: RelayHandler) -> None:
        ...

    @abstractmethod
    async def emit(self, message: RelayMessage) -> None:
        ...


class LocalSocketRelay(SocketRelay):
    """
    In-process relay.

    ``emit`` records the wire message and delivers it to the handler
    registered for its type, if any. Every emitted message is kept in
    ``sent`` for inspection.
    """

    def __init__(self, channel: str = SOCKET_CHANNEL):
        self.channel = channel
        self._handlers: dict[RelayMessageType, RelayHandler] = {}
        self.sent: list[dict[str, Any]] = []

    def register_handler(self, message_type: RelayMessageType, handler: RelayHandler) -> None:
        if message_type in self._handlers:
            logger.debug(f"Replacing relay handler for {message_type.value}")
        self._handlers[message_type] = handler

    async def emit(self, message: RelayMessage) -> None:
        wire = message.to_socket_message()
        self.sent.append(wire)
        logger.debug(f"Emitting {wire['type']} on {self.channel}")
        await self.receive(wire)

    async def receive(self, wire: dict[str, Any]) -> bool:
        """
        Dispatch a wire message to its handler.

        Returns:
            True if a handler ran without raising
        """
        message = RelayMessage.from_socket_message(wire)
        if message is None:
            logger.warning(f"Dropping unknown socket message type: {wire.get('type')!r}")
            return False

        handler = self._handlers.get(message.message_type)
        if handler is None:
            logger.debug(f"No handler registered for {message.message_type.value}")
            return False

        try:
            result = handler(message.data)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Error handling {message.message_type.value}: {e}")
            return False
        return True
