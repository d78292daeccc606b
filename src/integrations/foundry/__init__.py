"""Socket relay to the authoritative (GM) instance."""

from src.integrations.foundry.socket_relay import (
    SOCKET_CHANNEL,
    AuthorityRole,
    LocalSocketRelay,
    PermissionDeniedError,
    RelayMessage,
    RelayMessageType,
    SocketRelay,
    require_authority,
)

__all__ = [
    "SOCKET_CHANNEL",
    "AuthorityRole",
    "LocalSocketRelay",
    "PermissionDeniedError",
    "RelayMessage",
    "RelayMessageType",
    "SocketRelay",
    "require_authority",
]
