"""
Tests for the socket relay to the GM instance.
"""

import pytest

from src.integrations.foundry.socket_relay import (
    SOCKET_CHANNEL,
    AuthorityRole,
    LocalSocketRelay,
    PermissionDeniedError,
    RelayMessage,
    RelayMessageType,
    require_authority,
)


class TestRelayMessage:

    def test_wire_format(self):
        message = RelayMessage(
            RelayMessageType.TOGGLE_LIGHT_SOURCE, {"actor": "kell", "item": "torch1"}
        )
        assert message.to_socket_message() == {
            "type": "toggleLightSource",
            "data": {"actor": "kell", "item": "torch1"},
        }

    def test_parse(self):
        message = RelayMessage.from_socket_message(
            {"type": "dropLightSourceOnScene", "data": {"owner": "kell"}}
        )
        assert message.message_type == RelayMessageType.DROP_LIGHT_SOURCE_ON_SCENE
        assert message.data == {"owner": "kell"}

    def test_unknown_type(self):
        assert RelayMessage.from_socket_message({"type": "rollDice"}) is None


class TestAuthority:

    def test_gm_is_authoritative(self):
        assert AuthorityRole.GAME_MASTER.is_authoritative
        assert not AuthorityRole.PLAYER.is_authoritative

    def test_require_authority(self):
        require_authority(AuthorityRole.GAME_MASTER, "toggle light sources")
        with pytest.raises(PermissionDeniedError, match="GM required to toggle"):
            require_authority(AuthorityRole.PLAYER, "toggle light sources")


class TestLocalSocketRelay:

    def test_default_channel(self):
        assert LocalSocketRelay().channel == SOCKET_CHANNEL == "system.shadowdark"

    @pytest.mark.asyncio
    async def test_emit_delivers_to_handler(self):
        relay = LocalSocketRelay()
        received = []
        relay.register_handler(RelayMessageType.TOGGLE_LIGHT_SOURCE, received.append)

        await relay.emit(RelayMessage(RelayMessageType.TOGGLE_LIGHT_SOURCE, {"actor": "a"}))

        assert received == [{"actor": "a"}]
        assert relay.sent == [{"type": "toggleLightSource", "data": {"actor": "a"}}]

    @pytest.mark.asyncio
    async def test_async_handler_awaited(self):
        relay = LocalSocketRelay()
        received = []

        async def handler(data):
            received.append(data)

        relay.register_handler(RelayMessageType.PICKUP_LIGHT_SOURCE_FROM_SCENE, handler)
        assert await relay.receive({"type": "pickupLightSourceFromScene", "data": {}}) is True
        assert received == [{}]

    @pytest.mark.asyncio
    async def test_message_without_handler_is_dropped(self):
        relay = LocalSocketRelay()
        await relay.emit(RelayMessage(RelayMessageType.TOGGLE_LIGHT_SOURCE))

        assert len(relay.sent) == 1
        assert await relay.receive(relay.sent[0]) is False

    @pytest.mark.asyncio
    async def test_unknown_type_dropped(self):
        assert await LocalSocketRelay().receive({"type": "rollDice", "data": {}}) is False

    @pytest.mark.asyncio
    async def test_handler_error_does_not_propagate(self):
        relay = LocalSocketRelay()

        def handler(data):
            raise RuntimeError("boom")

        relay.register_handler(RelayMessageType.TOGGLE_LIGHT_SOURCE, handler)
        assert await relay.receive({"type": "toggleLightSource", "data": {}}) is False
