"""Tests for the WebSocket relay."""

import asyncio
from unittest.mock import Mock, patch

import pytest
from fastapi.testclient import TestClient

from nation_grid.api import main
from nation_grid.api.websocket import ConnectionManager, manager


class FakeSocket:
    def __init__(self, fail=False):
        self.fail = fail
        self.accepted = False
        self.sent = []

    async def accept(self):
        self.accepted = True

    async def send_json(self, message):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(message)


class TestConnectionManager:
    """Test broadcast fan-out."""

    def setup_method(self):
        self.manager = ConnectionManager()

    def test_broadcast_reaches_everyone(self):
        sockets = [FakeSocket(), FakeSocket(), FakeSocket()]

        async def run():
            for socket in sockets:
                await self.manager.connect(socket)
            return await self.manager.broadcast({"type": "unit_update"})

        assert asyncio.run(run()) == 3
        assert all(s.accepted for s in sockets)
        assert all(s.sent == [{"type": "unit_update"}] for s in sockets)

    def test_failed_send_drops_connection(self):
        healthy, broken = FakeSocket(), FakeSocket(fail=True)

        async def run():
            await self.manager.connect(healthy)
            await self.manager.connect(broken)
            return await self.manager.broadcast({"type": "event"})

        assert asyncio.run(run()) == 1
        assert healthy.sent == [{"type": "event"}]
        assert self.manager.active_connections == [healthy]

    def test_disconnect_is_idempotent(self):
        socket = FakeSocket()
        asyncio.run(self.manager.connect(socket))
        self.manager.disconnect(socket)
        self.manager.disconnect(socket)
        assert self.manager.active_connections == []

    def test_notify_sends_typed_message(self):
        socket = FakeSocket()

        async def run():
            await self.manager.connect(socket)
            return await self.manager.notify("structure_update", "country-1")

        assert asyncio.run(run()) == 1
        assert socket.sent == [{"type": "structure_update", "country_id": "country-1"}]

    def test_notify_rejects_unknown_type(self):
        with pytest.raises(ValueError):
            asyncio.run(self.manager.notify("weather_update", "country-1"))


class TestRelayEndpoint:
    """Test the /ws endpoint end to end."""

    @patch.object(main, "db", Mock())
    def test_message_is_relayed_to_all_clients(self):
        with TestClient(main.app) as client:
            with client.websocket_connect("/ws") as first, client.websocket_connect("/ws") as second:
                first.send_json({"type": "territory_update"})
                assert first.receive_json() == {"type": "territory_update"}
                assert second.receive_json() == {"type": "territory_update"}

    @patch.object(main, "db", Mock())
    def test_malformed_message_is_ignored(self):
        with TestClient(main.app) as client:
            with client.websocket_connect("/ws") as socket:
                socket.send_text("not json")
                socket.send_json({"type": "resource_update"})
                assert socket.receive_json() == {"type": "resource_update"}

    @patch.object(main, "db", Mock())
    def test_binary_frame_is_ignored(self):
        with TestClient(main.app) as client:
            with client.websocket_connect("/ws") as socket:
                socket.send_bytes(b"\x00\x01")
                socket.send_json({"type": "unit_update"})
                assert socket.receive_json() == {"type": "unit_update"}

        # The relay exits cleanly and forgets the socket
        assert manager.active_connections == []

    @patch.object(main, "db", Mock())
    def test_closed_socket_is_forgotten(self):
        with TestClient(main.app) as client:
            with client.websocket_connect("/ws") as socket:
                socket.send_json({"type": "event"})
                socket.receive_json()
                assert len(manager.active_connections) == 1

        assert manager.active_connections == []
