from __future__ import annotations

import asyncio
import unittest
from typing import Any

from starlette.websockets import WebSocketDisconnect

from hrportal.realtime import ConnectionManager


class _FakeWebSocket:
    def __init__(self, *, fail: bool = False):
        self.accepted = False
        self.sent: list[dict[str, Any]] = []
        self._fail = fail

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, payload: dict[str, Any]) -> None:
        if self._fail:
            raise WebSocketDisconnect(code=1006)
        self.sent.append(payload)


class ConnectionManagerTests(unittest.TestCase):
    def test_send_to_users_reaches_every_socket_of_user(self) -> None:
        async def scenario() -> tuple[list[int], _FakeWebSocket, _FakeWebSocket, _FakeWebSocket]:
            manager = ConnectionManager()
            laptop = _FakeWebSocket()
            phone = _FakeWebSocket()
            other = _FakeWebSocket()
            await manager.connect(1, laptop)
            await manager.connect(1, phone)
            await manager.connect(2, other)
            delivered = await manager.send_to_users([1, 1, 3], {"type": "chat_message"})
            return delivered, laptop, phone, other

        delivered, laptop, phone, other = asyncio.run(scenario())

        self.assertEqual(delivered, [1])
        self.assertTrue(laptop.accepted)
        self.assertEqual(laptop.sent, [{"type": "chat_message"}])
        self.assertEqual(phone.sent, [{"type": "chat_message"}])
        self.assertEqual(other.sent, [])

    def test_failed_socket_is_dropped(self) -> None:
        async def scenario() -> tuple[list[int], bool]:
            manager = ConnectionManager()
            await manager.connect(4, _FakeWebSocket(fail=True))
            delivered = await manager.send_to_users([4], {"type": "ping"})
            return delivered, manager.is_connected(4)

        delivered, still_connected = asyncio.run(scenario())

        self.assertEqual(delivered, [])
        self.assertFalse(still_connected)

    def test_broadcast_and_disconnect(self) -> None:
        async def scenario() -> tuple[list[int], set[int]]:
            manager = ConnectionManager()
            first = _FakeWebSocket()
            second = _FakeWebSocket()
            await manager.connect(1, first)
            await manager.connect(2, second)
            await manager.disconnect(2, second)
            delivered = await manager.broadcast({"type": "attendance_update"})
            return delivered, manager.connected_user_ids()

        delivered, connected = asyncio.run(scenario())

        self.assertEqual(delivered, [1])
        self.assertEqual(connected, {1})


if __name__ == "__main__":
    unittest.main()
