import asyncio

import pytest

from GeoDispatch.dispatch.dispatcher import (
    MESSAGE_DELIVERED_EVENT,
    Delivered,
    DispatchRequest,
    MatchDispatcher,
    NoRecipient,
)
from GeoDispatch.presence.registry import Position, PresenceRegistry
from GeoDispatch.utils.geo_utils import haversine_distance


class _RecordingConnection:
    def __init__(self):
        self.sent = []

    async def send_event(self, event, data):
        self.sent.append((event, data))


class _ClosedConnection:
    async def send_event(self, event, data):
        raise ConnectionResetError("Cannot write to closing transport")


class _HangingConnection:
    async def send_event(self, event, data):
        await asyncio.sleep(10)


def test_nearest_bound_user_receives_message():
    async def scenario():
        registry = PresenceRegistry()
        a, b, c = _RecordingConnection(), _RecordingConnection(), _RecordingConnection()
        await registry.register("A", Position(0.0, 0.0))
        await registry.register("B", Position(10.0, 10.0))
        await registry.register("C", Position(0.0, 0.001))
        await registry.bind_connection("A", a)
        await registry.bind_connection("B", b)

        dispatcher = MatchDispatcher(registry)
        result = await dispatcher.dispatch(Position(0.0, 0.0), "need help")

        assert isinstance(result, Delivered)
        assert result.recipient == "A"
        assert result.distance_km == pytest.approx(0.0, abs=1e-9)
        assert haversine_distance(0.0, 0.0, 10.0, 10.0) == pytest.approx(1568.5, abs=1.0)

        assert a.sent == [
            (
                MESSAGE_DELIVERED_EVENT,
                {"message": "need help", "senderPosition": {"latitude": 0.0, "longitude": 0.0}},
            )
        ]
        assert b.sent == []
        assert c.sent == []

    asyncio.run(scenario())


def test_empty_registry_yields_no_recipient():
    async def scenario():
        dispatcher = MatchDispatcher(PresenceRegistry())
        result = await dispatcher.dispatch_request(DispatchRequest(Position(0.0, 0.0), "hello"))
        assert isinstance(result, NoRecipient)
        assert result.to_dict()["error"] == "NoRecipient"
        assert dispatcher.get_stats()["no_recipient"] == 1

    asyncio.run(scenario())


def test_message_is_sent_exactly_once():
    async def scenario():
        registry = PresenceRegistry()
        conn = _RecordingConnection()
        await registry.register("alice", Position(1.0, 1.0))
        await registry.bind_connection("alice", conn)

        dispatcher = MatchDispatcher(registry)
        await dispatcher.dispatch(Position(0.0, 0.0), "one")
        await dispatcher.dispatch(Position(0.0, 0.0), "two")

        assert [data["message"] for _, data in conn.sent] == ["one", "two"]

    asyncio.run(scenario())


def test_stale_handle_is_logged_and_swallowed():
    async def scenario():
        registry = PresenceRegistry()
        fallback = _RecordingConnection()
        await registry.register("gone", Position(0.0, 0.0))
        await registry.register("other", Position(1.0, 1.0))
        await registry.bind_connection("gone", _ClosedConnection())
        await registry.bind_connection("other", fallback)

        dispatcher = MatchDispatcher(registry)
        result = await dispatcher.dispatch(Position(0.0, 0.0), "hi")

        assert isinstance(result, Delivered)
        assert result.recipient == "gone"
        # No fallback recipient
        assert fallback.sent == []
        assert dispatcher.get_stats()["stale_sends"] == 1

    asyncio.run(scenario())


def test_send_timeout_counts_as_stale():
    async def scenario():
        registry = PresenceRegistry()
        await registry.register("slow", Position(0.0, 0.0))
        await registry.bind_connection("slow", _HangingConnection())

        dispatcher = MatchDispatcher(registry, send_timeout=0.01)
        result = await dispatcher.dispatch(Position(0.0, 0.0), "hi")

        assert isinstance(result, Delivered)
        assert dispatcher.get_stats()["stale_sends"] == 1

    asyncio.run(scenario())


def test_registry_remains_usable_after_failed_send():
    async def scenario():
        registry = PresenceRegistry()
        closed = _ClosedConnection()
        await registry.register("alice", Position(0.0, 0.0))
        await registry.bind_connection("alice", closed)

        dispatcher = MatchDispatcher(registry)
        await dispatcher.dispatch(Position(0.0, 0.0), "hi")

        replacement = _RecordingConnection()
        await registry.bind_connection("alice", replacement)
        await dispatcher.dispatch(Position(0.0, 0.0), "again")
        assert replacement.sent[0][1]["message"] == "again"

    asyncio.run(scenario())
