import asyncio

from GeoDispatch.presence.lifecycle import ConnectionLifecycleHandler
from GeoDispatch.presence.registry import Position, PresenceRegistry


class _Handle:
    pass


def test_connect_alone_does_not_touch_registry():
    async def scenario():
        registry = PresenceRegistry()
        handler = ConnectionLifecycleHandler(registry)
        await registry.register("alice", Position(0.0, 0.0))

        await handler.on_connect(_Handle())
        assert registry.connected_count() == 0
        assert handler.get_stats()["connects"] == 1

    asyncio.run(scenario())


def test_register_identity_binds_known_user():
    async def scenario():
        registry = PresenceRegistry()
        handler = ConnectionLifecycleHandler(registry)
        handle = _Handle()
        await registry.register("alice", Position(0.0, 0.0))

        await handler.on_connect(handle)
        assert await handler.on_register_identity(handle, "alice") is True
        assert (await registry.get("alice")).connection_handle is handle

    asyncio.run(scenario())


def test_register_identity_for_unknown_user_is_dropped():
    async def scenario():
        registry = PresenceRegistry()
        handler = ConnectionLifecycleHandler(registry)

        assert await handler.on_register_identity(_Handle(), "ghost") is False
        assert registry.count() == 0
        assert handler.get_stats()["identities_rejected"] == 1

    asyncio.run(scenario())


def test_register_identity_refreshes_position():
    async def scenario():
        registry = PresenceRegistry()
        handler = ConnectionLifecycleHandler(registry)
        await registry.register("alice", Position(0.0, 0.0))

        await handler.on_register_identity(_Handle(), "alice", Position(12.5, -3.0))
        assert (await registry.get("alice")).position == Position(12.5, -3.0)

    asyncio.run(scenario())


def test_reregister_identity_moves_to_new_connection():
    async def scenario():
        registry = PresenceRegistry()
        handler = ConnectionLifecycleHandler(registry)
        first, second = _Handle(), _Handle()
        await registry.register("alice", Position(0.0, 0.0))

        await handler.on_register_identity(first, "alice")
        await handler.on_register_identity(second, "alice")
        await handler.on_disconnect(first)

        assert (await registry.get("alice")).connection_handle is second

    asyncio.run(scenario())


def test_disconnect_is_idempotent_and_safe_without_identity():
    async def scenario():
        registry = PresenceRegistry()
        handler = ConnectionLifecycleHandler(registry)
        handle = _Handle()
        await registry.register("alice", Position(0.0, 0.0))

        assert await handler.on_disconnect(_Handle()) is None

        await handler.on_register_identity(handle, "alice")
        assert await handler.on_disconnect(handle) == "alice"
        assert await handler.on_disconnect(handle) is None
        assert await registry.nearest_eligible(Position(0.0, 0.0)) is None

    asyncio.run(scenario())


def test_identity_bind_and_position_refresh_are_one_registry_call(monkeypatch):
    async def scenario():
        registry = PresenceRegistry()
        handler = ConnectionLifecycleHandler(registry)
        await registry.register("alice", Position(0.0, 0.0))

        async def no_separate_update(*_args, **_kwargs):
            raise AssertionError("position must be stored together with the handle")

        monkeypatch.setattr(registry, "update_position", no_separate_update)

        handle = _Handle()
        assert await handler.on_register_identity(handle, "alice", Position(12.5, -3.0)) is True
        user = await registry.get("alice")
        assert user.connection_handle is handle
        assert user.position == Position(12.5, -3.0)

    asyncio.run(scenario())
