"""Tests for SubscriptionRegistry: coalescing, intervals, item results and teardown."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from fakes import FakeProtocolClient, FakePublisherFactory, FakeSession, key

from uaweb_gateway.application.session_registry import SessionRegistry
from uaweb_gateway.application.subscription_registry import ItemIndex, SubscriptionRegistry
from uaweb_gateway.domain.errors import InvalidNodeId, UnsupportedBrokerScheme
from uaweb_gateway.domain.model.monitoring import MonitorableNode
from uaweb_gateway.domain.model.nodes import DeadbandMode

SERVER = "opc.tcp://plant:4840"
BROKER = "mqtt:broker:1883"
TOPIC = "plant/line1"


def item(node_id: str, interval: float = 500, **kwargs: Any) -> MonitorableNode:
    return MonitorableNode(node_id=node_id, sampling_interval=interval, **kwargs)


@pytest.fixture()
def notifications() -> list[tuple[int, list[Any]]]:
    return []


@pytest.fixture()
def sessions(protocol: FakeProtocolClient) -> SessionRegistry:
    return SessionRegistry(protocol)


@pytest.fixture()
def registry(
    sessions: SessionRegistry,
    publishers: FakePublisherFactory,
    notifications: list[tuple[int, list[Any]]],
) -> SubscriptionRegistry:
    return SubscriptionRegistry(
        sessions,
        publishers,
        ItemIndex(),
        lambda handle, values: notifications.append((handle, list(values))),
    )


def only_session(protocol: FakeProtocolClient) -> FakeSession:
    assert len(protocol.sessions) == 1
    return protocol.sessions[0]


class TestMonitor:
    @pytest.mark.asyncio
    async def test_creates_subscription_with_minimum_interval(
        self, registry: SubscriptionRegistry, protocol: FakeProtocolClient
    ) -> None:
        results = await registry.monitor(
            SERVER, [item("ns=2;s=A", 200), item("ns=2;s=B", 500)], BROKER, TOPIC
        )

        assert results == [True, True]
        session = only_session(protocol)
        assert len(session.subscriptions) == 1
        assert session.subscriptions[0].publishing_interval == 200

    @pytest.mark.asyncio
    async def test_interval_is_lowered_never_raised(
        self, registry: SubscriptionRegistry, protocol: FakeProtocolClient
    ) -> None:
        await registry.monitor(SERVER, [item("ns=2;s=A", 200), item("ns=2;s=B", 500)], BROKER, TOPIC)
        await registry.monitor(SERVER, [item("ns=2;s=C", 100), item("ns=2;s=D", 900)], BROKER, TOPIC)

        record = registry.record(SERVER, BROKER, TOPIC)
        assert record is not None
        assert record.publishing_interval == 100
        assert len(record.items) == 4

        await registry.monitor(SERVER, [item("ns=2;s=E", 1000)], BROKER, TOPIC)

        subscription = only_session(protocol).subscriptions[0]
        assert subscription.publishing_interval == 100
        assert subscription.interval_updates == [100]

    @pytest.mark.asyncio
    async def test_refused_item_is_reported_and_not_kept(
        self, registry: SubscriptionRegistry, protocol: FakeProtocolClient
    ) -> None:
        protocol.prepare = lambda session: session.refuse.add(key("ns=2;s=Missing"))

        results = await registry.monitor(
            SERVER, [item("ns=2;s=A"), item("ns=2;s=Missing")], BROKER, TOPIC
        )

        assert results == [True, False]
        record = registry.record(SERVER, BROKER, TOPIC)
        assert record is not None
        assert [i.label for i in record.items.values()] == ["ns=2;s=A"]
        subscription = only_session(protocol).subscriptions[0]
        assert len(subscription.removed) == 1

    @pytest.mark.asyncio
    async def test_item_request_error_is_reported_as_false(
        self, registry: SubscriptionRegistry, protocol: FakeProtocolClient
    ) -> None:
        protocol.prepare = lambda session: session.explode.add(key("ns=2;s=B"))

        results = await registry.monitor(
            SERVER, [item("ns=2;s=A"), item("ns=2;s=B"), item("ns=2;s=C")], BROKER, TOPIC
        )

        assert results == [True, False, True]

    @pytest.mark.asyncio
    async def test_all_items_refused_leaves_no_subscription(
        self, registry: SubscriptionRegistry, protocol: FakeProtocolClient
    ) -> None:
        protocol.prepare = lambda session: session.refuse.add(key("ns=2;s=Missing"))

        results = await registry.monitor(SERVER, [item("ns=2;s=Missing")], BROKER, TOPIC)

        assert results == [False]
        assert registry.record(SERVER, BROKER, TOPIC) is None
        session = only_session(protocol)
        assert session.deleted == session.subscriptions

    @pytest.mark.asyncio
    async def test_empty_item_list(
        self, registry: SubscriptionRegistry, protocol: FakeProtocolClient
    ) -> None:
        assert await registry.monitor(SERVER, [], BROKER, TOPIC) == []
        assert registry.records(SERVER) == []
        assert only_session(protocol).subscriptions == []

    @pytest.mark.asyncio
    async def test_distinct_topics_get_distinct_subscriptions(
        self, registry: SubscriptionRegistry, protocol: FakeProtocolClient
    ) -> None:
        await registry.monitor(SERVER, [item("ns=2;s=A")], BROKER, "plant/a")
        await registry.monitor(SERVER, [item("ns=2;s=A")], BROKER, "plant/b")
        await registry.monitor(SERVER, [item("ns=2;s=A")], "ws:local", "plant/a")

        assert len(registry.records(SERVER)) == 3
        assert len(only_session(protocol).subscriptions) == 3

    @pytest.mark.asyncio
    async def test_broker_alias_shares_record(self, registry: SubscriptionRegistry) -> None:
        await registry.monitor(SERVER, [item("ns=2;s=A")], "signalr:hub", TOPIC)
        await registry.monitor(SERVER, [item("ns=2;s=B")], "ws:hub", TOPIC)

        assert len(registry.records(SERVER)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_monitor_calls_share_one_subscription(
        self, registry: SubscriptionRegistry, protocol: FakeProtocolClient
    ) -> None:
        results = await asyncio.gather(
            *(
                registry.monitor(SERVER, [item(f"ns=2;i={n}", 100 * (n + 1))], BROKER, TOPIC)
                for n in range(8)
            )
        )

        assert results == [[True]] * 8
        session = only_session(protocol)
        assert len(session.subscriptions) == 1
        record = registry.record(SERVER, BROKER, TOPIC)
        assert record is not None
        assert len(record.items) == 8
        assert record.publishing_interval == 100

    @pytest.mark.asyncio
    async def test_deadband_filter_is_passed_through(
        self, registry: SubscriptionRegistry, protocol: FakeProtocolClient
    ) -> None:
        await registry.monitor(
            SERVER,
            [
                item("ns=2;s=A", deadband=DeadbandMode.ABSOLUTE, deadband_value=0.5),
                item("ns=2;s=B"),
            ],
            BROKER,
            TOPIC,
        )

        filters = list(only_session(protocol).subscriptions[0].filters.values())
        assert filters[0] is not None
        assert filters[0].mode is DeadbandMode.ABSOLUTE
        assert filters[0].value == 0.5
        assert filters[1] is None

    @pytest.mark.asyncio
    async def test_index_tracks_created_items(self, registry: SubscriptionRegistry) -> None:
        await registry.monitor(SERVER, [item("ns=2;s=A"), item("ns=2;s=B")], BROKER, TOPIC)

        record = registry.record(SERVER, BROKER, TOPIC)
        assert record is not None
        assert len(registry.index) == 2
        for handle in record.items:
            assert registry.owner_of(handle) is record

    @pytest.mark.asyncio
    async def test_replaced_session_gets_fresh_subscription(
        self,
        registry: SubscriptionRegistry,
        sessions: SessionRegistry,
        protocol: FakeProtocolClient,
    ) -> None:
        await registry.monitor(SERVER, [item("ns=2;s=A")], BROKER, TOPIC)
        dead = only_session(protocol)
        dead.alive = False
        dead.delete_ok = False
        assert await sessions.probe_and_recover(SERVER) is True

        results = await registry.monitor(SERVER, [item("ns=2;s=A")], BROKER, TOPIC)

        assert results == [True]
        fresh = protocol.sessions[1]
        assert len(fresh.subscriptions) == 1
        record = registry.record(SERVER, BROKER, TOPIC)
        assert record is not None
        assert record.session is fresh
        assert record.subscription is fresh.subscriptions[0]
        assert len(record.items) == 1
        assert len(registry.index) == 1

    @pytest.mark.asyncio
    async def test_invalid_node_id_fails_whole_call(self, registry: SubscriptionRegistry) -> None:
        with pytest.raises(InvalidNodeId):
            await registry.monitor(SERVER, [item("ns=2;s=A"), item("bogus")], BROKER, TOPIC)

        assert registry.records(SERVER) == []

    @pytest.mark.asyncio
    async def test_unknown_broker_scheme(self, registry: SubscriptionRegistry) -> None:
        with pytest.raises(UnsupportedBrokerScheme):
            await registry.monitor(SERVER, [item("ns=2;s=A")], "amqp:broker", TOPIC)


class TestUnmonitor:
    @pytest.mark.asyncio
    async def test_unknown_triple(self, registry: SubscriptionRegistry) -> None:
        assert await registry.unmonitor(SERVER, BROKER, TOPIC) is False

    @pytest.mark.asyncio
    async def test_unknown_topic_leaves_other_topics_alone(
        self, registry: SubscriptionRegistry, protocol: FakeProtocolClient
    ) -> None:
        await registry.monitor(SERVER, [item("ns=2;s=A")], BROKER, "plant/a")
        await registry.monitor(SERVER, [item("ns=2;s=B")], BROKER, "plant/b")

        assert await registry.unmonitor(SERVER, BROKER, "plant/c") is False

        assert len(registry.records(SERVER)) == 2
        assert len(registry.index) == 2
        for record in registry.records(SERVER):
            for handle in record.items:
                assert registry.owner_of(handle) is record
        assert only_session(protocol).deleted == []

    @pytest.mark.asyncio
    async def test_deletes_subscription_and_index_entries(
        self, registry: SubscriptionRegistry, protocol: FakeProtocolClient
    ) -> None:
        await registry.monitor(SERVER, [item("ns=2;s=A")], BROKER, TOPIC)

        assert await registry.unmonitor(SERVER, BROKER, TOPIC) is True

        assert registry.record(SERVER, BROKER, TOPIC) is None
        assert len(registry.index) == 0
        session = only_session(protocol)
        assert session.deleted == session.subscriptions

    @pytest.mark.asyncio
    async def test_deleting_last_triple_clears_server(
        self, registry: SubscriptionRegistry
    ) -> None:
        await registry.monitor(SERVER, [item("ns=2;s=A")], BROKER, "plant/a")
        await registry.monitor(SERVER, [item("ns=2;s=A")], BROKER, "plant/b")

        assert await registry.unmonitor(SERVER, BROKER, "plant/a") is True
        assert len(registry.records(SERVER)) == 1
        assert await registry.unmonitor(SERVER, BROKER, "plant/b") is True
        assert registry.records(SERVER) == []
        assert await registry.unmonitor(SERVER, BROKER, "plant/b") is False

    @pytest.mark.asyncio
    async def test_refused_delete_keeps_record(
        self, registry: SubscriptionRegistry, protocol: FakeProtocolClient
    ) -> None:
        await registry.monitor(SERVER, [item("ns=2;s=A")], BROKER, TOPIC)
        only_session(protocol).delete_ok = False

        assert await registry.unmonitor(SERVER, BROKER, TOPIC) is False
        assert registry.record(SERVER, BROKER, TOPIC) is not None
        assert len(registry.index) == 1

    @pytest.mark.asyncio
    async def test_subscription_of_replaced_session_is_dropped(
        self,
        registry: SubscriptionRegistry,
        sessions: SessionRegistry,
        protocol: FakeProtocolClient,
    ) -> None:
        await registry.monitor(SERVER, [item("ns=2;s=A")], BROKER, TOPIC)
        dead = only_session(protocol)
        dead.alive = False
        dead.delete_ok = False

        assert await sessions.probe_and_recover(SERVER) is True
        assert await registry.unmonitor(SERVER, BROKER, TOPIC) is True

        assert registry.record(SERVER, BROKER, TOPIC) is None
        assert len(registry.index) == 0
        assert dead.deleted == []

    @pytest.mark.asyncio
    async def test_server_locks_do_not_outlive_their_users(
        self, registry: SubscriptionRegistry
    ) -> None:
        servers = [f"opc.tcp://plant{n}:4840" for n in range(5)]
        for server in servers:
            await registry.monitor(server, [item("ns=2;s=A")], BROKER, TOPIC)
        await asyncio.gather(*(registry.unmonitor(server, BROKER, TOPIC) for server in servers))

        assert registry._locks == {}
        assert registry._lock_users == {}

    @pytest.mark.asyncio
    async def test_close_drops_everything(
        self, registry: SubscriptionRegistry, protocol: FakeProtocolClient
    ) -> None:
        await registry.monitor(SERVER, [item("ns=2;s=A")], BROKER, "plant/a")
        await registry.monitor(SERVER, [item("ns=2;s=B")], "ws:local", "plant/b")

        await registry.close()

        assert registry.records(SERVER) == []
        assert len(registry.index) == 0
        assert len(only_session(protocol).deleted) == 2


class TestItemIndex:
    def test_add_discard(self) -> None:
        index = ItemIndex()
        record: Any = object()

        index.add(1, record)
        assert 1 in index
        assert index.owner_of(1) is record

        index.discard(1)
        index.discard(1)
        assert index.owner_of(1) is None
        assert len(index) == 0
