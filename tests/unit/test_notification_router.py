"""Tests for NotificationRouter: resolution, formatting, ordering and failure isolation."""

from __future__ import annotations

import asyncio

import pytest
from asyncua import ua
from fakes import (
    FakeProtocolClient,
    FakePublisherFactory,
    FakeSession,
    FakeSubscription,
    key,
    messages,
    variable,
)

from uaweb_gateway.application.ua_client import UaClient
from uaweb_gateway.domain.model.monitoring import MonitorableNode

SERVER = "opc.tcp://plant:4840"
BROKER = "mqtt:broker:1883"
TOPIC = "plant/line1"


def with_nodes(session: FakeSession) -> None:
    session.add_node(variable("ns=2;s=Temp", 20.0, ua.VariantType.Double))
    session.add_node(variable("ns=2;s=Count", 0, ua.VariantType.Int32))


@pytest.fixture()
def protocol() -> FakeProtocolClient:
    protocol = FakeProtocolClient()
    protocol.prepare = with_nodes
    return protocol


async def monitor(ua_client: UaClient, *node_ids: str, topic: str = TOPIC) -> list[bool]:
    return await ua_client.create_monitored_items(
        SERVER,
        [MonitorableNode(node_id=n, sampling_interval=250) for n in node_ids],
        BROKER,
        topic,
    )


def subscription(protocol: FakeProtocolClient, index: int = 0) -> FakeSubscription:
    return protocol.sessions[0].subscriptions[index]


def handle_of(sub: FakeSubscription, node_id: str) -> int:
    for handle, native in sub.items.items():
        if key(native) == key(node_id):
            return handle
    raise AssertionError(f"{node_id} not monitored")


class TestForwarding:
    @pytest.mark.asyncio
    async def test_value_change_is_published_to_topic(
        self,
        ua_client: UaClient,
        protocol: FakeProtocolClient,
        publishers: FakePublisherFactory,
    ) -> None:
        await monitor(ua_client, "ns=2;s=Temp")
        sub = subscription(protocol)

        sub.fire(handle_of(sub, "ns=2;s=Temp"), 21.5)
        await ua_client.router.wait_idle()

        publisher = publishers.publishers[BROKER]
        assert publisher.messages == [(TOPIC, "[TOPIC: plant/line1]  \t (ns=2;s=Temp): 21.5")]

    @pytest.mark.asyncio
    async def test_values_of_one_item_keep_delivery_order(
        self,
        ua_client: UaClient,
        protocol: FakeProtocolClient,
        publishers: FakePublisherFactory,
    ) -> None:
        await monitor(ua_client, "ns=2;s=Count")
        sub = subscription(protocol)
        handle = handle_of(sub, "ns=2;s=Count")

        sub.fire(handle, 1, 2)
        sub.fire(handle, 3)
        sub.fire(handle, 4, 5)
        await ua_client.router.wait_idle()

        values = [m.rsplit(": ", 1)[1] for m in messages(publishers.publishers[BROKER])]
        assert values == ["1", "2", "3", "4", "5"]

    @pytest.mark.asyncio
    async def test_slow_item_does_not_block_other_items(
        self,
        ua_client: UaClient,
        protocol: FakeProtocolClient,
        publishers: FakePublisherFactory,
    ) -> None:
        await monitor(ua_client, "ns=2;s=Temp", topic="slow")
        await monitor(ua_client, "ns=2;s=Count", topic="fast")
        slow_sub, fast_sub = subscription(protocol, 0), subscription(protocol, 1)

        # Publishers are per broker, so gate the shared one only while the slow item drains
        publisher = publishers.publishers[BROKER]
        gate = asyncio.Event()
        publisher.gate = gate

        slow_sub.fire(handle_of(slow_sub, "ns=2;s=Temp"), 1.0)
        await asyncio.sleep(0)
        publisher.gate = None
        fast_sub.fire(handle_of(fast_sub, "ns=2;s=Count"), 7)
        for _ in range(5):
            await asyncio.sleep(0)

        assert [topic for topic, _ in publisher.messages] == ["fast"]
        gate.set()
        await ua_client.router.wait_idle()
        assert [topic for topic, _ in publisher.messages] == ["fast", "slow"]

    @pytest.mark.asyncio
    async def test_publish_failure_is_isolated(
        self,
        ua_client: UaClient,
        protocol: FakeProtocolClient,
        publishers: FakePublisherFactory,
    ) -> None:
        await monitor(ua_client, "ns=2;s=Count")
        sub = subscription(protocol)
        handle = handle_of(sub, "ns=2;s=Count")
        publisher = publishers.publishers[BROKER]

        publisher.fail = True
        sub.fire(handle, 1)
        await ua_client.router.wait_idle()
        publisher.fail = False
        sub.fire(handle, 2)
        await ua_client.router.wait_idle()

        assert [m.rsplit(": ", 1)[1] for m in messages(publisher)] == ["2"]

    @pytest.mark.asyncio
    async def test_unknown_handle_is_dropped(
        self, ua_client: UaClient, publishers: FakePublisherFactory
    ) -> None:
        ua_client.router.on_item_notification(424242, [ua.DataValue(ua.Variant(1))])
        await ua_client.router.wait_idle()

        assert ua_client.router.active_items == 0
        assert all(not p.messages for p in publishers.publishers.values())

    @pytest.mark.asyncio
    async def test_notification_after_unmonitor_is_dropped(
        self,
        ua_client: UaClient,
        protocol: FakeProtocolClient,
        publishers: FakePublisherFactory,
    ) -> None:
        await monitor(ua_client, "ns=2;s=Temp")
        sub = subscription(protocol)
        handle = handle_of(sub, "ns=2;s=Temp")

        assert await ua_client.delete_monitoring(SERVER, BROKER, TOPIC) is True
        sub.fire(handle, 30.0)
        await ua_client.router.wait_idle()

        assert publishers.publishers[BROKER].messages == []

    @pytest.mark.asyncio
    async def test_close_stops_forwarding(
        self,
        ua_client: UaClient,
        protocol: FakeProtocolClient,
        publishers: FakePublisherFactory,
    ) -> None:
        await monitor(ua_client, "ns=2;s=Temp")
        sub = subscription(protocol)
        publisher = publishers.publishers[BROKER]
        publisher.gate = asyncio.Event()

        sub.fire(handle_of(sub, "ns=2;s=Temp"), 1.0)
        await asyncio.sleep(0)
        await ua_client.router.close()
        sub.fire(handle_of(sub, "ns=2;s=Temp"), 2.0)

        assert ua_client.router.active_items == 0
        assert publisher.messages == []
