"""Tests for the UaClient facade."""

from __future__ import annotations

import pytest
from asyncua import ua
from fakes import FakeProtocolClient, FakePublisherFactory, FakeSession, obj, variable

from uaweb_gateway.application.browse import BASE_DATA_TYPE, FOLDER_TYPE, NUMBER_TYPE
from uaweb_gateway.application.ua_client import UaClient
from uaweb_gateway.domain.errors import InvalidNodeId, NoTypeDefinition, WriteRejected
from uaweb_gateway.domain.model.monitoring import MonitorableNode
from uaweb_gateway.domain.model.nodes import DeadbandSupport

SERVER = "opc.tcp://plant:4840"
DOUBLE = ua.NodeId(ua.ObjectIds.Double, 0)


def address_space(session: FakeSession) -> None:
    session.add_node(variable("ns=2;s=Temp", 20.5, ua.VariantType.Double, name="Temp"))
    session.add_node(obj("ns=2;s=Plant", name="Plant"))
    session.set_type_definition("ns=2;s=Plant", FOLDER_TYPE)
    session.add_child("ns=2;s=Plant", "ns=2;s=Temp", "Temp")
    session.add_subtype(DOUBLE, NUMBER_TYPE)
    session.add_subtype(NUMBER_TYPE, BASE_DATA_TYPE)
    session.add_property("ns=2;s=Temp", "ns=2;s=Temp.EURange", "EURange")


@pytest.fixture()
def protocol() -> FakeProtocolClient:
    protocol = FakeProtocolClient()
    protocol.prepare = address_space
    return protocol


def session_of(protocol: FakeProtocolClient) -> FakeSession:
    return protocol.sessions[0]


class TestReads:
    @pytest.mark.asyncio
    async def test_read_variable(self, ua_client: UaClient) -> None:
        details = await ua_client.read_node(SERVER, "ns=2;s=Temp")

        assert details.node_id == "ns=2;s=Temp"
        assert details.node_class == "Variable"
        assert details.display_name == "Temp"
        assert details.value is not None
        assert details.value.value == 20.5
        assert details.value.type_name == "Double"

    @pytest.mark.asyncio
    async def test_read_object_has_no_value(self, ua_client: UaClient) -> None:
        details = await ua_client.read_node(SERVER, "ns=2;s=Plant")

        assert details.node_class == "Object"
        assert details.value is None

    @pytest.mark.asyncio
    async def test_read_value(self, ua_client: UaClient) -> None:
        value = await ua_client.read_value(SERVER, "ns=2;s=Temp")
        assert value.value == 20.5

    @pytest.mark.asyncio
    async def test_unknown_node_surfaces_status_error(self, ua_client: UaClient) -> None:
        with pytest.raises(ua.UaStatusCodeError):
            await ua_client.read_node(SERVER, "ns=2;s=Nope")

    @pytest.mark.asyncio
    async def test_invalid_node_id_does_not_open_session(
        self, ua_client: UaClient, protocol: FakeProtocolClient
    ) -> None:
        with pytest.raises(InvalidNodeId):
            await ua_client.read_node(SERVER, "nonsense")
        assert protocol.sessions == []

    @pytest.mark.asyncio
    async def test_calls_share_one_session(
        self, ua_client: UaClient, protocol: FakeProtocolClient
    ) -> None:
        await ua_client.read_node(SERVER, "ns=2;s=Temp")
        await ua_client.browse(SERVER, "ns=2;s=Plant")
        await ua_client.is_folder(SERVER, "ns=2;s=Plant")

        assert len(protocol.sessions) == 1


class TestBrowseAndClassify:
    @pytest.mark.asyncio
    async def test_browse(self, ua_client: UaClient) -> None:
        edges = await ua_client.browse(SERVER, "ns=2;s=Plant")
        assert [edge.node_id for edge in edges] == ["ns=2;s=Temp"]

    @pytest.mark.asyncio
    async def test_is_folder(self, ua_client: UaClient) -> None:
        assert await ua_client.is_folder(SERVER, "ns=2;s=Plant") is True

    @pytest.mark.asyncio
    async def test_variable_without_type_definition(self, ua_client: UaClient) -> None:
        with pytest.raises(NoTypeDefinition):
            await ua_client.is_folder(SERVER, "ns=2;s=Temp")

    @pytest.mark.asyncio
    async def test_deadband_modes(self, ua_client: UaClient) -> None:
        modes = await ua_client.deadband_modes(SERVER, "ns=2;s=Temp")
        assert modes is DeadbandSupport.ABSOLUTE_AND_PERCENT

    @pytest.mark.asyncio
    async def test_deadband_modes_of_object(self, ua_client: UaClient) -> None:
        assert await ua_client.deadband_modes(SERVER, "ns=2;s=Plant") is DeadbandSupport.NONE


class TestWrite:
    @pytest.mark.asyncio
    async def test_write_encodes_declared_type(
        self, ua_client: UaClient, protocol: FakeProtocolClient
    ) -> None:
        await ua_client.write_value(SERVER, "ns=2;s=Temp", 22)

        (node_id, variant), = session_of(protocol).writes
        assert node_id.Identifier == "Temp"
        assert variant.VariantType == ua.VariantType.Double
        assert variant.Value == 22.0

    @pytest.mark.asyncio
    async def test_mismatched_value_is_rejected_before_sending(
        self, ua_client: UaClient, protocol: FakeProtocolClient
    ) -> None:
        with pytest.raises(WriteRejected) as exc_info:
            await ua_client.write_value(SERVER, "ns=2;s=Temp", "warm")

        assert exc_info.value.is_type_mismatch
        assert session_of(protocol).writes == []

    @pytest.mark.asyncio
    async def test_server_rejection(self, ua_client: UaClient, protocol: FakeProtocolClient) -> None:
        await ua_client.read_node(SERVER, "ns=2;s=Temp")
        session_of(protocol).write_status = "BadUserAccessDenied"

        with pytest.raises(WriteRejected) as exc_info:
            await ua_client.write_value(SERVER, "ns=2;s=Temp", 1.0)

        assert exc_info.value.status_name == "BadUserAccessDenied"
        assert not exc_info.value.is_type_mismatch


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_availability(self, ua_client: UaClient, protocol: FakeProtocolClient) -> None:
        assert await ua_client.is_server_available(SERVER) is True
        protocol.unreachable.add("opc.tcp://down:4840")
        assert await ua_client.is_server_available("opc.tcp://down:4840") is False

    @pytest.mark.asyncio
    async def test_monitor_and_delete(self, ua_client: UaClient) -> None:
        results = await ua_client.create_monitored_items(
            SERVER,
            [MonitorableNode("ns=2;s=Temp", 100)],
            "ws:local",
            "plant",
        )

        assert results == [True]
        assert await ua_client.delete_monitoring(SERVER, "ws:local", "plant") is True
        assert await ua_client.delete_monitoring(SERVER, "ws:local", "plant") is False

    @pytest.mark.asyncio
    async def test_close_releases_everything(
        self,
        ua_client: UaClient,
        protocol: FakeProtocolClient,
        publishers: FakePublisherFactory,
    ) -> None:
        await ua_client.create_monitored_items(
            SERVER, [MonitorableNode("ns=2;s=Temp", 100)], "mqtt:broker", "plant"
        )

        await ua_client.close()

        session = session_of(protocol)
        assert session.closed
        assert session.deleted == session.subscriptions
        assert publishers.closed
        assert ua_client.sessions.server_urls == []
