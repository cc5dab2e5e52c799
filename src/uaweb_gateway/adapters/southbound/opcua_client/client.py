"""OPC UA protocol client built on asyncua.

Implements the ports in ``ports.py``: endpoint discovery, one asyncua
Client per session, browse/read/write on top of Node, and subscriptions
whose data change notifications are funnelled into a single callback
keyed by a gateway-wide monitored item handle.
"""

from __future__ import annotations

import itertools
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from asyncua import Client, ua

from uaweb_gateway.adapters.southbound.opcua_client.node_ids import normalize_node_id
from uaweb_gateway.adapters.southbound.opcua_client.ports import (
    BrowseEdge,
    Endpoint,
    ItemCreation,
    NodeDescriptor,
    ReadResult,
)
from uaweb_gateway.domain.errors import EndpointDiscoveryFailed, SessionUnavailable
from uaweb_gateway.security.certificates import CertificateManager

if TYPE_CHECKING:
    from asyncua.common.subscription import DataChangeNotif, Subscription

    from uaweb_gateway.adapters.southbound.opcua_client.ports import (
        DeadbandFilter,
        ItemNotificationCallback,
    )
    from uaweb_gateway.config.schema import ClientConfig, ClientSecurityConfig

logger = structlog.get_logger(__name__)

# Client handles are unique across every subscription of the process so the
# notification router can key on them directly.
_client_handles = itertools.count(1)

_NODE_ATTRIBUTES = [
    ua.AttributeIds.NodeClass,
    ua.AttributeIds.BrowseName,
    ua.AttributeIds.DisplayName,
    ua.AttributeIds.Description,
    ua.AttributeIds.DataType,
    ua.AttributeIds.ValueRank,
    ua.AttributeIds.Value,
]


def _status_name(status_code: Any) -> str:
    return getattr(status_code, "name", None) or str(status_code)


def _attribute(data_value: ua.DataValue) -> Any:
    """Return an attribute's value, or None when the read was not good."""
    if data_value.StatusCode is not None and not data_value.StatusCode.is_good():
        return None
    if data_value.Value is None:
        return None
    return data_value.Value.Value


class _DataChangeHandler:
    """asyncua subscription handler forwarding to an item callback."""

    def __init__(self, callback: ItemNotificationCallback) -> None:
        self._callback = callback

    def datachange_notification(self, node: Any, val: Any, data: DataChangeNotif) -> None:
        item = data.monitored_item
        self._callback(item.ClientHandle, [item.Value])

    def status_change_notification(self, status: Any) -> None:
        logger.warning("Subscription status changed", status=str(status))


class AsyncuaSubscription:
    """SubscriptionPort over an asyncua Subscription."""

    def __init__(self, subscription: Subscription, interval: float) -> None:
        self._subscription = subscription
        self._interval = interval
        self._server_handles: dict[int, int] = {}

    @property
    def publishing_interval(self) -> float:
        return self._interval

    @property
    def native(self) -> Subscription:
        return self._subscription

    async def set_publishing_interval(self, interval: float) -> None:
        params = ua.ModifySubscriptionParameters(
            SubscriptionId=self._subscription.subscription_id,
            RequestedPublishingInterval=interval,
            RequestedLifetimeCount=self._subscription.parameters.RequestedLifetimeCount,
            RequestedMaxKeepAliveCount=self._subscription.parameters.RequestedMaxKeepAliveCount,
            MaxNotificationsPerPublish=self._subscription.parameters.MaxNotificationsPerPublish,
            Priority=self._subscription.parameters.Priority,
        )
        await self._subscription.update(params)
        self._interval = interval

    async def add_monitored_item(
        self,
        node_id: ua.NodeId,
        sampling_interval: float,
        deadband: DeadbandFilter | None = None,
    ) -> ItemCreation:
        handle = next(_client_handles)

        mfilter = None
        if deadband is not None:
            mfilter = ua.DataChangeFilter(
                Trigger=ua.DataChangeTrigger.StatusValue,
                DeadbandType=deadband.mode.filter_type,
                DeadbandValue=deadband.value,
            )

        request = ua.MonitoredItemCreateRequest(
            ItemToMonitor=ua.ReadValueId(NodeId=node_id, AttributeId=ua.AttributeIds.Value),
            MonitoringMode=ua.MonitoringMode.Reporting,
            RequestedParameters=ua.MonitoringParameters(
                ClientHandle=handle,
                SamplingInterval=sampling_interval,
                Filter=mfilter,
                QueueSize=0,
                DiscardOldest=True,
            ),
        )

        results = await self._subscription.create_monitored_items([request])
        result = results[0]
        if isinstance(result, ua.StatusCode):
            return ItemCreation(handle=handle, created=False, status_name=_status_name(result))

        self._server_handles[handle] = result
        return ItemCreation(handle=handle, created=True)

    async def remove_monitored_item(self, handle: int) -> None:
        server_handle = self._server_handles.pop(handle, None)
        if server_handle is None:
            # Never created on the server; asyncua already dropped it
            return
        await self._subscription.unsubscribe(server_handle)


class AsyncuaSession:
    """UaSessionPort over a connected asyncua Client."""

    def __init__(self, server_url: str, endpoint: Endpoint, client: Client) -> None:
        self.server_url = server_url
        self.endpoint = endpoint
        self._client = client

    async def read_value(self, node_id: ua.NodeId) -> ReadResult:
        node = self._client.get_node(node_id)
        data_values = await node.read_attributes([ua.AttributeIds.Value])
        data_value = data_values[0]
        good = data_value.StatusCode is None or data_value.StatusCode.is_good()
        return ReadResult(
            good=good,
            value=data_value.Value.Value if data_value.Value is not None else None,
            status_name=_status_name(data_value.StatusCode) if not good else "Good",
        )

    async def read_node(self, node_id: ua.NodeId) -> NodeDescriptor:
        node = self._client.get_node(node_id)
        values = await node.read_attributes(_NODE_ATTRIBUTES)
        node_class, browse_name, display_name, description, data_type, value_rank, _ = values

        node_class_value = _attribute(node_class)
        if node_class_value is None:
            # NodeClass is mandatory on every node; a bad read means the node is unknown
            node_class.StatusCode.check()

        browse = _attribute(browse_name)
        display = _attribute(display_name)
        desc = _attribute(description)
        data_type_id = _attribute(data_type)
        value = values[-1]

        return NodeDescriptor(
            node_id=node_id,
            node_class=ua.NodeClass(node_class_value),
            browse_name=browse.Name if browse is not None else "",
            display_name=(display.Text or "") if display is not None else "",
            description=(desc.Text or "") if desc is not None else "",
            data_type=normalize_node_id(data_type_id) if data_type_id is not None else None,
            value_rank=_attribute(value_rank),
            value=value.Value if data_type_id is not None else None,
            status_name=_status_name(value.StatusCode) if value.StatusCode is not None else "Good",
        )

    async def write_value(self, node_id: ua.NodeId, value: ua.Variant) -> str:
        node = self._client.get_node(node_id)
        try:
            await node.write_attribute(ua.AttributeIds.Value, ua.DataValue(value))
        except ua.UaStatusCodeError as e:
            return _status_name(ua.StatusCode(e.code))
        return "Good"

    async def browse(
        self,
        node_id: ua.NodeId,
        reference_type: ua.NodeId,
        direction: ua.BrowseDirection,
    ) -> list[BrowseEdge]:
        node = self._client.get_node(node_id)
        references = await node.get_references(
            refs=reference_type,
            direction=direction,
            nodeclassmask=ua.NodeClass.Unspecified,
            includesubtypes=True,
        )
        return [
            BrowseEdge(
                node_id=normalize_node_id(ref.NodeId),
                browse_name=ref.BrowseName.Name if ref.BrowseName else "",
                display_name=(ref.DisplayName.Text or "") if ref.DisplayName else "",
                node_class=ref.NodeClass,
                reference_type_id=normalize_node_id(ref.ReferenceTypeId),
            )
            for ref in references
        ]

    async def create_subscription(
        self,
        interval: float,
        callback: ItemNotificationCallback,
    ) -> AsyncuaSubscription:
        params = ua.CreateSubscriptionParameters(
            RequestedPublishingInterval=interval,
            RequestedLifetimeCount=10000,
            RequestedMaxKeepAliveCount=3000,
            MaxNotificationsPerPublish=0,
            PublishingEnabled=True,
            Priority=0,
        )
        subscription = await self._client.create_subscription(params, _DataChangeHandler(callback))
        logger.debug(
            "Subscription created",
            server_url=self.server_url,
            subscription_id=subscription.subscription_id,
            interval_ms=interval,
        )
        return AsyncuaSubscription(subscription, interval)

    async def delete_subscription(self, subscription: AsyncuaSubscription) -> bool:
        try:
            await subscription.native.delete()
        except Exception as e:
            logger.warning(
                "Subscription delete failed",
                server_url=self.server_url,
                error=str(e),
            )
            return False
        return True

    async def close(self) -> None:
        await self._client.disconnect()


class AsyncuaProtocolClient:
    """ProtocolClientPort creating asyncua Clients.

    Secured endpoints use a client application certificate that is loaded
    from (or generated at) the configured paths.
    """

    def __init__(self, config: ClientConfig, security: ClientSecurityConfig) -> None:
        self._config = config
        self._security = security
        self._certificates = CertificateManager(Path(security.cert_path).parent)

    async def discover_endpoints(self, server_url: str) -> list[Endpoint]:
        client = Client(url=server_url, timeout=self._config.discovery_timeout_s)
        try:
            descriptions = await client.connect_and_get_server_endpoints()
        except Exception as e:
            logger.warning("Endpoint discovery failed", server_url=server_url, error=str(e))
            raise EndpointDiscoveryFailed(server_url, str(e)) from e

        endpoints = [
            Endpoint(
                url=description.EndpointUrl,
                security_mode=description.SecurityMode.name.rstrip("_"),
                security_level=description.SecurityLevel,
                security_policy_uri=description.SecurityPolicyUri,
            )
            for description in descriptions
        ]
        logger.debug("Endpoints discovered", server_url=server_url, count=len(endpoints))
        return endpoints

    async def open_session(self, server_url: str, endpoint: Endpoint) -> AsyncuaSession:
        client = Client(url=endpoint.url, timeout=self._config.request_timeout_s)
        client.name = self._config.application_name
        client.description = self._config.application_name
        client.application_uri = self._config.application_uri
        client.session_timeout = self._config.session_timeout_ms

        if self._security.username:
            client.set_user(self._security.username)
        if self._security.password:
            client.set_password(self._security.password)

        try:
            if endpoint.requires_security:
                cert_path, key_path = await self._client_certificate()
                await client.set_security_string(
                    f"{endpoint.security_policy},{endpoint.security_mode},{cert_path},{key_path}"
                )
            await client.connect()
        except Exception as e:
            logger.warning(
                "Session establishment failed",
                server_url=server_url,
                endpoint_url=endpoint.url,
                error=str(e),
            )
            raise SessionUnavailable(server_url, str(e)) from e

        logger.info(
            "OPC UA session opened",
            server_url=server_url,
            endpoint_url=endpoint.url,
            security_mode=endpoint.security_mode,
            security_policy=endpoint.security_policy,
        )
        return AsyncuaSession(server_url, endpoint, client)

    async def _client_certificate(self) -> tuple[Path, Path]:
        cert_path = Path(self._security.cert_path)
        key_path = Path(self._security.key_path)
        if not self._security.auto_generate:
            return cert_path, key_path
        return await self._certificates.load_or_generate(
            cert_path,
            key_path,
            common_name=self._config.application_name,
            application_uri=self._config.application_uri,
            for_server=False,
            for_client=True,
        )

