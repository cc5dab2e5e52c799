"""OPC UA client adapter for the servers the gateway multiplexes."""

from uaweb_gateway.adapters.southbound.opcua_client.client import AsyncuaProtocolClient
from uaweb_gateway.adapters.southbound.opcua_client.codec import ValueCodec
from uaweb_gateway.adapters.southbound.opcua_client.node_ids import (
    format_node_id,
    parse_node_id,
)

__all__ = ["AsyncuaProtocolClient", "ValueCodec", "format_node_id", "parse_node_id"]
