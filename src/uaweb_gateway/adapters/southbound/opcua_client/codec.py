"""Value codec between OPC UA Variants and JSON-friendly Python values.

Decoding turns a Variant into something an HTTP response or a broker
message can carry. Encoding uses the node's declared data type to build
the Variant a write must send; a value that cannot be coerced is reported
the same way the server would report it, as a type mismatch.
"""

from __future__ import annotations

import base64
import binascii
import dataclasses
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog
from asyncua import ua

from uaweb_gateway.adapters.southbound.opcua_client.node_ids import (
    format_node_id,
    parse_node_id,
)
from uaweb_gateway.domain.errors import InvalidNodeId, WriteRejected
from uaweb_gateway.domain.model.nodes import UaValue

if TYPE_CHECKING:
    from uaweb_gateway.adapters.southbound.opcua_client.ports import NodeDescriptor

logger = structlog.get_logger(__name__)

# Builtin data types occupy ns=0;i=1..25 and share their ids with VariantType
_MAX_BUILTIN_TYPE = 25

_INTEGER_BOUNDS: dict[ua.VariantType, tuple[int, int]] = {
    ua.VariantType.SByte: (-(2**7), 2**7 - 1),
    ua.VariantType.Byte: (0, 2**8 - 1),
    ua.VariantType.Int16: (-(2**15), 2**15 - 1),
    ua.VariantType.UInt16: (0, 2**16 - 1),
    ua.VariantType.Int32: (-(2**31), 2**31 - 1),
    ua.VariantType.UInt32: (0, 2**32 - 1),
    ua.VariantType.Int64: (-(2**63), 2**63 - 1),
    ua.VariantType.UInt64: (0, 2**64 - 1),
}

_FLOAT_TYPES = (ua.VariantType.Float, ua.VariantType.Double)


def to_json_value(value: Any) -> Any:
    """Convert an asyncua value into plain JSON-compatible Python."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, ua.NodeId):
        return format_node_id(value)
    if isinstance(value, ua.LocalizedText):
        return value.Text
    if isinstance(value, ua.QualifiedName):
        return value.to_string()
    if isinstance(value, ua.StatusCode):
        return value.name
    if isinstance(value, ua.Variant):
        return to_json_value(value.Value)
    if isinstance(value, Enum):
        return value.name
    if isinstance(value, (list, tuple)):
        return [to_json_value(item) for item in value]
    if dataclasses.is_dataclass(value):
        return {
            f.name: to_json_value(getattr(value, f.name)) for f in dataclasses.fields(value)
        }
    return str(value)


class ValueCodec:
    """Translates node values to and from the gateway's value model."""

    def decode(self, descriptor: NodeDescriptor, variant: ua.Variant | None = None) -> UaValue:
        """Decode a Variant read from (or notified for) a variable node.

        Args:
            descriptor: Node attributes, used for the declared data type
            variant: Value to decode; defaults to the value read with the node

        Returns:
            Decoded UaValue
        """
        if variant is None:
            variant = descriptor.value
        if variant is None:
            return UaValue(value=None, type_name=self.type_name(descriptor))

        return UaValue(
            value=to_json_value(variant.Value),
            type_name=self.type_name(descriptor, variant),
            is_array=isinstance(variant.Value, list),
        )

    def encode(self, descriptor: NodeDescriptor, value: Any) -> ua.Variant:
        """Build the Variant to write to a variable node.

        Raises:
            WriteRejected: If the value cannot be represented in the node's type
        """
        variant_type = self._variant_type_for(descriptor)
        if variant_type is None:
            logger.debug(
                "No builtin type for node",
                node_id=format_node_id(descriptor.node_id),
            )
            raise WriteRejected(WriteRejected.TYPE_MISMATCH)

        try:
            if isinstance(value, list):
                coerced: Any = [self._coerce(item, variant_type) for item in value]
            else:
                coerced = self._coerce(value, variant_type)
        except (TypeError, ValueError, OverflowError) as e:
            logger.debug(
                "Value does not match node type",
                node_id=format_node_id(descriptor.node_id),
                variant_type=variant_type.name,
                error=str(e),
            )
            raise WriteRejected(WriteRejected.TYPE_MISMATCH) from e

        return ua.Variant(coerced, variant_type)

    def type_name(self, descriptor: NodeDescriptor, variant: ua.Variant | None = None) -> str:
        """Name of the builtin type behind a node's value."""
        variant_type = self._builtin_type(descriptor.data_type)
        if variant_type is not None:
            return variant_type.name
        if variant is not None:
            return variant.VariantType.name
        if descriptor.value is not None:
            return descriptor.value.VariantType.name
        return "Null"

    def _builtin_type(self, data_type: ua.NodeId | None) -> ua.VariantType | None:
        if data_type is None or data_type.NamespaceIndex != 0:
            return None
        identifier = data_type.Identifier
        if isinstance(identifier, int) and 0 < identifier <= _MAX_BUILTIN_TYPE:
            return ua.VariantType(identifier)
        return None

    def _variant_type_for(self, descriptor: NodeDescriptor) -> ua.VariantType | None:
        variant_type = self._builtin_type(descriptor.data_type)
        if variant_type is not None and variant_type != ua.VariantType.Variant:
            return variant_type
        # Subtypes (enumerations, UtcTime, ...) are written as the current value's type
        if descriptor.value is not None and descriptor.value.VariantType != ua.VariantType.Null:
            return descriptor.value.VariantType
        return None

    def _coerce(self, value: Any, variant_type: ua.VariantType) -> Any:  # noqa: PLR0911
        if variant_type == ua.VariantType.Boolean:
            if not isinstance(value, bool):
                raise TypeError(f"expected bool, got {type(value).__name__}")
            return value

        if variant_type in _INTEGER_BOUNDS:
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(f"expected int, got {type(value).__name__}")
            low, high = _INTEGER_BOUNDS[variant_type]
            if not low <= value <= high:
                raise OverflowError(f"{value} out of range for {variant_type.name}")
            return value

        if variant_type in _FLOAT_TYPES:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise TypeError(f"expected number, got {type(value).__name__}")
            return float(value)

        if variant_type == ua.VariantType.String:
            if not isinstance(value, str):
                raise TypeError(f"expected str, got {type(value).__name__}")
            return value

        if variant_type == ua.VariantType.DateTime:
            return datetime.fromisoformat(str(value))

        if variant_type == ua.VariantType.ByteString:
            try:
                return base64.b64decode(str(value), validate=True)
            except binascii.Error as e:
                raise ValueError("expected base64 string") from e

        if variant_type == ua.VariantType.Guid:
            return UUID(str(value))

        if variant_type == ua.VariantType.NodeId:
            try:
                return parse_node_id(str(value))
            except InvalidNodeId as e:
                raise ValueError(str(e)) from e

        if variant_type == ua.VariantType.LocalizedText:
            return ua.LocalizedText(str(value))

        if variant_type == ua.VariantType.QualifiedName:
            return ua.QualifiedName.from_string(str(value))

        raise TypeError(f"writing {variant_type.name} values is not supported")
