"""OPC UA NodeId parsing and formatting.

Callers address nodes with the standard string notation
``[ns=<index>;]<kind>=<identifier>`` where kind is one of:

=====  ==========================================  ======================
kind   identifier                                  example
=====  ==========================================  ======================
i      unsigned integer                            ``ns=2;i=1001``
s      any string, may contain ``;`` and ``=``     ``ns=2;s=Line;1``
g      GUID                                        ``g=550e8400-e29b-...``
b      base64 encoded ByteString                   ``ns=1;b=AAECAw==``
=====  ==========================================  ======================

Without the ``ns=`` prefix the namespace is 0.
"""

from __future__ import annotations

import base64
import binascii
import re
from typing import TYPE_CHECKING
from uuid import UUID

from asyncua import ua

from uaweb_gateway.domain.errors import InvalidNodeId

if TYPE_CHECKING:
    from collections.abc import Callable

_NODE_ID = re.compile(
    r"^(?:ns=(?P<namespace>\d+);)?(?P<kind>[isgb])=(?P<identifier>.+)$",
    re.IGNORECASE | re.DOTALL,
)


def _numeric(text: str, namespace: int) -> ua.NodeId:
    if not text.isdigit():
        raise ValueError(text)
    return ua.NodeId(int(text), namespace)


def _guid(text: str, namespace: int) -> ua.NodeId:
    return ua.NodeId(UUID(text), namespace)


def _opaque(text: str, namespace: int) -> ua.NodeId:
    try:
        raw = base64.b64decode(text, validate=True)
    except binascii.Error as e:
        raise ValueError(text) from e
    return ua.NodeId(raw, namespace, ua.NodeIdType.ByteString)


_BUILDERS: dict[str, Callable[[str, int], ua.NodeId]] = {
    "i": _numeric,
    "s": lambda text, namespace: ua.NodeId(text, namespace),
    "g": _guid,
    "b": _opaque,
}


def parse_node_id(address: str) -> ua.NodeId:
    """Parse a NodeId string into an asyncua NodeId.

    Surrounding whitespace is ignored and the ``ns``/kind prefixes are
    case-insensitive.

    Raises:
        InvalidNodeId: If the text is not a well-formed NodeId.
    """
    text = address.strip()
    match = _NODE_ID.match(text)
    if match is None:
        raise InvalidNodeId(f"Invalid NodeId format: '{address}'")

    namespace = int(match.group("namespace") or 0)
    build = _BUILDERS[match.group("kind").lower()]
    try:
        return build(match.group("identifier"), namespace)
    except ValueError as e:
        raise InvalidNodeId(f"Invalid NodeId identifier: '{address}'") from e


def format_node_id(node_id: ua.NodeId) -> str:
    """Format a NodeId as ``ns=N;x=identifier``.

    The namespace prefix is always present so the string round-trips through
    parse_node_id regardless of namespace.
    """
    identifier = node_id.Identifier
    if isinstance(identifier, bool):
        raise InvalidNodeId(f"Unsupported NodeId identifier: {identifier!r}")
    if isinstance(identifier, int):
        kind, text = "i", str(identifier)
    elif isinstance(identifier, UUID):
        kind, text = "g", str(identifier)
    elif isinstance(identifier, bytes):
        kind, text = "b", base64.b64encode(identifier).decode("ascii")
    else:
        kind, text = "s", str(identifier)
    return f"ns={node_id.NamespaceIndex};{kind}={text}"


def normalize_node_id(node_id: ua.NodeId) -> ua.NodeId:
    """Strip expanded/encoding details so ids compare by namespace and identifier."""
    if isinstance(node_id.Identifier, bytes):
        return ua.NodeId(node_id.Identifier, node_id.NamespaceIndex, ua.NodeIdType.ByteString)
    return ua.NodeId(node_id.Identifier, node_id.NamespaceIndex)


def same_node(left: ua.NodeId | None, right: ua.NodeId | None) -> bool:
    """Compare two NodeIds by namespace and identifier only."""
    if left is None or right is None:
        return False
    return (
        left.NamespaceIndex == right.NamespaceIndex and left.Identifier == right.Identifier
    )
