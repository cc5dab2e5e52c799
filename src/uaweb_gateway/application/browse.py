"""Browse Engine.

Stateless traversals over the server address space, all built on the
session's single browse primitive: hierarchical child listing, container
classification through the object type hierarchy and deadband capability
through the data type hierarchy.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from asyncua import ua

from uaweb_gateway.adapters.southbound.opcua_client.node_ids import (
    format_node_id,
    same_node,
)
from uaweb_gateway.domain.errors import NoTypeDefinition, TypeHierarchyTooDeep
from uaweb_gateway.domain.model.nodes import DeadbandSupport, EdgeDescription

if TYPE_CHECKING:
    from uaweb_gateway.adapters.southbound.opcua_client.ports import UaSessionPort

logger = structlog.get_logger(__name__)

# Reference types
HIERARCHICAL_REFERENCES = ua.NodeId(ua.ObjectIds.HierarchicalReferences, 0)
HAS_TYPE_DEFINITION = ua.NodeId(ua.ObjectIds.HasTypeDefinition, 0)
HAS_SUBTYPE = ua.NodeId(ua.ObjectIds.HasSubtype, 0)
HAS_PROPERTY = ua.NodeId(ua.ObjectIds.HasProperty, 0)

# Terminal types of the two hierarchy walks
FOLDER_TYPE = ua.NodeId(ua.ObjectIds.FolderType, 0)
BASE_OBJECT_TYPE = ua.NodeId(ua.ObjectIds.BaseObjectType, 0)
NUMBER_TYPE = ua.NodeId(ua.ObjectIds.Number, 0)
BASE_DATA_TYPE = ua.NodeId(ua.ObjectIds.BaseDataType, 0)

EU_RANGE = "EURange"

DEFAULT_MAX_DEPTH = 1000


class BrowseEngine:
    """Tree walks used to list and classify nodes."""

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        self._max_depth = max_depth

    async def children(self, session: UaSessionPort, node_id: ua.NodeId) -> list[EdgeDescription]:
        """Forward hierarchical children of a node, in server order."""
        edges = await session.browse(node_id, HIERARCHICAL_REFERENCES, ua.BrowseDirection.Forward)
        return [
            EdgeDescription(
                node_id=format_node_id(edge.node_id),
                display_name=edge.display_name,
                node_class=edge.node_class.name,
                reference_type_id=format_node_id(edge.reference_type_id),
            )
            for edge in edges
        ]

    async def is_container(self, session: UaSessionPort, node_id: ua.NodeId) -> bool:
        """Whether a node's type definition derives from FolderType.

        Raises:
            NoTypeDefinition: The node has no HasTypeDefinition reference
            TypeHierarchyTooDeep: The walk exceeded the step bound
        """
        definitions = await session.browse(node_id, HAS_TYPE_DEFINITION, ua.BrowseDirection.Forward)
        if not definitions:
            raise NoTypeDefinition(format_node_id(node_id))

        terminal = await self._walk_up(
            session, definitions[0].node_id, (FOLDER_TYPE, BASE_OBJECT_TYPE)
        )
        return same_node(terminal, FOLDER_TYPE)

    async def deadband_modes(
        self,
        session: UaSessionPort,
        node_id: ua.NodeId,
        data_type: ua.NodeId,
    ) -> DeadbandSupport:
        """Deadband modes supported by a variable node.

        Absolute needs a data type deriving from Number; percent needs an
        EURange property on the variable.
        """
        terminal = await self._walk_up(session, data_type, (NUMBER_TYPE, BASE_DATA_TYPE))
        absolute = same_node(terminal, NUMBER_TYPE)

        properties = await session.browse(node_id, HAS_PROPERTY, ua.BrowseDirection.Forward)
        percent = any(edge.browse_name == EU_RANGE for edge in properties)

        return DeadbandSupport.from_flags(absolute, percent)

    async def _walk_up(
        self,
        session: UaSessionPort,
        start: ua.NodeId,
        terminals: tuple[ua.NodeId, ...],
    ) -> ua.NodeId | None:
        """Follow inverse HasSubtype from ``start`` until a terminal type.

        Returns the terminal reached, or None when a type has no supertype.
        """
        current = start
        for _ in range(self._max_depth):
            for terminal in terminals:
                if same_node(current, terminal):
                    return terminal

            supertypes = await session.browse(current, HAS_SUBTYPE, ua.BrowseDirection.Inverse)
            if not supertypes:
                logger.debug(
                    "Type hierarchy ended before a terminal type",
                    start=format_node_id(start),
                    last=format_node_id(current),
                )
                return None
            current = supertypes[0].node_id

        raise TypeHierarchyTooDeep(
            format_node_id(start), format_node_id(current), self._max_depth
        )
