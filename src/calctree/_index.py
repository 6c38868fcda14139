"""Id lookup and ancestor chains for a tree snapshot."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ._errors import NodeNotFound, TreeStructureError

if TYPE_CHECKING:
    from ._models import CalculatorNode
    from ._tree import CalculatorTree

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TreeIndex:
    """Lookup tables built from one tree snapshot.

    The index is never patched: build a new one for every snapshot.

    Attributes:
        nodes: Mapping from calculator id to node, for every node reachable from the root.
        parents: Mapping from calculator id to its parent id (None for the root).

    """

    nodes: dict[int, CalculatorNode]
    parents: dict[int, int | None]

    def get(self, node_id: int) -> CalculatorNode:
        """Get an indexed calculator by id.

        Raises:
            NodeNotFound: If the id is not indexed.

        """
        try:
            return self.nodes[node_id]
        except KeyError:
            raise NodeNotFound(node_id) from None

    def ancestor_chain(self, node_id: int) -> list[CalculatorNode]:
        """Get the calculator followed by its parent, grandparent, and so on up to the root.

        Args:
            node_id: The calculator to start from.

        Returns:
            List of nodes, starting with the calculator itself and ending with the root.

        Raises:
            NodeNotFound: If the id is not indexed.

        """
        chain = [self.get(node_id)]
        parent_id = self.parents[node_id]
        while parent_id is not None:
            chain.append(self.nodes[parent_id])
            parent_id = self.parents[parent_id]
        return chain

    def __contains__(self, node_id: object) -> bool:
        """Check if a calculator id is indexed."""
        return node_id in self.nodes

    def __len__(self) -> int:
        """Return the number of indexed calculators."""
        return len(self.nodes)


def build_index(tree: CalculatorTree) -> TreeIndex:
    """Index a tree with one depth-first walk from the root.

    Args:
        tree: The snapshot to index.

    Returns:
        A TreeIndex covering every calculator reachable from the root.

    Raises:
        NodeNotFound: If a node lists a child id that is missing from the tree,
            or a child whose ``parent_id`` is dangling.
        TreeStructureError: If a child disagrees with the node listing it,
            or a node is reachable twice.

    """
    nodes: dict[int, CalculatorNode] = {}
    parents: dict[int, int | None] = {}

    stack: list[tuple[CalculatorNode, int | None]] = [(tree.find_by_id(tree.root_id), None)]
    while stack:
        node, parent_id = stack.pop()
        if node.id in nodes:
            msg = f"Calculator {node.id} is reachable through more than one parent"
            raise TreeStructureError(msg)
        nodes[node.id] = node
        parents[node.id] = parent_id
        # Reversed so that siblings are visited in stored order.
        for child_id in reversed(node.children):
            child = tree.nodes.get(child_id)
            if child is None:
                raise NodeNotFound(child_id)
            if child.parent_id != node.id:
                if child.parent_id is not None and child.parent_id not in tree.nodes:
                    raise NodeNotFound(child.parent_id)
                msg = f"Calculator {child_id} is listed under {node.id} but its parent is {child.parent_id}"
                raise TreeStructureError(msg)
            stack.append((child, node.id))

    logger.debug("Indexed %d calculators", len(nodes))
    return TreeIndex(nodes=nodes, parents=parents)
