"""Orderings of the calculators in a tree."""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ._models import CalculatorNode
    from ._tree import CalculatorTree


def flatten(tree: CalculatorTree) -> list[CalculatorNode]:
    """List every calculator breadth-first, starting at the root.

    Children are visited in their stored order. Each node appears exactly
    once and always after its parent. Useful for flat pickers and listings.

    Args:
        tree: The snapshot to list.

    Returns:
        A new list of node snapshots.

    """
    order: list[CalculatorNode] = []
    queue = deque([tree.root])
    while queue:
        node = queue.popleft()
        order.append(node)
        queue.extend(tree.nodes[child_id] for child_id in node.children)
    return order


def depth_of(tree: CalculatorTree) -> dict[int, int]:
    """Get the depth of every calculator (the root has depth 0)."""
    depths = {tree.root_id: 0}
    for node in flatten(tree):
        for child_id in node.children:
            depths[child_id] = depths[node.id] + 1
    return depths


def bottom_up_order(tree: CalculatorTree) -> list[int]:
    """Order calculator ids so that every node comes after all of its children.

    Leaves are emitted first; a parent is released once all of its children
    have been emitted.

    Example:
        >>> # R(1) has children A(2) and B(3); A has child C(4)
        >>> bottom_up_order(tree)
        [3, 4, 2, 1]

    """
    pending = {node_id: len(node.children) for node_id, node in tree.nodes.items()}
    queue = deque(node_id for node_id, count in pending.items() if count == 0)
    order: list[int] = []

    while queue:
        node_id = queue.popleft()
        order.append(node_id)
        parent_id = tree.nodes[node_id].parent_id
        if parent_id is None:
            continue
        pending[parent_id] -= 1
        if pending[parent_id] == 0:
            queue.append(parent_id)

    return order
