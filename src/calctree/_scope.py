"""Evaluation scope for a single calculator."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ._models import CalculatorNode

# Value a child contributes to its parent's scope before it has a result.
UNREADY_CHILD_VALUE = 0.0


def build_scope(node: CalculatorNode, nodes: Mapping[int, CalculatorNode]) -> dict[str, float]:
    """Build the name to value mapping used to evaluate a calculator's expression.

    The calculator's own variables are added first, in list order, so a later
    variable with a repeated name replaces an earlier one. Each direct child is
    then added under its name with its current result, or 0 if it has none yet.
    Children are applied after variables: a child wins over a variable with the
    same name.

    Args:
        node: The calculator to build the scope for.
        nodes: Lookup for the calculator's children (a TreeIndex's nodes,
            a tree's nodes, or a working copy during propagation).

    Returns:
        A new flat dict. Grandchildren and ids never appear in it.

    """
    scope: dict[str, float] = {}
    for variable in node.variables:
        scope[variable.name] = variable.value
    for child_id in node.children:
        child = nodes[child_id]
        scope[child.name] = UNREADY_CHILD_VALUE if child.result is None else child.result
    return scope
