"""Recompute calculator results after a change.

All functions here are pure: they take a tree snapshot and return a new one.
A failed evaluation never aborts a walk; the calculator keeps its previous
result and the failure is reported in ``PropagationResult.errors``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ._errors import EvaluationError
from ._evaluator import evaluate_expression
from ._index import build_index
from ._scope import build_scope
from ._traversal import bottom_up_order
from ._tree import CalculatorTree

if TYPE_CHECKING:
    from collections.abc import Iterable

    from ._evaluator import Evaluator
    from ._models import CalculatorNode

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PropagationResult:
    """Outcome of recomputing part or all of a tree.

    Attributes:
        tree: The updated snapshot.
        errors: One entry per calculator whose expression failed, in visiting order.
        visited: Ids of the calculators that were recomputed, in visiting order.

    """

    tree: CalculatorTree
    errors: list[EvaluationError] = field(default_factory=list)
    visited: list[int] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Check if every visited expression evaluated."""
        return len(self.errors) == 0

    def error_for(self, node_id: int) -> EvaluationError | None:
        """Get the error reported for a calculator, if any."""
        for error in self.errors:
            if error.node_id == node_id:
                return error
        return None


def _recompute(
    tree: CalculatorTree,
    order: Iterable[int],
    evaluator: Evaluator | None,
) -> PropagationResult:
    """Evaluate calculators one after another, feeding each result to later ones.

    ``order`` must list children before their parents so that every scope sees
    the freshest child results.
    """
    working: dict[int, CalculatorNode] = dict(tree.nodes)
    errors: list[EvaluationError] = []
    visited: list[int] = []

    for node_id in order:
        node = working[node_id]
        visited.append(node_id)
        scope = build_scope(node, working)
        logger.debug("Evaluating calculator %d (%s) with scope %r", node_id, node.name, scope)

        outcome = evaluate_expression(node_id, node.expression, scope, evaluator)
        if outcome is None:
            logger.debug("Calculator %d has no expression, keeping result %r", node_id, node.result)
        elif isinstance(outcome, EvaluationError):
            logger.debug("Calculator %d keeps stale result %r", node_id, node.result)
            errors.append(outcome)
        else:
            working[node_id] = node.model_copy(update={"result": outcome})

    return PropagationResult(
        tree=CalculatorTree(nodes=working, root_id=tree.root_id),
        errors=errors,
        visited=visited,
    )


def apply_variable_change(
    tree: CalculatorTree,
    calculator_id: int,
    variable_id: int,
    new_value: float,
    *,
    evaluator: Evaluator | None = None,
) -> PropagationResult:
    """Change one variable and recompute its calculator and every ancestor.

    Only the path from the changed calculator up to the root is recomputed;
    sibling subtrees are left untouched. Calculators without an expression are
    visited but keep their result.

    Args:
        tree: The current snapshot. It is not modified.
        calculator_id: The calculator owning the variable.
        variable_id: The variable to change.
        new_value: The new value.
        evaluator: The expression engine. Defaults to SympyEvaluator.

    Returns:
        PropagationResult with the new snapshot and any evaluation errors.

    Raises:
        NodeNotFound: If the calculator does not exist. Nothing is changed.
        VariableNotFound: If the calculator does not own the variable. Nothing is changed.
        InvalidValueError: If ``new_value`` is not a finite number. Nothing is changed.

    Example:
        >>> result = apply_variable_change(tree, calculator_id=2, variable_id=1, new_value=10)
        >>> result.tree.find_by_id(1).result
        25.0

    """
    updated = tree.set_variable_value(calculator_id, variable_id, new_value)
    index = build_index(updated)
    chain = [node.id for node in index.ancestor_chain(calculator_id)]
    logger.debug("Propagating change of variable %d along %s", variable_id, chain)
    return _recompute(updated, chain, evaluator)


def evaluate_node(
    tree: CalculatorTree,
    node_id: int,
    *,
    evaluator: Evaluator | None = None,
) -> float | EvaluationError | None:
    """Evaluate one calculator against its variables and its children's current results.

    Nothing is written back, so calling it twice on the same snapshot gives
    the same answer.

    Returns:
        The result, None if the calculator has no expression, or an EvaluationError.

    Raises:
        NodeNotFound: If the calculator does not exist.

    """
    node = tree.find_by_id(node_id)
    scope = build_scope(node, tree.nodes)
    return evaluate_expression(node_id, node.expression, scope, evaluator)


def evaluate_tree(
    tree: CalculatorTree,
    *,
    evaluator: Evaluator | None = None,
) -> PropagationResult:
    """Recompute every calculator once, children before parents.

    Use this after loading a tree whose stored results may be out of date.
    The same policy as ``apply_variable_change`` applies: failures keep the
    previous result and are reported.
    """
    order = bottom_up_order(tree)
    logger.debug("Evaluating %d calculators bottom-up", len(order))
    return _recompute(tree, order, evaluator)
