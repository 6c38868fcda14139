"""Error types for calctree.

Caller-input problems (unknown ids, broken structure) are raised as exceptions.
Expression failures are not raised out of the engine: they are reported as
``EvaluationError`` values so that propagation can carry on with stale results.
"""

from __future__ import annotations

from dataclasses import dataclass


class CalcTreeError(Exception):
    """Base class for calctree errors."""


class NodeNotFound(CalcTreeError, KeyError):  # noqa: N818
    """A calculator id does not exist in the tree."""

    def __init__(self, node_id: int) -> None:
        self.node_id = node_id
        super().__init__(f"Calculator {node_id} not found")

    def __str__(self) -> str:
        return self.args[0]


class VariableNotFound(CalcTreeError, KeyError):  # noqa: N818
    """A variable id does not exist on the given calculator."""

    def __init__(self, node_id: int, variable_id: int) -> None:
        self.node_id = node_id
        self.variable_id = variable_id
        super().__init__(f"Variable {variable_id} not found on calculator {node_id}")

    def __str__(self) -> str:
        return self.args[0]


class DuplicateVariableName(CalcTreeError, ValueError):  # noqa: N818
    """A calculator already owns a variable with this name."""


class TreeStructureError(CalcTreeError, ValueError):
    """The calculator hierarchy violates a structural invariant."""


class InvalidValueError(CalcTreeError, ValueError):
    """A field was given a value its model rejects (for example a non-finite number)."""


class ExpressionError(CalcTreeError, ValueError):
    """An expression could not be evaluated to a finite number."""


class TreeFileError(CalcTreeError):
    """A tree file could not be read or does not describe a valid tree."""


@dataclass(frozen=True, slots=True)
class EvaluationError:
    """Failed evaluation of one calculator's expression.

    Attributes:
        node_id: The calculator whose expression failed.
        message: The evaluator's error message.

    """

    node_id: int
    message: str

    def __str__(self) -> str:
        return f"Calculator {self.node_id}: {self.message}"
