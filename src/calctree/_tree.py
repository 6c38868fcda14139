"""Immutable calculator hierarchy for one project.

The tree is stored as an arena: nodes keyed by id, with explicit parent and
child id references. Every mutator returns a new ``CalculatorTree`` and leaves
the receiver untouched, so a snapshot handed to a consumer never changes under it.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import ValidationError

from ._errors import (
    DuplicateVariableName,
    InvalidValueError,
    NodeNotFound,
    TreeStructureError,
    VariableNotFound,
)
from ._models import CalculatorNode, Variable

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping

    from pydantic import BaseModel

logger = logging.getLogger(__name__)

M = TypeVar("M", bound="BaseModel")


def _evolve(model: M, **changes: Any) -> M:
    """Return a validated copy of a frozen model with some fields replaced.

    Raises:
        InvalidValueError: If a replaced field fails validation.

    """
    try:
        return type(model).model_validate({**model.model_dump(), **changes})
    except ValidationError as e:
        problems = "; ".join(f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors())
        msg = f"Invalid {type(model).__name__.lower()}: {problems}"
        raise InvalidValueError(msg) from e


@dataclass(frozen=True, slots=True)
class CalculatorTree:
    """A project's calculator hierarchy.

    Attributes:
        nodes: Read-only mapping from calculator id to node.
        root_id: Id of the single node without a parent.

    """

    nodes: Mapping[int, CalculatorNode]
    root_id: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "nodes", MappingProxyType(dict(self.nodes)))

    @classmethod
    def from_nodes(cls, nodes: Iterable[CalculatorNode]) -> CalculatorTree:
        """Build a validated tree from a flat list of nodes.

        Child order is taken from the order of the input: siblings keep the
        order in which they appear. Any ``children`` already set on the input
        nodes are ignored and recomputed from ``parent_id``.

        Args:
            nodes: Calculator nodes, in storage order.

        Returns:
            A new CalculatorTree.

        Raises:
            TreeStructureError: If ids repeat, there is not exactly one root,
                a parent belongs to another project, or the hierarchy has a cycle.
            NodeNotFound: If a node references a parent that is not in the list.

        """
        arena: dict[int, CalculatorNode] = {}
        for node in nodes:
            if node.id in arena:
                msg = f"Duplicate calculator id {node.id}"
                raise TreeStructureError(msg)
            arena[node.id] = node

        roots = [node.id for node in arena.values() if node.parent_id is None]
        if len(roots) != 1:
            msg = f"Expected exactly one root calculator, found {len(roots)}"
            raise TreeStructureError(msg)
        root_id = roots[0]

        children: dict[int, list[int]] = {node_id: [] for node_id in arena}
        for node in arena.values():
            if node.parent_id is None:
                continue
            parent = arena.get(node.parent_id)
            if parent is None:
                raise NodeNotFound(node.parent_id)
            if parent.project_id != node.project_id:
                msg = (
                    f"Calculator {node.id} (project {node.project_id}) has a parent "
                    f"in another project ({parent.project_id})"
                )
                raise TreeStructureError(msg)
            children[node.parent_id].append(node.id)

        # With one root and no dangling parents, anything unreachable sits on a cycle.
        reachable: set[int] = set()
        stack = [root_id]
        while stack:
            current = stack.pop()
            reachable.add(current)
            stack.extend(children[current])
        if len(reachable) != len(arena):
            cyclic = sorted(set(arena) - reachable)
            msg = f"Calculators {cyclic} form a cycle and are not connected to the root"
            raise TreeStructureError(msg)

        tree = cls(
            nodes={
                node_id: node.model_copy(update={"children": tuple(children[node_id])})
                for node_id, node in arena.items()
            },
            root_id=root_id,
        )
        logger.debug("Built tree with %d calculators rooted at %d", len(tree), root_id)
        return tree

    # -- queries --------------------------------------------------------------

    @property
    def root(self) -> CalculatorNode:
        """The root calculator."""
        return self.nodes[self.root_id]

    def get_root(self) -> CalculatorNode:
        """Get the root calculator."""
        return self.root

    def find_by_id(self, node_id: int) -> CalculatorNode:
        """Get a calculator by id.

        Raises:
            NodeNotFound: If no calculator has this id.

        """
        try:
            return self.nodes[node_id]
        except KeyError:
            raise NodeNotFound(node_id) from None

    def children_of(self, node_id: int) -> list[CalculatorNode]:
        """Get the direct children of a calculator, in stored order."""
        return [self.nodes[child_id] for child_id in self.find_by_id(node_id).children]

    def parent_of(self, node_id: int) -> CalculatorNode | None:
        """Get the parent of a calculator, or None for the root."""
        parent_id = self.find_by_id(node_id).parent_id
        return None if parent_id is None else self.nodes[parent_id]

    def next_node_id(self) -> int:
        """Smallest id larger than every calculator id in the tree."""
        return max(self.nodes, default=0) + 1

    def next_variable_id(self) -> int:
        """Smallest id larger than every variable id in the tree."""
        return max((v.id for node in self.nodes.values() for v in node.variables), default=0) + 1

    def sibling_name_conflicts(self) -> dict[int, list[str]]:
        """Find children sharing a name under the same parent.

        Such children shadow each other in the parent's scope (the later one wins).

        Returns:
            Mapping from parent id to the duplicated child names.

        """
        conflicts: dict[int, list[str]] = {}
        for node in self.nodes.values():
            counts = Counter(self.nodes[child_id].name for child_id in node.children)
            duplicated = [name for name, count in counts.items() if count > 1]
            if duplicated:
                conflicts[node.id] = duplicated
        return conflicts

    def __len__(self) -> int:
        """Return the number of calculators in the tree."""
        return len(self.nodes)

    def __contains__(self, node_id: object) -> bool:
        """Check if a calculator id is in the tree."""
        return node_id in self.nodes

    def __iter__(self) -> Iterator[int]:
        """Iterate over calculator ids."""
        return iter(self.nodes)

    # -- mutators -------------------------------------------------------------

    def _with_node(self, node: CalculatorNode) -> CalculatorTree:
        nodes = dict(self.nodes)
        nodes[node.id] = node
        return CalculatorTree(nodes=nodes, root_id=self.root_id)

    def set_expression(self, node_id: int, expression: str | None) -> CalculatorTree:
        """Return a tree where the calculator has a new expression.

        Blank expressions are stored as None.
        """
        node = self.find_by_id(node_id)
        if expression is not None and not expression.strip():
            expression = None
        return self._with_node(node.model_copy(update={"expression": expression}))

    def set_result(self, node_id: int, result: float | None) -> CalculatorTree:
        """Return a tree where the calculator has a new result."""
        node = self.find_by_id(node_id)
        if result is not None and not math.isfinite(result):
            msg = f"Result must be finite, got {result!r}"
            raise InvalidValueError(msg)
        return self._with_node(node.model_copy(update={"result": result}))

    def rename(self, node_id: int, name: str) -> CalculatorTree:
        """Return a tree where the calculator has a new name."""
        node = self.find_by_id(node_id)
        return self._with_node(node.model_copy(update={"name": name}))

    def set_variable_value(self, node_id: int, variable_id: int, value: float) -> CalculatorTree:
        """Return a tree where one variable of the calculator has a new value.

        Raises:
            NodeNotFound: If the calculator does not exist.
            VariableNotFound: If the calculator does not own the variable.
            InvalidValueError: If the value is not a finite number.

        """
        node = self.find_by_id(node_id)
        variable = node.get_variable(variable_id)
        if variable is None:
            raise VariableNotFound(node_id, variable_id)
        updated = _evolve(variable, value=value)
        variables = tuple(updated if v.id == variable_id else v for v in node.variables)
        return self._with_node(node.model_copy(update={"variables": variables}))

    def add_variable(self, node_id: int, variable: Variable) -> CalculatorTree:
        """Return a tree where the calculator owns an additional variable.

        Raises:
            NodeNotFound: If the calculator does not exist.
            DuplicateVariableName: If the calculator already has a variable with this name.
            TreeStructureError: If the variable id is already used in the tree.

        """
        node = self.find_by_id(node_id)
        if node.get_variable_by_name(variable.name) is not None:
            msg = f"Calculator {node_id} already has a variable named '{variable.name}'"
            raise DuplicateVariableName(msg)
        for other in self.nodes.values():
            if other.get_variable(variable.id) is not None:
                msg = f"Variable id {variable.id} is already used by calculator {other.id}"
                raise TreeStructureError(msg)
        return self._with_node(node.model_copy(update={"variables": (*node.variables, variable)}))

    def update_variable(
        self,
        node_id: int,
        variable_id: int,
        *,
        name: str | None = None,
        display_name: str | None = None,
    ) -> CalculatorTree:
        """Return a tree where a variable has a new name and/or display name."""
        node = self.find_by_id(node_id)
        variable = node.get_variable(variable_id)
        if variable is None:
            raise VariableNotFound(node_id, variable_id)
        changes: dict[str, Any] = {}
        if name is not None and name != variable.name:
            if node.get_variable_by_name(name) is not None:
                msg = f"Calculator {node_id} already has a variable named '{name}'"
                raise DuplicateVariableName(msg)
            changes["name"] = name
        if display_name is not None:
            changes["display_name"] = display_name
        if not changes:
            return self
        updated = _evolve(variable, **changes)
        variables = tuple(updated if v.id == variable_id else v for v in node.variables)
        return self._with_node(node.model_copy(update={"variables": variables}))

    def remove_variable(self, node_id: int, variable_id: int) -> CalculatorTree:
        """Return a tree where the calculator no longer owns the variable."""
        node = self.find_by_id(node_id)
        if node.get_variable(variable_id) is None:
            raise VariableNotFound(node_id, variable_id)
        variables = tuple(v for v in node.variables if v.id != variable_id)
        return self._with_node(node.model_copy(update={"variables": variables}))

    def add_child(self, parent_id: int, name: str, *, node_id: int | None = None) -> CalculatorTree:
        """Return a tree with a new, empty calculator appended under a parent.

        Args:
            parent_id: The parent calculator.
            name: Name of the new calculator.
            node_id: Id for the new calculator. Defaults to ``next_node_id()``.

        Raises:
            NodeNotFound: If the parent does not exist.
            TreeStructureError: If ``node_id`` is already used.

        """
        parent = self.find_by_id(parent_id)
        if node_id is None:
            node_id = self.next_node_id()
        elif node_id in self.nodes:
            msg = f"Calculator id {node_id} is already used"
            raise TreeStructureError(msg)
        child = CalculatorNode(id=node_id, project_id=parent.project_id, name=name, parent_id=parent_id)
        nodes = dict(self.nodes)
        nodes[node_id] = child
        nodes[parent_id] = parent.model_copy(update={"children": (*parent.children, node_id)})
        return CalculatorTree(nodes=nodes, root_id=self.root_id)

    def remove_subtree(self, node_id: int) -> CalculatorTree:
        """Return a tree without the calculator and all of its descendants.

        Raises:
            NodeNotFound: If the calculator does not exist.
            TreeStructureError: If asked to remove the root.

        """
        node = self.find_by_id(node_id)
        if node.parent_id is None:
            msg = "Cannot remove the root calculator"
            raise TreeStructureError(msg)

        removed: set[int] = set()
        stack = [node_id]
        while stack:
            current = stack.pop()
            removed.add(current)
            stack.extend(self.nodes[current].children)

        nodes = {k: v for k, v in self.nodes.items() if k not in removed}
        parent = nodes[node.parent_id]
        nodes[parent.id] = parent.model_copy(
            update={"children": tuple(c for c in parent.children if c != node_id)},
        )
        logger.debug("Removed %d calculators under %d", len(removed), node_id)
        return CalculatorTree(nodes=nodes, root_id=self.root_id)
