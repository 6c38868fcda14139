import logging
import tomllib
from pathlib import Path
from typing import Any

import tomli_w
from pydantic import ValidationError

from ._errors import TreeFileError
from ._models import CalculatorNode
from ._traversal import flatten
from ._tree import CalculatorTree

logger = logging.getLogger(__name__)


def tree_from_dict(data: dict[str, Any]) -> CalculatorTree:
    """Convert parsed tree-file contents to a validated tree.

    This is a pure function. The expected layout is a ``[project]`` table and
    a ``[[calculators]]`` array; each calculator may carry a
    ``[[calculators.variables]]`` array. A calculator's ``project_id`` defaults
    to ``project.id``.

    Args:
        data: The parsed TOML (or JSON) document.

    Returns:
        The validated CalculatorTree.

    Raises:
        TreeFileError: If the contents do not describe a calculator.
        TreeStructureError: If the calculators do not form a tree.
        NodeNotFound: If a calculator references a missing parent.

    """
    project = data.get("project", {})
    if not isinstance(project, dict):
        msg = "[project] must be a table"
        raise TreeFileError(msg)

    rows = data.get("calculators")
    if not isinstance(rows, list) or not rows:
        msg = "Expected a non-empty [[calculators]] array"
        raise TreeFileError(msg)

    nodes: list[CalculatorNode] = []
    for position, row in enumerate(rows):
        if not isinstance(row, dict):
            msg = f"calculators[{position}] must be a table"
            raise TreeFileError(msg)
        fields = dict(row)
        if "project_id" not in fields and "id" in project:
            fields["project_id"] = project["id"]
        fields.pop("children", None)
        try:
            nodes.append(CalculatorNode.model_validate(fields))
        except ValidationError as e:
            msg = f"Invalid calculator at calculators[{position}]: {e}"
            raise TreeFileError(msg) from e

    return CalculatorTree.from_nodes(nodes)


def tree_to_dict(tree: CalculatorTree, project_name: str | None = None) -> dict[str, Any]:
    """Convert a tree to the tree-file layout.

    Calculators are written breadth-first so that every parent precedes its
    children and sibling order is preserved on reload. ``None`` values are
    omitted because TOML cannot represent them.

    Args:
        tree: The tree to convert.
        project_name: Optional project name for the ``[project]`` table.

    Returns:
        A dict ready for ``tomli_w``.

    """
    project: dict[str, Any] = {"id": tree.root.project_id}
    if project_name is not None:
        project["name"] = project_name

    calculators: list[dict[str, Any]] = []
    for node in flatten(tree):
        row = node.model_dump(exclude={"children", "variables"}, exclude_none=True)
        if row.get("project_id") == project["id"]:
            del row["project_id"]
        if node.variables:
            row["variables"] = [variable.model_dump() for variable in node.variables]
        calculators.append(row)

    return {"project": project, "calculators": calculators}


def load_tree_from_toml(input_path: Path | str) -> CalculatorTree:
    """Load a calculator tree from a TOML file.

    Args:
        input_path: Path to the tree file.

    Returns:
        The validated CalculatorTree.

    Raises:
        TreeFileError: If the file cannot be read or parsed.

    """
    input_path = Path(input_path)
    try:
        with input_path.open("rb") as f:
            data = tomllib.load(f)
    except OSError as e:
        msg = f"Cannot read {input_path}: {e}"
        raise TreeFileError(msg) from e
    except tomllib.TOMLDecodeError as e:
        msg = f"Invalid TOML in {input_path}: {e}"
        raise TreeFileError(msg) from e

    tree = tree_from_dict(data)
    logger.debug(f"Loaded {len(tree)} calculators from {input_path}")
    return tree


def load_project_name(input_path: Path | str) -> str | None:
    """Read the optional ``project.name`` from a tree file."""
    with Path(input_path).open("rb") as f:
        data = tomllib.load(f)
    name = data.get("project", {}).get("name")
    return name if isinstance(name, str) else None


def export_to_toml(
    tree: CalculatorTree,
    output_path: Path | str,
    project_name: str | None = None,
) -> None:
    """Write a calculator tree to a TOML file.

    Args:
        tree: The tree to write.
        output_path: Path to the output file. Parent directories are created.
        project_name: Optional project name for the ``[project]`` table.

    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("wb") as f:
        tomli_w.dump(tree_to_dict(tree, project_name), f)

    logger.debug(f"Exported {len(tree)} calculators to {output_path}")
