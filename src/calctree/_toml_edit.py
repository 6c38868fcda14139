"""Write tree changes back into a TOML document while preserving comments.

The functions here are pure apart from mutating the tomlkit document they are
given; reading and writing files is left to the CLI.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import tomlkit
from tomlkit.items import AoT, Table

if TYPE_CHECKING:
    from tomlkit import TOMLDocument

    from ._tree import CalculatorTree


def parse_toml_preserving(content: str) -> TOMLDocument:
    """Parse TOML content keeping comments and formatting."""
    return tomlkit.parse(content)


def dumps_toml(doc: TOMLDocument) -> str:
    """Serialize a TOML document back to text."""
    return tomlkit.dumps(doc)


def _set_or_remove(table: Table | dict[str, Any], key: str, value: Any) -> None:
    if value is None:
        if key in table:
            del table[key]
    else:
        table[key] = value


def update_tree_document(doc: TOMLDocument, tree: CalculatorTree) -> TOMLDocument:
    r"""Copy results, expressions and variable values from a tree into a document.

    Only calculators and variables already present in the document are
    touched; their comments and layout are kept. Structural changes (added or
    removed calculators) are not written: use ``export_to_toml`` for those.

    Args:
        doc: Parsed tree file (from ``parse_toml_preserving``).
        tree: The tree holding the values to write.

    Returns:
        The same document object (mutated in place).

    Example:
        >>> doc = parse_toml_preserving("[[calculators]]\nid = 1  # root\nname = 'R'\n")
        >>> update_tree_document(doc, tree)
        >>> "result = 11.0" in dumps_toml(doc)
        True

    """
    calculators = doc.get("calculators")
    if not isinstance(calculators, (AoT, list)):
        return doc

    for row in calculators:
        node = tree.nodes.get(row.get("id"))
        if node is None:
            continue
        _set_or_remove(row, "result", node.result)
        _set_or_remove(row, "expression", node.expression)

        for variable_row in row.get("variables", []):
            variable = node.get_variable(variable_row.get("id"))
            if variable is not None:
                variable_row["value"] = variable.value

    return doc
