"""Tests for reading and writing tree files."""

import tomllib
from pathlib import Path
from typing import Any

import pytest

from calctree import (
    CalculatorTree,
    NodeNotFound,
    TreeFileError,
    TreeStructureError,
    export_to_toml,
    load_tree_from_toml,
    tree_from_dict,
    tree_to_dict,
)
from calctree._io import load_project_name

BUDGET_TOML = """\
[project]
id = 7
name = "Budget"

[[calculators]]
id = 1
name = "R"
expression = "A + B"

[[calculators]]
id = 2
parent_id = 1
name = "A"
expression = "x * 2"

[[calculators.variables]]
id = 1
name = "x"
display_name = "Unit count"
value = 3.0

[[calculators]]
id = 3
parent_id = 1
name = "B"
result = 5.0
"""


@pytest.fixture
def budget_file(tmp_path: Path) -> Path:
    path = tmp_path / "budget.toml"
    path.write_text(BUDGET_TOML)
    return path


def _data(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "project": {"id": 7},
        "calculators": [
            {"id": 1, "name": "R"},
            {"id": 2, "name": "A", "parent_id": 1, "variables": [{"id": 1, "name": "x", "value": 1.0}]},
        ],
    }
    data.update(overrides)
    return data


class TestTreeFromDict:
    """Tests for converting parsed contents to a tree."""

    def test_builds_tree(self) -> None:
        tree = tree_from_dict(_data())
        assert tree.root_id == 1
        assert tree.root.children == (2,)
        assert tree.find_by_id(2).project_id == 7
        assert tree.find_by_id(2).variables[0].display_name == "x"

    def test_explicit_project_id_wins(self) -> None:
        data = _data(calculators=[{"id": 1, "name": "R", "project_id": 3}])
        assert tree_from_dict(data).root.project_id == 3

    def test_stored_children_are_ignored(self) -> None:
        data = _data()
        data["calculators"][0]["children"] = [99]
        assert tree_from_dict(data).root.children == (2,)

    @pytest.mark.parametrize("calculators", [None, [], "nope"])
    def test_requires_calculators(self, calculators: object) -> None:
        data = _data()
        if calculators is None:
            del data["calculators"]
        else:
            data["calculators"] = calculators
        with pytest.raises(TreeFileError, match="calculators"):
            tree_from_dict(data)

    def test_project_must_be_a_table(self) -> None:
        with pytest.raises(TreeFileError, match="project"):
            tree_from_dict(_data(project="Budget"))

    def test_row_must_be_a_table(self) -> None:
        with pytest.raises(TreeFileError, match=r"calculators\[1\]"):
            tree_from_dict(_data(calculators=[{"id": 1, "name": "R"}, 5]))

    def test_missing_project_id(self) -> None:
        data = _data(project={})
        with pytest.raises(TreeFileError, match="project_id"):
            tree_from_dict(data)

    def test_invalid_variable_name(self) -> None:
        data = _data()
        data["calculators"][1]["variables"][0]["name"] = "unit count"
        with pytest.raises(TreeFileError, match=r"calculators\[1\]"):
            tree_from_dict(data)

    def test_dangling_parent(self) -> None:
        data = _data(calculators=[{"id": 1, "name": "R"}, {"id": 2, "name": "A", "parent_id": 5}])
        with pytest.raises(NodeNotFound):
            tree_from_dict(data)

    def test_two_roots(self) -> None:
        data = _data(calculators=[{"id": 1, "name": "R"}, {"id": 2, "name": "S"}])
        with pytest.raises(TreeStructureError):
            tree_from_dict(data)


class TestTreeToDict:
    """Tests for converting a tree to the file layout."""

    def test_layout(self) -> None:
        data = tree_to_dict(tree_from_dict(_data()), project_name="Budget")
        assert data == {
            "project": {"id": 7, "name": "Budget"},
            "calculators": [
                {"id": 1, "name": "R"},
                {
                    "id": 2,
                    "name": "A",
                    "parent_id": 1,
                    "variables": [{"id": 1, "name": "x", "display_name": "x", "value": 1.0}],
                },
            ],
        }

    def test_project_id_taken_from_root(self) -> None:
        tree = tree_from_dict(_data(project={}, calculators=[{"id": 1, "name": "R", "project_id": 3}]))
        data = tree_to_dict(tree)
        assert data["project"] == {"id": 3}
        assert "project_id" not in data["calculators"][0]

    def test_round_trip(self) -> None:
        tree = tree_from_dict(_data())
        assert tree_from_dict(tree_to_dict(tree)) == tree


class TestTomlFiles:
    """Tests for the file-level load and export functions."""

    def test_load(self, budget_file: Path) -> None:
        tree = load_tree_from_toml(budget_file)
        assert isinstance(tree, CalculatorTree)
        assert len(tree) == 3
        assert tree.root.expression == "A + B"
        assert tree.find_by_id(3).result == 5.0
        variable = tree.find_by_id(2).get_variable(1)
        assert variable is not None
        assert variable.display_name == "Unit count"

    def test_load_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(TreeFileError, match="Cannot read"):
            load_tree_from_toml(tmp_path / "missing.toml")

    def test_load_invalid_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.toml"
        path.write_text("[[calculators]\nid = 1\n")
        with pytest.raises(TreeFileError, match="Invalid TOML"):
            load_tree_from_toml(path)

    def test_project_name(self, budget_file: Path, tmp_path: Path) -> None:
        assert load_project_name(budget_file) == "Budget"
        unnamed = tmp_path / "unnamed.toml"
        unnamed.write_text("[project]\nid = 1\n")
        assert load_project_name(unnamed) is None

    def test_export_creates_parent_directories(self, budget_file: Path, tmp_path: Path) -> None:
        tree = load_tree_from_toml(budget_file)
        output = tmp_path / "out" / "nested" / "result.toml"

        export_to_toml(tree, output, project_name="Budget")

        with output.open("rb") as f:
            data = tomllib.load(f)
        assert data["project"] == {"id": 7, "name": "Budget"}
        assert [row["id"] for row in data["calculators"]] == [1, 2, 3]
        assert "result" not in data["calculators"][0]

    def test_export_then_load(self, budget_file: Path, tmp_path: Path) -> None:
        tree = load_tree_from_toml(budget_file)
        output = tmp_path / "copy.toml"
        export_to_toml(tree, output)
        assert load_tree_from_toml(output) == tree
