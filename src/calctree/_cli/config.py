"""`[tool.calctree]` settings read from the nearest pyproject.toml."""

import tomllib
from dataclasses import dataclass
from pathlib import Path

SECTION = "calctree"


class ConfigError(Exception):
    """Invalid `[tool.calctree]` settings."""


@dataclass(slots=True, frozen=True)
class CalcTreeConfig:
    """Default tree paths for the CLI.

    Attributes:
        input: Tree file used when a command is given no path.
        output: File written by ``calc`` when no ``-o`` is given.
        project_root: Directory holding the pyproject.toml; relative paths are anchored here.

    """

    input: Path | None = None
    output: Path | None = None
    project_root: Path | None = None


def find_pyproject_toml(start_dir: Path | None = None) -> Path | None:
    """Locate the closest pyproject.toml at or above ``start_dir`` (the working directory by default)."""
    start = (start_dir or Path.cwd()).resolve()
    for directory in (start, *start.parents):
        candidate = directory / "pyproject.toml"
        if candidate.is_file():
            return candidate
    return None


def _parse_path(section: dict[str, object], key: str, project_root: Path) -> Path | None:
    if key not in section:
        return None
    value = section[key]
    if not isinstance(value, str):
        msg = f"Invalid [tool.{SECTION}].{key}: expected string path"
        raise ConfigError(msg)
    path = Path(value)
    return path if path.is_absolute() else project_root / path


def load_config(pyproject_path: Path) -> CalcTreeConfig:
    """Read `[tool.calctree]` from a pyproject.toml.

    A file without the section gives a config with no paths set.

    Raises:
        ConfigError: If the file is not valid TOML or a setting has the wrong type.

    """
    try:
        data = tomllib.loads(pyproject_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        msg = f"Invalid TOML in {pyproject_path}: {e}"
        raise ConfigError(msg) from e

    section = data.get("tool", {}).get(SECTION, {})
    if not isinstance(section, dict):
        msg = f"Invalid [tool.{SECTION}] configuration: expected a table"
        raise ConfigError(msg)

    root = pyproject_path.parent
    return CalcTreeConfig(
        input=_parse_path(section, "input", root),
        output=_parse_path(section, "output", root),
        project_root=root,
    )


def get_config() -> CalcTreeConfig:
    """Load the config for the current directory, or an empty one if there is no pyproject.toml."""
    pyproject_path = find_pyproject_toml()
    return CalcTreeConfig() if pyproject_path is None else load_config(pyproject_path)
