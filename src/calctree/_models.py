"""Data model for calculators and their variables."""

from __future__ import annotations

import keyword
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator

IDENTIFIER_PATTERN = r"^[A-Za-z_][A-Za-z0-9_]*$"


def _not_a_keyword(name: str) -> str:
    if keyword.iskeyword(name):
        msg = f"'{name}' is a reserved word and cannot be used as a name in expressions"
        raise ValueError(msg)
    return name


Identifier = Annotated[str, Field(pattern=IDENTIFIER_PATTERN), AfterValidator(_not_a_keyword)]
FiniteFloat = Annotated[float, Field(allow_inf_nan=False)]


class Variable(BaseModel):
    """A named numeric input owned by a single calculator.

    ``name`` is the key the value is exposed under when the owning calculator's
    expression is evaluated, so it must be a valid identifier.
    ``display_name`` is free text shown to users and defaults to ``name``.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    name: Identifier
    display_name: str = ""
    value: FiniteFloat

    @model_validator(mode="before")
    @classmethod
    def _default_display_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("display_name") and "name" in data:
            return {**data, "display_name": data["name"]}
        return data


class CalculatorNode(BaseModel):
    """One calculator in a project's hierarchy.

    Children are referenced by id; the owning ``CalculatorTree`` holds the nodes.
    ``result`` is ``None`` until an evaluation succeeds.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    project_id: int
    name: str
    parent_id: int | None = None
    expression: str | None = None
    result: FiniteFloat | None = None
    variables: tuple[Variable, ...] = ()
    children: tuple[int, ...] = ()

    @property
    def is_root(self) -> bool:
        """Check if this node has no parent."""
        return self.parent_id is None

    @property
    def has_expression(self) -> bool:
        """Check if this node has a non-blank expression to evaluate."""
        return bool(self.expression and self.expression.strip())

    def get_variable(self, variable_id: int) -> Variable | None:
        """Get an owned variable by id.

        Args:
            variable_id: The variable id to look for.

        Returns:
            The matching Variable, or None if this node does not own it.

        """
        for variable in self.variables:
            if variable.id == variable_id:
                return variable
        return None

    def get_variable_by_name(self, name: str) -> Variable | None:
        """Get the last owned variable with the given name (the one visible in scope)."""
        found = None
        for variable in self.variables:
            if variable.name == name:
                found = variable
        return found
