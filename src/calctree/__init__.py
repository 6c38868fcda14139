"""Hierarchical calculators with bottom-up result propagation."""

__all__ = [
    "CalcTreeError",
    "CalculatorNode",
    "CalculatorTree",
    "DuplicateVariableName",
    "EvaluationError",
    "Evaluator",
    "ExpressionError",
    "InvalidValueError",
    "NodeNotFound",
    "PropagationResult",
    "SympyEvaluator",
    "TreeFileError",
    "TreeIndex",
    "TreeStructureError",
    "Variable",
    "VariableNotFound",
    "apply_variable_change",
    "bottom_up_order",
    "build_index",
    "build_scope",
    "evaluate_expression",
    "evaluate_node",
    "evaluate_tree",
    "export_to_toml",
    "flatten",
    "load_tree_from_toml",
    "tree_from_dict",
    "tree_to_dict",
]

from ._errors import (
    CalcTreeError,
    DuplicateVariableName,
    EvaluationError,
    ExpressionError,
    InvalidValueError,
    NodeNotFound,
    TreeFileError,
    TreeStructureError,
    VariableNotFound,
)
from ._evaluator import Evaluator, SympyEvaluator, evaluate_expression
from ._index import TreeIndex, build_index
from ._io import export_to_toml, load_tree_from_toml, tree_from_dict, tree_to_dict
from ._models import CalculatorNode, Variable
from ._propagation import PropagationResult, apply_variable_change, evaluate_node, evaluate_tree
from ._scope import build_scope
from ._traversal import bottom_up_order, flatten
from ._tree import CalculatorTree
