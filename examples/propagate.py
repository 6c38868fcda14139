"""Propagation example for calctree.

Loads the mass budget, evaluates it once, then changes the battery cell mass
and shows which calculators were recomputed.

Run from the repository root:
    python examples/propagate.py
"""

from pathlib import Path

import calctree as ct

TREE_FILE = Path(__file__).parent / "mass_budget.toml"

# -----------------------------------------------------------------------------
# Initial evaluation
# -----------------------------------------------------------------------------

tree = ct.load_tree_from_toml(TREE_FILE)
initial = ct.evaluate_tree(tree)
tree = initial.tree

for node in ct.flatten(tree):
    print(f"{node.name:<10} {node.result}")

# -----------------------------------------------------------------------------
# Change one variable
# -----------------------------------------------------------------------------

# Heavier cells: only Battery, Power and Satellite are recomputed.
result = ct.apply_variable_change(tree, calculator_id=4, variable_id=3, new_value=0.06)

print()
for node_id in result.visited:
    node = result.tree.find_by_id(node_id)
    print(f"{node.name:<10} {node.result}")

if not result.success:
    for error in result.errors:
        print(f"error: {error}")
