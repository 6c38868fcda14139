import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from calctree._errors import CalcTreeError, EvaluationError
from calctree._index import build_index
from calctree._io import export_to_toml, load_project_name, load_tree_from_toml
from calctree._propagation import PropagationResult, apply_variable_change, evaluate_node, evaluate_tree
from calctree._toml_edit import dumps_toml, parse_toml_preserving, update_tree_document
from calctree._traversal import depth_of, flatten
from calctree._tree import CalculatorTree

from .config import ConfigError, get_config

app = typer.Typer()

logger = logging.getLogger(__name__)
# Console for stderr (info/errors)
err_console = Console(stderr=True)
# Console for stdout (results)
out_console = Console()


@app.callback()
def callback(
    *,
    verbose: bool = typer.Option(default=False, help="Enable verbose output"),
) -> None:
    """Calctree CLI."""
    log_level = logging.DEBUG if verbose else logging.INFO

    # Configure rich logging handler to output to stderr
    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[
            RichHandler(
                console=err_console,
                show_time=False,
                show_path=verbose,
                rich_tracebacks=True,
            ),
        ],
    )


def _resolve_tree_path(tree_path: Path | None) -> Path:
    """Use the given tree path, or fall back to [tool.calctree].input."""
    if tree_path is not None:
        return tree_path
    try:
        config = get_config()
    except ConfigError as e:
        err_console.print(f"[red]✗ {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e
    if config.input is None:
        err_console.print("[red]✗ No tree file given and no [tool.calctree].input configured[/red]")
        raise typer.Exit(code=1)
    return config.input


def _resolve_output_path(output: Path | None) -> Path | None:
    if output is not None:
        return output
    try:
        return get_config().output
    except ConfigError as e:
        err_console.print(f"[red]✗ {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e


def _load_tree(tree_path: Path) -> CalculatorTree:
    err_console.print(f"[cyan]Loading tree from:[/cyan] {tree_path}")
    try:
        return load_tree_from_toml(tree_path)
    except CalcTreeError as e:
        err_console.print(f"[red]✗ {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e


def _format_number(value: float | None) -> str:
    return "-" if value is None else f"{value:g}"


def _print_errors(errors: list[EvaluationError], tree: CalculatorTree) -> None:
    table = Table(show_header=True, header_style="bold red", box=None)
    table.add_column("Calculator", style="bold")
    table.add_column("Error")
    table.add_column("Kept result", justify="right")
    for error in errors:
        node = tree.find_by_id(error.node_id)
        table.add_row(
            escape(f"{node.name} (#{node.id})"),
            escape(error.message),
            _format_number(node.result),
        )
    err_console.print(Panel(table, title="[bold]Evaluation Errors[/bold]", border_style="red"))


def _print_visited(result: PropagationResult) -> None:
    table = Table(show_header=True, header_style="bold cyan", box=None)
    table.add_column("Calculator", style="dim")
    table.add_column("Result", justify="right")
    for node_id in result.visited:
        node = result.tree.find_by_id(node_id)
        status = "[red]✗[/red]" if result.error_for(node_id) else "[green]✓[/green]"
        table.add_row(escape(f"{node.name} (#{node.id})"), f"{_format_number(node.result)} {status}")
    err_console.print(Panel(table, title="[bold]Recomputed Calculators[/bold]", border_style="cyan"))


@app.command()
def check(
    tree_path: Annotated[
        Path | None,
        typer.Argument(help="Path to the tree TOML file (defaults to [tool.calctree].input)"),
    ] = None,
) -> None:
    """Check the structure of a calculator tree without evaluating it."""
    err_console.print()
    tree_path = _resolve_tree_path(tree_path)
    tree = _load_tree(tree_path)

    err_console.print("[cyan]Validating hierarchy...[/cyan]")
    try:
        index = build_index(tree)
    except CalcTreeError as e:
        err_console.print(f"[red]✗ {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e
    err_console.print()

    depths = depth_of(tree)
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Root", style="bold")
    table.add_column("Calculators", justify="right", style="yellow")
    table.add_column("Variables", justify="right", style="green")
    table.add_column("Depth", justify="right")
    table.add_row(
        escape(tree.root.name),
        str(len(index)),
        str(sum(len(node.variables) for node in tree.nodes.values())),
        str(max(depths.values())),
    )
    err_console.print(Panel(table, title=f"[bold]Project {tree.root.project_id}[/bold]", border_style="cyan"))

    conflicts = tree.sibling_name_conflicts()
    if conflicts:
        err_console.print()
        err_console.print("[yellow]⚠ Children sharing a name (the later one shadows the earlier):[/yellow]")
        for parent_id, names in conflicts.items():
            parent = tree.find_by_id(parent_id)
            err_console.print(f"  [yellow]•[/yellow] {escape(parent.name)} (#{parent_id}): {escape(', '.join(names))}")

    err_console.print()
    err_console.print("[green]✓ Tree is valid[/green]")
    err_console.print()


@app.command()
def show(
    tree_path: Annotated[
        Path | None,
        typer.Argument(help="Path to the tree TOML file (defaults to [tool.calctree].input)"),
    ] = None,
) -> None:
    """List every calculator breadth-first with its expression, result and variables."""
    tree_path = _resolve_tree_path(tree_path)
    tree = _load_tree(tree_path)
    depths = depth_of(tree)

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Calculator", style="bold")
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Expression")
    table.add_column("Result", justify="right", style="green")
    table.add_column("Variables")

    for node in flatten(tree):
        variables = ", ".join(f"{v.name}={v.value:g} (#{v.id})" for v in node.variables)
        table.add_row(
            escape("  " * depths[node.id] + node.name),
            str(node.id),
            escape(node.expression or ""),
            _format_number(node.result),
            escape(variables),
        )

    out_console.print(table)


@app.command()
def calc(
    tree_path: Annotated[
        Path | None,
        typer.Argument(help="Path to the tree TOML file (defaults to [tool.calctree].input)"),
    ] = None,
    *,
    output: Annotated[
        Path | None,
        typer.Option("-o", "--output", help="Path to output TOML file (defaults to [tool.calctree].output)"),
    ] = None,
) -> None:
    """Recompute every calculator bottom-up and export the tree."""
    err_console.print()
    tree_path = _resolve_tree_path(tree_path)
    output = _resolve_output_path(output)
    if output is None:
        err_console.print("[red]✗ No output file given and no [tool.calctree].output configured[/red]")
        raise typer.Exit(code=1)

    tree = _load_tree(tree_path)

    err_console.print("[cyan]Evaluating calculators...[/cyan]")
    result = evaluate_tree(tree)
    err_console.print()

    if result.errors:
        _print_errors(result.errors, result.tree)
        err_console.print()

    err_console.print(f"[cyan]Exporting results to:[/cyan] {output}")
    export_to_toml(result.tree, output, load_project_name(tree_path))

    err_console.print()
    if result.success:
        err_console.print("[green]✓ Calculation complete[/green]")
    else:
        err_console.print(f"[red]✗ {len(result.errors)} calculator(s) failed to evaluate[/red]")
    err_console.print()

    raise typer.Exit(code=0 if result.success else 1)


@app.command(name="set")
def set_variable(  # noqa: PLR0913
    tree_path: Annotated[
        Path | None,
        typer.Argument(help="Path to the tree TOML file (defaults to [tool.calctree].input)"),
    ] = None,
    *,
    calculator: Annotated[
        int,
        typer.Option("-c", "--calculator", help="Id of the calculator owning the variable"),
    ],
    variable: Annotated[
        int,
        typer.Option("-v", "--variable", help="Id of the variable to change"),
    ],
    value: Annotated[
        float,
        typer.Option("--value", help="New value of the variable"),
    ],
    output: Annotated[
        Path | None,
        typer.Option("-o", "--output", help="Path to output TOML file (defaults to updating the input in place)"),
    ] = None,
) -> None:
    """Change a variable and recompute its calculator and all of its ancestors."""
    err_console.print()
    tree_path = _resolve_tree_path(tree_path)
    tree = _load_tree(tree_path)

    err_console.print(f"[cyan]Setting variable #{variable} of calculator #{calculator} to {value:g}...[/cyan]")
    try:
        result = apply_variable_change(tree, calculator, variable, value)
    except CalcTreeError as e:
        err_console.print(f"[red]✗ {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e
    err_console.print()

    _print_visited(result)
    err_console.print()

    if result.errors:
        _print_errors(result.errors, result.tree)
        err_console.print()

    if output is None:
        # Update in place, keeping the user's comments.
        err_console.print(f"[cyan]Updating:[/cyan] {tree_path}")
        doc = parse_toml_preserving(tree_path.read_text(encoding="utf-8"))
        update_tree_document(doc, result.tree)
        tree_path.write_text(dumps_toml(doc), encoding="utf-8")
    else:
        err_console.print(f"[cyan]Exporting results to:[/cyan] {output}")
        export_to_toml(result.tree, output, load_project_name(tree_path))

    err_console.print()
    if result.success:
        err_console.print("[green]✓ Propagation complete[/green]")
    else:
        err_console.print("[yellow]⚠ Propagation complete with stale results[/yellow]")
    err_console.print()

    raise typer.Exit(code=0 if result.success else 1)


@app.command(name="eval")
def eval_calculator(
    tree_path: Annotated[
        Path | None,
        typer.Argument(help="Path to the tree TOML file (defaults to [tool.calctree].input)"),
    ] = None,
    *,
    calculator: Annotated[
        int,
        typer.Option("-c", "--calculator", help="Id of the calculator to evaluate"),
    ],
) -> None:
    """Evaluate a single calculator from its variables and its children's stored results."""
    tree_path = _resolve_tree_path(tree_path)
    tree = _load_tree(tree_path)

    try:
        outcome = evaluate_node(tree, calculator)
    except CalcTreeError as e:
        err_console.print(f"[red]✗ {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e

    node = tree.find_by_id(calculator)
    if isinstance(outcome, EvaluationError):
        err_console.print(f"[red]✗ Invalid expression:[/red] {escape(outcome.message)}")
        err_console.print(f"[dim]Stored result: {_format_number(node.result)}[/dim]")
        raise typer.Exit(code=1)

    if outcome is None:
        err_console.print(f"[yellow]{escape(node.name)} has no expression[/yellow]")
        out_console.print(_format_number(node.result))
        return

    out_console.print(f"{outcome:g}")


def main() -> None:
    app()
