"""
Utility functions for the category-based file sorter.

Includes:
- JSON save/load helpers
- Console output helpers
"""

import json
from pathlib import Path
from typing import Any
from rich.console import Console
from rich.table import Table
from rich.tree import Tree
from rich.panel import Panel

# Global console instance
console = Console()

def print_header(title: str, subtitle: str = ""):
    """Print a styled header."""
    console.print(Panel(f"[bold blue]{title}[/bold blue]\n[italic]{subtitle}[/italic]", expand=False))

def print_plan_table(plan) -> None:
    """Print a summary table of a dry-run plan."""
    stats = plan.stats

    table = Table(title="Plan Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", style="magenta")

    table.add_row("New Folders", str(stats.create_count))
    table.add_row("Moves", str(stats.move_count))
    table.add_row("Uncategorized", str(stats.unresolved_count))
    table.add_row("Errors", str(stats.error_count))

    console.print(table)

    if plan.moves:
        tree = Tree("[bold green]Sample Moves[/bold green]")
        for move in plan.moves[:10]:
            style = "blue" if move.reason == "classified" else "dim"
            tree.add(f"[yellow]{move.source}[/yellow] -> [{style}]{move.destination}[/{style}]")
        if len(plan.moves) > 10:
            tree.add(f"[italic]... and {len(plan.moves)-10} more[/italic]")
        console.print(tree)

def print_error(msg: str):
    console.print(f"[bold red]ERROR:[/bold red] {msg}")

def print_warning(msg: str):
    console.print(f"[bold yellow]WARNING:[/bold yellow] {msg}")

def print_success(msg: str):
    console.print(f"[bold green]SUCCESS:[/bold green] {msg}")

def print_info(msg: str):
    console.print(f"[dim][INFO][/dim] {msg}")


def save_json(data: Any, path: Path) -> None:
    """
    Save data to a JSON file with pretty formatting.
    
    Args:
        data: The data to serialize.
        path: The output file path.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def load_json(path: Path) -> Any:
    """
    Load data from a JSON file.
    
    Args:
        path: The input file path.
        
    Returns:
        The deserialized data.
    """
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)
