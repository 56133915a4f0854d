"""Output formatting utilities for outbox commands."""

from collections.abc import Mapping

import click


def success(message: str) -> None:
    """Print a success message in green."""
    click.secho(f"✓ {message}", fg="green")


def error(message: str) -> None:
    """Print an error message in red to stderr."""
    click.secho(f"✗ {message}", fg="red", err=True)


def warning(message: str) -> None:
    click.secho(f"⚠ {message}", fg="yellow")


def info(message: str) -> None:
    click.secho(f"ℹ {message}", fg="blue")


def header(message: str) -> None:
    """Print a section title in cyan bold, preceded by a blank line."""
    click.secho(f"\n{message}", fg="cyan", bold=True)


def key_values(rows: Mapping[str, object]) -> None:
    """Print aligned `key: value` lines, e.g. a drain result."""
    if not rows:
        return
    width = max(len(key) for key in rows) + 2
    for key, value in rows.items():
        click.echo(f"  {key + ':':<{width}} {value}")


def count_table(counts: Mapping[str, int], *, label: str = "Status") -> None:
    """Print a two-column count table followed by a TOTAL row."""
    rule = "-" * 23
    click.echo(f"{label:<12} {'Count':>10}")
    click.echo(rule)
    for name, count in counts.items():
        click.echo(f"{name:<12} {count:>10}")
    click.echo(rule)
    click.echo(f"{'TOTAL':<12} {sum(counts.values()):>10}")
