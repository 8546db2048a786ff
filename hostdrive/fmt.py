"""CLI output formatting helpers using click.style."""

import click


def success(msg: str) -> None:
    """Green checkmark prefix."""
    click.echo(click.style(" [*] ", fg="green") + msg)


def warn(msg: str) -> None:
    """Yellow warning prefix."""
    click.echo(click.style(" [!] ", fg="yellow") + msg)


def error(msg: str) -> None:
    """Red error prefix, writes to stderr."""
    click.echo(click.style(" [x] ", fg="red") + msg, err=True)


def info(msg: str) -> None:
    """Blue info prefix."""
    click.echo(click.style(" [-] ", fg="blue") + msg)


def header(msg: str) -> None:
    """Bold header text."""
    click.echo(click.style(msg, bold=True))


def dim(msg: str) -> None:
    """Dimmed text."""
    click.echo(click.style(msg, dim=True))


def format_ms(ms: int | float) -> str:
    """Render a millisecond count as ``850 ms`` or ``12.3 s``."""
    if ms < 1000:
        return f"{ms:.0f} ms"
    return f"{ms / 1000:.1f} s"
