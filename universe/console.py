"""Console output for the universe simulation.

Usage:
    from universe.console import console

    with console.spinner("Seeding particles..."):
        seed()

    console.success("Done", detail="4096 particles")
    console.warn("Readback failed", detail=str(err))
    console.progress(500, look_at="(0.00, 0.00, 0.00)", zoom="1.250")
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Optional

from rich.console import Console as RichConsole
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text


class Console:
    """Minimal logging interface with rich output.

    `message` may carry rich markup; `detail` is printed verbatim, so
    exception text with brackets is safe to pass.
    """

    __slots__ = ('_console',)

    def __init__(self, *, stderr: bool = False) -> None:
        self._console = RichConsole(stderr=stderr)

    def _line(self, icon: str, message: str, detail: Optional[str]) -> None:
        suffix = f" [dim]{escape(detail)}[/dim]" if detail else ""
        self._console.print(f"{icon} {message}{suffix}")

    @contextmanager
    def spinner(self, message: str):
        """Show a spinner while work is in progress."""
        with self._console.status(f"[bold cyan]{message}", spinner="dots"):
            yield

    def success(self, message: str, *, detail: Optional[str] = None, title: Optional[str] = None) -> None:
        if title:
            text = Text(message, style="bold green")
            if detail:
                text.append(f"\n{detail}", style="dim")
            self._console.print(Panel(text, title=f"[cyan]{title}[/cyan]", border_style="green"))
            return
        self._line("[bold green]✓[/bold green]", message, detail)

    def warn(self, message: str, *, detail: Optional[str] = None) -> None:
        self._line("[yellow]⚠[/yellow]", message, detail)

    def error(self, message: str, *, detail: Optional[str] = None) -> None:
        self._line("[bold red]✗[/bold red]", message, detail)

    def info(self, message: str, *, detail: Optional[str] = None) -> None:
        self._line("[blue]•[/blue]", message, detail)

    def progress(self, generation: int, **fields: object) -> None:
        """One compact line of per-tick state: `gen 500  look_at=...  zoom=...`."""
        parts = "  ".join(f"[dim]{k}=[/dim]{escape(str(v))}" for k, v in fields.items())
        self._console.print(f"[blue]•[/blue] [bold]gen {generation}[/bold]  {parts}")

    def header(self, title: str, **fields: str) -> None:
        """Show a panel with key-value fields."""
        lines = [f"[bold]{k}:[/bold] {escape(str(v))}" for k, v in fields.items()]
        self._console.print(Panel("\n".join(lines), title=f"[cyan]{title}[/cyan]", border_style="blue"))


console = Console()
