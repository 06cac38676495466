"""
elfscope Console Interface
===========================

Rich-powered presentation layer.  Wraps :class:`rich.console.Console` with a
shared theme and helpers for section rules, status messages, tables and
validation findings.

References:
    - Rich library: https://github.com/Textualize/rich
"""

from __future__ import annotations

from typing import Any, Sequence

from rich.console import Console
from rich.table import Table
from rich.theme import Theme

_SCOPE_THEME = Theme(
    {
        "scope.section": "bold bright_magenta",
        "scope.success": "bold green",
        "scope.warning": "bold yellow",
        "scope.error": "bold red",
        "scope.info": "bold bright_blue",
        "scope.dim": "dim white",
        "scope.highlight": "bold bright_white",
        "severity.error": "bold red",
        "severity.warning": "bold yellow",
        "severity.info": "bold bright_blue",
    }
)


class ScopeConsole:
    """Unified console interface for the ``elfscope`` command.

    Usage::

        con = ScopeConsole()
        con.section("Sections")
        con.table("Sections", ["#", "Name"], rows)
        con.success("no findings")

    Args:
        quiet:  Suppress all output.
        record: Enable Rich recording for text export.
        width:  Fixed console width; ``None`` lets Rich detect it.
    """

    def __init__(
        self,
        *,
        quiet: bool = False,
        record: bool = False,
        width: int | None = None,
    ) -> None:
        self._console = Console(
            theme=_SCOPE_THEME,
            quiet=quiet,
            record=record,
            highlight=False,
            width=width,
        )

    # ------------------------------------------------------------------ #
    #  Messages
    # ------------------------------------------------------------------ #

    def section(self, title: str) -> None:
        self._console.rule(f"  {title}  ", style="scope.section")

    def success(self, message: str) -> None:
        self._console.print(f"[scope.success]OK:[/scope.success] {message}")

    def warning(self, message: str) -> None:
        self._console.print(f"[scope.warning]WARNING:[/scope.warning] {message}")

    def error(self, message: str) -> None:
        self._console.print(f"[scope.error]ERROR:[/scope.error] {message}")

    def info(self, message: str) -> None:
        self._console.print(f"[scope.info]INFO:[/scope.info] {message}")

    # ------------------------------------------------------------------ #
    #  Tables
    # ------------------------------------------------------------------ #

    def table(
        self,
        title: str,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
        *,
        caption: str | None = None,
        justify: Sequence[str] | None = None,
    ) -> None:
        """Render a Rich table.

        Args:
            title:   Table title.
            columns: Column header labels.
            rows:    Row tuples; each cell is stringified.
            caption: Optional footer caption.
            justify: Optional per-column justification (``"right"`` etc.).
        """
        tbl = Table(
            title=title,
            caption=caption,
            border_style="bright_cyan",
            header_style="bold bright_magenta",
            padding=(0, 1),
        )
        for idx, col_name in enumerate(columns):
            align = justify[idx] if justify and idx < len(justify) else "left"
            tbl.add_column(col_name, justify=align)  # type: ignore[arg-type]
        for row in rows:
            tbl.add_row(*(str(cell) for cell in row))
        self._console.print(tbl)

    def findings_table(self, findings: Sequence[Any]) -> None:
        """Render findings with severity colouring.

        Expects objects with ``severity``, ``kind``, ``location`` and
        ``message`` attributes, plus an optional ``evidence`` string (see
        :class:`shared.models.Finding`).
        """
        tbl = Table(
            title="Findings",
            border_style="bright_cyan",
            header_style="bold bright_magenta",
            show_lines=True,
            padding=(0, 1),
        )
        tbl.add_column("#", style="dim", justify="right")
        tbl.add_column("Severity")
        tbl.add_column("Location")
        tbl.add_column("Kind")
        tbl.add_column("Message", ratio=2)
        tbl.add_column("Evidence", style="scope.dim", ratio=2)

        for idx, finding in enumerate(findings, start=1):
            sev = finding.severity
            sev_name = sev.value if hasattr(sev, "value") else str(sev)
            style = f"severity.{sev_name.lower()}"
            tbl.add_row(
                str(idx),
                f"[{style}]{sev_name}[/{style}]",
                str(finding.location),
                str(finding.kind),
                str(finding.message),
                str(getattr(finding, "evidence", "")),
            )
        self._console.print(tbl)

    # ------------------------------------------------------------------ #
    #  Utility
    # ------------------------------------------------------------------ #

    def print(self, *args: Any, **kwargs: Any) -> None:
        """Proxy to :meth:`rich.console.Console.print`."""
        self._console.print(*args, **kwargs)

    def export_text(self) -> str:
        """Recorded output as plain text (requires ``record=True``)."""
        return self._console.export_text()
