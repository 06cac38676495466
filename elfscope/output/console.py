"""
elfscope Console Output
========================

Rich terminal rendering of an :class:`~elfscope.core.models.ElfSummary`:
a header panel, then section, segment, symbol and dynamic tables, and
finally the validation findings.  Strings taken from the file are escaped
before they reach Rich markup.
"""

from __future__ import annotations

from rich.markup import escape
from rich.panel import Panel

from shared.console import ScopeConsole
from shared.models import ValidationReport

from elfscope.core.models import (
    DynamicInfo,
    ElfSummary,
    HeaderInfo,
    SectionInfo,
    SegmentInfo,
    SymbolInfo,
)


def _hex(value: int) -> str:
    return f"0x{value:x}"


class ScopeConsoleOutput:
    """Renders summaries through a :class:`ScopeConsole`.

    Usage::

        output = ScopeConsoleOutput()
        output.display(summary)
    """

    def __init__(self, console: ScopeConsole | None = None) -> None:
        self._console: ScopeConsole = console or ScopeConsole()

    def display(self, summary: ElfSummary) -> None:
        self.display_header(summary.target, summary.file_size, summary.header,
                            summary.interpreter)
        if summary.sections:
            self.display_sections(summary.sections)
        if summary.segments:
            self.display_segments(summary.segments)
        if summary.symbols:
            self.display_symbols(summary.symbols, summary.symbol_counts)
        if summary.dynamic:
            self.display_dynamic(summary.dynamic)
        if summary.lookup_name is not None:
            self.display_lookup(summary.lookup_name, summary.lookup_result)
        if summary.decode_errors:
            self._console.section("Decode errors")
            for message in summary.decode_errors:
                self._console.warning(escape(message))
        if summary.validation is not None:
            self.display_validation(summary.validation)

    def display_header(
        self,
        target: str,
        file_size: int,
        header: HeaderInfo,
        interpreter: str | None = None,
    ) -> None:
        lines = [
            f"[bold]File:[/bold]         {escape(target)}",
            f"[bold]Size:[/bold]         {file_size:,} bytes",
            f"[bold]Class:[/bold]        {header.elf_class} ({header.byte_order})",
            f"[bold]OS/ABI:[/bold]       {header.os_abi} "
            f"(ABI version {header.abi_version})",
            f"[bold]Type:[/bold]         {header.object_type}",
            f"[bold]Machine:[/bold]      {header.machine}",
            f"[bold]Entry point:[/bold]  {_hex(header.entry_point)}",
            f"[bold]Flags:[/bold]        {_hex(header.flags)}",
            f"[bold]Sections:[/bold]     {header.section_count} at "
            f"{_hex(header.sh_offset)} (names in {header.sh_str_index})",
            f"[bold]Segments:[/bold]     {header.ph_count} at "
            f"{_hex(header.ph_offset)}",
        ]
        if interpreter:
            lines.append(f"[bold]Interpreter:[/bold]  {escape(interpreter)}")
        self._console.print(Panel(
            "\n".join(lines),
            title="[bold bright_cyan]ELF Header[/bold bright_cyan]",
            border_style="bright_cyan",
            expand=False,
        ))

    def display_sections(self, sections: list[SectionInfo]) -> None:
        rows = [
            (
                s.index,
                escape(s.name),
                s.type + (f" ({s.compression})" if s.compression else ""),
                s.flags,
                _hex(s.address),
                _hex(s.offset),
                _hex(s.size),
                s.entry_size,
                s.link,
                s.align,
            )
            for s in sections
        ]
        self._console.table(
            "Sections",
            ["#", "Name", "Type", "Flags", "Address", "Offset", "Size",
             "EntSize", "Link", "Align"],
            rows,
            justify=["right", "left", "left", "left", "right", "right",
                     "right", "right", "right", "right"],
        )

    def display_segments(self, segments: list[SegmentInfo]) -> None:
        rows = [
            (
                s.index,
                s.type,
                s.flags,
                _hex(s.offset),
                _hex(s.virtual_addr),
                _hex(s.file_size),
                _hex(s.mem_size),
                _hex(s.align),
            )
            for s in segments
        ]
        self._console.table(
            "Segments",
            ["#", "Type", "Flags", "Offset", "VirtAddr", "FileSize",
             "MemSize", "Align"],
            rows,
            justify=["right", "left", "left", "right", "right", "right",
                     "right", "right"],
        )

    def display_symbols(
        self, symbols: list[SymbolInfo], counts: dict[str, int]
    ) -> None:
        total = sum(counts.values())
        caption = None
        if total > len(symbols):
            caption = f"showing {len(symbols)} of {total} symbols"
        rows = [
            (
                escape(s.table),
                s.index,
                _hex(s.value),
                s.size,
                s.type,
                s.binding,
                s.visibility,
                escape(s.section),
                escape(s.name),
            )
            for s in symbols
        ]
        self._console.table(
            "Symbols",
            ["Table", "#", "Value", "Size", "Type", "Bind", "Vis", "Section",
             "Name"],
            rows,
            caption=caption,
            justify=["left", "right", "right", "right"],
        )

    def display_dynamic(self, entries: list[DynamicInfo]) -> None:
        rows = [
            (e.index, e.tag, _hex(e.value),
             escape(e.text) if e.text is not None else "")
            for e in entries
        ]
        self._console.table(
            "Dynamic", ["#", "Tag", "Value", "String"], rows,
            justify=["right", "left", "right", "left"],
        )

    def display_lookup(self, name: str, result: SymbolInfo | None) -> None:
        self._console.section("Hash lookup")
        if result is None:
            self._console.warning(f"{escape(name)}: not found")
            return
        self._console.success(
            f"{escape(name)} -> {escape(result.table)} #{result.index} "
            f"value {_hex(result.value)} size {result.size} "
            f"({result.type}, {result.binding})"
        )

    def display_validation(self, report: ValidationReport) -> None:
        self._console.section("Validation")
        if report.findings:
            self._console.findings_table([
                f.model_copy(update={
                    "location": escape(f.location),
                    "message": escape(f.message),
                    "evidence": escape(f.evidence),
                })
                for f in report.findings
            ])
        if report.is_valid:
            self._console.success(report.summary)
        else:
            self._console.error(report.summary)
