"""
Validation Layer
=================

Runs every component's sanity check over a whole file and collects the
failures instead of stopping at the first one.  Each individual check still
raises on its first violation; :func:`validate` records that violation as a
:class:`~shared.models.Finding` and moves on to the next structure.

Checks, in order:

    1. file header
    2. every section header, then symbol binding/type and dynamic tags of
       symbol and dynamic sections
    3. every program header, then dynamic tags of ``PT_DYNAMIC``
"""

from __future__ import annotations

from typing import Any, Callable

from elfscope.core import header as header_checks
from elfscope.core import program as program_checks
from elfscope.core import sections as section_checks
from elfscope.core.elffile import ElfFile
from elfscope.core.errors import ElfError, ErrorKind
from elfscope.core.header import HeaderPt2
from elfscope.core.program import ProgramHeader, SegmentType
from elfscope.core.sections import (
    DynamicTable,
    SectionHeader,
    ShType,
    SymbolTable,
)
from shared.models import Finding, Severity, ValidationReport

# Kinds that real-world files commonly trip without being malformed
_WARNING_KINDS: frozenset[ErrorKind] = frozenset({
    ErrorKind.ENTRY_POINT_OUT_OF_RANGE,
    ErrorKind.SEGMENT_SIZE_MISMATCH,
    ErrorKind.UNIMPLEMENTED,
})


def severity_for(kind: ErrorKind) -> Severity:
    return Severity.WARNING if kind in _WARNING_KINDS else Severity.ERROR


class _Collector:
    """Runs checks and turns :class:`ElfError` into findings."""

    def __init__(self, report: ValidationReport) -> None:
        self.report = report

    def record(self, location: str, exc: ElfError,
               evidence: dict[str, int] | None = None) -> None:
        self.report.add_finding(Finding(
            severity=severity_for(exc.kind),
            kind=exc.kind.value,
            location=location,
            message=exc.message,
            evidence=evidence or "",
        ))

    def run(self, location: str, check: Callable[..., Any], *args: Any,
            evidence: dict[str, int] | None = None) -> Any:
        """Run *check*; return its result, or ``None`` if it failed.

        *evidence* holds the raw fields of the structure under test and is
        attached to the finding when the check fails.
        """
        self.report.checks_run += 1
        try:
            return check(*args)
        except ElfError as exc:
            self.record(location, exc, evidence)
            return None


def _header_evidence(pt2: HeaderPt2) -> dict[str, int]:
    return {
        "entry_point": pt2.entry_point,
        "header_size": pt2.header_size,
        "ph_offset": pt2.ph_offset,
        "ph_entry_size": pt2.ph_entry_size,
        "ph_count": pt2.ph_count,
        "sh_offset": pt2.sh_offset,
        "sh_entry_size": pt2.sh_entry_size,
        "sh_count": pt2.sh_count,
    }


def _section_evidence(sh: SectionHeader) -> dict[str, int]:
    return {
        "type": sh.type,
        "offset": sh.offset,
        "size": sh.size,
        "entry_size": sh.entry_size,
    }


def _segment_evidence(ph: ProgramHeader) -> dict[str, int]:
    return {
        "type": ph.type,
        "offset": ph.offset,
        "virtual_addr": ph.virtual_addr,
        "file_size": ph.file_size,
        "mem_size": ph.mem_size,
        "align": ph.align,
    }


def _check_symbols(collector: _Collector, location: str,
                   table: SymbolTable) -> None:
    for entry in table:
        where = f"{location} symbol {entry.index}"
        evidence = {"info": entry.info}
        collector.run(where, entry.get_binding, evidence=evidence)
        collector.run(where, entry.get_type, evidence=evidence)


def _check_dynamic(collector: _Collector, location: str,
                   table: DynamicTable) -> None:
    for entry in table:
        collector.run(f"{location} dynamic {entry.index}", entry.get_tag,
                      evidence={"tag": entry.tag})


def validate(elf_file: ElfFile, target: str = "<buffer>") -> ValidationReport:
    """Validate *elf_file* and return every violation found.

    Args:
        elf_file: A file whose header already decoded.
        target: Name recorded in the report (usually the file path).

    Returns:
        A finalized :class:`~shared.models.ValidationReport`.
    """
    report = ValidationReport(target=target)
    collector = _Collector(report)

    pt2 = elf_file.header.pt2
    collector.run("header", header_checks.sanity_check, elf_file,
                  evidence=_header_evidence(pt2))

    headers = collector.run(
        "section table", lambda: list(elf_file.section_headers()),
        evidence={"sh_offset": pt2.sh_offset, "sh_count": pt2.sh_count,
                  "sh_entry_size": pt2.sh_entry_size},
    ) or []
    for sh in headers:
        location = f"section {sh.index}"
        evidence = _section_evidence(sh)
        collector.run(location, section_checks.sanity_check, sh, elf_file,
                      evidence=evidence)
        if sh.type in (ShType.SYMTAB, ShType.DYNSYM, ShType.DYNAMIC):
            data = collector.run(location, sh.get_data, elf_file,
                                 evidence=evidence)
            if isinstance(data, SymbolTable):
                _check_symbols(collector, location, data)
            elif isinstance(data, DynamicTable):
                _check_dynamic(collector, location, data)

    segments = collector.run(
        "program table", lambda: list(elf_file.program_headers()),
        evidence={"ph_offset": pt2.ph_offset, "ph_count": pt2.ph_count,
                  "ph_entry_size": pt2.ph_entry_size},
    ) or []
    for ph in segments:
        location = f"segment {ph.index}"
        evidence = _segment_evidence(ph)
        collector.run(location, program_checks.sanity_check, ph, elf_file,
                      evidence=evidence)
        if ph.type == SegmentType.DYNAMIC:
            data = collector.run(location, ph.get_data, elf_file,
                                 evidence=evidence)
            if isinstance(data, DynamicTable):
                _check_dynamic(collector, location, data)

    return report.finalize()
