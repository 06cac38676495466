"""Tests for the whole-file validation layer."""

from __future__ import annotations

import json

from elfscope.core.elffile import ElfFile
from elfscope.core.errors import ErrorKind
from elfscope.core.validate import severity_for, validate
from shared.models import Severity

from tests.conftest import (
    PT_DYNAMIC,
    PT_LOAD,
    PT_SHLIB,
    SHT_DYNAMIC,
    SHT_PROGBITS,
    SHT_SYMTAB,
)


class TestValidate:
    def test_clean_file(self, symbol_file):
        symbol_file.add_segment(PT_LOAD, section=".text")
        report = validate(ElfFile(symbol_file.build()), "clean.elf")
        assert report.target == "clean.elf"
        assert report.findings == []
        assert report.is_valid
        assert report.checks_run > 0
        assert report.end_time is not None
        assert report.summary.endswith("0 findings (none)")

    def test_collects_every_failure(self, builder):
        builder.add_section(".odd", 12, b"\x00")
        builder.add_section(".data", SHT_PROGBITS, b"\x00", size=0x100000)
        builder.add_segment(PT_SHLIB)
        report = validate(ElfFile(builder.build()))
        assert report.kinds() == [
            ErrorKind.INVALID_SECTION_TYPE.value,
            ErrorKind.FILE_TOO_SHORT.value,
            ErrorKind.USE_OF_SHLIB.value,
        ]
        assert [f.location for f in report.findings] == [
            "section 1", "section 2", "segment 0",
        ]
        assert not report.is_valid
        assert report.severity_counts["ERROR"] == 3

    def test_symbol_and_dynamic_contents(self, builder):
        symbols = builder.sym() + builder.sym(info=0x50) + builder.sym(info=0x08)
        builder.add_section(".symtab", SHT_SYMTAB, symbols, entry_size=24)
        dynamic = builder.dyn(1, 1) + builder.dyn(31, 0) + builder.dyn(0, 0)
        builder.add_section(".dynamic", SHT_DYNAMIC, dynamic, entry_size=16)
        builder.add_segment(PT_DYNAMIC, section=".dynamic")
        report = validate(ElfFile(builder.build()))
        assert report.kinds() == [
            ErrorKind.INVALID_SYMBOL_BINDING.value,
            ErrorKind.INVALID_SYMBOL_TYPE.value,
            ErrorKind.INVALID_TAG.value,
            ErrorKind.INVALID_TAG.value,
        ]
        assert report.findings[0].location == "section 1 symbol 1"
        assert report.findings[2].location == "section 2 dynamic 1"
        assert report.findings[3].location == "segment 0 dynamic 1"

    def test_findings_carry_raw_fields(self, builder):
        builder.add_section(".data", SHT_PROGBITS, b"\x00", size=0x100000)
        builder.add_section(".symtab", SHT_SYMTAB,
                            builder.sym() + builder.sym(info=0x50),
                            entry_size=24)
        builder.add_segment(PT_SHLIB, offset=0x40, file_size=8, mem_size=8)
        report = validate(ElfFile(builder.build()))
        section, symbol, segment = report.findings
        assert json.loads(section.evidence) == {
            "type": SHT_PROGBITS,
            "offset": builder.layout[".data"],
            "size": 0x100000,
            "entry_size": 0,
        }
        assert json.loads(symbol.evidence) == {"info": 0x50}
        assert json.loads(segment.evidence)["type"] == PT_SHLIB
        assert json.loads(segment.evidence)["file_size"] == 8

    def test_warnings_keep_file_valid(self, builder):
        builder.add_section(".data", SHT_PROGBITS, b"\x00" * 16)
        builder.add_segment(PT_LOAD, section=".data", mem_size=4)
        report = validate(ElfFile(builder.build(entry=0x100000)))
        assert report.kinds() == [
            ErrorKind.ENTRY_POINT_OUT_OF_RANGE.value,
            ErrorKind.SEGMENT_SIZE_MISMATCH.value,
        ]
        assert all(f.severity is Severity.WARNING for f in report.findings)
        assert report.is_valid

    def test_broken_section_table(self, builder):
        report = validate(ElfFile(builder.build(sh_offset=0x100000)))
        kinds = report.kinds()
        assert kinds[0] == ErrorKind.FILE_TOO_SHORT.value
        assert kinds[-1] == ErrorKind.FILE_TOO_SHORT.value
        assert report.findings[-1].location == "section table"

    def test_severity_mapping(self):
        assert severity_for(ErrorKind.UNIMPLEMENTED) is Severity.WARNING
        assert severity_for(ErrorKind.INVALID_MAGIC) is Severity.ERROR
