"""
Program (Segment) Table
========================

Program header records describe the segments a loader maps into memory.
Segment payloads reuse the section payload types: ``PT_DYNAMIC`` yields a
:class:`~elfscope.core.sections.DynamicTable`, ``PT_NOTE`` a
:class:`~elfscope.core.sections.Note`, and every other loadable kind the raw
bytes.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

from elfscope.core.dynamic import DynamicEntry
from elfscope.core.errors import ElfError, ErrorKind, check
from elfscope.core.sections import (
    DynamicTable,
    Empty,
    Note,
    parse_notes,
    RawData,
)
from elfscope.core.view import decode_name, subview, view_array

if TYPE_CHECKING:
    from elfscope.core.elffile import ElfFile


PT_LOOS: int = 0x60000000
PT_HIOS: int = 0x6FFFFFFF
PT_LOPROC: int = 0x70000000
PT_HIPROC: int = 0x7FFFFFFF

# Well-known OS-specific segment types, for display only
_GNU_SEGMENT_NAMES: dict[int, str] = {
    0x6474E550: "GNU_EH_FRAME",
    0x6474E551: "GNU_STACK",
    0x6474E552: "GNU_RELRO",
    0x6474E553: "GNU_PROPERTY",
}


class SegmentType(enum.IntEnum):
    NULL = 0
    LOAD = 1
    DYNAMIC = 2
    INTERP = 3
    NOTE = 4
    SHLIB = 5
    PHDR = 6
    TLS = 7
    OS_SPECIFIC = PT_LOOS
    PROCESSOR_SPECIFIC = PT_LOPROC

    @classmethod
    def from_raw(cls, value: int) -> SegmentType:
        if 0 <= value <= 7:
            return cls(value)
        if PT_LOOS <= value <= PT_HIOS:
            return cls.OS_SPECIFIC
        if PT_LOPROC <= value <= PT_HIPROC:
            return cls.PROCESSOR_SPECIFIC
        raise ElfError(
            ErrorKind.INVALID_SEGMENT_TYPE, f"invalid segment type {value:#x}"
        )


def segment_type_name(value: int) -> str:
    if value in _GNU_SEGMENT_NAMES:
        return _GNU_SEGMENT_NAMES[value]
    try:
        seg_type = SegmentType.from_raw(value)
    except ElfError:
        return f"invalid({value:#x})"
    if seg_type in (SegmentType.OS_SPECIFIC, SegmentType.PROCESSOR_SPECIFIC):
        return f"{seg_type.name}({value:#x})"
    return seg_type.name


class SegmentFlags(enum.IntFlag):
    X = 0x1
    W = 0x2
    R = 0x4


PF_MASKOS: int = 0x0FF00000
PF_MASKPROC: int = 0xF0000000

SegmentData = Union[Empty, RawData, DynamicTable, Note]


@dataclass(frozen=True, slots=True)
class ProgramHeader:
    """One entry of the program header table."""
    index: int
    type: int
    flags: int
    offset: int
    virtual_addr: int
    physical_addr: int
    file_size: int
    mem_size: int
    align: int

    @classmethod
    def from_fields(cls, index: int, fields: dict[str, int]) -> ProgramHeader:
        return cls(index=index, **fields)

    def get_type(self) -> SegmentType:
        return SegmentType.from_raw(self.type)

    def flags_str(self) -> str:
        """Flags in ``RWE`` notation, as readelf prints them."""
        return (
            ("R" if self.flags & SegmentFlags.R else " ")
            + ("W" if self.flags & SegmentFlags.W else " ")
            + ("E" if self.flags & SegmentFlags.X else " ")
        )

    def raw_data(self, elf_file: ElfFile) -> memoryview:
        return subview(elf_file.input, self.offset, self.file_size)

    def get_data(self, elf_file: ElfFile) -> SegmentData:
        """Decode the segment contents according to its type.

        Raises:
            ElfError: ``INVALID_SEGMENT_TYPE``, ``FILE_TOO_SHORT``,
                ``MISALIGNED_LENGTH`` for a ragged dynamic segment, or
                ``UNIMPLEMENTED`` for notes in 32-bit files.
        """
        seg_type = self.get_type()
        if seg_type is SegmentType.NULL:
            return Empty()
        data = self.raw_data(elf_file)
        if seg_type is SegmentType.DYNAMIC:
            return DynamicTable(view_array(
                elf_file.word.codec.dynamic, data, DynamicEntry.from_fields
            ))
        if seg_type is SegmentType.NOTE:
            return parse_notes(data, elf_file.word)
        return RawData(data)

    def interpreter(self, elf_file: ElfFile) -> str | None:
        """The program interpreter path of a ``PT_INTERP`` segment."""
        if self.get_type() is not SegmentType.INTERP:
            return None
        raw = bytes(self.raw_data(elf_file))
        return decode_name(raw.split(b"\x00", 1)[0])


def sanity_check(ph: ProgramHeader, elf_file: ElfFile) -> None:
    """Check one program header against ELF invariants.

    Raises:
        ElfError: On the first violated invariant.
    """
    pt2 = elf_file.header.pt2
    expected = elf_file.word.codec.program.size
    check(
        pt2.ph_entry_size == expected,
        ErrorKind.PROGRAM_HEADER_SIZE_MISMATCH,
        f"ph_entry_size {pt2.ph_entry_size} != {expected}",
    )
    check(
        ph.offset + ph.file_size <= len(elf_file.input),
        ErrorKind.FILE_TOO_SHORT,
        f"segment {ph.index} [{ph.offset:#x}, {ph.offset + ph.file_size:#x}) "
        f"runs past the end of the file",
    )
    seg_type = ph.get_type()
    check(
        seg_type is not SegmentType.SHLIB,
        ErrorKind.USE_OF_SHLIB,
        f"segment {ph.index} uses PT_SHLIB",
    )
    if ph.align > 1:
        check(
            ph.virtual_addr % ph.align == ph.offset % ph.align,
            ErrorKind.MISALIGNED_ADDRESS_AND_OFFSET,
            f"segment {ph.index}: vaddr {ph.virtual_addr:#x} and offset "
            f"{ph.offset:#x} disagree modulo {ph.align:#x}",
        )
    if seg_type is SegmentType.LOAD:
        check(
            ph.file_size <= ph.mem_size,
            ErrorKind.SEGMENT_SIZE_MISMATCH,
            f"segment {ph.index} file size {ph.file_size:#x} exceeds "
            f"memory size {ph.mem_size:#x}",
        )
