"""
ELF Header Decoder
===================

Parses the 16-byte identification block (``e_ident``) and the class-dependent
second part of the ELF file header.  The identification block fixes the
:class:`~elfscope.core.word.WordModel` every later decode uses.

Layout (offsets in bytes)::

    0   magic         7f 'E' 'L' 'F'
    4   EI_CLASS      1 = 32-bit, 2 = 64-bit
    5   EI_DATA       1 = little endian, 2 = big endian
    6   EI_VERSION    1 = current
    7   EI_OSABI
    8   EI_ABIVERSION
    9   padding (7 bytes)
    16  e_type ... e_shstrndx   (36 bytes for ELF32, 48 bytes for ELF64)

References:
    - TIS Committee. (1995). Tool Interface Standard (TIS) Executable and
      Linkable Format (ELF) Specification, Version 1.2.
    - Linux man page: elf(5).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING

from elfscope.core.errors import ErrorKind, check
from elfscope.core.view import as_view, Buffer, subview, view_as
from elfscope.core.word import ByteOrder, ElfClass, WordModel

if TYPE_CHECKING:
    from elfscope.core.elffile import ElfFile


ELF_MAGIC: bytes = b"\x7fELF"
EI_NIDENT: int = 16
EV_CURRENT: int = 1


class OsAbi(enum.IntEnum):
    SYSTEM_V = 0x00
    HP_UX = 0x01
    NETBSD = 0x02
    LINUX = 0x03
    SOLARIS = 0x06
    AIX = 0x07
    IRIX = 0x08
    FREEBSD = 0x09
    TRU64 = 0x0A
    OPENBSD = 0x0C
    OPENVMS = 0x0D
    ARM_AEABI = 0x40
    ARM = 0x61
    STANDALONE = 0xFF


class ObjectType(enum.IntEnum):
    """``e_type`` values; OS / processor ranges collapse to their low bound."""
    NONE = 0
    RELOCATABLE = 1
    EXECUTABLE = 2
    SHARED_OBJECT = 3
    CORE = 4
    OS_SPECIFIC = 0xFE00
    PROCESSOR_SPECIFIC = 0xFF00

    @classmethod
    def from_raw(cls, value: int) -> ObjectType | None:
        """Decode a raw ``e_type``; ``None`` for unassigned values."""
        if 0 <= value <= 4:
            return cls(value)
        if 0xFE00 <= value <= 0xFEFF:
            return cls.OS_SPECIFIC
        if 0xFF00 <= value <= 0xFFFF:
            return cls.PROCESSOR_SPECIFIC
        return None


class Machine(enum.IntEnum):
    NONE = 0
    SPARC = 0x02
    X86 = 0x03
    MIPS = 0x08
    POWERPC = 0x14
    POWERPC64 = 0x15
    S390 = 0x16
    ARM = 0x28
    SUPERH = 0x2A
    IA64 = 0x32
    X86_64 = 0x3E
    AARCH64 = 0xB7
    RISCV = 0xF3
    LOONGARCH = 0x102


def machine_name(value: int) -> str:
    """Readable machine name, falling back to the raw number."""
    try:
        return Machine(value).name
    except ValueError:
        return f"unknown({value:#x})"


# ---------------------------------------------------------------------------
# Header records
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Identification:
    """The decoded ``e_ident`` block."""
    magic: bytes
    elf_class: ElfClass
    byte_order: ByteOrder
    version: int
    os_abi: int
    abi_version: int
    padding: bytes

    @property
    def word(self) -> WordModel:
        return WordModel(self.elf_class, self.byte_order)

    @property
    def os_abi_name(self) -> str:
        try:
            return OsAbi(self.os_abi).name
        except ValueError:
            return f"unknown({self.os_abi:#x})"


@dataclass(frozen=True, slots=True)
class HeaderPt2:
    """Class-dependent part of the file header.

    ``elf_class`` records which layout actually decoded these fields, so a
    sanity check can compare it with the class declared in ``e_ident``.
    """
    elf_class: ElfClass
    size: int
    type: int
    machine: int
    version: int
    entry_point: int
    ph_offset: int
    sh_offset: int
    flags: int
    header_size: int
    ph_entry_size: int
    ph_count: int
    sh_entry_size: int
    sh_count: int
    sh_str_index: int

    @property
    def object_type(self) -> ObjectType | None:
        return ObjectType.from_raw(self.type)


@dataclass(frozen=True, slots=True)
class Header:
    pt1: Identification
    pt2: HeaderPt2

    @property
    def elf_class(self) -> ElfClass:
        return self.pt1.elf_class

    @property
    def byte_order(self) -> ByteOrder:
        return self.pt1.byte_order

    @property
    def word(self) -> WordModel:
        return self.pt1.word


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def parse_identification(buffer: Buffer) -> Identification:
    """Decode and validate the 16-byte identification block.

    Raises:
        ElfError: ``FILE_TOO_SHORT``, ``INVALID_MAGIC``, ``INVALID_CLASS``,
            ``INVALID_DATA_FORMAT`` or ``INVALID_VERSION``.
    """
    data = as_view(buffer)
    ident = bytes(subview(data, 0, EI_NIDENT))
    check(
        ident[:4] == ELF_MAGIC,
        ErrorKind.INVALID_MAGIC,
        f"bad magic number {ident[:4].hex()}",
    )
    word = WordModel.from_ident(ident[4], ident[5])
    check(
        ident[6] == EV_CURRENT,
        ErrorKind.INVALID_VERSION,
        f"unsupported ELF version {ident[6]}",
    )
    return Identification(
        magic=ident[:4],
        elf_class=word.elf_class,
        byte_order=word.byte_order,
        version=ident[6],
        os_abi=ident[7],
        abi_version=ident[8],
        padding=ident[9:],
    )


def parse_header_pt2(buffer: Buffer, word: WordModel) -> HeaderPt2:
    """Decode the second header part using the layout selected by *word*."""
    data = as_view(buffer)
    layout = word.codec.header
    raw = subview(data, EI_NIDENT, layout.size)
    return HeaderPt2(elf_class=word.elf_class, size=layout.size,
                     **view_as(layout, raw))


def parse_header(buffer: Buffer) -> Header:
    """Parse the complete ELF file header from *buffer*.

    Args:
        buffer: The whole file (or at least its first 52 / 64 bytes).

    Returns:
        The decoded :class:`Header`.

    Raises:
        ElfError: On any identification failure, or ``FILE_TOO_SHORT`` when
            the buffer ends inside the class-dependent part.
    """
    pt1 = parse_identification(buffer)
    pt2 = parse_header_pt2(buffer, pt1.word)
    return Header(pt1, pt2)


# ---------------------------------------------------------------------------
# Sanity checks
# ---------------------------------------------------------------------------

def check_header(header: Header, buffer_length: int) -> None:
    """Check *header* against ELF invariants for a file of *buffer_length*.

    Raises:
        ElfError: On the first violated invariant.
    """
    pt1, pt2 = header.pt1, header.pt2
    check(pt1.magic == ELF_MAGIC, ErrorKind.INVALID_MAGIC, "bad magic number")
    check(
        pt1.elf_class is pt2.elf_class,
        ErrorKind.CLASS_MISMATCH,
        f"ident declares {pt1.elf_class.name} but the header was decoded "
        f"as {pt2.elf_class.name}",
    )
    check(
        EI_NIDENT + pt2.size == pt2.header_size,
        ErrorKind.HEADER_SIZE_MISMATCH,
        f"header_size {pt2.header_size} does not match the "
        f"{EI_NIDENT + pt2.size}-byte header",
    )
    check(
        pt2.entry_point < buffer_length,
        ErrorKind.ENTRY_POINT_OUT_OF_RANGE,
        f"entry point {pt2.entry_point:#x} out of range",
    )
    check(
        pt2.ph_offset + pt2.ph_entry_size * pt2.ph_count <= buffer_length,
        ErrorKind.FILE_TOO_SHORT,
        "program header table out of range",
    )
    check(
        pt2.sh_offset + pt2.sh_entry_size * pt2.sh_count <= buffer_length,
        ErrorKind.FILE_TOO_SHORT,
        "section header table out of range",
    )

    codec = header.word.codec
    if pt2.ph_count:
        check(
            pt2.ph_entry_size == codec.program.size,
            ErrorKind.PROGRAM_HEADER_SIZE_MISMATCH,
            f"ph_entry_size {pt2.ph_entry_size} != {codec.program.size}",
        )
    if pt2.sh_offset:
        check(
            pt2.sh_entry_size == codec.section.size,
            ErrorKind.ENTRY_SIZE_MISMATCH,
            f"sh_entry_size {pt2.sh_entry_size} != {codec.section.size}",
        )


def sanity_check(elf_file: ElfFile) -> None:
    """Validate the header of *elf_file*; raises :class:`ElfError`."""
    check_header(elf_file.header, len(elf_file.input))
