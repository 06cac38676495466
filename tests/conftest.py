"""Synthetic ELF images for the test suite.

:class:`ElfBuilder` lays a file out as::

    file header | program headers | section payloads | .shstrtab | section headers

Section 0 is always the ``SHT_NULL`` entry and ``.shstrtab`` is appended as
the last section unless disabled.  Any header field can be overridden at
build time to produce malformed files.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Any

import pytest

SHT_NULL = 0
SHT_PROGBITS = 1
SHT_SYMTAB = 2
SHT_STRTAB = 3
SHT_HASH = 5
SHT_DYNAMIC = 6
SHT_NOTE = 7
SHT_NOBITS = 8
SHT_DYNSYM = 11
SHT_SYMTAB_SHNDX = 18

PT_LOAD = 1
PT_DYNAMIC = 2
PT_INTERP = 3
PT_NOTE = 4
PT_SHLIB = 5

SHF_ALLOC = 0x2
SHF_EXECINSTR = 0x4
SHF_COMPRESSED = 0x800

SHN_XINDEX = 0xFFFF


def strtab(*names: str) -> tuple[bytes, dict[str, int]]:
    """Build a string table; returns the bytes and each name's offset."""
    data = bytearray(b"\x00")
    offsets: dict[str, int] = {"": 0}
    for name in names:
        offsets[name] = len(data)
        data += name.encode() + b"\x00"
    return bytes(data), offsets


def sysv_hash_ref(name: bytes) -> int:
    """Reference SysV hash, written independently of the package."""
    h = 0
    for c in name:
        h = (h << 4) + c
        g = h & 0xF0000000
        if g:
            h ^= g >> 24
        h &= 0x0FFFFFFF
    return h


# Names of symbols 1..3 in the symbol-file fixtures
SYMBOL_NAMES = ("main", "helper", "counter")


def hash_section(b: ElfBuilder, names: tuple[str, ...], nbucket: int) -> bytes:
    """SysV ``.hash`` contents for symbols 1..len(names); symbol 0 is null."""
    buckets = [0] * nbucket
    chains = [0] * (len(names) + 1)
    for index, name in enumerate(names, start=1):
        slot = sysv_hash_ref(name.encode()) % nbucket
        chains[index] = buckets[slot]
        buckets[slot] = index
    return b.words(nbucket, len(chains), *buckets, *chains)


@dataclass
class _Section:
    name: str
    type: int
    data: bytes
    flags: int = 0
    link: int = 0
    info: int = 0
    align: int = 1
    entry_size: int = 0
    address: int = 0
    size: int | None = None
    offset: int | None = None


@dataclass
class _Segment:
    type: int
    flags: int = 4
    section: str | None = None
    offset: int = 0
    vaddr: int | None = None
    paddr: int = 0
    file_size: int | None = None
    mem_size: int | None = None
    align: int = 0


@dataclass
class ElfBuilder:
    """Assemble an ELF image with :mod:`struct`."""

    bits: int = 64
    little: bool = True
    type: int = 2
    machine: int = 0x3E
    entry: int = 0
    with_shstrtab: bool = True
    sections: list[_Section] = field(default_factory=list)
    segments: list[_Segment] = field(default_factory=list)
    layout: dict[str, int] = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Encoding helpers
    # ------------------------------------------------------------------

    @property
    def e(self) -> str:
        return "<" if self.little else ">"

    @property
    def header_size(self) -> int:
        return 52 if self.bits == 32 else 64

    @property
    def section_entry_size(self) -> int:
        return 40 if self.bits == 32 else 64

    @property
    def program_entry_size(self) -> int:
        return 32 if self.bits == 32 else 56

    @property
    def symbol_size(self) -> int:
        return 16 if self.bits == 32 else 24

    @property
    def dynamic_size(self) -> int:
        return 8 if self.bits == 32 else 16

    def sym(self, name: int = 0, value: int = 0, size: int = 0,
            info: int = 0, other: int = 0, shndx: int = 0) -> bytes:
        if self.bits == 32:
            return struct.pack(self.e + "IIIBBH", name, value, size, info,
                               other, shndx)
        return struct.pack(self.e + "IBBHQQ", name, info, other, shndx,
                           value, size)

    def dyn(self, tag: int, value: int) -> bytes:
        fmt = "II" if self.bits == 32 else "QQ"
        return struct.pack(self.e + fmt, tag, value)

    def words(self, *values: int) -> bytes:
        return struct.pack(self.e + "I" * len(values), *values)

    def chdr(self, ch_type: int, size: int, align: int = 1) -> bytes:
        if self.bits == 32:
            return struct.pack(self.e + "III", ch_type, size, align)
        return struct.pack(self.e + "IIQQ", ch_type, 0, size, align)

    def note(self, name: bytes, desc: bytes, n_type: int) -> bytes:
        def pad(raw: bytes) -> bytes:
            return raw + b"\x00" * (-len(raw) % 4)
        return (struct.pack(self.e + "III", len(name), len(desc), n_type)
                + pad(name) + pad(desc))

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def add_section(self, name: str, sh_type: int, data: bytes = b"",
                    **kwargs: Any) -> int:
        """Append a section; returns its index in the final table."""
        self.sections.append(_Section(name, sh_type, data, **kwargs))
        return len(self.sections)

    def add_segment(self, p_type: int, **kwargs: Any) -> int:
        self.segments.append(_Segment(p_type, **kwargs))
        return len(self.segments) - 1

    def index_of(self, name: str) -> int:
        for i, sec in enumerate(self.sections, start=1):
            if sec.name == name:
                return i
        raise KeyError(name)

    def build(self, **overrides: int) -> bytes:
        sections = list(self.sections)
        if self.with_shstrtab:
            sections.append(_Section(".shstrtab", SHT_STRTAB, b""))
        names, name_offsets = strtab(*dict.fromkeys(s.name for s in sections))
        if self.with_shstrtab:
            sections[-1].data = names

        ph_offset = self.header_size if self.segments else 0
        cursor = self.header_size + self.program_entry_size * len(self.segments)
        body = bytearray()
        placed: list[tuple[int, int]] = []
        for sec in sections:
            cursor += -cursor % 8
            body += b"\x00" * (cursor - self.header_size
                               - self.program_entry_size * len(self.segments)
                               - len(body))
            offset = sec.offset if sec.offset is not None else cursor
            size = sec.size if sec.size is not None else len(sec.data)
            placed.append((offset, size))
            self.layout[sec.name] = offset
            if sec.type != SHT_NOBITS:
                body += sec.data
                cursor += len(sec.data)

        cursor += -cursor % 8
        body += b"\x00" * (cursor - self.header_size
                           - self.program_entry_size * len(self.segments)
                           - len(body))
        sh_offset = cursor

        e = self.e
        sh_table = bytearray(b"\x00" * self.section_entry_size)
        for sec, (offset, size) in zip(sections, placed):
            fields = (name_offsets[sec.name], sec.type, sec.flags, sec.address,
                      offset, size, sec.link, sec.info, sec.align,
                      sec.entry_size)
            fmt = "IIIIIIIIII" if self.bits == 32 else "IIQQQQIIQQ"
            sh_table += struct.pack(e + fmt, *fields)

        ph_table = bytearray()
        for seg in self.segments:
            offset, file_size = seg.offset, seg.file_size or 0
            if seg.section is not None:
                idx = [s.name for s in sections].index(seg.section)
                offset, size = placed[idx]
                file_size = size if seg.file_size is None else seg.file_size
            vaddr = offset if seg.vaddr is None else seg.vaddr
            mem_size = file_size if seg.mem_size is None else seg.mem_size
            if self.bits == 32:
                ph_table += struct.pack(e + "IIIIIIII", seg.type, offset,
                                        vaddr, seg.paddr, file_size, mem_size,
                                        seg.flags, seg.align)
            else:
                ph_table += struct.pack(e + "IIQQQQQQ", seg.type, seg.flags,
                                        offset, vaddr, seg.paddr, file_size,
                                        mem_size, seg.align)

        header = {
            "type": self.type,
            "machine": self.machine,
            "version": 1,
            "entry": self.entry,
            "ph_offset": ph_offset,
            "sh_offset": sh_offset,
            "flags": 0,
            "header_size": self.header_size,
            "ph_entry_size": self.program_entry_size if self.segments else 0,
            "ph_count": len(self.segments),
            "sh_entry_size": self.section_entry_size,
            "sh_count": len(sections) + 1,
            "sh_str_index": len(sections) if self.with_shstrtab else 0,
        }
        header.update(overrides)
        ident = (b"\x7fELF" + bytes([1 if self.bits == 32 else 2,
                                     1 if self.little else 2, 1, 0, 0])
                 + b"\x00" * 7)
        fmt = "HHIIIIIHHHHHH" if self.bits == 32 else "HHIQQQIHHHHHH"
        head = ident + struct.pack(e + fmt, *header.values())
        return bytes(head + ph_table + body + sh_table)


@pytest.fixture
def builder() -> ElfBuilder:
    return ElfBuilder()


@pytest.fixture
def builder32() -> ElfBuilder:
    return ElfBuilder(bits=32)


def _symbol_file(b: ElfBuilder, dynamic: bool = False) -> ElfBuilder:
    """Text section plus a symbol table with three named symbols."""
    strings, offs = strtab(*SYMBOL_NAMES)
    text = b.add_section(".text", SHT_PROGBITS, b"\x90" * 32,
                         flags=SHF_ALLOC | SHF_EXECINSTR, align=16,
                         address=0x1000)
    str_name = ".dynstr" if dynamic else ".strtab"
    str_index = len(b.sections) + 2
    symbols = (
        b.sym()
        + b.sym(offs["main"], 0x1000, 16, (1 << 4) | 2, 0, text)
        + b.sym(offs["helper"], 0x1010, 8, (0 << 4) | 2, 2, text)
        + b.sym(offs["counter"], 0x2000, 4, (2 << 4) | 1, 0, 0xFFF1)
    )
    b.add_section(".dynsym" if dynamic else ".symtab",
                  SHT_DYNSYM if dynamic else SHT_SYMTAB, symbols,
                  link=str_index, info=1, align=8, entry_size=b.symbol_size)
    b.add_section(str_name, SHT_STRTAB, strings)
    return b


@pytest.fixture
def symbol_file() -> ElfBuilder:
    return _symbol_file(ElfBuilder())


@pytest.fixture
def make_symbol_file():
    return _symbol_file
