"""
Word Model
===========

Abstracts over the two ELF word widths (ELFCLASS32 / ELFCLASS64) and the two
byte orders (ELFDATA2LSB / ELFDATA2MSB).  Every other decoder is written once
against a :class:`Codec`: a table of pre-compiled :class:`struct.Struct`
layouts whose format strings carry both the byte-order prefix and the
class-specific field widths.  Decoding through a layout converts byte order
exactly once, at the moment the record is read, and widens every field to a
Python ``int``.

References:
    - System V Application Binary Interface, Edition 4.1, chapter 4.
    - Python ``struct`` module: https://docs.python.org/3/library/struct.html
"""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from functools import lru_cache

from elfscope.core.errors import ElfError, ErrorKind


class ElfClass(enum.IntEnum):
    """EI_CLASS values; ELFCLASSNONE is deliberately not representable."""
    ELF32 = 1
    ELF64 = 2

    @property
    def bits(self) -> int:
        return 32 if self is ElfClass.ELF32 else 64


class ByteOrder(enum.IntEnum):
    """EI_DATA values; ELFDATANONE is deliberately not representable."""
    LITTLE = 1
    BIG = 2

    @property
    def prefix(self) -> str:
        """``struct`` byte-order prefix."""
        return "<" if self is ByteOrder.LITTLE else ">"


@dataclass(frozen=True, slots=True)
class Layout:
    """One fixed-size on-disk record: field names in file order + codec."""
    name: str
    fields: tuple[str, ...]
    codec: struct.Struct

    @property
    def size(self) -> int:
        return self.codec.size


# name -> (format, field order).  Layouts common to both classes.
_COMMON_LAYOUTS: dict[str, tuple[str, tuple[str, ...]]] = {
    "note": ("III", ("name_size", "desc_size", "type")),
    "hash": ("II", ("bucket_count", "chain_count")),
    "word32": ("I", ("value",)),
}

_LAYOUTS_32: dict[str, tuple[str, tuple[str, ...]]] = {
    "header": (
        "HHIIIIIHHHHHH",
        ("type", "machine", "version", "entry_point", "ph_offset",
         "sh_offset", "flags", "header_size", "ph_entry_size", "ph_count",
         "sh_entry_size", "sh_count", "sh_str_index"),
    ),
    "section": (
        "IIIIIIIIII",
        ("name", "type", "flags", "address", "offset", "size", "link",
         "info", "align", "entry_size"),
    ),
    "program": (
        "IIIIIIII",
        ("type", "offset", "virtual_addr", "physical_addr", "file_size",
         "mem_size", "flags", "align"),
    ),
    "symbol": ("IIIBBH", ("name", "value", "size", "info", "other", "shndx")),
    "dynamic": ("II", ("tag", "un")),
    "compression": ("III", ("type", "size", "align")),
}

_LAYOUTS_64: dict[str, tuple[str, tuple[str, ...]]] = {
    "header": (
        "HHIQQQIHHHHHH",
        _LAYOUTS_32["header"][1],
    ),
    "section": ("IIQQQQIIQQ", _LAYOUTS_32["section"][1]),
    "program": (
        "IIQQQQQQ",
        ("type", "flags", "offset", "virtual_addr", "physical_addr",
         "file_size", "mem_size", "align"),
    ),
    "symbol": ("IBBHQQ", ("name", "info", "other", "shndx", "value", "size")),
    "dynamic": ("QQ", ("tag", "un")),
    "compression": ("IIQQ", ("type", "reserved", "size", "align")),
}


class Codec:
    """Per-(class, byte order) table of record layouts.

    Attributes are :class:`Layout` objects named after the record they
    decode: ``header``, ``section``, ``program``, ``symbol``, ``dynamic``,
    ``compression``, ``note``, ``hash`` and ``word32``.
    """

    header: Layout
    section: Layout
    program: Layout
    symbol: Layout
    dynamic: Layout
    compression: Layout
    note: Layout
    hash: Layout
    word32: Layout

    def __init__(self, elf_class: ElfClass, byte_order: ByteOrder) -> None:
        self.elf_class = elf_class
        self.byte_order = byte_order
        specific = _LAYOUTS_32 if elf_class is ElfClass.ELF32 else _LAYOUTS_64
        for name, (fmt, fields) in {**_COMMON_LAYOUTS, **specific}.items():
            layout = Layout(name, fields, struct.Struct(byte_order.prefix + fmt))
            setattr(self, name, layout)

    def __repr__(self) -> str:
        return f"Codec({self.elf_class.name}, {self.byte_order.name})"


@lru_cache(maxsize=None)
def _codec_for(elf_class: ElfClass, byte_order: ByteOrder) -> Codec:
    return Codec(elf_class, byte_order)


@dataclass(frozen=True, slots=True)
class WordModel:
    """The fixed word width and byte order of one ELF file."""
    elf_class: ElfClass
    byte_order: ByteOrder

    @classmethod
    def from_ident(cls, ei_class: int, ei_data: int) -> WordModel:
        """Build the model from raw EI_CLASS / EI_DATA bytes.

        Raises:
            ElfError: ``INVALID_CLASS`` or ``INVALID_DATA_FORMAT`` for values
                outside the two defined encodings.
        """
        try:
            elf_class = ElfClass(ei_class)
        except ValueError:
            raise ElfError(
                ErrorKind.INVALID_CLASS, f"invalid ELF class {ei_class}"
            ) from None
        try:
            byte_order = ByteOrder(ei_data)
        except ValueError:
            raise ElfError(
                ErrorKind.INVALID_DATA_FORMAT,
                f"invalid data encoding {ei_data}",
            ) from None
        return cls(elf_class, byte_order)

    @property
    def codec(self) -> Codec:
        return _codec_for(self.elf_class, self.byte_order)

    @property
    def word_size(self) -> int:
        """Size in bytes of an address/offset word."""
        return 4 if self.elf_class is ElfClass.ELF32 else 8

    @property
    def is_64bit(self) -> bool:
        return self.elf_class is ElfClass.ELF64
