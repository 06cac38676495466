"""
Symbol Table View
==================

One :class:`SymbolEntry` type serves regular (``.symtab``) and dynamic
(``.dynsym``) symbol tables in both word widths.  The two layouts differ only
in field order, which the word model's codec absorbs, so everything here is
written once.

``st_info`` packs the binding in the high nibble and the type in the low
nibble; ``st_other`` carries the visibility in its low two bits.

References:
    - System V Application Binary Interface, Edition 4.1, "Symbol Table".
    - Linux man page: elf(5).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING

from elfscope.core.errors import ElfError, ErrorKind
from elfscope.core.view import read_c_string

if TYPE_CHECKING:
    from elfscope.core.elffile import ElfFile
    from elfscope.core.sections import SectionHeader


# Distinguished section indices (st_shndx / e_shstrndx)
SHN_UNDEF: int = 0
SHN_LORESERVE: int = 0xFF00
SHN_LOPROC: int = 0xFF00
SHN_HIPROC: int = 0xFF1F
SHN_LOOS: int = 0xFF20
SHN_HIOS: int = 0xFF3F
SHN_ABS: int = 0xFFF1
SHN_COMMON: int = 0xFFF2
SHN_XINDEX: int = 0xFFFF
SHN_HIRESERVE: int = 0xFFFF

STN_UNDEF: int = 0


class Binding(enum.IntEnum):
    LOCAL = 0
    GLOBAL = 1
    WEAK = 2
    OS_SPECIFIC = 10
    PROCESSOR_SPECIFIC = 13

    @classmethod
    def from_raw(cls, value: int) -> Binding:
        if 0 <= value <= 2:
            return cls(value)
        if 10 <= value <= 12:
            return cls.OS_SPECIFIC
        if 13 <= value <= 15:
            return cls.PROCESSOR_SPECIFIC
        raise ElfError(
            ErrorKind.INVALID_SYMBOL_BINDING, f"invalid symbol binding {value}"
        )


class SymbolType(enum.IntEnum):
    NOTYPE = 0
    OBJECT = 1
    FUNC = 2
    SECTION = 3
    FILE = 4
    COMMON = 5
    TLS = 6
    OS_SPECIFIC = 10
    PROCESSOR_SPECIFIC = 13

    @classmethod
    def from_raw(cls, value: int) -> SymbolType:
        if 0 <= value <= 6:
            return cls(value)
        if 10 <= value <= 12:
            return cls.OS_SPECIFIC
        if 13 <= value <= 15:
            return cls.PROCESSOR_SPECIFIC
        raise ElfError(
            ErrorKind.INVALID_SYMBOL_TYPE, f"invalid symbol type {value}"
        )


class Visibility(enum.IntEnum):
    DEFAULT = 0
    INTERNAL = 1
    HIDDEN = 2
    PROTECTED = 3


@dataclass(frozen=True, slots=True)
class SymbolEntry:
    """One symbol table record.

    Attributes:
        index: Position of the entry in its table.
        name: Offset of the name in the associated string table.
        value: Symbol value (usually an address).
        size: Size of the object the symbol describes.
        info: Packed binding and type.
        other: Packed visibility.
        shndx: Index of the section the symbol is defined relative to.
        is_dynamic: ``True`` for entries of a ``SHT_DYNSYM`` table.
    """
    index: int
    name: int
    value: int
    size: int
    info: int
    other: int
    shndx: int
    is_dynamic: bool = False

    @classmethod
    def from_fields(
        cls, index: int, fields: dict[str, int], is_dynamic: bool = False
    ) -> SymbolEntry:
        return cls(index=index, is_dynamic=is_dynamic, **fields)

    @property
    def string_table_name(self) -> str:
        return ".dynstr" if self.is_dynamic else ".strtab"

    def get_binding(self) -> Binding:
        return Binding.from_raw(self.info >> 4)

    def get_type(self) -> SymbolType:
        return SymbolType.from_raw(self.info & 0xF)

    def get_visibility(self) -> Visibility:
        return Visibility(self.other & 0x3)

    def get_name(self, elf_file: ElfFile) -> str:
        """Resolve the symbol name through ``.strtab`` or ``.dynstr``.

        Raises:
            ElfError: ``STRTAB_NOT_FOUND`` / ``DYNSTR_NOT_FOUND`` when the
                string table is absent, ``OUT_OF_RANGE`` when the name offset
                lies past its end.
        """
        table = elf_file.find_section_by_name(self.string_table_name)
        if table is None:
            kind = (ErrorKind.DYNSTR_NOT_FOUND if self.is_dynamic
                    else ErrorKind.STRTAB_NOT_FOUND)
            raise ElfError(kind, f"no {self.string_table_name} section")
        return read_c_string(table.raw_data(elf_file), self.name)

    def get_section_header(
        self, elf_file: ElfFile, self_index: int | None = None
    ) -> SectionHeader | None:
        """Resolve ``st_shndx`` to the section this symbol belongs to.

        Returns ``None`` for undefined, absolute and common symbols.  For
        ``SHN_XINDEX`` the real index is read from ``.symtab_shndx`` at
        *self_index* (the entry's own table index by default).

        Raises:
            ElfError: ``SYMTAB_SHNDX_NOT_FOUND``, ``INVALID_SECTION_TYPE``,
                ``OUT_OF_RANGE`` or ``NULL_SECTION`` while resolving an
                extended index, or any error of
                :meth:`ElfFile.section_header`.
        """
        from elfscope.core.sections import SymTabShIndex

        shndx = self.shndx
        if shndx in (SHN_UNDEF, SHN_ABS, SHN_COMMON):
            return None
        if shndx == SHN_XINDEX:
            if self_index is None:
                self_index = self.index
            table = elf_file.find_section_by_name(".symtab_shndx")
            if table is None:
                raise ElfError(ErrorKind.SYMTAB_SHNDX_NOT_FOUND)
            indices = table.get_data(elf_file)
            if not isinstance(indices, SymTabShIndex):
                raise ElfError(
                    ErrorKind.INVALID_SECTION_TYPE,
                    ".symtab_shndx is not a SHT_SYMTAB_SHNDX section",
                )
            if not 0 <= self_index < len(indices):
                raise ElfError(
                    ErrorKind.OUT_OF_RANGE,
                    f"symbol {self_index} has no extended section index",
                )
            shndx = indices[self_index]
            if shndx == SHN_UNDEF:
                raise ElfError(
                    ErrorKind.NULL_SECTION,
                    f"extended index of symbol {self_index} is SHN_UNDEF",
                )
        return elf_file.section_header(shndx)
