"""
Dynamic Section Decoder
========================

Decodes ``Elf32_Dyn`` / ``Elf64_Dyn`` entries.  Each entry is a tag plus a
word that is either a plain value (``d_val``) or an address (``d_ptr``);
which one is determined by the tag, and reading the wrong one fails.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from elfscope.core.errors import ElfError, ErrorKind

DT_LOOS: int = 0x6000000D
DT_HIOS: int = 0x6FFFFFFF
DT_LOPROC: int = 0x70000000
DT_HIPROC: int = 0x7FFFFFFF


class Tag(enum.IntEnum):
    NULL = 0
    NEEDED = 1
    PLT_REL_SIZE = 2
    PLTGOT = 3
    HASH = 4
    STRTAB = 5
    SYMTAB = 6
    RELA = 7
    RELA_SIZE = 8
    RELA_ENT = 9
    STR_SIZE = 10
    SYM_ENT = 11
    INIT = 12
    FINI = 13
    SONAME = 14
    RPATH = 15
    SYMBOLIC = 16
    REL = 17
    REL_SIZE = 18
    REL_ENT = 19
    PLT_REL = 20
    DEBUG = 21
    TEXT_REL = 22
    JMP_REL = 23
    BIND_NOW = 24
    INIT_ARRAY = 25
    FINI_ARRAY = 26
    INIT_ARRAY_SIZE = 27
    FINI_ARRAY_SIZE = 28
    RUNPATH = 29
    FLAGS = 30
    PREINIT_ARRAY = 32
    PREINIT_ARRAY_SIZE = 33
    SYMTAB_SHNDX = 34
    OS_SPECIFIC = DT_LOOS
    PROCESSOR_SPECIFIC = DT_LOPROC

    @classmethod
    def from_raw(cls, value: int) -> Tag:
        """Classify a raw ``d_tag``.

        Raises:
            ElfError: ``INVALID_TAG`` for 31 and anything outside the
                standard, OS-specific and processor-specific ranges.
        """
        if 0 <= value <= 34 and value != 31:
            return cls(value)
        if DT_LOOS <= value <= DT_HIOS:
            return cls.OS_SPECIFIC
        if DT_LOPROC <= value <= DT_HIPROC:
            return cls.PROCESSOR_SPECIFIC
        raise ElfError(ErrorKind.INVALID_TAG, f"invalid dynamic tag {value:#x}")


_VALUE_TAGS: frozenset[Tag] = frozenset({
    Tag.NEEDED, Tag.PLT_REL_SIZE, Tag.RELA_SIZE, Tag.RELA_ENT, Tag.STR_SIZE,
    Tag.SYM_ENT, Tag.SONAME, Tag.RPATH, Tag.REL_SIZE, Tag.REL_ENT,
    Tag.PLT_REL, Tag.INIT_ARRAY_SIZE, Tag.FINI_ARRAY_SIZE, Tag.RUNPATH,
    Tag.FLAGS, Tag.PREINIT_ARRAY_SIZE, Tag.OS_SPECIFIC,
    Tag.PROCESSOR_SPECIFIC,
})

_POINTER_TAGS: frozenset[Tag] = frozenset({
    Tag.PLTGOT, Tag.HASH, Tag.STRTAB, Tag.SYMTAB, Tag.RELA, Tag.INIT,
    Tag.FINI, Tag.REL, Tag.DEBUG, Tag.JMP_REL, Tag.INIT_ARRAY,
    Tag.FINI_ARRAY, Tag.PREINIT_ARRAY, Tag.SYMTAB_SHNDX, Tag.OS_SPECIFIC,
    Tag.PROCESSOR_SPECIFIC,
})

# Tags whose d_val is an offset into .dynstr
STRING_TAGS: frozenset[Tag] = frozenset({Tag.NEEDED, Tag.SONAME, Tag.RPATH,
                                         Tag.RUNPATH})


@dataclass(frozen=True, slots=True)
class DynamicEntry:
    index: int
    tag: int
    un: int

    @classmethod
    def from_fields(cls, index: int, fields: dict[str, int]) -> DynamicEntry:
        return cls(index=index, **fields)

    def get_tag(self) -> Tag:
        return Tag.from_raw(self.tag)

    def get_val(self) -> int:
        """Return ``d_val``; ``VALUE_NOT_CONTAINED`` for pointer tags."""
        tag = self.get_tag()
        if tag not in _VALUE_TAGS:
            raise ElfError(
                ErrorKind.VALUE_NOT_CONTAINED,
                f"{tag.name} entry does not hold a value",
            )
        return self.un

    def get_ptr(self) -> int:
        """Return ``d_ptr``; ``POINTER_NOT_CONTAINED`` for value tags."""
        tag = self.get_tag()
        if tag not in _POINTER_TAGS:
            raise ElfError(
                ErrorKind.POINTER_NOT_CONTAINED,
                f"{tag.name} entry does not hold a pointer",
            )
        return self.un
