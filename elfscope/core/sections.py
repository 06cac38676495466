"""
Section Table
==============

Section header records, their type / flag vocabularies, and the decoders
that turn a section's bytes into a typed payload:

    ========================  ==================
    ``sh_type``               payload
    ========================  ==================
    NULL, NOBITS              :class:`Empty`
    STRTAB                    :class:`StringTable`
    SYMTAB, DYNSYM            :class:`SymbolTable`
    DYNAMIC                   :class:`DynamicTable`
    NOTE                      :class:`Note`
    HASH                      :class:`~elfscope.core.hash.HashTable`
    SYMTAB_SHNDX              :class:`SymTabShIndex`
    anything else             :class:`RawData`
    ``SHF_COMPRESSED`` set    :class:`CompressedData`
    ========================  ==================

Compressed sections can be expanded with :meth:`SectionHeader.decompress`
given any callable implementing :class:`Decompressor`; the expanded bytes are
decoded with the same rules as the original file.

References:
    - System V Application Binary Interface, Edition 4.1, "Sections".
    - Oracle Linker and Libraries Guide, "Section Compression".
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Iterator, Protocol, Union

from elfscope.core.dynamic import DynamicEntry
from elfscope.core.errors import ElfError, ErrorKind, check
from elfscope.core.hash import HashTable
from elfscope.core.symbols import (  # noqa: F401  (re-exported)
    SHN_ABS,
    SHN_COMMON,
    SHN_HIOS,
    SHN_HIPROC,
    SHN_HIRESERVE,
    SHN_LOOS,
    SHN_LOPROC,
    SHN_LORESERVE,
    SHN_UNDEF,
    SHN_XINDEX,
    SymbolEntry,
)
from elfscope.core.view import (
    as_view,
    decode_name,
    read_c_string,
    RecordArray,
    subview,
    view_array,
    view_as,
)
from elfscope.core.word import WordModel

if TYPE_CHECKING:
    from elfscope.core.elffile import ElfFile


# ---------------------------------------------------------------------------
# Vocabularies
# ---------------------------------------------------------------------------

SHT_LOOS: int = 0x60000000
SHT_HIOS: int = 0x6FFFFFFF
SHT_LOPROC: int = 0x70000000
SHT_HIPROC: int = 0x7FFFFFFF
SHT_LOUSER: int = 0x80000000
SHT_HIUSER: int = 0xFFFFFFFF


class ShType(enum.IntEnum):
    NULL = 0
    PROGBITS = 1
    SYMTAB = 2
    STRTAB = 3
    RELA = 4
    HASH = 5
    DYNAMIC = 6
    NOTE = 7
    NOBITS = 8
    REL = 9
    SHLIB = 10
    DYNSYM = 11
    INIT_ARRAY = 14
    FINI_ARRAY = 15
    PREINIT_ARRAY = 16
    GROUP = 17
    SYMTAB_SHNDX = 18
    OS_SPECIFIC = SHT_LOOS
    PROCESSOR_SPECIFIC = SHT_LOPROC
    USER = SHT_LOUSER

    @classmethod
    def from_raw(cls, value: int) -> ShType:
        """Classify a raw ``sh_type``.

        Raises:
            ElfError: ``INVALID_SECTION_TYPE`` for 12, 13 and the unassigned
                gap below ``SHT_LOOS``.
        """
        if 0 <= value <= 18 and value not in (12, 13):
            return cls(value)
        if SHT_LOOS <= value <= SHT_HIOS:
            return cls.OS_SPECIFIC
        if SHT_LOPROC <= value <= SHT_HIPROC:
            return cls.PROCESSOR_SPECIFIC
        if SHT_LOUSER <= value <= SHT_HIUSER:
            return cls.USER
        raise ElfError(
            ErrorKind.INVALID_SECTION_TYPE, f"invalid section type {value:#x}"
        )


def section_type_name(value: int) -> str:
    try:
        sh_type = ShType.from_raw(value)
    except ElfError:
        return f"invalid({value:#x})"
    if sh_type in (ShType.OS_SPECIFIC, ShType.PROCESSOR_SPECIFIC, ShType.USER):
        return f"{sh_type.name}({value:#x})"
    return sh_type.name


class SectionFlags(enum.IntFlag):
    WRITE = 0x1
    ALLOC = 0x2
    EXECINSTR = 0x4
    MERGE = 0x10
    STRINGS = 0x20
    INFO_LINK = 0x40
    LINK_ORDER = 0x80
    OS_NONCONFORMING = 0x100
    GROUP = 0x200
    TLS = 0x400
    COMPRESSED = 0x800


SHF_MASKOS: int = 0x0FF00000
SHF_MASKPROC: int = 0xF0000000

# readelf-style key letters
_FLAG_LETTERS: tuple[tuple[int, str], ...] = (
    (SectionFlags.WRITE, "W"),
    (SectionFlags.ALLOC, "A"),
    (SectionFlags.EXECINSTR, "X"),
    (SectionFlags.MERGE, "M"),
    (SectionFlags.STRINGS, "S"),
    (SectionFlags.INFO_LINK, "I"),
    (SectionFlags.LINK_ORDER, "L"),
    (SectionFlags.OS_NONCONFORMING, "O"),
    (SectionFlags.GROUP, "G"),
    (SectionFlags.TLS, "T"),
    (SectionFlags.COMPRESSED, "C"),
    (SHF_MASKOS, "o"),
    (SHF_MASKPROC, "p"),
)


class CompressionType(enum.IntEnum):
    ZLIB = 1
    ZSTD = 2
    OS_SPECIFIC = 0x60000000
    PROCESSOR_SPECIFIC = 0x70000000

    @classmethod
    def from_raw(cls, value: int) -> CompressionType:
        if value in (1, 2):
            return cls(value)
        if 0x60000000 <= value <= 0x6FFFFFFF:
            return cls.OS_SPECIFIC
        if 0x70000000 <= value <= 0x7FFFFFFF:
            return cls.PROCESSOR_SPECIFIC
        raise ElfError(
            ErrorKind.INVALID_COMPRESSION_TYPE,
            f"invalid compression type {value:#x}",
        )


@dataclass(frozen=True, slots=True)
class CompressionHeader:
    type: int
    size: int
    align: int

    def get_type(self) -> CompressionType:
        return CompressionType.from_raw(self.type)


class Decompressor(Protocol):
    """Backend that expands a compressed section payload.

    Implementations return the decompressed bytes; any exception they raise
    is reported as ``DECOMPRESSION_ERROR``.
    """

    def __call__(
        self,
        compression_type: CompressionType,
        payload: memoryview,
        expected_size: int,
    ) -> bytes: ...


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Empty:
    """Sections without file bytes (NULL, NOBITS)."""


@dataclass(frozen=True, slots=True)
class RawData:
    data: memoryview


@dataclass(frozen=True, slots=True)
class StringTable:
    data: memoryview

    def get(self, offset: int) -> str:
        return read_c_string(self.data, offset)

    def strings(self) -> Iterator[tuple[int, str]]:
        """Yield ``(offset, text)`` for every NUL-terminated string."""
        offset = 0
        raw = bytes(self.data)
        while offset < len(raw):
            end = raw.find(b"\x00", offset)
            if end == -1:
                end = len(raw)
            yield offset, decode_name(raw[offset:end])
            offset = end + 1


@dataclass(frozen=True, slots=True)
class SymbolTable:
    entries: RecordArray[SymbolEntry]
    is_dynamic: bool

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[SymbolEntry]:
        return iter(self.entries)

    def __getitem__(self, index: int) -> SymbolEntry:
        return self.entries[index]


@dataclass(frozen=True, slots=True)
class DynamicTable:
    entries: RecordArray[DynamicEntry]

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[DynamicEntry]:
        return iter(self.entries)

    def __getitem__(self, index: int) -> DynamicEntry:
        return self.entries[index]


@dataclass(frozen=True, slots=True)
class NoteHeader:
    name_size: int
    desc_size: int
    type: int


@dataclass(frozen=True, slots=True)
class NoteEntry:
    header: NoteHeader
    name: str
    desc: memoryview


@dataclass(frozen=True, slots=True)
class Note:
    """All notes of a NOTE section or PT_NOTE segment, in file order."""
    entries: tuple[NoteEntry, ...]

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[NoteEntry]:
        return iter(self.entries)

    def __getitem__(self, index: int) -> NoteEntry:
        return self.entries[index]


@dataclass(frozen=True, slots=True)
class SymTabShIndex:
    """``SHT_SYMTAB_SHNDX``: one 32-bit section index per symbol."""
    entries: RecordArray[int]

    def __len__(self) -> int:
        return len(self.entries)

    def __getitem__(self, index: int) -> int:
        return self.entries[index]


@dataclass(frozen=True, slots=True)
class CompressedData:
    header: CompressionHeader
    payload: memoryview


SectionData = Union[
    Empty, RawData, StringTable, SymbolTable, DynamicTable, Note, HashTable,
    SymTabShIndex, CompressedData,
]


def _align4(value: int) -> int:
    return (value + 3) & ~3


def parse_notes(data: memoryview, word: WordModel) -> Note:
    """Split a note area into its entries.

    Raises:
        ElfError: ``UNIMPLEMENTED`` for 32-bit files, ``SECTION_TOO_SHORT``
            when a note runs past the end of *data*.
    """
    if not word.is_64bit:
        raise ElfError(
            ErrorKind.UNIMPLEMENTED, "notes are only decoded for ELF64"
        )
    layout = word.codec.note
    entries: list[NoteEntry] = []
    pos = 0
    while pos < len(data):
        fields = view_as(
            layout, subview(data, pos, layout.size, ErrorKind.SECTION_TOO_SHORT)
        )
        header = NoteHeader(**fields)
        name_start = pos + layout.size
        raw_name = subview(
            data, name_start, header.name_size, ErrorKind.SECTION_TOO_SHORT
        )
        desc_start = name_start + _align4(header.name_size)
        desc = subview(
            data, desc_start, header.desc_size, ErrorKind.SECTION_TOO_SHORT
        )
        name = decode_name(bytes(raw_name).rstrip(b"\x00"))
        entries.append(NoteEntry(header, name, desc))
        pos = desc_start + _align4(header.desc_size)
    return Note(tuple(entries))


# Payloads decoded as packed arrays of fixed-size records
_RECORD_TABLES: frozenset[ShType] = frozenset({
    ShType.SYMTAB,
    ShType.DYNSYM,
    ShType.DYNAMIC,
    ShType.SYMTAB_SHNDX,
})


def decode_payload(sh_type: ShType, data: memoryview, word: WordModel) -> SectionData:
    """Interpret section bytes according to *sh_type*."""
    codec = word.codec
    if sh_type in (ShType.NULL, ShType.NOBITS):
        return Empty()
    if sh_type is ShType.STRTAB:
        return StringTable(data)
    if sh_type in (ShType.SYMTAB, ShType.DYNSYM):
        is_dynamic = sh_type is ShType.DYNSYM
        factory = partial(SymbolEntry.from_fields, is_dynamic=is_dynamic)
        return SymbolTable(view_array(codec.symbol, data, factory), is_dynamic)
    if sh_type is ShType.DYNAMIC:
        return DynamicTable(
            view_array(codec.dynamic, data, DynamicEntry.from_fields)
        )
    if sh_type is ShType.NOTE:
        return parse_notes(data, word)
    if sh_type is ShType.HASH:
        return HashTable.read(data, word)
    if sh_type is ShType.SYMTAB_SHNDX:
        return SymTabShIndex(
            view_array(codec.word32, data, lambda _i, fields: fields["value"])
        )
    return RawData(data)


# ---------------------------------------------------------------------------
# Section header
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class SectionHeader:
    """One entry of the section header table.

    Attributes:
        index: Position in the section header table.
        name: Offset of the name in the section name string table.
        type: Raw ``sh_type``; see :meth:`get_type`.
        flags: Raw ``sh_flags``; see :attr:`section_flags`.
        address: Virtual address when loaded.
        offset: File offset of the section bytes.
        size: Size in bytes (in the file unless NOBITS).
        link: Type-dependent section index.
        info: Type-dependent extra information.
        align: Address alignment constraint.
        entry_size: Record size for table-shaped sections, else 0.
    """
    index: int
    name: int
    type: int
    flags: int
    address: int
    offset: int
    size: int
    link: int
    info: int
    align: int
    entry_size: int

    @classmethod
    def from_fields(cls, index: int, fields: dict[str, int]) -> SectionHeader:
        return cls(index=index, **fields)

    def get_type(self) -> ShType:
        return ShType.from_raw(self.type)

    @property
    def section_flags(self) -> SectionFlags:
        return SectionFlags(self.flags)

    @property
    def is_compressed(self) -> bool:
        return bool(self.flags & SectionFlags.COMPRESSED)

    @property
    def has_file_data(self) -> bool:
        return self.type not in (ShType.NULL, ShType.NOBITS)

    def flags_str(self) -> str:
        return "".join(
            letter for flag, letter in _FLAG_LETTERS if self.flags & flag
        )

    def get_name(self, elf_file: ElfFile) -> str:
        """Read this section's name from the section name string table."""
        return elf_file.get_shstr(self.name)

    def raw_data(self, elf_file: ElfFile) -> memoryview:
        """The section's bytes, borrowed from the file buffer.

        Raises:
            ElfError: ``FILE_TOO_SHORT`` when the section extends past the
                end of the file.
        """
        if not self.has_file_data:
            return elf_file.input[0:0]
        return subview(elf_file.input, self.offset, self.size)

    def compression_header(self, elf_file: ElfFile) -> CompressionHeader | None:
        """Decode the ``Chdr`` prefix of a compressed section, else ``None``."""
        if not self.is_compressed:
            return None
        layout = elf_file.word.codec.compression
        raw = subview(
            self.raw_data(elf_file), 0, layout.size,
            ErrorKind.SECTION_TOO_SHORT,
        )
        fields = view_as(layout, raw)
        return CompressionHeader(fields["type"], fields["size"], fields["align"])

    def get_data(self, elf_file: ElfFile) -> SectionData:
        """Decode the section payload according to its type.

        Raises:
            ElfError: ``INVALID_SECTION_TYPE``, ``FILE_TOO_SHORT``,
                ``MISALIGNED_LENGTH`` for table payloads that are not a whole
                number of records, or any payload-specific error.
        """
        sh_type = self.get_type()
        data = self.raw_data(elf_file)
        if self.is_compressed and self.has_file_data:
            header = self.compression_header(elf_file)
            assert header is not None
            payload = data[elf_file.word.codec.compression.size:]
            return CompressedData(header, payload)
        if sh_type in _RECORD_TABLES and self.entry_size:
            check(
                self.size % self.entry_size == 0,
                ErrorKind.MISALIGNED_LENGTH,
                f"section {self.index} size {self.size} is not a multiple of "
                f"its entry size {self.entry_size}",
            )
            expected = record_size(sh_type, elf_file.word)
            check(
                self.entry_size == expected,
                ErrorKind.ENTRY_SIZE_MISMATCH,
                f"section {self.index} entry size {self.entry_size} != "
                f"{expected}",
            )
        return decode_payload(sh_type, data, elf_file.word)

    def decompress(
        self, elf_file: ElfFile, decompressor: Decompressor
    ) -> SectionData:
        """Decode a section, expanding it first when it is compressed.

        Args:
            elf_file: The file this header belongs to.
            decompressor: Backend called as
                ``decompressor(type, payload, expected_size)``.

        Returns:
            The payload decoded from the decompressed buffer, or the plain
            :meth:`get_data` result for uncompressed sections.

        Raises:
            ElfError: ``INVALID_COMPRESSION_TYPE`` for an unknown ``ch_type``,
                ``DECOMPRESSION_ERROR`` if the backend fails or returns a
                buffer of the wrong length.
        """
        data = self.get_data(elf_file)
        if not isinstance(data, CompressedData):
            return data
        compression_type = data.header.get_type()
        try:
            expanded = decompressor(compression_type, data.payload,
                                    data.header.size)
        except ElfError:
            raise
        except Exception as exc:
            raise ElfError(
                ErrorKind.DECOMPRESSION_ERROR,
                f"section {self.index}: {exc}",
            ) from exc
        expanded = as_view(expanded)
        check(
            len(expanded) == data.header.size,
            ErrorKind.DECOMPRESSION_ERROR,
            f"section {self.index} expanded to {len(expanded)} bytes, "
            f"expected {data.header.size}",
        )
        return decode_payload(self.get_type(), expanded, elf_file.word)


# ---------------------------------------------------------------------------
# Sanity checks
# ---------------------------------------------------------------------------

def record_size(sh_type: ShType, word: WordModel) -> int | None:
    """On-disk record size for table-shaped section types."""
    codec = word.codec
    sizes = {
        ShType.SYMTAB: codec.symbol.size,
        ShType.DYNSYM: codec.symbol.size,
        ShType.DYNAMIC: codec.dynamic.size,
        ShType.SYMTAB_SHNDX: codec.word32.size,
        ShType.HASH: codec.word32.size,
    }
    return sizes.get(sh_type)


def sanity_check(entry: SectionHeader, elf_file: ElfFile) -> None:
    """Check one section header against ELF invariants.

    Raises:
        ElfError: On the first violated invariant.
    """
    sh_type = entry.get_type()
    if not entry.has_file_data:
        return
    check(
        entry.offset + entry.size <= len(elf_file.input),
        ErrorKind.FILE_TOO_SHORT,
        f"section {entry.index} [{entry.offset:#x}, "
        f"{entry.offset + entry.size:#x}) runs past the end of the file",
    )
    if entry.is_compressed:
        header = entry.compression_header(elf_file)
        assert header is not None
        header.get_type()
        return
    if entry.entry_size:
        check(
            entry.size % entry.entry_size == 0,
            ErrorKind.MISALIGNED_LENGTH,
            f"section {entry.index} size {entry.size} is not a multiple of "
            f"its entry size {entry.entry_size}",
        )
        expected = record_size(sh_type, elf_file.word)
        if expected is not None:
            check(
                entry.entry_size == expected,
                ErrorKind.ENTRY_SIZE_MISMATCH,
                f"section {entry.index} entry size {entry.entry_size} != "
                f"{expected}",
            )
