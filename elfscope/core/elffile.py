"""
ELF File Facade
================

:class:`ElfFile` ties the decoders together.  It owns a read-only view of the
caller's buffer and the parsed header, and hands out section and program
header records on demand.  Nothing is decoded eagerly beyond the file header;
every record borrows from the same buffer.
"""

from __future__ import annotations

from functools import cached_property
from typing import Iterator

from elfscope.core.errors import ElfError, ErrorKind
from elfscope.core.header import Header, parse_header
from elfscope.core.program import ProgramHeader
from elfscope.core.sections import SectionHeader, ShType
from elfscope.core.symbols import (
    SHN_HIRESERVE,
    SHN_LORESERVE,
    SHN_UNDEF,
    SHN_XINDEX,
)
from elfscope.core.view import as_view, Buffer, read_c_string, subview, view_as
from elfscope.core.word import WordModel


class ElfFile:
    """A parsed ELF image.

    Args:
        data: The complete file contents.  The buffer is treated as
            immutable for the lifetime of the object.
        use_name_index: Build a name -> index map the first time a section is
            looked up by name instead of scanning the table on every call.

    Raises:
        ElfError: If the identification block or header cannot be decoded.
    """

    def __init__(self, data: Buffer, use_name_index: bool = True) -> None:
        self.input: memoryview = as_view(data)
        self.header: Header = parse_header(self.input)
        self.use_name_index = use_name_index
        self._name_index: dict[str, int] | None = None

    def __repr__(self) -> str:
        return (
            f"ElfFile({self.header.elf_class.name}, "
            f"{self.header.byte_order.name}, {len(self.input)} bytes)"
        )

    @property
    def word(self) -> WordModel:
        return self.header.word

    # ------------------------------------------------------------------
    # Section headers
    # ------------------------------------------------------------------

    def _read_section_header(self, index: int) -> SectionHeader:
        pt2 = self.header.pt2
        layout = self.word.codec.section
        start = pt2.sh_offset + index * pt2.sh_entry_size
        return SectionHeader.from_fields(
            index, view_as(layout, subview(self.input, start, layout.size))
        )

    @cached_property
    def section_count(self) -> int:
        """Number of section headers, following the extended-numbering escape.

        When ``e_shnum`` is zero but a table exists, the real count lives in
        the ``sh_size`` field of section 0.

        Raises:
            ElfError: ``ENTRY_SIZE_MISMATCH`` if ``e_shentsize`` is not the
                section header size, ``FILE_TOO_SHORT`` if the table does not
                fit in the buffer.
        """
        pt2 = self.header.pt2
        if pt2.sh_offset == 0:
            return 0
        entry_size = self.word.codec.section.size
        if pt2.sh_entry_size != entry_size:
            raise ElfError(
                ErrorKind.ENTRY_SIZE_MISMATCH,
                f"sh_entry_size {pt2.sh_entry_size} != {entry_size}",
            )
        count = pt2.sh_count
        if count == 0:
            count = self._read_section_header(0).size
        if pt2.sh_offset + count * entry_size > len(self.input):
            raise ElfError(
                ErrorKind.FILE_TOO_SHORT,
                f"section header table of {count} entries at "
                f"{pt2.sh_offset:#x} runs past the end of the file",
            )
        return count

    @cached_property
    def sh_str_index(self) -> int:
        """Index of the section name string table.

        ``SHN_XINDEX`` in ``e_shstrndx`` defers to the ``sh_link`` field of
        section 0.
        """
        index = self.header.pt2.sh_str_index
        if index == SHN_XINDEX and self.header.pt2.sh_offset != 0:
            return self._read_section_header(0).link
        return index

    def section_header(self, index: int) -> SectionHeader:
        """Decode section header *index*.

        Raises:
            ElfError: ``RESERVED_SECTION_HEADER_INDEX`` for indices in
                ``SHN_LORESERVE..SHN_HIRESERVE`` (unless the file has that
                many sections), ``OUT_OF_RANGE`` past the last section,
                ``FILE_TOO_SHORT`` if the entry lies outside the buffer.
        """
        if (SHN_LORESERVE <= index <= SHN_HIRESERVE
                and self.section_count <= SHN_LORESERVE):
            raise ElfError(
                ErrorKind.RESERVED_SECTION_HEADER_INDEX,
                f"section index {index:#x} is reserved",
            )
        if not 0 <= index < self.section_count:
            raise ElfError(
                ErrorKind.OUT_OF_RANGE,
                f"section index {index} out of range "
                f"(file has {self.section_count})",
            )
        return self._read_section_header(index)

    def section_headers(self) -> Iterator[SectionHeader]:
        """Yield every section header in table order, index 0 included."""
        for index in range(self.section_count):
            yield self._read_section_header(index)

    def get_shstr(self, offset: int) -> str:
        """Read a section name from the section name string table.

        Raises:
            ElfError: ``STRTAB_NOT_FOUND`` if the table cannot be located,
                ``NULL_SECTION`` if it is a ``SHT_NULL`` section, or the
                errors of :func:`~elfscope.core.view.read_c_string`.
        """
        index = self.sh_str_index
        if index == SHN_UNDEF:
            raise ElfError(
                ErrorKind.STRTAB_NOT_FOUND, "file has no section name table"
            )
        try:
            table = self.section_header(index)
        except ElfError as exc:
            raise ElfError(
                ErrorKind.STRTAB_NOT_FOUND,
                f"section name table {index}: {exc.message}",
            ) from exc
        if table.type == ShType.NULL:
            raise ElfError(
                ErrorKind.NULL_SECTION,
                f"section name table {index} is SHT_NULL",
            )
        return read_c_string(table.raw_data(self), offset)

    def _named_sections(self) -> Iterator[tuple[str, SectionHeader]]:
        # Sections whose name cannot be decoded are skipped
        for header in self.section_headers():
            try:
                name = header.get_name(self)
            except ElfError:
                continue
            yield name, header

    def _section_name_index(self) -> dict[str, int]:
        if self._name_index is None:
            names: dict[str, int] = {}
            for name, header in self._named_sections():
                names.setdefault(name, header.index)
            self._name_index = names
        return self._name_index

    def find_section_by_name(self, name: str) -> SectionHeader | None:
        """Return the first section called *name*, or ``None``.

        Files without a section name table have no named sections.
        """
        if self.sh_str_index == SHN_UNDEF:
            return None
        if self.use_name_index:
            index = self._section_name_index().get(name)
            return None if index is None else self._read_section_header(index)
        for section_name, header in self._named_sections():
            if section_name == name:
                return header
        return None

    # ------------------------------------------------------------------
    # Program headers
    # ------------------------------------------------------------------

    @property
    def has_program_headers(self) -> bool:
        pt2 = self.header.pt2
        return pt2.ph_offset != 0 and pt2.ph_count != 0

    def program_header(self, index: int) -> ProgramHeader:
        """Decode program header *index*.

        Raises:
            ElfError: ``PROGRAM_HEADER_NOT_FOUND`` when the file has no
                program header table, ``OUT_OF_RANGE`` past ``e_phnum``,
                ``FILE_TOO_SHORT`` if the entry lies outside the buffer.
        """
        pt2 = self.header.pt2
        if not self.has_program_headers:
            raise ElfError(
                ErrorKind.PROGRAM_HEADER_NOT_FOUND,
                "file has no program header table",
            )
        if not 0 <= index < pt2.ph_count:
            raise ElfError(
                ErrorKind.OUT_OF_RANGE,
                f"program header {index} out of range "
                f"(file has {pt2.ph_count})",
            )
        layout = self.word.codec.program
        start = pt2.ph_offset + index * pt2.ph_entry_size
        return ProgramHeader.from_fields(
            index, view_as(layout, subview(self.input, start, layout.size))
        )

    def program_headers(self) -> Iterator[ProgramHeader]:
        """Yield every program header; nothing when the table is absent."""
        if not self.has_program_headers:
            return
        for index in range(self.header.pt2.ph_count):
            yield self.program_header(index)
