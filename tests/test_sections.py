"""Tests for section headers, section payloads and the section sanity check."""

from __future__ import annotations

import struct
import zlib

import pytest

from elfscope.core.elffile import ElfFile
from elfscope.core.errors import ElfError, ErrorKind
from elfscope.core.header import sanity_check as header_sanity_check
from elfscope.core.sections import (
    CompressedData,
    CompressionType,
    Empty,
    Note,
    RawData,
    SectionFlags,
    ShType,
    StringTable,
    SymbolTable,
    SymTabShIndex,
    decode_payload,
    sanity_check,
    section_type_name,
)
from elfscope.core.validate import validate
from elfscope.core.view import as_view
from elfscope.core.word import ByteOrder, ElfClass, WordModel

from tests.conftest import (
    SHF_ALLOC,
    SHF_COMPRESSED,
    SHF_EXECINSTR,
    SHT_NOBITS,
    SHT_NOTE,
    SHT_NULL,
    SHT_PROGBITS,
    SHT_STRTAB,
    SHT_SYMTAB,
    SHT_SYMTAB_SHNDX,
    ElfBuilder,
)


def _zlib(compression_type, payload, expected_size):
    assert compression_type is CompressionType.ZLIB
    return zlib.decompress(bytes(payload))


def _patch_section0(image: bytes, *, size: int | None = None,
                    link: int | None = None) -> bytes:
    """Fill the extended-numbering fields of section 0 (ELF64 LE)."""
    data = bytearray(image)
    sh_offset = struct.unpack_from("<Q", data, 0x28)[0]
    if size is not None:
        struct.pack_into("<Q", data, sh_offset + 32, size)
    if link is not None:
        struct.pack_into("<I", data, sh_offset + 40, link)
    return bytes(data)


# ---------------------------------------------------------------------------
# Table access
# ---------------------------------------------------------------------------

class TestSectionTable:
    def test_names_and_lookup(self, symbol_file):
        elf = ElfFile(symbol_file.build())
        names = [sh.get_name(elf) for sh in elf.section_headers()]
        assert names == ["", ".text", ".symtab", ".strtab", ".shstrtab"]
        text = elf.find_section_by_name(".text")
        assert text is not None
        assert text.index == 1
        assert text.address == 0x1000
        assert text.get_type() is ShType.PROGBITS
        assert text.flags_str() == "AX"
        assert text.section_flags == SectionFlags.ALLOC | SectionFlags.EXECINSTR
        assert elf.find_section_by_name(".missing") is None

    def test_lookup_without_index(self, symbol_file):
        elf = ElfFile(symbol_file.build(), use_name_index=False)
        found = elf.find_section_by_name(".strtab")
        assert found is not None and found.index == 3

    def test_first_duplicate_wins(self, builder):
        builder.add_section(".dup", SHT_PROGBITS, b"a")
        builder.add_section(".dup", SHT_PROGBITS, b"b")
        elf = ElfFile(builder.build())
        assert elf.find_section_by_name(".dup").index == 1

    def test_section_zero_is_null(self, builder):
        elf = ElfFile(builder.build())
        first = elf.section_header(0)
        assert first.get_type() is ShType.NULL
        assert isinstance(first.get_data(elf), Empty)

    def test_out_of_range(self, builder):
        elf = ElfFile(builder.build())
        with pytest.raises(ElfError) as info:
            elf.section_header(elf.section_count)
        assert info.value.kind is ErrorKind.OUT_OF_RANGE

    @pytest.mark.parametrize("index", [0xFF00, 0xFFF1, 0xFFFF])
    def test_reserved_index(self, builder, index):
        elf = ElfFile(builder.build())
        with pytest.raises(ElfError) as info:
            elf.section_header(index)
        assert info.value.kind is ErrorKind.RESERVED_SECTION_HEADER_INDEX

    def test_no_section_table(self, builder):
        elf = ElfFile(builder.build(sh_offset=0, sh_count=0, sh_str_index=0))
        assert elf.section_count == 0
        assert list(elf.section_headers()) == []
        assert elf.find_section_by_name(".shstrtab") is None

    def test_extended_numbering(self, builder):
        builder.add_section(".text", SHT_PROGBITS, b"\x90" * 4)
        image = _patch_section0(
            builder.build(sh_count=0, sh_str_index=0xFFFF), size=3, link=2
        )
        elf = ElfFile(image)
        assert elf.section_count == 3
        assert elf.sh_str_index == 2
        assert elf.find_section_by_name(".text").index == 1

    def test_extended_count_with_zero_entry_size(self, builder):
        image = _patch_section0(
            builder.build(sh_count=0, sh_entry_size=0), size=2**40
        )
        elf = ElfFile(image)
        with pytest.raises(ElfError) as info:
            list(elf.section_headers())
        assert info.value.kind is ErrorKind.ENTRY_SIZE_MISMATCH
        with pytest.raises(ElfError) as info:
            header_sanity_check(elf)
        assert info.value.kind is ErrorKind.ENTRY_SIZE_MISMATCH

        report = validate(elf)
        assert report.findings[-1].location == "section table"
        assert report.findings[-1].kind == ErrorKind.ENTRY_SIZE_MISMATCH.value

    def test_extended_count_past_end_of_file(self, builder):
        image = _patch_section0(builder.build(sh_count=0), size=2**40)
        elf = ElfFile(image)
        with pytest.raises(ElfError) as info:
            elf.section_count
        assert info.value.kind is ErrorKind.FILE_TOO_SHORT
        with pytest.raises(ElfError) as info:
            elf.section_header(1)
        assert info.value.kind is ErrorKind.FILE_TOO_SHORT

    def test_missing_name_table(self):
        b = ElfBuilder(with_shstrtab=False)
        b.add_section(".text", SHT_PROGBITS, b"\x00")
        elf = ElfFile(b.build())
        assert elf.find_section_by_name(".text") is None
        with pytest.raises(ElfError) as info:
            elf.section_header(1).get_name(elf)
        assert info.value.kind is ErrorKind.STRTAB_NOT_FOUND

    def test_name_table_index_out_of_range(self, builder):
        elf = ElfFile(builder.build(sh_str_index=40))
        with pytest.raises(ElfError) as info:
            elf.get_shstr(1)
        assert info.value.kind is ErrorKind.STRTAB_NOT_FOUND

    def test_name_table_is_null_section(self, builder):
        builder.add_section(".bogus", SHT_NULL)
        elf = ElfFile(builder.build(sh_str_index=1))
        with pytest.raises(ElfError) as info:
            elf.get_shstr(0)
        assert info.value.kind is ErrorKind.NULL_SECTION


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------

class TestPayloads:
    def test_string_table(self, builder):
        builder.add_section(".strtab", SHT_STRTAB, b"\x00foo\x00bar\x00")
        elf = ElfFile(builder.build())
        table = elf.find_section_by_name(".strtab").get_data(elf)
        assert isinstance(table, StringTable)
        assert table.get(1) == "foo"
        assert table.get(5) == "bar"
        assert list(table.strings()) == [(0, ""), (1, "foo"), (5, "bar")]

    def test_raw_data_borrows_file(self, builder):
        builder.add_section(".data", SHT_PROGBITS, b"\x01\x02\x03")
        image = builder.build()
        elf = ElfFile(image)
        data = elf.find_section_by_name(".data").get_data(elf)
        assert isinstance(data, RawData)
        assert bytes(data.data) == b"\x01\x02\x03"
        assert data.data.obj is elf.input.obj

    def test_nobits_is_empty(self, builder):
        builder.add_section(".bss", SHT_NOBITS, size=0x10000)
        elf = ElfFile(builder.build())
        bss = elf.find_section_by_name(".bss")
        assert isinstance(bss.get_data(elf), Empty)
        assert len(bss.raw_data(elf)) == 0
        sanity_check(bss, elf)

    def test_symbol_table(self, symbol_file):
        elf = ElfFile(symbol_file.build())
        table = elf.find_section_by_name(".symtab").get_data(elf)
        assert isinstance(table, SymbolTable)
        assert not table.is_dynamic
        assert len(table) == 4
        assert [s.get_name(elf) for s in table] == ["", "main", "helper",
                                                   "counter"]

    def test_symbol_table_misaligned(self, builder):
        builder.add_section(".symtab", SHT_SYMTAB, b"\x00" * 30,
                            entry_size=24)
        elf = ElfFile(builder.build())
        symtab = elf.find_section_by_name(".symtab")
        with pytest.raises(ElfError) as info:
            symtab.get_data(elf)
        assert info.value.kind is ErrorKind.MISALIGNED_LENGTH
        with pytest.raises(ElfError) as info:
            sanity_check(symtab, elf)
        assert info.value.kind is ErrorKind.MISALIGNED_LENGTH

    def test_symbol_table_misaligned_to_entry_size(self, builder):
        builder.add_section(".symtab", SHT_SYMTAB, b"\x00" * 48,
                            entry_size=32)
        elf = ElfFile(builder.build())
        with pytest.raises(ElfError) as info:
            elf.find_section_by_name(".symtab").get_data(elf)
        assert info.value.kind is ErrorKind.MISALIGNED_LENGTH

    def test_symbol_table_wrong_entry_size(self, builder):
        builder.add_section(".symtab", SHT_SYMTAB, b"\x00" * 48,
                            entry_size=16)
        elf = ElfFile(builder.build())
        with pytest.raises(ElfError) as info:
            elf.find_section_by_name(".symtab").get_data(elf)
        assert info.value.kind is ErrorKind.ENTRY_SIZE_MISMATCH

    def test_symtab_shndx(self, builder):
        builder.add_section(".symtab_shndx", SHT_SYMTAB_SHNDX,
                            builder.words(0, 1, 0x12345))
        elf = ElfFile(builder.build())
        data = elf.find_section_by_name(".symtab_shndx").get_data(elf)
        assert isinstance(data, SymTabShIndex)
        assert len(data) == 3
        assert data[2] == 0x12345

    def test_decoding_is_idempotent(self, symbol_file):
        elf = ElfFile(symbol_file.build())
        for sh in elf.section_headers():
            assert sh.get_data(elf) == sh.get_data(elf)

    def test_invalid_type(self, builder):
        builder.add_section(".odd", 12, b"\x00")
        elf = ElfFile(builder.build())
        odd = elf.find_section_by_name(".odd")
        assert section_type_name(odd.type) == "invalid(0xc)"
        with pytest.raises(ElfError) as info:
            odd.get_data(elf)
        assert info.value.kind is ErrorKind.INVALID_SECTION_TYPE

    @pytest.mark.parametrize(
        "raw, expected",
        [
            (0x6FFFFFF6, ShType.OS_SPECIFIC),
            (0x70000001, ShType.PROCESSOR_SPECIFIC),
            (0x80000000, ShType.USER),
        ],
    )
    def test_type_ranges(self, raw, expected):
        assert ShType.from_raw(raw) is expected

    def test_user_range_is_raw_data(self, builder):
        builder.add_section(".user", 0x80000001, b"xyz")
        elf = ElfFile(builder.build())
        data = elf.find_section_by_name(".user").get_data(elf)
        assert isinstance(data, RawData)


class TestNotes:
    def test_notes_64(self, builder):
        raw = (builder.note(b"GNU\x00", b"\x01\x02\x03\x04\x05", 3)
               + builder.note(b"Go\x00", b"", 4))
        builder.add_section(".note", SHT_NOTE, raw, align=4)
        elf = ElfFile(builder.build())
        notes = elf.find_section_by_name(".note").get_data(elf)
        assert isinstance(notes, Note)
        assert len(notes) == 2
        assert notes[0].name == "GNU"
        assert notes[0].header.type == 3
        assert bytes(notes[0].desc) == b"\x01\x02\x03\x04\x05"
        assert notes[1].name == "Go"
        assert len(notes[1].desc) == 0

    def test_truncated_note(self, builder):
        raw = builder.note(b"GNU\x00", b"\x00" * 16, 1)[:-8]
        builder.add_section(".note", SHT_NOTE, raw)
        elf = ElfFile(builder.build())
        with pytest.raises(ElfError) as info:
            elf.find_section_by_name(".note").get_data(elf)
        assert info.value.kind is ErrorKind.SECTION_TOO_SHORT

    def test_notes_32_unimplemented(self, builder32):
        builder32.add_section(".note", SHT_NOTE,
                              builder32.note(b"GNU\x00", b"", 1))
        elf = ElfFile(builder32.build())
        with pytest.raises(ElfError) as info:
            elf.find_section_by_name(".note").get_data(elf)
        assert info.value.kind is ErrorKind.UNIMPLEMENTED

    def test_empty_note_area(self):
        word = WordModel(ElfClass.ELF64, ByteOrder.LITTLE)
        assert len(decode_payload(ShType.NOTE, as_view(b""), word)) == 0


class TestCompression:
    def _compressed(self, b: ElfBuilder, raw: bytes, ch_type: int = 1,
                    sh_type: int = SHT_PROGBITS, **kwargs) -> bytes:
        payload = b.chdr(ch_type, len(raw)) + zlib.compress(raw)
        b.add_section(".zdata", sh_type, payload, flags=SHF_COMPRESSED,
                      **kwargs)
        return b.build()

    @pytest.mark.parametrize("bits", [32, 64])
    def test_compression_header(self, bits):
        b = ElfBuilder(bits=bits)
        elf = ElfFile(self._compressed(b, b"hello world" * 10))
        section = elf.find_section_by_name(".zdata")
        assert section.is_compressed
        chdr = section.compression_header(elf)
        assert chdr.get_type() is CompressionType.ZLIB
        assert chdr.size == 110
        data = section.get_data(elf)
        assert isinstance(data, CompressedData)
        assert zlib.decompress(bytes(data.payload)) == b"hello world" * 10
        sanity_check(section, elf)

    def test_decompress_raw(self, builder):
        elf = ElfFile(self._compressed(builder, b"abc" * 50))
        data = elf.find_section_by_name(".zdata").decompress(elf, _zlib)
        assert isinstance(data, RawData)
        assert bytes(data.data) == b"abc" * 50

    def test_decompress_symbol_table(self, builder):
        symbols = builder.sym() + builder.sym(1, 0x10, 4, 0x12, 0, 1)
        elf = ElfFile(self._compressed(builder, symbols, sh_type=SHT_SYMTAB,
                                       entry_size=24))
        table = elf.find_section_by_name(".zdata").decompress(elf, _zlib)
        assert isinstance(table, SymbolTable)
        assert len(table) == 2
        assert table[1].value == 0x10

    def test_uncompressed_passthrough(self, builder):
        builder.add_section(".data", SHT_PROGBITS, b"plain")
        elf = ElfFile(builder.build())
        data = elf.find_section_by_name(".data").decompress(elf, _zlib)
        assert bytes(data.data) == b"plain"

    def test_backend_failure(self, builder):
        elf = ElfFile(self._compressed(builder, b"abc"))

        def broken(compression_type, payload, expected_size):
            raise zlib.error("corrupt stream")

        with pytest.raises(ElfError) as info:
            elf.find_section_by_name(".zdata").decompress(elf, broken)
        assert info.value.kind is ErrorKind.DECOMPRESSION_ERROR
        assert "corrupt stream" in info.value.message

    def test_wrong_expanded_length(self, builder):
        elf = ElfFile(self._compressed(builder, b"abc"))
        with pytest.raises(ElfError) as info:
            elf.find_section_by_name(".zdata").decompress(
                elf, lambda t, p, n: b"abcd"
            )
        assert info.value.kind is ErrorKind.DECOMPRESSION_ERROR

    def test_invalid_compression_type(self, builder):
        elf = ElfFile(self._compressed(builder, b"abc", ch_type=9))
        section = elf.find_section_by_name(".zdata")
        with pytest.raises(ElfError) as info:
            section.decompress(elf, _zlib)
        assert info.value.kind is ErrorKind.INVALID_COMPRESSION_TYPE
        with pytest.raises(ElfError) as info:
            sanity_check(section, elf)
        assert info.value.kind is ErrorKind.INVALID_COMPRESSION_TYPE

    def test_truncated_compression_header(self, builder):
        builder.add_section(".zdata", SHT_PROGBITS, b"\x01\x00\x00\x00",
                            flags=SHF_COMPRESSED)
        elf = ElfFile(builder.build())
        with pytest.raises(ElfError) as info:
            elf.find_section_by_name(".zdata").get_data(elf)
        assert info.value.kind is ErrorKind.SECTION_TOO_SHORT


# ---------------------------------------------------------------------------
# Sanity checks
# ---------------------------------------------------------------------------

class TestSectionSanity:
    def test_well_formed(self, symbol_file):
        elf = ElfFile(symbol_file.build())
        for sh in elf.section_headers():
            sanity_check(sh, elf)

    def test_past_end_of_file(self, builder):
        builder.add_section(".data", SHT_PROGBITS, b"\x00" * 4, size=0x10000)
        elf = ElfFile(builder.build())
        section = elf.find_section_by_name(".data")
        with pytest.raises(ElfError) as info:
            sanity_check(section, elf)
        assert info.value.kind is ErrorKind.FILE_TOO_SHORT
        with pytest.raises(ElfError) as info:
            section.get_data(elf)
        assert info.value.kind is ErrorKind.FILE_TOO_SHORT

    def test_wrong_entry_size(self, builder):
        builder.add_section(".symtab", SHT_SYMTAB, b"\x00" * 48,
                            entry_size=16)
        elf = ElfFile(builder.build())
        with pytest.raises(ElfError) as info:
            sanity_check(elf.find_section_by_name(".symtab"), elf)
        assert info.value.kind is ErrorKind.ENTRY_SIZE_MISMATCH

    def test_invalid_type(self, builder):
        builder.add_section(".odd", 13)
        elf = ElfFile(builder.build())
        with pytest.raises(ElfError) as info:
            sanity_check(elf.find_section_by_name(".odd"), elf)
        assert info.value.kind is ErrorKind.INVALID_SECTION_TYPE

    def test_flags(self, builder):
        builder.add_section(".text", SHT_PROGBITS, b"\x90",
                            flags=SHF_ALLOC | SHF_EXECINSTR | 0x10000000)
        elf = ElfFile(builder.build())
        assert elf.find_section_by_name(".text").flags_str() == "AXp"
