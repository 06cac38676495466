"""
Decoder Error Taxonomy
=======================

Every decode or sanity-check failure in :mod:`elfscope.core` raises a single
exception type, :class:`ElfError`, tagged with an :class:`ErrorKind`.  Callers
that need to branch on the failure inspect ``exc.kind`` instead of matching
message strings.

The kinds are grouped the same way the checks are:

    - format identification (magic, class, data encoding, version)
    - bounds / size (buffers and tables shorter than declared)
    - lookup misses (string tables and auxiliary sections not present)
    - semantic validity (enumerated fields outside their defined ranges)
    - content state (dynamic value/pointer gate, decompression)
"""

from __future__ import annotations

import enum


class ErrorKind(str, enum.Enum):
    """Kind of failure carried by :class:`ElfError`."""

    # Format identification
    INVALID_MAGIC = "invalid_magic"
    INVALID_CLASS = "invalid_class"
    INVALID_VERSION = "invalid_version"
    INVALID_DATA_FORMAT = "invalid_data_format"
    CLASS_MISMATCH = "class_mismatch"

    # Bounds / size
    FILE_TOO_SHORT = "file_too_short"
    SECTION_TOO_SHORT = "section_too_short"
    PROGRAM_HEADER_SIZE_MISMATCH = "program_header_size_mismatch"
    HEADER_SIZE_MISMATCH = "header_size_mismatch"
    ENTRY_SIZE_MISMATCH = "entry_size_mismatch"
    SEGMENT_SIZE_MISMATCH = "segment_size_mismatch"
    ENTRY_POINT_OUT_OF_RANGE = "entry_point_out_of_range"
    OUT_OF_RANGE = "out_of_range"

    # Raw view primitives
    TOO_SHORT = "too_short"
    MISALIGNED_LENGTH = "misaligned_length"
    UNTERMINATED_STRING = "unterminated_string"

    # Lookup misses
    PROGRAM_HEADER_NOT_FOUND = "program_header_not_found"
    SYMTAB_SHNDX_NOT_FOUND = "symtab_shndx_not_found"
    STRTAB_NOT_FOUND = "strtab_not_found"
    DYNSTR_NOT_FOUND = "dynstr_not_found"

    # Semantic validity
    INVALID_SECTION_TYPE = "invalid_section_type"
    INVALID_SEGMENT_TYPE = "invalid_segment_type"
    INVALID_SYMBOL_BINDING = "invalid_symbol_binding"
    INVALID_SYMBOL_TYPE = "invalid_symbol_type"
    INVALID_COMPRESSION_TYPE = "invalid_compression_type"
    INVALID_TAG = "invalid_tag"
    RESERVED_SECTION_HEADER_INDEX = "reserved_section_header_index"
    NULL_SECTION = "null_section"
    USE_OF_SHLIB = "use_of_shlib"
    MISALIGNED_ADDRESS_AND_OFFSET = "misaligned_address_and_offset"

    # Content state
    VALUE_NOT_CONTAINED = "value_not_contained"
    POINTER_NOT_CONTAINED = "pointer_not_contained"
    DECOMPRESSION_ERROR = "decompression_error"
    UNIMPLEMENTED = "unimplemented"


class ElfError(ValueError):
    """A decode or validation failure.

    Attributes:
        kind: The :class:`ErrorKind` describing the failure.
        message: Human-readable detail (offsets, indices, raw values).
    """

    def __init__(self, kind: ErrorKind, message: str = "") -> None:
        self.kind = kind
        self.message = message or kind.value.replace("_", " ")
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"ElfError({self.kind.name}, {self.message!r})"


def check(condition: bool, kind: ErrorKind, message: str = "") -> None:
    """Raise :class:`ElfError` of *kind* unless *condition* holds."""
    if not condition:
        raise ElfError(kind, message)
