"""
elfscope -- ELF Decoder and Validator
======================================

Decodes the Executable and Linkable Format: file headers, section and
program header tables, symbol tables, dynamic-linking entries, SysV hash
tables and compressed-section headers.  Every view borrows from the caller's
buffer and every offset read from the file is bounds-checked before use.

Capabilities:
    - ELF32 / ELF64 in either byte order through one codec-driven decoder
    - Lazy section / segment / symbol access with typed payloads
    - Extended section numbering (``SHN_XINDEX``, ``.symtab_shndx``)
    - SysV symbol hash lookup
    - Compressed sections via a pluggable decompressor
    - Sanity checks per structure and a whole-file validation report

References:
    - TIS Committee. (1995). ELF Specification, Version 1.2.
    - System V Application Binary Interface, Edition 4.1.
"""

from elfscope.core.elffile import ElfFile
from elfscope.core.engine import InspectEngine
from elfscope.core.errors import ElfError, ErrorKind
from elfscope.core.validate import validate

__version__ = "0.3.0"
__all__ = [
    "ElfFile",
    "ElfError",
    "ErrorKind",
    "InspectEngine",
    "validate",
]
