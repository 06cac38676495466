"""
SysV Symbol Hash Table
=======================

Decoder for ``SHT_HASH`` sections and the classic System V ELF hash
function.  The section is a sequence of 32-bit words::

    nbucket | nchain | bucket[nbucket] | chain[nchain]

A lookup hashes the name, starts at ``bucket[hash % nbucket]`` and follows
``chain[]`` until the symbol name matches or the chain reaches
``STN_UNDEF``.

References:
    - System V Application Binary Interface, Edition 4.1, "Hash Table".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Sequence

from elfscope.core.errors import ElfError, ErrorKind
from elfscope.core.symbols import STN_UNDEF
from elfscope.core.view import (
    as_view,
    Buffer,
    encode_name,
    RecordArray,
    subview,
    view_array,
    view_as,
)
from elfscope.core.word import WordModel

if TYPE_CHECKING:
    from elfscope.core.elffile import ElfFile
    from elfscope.core.symbols import SymbolEntry


def sysv_hash(name: str | bytes) -> int:
    """Compute the System V ELF hash of *name*.

    >>> sysv_hash("")
    0
    >>> hex(sysv_hash("printf"))
    '0x77905a6'
    """
    h = 0
    for byte in encode_name(name):
        h = ((h << 4) + byte) & 0xFFFFFFFF
        g = h & 0xF0000000
        if g:
            h ^= g >> 24
        h &= ~g & 0xFFFFFFFF
    return h


@dataclass(frozen=True, slots=True)
class HashTable:
    """A decoded ``SHT_HASH`` section.

    Attributes:
        bucket_count: ``nbucket`` as declared in the section.
        chain_count: ``nchain`` as declared; equals the symbol count.
        words: Every 32-bit word after the two counts (buckets, then chains).
    """
    bucket_count: int
    chain_count: int
    words: RecordArray[int]

    @classmethod
    def read(cls, data: Buffer, word: WordModel) -> HashTable:
        """Decode a hash section.

        Raises:
            ElfError: ``SECTION_TOO_SHORT`` if *data* cannot hold the two
                counts, ``MISALIGNED_LENGTH`` if the rest is not whole words.
        """
        data = as_view(data)
        codec = word.codec
        head = subview(data, 0, codec.hash.size, ErrorKind.SECTION_TOO_SHORT)
        counts = view_as(codec.hash, head)
        words = view_array(
            codec.word32,
            data[codec.hash.size:],
            lambda _index, fields: fields["value"],
        )
        return cls(counts["bucket_count"], counts["chain_count"], words)

    def get_bucket(self, index: int) -> int:
        if not 0 <= index < self.bucket_count or index >= len(self.words):
            raise ElfError(
                ErrorKind.OUT_OF_RANGE, f"bucket {index} out of range"
            )
        return self.words[index]

    def get_chain(self, index: int) -> int:
        position = self.bucket_count + index
        if not 0 <= index < self.chain_count or position >= len(self.words):
            raise ElfError(
                ErrorKind.OUT_OF_RANGE, f"chain {index} out of range"
            )
        return self.words[position]

    def lookup(
        self,
        name: str | bytes,
        symbols: Sequence[SymbolEntry],
        elf_file: ElfFile,
    ) -> tuple[int, SymbolEntry] | None:
        """Find *name* among *symbols* (the table this hash section indexes).

        The walk takes at most ``chain_count`` steps, so a corrupt cyclic
        chain ends the search instead of looping.

        Returns:
            ``(symbol_index, entry)`` or ``None`` when the name is absent.

        Raises:
            ElfError: ``OUT_OF_RANGE`` when a bucket or chain slot points
                outside the tables, or any error from resolving a name.
        """
        if self.bucket_count == 0:
            return None
        target = encode_name(name)
        index = self.get_bucket(sysv_hash(target) % self.bucket_count)
        for _ in range(self.chain_count):
            if index == STN_UNDEF:
                return None
            if index >= len(symbols):
                raise ElfError(
                    ErrorKind.OUT_OF_RANGE,
                    f"hash chain points at symbol {index} of {len(symbols)}",
                )
            entry = symbols[index]
            if encode_name(entry.get_name(elf_file)) == target:
                return index, entry
            index = self.get_chain(index)
        return None
