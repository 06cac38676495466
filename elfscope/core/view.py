"""
Raw View Primitives
====================

The only place where raw bytes are reinterpreted as records.  Every other
decoder goes through these helpers and supplies explicit bounds instead of
trusting offsets read from the file.

Views are zero-copy: slices are :class:`memoryview` objects over the caller's
buffer and :class:`RecordArray` decodes element ``i`` straight out of that
memory on access.  Only the decoded integer fields (and decoded strings) are
new objects.
"""

from __future__ import annotations

from typing import Any, Callable, Generic, Iterator, Sequence, TypeVar, overload

from elfscope.core.errors import ElfError, ErrorKind
from elfscope.core.word import Layout

T = TypeVar("T")

Buffer = bytes | bytearray | memoryview

# memoryview has no find(); strings are scanned in chunks of this size.
_SCAN_CHUNK = 256


def as_view(data: Buffer) -> memoryview:
    """Return a read-only, byte-formatted memoryview over *data*."""
    view = data if isinstance(data, memoryview) else memoryview(data)
    if view.format != "B" or view.ndim != 1:
        view = view.cast("B")
    return view.toreadonly()


def subview(
    data: memoryview,
    offset: int,
    size: int,
    kind: ErrorKind = ErrorKind.FILE_TOO_SHORT,
) -> memoryview:
    """Bounds-checked slice ``data[offset:offset + size]``.

    Unlike plain slicing, a range that runs past the end fails instead of
    being silently truncated.
    """
    if offset < 0 or size < 0 or offset + size > len(data):
        raise ElfError(
            kind,
            f"range [{offset:#x}, {offset + size:#x}) exceeds "
            f"buffer of {len(data):#x} bytes",
        )
    return data[offset:offset + size]


def view_as(layout: Layout, data: memoryview) -> dict[str, int]:
    """Decode exactly one *layout* record from *data*.

    Raises:
        ElfError: ``TOO_SHORT`` if ``len(data)`` differs from the record size.
    """
    if len(data) != layout.size:
        raise ElfError(
            ErrorKind.TOO_SHORT,
            f"{layout.name} record needs {layout.size} bytes, got {len(data)}",
        )
    return dict(zip(layout.fields, layout.codec.unpack(data)))


class RecordArray(Sequence[T], Generic[T]):
    """Lazy, indexable sequence of records borrowed from a memoryview.

    Args:
        layout: Record layout.
        data: Backing bytes; length is a multiple of ``layout.size``.
        factory: Builds the public record from ``(index, fields)``.
    """

    __slots__ = ("_layout", "_data", "_factory", "_count")

    def __init__(
        self,
        layout: Layout,
        data: memoryview,
        factory: Callable[[int, dict[str, int]], T],
    ) -> None:
        self._layout = layout
        self._data = data
        self._factory = factory
        self._count = len(data) // layout.size

    def __len__(self) -> int:
        return self._count

    @overload
    def __getitem__(self, index: int) -> T: ...

    @overload
    def __getitem__(self, index: slice) -> list[T]: ...

    def __getitem__(self, index: Any) -> Any:
        if isinstance(index, slice):
            return [self[i] for i in range(*index.indices(self._count))]
        if index < 0:
            index += self._count
        if not 0 <= index < self._count:
            raise IndexError(f"record index {index} out of range")
        size = self._layout.size
        fields = dict(zip(
            self._layout.fields,
            self._layout.codec.unpack_from(self._data, index * size),
        ))
        return self._factory(index, fields)

    def __iter__(self) -> Iterator[T]:
        for i in range(self._count):
            yield self[i]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RecordArray):
            return NotImplemented
        return self._layout == other._layout and list(self) == list(other)

    def __repr__(self) -> str:
        return f"RecordArray({self._layout.name}, {self._count} entries)"


def view_array(
    layout: Layout,
    data: memoryview,
    factory: Callable[[int, dict[str, int]], T],
) -> RecordArray[T]:
    """View *data* as a packed array of *layout* records.

    Raises:
        ElfError: ``MISALIGNED_LENGTH`` if ``len(data)`` is not a multiple of
            the record size.
    """
    if len(data) % layout.size != 0:
        raise ElfError(
            ErrorKind.MISALIGNED_LENGTH,
            f"{len(data)} bytes is not a multiple of the "
            f"{layout.size}-byte {layout.name} record",
        )
    return RecordArray(layout, data, factory)


def decode_name(raw: bytes | memoryview) -> str:
    return bytes(raw).decode("utf-8", errors="surrogateescape")


def encode_name(name: str | bytes) -> bytes:
    if isinstance(name, bytes):
        return name
    return name.encode("utf-8", errors="surrogateescape")


def read_c_string(data: memoryview, offset: int) -> str:
    """Read the NUL-terminated string starting at *offset*.

    Raises:
        ElfError: ``OUT_OF_RANGE`` if *offset* lies outside *data*,
            ``UNTERMINATED_STRING`` if no NUL byte follows it.
    """
    if not 0 <= offset < len(data):
        raise ElfError(
            ErrorKind.OUT_OF_RANGE,
            f"string offset {offset:#x} outside table of {len(data):#x} bytes",
        )
    pos = offset
    while pos < len(data):
        chunk = bytes(data[pos:pos + _SCAN_CHUNK])
        end = chunk.find(b"\x00")
        if end != -1:
            return decode_name(data[offset:pos + end])
        pos += len(chunk)
    raise ElfError(
        ErrorKind.UNTERMINATED_STRING,
        f"string at offset {offset:#x} is not NUL-terminated",
    )
