"""
config2_archive.py - Reader and writer for the config2 binary archive format

Format specification (big-endian throughout):
- A stream is one or more concatenated documents; there is no magic number
  and no end marker besides the end of the buffer.
- Document: uint16 version, then the root compound's children, then a
  terminator tag. The root has no name.
- Entry: tag byte, payload, then the entry's name as a compact string. The
  name comes *after* the payload, and for containers after every child.
- Entries directly inside a list have no name; position is the key.
- Compact string: uint16 length + that many bytes, one byte per character
  (bytes >= 0x80 are single characters, not UTF-8).

Tags and payloads:
- 0x00 end         closes the enclosing compound or open list
- 0x01 compound    children, then 0x00
- 0x02 string      compact string
- 0x03 int32       4 bytes
- 0x04 float32     4 bytes IEEE-754
- 0x05 bool        1 byte (1 = true)
- 0x06 int64       8 bytes
- 0x07 double      8 bytes IEEE-754
- 0x09 list        mode byte:
                     0x00 empty, nothing else
                     0x01 fixed: int32 count, element tag, then count
                          payloads with no per-element tag
                     0x02 open: tagged elements until 0x00
- 0x0A byte        1 byte signed
- 0x0B short       2 bytes signed
- 0x0C number array  see number_array.py

Usage:
    from config2 import config2_archive as ca

    documents = ca.loads(data)         # list of Document
    document = ca.loads_one(data)      # exactly one Document
    data = ca.dumps(documents)         # bytes
"""

from __future__ import annotations

import logging
import struct
from collections.abc import Iterable
from typing import Union

from .errors import ArchiveError, MalformedListState, UnexpectedEnd, UnknownTag, ValueOutOfRange
from .number_array import NumberArrayCodec
from .values import (
    LIST_EMPTY,
    LIST_FIXED,
    LIST_OPEN,
    SCALAR_TYPES,
    TAG_BOOL,
    TAG_BYTE,
    TAG_COMPOUND,
    TAG_DOUBLE,
    TAG_END,
    TAG_FLOAT32,
    TAG_INT32,
    TAG_INT64,
    TAG_LIST,
    TAG_NAMES,
    TAG_NUMBER_ARRAY,
    TAG_SHORT,
    TAG_STRING,
    VALUE_TAGS,
    Compound,
    Document,
    ListEmpty,
    ListFixed,
    ListOpen,
    NumberArray,
    Value,
)

logger = logging.getLogger(__name__)

MAX_STRING_LENGTH = 0xFFFF


# =============================================================================
# Byte cursor
# =============================================================================


class ByteReader:
    """Sequential big-endian reader over a bytes-like buffer."""

    def __init__(self, data: Union[bytes, bytearray, memoryview]):
        self._data = memoryview(data).cast("B")
        self._pos = 0

    def tell(self) -> int:
        return self._pos

    def remaining(self) -> int:
        return len(self._data) - self._pos

    def has_more(self) -> bool:
        return self._pos < len(self._data)

    def read_bytes(self, count: int) -> bytes:
        end = self._pos + count
        if end > len(self._data):
            raise UnexpectedEnd(
                f"Need {count} bytes, only {self.remaining()} left", self._pos
            )
        data = self._data[self._pos:end].tobytes()
        self._pos = end
        return data

    def _unpack(self, fmt: str):
        return struct.unpack(fmt, self.read_bytes(struct.calcsize(fmt)))[0]

    def read_u8(self) -> int:
        return self._unpack(">B")

    def read_i8(self) -> int:
        return self._unpack(">b")

    def read_u16(self) -> int:
        return self._unpack(">H")

    def read_i16(self) -> int:
        return self._unpack(">h")

    def read_i32(self) -> int:
        return self._unpack(">i")

    def read_u64(self) -> int:
        return self._unpack(">Q")

    def read_i64(self) -> int:
        return self._unpack(">q")

    def read_f32(self) -> float:
        # Before Python 3.14 struct quiets a signalling NaN when widening to a
        # double, so 7f800001 re-encodes as 7fc00001. The payload survives.
        return self._unpack(">f")

    def read_f64(self) -> float:
        return self._unpack(">d")

    def read_bool(self) -> bool:
        return self.read_u8() == 1

    def read_bits8(self) -> list[bool]:
        """Read one byte as eight booleans, most significant bit first."""
        byte = self.read_u8()
        return [bool(byte >> shift & 1) for shift in range(7, -1, -1)]

    def read_compact_string(self) -> str:
        """Read a uint16 length then that many bytes, one character per byte."""
        length = self.read_u16()
        return self.read_bytes(length).decode("latin-1")


class ByteWriter:
    """Growable big-endian writer, the mirror of ByteReader."""

    def __init__(self):
        self._buf = bytearray()

    def tell(self) -> int:
        return len(self._buf)

    def getvalue(self) -> bytes:
        return bytes(self._buf)

    def write_bytes(self, data: bytes):
        self._buf += data

    def _pack(self, fmt: str, value):
        try:
            self._buf += struct.pack(fmt, value)
        except (struct.error, OverflowError) as e:
            raise ValueOutOfRange(f"{value!r} does not fit field {fmt!r}: {e}") from e

    def write_u8(self, value: int):
        self._pack(">B", value)

    def write_i8(self, value: int):
        self._pack(">b", value)

    def write_u16(self, value: int):
        self._pack(">H", value)

    def write_i16(self, value: int):
        self._pack(">h", value)

    def write_i32(self, value: int):
        self._pack(">i", value)

    def write_u64(self, value: int):
        self._pack(">Q", value)

    def write_i64(self, value: int):
        self._pack(">q", value)

    def write_f32(self, value: float):
        self._pack(">f", value)

    def write_f64(self, value: float):
        self._pack(">d", value)

    def write_bool(self, value: bool):
        self.write_u8(1 if value else 0)

    def write_bits8(self, bits: Iterable[bool]):
        bits = list(bits)
        if len(bits) != 8:
            raise ValueOutOfRange(f"Expected 8 bits, got {len(bits)}")
        byte = 0
        for bit in bits:
            byte = byte << 1 | (1 if bit else 0)
        self.write_u8(byte)

    def write_compact_string(self, value: str):
        try:
            data = value.encode("latin-1")
        except UnicodeEncodeError as e:
            raise ValueOutOfRange(
                f"Character code above 0xFF in {value!r} at index {e.start}"
            ) from e
        if len(data) > MAX_STRING_LENGTH:
            raise ValueOutOfRange(f"String of {len(data)} bytes exceeds {MAX_STRING_LENGTH}")
        self.write_u16(len(data))
        self.write_bytes(data)


# Scalar payload readers/writers, keyed by tag
_SCALAR_READERS = {
    TAG_STRING: ByteReader.read_compact_string,
    TAG_INT32: ByteReader.read_i32,
    TAG_FLOAT32: ByteReader.read_f32,
    TAG_BOOL: ByteReader.read_bool,
    TAG_INT64: ByteReader.read_i64,
    TAG_DOUBLE: ByteReader.read_f64,
    TAG_BYTE: ByteReader.read_i8,
    TAG_SHORT: ByteReader.read_i16,
}

_SCALAR_WRITERS = {
    TAG_STRING: ByteWriter.write_compact_string,
    TAG_INT32: ByteWriter.write_i32,
    TAG_FLOAT32: ByteWriter.write_f32,
    TAG_BOOL: ByteWriter.write_bool,
    TAG_INT64: ByteWriter.write_i64,
    TAG_DOUBLE: ByteWriter.write_f64,
    TAG_BYTE: ByteWriter.write_i8,
    TAG_SHORT: ByteWriter.write_i16,
}


# =============================================================================
# Decoder
# =============================================================================

# Frame kinds
FRAME_ROOT = "root"
FRAME_COMPOUND = "compound"
FRAME_LIST = "list"


class _Frame:
    """One level of the nesting stack: the container currently being filled."""

    __slots__ = ("kind", "container", "target", "element_tag")

    def __init__(self, kind: str, container, target: int = None, element_tag: int = None):
        self.kind = kind
        self.container = container
        # Fixed lists only: declared element count and shared element tag
        self.target = target
        self.element_tag = element_tag

    @property
    def fixed(self) -> bool:
        return self.target is not None


class Decoder:
    """Single-pass decoder turning a byte stream into documents.

    Values are read payload-first. A new value is placed into the innermost
    open container immediately: appended to a list, or parked as the pending
    entry of a compound. Once the value is complete its trailing name is read
    (unless its parent is a list) and the pending entry is named.
    Containers push a frame and are completed when their terminator arrives,
    or for fixed lists when the declared count has been read.
    """

    def __init__(self, data: Union[bytes, bytearray, memoryview]):
        self._reader = ByteReader(data)
        self._stack: list[_Frame] = []
        self._tag = TAG_END
        self._tag_offset = 0

    def decode(self) -> list[Document]:
        """Decode every document in the buffer."""
        documents = []
        while self._reader.has_more():
            documents.append(self._read_document())
        return documents

    def _read_document(self) -> Document:
        start = self._reader.tell()
        document = Document(self._reader.read_u16())
        logger.debug("Reading document version %d at byte %d", document.version, start)
        self._stack = [_Frame(FRAME_ROOT, document.root)]

        while self._stack:
            frame = self._stack[-1]
            if frame.fixed:
                if len(frame.container.elements) == frame.target:
                    self._stack.pop()
                    self._finish_value()
                    continue
                self._tag_offset = self._reader.tell()
                self._tag = frame.element_tag
            else:
                self._tag_offset = self._reader.tell()
                self._tag = self._reader.read_u8()
                if self._tag == TAG_END:
                    self._stack.pop()
                    if frame.kind != FRAME_ROOT:
                        self._finish_value()
                    continue
            self._read_value()

        logger.debug(
            "Finished document version %d with %d entries", document.version, len(document.root)
        )
        return document

    def _read_value(self):
        """Dispatch on the current tag and read one value's payload."""
        tag = self._tag
        reader = self._reader

        if tag in _SCALAR_READERS:
            value = SCALAR_TYPES[tag](_SCALAR_READERS[tag](reader))
            self._place(value)
            self._finish_value()
        elif tag == TAG_COMPOUND:
            value = Compound()
            self._place(value)
            self._stack.append(_Frame(FRAME_COMPOUND, value))
        elif tag == TAG_LIST:
            self._read_list()
        elif tag == TAG_NUMBER_ARRAY:
            value = NumberArrayCodec.read(reader)
            self._place(value)
            self._finish_value()
        else:
            raise UnknownTag(tag, self._tag_offset)

    def _read_list(self):
        offset = self._reader.tell()
        mode = self._reader.read_u8()

        if mode == LIST_EMPTY:
            value = ListEmpty()
            self._place(value)
            self._finish_value()
        elif mode == LIST_FIXED:
            count = self._reader.read_i32()
            if count < 0:
                raise MalformedListState(f"Negative fixed list length {count}", offset)
            element_tag = self._reader.read_u8()
            if element_tag == TAG_END:
                raise MalformedListState("Fixed list declares terminator as element tag", offset)
            if element_tag not in VALUE_TAGS:
                raise UnknownTag(element_tag, offset + 5)
            logger.debug(
                "Fixed list of %d %s at byte %d", count, TAG_NAMES[element_tag], offset
            )
            value = ListFixed(element_tag, count)
            self._place(value)
            self._stack.append(_Frame(FRAME_LIST, value, count, element_tag))
        elif mode == LIST_OPEN:
            logger.debug("Open list at byte %d", offset)
            value = ListOpen()
            self._place(value)
            self._stack.append(_Frame(FRAME_LIST, value))
        else:
            raise MalformedListState(f"Unknown list mode 0x{mode:02X}", offset)

    def _place(self, value: Value):
        """Put a freshly created value into the innermost open container."""
        frame = self._stack[-1]
        if frame.kind == FRAME_LIST:
            frame.container.elements.append(value)
        else:
            frame.container.add_pending(value)

    def _finish_value(self):
        """Attach the trailing name of a completed value to its parent."""
        frame = self._stack[-1]
        if frame.kind == FRAME_LIST:
            return
        offset = self._reader.tell()
        name = self._reader.read_compact_string()
        parent = frame.container
        if name in parent:
            logger.warning("Duplicate name %r at byte %d replaces earlier entry", name, offset)
        parent.name_pending(name)


# =============================================================================
# Encoder
# =============================================================================


class Encoder:
    """Writes documents back to bytes in the layout Decoder reads."""

    def __init__(self):
        self._writer = ByteWriter()
        self._path: list[str] = []

    @property
    def _context(self) -> str:
        return "/".join(self._path) if self._path else "root"

    def encode(self, documents: Iterable[Document]) -> bytes:
        """Encode documents and return all bytes written so far."""
        for document in documents:
            self.write_document(document)
        return self._writer.getvalue()

    def write_document(self, document: Document):
        logger.debug("Writing document version %d", document.version)
        self._path = ["root"]
        self._guard(self._writer.write_u16, document.version)
        self._write_children(document.root)
        self._writer.write_u8(TAG_END)

    def _guard(self, write, *args):
        """Call ``write``, tagging range errors with the current path."""
        try:
            write(*args)
        except ValueOutOfRange as e:
            raise ValueOutOfRange(str(e), context=self._context) from e

    def _write_children(self, compound: Compound):
        if compound.pending is not None:
            raise MalformedListState("Compound holds an unnamed entry", context=self._context)
        for name, value in compound.items():
            self._path.append(name)
            self._write_entry(value)
            self._guard(self._writer.write_compact_string, name)
            self._path.pop()

    def _write_entry(self, value: Value):
        """Write tag and payload (no name)."""
        if not isinstance(value, Value):
            raise TypeError(f"Unsupported type: {type(value)} (in {self._context})")
        self._writer.write_u8(value.tag)
        self._write_payload(value)

    def _write_payload(self, value: Value):
        tag = value.tag
        if tag in _SCALAR_WRITERS:
            self._guard(_SCALAR_WRITERS[tag], self._writer, value.value)
        elif isinstance(value, Compound):
            self._write_children(value)
            self._writer.write_u8(TAG_END)
        elif isinstance(value, ListEmpty):
            self._writer.write_u8(LIST_EMPTY)
        elif isinstance(value, ListFixed):
            self._write_fixed_list(value)
        elif isinstance(value, ListOpen):
            self._writer.write_u8(LIST_OPEN)
            for index, element in enumerate(value.elements):
                self._path.append(str(index))
                self._write_entry(element)
                self._path.pop()
            self._writer.write_u8(TAG_END)
        elif isinstance(value, NumberArray):
            self._guard(NumberArrayCodec.write, self._writer, value)
        else:
            raise TypeError(f"Unsupported type: {type(value)} (in {self._context})")

    def _write_fixed_list(self, value: ListFixed):
        if len(value.elements) != value.length:
            raise MalformedListState(
                f"Fixed list declares {value.length} elements but holds {len(value.elements)}",
                context=self._context,
            )
        if value.element_tag not in VALUE_TAGS:
            raise UnknownTag(value.element_tag, context=self._context)
        self._writer.write_u8(LIST_FIXED)
        self._guard(self._writer.write_i32, value.length)
        self._writer.write_u8(value.element_tag)
        for index, element in enumerate(value.elements):
            self._path.append(str(index))
            if getattr(element, "tag", None) != value.element_tag:
                raise MalformedListState(
                    f"Element of type {type(element).__name__} in list of "
                    f"{TAG_NAMES[value.element_tag]}",
                    context=self._context,
                )
            self._write_payload(element)
            self._path.pop()


# Convenience functions


def loads(data: Union[bytes, bytearray, memoryview]) -> list[Document]:
    """Decode every document in ``data``.

    Example:
        documents = ca.loads(b"\\x00\\x01\\x03\\x00\\x00\\x00\\x05\\x00\\x01x\\x00")
        documents[0].root["x"]  # Int32(value=5)
    """
    return Decoder(data).decode()


def loads_one(data: Union[bytes, bytearray, memoryview]) -> Document:
    """Decode ``data``, which must hold exactly one document."""
    documents = loads(data)
    if len(documents) != 1:
        raise ArchiveError(f"Expected exactly one document, found {len(documents)}")
    return documents[0]


def dumps(documents: Union[Document, Iterable[Document]]) -> bytes:
    """Encode one document or an iterable of documents to bytes."""
    if isinstance(documents, Document):
        documents = [documents]
    return Encoder().encode(documents)
