"""
number_array.py - Bit-packed encoding for dense integer arrays

Layout (big-endian, most significant bit first):
- Count prefix: the top two bits of the first byte select how many more
  bytes follow (00 -> 0, 01 -> 1, 10 -> 3, 11 -> 4); the low six bits of the
  first byte and the following bytes form the element count.
- Nothing else follows when the count is zero.
- Control byte: bit 7 = verbatim, bit 6 = sign bit present, bits 0-5 = width.
- Verbatim: count x 8-byte two's-complement integers.
- Width 0: no data, every element is zero.
- Otherwise: one continuous bitstream, per element an optional sign bit
  (1 = negative) followed by ``width`` magnitude bits, zero-padded to a
  whole byte at the end.
"""

from __future__ import annotations

import numpy as np

from .errors import ValueOutOfRange
from .values import NumberArray

VERBATIM_BIT = 0x80
SIGN_BIT = 0x40
WIDTH_MASK = 0x3F
MAX_WIDTH = 63

COUNT_SELECTOR_SHIFT = 6
COUNT_HEAD_MASK = 0x3F
# selector -> number of continuation bytes
COUNT_EXTRA_BYTES = {0b00: 0, 0b01: 1, 0b10: 3, 0b11: 4}
MAX_COUNT = (1 << 38) - 1


def read_count(reader) -> int:
    """Read a variable-length element count."""
    first = reader.read_u8()
    extra = COUNT_EXTRA_BYTES[first >> COUNT_SELECTOR_SHIFT]
    count = first & COUNT_HEAD_MASK
    for b in reader.read_bytes(extra):
        count = (count << 8) | b
    return count


def write_count(writer, count: int):
    """Write ``count`` using the shortest count prefix that holds it."""
    if count < 0:
        raise ValueOutOfRange(f"Negative element count: {count}")
    for selector, extra in sorted(COUNT_EXTRA_BYTES.items()):
        if count < 1 << (COUNT_SELECTOR_SHIFT + 8 * extra):
            data = bytearray(count.to_bytes(extra + 1, "big"))
            data[0] |= selector << COUNT_SELECTOR_SHIFT
            writer.write_bytes(bytes(data))
            return
    raise ValueOutOfRange(f"Element count {count} exceeds maximum {MAX_COUNT}")


def choose_parameters(values: np.ndarray) -> tuple[int, bool, bool]:
    """Return the minimal (width, signed, verbatim) able to hold ``values``."""
    if values.size == 0:
        return 0, False, False
    lo, hi = int(values.min()), int(values.max())
    signed = lo < 0
    width = max(abs(lo), abs(hi)).bit_length()
    if width > MAX_WIDTH:
        return MAX_WIDTH, signed, True
    return width, signed, False


class NumberArrayCodec:
    """Reads and writes NumberArray payloads (without tag or name)."""

    @staticmethod
    def read(reader) -> NumberArray:
        count = read_count(reader)
        if count == 0:
            return NumberArray()

        control = reader.read_u8()
        verbatim = bool(control & VERBATIM_BIT)
        signed = bool(control & SIGN_BIT)
        width = control & WIDTH_MASK

        if verbatim:
            data = reader.read_bytes(count * 8)
            return NumberArray(np.frombuffer(data, dtype=">i8").astype(np.int64))
        if width == 0:
            # No payload backs the count, so never materialize the zeros
            return NumberArray(np.broadcast_to(np.int64(0), count))

        offset = int(signed)
        bits_per_element = width + offset
        total_bits = count * bits_per_element
        data = reader.read_bytes((total_bits + 7) // 8)
        bits = np.unpackbits(np.frombuffer(data, dtype=np.uint8))[:total_bits]
        bits = bits.reshape(count, bits_per_element)

        weights = np.left_shift(np.uint64(1), np.arange(width - 1, -1, -1, dtype=np.uint64))
        magnitude = (bits[:, offset:].astype(np.uint64) * weights).sum(axis=1, dtype=np.uint64)
        values = magnitude.astype(np.int64)
        if signed:
            values = np.where(bits[:, 0] == 1, -values, values)
        return NumberArray(values)

    @staticmethod
    def write(
        writer,
        array: NumberArray,
        width: int = None,
        signed: bool = None,
        verbatim: bool = None,
    ):
        """Write ``array``, using minimal parameters unless overridden.

        Explicit ``width``, ``signed`` and ``verbatim`` values are checked
        against the data and raise ValueOutOfRange if they cannot hold it.
        """
        values = array.values
        need_width, need_signed, need_verbatim = choose_parameters(values)

        if verbatim is None:
            verbatim = need_verbatim
        elif need_verbatim and not verbatim:
            raise ValueOutOfRange("Values need 64 bits; only verbatim encoding can hold them")
        if signed is None:
            signed = need_signed
        elif need_signed and not signed:
            raise ValueOutOfRange("Negative values need a sign bit")
        if width is None:
            width = MAX_WIDTH if verbatim else need_width
        elif not 0 <= width <= MAX_WIDTH:
            raise ValueOutOfRange(f"Width {width} outside 0..{MAX_WIDTH}")
        elif not verbatim and width < need_width:
            raise ValueOutOfRange(f"Width {width} too small, values need {need_width} bits")

        write_count(writer, len(values))
        if len(values) == 0:
            return

        control = width
        if verbatim:
            control |= VERBATIM_BIT
        if signed:
            control |= SIGN_BIT
        writer.write_u8(control)

        if verbatim:
            writer.write_bytes(values.astype(">i8").tobytes())
            return
        if width == 0:
            return

        magnitude = np.abs(values).astype(np.uint64)
        shifts = np.arange(width - 1, -1, -1, dtype=np.uint64)
        bits = ((magnitude[:, None] >> shifts) & np.uint64(1)).astype(np.uint8)
        if signed:
            bits = np.hstack([(values < 0).astype(np.uint8)[:, None], bits])
        writer.write_bytes(np.packbits(bits.ravel()).tobytes())
