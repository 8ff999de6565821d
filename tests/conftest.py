"""
Pytest configuration and shared fixtures for config2 archive tests.

Provides hand-assembled byte streams together with the documents they
decode to, plus small helpers for spelling out wire bytes.
"""

import struct
from dataclasses import dataclass

import pytest

from config2 import (
    Bool,
    Byte,
    Compound,
    Document,
    Double,
    Float32,
    Int32,
    Int64,
    ListEmpty,
    ListFixed,
    ListOpen,
    NumberArray,
    Short,
    String,
)
from config2.values import TAG_COMPOUND, TAG_INT32, TAG_LIST, TAG_NUMBER_ARRAY, TAG_STRING


def cs(text: str) -> bytes:
    """Compact string: uint16 length + one byte per character."""
    return struct.pack(">H", len(text)) + text.encode("latin-1")


def i32(value: int) -> bytes:
    return struct.pack(">i", value)


def version(value: int) -> bytes:
    return struct.pack(">H", value)


@dataclass(frozen=True)
class StreamCase:
    """
    Immutable container for a canonical byte stream and its decoded form.
    """

    description: str
    data: bytes
    expected: tuple


SINGLE_INT = StreamCase(
    "one int32 field",
    bytes.fromhex("0001" "03" "00000005" "000178" "00"),
    (Document(1, Compound({"x": Int32(5)})),),
)


@pytest.fixture
def single_int() -> StreamCase:
    return SINGLE_INT


@pytest.fixture
def valid_streams() -> list[StreamCase]:
    """
    Canonical streams covering every tag and list mode.

    Every stream here is byte-identical to what the encoder produces for
    its decoded documents.
    """
    scalars = (
        version(3)
        + b"\x02" + cs("hi") + cs("s")
        + b"\x04" + struct.pack(">f", 1.5) + cs("f")
        + b"\x05\x01" + cs("b")
        + b"\x06" + struct.pack(">q", -2) + cs("l")
        + b"\x07" + struct.pack(">d", 0.25) + cs("d")
        + b"\x0a\xff" + cs("y")
        + b"\x0b\x01\x2c" + cs("h")
        + b"\x00"
    )
    nested = (
        version(1)
        + b"\x01" + b"\x03" + i32(7) + cs("a") + b"\x00" + cs("inner")
        + b"\x00"
    )
    empty_list = version(1) + b"\x09\x00" + cs("e") + b"\x00"
    fixed_ints = (
        version(1)
        + b"\x09\x01" + i32(3) + b"\x03" + i32(1) + i32(2) + i32(3) + cs("nums")
        + b"\x00"
    )
    fixed_compounds = (
        version(1)
        + b"\x09\x01" + i32(2) + b"\x01"
        + b"\x03" + i32(1) + cs("id") + b"\x00"
        + b"\x03" + i32(2) + cs("id") + b"\x00"
        + cs("items")
        + b"\x00"
    )
    fixed_empty = version(1) + b"\x09\x01" + i32(0) + b"\x02" + cs("none") + b"\x00"
    fixed_lists = (
        version(1)
        + b"\x09\x01" + i32(2) + b"\x09"
        + b"\x00"
        + b"\x02" + b"\x03" + i32(9) + b"\x00"
        + cs("ll")
        + b"\x00"
    )
    fixed_arrays = (
        version(1)
        + b"\x09\x01" + i32(1) + b"\x0c" + b"\x02\x01\x80" + cs("na")
        + b"\x00"
    )
    open_list = (
        version(1)
        + b"\x09\x02"
        + b"\x03" + i32(1)
        + b"\x02" + cs("two")
        + b"\x01" + b"\x0a\x05" + cs("k") + b"\x00"
        + b"\x00"
        + cs("mixed")
        + b"\x00"
    )
    number_array = version(1) + b"\x0c\x03\x41\xdc" + cs("arr") + b"\x00"
    high_bytes = version(1) + b"\x02" + cs("\xe9\x80\xff") + cs("\xe9") + b"\x00"
    two_documents = version(1) + b"\x00" + SINGLE_INT.data

    return [
        SINGLE_INT,
        StreamCase(
            "every scalar tag",
            scalars,
            (
                Document(
                    3,
                    Compound(
                        {
                            "s": String("hi"),
                            "f": Float32(1.5),
                            "b": Bool(True),
                            "l": Int64(-2),
                            "d": Double(0.25),
                            "y": Byte(-1),
                            "h": Short(300),
                        }
                    ),
                ),
            ),
        ),
        StreamCase(
            "nested compound",
            nested,
            (Document(1, Compound({"inner": Compound({"a": Int32(7)})})),),
        ),
        StreamCase("empty list", empty_list, (Document(1, Compound({"e": ListEmpty()})),)),
        StreamCase(
            "fixed list of int32",
            fixed_ints,
            (
                Document(
                    1,
                    Compound({"nums": ListFixed(TAG_INT32, 3, [Int32(1), Int32(2), Int32(3)])}),
                ),
            ),
        ),
        StreamCase(
            "fixed list of compounds",
            fixed_compounds,
            (
                Document(
                    1,
                    Compound(
                        {
                            "items": ListFixed(
                                TAG_COMPOUND,
                                2,
                                [Compound({"id": Int32(1)}), Compound({"id": Int32(2)})],
                            )
                        }
                    ),
                ),
            ),
        ),
        StreamCase(
            "fixed list with zero elements",
            fixed_empty,
            (Document(1, Compound({"none": ListFixed(TAG_STRING, 0, [])})),),
        ),
        StreamCase(
            "fixed list of lists",
            fixed_lists,
            (
                Document(
                    1,
                    Compound(
                        {"ll": ListFixed(TAG_LIST, 2, [ListEmpty(), ListOpen([Int32(9)])])}
                    ),
                ),
            ),
        ),
        StreamCase(
            "fixed list of number arrays",
            fixed_arrays,
            (
                Document(
                    1, Compound({"na": ListFixed(TAG_NUMBER_ARRAY, 1, [NumberArray([1, 0])])})
                ),
            ),
        ),
        StreamCase(
            "open list",
            open_list,
            (
                Document(
                    1,
                    Compound(
                        {
                            "mixed": ListOpen(
                                [Int32(1), String("two"), Compound({"k": Byte(5)})]
                            )
                        }
                    ),
                ),
            ),
        ),
        StreamCase(
            "signed number array",
            number_array,
            (Document(1, Compound({"arr": NumberArray([-1, 1, -1])})),),
        ),
        StreamCase(
            "bytes above 0x7f in strings",
            high_bytes,
            (Document(1, Compound({"\xe9": String("\xe9\x80\xff")})),),
        ),
        StreamCase(
            "two concatenated documents",
            two_documents,
            (Document(1, Compound()), Document(1, Compound({"x": Int32(5)}))),
        ),
    ]
