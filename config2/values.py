"""
values.py - In-memory model for config2 archive documents

A document is a version number plus a root compound. Compounds map names to
values in insertion order; lists come in three flavors (empty, fixed-length
homogeneous, and open heterogeneous); numeric arrays are dense int64 arrays.

Every value class carries its wire tag as the class attribute ``tag``.

Usage:
    from config2.values import Compound, Int32, String, to_python

    root = Compound({"x": Int32(5), "name": String("demo")})
    plain = to_python(root)  # {"x": 5, "name": "demo"}
"""

from __future__ import annotations

import operator
from collections.abc import Iterable, Iterator, Mapping, MutableMapping
from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

import numpy as np

from .errors import MalformedListState, ValueOutOfRange


# =============================================================================
# Wire tags
# =============================================================================

TAG_END = 0x00
TAG_COMPOUND = 0x01
TAG_STRING = 0x02
TAG_INT32 = 0x03
TAG_FLOAT32 = 0x04
TAG_BOOL = 0x05
TAG_INT64 = 0x06
TAG_DOUBLE = 0x07
# 0x08 is reserved and never valid on the wire
TAG_LIST = 0x09
TAG_BYTE = 0x0A
TAG_SHORT = 0x0B
TAG_NUMBER_ARRAY = 0x0C

TAG_NAMES = {
    TAG_END: "end",
    TAG_COMPOUND: "compound",
    TAG_STRING: "string",
    TAG_INT32: "int32",
    TAG_FLOAT32: "float32",
    TAG_BOOL: "bool",
    TAG_INT64: "int64",
    TAG_DOUBLE: "double",
    TAG_LIST: "list",
    TAG_BYTE: "byte",
    TAG_SHORT: "short",
    TAG_NUMBER_ARRAY: "number_array",
}

VALUE_TAGS = frozenset(TAG_NAMES) - {TAG_END}

# List mode bytes
LIST_EMPTY = 0x00
LIST_FIXED = 0x01
LIST_OPEN = 0x02

INT32_MIN, INT32_MAX = -(2**31), 2**31 - 1
INT64_MIN, INT64_MAX = -(2**63), 2**63 - 1


class Value:
    """Base class for every value that can appear in a document."""

    tag: ClassVar[int]


# =============================================================================
# Scalars
# =============================================================================


@dataclass(frozen=True)
class String(Value):
    value: str
    tag: ClassVar[int] = TAG_STRING


@dataclass(frozen=True)
class Int32(Value):
    value: int
    tag: ClassVar[int] = TAG_INT32


@dataclass(frozen=True)
class Float32(Value):
    value: float
    tag: ClassVar[int] = TAG_FLOAT32


@dataclass(frozen=True)
class Bool(Value):
    value: bool
    tag: ClassVar[int] = TAG_BOOL


@dataclass(frozen=True)
class Int64(Value):
    value: int
    tag: ClassVar[int] = TAG_INT64


@dataclass(frozen=True)
class Double(Value):
    value: float
    tag: ClassVar[int] = TAG_DOUBLE


@dataclass(frozen=True)
class Byte(Value):
    value: int
    tag: ClassVar[int] = TAG_BYTE


@dataclass(frozen=True)
class Short(Value):
    value: int
    tag: ClassVar[int] = TAG_SHORT


SCALAR_TYPES = {
    cls.tag: cls for cls in (String, Int32, Float32, Bool, Int64, Double, Byte, Short)
}


# =============================================================================
# Lists
# =============================================================================


@dataclass
class ListEmpty(Value):
    """Zero-length list with no element type recorded."""

    tag: ClassVar[int] = TAG_LIST
    mode: ClassVar[int] = LIST_EMPTY

    @property
    def elements(self) -> tuple:
        return ()

    def __len__(self) -> int:
        return 0


@dataclass
class ListFixed(Value):
    """Homogeneous list whose length and element tag are declared up front."""

    element_tag: int
    length: int
    elements: list[Value] = field(default_factory=list)
    tag: ClassVar[int] = TAG_LIST
    mode: ClassVar[int] = LIST_FIXED

    @classmethod
    def of(cls, elements: Iterable[Value], element_tag: int = None) -> "ListFixed":
        """Build a complete fixed list, taking the element tag from the first element."""
        elements = list(elements)
        if element_tag is None:
            if not elements:
                raise MalformedListState("Cannot infer element tag of an empty fixed list")
            element_tag = elements[0].tag
        return cls(element_tag, len(elements), elements)

    @property
    def complete(self) -> bool:
        return len(self.elements) == self.length

    def __len__(self) -> int:
        return len(self.elements)


@dataclass
class ListOpen(Value):
    """Heterogeneous list whose end is marked by a terminator."""

    elements: list[Value] = field(default_factory=list)
    tag: ClassVar[int] = TAG_LIST
    mode: ClassVar[int] = LIST_OPEN

    def __len__(self) -> int:
        return len(self.elements)


# =============================================================================
# Number arrays
# =============================================================================


class NumberArray(Value):
    """Dense array of signed integers, stored as a read-only int64 ndarray.

    int64 holds every value the packed encoding can express (up to 63
    magnitude bits plus a sign bit) as well as full-width verbatim values,
    so no element ever needs a wider type.
    """

    tag: ClassVar[int] = TAG_NUMBER_ARRAY

    def __init__(self, values: Union[Iterable[int], np.ndarray] = ()):
        if isinstance(values, np.ndarray):
            arr = self._from_ndarray(values)
        else:
            ints = [operator.index(v) for v in values]
            if ints and (min(ints) < INT64_MIN or max(ints) > INT64_MAX):
                raise ValueOutOfRange("Number array element exceeds 64-bit range")
            arr = np.array(ints, dtype=np.int64)
        arr.flags.writeable = False
        self.values = arr

    @staticmethod
    def _from_ndarray(values: np.ndarray) -> np.ndarray:
        if values.ndim != 1:
            raise TypeError(f"Number array must be one-dimensional, got shape {values.shape}")
        if values.size == 0:
            return np.zeros(0, dtype=np.int64)
        if values.dtype.kind not in "iu":
            raise TypeError(f"Number array requires an integer dtype, got {values.dtype}")
        if values.dtype.kind == "u" and int(values.max()) > INT64_MAX:
            raise ValueOutOfRange("Number array element exceeds 64-bit range")
        arr = values.astype(np.int64, copy=False)
        # Read-only int64 input (e.g. broadcast zeros) is shared rather than copied
        if arr is values and values.flags.writeable:
            arr = arr.copy()
        return arr

    def __len__(self) -> int:
        return len(self.values)

    def __iter__(self) -> Iterator[int]:
        return (int(v) for v in self.values)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return self.values[index]
        return int(self.values[index])

    def __eq__(self, other):
        if not isinstance(other, NumberArray):
            return NotImplemented
        return np.array_equal(self.values, other.values)

    __hash__ = None

    def __repr__(self) -> str:
        return f"NumberArray({self.values.tolist()!r})"


# =============================================================================
# Compounds
# =============================================================================


class Compound(MutableMapping, Value):
    """Ordered name -> value mapping with support for not-yet-named entries.

    Archives write a value's name after the value itself, so a decoder first
    stores the value in a placeholder slot with ``add_pending`` and later
    attaches the name with ``name_pending``. The pending slot is always the
    last slot and is invisible through the mapping interface until named.
    """

    tag: ClassVar[int] = TAG_COMPOUND

    def __init__(self, entries: Union[Mapping[str, Value], Iterable[tuple[str, Value]]] = ()):
        self._names: list = []
        self._values: list[Value] = []
        self._index: dict[str, int] = {}
        self._pending_slot: int = None
        if isinstance(entries, Mapping):
            entries = entries.items()
        for name, value in entries:
            self[name] = value

    # -- two-phase insertion --------------------------------------------------

    @property
    def pending(self) -> Value:
        """The value waiting for its name, or None."""
        if self._pending_slot is None:
            return None
        return self._values[self._pending_slot]

    def add_pending(self, value: Value) -> None:
        """Append ``value`` in a placeholder slot until its name is known."""
        if self._pending_slot is not None:
            raise MalformedListState("Compound already holds an unnamed entry")
        self._pending_slot = len(self._values)
        self._names.append(None)
        self._values.append(value)

    def name_pending(self, name: str) -> Value:
        """Give the pending entry its name, keeping its position.

        If ``name`` is already present, the earlier entry takes the pending
        value and the placeholder slot is dropped.
        """
        slot = self._pending_slot
        if slot is None:
            raise MalformedListState(f"No unnamed entry to receive name {name!r}")
        self._pending_slot = None
        value = self._values[slot]
        if name in self._index:
            del self._names[slot]
            del self._values[slot]
            self._values[self._index[name]] = value
        else:
            self._names[slot] = name
            self._index[name] = slot
        return value

    # -- mapping interface ----------------------------------------------------

    def __getitem__(self, name: str) -> Value:
        return self._values[self._index[name]]

    def __setitem__(self, name: str, value: Value) -> None:
        if not isinstance(name, str):
            raise TypeError(f"Compound names must be str, not {type(name).__name__}")
        if not isinstance(value, Value):
            raise TypeError(f"Unsupported value type: {type(value)}")
        if name in self._index:
            self._values[self._index[name]] = value
            return
        # New names go in front of an unnamed entry so it stays last
        position = len(self._values) if self._pending_slot is None else self._pending_slot
        self._names.insert(position, name)
        self._values.insert(position, value)
        self._index[name] = position
        if self._pending_slot is not None:
            self._pending_slot += 1

    def __delitem__(self, name: str) -> None:
        position = self._index.pop(name)
        del self._names[position]
        del self._values[position]
        for later in self._names[position:]:
            if later is not None:
                self._index[later] -= 1
        if self._pending_slot is not None:
            self._pending_slot -= 1

    def __iter__(self) -> Iterator[str]:
        return (name for name in self._names if name is not None)

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, name) -> bool:
        return name in self._index

    def __eq__(self, other):
        if isinstance(other, Compound):
            return list(self.items()) == list(other.items())
        if isinstance(other, Mapping):
            return dict(self.items()) == dict(other.items())
        return NotImplemented

    __hash__ = None

    def __repr__(self) -> str:
        return f"Compound({dict(self.items())!r})"


@dataclass
class Document:
    """One archive document: a format version plus its root compound."""

    version: int
    root: Compound = field(default_factory=Compound)


# =============================================================================
# Conversion to and from plain Python data
# =============================================================================


def to_python(value: Any) -> Any:
    """Convert a value tree into nested dicts, lists, ndarrays and scalars.

    Documents convert to their root compound. The result drops wire-level
    detail (exact integer width, list mode) and so may not re-encode to the
    same bytes via ``from_python``.
    """
    if isinstance(value, Document):
        return to_python(value.root)
    if isinstance(value, Compound):
        return {name: to_python(v) for name, v in value.items()}
    if isinstance(value, (ListEmpty, ListFixed, ListOpen)):
        return [to_python(v) for v in value.elements]
    if isinstance(value, NumberArray):
        return value.values.copy()
    if isinstance(value, tuple(SCALAR_TYPES.values())):
        return value.value
    raise TypeError(f"Unsupported type: {type(value)}")


def from_python(data: Any) -> Value:
    """Build a value tree from plain Python data, inferring wire tags.

    - dict -> Compound
    - bool -> Bool, int -> Int32 if it fits else Int64, float -> Double
    - str -> String
    - integer ndarray -> NumberArray, floating ndarray -> fixed list of Double
    - list -> ListEmpty if empty, ListFixed if every element infers the same
      tag, otherwise ListOpen
    """
    if isinstance(data, Value):
        return data
    if isinstance(data, Mapping):
        return Compound((name, from_python(v)) for name, v in data.items())
    if isinstance(data, np.ndarray):
        if data.dtype.kind in "iu":
            return NumberArray(data)
        if data.dtype.kind == "f":
            if data.ndim != 1:
                raise TypeError(f"Float array must be one-dimensional, got shape {data.shape}")
            return ListFixed.of((Double(float(v)) for v in data), TAG_DOUBLE)
        raise TypeError(f"Unsupported array dtype: {data.dtype}")
    if isinstance(data, (list, tuple)):
        if len(data) == 0:
            return ListEmpty()
        elements = [from_python(v) for v in data]
        if len({v.tag for v in elements}) == 1:
            return ListFixed.of(elements)
        return ListOpen(elements)
    if isinstance(data, (bool, np.bool_)):
        return Bool(bool(data))
    if isinstance(data, (int, np.integer)):
        data = int(data)
        if INT32_MIN <= data <= INT32_MAX:
            return Int32(data)
        if INT64_MIN <= data <= INT64_MAX:
            return Int64(data)
        raise ValueOutOfRange(f"Integer {data} exceeds 64-bit range")
    if isinstance(data, (float, np.floating)):
        return Double(float(data))
    if isinstance(data, str):
        return String(data)
    raise TypeError(f"Unsupported type: {type(data)}")
