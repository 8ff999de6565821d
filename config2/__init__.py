"""Reader and writer for config2 binary archives."""

from .config2_archive import ByteReader, ByteWriter, Decoder, Encoder, dumps, loads, loads_one
from .errors import ArchiveError, MalformedListState, UnexpectedEnd, UnknownTag, ValueOutOfRange
from .number_array import NumberArrayCodec
from .values import (
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
    Value,
    from_python,
    to_python,
)

__version__ = "0.1.0"
