"""CodeView type-record model used by the TPI stream of a PDB file."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass, field
from typing import ClassVar, List, Optional, Union


class LeafType(enum.IntEnum):
    """CodeView leaf kinds (LEAF_ENUM_e)."""

    PAD0 = 0xF0
    PAD1 = 0xF1
    PAD2 = 0xF2
    PAD3 = 0xF3
    MODIFIER = 0x1001
    POINTER = 0x1002
    PROCEDURE = 0x1008
    MFUNCTION = 0x1009
    ARGLIST = 0x1201
    FIELDLIST = 0x1203
    TYPEDEF = 0x1204
    BITFIELD = 0x1205
    METHODLIST = 0x1206
    BCLASS = 0x1400
    DBCLASS = 0x1401
    INDEX = 0x1404
    ENUMERATE = 0x1502
    ARRAY = 0x1503
    CLASS = 0x1504
    STRUCTURE = 0x1505
    UNION = 0x1506
    ENUM = 0x1507
    MEMBER = 0x150D
    STMEMBER = 0x150E
    METHOD = 0x150F
    NESTTYPE = 0x1510
    ONEMETHOD = 0x1511
    FUNC_ID = 0x1601
    MFUNC_ID = 0x1602
    STRING_ID = 0x1605
    CHAR = 0x8000
    SHORT = 0x8001
    USHORT = 0x8002
    LONG = 0x8003
    ULONG = 0x8004
    QUADWORD = 0x8009
    UQUADWORD = 0x800A


class TpiVersion(enum.IntEnum):
    """Known TPI stream versions."""

    V40 = 19950410
    V41 = 19951122
    V50 = 19961031
    V70 = 19990903
    V80 = 20040203


class Property(enum.IntFlag):
    """Property flags of class, structure and enum records."""

    PACKED = 0x0001
    HAS_CTOR_OR_DTOR = 0x0002
    HAS_OVERLOADED_OPERATOR = 0x0004
    IS_NESTED = 0x0008
    HAS_NESTED_TYPE = 0x0010
    HAS_OVERLOADED_ASSIGN = 0x0020
    HAS_CONVERSION_OPERATOR = 0x0040
    FORWARD_REF = 0x0080
    SCOPED = 0x0100
    HAS_UNIQUE_NAME = 0x0200


# Built-in (primitive) type indices.
T_VOID = 0x0003
T_HRESULT = 0x0008
T_CHAR = 0x0010
T_SHORT = 0x0011
T_LONG = 0x0012
T_QUAD = 0x0013
T_UCHAR = 0x0020
T_USHORT = 0x0021
T_ULONG = 0x0022
T_UQUAD = 0x0023
T_BOOL08 = 0x0030
T_REAL32 = 0x0040
T_REAL64 = 0x0041
T_REAL80 = 0x0042
T_REAL128 = 0x0043
T_RCHAR = 0x0070
T_WCHAR = 0x0071
T_INT4 = 0x0074
T_UINT4 = 0x0075
T_CHAR16 = 0x007A
T_CHAR32 = 0x007B
T_CHAR8 = 0x007C

# Type indices below this value are primitive types.
FIRST_CUSTOM_TYPE_INDEX = 0x1000


class TpiError(Exception):
    """Base class for errors met while reading a TPI stream."""


class TpiFormatError(TpiError):
    """The stream does not have the expected layout."""


class TpiParseError(TpiError):
    """The type records could not be read to the end of the stream."""


class BufferTooSmallError(TpiError):
    """A record ended before all of its fields were read."""


class ItemNotFoundError(TpiError, LookupError):
    """A requested type is not in the type table."""


@dataclass(frozen=True)
class CodeViewInteger:
    """A numeric leaf value stored as sign and magnitude."""

    neg: bool = False
    num: int = 0

    @classmethod
    def from_signed(cls, value: int) -> "CodeViewInteger":
        """Build from an ordinary signed integer."""
        if value < 0:
            return cls(neg=True, num=-value)
        return cls(neg=False, num=value)

    def __int__(self) -> int:
        return -self.num if self.neg else self.num

    def __str__(self) -> str:
        return f"{'-' if self.neg else ''}{self.num}"


# Field-list entries.


@dataclass(kw_only=True)
class Enumerate:
    """An enumerator of an enum's field list."""

    kind: ClassVar[LeafType] = LeafType.ENUMERATE
    name: Optional[str] = None
    value: CodeViewInteger = field(default_factory=CodeViewInteger)


@dataclass(kw_only=True)
class Index:
    """A continuation pointer to another field list."""

    kind: ClassVar[LeafType] = LeafType.INDEX
    type_num: int = 0


@dataclass(kw_only=True)
class Member:
    """A non-static data member."""

    kind: ClassVar[LeafType] = LeafType.MEMBER
    attributes: int = 0
    type: int = 0
    offset: CodeViewInteger = field(default_factory=CodeViewInteger)
    name: Optional[str] = None


@dataclass(kw_only=True)
class StaticMember:
    """A static data member."""

    kind: ClassVar[LeafType] = LeafType.STMEMBER
    attributes: int = 0
    type: int = 0
    name: Optional[str] = None


@dataclass(kw_only=True)
class OneMethod:
    """A method without overloads."""

    kind: ClassVar[LeafType] = LeafType.ONEMETHOD
    attributes: int = 0
    method_type: int = 0
    vtable_base_offset: int = 0
    name: Optional[str] = None


@dataclass(kw_only=True)
class Method:
    """An overloaded method, referring to a method list."""

    kind: ClassVar[LeafType] = LeafType.METHOD
    count: int = 0
    method_list: int = 0
    name: Optional[str] = None


@dataclass(kw_only=True)
class NestType:
    """A nested type definition."""

    kind: ClassVar[LeafType] = LeafType.NESTTYPE
    attributes: int = 0
    type: int = 0
    name: Optional[str] = None


Subtype = Union[Enumerate, Index, Member, StaticMember, OneMethod, Method, NestType]


# Type records. ``record_length`` is the value of the record's length field,
# which counts the kind field and the payload but not itself.


@dataclass(kw_only=True)
class Modifier:
    """LF_MODIFIER: a const/volatile qualified type."""

    index: int
    record_length: int = 0
    kind: int = field(default=LeafType.MODIFIER, init=False)
    base_type: int = 0
    modifier: int = 0


@dataclass(kw_only=True)
class FieldList:
    """LF_FIELDLIST: the members of a class, structure or enum."""

    index: int
    record_length: int = 0
    kind: int = field(default=LeafType.FIELDLIST, init=False)
    subtypes: List[Subtype] = field(default_factory=list)


@dataclass(kw_only=True)
class Structure:
    """LF_CLASS or LF_STRUCTURE."""

    index: int
    record_length: int = 0
    kind: int = LeafType.STRUCTURE
    count: int = 0
    properties: int = 0
    field_list_index: int = 0
    derived_from_index: int = 0
    vshape_index: int = 0
    size: CodeViewInteger = field(default_factory=CodeViewInteger)
    name: Optional[str] = None
    unique_name: Optional[str] = None


@dataclass(kw_only=True)
class EnumType:
    """LF_ENUM."""

    index: int
    record_length: int = 0
    kind: int = field(default=LeafType.ENUM, init=False)
    count: int = 0
    properties: int = 0
    underlying_type: int = 0
    field_list_index: int = 0
    name: Optional[str] = None
    unique_name: Optional[str] = None


@dataclass(kw_only=True)
class Array:
    """LF_ARRAY."""

    index: int
    record_length: int = 0
    kind: int = field(default=LeafType.ARRAY, init=False)
    element_type: int = 0
    index_type: int = 0
    length: CodeViewInteger = field(default_factory=CodeViewInteger)


@dataclass(kw_only=True)
class Typedef:
    """LF_TYPEDEF: an alias of another type."""

    index: int
    record_length: int = 0
    kind: int = field(default=LeafType.TYPEDEF, init=False)
    underlying_type: int = 0
    name: Optional[str] = None


@dataclass(kw_only=True)
class ArgList:
    """LF_ARGLIST: the argument types of a procedure."""

    index: int
    record_length: int = 0
    kind: int = field(default=LeafType.ARGLIST, init=False)
    args: List[int] = field(default_factory=list)


@dataclass(kw_only=True)
class OpaqueType:
    """A record whose payload is not decoded."""

    index: int
    kind: int
    record_length: int = 0


CodeViewType = Union[
    Modifier, FieldList, Structure, EnumType, Array, Typedef, ArgList, OpaqueType
]


_HEADER_FORMAT = struct.Struct("<5I2H2IiIiIiI")


@dataclass(frozen=True)
class TpiHeader:
    """The fixed header at the start of the TPI stream."""

    SIZE: ClassVar[int] = _HEADER_FORMAT.size

    version: int
    header_size: int
    type_index_begin: int
    type_index_end: int
    type_record_bytes: int
    hash_stream_index: int = 0
    hash_aux_stream_index: int = 0
    hash_keys_bytes: int = 0
    num_hash_buckets: int = 0
    hash_value_buffer_offset: int = 0
    hash_value_buffer_bytes: int = 0
    index_offset_buffer_offset: int = 0
    index_offset_buffer_bytes: int = 0
    hash_adj_buffer_offset: int = 0
    hash_adj_buffer_bytes: int = 0

    @classmethod
    def parse(cls, data: bytes) -> "TpiHeader":
        """Unpack the header from the first bytes of ``data``."""
        if len(data) < cls.SIZE:
            raise TpiFormatError(
                f"TPI stream holds {len(data)} bytes, header needs {cls.SIZE}"
            )
        return cls(*_HEADER_FORMAT.unpack_from(data, 0))