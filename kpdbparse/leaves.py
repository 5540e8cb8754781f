"""Decoding of numeric leaves, strings and field-list entries of CodeView records."""

from __future__ import annotations

import struct
from typing import List, Optional, Tuple

from .codeview import (
    BufferTooSmallError,
    CodeViewInteger,
    Enumerate,
    Index,
    LeafType,
    Member,
    Method,
    NestType,
    OneMethod,
    StaticMember,
    Subtype,
    TpiFormatError,
)

# Longest name kept from a record; longer names are cut to this many bytes.
MAX_STRING_LEN = 2048

_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_I32 = struct.Struct("<i")

_NUMERIC_FORMATS = {
    LeafType.CHAR: (struct.Struct("<b"), True),
    LeafType.SHORT: (struct.Struct("<h"), True),
    LeafType.USHORT: (struct.Struct("<H"), False),
    LeafType.LONG: (struct.Struct("<i"), True),
    LeafType.ULONG: (struct.Struct("<I"), False),
    LeafType.QUADWORD: (struct.Struct("<q"), True),
    LeafType.UQUADWORD: (struct.Struct("<Q"), False),
}

# Method properties that carry a virtual base offset.
_INTRO_METHOD_PROPERTIES = frozenset({4, 5, 6})


def parse_numeric(data, offset: int = 0) -> Tuple[CodeViewInteger, int]:
    """Decode the numeric leaf at ``offset``; return the value and the offset after it."""
    available = len(data) - offset
    if available < _U16.size:
        raise BufferTooSmallError(
            f"numeric leaf needs 2 bytes for its kind, {max(available, 0)} left"
        )
    (leaf,) = _U16.unpack_from(data, offset)
    if leaf < LeafType.CHAR:
        return CodeViewInteger(neg=False, num=leaf), offset + _U16.size

    try:
        fmt, signed = _NUMERIC_FORMATS[LeafType(leaf)]
    except (ValueError, KeyError):
        raise TpiFormatError(f"unhandled numeric leaf type 0x{leaf:X}") from None

    needed = _U16.size + fmt.size
    if available < needed:
        raise BufferTooSmallError(
            f"numeric leaf 0x{leaf:X} needs {needed} bytes, {available} left"
        )
    (value,) = fmt.unpack_from(data, offset + _U16.size)
    result = CodeViewInteger.from_signed(value) if signed else CodeViewInteger(num=value)
    return result, offset + needed


def read_cstring(data, offset: int = 0, limit: Optional[int] = None) -> Tuple[str, int]:
    """Read a NUL-terminated string of at most ``limit`` bytes from ``offset``.

    Returns the text and the number of bytes it took, without the terminator.
    The scan stops at the terminator, at ``limit`` or at ``MAX_STRING_LEN - 1``.
    """
    if limit is None:
        limit = len(data) - offset
    if offset >= len(data) or limit <= 0:
        return "", 0
    end = min(len(data), offset + limit, offset + MAX_STRING_LEN - 1)
    raw = bytes(data[offset:end])
    terminator = raw.find(b"\x00")
    if terminator != -1:
        raw = raw[:terminator]
    return raw.decode("utf-8", errors="replace"), len(raw)


def _read_name(data, offset: int) -> Tuple[str, int]:
    """Read a required, terminated name; return it and the offset after it."""
    if offset >= len(data):
        raise BufferTooSmallError("record ends before its name")
    name, length = read_cstring(data, offset, len(data) - offset)
    end = offset + length + 1
    if end > len(data):
        raise BufferTooSmallError(f"name {name!r} is not terminated within the record")
    return name, end


def _read_u16(data, offset: int) -> Tuple[int, int]:
    if offset + _U16.size > len(data):
        raise BufferTooSmallError("record ends inside a 16-bit field")
    return _U16.unpack_from(data, offset)[0], offset + _U16.size


def _read_u32(data, offset: int) -> Tuple[int, int]:
    if offset + _U32.size > len(data):
        raise BufferTooSmallError("record ends inside a 32-bit field")
    return _U32.unpack_from(data, offset)[0], offset + _U32.size


def parse_member(data, kind) -> Tuple[Subtype, int]:
    """Decode an LF_MEMBER or LF_STMEMBER payload; return it and the bytes used."""
    if len(data) < _U16.size + _U32.size:
        raise BufferTooSmallError("member entry is too short")
    attributes, offset = _read_u16(data, 0)
    type_index, offset = _read_u32(data, offset)
    if kind == LeafType.MEMBER:
        member_offset, offset = parse_numeric(data, offset)
        name, offset = _read_name(data, offset)
        return (
            Member(attributes=attributes, type=type_index, offset=member_offset, name=name),
            offset,
        )
    name, offset = _read_name(data, offset)
    return StaticMember(attributes=attributes, type=type_index, name=name), offset


def parse_enumerate(data) -> Tuple[Enumerate, int]:
    """Decode an LF_ENUMERATE payload; return it and the bytes used."""
    _attributes, offset = _read_u16(data, 0)
    value, offset = parse_numeric(data, offset)
    name, offset = _read_name(data, offset)
    return Enumerate(name=name, value=value), offset


def parse_onemethod(data) -> Tuple[OneMethod, int]:
    """Decode an LF_ONEMETHOD payload; return it and the bytes used."""
    attributes, offset = _read_u16(data, 0)
    method_type, offset = _read_u32(data, offset)
    vbaseoff = 0
    if (attributes >> 2) & 0x07 in _INTRO_METHOD_PROPERTIES:
        if offset + _I32.size > len(data):
            raise BufferTooSmallError("method entry ends inside its vtable offset")
        (vbaseoff,) = _I32.unpack_from(data, offset)
        offset += _I32.size
    name, offset = _read_name(data, offset)
    return (
        OneMethod(
            attributes=attributes,
            method_type=method_type,
            vtable_base_offset=vbaseoff,
            name=name,
        ),
        offset,
    )


def parse_method(data) -> Tuple[Method, int]:
    """Decode an LF_METHOD payload; return it and the bytes used."""
    count, offset = _read_u16(data, 0)
    method_list, offset = _read_u32(data, offset)
    name, offset = _read_name(data, offset)
    return Method(count=count, method_list=method_list, name=name), offset


def parse_nesttype(data) -> Tuple[NestType, int]:
    """Decode an LF_NESTTYPE payload; return it and the bytes used."""
    if len(data) < _U16.size + _U32.size:
        raise BufferTooSmallError("nested type entry is too short")
    attributes, offset = _read_u16(data, 0)
    type_index, offset = _read_u32(data, offset)
    name, offset = _read_name(data, offset)
    return NestType(attributes=attributes, type=type_index, name=name), offset


def _parse_index(data) -> Tuple[Index, int]:
    type_num, offset = _read_u32(data, 0)
    return Index(type_num=type_num), offset


_SUBTYPE_PARSERS = {
    LeafType.MEMBER: lambda data: parse_member(data, LeafType.MEMBER),
    LeafType.STMEMBER: lambda data: parse_member(data, LeafType.STMEMBER),
    LeafType.ENUMERATE: parse_enumerate,
    LeafType.ONEMETHOD: parse_onemethod,
    LeafType.METHOD: parse_method,
    LeafType.NESTTYPE: parse_nesttype,
    LeafType.INDEX: _parse_index,
}


def parse_field_list(data) -> List[Subtype]:
    """Decode the entries of an LF_FIELDLIST payload.

    Reading stops quietly at the first entry of a kind that is not decoded.
    """
    view = memoryview(bytes(data))
    total = len(view)
    position = 0
    subtypes: List[Subtype] = []

    while position < total:
        remaining = total - position
        if remaining < _U16.size:
            break
        (kind,) = _U16.unpack_from(view, position)

        if LeafType.PAD0 <= kind <= LeafType.PAD3:
            advance = _U16.size + (kind & 0x0F)
            if advance > remaining:
                raise BufferTooSmallError("padding runs past the end of the field list")
            position += advance
            continue

        parser = _SUBTYPE_PARSERS.get(kind)
        if parser is None:
            break
        subtype, consumed = parser(view[position + _U16.size :])
        subtypes.append(subtype)
        position += _U16.size + consumed

        misalignment = position % 4
        if misalignment:
            padding = 4 - misalignment
            left = total - position
            if padding <= left:
                position += padding
            elif left != 0:
                raise BufferTooSmallError("field list ends inside entry padding")

    return subtypes