"""Decoding of TPI type records and walking the TPI stream."""

from __future__ import annotations

import struct
from typing import Iterator, List, Optional, Tuple

from .codeview import (
    ArgList,
    Array,
    BufferTooSmallError,
    CodeViewType,
    EnumType,
    FieldList,
    LeafType,
    Modifier,
    OpaqueType,
    Property,
    Structure,
    TpiFormatError,
    TpiHeader,
    TpiParseError,
    Typedef,
)
from .leaves import parse_field_list, parse_numeric, read_cstring

_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")

_STRUCTURE_KINDS = frozenset({LeafType.CLASS, LeafType.STRUCTURE})


def _read_u16(data, offset: int) -> Tuple[int, int]:
    if offset + _U16.size > len(data):
        raise BufferTooSmallError("record ends inside a 16-bit field")
    return _U16.unpack_from(data, offset)[0], offset + _U16.size


def _read_u32(data, offset: int) -> Tuple[int, int]:
    if offset + _U32.size > len(data):
        raise BufferTooSmallError("record ends inside a 32-bit field")
    return _U32.unpack_from(data, offset)[0], offset + _U32.size


def _read_optional_name(data, offset: int) -> Tuple[Optional[str], int]:
    """Read a name that may be empty or absent; return it and the offset after it."""
    remaining = len(data) - offset
    if remaining <= 0:
        return None, offset
    text, length = read_cstring(data, offset, remaining)
    if length == 0:
        # An empty name is a lone terminator.
        return None, offset + 1
    end = offset + length + 1
    if end > len(data):
        raise BufferTooSmallError(f"name {text!r} is not terminated within the record")
    return text, end


def parse_class_structure_enum(data, kind):
    """Decode an LF_CLASS, LF_STRUCTURE or LF_ENUM payload.

    The returned record has index 0; :func:`parse_type_record` fills it in.
    """
    count, offset = _read_u16(data, 0)
    properties, offset = _read_u16(data, offset)

    if kind == LeafType.ENUM:
        underlying_type, offset = _read_u32(data, offset)
        field_list_index, offset = _read_u32(data, offset)
        record = EnumType(
            index=0,
            count=count,
            properties=properties,
            underlying_type=underlying_type,
            field_list_index=field_list_index,
        )
    else:
        field_list_index, offset = _read_u32(data, offset)
        derived_from_index, offset = _read_u32(data, offset)
        vshape_index, offset = _read_u32(data, offset)
        record = Structure(
            index=0,
            kind=LeafType(kind),
            count=count,
            properties=properties,
            field_list_index=field_list_index,
            derived_from_index=derived_from_index,
            vshape_index=vshape_index,
        )
        if offset < len(data):
            record.size, offset = parse_numeric(data, offset)

    record.name, offset = _read_optional_name(data, offset)

    if properties & Property.HAS_UNIQUE_NAME and offset < len(data):
        record.unique_name, offset = _read_optional_name(data, offset)

    return record


def parse_modifier(data) -> Modifier:
    """Decode an LF_MODIFIER payload."""
    base_type, offset = _read_u32(data, 0)
    modifier, _ = _read_u16(data, offset)
    return Modifier(index=0, base_type=base_type, modifier=modifier)


def parse_typedef(data) -> Typedef:
    """Decode an LF_TYPEDEF payload."""
    underlying_type, offset = _read_u32(data, 0)
    name = None
    if offset < len(data):
        text, length = read_cstring(data, offset, len(data) - offset)
        if length:
            name = text
    return Typedef(index=0, underlying_type=underlying_type, name=name)


def parse_array(data) -> Array:
    """Decode an LF_ARRAY payload; the trailing name is skipped."""
    element_type, offset = _read_u32(data, 0)
    index_type, offset = _read_u32(data, offset)
    length, _ = parse_numeric(data, offset)
    return Array(index=0, element_type=element_type, index_type=index_type, length=length)


def parse_type_record(index: int, kind: int, data) -> CodeViewType:
    """Decode one type record given its index, leaf kind and payload.

    ``data`` is the payload after the kind field. Kinds that are not decoded
    come back as :class:`OpaqueType`.
    """
    data = bytes(data)
    if kind in _STRUCTURE_KINDS or kind == LeafType.ENUM:
        record = parse_class_structure_enum(data, kind)
    elif kind == LeafType.MODIFIER:
        record = parse_modifier(data)
    elif kind == LeafType.FIELDLIST:
        record = FieldList(index=0, subtypes=parse_field_list(data))
    elif kind == LeafType.TYPEDEF:
        record = parse_typedef(data)
    elif kind == LeafType.ARRAY:
        record = parse_array(data)
    elif kind == LeafType.ARGLIST:
        record = ArgList(index=0)
    else:
        record = OpaqueType(index=0, kind=kind)
    record.index = index
    record.record_length = len(data) + _U16.size
    return record


def parse_tpi_header(data) -> TpiHeader:
    """Read and check the header of a TPI stream."""
    header = TpiHeader.parse(data)
    if header.header_size < TpiHeader.SIZE:
        raise TpiFormatError(
            f"TPI header_size ({header.header_size}) is below {TpiHeader.SIZE}"
        )
    if header.type_index_end <= header.type_index_begin:
        raise TpiFormatError(
            f"TPI type_index_end (0x{header.type_index_end:X}) <= "
            f"type_index_begin (0x{header.type_index_begin:X})"
        )
    if header.header_size + header.type_record_bytes != len(data):
        raise TpiFormatError(
            "TPI header_size + type_record_bytes does not match the stream size"
        )
    return header


def iter_type_records(stream, header: TpiHeader) -> Iterator[CodeViewType]:
    """Yield the type records of a TPI stream in index order."""
    total = header.type_record_bytes
    if total == 0:
        return
    block = bytes(stream[header.header_size : header.header_size + total])
    if len(block) < total:
        raise BufferTooSmallError("TPI stream is shorter than its header claims")

    end_index = header.type_index_end
    if end_index > header.type_index_begin:
        max_loops = end_index - header.type_index_begin + 1000
    else:
        max_loops = 200000

    def index_limit_reached(index: int) -> bool:
        return end_index != 0 and index >= end_index

    offset = 0
    index = header.type_index_begin
    loops = 0
    while offset < total and loops < max_loops:
        if index_limit_reached(index):
            break
        if offset + _U16.size > total:
            raise BufferTooSmallError(f"no room for a record length at offset {offset}")
        (reclen,) = _U16.unpack_from(block, offset)
        if reclen < _U16.size:
            raise TpiFormatError(f"invalid record length {reclen} at offset {offset}")
        record_end = offset + _U16.size + reclen
        if record_end > total:
            raise BufferTooSmallError(
                f"record of length {reclen} at offset {offset} overruns the stream"
            )
        (kind,) = _U16.unpack_from(block, offset + _U16.size)
        yield parse_type_record(index, kind, block[offset + 2 * _U16.size : record_end])

        offset = record_end
        index += 1
        if offset < total and offset % 4:
            offset = min(offset + 4 - offset % 4, total)
        loops += 1

    if loops >= max_loops and offset < total:
        raise TpiParseError(f"type record limit reached after {loops} records")
    if offset < total and not index_limit_reached(index):
        raise TpiParseError(
            f"type records ended early at offset {offset}/{total}, index 0x{index:X}"
        )


def parse_type_records(stream) -> List[CodeViewType]:
    """Check the header of a TPI stream and decode all of its type records."""
    header = parse_tpi_header(stream)
    return list(iter_type_records(stream, header))