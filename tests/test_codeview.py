import struct

import pytest

from kpdbparse.codeview import (
    BufferTooSmallError,
    CodeViewInteger,
    EnumType,
    FieldList,
    ItemNotFoundError,
    LeafType,
    Member,
    Property,
    Structure,
    TpiError,
    TpiFormatError,
    TpiHeader,
    TpiVersion,
)


@pytest.mark.parametrize("value", [0, 1, -1, 0x7FFF, -0x8000, 2**63 - 1, -(2**63)])
def test_integer_from_signed_round_trip(value):
    cv = CodeViewInteger.from_signed(value)
    assert int(cv) == value
    assert cv.num >= 0
    assert cv.neg == (value < 0)


def test_integer_str_has_sign():
    assert str(CodeViewInteger.from_signed(-5)) == "-5"
    assert str(CodeViewInteger.from_signed(5)) == "5"


def test_integer_default_is_zero():
    cv = CodeViewInteger()
    assert int(cv) == 0
    assert str(cv) == "0"


def _header_bytes(*values):
    return struct.pack("<5I2H2IiIiIiI", *values)


def test_header_parse_round_trip():
    values = (20040203, 56, 0x1000, 0x1234, 400, 3, 0xFFFF, 4, 0x3FFFF, 0, 16, 16, 8, 24, 0)
    header = TpiHeader.parse(_header_bytes(*values) + b"\x00" * 10)
    assert header.version == TpiVersion.V80
    assert header.header_size == 56
    assert header.type_index_begin == 0x1000
    assert header.type_index_end == 0x1234
    assert header.type_record_bytes == 400
    assert header.hash_stream_index == 3
    assert header.hash_aux_stream_index == 0xFFFF
    assert header.hash_adj_buffer_offset == 24


def test_header_size_matches_packed_layout():
    data = _header_bytes(*range(15))
    assert TpiHeader.SIZE == len(data)
    assert TpiHeader.parse(data).hash_adj_buffer_bytes == 14


def test_header_signed_offsets():
    header = TpiHeader.parse(_header_bytes(0, 56, 0x1000, 0x1001, 0, 0, 0, 0, 0, -1, 0, -2, 0, -3, 0))
    assert header.hash_value_buffer_offset == -1
    assert header.index_offset_buffer_offset == -2
    assert header.hash_adj_buffer_offset == -3


def test_header_too_short():
    with pytest.raises(TpiFormatError):
        TpiHeader.parse(b"\x00" * (TpiHeader.SIZE - 1))


def test_header_error_is_tpi_error():
    with pytest.raises(TpiError):
        TpiHeader.parse(b"")


def test_version_lookup():
    assert TpiVersion(20040203) is TpiVersion.V80
    assert TpiVersion(19990903) is TpiVersion.V70


def test_leaf_type_from_wire_value():
    assert LeafType(0x1505) is LeafType.STRUCTURE
    assert LeafType(0x150D) is LeafType.MEMBER
    with pytest.raises(ValueError):
        LeafType(0x1234)


def test_property_flags_combine():
    props = Property(0x0080 | 0x0200)
    assert Property.FORWARD_REF in props
    assert Property.HAS_UNIQUE_NAME in props
    assert Property.PACKED not in props


def test_fixed_kinds_on_records():
    assert FieldList(index=0x1000).kind == LeafType.FIELDLIST
    assert EnumType(index=0x1001).kind == LeafType.ENUM
    assert Member(name="x").kind == LeafType.MEMBER


def test_structure_kind_can_be_class():
    s = Structure(index=0x1002, kind=LeafType.CLASS, name="_A")
    assert s.kind == LeafType.CLASS
    assert s.unique_name is None
    assert int(s.size) == 0


def test_field_lists_do_not_share_subtypes():
    a = FieldList(index=1)
    b = FieldList(index=2)
    a.subtypes.append(Member(name="m"))
    assert b.subtypes == []


def test_errors_keep_message_and_hierarchy():
    not_found = ItemNotFoundError("missing")
    too_small = BufferTooSmallError("short")
    assert isinstance(not_found, LookupError)
    assert not_found.args == ("missing",)
    assert isinstance(too_small, TpiError)
    assert str(too_small) == "short"