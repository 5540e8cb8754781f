import struct

import pytest

from kpdbparse.codeview import (
    ArgList,
    Array,
    BufferTooSmallError,
    CodeViewInteger,
    EnumType,
    FieldList,
    LeafType,
    Member,
    Modifier,
    OpaqueType,
    Property,
    Structure,
    TpiFormatError,
    TpiHeader,
    TpiVersion,
    Typedef,
)
from kpdbparse.records import (
    iter_type_records,
    parse_array,
    parse_class_structure_enum,
    parse_modifier,
    parse_tpi_header,
    parse_type_record,
    parse_type_records,
    parse_typedef,
)

HEADER_FORMAT = "<5I2H2IiIiIiI"


def structure_payload(properties, name=b"_EPROCESS", unique=b".?AU_EPROCESS@@", size=b"\x10\x00"):
    payload = struct.pack("<HHIII", 3, properties, 0x1001, 0, 0) + size
    if name is not None:
        payload += name + b"\x00"
    if unique is not None:
        payload += unique + b"\x00"
    return payload


def record(kind, payload):
    payload = payload + b"\x00" * (-len(payload) % 4)
    return struct.pack("<HH", len(payload) + 2, kind) + payload


def tpi_stream(records, begin=0x1000, end=None, header_size=None):
    body = b"".join(records)
    if end is None:
        end = begin + len(records)
    if header_size is None:
        header_size = TpiHeader.SIZE
    header = struct.pack(
        HEADER_FORMAT, TpiVersion.V80, header_size, begin, end, len(body),
        0, 0, 0, 0, 0, 0, 0, 0, 0, 0,
    )
    return header + b"\x00" * (header_size - TpiHeader.SIZE) + body


def test_structure_fields():
    rec = parse_class_structure_enum(
        structure_payload(Property.HAS_UNIQUE_NAME), LeafType.STRUCTURE
    )
    assert isinstance(rec, Structure)
    assert rec.kind == LeafType.STRUCTURE
    assert rec.count == 3
    assert rec.field_list_index == 0x1001
    assert rec.size == CodeViewInteger(num=0x10)
    assert rec.name == "_EPROCESS"
    assert rec.unique_name == ".?AU_EPROCESS@@"


def test_class_kind_kept():
    rec = parse_class_structure_enum(structure_payload(0, unique=None), LeafType.CLASS)
    assert rec.kind == LeafType.CLASS
    assert rec.unique_name is None


def test_unique_name_needs_flag():
    rec = parse_class_structure_enum(structure_payload(0), LeafType.STRUCTURE)
    assert rec.name == "_EPROCESS"
    assert rec.unique_name is None


def test_structure_wide_size():
    size = struct.pack("<HI", LeafType.ULONG, 0xA40)
    rec = parse_class_structure_enum(
        structure_payload(0, unique=None, size=size), LeafType.STRUCTURE
    )
    assert int(rec.size) == 0xA40


def test_structure_empty_name_is_none():
    rec = parse_class_structure_enum(
        structure_payload(Property.HAS_UNIQUE_NAME, name=b"", unique=b"u"),
        LeafType.STRUCTURE,
    )
    assert rec.name is None
    assert rec.unique_name == "u"


def test_structure_without_size_or_name():
    payload = struct.pack("<HHIII", 0, 0, 0, 0, 0)
    rec = parse_class_structure_enum(payload, LeafType.STRUCTURE)
    assert rec.size == CodeViewInteger()
    assert rec.name is None


def test_structure_truncated():
    with pytest.raises(BufferTooSmallError):
        parse_class_structure_enum(struct.pack("<HHI", 0, 0, 0), LeafType.STRUCTURE)


def test_structure_unterminated_name():
    payload = struct.pack("<HHIII", 0, 0, 0, 0, 0) + b"\x00\x00" + b"abc"
    with pytest.raises(BufferTooSmallError):
        parse_class_structure_enum(payload, LeafType.STRUCTURE)


def test_enum_fields():
    payload = struct.pack("<HHII", 2, Property.FORWARD_REF, 0x74, 0x1002) + b"_MODE\x00"
    rec = parse_class_structure_enum(payload, LeafType.ENUM)
    assert isinstance(rec, EnumType)
    assert rec.count == 2
    assert rec.properties == Property.FORWARD_REF
    assert rec.underlying_type == 0x74
    assert rec.field_list_index == 0x1002
    assert rec.name == "_MODE"


def test_modifier():
    rec = parse_modifier(struct.pack("<IH", 0x1005, 1))
    assert (rec.base_type, rec.modifier) == (0x1005, 1)


def test_modifier_truncated():
    with pytest.raises(BufferTooSmallError):
        parse_modifier(struct.pack("<I", 0x1005))


@pytest.mark.parametrize(
    "tail, expected",
    [(b"ULONG\x00", "ULONG"), (b"\x00", None), (b"", None)],
)
def test_typedef_names(tail, expected):
    rec = parse_typedef(struct.pack("<I", 0x22) + tail)
    assert rec.underlying_type == 0x22
    assert rec.name == expected


def test_array():
    payload = struct.pack("<IIHI", 0x20, 0x23, LeafType.ULONG, 0x10000) + b"\x00"
    rec = parse_array(payload)
    assert rec.element_type == 0x20
    assert rec.index_type == 0x23
    assert int(rec.length) == 0x10000


def test_array_unknown_numeric():
    with pytest.raises(TpiFormatError):
        parse_array(struct.pack("<IIH", 0x20, 0x23, 0x8FFF))


def test_type_record_index_and_length():
    payload = struct.pack("<IH", 0x1005, 2) + b"\x00\x00"
    rec = parse_type_record(0x1234, LeafType.MODIFIER, payload)
    assert isinstance(rec, Modifier)
    assert rec.index == 0x1234
    assert rec.record_length == len(payload) + 2


def test_type_record_opaque_and_arglist():
    opaque = parse_type_record(0x1000, LeafType.POINTER, b"\x01\x02\x03\x04")
    assert isinstance(opaque, OpaqueType)
    assert opaque.kind == LeafType.POINTER
    arglist = parse_type_record(0x1001, LeafType.ARGLIST, b"\x00\x00\x00\x00")
    assert isinstance(arglist, ArgList)
    assert arglist.args == []


def test_type_record_field_list():
    member = struct.pack("<HHIH", LeafType.MEMBER, 3, 0x74, 8) + b"x\x00"
    rec = parse_type_record(0x1003, LeafType.FIELDLIST, member)
    assert isinstance(rec, FieldList)
    assert rec.subtypes == [Member(attributes=3, type=0x74, offset=CodeViewInteger(num=8), name="x")]


def test_header_valid():
    stream = tpi_stream([record(LeafType.MODIFIER, struct.pack("<IH", 1, 1))])
    header = parse_tpi_header(stream)
    assert header.version == TpiVersion.V80
    assert header.type_index_begin == 0x1000
    assert header.header_size + header.type_record_bytes == len(stream)


def test_header_too_short():
    with pytest.raises(TpiFormatError):
        parse_tpi_header(b"\x00" * 10)


def test_header_bad_index_range():
    stream = tpi_stream([record(LeafType.MODIFIER, struct.pack("<IH", 1, 1))], end=0x1000)
    with pytest.raises(TpiFormatError):
        parse_tpi_header(stream)


def test_header_size_mismatch():
    stream = tpi_stream([record(LeafType.MODIFIER, struct.pack("<IH", 1, 1))])
    with pytest.raises(TpiFormatError):
        parse_tpi_header(stream + b"\x00\x00\x00\x00")


def test_header_size_below_minimum():
    good = tpi_stream([])
    fields = list(struct.unpack_from(HEADER_FORMAT, good))
    fields[1] = TpiHeader.SIZE - 4
    fields[4] = 4
    with pytest.raises(TpiFormatError):
        parse_tpi_header(struct.pack(HEADER_FORMAT, *fields))


def test_parse_type_records_in_order():
    records = [
        record(LeafType.STRUCTURE, structure_payload(0, unique=None)),
        record(LeafType.TYPEDEF, struct.pack("<I", 0x1000) + b"T\x00"),
        record(LeafType.ARRAY, struct.pack("<IIH", 0x20, 0x23, 4)),
    ]
    types = parse_type_records(tpi_stream(records))
    assert [t.index for t in types] == [0x1000, 0x1001, 0x1002]
    assert isinstance(types[0], Structure)
    assert isinstance(types[1], Typedef) and types[1].name == "T"
    assert isinstance(types[2], Array)


def test_parse_type_records_empty():
    assert parse_type_records(tpi_stream([], end=0x1001)) == []


def test_records_stop_at_index_end():
    records = [
        record(LeafType.MODIFIER, struct.pack("<IH", 1, 1)),
        record(LeafType.MODIFIER, struct.pack("<IH", 2, 1)),
    ]
    types = parse_type_records(tpi_stream(records, end=0x1001))
    assert len(types) == 1
    assert types[0].base_type == 1


def test_records_realigned_after_odd_length():
    odd = struct.pack("<HH", 5, LeafType.POINTER) + b"\x01\x02\x03" + b"\x00"
    second = record(LeafType.MODIFIER, struct.pack("<IH", 7, 2))
    types = parse_type_records(tpi_stream([odd, second]))
    assert len(types) == 2
    assert types[1].base_type == 7
    assert types[1].index == 0x1001


def test_record_length_below_minimum():
    bad = struct.pack("<HH", 1, 0)
    with pytest.raises(TpiFormatError):
        parse_type_records(tpi_stream([bad]))


def test_record_overruns_stream():
    bad = struct.pack("<HH", 40, LeafType.MODIFIER) + b"\x00" * 4
    with pytest.raises(BufferTooSmallError):
        parse_type_records(tpi_stream([bad]))


def test_iter_is_lazy():
    records = [
        record(LeafType.MODIFIER, struct.pack("<IH", 1, 1)),
        struct.pack("<HH", 1, 0),
    ]
    stream = tpi_stream(records)
    iterator = iter_type_records(stream, parse_tpi_header(stream))
    first = next(iterator)
    assert first.base_type == 1
    with pytest.raises(TpiFormatError):
        next(iterator)