"""Public-symbol and type lookups on a whole PDB file."""

from __future__ import annotations

import struct
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Union

from .display import format_focused_types
from .leaves import read_cstring
from .msf import MsfFile, PdbFormatError
from .records import iter_type_records, parse_tpi_header
from .typetable import TypeTable

TPI_STREAM_INDEX = 2
DBI_STREAM_INDEX = 3

# Public symbol record kind in the symbol record stream.
S_PUB32 = 0x110E

_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_RECORD_HEADER = struct.Struct("<HH")
_PUBSYM_FIELDS = struct.Struct("<IIH")
_PUBSYM_NAME_OFFSET = _RECORD_HEADER.size + _PUBSYM_FIELDS.size

# Offset of the symbol record stream number in the DBI stream header.
_DBI_SYM_RECORD_STREAM_OFFSET = 20

_PE_SIGNATURE = b"PE\x00\x00"
_E_LFANEW_OFFSET = 0x3C
_FILE_HEADER = struct.Struct("<HHIIIHH")
_SECTION_HEADER_SIZE = 40
_SECTION_VA_OFFSET = 12

PdbData = Union[bytes, bytearray, memoryview, MsfFile]


@dataclass(frozen=True)
class PublicSymbol:
    """An S_PUB32 record: a public name at a section-relative address."""

    name: str
    section: int
    offset: int
    flags: int = 0


@dataclass(frozen=True)
class SymbolLocation:
    """A public symbol together with its relative virtual address.

    ``rva`` is None for symbols that belong to no section.
    """

    name: str
    section: int
    section_offset: int
    rva: Optional[int]


def _open(data: PdbData) -> MsfFile:
    if isinstance(data, MsfFile):
        return data
    return MsfFile(data)


def _iter_public_symbols(stream: bytes) -> Iterator[PublicSymbol]:
    offset = 0
    total = len(stream)
    while offset + _RECORD_HEADER.size <= total:
        reclen, rectyp = _RECORD_HEADER.unpack_from(stream, offset)
        record_end = min(offset + _U16.size + reclen, total)
        if rectyp == S_PUB32 and offset + _PUBSYM_NAME_OFFSET <= total:
            flags, sec_offset, section = _PUBSYM_FIELDS.unpack_from(
                stream, offset + _RECORD_HEADER.size
            )
            name_start = offset + _PUBSYM_NAME_OFFSET
            name, _ = read_cstring(stream, name_start, record_end - name_start)
            yield PublicSymbol(name=name, section=section, offset=sec_offset, flags=flags)
        offset += reclen + _U16.size


def _symbol_record_stream(msf: MsfFile) -> bytes:
    if len(msf) <= DBI_STREAM_INDEX:
        raise PdbFormatError("DBI stream not found")
    dbi = msf.stream(DBI_STREAM_INDEX)
    if len(dbi) < _DBI_SYM_RECORD_STREAM_OFFSET + _U16.size:
        raise PdbFormatError("DBI stream is too short for its header")
    (index,) = _U16.unpack_from(dbi, _DBI_SYM_RECORD_STREAM_OFFSET)
    if index >= len(msf):
        raise PdbFormatError(f"symbol record stream {index} does not exist")
    return msf.stream(index)


def find_public_symbols(data: PdbData, names: Iterable[str]) -> Dict[str, PublicSymbol]:
    """Look up public symbols by name.

    Returns the symbols found, keyed by name, in the order the names were
    given. When a name occurs more than once the last record wins.
    """
    wanted = list(dict.fromkeys(names))
    wanted_set = set(wanted)
    found: Dict[str, PublicSymbol] = {}
    for symbol in _iter_public_symbols(_symbol_record_stream(_open(data))):
        if symbol.name in wanted_set:
            found[symbol.name] = symbol
    return {name: found[name] for name in wanted if name in found}


def _section_addresses(image) -> List[int]:
    image = bytes(image)
    if len(image) < _E_LFANEW_OFFSET + _U32.size:
        raise PdbFormatError("image is too short for a DOS header")
    (e_lfanew,) = _U32.unpack_from(image, _E_LFANEW_OFFSET)
    if image[e_lfanew : e_lfanew + len(_PE_SIGNATURE)] != _PE_SIGNATURE:
        raise PdbFormatError("image has no PE signature")
    file_header_start = e_lfanew + len(_PE_SIGNATURE)
    if file_header_start + _FILE_HEADER.size > len(image):
        raise PdbFormatError("image is too short for a file header")
    fields = _FILE_HEADER.unpack_from(image, file_header_start)
    section_count, optional_header_size = fields[1], fields[5]
    table_start = file_header_start + _FILE_HEADER.size + optional_header_size
    if table_start + section_count * _SECTION_HEADER_SIZE > len(image):
        raise PdbFormatError("section table lies beyond the end of the image")
    return [
        _U32.unpack_from(image, start + _SECTION_VA_OFFSET)[0]
        for start in range(
            table_start, table_start + section_count * _SECTION_HEADER_SIZE,
            _SECTION_HEADER_SIZE,
        )
    ]


def section_offsets_to_rva(image, symbols) -> List[SymbolLocation]:
    """Turn section:offset addresses into RVAs using a PE image's section table."""
    if isinstance(symbols, Mapping):
        symbols = symbols.values()
    addresses = _section_addresses(image)
    locations = []
    for symbol in symbols:
        rva = None
        if symbol.section:
            if symbol.section > len(addresses):
                raise PdbFormatError(
                    f"symbol {symbol.name!r} names section {symbol.section}, "
                    f"image has {len(addresses)}"
                )
            rva = symbol.offset + addresses[symbol.section - 1]
        locations.append(
            SymbolLocation(
                name=symbol.name,
                section=symbol.section,
                section_offset=symbol.offset,
                rva=rva,
            )
        )
    return locations


def _tpi_stream(msf: MsfFile) -> bytes:
    if len(msf) <= TPI_STREAM_INDEX:
        raise PdbFormatError("TPI stream not found")
    stream = msf.stream(TPI_STREAM_INDEX)
    if not stream:
        raise PdbFormatError("TPI stream is empty")
    return stream


def load_type_table(data: PdbData) -> TypeTable:
    """Decode the TPI stream of a PDB file into a type table."""
    return TypeTable.from_tpi_stream(_tpi_stream(_open(data)))


def get_struct_member_offset(data: PdbData, struct_name: str, member_name: str) -> int:
    """Return the offset of a data member of a class or structure in a PDB file."""
    return load_type_table(data).member_offset(struct_name, member_name)


def describe_types(data: PdbData) -> str:
    """Render the TPI header and the field lists, enums, classes, structures and arrays."""
    stream = _tpi_stream(_open(data))
    header = parse_tpi_header(stream)
    table = TypeTable(iter_type_records(stream, header))
    summary = (
        f"TPI Version: 0x{header.version:X}\n"
        f"TPI Header Size: {header.header_size}\n"
        f"TPI Type Index Begin: {header.type_index_begin}\n"
        f"TPI Type Index End: {header.type_index_end}\n"
        f"TPI Types Data Size: {header.type_record_bytes}\n"
    )
    return summary + format_focused_types(table)