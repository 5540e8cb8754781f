# kpdbparse

`kpdbparse` reads Microsoft program database (PDB) files, held in the MSF
7.00 container format, and answers the questions a tool usually asks of a
kernel or module PDB:

- where a public symbol such as `PspCreateProcessNotifyRoutine` lives
  (section number and offset), and what its RVA is in a PE image;
- what CodeView type records the TPI stream holds (classes, structures,
  enums, field lists, arrays, typedefs, modifiers);
- at what offset a named data member sits inside a named class or
  structure, for example `_EPROCESS.UniqueProcessId`.

The package is pure Python and uses only the standard library.

## Installation

```
pip install kpdbparse
```

## Command line

```
kpdbparse path/to/ntkrnlmp.pdb
```

The command reads the PDB and prints, for each public symbol it finds,

```
S_PUB32: [SSSS:OOOOOOOO], Flags : FFFFFFFF, Name
```

followed by the offset of a structure member, by default
`_EPROCESS->UniqueProcessId` (or `Failed to get offset for ...` when it
cannot be found).

Options:

- `-s NAME`, `--symbol NAME` — public symbol to look up; may be repeated.
  Without it a fixed list is used: `PspLoadImageNotifyRoutine`,
  `PspCreateProcessNotifyRoutine`, `PspCreateThreadNotifyRoutine`,
  `CallbackListHead`, `EtwThreatIntProvRegHandle`, `KiServiceTable`,
  `KiTimerDispatch`.
- `--struct NAME`, `--member NAME` — the structure and member whose offset
  is reported.
- `--image PATH` — a PE image whose section table turns each symbol's
  section and offset into an RVA; each symbol in a section is then printed
  as `Symbol Name = 0x...`.
- `--base ADDRESS` — a load address (decimal, or with a `0x` prefix) added
  to every RVA printed for `--image`.
- `--types` — also print the TPI header and a listing of the field lists,
  enums, classes, structures and arrays.

The exit status is 1 when the PDB or the image cannot be read or the
public symbols cannot be decoded, and 0 otherwise.

## Library use

The functions in `kpdbparse.pdb` take the raw bytes of a PDB file or an
already opened `kpdbparse.msf.MsfFile`.

```python
from pathlib import Path

from kpdbparse.pdb import (
    describe_types,
    find_public_symbols,
    get_struct_member_offset,
    load_type_table,
    section_offsets_to_rva,
)

data = Path("ntkrnlmp.pdb").read_bytes()

# Public symbols, keyed by name: section number and offset within the section.
symbols = find_public_symbols(data, ["PspLoadImageNotifyRoutine", "KiServiceTable"])
for symbol in symbols.values():
    print(symbol.name, symbol.section, hex(symbol.offset))

# RVAs from the section table of the matching PE image (its headers are enough).
image = Path("ntoskrnl.exe").read_bytes()
for location in section_offsets_to_rva(image, symbols):
    print(location.name, location.rva)

# Offset of a structure member, looked up through the TPI stream.
print(get_struct_member_offset(data, "_EPROCESS", "UniqueProcessId"))

# The whole type table, for repeated queries.
table = load_type_table(data)
print(len(table))
print(table.member_offset("_KTHREAD", "ApcState"))

# A readable listing of the TPI header and the main type records.
print(describe_types(data))
```

### Lower layers

- `kpdbparse.msf` — the MSF container: `MsfFile(data)` reads every stream,
  `len()` gives their number and `stream(index)` one stream's bytes;
  `is_magic_valid` and `read_streams` work on raw bytes.
- `kpdbparse.records` — the TPI header (`parse_tpi_header`) and type
  records (`parse_type_record`, `iter_type_records`, `parse_type_records`).
- `kpdbparse.leaves` — numeric leaves, strings and field-list entries
  (`parse_numeric`, `read_cstring`, `parse_field_list` and the per-entry
  parsers).
- `kpdbparse.typetable` — `TypeTable`, with lookup by type index (`find`),
  readable names (`type_name`), class/structure/enum lookup by name
  (`find_struct`) and member offsets (`member_offset`,
  `member_offset_in_field_list`); also `leaf_type_name`, `primitive_name`,
  `member_attributes` and `method_attributes`.
- `kpdbparse.display` — text rendering of records (`format_type_record`,
  `format_type_details`, `format_field_list`, `format_subtype`,
  `format_focused_types`).
- `kpdbparse.codeview` — data classes for CodeView records and field-list
  entries, the `LeafType`, `TpiVersion` and `Property` enumerations,
  `TpiHeader`, and the exceptions for malformed type data.

Malformed input raises exceptions rather than giving partial results:
`kpdbparse.msf.PdbFormatError` for a bad container, missing stream or bad
PE image, and `kpdbparse.codeview.TpiError` with its subclasses
(`TpiFormatError`, `TpiParseError`, `BufferTooSmallError`,
`ItemNotFoundError`) for a bad type stream or a type, structure or member
that is not there.

## What it does not do

- Only class, structure, enum, field-list, array, typedef and modifier
  records are decoded. Pointer, procedure, union, bitfield and other
  records are kept as `OpaqueType` with their index and kind only, and
  argument lists are recorded without their argument types.
- Field-list entries of kinds other than members, static members,
  enumerators, methods, nested types and index continuations end the
  reading of that field list; base classes are not decoded.
- Only the public symbol stream is searched for symbols; module symbols and
  other PDB streams are not read.
- It does not find a running system's kernel or its load address; the PE
  image and the base address must be supplied.

## Running the tests

```
pip install -e ".[test]"
pytest
```