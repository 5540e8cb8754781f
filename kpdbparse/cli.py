"""Command line: look up kernel symbols and structure offsets in a PDB file."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .codeview import TpiError
from .msf import PdbFormatError
from .pdb import (
    describe_types,
    find_public_symbols,
    get_struct_member_offset,
    section_offsets_to_rva,
)
from .msf import MsfFile

WANTED_SYMBOLS = (
    "PspLoadImageNotifyRoutine",
    "PspCreateProcessNotifyRoutine",
    "PspCreateThreadNotifyRoutine",
    "CallbackListHead",
    "EtwThreatIntProvRegHandle",
    "KiServiceTable",
    "KiTimerDispatch",
)

DEFAULT_STRUCT = "_EPROCESS"
DEFAULT_MEMBER = "UniqueProcessId"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kpdbparse",
        description="Find public symbols and structure member offsets in a PDB file.",
    )
    parser.add_argument("pdb", type=Path, help="PDB file to read")
    parser.add_argument(
        "-s", "--symbol", action="append", dest="symbols",
        help="public symbol to look up (repeatable)",
    )
    parser.add_argument("--struct", default=DEFAULT_STRUCT, help="structure name")
    parser.add_argument("--member", default=DEFAULT_MEMBER, help="member name")
    parser.add_argument(
        "--image", type=Path, help="PE image whose section table gives the RVAs"
    )
    parser.add_argument(
        "--base", type=lambda text: int(text, 0), default=0,
        help="load address added to each RVA",
    )
    parser.add_argument(
        "--types", action="store_true", help="also list the decoded type records"
    )
    return parser


def main(argv=None) -> int:
    """Run the command; return the process exit status."""
    args = _build_parser().parse_args(argv)
    symbol_names = args.symbols or list(WANTED_SYMBOLS)

    try:
        pdb_bytes = args.pdb.read_bytes()
    except OSError as exc:
        print(f"error: cannot read {args.pdb}: {exc}", file=sys.stderr)
        return 1

    try:
        msf = MsfFile(pdb_bytes)
        symbols = find_public_symbols(msf, symbol_names)
    except (PdbFormatError, TpiError) as exc:
        print(f"error: reading public symbols failed: {exc}", file=sys.stderr)
        return 1

    for symbol in symbols.values():
        print(
            f"S_PUB32: [{symbol.section:04X}:{symbol.offset:08X}], "
            f"Flags : {symbol.flags:08X}, {symbol.name}"
        )

    if args.types:
        try:
            print(describe_types(msf), end="")
        except (PdbFormatError, TpiError) as exc:
            print(f"error: reading type records failed: {exc}", file=sys.stderr)

    try:
        offset = get_struct_member_offset(msf, args.struct, args.member)
    except (PdbFormatError, TpiError):
        print(f"Failed to get offset for {args.struct}->{args.member}.")
    else:
        print(f"Offset of {args.struct}->{args.member}: {offset}")

    if args.image is not None:
        try:
            image = args.image.read_bytes()
        except OSError as exc:
            print(f"error: cannot read {args.image}: {exc}", file=sys.stderr)
            return 1
        try:
            locations = section_offsets_to_rva(image, symbols)
        except PdbFormatError as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 1
        for location in locations:
            if location.rva is not None:
                print(f"Symbol {location.name} = 0x{args.base + location.rva:x}")

    return 0