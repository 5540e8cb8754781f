"""A table of decoded TPI type records with name and member lookups."""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Optional

from .codeview import (
    FIRST_CUSTOM_TYPE_INDEX,
    T_BOOL08,
    T_CHAR,
    T_CHAR8,
    T_CHAR16,
    T_CHAR32,
    T_HRESULT,
    T_INT4,
    T_LONG,
    T_QUAD,
    T_RCHAR,
    T_REAL32,
    T_REAL64,
    T_REAL80,
    T_SHORT,
    T_UCHAR,
    T_UINT4,
    T_ULONG,
    T_UQUAD,
    T_USHORT,
    T_VOID,
    T_WCHAR,
    CodeViewType,
    EnumType,
    FieldList,
    ItemNotFoundError,
    LeafType,
    Member,
    Modifier,
    Property,
    Structure,
    Typedef,
)
from .records import parse_type_records

_LEAF_NAMES = {
    LeafType.TYPEDEF: "LF_TYPEDEF",
    LeafType.MODIFIER: "LF_MODIFIER",
    LeafType.ARGLIST: "LF_ARGLIST",
    LeafType.FIELDLIST: "LF_FIELDLIST",
    LeafType.ARRAY: "LF_ARRAY",
    LeafType.CLASS: "LF_CLASS",
    LeafType.STRUCTURE: "LF_STRUCTURE",
    LeafType.ENUM: "LF_ENUM",
    LeafType.MEMBER: "LF_MEMBER",
    LeafType.STMEMBER: "LF_STMEMBER",
    LeafType.ENUMERATE: "LF_ENUMERATE",
    LeafType.ONEMETHOD: "LF_ONEMETHOD",
    LeafType.METHOD: "LF_METHOD",
    LeafType.BCLASS: "LF_BCLASS",
    LeafType.POINTER: "LF_POINTER",
    LeafType.PROCEDURE: "LF_PROCEDURE",
    LeafType.MFUNCTION: "LF_MFUNCTION",
    LeafType.BITFIELD: "LF_BITFIELD",
    LeafType.METHODLIST: "LF_METHODLIST",
    LeafType.INDEX: "LF_INDEX",
    LeafType.NESTTYPE: "LF_NESTTYPE",
    LeafType.FUNC_ID: "LF_FUNC_ID",
    LeafType.MFUNC_ID: "LF_MFUNC_ID",
    LeafType.STRING_ID: "LF_STRING_ID",
}

_PRIMITIVE_NAMES = {
    T_VOID: "void",
    T_CHAR: "char",
    T_UCHAR: "unsigned char",
    T_WCHAR: "wchar_t",
    T_RCHAR: "char",
    T_CHAR8: "char8_t",
    T_CHAR16: "char16_t",
    T_CHAR32: "char32_t",
    T_SHORT: "short",
    T_USHORT: "unsigned short",
    T_INT4: "int",
    T_UINT4: "unsigned int",
    T_LONG: "long",
    T_ULONG: "unsigned long",
    T_QUAD: "__int64",
    T_UQUAD: "unsigned __int64",
    T_BOOL08: "bool",
    T_REAL32: "float",
    T_REAL64: "double",
    T_REAL80: "long double",
    T_HRESULT: "HRESULT",
}

_ACCESS_NAMES = {1: "private", 2: "protected", 3: "public"}

_METHOD_PROPERTY_NAMES = {
    1: "virtual",
    2: "static",
    3: "friend",
    4: "virtual",
    5: "pure virtual",
    6: "pure virtual",
}


def leaf_type_name(kind: int) -> str:
    """Return the LF_* name of a leaf kind, or ``LF_UNKNOWN(0x....)``."""
    name = _LEAF_NAMES.get(kind)
    if name is None:
        return f"LF_UNKNOWN(0x{int(kind):04X})"
    return name


def primitive_name(index: int) -> Optional[str]:
    """Return the C name of a built-in type index, or None if it has none."""
    return _PRIMITIVE_NAMES.get(index)


def member_attributes(attributes: int) -> str:
    """Describe the access level held in a member's attribute word."""
    return _ACCESS_NAMES.get(attributes & 0x3, "")


def method_attributes(attributes: int) -> str:
    """Describe the access level and method property of a method's attribute word.

    When an access level is present the property word is replaced by a single
    trailing space.
    """
    access = _ACCESS_NAMES.get(attributes & 0x3, "")
    prop = _METHOD_PROPERTY_NAMES.get((attributes >> 2) & 0x7)
    if prop is None:
        return access
    return access + " " if access else prop


def _unknown_type_text(index: int) -> str:
    return f"<Unknown Type 0x{index:x}>"


class TypeTable:
    """Decoded TPI type records, looked up by type index or by name."""

    def __init__(self, types: Iterable[CodeViewType] = ()) -> None:
        self._types: List[CodeViewType] = []
        self._by_index: Dict[int, CodeViewType] = {}
        for cv_type in types:
            self.add(cv_type)

    @classmethod
    def from_tpi_stream(cls, stream) -> "TypeTable":
        """Build a table from the raw bytes of a TPI stream."""
        return cls(parse_type_records(stream))

    def __len__(self) -> int:
        return len(self._types)

    def __iter__(self) -> Iterator[CodeViewType]:
        return iter(self._types)

    def add(self, cv_type: CodeViewType) -> None:
        """Append a record; the first record with a given index wins lookups."""
        if cv_type is None:
            raise ValueError("cannot add a missing type record")
        self._types.append(cv_type)
        self._by_index.setdefault(cv_type.index, cv_type)

    def find(self, index: int) -> Optional[CodeViewType]:
        """Return the record with type index ``index``, or None."""
        return self._by_index.get(index)

    def type_name(self, index: int) -> str:
        """Return a readable name for a type index.

        Raises :class:`ItemNotFoundError` for a custom index that is not in
        the table; the error's text is the placeholder name to show instead.
        """
        if index == 0:
            return "<no type>"
        if index < FIRST_CUSTOM_TYPE_INDEX:
            name = primitive_name(index)
            return name if name is not None else f"<Primitive Type 0x{index:x}>"

        cv_type = self.find(index)
        if cv_type is None:
            raise ItemNotFoundError(_unknown_type_text(index))

        name: Optional[str] = None
        unique_name: Optional[str] = None
        if isinstance(cv_type, (Structure, EnumType)):
            name, unique_name = cv_type.name, cv_type.unique_name
        elif isinstance(cv_type, Typedef):
            name = cv_type.name

        if name:
            return name
        if unique_name:
            return f"<unique: {unique_name}>"
        if isinstance(cv_type, Modifier) and cv_type.base_type != 0:
            qualifiers = []
            if cv_type.modifier & 0x01:
                qualifiers.append("const")
            if cv_type.modifier & 0x02:
                qualifiers.append("volatile")
            try:
                referent = self.type_name(cv_type.base_type)
            except ItemNotFoundError as exc:
                referent = str(exc)
            prefix = " ".join(qualifiers)
            return f"{prefix} {referent}" if prefix else referent
        return f"<Unnamed {leaf_type_name(cv_type.kind)} (Index 0x{cv_type.index:x})>"

    def find_struct(self, name: str) -> Optional[CodeViewType]:
        """Return the first non-forward-reference record named ``name``.

        Classes, structures and enums match by their own name; a typedef
        matches by the name of the class, structure or enum it aliases, and
        the typedef itself is returned.
        """
        for cv_type in self._types:
            type_name: Optional[str] = None
            properties = 0
            if isinstance(cv_type, (Structure, EnumType)):
                type_name, properties = cv_type.name, cv_type.properties
            elif isinstance(cv_type, Typedef):
                underlying = self.find(cv_type.underlying_type)
                if isinstance(underlying, (Structure, EnumType)):
                    type_name, properties = underlying.name, underlying.properties
            if type_name is not None and type_name == name:
                if not properties & Property.FORWARD_REF:
                    return cv_type
        return None

    def member_offset_in_field_list(self, field_list_index: int, member_name: str) -> int:
        """Return the offset of data member ``member_name`` in a field list."""
        field_list = self.find(field_list_index)
        if not isinstance(field_list, FieldList):
            raise ItemNotFoundError(f"type 0x{field_list_index:x} is not a field list")
        for subtype in field_list.subtypes:
            if isinstance(subtype, Member) and subtype.name == member_name:
                return subtype.offset.num
        raise ItemNotFoundError(
            f"member {member_name!r} not in field list 0x{field_list_index:x}"
        )

    def member_offset(self, struct_name: str, member_name: str) -> int:
        """Return the offset of ``member_name`` within class or structure ``struct_name``."""
        struct_type = self.find_struct(struct_name)
        if struct_type is None:
            raise ItemNotFoundError(f"struct {struct_name!r} not found")
        if not isinstance(struct_type, Structure):
            raise ItemNotFoundError(
                f"type {struct_name!r} is not a class or struct "
                f"(kind: 0x{int(struct_type.kind):x})"
            )
        if struct_type.field_list_index == 0:
            raise ItemNotFoundError(f"struct {struct_name!r} has no field list")
        try:
            return self.member_offset_in_field_list(
                struct_type.field_list_index, member_name
            )
        except ItemNotFoundError:
            raise ItemNotFoundError(
                f"member {member_name!r} not found in struct {struct_name!r}"
            ) from None