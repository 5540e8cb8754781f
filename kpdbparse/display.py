"""Text rendering of decoded TPI type records."""

from __future__ import annotations

from typing import Iterable, List, Tuple

from .codeview import (
    ArgList,
    Array,
    CodeViewType,
    Enumerate,
    EnumType,
    FieldList,
    ItemNotFoundError,
    LeafType,
    Member,
    Method,
    Modifier,
    OneMethod,
    Property,
    StaticMember,
    Structure,
    Subtype,
    Typedef,
)
from .typetable import (
    TypeTable,
    leaf_type_name,
    member_attributes,
    method_attributes,
    primitive_name,
)

_INDENT = "    "

_STRUCT_OPTIONS = (
    (Property.HAS_CTOR_OR_DTOR, "has ctor/dtor"),
    (Property.HAS_UNIQUE_NAME, "has unique name"),
    (Property.PACKED, "packed"),
    (Property.IS_NESTED, "is nested"),
    (Property.FORWARD_REF, "forward ref"),
    (Property.SCOPED, "scoped"),
)

_FOCUSED_KINDS = frozenset(
    {
        LeafType.FIELDLIST,
        LeafType.ENUM,
        LeafType.CLASS,
        LeafType.STRUCTURE,
        LeafType.ARRAY,
    }
)


def _pad(indent: int) -> str:
    return _INDENT * indent


def _lookup_name(table: TypeTable, index: int) -> Tuple[str, bool]:
    """Return a type's display name and whether the type was found."""
    try:
        return table.type_name(index), True
    except ItemNotFoundError as exc:
        return str(exc), False


def _type_reference(table: TypeTable, index: int) -> str:
    if index == 0:
        return "<no type>"
    text, found = _lookup_name(table, index)
    if found:
        return f"0x{index:x} (`{text}`)"
    return f"0x{index:x} (<error fetching name>)"


def _array_part_name(table: TypeTable, index: int) -> str:
    name = primitive_name(index)
    if name is not None:
        return name
    text, found = _lookup_name(table, index)
    return f"`{text}`" if found else "<unknown type>"


def _record_name(cv_type: CodeViewType):
    if isinstance(cv_type, (Structure, EnumType, Typedef)):
        return cv_type.name
    return None


def format_type_record(
    table: TypeTable, cv_type: CodeViewType, show_details: bool = True, indent: int = 0
) -> str:
    """Render a record's summary line and, if asked, its details one level deeper."""
    size = cv_type.record_length + 2
    line = f"{_pad(indent)}0x{cv_type.index:04x} | {leaf_type_name(cv_type.kind)} [size = {size}]"
    name = _record_name(cv_type)
    if name:
        line += f" `{name}`"
    text = line + "\n"
    if show_details:
        text += format_type_details(table, cv_type, indent + 1)
    return text


def _structure_details(table: TypeTable, cv_type: Structure, indent: int) -> str:
    pad = _pad(indent)
    lines: List[str] = []
    if cv_type.unique_name:
        lines.append(f"{pad}unique name: `{cv_type.unique_name}`\n")

    field_list = (
        f"0x{cv_type.field_list_index:x}" if cv_type.field_list_index else "<no type>"
    )
    lines.append(
        f"{pad}vtable: {_type_reference(table, cv_type.vshape_index)}"
        f", base list: {_type_reference(table, cv_type.derived_from_index)}"
        f", field list: {field_list}\n"
    )

    options = " | ".join(
        label for flag, label in _STRUCT_OPTIONS if cv_type.properties & flag
    )
    lines.append(f"{pad}options: {options or '<none>'}, sizeof {cv_type.size}\n")
    return "".join(lines)


def _enum_details(table: TypeTable, cv_type: EnumType, indent: int) -> str:
    pad = _pad(indent)
    text = pad
    if cv_type.unique_name:
        text += f"unique name: `{cv_type.unique_name}`\n{pad}"

    underlying = primitive_name(cv_type.underlying_type)
    if underlying is None:
        underlying, _ = _lookup_name(table, cv_type.underlying_type)
    text += (
        f"field list: 0x{cv_type.field_list_index:x}, "
        f"underlying type: 0x{cv_type.underlying_type:04x} ({underlying})\n"
    )

    # Every flag after the first listed one is preceded by a separator, even
    # when it is the first flag present.
    options = ""
    if cv_type.properties & Property.HAS_UNIQUE_NAME:
        options += "has unique name"
    if cv_type.properties & Property.IS_NESTED:
        options += " | is nested"
    if cv_type.properties & Property.FORWARD_REF:
        options += " | forward ref"
    text += f"{pad}options: {options}\n"
    return text


def _modifier_details(table: TypeTable, cv_type: Modifier, indent: int) -> str:
    name, _ = _lookup_name(table, cv_type.base_type)
    return (
        f"{_pad(indent)}Modified Type = 0x {cv_type.base_type:04x}({name}), "
        f"Modifiers = 0x {cv_type.modifier:X}\n"
    )


def _typedef_details(table: TypeTable, cv_type: Typedef, indent: int) -> str:
    name, _ = _lookup_name(table, cv_type.underlying_type)
    return f"{_pad(indent)}Aliased Type = 0x{cv_type.underlying_type:04x} ({name})\n"


def _arglist_details(table: TypeTable, cv_type: ArgList, indent: int) -> str:
    pad = _pad(indent)
    lines = [f"{pad}Argument Count = {len(cv_type.args)}\n"]
    for number, arg in enumerate(cv_type.args):
        name, _ = _lookup_name(table, arg)
        lines.append(f"{pad}Argument {number}: 0x{arg:04x} (`{name}`)\n")
    return "".join(lines)


def _array_details(table: TypeTable, cv_type: Array, indent: int) -> str:
    return (
        f"{_pad(indent)}size: {cv_type.length}"
        f", index type: 0x{cv_type.index_type:04X} "
        f"({_array_part_name(table, cv_type.index_type)})"
        f", element type: 0x{cv_type.element_type:04X} "
        f"({_array_part_name(table, cv_type.element_type)})\n"
    )


def format_type_details(table: TypeTable, cv_type: CodeViewType, indent: int = 1) -> str:
    """Render the detail lines of a record; kinds without details give ''."""
    if isinstance(cv_type, Structure):
        return _structure_details(table, cv_type, indent)
    if isinstance(cv_type, EnumType):
        return _enum_details(table, cv_type, indent)
    if isinstance(cv_type, Modifier):
        return _modifier_details(table, cv_type, indent)
    if isinstance(cv_type, FieldList):
        return format_field_list(table, cv_type, indent)
    if isinstance(cv_type, Typedef):
        return _typedef_details(table, cv_type, indent)
    if isinstance(cv_type, ArgList):
        return _arglist_details(table, cv_type, indent)
    if isinstance(cv_type, Array):
        return _array_details(table, cv_type, indent)
    return ""


def _member_line(table: TypeTable, subtype, indent: int) -> str:
    type_index = subtype.type
    friendly = primitive_name(type_index)
    if friendly is not None:
        type_display = f"0x{type_index:04x} ({friendly})"
    else:
        name, found = _lookup_name(table, type_index)
        type_display = (
            f"0x{type_index:04x} (`{name}`)" if found else f"0x{type_index:04x}"
        )
    label = "LF_MEMBER" if isinstance(subtype, Member) else "LF_STMEMBER"
    member_name = subtype.name if subtype.name is not None else "<null>"
    text = f"{_pad(indent)}- {label} [name = `{member_name}`, Type = {type_display}"
    if isinstance(subtype, Member):
        text += f", offset = {subtype.offset}"
    return text + f", attrs = {member_attributes(subtype.attributes)}]\n"


def format_subtype(
    table: TypeTable, subtype: Subtype, field_list_index: int = 0, indent: int = 0
) -> str:
    """Render one field-list entry."""
    pad = _pad(indent)
    if isinstance(subtype, (Member, StaticMember)):
        return _member_line(table, subtype, indent)
    if isinstance(subtype, Enumerate):
        name = subtype.name if subtype.name is not None else "<null>"
        return f"{pad}- LF_ENUMERATE [name = `{name}` = {subtype.value}]\n"
    if isinstance(subtype, OneMethod):
        type_name, _ = _lookup_name(table, subtype.method_type)
        name = subtype.name if subtype.name is not None else "<null>"
        return (
            f"{pad}- LF_ONEMETHOD [name = `{name}`]\n"
            f"{pad}      type = 0x{subtype.method_type:04x} (`{type_name}`), "
            f"vftable offset = {subtype.vtable_base_offset}, "
            f"attrs = {method_attributes(subtype.attributes)}\n"
        )
    if isinstance(subtype, Method):
        list_name, _ = _lookup_name(table, subtype.method_list)
        name = subtype.name if subtype.name is not None else "<null>"
        return (
            f"{pad}- LF_METHOD [name = `{name}`, # overloads = {subtype.count}, "
            f"overload list = 0x{subtype.method_list:x} (`{list_name}`)]\n"
        )
    kind = int(subtype.kind)
    return (
        f"{pad}- {leaf_type_name(kind)} (Unhandled sub-field 0x{kind:04X} in FL "
        f"0x{field_list_index:X}. Printing for this subtype not implemented.)\n"
    )


def format_field_list(table: TypeTable, field_list: CodeViewType, indent: int = 0) -> str:
    """Render every entry of a field list, one or two lines each."""
    if not isinstance(field_list, FieldList):
        return (
            f"{_pad(indent)}(Invalid call to print_cv_field_list_formatted for type "
            f"0x{field_list.index:X}, leaf 0x{int(field_list.kind):X})\n"
        )
    return "".join(
        format_subtype(table, subtype, field_list.index, indent)
        for subtype in field_list.subtypes
    )


def _focused(types: Iterable[CodeViewType]):
    return (cv_type for cv_type in types if cv_type.kind in _FOCUSED_KINDS)


def format_focused_types(table: TypeTable) -> str:
    """Render field lists, enums, classes, structures and arrays with details."""
    return "".join(
        format_type_record(table, cv_type, True, 1) for cv_type in _focused(table)
    )