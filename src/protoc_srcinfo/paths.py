"""Descriptor kinds, parent navigation and structural source paths.

A structural path locates an element of a .proto file the same way
``SourceCodeInfo.Location.path`` does: alternating field numbers of the
``descriptor_pb2`` container messages and element indices, starting at the
file root. For example, the third field of the second top-level message is
``(4, 1, 2, 2)``.
"""

from __future__ import annotations

from enum import Enum, auto
from typing import Any, Dict, Iterable, List, Optional, Tuple

from google.protobuf import descriptor, descriptor_pb2


class Kind(Enum):
    FILE = auto()
    MESSAGE = auto()
    FIELD = auto()
    EXTENSION = auto()
    ONEOF = auto()
    ENUM = auto()
    ENUM_VALUE = auto()
    SERVICE = auto()
    METHOD = auto()


_FILE = descriptor_pb2.FileDescriptorProto
_MESSAGE = descriptor_pb2.DescriptorProto

# (child kind, parent kind) -> field number of the repeated field in the
# parent's descriptor proto that holds the child.
_TAGS: Dict[Tuple[Kind, Kind], int] = {
    (Kind.MESSAGE, Kind.FILE): _FILE.MESSAGE_TYPE_FIELD_NUMBER,
    (Kind.MESSAGE, Kind.MESSAGE): _MESSAGE.NESTED_TYPE_FIELD_NUMBER,
    (Kind.FIELD, Kind.MESSAGE): _MESSAGE.FIELD_FIELD_NUMBER,
    (Kind.EXTENSION, Kind.FILE): _FILE.EXTENSION_FIELD_NUMBER,
    (Kind.EXTENSION, Kind.MESSAGE): _MESSAGE.EXTENSION_FIELD_NUMBER,
    (Kind.ONEOF, Kind.MESSAGE): _MESSAGE.ONEOF_DECL_FIELD_NUMBER,
    (Kind.ENUM, Kind.FILE): _FILE.ENUM_TYPE_FIELD_NUMBER,
    (Kind.ENUM, Kind.MESSAGE): _MESSAGE.ENUM_TYPE_FIELD_NUMBER,
    (Kind.ENUM_VALUE, Kind.ENUM): descriptor_pb2.EnumDescriptorProto.VALUE_FIELD_NUMBER,
    (Kind.SERVICE, Kind.FILE): _FILE.SERVICE_FIELD_NUMBER,
    (Kind.METHOD, Kind.SERVICE): descriptor_pb2.ServiceDescriptorProto.METHOD_FIELD_NUMBER,
}

# Kinds whose descriptors expose their file directly.
_HAS_FILE = {Kind.MESSAGE, Kind.FIELD, Kind.EXTENSION, Kind.ENUM, Kind.SERVICE}


def unwrap(d: Any) -> Any:
    """Return the descriptor underneath a wrapper, or ``d`` itself."""
    unwrap_fn = getattr(type(d), "unwrap", None)
    if unwrap_fn is None:
        return d
    return unwrap_fn(d)


def descriptor_kind(d: Any) -> Optional[Kind]:
    """Classify a (possibly wrapped) descriptor. Returns None for anything else."""
    d = unwrap(d)
    if isinstance(d, descriptor.FileDescriptor):
        return Kind.FILE
    if isinstance(d, descriptor.Descriptor):
        return Kind.MESSAGE
    if isinstance(d, descriptor.FieldDescriptor):
        return Kind.EXTENSION if d.is_extension else Kind.FIELD
    if isinstance(d, descriptor.OneofDescriptor):
        return Kind.ONEOF
    if isinstance(d, descriptor.EnumDescriptor):
        return Kind.ENUM
    if isinstance(d, descriptor.EnumValueDescriptor):
        return Kind.ENUM_VALUE
    if isinstance(d, descriptor.ServiceDescriptor):
        return Kind.SERVICE
    if isinstance(d, descriptor.MethodDescriptor):
        return Kind.METHOD
    return None


def parent_of(d: Any) -> Any:
    """Return the enclosing element of ``d``; None for files.

    Navigation goes through ``d``'s own attributes, so a wrapped descriptor
    yields a wrapped parent.
    """
    kind = descriptor_kind(d)
    if kind in (Kind.MESSAGE, Kind.ENUM):
        return d.containing_type or d.file
    if kind is Kind.FIELD or kind is Kind.ONEOF:
        return d.containing_type
    if kind is Kind.EXTENSION:
        return d.extension_scope or d.file
    if kind is Kind.ENUM_VALUE:
        return d.type
    if kind is Kind.SERVICE:
        return d.file
    if kind is Kind.METHOD:
        return d.containing_service
    return None


def parent_file(d: Any) -> Any:
    """Return the file ``d`` is defined in. A file is its own parent file."""
    kind = descriptor_kind(d)
    if kind is Kind.FILE:
        return d
    if kind in _HAS_FILE:
        return d.file
    parent = parent_of(d)
    if parent is None:
        return None
    return parent_file(parent)


def _position(items: Iterable[Any], d: Any) -> Optional[int]:
    for i, item in enumerate(items):
        if item.full_name == d.full_name:
            return i
    return None


def _index_in_parent(d: Any, kind: Kind, parent: Any, parent_kind: Kind) -> Optional[int]:
    if kind is Kind.MESSAGE:
        if parent_kind is Kind.FILE:
            return _position(parent.message_types_by_name.values(), d)
        return _position(parent.nested_types, d)
    if kind is Kind.ENUM:
        if parent_kind is Kind.FILE:
            return _position(parent.enum_types_by_name.values(), d)
        return _position(parent.enum_types, d)
    if kind is Kind.EXTENSION:
        if parent_kind is Kind.FILE:
            return _position(parent.extensions_by_name.values(), d)
        return _position(parent.extensions, d)
    return d.index


def path_for(d: Any) -> Optional[Tuple[int, ...]]:
    """Compute the structural source path of a descriptor.

    Returns None if ``d`` is not a descriptor or its parent chain does not
    lead back to a file in the expected shape.
    """
    d = unwrap(d)
    # built leaves up, reversed at the end
    path: List[int] = []
    while True:
        kind = descriptor_kind(d)
        if kind is None:
            return None
        if kind is Kind.FILE:
            path.reverse()
            return tuple(path)
        parent = parent_of(d)
        parent_kind = descriptor_kind(parent)
        tag = _TAGS.get((kind, parent_kind))
        if tag is None:
            return None
        index = _index_in_parent(d, kind, parent, parent_kind)
        if index is None:
            return None
        path.append(index)
        path.append(tag)
        d = parent


def is_map_entry(message: Any) -> bool:
    """True for the synthetic entry message generated for a map field."""
    message = unwrap(message)
    if message is None:
        return False
    return bool(message.GetOptions().map_entry)


def is_group_like(field: Any) -> bool:
    """True for a field declared with proto2 group syntax.

    The field is delimited-encoded and its message is the same-named sibling
    message generated by the group declaration.
    """
    field = unwrap(field)
    if field.type != descriptor.FieldDescriptor.TYPE_GROUP:
        return False
    message = field.message_type
    if message is None or message.name.lower() != field.name:
        return False
    if message.file.name != field.file.name:
        return False
    scope = field.extension_scope if field.is_extension else field.containing_type
    if scope is None or message.containing_type is None:
        return scope is None and message.containing_type is None
    return scope.full_name == message.containing_type.full_name


def excluded_from_comments(d: Any) -> bool:
    """True for elements whose comments are never reported.

    A group's comment belongs to the group message, not to the field, and
    map entry messages and their key/value fields are synthesized by the
    compiler.
    """
    kind = descriptor_kind(d)
    if kind is Kind.MESSAGE:
        return is_map_entry(d)
    if kind is Kind.FIELD:
        return is_group_like(d) or is_map_entry(unwrap(d).containing_type)
    if kind is Kind.EXTENSION:
        return is_group_like(d)
    return False
