"""Wrappers around ``google.protobuf.descriptor`` objects.

Each wrapper forwards every attribute to the descriptor it wraps, except
navigation attributes (parents, files, child collections), which return
wrapped descriptors. A wrapped file also exposes the ``LocationIndex`` built
from the source info registered for it.

Wrappers are never constructed directly; the wrap functions of
``protoc_srcinfo.registry.SourceInfoRegistry`` decide when wrapping applies
and cache wrappers so repeated requests return the same instance.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from functools import cached_property
from typing import TYPE_CHECKING, Any, Callable, Iterator, Tuple

from google.protobuf import descriptor_pb2

from protoc_srcinfo.locations import LocationIndex

if TYPE_CHECKING:
    from protoc_srcinfo.registry import SourceInfoRegistry


class _WrappedSequence(Sequence):
    """Read-only list view that wraps elements as they are accessed."""

    def __init__(self, items: Any, wrap: Callable[[Any], Any]) -> None:
        self._items = items
        self._wrap = wrap

    def __getitem__(self, i):
        if isinstance(i, slice):
            return [self._wrap(self._items[j]) for j in range(*i.indices(len(self)))]
        return self._wrap(self._items[i])

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other):
        if isinstance(other, _WrappedSequence):
            return self._items == other._items and self._wrap == other._wrap
        return NotImplemented

    def __repr__(self) -> str:
        return f"[{', '.join(repr(item) for item in self)}]"


class _WrappedMapping(Mapping):
    """Read-only dict view that wraps values as they are accessed."""

    def __init__(self, items: Any, wrap: Callable[[Any], Any]) -> None:
        self._items = items
        self._wrap = wrap

    def __getitem__(self, key):
        return self._wrap(self._items[key])

    def __iter__(self) -> Iterator:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key) -> bool:
        return key in self._items

    def __eq__(self, other):
        if isinstance(other, _WrappedMapping):
            return self._items == other._items and self._wrap == other._wrap
        return super().__eq__(other)

    def __repr__(self) -> str:
        return "{" + ", ".join(f"{k!r}: {v!r}" for k, v in self.items()) + "}"


class _Wrapper:
    def __init__(self, registry: SourceInfoRegistry, wrapped: Any) -> None:
        self._registry = registry
        self._wrapped = wrapped

    def unwrap(self) -> Any:
        return self._wrapped

    def __getattr__(self, name: str) -> Any:
        if name in ("_registry", "_wrapped"):
            raise AttributeError(name)
        return getattr(self._wrapped, name)

    def __repr__(self) -> str:
        name = getattr(self._wrapped, "full_name", None) or getattr(self._wrapped, "name", "?")
        return f"<{type(self).__name__} {name}>"


class DescriptorWrapper(_Wrapper):
    """Common base of all descriptor wrappers."""


@dataclass(frozen=True)
class FileImport:
    """One import statement of a file."""

    file: Any
    is_public: bool = False
    is_weak: bool = False


class FileDescriptorWrapper(DescriptorWrapper):
    def __init__(self, registry: SourceInfoRegistry, wrapped: Any, locations: LocationIndex) -> None:
        super().__init__(registry, wrapped)
        self._locations = locations

    @property
    def source_locations(self) -> LocationIndex:
        return self._locations

    @property
    def dependencies(self) -> Sequence:
        return _WrappedSequence(self._wrapped.dependencies, self._registry.wrap_file)

    @property
    def public_dependencies(self) -> Sequence:
        return _WrappedSequence(self._wrapped.public_dependencies, self._registry.wrap_file)

    @cached_property
    def imports(self) -> Tuple[FileImport, ...]:
        file_proto = descriptor_pb2.FileDescriptorProto()
        self._wrapped.CopyToProto(file_proto)
        public = set(file_proto.public_dependency)
        weak = set(file_proto.weak_dependency)
        return tuple(
            FileImport(self._registry.wrap_file(dep), i in public, i in weak)
            for i, dep in enumerate(self._wrapped.dependencies)
        )

    @property
    def message_types_by_name(self) -> Mapping:
        return _WrappedMapping(self._wrapped.message_types_by_name, self._registry.wrap_message)

    @property
    def enum_types_by_name(self) -> Mapping:
        return _WrappedMapping(self._wrapped.enum_types_by_name, self._registry.wrap_enum)

    @property
    def extensions_by_name(self) -> Mapping:
        return _WrappedMapping(self._wrapped.extensions_by_name, self._registry.wrap_extension)

    @property
    def services_by_name(self) -> Mapping:
        return _WrappedMapping(self._wrapped.services_by_name, self._registry.wrap_service)


class MessageDescriptorWrapper(DescriptorWrapper):
    @property
    def file(self):
        return self._registry.wrap_file(self._wrapped.file)

    @property
    def containing_type(self):
        return self._registry.wrap_message(self._wrapped.containing_type)

    @property
    def fields(self) -> Sequence:
        return _WrappedSequence(self._wrapped.fields, self._registry.wrap_field)

    @property
    def fields_by_name(self) -> Mapping:
        return _WrappedMapping(self._wrapped.fields_by_name, self._registry.wrap_field)

    @property
    def fields_by_number(self) -> Mapping:
        return _WrappedMapping(self._wrapped.fields_by_number, self._registry.wrap_field)

    @property
    def fields_by_camelcase_name(self) -> Mapping:
        return _WrappedMapping(self._wrapped.fields_by_camelcase_name, self._registry.wrap_field)

    @property
    def nested_types(self) -> Sequence:
        return _WrappedSequence(self._wrapped.nested_types, self._registry.wrap_message)

    @property
    def nested_types_by_name(self) -> Mapping:
        return _WrappedMapping(self._wrapped.nested_types_by_name, self._registry.wrap_message)

    @property
    def enum_types(self) -> Sequence:
        return _WrappedSequence(self._wrapped.enum_types, self._registry.wrap_enum)

    @property
    def enum_types_by_name(self) -> Mapping:
        return _WrappedMapping(self._wrapped.enum_types_by_name, self._registry.wrap_enum)

    @property
    def enum_values_by_name(self) -> Mapping:
        return _WrappedMapping(self._wrapped.enum_values_by_name, self._registry.wrap_enum_value)

    @property
    def extensions(self) -> Sequence:
        return _WrappedSequence(self._wrapped.extensions, self._registry.wrap_extension)

    @property
    def extensions_by_name(self) -> Mapping:
        return _WrappedMapping(self._wrapped.extensions_by_name, self._registry.wrap_extension)

    @property
    def oneofs(self) -> Sequence:
        return _WrappedSequence(self._wrapped.oneofs, self._registry.wrap_oneof)

    @property
    def oneofs_by_name(self) -> Mapping:
        return _WrappedMapping(self._wrapped.oneofs_by_name, self._registry.wrap_oneof)


class FieldDescriptorWrapper(DescriptorWrapper):
    """Wraps both regular fields and extensions."""

    @property
    def file(self):
        return self._registry.wrap_file(self._wrapped.file)

    @property
    def containing_type(self):
        return self._registry.wrap_message(self._wrapped.containing_type)

    @property
    def extension_scope(self):
        return self._registry.wrap_message(self._wrapped.extension_scope)

    @property
    def containing_oneof(self):
        return self._registry.wrap_oneof(self._wrapped.containing_oneof)

    @property
    def message_type(self):
        return self._registry.wrap_message(self._wrapped.message_type)

    @property
    def enum_type(self):
        return self._registry.wrap_enum(self._wrapped.enum_type)


class OneofDescriptorWrapper(DescriptorWrapper):
    @property
    def containing_type(self):
        return self._registry.wrap_message(self._wrapped.containing_type)

    @property
    def fields(self) -> Sequence:
        return _WrappedSequence(self._wrapped.fields, self._registry.wrap_field)


class EnumDescriptorWrapper(DescriptorWrapper):
    @property
    def file(self):
        return self._registry.wrap_file(self._wrapped.file)

    @property
    def containing_type(self):
        return self._registry.wrap_message(self._wrapped.containing_type)

    @property
    def values(self) -> Sequence:
        return _WrappedSequence(self._wrapped.values, self._registry.wrap_enum_value)

    @property
    def values_by_name(self) -> Mapping:
        return _WrappedMapping(self._wrapped.values_by_name, self._registry.wrap_enum_value)

    @property
    def values_by_number(self) -> Mapping:
        return _WrappedMapping(self._wrapped.values_by_number, self._registry.wrap_enum_value)


class EnumValueDescriptorWrapper(DescriptorWrapper):
    @property
    def type(self):
        return self._registry.wrap_enum(self._wrapped.type)


class ServiceDescriptorWrapper(DescriptorWrapper):
    @property
    def file(self):
        return self._registry.wrap_file(self._wrapped.file)

    @property
    def methods(self) -> Sequence:
        return _WrappedSequence(self._wrapped.methods, self._registry.wrap_method)

    @property
    def methods_by_name(self) -> Mapping:
        return _WrappedMapping(self._wrapped.methods_by_name, self._registry.wrap_method)

    def FindMethodByName(self, name: str):
        return self._registry.wrap_method(self._wrapped.FindMethodByName(name))


class MethodDescriptorWrapper(DescriptorWrapper):
    @property
    def containing_service(self):
        return self._registry.wrap_service(self._wrapped.containing_service)

    @property
    def input_type(self):
        return self._registry.wrap_message(self._wrapped.input_type)

    @property
    def output_type(self):
        return self._registry.wrap_message(self._wrapped.output_type)


class WrappedMessageType(_Wrapper):
    """Wraps a message class so that its ``DESCRIPTOR`` is wrapped.

    Calling the wrapper constructs an instance of the underlying class.
    """

    @property
    def DESCRIPTOR(self):
        return self._registry.wrap_message(self._wrapped.DESCRIPTOR)

    def __call__(self, *args, **kwargs):
        return self._wrapped(*args, **kwargs)


class WrappedEnumType(_Wrapper):
    """Wraps a ``google.protobuf`` ``EnumTypeWrapper`` so that its ``DESCRIPTOR`` is wrapped."""

    @property
    def DESCRIPTOR(self):
        return self._registry.wrap_enum(self._wrapped.DESCRIPTOR)
