"""Registries of descriptors that include source code info.

``SourceInfoRegistry`` is a drop-in companion to a ``DescriptorPool``: it
hands out wrapped descriptors whose files expose the source locations
registered for them, and looks up files, descriptors and types by name the
way the pool does.

The module-level functions operate on ``default_registry``, which is bound to
the default descriptor pool that generated ``_pb2`` modules populate.
"""

from __future__ import annotations

import logging
import threading
import weakref
from enum import Enum, auto
from typing import Any, Callable, Dict, List, Optional, Tuple

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.internal import enum_type_wrapper

from protoc_srcinfo.locations import LocationIndex
from protoc_srcinfo.once import Once
from protoc_srcinfo.paths import Kind, descriptor_kind, is_map_entry, parent_file, unwrap
from protoc_srcinfo.source_info import SourceInfoError, SourceInfoStore, native_locations
from protoc_srcinfo.upgrade import Upgrader
from protoc_srcinfo.wrappers import (
    DescriptorWrapper,
    EnumDescriptorWrapper,
    EnumValueDescriptorWrapper,
    FieldDescriptorWrapper,
    FileDescriptorWrapper,
    MessageDescriptorWrapper,
    MethodDescriptorWrapper,
    OneofDescriptorWrapper,
    ServiceDescriptorWrapper,
    WrappedEnumType,
    WrappedMessageType,
)

logger = logging.getLogger(__name__)


class NotFoundError(KeyError):
    """Raised when a file, descriptor or type is not known to the pool."""


class _FileState(Enum):
    # the file already embeds source info, nothing to add
    NATIVE = auto()
    # the file belongs to our pool and has registered source info
    WRAPPABLE = auto()
    # neither; descriptors are handed back as they are
    PLAIN = auto()


class SourceInfoRegistry:
    """Wraps descriptors of one pool with the source info registered for them.

    Whether a file can be wrapped is decided on first use and cached.
    Registering source info for a file resets that decision, unless the file
    has already been wrapped.
    """

    def __init__(
        self,
        pool: Optional[descriptor_pool.DescriptorPool] = None,
        store: Optional[SourceInfoStore] = None,
    ) -> None:
        self._pool = pool if pool is not None else descriptor_pool.Default()
        self._store = store if store is not None else SourceInfoStore()
        self._upgrader = Upgrader(self)
        self._lock = threading.RLock()

        self._file_states: Dict[Any, _FileState] = {}
        self._native_indexes: Dict[Any, LocationIndex] = {}
        self._files: Dict[Any, FileDescriptorWrapper] = {}
        self._wrappers: weakref.WeakValueDictionary = weakref.WeakValueDictionary()

        self._populated: Dict[str, Once] = {}
        self._descriptors: Dict[str, Any] = {}
        self._messages: Dict[str, Any] = {}
        self._enums: Dict[str, Any] = {}
        self._extensions: Dict[str, Any] = {}
        self._extensions_by_number: Dict[Tuple[str, int], Any] = {}
        self._message_types: Dict[str, Any] = {}
        self._enum_types: Dict[str, Any] = {}

    @property
    def pool(self) -> descriptor_pool.DescriptorPool:
        return self._pool

    @property
    def store(self) -> SourceInfoStore:
        return self._store

    # Registration

    def register(self, file_name: str, data: bytes) -> None:
        self._store.register(file_name, data)
        self._forget_file(file_name)

    def register_source_info(self, file_name: str, source_info: descriptor_pb2.SourceCodeInfo) -> None:
        self._store.register_source_info(file_name, source_info)
        self._forget_file(file_name)

    def register_file_descriptor_set(self, fds: descriptor_pb2.FileDescriptorSet) -> List[str]:
        names = self._store.register_file_descriptor_set(fds)
        for name in names:
            self._forget_file(name)
        return names

    def _forget_file(self, file_name: str) -> None:
        """Drop what was decided about a file before its source info was registered.

        A file that already has a wrapper keeps it, so identities handed out
        earlier stay valid.
        """
        with self._lock:
            if any(fd.name == file_name for fd in self._files):
                return
            for fd in [fd for fd in self._file_states if fd.name == file_name]:
                del self._file_states[fd]
            if self._populated.pop(file_name, None) is None:
                return

            def in_file(d: Any) -> bool:
                fd = parent_file(d)
                return fd is not None and fd.name == file_name

            for table in (self._descriptors, self._messages, self._enums, self._extensions,
                          self._extensions_by_number):
                for key in [k for k, d in table.items() if in_file(d)]:
                    del table[key]
            for table in (self._message_types, self._enum_types):
                for key in [k for k, t in table.items() if in_file(t.DESCRIPTOR)]:
                    del table[key]

    def source_info_for_file(self, file_name: str) -> Optional[descriptor_pb2.SourceCodeInfo]:
        return self._store.for_file(file_name)

    # Eligibility

    def _owns(self, fd: Any) -> bool:
        try:
            return self._pool.FindFileByName(fd.name) is fd
        except KeyError:
            return False

    def _classify(self, fd: Any) -> _FileState:
        if self._upgrader.locations_for(fd) is not None or native_locations(fd):
            return _FileState.NATIVE
        if not self._owns(fd):
            return _FileState.PLAIN
        try:
            info = self._store.for_file(fd.name)
        except SourceInfoError as e:
            logger.warning("Ignoring source info registered for %s: %s", fd.name, e)
            return _FileState.PLAIN
        if info is None or not info.location:
            return _FileState.PLAIN
        return _FileState.WRAPPABLE

    def _file_state(self, fd: Any) -> _FileState:
        fd = unwrap(fd)
        with self._lock:
            state = self._file_states.get(fd)
        if state is not None:
            return state
        state = self._classify(fd)
        with self._lock:
            return self._file_states.setdefault(fd, state)

    def native_location_count(self, d: Any) -> int:
        """Number of locations the file of ``d`` carries without any wrapping."""
        fd = unwrap(parent_file(d))
        if fd is None:
            return 0
        upgraded = self._upgrader.locations_for(fd)
        if upgraded is not None:
            return len(upgraded)
        return len(native_locations(fd))

    def can_wrap(self, d: Any) -> bool:
        """True if ``d`` comes from this registry's pool and has registered source info."""
        fd = parent_file(d)
        if fd is None:
            return False
        return self._file_state(fd) is _FileState.WRAPPABLE

    def source_locations(self, d: Any) -> LocationIndex:
        """Return the location index of the file ``d`` belongs to.

        The index is empty when no source info is known for the file.
        """
        fd = parent_file(d)
        if fd is None:
            return LocationIndex()
        if isinstance(fd, FileDescriptorWrapper):
            return fd.source_locations
        fd = unwrap(fd)
        upgraded = self._upgrader.locations_for(fd)
        if upgraded is not None:
            return upgraded
        state = self._file_state(fd)
        if state is _FileState.WRAPPABLE:
            return self.wrap_file(fd).source_locations
        if state is _FileState.NATIVE:
            with self._lock:
                index = self._native_indexes.get(fd)
                if index is None:
                    index = LocationIndex(native_locations(fd), file=fd)
                    self._native_indexes[fd] = index
                return index
        return LocationIndex(file=fd)

    # Wrapping

    def _wrap(self, d: Any, factory: Callable[[SourceInfoRegistry, Any], Any]) -> Any:
        if d is None:
            return None
        if isinstance(d, DescriptorWrapper):
            return d
        fd = parent_file(d)
        if fd is None or self._file_state(fd) is not _FileState.WRAPPABLE:
            return d
        with self._lock:
            wrapper = self._wrappers.get(d)
            if wrapper is None:
                wrapper = factory(self, d)
                self._wrappers[d] = wrapper
            return wrapper

    def wrap_file(self, fd: Any) -> Any:
        """Wrap a file descriptor so that it exposes its registered source info.

        Returns ``fd`` unchanged if it is already wrapped, already carries
        source info, or has none registered.
        """
        if fd is None:
            return None
        if isinstance(fd, FileDescriptorWrapper):
            return fd
        if self._file_state(fd) is not _FileState.WRAPPABLE:
            return fd
        with self._lock:
            wrapper = self._files.get(fd)
            if wrapper is None:
                info = self._store.for_file(fd.name)
                wrapper = FileDescriptorWrapper(self, fd, LocationIndex(info.location, file=fd))
                self._files[fd] = wrapper
            return wrapper

    def wrap_message(self, md: Any) -> Any:
        return self._wrap(md, MessageDescriptorWrapper)

    def wrap_field(self, fld: Any) -> Any:
        return self._wrap(fld, FieldDescriptorWrapper)

    def wrap_extension(self, ext: Any) -> Any:
        """Wrap an extension. In Python the extension handle is its FieldDescriptor."""
        return self._wrap(ext, FieldDescriptorWrapper)

    def wrap_oneof(self, ood: Any) -> Any:
        return self._wrap(ood, OneofDescriptorWrapper)

    def wrap_enum(self, ed: Any) -> Any:
        return self._wrap(ed, EnumDescriptorWrapper)

    def wrap_enum_value(self, evd: Any) -> Any:
        return self._wrap(evd, EnumValueDescriptorWrapper)

    def wrap_service(self, sd: Any) -> Any:
        return self._wrap(sd, ServiceDescriptorWrapper)

    def wrap_method(self, mtd: Any) -> Any:
        return self._wrap(mtd, MethodDescriptorWrapper)

    def wrap_descriptor(self, d: Any) -> Any:
        """Wrap a descriptor of any kind."""
        wrap = self._wrap_functions().get(descriptor_kind(d))
        if wrap is None:
            return d
        return wrap(d)

    def _wrap_functions(self) -> Dict[Kind, Callable[[Any], Any]]:
        return {
            Kind.FILE: self.wrap_file,
            Kind.MESSAGE: self.wrap_message,
            Kind.FIELD: self.wrap_field,
            Kind.EXTENSION: self.wrap_extension,
            Kind.ONEOF: self.wrap_oneof,
            Kind.ENUM: self.wrap_enum,
            Kind.ENUM_VALUE: self.wrap_enum_value,
            Kind.SERVICE: self.wrap_service,
            Kind.METHOD: self.wrap_method,
        }

    def _wrap_type(self, t: Any, wrapper_class: type) -> Any:
        if t is None:
            return None
        if isinstance(t, wrapper_class):
            return t
        if self._file_state(parent_file(t.DESCRIPTOR)) is not _FileState.WRAPPABLE:
            return t
        with self._lock:
            wrapper = self._wrappers.get(t)
            if wrapper is None:
                wrapper = wrapper_class(self, t)
                self._wrappers[t] = wrapper
            return wrapper

    def wrap_message_type(self, message_class: Any) -> Any:
        """Wrap a message class so that its DESCRIPTOR is wrapped."""
        return self._wrap_type(message_class, WrappedMessageType)

    def wrap_enum_type(self, enum_type: Any) -> Any:
        """Wrap an EnumTypeWrapper so that its DESCRIPTOR is wrapped."""
        return self._wrap_type(enum_type, WrappedEnumType)

    # Upgrading

    def can_upgrade(self, d: Any) -> bool:
        return self._upgrader.can_upgrade(d)

    def upgrade(self, d: Any) -> Any:
        return self._upgrader.upgrade(d)

    # Lookups

    def find_file_by_path(self, path: str) -> Any:
        try:
            fd = self._pool.FindFileByName(path)
        except KeyError:
            raise NotFoundError(f"file not found: {path}") from None
        self._populate(fd)
        return self.wrap_file(fd)

    def find_descriptor_by_full_name(self, name: str) -> Any:
        with self._lock:
            d = self._descriptors.get(name)
        if d is not None:
            return d
        self._populate(self._file_containing_symbol(name))
        return self._lookup(self._descriptors, name, "descriptor")

    def find_message_by_full_name(self, name: str) -> Any:
        """Return the (wrapped) message class of a message."""
        with self._lock:
            mt = self._message_types.get(name)
        if mt is not None:
            return mt
        try:
            md = self._pool.FindMessageTypeByName(name)
        except KeyError:
            raise NotFoundError(f"message not found: {name}") from None
        self._populate(md.file)
        md = self._lookup(self._messages, name, "message")
        mt = self.wrap_message_type(message_factory.GetMessageClass(unwrap(md)))
        with self._lock:
            return self._message_types.setdefault(name, mt)

    def find_message_by_url(self, url: str) -> Any:
        """Like find_message_by_full_name, for a type URL such as an ``Any.type_url``."""
        return self.find_message_by_full_name(url.rpartition("/")[2])

    def find_enum_by_full_name(self, name: str) -> Any:
        """Return the (wrapped) EnumTypeWrapper of an enum."""
        with self._lock:
            et = self._enum_types.get(name)
        if et is not None:
            return et
        try:
            ed = self._pool.FindEnumTypeByName(name)
        except KeyError:
            raise NotFoundError(f"enum not found: {name}") from None
        self._populate(ed.file)
        ed = self._lookup(self._enums, name, "enum")
        et = self.wrap_enum_type(enum_type_wrapper.EnumTypeWrapper(unwrap(ed)))
        with self._lock:
            return self._enum_types.setdefault(name, et)

    def find_extension_by_full_name(self, name: str) -> Any:
        with self._lock:
            ext = self._extensions.get(name)
        if ext is not None:
            return ext
        try:
            ext = self._pool.FindExtensionByName(name)
        except KeyError:
            raise NotFoundError(f"extension not found: {name}") from None
        self._populate(ext.file)
        return self._lookup(self._extensions, name, "extension")

    def find_extension_by_number(self, containing_type: str, number: int) -> Any:
        key = (containing_type, number)
        with self._lock:
            ext = self._extensions_by_number.get(key)
        if ext is not None:
            return ext
        try:
            md = self._pool.FindMessageTypeByName(containing_type)
            ext = self._pool.FindExtensionByNumber(md, number)
        except KeyError:
            raise NotFoundError(f"extension {number} of {containing_type} not found") from None
        self._populate(ext.file)
        return self._lookup(self._extensions_by_number, key, "extension")

    def find_all_extensions(self, containing_type: str) -> List[Any]:
        """Return every extension of a message, ordered by field number."""
        try:
            md = self._pool.FindMessageTypeByName(containing_type)
        except KeyError:
            raise NotFoundError(f"message not found: {containing_type}") from None
        found = sorted(self._pool.FindAllExtensions(md), key=lambda ext: ext.number)
        for ext in found:
            self._populate(ext.file)
        return [self._lookup(self._extensions, ext.full_name, "extension") for ext in found]

    def _lookup(self, table: Dict, key: Any, what: str) -> Any:
        with self._lock:
            try:
                return table[key]
            except KeyError:
                raise NotFoundError(f"{what} not found: {key}") from None

    def _file_containing_symbol(self, name: str) -> Any:
        # Not every pool implementation resolves oneofs and methods directly,
        # so fall back to the enclosing scopes.
        scope = name
        while scope:
            try:
                return self._pool.FindFileContainingSymbol(scope)
            except KeyError:
                scope = scope.rpartition(".")[0]
        raise NotFoundError(f"descriptor not found: {name}")

    # Population

    def _populate(self, fd: Any) -> None:
        fd = unwrap(fd)
        with self._lock:
            once = self._populated.setdefault(fd.name, Once())
        once.do(lambda: self._register_file(fd))

    def _register_file(self, fd: Any) -> None:
        wrapped = self.wrap_file(fd)
        scope = fd.package
        for md in wrapped.message_types_by_name.values():
            self._register_message(md)
        for ed in wrapped.enum_types_by_name.values():
            self._register_enum(ed, scope)
        for ext in wrapped.extensions_by_name.values():
            self._register_extension(ext)
        for sd in wrapped.services_by_name.values():
            self._add_descriptor(sd.full_name, sd)
            for mtd in sd.methods:
                self._add_descriptor(mtd.full_name, mtd)
        logger.debug("Populated registry with %s", fd.name)

        for dep in fd.public_dependencies:
            self._populate(dep)

    def _add_descriptor(self, name: str, d: Any) -> None:
        with self._lock:
            self._descriptors.setdefault(name, d)

    def _register_message(self, md: Any) -> None:
        self._add_descriptor(md.full_name, md)
        if not is_map_entry(md):
            with self._lock:
                self._messages.setdefault(md.full_name, md)
        for fld in md.fields:
            self._add_descriptor(fld.full_name, fld)
        for ood in md.oneofs:
            self._add_descriptor(ood.full_name, ood)
        for nested in md.nested_types:
            self._register_message(nested)
        for ed in md.enum_types:
            self._register_enum(ed, md.full_name)
        for ext in md.extensions:
            self._register_extension(ext)

    def _register_enum(self, ed: Any, scope: str) -> None:
        self._add_descriptor(ed.full_name, ed)
        with self._lock:
            self._enums.setdefault(ed.full_name, ed)
        # enum values are scoped as siblings of their enum
        for evd in ed.values:
            self._add_descriptor(f"{scope}.{evd.name}" if scope else evd.name, evd)

    def _register_extension(self, ext: Any) -> None:
        self._add_descriptor(ext.full_name, ext)
        with self._lock:
            self._extensions.setdefault(ext.full_name, ext)
            self._extensions_by_number.setdefault((ext.containing_type.full_name, ext.number), ext)


default_registry = SourceInfoRegistry()

register = default_registry.register
register_source_info = default_registry.register_source_info
register_file_descriptor_set = default_registry.register_file_descriptor_set
source_info_for_file = default_registry.source_info_for_file
source_locations = default_registry.source_locations
can_wrap = default_registry.can_wrap
wrap_file = default_registry.wrap_file
wrap_message = default_registry.wrap_message
wrap_field = default_registry.wrap_field
wrap_extension = default_registry.wrap_extension
wrap_oneof = default_registry.wrap_oneof
wrap_enum = default_registry.wrap_enum
wrap_enum_value = default_registry.wrap_enum_value
wrap_service = default_registry.wrap_service
wrap_method = default_registry.wrap_method
wrap_descriptor = default_registry.wrap_descriptor
wrap_message_type = default_registry.wrap_message_type
wrap_enum_type = default_registry.wrap_enum_type
can_upgrade = default_registry.can_upgrade
upgrade = default_registry.upgrade
find_file_by_path = default_registry.find_file_by_path
find_descriptor_by_full_name = default_registry.find_descriptor_by_full_name
find_message_by_full_name = default_registry.find_message_by_full_name
find_message_by_url = default_registry.find_message_by_url
find_enum_by_full_name = default_registry.find_enum_by_full_name
find_extension_by_full_name = default_registry.find_extension_by_full_name
find_extension_by_number = default_registry.find_extension_by_number
find_all_extensions = default_registry.find_all_extensions
