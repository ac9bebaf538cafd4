"""Rebuild descriptors so that their files embed source code info.

Wrapping layers source info on top of the original descriptors. Upgrading
instead rebuilds a descriptor's file, and every file it depends on, in a
private descriptor pool from its ``FileDescriptorProto`` plus the registered
``SourceCodeInfo``. The rebuilt descriptors carry their locations in their own
serialized form, so they can be handed to code that knows nothing about
wrappers.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Dict, Optional

from google.protobuf import descriptor_pb2, descriptor_pool

from protoc_srcinfo.locations import LocationIndex
from protoc_srcinfo.paths import Kind, descriptor_kind, parent_file, unwrap

if TYPE_CHECKING:
    from protoc_srcinfo.registry import SourceInfoRegistry

logger = logging.getLogger(__name__)


class Upgrader:
    def __init__(self, registry: SourceInfoRegistry) -> None:
        self._registry = registry
        self._pool = descriptor_pool.DescriptorPool()
        # reentrant: a file's dependencies are upgraded while holding it
        self._lock = threading.RLock()
        self._files: Dict[str, Any] = {}
        self._locations: Dict[Any, LocationIndex] = {}

    @property
    def pool(self) -> descriptor_pool.DescriptorPool:
        return self._pool

    def locations_for(self, fd: Any) -> Optional[LocationIndex]:
        """Return the locations of an upgraded file, or None for other files."""
        with self._lock:
            return self._locations.get(unwrap(fd))

    def can_upgrade(self, d: Any) -> bool:
        d = unwrap(d)
        if parent_file(d) is None:
            return False
        return self._registry.can_wrap(d)

    def upgrade(self, d: Any) -> Any:
        """Return the counterpart of ``d`` in an upgraded file, or ``d`` itself."""
        raw = unwrap(d)
        if not self.can_upgrade(raw):
            return d
        upgraded_file = self._upgrade_file(parent_file(raw))
        return self._counterpart(upgraded_file, raw)

    def _upgrade_file(self, fd: Any) -> Any:
        with self._lock:
            upgraded = self._files.get(fd.name)
            if upgraded is not None:
                return upgraded

            for dep in fd.dependencies:
                self._upgrade_file(dep)

            file_proto = descriptor_pb2.FileDescriptorProto()
            fd.CopyToProto(file_proto)
            info = None
            if self._registry.can_wrap(fd):
                info = self._registry.source_info_for_file(fd.name)
                file_proto.source_code_info.CopyFrom(info)

            self._pool.AddSerializedFile(file_proto.SerializeToString())
            upgraded = self._pool.FindFileByName(fd.name)
            self._files[fd.name] = upgraded
            if info is not None:
                self._locations[upgraded] = LocationIndex(info.location, file=upgraded)
            logger.debug(
                "Upgraded %s (%d location(s))", fd.name, len(info.location) if info is not None else 0
            )
            return upgraded

    def _counterpart(self, upgraded_file: Any, d: Any) -> Any:
        kind = descriptor_kind(d)
        pool = self._pool
        if kind is Kind.FILE:
            return upgraded_file
        if kind is Kind.MESSAGE:
            return pool.FindMessageTypeByName(d.full_name)
        if kind is Kind.FIELD:
            return pool.FindFieldByName(d.full_name)
        if kind is Kind.EXTENSION:
            return pool.FindExtensionByName(d.full_name)
        if kind is Kind.ONEOF:
            return pool.FindOneofByName(d.full_name)
        if kind is Kind.ENUM:
            return pool.FindEnumTypeByName(d.full_name)
        if kind is Kind.ENUM_VALUE:
            return pool.FindEnumTypeByName(d.type.full_name).values_by_name[d.name]
        if kind is Kind.SERVICE:
            return pool.FindServiceByName(d.full_name)
        if kind is Kind.METHOD:
            return pool.FindMethodByName(d.full_name)
        return d
