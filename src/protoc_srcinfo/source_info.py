"""Registration and decoding of per-file source code info side-tables.

Generated ``_pb2`` modules are compiled without source code info. A companion
code generator ships each file's ``google.protobuf.SourceCodeInfo`` as a
gzipped, serialized blob, which is registered here under the file's path and
decoded on first use.
"""

from __future__ import annotations

import gzip
import logging
import threading
import zlib
from typing import Any, Dict, List, Optional

from google.protobuf import descriptor_pb2
from google.protobuf.message import DecodeError

logger = logging.getLogger(__name__)


class SourceInfoError(Exception):
    """Raised when registered source code info cannot be decoded."""


def encode_source_info(source_info: descriptor_pb2.SourceCodeInfo) -> bytes:
    """Serialize and gzip source code info into the registered blob format."""
    return gzip.compress(source_info.SerializeToString())


def decode_source_info(data: bytes) -> descriptor_pb2.SourceCodeInfo:
    """Inverse of encode_source_info."""
    try:
        unzipped = gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as e:
        raise SourceInfoError(f"source info is not valid gzip data: {e}") from e
    try:
        return descriptor_pb2.SourceCodeInfo.FromString(unzipped)
    except DecodeError as e:
        raise SourceInfoError(f"source info is not a valid SourceCodeInfo message: {e}") from e


def native_locations(fd: Any) -> List[descriptor_pb2.SourceCodeInfo.Location]:
    """Return the locations embedded in a file descriptor's own serialized proto."""
    serialized = getattr(fd, "serialized_pb", None)
    if not serialized:
        return []
    try:
        file_proto = descriptor_pb2.FileDescriptorProto.FromString(serialized)
    except DecodeError:
        logger.warning("Could not parse serialized descriptor of %s", fd.name)
        return []
    return list(file_proto.source_code_info.location)


class SourceInfoStore:
    """Thread-safe map of file path to source code info.

    Registered blobs stay compressed until first requested; decoded messages
    are cached.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data_by_file: Dict[str, bytes] = {}
        self._info_by_file: Dict[str, descriptor_pb2.SourceCodeInfo] = {}

    def register(self, file_name: str, data: bytes) -> None:
        """Register gzipped, serialized source code info for a file."""
        with self._lock:
            self._data_by_file[file_name] = data
            self._info_by_file.pop(file_name, None)
        logger.debug("Registered source info for %s (%d bytes)", file_name, len(data))

    def register_source_info(self, file_name: str, source_info: descriptor_pb2.SourceCodeInfo) -> None:
        """Register already-decoded source code info for a file."""
        with self._lock:
            self._info_by_file[file_name] = source_info
            self._data_by_file.pop(file_name, None)
        logger.debug(
            "Registered source info for %s (%d location(s))", file_name, len(source_info.location)
        )

    def register_file_descriptor_set(self, fds: descriptor_pb2.FileDescriptorSet) -> List[str]:
        """Register the source code info of every file in a descriptor set.

        Files that carry no locations are skipped. Returns the registered
        file names in set order.
        """
        registered: List[str] = []
        for file_proto in fds.file:
            if not file_proto.source_code_info.location:
                continue
            info = descriptor_pb2.SourceCodeInfo()
            info.CopyFrom(file_proto.source_code_info)
            self.register_source_info(file_proto.name, info)
            registered.append(file_proto.name)
        return registered

    def for_file(self, file_name: str) -> Optional[descriptor_pb2.SourceCodeInfo]:
        """Return the source code info registered for a file, or None.

        Raises SourceInfoError if the registered data is corrupt.
        """
        with self._lock:
            info = self._info_by_file.get(file_name)
            data = self._data_by_file.get(file_name) if info is None else None
        if info is not None:
            return info
        if data is None:
            return None

        info = decode_source_info(data)
        with self._lock:
            # check again, another thread may have decoded it meanwhile
            existing = self._info_by_file.get(file_name)
            if existing is not None:
                return existing
            self._info_by_file[file_name] = info
        return info

    def __contains__(self, file_name: str) -> bool:
        with self._lock:
            return file_name in self._info_by_file or file_name in self._data_by_file
