"""Source locations and the per-file index used to look them up."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Sequence, Tuple, Union

from google.protobuf import descriptor_pb2

from protoc_srcinfo.once import Once
from protoc_srcinfo.paths import excluded_from_comments, parent_file, path_for, unwrap

logger = logging.getLogger(__name__)

RawLocation = descriptor_pb2.SourceCodeInfo.Location


@dataclass(frozen=True)
class Location:
    """Span and comments attached to one structural path of a file.

    Lines and columns are zero-based, as produced by protoc. ``next`` is the
    index of the next location in the same index that shares this path, or 0
    if this is the last one.
    """

    path: Tuple[int, ...] = ()
    start_line: int = 0
    start_column: int = 0
    end_line: int = 0
    end_column: int = 0
    leading_comments: str = ""
    trailing_comments: str = ""
    leading_detached_comments: Tuple[str, ...] = ()
    next: int = 0

    @classmethod
    def from_proto(cls, loc: RawLocation) -> Location:
        # A span has four elements, or three when it starts and ends on the
        # same line: [line, start column, end column].
        span = loc.span
        end_line = span[0]
        end_column = span[2]
        if len(span) > 3:
            end_line = span[2]
            end_column = span[3]
        return cls(
            path=tuple(loc.path),
            start_line=span[0],
            start_column=span[1],
            end_line=end_line,
            end_column=end_column,
            leading_comments=loc.leading_comments,
            trailing_comments=loc.trailing_comments,
            leading_detached_comments=tuple(loc.leading_detached_comments),
        )

    def is_zero(self) -> bool:
        return self == EMPTY_LOCATION


EMPTY_LOCATION = Location()


def is_subpath_of(candidate: Sequence[int], path: Sequence[int]) -> bool:
    """True if ``path`` is a prefix of ``candidate``."""
    return len(candidate) >= len(path) and tuple(candidate[: len(path)]) == tuple(path)


def is_subspan_of(candidate: Location, loc: Location) -> bool:
    """True if the span of ``candidate`` lies within the span of ``loc``."""
    starts_after = candidate.start_line > loc.start_line or (
        candidate.start_line == loc.start_line and candidate.start_column >= loc.start_column
    )
    ends_before = candidate.end_line < loc.end_line or (
        candidate.end_line == loc.end_line and candidate.end_column <= loc.end_column
    )
    return starts_after and ends_before


class LocationIndex:
    """Queryable view over the source locations of one file.

    The index is built lazily, exactly once, on the first lookup. Lookups
    never raise: a missing location is reported as ``EMPTY_LOCATION``.
    """

    def __init__(
        self,
        locations: Sequence[Union[RawLocation, Location]] = (),
        file: Any = None,
    ) -> None:
        self._orig = list(locations)
        # When set, by_descriptor only answers for descriptors of this file.
        self._file = unwrap(file)
        self._once = Once()
        self._locs: List[Location] = []
        self._by_path: Dict[Tuple[int, ...], int] = {}

    @property
    def file(self) -> Any:
        return self._file

    def __len__(self) -> int:
        return len(self._orig)

    def __getitem__(self, i: int) -> Location:
        return self._lazy_init()._locs[i]

    def __iter__(self) -> Iterator[Location]:
        return iter(self._lazy_init()._locs)

    def get(self, i: int) -> Location:
        return self[i]

    def by_path(self, path: Sequence[int]) -> Location:
        i = self._lazy_init()._by_path.get(tuple(path))
        if i is None:
            return EMPTY_LOCATION
        return self._locs[i]

    def all_by_path(self, path: Sequence[int]) -> Iterator[Location]:
        """Yield every location recorded for ``path``, in source order."""
        i = self._lazy_init()._by_path.get(tuple(path))
        if i is None:
            return
        while True:
            loc = self._locs[i]
            yield loc
            if loc.next == 0:
                return
            i = loc.next

    def by_descriptor(self, desc: Any) -> Location:
        if desc is None:
            return EMPTY_LOCATION
        if self._file is not None and unwrap(parent_file(desc)) is not self._file:
            # descriptor belongs to another file, e.g. a mismatched import
            return EMPTY_LOCATION
        if excluded_from_comments(desc):
            return EMPTY_LOCATION
        path = path_for(desc)
        if path is None:
            return EMPTY_LOCATION
        return self.by_path(path)

    def _lazy_init(self) -> LocationIndex:
        self._once.do(self._build)
        return self

    def _build(self) -> None:
        if not self._orig:
            return
        locs: List[Location] = []
        # all the indexes for a given path, in first-seen order
        path_idxs: Dict[Tuple[int, ...], List[int]] = {}
        for i, orig in enumerate(self._orig):
            loc = orig if isinstance(orig, Location) else Location.from_proto(orig)
            locs.append(loc)
            path_idxs.setdefault(loc.path, []).append(i)

        by_path: Dict[Tuple[int, ...], int] = {}
        for key, idxs in path_idxs.items():
            for cur, nxt in zip(idxs, idxs[1:]):
                locs[cur] = dataclasses.replace(locs[cur], next=nxt)
            locs[idxs[-1]] = dataclasses.replace(locs[idxs[-1]], next=0)
            by_path[key] = idxs[0]

        self._locs = locs
        self._by_path = by_path
        logger.debug(
            "Built location index for %s: %d location(s), %d path(s)",
            getattr(self._file, "name", "<unknown>"),
            len(locs),
            len(by_path),
        )
