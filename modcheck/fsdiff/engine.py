# Copyright Red Hat
#
# modcheck/fsdiff/engine.py - File modification checker diff engine
#
# This file is part of the modcheck project.
#
# SPDX-License-Identifier: Apache-2.0
"""
File modification diff engine
"""
from typing import Any, ClassVar, Dict, FrozenSet, Iterator, List, Optional
from datetime import datetime
import logging
import json

from modcheck import MODCHECK_SUBSYSTEM_DIFF
from modcheck.progress import TermControl

from .difftypes import DiffType
from .snapshot import Snapshot

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_diff(msg, *args, **kwargs):
    """A wrapper for diff subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": MODCHECK_SUBSYSTEM_DIFF}, **kwargs)


def _format_mtime(mtime: Optional[int]) -> str:
    """
    Format an epoch millisecond timestamp for display.

    :param mtime: The timestamp to format, or ``None``.
    :type mtime: ``Optional[int]``
    :returns: The formatted value or the empty string.
    :rtype: ``str``
    """
    if mtime is None:
        return ""
    return f"{datetime.fromtimestamp(mtime / 1000)} ({mtime})"


class DiffRecord:
    """
    A single path classified by a diff.
    """

    def __init__(
        self,
        path: str,
        diff_type: DiffType,
        mtime_old: Optional[int] = None,
        mtime_new: Optional[int] = None,
    ):
        """
        Initialise a new ``DiffRecord`` object.

        :param path: The path this record describes.
        :type path: ``str``
        :param diff_type: The classification of ``path``.
        :type diff_type: ``DiffType``
        :param mtime_old: The timestamp in the previous snapshot, if present.
        :type mtime_old: ``Optional[int]``
        :param mtime_new: The timestamp in the current snapshot, if present.
        :type mtime_new: ``Optional[int]``
        """
        self.path = path
        self.diff_type = diff_type
        self.mtime_old = mtime_old
        self.mtime_new = mtime_new

    def __repr__(self) -> str:
        return (
            f"DiffRecord({self.path!r}, {self.diff_type}, "
            f"{self.mtime_old!r}, {self.mtime_new!r})"
        )

    def __str__(self) -> str:
        return (
            f"Path: {self.path}\n"
            f"  diff_type: {self.diff_type.value}\n"
            f"  mtime_old: {_format_mtime(self.mtime_old)}\n"
            f"  mtime_new: {_format_mtime(self.mtime_new)}"
        )

    def __eq__(self, other) -> bool:
        if not isinstance(other, DiffRecord):
            return NotImplemented
        return (
            self.path == other.path
            and self.diff_type == other.diff_type
            and self.mtime_old == other.mtime_old
            and self.mtime_new == other.mtime_new
        )

    def __hash__(self) -> int:
        return hash((self.path, self.diff_type, self.mtime_old, self.mtime_new))

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert this ``DiffRecord`` object into a dictionary representation
        suitable for encoding as JSON.

        :returns: A dictionary mapping this instance's keys to values.
        :rtype: ``Dict[str, Any]``
        """
        return {
            "path": self.path,
            "diff_type": self.diff_type.value,
            "mtime_old": self.mtime_old,
            "mtime_new": self.mtime_new,
        }


class DiffResult:
    """
    The added, modified and deleted paths between two snapshots.

    Each changed path belongs to exactly one of ``added``, ``modified`` and
    ``deleted``. A path in neither snapshot set is unchanged. Sets carry no
    ordering; the formatting methods sort paths for stable output.
    """

    #: Constant for the names of the string output formats
    FORMATS: ClassVar[List[str]] = [
        "paths",
        "short",
        "json",
        "summary",
    ]

    def __init__(self, records: List[DiffRecord], unchanged: FrozenSet[str]):
        """
        Initialise a new ``DiffResult``.

        :param records: One record per changed path.
        :type records: ``List[DiffRecord]``
        :param unchanged: The paths present in both snapshots with equal
                          timestamps.
        :type unchanged: ``FrozenSet[str]``
        """
        self._records = sorted(records, key=lambda r: r.path)
        self.unchanged: FrozenSet[str] = frozenset(unchanged)
        self.added: FrozenSet[str] = self._paths_of(DiffType.ADDED)
        self.modified: FrozenSet[str] = self._paths_of(DiffType.MODIFIED)
        self.deleted: FrozenSet[str] = self._paths_of(DiffType.DELETED)

    def _paths_of(self, diff_type: DiffType) -> FrozenSet[str]:
        return frozenset(r.path for r in self._records if r.diff_type == diff_type)

    def __repr__(self) -> str:
        return (
            f"DiffResult(added={len(self.added)}, modified={len(self.modified)}, "
            f"deleted={len(self.deleted)}, unchanged={len(self.unchanged)})"
        )

    def __iter__(self) -> Iterator[DiffRecord]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __getitem__(self, index: int) -> DiffRecord:
        return self._records[index]

    @property
    def total_changes(self) -> int:
        """
        Return the total number of changed paths: equivalent to
        ``len(self)``.

        :returns: Count of changes.
        :rtype: ``int``
        """
        return len(self)

    @property
    def changed(self) -> bool:
        """
        ``True`` if any path was added, modified or deleted.
        """
        return bool(self._records)

    def records(self, diff_type: Optional[DiffType] = None) -> List[DiffRecord]:
        """
        Return the records of this result, optionally restricted to one
        ``DiffType``, in path order.

        :param diff_type: An optional classification to select.
        :type diff_type: ``Optional[DiffType]``
        :returns: A list of diff records.
        :rtype: ``List[DiffRecord]``
        """
        if diff_type is None:
            return list(self._records)
        return [r for r in self._records if r.diff_type == diff_type]

    def sorted_paths(self, diff_type: DiffType) -> List[str]:
        """
        Return the paths classified as ``diff_type`` in lexicographic order.

        :param diff_type: The classification to select.
        :type diff_type: ``DiffType``
        :returns: A sorted list of paths.
        :rtype: ``List[str]``
        """
        return [r.path for r in self.records(diff_type)]

    # Output formats
    def paths(self) -> List[str]:
        """
        Return the changed paths in this ``DiffResult`` in path order.

        :returns: Path list.
        :rtype: ``List[str]``
        """
        return [record.path for record in self._records]

    def short(self) -> str:
        """
        Return one ``<A|M|D> <path>`` line per changed path.

        :returns: Brief string description of the changes.
        :rtype: ``str``
        """
        return "\n".join(
            f"{record.diff_type.value[0].upper()} {record.path}"
            for record in self._records
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert this ``DiffResult`` into a dictionary of sorted path lists
        suitable for encoding as JSON.

        :returns: A dictionary mapping each diff type to its paths.
        :rtype: ``Dict[str, Any]``
        """
        return {
            diff_type.value: self.sorted_paths(diff_type) for diff_type in DiffType
        }

    def json(self, pretty: bool = False) -> str:
        """
        Return a JSON representation of this ``DiffResult``.

        :param pretty: Indent JSON to be human readable.
        :type pretty: ``bool``
        :returns: JSON string description of the changes.
        :rtype: ``str``
        """
        return json.dumps(self.to_dict(), indent=4 if pretty else None)

    def summary(
        self,
        color: str = "auto",
        term_control: Optional[TermControl] = None,
    ) -> str:
        """
        Return a summary of change counts in this ``DiffResult``.

        :param color: A string to control color rendering: "auto", "always", or
                      "never".
        :type color: ``str``
        :param term_control: An optional ``TermControl`` instance to use for
                             formatting. Overrides ``color`` if set.
        :type term_control: ``Optional[TermControl]``
        :returns: A string summarizing this instance.
        :rtype: ``str``
        """
        tc = term_control or TermControl(color=color)
        return (
            f"Total changes:     {len(self)}\n"
            f"  Paths {tc.GREEN + 'added:    ' + tc.NORMAL} {len(self.added)}\n"
            f"  Paths {tc.YELLOW + 'modified: ' + tc.NORMAL} {len(self.modified)}\n"
            f"  Paths {tc.RED + 'deleted:  ' + tc.NORMAL} {len(self.deleted)}\n"
            f"  Paths unchanged:  {len(self.unchanged)}"
        )


class DiffEngine:
    """
    Classify paths between a previous and a current ``Snapshot``.
    """

    def compute_diff(self, previous: Snapshot, current: Snapshot) -> DiffResult:
        """
        Compute the differences from ``previous`` to ``current``.

        A path in both snapshots whose timestamps differ by any amount is
        modified; equal timestamps mean unchanged. A path only in
        ``previous`` is deleted and a path only in ``current`` is added. No
        tolerance window is applied, so a file that was touched without a
        content change is reported as modified.

        :param previous: The baseline snapshot.
        :type previous: ``Snapshot``
        :param current: The snapshot to compare against the baseline.
        :type current: ``Snapshot``
        :returns: The classified differences.
        :rtype: ``DiffResult``
        """
        records = []
        unchanged = set()

        for path, mtime_old in previous.items():
            if path in current:
                mtime_new = current[path]
                if mtime_new != mtime_old:
                    _log_debug_diff(
                        "Modified '%s' (%d -> %d)", path, mtime_old, mtime_new
                    )
                    records.append(
                        DiffRecord(path, DiffType.MODIFIED, mtime_old, mtime_new)
                    )
                else:
                    unchanged.add(path)
            else:
                _log_debug_diff("Deleted '%s'", path)
                records.append(DiffRecord(path, DiffType.DELETED, mtime_old=mtime_old))

        for path, mtime_new in current.items():
            if path not in previous:
                _log_debug_diff("Added '%s'", path)
                records.append(DiffRecord(path, DiffType.ADDED, mtime_new=mtime_new))

        result = DiffResult(records, frozenset(unchanged))
        _log_debug_diff("Computed %r", result)
        return result


def diff(previous: Snapshot, current: Snapshot) -> DiffResult:
    """
    Compute the differences from ``previous`` to ``current`` with a new
    ``DiffEngine``.

    :param previous: The baseline snapshot.
    :type previous: ``Snapshot``
    :param current: The snapshot to compare against the baseline.
    :type current: ``Snapshot``
    :returns: The classified differences.
    :rtype: ``DiffResult``
    """
    return DiffEngine().compute_diff(previous, current)


__all__ = [
    "DiffEngine",
    "DiffRecord",
    "DiffResult",
    "diff",
]
