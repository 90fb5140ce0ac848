# Copyright Red Hat
#
# modcheck/fsdiff/checker.py - File modification checker driver
#
# This file is part of the modcheck project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Top-level modification check interface.
"""
from typing import Optional, TYPE_CHECKING
import logging
import os

from modcheck.progress import TermControl

from .engine import DiffEngine, DiffResult
from .options import ScanOptions
from .snapshot import Snapshot
from .store import SnapshotStore
from .treewalk import TreeWalker

if TYPE_CHECKING:
    from modcheck.report import Reporter


_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


class ModificationChecker:
    """
    Top-level interface for checking a directory tree for modifications since
    the previous check.
    """

    def __init__(
        self,
        store: Optional[SnapshotStore] = None,
        options: Optional[ScanOptions] = None,
        reporter: Optional["Reporter"] = None,
        save: bool = True,
        term_control: Optional[TermControl] = None,
    ):
        """
        Initialise a new ``ModificationChecker``.

        :param store: The persisted state location. Defaults to
                      ``files.txt`` in the current directory.
        :type store: ``Optional[SnapshotStore]``
        :param options: Options to control scanning.
        :type options: ``Optional[ScanOptions]``
        :param reporter: The reporting channel for baseline notices and
                         results. Nothing is reported if ``None``.
        :type reporter: ``Optional[Reporter]``
        :param save: Persist the current snapshot as the new baseline.
        :type save: ``bool``
        :param term_control: An optional ``TermControl`` instance for progress
                             output.
        :type term_control: ``Optional[TermControl]``
        """
        options = options or ScanOptions()
        self.store: SnapshotStore = store or SnapshotStore()
        self.options: ScanOptions = options
        self.reporter: Optional["Reporter"] = reporter
        self.save: bool = save
        self.tree_walker: TreeWalker = TreeWalker(options)
        self.diff_engine: DiffEngine = DiffEngine()
        self._term_control: Optional[TermControl] = term_control

    def _without_state_files(self, root: str, snapshot: Snapshot) -> Snapshot:
        """
        Return ``snapshot`` without the files written by ``self.store``, which
        change on every check when the state file lives beneath ``root``.
        """
        abs_root = os.path.abspath(root)
        owned = [
            path
            for path in snapshot
            if self.store.owns(os.path.join(abs_root, path))
        ]
        if not owned:
            return snapshot
        _log_debug("Ignoring directory state files: %s", ", ".join(owned))
        return Snapshot(
            {path: mtime for path, mtime in snapshot.items() if path not in owned},
            missing=snapshot.missing,
        )

    def check(self, root: str) -> DiffResult:
        """
        Scan ``root``, compare it with the previous snapshot, report the
        differences and save the scan as the new baseline.

        The state lock (if enabled) is held from before the previous snapshot
        is loaded until after the new snapshot is saved. If the scan fails
        nothing is reported or saved. If saving fails the result has already
        been reported when ``ModcheckWriteError`` is raised.

        :param root: The directory to check.
        :type root: ``str``
        :returns: The differences since the previous check.
        :rtype: ``DiffResult``
        :raises ModcheckNotFoundError: If ``root`` is not a directory.
        :raises ModcheckAccessError: If part of the tree cannot be read.
        :raises ModcheckParseError: If the previous state is malformed and the
                                    store policy is ``MalformedPolicy.FAIL``.
        :raises ModcheckBusyError: If another check holds the state lock.
        :raises ModcheckWriteError: If the new state cannot be saved.
        """
        _log_debug("Checking %s with %r", root, self.store)
        with self.store.lock():
            previous = self._without_state_files(
                root, self.store.load(reporter=self.reporter)
            )
            current = self._without_state_files(
                root, self.tree_walker.scan(root, term_control=self._term_control)
            )

            result = self.diff_engine.compute_diff(previous, current)
            _log_info(
                "Check of %s: %d added, %d modified, %d deleted",
                root,
                len(result.added),
                len(result.modified),
                len(result.deleted),
            )

            if self.reporter is not None:
                self.reporter.report(root, result)

            if self.save:
                self.store.save(current)
            else:
                _log_debug("Not saving directory state (save=False)")
        return result


__all__ = [
    "ModificationChecker",
]
