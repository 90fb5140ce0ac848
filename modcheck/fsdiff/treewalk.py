# Copyright Red Hat
#
# modcheck/fsdiff/treewalk.py - File modification checker tree walk
#
# This file is part of the modcheck project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Tree walking support: build a ``Snapshot`` of a directory tree.
"""
from typing import Dict, Optional, Set, Tuple
from fnmatch import fnmatch
from datetime import datetime
import logging
import errno
import stat
import sys
import os

from modcheck import (
    MODCHECK_SUBSYSTEM_SCAN,
    ModcheckError,
    ModcheckAccessError,
    ModcheckNotFoundError,
    ModcheckSystemError,
)
from modcheck.progress import ProgressFactory, TermControl

from .options import ScanOptions
from .snapshot import Snapshot

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

#: Nanoseconds per millisecond
_NSECS_PER_MSEC = 1000000


def _log_debug_scan(msg, *args, **kwargs):
    """A wrapper for scan subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": MODCHECK_SUBSYSTEM_SCAN}, **kwargs)


def mtime_msecs(st: os.stat_result) -> int:
    """
    Return the modification time from ``st`` as integer epoch milliseconds.

    :param st: A stat result.
    :type st: ``os.stat_result``
    :returns: The modification time truncated to milliseconds.
    :rtype: ``int``
    """
    return st.st_mtime_ns // _NSECS_PER_MSEC


def _walk_error(err: OSError):
    """
    ``os.walk()`` error callback: fail the scan on any directory listing
    error instead of silently skipping the directory.

    :param err: The error raised while listing a directory.
    :type err: ``OSError``
    """
    if isinstance(err, PermissionError):
        raise ModcheckAccessError(
            f"Permission denied listing '{err.filename}': {err.strerror}"
        ) from err
    if isinstance(err, FileNotFoundError):
        # Directory removed between discovery and listing.
        _log_debug_scan("Directory '%s' vanished during scan", err.filename)
        return
    raise ModcheckSystemError(
        f"Error listing '{err.filename}': {err.strerror}"
    ) from err


class TreeWalker:
    """
    Recursive directory scanner producing ``Snapshot`` objects.
    """

    def __init__(self, options: Optional[ScanOptions] = None):
        """
        Initialise a new ``TreeWalker`` object.

        :param options: Options to control this ``TreeWalker`` instance.
        :type options: ``Optional[ScanOptions]``
        """
        self.options: ScanOptions = options or ScanOptions()
        self.exclude_patterns: Tuple[str, ...] = self.options.exclude_patterns
        self.file_patterns: Tuple[str, ...] = self.options.file_patterns

    def _excluded(self, rel_path: str) -> bool:
        return any(fnmatch(rel_path, pat) for pat in self.exclude_patterns)

    def _included(self, rel_path: str) -> bool:
        if not self.file_patterns:
            return True
        return any(fnmatch(rel_path, pat) for pat in self.file_patterns)

    @staticmethod
    def _rel_path(root: str, path: str) -> str:
        return os.path.relpath(path, root).replace(os.sep, "/")

    def _key(self, root: str, path: str) -> str:
        if self.options.relative_paths:
            return self._rel_path(root, path)
        return path

    @staticmethod
    def _stat_entry(path: str) -> Optional[os.stat_result]:
        """
        Stat ``path`` following symbolic links.

        :param path: The path to stat.
        :type path: ``str``
        :returns: The stat result, or ``None`` if the entry vanished or is a
                  dangling or looping symbolic link.
        :rtype: ``Optional[os.stat_result]``
        :raises ModcheckAccessError: On permission failure.
        :raises ModcheckSystemError: On any other operating system error.
        """
        try:
            return os.stat(path)
        except FileNotFoundError:
            _log_debug_scan("Skipping vanished entry or dangling link '%s'", path)
            return None
        except PermissionError as err:
            raise ModcheckAccessError(
                f"Permission denied reading '{path}': {err.strerror}"
            ) from err
        except OSError as err:
            if err.errno == errno.ELOOP:
                _log_debug_scan("Skipping symbolic link loop '%s'", path)
                return None
            raise ModcheckSystemError(f"Error reading '{path}': {err}") from err

    def _prune_dirs(
        self, root: str, dirpath: str, dirnames: list, visited: Set[Tuple[int, int]]
    ):
        """
        Remove excluded and already visited directories from ``dirnames``
        in place so that ``os.walk()`` does not descend into them.
        """
        keep = []
        for name in dirnames:
            path = os.path.join(dirpath, name)
            if self._excluded(self._rel_path(root, path)):
                _log_debug_scan("Excluding directory '%s'", path)
                continue
            if self.options.follow_symlinks:
                dir_stat = self._stat_entry(path)
                if dir_stat is None:
                    continue
                dir_id = (dir_stat.st_dev, dir_stat.st_ino)
                if dir_id in visited:
                    _log_debug_scan("Not revisiting directory '%s'", path)
                    continue
                visited.add(dir_id)
            keep.append(name)
        dirnames[:] = keep

    # pylint: disable=too-many-locals
    def scan(
        self,
        root: str,
        term_control: Optional[TermControl] = None,
    ) -> Snapshot:
        """
        Walk the directory tree at ``root`` and return a ``Snapshot`` of every
        regular file found beneath it.

        Directories are traversed but not recorded. Symbolic links to regular
        files are recorded as the file they point to; dangling links and
        special files are skipped. Nothing is returned if the walk fails
        part way through.

        :param root: The directory to scan.
        :type root: ``str``
        :param term_control: Optional pre-initialised terminal control object.
        :type term_control: ``Optional[TermControl]``
        :returns: A new ``Snapshot`` of the tree.
        :rtype: ``Snapshot``
        :raises ModcheckNotFoundError: If ``root`` does not exist or is not a
                                       directory.
        :raises ModcheckAccessError: If permission is denied listing a
                                     directory or reading an entry.
        """
        if not root:
            raise ModcheckNotFoundError("No root directory given")
        if not os.path.exists(root):
            raise ModcheckNotFoundError(f"Root directory '{root}' does not exist")
        if not os.path.isdir(root):
            raise ModcheckNotFoundError(f"Root path '{root}' is not a directory")

        root = os.path.abspath(root)
        follow_symlinks = self.options.follow_symlinks

        _log_info("Scanning %s", root)
        _log_debug_scan("Scan options:\n%s", self.options)

        throbber = ProgressFactory.get_throbber(
            f"Scanning {root}",
            style="braillecircle",
            quiet=self.options.quiet,
            term_stream=sys.stderr,
            term_control=term_control,
        )

        files: Dict[str, int] = {}
        visited: Set[Tuple[int, int]] = set()
        if follow_symlinks:
            root_stat = self._stat_entry(root)
            if root_stat is None:
                raise ModcheckNotFoundError(f"Root directory '{root}' vanished")
            visited.add((root_stat.st_dev, root_stat.st_ino))

        excluded = 0
        start_time = datetime.now()
        throbber.start()
        try:
            for dirpath, dirnames, filenames in os.walk(
                root, onerror=_walk_error, followlinks=follow_symlinks
            ):
                throbber.throb()
                self._prune_dirs(root, dirpath, dirnames, visited)
                for name in filenames:
                    path = os.path.join(dirpath, name)
                    rel_path = self._rel_path(root, path)
                    if self._excluded(rel_path) or not self._included(rel_path):
                        excluded += 1
                        continue

                    file_stat = self._stat_entry(path)
                    if file_stat is None:
                        continue
                    if not stat.S_ISREG(file_stat.st_mode):
                        _log_debug_scan("Skipping non-regular file '%s'", path)
                        continue
                    files[self._key(root, path)] = mtime_msecs(file_stat)
        except (KeyboardInterrupt, SystemExit):
            throbber.end("Quit!")
            raise
        except ModcheckError:
            throbber.end("Error.")
            raise

        end_time = datetime.now()
        throbber.end(f"found {len(files)} files")
        _log_info(
            "Scanned %d files under %s in %s (excluded %d)",
            len(files),
            root,
            end_time - start_time,
            excluded,
        )
        return Snapshot(files)


def scan(root: str, options: Optional[ScanOptions] = None) -> Snapshot:
    """
    Scan ``root`` with a new ``TreeWalker`` using ``options``.

    :param root: The directory to scan.
    :type root: ``str``
    :param options: Optional scan options.
    :type options: ``Optional[ScanOptions]``
    :returns: A new ``Snapshot`` of the tree.
    :rtype: ``Snapshot``
    """
    return TreeWalker(options).scan(root)


__all__ = [
    "TreeWalker",
    "mtime_msecs",
    "scan",
]
