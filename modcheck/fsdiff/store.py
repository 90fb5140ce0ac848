# Copyright Red Hat
#
# modcheck/fsdiff/store.py - File modification checker snapshot store
#
# This file is part of the modcheck project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Persisted directory state.

The state file is a UTF-8 JSON document with a single ``files`` member
mapping path strings to integer epoch millisecond timestamps::

    {"files": {"/a/b.txt": 1700000000000}}
"""
from contextlib import contextmanager, nullcontext
from typing import Iterator, Optional, Protocol
from enum import Enum
import tempfile
import logging
import fcntl
import json
import os

from modcheck import (
    DEFAULT_STATE_FILE,
    MODCHECK_SUBSYSTEM_STORE,
    ModcheckArgumentError,
    ModcheckBusyError,
    ModcheckParseError,
    ModcheckSystemError,
    ModcheckWriteError,
)

from .snapshot import Snapshot

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

#: File mode for persisted state files
_STATE_FILE_MODE = 0o644

#: File mode for state lock files
_LOCK_FILE_MODE = 0o600

#: Suffix appended to the state file path to form the lock file path
_LOCK_SUFFIX = ".lock"

#: Prefix of temporary files written while saving state
_TMP_PREFIX = ".tmp_"


def _log_debug_store(msg, *args, **kwargs):
    """A wrapper for store subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": MODCHECK_SUBSYSTEM_STORE}, **kwargs)


class MalformedPolicy(Enum):
    """
    Handling for a state file that exists but cannot be parsed.
    """

    #: Raise ``ModcheckParseError`` and leave the file untouched.
    FAIL = "fail"
    #: Report the problem and continue with an empty baseline.
    EMPTY = "empty"


class BaselineReporter(Protocol):
    """
    Reporting channel notified about the state of the previous snapshot.
    """

    def no_baseline(self, location: str):
        """Called when no previous state exists at ``location``."""

    def malformed_baseline(self, location: str, err: Exception):
        """Called when the state at ``location`` is discarded as malformed."""


def _handle_malformed(
    path: str,
    err: Exception,
    reporter: Optional[BaselineReporter],
    malformed: MalformedPolicy,
) -> Snapshot:
    if malformed == MalformedPolicy.FAIL:
        raise ModcheckParseError(
            f"Malformed directory state in '{path}': {err}"
        ) from err
    _log_error("Discarding malformed directory state in '%s': %s", path, err)
    if reporter is not None:
        reporter.malformed_baseline(path, err)
    return Snapshot(missing=True)


def load_snapshot(
    path: str,
    reporter: Optional[BaselineReporter] = None,
    malformed: MalformedPolicy = MalformedPolicy.FAIL,
) -> Snapshot:
    """
    Load the persisted ``Snapshot`` stored at ``path``.

    A missing or unreadable state file is not an error: an empty snapshot
    with ``missing=True`` is returned and ``reporter`` (if given) is told
    that no previous state was found, so that every scanned file is treated
    as added.

    :param path: The path to the state file.
    :type path: ``str``
    :param reporter: An optional reporting channel for baseline notices.
    :type reporter: ``Optional[BaselineReporter]``
    :param malformed: Policy for a state file that cannot be parsed.
    :type malformed: ``MalformedPolicy``
    :returns: The previous snapshot, or an empty baseline.
    :rtype: ``Snapshot``
    :raises ModcheckParseError: If the state file is malformed and
                                ``malformed`` is ``MalformedPolicy.FAIL``.
    """
    _log_debug_store("Loading directory state from '%s'", path)
    try:
        with open(path, "r", encoding="utf8") as fp:
            text = fp.read()
    except UnicodeDecodeError as err:
        return _handle_malformed(path, err, reporter, malformed)
    except OSError as err:
        _log_warn("Previous directory state not found: %s", err)
        if reporter is not None:
            reporter.no_baseline(path)
        return Snapshot(missing=True)

    try:
        snapshot = Snapshot.from_dict(json.loads(text))
    except (ValueError, RecursionError, ModcheckArgumentError) as err:
        return _handle_malformed(path, err, reporter, malformed)

    _log_debug_store("Loaded %d entries from '%s'", len(snapshot), path)
    return snapshot


def save_snapshot(path: str, snapshot: Snapshot):
    """
    Persist ``snapshot`` to ``path``, replacing any previous content.

    The document is written to a temporary file in the same directory,
    synced, and renamed over ``path`` so that a failed write never leaves a
    truncated state file behind.

    :param path: The path to the state file.
    :type path: ``str``
    :param snapshot: The snapshot to persist.
    :type snapshot: ``Snapshot``
    :raises ModcheckWriteError: If the state could not be written.
    """
    state_dir = os.path.dirname(os.path.abspath(path))
    data = snapshot.json()
    tmp_path = None

    _log_debug_store("Saving %d entries to '%s'", len(snapshot), path)
    try:
        os.makedirs(state_dir, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=state_dir, prefix=_TMP_PREFIX, text=True)
        with os.fdopen(fd, "w", encoding="utf8") as fp:
            fp.write(data)
            fp.flush()
            os.fsync(fp.fileno())
        os.chmod(tmp_path, _STATE_FILE_MODE)
        os.replace(tmp_path, path)
        tmp_path = None

        # Ensure directory metadata is written to disk
        dir_fd = os.open(state_dir, os.O_DIRECTORY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)
    except OSError as err:
        raise ModcheckWriteError(
            f"Failed to write directory state to '{path}': {err}"
        ) from err
    finally:
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError as err:
                _log_error("Error removing temporary file %s: %s", tmp_path, err)


@contextmanager
def state_lock(path: str) -> Iterator[int]:
    """
    Hold an exclusive advisory lock for the state file at ``path`` for the
    duration of the ``with`` block.

    The lock is taken with ``flock(2)`` on a persistent ``<path>.lock`` file
    and is released when the block exits, whether or not it raised.

    :param path: The path to the state file.
    :type path: ``str``
    :returns: The open lock file descriptor.
    :raises ModcheckBusyError: If another process holds the lock.
    :raises ModcheckSystemError: If the lock file cannot be opened.
    """
    lockfile = path + _LOCK_SUFFIX
    state_dir = os.path.dirname(os.path.abspath(lockfile))
    try:
        os.makedirs(state_dir, exist_ok=True)
        flags = os.O_RDWR | os.O_CREAT | os.O_CLOEXEC
        fd = os.open(lockfile, flags, _LOCK_FILE_MODE)
    except OSError as err:
        raise ModcheckSystemError(
            f"Failed to create state lockfile {lockfile}: {err}"
        ) from err

    try:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as err:
            raise ModcheckBusyError(
                f"Directory state already locked at '{lockfile}': {err}"
            ) from err
        except OSError as err:  # pragma: no cover
            raise ModcheckSystemError(
                f"Failed to lock state lockfile {lockfile}: {err}"
            ) from err

        _log_debug_store("Locked directory state via %s", lockfile)
        try:
            yield fd
        finally:
            _log_debug_store("Unlocking directory state (%s)", lockfile)
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)


class SnapshotStore:
    """
    A persisted directory state location with its load, save and locking
    policy.
    """

    def __init__(
        self,
        path: str = DEFAULT_STATE_FILE,
        malformed: MalformedPolicy = MalformedPolicy.FAIL,
        locking: bool = True,
    ):
        """
        Initialise a new ``SnapshotStore``.

        :param path: The path to the state file.
        :type path: ``str``
        :param malformed: Policy for a state file that cannot be parsed.
        :type malformed: ``MalformedPolicy``
        :param locking: Take an advisory lock in ``lock()``.
        :type locking: ``bool``
        """
        if not path:
            raise ModcheckArgumentError("State file path must not be empty")
        self.path = path
        self.malformed = malformed
        self.locking = locking

    def __repr__(self) -> str:
        return (
            f"SnapshotStore({self.path!r}, malformed={self.malformed}, "
            f"locking={self.locking})"
        )

    def load(self, reporter: Optional[BaselineReporter] = None) -> Snapshot:
        """
        Load the previous snapshot from this store.

        :param reporter: An optional reporting channel for baseline notices.
        :type reporter: ``Optional[BaselineReporter]``
        :returns: The previous snapshot, or an empty baseline.
        :rtype: ``Snapshot``
        """
        return load_snapshot(self.path, reporter=reporter, malformed=self.malformed)

    def save(self, snapshot: Snapshot):
        """
        Persist ``snapshot`` to this store.

        :param snapshot: The snapshot to persist.
        :type snapshot: ``Snapshot``
        """
        save_snapshot(self.path, snapshot)

    def lock(self):
        """
        Return a context manager holding this store's lock, or a no-op
        context manager if locking is disabled.
        """
        if not self.locking:
            return nullcontext()
        return state_lock(self.path)

    def owns(self, path: str) -> bool:
        """
        Return ``True`` if ``path`` is one of the files this store writes:
        the state file itself, its lock file or a temporary save file.

        :param path: An absolute file path.
        :type path: ``str``
        :returns: Whether ``path`` belongs to this store.
        :rtype: ``bool``
        """
        state_path = os.path.abspath(self.path)
        path = os.path.abspath(path)
        if path in (state_path, state_path + _LOCK_SUFFIX):
            return True
        return os.path.dirname(path) == os.path.dirname(
            state_path
        ) and os.path.basename(path).startswith(_TMP_PREFIX)


__all__ = [
    "BaselineReporter",
    "MalformedPolicy",
    "SnapshotStore",
    "load_snapshot",
    "save_snapshot",
    "state_lock",
]
