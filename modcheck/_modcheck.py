# Copyright Red Hat
#
# modcheck/_modcheck.py - File modification checker global definitions
#
# This file is part of the modcheck project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Global definitions for the top-level modcheck package.
"""
from typing import Optional, TextIO, TYPE_CHECKING
import logging
import weakref
import sys

if TYPE_CHECKING:
    from .progress import ThrobberBase

_log = logging.getLogger("modcheck")

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

# Modcheck debugging subsystem mask (legacy interface)
MODCHECK_DEBUG_SCAN = 1
MODCHECK_DEBUG_STORE = 2
MODCHECK_DEBUG_DIFF = 4
MODCHECK_DEBUG_COMMAND = 8
MODCHECK_DEBUG_ALL = (
    MODCHECK_DEBUG_SCAN
    | MODCHECK_DEBUG_STORE
    | MODCHECK_DEBUG_DIFF
    | MODCHECK_DEBUG_COMMAND
)

# Modcheck debugging subsystem names
MODCHECK_SUBSYSTEM_SCAN = "modcheck.scan"
MODCHECK_SUBSYSTEM_STORE = "modcheck.store"
MODCHECK_SUBSYSTEM_DIFF = "modcheck.diff"
MODCHECK_SUBSYSTEM_COMMAND = "modcheck.command"

_DEBUG_MASK_TO_SUBSYSTEM = {
    MODCHECK_DEBUG_SCAN: MODCHECK_SUBSYSTEM_SCAN,
    MODCHECK_DEBUG_STORE: MODCHECK_SUBSYSTEM_STORE,
    MODCHECK_DEBUG_DIFF: MODCHECK_SUBSYSTEM_DIFF,
    MODCHECK_DEBUG_COMMAND: MODCHECK_SUBSYSTEM_COMMAND,
}

#: Subsystems with debug output currently enabled.
_debug_subsystems = set()

#: Throbbers currently drawing on a terminal stream.
_active_progress = weakref.WeakSet()

#: Default name of the persisted directory state file.
DEFAULT_STATE_FILE = "files.txt"

#: Reserved field holding the path to timestamp mapping in the state file.
STATE_FILES_KEY = "files"


class SubsystemFilter(logging.Filter):
    """
    Filters DEBUG records based on a set of enabled subsystem names.
    Non-DEBUG records or DEBUG records without a 'subsystem' attribute
    are always passed through.
    """

    def __init__(self, name=""):
        super().__init__(name)
        self.enabled_subsystems = set(_debug_subsystems)

    def filter(self, record):
        if record.levelno != logging.DEBUG:
            return True

        if not hasattr(record, "subsystem"):
            return True

        return record.subsystem in self.enabled_subsystems

    def set_debug_subsystems(self, subsystems):
        """Sets the collection of subsystems to allow."""
        self.enabled_subsystems = set(subsystems)


def get_debug_mask():
    """
    Return the current debug mask for the ``modcheck`` package.

    :returns: The current debug mask value
    :rtype: int
    """
    enabled_subsystems = set(_debug_subsystems)
    modcheck_log = logging.getLogger("modcheck")

    for handler in modcheck_log.handlers:
        for f in handler.filters:
            if isinstance(f, SubsystemFilter):
                enabled_subsystems.update(f.enabled_subsystems)

    mask_map = {v: k for k, v in _DEBUG_MASK_TO_SUBSYSTEM.items()}
    mask = 0
    for subsystem_name in enabled_subsystems:
        mask |= mask_map.get(subsystem_name, 0)
    return mask


def set_debug_mask(mask):
    """
    Set the debug mask for the ``modcheck`` package.

    :param mask: the logical OR of the ``MODCHECK_DEBUG_*``
                 values to log.
    :rtype: None
    """
    # pylint: disable=global-statement
    global _debug_subsystems

    if mask < 0 or mask > MODCHECK_DEBUG_ALL:
        raise ValueError(f"Invalid modcheck debug mask: {mask}")

    enabled_subsystems = [
        subsystem_name
        for flag, subsystem_name in _DEBUG_MASK_TO_SUBSYSTEM.items()
        if mask & flag
    ]

    modcheck_log = logging.getLogger("modcheck")
    for handler in modcheck_log.handlers:
        for f in handler.filters:
            if isinstance(f, SubsystemFilter):
                f.set_debug_subsystems(enabled_subsystems)

    _debug_subsystems = set(enabled_subsystems)


def register_progress(progress: "ThrobberBase"):
    """Register a throbber instance for log coordination."""
    _active_progress.add(progress)
    progress.registered = True


def unregister_progress(progress: "ThrobberBase"):
    """Unregister a throbber instance."""
    _active_progress.discard(progress)
    progress.registered = False


def notify_log_output(stream: TextIO):
    """
    Notify throbber instances that log output occurred on stream.

    Called by ProgressAwareHandler after emitting a record.

    :param stream: The stream that received output.
    :type stream: ``TextIO``
    """
    if stream not in (sys.stdout, sys.stderr):
        return
    for progress in list(_active_progress):
        if hasattr(progress, "reset_position"):
            progress.reset_position()


class ProgressAwareHandler(logging.StreamHandler):
    """
    A logging handler that coordinates with active throbber instances.

    After emitting a log record, notifies any throbber writing to the same
    stream so that the next frame does not erase the log message.
    """

    def __init__(self, stream: Optional[TextIO] = None, **kwargs):
        super().__init__(stream=stream or sys.stderr, **kwargs)

    def emit(self, record):
        try:
            msg = self.format(record)
            self.stream.write(msg + "\n")
            self.stream.flush()
            notify_log_output(self.stream)
        except Exception:  # pylint: disable=broad-exception-caught
            self.handleError(record)


#
# Modcheck exception types
#


class ModcheckError(Exception):
    """
    Base class for file modification checker errors.
    """


class ModcheckSystemError(ModcheckError):
    """
    An error when calling the operating system.
    """


class ModcheckNotFoundError(ModcheckError):
    """
    The requested object does not exist: for example the root directory to
    scan is missing or is not a directory.
    """


class ModcheckAccessError(ModcheckError):
    """
    Permission was denied while listing or reading a directory entry.
    """


class ModcheckParseError(ModcheckError):
    """
    A persisted directory state exists but could not be parsed.
    """


class ModcheckWriteError(ModcheckError):
    """
    The current directory state could not be persisted.
    """


class ModcheckBusyError(ModcheckError):
    """
    The persisted state is locked by another modcheck run.
    """


class ModcheckArgumentError(ModcheckError):
    """
    An invalid argument was passed to a modcheck API call.
    """


__all__ = [
    "DEFAULT_STATE_FILE",
    "STATE_FILES_KEY",
    # Debug logging - subsystem name interface
    "SubsystemFilter",
    "MODCHECK_SUBSYSTEM_SCAN",
    "MODCHECK_SUBSYSTEM_STORE",
    "MODCHECK_SUBSYSTEM_DIFF",
    "MODCHECK_SUBSYSTEM_COMMAND",
    # Debug logging - legacy interface
    "MODCHECK_DEBUG_SCAN",
    "MODCHECK_DEBUG_STORE",
    "MODCHECK_DEBUG_DIFF",
    "MODCHECK_DEBUG_COMMAND",
    "MODCHECK_DEBUG_ALL",
    "set_debug_mask",
    "get_debug_mask",
    # Progress log callbacks
    "register_progress",
    "unregister_progress",
    "notify_log_output",
    "ProgressAwareHandler",
    "ModcheckError",
    "ModcheckSystemError",
    "ModcheckNotFoundError",
    "ModcheckAccessError",
    "ModcheckParseError",
    "ModcheckWriteError",
    "ModcheckBusyError",
    "ModcheckArgumentError",
]
