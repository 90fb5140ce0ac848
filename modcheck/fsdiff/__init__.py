# Copyright Red Hat
#
# modcheck/fsdiff/__init__.py - File modification checker package
#
# This file is part of the modcheck project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Directory modification checking package.

Provides directory scanning, snapshot persistence and snapshot comparison.
The main entry points are ``ModificationChecker`` and ``ScanOptions``.
"""
from .checker import ModificationChecker
from .difftypes import DiffType
from .engine import DiffEngine, DiffRecord, DiffResult, diff
from .options import ScanOptions
from .snapshot import Snapshot
from .store import (
    MalformedPolicy,
    SnapshotStore,
    load_snapshot,
    save_snapshot,
    state_lock,
)
from .treewalk import TreeWalker, scan

__all__ = [
    "DiffEngine",
    "DiffRecord",
    "DiffResult",
    "DiffType",
    "MalformedPolicy",
    "ModificationChecker",
    "ScanOptions",
    "Snapshot",
    "SnapshotStore",
    "TreeWalker",
    "diff",
    "load_snapshot",
    "save_snapshot",
    "scan",
    "state_lock",
]
