# Copyright Red Hat
#
# modcheck/fsdiff/difftypes.py - File modification checker diff types
#
# This file is part of the modcheck project.
#
# SPDX-License-Identifier: Apache-2.0
"""
File system diff types
"""
from enum import Enum


class DiffType(Enum):
    """
    Enum for the classifications of a path between two snapshots.
    """

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
