# Copyright Red Hat
#
# modcheck/fsdiff/options.py - File modification checker scan options
#
# This file is part of the modcheck project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Directory scan options.
"""
from dataclasses import dataclass, field, fields
from typing import Tuple, Union
from argparse import Namespace
import logging

_log = logging.getLogger(__name__)

_log_debug = _log.debug


@dataclass(frozen=True)
class ScanOptions:
    """
    Directory scan options.
    """

    #: Descend into symbolic links to directories
    follow_symlinks: bool = False
    #: Record root-relative paths instead of absolute paths
    relative_paths: bool = False
    #: File patterns to include (glob notation, root-relative)
    file_patterns: Tuple[str, ...] = field(default_factory=tuple)
    #: File patterns to exclude (glob notation, root-relative)
    exclude_patterns: Tuple[str, ...] = field(default_factory=tuple)
    #: Do not output progress or status updates
    quiet: bool = False

    def __str__(self):
        """
        Return a human readable string representation of this
        ``ScanOptions`` instance.

        :returns: A human readable string.
        :rtype: ``str``
        """
        items = [
            (key, val) if not isinstance(val, tuple) else (key, " ".join(val))
            for key, val in self.__dict__.items()
        ]
        return "\n".join(f"{key}={val}" for key, val in items)

    @classmethod
    def from_cmd_args(cls, cmd_args: Namespace) -> "ScanOptions":
        """
        Initialise ScanOptions from command line arguments.

        Only attributes of ``cmd_args`` that name a ``ScanOptions`` field are
        used; list values are converted to tuples.

        :param cmd_args: The command line arguments.
        :type cmd_args: ``Namespace``
        :returns: A new ``ScanOptions`` instance
        :rtype: ``ScanOptions``
        """

        def get_value(name: str) -> Union[bool, Tuple[str, ...]]:
            attr = getattr(cmd_args, name)
            if isinstance(attr, list):
                return tuple(attr)
            if attr is None and name in ("file_patterns", "exclude_patterns"):
                return ()
            if attr is None:
                return False
            return attr

        field_names = {f.name for f in fields(cls)}
        kwargs = {
            name: get_value(name) for name in field_names if hasattr(cmd_args, name)
        }
        options = cls(**kwargs)
        _log_debug("Initialised ScanOptions from arguments: %s", repr(options))
        return options
