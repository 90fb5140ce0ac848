# Copyright Red Hat
#
# modcheck/fsdiff/snapshot.py - File modification checker directory snapshot
#
# This file is part of the modcheck project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Point-in-time directory state: a mapping from file path to last-modified
timestamp in epoch milliseconds.
"""
from collections.abc import Mapping
from typing import Any, Dict, Iterator, Optional
import json

from modcheck import ModcheckArgumentError, STATE_FILES_KEY


def _check_entry(path: Any, modified_at: Any):
    """
    Validate a single ``path: modified_at`` snapshot entry.

    :param path: The path key.
    :param modified_at: The timestamp value.
    :raises ModcheckArgumentError: If the key is not a non-empty string or the
                                   value is not an integer.
    """
    if not isinstance(path, str) or not path:
        raise ModcheckArgumentError(f"Invalid snapshot path: {path!r}")
    # bool is an int subclass but never a timestamp.
    if isinstance(modified_at, bool) or not isinstance(modified_at, int):
        raise ModcheckArgumentError(
            f"Invalid timestamp for '{path}': {modified_at!r} (expected integer)"
        )


class Snapshot(Mapping):
    """
    A read-only mapping of ``path -> modified_at`` for every regular file
    found under a directory tree at one point in time.

    Keys are unique path strings and values are integer timestamps in epoch
    milliseconds. Iteration order is not significant: two snapshots compare
    equal when they hold the same entries.
    """

    def __init__(self, files: Optional[Dict[str, int]] = None, missing: bool = False):
        """
        Initialise a new ``Snapshot``.

        :param files: An optional dictionary mapping path strings to integer
                      timestamps. The dictionary is copied.
        :type files: ``Optional[Dict[str, int]]``
        :param missing: ``True`` if this is an empty baseline standing in for
                        a previous state that did not exist.
        :type missing: ``bool``
        :raises ModcheckArgumentError: If any entry is invalid.
        """
        files = dict(files or {})
        for path, modified_at in files.items():
            _check_entry(path, modified_at)
        self._files: Dict[str, int] = files
        #: Set when no previous state existed and this snapshot is empty.
        self.missing: bool = missing and not files

    def __getitem__(self, path: str) -> int:
        return self._files[path]

    def __iter__(self) -> Iterator[str]:
        return iter(self._files)

    def __len__(self) -> int:
        return len(self._files)

    def __repr__(self) -> str:
        return f"Snapshot({self._files!r})"

    def __str__(self) -> str:
        """
        Return a human readable listing of this snapshot, one
        ``path: modified_at`` entry per line in path order.

        :returns: A string representation of this ``Snapshot``.
        :rtype: ``str``
        """
        return "\n".join(f"{path}: {self._files[path]}" for path in sorted(self))

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert this ``Snapshot`` into the persisted document structure.

        :returns: A dictionary with a single ``files`` member.
        :rtype: ``Dict[str, Any]``
        """
        return {STATE_FILES_KEY: dict(self._files)}

    def json(self, pretty: bool = False) -> str:
        """
        Return a JSON representation of this ``Snapshot``.

        :param pretty: Indent and sort the JSON to be human readable.
        :type pretty: ``bool``
        :returns: A JSON document string.
        :rtype: ``str``
        """
        return json.dumps(
            self.to_dict(),
            indent=4 if pretty else None,
            sort_keys=pretty,
            ensure_ascii=False,
        )

    @classmethod
    def from_dict(cls, data: Any) -> "Snapshot":
        """
        Build a ``Snapshot`` from a decoded state document.

        :param data: The decoded JSON value.
        :returns: A new ``Snapshot`` instance.
        :rtype: ``Snapshot``
        :raises ModcheckArgumentError: If ``data`` is not an object with a
                                       ``files`` object of valid entries.
        """
        if not isinstance(data, dict):
            raise ModcheckArgumentError(
                f"Expected a JSON object, found {type(data).__name__}"
            )
        if STATE_FILES_KEY not in data:
            raise ModcheckArgumentError(f"Missing '{STATE_FILES_KEY}' member")
        files = data[STATE_FILES_KEY]
        if not isinstance(files, dict):
            raise ModcheckArgumentError(
                f"'{STATE_FILES_KEY}' must be a JSON object, "
                f"found {type(files).__name__}"
            )
        return cls(files)


__all__ = [
    "Snapshot",
]
