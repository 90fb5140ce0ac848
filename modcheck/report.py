# Copyright Red Hat
#
# modcheck/report.py - File modification checker report channel
#
# This file is part of the modcheck project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Human readable reporting of modification check results.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, TextIO, TYPE_CHECKING
import logging
import sys

from modcheck import ModcheckArgumentError
from modcheck.progress import COLOR_MODES, TermControl
from modcheck.fsdiff.difftypes import DiffType

if TYPE_CHECKING:
    from modcheck.fsdiff.engine import DiffResult

_log = logging.getLogger(__name__)

_log_debug = _log.debug

#: Message catalogue keyed by language code.
_MESSAGES: Dict[str, Dict[str, str]] = {
    "en": {
        "header": "Check modification in {root}",
        DiffType.ADDED.value: "Added",
        DiffType.MODIFIED.value: "Modified",
        DiffType.DELETED.value: "Deleted",
        "no_baseline": "Previous directory state not found.",
        "malformed_baseline": (
            "Previous directory state in {location} is malformed and was "
            "ignored: {error}"
        ),
    },
    "fr": {
        "header": "Vérification des modifications dans {root}",
        DiffType.ADDED.value: "Ajoutés",
        DiffType.MODIFIED.value: "Modifiés",
        DiffType.DELETED.value: "Supprimés",
        "no_baseline": "État précédent du répertoire introuvable.",
        "malformed_baseline": (
            "L'état précédent du répertoire dans {location} est invalide et "
            "a été ignoré : {error}"
        ),
    },
}

#: Supported report languages
LANGUAGES = tuple(_MESSAGES.keys())

#: Colors used for each diff type
_COLORS = {
    DiffType.ADDED: "GREEN",
    DiffType.MODIFIED: "YELLOW",
    DiffType.DELETED: "RED",
}


@dataclass(frozen=True)
class ReportConfig:
    """
    Report configuration passed explicitly to a ``Reporter``.
    """

    #: Message language: "en" or "fr"
    language: str = "en"
    #: Color mode: "auto", "always" or "never"
    color: str = "auto"

    def __post_init__(self):
        if self.language not in LANGUAGES:
            raise ModcheckArgumentError(
                f"Unknown report language: {self.language} "
                f"(expected one of {', '.join(LANGUAGES)})"
            )
        if self.color not in COLOR_MODES:
            raise ModcheckArgumentError(f"Unknown color mode: {self.color}")


def _format_list(paths: List[str]) -> str:
    return "[" + ", ".join(paths) + "]"


class Reporter:
    """
    Writes modification check results and baseline notices to a stream.
    """

    def __init__(
        self,
        config: Optional[ReportConfig] = None,
        stream: Optional[TextIO] = None,
        term_control: Optional[TermControl] = None,
    ):
        """
        Initialise a new ``Reporter``.

        :param config: The report configuration. Defaults to English with
                       automatic color.
        :type config: ``Optional[ReportConfig]``
        :param stream: The output stream. Defaults to ``sys.stdout``.
        :type stream: ``Optional[TextIO]``
        :param term_control: An optional ``TermControl`` for the stream.
                             Overrides ``config.color`` if set.
        :type term_control: ``Optional[TermControl]``
        """
        self.config = config or ReportConfig()
        if term_control is not None:
            stream = term_control.term_stream
        self.stream = stream or sys.stdout
        self.term_control = term_control or TermControl(
            term_stream=self.stream, color=self.config.color
        )
        self._messages = _MESSAGES[self.config.language]

    def _write(self, line: str):
        print(line, file=self.stream)

    def message(self, key: str, **kwargs) -> str:
        """
        Return the configured language's message for ``key``.

        :param key: The message key.
        :type key: ``str``
        :returns: The formatted message.
        :rtype: ``str``
        """
        return self._messages[key].format(**kwargs)

    def no_baseline(self, location: str):
        """
        Report that no previous state exists at ``location``.

        :param location: The state file location.
        :type location: ``str``
        """
        _log_debug("No baseline at %s", location)
        self._write(self.message("no_baseline"))

    def malformed_baseline(self, location: str, err: Exception):
        """
        Report that the previous state at ``location`` was discarded.

        :param location: The state file location.
        :type location: ``str``
        :param err: The parse error.
        :type err: ``Exception``
        """
        self._write(self.message("malformed_baseline", location=location, error=err))

    def report(self, root: str, result: "DiffResult"):
        """
        Write the summary line naming ``root`` followed by the sorted added,
        modified and deleted path lists.

        :param root: The scanned root directory.
        :type root: ``str``
        :param result: The diff result to report.
        :type result: ``DiffResult``
        """
        tc = self.term_control
        self._write(self.message("header", root=root))
        for diff_type in (DiffType.ADDED, DiffType.MODIFIED, DiffType.DELETED):
            label = self.message(diff_type.value)
            color = getattr(tc, _COLORS[diff_type])
            paths = _format_list(result.sorted_paths(diff_type))
            self._write(f"{color}{label}{tc.NORMAL}: {paths}")


__all__ = [
    "LANGUAGES",
    "ReportConfig",
    "Reporter",
]
