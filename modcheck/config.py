# Copyright Red Hat
#
# modcheck/config.py - File modification checker configuration
#
# This file is part of the modcheck project.
#
# SPDX-License-Identifier: Apache-2.0
"""
INI-style configuration for the modcheck command.

Example ``modcheck.conf``::

    [global]
    state_file = /var/lib/build/files.txt
    malformed_state = empty
    lock = yes

    [report]
    language = fr
    color = never
"""
from configparser import ConfigParser, Error as ConfigParserError
from dataclasses import dataclass
from os.path import exists
import logging

from modcheck import DEFAULT_STATE_FILE, ModcheckArgumentError
from modcheck.fsdiff.store import MalformedPolicy
from modcheck.report import ReportConfig

_log = logging.getLogger(__name__)

_log_debug = _log.debug

_MODCHECK_CFG_GLOBAL = "global"
_MODCHECK_CFG_STATE_FILE = "state_file"
_MODCHECK_CFG_MALFORMED = "malformed_state"
_MODCHECK_CFG_LOCK = "lock"

_MODCHECK_CFG_REPORT = "report"
_MODCHECK_CFG_LANGUAGE = "language"
_MODCHECK_CFG_COLOR = "color"


@dataclass
class ModcheckConfig:
    """
    Modcheck configuration.
    """

    state_file: str = DEFAULT_STATE_FILE
    malformed: MalformedPolicy = MalformedPolicy.FAIL
    lock: bool = True
    report: ReportConfig = ReportConfig()

    @classmethod
    def from_file(cls, config_file: str) -> "ModcheckConfig":
        """
        Load ``ModcheckConfig`` from an INI-style configuration file located at
        ``config_file``. A missing file yields the default configuration.

        :param config_file: path to modcheck.conf
        :type config_file: ``str``.
        :returns: A ``ModcheckConfig`` instance initialised from ``config_file``.
        :rtype: ``ModcheckConfig``
        :raises ModcheckArgumentError: If the file is not valid INI syntax or
                                       holds an invalid value.
        """
        if not exists(config_file):
            return ModcheckConfig()

        _log_debug("Loading configuration from '%s'", config_file)
        cfg = ConfigParser()
        try:
            cfg.read([config_file], encoding="utf8")
        except ConfigParserError as err:
            raise ModcheckArgumentError(
                f"Invalid configuration file '{config_file}': {err}"
            ) from err

        state_file = cfg.get(
            _MODCHECK_CFG_GLOBAL, _MODCHECK_CFG_STATE_FILE, fallback=DEFAULT_STATE_FILE
        )
        malformed = cfg.get(
            _MODCHECK_CFG_GLOBAL,
            _MODCHECK_CFG_MALFORMED,
            fallback=MalformedPolicy.FAIL.value,
        )
        try:
            lock = cfg.getboolean(_MODCHECK_CFG_GLOBAL, _MODCHECK_CFG_LOCK, fallback=True)
            malformed = MalformedPolicy(malformed)
        except ValueError as err:
            raise ModcheckArgumentError(
                f"Invalid value in configuration file '{config_file}': {err}"
            ) from err

        report = ReportConfig(
            language=cfg.get(_MODCHECK_CFG_REPORT, _MODCHECK_CFG_LANGUAGE, fallback="en"),
            color=cfg.get(_MODCHECK_CFG_REPORT, _MODCHECK_CFG_COLOR, fallback="auto"),
        )

        return ModcheckConfig(
            state_file=state_file, malformed=malformed, lock=lock, report=report
        )


__all__ = [
    "ModcheckConfig",
]
