# Copyright Red Hat
#
# modcheck/command.py - File modification checker command interface
#
# This file is part of the modcheck project.
#
# SPDX-License-Identifier: Apache-2.0
"""The ``modcheck.command`` module provides both the modcheck command line
interface infrastructure, and a simple procedural interface to the
``modcheck`` library modules.

The procedural interface is used by the ``modcheck`` command line tool,
and may be used by application programs, or interactively in the
Python shell by users who do not require all the features present
in the modcheck object API.
"""
from argparse import ArgumentParser
from typing import Optional
from os.path import basename, exists
import logging
import sys

from modcheck import (
    MODCHECK_DEBUG_SCAN,
    MODCHECK_DEBUG_STORE,
    MODCHECK_DEBUG_DIFF,
    MODCHECK_DEBUG_COMMAND,
    MODCHECK_DEBUG_ALL,
    MODCHECK_SUBSYSTEM_COMMAND,
    ModcheckArgumentError,
    ModcheckNotFoundError,
    SubsystemFilter,
    set_debug_mask,
    ProgressAwareHandler,
    __version__,
)
from modcheck.config import ModcheckConfig
from modcheck.progress import COLOR_MODES, TermControl
from modcheck.report import LANGUAGES, ReportConfig, Reporter
from .fsdiff import (
    DiffResult,
    MalformedPolicy,
    ModificationChecker,
    ScanOptions,
    Snapshot,
    SnapshotStore,
    load_snapshot,
)

#: Output formats accepted by ``modcheck check``
CHECK_FORMATS = ["report", "summary"] + [
    fmt for fmt in DiffResult.FORMATS if fmt != "summary"
]

#: Default configuration file location
DEFAULT_CONFIG_FILE = "/etc/modcheck/modcheck.conf"

#: Roots shorter than this are accepted with a warning
_SHORT_ROOT_LEN = 4

#: Exit status for a successful check that found changes (--exit-status)
CHANGES_FOUND_STATUS = 2

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_command(msg, *args, **kwargs):
    """A wrapper for command subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": MODCHECK_SUBSYSTEM_COMMAND}, **kwargs)


_DEFAULT_LOG_LEVEL = logging.WARNING
_CONSOLE_HANDLER = None


def check_root_input(root: Optional[str]) -> Optional[str]:
    """
    Validate a root directory argument before running a check.

    :param root: The root directory as given by the user.
    :type root: ``Optional[str]``
    :returns: A warning message for a suspicious value, or ``None``.
    :rtype: ``Optional[str]``
    :raises ModcheckArgumentError: If ``root`` is empty.
    """
    if not root:
        raise ModcheckArgumentError(
            "Please specify the full path of the directory to check modification."
        )
    if len(root) < _SHORT_ROOT_LEN:
        return "Isn't the path too short?"
    return None


def check_directory(
    root: str,
    store: Optional[SnapshotStore] = None,
    options: Optional[ScanOptions] = None,
    reporter: Optional[Reporter] = None,
    save: bool = True,
    term_control: Optional[TermControl] = None,
) -> DiffResult:
    """
    Check ``root`` for modifications since the state saved in ``store``.

    :param root: The directory to check.
    :type root: ``str``
    :param store: The persisted state location.
    :type store: ``Optional[SnapshotStore]``
    :param options: Options to control scanning.
    :type options: ``Optional[ScanOptions]``
    :param reporter: An optional reporting channel.
    :type reporter: ``Optional[Reporter]``
    :param save: Persist the new state.
    :type save: ``bool``
    :param term_control: An optional ``TermControl`` for progress output.
    :type term_control: ``Optional[TermControl]``
    :returns: The differences found.
    :rtype: ``DiffResult``
    """
    checker = ModificationChecker(
        store=store,
        options=options,
        reporter=reporter,
        save=save,
        term_control=term_control,
    )
    return checker.check(root)


def show_state(state_file: str, json: bool = False):
    """
    Print the directory state persisted in ``state_file``.

    :param state_file: The path to the state file.
    :type state_file: ``str``
    :param json: Display output in JSON notation.
    :type json: ``bool``
    :raises ModcheckNotFoundError: If ``state_file`` cannot be read.
    :raises ModcheckParseError: If ``state_file`` is malformed.
    """
    snapshot: Snapshot = load_snapshot(state_file, malformed=MalformedPolicy.FAIL)
    if snapshot.missing:
        raise ModcheckNotFoundError(f"Cannot read directory state '{state_file}'")
    if json:
        print(snapshot.json(pretty=True))
    elif snapshot:
        print(snapshot)


def _load_config(cmd_args) -> ModcheckConfig:
    if cmd_args.config and not exists(cmd_args.config):
        raise ModcheckNotFoundError(
            f"Configuration file '{cmd_args.config}' not found"
        )
    config = ModcheckConfig.from_file(cmd_args.config or DEFAULT_CONFIG_FILE)
    _log_debug_command("Using configuration %s", config)
    return config


def _check_cmd(cmd_args):
    """
    Check modification command handler.

    Scan a directory, compare it with the previous state and save the new
    state.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    output_format = cmd_args.output_format
    pretty = cmd_args.pretty

    if pretty and output_format != "json":
        _log_error("Option --pretty only supported with --format=json")
        return 1

    try:
        warning = check_root_input(cmd_args.root)
    except ModcheckArgumentError as err:
        _log_error("%s", err)
        return 1
    if warning:
        _log_warn("%s: %s", cmd_args.root, warning)

    config = _load_config(cmd_args)

    color = cmd_args.color or config.report.color
    report_config = ReportConfig(
        language=cmd_args.language or config.report.language,
        color=color,
    )
    malformed = (
        MalformedPolicy(cmd_args.malformed) if cmd_args.malformed else config.malformed
    )
    store = SnapshotStore(
        cmd_args.state_file or config.state_file,
        malformed=malformed,
        locking=config.lock and not cmd_args.no_lock,
    )
    options = ScanOptions.from_cmd_args(cmd_args)

    reporter = Reporter(report_config) if output_format == "report" else None
    progress_tc = TermControl(term_stream=sys.stderr, color=color)

    result = check_directory(
        cmd_args.root,
        store=store,
        options=options,
        reporter=reporter,
        save=not cmd_args.no_save,
        term_control=progress_tc,
    )

    if output_format == "summary":
        print(result.summary(color=color))
    elif output_format == "paths":
        if result.changed:
            print("\n".join(result.paths()))
    elif output_format == "short":
        if result.changed:
            print(result.short())
    elif output_format == "json":
        print(result.json(pretty=pretty))

    if cmd_args.exit_status and result.changed:
        return CHANGES_FOUND_STATUS
    return 0


def _show_cmd(cmd_args):
    """
    Show directory state command handler.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    show_state(cmd_args.state_file, json=cmd_args.json)
    return 0


def setup_logging(cmd_args):
    """
    Set up modcheck logging.
    """
    # pylint: disable=global-statement
    global _CONSOLE_HANDLER
    level = _DEFAULT_LOG_LEVEL
    if cmd_args.verbose and cmd_args.verbose > 1:
        level = logging.DEBUG
    elif cmd_args.verbose and cmd_args.verbose > 0:
        level = logging.INFO

    modcheck_log = logging.getLogger("modcheck")
    formatter = logging.Formatter("%(levelname)s - %(message)s")
    modcheck_log.setLevel(level)
    if modcheck_log.hasHandlers():
        modcheck_log.handlers.clear()

    # Subsystem log filtering
    _modcheck_subsystem_filter = SubsystemFilter("modcheck")

    # Main console handler
    _CONSOLE_HANDLER = ProgressAwareHandler()

    _CONSOLE_HANDLER.setLevel(level)
    _CONSOLE_HANDLER.setFormatter(formatter)
    _CONSOLE_HANDLER.addFilter(_modcheck_subsystem_filter)

    modcheck_log.addHandler(_CONSOLE_HANDLER)


def shutdown_logging():
    """
    Shut down modcheck logging.
    """
    logging.shutdown()


def set_debug(debug_arg):
    """
    Set debugging mask from command line argument.
    """
    if not debug_arg:
        return

    mask_map = {
        "scan": MODCHECK_DEBUG_SCAN,
        "store": MODCHECK_DEBUG_STORE,
        "diff": MODCHECK_DEBUG_DIFF,
        "command": MODCHECK_DEBUG_COMMAND,
        "all": MODCHECK_DEBUG_ALL,
    }

    mask = 0
    for name in debug_arg.split(","):
        if name not in mask_map:
            raise ValueError(f"Unknown debug option: {name}")
        mask |= mask_map[name]
    set_debug_mask(mask)


def _add_scan_args(parser):
    parser.add_argument(
        "-x",
        "--exclude",
        dest="exclude_patterns",
        metavar="PATTERN",
        action="append",
        help="Exclude paths matching the glob PATTERN (relative to ROOT)",
    )
    parser.add_argument(
        "-i",
        "--include",
        dest="file_patterns",
        metavar="PATTERN",
        action="append",
        help="Only check files matching the glob PATTERN (relative to ROOT)",
    )
    parser.add_argument(
        "-r",
        "--relative",
        dest="relative_paths",
        action="store_true",
        help="Record paths relative to ROOT instead of absolute paths",
    )
    parser.add_argument(
        "-L",
        "--follow-symlinks",
        action="store_true",
        help="Descend into symbolic links to directories",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Do not display progress while scanning",
    )


def _add_check_args(parser):
    parser.add_argument(
        "root",
        metavar="ROOT",
        type=str,
        help="The full path of the directory to check",
    )
    parser.add_argument(
        "-s",
        "--state-file",
        metavar="STATE_FILE",
        type=str,
        help="The file holding the previous directory state",
    )
    parser.add_argument(
        "-f",
        "--format",
        dest="output_format",
        choices=CHECK_FORMATS,
        default="report",
        help="Output format for the check result",
    )
    parser.add_argument(
        "--pretty",
        action="store_true",
        help="Indent JSON output",
    )
    parser.add_argument(
        "--color",
        choices=COLOR_MODES,
        default=None,
        help="Control use of color in output",
    )
    parser.add_argument(
        "-l",
        "--language",
        choices=LANGUAGES,
        default=None,
        help="Language of report messages",
    )
    parser.add_argument(
        "-n",
        "--no-save",
        action="store_true",
        help="Do not save the new directory state",
    )
    parser.add_argument(
        "--no-lock",
        action="store_true",
        help="Do not lock the state file during the check",
    )
    parser.add_argument(
        "--malformed",
        choices=[policy.value for policy in MalformedPolicy],
        default=None,
        help="Fail on a malformed state file or treat it as empty",
    )
    parser.add_argument(
        "-e",
        "--exit-status",
        action="store_true",
        help=f"Exit with status {CHANGES_FOUND_STATUS} if modifications were found",
    )
    _add_scan_args(parser)


CHECK_CMD = "check"
SHOW_CMD = "show"


def main(args):
    """
    Main entry point for modcheck.
    """
    parser = ArgumentParser(
        description="File Modification Checker", prog=basename(args[0])
    )

    # Global arguments
    parser.add_argument(
        "-d",
        "--debug",
        metavar="DEBUGOPTS",
        type=str,
        help="A list of debug options to enable",
    )
    parser.add_argument("-v", "--verbose", help="Enable verbose output", action="count")
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        help="Report the version number of modcheck",
        version=__version__,
    )
    parser.add_argument(
        "-c",
        "--config",
        metavar="CONFIG",
        type=str,
        help=f"Configuration file to use (default: {DEFAULT_CONFIG_FILE})",
    )
    # Subparser for command
    command_subparser = parser.add_subparsers(dest="command", help="Command")

    check_parser = command_subparser.add_parser(
        CHECK_CMD, help="Check a directory for modifications"
    )
    _add_check_args(check_parser)
    check_parser.set_defaults(func=_check_cmd)

    show_parser = command_subparser.add_parser(
        SHOW_CMD, help="Display a saved directory state"
    )
    show_parser.add_argument(
        "state_file",
        metavar="STATE_FILE",
        type=str,
        help="The directory state file to display",
    )
    show_parser.add_argument(
        "--json",
        action="store_true",
        help="Display output in JSON notation",
    )
    show_parser.set_defaults(func=_show_cmd)

    cmd_args = parser.parse_args(args[1:])

    status = 1

    try:
        set_debug(cmd_args.debug)
    except ValueError as err:
        print(err)
        parser.print_help()
        return status

    setup_logging(cmd_args)

    _log_debug_command("Parsed %s", " ".join(args[1:]))

    if "func" not in cmd_args:
        parser.print_help()
        return status

    if cmd_args.debug:
        status = cmd_args.func(cmd_args)
    else:
        try:
            status = cmd_args.func(cmd_args)
        # pylint: disable=broad-except
        except KeyboardInterrupt:  # pragma: no cover
            _log_info("Exiting on user cancel")
        except Exception as err:
            _log_error("Command failed: %s", err)

    shutdown_logging()
    return status


def console_main():
    """
    Console script entry point for modcheck.
    """
    sys.exit(main(sys.argv))


# vim: set et ts=4 sw=4 :
