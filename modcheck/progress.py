# Copyright Red Hat
#
# modcheck/progress.py - File modification checker terminal busy indicator
#
# This file is part of the modcheck project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Terminal control and busy indicators for long running directory scans.
"""
from typing import ClassVar, Dict, List, Optional, TextIO, Union
from datetime import datetime, timedelta
from abc import ABC, abstractmethod
import curses
import sys
import os
import re

from modcheck import register_progress, unregister_progress

#: Default frames-per-second for Throbber classes
DEFAULT_FPS = 10

#: Microseconds per second
_USECS_PER_SEC = 1000000

#: Valid values for the ``color`` argument of ``TermControl``.
COLOR_MODES = ("auto", "always", "never")


class TermControl:
    """
    Portable terminal control sequences for the current output stream.

    Capabilities are looked up with the curses terminfo interface and stored
    as string attributes that can be embedded directly in output:

        >>> term = TermControl()
        >>> print("Modified: " + term.YELLOW + "a.txt" + term.NORMAL)

    When the stream is not a terminal, or terminfo setup fails, every
    attribute is the empty string and output is left undecorated. The
    ``render()`` method expands ``${NAME}`` templates in the same way.
    """

    # Cursor movement:
    BOL: str = ""  #: Move the cursor to the beginning of the line
    UP: str = ""  #: Move the cursor up one line
    RIGHT: str = ""  #: Move the cursor right one char

    # Deletion:
    CLEAR_EOL: str = ""  #: Clear to the end of the line.

    # Output modes:
    BOLD: str = ""  #: Turn on bold mode
    NORMAL: str = ""  #: Turn off all modes

    # Cursor display:
    HIDE_CURSOR: str = ""  #: Make the cursor invisible
    SHOW_CURSOR: str = ""  #: Make the cursor visible

    # Foreground colors:
    BLACK: str = ""  #: Black foreground color
    BLUE: str = ""  #: Blue foreground color
    GREEN: str = ""  #: Green foreground color
    CYAN: str = ""  #: Cyan foreground color
    RED: str = ""  #: Red foreground color
    MAGENTA: str = ""  #: Magenta foreground color
    YELLOW: str = ""  #: Yellow foreground color
    WHITE: str = ""  #: White foreground color

    # Terminal size:
    columns: Optional[int] = None  #: Terminal width
    lines: Optional[int] = None  #: Terminal height

    _STRING_CAPABILITIES: List[str] = (
        """
    BOL:cr UP:cuu1 RIGHT:cuf1 CLEAR_EOL:el BOLD:bold NORMAL:sgr0
    HIDE_CURSOR:civis SHOW_CURSOR:cnorm""".split()
    )
    _ANSI_COLORS: List[str] = "BLACK RED GREEN YELLOW BLUE MAGENTA CYAN WHITE".split()

    def __init__(self, term_stream: Optional[TextIO] = None, color: str = "auto"):
        """
        Initialise terminal capabilities for ``term_stream``.

        :param term_stream: Output stream to probe for capabilities. Defaults
                            to ``sys.stdout``.
        :type term_stream: ``Optional[TextIO]``
        :param color: A string to control color rendering: "auto", "always", or
                      "never".
        :type color: ``str``
        :raises ValueError: If ``color`` is not a known color mode.
        """
        if color not in COLOR_MODES:
            raise ValueError(f"Unknown color mode: {color}")

        if term_stream is None:
            term_stream = sys.stdout

        self.term_stream = term_stream
        self.color = color

        if color != "always":
            if not hasattr(term_stream, "isatty") or not term_stream.isatty():
                return

        # curses.error is not catchable as an ordinary exception class here.
        try:
            curses.setupterm()
        except BaseException as err:  # pylint: disable=broad-exception-caught
            if isinstance(err, (KeyboardInterrupt, SystemExit)):  # pragma: no cover
                raise
            if color == "always":
                self._force_ansi()
            return

        self.columns = curses.tigetnum("cols")
        self.lines = curses.tigetnum("lines")

        for capability in self._STRING_CAPABILITIES:
            (attr, cap_name) = capability.split(":")
            setattr(self, attr, self._tigetstr(cap_name) or "")

        if color != "never":
            self._init_colors()

    def _force_ansi(self):
        """
        Use plain ANSI color escapes when terminfo is unavailable but color
        output was explicitly requested.
        """
        for i, color in enumerate(self._ANSI_COLORS):
            setattr(self, color, f"\033[0;3{i}m")
        self.NORMAL = "\033[0m"

    def _init_colors(self):
        """
        Initialise foreground color sequences from terminfo.
        """
        set_fg_ansi = self._tigetstr("setaf")
        if not set_fg_ansi:
            return
        set_fg_ansi = set_fg_ansi.encode("utf8")
        for i, color in enumerate(self._ANSI_COLORS):
            setattr(self, color, curses.tparm(set_fg_ansi, i).decode("utf8") or "")

    def _tigetstr(self, cap_name):
        # Strip terminfo padding delays of the form "$<2>".
        cap = curses.tigetstr(cap_name)
        cap = cap.decode(encoding="utf8") if cap else ""
        return cap.split("$", maxsplit=1)[0]

    def render(self, template):
        """
        Replace each ``${NAME}`` substitution in ``template`` with the
        corresponding control string, or the empty string if the terminal
        does not define it. ``$$`` is rendered as a literal ``$``.

        :param template: Template string containing ${NAME} patterns.
        :type template: ``str``
        :returns: Rendered string with substitutions applied.
        :rtype: ``str``
        """
        return re.sub(r"\$\$|\${\w+}", self._render_sub, template)

    def _render_sub(self, match):
        s = match.group()
        if s == "$$":
            return "$"
        return getattr(self, s[2:-1], "")


def _flush_with_broken_pipe_guard(stream: TextIO) -> None:
    """
    Flush ``stream``, redirecting it to ``/dev/null`` and exiting if the
    reader has gone away.

    :param stream: The stream to flush.
    :type stream: TextIO
    """
    if stream is None or not hasattr(stream, "flush"):
        return
    try:
        stream.flush()
    except BrokenPipeError as err:
        devnull = os.open(os.devnull, os.O_WRONLY)
        try:
            if hasattr(stream, "fileno"):
                os.dup2(devnull, stream.fileno())
        finally:
            os.close(devnull)
        raise SystemExit() from err


class ThrobberBase(ABC):
    """
    An abstract busy indicator. Directory scans do not know the number of
    entries in advance, so liveness is shown with a rotating frame rather
    than a progress bar.
    """

    def __init__(self, header: str, register: bool = True):
        """
        Initialise base throbber state.

        :param header: The header string to print before the frames.
        :type header: ``str``
        :param register: Register this ``ThrobberBase`` for log callbacks.
        :type register: ``bool``
        """
        self.header: str = header
        self.frames: Union[str, List[str]] = r"."
        self.term: Optional[TermControl] = None
        self.stream: Optional[TextIO] = None
        self.started: bool = False
        self.first_update: bool = True
        self.nr_frames: int = len(self.frames)
        self.fps: int = DEFAULT_FPS
        self._frame_index: int = 0
        self._interval_us: int = round((1.0 / self.fps) * _USECS_PER_SEC)
        self._last: Optional[datetime] = None
        self.registered: bool = False
        self.register: bool = register

    def reset_position(self):
        """Mark throbber as displaced by external output."""
        self.first_update = True

    def start(self):
        """
        Begin a throbber run.
        """
        self.started = True
        self._last = datetime.now() - timedelta(microseconds=self._interval_us)

        if self.register:
            register_progress(self)

        self._do_start()
        self.throb()

    def _do_start(self):
        """
        Hook invoked when the throbber begins.
        """
        print(f"{self.header}: ..", end="", file=self.stream)

    def _check_started(self, step: str):
        """
        Validate that the throbber is active.

        :param step: The throbber step (method name) that is active.
        :type step: ``str``
        :raises ValueError: If the throbber has not been started.
        """
        theclass = self.__class__.__name__
        if not self.started:
            raise ValueError(f"{theclass}.{step}() called before start()")
        if self._last is None:
            raise ValueError(
                f"{theclass}.{step}() invalid throbber state: "
                "self.started=True but self._last=None"
            )

    def throb(self):
        """
        Maintain liveness for this throbber and draw a frame if the frame
        interval has elapsed.
        """
        self._check_started("throb")
        now = datetime.now()
        if (now - self._last).total_seconds() * _USECS_PER_SEC >= self._interval_us:
            self._do_throb()
            _flush_with_broken_pipe_guard(self.stream)
            self._last = now
            self._frame_index = (self._frame_index + 1) % self.nr_frames
            self.first_update = False

    @abstractmethod
    def _do_throb(self):
        """
        Hook for subclasses to update the throbber display.
        """

    def end(self, message: Optional[str] = None):
        """
        End the throbber run and finalise the display.

        :param message: An optional completion message.
        :type message: ``Optional[str]``
        """
        self._check_started("end")
        self._do_end(message=message)
        _flush_with_broken_pipe_guard(self.stream)
        self.started = False
        self._last = None
        if self.registered:
            unregister_progress(self)

    def _do_end(self, message: Optional[str] = None):
        """
        Perform final end-of-throbber handling.

        :param message: An optional completion message.
        :type message: ``Optional[str]``
        """
        print(f"\n{message}" if message else "", file=self.stream)


class Throbber(ThrobberBase):
    """
    A one line Unicode or ASCII throbber for capable terminals.
    """

    STYLES: ClassVar[Dict[str, Union[str, List[str]]]] = {
        "ascii": r"-\|/",
        "wave": "⠁⠂⠄⡀⢀⠠⠐⠈",
        "braillewave": "⣾⣽⣻⢿⡿⣟⣯⣷",
        "arrowspinner": "←↖↑↗→↘↓↙",
        "braillecircle": ["⢎⡰", "⢎⡡", "⢎⡑", "⢎⠱", "⠎⡱", "⢊⡱", "⢌⡱", "⢆⡱"],
    }

    def __init__(
        self,
        header: str,
        register: bool = True,
        style: Optional[str] = None,
        term_stream: Optional[TextIO] = None,
        no_clear: bool = False,
        tc: Optional[TermControl] = None,
    ):
        """
        Initialise a new one line throbber instance.

        :param header: The header string to print.
        :type header: ``str``
        :param register: Register this ``Throbber`` for log callbacks.
        :type register: ``bool``
        :param style: A throbber style name. Defaults to "wave". ASCII frames
                      are used if the stream cannot encode the style.
        :type style: ``Optional[str]``
        :param term_stream: The terminal stream to write to.
        :type term_stream: ``TextIO``
        :param no_clear: Leave the final frame line on the terminal when
                         ``end()`` is called.
        :type no_clear: ``bool``
        :param tc: An optional ``TermControl`` already bound to a stream. Takes
                   precedence over ``term_stream``.
        :type tc: ``Optional[TermControl]``
        :raises ValueError: If ``style`` is not a known throbber style.
        """
        super().__init__(header, register=register)

        if style is not None and style not in Throbber.STYLES:
            raise ValueError(f"Unknown Throbber style: {style}")

        style = style or "wave"

        if tc is not None:
            term_stream = tc.term_stream

        self.term: Optional[TermControl] = tc or TermControl(term_stream=term_stream)
        self.stream: Optional[TextIO] = term_stream or sys.stdout
        self.no_clear = no_clear

        ascii_frames = self.STYLES["ascii"]
        encoding = getattr(self.stream, "encoding", None)
        if not encoding:
            self.frames = ascii_frames
        else:
            try:
                unicode_frames = self.STYLES[style]
                if isinstance(unicode_frames, str):
                    unicode_frames.encode(encoding)
                else:
                    for frame in unicode_frames:
                        frame.encode(encoding)
                self.frames = unicode_frames
            except UnicodeEncodeError:
                self.frames = ascii_frames
        self.nr_frames = len(self.frames)

    def _do_start(self):
        """
        Hide the cursor: ``_do_throb()`` draws the header.
        """
        print(f"{self.term.HIDE_CURSOR}", end="", file=self.stream)

    def _do_throb(self):
        """
        Replace the previous frame with the current one.
        """
        if not self.first_update:
            print(
                self.term.BOL + self.term.UP + self.term.CLEAR_EOL,
                end="",
                file=self.stream,
            )

        print(f"{self.header}: ", end="", file=self.stream)
        print(
            f"{self.term.GREEN}{self.frames[self._frame_index]}{self.term.NORMAL}\n",
            end="",
            file=self.stream,
        )

    def _do_end(self, message: Optional[str] = None):
        """
        Erase the last frame and print ``message`` after the header.
        """
        if not self.first_update and not self.no_clear:
            header_width = len(self.header) + 2
            print(
                self.term.BOL
                + self.term.UP
                + header_width * self.term.RIGHT
                + self.term.CLEAR_EOL,
                end="",
                file=self.stream,
            )

        print(self.term.SHOW_CURSOR, end="", file=self.stream)

        print(f"{message}\n" if message else "", end="", file=self.stream)


class SimpleThrobber(ThrobberBase):
    """
    A throbber for streams that are not terminals: prints one dot per frame.
    """

    def __init__(
        self, header: str, register: bool = True, term_stream: Optional[TextIO] = None
    ):
        super().__init__(header, register=register)
        self.stream = term_stream or sys.stdout

    def _do_throb(self):
        print(self.frames[self._frame_index], end="", file=self.stream)


class NullThrobber(ThrobberBase):
    """
    A throbber class that produces no output.
    """

    def _do_start(self):
        """No-op start for NullThrobber."""

    def _do_throb(self):
        """No-op throb hook for NullThrobber."""

    def throb(self):
        """Silent throb for NullThrobber."""
        self._check_started("throb")

    def end(self, message: Optional[str] = None):
        """Silent end for NullThrobber."""
        self._check_started("end")
        self.started = False
        self._last = None
        if self.registered:
            unregister_progress(self)


class ProgressFactory:
    """
    A factory for constructing busy indicators.
    """

    @staticmethod
    def get_throbber_styles() -> List[str]:
        """
        Return a list of known ``Throbber`` style strings.

        :returns: A list of throbber styles.
        :rtype: ``List[str]``
        """
        return list(Throbber.STYLES.keys())

    @staticmethod
    def get_throbber(
        header: str,
        quiet: bool = False,
        style: Optional[str] = None,
        term_stream: Optional[TextIO] = None,
        term_control: Optional[TermControl] = None,
        no_clear: bool = False,
        register: bool = True,
    ) -> ThrobberBase:
        """
        Return an appropriate ``ThrobberBase`` implementation for the output
        stream: nothing when ``quiet`` is set, dots for non-terminals and an
        animated frame for terminals.

        :param header: The throbber header.
        :type header: ``str``
        :param quiet: Suppress all output.
        :type quiet: ``bool``
        :param style: An optional throbber style name.
        :type style: ``Optional[str]``
        :param term_stream: An optional output stream. Defaults to
                            ``sys.stdout``.
        :type term_stream: ``Optional[TextIO]``
        :param term_control: An optional ``TermControl`` object to use for the
                             throbber.
        :type term_control: ``Optional[TermControl]``
        :param no_clear: Leave the final frame line on the terminal.
        :type no_clear: ``bool``
        :param register: Register the new object with the log system for
                         notification callbacks.
        :type register: ``bool``
        :returns: An appropriate throbber implementation.
        :rtype: ``ThrobberBase``
        """
        if term_control:
            term_stream = term_control.term_stream

        term_stream = term_stream or sys.stdout
        if quiet:
            return NullThrobber(header, register=register)
        if not hasattr(term_stream, "isatty") or not term_stream.isatty():
            return SimpleThrobber(header, register=register, term_stream=term_stream)
        return Throbber(
            header,
            register=register,
            style=style,
            term_stream=term_stream,
            no_clear=no_clear,
            tc=term_control,
        )


__all__ = [
    "COLOR_MODES",
    "DEFAULT_FPS",
    "NullThrobber",
    "ProgressFactory",
    "SimpleThrobber",
    "TermControl",
    "ThrobberBase",
    "Throbber",
]
