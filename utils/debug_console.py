"""Console and logging setup for --debug runs.

With --debug every module logger writes DEBUG records to a log file, and the
Rich console mirrors what it prints to the same file so a debug log reads as
a full transcript of the command.
"""

import io
import logging
import re
from typing import Optional, TextIO

from rich.console import Console as RichConsole

_ANSI_ESCAPE = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


class DebugCapturingConsole(RichConsole):
    """
    Rich Console that also logs a plain-text copy of everything it prints.
    """

    def __init__(self, debug_logger: Optional[logging.Logger] = None, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.debug_logger = debug_logger
        self._log_prefix = "[CONSOLE] "

    def print(self, *objects, **kwargs):
        super().print(*objects, **kwargs)

        if self.debug_logger and self.debug_logger.isEnabledFor(logging.DEBUG):
            plain_text = self._render_to_plain_text(*objects, **kwargs)
            if plain_text.strip():
                self.debug_logger.debug(f"{self._log_prefix}{plain_text}")

    def _render_to_plain_text(self, *objects, **kwargs) -> str:
        """Render objects without markup or ANSI codes"""
        buffer = io.StringIO()
        temp_console = RichConsole(
            file=buffer,
            force_terminal=False,
            width=self.width,
            legacy_windows=False,
        )
        temp_console.print(*objects, **kwargs)
        return _ANSI_ESCAPE.sub("", buffer.getvalue()).rstrip()


def create_debug_console(
    debug_enabled: bool = False,
    debug_logger: Optional[logging.Logger] = None,
    stderr: bool = False,
    file: Optional[TextIO] = None,
) -> RichConsole:
    """
    Create the console for a command run.

    Args:
        debug_enabled: Whether debug mode is enabled
        debug_logger: Logger receiving the plain-text transcript
        stderr: Write to stderr instead of stdout
        file: Explicit output stream (tests)

    Returns:
        DebugCapturingConsole if debug enabled, regular Console otherwise
    """
    if debug_enabled and debug_logger:
        return DebugCapturingConsole(debug_logger=debug_logger, stderr=stderr, file=file)
    return RichConsole(stderr=stderr, file=file)


def setup_debug_logger(log_file: str) -> logging.Logger:
    """
    Route all frontcli logging to ``log_file`` at DEBUG level.

    Args:
        log_file: Path to debug log file (appended to)

    Returns:
        Logger used for the console transcript
    """
    file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.addHandler(file_handler)

    return logging.getLogger("frontcli.console")


def setup_logging(level: str) -> None:
    """Configure stderr logging for normal (non-debug) runs"""
    numeric = getattr(logging, str(level).upper(), logging.WARNING)
    if not isinstance(numeric, int):
        numeric = logging.WARNING
    logging.basicConfig(level=numeric, format=LOG_FORMAT)
