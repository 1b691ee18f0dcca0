"""Debug console setup for CLI"""

import logging
from typing import Tuple

from rich.console import Console

import settings
from utils.debug_console import create_debug_console, setup_debug_logger, setup_logging


def setup_consoles(debug: bool) -> Tuple[Console, Console]:
    """
    Configure logging and create the stdout and stderr consoles

    Args:
        debug: Whether --debug was given

    Returns:
        (console, err_console); both mirror output to the debug log when debug is on
    """
    if not debug:
        setup_logging(settings.LOG_LEVEL)
        return Console(), Console(stderr=True)

    debug_logger = setup_debug_logger(settings.DEBUG_LOG_FILE)
    debug_logger.debug("[CLI] ===== CLI SESSION STARTED =====")
    logging.getLogger(__name__).debug(f"Config dir: {settings.CONFIG_DIR}, API base: {settings.API_BASE}")

    console = create_debug_console(debug_enabled=True, debug_logger=debug_logger)
    err_console = create_debug_console(debug_enabled=True, debug_logger=debug_logger, stderr=True)
    return console, err_console
