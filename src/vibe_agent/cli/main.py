# src/vibe_agent/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds the Session, starts the execution loop in a background thread
and runs the console REPL in the main thread.
"""

from __future__ import annotations

import logging

from ..cli.bootstrap import create_session, start_runtime
from ..config import get_settings
from ..errors import ConfigurationError
from ..connectors.console_connector import run_console_loop
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    # VIBE_LOG_LEVEL=DEBUG puts every engine logger on the console, store chatter included.
    console_levels = {"vibe_agent": logging.DEBUG} if console_level <= logging.DEBUG else None
    log_file = setup_logging(log_dir=settings.data_dir, console_level=console_level, console_levels=console_levels)

    # keep noisy libs readable
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)

    logger.info("Starting %s... (full log: %s)", settings.app_name, log_file)

    # IMPORTANT: reuse same settings object
    try:
        session = create_session(settings=settings)
    except ConfigurationError as e:
        logger.error("%s", e.message)
        raise SystemExit(2) from e
    runtime = start_runtime(session)

    try:
        run_console_loop(runtime)
    finally:
        runtime.close()
        logger.info("Bye.")


if __name__ == "__main__":
    main()
