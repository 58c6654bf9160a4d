"""Logging configuration"""

import logging

from rich.console import Console
from rich.logging import RichHandler

from .config import Settings

# Third-party loggers that are noisy at INFO during fan-out
QUIET_LOGGERS = ("uvicorn.access", "asyncpg", "httpx", "httpcore")


def _rich_handler(settings: Settings) -> RichHandler:
    # Production logs go to a collector, not a TTY: no colour codes, no wrapping
    console = Console(
        force_terminal=not settings.is_production,
        no_color=settings.is_production,
        width=160 if settings.is_production else 120,
    )
    handler = RichHandler(
        console=console,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
    )
    handler.setFormatter(logging.Formatter(fmt="%(name)s: %(message)s", datefmt="[%X]"))
    return handler


def setup_logging(settings: Settings) -> None:
    """Route the root logger through Rich at the configured level."""
    level = logging.getLevelName(settings.log_level)

    try:
        # force=True: uvicorn installs its own root handlers first
        logging.basicConfig(level=level, handlers=[_rich_handler(settings)], force=True)
    except Exception as e:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
            force=True,
        )
        logging.getLogger(__name__).warning(f"Rich handler unavailable ({e}), using plain logging")

    quiet_level = logging.INFO if level == logging.DEBUG else logging.WARNING
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)

    logging.getLogger(__name__).info(
        f"Log level {settings.log_level}, environment {settings.environment}"
    )
