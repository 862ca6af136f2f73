import logging

import structlog

from reviewbox.config import settings


def configure_logging(level: str = None, json_output: bool = None) -> None:
    """Configure structlog for application-wide logging.

    Standard logging is initialised at the configured level and structlog
    emits ISO timestamped events, rendered as JSON unless disabled.
    """
    level_name = (level or settings.log_level).upper()
    use_json = settings.log_json if json_output is None else json_output

    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format="%(message)s")
    renderer = structlog.processors.JSONRenderer() if use_json else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
    )
