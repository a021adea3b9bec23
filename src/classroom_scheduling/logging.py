"""structlog setup for the scheduling services.

Services log state transitions (entry created, room live, presence logged)
as key/value events. Each logger carries a ``component`` key naming the
service module that emitted it, so a deployment reading JSON lines can
filter by service without parsing the logger name.
"""

import logging
import sys

import structlog


def setup_logging(json_output: bool = False, log_level: str = "INFO") -> None:
    """Install the processor chain used by build_app().

    Args:
        json_output: Render one JSON object per line (``LOG_JSON``). Otherwise
            use the coloured console renderer.
        log_level: Level name from ``LOG_LEVEL``. Unknown names fall back to INFO.
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if json_output:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.set_exc_info)
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    # sqlite3 and other stdlib users end up on the same stream and level.
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)


def get_logger(name: str) -> structlog.BoundLogger:
    """Logger for ``name``, bound with its last dotted segment as ``component``."""
    return structlog.get_logger(name).bind(component=name.rpartition(".")[2])
