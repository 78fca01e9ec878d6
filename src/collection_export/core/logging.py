"""Loguru logging configuration.

Every line carries the ``export_id`` of the export being validated or
generated; code that works on an export wraps itself in
``logger.contextualize(export_id=...)``. Outside such a block the field
renders as ``-``.
"""

import sys
from pathlib import Path

from loguru import logger

_LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {extra[export_id]} | {name}:{function}:{line} | {message}"
)

LOG_FILE_NAME = "collection-export.log"


def setup_logging(log_level: str = "INFO", log_dir: str | None = None, *, json_logs: bool = False) -> None:
    """Replace Loguru's sinks with the application's.

    Args:
        log_level: Minimum log level to emit.
        log_dir: Optional directory for log files. When set, a rotating
            file sink is added (rotated every 24 hours, retained 7 days).
        json_logs: Emit one JSON object per line on stderr instead of the
            human-readable format.
    """
    level = log_level.upper()
    logger.remove()
    logger.configure(extra={"export_id": "-"})

    if json_logs:
        logger.add(sys.stderr, level=level, serialize=True)
    else:
        logger.add(sys.stderr, level=level, format=_LOG_FORMAT)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path / LOG_FILE_NAME,
            level=level,
            format=_LOG_FORMAT,
            serialize=json_logs,
            rotation="24h",
            retention="7 days",
        )
