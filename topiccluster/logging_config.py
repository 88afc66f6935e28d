"""Structured logging setup shared by the daemon and the scripts."""
import logging
from pathlib import Path
from typing import List, Optional

import structlog

from topiccluster.config.settings import settings


_installed_handlers: List[logging.Handler] = []


def setup_logging(debug: bool = False, log_file: Optional[str] = None) -> None:
    """Route structlog through stdlib logging, to stderr and optionally a file."""
    level = logging.DEBUG if debug else getattr(logging, settings.log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Handlers are installed once per process; later calls only adjust the level
    if not _installed_handlers:
        formatter = logging.Formatter('%(message)s')
        handlers = [logging.StreamHandler()]

        log_file = log_file or settings.log_file
        if log_file:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_file))

        for handler in handlers:
            handler.setFormatter(formatter)
            root_logger.addHandler(handler)
        _installed_handlers.extend(handlers)

    for handler in _installed_handlers:
        handler.setLevel(level)

    # Model downloads are noisy at INFO
    if not debug:
        logging.getLogger('sentence_transformers').setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
