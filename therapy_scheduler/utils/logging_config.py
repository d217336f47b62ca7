"""
Logging setup for the scheduling service.

Container runtimes (Fly.io, Kubernetes, Docker) stamp every line themselves, so
the formatter drops asctime there. LOG_LEVEL overrides the default level.
"""
import os
import sys
import logging
from typing import Optional

IS_CONTAINERIZED = bool(
    os.environ.get('FLY_APP_NAME')
    or os.environ.get('KUBERNETES_SERVICE_HOST')
    or os.path.exists('/.dockerenv')
)

CONTAINER_FORMAT = "[%(name)s] %(levelname)s: %(message)s"
LOCAL_FORMAT = "[%(asctime)s] [%(name)s] %(levelname)s: %(message)s"

# Per-request chatter from the HTTP and database clients
NOISY_LOGGERS = ('httpx', 'httpcore', 'hpack', 'postgrest', 'redis')


def _resolve_level(level: Optional[int]) -> int:
    if level is not None:
        return level
    name = os.environ.get('LOG_LEVEL', 'INFO').upper()
    return getattr(logging, name, logging.INFO)


def configure_logging(level: Optional[int] = None, force: bool = False) -> None:
    """
    Install a stdout handler on the root logger.

    Args:
        level: Logging level; LOG_LEVEL env var or INFO when omitted
        force: Replace handlers that are already installed
    """
    root = logging.getLogger()
    if root.handlers and not force:
        return

    for existing in list(root.handlers):
        root.removeHandler(existing)

    level = _resolve_level(level)
    if IS_CONTAINERIZED:
        formatter = logging.Formatter(CONTAINER_FORMAT)
    else:
        formatter = logging.Formatter(LOCAL_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root.setLevel(level)
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger(__name__).debug(f"Logging configured at {logging.getLevelName(level)}")
