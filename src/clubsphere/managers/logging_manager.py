"""
# Logging Manager

Central access point for application loggers.

Every module obtains its logger through `get_logger()`. Loggers share the
`clubsphere` hierarchy so a single handler configuration covers the whole
application; an optional `prefix` tags each record with the component that
emitted it (e.g. `[Club Routes]`, `[Consistency]`).

```python
logger = get_logger(prefix="[Lifecycle]")
logger.info("Transitioned %s %s to %s", kind, entity_id, new_status)
# 2026-01-01 12:00:00 | INFO | clubsphere | [Lifecycle] Transitioned membership ... to active
```
"""

import logging
import sys
from typing import Any, MutableMapping, Optional, Tuple

ROOT_LOGGER_NAME = "clubsphere"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_configured = False


class PrefixedLogger(logging.LoggerAdapter):
    """Logger adapter that prepends a fixed component prefix to every message."""

    def __init__(self, logger: logging.Logger, prefix: str):
        super().__init__(logger, {})
        self.prefix = prefix

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        return f"{self.prefix} {msg}", kwargs


def configure_logging(level: Optional[str] = None) -> None:
    """
    Attach a stream handler to the application root logger.

    Safe to call more than once; only the first call installs a handler.

    Args:
        level: Log level name. Defaults to `settings.LOG_LEVEL`.
    """
    global _configured
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if level is None:
        from clubsphere.config import settings

        level = settings.LOG_LEVEL
    root.setLevel(level.upper())
    if _configured:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.propagate = False
    _configured = True


def get_logger(name: str = ROOT_LOGGER_NAME, prefix: Optional[str] = None):
    """
    Return an application logger.

    Args:
        name: Logger name. Names outside the `clubsphere` hierarchy are nested under it.
        prefix: Optional component tag prepended to every message.

    Returns:
        A `logging.Logger`, or a `PrefixedLogger` adapter when `prefix` is given.
    """
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    logger = logging.getLogger(name)
    if prefix:
        return PrefixedLogger(logger, prefix)
    return logger
