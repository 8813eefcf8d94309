"""
Structured logging helpers for security and application lifecycle events.

Authentication and authorization denials are written as single-line JSON
payloads on the `[SECURITY]` logger so they can be filtered and shipped
separately from general application logs. Tokens are never included.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from clubsphere.managers.logging_manager import get_logger

security_logger = get_logger(prefix="[SECURITY]")
lifecycle_logger = get_logger(prefix="[LIFECYCLE]")


def log_security_event(
    event_type: str,
    user_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    success: bool = True,
    details: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Record a security event.

    Args:
        event_type: Short event name, e.g. `authentication_failed`, `guard_denied`.
        user_id: Email of the principal involved, when known.
        ip_address: Client address, when known.
        success: Whether the checked action was admitted.
        details: Additional context (endpoint, resource id, guard name).
    """
    payload = {
        "event_type": event_type,
        "user_id": user_id,
        "ip_address": ip_address,
        "success": success,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "details": details or {},
    }
    line = json.dumps(payload, default=str)
    if success:
        security_logger.info(line)
    else:
        security_logger.warning(line)


def log_application_lifecycle(event: str, details: Optional[Dict[str, Any]] = None) -> None:
    """Record a startup or shutdown milestone, e.g. `database_connected`."""
    payload = {
        "event": event,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "details": details or {},
    }
    lifecycle_logger.info(json.dumps(payload, default=str))
