"""Authentication dependencies shared by all route modules."""

from clubsphere.routes.auth.dependencies import get_current_principal, get_optional_principal

__all__ = ["get_current_principal", "get_optional_principal"]
