from subtracker.platform.security.context import AuthContext
from subtracker.platform.security.errors import AuthorizationError, OperatorRequiredError, OwnershipError
from subtracker.platform.security.ownership import apply_owner_filter, is_operator, require_operator, validate_owner_access
from subtracker.platform.security.repository import BaseRepository

__all__ = [
    "AuthContext",
    "AuthorizationError",
    "OperatorRequiredError",
    "OwnershipError",
    "BaseRepository",
    "apply_owner_filter",
    "is_operator",
    "require_operator",
    "validate_owner_access",
]
