from __future__ import annotations


class AuthorizationError(Exception):
    """Base authorization error for ownership enforcement failures."""


class OwnershipError(AuthorizationError):
    """Raised when a caller touches a record owned by another user."""

    def __init__(self, resource: str, action: str) -> None:
        self.resource = resource
        self.action = action
        super().__init__(f"You are not authorized to {action} this {resource.rsplit('.', 1)[-1]}")


class OperatorRequiredError(AuthorizationError):
    """Raised when an operator-wide view is requested by a regular user."""

    def __init__(self, resource: str) -> None:
        self.resource = resource
        super().__init__(f"Operator access required for resource '{resource}'")
