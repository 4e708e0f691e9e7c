from __future__ import annotations

from dataclasses import dataclass, field


OPERATOR_ROLES = frozenset({"admin", "system.admin"})


@dataclass(slots=True)
class AuthContext:
    """Identity of the caller as seen by ownership checks."""

    user_id: str
    correlation_id: str | None = None
    is_super_admin: bool = False
    roles: list[str] = field(default_factory=list)

    @classmethod
    def from_roles(cls, user_id: str, roles: list[str], *, correlation_id: str | None = None) -> AuthContext:
        normalized = {str(role).lower() for role in roles}
        return cls(
            user_id=user_id,
            correlation_id=correlation_id,
            is_super_admin=bool(normalized & OPERATOR_ROLES),
            roles=[str(role) for role in roles],
        )
