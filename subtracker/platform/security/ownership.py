from __future__ import annotations

from typing import Any

from sqlalchemy.sql import Select

from subtracker import audit
from subtracker.metrics import observe_ownership_denied
from subtracker.platform.security.context import OPERATOR_ROLES, AuthContext
from subtracker.platform.security.errors import OperatorRequiredError, OwnershipError


OWNER_COLUMN = "user_id"


def is_operator(ctx: AuthContext) -> bool:
    if ctx.is_super_admin:
        return True
    return bool({item.lower() for item in ctx.roles} & OPERATOR_ROLES)


def apply_owner_filter(query: Select[Any], ctx: AuthContext, *, owner_id: str | None = None) -> Select[Any]:
    """Restrict a query to one owner.

    Operators see every row unless ``owner_id`` narrows the view; everybody
    else is pinned to their own rows.
    """

    target = owner_id if is_operator(ctx) else ctx.user_id
    if target is None:
        return query

    for description in query.column_descriptions:
        model = description.get("entity")
        if model is not None and hasattr(model, OWNER_COLUMN):
            query = query.where(getattr(model, OWNER_COLUMN) == target)
    return query


def validate_owner_access(resource: str, ctx: AuthContext, *, owner_id: str, action: str) -> None:
    """Raise ``OwnershipError`` unless the caller owns the record or is an operator."""

    if is_operator(ctx) or owner_id == ctx.user_id:
        return

    _emit_denied(resource=resource, action=action, ctx=ctx, details={"owner_id": owner_id})
    raise OwnershipError(resource, action)


def require_operator(resource: str, ctx: AuthContext, *, action: str = "read_all") -> None:
    if is_operator(ctx):
        return

    _emit_denied(resource=resource, action=action, ctx=ctx, details=None)
    raise OperatorRequiredError(resource)


def _emit_denied(*, resource: str, action: str, ctx: AuthContext, details: dict[str, Any] | None) -> None:
    observe_ownership_denied(resource=resource, action=action)
    audit.record(
        actor_user_id=ctx.user_id,
        entity_type="security.ownership",
        entity_id=resource,
        action="ownership.denied",
        before=None,
        after={"resource": resource, "action": action, "user_id": ctx.user_id, **(details or {})},
        correlation_id=ctx.correlation_id,
    )
