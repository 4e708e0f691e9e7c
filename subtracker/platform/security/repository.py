from __future__ import annotations

from typing import Any

from sqlalchemy.sql import Select

from subtracker.platform.security.context import AuthContext
from subtracker.platform.security.ownership import apply_owner_filter, require_operator, validate_owner_access


class BaseRepository:
    resource = ""

    def apply_scope_query(self, query: Select[Any], ctx: AuthContext, *, owner_id: str | None = None) -> Select[Any]:
        return apply_owner_filter(query, ctx, owner_id=owner_id)

    def validate_access(self, ctx: AuthContext, *, owner_id: str, action: str) -> None:
        validate_owner_access(self.resource, ctx, owner_id=owner_id, action=action)

    def require_operator(self, ctx: AuthContext) -> None:
        require_operator(self.resource, ctx)
