from dataclasses import dataclass, field

from jose import JWTError, jwt
from starlette.requests import Request

from subtracker.core.config import get_settings


ANONYMOUS_SUBJECT = "anonymous"
BEARER_PREFIX = "Bearer "


@dataclass
class AuthUser:
    sub: str = ANONYMOUS_SUBJECT
    roles: list[str] = field(default_factory=lambda: ["guest"])

    @property
    def is_anonymous(self) -> bool:
        return self.sub == ANONYMOUS_SUBJECT


def decode_bearer(authorization: str | None) -> AuthUser:
    """Resolve an Authorization header to a user; anything unusable becomes the anonymous guest."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return AuthUser()
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        return AuthUser()

    settings = get_settings()
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return AuthUser()

    subject = claims.get("sub")
    if not subject:
        return AuthUser()
    roles = claims.get("roles")
    if not isinstance(roles, list):
        roles = ["user"]
    return AuthUser(sub=str(subject), roles=[str(role) for role in roles])


async def get_current_user(request: Request) -> AuthUser:
    user = decode_bearer(request.headers.get("authorization"))
    if not user.is_anonymous:
        request.state.user_id = user.sub
    return user
