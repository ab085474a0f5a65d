"""Authorization guard.

Provides:
- `Principal`, the authenticated identity of the current request
- `AuthorizationGuard` with `authenticate`, `authorize_role`, `authorize_ownership`
- `get_principal` / `require_role` FastAPI dependencies using HTTP Bearer auth

Decisions are made per request from the live user record; nothing is cached
between requests.
"""
import logging
from typing import Any, Callable, Dict, Mapping

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict

from credentials import CredentialStore
from errors import Forbidden, Unauthenticated
from schemas import ROLES
from tokens import TokenService

logger = logging.getLogger("blog.guard")

security = HTTPBearer(auto_error=False)

# later roles outrank earlier ones
ROLE_RANK = {role: rank for rank, role in enumerate(ROLES)}


class Principal(BaseModel):
    """Authenticated user resolved from a token and a fresh user lookup."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    role: str
    user: Dict[str, Any]

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class AuthorizationGuard:
    def __init__(self, tokens: TokenService, credentials: CredentialStore):
        self.tokens = tokens
        self.credentials = credentials

    def authenticate(self, token: str) -> Principal:
        """Resolve a bearer token to a live user.

        Raises:
            Unauthenticated: bad/expired token, or the user no longer exists.
        """
        claims = self.tokens.verify(token)
        user = self.credentials.get(claims["user_id"])
        if user is None:
            logger.warning("token for missing user %s rejected", claims["user_id"])
            raise Unauthenticated("User not found")
        # role comes from the stored record so demotions apply immediately
        return Principal(id=str(user["_id"]), role=user.get("role", "user"), user=user)

    def authorize_role(self, principal: Principal, required_role: str) -> Principal:
        if principal.is_admin:
            return principal
        if ROLE_RANK.get(principal.role, -1) < ROLE_RANK.get(required_role, len(ROLE_RANK)):
            raise Forbidden(f"User role {principal.role} is not authorized to access this route")
        return principal

    def authorize_ownership(self, principal: Principal, resource: Mapping[str, Any]) -> Principal:
        """Allow the resource's author or any admin; anything else is Forbidden."""
        if principal.is_admin or str(resource.get("author")) == principal.id:
            return principal
        raise Forbidden()


def get_guard(request: Request) -> AuthorizationGuard:
    return request.app.state.guard


def get_principal(
    creds: HTTPAuthorizationCredentials = Depends(security),
    guard: AuthorizationGuard = Depends(get_guard),
) -> Principal:
    """FastAPI dependency: the principal from the Authorization header."""
    if not creds or not creds.credentials:
        raise Unauthenticated("No token provided")
    return guard.authenticate(creds.credentials)


def require_role(role: str) -> Callable[..., Principal]:
    """Create a dependency that requires `role` (admin satisfies any role)."""
    def wrapper(
        principal: Principal = Depends(get_principal),
        guard: AuthorizationGuard = Depends(get_guard),
    ) -> Principal:
        return guard.authorize_role(principal, role)

    return wrapper
