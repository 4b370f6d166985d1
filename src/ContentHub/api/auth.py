"""Bearer-token role claims for the HTTP API.

Session handling and second factors live in a separate identity service; this
module only maps an ``Authorization: Bearer <token>`` header to the role that
service issued for it (``api.tokens`` in the config) and gates admin routes.
"""

from __future__ import annotations

import logging
import secrets
from typing import Callable, Mapping, Optional

from fastapi import Header, HTTPException, status

from ContentHub.config.models import ApiConfig

logger = logging.getLogger(__name__)

_SCHEME = "bearer"


def parse_bearer(authorization: Optional[str]) -> Optional[str]:
    """Return the token from an ``Authorization`` header, or None."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != _SCHEME or not token.strip():
        return None
    return token.strip()


def resolve_role(token: Optional[str], tokens: Mapping[str, str]) -> Optional[str]:
    """Look ``token`` up in ``tokens``, comparing every entry in constant time."""
    if not token:
        return None
    role: Optional[str] = None
    candidate = token.encode("utf-8")
    for known, known_role in tokens.items():
        if secrets.compare_digest(candidate, known.encode("utf-8")):
            role = known_role
    return role


def admin_dependency(config: ApiConfig) -> Callable[..., str]:
    """Build a FastAPI dependency that admits only the admin role.

    Raises (from the dependency):
        HTTPException 401: no or unknown token
        HTTPException 403: token known but role is not admin
    """

    def require_admin(authorization: Optional[str] = Header(default=None)) -> str:
        role = resolve_role(parse_bearer(authorization), config.tokens)
        if role is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Unauthorized",
                headers={"WWW-Authenticate": "Bearer"},
            )
        if role != config.admin_role:
            logger.warning("non-admin role refused: %s", role)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return role

    return require_admin


__all__ = ["admin_dependency", "parse_bearer", "resolve_role"]
