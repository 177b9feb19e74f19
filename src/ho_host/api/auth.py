"""
Bearer-token authentication for the hosting API.

Tokens are opaque; each maps to an owner id, which the orchestrator uses
only to partition projects, ports and processes.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

security = HTTPBearer(auto_error=False)


@dataclass
class Identity:
    """Caller resolved from a bearer token."""
    owner: str


class StaticTokenResolver:
    """Resolves tokens from a fixed token -> owner mapping."""

    def __init__(self, tokens: Dict[str, str]) -> None:
        self._tokens = dict(tokens)

    def resolve(self, token: str) -> Optional[str]:
        return self._tokens.get(token)


async def require_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Identity:
    """
    Dependency that requires a known bearer token.

    Raises:
        HTTPException 401: No credentials were sent
        HTTPException 403: The token is not recognised
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    resolver: StaticTokenResolver = request.app.state.token_resolver
    owner = resolver.resolve(credentials.credentials)
    if owner is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid token",
        )
    return Identity(owner=owner)
