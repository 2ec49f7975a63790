from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from typing import Optional

from .logging_config import user_id_var
from .security import IdentityContext, identity_from_token, ROLE_GUEST, ROLE_HOST

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> IdentityContext:
    """Verify the bearer token and return the caller's identity"""
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    identity = identity_from_token(credentials.credentials)
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id_var.set(identity.user_id)
    return identity


def require_role(*roles: str):
    """Dependency factory: the caller must hold at least one of `roles`"""
    async def checker(identity: IdentityContext = Depends(get_current_identity)) -> IdentityContext:
        if not any(identity.has_role(role) for role in roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {' or '.join(roles)}",
            )
        return identity
    return checker


require_guest = require_role(ROLE_GUEST)
require_host = require_role(ROLE_HOST)
require_guest_or_host = require_role(ROLE_GUEST, ROLE_HOST)
