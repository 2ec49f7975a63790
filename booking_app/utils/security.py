from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, FrozenSet, Optional
from jose import JWTError, jwt
from ..config import settings

ROLE_GUEST = "guest"
ROLE_HOST = "host"


@dataclass(frozen=True)
class IdentityContext:
    """Caller identity extracted from a verified bearer token."""
    user_id: str
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    roles: FrozenSet[str] = field(default_factory=frozenset)
    token: str = ""

    def has_role(self, role: str) -> bool:
        return role.lower() in self.roles


def decode_token(token: str) -> Optional[dict]:
    """Decode and verify a JWT token"""
    options = {"verify_aud": bool(settings.jwt_audience)}
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience or None,
            options=options
        )
        return payload
    except JWTError:
        return None


def extract_roles(payload: Dict[str, Any]) -> FrozenSet[str]:
    """Roles from Keycloak-style `realm_access.roles` or a flat `roles` claim."""
    roles = []
    realm_access = payload.get("realm_access")
    if isinstance(realm_access, dict):
        roles.extend(realm_access.get("roles") or [])
    flat = payload.get("roles")
    if isinstance(flat, str):
        roles.append(flat)
    elif isinstance(flat, list):
        roles.extend(flat)
    return frozenset(str(role).lower() for role in roles)


def identity_from_token(token: str) -> Optional[IdentityContext]:
    """Verify a token and map its claims, or None when invalid."""
    payload = decode_token(token)
    if not payload or not payload.get("sub"):
        return None
    return IdentityContext(
        user_id=str(payload["sub"]),
        email=payload.get("email") or "",
        first_name=payload.get("given_name") or "",
        last_name=payload.get("family_name") or "",
        roles=extract_roles(payload),
        token=token
    )


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed token; used by tests and local tooling."""
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=30))
    to_encode.update({"exp": expire})
    if settings.jwt_audience and "aud" not in to_encode:
        to_encode["aud"] = settings.jwt_audience
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
