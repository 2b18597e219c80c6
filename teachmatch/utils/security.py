"""Bearer token helpers and log masking."""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from teachmatch.config import settings


def generate_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Generate a JWT token. Used by tests and local tooling; production tokens come from the auth provider."""
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})
    if settings.AUTH_JWT_AUDIENCE and "aud" not in to_encode:
        to_encode["aud"] = settings.AUTH_JWT_AUDIENCE

    return jwt.encode(
        to_encode,
        settings.AUTH_JWT_SECRET,
        algorithm=settings.AUTH_JWT_ALGORITHM
    )


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """Verify and decode a JWT token."""
    options = {"verify_aud": bool(settings.AUTH_JWT_AUDIENCE)}
    try:
        return jwt.decode(
            token,
            settings.AUTH_JWT_SECRET,
            algorithms=[settings.AUTH_JWT_ALGORITHM],
            audience=settings.AUTH_JWT_AUDIENCE,
            options=options
        )
    except JWTError:
        return None


def user_id_from_token(token: str) -> Optional[uuid.UUID]:
    """The ``sub`` claim as a UUID, or None if the token or claim is invalid."""
    payload = verify_token(token)
    if not payload or not payload.get("sub"):
        return None
    try:
        return uuid.UUID(str(payload["sub"]))
    except ValueError:
        return None


def sanitize_email(email: str) -> str:
    """Sanitize email address for logging (mask domain)."""
    if "@" not in email:
        return email

    local, domain = email.split("@", 1)

    if len(local) > 3:
        local = local[:2] + "*" * (len(local) - 3) + local[-1]

    domain_parts = domain.split(".")
    if len(domain_parts) > 1:
        domain_parts[0] = domain_parts[0][:2] + "*" * max(0, len(domain_parts[0]) - 2)
        domain = ".".join(domain_parts)

    return f"{local}@{domain}"
