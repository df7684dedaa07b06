"""
ShelfSense Security Utilities

JWT handling for the bearer tokens issued by the identity provider.
Tokens carry a ``role`` (or ``roles``) claim used for endpoint gating.
"""

from datetime import datetime, timedelta

from jose import JWTError, jwt

from core.config import get_settings


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a JWT access token."""
    runtime_settings = get_settings()
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(hours=24))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, runtime_settings.jwt_secret, algorithm=runtime_settings.jwt_algorithm)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns None if invalid or expired."""
    runtime_settings = get_settings()
    try:
        return jwt.decode(token, runtime_settings.jwt_secret, algorithms=[runtime_settings.jwt_algorithm])
    except JWTError:
        return None


def extract_roles(user: dict) -> set[str]:
    """Collect role names from the ``role``/``roles`` claims."""
    role_values: list[str] = []
    for key in ("role", "roles"):
        value = user.get(key)
        if value is None:
            continue
        if isinstance(value, str):
            role_values.extend(value.replace(",", " ").split())
        elif isinstance(value, (list, tuple, set)):
            role_values.extend(str(v) for v in value)
    return {r.strip().lower() for r in role_values if r.strip()}
