"""
Order Hub — Security helper (JWT decode only, shared secret with the identity provider)
"""
from typing import Any

from jose import jwt

from orderhub.core.config import get_settings

settings = get_settings()


def decode_token(token: str) -> dict[str, Any]:
    return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])


def is_admin(claims: dict[str, Any]) -> bool:
    return bool(claims.get("is_admin"))
