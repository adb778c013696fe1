"""Operator tokens guarding cluster mutations.

A token names the operator (``sub``) and the domains it may provision
(``domains``; ``"*"`` grants every domain). Signing uses the settings'
secret and algorithm; nothing here depends on FastAPI.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable

from jose import JWTError, jwt  # python-jose

from topicmesh.core.config import get_settings

ALL_DOMAINS = "*"
DOMAINS_CLAIM = "domains"


class TokenValidationError(Exception):
    """Raised when a JWT is missing, invalid or expired."""


def create_access_token(
    subject: str,
    *,
    domains: Iterable[str] = (ALL_DOMAINS,),
    expires_delta: timedelta | None = None,
) -> str:
    """Sign a token letting *subject* provision *domains*."""
    settings = get_settings()
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    claims = {
        "sub": subject,
        DOMAINS_CLAIM: sorted(set(domains)),
        "exp": datetime.now(timezone.utc) + lifetime,
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_jwt(token: str) -> Dict[str, Any]:
    """Validate *token* and return its claims.

    Raises
    ------
    TokenValidationError
        If the token is malformed, expired, signature-invalid or has no subject.
    """
    settings = get_settings()
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise TokenValidationError("Invalid or expired JWT") from exc
    if not claims.get("sub"):
        raise TokenValidationError("JWT has no subject")
    return claims


def may_provision(claims: Dict[str, Any], domain_id: str) -> bool:
    granted = claims.get(DOMAINS_CLAIM) or []
    return ALL_DOMAINS in granted or domain_id in granted
