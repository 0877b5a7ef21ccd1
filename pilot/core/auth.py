"""
Bearer token validation against the issuer's JWKS, or a dev identity when
FF_USE_AUTH is off. Token issuance lives elsewhere; this only reads claims.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

import httpx
from jose import jwt, JWTError

from .config import get_settings
from .flags import get_flags

logger = logging.getLogger(__name__)


@dataclass
class AuthenticatedUser:
    user_id: str
    tenant_id: str = ""
    email: str = ""
    name: str = ""
    roles: list[str] = field(default_factory=list)


# Injected when FF_USE_AUTH=false
DEV_USER = AuthenticatedUser(
    user_id="dev-user",
    tenant_id="dev-tenant",
    email="dev@local",
    name="Dev User",
    roles=["admin"],
)


class JwksVerifier:
    """Verifies RS256 tokens. JWKS is cached for `ttl` seconds."""

    def __init__(self, ttl: int = 600):
        self._jwks: Optional[dict] = None
        self._fetched_at: float = 0
        self._ttl = ttl

    async def _get_jwks(self, domain: str, force: bool = False) -> dict:
        now = time.time()
        if not force and self._jwks and (now - self._fetched_at) < self._ttl:
            return self._jwks

        url = f"https://{domain}/.well-known/jwks.json"
        async with httpx.AsyncClient() as client:
            resp = await client.get(url, timeout=10)
            resp.raise_for_status()
            self._jwks = resp.json()
            self._fetched_at = now
            logger.info("JWKS refreshed from %s (%d keys)", domain, len(self._jwks.get("keys", [])))
            return self._jwks

    @staticmethod
    def _find_key(jwks: dict, kid: Optional[str]) -> Optional[dict]:
        for key in jwks.get("keys", []):
            if key.get("kid") == kid:
                return {k: key[k] for k in ("kty", "kid", "use", "n", "e") if k in key}
        return None

    async def verify(self, token: str) -> AuthenticatedUser:
        settings = get_settings()
        kid = jwt.get_unverified_header(token).get("kid")

        jwks = await self._get_jwks(settings.auth_domain)
        key = self._find_key(jwks, kid)
        if key is None:
            # Key rotation: refetch once before giving up
            key = self._find_key(await self._get_jwks(settings.auth_domain, force=True), kid)
        if key is None:
            raise JWTError("Unable to find matching key in JWKS")

        payload = jwt.decode(
            token,
            key,
            algorithms=[settings.auth_algorithm],
            audience=settings.auth_audience or None,
            issuer=f"https://{settings.auth_domain}/",
            options={"verify_aud": bool(settings.auth_audience)},
        )

        roles = payload.get("roles", [])
        return AuthenticatedUser(
            user_id=payload.get("sub", ""),
            tenant_id=payload.get(settings.auth_tenant_claim, ""),
            email=payload.get("email", ""),
            name=payload.get("name", ""),
            roles=roles if isinstance(roles, list) else [roles],
        )


_verifier = JwksVerifier()


async def get_current_user(authorization: str = "") -> AuthenticatedUser:
    """
    Resolve the current user from the Authorization header.
    If FF_USE_AUTH is false, returns the dev user.
    """
    if not get_flags().use_auth:
        return DEV_USER

    if not authorization:
        raise PermissionError("Missing Authorization header")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise PermissionError("Invalid Authorization header. Use: Bearer <token>")

    try:
        return await _verifier.verify(token)
    except JWTError as e:
        raise PermissionError(f"Invalid token: {e}")
