"""OIDC JWT authentication for dashboard users.

Provides:
- verify_token(): Validates an RS256 JWT against the issuer's JWKS
- get_current_user(): FastAPI dependency resolving the local user row
"""

from __future__ import annotations

import os
import threading
import time
from dataclasses import dataclass
from typing import Any

import jwt
import requests
from fastapi import Depends, HTTPException, Request

_JWKS_CACHE_TTL = 600  # seconds
_JWKS_FETCH_TIMEOUT = 10


@dataclass
class CurrentUser:
    """Authenticated user context."""

    id: str
    external_subject: str
    email: str | None
    name: str | None


@dataclass(frozen=True)
class OidcSettings:
    issuer: str | None
    audience: str | None
    jwks_url: str | None
    authorized_parties: tuple[str, ...] = ()

    @property
    def configured(self) -> bool:
        return bool(self.issuer and self.audience and self.jwks_url)

    @classmethod
    def from_env(cls) -> OidcSettings:
        raw_parties = os.environ.get("OIDC_AUTHORIZED_PARTIES", "")
        return cls(
            issuer=os.environ.get("OIDC_ISSUER"),
            audience=os.environ.get("OIDC_AUDIENCE"),
            jwks_url=os.environ.get("OIDC_JWKS_URL"),
            authorized_parties=tuple(p.strip() for p in raw_parties.split(",") if p.strip()),
        )


def _fetch_jwks(jwks_url: str) -> dict[str, Any]:
    """Fetch JWKS from URL."""
    resp = requests.get(jwks_url, timeout=_JWKS_FETCH_TIMEOUT)
    resp.raise_for_status()
    return resp.json()


class JwksCache:
    """Process-wide JWKS cache with TTL and forced refresh on unknown kid."""

    def __init__(self, ttl: float = _JWKS_CACHE_TTL):
        self.ttl = ttl
        self._lock = threading.Lock()
        self._jwks: dict[str, Any] | None = None
        self._fetched_at = 0.0

    def clear(self) -> None:
        with self._lock:
            self._jwks = None
            self._fetched_at = 0.0

    def get(self, jwks_url: str, *, force_refresh: bool = False) -> dict[str, Any]:
        with self._lock:
            now = time.time()
            fresh = self._jwks is not None and (now - self._fetched_at) < self.ttl
            if fresh and not force_refresh:
                return self._jwks

            try:
                self._jwks = _fetch_jwks(jwks_url)
            except requests.RequestException:
                raise HTTPException(status_code=503, detail="Auth temporarily unavailable")
            self._fetched_at = now
            return self._jwks

    def find_key(self, jwks_url: str, kid: str) -> dict[str, Any] | None:
        """Find a key by kid, refetching the JWKS once if it is unknown."""
        key = _find_key(self.get(jwks_url), kid)
        if key is None:
            key = _find_key(self.get(jwks_url, force_refresh=True), kid)
        return key


jwks_cache = JwksCache()


def _find_key(jwks: dict[str, Any], kid: str) -> dict[str, Any] | None:
    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return key
    return None


def _decode(token: str, key_data: dict[str, Any], settings: OidcSettings) -> dict[str, Any]:
    try:
        public_key = jwt.algorithms.RSAAlgorithm.from_jwk(key_data)
    except (ValueError, TypeError, KeyError):
        raise HTTPException(status_code=401, detail="Invalid token")

    return jwt.decode(
        token,
        public_key,
        algorithms=["RS256"],
        issuer=settings.issuer,
        audience=settings.audience,
        options={"require": ["exp", "iss", "aud", "sub"]},
    )


def verify_token(token: str) -> str:
    """Verify JWT and return its subject claim.

    Raises:
        HTTPException: 401 if the token is invalid, 503 if JWKS is unreachable.
    """
    settings = OidcSettings.from_env()
    if not settings.configured:
        raise HTTPException(status_code=401, detail="OIDC not configured")

    try:
        kid = jwt.get_unverified_header(token).get("kid")
    except jwt.exceptions.DecodeError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if not kid:
        raise HTTPException(status_code=401, detail="Invalid token")

    key_data = jwks_cache.find_key(settings.jwks_url, kid)
    if key_data is None:
        raise HTTPException(status_code=401, detail="Invalid token")

    try:
        payload = _decode(token, key_data, settings)
    except jwt.InvalidSignatureError:
        # Key may have rotated under the same kid
        key_data = _find_key(jwks_cache.get(settings.jwks_url, force_refresh=True), kid)
        if key_data is None:
            raise HTTPException(status_code=401, detail="Invalid token")
        try:
            payload = _decode(token, key_data, settings)
        except jwt.InvalidTokenError:
            raise HTTPException(status_code=401, detail="Invalid token")
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    if settings.authorized_parties and "azp" in payload:
        if payload["azp"] not in settings.authorized_parties:
            raise HTTPException(status_code=401, detail="Invalid token")

    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="Invalid token")
    return sub


def _extract_bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise HTTPException(status_code=401, detail="Missing authorization header")

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid authorization header")
    return parts[1]


def _get_user_from_db(external_subject: str) -> CurrentUser | None:
    """Lookup user by external_subject (OIDC sub claim)."""
    from inboxly.infra.db import txn

    with txn() as cur:
        cur.execute(
            "SELECT id, external_subject, email, name FROM users WHERE external_subject = %s",
            (external_subject,),
        )
        row = cur.fetchone()
        if row is None:
            return None
        return CurrentUser(id=str(row[0]), external_subject=row[1], email=row[2], name=row[3])


def get_current_user(request: Request) -> CurrentUser:
    """FastAPI dependency: authenticated user.

    Raises:
        HTTPException: 401 if token invalid/missing, 403 if user not found.
    """
    sub = verify_token(_extract_bearer_token(request))

    user = _get_user_from_db(sub)
    if user is None:
        raise HTTPException(status_code=403, detail="User not found")
    return user


CurrentUserDep = Depends(get_current_user)
