"""
# Identity Manager

Verifies bearer credentials issued by the external identity authority and
turns them into a `VerifiedIdentity`.

## Verification Modes

- **JWKS** (production): the token's `kid` selects a public key from
  `IDENTITY_JWKS_URL` (fetched with httpx); signature, expiry, issuer and
  audience are checked with python-jose.
- **Shared secret** (development, tests): HS256 tokens signed with
  `IDENTITY_SHARED_SECRET`.

## Failure Semantics

| Situation | Error |
|---|---|
| Header missing, wrong scheme, empty token | `UnauthenticatedError` (401) |
| Bad signature, expired, wrong issuer/audience, no email claim | `ForbiddenError` (403) |
| Key endpoint unreachable, verification timed out | `InternalError` (500) |

Nothing about a credential is cached: every request is verified again. Only
the authority's public signing keys are cached, for `IDENTITY_JWKS_CACHE_SECONDS`.
The whole verification is bounded by `IDENTITY_VERIFY_TIMEOUT_SECONDS` and
fails closed on timeout.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional

import httpx
from jose import JWTError, jwt
from pydantic import BaseModel

from clubsphere.config import settings
from clubsphere.exceptions import ForbiddenError, InternalError, UnauthenticatedError
from clubsphere.managers.logging_manager import get_logger

logger = get_logger(prefix="[Identity]")


class VerifiedIdentity(BaseModel):
    """
    A caller whose credential passed verification.

    Only `email` is used for authorization decisions.
    """
    email: str
    subject: Optional[str] = None


class IdentityProviderError(Exception):
    """The identity authority could not be reached or returned garbage."""


class CredentialVerifier:
    """
    Validates `Authorization: Bearer <token>` headers against the identity authority.

    Args:
        jwks_url: Public key set endpoint. Ignored when `shared_secret` is set and
            `jwks_url` is empty.
        issuer: Expected `iss` claim, or None to skip the check.
        audience: Expected `aud` claim, or None to skip the check.
        algorithms: Accepted signing algorithms for JWKS mode.
        shared_secret: HS256 secret for development mode.
        timeout: Upper bound in seconds for one verification, key fetch included.
        jwks_cache_seconds: How long fetched public keys are reused.
    """

    def __init__(
        self,
        jwks_url: Optional[str] = None,
        issuer: Optional[str] = None,
        audience: Optional[str] = None,
        algorithms: Optional[List[str]] = None,
        shared_secret: Optional[str] = None,
        timeout: float = 5.0,
        jwks_cache_seconds: int = 3600,
    ):
        self.jwks_url = jwks_url
        self.issuer = issuer
        self.audience = audience
        self.algorithms = algorithms or ["RS256"]
        self.shared_secret = shared_secret
        self.timeout = timeout
        self.jwks_cache_seconds = jwks_cache_seconds
        self._jwks: Dict[str, Dict[str, Any]] = {}
        self._jwks_fetched_at: float = 0.0

    @classmethod
    def from_settings(cls) -> "CredentialVerifier":
        secret = settings.IDENTITY_SHARED_SECRET.get_secret_value() if settings.IDENTITY_SHARED_SECRET else None
        return cls(
            jwks_url=settings.IDENTITY_JWKS_URL,
            issuer=settings.IDENTITY_ISSUER,
            audience=settings.IDENTITY_AUDIENCE,
            algorithms=settings.IDENTITY_ALGORITHMS,
            shared_secret=secret if settings.identity_uses_shared_secret else None,
            timeout=settings.IDENTITY_VERIFY_TIMEOUT_SECONDS,
            jwks_cache_seconds=settings.IDENTITY_JWKS_CACHE_SECONDS,
        )

    @staticmethod
    def extract_token(raw_authorization_header: Optional[str]) -> str:
        """
        Pull the token out of an `Authorization` header value.

        Raises:
            UnauthenticatedError: If the header is absent or not `Bearer <token>`.
        """
        if not raw_authorization_header:
            raise UnauthenticatedError("Unauthorized")
        parts = raw_authorization_header.strip().split()
        if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1]:
            raise UnauthenticatedError("Unauthorized")
        return parts[1]

    async def authenticate(self, raw_authorization_header: Optional[str]) -> VerifiedIdentity:
        """
        Verify the credential carried by an `Authorization` header.

        Returns:
            VerifiedIdentity: The caller's verified email (lower-cased) and subject.

        Raises:
            UnauthenticatedError: Missing or malformed header.
            ForbiddenError: The token failed verification.
            InternalError: The identity authority was unavailable or too slow.
        """
        token = self.extract_token(raw_authorization_header)

        try:
            claims = await asyncio.wait_for(self._verify(token), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error("Token verification timed out after %.1fs", self.timeout)
            raise InternalError()
        except IdentityProviderError as e:
            logger.error("Identity provider unavailable: %s", e)
            raise InternalError()
        except JWTError as e:
            logger.info("Token verification failed: %s", e)
            raise ForbiddenError("Forbidden")

        email = claims.get("email")
        if not isinstance(email, str) or not email.strip():
            logger.info("Verified token carries no email claim (sub=%s)", claims.get("sub"))
            raise ForbiddenError("Forbidden")

        return VerifiedIdentity(email=email.strip().lower(), subject=claims.get("sub"))

    async def _verify(self, token: str) -> Dict[str, Any]:
        options = {"verify_aud": self.audience is not None}
        if self.shared_secret:
            return jwt.decode(
                token,
                self.shared_secret,
                algorithms=["HS256"],
                audience=self.audience,
                issuer=self.issuer,
                options=options,
            )

        key = await self._get_signing_key(token)
        return jwt.decode(
            token,
            key,
            algorithms=self.algorithms,
            audience=self.audience,
            issuer=self.issuer,
            options=options,
        )

    async def _get_signing_key(self, token: str) -> Dict[str, Any]:
        header = jwt.get_unverified_header(token)
        kid = header.get("kid")
        if not kid:
            raise JWTError("Token header has no key id")

        keys = await self._load_jwks()
        if kid not in keys:
            # Keys rotate; refresh once before rejecting
            keys = await self._load_jwks(force=True)
        if kid not in keys:
            raise JWTError("Unknown signing key")
        return keys[kid]

    async def _load_jwks(self, force: bool = False) -> Dict[str, Dict[str, Any]]:
        if not self.jwks_url:
            raise IdentityProviderError("No IDENTITY_JWKS_URL or IDENTITY_SHARED_SECRET configured")

        fresh = (time.monotonic() - self._jwks_fetched_at) < self.jwks_cache_seconds
        if self._jwks and fresh and not force:
            return self._jwks

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.jwks_url)
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise IdentityProviderError(f"Failed to fetch signing keys: {e}") from e

        keys = {key["kid"]: key for key in payload.get("keys", []) if "kid" in key}
        if not keys:
            raise IdentityProviderError("Signing key endpoint returned no keys")

        self._jwks = keys
        self._jwks_fetched_at = time.monotonic()
        logger.debug("Loaded %d signing keys from %s", len(keys), self.jwks_url)
        return keys


credential_verifier = CredentialVerifier.from_settings()
