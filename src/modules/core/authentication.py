"""Identity-service JWT authentication for Django REST Framework.

The marketplace never issues credentials.  Tokens are minted by the
identity service; this backend only verifies them and recovers the two
claims the order engine needs: the actor id (``sub``) and the actor role
(``role``).

Two verification modes, chosen by settings:

* ``IDENTITY_JWKS_URL`` set: asymmetric keys fetched from the JWKS endpoint
  and cached in-memory (300 s) via ``PyJWKClient``.
* otherwise: shared secret ``IDENTITY_JWT_SECRET``.

Security decisions
------------------
* **Fail Closed**: any decode / validation error returns 401.
* ``algorithms`` is hard-coded to the configured value, never derived from
  the incoming token.
* Audience and issuer are validated whenever they are configured.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from uuid import UUID

import jwt as pyjwt
import structlog
from django.conf import settings
from django.db import models
from jwt import PyJWKClient
from jwt.exceptions import PyJWTError
from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed

logger = structlog.get_logger(__name__)


class ActorRole(models.TextChoices):
    BUYER = "buyer", "Buyer"
    FARMER = "farmer", "Farmer"
    TRANSPORTER = "transporter", "Transporter"
    VENDOR = "vendor", "Vendor"
    ADMIN = "admin", "Admin"


@dataclass(frozen=True)
class Actor:
    """Authenticated principal resolved from the identity service.

    There is no local ``User`` row: the identity service is the source of
    truth.  Views read ``request.user.id`` / ``.role``.
    """

    id: UUID
    role: str

    # DRF checks
    is_authenticated = True
    is_active = True

    @property
    def pk(self) -> UUID:
        return self.id

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.role}:{self.id}"


@lru_cache(maxsize=1)
def _jwks_client(url: str) -> PyJWKClient:
    return PyJWKClient(url, cache_jwk_set=True, lifespan=300)


class ActorJWTAuthentication(BaseAuthentication):
    """DRF authentication class that validates identity-service Bearer tokens."""

    keyword = "Bearer"

    # ------------------------------------------------------------------
    # Public API (DRF contract)
    # ------------------------------------------------------------------

    def authenticate(self, request):
        """Return ``(Actor, token)`` or ``None`` (no credentials)."""
        header = request.META.get("HTTP_AUTHORIZATION", "")
        if not header:
            return None

        token = self._extract_token(header)
        payload = self._decode_token(token)
        actor = self._actor_from_claims(payload)
        structlog.contextvars.bind_contextvars(
            actor_id=str(actor.id), actor_role=actor.role
        )
        logger.info("jwt_authenticated", actor_id=str(actor.id), role=actor.role)
        return (actor, token)

    def authenticate_header(self, request):
        """Value for the ``WWW-Authenticate`` response header on 401."""
        return f'{self.keyword} realm="api"'

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_token(header: str) -> str:
        parts = header.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            raise AuthenticationFailed("Invalid Authorization header format.")
        return parts[1]

    @staticmethod
    def _decode_token(token: str) -> dict:
        algorithm = settings.IDENTITY_JWT_ALGORITHM
        audience = settings.IDENTITY_JWT_AUDIENCE or None
        issuer = settings.IDENTITY_JWT_ISSUER or None
        try:
            if settings.IDENTITY_JWKS_URL:
                key = (
                    _jwks_client(settings.IDENTITY_JWKS_URL)
                    .get_signing_key_from_jwt(token)
                    .key
                )
            elif settings.IDENTITY_JWT_SECRET:
                key = settings.IDENTITY_JWT_SECRET
            else:
                raise AuthenticationFailed("Identity service is not configured.")
            payload = pyjwt.decode(
                token,
                key,
                algorithms=[algorithm],
                audience=audience,
                issuer=issuer,
                options={"require": ["sub", "exp"]},
            )
        except PyJWTError as exc:
            logger.warning("jwt_validation_failed", error=str(exc))
            raise AuthenticationFailed(f"Token validation failed: {exc}") from exc
        return payload

    @staticmethod
    def _actor_from_claims(payload: dict) -> Actor:
        role = payload.get("role", "")
        if role not in ActorRole.values:
            raise AuthenticationFailed("Token carries an unknown role.")
        try:
            actor_id = UUID(str(payload["sub"]))
        except ValueError as exc:
            raise AuthenticationFailed("Token subject is not a valid id.") from exc
        return Actor(id=actor_id, role=role)
