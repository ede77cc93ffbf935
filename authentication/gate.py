"""Bearer-token gate backed by Supabase Auth.

Identity is owned by Supabase; this module only turns an ``Authorization``
header into a :class:`Principal` or an :class:`~chat.errors.Unauthorized`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Protocol

from django.conf import settings
from supabase import AuthError, Client, create_client

from chat.errors import Unauthorized, UpstreamError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """The verified caller. Quacks enough like a Django user for DRF."""

    id: str
    email: Optional[str] = None
    is_verified: bool = False

    @property
    def is_authenticated(self) -> bool:
        return True

    @property
    def is_anonymous(self) -> bool:
        return False

    @property
    def pk(self) -> str:
        return self.id

    def __str__(self):
        return self.email or self.id


class IdentityService(Protocol):
    def get_user(self, token: str) -> Optional[Principal]: ...


class SupabaseIdentityService:
    """Adapter over ``supabase.auth.get_user``."""

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    def _get_client(self) -> Client:
        if self._client is None:
            self._client = create_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)
        return self._client

    def get_user(self, token: str) -> Optional[Principal]:
        try:
            resp = self._get_client().auth.get_user(token)
        except AuthError as e:
            logger.info("Identity service rejected token: %s", e)
            return None
        except Exception as e:
            logger.error("Identity service unreachable: %s", e)
            raise UpstreamError("Authentication service unavailable", details=str(e))

        user = getattr(resp, "user", None)
        if user is None or not getattr(user, "id", None):
            return None
        return Principal(
            id=str(user.id),
            email=getattr(user, "email", None),
            is_verified=bool(getattr(user, "email_confirmed_at", None)),
        )


def extract_bearer_token(header: Optional[str]) -> Optional[str]:
    if not header:
        return None
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


class AuthGate:
    def __init__(self, identity: IdentityService):
        self.identity = identity

    def authenticate(self, authorization: Optional[str]) -> Principal:
        """Resolve an ``Authorization`` header value to a principal.

        Raises ``Unauthorized`` (no_token / invalid_token) or ``UpstreamError``
        when the identity service cannot be asked at all.
        """
        token = extract_bearer_token(authorization)
        if token is None:
            raise Unauthorized.no_token()

        principal = self.identity.get_user(token)
        if principal is None:
            raise Unauthorized.invalid_token()
        return principal


@lru_cache(maxsize=1)
def get_gate() -> AuthGate:
    return AuthGate(SupabaseIdentityService())
