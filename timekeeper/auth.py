"""Bearer-token authentication gate.

The identity provider is external: it receives the raw token and answers
with the verified user id. Nothing downstream runs until ``authenticate``
has produced an owner id.
"""

import logging
from typing import Optional, Protocol

import httpx

from timekeeper.config import get_settings
from timekeeper.errors import InvalidCredential, MissingCredential

logger = logging.getLogger(__name__)


class TokenVerifier(Protocol):
    async def verify(self, token: str) -> str:
        """Return the owner id for ``token`` or raise ``InvalidCredential``."""
        ...


class HttpTokenVerifier:
    """Verify tokens by POSTing them to the identity provider."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def verify(self, token: str) -> str:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.url, json={"token": token})
        except httpx.HTTPError as e:
            logger.warning("Identity provider unreachable: %s", e)
            raise InvalidCredential() from e

        if not response.is_success:
            logger.info("Token rejected by identity provider (HTTP %d)", response.status_code)
            raise InvalidCredential()

        try:
            data = response.json()
        except ValueError as e:
            raise InvalidCredential() from e

        if not isinstance(data, dict):
            raise InvalidCredential()
        owner_id = data.get("uid") or data.get("sub")
        if not owner_id:
            logger.warning("Identity provider response has no user id")
            raise InvalidCredential()
        return str(owner_id)


class StaticTokenVerifier:
    """Fixed token -> owner id table, for development and tests."""

    def __init__(self, tokens: dict[str, str]):
        self.tokens = dict(tokens)

    async def verify(self, token: str) -> str:
        owner_id = self.tokens.get(token)
        if owner_id is None:
            raise InvalidCredential()
        return owner_id


def parse_bearer(header: Optional[str]) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` value."""
    if not header:
        raise MissingCredential()
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise MissingCredential()
    return token.strip()


async def authenticate(header: Optional[str], verifier: TokenVerifier) -> str:
    token = parse_bearer(header)
    owner_id = await verifier.verify(token)
    logger.debug("Authenticated owner %s", owner_id)
    return owner_id


_verifier: Optional[TokenVerifier] = None


def get_verifier() -> TokenVerifier:
    """Get or create the verifier configured in ``[auth]``."""
    global _verifier
    if _verifier is None:
        settings = get_settings()
        if settings.auth.provider_url:
            _verifier = HttpTokenVerifier(settings.auth.provider_url, settings.auth.timeout_seconds)
        else:
            if not settings.auth.static_tokens:
                logger.warning("No identity provider configured; every token will be rejected")
            _verifier = StaticTokenVerifier(settings.auth.static_tokens)
    return _verifier
