"""Tests for the bearer-token authentication gate."""

import json

import httpx
import pytest

from timekeeper.auth import (
    HttpTokenVerifier,
    StaticTokenVerifier,
    authenticate,
    parse_bearer,
)
from timekeeper.errors import InvalidCredential, MissingCredential, Unauthenticated

PROVIDER_URL = "https://identity.example.com/verify"


def _provider(handler) -> HttpTokenVerifier:
    return HttpTokenVerifier(PROVIDER_URL, transport=httpx.MockTransport(handler))


class TestParseBearer:
    def test_extracts_token(self):
        assert parse_bearer("Bearer abc.def.ghi") == "abc.def.ghi"

    def test_scheme_is_case_insensitive(self):
        assert parse_bearer("bearer tok") == "tok"

    @pytest.mark.parametrize("header", [None, "", "   ", "Bearer", "Bearer   ", "Basic dXNlcjpwYXNz", "tok"])
    def test_missing(self, header):
        with pytest.raises(MissingCredential):
            parse_bearer(header)

    def test_missing_is_unauthenticated(self):
        assert issubclass(MissingCredential, Unauthenticated)
        assert issubclass(InvalidCredential, Unauthenticated)
        assert MissingCredential.status_code == InvalidCredential.status_code == 401


class TestStaticTokenVerifier:
    @pytest.mark.asyncio
    async def test_known_token(self):
        verifier = StaticTokenVerifier({"tok-a": "alice"})
        assert await verifier.verify("tok-a") == "alice"

    @pytest.mark.asyncio
    async def test_unknown_token(self):
        verifier = StaticTokenVerifier({"tok-a": "alice"})
        with pytest.raises(InvalidCredential):
            await verifier.verify("tok-b")


class TestHttpTokenVerifier:
    @pytest.mark.asyncio
    async def test_sends_token_and_reads_uid(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"uid": "alice", "email": "a@example.com"})

        assert await _provider(handler).verify("tok") == "alice"
        assert seen["url"] == PROVIDER_URL
        assert seen["body"] == {"token": "tok"}

    @pytest.mark.asyncio
    async def test_accepts_sub_claim(self):
        verifier = _provider(lambda request: httpx.Response(200, json={"sub": "bob"}))
        assert await verifier.verify("tok") == "bob"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401, 403, 500])
    async def test_rejected_status(self, status):
        verifier = _provider(lambda request: httpx.Response(status, json={"error": "nope"}))
        with pytest.raises(InvalidCredential):
            await verifier.verify("tok")

    @pytest.mark.asyncio
    async def test_missing_uid(self):
        verifier = _provider(lambda request: httpx.Response(200, json={"email": "a@example.com"}))
        with pytest.raises(InvalidCredential):
            await verifier.verify("tok")

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        verifier = _provider(lambda request: httpx.Response(200, text="ok"))
        with pytest.raises(InvalidCredential):
            await verifier.verify("tok")

    @pytest.mark.asyncio
    async def test_provider_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(InvalidCredential):
            await _provider(handler).verify("tok")


class TestAuthenticate:
    @pytest.mark.asyncio
    async def test_resolves_owner(self):
        verifier = StaticTokenVerifier({"tok": "alice"})
        assert await authenticate("Bearer tok", verifier) == "alice"

    @pytest.mark.asyncio
    async def test_missing_header_never_reaches_verifier(self):
        class ExplodingVerifier:
            async def verify(self, token):
                raise AssertionError("verifier should not be called")

        with pytest.raises(MissingCredential):
            await authenticate(None, ExplodingVerifier())
