"""
Unit tests for CallbackOrchestrator.
"""

from unittest.mock import AsyncMock

import httpx
import pytest

from service_signin.app.callback.orchestrator import (
    CallbackOrchestrator,
    CallbackOutcome,
    CallbackState,
    IllegalTransition,
)
from service_signin.app.exchange.client import TokenExchanger
from service_signin.app.jwks.client import JWKSClient
from service_signin.app.state.store import InMemoryStateStore
from service_signin.app.validation.id_token_verifier import IdentityTokenVerifier
from shared.test_helpers import (
    TEST_CLIENT_ID,
    TEST_CLIENT_SECRET,
    TEST_ISSUER,
    create_id_token,
    create_signing_key,
    create_token_response,
)

AUTH_HOST = "https://auth.example.test"
REDIRECT_URI = "http://localhost:8080/oauth_callback"


class FakeAuthorizationServer:
    """Routes token and JWKS requests for a MockTransport."""

    def __init__(self, signing_key):
        self.signing_key = signing_key
        self.token_status = 200
        self.token_body = None
        self.token_requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/oauth/token":
            self.token_requests.append(request)
            return httpx.Response(self.token_status, json=self.token_body)
        if request.url.path == "/.well-known/jwks.json":
            return httpx.Response(200, json=self.signing_key.jwks)
        return httpx.Response(404)


class TestCallbackOrchestrator:
    """Test cases for CallbackOrchestrator."""

    @pytest.fixture(scope="class")
    def signing_key(self):
        return create_signing_key("key-1")

    @pytest.fixture
    def auth_server(self, signing_key):
        return FakeAuthorizationServer(signing_key)

    @pytest.fixture
    def store(self):
        return InMemoryStateStore()

    @pytest.fixture
    def orchestrator(self, store, auth_server):
        client = httpx.AsyncClient(transport=httpx.MockTransport(auth_server.handler))
        exchanger = TokenExchanger(
            f"{AUTH_HOST}/oauth/token", TEST_CLIENT_ID, TEST_CLIENT_SECRET, http_client=client
        )
        verifier = IdentityTokenVerifier(JWKSClient(f"{AUTH_HOST}/.well-known/jwks.json", http_client=client))
        return CallbackOrchestrator(
            store,
            exchanger,
            verifier,
            redirect_uri=REDIRECT_URI,
            expected_issuer=TEST_ISSUER,
            expected_audience=TEST_CLIENT_ID,
        )

    @pytest.mark.asyncio
    async def test_success(self, orchestrator, store, auth_server, signing_key):
        """Issued state, good exchange, valid token."""
        state = store.issue()
        valid_token = create_id_token(signing_key, subject="user-1")
        auth_server.token_body = create_token_response(valid_token, access_token="tok")

        outcome = await orchestrator.handle("abc", state)

        assert outcome.succeeded
        assert outcome.history == [
            CallbackState.AWAITING_CALLBACK,
            CallbackState.STATE_VALIDATED,
            CallbackState.TOKEN_EXCHANGED,
            CallbackState.IDENTITY_VERIFIED,
            CallbackState.SUCCESS,
        ]
        assert outcome.claims.sub == "user-1"
        assert outcome.claims.iss == TEST_ISSUER
        assert outcome.token_response.access_token == "tok"
        assert outcome.error is None

    @pytest.mark.asyncio
    async def test_unknown_state_never_exchanges(self, store):
        exchanger = AsyncMock()
        verifier = AsyncMock()
        orchestrator = CallbackOrchestrator(
            store, exchanger, verifier, REDIRECT_URI, TEST_ISSUER, TEST_CLIENT_ID
        )

        outcome = await orchestrator.handle("abc", "unknown")

        assert outcome.state is CallbackState.ERROR
        assert outcome.reason == "invalid_state"
        assert outcome.message == "Invalid state"
        exchanger.exchange.assert_not_called()
        verifier.verify.assert_not_called()

    @pytest.mark.asyncio
    async def test_replayed_state_rejected(self, orchestrator, store, auth_server, signing_key):
        state = store.issue()
        auth_server.token_body = create_token_response(create_id_token(signing_key))

        first = await orchestrator.handle("abc", state)
        second = await orchestrator.handle("abc", state)

        assert first.succeeded
        assert second.reason == "invalid_state"
        assert len(auth_server.token_requests) == 1

    @pytest.mark.asyncio
    async def test_exchange_failure_never_verifies(self, store, auth_server):
        auth_server.token_status = 400
        auth_server.token_body = {"error": "invalid_grant"}
        client = httpx.AsyncClient(transport=httpx.MockTransport(auth_server.handler))
        exchanger = TokenExchanger(
            f"{AUTH_HOST}/oauth/token", TEST_CLIENT_ID, TEST_CLIENT_SECRET, http_client=client
        )
        verifier = AsyncMock()
        orchestrator = CallbackOrchestrator(
            store, exchanger, verifier, REDIRECT_URI, TEST_ISSUER, TEST_CLIENT_ID
        )

        outcome = await orchestrator.handle("abc", store.issue())

        assert outcome.state is CallbackState.ERROR
        assert outcome.reason == "exchange_failed"
        assert "invalid_grant" in outcome.message
        assert outcome.history[-2] is CallbackState.STATE_VALIDATED
        verifier.verify.assert_not_called()

    @pytest.mark.asyncio
    async def test_wrong_audience_fails_verification(self, orchestrator, store, auth_server, signing_key):
        bad_token = create_id_token(signing_key, audience="another-client")
        auth_server.token_body = create_token_response(bad_token)

        outcome = await orchestrator.handle("abc", store.issue())

        assert outcome.state is CallbackState.ERROR
        assert outcome.reason == "verification_failed"
        assert outcome.claims is None
        assert outcome.token_response is None
        assert outcome.history[-2] is CallbackState.TOKEN_EXCHANGED

    @pytest.mark.asyncio
    async def test_authorization_error_consumes_state(self, orchestrator, store, auth_server):
        state = store.issue()

        outcome = await orchestrator.handle(None, state, error="access_denied", error_description="User declined")

        assert outcome.reason == "authorization_error"
        assert "User declined" in outcome.message
        assert auth_server.token_requests == []
        assert store.validate_and_consume(state) is False

    @pytest.mark.asyncio
    async def test_authorization_error_with_bad_state_reports_invalid_state(self, orchestrator):
        outcome = await orchestrator.handle(None, "forged", error="access_denied")

        assert outcome.reason == "invalid_state"

    @pytest.mark.asyncio
    async def test_missing_code_is_exchange_failure(self, orchestrator, store, auth_server):
        outcome = await orchestrator.handle(None, store.issue())

        assert outcome.reason == "exchange_failed"
        assert auth_server.token_requests == []

    @pytest.mark.asyncio
    async def test_unexpected_error_propagates(self, store):
        exchanger = AsyncMock()
        exchanger.exchange.side_effect = RuntimeError("boom")
        orchestrator = CallbackOrchestrator(
            store, exchanger, AsyncMock(), REDIRECT_URI, TEST_ISSUER, TEST_CLIENT_ID
        )

        with pytest.raises(RuntimeError):
            await orchestrator.handle("abc", store.issue())


class TestCallbackOutcome:
    """Test cases for the callback state machine."""

    def test_steps_cannot_be_skipped(self):
        outcome = CallbackOutcome()

        with pytest.raises(IllegalTransition):
            outcome.advance(CallbackState.IDENTITY_VERIFIED)

    def test_terminal_states_are_final(self):
        outcome = CallbackOutcome()
        outcome.advance(CallbackState.ERROR)

        with pytest.raises(IllegalTransition):
            outcome.advance(CallbackState.STATE_VALIDATED)

    def test_error_reachable_from_every_non_terminal_state(self):
        path = [
            CallbackState.STATE_VALIDATED,
            CallbackState.TOKEN_EXCHANGED,
            CallbackState.IDENTITY_VERIFIED,
        ]
        for depth in range(len(path) + 1):
            outcome = CallbackOutcome()
            for step in path[:depth]:
                outcome.advance(step)
            outcome.advance(CallbackState.ERROR)
            assert outcome.state is CallbackState.ERROR
