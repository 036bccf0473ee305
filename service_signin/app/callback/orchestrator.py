"""
Authorization callback pipeline.

The callback is driven through a fixed sequence of states::

    AWAITING_CALLBACK -> STATE_VALIDATED -> TOKEN_EXCHANGED
        -> IDENTITY_VERIFIED -> SUCCESS

Any step may instead move to ERROR, which like SUCCESS is terminal. Claims
are only attached to an outcome once IDENTITY_VERIFIED has been reached.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from shared.errors import (
    AuthorizationResponseError,
    ExchangeError,
    InvalidStateError,
    SignInError,
    VerificationError,
)
from shared.logging import get_logger, set_callback_step, set_subject
from shared.metrics import MetricsCollector
from ..exchange.client import TokenExchanger, TokenResponse
from ..state.store import StateStore
from ..validation.id_token_verifier import IdentityTokenClaims, IdentityTokenVerifier


class CallbackState(str, Enum):
    """States of a single callback invocation."""
    AWAITING_CALLBACK = "awaiting_callback"
    STATE_VALIDATED = "state_validated"
    TOKEN_EXCHANGED = "token_exchanged"
    IDENTITY_VERIFIED = "identity_verified"
    SUCCESS = "success"
    ERROR = "error"


_TRANSITIONS = {
    CallbackState.AWAITING_CALLBACK: {CallbackState.STATE_VALIDATED, CallbackState.ERROR},
    CallbackState.STATE_VALIDATED: {CallbackState.TOKEN_EXCHANGED, CallbackState.ERROR},
    CallbackState.TOKEN_EXCHANGED: {CallbackState.IDENTITY_VERIFIED, CallbackState.ERROR},
    CallbackState.IDENTITY_VERIFIED: {CallbackState.SUCCESS, CallbackState.ERROR},
    CallbackState.SUCCESS: set(),
    CallbackState.ERROR: set(),
}


class IllegalTransition(RuntimeError):
    """Raised when a callback outcome is moved along an edge the state machine lacks."""


@dataclass
class CallbackOutcome:
    """Result of one callback, success or error."""

    state: CallbackState = CallbackState.AWAITING_CALLBACK
    history: List[CallbackState] = field(default_factory=lambda: [CallbackState.AWAITING_CALLBACK])
    token_response: Optional[TokenResponse] = None
    claims: Optional[IdentityTokenClaims] = None
    error: Optional[SignInError] = None

    @property
    def succeeded(self) -> bool:
        return self.state is CallbackState.SUCCESS

    @property
    def reason(self) -> Optional[str]:
        return self.error.code if self.error else None

    @property
    def message(self) -> Optional[str]:
        return self.error.message if self.error else None

    def advance(self, next_state: CallbackState) -> None:
        if next_state not in _TRANSITIONS[self.state]:
            raise IllegalTransition(f"{self.state.value} -> {next_state.value}")
        self.state = next_state
        self.history.append(next_state)

    def fail(self, error: SignInError) -> "CallbackOutcome":
        self.advance(CallbackState.ERROR)
        self.error = error
        # Nothing from a failed pipeline outlives the failure.
        self.claims = None
        self.token_response = None
        return self


class CallbackOrchestrator:
    """Sequences state validation, code exchange and identity verification."""

    def __init__(
        self,
        state_store: StateStore,
        exchanger: TokenExchanger,
        verifier: IdentityTokenVerifier,
        redirect_uri: str,
        expected_issuer: str,
        expected_audience: str,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.state_store = state_store
        self.exchanger = exchanger
        self.verifier = verifier
        self.redirect_uri = redirect_uri
        self.expected_issuer = expected_issuer
        self.expected_audience = expected_audience
        self.metrics = metrics
        self.logger = get_logger("signin.callback")

    async def handle(
        self,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> CallbackOutcome:
        """Run one callback through the pipeline and return its outcome."""
        outcome = CallbackOutcome()
        set_callback_step(outcome.state.value)

        try:
            if not self.state_store.validate_and_consume(state):
                raise InvalidStateError()
            self._advance(outcome, CallbackState.STATE_VALIDATED)

            if error:
                raise AuthorizationResponseError(error, error_description)

            outcome.token_response = await self.exchanger.exchange(code, self.redirect_uri)
            self._advance(outcome, CallbackState.TOKEN_EXCHANGED)

            outcome.claims = await self.verifier.verify(
                outcome.token_response.id_token,
                self.expected_issuer,
                self.expected_audience,
                access_token=outcome.token_response.access_token,
            )
            self._advance(outcome, CallbackState.IDENTITY_VERIFIED)

        except (InvalidStateError, AuthorizationResponseError, ExchangeError, VerificationError) as e:
            self.logger.warning(
                "Sign-in callback failed",
                reason=e.code,
                error=e.message,
                failed_after=outcome.state.value
            )
            self._record(outcome.fail(e))
            return outcome

        self._advance(outcome, CallbackState.SUCCESS)
        set_subject(outcome.claims.sub)
        self.logger.info("Sign-in callback succeeded")
        self._record(outcome)
        return outcome

    @staticmethod
    def _advance(outcome: CallbackOutcome, next_state: CallbackState) -> None:
        outcome.advance(next_state)
        set_callback_step(next_state.value)

    def _record(self, outcome: CallbackOutcome) -> None:
        if self.metrics:
            self.metrics.record_callback_outcome(outcome.state.value, outcome.reason or "")
