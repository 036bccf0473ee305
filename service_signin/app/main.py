"""
Sign-in relying party service.
"""

from pathlib import Path
from typing import Optional

import httpx
from fastapi import Request
from fastapi.responses import RedirectResponse, Response
from fastapi.templating import Jinja2Templates

from shared.base_service import BaseService
from shared.config import ServiceConfig
from .authorize.redirector import AuthorizationRedirector
from .callback.orchestrator import CallbackOrchestrator
from .exchange.client import TokenExchanger
from .jwks.client import JWKSClient
from .state.store import InMemoryStateStore, StateStore
from .validation.id_token_verifier import IdentityTokenVerifier

TEMPLATES_DIR = Path(__file__).parent / "templates"


class SignInService(BaseService):
    """Relying party for the authorization code flow."""

    # Callback pages carry tokens.
    response_headers = {"Cache-Control": "no-store", "Pragma": "no-cache"}

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        state_store: Optional[StateStore] = None,
    ):
        super().__init__("signin", config)
        self.templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            timeout=self.config.http_timeout_seconds
        )

        self.state_store = state_store or InMemoryStateStore(
            ttl_seconds=self.config.state_ttl_seconds
        )
        self.redirector = AuthorizationRedirector(self.config.authorize_url, self.state_store)
        self.exchanger = TokenExchanger(
            self.config.token_url,
            self.config.client_id,
            self.config.client_secret,
            http_client=self.http_client,
            metrics=self.metrics,
        )
        self.jwks_client = JWKSClient(
            self.config.jwks_url,
            http_client=self.http_client,
            cache_ttl=self.config.jwks_cache_ttl_seconds,
            min_refresh_interval=self.config.jwks_min_refresh_interval_seconds,
            metrics=self.metrics,
        )
        self.verifier = IdentityTokenVerifier(
            self.jwks_client,
            leeway=self.config.id_token_leeway_seconds,
        )
        self.orchestrator = CallbackOrchestrator(
            self.state_store,
            self.exchanger,
            self.verifier,
            redirect_uri=self.config.redirect_uri,
            expected_issuer=self.config.id_token_issuer,
            expected_audience=self.config.client_id,
            metrics=self.metrics,
        )

        self._setup_signin_routes()

    def _setup_signin_routes(self):
        """Set up sign-in routes."""

        @self.app.get("/")
        async def index(request: Request):
            """Landing page."""
            return self.templates.TemplateResponse(
                request,
                "index.html",
                {"auth_host": self.config.auth_host}
            )

        @self.app.get("/signin")
        async def signin():
            """Start the authorization code flow."""
            url = self.redirector.build_redirect(
                self.config.client_id,
                self.config.redirect_uri,
                self.config.scope,
            )
            self.metrics.record_signin_attempt()
            return RedirectResponse(url, status_code=302)

        @self.app.get("/oauth_callback")
        async def oauth_callback(
            request: Request,
            code: Optional[str] = None,
            state: Optional[str] = None,
            error: Optional[str] = None,
            error_description: Optional[str] = None,
        ):
            """Complete the authorization code flow."""
            outcome = await self.orchestrator.handle(code, state, error, error_description)

            if not outcome.succeeded:
                return self._render_error(
                    request,
                    outcome.error.status_code,
                    outcome.reason,
                    outcome.message,
                )

            return self.templates.TemplateResponse(
                request,
                "success.html",
                {
                    "response": outcome.token_response.model_dump(),
                    "token_payload": outcome.claims.model_dump(),
                    "signout_url": self.config.signout_url,
                }
            )

    def _render_error(self, request: Request, status_code: int, code: str, message: str) -> Response:
        return self.templates.TemplateResponse(
            request,
            "error.html",
            {"error": message, "code": code},
            status_code=status_code,
        )

    async def _on_shutdown(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    async def _check_dependencies(self):
        """Check that the authorization server's key set is reachable."""
        return {"jwks": await self.jwks_client.check_health()}


def create_app(config: Optional[ServiceConfig] = None, http_client: Optional[httpx.AsyncClient] = None):
    """Create FastAPI application."""
    service = SignInService(config, http_client=http_client)
    return service.app


def main():
    SignInService().run()


if __name__ == "__main__":
    main()
