"""
Back-channel exchange of an authorization code for tokens.
"""

from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from shared.errors import ExchangeError
from shared.logging import get_logger
from shared.metrics import MetricsCollector


class TokenResponse(BaseModel):
    """Token endpoint result.

    ``access_token`` and ``id_token`` are required; any other field the
    authorization server returns is kept in ``additional_fields``.
    """

    model_config = ConfigDict(extra="allow")

    access_token: str
    id_token: str
    token_type: Optional[str] = None
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None
    scope: Optional[str] = None

    @property
    def additional_fields(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})


class TokenExchanger:
    """Exchanges authorization codes at the token endpoint.

    A single attempt is made per callback; failures are raised as
    ``ExchangeError`` and never retried.
    """

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: str,
        http_client: Optional[httpx.AsyncClient] = None,
        http_timeout: float = 10.0,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.token_url = token_url
        self.client_id = client_id
        self._auth = httpx.BasicAuth(client_id, client_secret)
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=http_timeout)
        self.metrics = metrics
        self.logger = get_logger("signin.exchange")

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def exchange(self, authorization_code: str, redirect_uri: str) -> TokenResponse:
        """Exchange ``authorization_code`` for a token response."""
        if not authorization_code:
            raise ExchangeError("Missing authorization code")

        form = {
            "grant_type": "authorization_code",
            "code": authorization_code,
            "redirect_uri": redirect_uri,
        }

        try:
            if self.metrics:
                with self.metrics.time_operation("token_exchange_duration_seconds"):
                    response = await self._client.post(self.token_url, data=form, auth=self._auth)
            else:
                response = await self._client.post(self.token_url, data=form, auth=self._auth)
        except httpx.HTTPError as e:
            self.logger.error("Token endpoint unreachable", error=str(e))
            raise ExchangeError(
                f"Token endpoint unreachable: {e}",
                details={"http_error": type(e).__name__}
            ) from e

        payload = self._parse_body(response)

        if response.is_error or "error" in payload:
            error = payload.get("error") or f"HTTP {response.status_code}"
            description = payload.get("error_description")
            self.logger.warning(
                "Token endpoint rejected exchange",
                status_code=response.status_code,
                error=error
            )
            raise ExchangeError(
                f"{error}: {description}" if description else error,
                details={
                    "status_code": response.status_code,
                    "error": error,
                    "error_description": description,
                }
            )

        try:
            tokens = TokenResponse.model_validate(payload)
        except ValidationError as e:
            missing = sorted(
                str(err["loc"][0]) for err in e.errors() if err.get("loc")
            )
            raise ExchangeError(
                "Token response missing or malformed fields: " + ", ".join(missing),
                details={"fields": missing}
            ) from e

        self.logger.info("Authorization code exchanged", fields=sorted(payload.keys()))
        return tokens

    def _parse_body(self, response: httpx.Response) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as e:
            if response.is_error:
                return {}
            raise ExchangeError(
                "Token response is not valid JSON",
                details={"status_code": response.status_code}
            ) from e

        if not isinstance(payload, dict):
            if response.is_error:
                return {}
            raise ExchangeError(
                "Token response is not a JSON object",
                details={"status_code": response.status_code}
            )
        return payload
