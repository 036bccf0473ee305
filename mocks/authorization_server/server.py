"""
Mock authorization server providing the authorize, token and JWKS endpoints.
"""

import secrets
import time
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import jwt
from fastapi import Depends, FastAPI, Form, HTTPException, Query
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from shared.logging import get_logger
from shared.test_helpers import TEST_CLIENT_ID, TEST_CLIENT_SECRET, TEST_ISSUER, create_signing_key


class MockAuthorizationServer:
    """Mock authorization server implementation."""

    def __init__(
        self,
        issuer: str = TEST_ISSUER,
        client_id: str = TEST_CLIENT_ID,
        client_secret: str = TEST_CLIENT_SECRET,
    ):
        self.logger = get_logger("mock.authorization_server")
        self.app = FastAPI(title="Mock Authorization Server", version="1.0.0")

        self.issuer = issuer
        self.client_id = client_id
        self.client_secret = client_secret
        self.signing_key = create_signing_key("mock-key-1")

        # The user every authorization request signs in as
        self.user = {
            "sub": "user1",
            "name": "John Doe",
            "preferred_username": "john.doe",
            "email": "john.doe@example.com",
        }

        # code -> {client_id, redirect_uri, scope}
        self.codes: Dict[str, Dict[str, Any]] = {}

        self._setup_routes()

    def _setup_routes(self):
        """Set up mock authorization server routes."""
        security = HTTPBasic()

        @self.app.get("/auth")
        async def authorize(
            response_type: str = Query(...),
            client_id: str = Query(...),
            redirect_uri: str = Query(...),
            scope: str = Query(""),
            state: Optional[str] = Query(None),
        ):
            """Authorization endpoint; consents immediately."""
            if response_type != "code":
                raise HTTPException(status_code=400, detail="Unsupported response type")
            if client_id != self.client_id:
                raise HTTPException(status_code=400, detail="Invalid client")

            code = secrets.token_urlsafe(16)
            self.codes[code] = {
                "client_id": client_id,
                "redirect_uri": redirect_uri,
                "scope": scope,
            }
            params = {"code": code}
            if state is not None:
                params["state"] = state
            return RedirectResponse(f"{redirect_uri}?{urlencode(params)}", status_code=302)

        @self.app.post("/oauth/token")
        async def token_endpoint(
            credentials: HTTPBasicCredentials = Depends(security),
            grant_type: str = Form(...),
            code: str = Form(...),
            redirect_uri: str = Form(...),
        ):
            """Token endpoint for the authorization code grant."""
            if credentials.username != self.client_id or credentials.password != self.client_secret:
                return self._oauth_error(401, "invalid_client", "Client authentication failed")
            if grant_type != "authorization_code":
                return self._oauth_error(400, "unsupported_grant_type", grant_type)

            record = self.codes.pop(code, None)
            if record is None:
                return self._oauth_error(400, "invalid_grant", "Unknown or used authorization code")
            if record["redirect_uri"] != redirect_uri:
                return self._oauth_error(400, "invalid_grant", "redirect_uri mismatch")

            return self._issue_tokens(record)

        @self.app.get("/.well-known/jwks.json")
        async def jwks_endpoint():
            """JWKS endpoint."""
            return self.signing_key.jwks

        @self.app.get("/signout")
        async def signout():
            return {"message": "Signed out"}

    def _oauth_error(self, status_code: int, error: str, description: str) -> JSONResponse:
        self.logger.warning("Token request rejected", error=error, description=description)
        return JSONResponse(
            status_code=status_code,
            content={"error": error, "error_description": description}
        )

    def _issue_tokens(self, record: Dict[str, Any]) -> Dict[str, Any]:
        now = int(time.time())
        claims = dict(self.user)
        claims.update({
            "iss": self.issuer,
            "aud": record["client_id"],
            "iat": now,
            "exp": now + 3600,
        })
        id_token = jwt.encode(
            claims,
            self.signing_key.private_key,
            algorithm="RS256",
            headers={"kid": self.signing_key.kid}
        )

        return {
            "access_token": secrets.token_urlsafe(24),
            "id_token": id_token,
            "token_type": "Bearer",
            "expires_in": 3600,
            "scope": record["scope"],
        }


def create_app():
    """Create mock authorization server application."""
    server = MockAuthorizationServer()
    return server.app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=9000)
