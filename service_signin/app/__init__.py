"""
Sign-in service package.

This package exposes the FastAPI application implementing the relying
party side of the OAuth2 authorization code flow with OpenID Connect
identity tokens:

- app.main: Application entrypoint that wires routes and lifecycle.
- app.state: Pending anti-CSRF state tokens.
- app.authorize: Authorization endpoint redirect construction.
- app.exchange: Back-channel code-for-token exchange.
- app.jwks: JWKS client for fetching and caching signing keys.
- app.validation: Identity token verification.
- app.callback: The callback pipeline tying the above together.

Design notes:
- Module import must not perform network calls. All IO happens in route
  handlers or explicit lifecycle hooks.
- Use the shared/ utilities for logging, metrics, config, and errors.
- The only cross-request state is the state store; everything else is
  per callback.
"""
