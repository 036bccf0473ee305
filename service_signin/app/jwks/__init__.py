"""
JWKS client package.

Contains logic for retrieving and caching the JSON Web Key Set used to
verify identity token signatures.

Key points:
- Bounded timeouts on every fetch.
- Cache keys for a reasonable TTL to avoid hammering the authorization server.
- Select keys by kid; refresh once when a kid is unknown.
"""
