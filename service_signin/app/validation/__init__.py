"""
Token validation package.

Verifies identity tokens issued by the authorization server:

- Resolving the signing key by kid through the JWKS client.
- Validating signature, expiry, audience, and issuer.
- Shaping the payload into ``IdentityTokenClaims``.

Only standard JOSE/JWT behaviors are assumed so the authorization server
can be switched with configuration.
"""
