"""
Identity token verification against the remote key set.
"""

from typing import Any, Dict, List, Optional, Union

import httpx
from jose import jwt
from jose.exceptions import ExpiredSignatureError, JOSEError, JWTClaimsError, JWTError
from pydantic import BaseModel, ConfigDict, ValidationError

from shared.errors import VerificationError
from shared.logging import get_logger
from ..jwks.client import JWKSClient

# Asymmetric only; HS* keys would be the shared client secret.
ALLOWED_ALGORITHMS = ("RS256", "RS384", "RS512", "ES256", "ES384", "ES512")


class IdentityTokenClaims(BaseModel):
    """Verified identity token payload."""

    model_config = ConfigDict(extra="allow")

    sub: str
    iss: str
    aud: Union[str, List[str]]
    exp: int
    iat: Optional[int] = None


class IdentityTokenVerifier:
    """Verifies identity token signature, issuer, audience and expiry."""

    def __init__(self, jwks_client: JWKSClient, leeway: int = 0):
        self.jwks_client = jwks_client
        self.leeway = leeway
        self.logger = get_logger("signin.verifier")

    async def verify(
        self,
        identity_token: str,
        expected_issuer: str,
        expected_audience: str,
        access_token: Optional[str] = None,
    ) -> IdentityTokenClaims:
        """Return the token's claims, or raise ``VerificationError``."""
        try:
            header = jwt.get_unverified_header(identity_token)
        except JWTError as e:
            raise VerificationError(f"Malformed identity token: {e}") from e

        algorithm = header.get("alg")
        if algorithm not in ALLOWED_ALGORITHMS:
            raise VerificationError(
                f"Unsupported signing algorithm: {algorithm}",
                details={"alg": algorithm}
            )

        kid = header.get("kid")
        if not isinstance(kid, str) or not kid:
            raise VerificationError("Identity token missing key ID")

        try:
            key_data = await self.jwks_client.get_key(kid)
        except (httpx.HTTPError, ValueError) as e:
            raise VerificationError(
                f"Unable to load signing keys: {e}",
                details={"kid": kid}
            ) from e
        if not key_data:
            raise VerificationError(f"Signing key not found: {kid}", details={"kid": kid})

        options: Dict[str, Any] = {
            "require_iss": True,
            "require_aud": True,
            "require_exp": True,
            "require_sub": True,
            "leeway": self.leeway,
        }

        try:
            payload = jwt.decode(
                identity_token,
                key_data,
                algorithms=[algorithm],
                audience=expected_audience,
                issuer=expected_issuer,
                access_token=access_token,
                options=options,
            )
        except ExpiredSignatureError as e:
            self.logger.warning("Identity token expired", kid=kid)
            raise VerificationError("Identity token has expired", details={"kid": kid}) from e
        except JWTClaimsError as e:
            self.logger.warning("Identity token claims rejected", kid=kid, error=str(e))
            raise VerificationError(f"Invalid identity token claims: {e}", details={"kid": kid}) from e
        except JOSEError as e:
            self.logger.warning("Identity token signature rejected", kid=kid, error=str(e))
            raise VerificationError(f"Invalid identity token: {e}", details={"kid": kid}) from e

        try:
            claims = IdentityTokenClaims.model_validate(payload)
        except ValidationError as e:
            raise VerificationError("Identity token claims have unexpected types") from e

        self.logger.info("Identity token verified", sub=claims.sub)
        return claims
