"""
Bearer token decoding.
"""

from authlib.jose import JoseError, jwt

from crvs_workflow.exceptions.domain import AuthenticationError
from crvs_workflow.models.auth import TokenClaims


class JwtClaimsExtractor:
    """Decodes and validates actor tokens issued by the auth service.

    Args:
        key: Shared secret (HS256) or PEM public key (RS256) used to verify signatures.
        issuer: Expected ``iss`` claim; not checked when None.
        audience: Accepted ``aud`` values; not checked when empty.
    """

    def __init__(
        self, key: str | bytes, issuer: str | None = None, audience: list[str] | None = None
    ) -> None:
        self.key = key
        self.claims_options: dict[str, dict[str, object]] = {"sub": {"essential": True}}
        if issuer:
            self.claims_options["iss"] = {"essential": True, "value": issuer}
        if audience:
            self.claims_options["aud"] = {"essential": True, "values": audience}

    def extract(self, token: str) -> TokenClaims:
        """Decode ``token`` into claims.

        Raises:
            AuthenticationError: If the token is missing, badly signed, expired or has wrong claims
        """
        if not token:
            raise AuthenticationError("Missing bearer token")
        try:
            claims = jwt.decode(token, self.key, claims_options=self.claims_options)
            claims.validate()
        except JoseError as e:
            raise AuthenticationError(f"Invalid token: {e}") from e
        except ValueError as e:
            raise AuthenticationError("Malformed token") from e
        return TokenClaims.model_validate(dict(claims))
