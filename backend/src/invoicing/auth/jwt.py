"""JWT verification for tokens issued by the upstream auth service.

Tokens are signed with a shared HS256 secret. The invoicing service only
reads the ``sub`` claim, which becomes the actor id recorded on payments.
"""
from datetime import datetime, timedelta
from typing import Dict, Optional
from uuid import UUID

import jwt

from invoicing.config import settings


class JWTAuth:
    """JWT authentication handler with shared-secret signing."""

    def __init__(self, secret_key: Optional[str] = None, algorithm: Optional[str] = None):
        """Initialize JWT auth from settings unless overridden."""
        self.secret_key = secret_key or settings.jwt_secret_key
        self.algorithm = algorithm or settings.jwt_algorithm
        self.access_token_expire_minutes = 60

    def create_access_token(
        self,
        user_id: UUID,
        email: Optional[str] = None,
        additional_claims: Optional[Dict] = None,
    ) -> str:
        """
        Create JWT access token.

        The auth service normally issues tokens; this is used by scripts and tests.

        Args:
            user_id: User UUID
            email: User email
            additional_claims: Additional JWT claims

        Returns:
            Encoded JWT token
        """
        now = datetime.utcnow()
        claims = {
            "sub": str(user_id),
            "iat": now,
            "exp": now + timedelta(minutes=self.access_token_expire_minutes),
            "type": "access",
        }
        if email:
            claims["email"] = email
        if additional_claims:
            claims.update(additional_claims)

        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    def verify_access_token(self, token: str) -> Dict:
        """
        Verify and decode an access token.

        Raises:
            jwt.ExpiredSignatureError: If token is expired
            jwt.InvalidTokenError: If token is invalid, of the wrong type or has no subject
        """
        payload = jwt.decode(
            token,
            self.secret_key,
            algorithms=[self.algorithm],
            options={"require": ["exp", "sub"]},
        )

        if payload.get("type", "access") != "access":
            raise jwt.InvalidTokenError("Invalid token type")

        return payload

    def get_user_id_from_token(self, token: str) -> UUID:
        """
        Extract the user id from the ``sub`` claim.

        Raises:
            jwt.InvalidTokenError: If the subject is not a UUID
        """
        payload = self.verify_access_token(token)
        try:
            return UUID(payload["sub"])
        except ValueError as e:
            raise jwt.InvalidTokenError("Subject is not a valid user id") from e


# Global JWT auth instance
jwt_auth = JWTAuth()
