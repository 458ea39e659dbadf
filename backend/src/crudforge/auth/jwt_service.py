"""JWT access token generation and validation service."""

import time

import jwt

from crudforge.auth.types import TokenClaims


class JWTError(Exception):
    """Base exception for JWT-related errors."""

    pass


class TokenExpiredError(JWTError):
    """Raised when a token has expired."""

    pass


class InvalidTokenError(JWTError):
    """Raised when a token is invalid or malformed."""

    pass


class JWTService:
    """Service for signing and validating access tokens.

    Uses HS256 with a shared secret key.
    """

    DEFAULT_TTL = 90 * 24 * 60 * 60  # 90 days

    def __init__(
        self,
        secret_key: str,
        expires_in: int = DEFAULT_TTL,
        algorithm: str = "HS256",
    ):
        """Initialize the JWT service.

        Args:
            secret_key: Secret key for signing tokens (should be at least 32 chars)
            expires_in: Token TTL in seconds
            algorithm: JWT algorithm (default HS256)
        """
        self._secret_key = secret_key
        self._algorithm = algorithm
        self.expires_in = expires_in

    def sign(self, user_id: str, now: int | None = None) -> str:
        """Sign an access token for *user_id*."""
        issued = int(time.time()) if now is None else now
        claims = {
            "sub": str(user_id),
            "iat": issued,
            "exp": issued + self.expires_in,
        }
        return jwt.encode(claims, self._secret_key, algorithm=self._algorithm)

    def decode(self, token: str) -> TokenClaims:
        """Decode and validate an access token.

        Raises:
            TokenExpiredError: If the token has expired
            InvalidTokenError: If the token is invalid or malformed
        """
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(f"Invalid token: {e}")

        if not payload.get("sub"):
            raise InvalidTokenError("Invalid token: missing subject")

        return TokenClaims(
            user_id=payload["sub"],
            exp=payload.get("exp", 0),
            iat=payload.get("iat", 0),
        )
