"""
Password hashing, bearer token issuing and verification for the bookstore API.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext

from bookstore.models import ErrorResponse, TokenClaims

logger = structlog.get_logger(__name__)

# Security scheme; missing credentials are answered with 401 below, not 403
security = HTTPBearer(auto_error=False)

DEFAULT_TOKEN_TTL = timedelta(hours=24)


class AuthenticationError(Exception):
    """Raised when a token cannot be trusted."""


class CredentialService:
    """Hashes and verifies passwords, issues and validates signed tokens."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        token_ttl: timedelta = DEFAULT_TOKEN_TTL,
        bcrypt_rounds: int = 10,
    ):
        """
        Initialize the credential service.

        Args:
            secret: Token signing key
            algorithm: JWT signing algorithm
            token_ttl: Default lifetime of issued tokens
            bcrypt_rounds: bcrypt cost factor
        """
        self.secret = secret
        self.algorithm = algorithm
        self.token_ttl = token_ttl
        self.pwd_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=bcrypt_rounds,
        )

    def hash_password(self, password: str) -> str:
        """Return a salted bcrypt hash of the password."""
        return self.pwd_context.hash(password)

    def verify_password(self, password: str, hashed: Optional[str]) -> bool:
        """
        Check a plaintext password against a stored hash.

        Returns False on mismatch and on hashes passlib cannot identify.
        """
        if not hashed:
            return False
        try:
            return self.pwd_context.verify(password, hashed)
        except (ValueError, TypeError):
            logger.warning("Stored password hash could not be verified")
            return False

    def dummy_verify(self) -> bool:
        """Spend the time of a real verification, for logins with an unknown e-mail."""
        return self.pwd_context.dummy_verify()

    def issue_token(
        self,
        claims: Dict[str, Any],
        ttl: Optional[timedelta] = None,
        issued_at: Optional[datetime] = None,
    ) -> str:
        """
        Create a signed token.

        Args:
            claims: Identity claims (username, email, role)
            ttl: Lifetime, defaults to the service's token_ttl
            issued_at: Issue time, defaults to now

        Returns:
            Encoded JWT
        """
        issued_at = issued_at or datetime.now(timezone.utc)
        payload = dict(claims)
        payload.update({
            "iat": issued_at,
            "exp": issued_at + (ttl if ttl is not None else self.token_ttl),
        })
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify_token(self, token: str) -> TokenClaims:
        """
        Validate signature and expiry and return the embedded claims.

        Raises:
            AuthenticationError: On bad signature, malformed token, missing
                claims or expiry
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat", "email"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise AuthenticationError("Token has expired") from e
        except jwt.InvalidTokenError as e:
            raise AuthenticationError(f"Invalid token: {e}") from e

        return TokenClaims(
            username=payload.get("username"),
            email=payload.get("email"),
            role=payload.get("role") or "user",
        )


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=ErrorResponse(error=message).model_dump(exclude_none=True),
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_credential_service(request: Request) -> CredentialService:
    """Credential service of the running application."""
    return request.app.state.context.credentials


async def require_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    credential_service: CredentialService = Depends(get_credential_service),
) -> TokenClaims:
    """
    Verify the bearer token of the request.

    Returns:
        Claims embedded in the token

    Raises:
        HTTPException: 401 if the token is missing, invalid or expired
    """
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Token is missing")

    try:
        return credential_service.verify_token(credentials.credentials)
    except AuthenticationError as e:
        logger.warning("Rejected bearer token", reason=str(e))
        raise _unauthorized("Invalid or expired token")


async def require_admin(claims: TokenClaims = Depends(require_token)) -> TokenClaims:
    """Verify the bearer token and require the admin role."""
    if not claims.is_admin():
        logger.warning("Admin role required", username=claims.username)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=ErrorResponse(error="Admin role required").model_dump(exclude_none=True),
        )
    return claims
