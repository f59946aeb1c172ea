"""Access token verification.

Tokens are issued by the identity service and signed with the shared
secret; this service only verifies them.
"""
from jose import JWTError, jwt

from timeclock.config import settings


def verify_access_token(token: str) -> str:
    """
    Verify and decode a JWT access token.

    Args:
        token: JWT token string to verify

    Returns:
        User ID from the token's `sub` claim

    Raises:
        JWTError: If token is invalid, expired or has no subject
    """
    payload = jwt.decode(
        token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
    )
    user_id = payload.get("sub")

    if user_id is None:
        raise JWTError("Token payload missing 'sub' claim")

    return str(user_id)
