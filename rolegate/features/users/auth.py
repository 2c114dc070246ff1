"""
Bearer token decoding.

Tokens are minted by the upstream identity provider. Their signature is
checked against ``JWT_SECRET`` with one of ``JWT_ALGORITHMS``, along with
expiry and shape.
"""
import jwt
from fastapi import HTTPException, status

from rolegate.core import config
from rolegate.utils import get_logger


log = get_logger(__name__)


def verify_jwt_token(token: str) -> dict:
    """
    Verify a JWT and return its payload.

    Raises:
        HTTPException: 401 if the token is malformed, forged or expired;
            503 if no verification key is configured
    """
    if not config.JWT_SECRET:
        log.error("JWT_SECRET is not set; rejecting bearer token")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Token verification is not configured",
        )
    try:
        return jwt.decode(
            token,
            config.JWT_SECRET,
            algorithms=config.JWT_ALGORITHMS,
            options={"verify_exp": True},
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )


def role_from_payload(payload: dict) -> str:
    """Read the caller's role (a built-in name or a custom role id)."""
    role = payload.get(config.JWT_ROLE_CLAIM)
    if not isinstance(role, str) or not role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Token has no '{config.JWT_ROLE_CLAIM}' claim",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return role
