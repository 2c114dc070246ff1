"""
FastAPI dependencies for caller identity.
"""
from typing import Annotated
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from rolegate.features.users.auth import role_from_payload, verify_jwt_token


security = HTTPBearer()


async def get_current_role(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> str:
    """
    Role of the authenticated caller, exactly as carried by the token.

    Usage:
        @router.get("/me")
        async def me(role: str = Depends(get_current_role)):
            return {"role": role}
    """
    payload = verify_jwt_token(credentials.credentials)
    return role_from_payload(payload)


def get_authorization_header(request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"
