from typing import Annotated, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import ValidationError

from libs.auth.models import AuthUser
from libs.common.config import get_settings

security = HTTPBearer(auto_error=False)


def _decode(token: str) -> AuthUser:
    settings = get_settings()
    # Supabase signs with HS256; audience varies between projects
    payload = jwt.decode(
        token,
        settings.SUPABASE_JWT_SECRET,
        algorithms=["HS256"],
        options={"verify_aud": False},
    )
    return AuthUser(**payload)


async def get_optional_user(
    token: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)]
) -> Optional[AuthUser]:
    """
    Return the user for a valid token, or None for guests and bad tokens.

    Guest checkout is keyed by cart session id alone.
    """
    if token is None:
        return None
    try:
        return _decode(token.credentials)
    except (JWTError, ValidationError):
        return None
