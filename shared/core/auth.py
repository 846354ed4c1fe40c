from fastapi import Depends, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from pydantic import ValidationError

from shared.utils.app_status_code import AppStatusCode
from shared.utils.enums import UserAccountType
from shared.core.config import settings
from shared.helpers.json_response_helper import error_response
from shared.core.schemas import UserToken

security = HTTPBearer()


def create_access_token(data: dict) -> str:
    payload = data.copy()
    if payload.get("profile_id") is not None:
        payload["profile_id"] = str(payload["profile_id"])
    return jwt.encode(payload, settings.JWT_SECRET,
                      algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str) -> UserToken:
    """Verify and decode a JWT token."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET,
                             algorithms=[settings.JWT_ALGORITHM])
        user = UserToken(**payload)
    except (JWTError, ValidationError):
        return error_response(
            message="Invalid or expired token",
            status_code=str(AppStatusCode.AUTHENTICATION_TOKEN_EXPIRED),
            http_status=status.HTTP_401_UNAUTHORIZED
        )

    if not user.user_id:
        return error_response(
            message="Invalid token structure",
            status_code=str(AppStatusCode.AUTHENTICATION_TOKEN_INVALID),
            http_status=status.HTTP_401_UNAUTHORIZED
        )
    return user


def validate_current_token(
    credentials: HTTPAuthorizationCredentials = Depends(security),
):
    return verify_token(credentials.credentials)


def allow_admin(current_user: UserToken = Depends(validate_current_token)):
    if current_user.account_type.lower() != UserAccountType.ADMIN.value:
        return error_response(
            message="Access forbidden: Admins only",
            status_code=str(AppStatusCode.AUTHENTICATION_UNAUTHORIZED_ACCESS),
            http_status=403
        )

    return current_user
