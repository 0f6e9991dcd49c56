from __future__ import annotations

import hmac
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from uplift.config import get_settings

bearer_scheme = HTTPBearer(auto_error=False)


class TokenData(BaseModel):
    user_id: int
    display_name: Optional[str] = None


def create_access_token(data: dict[str, Any], expires_minutes: Optional[int] = None) -> str:
    settings = get_settings()
    payload = dict(data)
    if "sub" in payload:
        payload["sub"] = str(payload["sub"])
    minutes = expires_minutes if expires_minutes is not None else settings.jwt_expire_minutes
    payload["exp"] = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def _credentials_error(code: str = "INVALID_TOKEN") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": code},
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(token: str) -> TokenData:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        return TokenData(user_id=int(payload["sub"]), display_name=payload.get("name"))
    except (JWTError, KeyError, TypeError, ValueError) as exc:
        raise _credentials_error() from exc


def get_current_user_id(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
) -> int:
    """Acting user id from the bearer token's ``sub`` claim."""
    if credentials is None or not credentials.credentials:
        raise _credentials_error("AUTH_REQUIRED")
    return get_current_user(credentials.credentials).user_id


CurrentUserId = Annotated[int, Depends(get_current_user_id)]


def require_job_token(x_job_token: Annotated[Optional[str], Header()] = None) -> None:
    """Gate scheduler endpoints behind the shared ``JOB_TOKEN``."""
    expected = get_settings().job_token
    if not expected or not x_job_token or not hmac.compare_digest(x_job_token, expected):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail={"code": "JOB_TOKEN_REQUIRED"})


JobToken = Annotated[None, Depends(require_job_token)]
