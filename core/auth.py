import os
from datetime import UTC, datetime, timedelta
from functools import wraps
from typing import Any, Union
from uuid import uuid4

from fastapi import HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt
from sqlalchemy import desc

from models.token import Token
from models.user import User
from utils.state import State
from utils.token import decodeJWT


class JWTBearer(HTTPBearer):
    def __init__(self, auto_error: bool = True):
        super(JWTBearer, self).__init__(auto_error=auto_error)

    async def __call__(self, request: Request):
        credentials: HTTPAuthorizationCredentials = await super(
            JWTBearer, self
        ).__call__(request)
        if credentials:
            if not credentials.scheme == "Bearer":
                raise HTTPException(
                    status_code=403, detail="Invalid authentication scheme."
                )
            if not self.verify_jwt(credentials.credentials):
                raise HTTPException(
                    status_code=403, detail="Invalid token or expired token."
                )
            return credentials.credentials
        else:
            raise HTTPException(status_code=403, detail="Invalid authorization code.")

    def verify_jwt(self, jwtoken: str) -> bool:
        return decodeJWT(jwtoken) is not None


def _encode(claims: dict, expires_delta: timedelta | None, default_minutes_env: str) -> str:
    if expires_delta is None:
        expires_delta = timedelta(minutes=int(os.getenv(default_minutes_env, "30")))
    to_encode = {**claims, "exp": datetime.now(UTC) + expires_delta, "jti": str(uuid4())}
    return jwt.encode(
        to_encode, os.getenv("JWT_SECRET_KEY"), os.getenv("JWT_ALGORITHM", "HS256")
    )


def create_access_token(
    subject: Union[str, Any], role: str | None = None, expires_delta: timedelta = None
) -> str:
    return _encode(
        {"sub": str(subject), "role": role, "type": "access"},
        expires_delta,
        "JWT_ACCESS_TOKEN_EXPIRE_MINUTES",
    )


def create_refresh_token(subject: Union[str, Any], expires_delta: timedelta = None) -> str:
    return _encode(
        {"sub": str(subject), "type": "refresh"},
        expires_delta,
        "JWT_REFRESH_TOKEN_EXPIRE_MINUTES",
    )


def get_current_user(token: str, db) -> User:
    payload = decodeJWT(token)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid access token."
        )
    user = db.query(User).filter(User.user_id == payload["sub"]).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def token_required(func):
    """Verifies the JWT token. Checks if user is loggedin."""

    @wraps(func)
    async def wrapper(*args, **kwargs):
        payload = decodeJWT(kwargs["dependencies"])
        if not payload or payload.get("type") != "access":
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid access token."
            )
        data = (
            kwargs["db"]
            .query(Token)
            .filter_by(
                user_id=payload["sub"], access_token=kwargs["dependencies"], status=True
            )
            .order_by(desc(Token.time_created))
            .first()
        )
        if data:
            return await func(*args, **kwargs)

        else:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid access token."
            )

    return wrapper


def roles_required(*roles):
    """Restricts a route to users holding one of ``roles``.

    Stack it under ``token_required`` so the token is checked first.
    """
    allowed = {getattr(role, "value", role) for role in roles}

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            user = get_current_user(kwargs["dependencies"], kwargs["db"])
            if user.role not in allowed:
                State.logger.error(
                    f"User {user.user_id} with role {user.role} denied access to {func.__name__}"
                )
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="You do not have permission to perform this action.",
                )
            return await func(*args, **kwargs)

        return wrapper

    return decorator
