from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request
from jose import jwt, JWTError
from core.config import settings

def get_user_id(request: Request):
    """Rate-limit key: the signed-in user's id, else the client address."""
    header = request.headers.get("Authorization")
    if header and header.startswith("Bearer "):
        try:
            payload = jwt.decode(header[len("Bearer "):], settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
            user_id = payload.get("id")
            if user_id:
                return f"user:{user_id}"
        except JWTError:
            pass  # unauthenticated callers share their address bucket

    return get_remote_address(request)

limiter = Limiter(
    key_func=get_user_id,
    default_limits=["200/hour"],
    enabled=settings.ENV != "testing"
)
