from core.database import SessionLocal
from typing import Annotated
from fastapi import Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from jose import JWTError, jwt
from starlette import status
from core.config import settings
from models.enums import UserRole
from services.order_workflow import Actor

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

db_dependency = Annotated[Session, Depends(get_db)]


def get_current_user(token: Annotated[str, Depends(OAuth2PasswordBearer(tokenUrl="auth/token"))]):
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
                            detail="Could not validate credentials.")

    email: str = payload.get("sub")
    user_id: int = payload.get("id")
    user_role: str = payload.get("role")
    token_type: str = payload.get("type")

    if email is None or user_id is None or user_role not in {r.value for r in UserRole}:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
                            detail="Could not validate credentials.")

    if token_type != "access":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
                            detail="Invalid token type. Access token required.")

    return {"email": email, "user_id": user_id, "user_role": user_role}


user_dependency = Annotated[dict, Depends(get_current_user)]


def require_role(*roles: UserRole):
    """Dependency factory: the caller as an Actor, or 403 unless their role is one of roles."""
    def checker(user: user_dependency) -> Actor:
        actor = Actor.from_claims(user)
        if actor.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN,
                                detail="Insufficient permissions")
        return actor
    return checker


def get_current_actor(user: user_dependency) -> Actor:
    return Actor.from_claims(user)


actor_dependency = Annotated[Actor, Depends(get_current_actor)]
admin_dependency = Annotated[Actor, Depends(require_role(UserRole.ADMIN))]
operator_dependency = Annotated[Actor, Depends(require_role(UserRole.OPERATOR))]
customer_dependency = Annotated[Actor, Depends(require_role(UserRole.CUSTOMER))]
