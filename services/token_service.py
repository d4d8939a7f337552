import secrets
import hashlib
from datetime import datetime, timezone, timedelta
from sqlalchemy.orm import Session
from fastapi import HTTPException, status
from jose import jwt, JWTError
from models.enums import UserRole
from models.refresh_tokens import RefreshToken
from models.users import User
from core.config import settings
from utils.logger import get_logger

logger = get_logger(__name__)


def hash_jti(jti: str) -> str:
    return hashlib.sha256(jti.encode()).hexdigest()


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class TokenService:
    """
    Session tokens: creation, rotation and revocation.

    Access and refresh tokens are JWTs carrying the user's email (sub), id and
    role. Portal clients read those claims to know who is signed in.
    """

    @staticmethod
    def create_access_token(email: str, user_id: int, role: str, expires_delta: timedelta = None):
        if expires_delta is None:
            expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

        payload = {
            "sub": email,
            "id": user_id,
            "role": UserRole(role).value,
            "type": "access",
            "exp": datetime.now(timezone.utc) + expires_delta
        }

        return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    @staticmethod
    def create_refresh_token(email: str, user_id: int, role: str):
        """
        Returns:
            Tuple of (refresh_token_string, jti, expires_at)
        """
        jti = secrets.token_urlsafe(32)
        expire = datetime.now(timezone.utc) + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)

        payload = {
            "sub": email,
            "id": user_id,
            "role": UserRole(role).value,
            "jti": jti,
            "type": "refresh",
            "exp": expire
        }

        refresh_token = jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

        return refresh_token, jti, expire

    @staticmethod
    def create_tokens(email: str, user_id: int, role: str, db: Session):
        """
        Creates an access + refresh token pair and stores the refresh token's
        hashed JTI.
        """
        access_token = TokenService.create_access_token(email, user_id, role)
        refresh_token, jti, expires_at = TokenService.create_refresh_token(email, user_id, role)

        db.add(RefreshToken(
            user_id=user_id,
            token_hash=hash_jti(jti),
            expires_at=expires_at
        ))
        db.commit()

        return {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "token_type": "bearer"
        }

    @staticmethod
    def refresh_access_token(refresh_token: str, db: Session):
        """
        Validates a refresh token and issues a new pair (rotation: the old
        refresh token is revoked).

        The new pair carries the user's current role from the database, so a
        role change takes effect at the next refresh.

        Raises:
            HTTPException: If token is invalid, expired, or revoked
        """
        try:
            payload = jwt.decode(
                refresh_token,
                settings.SECRET_KEY,
                algorithms=[settings.ALGORITHM]
            )
        except JWTError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token"
            )

        if payload.get("type") != "refresh":
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token type"
            )

        user_id = payload.get("id")
        jti = payload.get("jti")

        if not all([payload.get("sub"), user_id, jti]):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token payload"
            )

        db_token = db.query(RefreshToken).filter(
            RefreshToken.token_hash == hash_jti(jti),
            RefreshToken.revoked == False
        ).first()

        if not db_token:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token not found or revoked"
            )

        if as_utc(db_token.expires_at) < datetime.now(timezone.utc):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token expired"
            )

        user = db.query(User).filter(User.id == user_id).one_or_none()
        if not user or not user.is_active:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is inactive")

        db_token.revoked = True
        db.commit()

        logger.debug("Refresh token rotated", extra={"user_id": user.id})

        return TokenService.create_tokens(user.email, user.id, user.role, db)

    @staticmethod
    def revoke_token(refresh_token: str, db: Session):
        """
        Revokes a refresh token (sign-out). Unknown or malformed tokens are
        ignored so sign-out is idempotent.
        """
        try:
            payload = jwt.decode(
                refresh_token,
                settings.SECRET_KEY,
                algorithms=[settings.ALGORITHM]
            )
        except JWTError:
            logger.debug("Sign-out with undecodable refresh token")
            return

        jti = payload.get("jti")
        if not jti:
            return

        db_token = db.query(RefreshToken).filter(
            RefreshToken.token_hash == hash_jti(jti)
        ).first()

        if db_token:
            db_token.revoked = True
            db.commit()

    @staticmethod
    def revoke_all_user_tokens(user_id: int, db: Session):
        db.query(RefreshToken).filter(
            RefreshToken.user_id == user_id,
            RefreshToken.revoked == False
        ).update({"revoked": True})
        db.commit()
