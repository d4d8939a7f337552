from utils.hashing import verify_password, get_password_hash
from models.enums import UserRole
from models.users import User
from schemas.auth_schemas import CreateUserRequest
from sqlalchemy.orm import Session
from fastapi import HTTPException
from starlette import status
from core.exceptions import NotFound
from utils.logger import get_logger

logger = get_logger(__name__)

class AuthService:

    @staticmethod
    def create_user(request: CreateUserRequest, db: Session):
        """
        Creates a new customer account.

        The public sign-up path never grants another role: admins and
        operators are promoted afterwards through update_role.
        """
        email = request.email.lower().strip()
        existing_user = db.query(User).filter(User.email == email).first()
        if existing_user:
            logger.warning(
                "Registration attempt with existing email",
                extra={"email": email}
            )
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email already registered"
            )

        model = User(
            email=email,
            full_name=request.full_name,
            hashed_password=get_password_hash(request.password),
            phone_number=request.phone_number,
            role=UserRole.CUSTOMER
        )

        db.add(model)
        db.commit()
        db.refresh(model)
        return model


    @staticmethod
    def authenticate_user(email: str, password: str, db: Session):
        email = email.lower().strip()
        user = db.query(User).filter(User.email == email).first()

        if not user:
            logger.warning(
            "Login failed - user not found",
            extra={"email": email}
            )
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate user.")

        if not user.is_active:
            logger.warning(
            "Login failed - inactive account",
            extra={"email": email}
            )
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate user.")

        if not verify_password(password, user.hashed_password):
            logger.warning(
                "Login failed - invalid password",
                extra={"user_id": user.id, "email": email}
            )
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate user.")

        logger.debug(
            "User authenticated successfully",
            extra={"user_id": user.id, "email": email}
        )

        return user

    @staticmethod
    def get_active_user_by_id(db: Session, user_id: int) -> User | None:
        model = db.query(User).filter(User.id == user_id, User.is_active == True).one_or_none()

        return model

    @staticmethod
    def update_role(db: Session, user_id: int, role: UserRole, admin_id: int) -> User:
        model = AuthService.get_active_user_by_id(db, user_id)
        if not model:
            raise NotFound("User not found")

        if model.id == admin_id and role != UserRole.ADMIN:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
            detail="Admins cannot remove their own admin role")

        old_role = model.role
        model.role = role
        db.commit()
        db.refresh(model)

        logger.info(
            "User role changed",
            extra={"user_id": model.id, "old_role": UserRole(old_role).value,
                   "new_role": role.value, "actor_id": admin_id}
        )
        return model
