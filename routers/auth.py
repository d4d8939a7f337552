from fastapi import APIRouter, Depends, Request
from fastapi.security import OAuth2PasswordRequestForm
from utils.deps import db_dependency
from starlette import status
from schemas.auth_schemas import Token, CreateUserRequest, RevokeTokenRequest, RefreshTokenRequest
from services.auth_service import AuthService
from services.token_service import TokenService
from middleware.rate_limiter import limiter
from utils.logger import get_logger

# Setup logger
logger = get_logger(__name__)


router = APIRouter(
    prefix="/auth",
    tags=["auth"]
)


@router.post("/token", response_model=Token)
@limiter.limit("5/minute")
async def login_for_access_token(request: Request, db: db_dependency, form_data: OAuth2PasswordRequestForm = Depends()):
    user = AuthService.authenticate_user(form_data.username, form_data.password, db)

    token = TokenService.create_tokens(user.email, user.id, user.role, db)

    logger.info(
        "User logged in successfully",
        extra={"user_id": user.id, "email": user.email, "role": user.role.value}
    )

    return token


@router.post("/", status_code=status.HTTP_201_CREATED)
@limiter.limit("3/minute")
async def create_user(request: Request, body: CreateUserRequest, db: db_dependency):
    """
    Customer sign-up. Always creates a customer account.
    """
    user = AuthService.create_user(body, db)

    logger.info(
        "User registered successfully",
        extra={"user_id": user.id, "email": user.email}
    )

    return {"message": "Registration successful. You can now sign in.", "id": user.id}


@router.post("/refresh", response_model=Token)
@limiter.limit("10/minute")
async def refresh_token(request: Request, body: RefreshTokenRequest, db: db_dependency):
    """
    Get a new token pair using a refresh token.
    """
    token = TokenService.refresh_access_token(body.refresh_token, db)

    logger.info("Access token refreshed")

    return token


@router.post("/logout", status_code=status.HTTP_200_OK)
@limiter.limit("10/minute")
async def logout(request: Request, body: RevokeTokenRequest, db: db_dependency):
    """
    Revoke refresh token (sign-out).
    """
    TokenService.revoke_token(body.refresh_token, db)

    logger.info("User logged out")

    return {"message": "Logged out successfully"}
