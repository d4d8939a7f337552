from fastapi import APIRouter, HTTPException, status, Request
from utils.deps import user_dependency, db_dependency, admin_dependency
from schemas.auth_schemas import UpdateRoleRequest, UserResponse
from services.auth_service import AuthService
from services.token_service import TokenService
from middleware.rate_limiter import limiter
from utils.logger import get_logger

# Setup logger
logger = get_logger(__name__)


router = APIRouter(
    prefix="/users",
    tags=["users"]
)

@router.get("/me", status_code=status.HTTP_200_OK, response_model=UserResponse)
@limiter.limit("60/minute")
async def get_user_info(request: Request, user: user_dependency, db: db_dependency):
    """
    Profile of the signed-in user, including role.
    """
    model = AuthService.get_active_user_by_id(db=db, user_id=user.get("user_id"))

    if not model:
        raise HTTPException(status_code=404, detail="User not found")

    return model


@router.patch("/{user_id}/role", status_code=status.HTTP_200_OK, response_model=UserResponse)
@limiter.limit("10/minute")
async def update_user_role(request: Request, user_id: int, body: UpdateRoleRequest,
    admin: admin_dependency, db: db_dependency):
    """
    Change a user's role (admin only). The user's sessions are revoked so the
    next sign-in carries the new role.
    """
    model = AuthService.update_role(db, user_id, body.role, admin.id)

    TokenService.revoke_all_user_tokens(model.id, db)

    return model
