from fastapi import APIRouter, Depends, status

from app.api.deps import get_auth_service, get_current_caller
from app.core.permissions import Caller
from app.domain.identity.service import AuthenticationService
from app.api.v1.auth.schemas import (
    RegisterRequest,
    LoginRequest,
    TokenResponse,
    UserResponse,
)
from app.schemas.response import ApiResponse

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=ApiResponse[UserResponse], status_code=status.HTTP_201_CREATED)
async def register(
    data: RegisterRequest,
    auth_service: AuthenticationService = Depends(get_auth_service)
):
    """Register a patient account"""
    user = await auth_service.register_user(data)
    return ApiResponse(message="User registered successfully", data=UserResponse.model_validate(user))


@router.post("/login", response_model=ApiResponse[TokenResponse], status_code=status.HTTP_200_OK)
async def login(
    data: LoginRequest,
    auth_service: AuthenticationService = Depends(get_auth_service)
):
    """Authenticate user and return an access token"""
    result = await auth_service.authenticate_user(data)
    return ApiResponse(
        message="Login successful",
        data=TokenResponse(
            access_token=result["access_token"],
            token_type=result["token_type"],
            user=UserResponse.model_validate(result["user"]),
        ),
    )


@router.get("/me", response_model=ApiResponse[UserResponse], status_code=status.HTTP_200_OK)
async def get_current_user(
    caller: Caller = Depends(get_current_caller),
    auth_service: AuthenticationService = Depends(get_auth_service)
):
    """Get current user profile"""
    user = await auth_service.get_profile(caller.id)
    return ApiResponse(data=UserResponse.model_validate(user))
