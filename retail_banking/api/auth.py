"""
Authentication endpoints
"""

from fastapi import APIRouter, Depends, status

from .deps import BankingSystem, get_banking_system, get_current_user
from .schemas import SignupRequest, SigninRequest, RefreshTokenRequest, user_summary
from ..users import User


router = APIRouter()


@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(
    request: SignupRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Register a user (customers get a savings account)"""
    user = system.auth_service.signup(request.model_dump(exclude_none=True))
    account = system.account_manager.get_account_for_user(user.id)
    return {
        "message": "User registered successfully",
        "user": user_summary(user),
        "account_number": account.account_number if account else None
    }


@router.post("/signin")
async def signin(
    request: SigninRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Authenticate user and return access and refresh tokens"""
    return system.auth_service.signin(request.email, request.password)


@router.post("/refresh-token")
async def refresh_token(
    request: RefreshTokenRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Exchange a refresh token for a new token pair"""
    return system.auth_service.refresh_token(request.refresh_token)


@router.get("/verify-token")
async def verify_token(user: User = Depends(get_current_user)):
    return {"valid": True, "id": user.id, "role": user.role.value}
