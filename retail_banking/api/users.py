"""
User profile endpoints
"""

from fastapi import APIRouter, Depends

from .deps import BankingSystem, get_banking_system, get_current_user, require_admin
from .schemas import UpdateProfileRequest, account_view
from ..users import User


router = APIRouter()


@router.get("/user/profile")
async def get_profile(
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    return system.user_manager.get_profile(user.id)


@router.put("/user/profile")
async def update_profile(
    request: UpdateProfileRequest,
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    """Update profile fields and optionally the password"""
    updated = system.user_manager.update_profile(user.id, request.model_dump(exclude_none=True))
    return {
        "message": "Profile updated successfully",
        "user": updated.to_public_dict()
    }


@router.get("/admin/users")
async def list_customers(
    user: User = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    """List customers"""
    return [customer.to_public_dict() for customer in system.user_manager.list_customers()]


@router.get("/admin/users/{user_id}")
async def get_user(
    user_id: str,
    user: User = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    """Get a user with their account, if any"""
    profile = system.user_manager.get_profile(user_id)
    account = system.account_manager.get_account_for_user(user_id)
    profile["account"] = account_view(account) if account else None
    return profile
