"""
Account endpoints: the customer's own account and admin account management
"""

from fastapi import APIRouter, Depends, status

from .deps import BankingSystem, get_banking_system, require_admin, require_customer
from .schemas import OpenAccountRequest, KYCUpdateRequest, AccountStatusRequest, account_view
from ..accounts import AccountType
from ..users import User
from ..errors import ValidationError


router = APIRouter()


@router.get("/customer/account")
async def get_my_account(
    user: User = Depends(require_customer),
    system: BankingSystem = Depends(get_banking_system)
):
    """Get the caller's account"""
    account = system.account_manager.require_account_for_user(user.id)
    return account_view(account)


@router.get("/admin/accounts")
async def list_accounts(
    user: User = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    """List all accounts with their owners"""
    accounts = system.account_manager.list_accounts()
    return {
        "accounts": [
            account_view(account, system.user_manager.get_user(account.user_id))
            for account in accounts
        ],
        "count": len(accounts)
    }


@router.get("/admin/accounts/{account_id}")
async def get_account(
    account_id: str,
    user: User = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    account = system.account_manager.require_account(account_id)
    return account_view(account, system.user_manager.get_user(account.user_id))


@router.post("/admin/accounts", status_code=status.HTTP_201_CREATED)
async def open_account(
    request: OpenAccountRequest,
    user: User = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    """Open an account for an existing user, with an optional initial deposit"""
    try:
        account_type = AccountType(request.account_type)
    except ValueError:
        raise ValidationError(f"Unknown account type: {request.account_type}")

    account = system.account_manager.open_account(
        user_id=request.user_id,
        actor_id=user.id,
        account_type=account_type,
        initial_deposit=request.initial_deposit,
        kyc_verified=request.kyc_verified
    )
    return {
        "message": "Account created successfully",
        "account": account_view(account)
    }


@router.put("/admin/accounts/{account_id}/kyc")
async def update_kyc_status(
    account_id: str,
    request: KYCUpdateRequest,
    user: User = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    account = system.account_manager.set_kyc_verified(account_id, request.kyc_verified, actor_id=user.id)
    return {
        "message": "KYC status updated successfully",
        "account": account_view(account)
    }


@router.put("/admin/accounts/{account_id}/status")
async def update_account_status(
    account_id: str,
    request: AccountStatusRequest,
    user: User = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    account = system.account_manager.set_active(account_id, request.is_active, actor_id=user.id)
    return {
        "message": "Account status updated successfully",
        "account": account_view(account)
    }
