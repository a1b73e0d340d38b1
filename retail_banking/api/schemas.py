"""
Pydantic schemas for API requests, and response views

Response views are built from ``to_dict()`` so amounts leave the service as
decimal strings rather than floats.
"""

from decimal import Decimal
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

from ..accounts import Account
from ..beneficiaries import Beneficiary
from ..ledger import LedgerEntry
from ..users import User


# Auth schemas
class SignupRequest(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    phone_number: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    role: Optional[str] = None


class SigninRequest(BaseModel):
    email: str
    password: str


class RefreshTokenRequest(BaseModel):
    refresh_token: str


# Profile schemas
class UpdateProfileRequest(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    password: Optional[str] = None


# Account schemas
class OpenAccountRequest(BaseModel):
    user_id: str
    account_type: str = "savings"
    initial_deposit: Optional[Decimal] = None
    kyc_verified: bool = False


class KYCUpdateRequest(BaseModel):
    kyc_verified: bool


class AccountStatusRequest(BaseModel):
    is_active: bool


# Beneficiary schemas
class CreateBeneficiaryRequest(BaseModel):
    name: Optional[str] = None
    account_number: Optional[str] = None
    bank_name: Optional[str] = None
    transfer_limit: Optional[Decimal] = None
    nickname: Optional[str] = None


class UpdateBeneficiaryRequest(BaseModel):
    name: Optional[str] = None
    bank_name: Optional[str] = None
    transfer_limit: Optional[Decimal] = None
    nickname: Optional[str] = None
    is_active: Optional[bool] = None


# Transaction schemas
class TransferRequest(BaseModel):
    beneficiary_id: str
    amount: Decimal = Field(..., description="Positive amount, at most two decimals")
    description: Optional[str] = None
    reference: Optional[str] = None
    idempotency_key: Optional[str] = None


class AccountTransactionRequest(BaseModel):
    account_id: str
    amount: Decimal
    description: Optional[str] = None
    reference: Optional[str] = None
    idempotency_key: Optional[str] = None


class AdminTransferRequest(BaseModel):
    from_account_number: str
    to_account_number: str
    amount: Decimal
    description: Optional[str] = None
    reference: Optional[str] = None
    idempotency_key: Optional[str] = None


def account_view(account: Account, owner: Optional[User] = None) -> Dict[str, Any]:
    result = account.to_dict()
    if owner:
        result['user'] = user_summary(owner)
    return result


def beneficiary_view(beneficiary: Beneficiary) -> Dict[str, Any]:
    return beneficiary.to_dict()


def transaction_view(entry: LedgerEntry) -> Dict[str, Any]:
    return entry.to_dict()


def user_summary(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "email": user.email,
        "role": user.role.value
    }
