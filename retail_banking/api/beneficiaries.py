"""
Beneficiary endpoints, scoped to the caller's account
"""

from fastapi import APIRouter, Depends, status

from .deps import BankingSystem, get_banking_system, require_customer
from .schemas import CreateBeneficiaryRequest, UpdateBeneficiaryRequest, beneficiary_view
from ..users import User


router = APIRouter()


@router.get("")
async def list_beneficiaries(
    include_inactive: bool = False,
    user: User = Depends(require_customer),
    system: BankingSystem = Depends(get_banking_system)
):
    beneficiaries = system.beneficiaries.list_beneficiaries(user.id, include_inactive=include_inactive)
    return [beneficiary_view(b) for b in beneficiaries]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_beneficiary(
    request: CreateBeneficiaryRequest,
    user: User = Depends(require_customer),
    system: BankingSystem = Depends(get_banking_system)
):
    beneficiary = system.beneficiaries.create_beneficiary(user.id, request.model_dump(exclude_none=True))
    return {
        "message": "Beneficiary added successfully",
        "beneficiary": beneficiary_view(beneficiary)
    }


@router.get("/{beneficiary_id}")
async def get_beneficiary(
    beneficiary_id: str,
    user: User = Depends(require_customer),
    system: BankingSystem = Depends(get_banking_system)
):
    return beneficiary_view(system.beneficiaries.get_beneficiary(user.id, beneficiary_id))


@router.put("/{beneficiary_id}")
async def update_beneficiary(
    beneficiary_id: str,
    request: UpdateBeneficiaryRequest,
    user: User = Depends(require_customer),
    system: BankingSystem = Depends(get_banking_system)
):
    beneficiary = system.beneficiaries.update_beneficiary(
        user.id, beneficiary_id, request.model_dump(exclude_none=True)
    )
    return {
        "message": "Beneficiary updated successfully",
        "beneficiary": beneficiary_view(beneficiary)
    }


@router.delete("/{beneficiary_id}")
async def delete_beneficiary(
    beneficiary_id: str,
    user: User = Depends(require_customer),
    system: BankingSystem = Depends(get_banking_system)
):
    """Soft-delete a beneficiary"""
    system.beneficiaries.delete_beneficiary(user.id, beneficiary_id)
    return {"message": "Beneficiary deleted successfully"}
