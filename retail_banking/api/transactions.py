"""
Transaction endpoints: customer transfers and history, admin money movement
"""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from .deps import BankingSystem, get_banking_system, require_admin, require_customer
from .schemas import (
    TransferRequest, AccountTransactionRequest, AdminTransferRequest, transaction_view
)
from ..users import User


router = APIRouter()


# Customer operations
@router.get("/customer/transactions")
async def get_my_transactions(
    user: User = Depends(require_customer),
    system: BankingSystem = Depends(get_banking_system)
):
    """Caller's ledger rows, newest first"""
    entries = system.transaction_processor.get_customer_transactions(user.id)
    return [transaction_view(entry) for entry in entries]


@router.get("/customer/transactions/status")
async def get_service_status(system: BankingSystem = Depends(get_banking_system)):
    """Public health probe of the transaction service"""
    result = system.transaction_processor.service_status()
    if result["status"] != "up":
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=result)
    return result


@router.post("/customer/transactions/transfer")
async def transfer_money(
    request: TransferRequest,
    user: User = Depends(require_customer),
    system: BankingSystem = Depends(get_banking_system)
):
    entry = system.transaction_processor.transfer_money(
        user_id=user.id,
        beneficiary_id=request.beneficiary_id,
        amount=request.amount,
        description=request.description,
        reference=request.reference,
        idempotency_key=request.idempotency_key
    )
    return {
        "message": "Transfer completed successfully",
        "transaction": transaction_view(entry)
    }


# Admin operations
@router.get("/admin/transactions")
async def get_all_transactions(
    user: User = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    entries = system.transaction_processor.get_all_transactions()
    return [transaction_view(entry) for entry in entries]


@router.get("/admin/transactions/account/{account_id}")
async def get_account_transactions(
    account_id: str,
    user: User = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    entries = system.transaction_processor.get_transactions_for_account(account_id)
    return [transaction_view(entry) for entry in entries]


@router.post("/admin/transactions/deposit")
async def deposit(
    request: AccountTransactionRequest,
    user: User = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    """Credit an account"""
    entry = system.transaction_processor.deposit(
        account_id=request.account_id,
        amount=request.amount,
        actor_id=user.id,
        description=request.description,
        reference=request.reference,
        idempotency_key=request.idempotency_key
    )
    return {
        "message": "Deposit processed successfully",
        "transaction": transaction_view(entry)
    }


@router.post("/admin/transactions/withdraw")
async def withdraw(
    request: AccountTransactionRequest,
    user: User = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    """Debit an account"""
    entry = system.transaction_processor.withdraw(
        account_id=request.account_id,
        amount=request.amount,
        actor_id=user.id,
        description=request.description,
        reference=request.reference,
        idempotency_key=request.idempotency_key
    )
    return {
        "message": "Withdrawal processed successfully",
        "transaction": transaction_view(entry)
    }


@router.post("/admin/transactions/transfer")
async def admin_transfer(
    request: AdminTransferRequest,
    user: User = Depends(require_admin),
    system: BankingSystem = Depends(get_banking_system)
):
    """Move funds between two accounts"""
    outgoing, incoming = system.transaction_processor.admin_transfer(
        from_account_number=request.from_account_number,
        to_account_number=request.to_account_number,
        amount=request.amount,
        actor_id=user.id,
        description=request.description,
        reference=request.reference,
        idempotency_key=request.idempotency_key
    )
    return {
        "message": "Transfer processed successfully",
        "source_transaction": transaction_view(outgoing),
        "destination_transaction": transaction_view(incoming)
    }
