"""
Transaction Ledger Module

Append-only log of balance-affecting events. Each row snapshots the account
balance right after the operation that wrote it; rows are never updated.
"""

from decimal import Decimal, InvalidOperation
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from enum import Enum
import uuid

from .storage import StorageInterface, StorageRecord, parse_datetime
from .errors import ValidationError


CENT = Decimal("0.01")


def parse_amount(value: Any, allow_zero: bool = False) -> Decimal:
    """
    Parse a client-supplied amount

    Accepts Decimal, int, float or numeric strings. The result is a finite,
    positive Decimal with at most two decimal places; zero is accepted only
    with ``allow_zero``.

    Raises:
        ValidationError: For anything else
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError("Invalid amount")
    try:
        amount = Decimal(str(value).strip())
        if not amount.is_finite() or amount < 0 or (amount == 0 and not allow_zero):
            raise ValidationError("Amount must be a positive number")
        if amount != amount.quantize(CENT):
            raise ValidationError("Amount cannot have more than two decimal places")
    except (InvalidOperation, ValueError):
        raise ValidationError("Invalid amount")
    return amount.quantize(CENT)


class TransactionType(Enum):
    """Types of ledger rows"""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    TRANSFER = "transfer"
    FEE = "fee"


class TransactionStatus(Enum):
    """
    Ledger row status

    Every operation posts rows as COMPLETED; the other values exist for
    schema compatibility and no workflow moves a row into them.
    """
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class LedgerEntry(StorageRecord):
    """Immutable ledger row"""
    account_id: str
    transaction_type: TransactionType
    amount: Decimal
    balance_after: Decimal
    performed_by: str
    description: Optional[str] = None
    reference: Optional[str] = None
    to_account: Optional[str] = None
    from_account: Optional[str] = None
    status: TransactionStatus = TransactionStatus.COMPLETED
    idempotency_key: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LedgerEntry':
        data = dict(data)
        data['created_at'] = parse_datetime(data['created_at'])
        data['updated_at'] = parse_datetime(data['updated_at'])
        data['transaction_type'] = TransactionType(data['transaction_type'])
        data['status'] = TransactionStatus(data['status'])
        data['amount'] = Decimal(data['amount'])
        data['balance_after'] = Decimal(data['balance_after'])
        return cls(**data)


def newest_first(entries: List[LedgerEntry]) -> List[LedgerEntry]:
    """Order rows newest first; rows with equal timestamps keep reverse insertion order"""
    ordered = list(reversed(entries))
    ordered.sort(key=lambda entry: entry.created_at, reverse=True)
    return ordered


class Ledger:
    """
    Append-only transaction log
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "transactions"

    def append(
        self,
        account_id: str,
        transaction_type: TransactionType,
        amount: Decimal,
        balance_after: Decimal,
        performed_by: str,
        description: Optional[str] = None,
        reference: Optional[str] = None,
        to_account: Optional[str] = None,
        from_account: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> LedgerEntry:
        """
        Append a completed row

        Callers write the matching balance update in the same
        ``storage.atomic()`` block.

        Raises:
            ValidationError: If amount is not positive
        """
        if amount <= 0:
            raise ValidationError("Ledger amount must be positive")

        now = datetime.now(timezone.utc)
        entry = LedgerEntry(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            account_id=account_id,
            transaction_type=transaction_type,
            amount=amount.quantize(CENT),
            balance_after=balance_after.quantize(CENT),
            performed_by=performed_by,
            description=description,
            reference=reference,
            to_account=to_account,
            from_account=from_account,
            idempotency_key=idempotency_key
        )
        self.storage.save(self.table_name, entry.id, entry.to_dict())
        return entry

    def get_entry(self, entry_id: str) -> Optional[LedgerEntry]:
        data = self.storage.load(self.table_name, entry_id)
        if data:
            return LedgerEntry.from_dict(data)
        return None

    def entries_for_account(self, account_id: str) -> List[LedgerEntry]:
        """Rows for one account, newest first"""
        rows = self.storage.find(self.table_name, {"account_id": account_id})
        return newest_first([LedgerEntry.from_dict(data) for data in rows])

    def all_entries(self) -> List[LedgerEntry]:
        """Every row, newest first"""
        rows = self.storage.load_all(self.table_name)
        return newest_first([LedgerEntry.from_dict(data) for data in rows])

    def find_by_idempotency_key(self, account_id: str, idempotency_key: str) -> List[LedgerEntry]:
        """Rows on an account that were written under a client idempotency key"""
        rows = self.storage.find(self.table_name, {
            "account_id": account_id,
            "idempotency_key": idempotency_key
        })
        return [LedgerEntry.from_dict(data) for data in rows]

    def find_by_reference(self, reference: str) -> List[LedgerEntry]:
        rows = self.storage.find(self.table_name, {"reference": reference})
        return [LedgerEntry.from_dict(data) for data in rows]

    def count(self) -> int:
        return self.storage.count(self.table_name)
