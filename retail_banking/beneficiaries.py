"""
Beneficiary Registry Module

External payees a customer can transfer to. Every lookup is scoped to the
caller's own account; a beneficiary on someone else's account is reported
as not found so its existence does not leak.
"""

from decimal import Decimal, InvalidOperation
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import uuid

from .storage import StorageInterface, StorageRecord, parse_datetime
from .audit import AuditTrail, AuditEventType
from .accounts import AccountManager
from .ledger import CENT
from .errors import ValidationError, NotFoundError


REQUIRED_FIELDS = ['name', 'account_number', 'bank_name']
UPDATABLE_FIELDS = ['name', 'bank_name', 'transfer_limit', 'nickname', 'is_active']


@dataclass
class Beneficiary(StorageRecord):
    """Registered external payee"""
    account_id: str
    name: str
    account_number: str  # External; not checked against real accounts
    bank_name: str
    transfer_limit: Decimal = Decimal("10000.00")
    nickname: Optional[str] = None
    is_active: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Beneficiary':
        data = dict(data)
        data['created_at'] = parse_datetime(data['created_at'])
        data['updated_at'] = parse_datetime(data['updated_at'])
        data['transfer_limit'] = Decimal(data['transfer_limit'])
        return cls(**data)


def _parse_limit(value: Any) -> Decimal:
    try:
        limit = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError("Transfer limit must be a number")
    if not limit.is_finite() or limit <= 0:
        raise ValidationError("Transfer limit must be a positive number")
    try:
        rounded = limit.quantize(CENT)
    except InvalidOperation:
        raise ValidationError("Transfer limit is out of range")
    if rounded != limit:
        raise ValidationError("Transfer limit cannot have more than two decimal places")
    return rounded


class BeneficiaryRegistry:
    """
    CRUD over beneficiaries owned by the caller's account
    """

    def __init__(
        self,
        storage: StorageInterface,
        account_manager: AccountManager,
        audit_trail: AuditTrail,
        default_transfer_limit: Decimal = Decimal("10000.00")
    ):
        self.storage = storage
        self.account_manager = account_manager
        self.audit_trail = audit_trail
        self.default_transfer_limit = default_transfer_limit
        self.table_name = "beneficiaries"

    def list_beneficiaries(self, user_id: str, include_inactive: bool = False) -> List[Beneficiary]:
        """
        List the caller's beneficiaries

        Soft-deleted rows are hidden unless include_inactive is set.
        """
        account = self.account_manager.require_account_for_user(user_id)
        rows = self.storage.find(self.table_name, {"account_id": account.id})
        beneficiaries = [Beneficiary.from_dict(data) for data in rows]
        if not include_inactive:
            beneficiaries = [b for b in beneficiaries if b.is_active]
        return beneficiaries

    def get_beneficiary(self, user_id: str, beneficiary_id: str) -> Beneficiary:
        """Get one of the caller's beneficiaries (active or not)"""
        account = self.account_manager.require_account_for_user(user_id)
        beneficiary = self.get_owned(account.id, beneficiary_id)
        if not beneficiary:
            raise NotFoundError("Beneficiary not found")
        return beneficiary

    def get_owned(self, account_id: str, beneficiary_id: str) -> Optional[Beneficiary]:
        """Beneficiary by ID if it belongs to the given account, else None"""
        data = self.storage.load(self.table_name, beneficiary_id)
        if not data or data.get('account_id') != account_id:
            return None
        return Beneficiary.from_dict(data)

    def create_beneficiary(self, user_id: str, details: Dict[str, Any]) -> Beneficiary:
        """
        Register a payee on the caller's account

        Args:
            user_id: Caller
            details: name, account_number, bank_name, optional transfer_limit and nickname

        Raises:
            ValidationError: If a required field is missing or the limit is invalid
            NotFoundError: If the caller has no account
        """
        missing = [name for name in REQUIRED_FIELDS if not details.get(name)]
        if missing:
            raise ValidationError(
                "Name, account number, and bank name are required fields"
            )

        limit = self.default_transfer_limit
        if details.get('transfer_limit') is not None:
            limit = _parse_limit(details['transfer_limit'])

        with self.storage.atomic():
            account = self.account_manager.require_account_for_user(user_id)
            now = datetime.now(timezone.utc)
            beneficiary = Beneficiary(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                account_id=account.id,
                name=details['name'],
                account_number=str(details['account_number']),
                bank_name=details['bank_name'],
                transfer_limit=limit,
                nickname=details.get('nickname') or None
            )
            self._save(beneficiary)

            self.audit_trail.log_event(
                event_type=AuditEventType.BENEFICIARY_CREATED,
                entity_type="beneficiary",
                entity_id=beneficiary.id,
                metadata={
                    "account_id": account.id,
                    "bank_name": beneficiary.bank_name,
                    "transfer_limit": limit
                },
                user_id=user_id
            )

        return beneficiary

    def update_beneficiary(self, user_id: str, beneficiary_id: str, changes: Dict[str, Any]) -> Beneficiary:
        """
        Update name, bank_name, transfer_limit, nickname or is_active

        Raises:
            ValidationError: If no updatable field is supplied
            NotFoundError: If the beneficiary is not the caller's
        """
        updates = {name: changes[name] for name in UPDATABLE_FIELDS if changes.get(name) is not None}
        if not updates:
            raise ValidationError("No valid fields to update")
        if 'transfer_limit' in updates:
            updates['transfer_limit'] = _parse_limit(updates['transfer_limit'])

        with self.storage.atomic():
            beneficiary = self.get_beneficiary(user_id, beneficiary_id)
            for name, value in updates.items():
                setattr(beneficiary, name, value)
            beneficiary.updated_at = datetime.now(timezone.utc)
            self._save(beneficiary)

            self.audit_trail.log_event(
                event_type=AuditEventType.BENEFICIARY_UPDATED,
                entity_type="beneficiary",
                entity_id=beneficiary.id,
                metadata={"changes": updates},
                user_id=user_id
            )

        return beneficiary

    def delete_beneficiary(self, user_id: str, beneficiary_id: str) -> Beneficiary:
        """Soft-delete: the row stays, flagged inactive"""
        with self.storage.atomic():
            beneficiary = self.get_beneficiary(user_id, beneficiary_id)
            beneficiary.is_active = False
            beneficiary.updated_at = datetime.now(timezone.utc)
            self._save(beneficiary)

            self.audit_trail.log_event(
                event_type=AuditEventType.BENEFICIARY_REMOVED,
                entity_type="beneficiary",
                entity_id=beneficiary.id,
                metadata={"account_id": beneficiary.account_id},
                user_id=user_id
            )

        return beneficiary

    def _save(self, beneficiary: Beneficiary) -> None:
        self.storage.save(self.table_name, beneficiary.id, beneficiary.to_dict())
