"""
Account Management Module

One bank account per customer: balance, account type and the active/KYC
flags that gate money movement. Balances change only through the
transaction processor and the opening deposit written here.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from enum import Enum
import secrets
import uuid

from .storage import StorageInterface, StorageRecord, parse_datetime
from .audit import AuditTrail, AuditEventType
from .users import UserManager
from .ledger import Ledger, TransactionType, parse_amount
from .errors import ValidationError, NotFoundError, InternalError


ACCOUNT_NUMBER_MIN = 10 ** 15
ACCOUNT_NUMBER_MAX = 10 ** 16


class AccountType(Enum):
    """Banking product types"""
    SAVINGS = "savings"
    CHECKING = "checking"
    FIXED_DEPOSIT = "fixed_deposit"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Account(StorageRecord):
    """
    Customer bank account
    """
    user_id: str
    account_number: str
    account_type: AccountType = AccountType.SAVINGS
    balance: Decimal = Decimal("0.00")
    is_active: bool = True
    kyc_verified: bool = False
    date_opened: datetime = field(default_factory=_utcnow)
    last_activity: datetime = field(default_factory=_utcnow)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        data = dict(data)
        for name in ('created_at', 'updated_at', 'date_opened', 'last_activity'):
            data[name] = parse_datetime(data[name])
        data['account_type'] = AccountType(data['account_type'])
        data['balance'] = Decimal(data['balance'])
        return cls(**data)


def generate_account_number() -> str:
    """Uniform random 16-digit account number in [10^15, 10^16)"""
    return str(ACCOUNT_NUMBER_MIN + secrets.randbelow(ACCOUNT_NUMBER_MAX - ACCOUNT_NUMBER_MIN))


class AccountManager:
    """
    Manages account lifecycle and status flags
    """

    def __init__(
        self,
        storage: StorageInterface,
        user_manager: UserManager,
        ledger: Ledger,
        audit_trail: AuditTrail,
        number_generator: Callable[[], str] = generate_account_number,
        max_number_attempts: int = 10
    ):
        self.storage = storage
        self.user_manager = user_manager
        self.ledger = ledger
        self.audit_trail = audit_trail
        self.number_generator = number_generator
        self.max_number_attempts = max_number_attempts
        self.table_name = "accounts"

    def create_account(
        self,
        user_id: str,
        account_type: AccountType = AccountType.SAVINGS,
        kyc_verified: bool = False,
        actor_id: Optional[str] = None
    ) -> Account:
        """
        Create a zero-balance account for a user

        Args:
            user_id: Owning user (must not already have an account)
            account_type: Product type
            kyc_verified: Initial KYC flag
            actor_id: User performing the action, for the audit trail

        Returns:
            Created Account object

        Raises:
            ValidationError: If the user already has an account
        """
        with self.storage.atomic():
            if self.get_account_for_user(user_id):
                raise ValidationError("User already has an account")

            now = _utcnow()
            account = Account(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                user_id=user_id,
                account_number=self._unique_account_number(),
                account_type=account_type,
                kyc_verified=kyc_verified,
                date_opened=now,
                last_activity=now
            )
            self.save_account(account)

            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_CREATED,
                entity_type="account",
                entity_id=account.id,
                metadata={
                    "account_number": account.account_number,
                    "user_id": user_id,
                    "account_type": account_type.value,
                    "kyc_verified": kyc_verified
                },
                user_id=actor_id
            )

        return account

    def open_account(
        self,
        user_id: str,
        actor_id: str,
        account_type: AccountType = AccountType.SAVINGS,
        initial_deposit: Optional[Decimal] = None,
        kyc_verified: bool = False
    ) -> Account:
        """
        Admin account opening with an optional initial deposit

        The account and the opening deposit row are written in one
        transaction.

        Raises:
            NotFoundError: If the user does not exist
            ValidationError: If the user already has an account, or the deposit is negative
                or has more than two decimal places
        """
        opening = parse_amount(initial_deposit, allow_zero=True) if initial_deposit is not None else None

        with self.storage.atomic():
            self.user_manager.require_user(user_id)
            account = self.create_account(
                user_id=user_id,
                account_type=account_type,
                kyc_verified=kyc_verified,
                actor_id=actor_id
            )

            if opening:
                account.balance = opening
                self.save_account(account)
                self.ledger.append(
                    account_id=account.id,
                    transaction_type=TransactionType.DEPOSIT,
                    amount=account.balance,
                    balance_after=account.balance,
                    performed_by=actor_id,
                    description="Initial deposit",
                    reference=f"DEP-{uuid.uuid4().hex[:12].upper()}"
                )

        return account

    def get_account(self, account_id: str) -> Optional[Account]:
        """Get account by ID"""
        data = self.storage.load(self.table_name, account_id)
        if data:
            return Account.from_dict(data)
        return None

    def require_account(self, account_id: str) -> Account:
        account = self.get_account(account_id)
        if not account:
            raise NotFoundError("Account not found")
        return account

    def get_account_by_number(self, account_number: str) -> Optional[Account]:
        """Get account by account number"""
        accounts = self.storage.find(self.table_name, {"account_number": account_number})
        if accounts:
            return Account.from_dict(accounts[0])
        return None

    def get_account_for_user(self, user_id: str) -> Optional[Account]:
        """Get the account owned by a user"""
        accounts = self.storage.find(self.table_name, {"user_id": user_id})
        if accounts:
            return Account.from_dict(accounts[0])
        return None

    def require_account_for_user(self, user_id: str) -> Account:
        account = self.get_account_for_user(user_id)
        if not account:
            raise NotFoundError("Account not found")
        return account

    def list_accounts(self) -> List[Account]:
        return [Account.from_dict(data) for data in self.storage.load_all(self.table_name)]

    def set_kyc_verified(self, account_id: str, kyc_verified: bool, actor_id: Optional[str] = None) -> Account:
        """Record the outcome of KYC verification"""
        with self.storage.atomic():
            account = self.require_account(account_id)
            old_value = account.kyc_verified
            account.kyc_verified = kyc_verified
            account.updated_at = _utcnow()
            self.save_account(account)

            self.audit_trail.log_event(
                event_type=AuditEventType.KYC_STATUS_CHANGED,
                entity_type="account",
                entity_id=account.id,
                metadata={"old_value": old_value, "new_value": kyc_verified},
                user_id=actor_id
            )
        return account

    def set_active(self, account_id: str, is_active: bool, actor_id: Optional[str] = None) -> Account:
        """Activate or deactivate an account"""
        with self.storage.atomic():
            account = self.require_account(account_id)
            old_value = account.is_active
            account.is_active = is_active
            account.updated_at = _utcnow()
            self.save_account(account)

            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_STATUS_CHANGED,
                entity_type="account",
                entity_id=account.id,
                metadata={"old_value": old_value, "new_value": is_active},
                user_id=actor_id
            )
        return account

    def save_account(self, account: Account) -> None:
        """Save account to storage"""
        self.storage.save(self.table_name, account.id, account.to_dict())

    def _unique_account_number(self) -> str:
        """Draw account numbers until one is not taken"""
        for _ in range(self.max_number_attempts):
            candidate = self.number_generator()
            if not self.get_account_by_number(candidate):
                return candidate
        raise InternalError(
            f"Could not generate a unique account number after {self.max_number_attempts} attempts"
        )
