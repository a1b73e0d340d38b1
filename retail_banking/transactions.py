"""
Transaction Processing Module

Money movement: deposits, withdrawals, customer transfers to a beneficiary
and admin transfers between two accounts. Each operation re-reads the
account(s) inside ``storage.atomic()``, checks its preconditions, writes the
new balance(s) and appends ledger rows; any failure rolls all of it back.
"""

from decimal import Decimal
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
import uuid

from .storage import StorageInterface
from .audit import AuditTrail, AuditEventType
from .accounts import AccountManager, Account
from .beneficiaries import BeneficiaryRegistry
from .ledger import Ledger, LedgerEntry, TransactionType, CENT, parse_amount
from .errors import (
    BankingError, ValidationError, ForbiddenError, NotFoundError,
    InsufficientFundsError, LimitExceededError
)
from .logging_config import get_logger, log_action


def _new_reference(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12].upper()}"


class TransactionProcessor:
    """
    Posts balance changes and their ledger rows atomically
    """

    def __init__(
        self,
        storage: StorageInterface,
        account_manager: AccountManager,
        beneficiaries: BeneficiaryRegistry,
        ledger: Ledger,
        audit_trail: AuditTrail,
        lock_timeout: Optional[float] = None
    ):
        self.storage = storage
        self.account_manager = account_manager
        self.beneficiaries = beneficiaries
        self.ledger = ledger
        self.audit_trail = audit_trail
        self.lock_timeout = lock_timeout
        self.logger = get_logger("retail_banking.transactions")

    def deposit(
        self,
        account_id: str,
        amount: Any,
        actor_id: str,
        description: Optional[str] = None,
        reference: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> LedgerEntry:
        """
        Credit an account

        Args:
            account_id: Account to credit
            amount: Positive amount, at most two decimals
            actor_id: Admin performing the deposit
            description: Defaults to "Deposit"
            reference: Defaults to a generated DEP- reference
            idempotency_key: Replays with the same key return the original row

        Raises:
            ValidationError: Invalid amount
            NotFoundError: Unknown account
            ForbiddenError: Inactive account
        """
        value = parse_amount(amount)
        try:
            with self.storage.atomic(timeout=self.lock_timeout):
                account = self.account_manager.require_account(account_id)
                replay = self._replayed(account, idempotency_key, TransactionType.DEPOSIT, value)
                if replay:
                    return replay[0]
                if not account.is_active:
                    raise ForbiddenError("Account is inactive")

                self._apply(account, value)
                entry = self.ledger.append(
                    account_id=account.id,
                    transaction_type=TransactionType.DEPOSIT,
                    amount=value,
                    balance_after=account.balance,
                    performed_by=actor_id,
                    description=description or "Deposit",
                    reference=reference or _new_reference("DEP"),
                    idempotency_key=idempotency_key
                )
                self._audit(entry, actor_id)
        except BankingError as e:
            self._log_rejected("deposit", actor_id, account_id, value, e)
            raise

        self._log_posted(entry, actor_id)
        return entry

    def withdraw(
        self,
        account_id: str,
        amount: Any,
        actor_id: str,
        description: Optional[str] = None,
        reference: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> LedgerEntry:
        """
        Debit an account

        Raises:
            ValidationError: Invalid amount
            NotFoundError: Unknown account
            ForbiddenError: Inactive account or KYC not verified
            InsufficientFundsError: Balance below amount
        """
        value = parse_amount(amount)
        try:
            with self.storage.atomic(timeout=self.lock_timeout):
                account = self.account_manager.require_account(account_id)
                replay = self._replayed(account, idempotency_key, TransactionType.WITHDRAWAL, value)
                if replay:
                    return replay[0]
                if not account.is_active:
                    raise ForbiddenError("Account is inactive")
                if not account.kyc_verified:
                    raise ForbiddenError("KYC verification pending. Withdrawals not allowed")
                if account.balance < value:
                    raise InsufficientFundsError("Insufficient balance")

                self._apply(account, -value)
                entry = self.ledger.append(
                    account_id=account.id,
                    transaction_type=TransactionType.WITHDRAWAL,
                    amount=value,
                    balance_after=account.balance,
                    performed_by=actor_id,
                    description=description or "Withdrawal",
                    reference=reference or _new_reference("WDR"),
                    idempotency_key=idempotency_key
                )
                self._audit(entry, actor_id)
        except BankingError as e:
            self._log_rejected("withdraw", actor_id, account_id, value, e)
            raise

        self._log_posted(entry, actor_id)
        return entry

    def transfer_money(
        self,
        user_id: str,
        beneficiary_id: str,
        amount: Any,
        description: Optional[str] = None,
        reference: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> LedgerEntry:
        """
        Customer transfer to one of the caller's beneficiaries

        The beneficiary is an external payee: the caller's account is debited
        and a single transfer row is written; nothing is credited here.

        Raises:
            NotFoundError: Caller has no account, or the beneficiary is not
                the caller's or is inactive
            ForbiddenError: Caller account inactive or KYC not verified
            ValidationError: Invalid amount
            LimitExceededError: Amount above the beneficiary transfer limit
            InsufficientFundsError: Balance below amount
        """
        account_id = None
        value = None
        try:
            with self.storage.atomic(timeout=self.lock_timeout):
                account = self.account_manager.require_account_for_user(user_id)
                account_id = account.id
                beneficiary = self.beneficiaries.get_owned(account.id, beneficiary_id)

                # A retry is answered from the ledger even if the account or
                # beneficiary has changed state since the original transfer
                if idempotency_key and beneficiary:
                    value = parse_amount(amount)
                    replay = self._replayed(
                        account, idempotency_key, TransactionType.TRANSFER, value,
                        from_account=account.account_number,
                        to_account=beneficiary.account_number,
                        performed_by=user_id
                    )
                    if replay:
                        return replay[0]

                if not account.is_active:
                    raise ForbiddenError("Your account is inactive. Please contact support")
                if not account.kyc_verified:
                    raise ForbiddenError("Your KYC verification is pending. Transfers are not allowed")
                if not beneficiary or not beneficiary.is_active:
                    raise NotFoundError("Beneficiary not found or inactive")

                value = parse_amount(amount)
                if value > beneficiary.transfer_limit:
                    raise LimitExceededError(
                        f"Transfer amount exceeds beneficiary limit of {beneficiary.transfer_limit}"
                    )
                if account.balance < value:
                    raise InsufficientFundsError("Insufficient balance")

                self._apply(account, -value)
                entry = self.ledger.append(
                    account_id=account.id,
                    transaction_type=TransactionType.TRANSFER,
                    amount=value,
                    balance_after=account.balance,
                    performed_by=user_id,
                    description=description or f"Transfer to {beneficiary.name}",
                    reference=reference or _new_reference("TRF"),
                    from_account=account.account_number,
                    to_account=beneficiary.account_number,
                    idempotency_key=idempotency_key
                )
                self._audit(entry, user_id)
        except BankingError as e:
            self._log_rejected("transfer", user_id, account_id, value, e)
            raise

        self._log_posted(entry, user_id)
        return entry

    def admin_transfer(
        self,
        from_account_number: str,
        to_account_number: str,
        amount: Any,
        actor_id: str,
        description: Optional[str] = None,
        reference: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> Tuple[LedgerEntry, LedgerEntry]:
        """
        Move funds between two accounts held here

        Writes a debit row on the source and a credit row on the destination,
        sharing one reference, in a single transaction.

        Returns:
            (source row, destination row)

        Raises:
            NotFoundError: Either account unknown
            ForbiddenError: Source inactive or unverified, destination inactive
            ValidationError: Same account on both sides, or invalid amount
            InsufficientFundsError: Source balance below amount
        """
        value = parse_amount(amount)
        try:
            with self.storage.atomic(timeout=self.lock_timeout):
                source = self.account_manager.get_account_by_number(from_account_number)
                if not source:
                    raise NotFoundError("Source account not found")
                replay = self._replayed(
                    source, idempotency_key, TransactionType.TRANSFER, value,
                    from_account=source.account_number,
                    to_account=to_account_number
                )
                if replay:
                    return replay[0], self._paired_row(replay[0])
                if not source.is_active:
                    raise ForbiddenError("Source account is inactive")
                if not source.kyc_verified:
                    raise ForbiddenError("Source account KYC verification pending. Transfers not allowed")

                destination = self.account_manager.get_account_by_number(to_account_number)
                if not destination:
                    raise NotFoundError("Destination account not found")
                if not destination.is_active:
                    raise ForbiddenError("Destination account is inactive")
                if destination.id == source.id:
                    raise ValidationError("Source and destination accounts must differ")
                if source.balance < value:
                    raise InsufficientFundsError("Insufficient balance in source account")

                shared_reference = reference or _new_reference("TRF")

                self._apply(source, -value)
                outgoing = self.ledger.append(
                    account_id=source.id,
                    transaction_type=TransactionType.TRANSFER,
                    amount=value,
                    balance_after=source.balance,
                    performed_by=actor_id,
                    description=description or "Transfer out",
                    reference=shared_reference,
                    from_account=source.account_number,
                    to_account=destination.account_number,
                    idempotency_key=idempotency_key
                )

                self._apply(destination, value)
                incoming = self.ledger.append(
                    account_id=destination.id,
                    transaction_type=TransactionType.TRANSFER,
                    amount=value,
                    balance_after=destination.balance,
                    performed_by=actor_id,
                    description=description or "Transfer in",
                    reference=shared_reference,
                    from_account=source.account_number,
                    to_account=destination.account_number,
                    idempotency_key=idempotency_key
                )
                self._audit(outgoing, actor_id)
                self._audit(incoming, actor_id)
        except BankingError as e:
            self._log_rejected("admin_transfer", actor_id, from_account_number, value, e)
            raise

        self._log_posted(outgoing, actor_id)
        self._log_posted(incoming, actor_id)
        return outgoing, incoming

    def get_customer_transactions(self, user_id: str) -> List[LedgerEntry]:
        """Ledger rows for the caller's own account, newest first"""
        account = self.account_manager.require_account_for_user(user_id)
        return self.ledger.entries_for_account(account.id)

    def get_transactions_for_account(self, account_id: str) -> List[LedgerEntry]:
        """Ledger rows for any account, newest first"""
        account = self.account_manager.require_account(account_id)
        return self.ledger.entries_for_account(account.id)

    def get_all_transactions(self) -> List[LedgerEntry]:
        return self.ledger.all_entries()

    def service_status(self) -> Dict[str, str]:
        """Health probe: the ledger table must be readable"""
        try:
            self.ledger.count()
        except Exception as e:
            self.logger.error(f"Transaction service health check failed: {e}")
            return {
                "status": "down",
                "message": "Transaction service is currently experiencing issues"
            }
        return {"status": "up", "message": "Transaction service is operating normally"}

    def _apply(self, account: Account, delta: Decimal) -> None:
        """Adjust a balance and persist it; caller holds the atomic block"""
        account.balance = (account.balance + delta).quantize(CENT)
        account.last_activity = datetime.now(timezone.utc)
        account.updated_at = account.last_activity
        self.account_manager.save_account(account)

    def _replayed(
        self,
        account: Account,
        idempotency_key: Optional[str],
        transaction_type: TransactionType,
        amount: Decimal,
        from_account: Optional[str] = None,
        to_account: Optional[str] = None,
        performed_by: Optional[str] = None
    ) -> List[LedgerEntry]:
        """
        Rows already posted on this account under the key, if any

        A stored row only replays the same operation: same type, amount and
        direction (from/to account numbers, both None for deposits and
        withdrawals) and, when ``performed_by`` is given, the same actor.
        Any other row under the key means the key was reused.

        Raises:
            ValidationError: The key belongs to a different operation
        """
        if not idempotency_key:
            return []
        existing = self.ledger.find_by_idempotency_key(account.id, idempotency_key)
        for entry in existing:
            if (entry.transaction_type != transaction_type
                    or entry.amount != amount
                    or entry.from_account != from_account
                    or entry.to_account != to_account
                    or (performed_by is not None and entry.performed_by != performed_by)):
                raise ValidationError("Idempotency key was already used for a different operation")
        if existing:
            log_action(
                self.logger, "info", "Idempotent replay",
                action="replay", resource=f"account:{account.id}",
                extra={"idempotency_key": idempotency_key, "entry_id": existing[0].id}
            )
        return existing

    def _paired_row(self, entry: LedgerEntry) -> LedgerEntry:
        """The other half of an admin transfer"""
        for candidate in self.ledger.find_by_reference(entry.reference):
            if candidate.id != entry.id and candidate.idempotency_key == entry.idempotency_key:
                return candidate
        # A one-sided row under the key was not written by an admin transfer
        raise ValidationError("Idempotency key was already used for a different operation")

    def _audit(self, entry: LedgerEntry, actor_id: str) -> None:
        self.audit_trail.log_event(
            event_type=AuditEventType.TRANSACTION_POSTED,
            entity_type="transaction",
            entity_id=entry.id,
            metadata={
                "account_id": entry.account_id,
                "transaction_type": entry.transaction_type,
                "amount": entry.amount,
                "balance_after": entry.balance_after,
                "reference": entry.reference
            },
            user_id=actor_id
        )

    def _log_posted(self, entry: LedgerEntry, actor_id: str) -> None:
        log_action(
            self.logger, "info", f"Transaction posted: {entry.transaction_type.value}",
            user_id=actor_id, action="post_transaction", resource=f"account:{entry.account_id}",
            extra={
                "transaction_id": entry.id,
                "amount": str(entry.amount),
                "balance_after": str(entry.balance_after),
                "reference": entry.reference
            }
        )

    def _log_rejected(
        self,
        operation: str,
        actor_id: str,
        account_ref: Optional[str],
        amount: Optional[Decimal],
        error: BankingError
    ) -> None:
        log_action(
            self.logger, "warning", f"{operation} rejected: {error.message}",
            user_id=actor_id, action=operation,
            resource=f"account:{account_ref}" if account_ref else None,
            extra={"amount": str(amount) if amount is not None else None,
                   "error": type(error).__name__}
        )
