"""
Tests for account records, account numbers and admin account operations
"""

import pytest
from decimal import Decimal

from retail_banking.storage import InMemoryStorage
from retail_banking.audit import AuditTrail, AuditEventType
from retail_banking.users import UserManager
from retail_banking.ledger import Ledger, TransactionType
from retail_banking.accounts import (
    AccountManager, Account, AccountType, generate_account_number,
    ACCOUNT_NUMBER_MIN, ACCOUNT_NUMBER_MAX
)
from retail_banking.errors import ValidationError, NotFoundError, InternalError
from tests.helpers import make_profile


class TestAccountNumberGenerator:

    def test_sixteen_digits_in_range(self):
        for _ in range(200):
            number = generate_account_number()
            assert len(number) == 16
            assert number.isdigit()
            assert ACCOUNT_NUMBER_MIN <= int(number) < ACCOUNT_NUMBER_MAX


class TestAccountManager:
    """Test account lifecycle"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.ledger = Ledger(self.storage)
        self.user_manager = UserManager(self.storage, self.audit_trail)
        self.account_manager = AccountManager(
            self.storage, self.user_manager, self.ledger, self.audit_trail
        )
        self.user = self.user_manager.create_user(make_profile())

    def test_create_account(self):
        account = self.account_manager.create_account(self.user.id)

        assert account.user_id == self.user.id
        assert account.balance == Decimal("0.00")
        assert account.account_type == AccountType.SAVINGS
        assert account.is_active
        assert not account.kyc_verified
        assert len(account.account_number) == 16

        loaded = self.account_manager.get_account(account.id)
        assert loaded == account

        events = self.audit_trail.get_events_for_entity("account", account.id)
        assert events[0].event_type == AuditEventType.ACCOUNT_CREATED

    def test_one_account_per_user(self):
        self.account_manager.create_account(self.user.id)
        with pytest.raises(ValidationError):
            self.account_manager.create_account(self.user.id, AccountType.CHECKING)
        assert len(self.account_manager.list_accounts()) == 1

    def test_lookups(self):
        account = self.account_manager.create_account(self.user.id)
        assert self.account_manager.get_account_by_number(account.account_number).id == account.id
        assert self.account_manager.get_account_for_user(self.user.id).id == account.id
        assert self.account_manager.get_account_by_number("0" * 16) is None
        with pytest.raises(NotFoundError):
            self.account_manager.require_account("missing")
        with pytest.raises(NotFoundError):
            self.account_manager.require_account_for_user("missing")

    def test_account_number_collision_retries(self):
        numbers = iter(["1000000000000001", "1000000000000001", "1000000000000002"])
        self.account_manager.number_generator = lambda: next(numbers)

        other = self.user_manager.create_user(make_profile(email="other@example.com"))
        first = self.account_manager.create_account(self.user.id)
        second = self.account_manager.create_account(other.id)

        assert first.account_number == "1000000000000001"
        assert second.account_number == "1000000000000002"

    def test_account_number_attempts_exhausted(self):
        self.account_manager.number_generator = lambda: "1000000000000001"
        self.account_manager.max_number_attempts = 3
        other = self.user_manager.create_user(make_profile(email="other@example.com"))

        self.account_manager.create_account(self.user.id)
        with pytest.raises(InternalError):
            self.account_manager.create_account(other.id)
        assert self.account_manager.get_account_for_user(other.id) is None

    def test_open_account_with_initial_deposit(self):
        account = self.account_manager.open_account(
            user_id=self.user.id,
            actor_id="admin_1",
            account_type=AccountType.CHECKING,
            initial_deposit=Decimal("250.5"),
            kyc_verified=True
        )

        assert account.balance == Decimal("250.50")
        assert account.kyc_verified
        entries = self.ledger.entries_for_account(account.id)
        assert len(entries) == 1
        assert entries[0].transaction_type == TransactionType.DEPOSIT
        assert entries[0].balance_after == Decimal("250.50")
        assert entries[0].reference.startswith("DEP-")
        assert entries[0].performed_by == "admin_1"

    def test_open_account_without_deposit(self):
        account = self.account_manager.open_account(self.user.id, actor_id="admin_1")
        assert account.balance == Decimal("0.00")
        assert self.ledger.count() == 0

    def test_open_account_unknown_user(self):
        with pytest.raises(NotFoundError):
            self.account_manager.open_account("missing", actor_id="admin_1")

    def test_open_account_negative_deposit(self):
        with pytest.raises(ValidationError):
            self.account_manager.open_account(
                self.user.id, actor_id="admin_1", initial_deposit=Decimal("-1")
            )
        assert self.account_manager.get_account_for_user(self.user.id) is None

    def test_open_account_rejects_sub_cent_deposit(self):
        for amount in (Decimal("1.005"), "abc", Decimal("1E+40")):
            with pytest.raises(ValidationError):
                self.account_manager.open_account(self.user.id, actor_id="admin_1", initial_deposit=amount)
        assert self.account_manager.get_account_for_user(self.user.id) is None
        assert self.ledger.count() == 0

    def test_open_account_zero_deposit_writes_no_row(self):
        account = self.account_manager.open_account(
            self.user.id, actor_id="admin_1", initial_deposit=Decimal("0")
        )
        assert account.balance == Decimal("0.00")
        assert self.ledger.count() == 0

    def test_set_kyc_and_status(self):
        account = self.account_manager.create_account(self.user.id)
        assert not account.kyc_verified

        account = self.account_manager.set_kyc_verified(account.id, True, actor_id="admin_1")
        assert account.kyc_verified
        assert self.account_manager.get_account(account.id).kyc_verified

        account = self.account_manager.set_active(account.id, False, actor_id="admin_1")
        assert not account.is_active
        assert not self.account_manager.get_account(account.id).is_active

        kyc_events = self.audit_trail.get_events_by_type(AuditEventType.KYC_STATUS_CHANGED)
        status_events = self.audit_trail.get_events_by_type(AuditEventType.ACCOUNT_STATUS_CHANGED)
        assert kyc_events[0].metadata == {"old_value": False, "new_value": True}
        assert status_events[0].metadata == {"old_value": True, "new_value": False}

    def test_round_trip_through_dict(self):
        account = self.account_manager.create_account(self.user.id)
        data = account.to_dict()
        assert data["balance"] == "0.00"
        assert data["account_type"] == "savings"
        assert Account.from_dict(data) == account
