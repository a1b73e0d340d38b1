"""
Shared builders for the test suite
"""

from decimal import Decimal

from retail_banking.api.deps import BankingSystem
from retail_banking.config import BankConfig


def make_profile(**overrides):
    profile = {
        "first_name": "John",
        "last_name": "Doe",
        "email": "john.doe@example.com",
        "password": "Password123",
        "phone_number": "+1234567890",
        "address": "123 Main Street",
        "city": "New York",
        "state": "NY",
        "zip_code": "10001"
    }
    profile.update(overrides)
    return profile


def make_config(**overrides):
    settings = {
        "database_path": ":memory:",
        "jwt_secret": "test-secret",
        "seed_demo_data": False,
        "fixture_file": None
    }
    settings.update(overrides)
    return BankConfig(**settings)


def make_system(**config_overrides):
    """In-memory banking system"""
    return BankingSystem(use_sqlite=False, config=make_config(**config_overrides))


def make_funded_customer(system, email="john.doe@example.com", balance="1000.00", kyc_verified=True):
    """Sign up a customer, verify KYC and fund the account"""
    user = system.auth_service.signup(make_profile(email=email))
    account = system.account_manager.get_account_for_user(user.id)
    if kyc_verified:
        account = system.account_manager.set_kyc_verified(account.id, True, actor_id="admin")
    if Decimal(balance) > 0:
        system.transaction_processor.deposit(account.id, balance, actor_id="admin")
    return user, system.account_manager.get_account(account.id)
