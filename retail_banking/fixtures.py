"""
Fixture Loading Module

Seeds users, accounts, opening balances and beneficiaries through the
regular services, so seeded data passes the same validation and audit path
as live traffic.

Fixture layout (also the JSON file format)::

    {
      "users": [
        {
          "first_name": "...", "last_name": "...", "email": "...",
          "password": "...", "phone_number": "...", "address": "...",
          "city": "...", "state": "...", "zip_code": "...",
          "role": "customer",
          "account": {"account_type": "savings", "initial_deposit": "2500.00",
                      "kyc_verified": true},
          "beneficiaries": [{"name": "...", "account_number": "...",
                             "bank_name": "...", "transfer_limit": "5000.00"}]
        }
      ]
    }
"""

import json
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Union, TYPE_CHECKING

from .accounts import AccountType
from .users import UserRole
from .logging_config import get_logger, log_action

if TYPE_CHECKING:
    from .api.deps import BankingSystem


FIXTURE_ACTOR = "fixtures"

DEMO_PASSWORD = "Password123"

DEMO_FIXTURES: Dict[str, Any] = {
    "users": [
        {
            "first_name": "Admin",
            "last_name": "User",
            "email": "admin@bank.example",
            "password": "Admin12345",
            "phone_number": "+15550000000",
            "address": "1 Bank Plaza",
            "city": "New York",
            "state": "NY",
            "zip_code": "10001",
            "role": "admin"
        },
        {
            "first_name": "John",
            "last_name": "Doe",
            "email": "john.doe@example.com",
            "password": DEMO_PASSWORD,
            "phone_number": "+1234567890",
            "address": "123 Main Street",
            "city": "New York",
            "state": "NY",
            "zip_code": "10001",
            "role": "customer",
            "account": {
                "account_type": "savings",
                "initial_deposit": "15678.45",
                "kyc_verified": True
            },
            "beneficiaries": [
                {
                    "name": "Jane Smith",
                    "account_number": "5678901234",
                    "bank_name": "Chase Bank",
                    "nickname": "Sister"
                },
                {
                    "name": "Robert Johnson",
                    "account_number": "6789012345",
                    "bank_name": "Bank of America",
                    "transfer_limit": "2500.00",
                    "nickname": "Friend"
                }
            ]
        },
        {
            "first_name": "Maria",
            "last_name": "Garcia",
            "email": "maria.garcia@example.com",
            "password": DEMO_PASSWORD,
            "phone_number": "+1987654321",
            "address": "45 Oak Avenue",
            "city": "Austin",
            "state": "TX",
            "zip_code": "73301",
            "role": "customer",
            "account": {
                "account_type": "checking",
                "initial_deposit": "3452.12",
                "kyc_verified": False
            }
        }
    ]
}


def load_fixtures(system: "BankingSystem", data: Dict[str, Any]) -> Dict[str, int]:
    """
    Seed a banking system from fixture data

    Users whose email is already registered are skipped, so loading the same
    fixtures twice is harmless.

    Returns:
        Counts of created users, accounts and beneficiaries
    """
    logger = get_logger("retail_banking.fixtures")
    created = {"users": 0, "accounts": 0, "beneficiaries": 0}

    for entry in data.get("users", []):
        if system.user_manager.get_user_by_email(entry["email"]):
            continue

        profile = {k: v for k, v in entry.items() if k not in ("account", "beneficiaries")}
        with system.storage.atomic():
            user = system.user_manager.create_user(profile)
            created["users"] += 1

            account_data = entry.get("account")
            if account_data is None and user.role == UserRole.CUSTOMER:
                account_data = {}
            if account_data is None:
                continue

            deposit = account_data.get("initial_deposit")
            system.account_manager.open_account(
                user_id=user.id,
                actor_id=FIXTURE_ACTOR,
                account_type=AccountType(account_data.get("account_type", AccountType.SAVINGS.value)),
                initial_deposit=Decimal(str(deposit)) if deposit is not None else None,
                kyc_verified=bool(account_data.get("kyc_verified", False))
            )
            created["accounts"] += 1

            for beneficiary in entry.get("beneficiaries", []):
                system.beneficiaries.create_beneficiary(user.id, beneficiary)
                created["beneficiaries"] += 1

    log_action(
        logger, "info", "Fixtures loaded",
        action="load_fixtures", extra=created
    )
    return created


def load_fixture_file(system: "BankingSystem", path: Union[str, Path]) -> Dict[str, int]:
    """Seed a banking system from a JSON fixture file"""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return load_fixtures(system, data)
