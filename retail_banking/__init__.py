"""
Retail Banking Backend

Customer and admin banking services: sign-up and token auth, one account
per customer, registered beneficiaries, and an append-only transaction
ledger kept in step with account balances.
"""

__version__ = "1.0.0"
