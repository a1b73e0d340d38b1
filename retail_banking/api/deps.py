"""
Service container and authentication dependencies
"""

from decimal import Decimal
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..storage import InMemoryStorage, create_storage
from ..audit import AuditTrail
from ..ledger import Ledger
from ..users import UserManager, User, UserRole, PasswordPolicy
from ..accounts import AccountManager
from ..beneficiaries import BeneficiaryRegistry
from ..transactions import TransactionProcessor
from ..auth import AuthService
from ..config import BankConfig, get_config
from ..errors import AuthenticationError, ForbiddenError


class BankingSystem:
    """Retail banking services wired to one storage backend"""

    def __init__(self, use_sqlite: bool = True, config: Optional[BankConfig] = None):
        self.config = config or get_config()

        # Initialize storage
        if use_sqlite:
            self.storage = create_storage(self.config.database_path)
        else:
            self.storage = InMemoryStorage()

        # Initialize services
        self.audit_trail = AuditTrail(self.storage)
        self.ledger = Ledger(self.storage)
        self.user_manager = UserManager(
            self.storage, self.audit_trail,
            PasswordPolicy(min_length=self.config.password_min_length)
        )
        self.account_manager = AccountManager(
            self.storage, self.user_manager, self.ledger, self.audit_trail,
            max_number_attempts=self.config.account_number_max_attempts
        )
        self.beneficiaries = BeneficiaryRegistry(
            self.storage, self.account_manager, self.audit_trail,
            default_transfer_limit=Decimal(self.config.default_transfer_limit)
        )
        self.transaction_processor = TransactionProcessor(
            self.storage, self.account_manager, self.beneficiaries,
            self.ledger, self.audit_trail,
            lock_timeout=self.config.transaction_timeout_seconds
        )
        self.auth_service = AuthService(
            self.storage, self.user_manager, self.account_manager,
            self.audit_trail, self.config
        )

    def close(self) -> None:
        self.storage.close()


# Bearer token security; missing credentials are reported as 401 by get_current_user
security = HTTPBearer(auto_error=False)


def get_banking_system(request: Request) -> BankingSystem:
    return request.app.state.banking_system


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    system: BankingSystem = Depends(get_banking_system)
) -> User:
    """Dependency that validates the access token and loads its user"""
    if not credentials:
        raise AuthenticationError("No token provided")
    return system.auth_service.authenticate(credentials.credentials)


def require_role(*roles: UserRole):
    """Dependency factory for role checking against the stored user record"""
    def check(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            names = " or ".join(role.value.capitalize() for role in roles)
            raise ForbiddenError(f"Require {names} Role")
        return user
    return check


require_admin = require_role(UserRole.ADMIN)
require_customer = require_role(UserRole.CUSTOMER)
