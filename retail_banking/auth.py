"""
Authentication Module

Sign-up, sign-in and stateless bearer tokens. Tokens are HS256 JWTs carrying
the user ID, role and token type; there is no revocation list, so a token
stays valid until it expires.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
import uuid

import jwt

from .storage import StorageInterface
from .audit import AuditTrail, AuditEventType
from .users import UserManager, User, UserRole, normalize_email
from .accounts import AccountManager, AccountType
from .config import BankConfig, get_config
from .errors import (
    AuthenticationError, InvalidCredentialsError, ForbiddenError, NotFoundError
)
from .logging_config import get_logger, log_action


ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"


class AuthService:
    """
    Issues and checks bearer tokens for registered users
    """

    def __init__(
        self,
        storage: StorageInterface,
        user_manager: UserManager,
        account_manager: AccountManager,
        audit_trail: AuditTrail,
        config: Optional[BankConfig] = None
    ):
        self.storage = storage
        self.user_manager = user_manager
        self.account_manager = account_manager
        self.audit_trail = audit_trail
        self.config = config or get_config()
        self.logger = get_logger("retail_banking.auth")

    def signup(self, profile: Dict[str, Any]) -> User:
        """
        Register a user; customers also get a zero-balance savings account

        The user row and its account are written in one transaction.

        Raises:
            ValidationError: Missing fields, bad email, weak password, unknown role
            DuplicateEmailError: Email already registered
            ForbiddenError: Admin role requested while admin sign-up is disabled
        """
        if profile.get('role') == UserRole.ADMIN.value and not self.config.allow_admin_signup:
            raise ForbiddenError("Admin accounts cannot be self-registered")

        with self.storage.atomic():
            user = self.user_manager.create_user(profile)
            if user.role == UserRole.CUSTOMER:
                self.account_manager.create_account(
                    user_id=user.id,
                    account_type=AccountType.SAVINGS,
                    actor_id=user.id
                )

        log_action(
            self.logger, "info", "User registered",
            user_id=user.id, action="signup", resource=f"user:{user.id}",
            extra={"role": user.role.value}
        )
        return user

    def signin(self, email: str, password: str) -> Dict[str, Any]:
        """
        Check credentials and issue an access/refresh token pair

        Returns:
            User summary with access_token, refresh_token and token_type

        Raises:
            NotFoundError: Unknown email
            InvalidCredentialsError: Wrong password
            ForbiddenError: Deactivated user
        """
        user = self.user_manager.get_user_by_email(email or "")
        if not user:
            self._login_failed(normalize_email(email or ""), None, "unknown_email")
            raise NotFoundError("User not found")

        if not self.user_manager.verify_password(user, password or ""):
            self._login_failed(user.email, user.id, "invalid_password")
            raise InvalidCredentialsError("Invalid password")

        if not user.is_active:
            self._login_failed(user.email, user.id, "inactive_user")
            raise ForbiddenError("User account is deactivated")

        with self.storage.atomic():
            self.user_manager.record_login(user)
            self.audit_trail.log_event(
                event_type=AuditEventType.LOGIN_SUCCESS,
                entity_type="user",
                entity_id=user.id,
                metadata={"email": user.email},
                user_id=user.id
            )

        log_action(
            self.logger, "info", "User signed in",
            user_id=user.id, action="signin", resource=f"user:{user.id}"
        )

        return {
            "id": user.id,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "email": user.email,
            "role": user.role.value,
            "access_token": self.create_token(user, ACCESS_TOKEN),
            "refresh_token": self.create_token(user, REFRESH_TOKEN),
            "token_type": "bearer"
        }

    def create_token(self, user: User, token_type: str = ACCESS_TOKEN) -> str:
        """Sign a token for a user"""
        if token_type == REFRESH_TOKEN:
            lifetime = self.config.refresh_token_expiry_seconds
        else:
            lifetime = self.config.access_token_expiry_seconds

        now = datetime.now(timezone.utc)
        payload = {
            "sub": user.id,
            "role": user.role.value,
            "typ": token_type,
            "jti": uuid.uuid4().hex,
            "iat": now,
            "exp": now + timedelta(seconds=lifetime)
        }
        return jwt.encode(payload, self.config.jwt_secret, algorithm=self.config.jwt_algorithm)

    def verify_token(self, token: Optional[str], expected_type: str = ACCESS_TOKEN) -> Dict[str, Any]:
        """
        Check signature, expiry and token type

        Returns:
            Decoded claims

        Raises:
            AuthenticationError: Missing, malformed, expired or wrong-type token
        """
        if not token:
            raise AuthenticationError("No token provided")
        try:
            claims = jwt.decode(
                token,
                self.config.jwt_secret,
                algorithms=[self.config.jwt_algorithm]
            )
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token expired")
        except jwt.InvalidTokenError:
            raise AuthenticationError("Invalid token")

        if not claims.get("sub") or claims.get("typ") != expected_type:
            raise AuthenticationError("Invalid token")
        return claims

    def refresh_token(self, token: Optional[str]) -> Dict[str, str]:
        """
        Exchange a refresh token for a new access/refresh pair

        Raises:
            AuthenticationError: Token invalid, expired or not a refresh token
            NotFoundError: The user no longer exists
        """
        claims = self.verify_token(token, expected_type=REFRESH_TOKEN)
        user = self.user_manager.get_user(claims["sub"])
        if not user:
            raise NotFoundError("User not found")
        if not user.is_active:
            raise ForbiddenError("User account is deactivated")

        log_action(
            self.logger, "info", "Token refreshed",
            user_id=user.id, action="refresh_token", resource=f"user:{user.id}"
        )
        return {
            "access_token": self.create_token(user, ACCESS_TOKEN),
            "refresh_token": self.create_token(user, REFRESH_TOKEN),
            "token_type": "bearer"
        }

    def authenticate(self, token: Optional[str]) -> User:
        """
        Resolve an access token to its current user record

        Raises:
            AuthenticationError: Bad token or user no longer exists
            ForbiddenError: User deactivated
        """
        claims = self.verify_token(token)
        user = self.user_manager.get_user(claims["sub"])
        if not user:
            raise AuthenticationError("Unauthorized")
        if not user.is_active:
            raise ForbiddenError("User account is deactivated")
        return user

    def _login_failed(self, email: str, user_id: Optional[str], reason: str) -> None:
        self.audit_trail.log_event(
            event_type=AuditEventType.LOGIN_FAILED,
            entity_type="user",
            entity_id=user_id or email,
            metadata={"email": email, "reason": reason}
        )
        log_action(
            self.logger, "warning", "Sign-in failed",
            user_id=user_id, action="signin", resource=f"user:{user_id or email}",
            extra={"reason": reason}
        )
