"""
Tests for sign-up, sign-in and bearer tokens
"""

import pytest
from decimal import Decimal

import jwt

from retail_banking.audit import AuditEventType
from retail_banking.users import UserRole
from retail_banking.errors import (
    ValidationError, DuplicateEmailError, NotFoundError,
    InvalidCredentialsError, AuthenticationError, ForbiddenError, InternalError
)

from tests.helpers import make_system, make_profile


class TestSignup:

    def setup_method(self):
        self.system = make_system()
        self.auth = self.system.auth_service

    def test_customer_signup_creates_account(self):
        user = self.auth.signup(make_profile(email="a@b.com", password="abcd1234", role="customer"))

        account = self.system.account_manager.get_account_for_user(user.id)
        assert account.balance == Decimal("0.00")
        assert len(account.account_number) == 16
        assert account.account_number.isdigit()
        assert len(self.system.account_manager.list_accounts()) == 1

    def test_account_numbers_unique(self):
        numbers = set()
        for i in range(5):
            user = self.auth.signup(make_profile(email=f"user{i}@example.com"))
            numbers.add(self.system.account_manager.get_account_for_user(user.id).account_number)
        assert len(numbers) == 5

    def test_admin_signup_has_no_account(self):
        user = self.auth.signup(make_profile(role="admin"))
        assert user.role == UserRole.ADMIN
        assert self.system.account_manager.get_account_for_user(user.id) is None

    def test_admin_signup_can_be_disabled(self):
        system = make_system(allow_admin_signup=False)
        with pytest.raises(ForbiddenError):
            system.auth_service.signup(make_profile(role="admin"))
        assert system.user_manager.list_users() == []

        customer = system.auth_service.signup(make_profile())
        assert customer.role == UserRole.CUSTOMER

    def test_duplicate_email(self):
        self.auth.signup(make_profile())
        with pytest.raises(DuplicateEmailError):
            self.auth.signup(make_profile())
        assert len(self.system.account_manager.list_accounts()) == 1

    def test_signup_rolls_back_user_when_account_fails(self):
        self.system.account_manager.number_generator = lambda: "1000000000000001"
        self.system.account_manager.max_number_attempts = 1
        self.auth.signup(make_profile())

        with pytest.raises(InternalError):
            self.auth.signup(make_profile(email="second@example.com"))
        assert self.system.user_manager.get_user_by_email("second@example.com") is None

    def test_invalid_profile(self):
        with pytest.raises(ValidationError):
            self.auth.signup(make_profile(password="short"))
        assert self.system.user_manager.list_users() == []


class TestSignin:

    def setup_method(self):
        self.system = make_system()
        self.auth = self.system.auth_service
        self.user = self.auth.signup(make_profile(email="a@b.com", password="abcd1234"))

    def test_signin_returns_tokens(self):
        result = self.auth.signin("a@b.com", "abcd1234")

        assert result["id"] == self.user.id
        assert result["email"] == "a@b.com"
        assert result["role"] == "customer"
        assert result["token_type"] == "bearer"
        assert result["access_token"] != result["refresh_token"]

        claims = self.auth.verify_token(result["access_token"])
        assert claims["sub"] == self.user.id
        assert claims["role"] == "customer"
        assert claims["exp"] - claims["iat"] == 3600

        refresh_claims = self.auth.verify_token(result["refresh_token"], expected_type="refresh")
        assert refresh_claims["exp"] - refresh_claims["iat"] == 86400

    def test_signin_updates_last_login(self):
        assert self.user.last_login is None
        self.auth.signin("A@B.com", "abcd1234")
        assert self.system.user_manager.get_user(self.user.id).last_login is not None

    def test_unknown_email(self):
        with pytest.raises(NotFoundError):
            self.auth.signin("nobody@b.com", "abcd1234")

    def test_wrong_password(self):
        with pytest.raises(InvalidCredentialsError):
            self.auth.signin("a@b.com", "abcd12345")
        failed = self.system.audit_trail.get_events_by_type(AuditEventType.LOGIN_FAILED)
        assert failed[0].metadata["reason"] == "invalid_password"

    def test_deactivated_user(self):
        self.user.is_active = False
        self.system.user_manager.save_user(self.user)
        with pytest.raises(ForbiddenError):
            self.auth.signin("a@b.com", "abcd1234")


class TestTokens:

    def setup_method(self):
        self.system = make_system()
        self.auth = self.system.auth_service
        self.user = self.auth.signup(make_profile())
        self.tokens = self.auth.signin("john.doe@example.com", "Password123")

    def test_authenticate(self):
        assert self.auth.authenticate(self.tokens["access_token"]).id == self.user.id

    @pytest.mark.parametrize("token", [None, "", "not-a-jwt"])
    def test_malformed(self, token):
        with pytest.raises(AuthenticationError):
            self.auth.verify_token(token)

    def test_wrong_signature(self):
        forged = jwt.encode(
            {"sub": self.user.id, "role": "admin", "typ": "access"}, "other-secret", algorithm="HS256"
        )
        with pytest.raises(AuthenticationError):
            self.auth.verify_token(forged)

    def test_expired(self):
        expired_system = make_system(access_token_expiry_seconds=-10)
        user = expired_system.auth_service.signup(make_profile())
        token = expired_system.auth_service.create_token(user)
        with pytest.raises(AuthenticationError) as exc:
            expired_system.auth_service.verify_token(token)
        assert exc.value.message == "Token expired"

    def test_refresh_token_is_not_an_access_token(self):
        with pytest.raises(AuthenticationError):
            self.auth.authenticate(self.tokens["refresh_token"])

    def test_access_token_cannot_refresh(self):
        with pytest.raises(AuthenticationError):
            self.auth.refresh_token(self.tokens["access_token"])

    def test_refresh(self):
        pair = self.auth.refresh_token(self.tokens["refresh_token"])
        assert self.auth.authenticate(pair["access_token"]).id == self.user.id
        assert self.auth.verify_token(pair["refresh_token"], expected_type="refresh")
        assert pair["refresh_token"] != self.tokens["refresh_token"]

    def test_refresh_for_removed_user(self):
        self.system.storage.delete("users", self.user.id)
        with pytest.raises(NotFoundError):
            self.auth.refresh_token(self.tokens["refresh_token"])

    def test_authenticate_removed_user(self):
        self.system.storage.delete("users", self.user.id)
        with pytest.raises(AuthenticationError):
            self.auth.authenticate(self.tokens["access_token"])
