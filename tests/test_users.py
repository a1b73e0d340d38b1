"""
Tests for user records, password policy and profile updates
"""

import pytest

from retail_banking.storage import InMemoryStorage
from retail_banking.audit import AuditTrail, AuditEventType
from retail_banking.users import UserManager, UserRole, PasswordPolicy, normalize_email
from retail_banking.errors import ValidationError, DuplicateEmailError, NotFoundError

from tests.helpers import make_profile


class TestPasswordPolicy:

    def test_valid_password(self):
        assert PasswordPolicy().validate("abcdef12") == []

    @pytest.mark.parametrize("password", [
        "short1",        # too short
        "abcdefgh",      # no digit
        "12345678",      # no letter
        "Password12!",   # symbol not allowed
        "pässword12",    # non-ASCII letter
    ])
    def test_invalid_passwords(self, password):
        assert PasswordPolicy().validate(password)

    def test_custom_min_length(self):
        assert PasswordPolicy(min_length=12).validate("abcdef123")


class TestUserManager:
    """Test user creation and lookup"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.user_manager = UserManager(self.storage, self.audit_trail)

    def test_create_user(self):
        user = self.user_manager.create_user(make_profile(email="John.Doe@Example.com"))

        assert user.email == "john.doe@example.com"
        assert user.role == UserRole.CUSTOMER
        assert user.is_active
        assert user.password_hash and user.password_salt
        assert user.password_hash != "Password123"

        events = self.audit_trail.get_events_for_entity("user", user.id)
        assert events[0].event_type == AuditEventType.USER_CREATED

    def test_create_admin(self):
        user = self.user_manager.create_user(make_profile(role="admin"))
        assert user.role == UserRole.ADMIN

    def test_missing_fields(self):
        profile = make_profile()
        del profile["zip_code"]
        profile["city"] = ""
        with pytest.raises(ValidationError) as exc:
            self.user_manager.create_user(profile)
        assert "zip_code" in exc.value.message
        assert "city" in exc.value.message

    def test_invalid_email(self):
        with pytest.raises(ValidationError):
            self.user_manager.create_user(make_profile(email="not-an-email"))

    def test_weak_password(self):
        with pytest.raises(ValidationError):
            self.user_manager.create_user(make_profile(password="password"))

    def test_unknown_role(self):
        with pytest.raises(ValidationError):
            self.user_manager.create_user(make_profile(role="superuser"))

    def test_duplicate_email_case_insensitive(self):
        self.user_manager.create_user(make_profile())
        with pytest.raises(DuplicateEmailError):
            self.user_manager.create_user(make_profile(email="JOHN.DOE@example.com"))

    def test_lookup(self):
        user = self.user_manager.create_user(make_profile())
        assert self.user_manager.get_user(user.id).email == user.email
        assert self.user_manager.get_user_by_email(" John.Doe@example.com ").id == user.id
        assert self.user_manager.get_user("missing") is None
        with pytest.raises(NotFoundError):
            self.user_manager.require_user("missing")

    def test_verify_password(self):
        user = self.user_manager.create_user(make_profile())
        assert self.user_manager.verify_password(user, "Password123")
        assert not self.user_manager.verify_password(user, "Password124")

    def test_public_profile_hides_credentials(self):
        user = self.user_manager.create_user(make_profile())
        profile = self.user_manager.get_profile(user.id)
        assert "password_hash" not in profile
        assert "password_salt" not in profile
        assert profile["email"] == "john.doe@example.com"

    def test_list_customers(self):
        self.user_manager.create_user(make_profile())
        self.user_manager.create_user(make_profile(email="admin@example.com", role="admin"))

        customers = self.user_manager.list_customers()
        assert [u.email for u in customers] == ["john.doe@example.com"]
        assert len(self.user_manager.list_users()) == 2

    def test_normalize_email(self):
        assert normalize_email("  Mixed@Case.COM ") == "mixed@case.com"


class TestProfileUpdate:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.user_manager = UserManager(self.storage, self.audit_trail)
        self.user = self.user_manager.create_user(make_profile())

    def test_update_fields(self):
        updated = self.user_manager.update_profile(self.user.id, {
            "city": "Boston",
            "state": "MA",
            "email": "ignored@example.com",
            "role": "admin"
        })
        assert updated.city == "Boston"
        assert updated.state == "MA"
        assert updated.email == "john.doe@example.com"
        assert updated.role == UserRole.CUSTOMER

    def test_update_password_rehashes(self):
        old_hash = self.user.password_hash
        old_salt = self.user.password_salt
        updated = self.user_manager.update_profile(self.user.id, {"password": "NewPass456"})

        assert updated.password_hash != old_hash
        assert updated.password_salt != old_salt
        assert self.user_manager.verify_password(updated, "NewPass456")
        assert not self.user_manager.verify_password(updated, "Password123")

        events = self.audit_trail.get_events_by_type(AuditEventType.PASSWORD_CHANGED)
        assert len(events) == 1

    def test_update_rejects_weak_password(self):
        with pytest.raises(ValidationError):
            self.user_manager.update_profile(self.user.id, {"password": "weak"})

    def test_nothing_to_update(self):
        with pytest.raises(ValidationError):
            self.user_manager.update_profile(self.user.id, {"email": "x@example.com"})

    def test_update_unknown_user(self):
        with pytest.raises(NotFoundError):
            self.user_manager.update_profile("missing", {"city": "Boston"})
