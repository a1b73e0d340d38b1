"""
User Management Module

Credential store: user profiles, salted password hashes, the admin/customer
role tag and login timestamps. Users are never hard-deleted.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from enum import Enum
import hashlib
import hmac
import re
import secrets
import uuid

from .storage import StorageInterface, StorageRecord, parse_datetime
from .audit import AuditTrail, AuditEventType
from .errors import ValidationError, DuplicateEmailError, NotFoundError


EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')

REQUIRED_PROFILE_FIELDS = [
    'first_name', 'last_name', 'email', 'password',
    'phone_number', 'address', 'city', 'state', 'zip_code'
]

UPDATABLE_PROFILE_FIELDS = [
    'first_name', 'last_name', 'phone_number', 'address', 'city', 'state', 'zip_code'
]


class UserRole(Enum):
    """User roles"""
    ADMIN = "admin"
    CUSTOMER = "customer"


@dataclass
class User(StorageRecord):
    """Registered user with hashed credentials"""
    first_name: str
    last_name: str
    email: str
    phone_number: str
    address: str
    city: str
    state: str
    zip_code: str
    role: UserRole = UserRole.CUSTOMER
    password_hash: str = ""
    password_salt: str = ""
    is_active: bool = True
    last_login: Optional[datetime] = None

    def to_public_dict(self) -> Dict[str, Any]:
        """Profile view without credential fields"""
        result = self.to_dict()
        result.pop('password_hash')
        result.pop('password_salt')
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        data = dict(data)
        data['created_at'] = parse_datetime(data['created_at'])
        data['updated_at'] = parse_datetime(data['updated_at'])
        data['last_login'] = parse_datetime(data.get('last_login'))
        data['role'] = UserRole(data['role'])
        return cls(**data)


@dataclass
class PasswordPolicy:
    """Password policy: letters and digits only, at least one of each"""
    min_length: int = 8

    def validate(self, password: str) -> List[str]:
        """Return the list of policy violations (empty when valid)"""
        violations = []
        if len(password) < self.min_length:
            violations.append(f"Minimum length {self.min_length}")
        if not any(c.isascii() and c.isalpha() for c in password):
            violations.append("Must contain a letter")
        if not any(c.isdigit() for c in password):
            violations.append("Must contain a digit")
        if not all(c.isascii() and c.isalnum() for c in password):
            violations.append("Only letters and digits are allowed")
        return violations


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserManager:
    """
    Manages user records and password verification
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        password_policy: Optional[PasswordPolicy] = None
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.password_policy = password_policy or PasswordPolicy()
        self.table_name = "users"

    def validate_profile(self, profile: Dict[str, Any]) -> None:
        """
        Check a sign-up profile before anything is written

        Raises:
            ValidationError: On missing fields, bad email, weak password or unknown role
        """
        missing = [name for name in REQUIRED_PROFILE_FIELDS if not profile.get(name)]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        if not EMAIL_PATTERN.match(profile['email']):
            raise ValidationError("Invalid email format")

        self._check_password(profile['password'])

        role = profile.get('role') or UserRole.CUSTOMER.value
        if role not in [r.value for r in UserRole]:
            raise ValidationError(f"Unknown role: {role}")

    def create_user(self, profile: Dict[str, Any]) -> User:
        """
        Create a user from a sign-up profile

        Args:
            profile: Dict with the REQUIRED_PROFILE_FIELDS and an optional role

        Returns:
            Created User object

        Raises:
            ValidationError: If the profile is incomplete or invalid
            DuplicateEmailError: If the email is already registered
        """
        self.validate_profile(profile)

        with self.storage.atomic():
            email = normalize_email(profile['email'])
            if self.get_user_by_email(email):
                raise DuplicateEmailError("Email is already in use")

            now = datetime.now(timezone.utc)
            user = User(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                first_name=profile['first_name'],
                last_name=profile['last_name'],
                email=email,
                phone_number=profile['phone_number'],
                address=profile['address'],
                city=profile['city'],
                state=profile['state'],
                zip_code=profile['zip_code'],
                role=UserRole(profile.get('role') or UserRole.CUSTOMER.value)
            )
            self._set_password(user, profile['password'])
            self.save_user(user)

            self.audit_trail.log_event(
                event_type=AuditEventType.USER_CREATED,
                entity_type="user",
                entity_id=user.id,
                metadata={"email": email, "role": user.role.value}
            )

        return user

    def get_user(self, user_id: str) -> Optional[User]:
        """Get user by ID"""
        data = self.storage.load(self.table_name, user_id)
        if data:
            return User.from_dict(data)
        return None

    def require_user(self, user_id: str) -> User:
        user = self.get_user(user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def get_profile(self, user_id: str) -> Dict[str, Any]:
        """Public profile of a user"""
        return self.require_user(user_id).to_public_dict()

    def get_user_by_email(self, email: str) -> Optional[User]:
        """Get user by email address (case-insensitive)"""
        users = self.storage.find(self.table_name, {"email": normalize_email(email)})
        if users:
            return User.from_dict(users[0])
        return None

    def list_users(self, role: Optional[UserRole] = None) -> List[User]:
        """List users, optionally restricted to one role"""
        filters = {"role": role.value} if role else {}
        return [User.from_dict(data) for data in self.storage.find(self.table_name, filters)]

    def list_customers(self) -> List[User]:
        return self.list_users(UserRole.CUSTOMER)

    def update_profile(self, user_id: str, changes: Dict[str, Any]) -> User:
        """
        Update profile fields and optionally the password

        Only UPDATABLE_PROFILE_FIELDS and ``password`` are considered; email
        and role cannot be changed here.

        Raises:
            NotFoundError: If the user does not exist
            ValidationError: If nothing updatable was supplied or the password is weak
        """
        updates = {
            name: changes[name] for name in UPDATABLE_PROFILE_FIELDS
            if changes.get(name) is not None
        }
        password = changes.get('password')
        if not updates and not password:
            raise ValidationError("No valid fields to update")
        if password:
            self._check_password(password)

        with self.storage.atomic():
            user = self.require_user(user_id)
            for name, value in updates.items():
                setattr(user, name, value)
            if password:
                user.password_salt = ""
                self._set_password(user, password)
            user.updated_at = datetime.now(timezone.utc)
            self.save_user(user)

            self.audit_trail.log_event(
                event_type=AuditEventType.PASSWORD_CHANGED if password and not updates
                else AuditEventType.USER_UPDATED,
                entity_type="user",
                entity_id=user.id,
                metadata={"fields": sorted(updates), "password_changed": bool(password)},
                user_id=user.id
            )

        return user

    def record_login(self, user: User) -> User:
        """Stamp last_login on a successful sign-in"""
        user.last_login = datetime.now(timezone.utc)
        user.updated_at = user.last_login
        self.save_user(user)
        return user

    def verify_password(self, user: User, password: str) -> bool:
        """Verify password against stored hash"""
        if not user.password_hash or not user.password_salt:
            return False
        expected = self._hash_password(password, user.password_salt)
        return hmac.compare_digest(expected, user.password_hash)

    def save_user(self, user: User) -> None:
        self.storage.save(self.table_name, user.id, user.to_dict())

    def _check_password(self, password: str) -> None:
        violations = self.password_policy.validate(password)
        if violations:
            raise ValidationError(
                "Password must be at least "
                f"{self.password_policy.min_length} characters with both letters and numbers"
            )

    def _hash_password(self, password: str, salt: str) -> str:
        """Hash password with salt using scrypt"""
        return hashlib.scrypt(
            password.encode(),
            salt=salt.encode(),
            n=16384, r=8, p=1
        ).hex()

    def _set_password(self, user: User, password: str) -> None:
        if not user.password_salt:
            user.password_salt = secrets.token_hex(16)
        user.password_hash = self._hash_password(password, user.password_salt)
