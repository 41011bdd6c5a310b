"""Staff accounts: registration, credentials, recovery and activity log."""

import re
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from schoollib import models
from schoollib.auth import answer_matches, hash_answer, hash_secret, secret_matches
from schoollib.database import atomic
from schoollib.errors import (
    DuplicateEmail,
    DuplicateUsername,
    InvalidCredentials,
    ReferencedEntity,
    UserNotFound,
    ValidationFailed,
)
from schoollib.logger import get_logger
from schoollib.models import Role


logger = get_logger("users")

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")

PROFILE_FIELDS = ("name", "surname", "contact_no", "school_name", "role", "security_question")
REQUIRED_FIELDS = ("name", "surname", "role", "security_question", "security_answer")


def validate_username(username: str) -> None:
    """Usernames are e-mail addresses or letters, digits and underscores."""
    if not username:
        raise ValidationFailed("Username cannot be empty")
    if len(username) < 3:
        raise ValidationFailed("Username must be at least 3 characters long")
    if len(username) > 100:
        raise ValidationFailed("Username must be less than 100 characters")
    if not EMAIL_PATTERN.match(username) and not USERNAME_PATTERN.match(username):
        raise ValidationFailed(
            "Username must be a valid email address or contain only letters, "
            "numbers, and underscores"
        )


def validate_password(password: str) -> None:
    if not password:
        raise ValidationFailed("Password cannot be empty")
    if len(password) < 6:
        raise ValidationFailed("Password must be at least 6 characters long")
    if len(password) > 50:
        raise ValidationFailed("Password must be less than 50 characters")


def validate_email(email: str) -> None:
    if not email:
        raise ValidationFailed("Email cannot be empty")
    if not EMAIL_PATTERN.match(email):
        raise ValidationFailed("Invalid email format")


class UserService:
    def __init__(self, db: Session):
        self.db = db

    # ---- lookups

    def get_by_id(self, user_id: int) -> models.User:
        user = self.db.get(models.User, user_id)
        if user is None:
            raise UserNotFound(f"User with id {user_id} not found")
        return user

    def find_by_username(self, username: str) -> Optional[models.User]:
        return (
            self.db.query(models.User)
            .filter(models.User.username == username)
            .first()
        )

    def find_by_email(self, email: str) -> Optional[models.User]:
        return self.db.query(models.User).filter(models.User.email == email).first()

    def get_by_email(self, email: str) -> models.User:
        user = self.find_by_email(email)
        if user is None:
            raise UserNotFound("Email not found")
        return user

    def exists(self, username: str) -> bool:
        return self.find_by_username(username) is not None

    def count(self) -> int:
        return self.db.query(models.User).count()

    def list_all(self) -> List[models.User]:
        return (
            self.db.query(models.User)
            .order_by(models.User.surname, models.User.name, models.User.id)
            .all()
        )

    # ---- registration and profile

    def register(self, data: dict, password: str) -> models.User:
        """
        Create a staff account.

        Business Logic:
        1. Username, password and e-mail must pass validation
        2. Username and e-mail must both be unused
        3. The password and the security answer are stored as one-way hashes
        """
        validate_username(data["username"])
        validate_password(password)
        validate_email(data["email"])

        if self.exists(data["username"]):
            raise DuplicateUsername("Username already exists")
        if self.find_by_email(data["email"]) is not None:
            raise DuplicateEmail("Email already registered")

        user = models.User(
            username=data["username"],
            password_hash=hash_secret(password),
            name=data["name"],
            surname=data["surname"],
            email=data["email"],
            contact_no=data.get("contact_no"),
            school_name=data.get("school_name"),
            role=Role.from_string(data.get("role")),
            security_question=data["security_question"],
            security_answer_hash=hash_answer(data["security_answer"]),
        )
        with atomic(self.db):
            self.db.add(user)
        self.db.refresh(user)
        logger.info("User registered | id=%s username=%s role=%s", user.id, user.username, user.role.value)
        return user

    def update(self, user_id: int, changes: dict) -> models.User:
        user = self.get_by_id(user_id)
        for key in REQUIRED_FIELDS:
            if key in changes and changes[key] is None:
                raise ValidationFailed(f"{key.replace('_', ' ').capitalize()} cannot be empty")

        if "email" in changes and changes["email"] != user.email:
            validate_email(changes["email"])
            if self.find_by_email(changes["email"]) is not None:
                raise DuplicateEmail("Email already registered")

        with atomic(self.db):
            for key in PROFILE_FIELDS + ("email",):
                if key in changes:
                    value = changes[key]
                    if key == "role":
                        value = Role.from_string(value)
                    setattr(user, key, value)
            if "security_answer" in changes:
                user.security_answer_hash = hash_answer(changes["security_answer"])
        self.db.refresh(user)
        return user

    def delete(self, user_id: int) -> None:
        user = self.get_by_id(user_id)
        processed = (
            self.db.query(models.Payment.id)
            .filter(models.Payment.processed_by == user_id)
            .first()
        )
        if processed:
            raise ReferencedEntity(
                f"User {user.username} has processed payments and cannot be deleted"
            )
        username = user.username
        with atomic(self.db):
            self.db.delete(user)
        logger.info("User deleted | id=%s username=%s", user_id, username)

    # ---- credentials

    def verify_credential(self, username: str, password: str) -> bool:
        user = self.find_by_username(username)
        return user is not None and secret_matches(password, user.password_hash)

    def authenticate(self, username: str, password: str) -> models.User:
        """Check a login attempt, stamping last_login on success."""
        if not username or not password:
            raise InvalidCredentials("Username and password cannot be empty")
        user = self.find_by_username(username)
        if user is None or not secret_matches(password, user.password_hash):
            logger.warning("Failed login | username=%s", username)
            raise InvalidCredentials("Invalid username or password")

        with atomic(self.db):
            user.last_login = datetime.now()
            self._add_activity(user.id, "Login", "User logged in successfully")
        self.db.refresh(user)
        return user

    def _set_password(self, user: models.User, new_password: str) -> None:
        validate_password(new_password)
        user.password_hash = hash_secret(new_password)
        user.password_changed_at = datetime.now()

    def change_password(self, user_id: int, old_password: str, new_password: str) -> None:
        user = self.get_by_id(user_id)
        if not secret_matches(old_password, user.password_hash):
            raise InvalidCredentials("Current password is incorrect")
        with atomic(self.db):
            self._set_password(user, new_password)
            self._add_activity(user.id, "Password Change", "User changed their password")

    def security_question(self, email: str) -> str:
        return self.get_by_email(email).security_question

    def verify_security_answer(self, email: str, answer: str) -> bool:
        user = self.get_by_email(email)
        return answer_matches(answer, user.security_answer_hash)

    def reset_password(self, email: str, answer: str, new_password: str) -> None:
        """Self-service recovery: the security answer must match."""
        user = self.get_by_email(email)
        if not answer_matches(answer, user.security_answer_hash):
            logger.warning("Failed password recovery | user=%s", user.id)
            raise InvalidCredentials("Incorrect security answer")
        with atomic(self.db):
            self._set_password(user, new_password)
            self._add_activity(user.id, "Password Reset", "Password reset via security question")

    def admin_reset_password(self, user_id: int, new_password: str, reset_by: int) -> None:
        user = self.get_by_id(user_id)
        with atomic(self.db):
            self._set_password(user, new_password)
            self._add_activity(
                reset_by, "Password Reset", f"Reset password for user {user.username}"
            )

    # ---- activity log

    def _add_activity(self, user_id: int, action_type: str, details: str) -> None:
        self.db.add(
            models.ActivityLog(
                user_id=user_id, action_type=action_type, action_details=details
            )
        )

    def log_activity(self, user_id: int, action_type: str, details: str) -> None:
        with atomic(self.db):
            self._add_activity(user_id, action_type, details)

    def activity_log(self, user_id: int, limit: int = 100) -> List[models.ActivityLog]:
        return (
            self.db.query(models.ActivityLog)
            .filter(models.ActivityLog.user_id == user_id)
            .order_by(models.ActivityLog.created_at.desc(), models.ActivityLog.id.desc())
            .limit(limit)
            .all()
        )
