from schoollib import access
from schoollib import models
from schoollib.access import SessionContext
from schoollib.auth import answer_matches, hash_secret, secret_matches
from schoollib.errors import (
    DuplicateEmail,
    DuplicateUsername,
    InvalidCredentials,
    ReferencedEntity,
    UserNotFound,
    ValidationFailed,
)
from schoollib.ledger import LiabilityLedger
from schoollib.lending import LendingEngine
from schoollib.models import Role
from schoollib.users import UserService, validate_password, validate_username

import pytest

from conftest import PASSWORD, register_user


@pytest.fixture
def users(db):
    return UserService(db)


def test_register_hashes_secrets(users, librarian_user):
    assert librarian_user.role == Role.LIBRARIAN
    assert librarian_user.password_hash != PASSWORD
    assert secret_matches(PASSWORD, librarian_user.password_hash)
    assert librarian_user.security_answer_hash != "Greenfield"
    assert answer_matches("  greenFIELD ", librarian_user.security_answer_hash)


def test_register_duplicates(db, librarian_user):
    with pytest.raises(DuplicateUsername) as exc_info:
        register_user(db, "librarian", Role.FINANCE, email="other@school.example")
    assert exc_info.value.reason == "Username already exists"

    with pytest.raises(DuplicateEmail) as exc_info:
        register_user(db, "someone", Role.FINANCE, email="librarian@school.example")
    assert exc_info.value.reason == "Email already registered"


@pytest.mark.parametrize(
    "username, message",
    [
        ("", "Username cannot be empty"),
        ("ab", "Username must be at least 3 characters long"),
        ("bad name!", "Username must be a valid email address or contain only letters, numbers, and underscores"),
    ],
)
def test_username_rules(username, message):
    with pytest.raises(ValidationFailed) as exc_info:
        validate_username(username)
    assert exc_info.value.reason == message


def test_password_rules():
    with pytest.raises(ValidationFailed):
        validate_password("short")
    with pytest.raises(ValidationFailed):
        validate_password("x" * 51)
    validate_password("good-password")


def test_authenticate(db, users, librarian_user):
    user = users.authenticate("librarian", PASSWORD)

    assert user.last_login is not None
    assert [entry.action_type for entry in users.activity_log(user.id)] == ["Login"]
    with pytest.raises(InvalidCredentials) as exc_info:
        users.authenticate("librarian", "wrong-password")
    assert exc_info.value.reason == "Invalid username or password"
    with pytest.raises(InvalidCredentials):
        users.authenticate("nobody", PASSWORD)


def test_change_password(users, librarian_user):
    with pytest.raises(InvalidCredentials):
        users.change_password(librarian_user.id, "not-it", "newpass123")

    users.change_password(librarian_user.id, PASSWORD, "newpass123")

    assert users.verify_credential("librarian", "newpass123")
    assert not users.verify_credential("librarian", PASSWORD)
    assert users.get_by_id(librarian_user.id).password_changed_at is not None


def test_password_recovery(users, librarian_user):
    assert users.security_question("librarian@school.example") == "First school?"
    with pytest.raises(InvalidCredentials) as exc_info:
        users.reset_password("librarian@school.example", "Elsewhere", "newpass123")
    assert exc_info.value.reason == "Incorrect security answer"
    with pytest.raises(UserNotFound):
        users.security_question("nobody@school.example")

    assert users.verify_security_answer("librarian@school.example", "Greenfield ")
    users.reset_password("librarian@school.example", "greenfield", "newpass123")
    assert users.verify_credential("librarian", "newpass123")


def test_admin_reset_and_update(users, admin_user, librarian_user):
    users.admin_reset_password(librarian_user.id, "fresh-pass", admin_user.id)
    assert users.verify_credential("librarian", "fresh-pass")
    assert users.activity_log(admin_user.id)[0].action_details == "Reset password for user librarian"

    updated = users.update(librarian_user.id, {"role": "Finance", "school_name": "Greenfield High"})
    assert updated.role == Role.FINANCE
    assert updated.school_name == "Greenfield High"

    with pytest.raises(DuplicateEmail):
        users.update(librarian_user.id, {"email": "admin@school.example"})


def test_delete_user(db, users, librarian_user):
    """
    Deleting an account takes its sessions and activity log with it.
    """
    users.authenticate("librarian", PASSWORD)
    db.add(models.LoginSession(token="t" * 64, user_id=librarian_user.id))
    db.commit()

    users.delete(librarian_user.id)

    assert users.count() == 0
    assert db.query(models.LoginSession).count() == 0
    assert db.query(models.ActivityLog).count() == 0


def test_user_who_took_payments_cannot_be_deleted(
    db, users, finance_user, make_book, make_learner
):
    learner = make_learner()
    lending = LendingEngine(db)
    transaction = lending.borrow(learner.id, make_book().id)
    lending.mark_lost(transaction.id)
    LiabilityLedger(db).process_payment(learner.id, [transaction.id], finance_user.id)

    with pytest.raises(ReferencedEntity) as exc_info:
        users.delete(finance_user.id)

    assert "processed payments" in exc_info.value.reason
    assert users.get_by_id(finance_user.id).username == "finance"


def test_update_refuses_null_required_field(users, librarian_user):
    with pytest.raises(ValidationFailed) as exc_info:
        users.update(librarian_user.id, {"name": None})
    assert exc_info.value.reason == "Name cannot be empty"

    with pytest.raises(ValidationFailed):
        users.update(librarian_user.id, {"role": None})
    assert users.get_by_id(librarian_user.id).role == Role.LIBRARIAN

    cleared = users.update(librarian_user.id, {"school_name": None})
    assert cleared.school_name is None


def test_hash_secret_is_salted():
    first = hash_secret("same-secret")
    second = hash_secret("same-secret")
    assert first != second
    assert secret_matches("same-secret", first)
    assert not secret_matches("same-secret", "not-a-hash")


@pytest.mark.parametrize(
    "role, users_, books, learners, transactions, payments",
    [
        (Role.ADMIN, True, True, True, True, True),
        (Role.LIBRARIAN, False, True, True, True, False),
        (Role.FINANCE, False, False, False, False, True),
    ],
)
def test_role_matrix(role, users_, books, learners, transactions, payments):
    session = SessionContext(user_id=1, username="someone", role=role)

    assert access.can_manage_users(session) is users_
    assert access.can_manage_books(session) is books
    assert access.can_manage_learners(session) is learners
    assert access.can_manage_transactions(session) is transactions
    assert access.can_process_payments(session) is payments


def test_missing_session_is_never_permitted():
    assert not access.is_admin(None)
    assert not access.can_manage_books(None)
    assert not access.can_process_payments(None)
