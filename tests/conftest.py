import os

os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["BCRYPT_ROUNDS"] = "4"

from schoollib.endpoints import app
from schoollib.database import Base, get_db
from schoollib.catalog import CatalogService
from schoollib.roster import RosterService
from schoollib.users import UserService
from schoollib.models import Role

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient


SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

PASSWORD = "secret123"


def override_get_db():
    """
    Override function for the database dependency.

    This replaces the normal get_db() with one that uses the test database.
    FastAPI's dependency injection will call this instead during tests.
    """
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db
test_client = TestClient(app)


@pytest.fixture(autouse=True)
def setup_database():
    """
    Create all tables before each test and drop them afterwards.

    Every test starts with an empty database.
    """
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    """Session for driving the services directly."""
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return test_client


@pytest.fixture
def make_book(db):
    """
    Factory fixture creating catalog entries.

    Usage: book = make_book("B001", price="150.00")
    """
    catalog = CatalogService(db)
    counter = {"n": 0}

    def factory(book_code=None, price="100.00", title=None, **fields):
        counter["n"] += 1
        data = {
            "book_code": book_code or f"B{counter['n']:03d}",
            "isbn": fields.pop("isbn", "978-0-00-000000-0"),
            "title": title or f"Book {counter['n']}",
            "author": fields.pop("author", "A. Writer"),
            "subject": fields.pop("subject", "English"),
            "grade": fields.pop("grade", "8"),
            "price": Decimal(price),
        }
        data.update(fields)
        return catalog.create(data)

    return factory


@pytest.fixture
def make_learner(db):
    roster = RosterService(db)

    def factory(name="Thandi", surname="Mokoena", grade="8", **fields):
        data = {
            "name": name,
            "surname": surname,
            "grade": grade,
            "date_of_birth": fields.pop("date_of_birth", date(2010, 5, 17)),
        }
        data.update(fields)
        return roster.create(data)

    return factory


def register_user(db, username, role, email=None):
    return UserService(db).register(
        {
            "username": username,
            "name": username.capitalize(),
            "surname": "Staff",
            "email": email or f"{username}@school.example",
            "role": role,
            "security_question": "First school?",
            "security_answer": "Greenfield",
        },
        PASSWORD,
    )


def login_headers(username):
    response = test_client.post(
        "/auth/login", json={"username": username, "password": PASSWORD}
    )
    assert response.status_code == 200
    return {"X-Session-Token": response.json()["token"]}


@pytest.fixture
def admin_user(db):
    return register_user(db, "admin", Role.ADMIN)


@pytest.fixture
def librarian_user(db):
    return register_user(db, "librarian", Role.LIBRARIAN)


@pytest.fixture
def finance_user(db):
    return register_user(db, "finance", Role.FINANCE)


@pytest.fixture
def admin_headers(admin_user):
    return login_headers(admin_user.username)


@pytest.fixture
def librarian_headers(librarian_user):
    return login_headers(librarian_user.username)


@pytest.fixture
def finance_headers(finance_user):
    return login_headers(finance_user.username)
