from enum import Enum
from datetime import date, datetime
from typing import Optional

from schoollib.database import Base
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator
from sqlalchemy import Column, Integer, String, ForeignKey, Date, DateTime, Numeric, Text


class LabelledEnum(str, Enum):
    """
    String enum whose members are stored by their display label.

    Internal Working:
    - from_string() is total: any unrecognized or empty value falls back to
      the class's default() member instead of raising
    - Matching is case-insensitive, so "borrowed" and "Borrowed" agree
    """

    @classmethod
    def from_string(cls, value):
        if isinstance(value, cls):
            return value
        lowered = str(value or "").strip().lower()
        for member in cls:
            if member.value.lower() == lowered:
                return member
        return cls.default()

    @classmethod
    def default(cls):
        raise NotImplementedError


class BookStatus(LabelledEnum):
    AVAILABLE = "Available"
    BORROWED = "Borrowed"
    LOST = "Lost"

    @classmethod
    def default(cls):
        return cls.AVAILABLE


class TransactionStatus(LabelledEnum):
    ACTIVE = "Active"
    RETURNED = "Returned"
    LOST = "Lost"
    PAID = "Paid"

    @classmethod
    def default(cls):
        return cls.ACTIVE


class Role(LabelledEnum):
    ADMIN = "Admin"
    LIBRARIAN = "Librarian"
    FINANCE = "Finance"

    @classmethod
    def default(cls):
        return cls.LIBRARIAN


class LabelledEnumType(TypeDecorator):
    """
    Column type persisting a LabelledEnum as its label string.

    Values read back from the database go through from_string(), so a row
    holding an unknown label still loads as the enum's safe default.
    """

    impl = String
    cache_ok = True

    def __init__(self, enum_class, length=20):
        super().__init__(length=length)
        self.enum_class = enum_class

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return self.enum_class.from_string(value).value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return self.enum_class.from_string(value)


class User(Base):
    """
    Staff account.

    The security answer is kept only as a one-way hash; recovery compares a
    hash of the supplied answer and never needs the plaintext back.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    name = Column(String, nullable=False)
    surname = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False, index=True)
    contact_no = Column(String, nullable=True)
    school_name = Column(String, nullable=True)
    role = Column(LabelledEnumType(Role), nullable=False, default=Role.LIBRARIAN)
    security_question = Column(String, nullable=False)
    security_answer_hash = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    last_login = Column(DateTime, nullable=True)
    password_changed_at = Column(DateTime, nullable=True)

    sessions = relationship(
        "LoginSession",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    activity = relationship(
        "ActivityLog",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    @property
    def full_name(self) -> str:
        return f"{self.name} {self.surname}"


class LoginSession(Base):
    """An issued session token; the token is sent as X-Session-Token."""

    __tablename__ = "login_sessions"

    token = Column(String(64), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

    user = relationship("User", back_populates="sessions")


class ActivityLog(Base):
    __tablename__ = "user_activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    action_type = Column(String, nullable=False)
    action_details = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

    user = relationship("User", back_populates="activity")


class Learner(Base):
    """
    Learner (student) who borrows books.

    There is no stored eligibility flag: whether a learner may borrow is
    derived from their open transactions at borrow time.
    """

    __tablename__ = "learners"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    surname = Column(String, nullable=False, index=True)
    grade = Column(String, nullable=False, index=True)
    date_of_birth = Column(Date, nullable=False)
    contact_no = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

    transactions = relationship("Transaction", back_populates="learner")

    @property
    def full_name(self) -> str:
        return f"{self.name} {self.surname}"

    @property
    def initial_surname(self) -> str:
        if not self.name or not self.surname:
            return ""
        return f"{self.name[0].upper()}. {self.surname}"

    def age_on(self, today: Optional[date] = None) -> int:
        """Whole years since birth, counting a year only once its anniversary has passed."""
        if self.date_of_birth is None:
            return 0
        today = today or date.today()
        dob = self.date_of_birth
        age = today.year - dob.year
        if (today.month, today.day) < (dob.month, dob.day):
            age -= 1
        return age

    @property
    def age(self) -> int:
        return self.age_on()


class Book(Base):
    """
    A single physical copy in the catalog.

    book_code identifies the copy and never changes after creation; isbn is
    shared by all copies of the same title.  status is written only by the
    lending engine (or by an explicit manual correction).
    """

    __tablename__ = "books"

    id = Column(Integer, primary_key=True, index=True)
    book_code = Column(String, unique=True, nullable=False, index=True)
    isbn = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False, index=True)
    author = Column(String, nullable=False)
    subject = Column(String, nullable=False, index=True)
    grade = Column(String, nullable=False, index=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    status = Column(
        LabelledEnumType(BookStatus), nullable=False, default=BookStatus.AVAILABLE
    )
    created_at = Column(DateTime, default=datetime.now, nullable=False)

    transactions = relationship("Transaction", back_populates="book")


class Transaction(Base):
    """
    One loan of one book to one learner.

    Lifecycle:
    - Active -> Returned (book came back) or Lost (book never came back)
    - Lost -> Paid (the lost book was settled through a payment)
    - Returned and Paid are terminal; nothing re-enters Active
    """

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    learner_id = Column(Integer, ForeignKey("learners.id"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False, index=True)
    borrow_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False, index=True)
    return_date = Column(Date, nullable=True)
    status = Column(
        LabelledEnumType(TransactionStatus),
        nullable=False,
        default=TransactionStatus.ACTIVE,
        index=True,
    )
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

    learner = relationship("Learner", back_populates="transactions")
    book = relationship("Book", back_populates="transactions")

    def is_overdue(self, today: Optional[date] = None) -> bool:
        if self.status != TransactionStatus.ACTIVE:
            return False
        return self.due_date < (today or date.today())

    def days_overdue(self, today: Optional[date] = None) -> int:
        today = today or date.today()
        if not self.is_overdue(today):
            return 0
        return (today - self.due_date).days


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    receipt_no = Column(String, unique=True, nullable=False, index=True)
    learner_id = Column(Integer, ForeignKey("learners.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    processed_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    payment_date = Column(DateTime, default=datetime.now, nullable=False)
    notes = Column(Text, nullable=True)

    items = relationship("PaymentItem", back_populates="payment")


class PaymentItem(Base):
    """
    One settled transaction within a payment.

    amount is the book price at settlement time, copied rather than joined,
    so later price edits never change an issued receipt.
    """

    __tablename__ = "payment_items"

    id = Column(Integer, primary_key=True, index=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=False, index=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=False)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)

    payment = relationship("Payment", back_populates="items")
