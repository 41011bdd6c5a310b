from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field

from schoollib.models import BookStatus, Role, TransactionStatus


class BookBase(BaseModel):
    """
    Base schema with common book fields.

    This is the parent class to avoid field duplication.
    """

    isbn: str = Field(..., min_length=1, max_length=20)
    title: str = Field(..., min_length=1, max_length=500)
    author: str = Field(..., min_length=1, max_length=200)
    subject: str = Field(..., min_length=1, max_length=100)
    grade: str = Field(..., min_length=1, max_length=20)
    price: Decimal = Field(Decimal("0.00"), ge=0, max_digits=10, decimal_places=2)


class BookCreate(BookBase):
    """
    Schema for creating a new book.

    book_code is the copy's human-assigned identifier and cannot be
    changed later.  status defaults to Available; Borrowed is rejected.
    """

    book_code: str = Field(..., min_length=1, max_length=50)
    status: BookStatus = BookStatus.AVAILABLE


class BookUpdate(BaseModel):
    """
    Schema for updating a book.

    All fields are optional to support partial updates.  book_code and
    status are deliberately absent: the code is immutable and status has
    its own endpoint.
    """

    isbn: Optional[str] = Field(None, min_length=1, max_length=20)
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    author: Optional[str] = Field(None, min_length=1, max_length=200)
    subject: Optional[str] = Field(None, min_length=1, max_length=100)
    grade: Optional[str] = Field(None, min_length=1, max_length=20)
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)


class BookStatusUpdate(BaseModel):
    """Manual status correction; override is needed to make a Lost book Available."""

    status: BookStatus
    override: bool = False


class Book(BookBase):
    """
    Schema for book responses.

    Internal Working:
    - from_attributes=True lets Pydantic read the SQLAlchemy object's
      attributes (obj.id, obj.title, ...) directly
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    book_code: str
    price: Decimal
    status: BookStatus
    created_at: datetime


class LearnerBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    surname: str = Field(..., min_length=1, max_length=100)
    grade: str = Field(..., min_length=1, max_length=20)
    date_of_birth: date
    contact_no: Optional[str] = Field(None, max_length=30)


class LearnerCreate(LearnerBase):
    pass


class LearnerUpdate(BaseModel):
    """Partial learner update; only provided fields change."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    surname: Optional[str] = Field(None, min_length=1, max_length=100)
    grade: Optional[str] = Field(None, min_length=1, max_length=20)
    date_of_birth: Optional[date] = None
    contact_no: Optional[str] = Field(None, max_length=30)


class Learner(LearnerBase):
    """
    Schema for learner responses.

    age and initial_surname are derived on the model, not stored.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    age: int
    initial_surname: str
    created_at: datetime


class LearnerLiability(BaseModel):
    """
    What a learner currently has out and owes.

    outstanding_amount covers Active and Lost loans (value of books out);
    total_outstanding_fees covers Lost loans only (money owed).
    """

    learner_id: int
    outstanding_amount: Decimal
    total_outstanding_fees: Decimal
    has_overdue_books: bool


class BorrowRequest(BaseModel):
    """
    Schema for lending a book.

    borrow_date defaults to today; the due date is always computed.
    """

    learner_id: int = Field(..., gt=0)
    book_id: int = Field(..., gt=0)
    borrow_date: Optional[date] = None


class ReturnRequest(BaseModel):
    return_date: Optional[date] = None


class Transaction(BaseModel):
    """
    Schema for transaction responses.

    Internal Working:
    - return_date is null until the book comes back (and stays null for
      lost books)
    - overdue and overdue_days are computed at response time
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    learner_id: int
    book_id: int
    borrow_date: date
    due_date: date
    return_date: Optional[date] = None
    status: TransactionStatus
    notes: Optional[str] = None
    created_at: datetime
    overdue: bool = False
    overdue_days: int = 0


class PaymentCreate(BaseModel):
    """
    Schema for settling lost books.

    amount is optional: when omitted the total is the sum of the settled
    book prices.  An empty transaction_ids list is rejected by the ledger
    with its own message.
    """

    learner_id: int = Field(..., gt=0)
    transaction_ids: List[int]
    amount: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    receipt_no: Optional[str] = Field(None, min_length=1, max_length=50)
    notes: str = Field("", max_length=1000)


class PaymentItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    payment_id: int
    transaction_id: int
    book_id: int
    amount: Decimal


class Payment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    receipt_no: str
    learner_id: int
    amount: Decimal
    processed_by: int
    payment_date: datetime
    notes: Optional[str] = None
    items: List[PaymentItem] = []


class UserBase(BaseModel):
    """Base schema with common staff account fields."""

    username: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=100)
    surname: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=1, max_length=200)
    contact_no: Optional[str] = Field(None, max_length=30)
    school_name: Optional[str] = Field(None, max_length=200)
    role: Role = Role.LIBRARIAN
    security_question: str = Field(..., min_length=1, max_length=300)


class UserCreate(UserBase):
    """
    Schema for registering a staff account.

    Password and e-mail rules are checked by the user service so that the
    failure message names the broken rule.
    """

    password: str
    security_answer: str = Field(..., min_length=1, max_length=300)


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    surname: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[str] = Field(None, min_length=1, max_length=200)
    contact_no: Optional[str] = Field(None, max_length=30)
    school_name: Optional[str] = Field(None, max_length=200)
    role: Optional[Role] = None
    security_question: Optional[str] = Field(None, min_length=1, max_length=300)
    security_answer: Optional[str] = Field(None, min_length=1, max_length=300)


class User(UserBase):
    """Schema for user responses; hashes are never exposed."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime
    last_login: Optional[datetime] = None
    password_changed_at: Optional[datetime] = None


class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResponse(BaseModel):
    token: str
    user: User


class ChangePasswordRequest(BaseModel):
    old_password: str
    new_password: str


class PasswordResetRequest(BaseModel):
    email: str
    security_answer: str
    new_password: str


class AdminPasswordReset(BaseModel):
    new_password: str


class SecurityQuestion(BaseModel):
    email: str
    security_question: str


class ActivityLogEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    action_type: str
    action_details: Optional[str] = None
    created_at: datetime


class DashboardStats(BaseModel):
    total_books: int
    available_books: int
    borrowed_books: int
    lost_books: int
    total_learners: int
    active_learners: int
    total_users: int
    overdue_books: int
