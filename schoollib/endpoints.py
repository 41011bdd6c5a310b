from schoollib import access
from schoollib import models
from schoollib import schemas
from schoollib.access import SessionContext
from schoollib.auth import (
    end_session,
    ensure_permission,
    get_current_session,
    get_session_token,
    require_permission,
    session_header,
    start_session,
)
from schoollib.catalog import CatalogService
from schoollib.database import engine, get_db
from schoollib.errors import LibraryError
from schoollib.ledger import LiabilityLedger
from schoollib.lending import LendingEngine
from schoollib.logger import get_logger
from schoollib.models import Role
from schoollib.reports import dashboard_stats
from schoollib.roster import RosterService
from schoollib.users import UserService

from datetime import date
from typing import List, Optional
from sqlalchemy.orm import Session
from fastapi import FastAPI, Depends, HTTPException, Request, Security, status, Query
from fastapi.responses import JSONResponse


models.Base.metadata.create_all(bind=engine)

logger = get_logger("api")

app = FastAPI(
    title="School Library Management API",
    description="Books, learners, loans, lost-book fees and payments for a school library",
    version="1.0.0",
)

manage_users = require_permission(access.can_manage_users, "manage users")
manage_books = require_permission(access.can_manage_books, "manage books")
manage_learners = require_permission(access.can_manage_learners, "manage learners")
manage_transactions = require_permission(
    access.can_manage_transactions, "manage transactions"
)
process_payments = require_permission(access.can_process_payments, "process payments")


@app.exception_handler(LibraryError)
async def library_error_handler(request: Request, exc: LibraryError):
    """
    Turn a service failure into an HTTP error response.

    The body has the same {"detail": ...} shape as HTTPException, and the
    detail is always the specific reason raised by the service.
    """
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.reason})


def _record(db: Session, current: SessionContext, action: str, details: str) -> None:
    UserService(db).log_activity(current.user_id, action, details)


def _transaction_out(lending: LendingEngine, transaction) -> schemas.Transaction:
    out = schemas.Transaction.model_validate(transaction)
    out.overdue = lending.is_overdue(transaction)
    out.overdue_days = lending.days_overdue(transaction)
    return out


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancers.

    Returns:
        Simple status message indicating the service is running
    """
    return {"status": "healthy", "service": "school-library-api"}


# ---------------------------------------------------------------- auth


@app.post("/auth/login", response_model=schemas.LoginResponse)
async def login(credentials: schemas.LoginRequest, db: Session = Depends(get_db)):
    """
    Start a session.

    Internal Working:
    1. UserService.authenticate checks the bcrypt hash and stamps last_login
    2. A random token is stored in login_sessions
    3. The client sends the token as X-Session-Token on later requests

    Raises:
        InvalidCredentials: 401 with the reason
    """
    user = UserService(db).authenticate(credentials.username, credentials.password)
    token = start_session(db, user)
    return schemas.LoginResponse(token=token, user=schemas.User.model_validate(user))


@app.post("/auth/logout")
async def logout(token: str = Depends(get_session_token), db: Session = Depends(get_db)):
    """
    End the current session.

    Internal Working:
    1. get_session_token reads X-Session-Token (401 if absent)
    2. The matching login_sessions row is deleted
    3. Later requests with the same token get 401

    Raises:
        HTTPException: 401 if the token was not a live session
    """
    if not end_session(db, token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session token. Log in again.",
        )
    return {"detail": "Logged out"}


@app.get("/auth/me", response_model=schemas.User)
async def current_user(
    current: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """
    Return the account behind the session token.

    Password and security-answer hashes are never part of the response.
    """
    return UserService(db).get_by_id(current.user_id)


@app.post("/auth/change-password")
async def change_password(
    request: schemas.ChangePasswordRequest,
    current: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """
    Change the logged-in user's own password.

    Business Logic:
    - The current password must be supplied and correct
    - The new password must pass the password rules

    Raises:
        InvalidCredentials: 401 if the current password is wrong
        ValidationFailed: 422 naming the broken password rule
    """
    UserService(db).change_password(
        current.user_id, request.old_password, request.new_password
    )
    return {"detail": "Password changed"}


@app.get("/auth/security-question", response_model=schemas.SecurityQuestion)
async def security_question(email: str = Query(...), db: Session = Depends(get_db)):
    """
    First step of self-service recovery: look up the security question.

    Raises:
        UserNotFound: 404 "Email not found"
    """
    question = UserService(db).security_question(email)
    return {"email": email, "security_question": question}


@app.post("/auth/reset-password")
async def reset_password(
    request: schemas.PasswordResetRequest, db: Session = Depends(get_db)
):
    """
    Self-service password recovery.

    The stored security answer is a one-way hash, so the supplied answer is
    hashed and compared; the plaintext answer is never recoverable.
    """
    UserService(db).reset_password(
        request.email, request.security_answer, request.new_password
    )
    return {"detail": "Password reset"}


# ---------------------------------------------------------------- users


@app.post("/users", response_model=schemas.User, status_code=status.HTTP_201_CREATED)
async def create_user(
    user: schemas.UserCreate,
    token: Optional[str] = Security(session_header),
    db: Session = Depends(get_db),
):
    """
    Register a staff account (requires Admin).

    Business Logic:
    - While no account exists at all, registration is open and the first
      account is always created as Admin
    - Afterwards only an Admin session may create accounts
    """
    service = UserService(db)
    data = user.model_dump(exclude={"password"})

    if service.count() == 0:
        data["role"] = Role.ADMIN
        created = service.register(data, user.password)
        service.log_activity(created.id, "Create User", "Initial administrator registered")
        return created

    current = get_current_session(await get_session_token(token), db)
    ensure_permission(current, access.can_manage_users, "manage users")
    created = service.register(data, user.password)
    _record(db, current, "Create User", f"Created user {created.username} ({created.role.value})")
    return created


@app.get("/users", response_model=List[schemas.User], dependencies=[Depends(manage_users)])
async def list_users(db: Session = Depends(get_db)):
    """List staff accounts ordered by surname (requires Admin)."""
    return UserService(db).list_all()


@app.get("/users/{user_id}", response_model=schemas.User, dependencies=[Depends(manage_users)])
async def get_user(user_id: int, db: Session = Depends(get_db)):
    """
    Retrieve a staff account by ID (requires Admin).

    Raises:
        UserNotFound: 404 if no account has this ID
    """
    return UserService(db).get_by_id(user_id)


@app.put("/users/{user_id}", response_model=schemas.User)
async def update_user(
    user_id: int,
    user_update: schemas.UserUpdate,
    current: SessionContext = Depends(manage_users),
    db: Session = Depends(get_db),
):
    """
    Update a staff account (requires Admin).

    Internal Working:
    1. exclude_unset=True keeps only the fields present in the request
    2. A new e-mail is validated and must be unused
    3. A new security answer is hashed before storage

    Raises:
        UserNotFound: 404
        DuplicateEmail: 400 if the e-mail belongs to another account
        ValidationFailed: 422 if a required field is sent as null
    """
    updated = UserService(db).update(user_id, user_update.model_dump(exclude_unset=True))
    _record(db, current, "Update User", f"Updated user {updated.username}")
    return updated


@app.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: int,
    current: SessionContext = Depends(manage_users),
    db: Session = Depends(get_db),
):
    """
    Delete a staff account (requires Admin).

    Business Logic:
    - Admins cannot delete their own account
    - Accounts that processed payments are kept for the receipts
    - The account's sessions and activity log go with it

    Raises:
        HTTPException: 400 on self-delete
        ReferencedEntity: 400 if the account processed payments
    """
    if user_id == current.user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot delete your own account",
        )
    UserService(db).delete(user_id)
    _record(db, current, "Delete User", f"Deleted user {user_id}")


@app.post("/users/{user_id}/reset-password")
async def admin_reset_password(
    user_id: int,
    request: schemas.AdminPasswordReset,
    current: SessionContext = Depends(manage_users),
    db: Session = Depends(get_db),
):
    """
    Set a new password for another account (requires Admin).

    The reset is written to the admin's activity log.
    """
    UserService(db).admin_reset_password(user_id, request.new_password, current.user_id)
    return {"detail": "Password reset"}


@app.get(
    "/users/{user_id}/activity",
    response_model=List[schemas.ActivityLogEntry],
    dependencies=[Depends(manage_users)],
)
async def user_activity(
    user_id: int,
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    """
    Recent activity of one account, newest first (requires Admin).

    Raises:
        UserNotFound: 404
    """
    service = UserService(db)
    service.get_by_id(user_id)
    return service.activity_log(user_id, limit)


# ---------------------------------------------------------------- books


@app.post("/books", response_model=schemas.Book, status_code=status.HTTP_201_CREATED)
async def create_book(
    book: schemas.BookCreate,
    current: SessionContext = Depends(manage_books),
    db: Session = Depends(get_db),
):
    """
    Add a copy to the catalog (requires Librarian or Admin).

    Raises:
        DuplicateCode: 400 if the book code is taken
    """
    created = CatalogService(db).create(book.model_dump())
    _record(db, current, "Add Book", f"Added book {created.book_code}: {created.title}")
    return created


@app.get("/books", response_model=List[schemas.Book], dependencies=[Depends(get_current_session)])
async def list_books(
    search: Optional[str] = Query(None),
    status_filter: Optional[models.BookStatus] = Query(None, alias="status"),
    grade: Optional[str] = Query(None),
    subject: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    """
    List books ordered by title, optionally narrowed.

    search matches title, author, code or ISBN; the remaining filters
    are exact matches and may be combined with it.
    """
    catalog = CatalogService(db)
    books = catalog.search(search) if search else catalog.list_all()
    if status_filter is not None:
        books = [b for b in books if b.status == status_filter]
    if grade:
        books = [b for b in books if b.grade == grade]
    if subject:
        books = [b for b in books if b.subject == subject]
    return books


@app.get(
    "/books/code/{book_code}",
    response_model=schemas.Book,
    dependencies=[Depends(get_current_session)],
)
async def get_book_by_code(book_code: str, db: Session = Depends(get_db)):
    """
    Retrieve a book by its copy code.

    Raises:
        BookNotFound: 404 if no copy has this code
    """
    return CatalogService(db).get_by_code(book_code)


@app.get("/books/isbn/{isbn}/count", dependencies=[Depends(get_current_session)])
async def count_books_by_isbn(isbn: str, db: Session = Depends(get_db)):
    """Number of copies in the catalog sharing one ISBN."""
    return {"isbn": isbn, "copies": CatalogService(db).count_by_isbn(isbn)}


@app.get(
    "/books/{book_id}",
    response_model=schemas.Book,
    dependencies=[Depends(get_current_session)],
)
async def get_book(book_id: int, db: Session = Depends(get_db)):
    """
    Retrieve a specific book by ID.

    Raises:
        BookNotFound: 404 if the book doesn't exist
    """
    return CatalogService(db).get_by_id(book_id)


@app.put("/books/{book_id}", response_model=schemas.Book)
async def update_book(
    book_id: int,
    book_update: schemas.BookUpdate,
    current: SessionContext = Depends(manage_books),
    db: Session = Depends(get_db),
):
    """
    Update a book's details (requires Librarian or Admin).

    Internal Working:
    1. exclude_unset=True keeps only the fields present in the request
    2. book_code and status are not part of the update body
    3. Required fields sent as null are rejected

    Raises:
        BookNotFound: 404
        ValidationFailed: 422 for a null required field or negative price
    """
    updated = CatalogService(db).update(book_id, book_update.model_dump(exclude_unset=True))
    _record(db, current, "Update Book", f"Updated book {updated.book_code}")
    return updated


@app.put("/books/{book_id}/status", response_model=schemas.Book)
async def set_book_status(
    book_id: int,
    request: schemas.BookStatusUpdate,
    current: SessionContext = Depends(manage_books),
    db: Session = Depends(get_db),
):
    """
    Manually correct a book's status.

    This bypasses the lending engine, so Borrowed cannot be set here, and
    bringing a Lost book back to Available needs override=true from an Admin.
    """
    if request.override:
        ensure_permission(current, access.is_admin, "override book status")
    updated = CatalogService(db).set_status(book_id, request.status, request.override)
    _record(
        db,
        current,
        "Book Status",
        f"Set book {updated.book_code} to {updated.status.value}"
        + (" (override)" if request.override else ""),
    )
    return updated


@app.delete("/books/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_book(
    book_id: int,
    current: SessionContext = Depends(manage_books),
    db: Session = Depends(get_db),
):
    """
    Delete a book (requires Librarian or Admin).

    Raises:
        ReferencedEntity: 400 if any transaction references the book
    """
    CatalogService(db).delete(book_id)
    _record(db, current, "Delete Book", f"Deleted book {book_id}")


@app.get(
    "/books/{book_id}/transactions",
    response_model=List[schemas.Transaction],
    dependencies=[Depends(get_current_session)],
)
async def book_transactions(book_id: int, db: Session = Depends(get_db)):
    """Loan history of one copy, newest first."""
    lending = LendingEngine(db)
    lending.catalog.get_by_id(book_id)
    return [_transaction_out(lending, t) for t in lending.by_book(book_id)]


# ---------------------------------------------------------------- learners


@app.post("/learners", response_model=schemas.Learner, status_code=status.HTTP_201_CREATED)
async def create_learner(
    learner: schemas.LearnerCreate,
    current: SessionContext = Depends(manage_learners),
    db: Session = Depends(get_db),
):
    """
    Add a learner to the roster (requires Librarian or Admin).

    age and initial_surname in the response are derived, not stored.
    """
    created = RosterService(db).create(learner.model_dump())
    _record(db, current, "Add Learner", f"Added learner {created.full_name}")
    return created


@app.get(
    "/learners",
    response_model=List[schemas.Learner],
    dependencies=[Depends(get_current_session)],
)
async def list_learners(
    search: Optional[str] = Query(None),
    grade: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    """
    List learners ordered by surname and name.

    search matches name, surname or learner ID; grade narrows the result.
    """
    roster = RosterService(db)
    learners = roster.search(search) if search else roster.list_all()
    if grade:
        learners = [learner for learner in learners if learner.grade == grade]
    return learners


@app.get(
    "/learners/{learner_id}",
    response_model=schemas.Learner,
    dependencies=[Depends(get_current_session)],
)
async def get_learner(learner_id: int, db: Session = Depends(get_db)):
    """
    Retrieve a learner by ID.

    Raises:
        LearnerNotFound: 404
    """
    return RosterService(db).get_by_id(learner_id)


@app.put("/learners/{learner_id}", response_model=schemas.Learner)
async def update_learner(
    learner_id: int,
    learner_update: schemas.LearnerUpdate,
    current: SessionContext = Depends(manage_learners),
    db: Session = Depends(get_db),
):
    """
    Update a learner (requires Librarian or Admin).

    Raises:
        LearnerNotFound: 404
        ValidationFailed: 422 if a required field is sent as null
    """
    updated = RosterService(db).update(
        learner_id, learner_update.model_dump(exclude_unset=True)
    )
    _record(db, current, "Update Learner", f"Updated learner {updated.full_name}")
    return updated


@app.delete("/learners/{learner_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_learner(
    learner_id: int,
    current: SessionContext = Depends(manage_learners),
    db: Session = Depends(get_db),
):
    """
    Delete a learner (requires Librarian or Admin).

    Raises:
        ReferencedEntity: 400 if the learner has any transaction history
    """
    RosterService(db).delete(learner_id)
    _record(db, current, "Delete Learner", f"Deleted learner {learner_id}")


@app.get(
    "/learners/{learner_id}/transactions",
    response_model=List[schemas.Transaction],
    dependencies=[Depends(get_current_session)],
)
async def learner_transactions(
    learner_id: int,
    active_only: bool = Query(False),
    db: Session = Depends(get_db),
):
    """A learner's loans, newest first; active_only keeps open loans."""
    lending = LendingEngine(db)
    RosterService(db, lending).get_by_id(learner_id)
    if active_only:
        transactions = lending.active_by_learner(learner_id)
    else:
        transactions = lending.by_learner(learner_id)
    return [_transaction_out(lending, t) for t in transactions]


@app.get(
    "/learners/{learner_id}/liability",
    response_model=schemas.LearnerLiability,
    dependencies=[Depends(get_current_session)],
)
async def learner_liability(learner_id: int, db: Session = Depends(get_db)):
    """
    Report both liability figures for a learner.

    outstanding_amount: value of books out (Active + Lost loans)
    total_outstanding_fees: money owed for lost books (Lost loans only)
    """
    roster = RosterService(db)
    roster.get_by_id(learner_id)
    ledger = LiabilityLedger(db)
    return {
        "learner_id": learner_id,
        "outstanding_amount": ledger.outstanding_amount(learner_id),
        "total_outstanding_fees": ledger.total_outstanding_fees(learner_id),
        "has_overdue_books": roster.has_overdue_books(learner_id),
    }


@app.get(
    "/learners/{learner_id}/unpaid-lost",
    response_model=List[schemas.Transaction],
    dependencies=[Depends(get_current_session)],
)
async def learner_unpaid_lost(learner_id: int, db: Session = Depends(get_db)):
    """Lost loans still awaiting payment, i.e. what can be settled."""
    lending = LendingEngine(db)
    RosterService(db, lending).get_by_id(learner_id)
    transactions = LiabilityLedger(db).unpaid_lost_transactions(learner_id)
    return [_transaction_out(lending, t) for t in transactions]


@app.get(
    "/learners/{learner_id}/payments",
    response_model=List[schemas.Payment],
    dependencies=[Depends(get_current_session)],
)
async def learner_payments(learner_id: int, db: Session = Depends(get_db)):
    """Payments made for a learner, latest first."""
    RosterService(db).get_by_id(learner_id)
    return LiabilityLedger(db).payments_by_learner(learner_id)


# ---------------------------------------------------------------- transactions


@app.post(
    "/transactions",
    response_model=schemas.Transaction,
    status_code=status.HTTP_201_CREATED,
)
async def borrow_book(
    request: schemas.BorrowRequest,
    current: SessionContext = Depends(manage_transactions),
    db: Session = Depends(get_db),
):
    """
    Lend a book to a learner (requires Librarian or Admin).

    Business Logic:
    1. A learner with any overdue loan cannot borrow
    2. The book must be Available
    3. The due date is 28 November (of the next year after the cutoff)

    Raises:
        LearnerIneligible / BookUnavailable: 400 with the reason
        LearnerNotFound / BookNotFound: 404
    """
    lending = LendingEngine(db)
    transaction = lending.borrow(request.learner_id, request.book_id, request.borrow_date)
    _record(
        db,
        current,
        "Borrow",
        f"Book {transaction.book_id} lent to learner {transaction.learner_id}",
    )
    return _transaction_out(lending, transaction)


@app.get(
    "/transactions",
    response_model=List[schemas.Transaction],
    dependencies=[Depends(get_current_session)],
)
async def list_transactions(
    learner_id: Optional[int] = Query(None),
    book_id: Optional[int] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    active_only: bool = Query(False),
    overdue_only: bool = Query(False),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    """
    List transactions.

    Ordering:
    - overdue_only: ascending by due date
    - start_date + end_date: by borrow date, latest first
    - otherwise newest first; limit gives the most recent N
    """
    lending = LendingEngine(db)

    if overdue_only:
        transactions = lending.overdue()
    elif start_date and end_date:
        transactions = lending.by_date_range(start_date, end_date)
    elif learner_id is not None:
        transactions = lending.by_learner(learner_id)
    elif book_id is not None:
        transactions = lending.by_book(book_id)
    elif active_only:
        transactions = lending.active()
    else:
        transactions = lending.all()

    if learner_id is not None:
        transactions = [t for t in transactions if t.learner_id == learner_id]
    if book_id is not None:
        transactions = [t for t in transactions if t.book_id == book_id]
    if active_only:
        transactions = [t for t in transactions if t.status == models.TransactionStatus.ACTIVE]
    if limit is not None:
        transactions = transactions[:limit]

    return [_transaction_out(lending, t) for t in transactions]


@app.get(
    "/transactions/{transaction_id}",
    response_model=schemas.Transaction,
    dependencies=[Depends(get_current_session)],
)
async def get_transaction(transaction_id: int, db: Session = Depends(get_db)):
    """
    Retrieve a transaction with its current overdue figures.

    Raises:
        TransactionNotFound: 404
    """
    lending = LendingEngine(db)
    return _transaction_out(lending, lending.get(transaction_id))


@app.post("/transactions/{transaction_id}/return", response_model=schemas.Transaction)
async def return_book(
    transaction_id: int,
    request: Optional[schemas.ReturnRequest] = None,
    current: SessionContext = Depends(manage_transactions),
    db: Session = Depends(get_db),
):
    """
    Record a returned book (requires Librarian or Admin).

    The transaction becomes Returned and the book Available in one
    database transaction.

    Raises:
        TransactionNotFound: 404 if absent, 400 if no longer active
    """
    lending = LendingEngine(db)
    return_date = request.return_date if request else None
    transaction = lending.return_book(transaction_id, return_date)
    _record(db, current, "Return", f"Transaction {transaction_id} returned")
    return _transaction_out(lending, transaction)


@app.post("/transactions/{transaction_id}/lost", response_model=schemas.Transaction)
async def mark_book_lost(
    transaction_id: int,
    current: SessionContext = Depends(manage_transactions),
    db: Session = Depends(get_db),
):
    """
    Record that a borrowed book will not come back (requires Librarian or Admin).

    Business Logic:
    - The loan becomes Lost and the book Lost in one database transaction
    - No return date is recorded
    - The book's price now counts towards the learner's outstanding fees

    Raises:
        TransactionNotFound: 404 if absent, 400 if no longer active
    """
    lending = LendingEngine(db)
    transaction = lending.mark_lost(transaction_id)
    _record(db, current, "Lost", f"Transaction {transaction_id} marked lost")
    return _transaction_out(lending, transaction)


# ---------------------------------------------------------------- payments


@app.post("/payments", response_model=schemas.Payment, status_code=status.HTTP_201_CREATED)
async def create_payment(
    payment: schemas.PaymentCreate,
    current: SessionContext = Depends(process_payments),
    db: Session = Depends(get_db),
):
    """
    Settle lost books (requires Finance or Admin).

    All selected transactions are settled or none are; the response
    includes one item per settled transaction.

    Raises:
        EmptySelection: 400 when no transactions are selected
        TransactionNotFound / BookNotFound: 404, nothing is saved
        TransactionNotPayable: 400, nothing is saved
    """
    created = LiabilityLedger(db).process_payment(
        learner_id=payment.learner_id,
        transaction_ids=payment.transaction_ids,
        processed_by=current.user_id,
        amount=payment.amount,
        receipt_no=payment.receipt_no,
        notes=payment.notes,
    )
    _record(
        db,
        current,
        "Payment",
        f"Receipt {created.receipt_no} for learner {created.learner_id}: {created.amount}",
    )
    return created


@app.get(
    "/payments/receipt/{receipt_no}",
    response_model=schemas.Payment,
    dependencies=[Depends(get_current_session)],
)
async def get_payment_by_receipt(receipt_no: str, db: Session = Depends(get_db)):
    """
    Retrieve a payment by receipt number.

    Raises:
        PaymentNotFound: 404
    """
    return LiabilityLedger(db).get_by_receipt(receipt_no)


@app.get(
    "/payments/{payment_id}",
    response_model=schemas.Payment,
    dependencies=[Depends(get_current_session)],
)
async def get_payment(payment_id: int, db: Session = Depends(get_db)):
    """Retrieve a payment and its settled items."""
    return LiabilityLedger(db).get_payment(payment_id)


# ---------------------------------------------------------------- dashboard


@app.get(
    "/dashboard",
    response_model=schemas.DashboardStats,
    dependencies=[Depends(get_current_session)],
)
async def dashboard(db: Session = Depends(get_db)):
    """Headline counts for the library dashboard."""
    return dashboard_stats(db)
