"""Lending engine: the borrow / return / loss state machine.

Transaction states::

    Active --return--> Returned
    Active --lost----> Lost --payment--> Paid

Each transition updates the transaction row and the book row together
inside one database transaction; either both writes persist or neither does.
"""

from datetime import date
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from schoollib import models
from schoollib.catalog import CatalogService
from schoollib.database import atomic
from schoollib.errors import (
    BookUnavailable,
    LearnerIneligible,
    LearnerNotFound,
    TransactionNotActive,
    TransactionNotFound,
)
from schoollib.logger import get_logger
from schoollib.models import BookStatus, TransactionStatus


logger = get_logger("lending")

# Loans fall due at the end of the academic year.
DUE_MONTH = 11
DUE_DAY = 28


def calculate_due_date(borrow_date: date) -> date:
    """
    Return 28 November of the borrow year, or of the next year when the
    book is borrowed after 28 November.

    >>> calculate_due_date(date(2024, 11, 28))
    datetime.date(2024, 11, 28)
    >>> calculate_due_date(date(2024, 11, 30))
    datetime.date(2025, 11, 28)
    """
    year = borrow_date.year
    if (borrow_date.month, borrow_date.day) > (DUE_MONTH, DUE_DAY):
        year += 1
    return date(year, DUE_MONTH, DUE_DAY)


class LendingEngine:
    """
    Owns Transaction records and is the only regular writer of Book.status.

    Args:
        db: Session the engine reads and writes through
        catalog: Catalog used for book lookups and status writes
        clock: Callable returning "today"; overdue checks use it
    """

    def __init__(
        self,
        db: Session,
        catalog: Optional[CatalogService] = None,
        clock: Callable[[], date] = date.today,
    ):
        self.db = db
        self.catalog = catalog or CatalogService(db)
        self.clock = clock

    # ---- transitions

    def borrow(
        self, learner_id: int, book_id: int, borrow_date: Optional[date] = None
    ) -> models.Transaction:
        """
        Lend a book to a learner.

        Business Logic:
        1. The learner must exist
        2. A learner with any overdue loan may not borrow anything
        3. The book must exist and be Available
        4. Due date follows the academic-year cutoff (calculate_due_date)
        5. The transaction is inserted and the book flipped to Borrowed
           in the same unit of work

        Raises:
            LearnerNotFound, LearnerIneligible, BookNotFound, BookUnavailable
        """
        borrow_date = borrow_date or self.clock()

        with atomic(self.db):
            if self.db.get(models.Learner, learner_id) is None:
                raise LearnerNotFound(f"Learner with id {learner_id} not found")

            if self.has_overdue_books(learner_id):
                logger.warning("Borrow refused, overdue books | learner=%s", learner_id)
                raise LearnerIneligible("Learner has overdue books and cannot borrow")

            book = self.catalog.get_by_id(book_id)
            if book.status != BookStatus.AVAILABLE:
                logger.warning(
                    "Borrow refused, book %s | book=%s", book.status.value, book.book_code
                )
                raise BookUnavailable(
                    f"Book {book.book_code} is not available for borrowing "
                    f"(status: {book.status.value})"
                )

            transaction = models.Transaction(
                learner_id=learner_id,
                book_id=book_id,
                borrow_date=borrow_date,
                due_date=calculate_due_date(borrow_date),
                status=TransactionStatus.ACTIVE,
            )
            self.db.add(transaction)
            self.db.flush()
            self.catalog.apply_status(book, BookStatus.BORROWED)
            self.db.flush()

        self.db.refresh(transaction)
        logger.info(
            "Book borrowed | transaction=%s learner=%s book=%s due=%s",
            transaction.id,
            learner_id,
            book_id,
            transaction.due_date,
        )
        return transaction

    def return_book(
        self, transaction_id: int, return_date: Optional[date] = None
    ) -> models.Transaction:
        """
        Close an Active loan because the book came back.

        Raises:
            TransactionNotFound: transaction absent
            TransactionNotActive: transaction already returned, lost or paid
        """
        return_date = return_date or self.clock()

        with atomic(self.db):
            transaction = self._get_active(transaction_id)
            transaction.return_date = return_date
            transaction.status = TransactionStatus.RETURNED
            self.db.flush()

            book = self.catalog.get_by_id(transaction.book_id)
            self.catalog.apply_status(book, BookStatus.AVAILABLE)
            self.db.flush()

        self.db.refresh(transaction)
        logger.info(
            "Book returned | transaction=%s book=%s", transaction.id, transaction.book_id
        )
        return transaction

    def mark_lost(self, transaction_id: int) -> models.Transaction:
        """
        Close an Active loan because the book will not come back.

        No return date is recorded.  The book becomes Lost and the loan now
        counts towards the learner's outstanding fees.
        """
        with atomic(self.db):
            transaction = self._get_active(transaction_id)
            transaction.status = TransactionStatus.LOST
            self.db.flush()

            book = self.catalog.get_by_id(transaction.book_id)
            self.catalog.apply_status(book, BookStatus.LOST)
            self.db.flush()

        self.db.refresh(transaction)
        logger.info(
            "Book marked lost | transaction=%s book=%s", transaction.id, transaction.book_id
        )
        return transaction

    def _get_active(self, transaction_id: int) -> models.Transaction:
        transaction = self.get(transaction_id)
        if transaction.status != TransactionStatus.ACTIVE:
            raise TransactionNotActive(
                f"Transaction {transaction_id} is not active "
                f"(status: {transaction.status.value})"
            )
        return transaction

    # ---- queries

    def _newest_first(self):
        return self.db.query(models.Transaction).order_by(
            models.Transaction.created_at.desc(), models.Transaction.id.desc()
        )

    def get(self, transaction_id: int) -> models.Transaction:
        transaction = self.db.get(models.Transaction, transaction_id)
        if transaction is None:
            raise TransactionNotFound(f"Transaction with id {transaction_id} not found")
        return transaction

    def all(self) -> List[models.Transaction]:
        return self._newest_first().all()

    def by_learner(self, learner_id: int) -> List[models.Transaction]:
        return self._newest_first().filter(models.Transaction.learner_id == learner_id).all()

    def active_by_learner(self, learner_id: int) -> List[models.Transaction]:
        return (
            self._newest_first()
            .filter(
                models.Transaction.learner_id == learner_id,
                models.Transaction.status == TransactionStatus.ACTIVE,
            )
            .all()
        )

    def by_book(self, book_id: int) -> List[models.Transaction]:
        return self._newest_first().filter(models.Transaction.book_id == book_id).all()

    def by_date_range(self, start: date, end: date) -> List[models.Transaction]:
        """Loans whose borrow date lies in [start, end], latest borrow first."""
        return (
            self.db.query(models.Transaction)
            .filter(models.Transaction.borrow_date.between(start, end))
            .order_by(models.Transaction.borrow_date.desc(), models.Transaction.id.desc())
            .all()
        )

    def active(self) -> List[models.Transaction]:
        return self._newest_first().filter(
            models.Transaction.status == TransactionStatus.ACTIVE
        ).all()

    def _overdue_query(self):
        return self.db.query(models.Transaction).filter(
            models.Transaction.status == TransactionStatus.ACTIVE,
            models.Transaction.due_date < self.clock(),
        )

    def overdue(self) -> List[models.Transaction]:
        return (
            self._overdue_query()
            .order_by(models.Transaction.due_date, models.Transaction.id)
            .all()
        )

    def count_overdue(self) -> int:
        return self._overdue_query().count()

    def recent(self, limit: int = 10) -> List[models.Transaction]:
        return self._newest_first().limit(limit).all()

    def has_overdue_books(self, learner_id: int) -> bool:
        return (
            self._overdue_query()
            .filter(models.Transaction.learner_id == learner_id)
            .first()
            is not None
        )

    def is_overdue(self, transaction: models.Transaction) -> bool:
        return transaction.is_overdue(self.clock())

    def days_overdue(self, transaction: models.Transaction) -> int:
        return transaction.days_overdue(self.clock())
