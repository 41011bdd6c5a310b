"""Book registry: creation, edits, lookups and status of physical copies."""

from decimal import Decimal
from typing import Dict, List

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from schoollib import models
from schoollib.database import atomic
from schoollib.errors import (
    BookNotFound,
    DuplicateCode,
    InvalidState,
    ReferencedEntity,
    ValidationFailed,
)
from schoollib.logger import get_logger
from schoollib.models import BookStatus


logger = get_logger("catalog")

EDITABLE_FIELDS = ("isbn", "title", "author", "subject", "grade", "price")


def _check_price(price) -> None:
    if price is not None and Decimal(str(price)) < 0:
        raise ValidationFailed("Book price cannot be negative")


def _check_required(changes: dict) -> None:
    for key in EDITABLE_FIELDS:
        if key in changes and changes[key] is None:
            raise ValidationFailed(f"Book {key} cannot be empty")


class CatalogService:
    """
    Owns the Book lifecycle.

    Book.status is normally changed only by the lending engine through
    apply_status().  set_status() is the manual correction path; it skips the
    transaction consistency checks the lending engine performs, so it never
    allows a copy to be marked Borrowed by hand.
    """

    def __init__(self, db: Session):
        self.db = db

    def _query(self):
        return self.db.query(models.Book).order_by(models.Book.title, models.Book.id)

    def create(self, data: dict) -> models.Book:
        code = data["book_code"]
        if self.code_exists(code):
            raise DuplicateCode(f"Book code {code} already exists")
        _check_price(data.get("price"))

        status = BookStatus.from_string(data.get("status"))
        if status == BookStatus.BORROWED:
            raise InvalidState("A new book cannot be created as Borrowed")

        fields = {key: data[key] for key in EDITABLE_FIELDS if key in data}
        book = models.Book(book_code=code, status=status, **fields)
        with atomic(self.db):
            self.db.add(book)
        self.db.refresh(book)
        logger.info("Book added | id=%s code=%s", book.id, book.book_code)
        return book

    def update(self, book_id: int, changes: dict) -> models.Book:
        book = self.get_by_id(book_id)

        if "book_code" in changes and changes["book_code"] != book.book_code:
            raise InvalidState("Book code cannot be changed after creation")
        _check_required(changes)
        _check_price(changes.get("price"))

        with atomic(self.db):
            for key in EDITABLE_FIELDS:
                if key in changes:
                    setattr(book, key, changes[key])
        self.db.refresh(book)
        logger.info("Book updated | id=%s", book.id)
        return book

    def delete(self, book_id: int) -> None:
        book = self.get_by_id(book_id)
        referenced = (
            self.db.query(models.Transaction.id)
            .filter(models.Transaction.book_id == book_id)
            .first()
        )
        if referenced:
            raise ReferencedEntity(
                f"Book {book.book_code} has transaction history and cannot be deleted"
            )
        code = book.book_code
        with atomic(self.db):
            self.db.delete(book)
        logger.info("Book deleted | id=%s code=%s", book_id, code)

    def get_by_id(self, book_id: int) -> models.Book:
        book = self.db.get(models.Book, book_id)
        if book is None:
            raise BookNotFound(f"Book with id {book_id} not found")
        return book

    def get_by_code(self, book_code: str) -> models.Book:
        book = (
            self.db.query(models.Book)
            .filter(models.Book.book_code == book_code)
            .first()
        )
        if book is None:
            raise BookNotFound(f"Book with code {book_code} not found")
        return book

    def list_all(self) -> List[models.Book]:
        return self._query().all()

    def search(self, term: str) -> List[models.Book]:
        term = (term or "").strip()
        if not term:
            return self.list_all()
        pattern = f"%{term}%"
        return (
            self._query()
            .filter(
                or_(
                    models.Book.title.ilike(pattern),
                    models.Book.author.ilike(pattern),
                    models.Book.book_code.ilike(pattern),
                    models.Book.isbn.ilike(pattern),
                )
            )
            .all()
        )

    def filter_by_status(self, status) -> List[models.Book]:
        status = BookStatus.from_string(status)
        return self._query().filter(models.Book.status == status).all()

    def filter_by_grade(self, grade: str) -> List[models.Book]:
        return self._query().filter(models.Book.grade == grade).all()

    def filter_by_subject(self, subject: str) -> List[models.Book]:
        return self._query().filter(models.Book.subject == subject).all()

    def code_exists(self, book_code: str) -> bool:
        return (
            self.db.query(models.Book.id)
            .filter(models.Book.book_code == book_code)
            .first()
            is not None
        )

    def count_by_isbn(self, isbn: str) -> int:
        return self.db.query(models.Book).filter(models.Book.isbn == isbn).count()

    def count_by_status(self) -> Dict[BookStatus, int]:
        counts = {status: 0 for status in BookStatus}
        rows = (
            self.db.query(models.Book.status, func.count(models.Book.id))
            .group_by(models.Book.status)
            .all()
        )
        for status, count in rows:
            counts[BookStatus.from_string(status)] += count
        return counts

    def apply_status(self, book: models.Book, status: BookStatus) -> None:
        """Stage a status change inside the caller's unit of work (no commit)."""
        book.status = status

    def set_status(self, book_id: int, status, override: bool = False) -> models.Book:
        """
        Manually correct a book's status.

        Borrowed can only be reached through a borrow, and a Lost copy only
        goes back to Available with an administrative override.
        """
        book = self.get_by_id(book_id)
        status = BookStatus.from_string(status)

        if status == book.status:
            return book
        if status == BookStatus.BORROWED:
            raise InvalidState("Books can only become Borrowed through a borrow transaction")
        if book.status == BookStatus.BORROWED:
            raise InvalidState(
                "Book is out on an active loan; return it or mark it lost instead"
            )
        if book.status == BookStatus.LOST and status == BookStatus.AVAILABLE and not override:
            raise InvalidState("A lost book can only be made available with an administrative override")

        with atomic(self.db):
            self.apply_status(book, status)
        self.db.refresh(book)
        logger.warning(
            "Manual status change | book=%s status=%s override=%s",
            book.book_code,
            status.value,
            override,
        )
        return book
