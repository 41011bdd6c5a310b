"""Learner registry."""

from typing import List, Optional

from sqlalchemy import String, cast, or_
from sqlalchemy.orm import Session

from schoollib import models
from schoollib.database import atomic
from schoollib.errors import LearnerNotFound, ReferencedEntity, ValidationFailed
from schoollib.lending import LendingEngine
from schoollib.logger import get_logger
from schoollib.models import TransactionStatus


logger = get_logger("roster")

EDITABLE_FIELDS = ("name", "surname", "grade", "date_of_birth", "contact_no")
REQUIRED_FIELDS = ("name", "surname", "grade", "date_of_birth")


class RosterService:
    """
    CRUD over Learner records.

    Eligibility to borrow is not stored here; has_overdue_books() asks the
    lending engine, and the borrow entry point enforces it.
    """

    def __init__(self, db: Session, lending: Optional[LendingEngine] = None):
        self.db = db
        self.lending = lending or LendingEngine(db)

    def _query(self):
        return self.db.query(models.Learner).order_by(
            models.Learner.surname, models.Learner.name, models.Learner.id
        )

    def create(self, data: dict) -> models.Learner:
        learner = models.Learner(**{key: data.get(key) for key in EDITABLE_FIELDS})
        with atomic(self.db):
            self.db.add(learner)
        self.db.refresh(learner)
        logger.info("Learner added | id=%s", learner.id)
        return learner

    def update(self, learner_id: int, changes: dict) -> models.Learner:
        learner = self.get_by_id(learner_id)
        for key in REQUIRED_FIELDS:
            if key in changes and changes[key] is None:
                raise ValidationFailed(f"Learner {key.replace('_', ' ')} cannot be empty")
        with atomic(self.db):
            for key in EDITABLE_FIELDS:
                if key in changes:
                    setattr(learner, key, changes[key])
        self.db.refresh(learner)
        logger.info("Learner updated | id=%s", learner.id)
        return learner

    def delete(self, learner_id: int) -> None:
        learner = self.get_by_id(learner_id)
        referenced = (
            self.db.query(models.Transaction.id)
            .filter(models.Transaction.learner_id == learner_id)
            .first()
        )
        if referenced:
            raise ReferencedEntity(
                f"Learner {learner.full_name} has transaction history and cannot be deleted"
            )
        with atomic(self.db):
            self.db.delete(learner)
        logger.info("Learner deleted | id=%s", learner_id)

    def get_by_id(self, learner_id: int) -> models.Learner:
        learner = self.db.get(models.Learner, learner_id)
        if learner is None:
            raise LearnerNotFound(f"Learner with id {learner_id} not found")
        return learner

    def list_all(self) -> List[models.Learner]:
        return self._query().all()

    def search(self, term: str) -> List[models.Learner]:
        term = (term or "").strip()
        if not term:
            return self.list_all()
        pattern = f"%{term}%"
        return (
            self._query()
            .filter(
                or_(
                    models.Learner.name.ilike(pattern),
                    models.Learner.surname.ilike(pattern),
                    cast(models.Learner.id, String).like(pattern),
                )
            )
            .all()
        )

    def filter_by_grade(self, grade: str) -> List[models.Learner]:
        return self._query().filter(models.Learner.grade == grade).all()

    def count(self) -> int:
        return self.db.query(models.Learner).count()

    def count_active(self) -> int:
        """Learners with at least one Active loan."""
        return (
            self.db.query(models.Transaction.learner_id)
            .filter(models.Transaction.status == TransactionStatus.ACTIVE)
            .distinct()
            .count()
        )

    def has_overdue_books(self, learner_id: int) -> bool:
        return self.lending.has_overdue_books(learner_id)
