from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from schoollib import models
from schoollib.catalog import CatalogService
from schoollib.lending import LendingEngine
from schoollib.models import BookStatus
from schoollib.roster import RosterService


def dashboard_stats(db: Session, today: Optional[date] = None) -> dict:
    """Headline counts for the dashboard; overdue is relative to today."""
    today = today or date.today()
    catalog = CatalogService(db)
    lending = LendingEngine(db, catalog, clock=lambda: today)
    roster = RosterService(db, lending)

    by_status = catalog.count_by_status()
    return {
        "total_books": sum(by_status.values()),
        "available_books": by_status[BookStatus.AVAILABLE],
        "borrowed_books": by_status[BookStatus.BORROWED],
        "lost_books": by_status[BookStatus.LOST],
        "total_learners": roster.count(),
        "active_learners": roster.count_active(),
        "total_users": db.query(models.User).count(),
        "overdue_books": lending.count_overdue(),
    }
