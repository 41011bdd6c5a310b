"""Role-based permission checks.

Everything here is a pure function of the session's role.  The services in
this package never check permissions themselves; entry points (the API
routes) call these predicates before invoking a mutating operation.

Role matrix::

    capability               Admin  Librarian  Finance
    manage users               x
    manage books               x        x
    manage learners            x        x
    manage transactions        x        x
    process payments           x                  x
"""

from dataclasses import dataclass
from typing import Optional

from schoollib.models import Role


@dataclass(frozen=True)
class SessionContext:
    """The authenticated staff member behind a request."""

    user_id: int
    username: str
    role: Role

    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def is_librarian_or_admin(self) -> bool:
        return self.role in (Role.ADMIN, Role.LIBRARIAN)

    def is_finance_or_admin(self) -> bool:
        return self.role in (Role.ADMIN, Role.FINANCE)

    def can_manage_users(self) -> bool:
        return self.is_admin()

    def can_manage_books(self) -> bool:
        return self.is_librarian_or_admin()

    def can_manage_learners(self) -> bool:
        return self.is_librarian_or_admin()

    def can_manage_transactions(self) -> bool:
        return self.is_librarian_or_admin()

    def can_process_payments(self) -> bool:
        return self.is_finance_or_admin()


# Module-level forms accept a missing session, which is never permitted.

def is_admin(session: Optional[SessionContext]) -> bool:
    return session is not None and session.is_admin()


def is_librarian_or_admin(session: Optional[SessionContext]) -> bool:
    return session is not None and session.is_librarian_or_admin()


def is_finance_or_admin(session: Optional[SessionContext]) -> bool:
    return session is not None and session.is_finance_or_admin()


def can_manage_users(session: Optional[SessionContext]) -> bool:
    return session is not None and session.can_manage_users()


def can_manage_books(session: Optional[SessionContext]) -> bool:
    return session is not None and session.can_manage_books()


def can_manage_learners(session: Optional[SessionContext]) -> bool:
    return session is not None and session.can_manage_learners()


def can_manage_transactions(session: Optional[SessionContext]) -> bool:
    return session is not None and session.can_manage_transactions()


def can_process_payments(session: Optional[SessionContext]) -> bool:
    return session is not None and session.can_process_payments()
