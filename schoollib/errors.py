"""Typed failures raised by the library services.

Every error carries a human-readable ``reason`` and the HTTP status code the
API layer answers with.  Callers catch the broad kinds (``NotFound``,
``Conflict``, ``InvalidState``, ``IneligibleOperation``, ``EmptyInput``);
the concrete subclasses name the specific rule that was violated.
"""

from fastapi import status


class LibraryError(Exception):
    """Base class for all library failures."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class NotFound(LibraryError):
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(LibraryError):
    """A unique key is already taken or the entity is still referenced."""


class InvalidState(LibraryError):
    """The entity is not in the state the operation requires."""


class IneligibleOperation(LibraryError):
    """A business rule vetoes the operation."""


class EmptyInput(LibraryError):
    pass


class ValidationFailed(LibraryError):
    status_code = status.HTTP_422_UNPROCESSABLE_CONTENT


class InvalidCredentials(LibraryError):
    status_code = status.HTTP_401_UNAUTHORIZED


class BookNotFound(NotFound):
    pass


class LearnerNotFound(NotFound):
    pass


class UserNotFound(NotFound):
    pass


class PaymentNotFound(NotFound):
    pass


class TransactionNotFound(NotFound):
    pass


class TransactionNotActive(TransactionNotFound, InvalidState):
    """The transaction exists but is no longer Active."""

    status_code = status.HTTP_400_BAD_REQUEST


class TransactionNotPayable(InvalidState):
    pass


class DuplicateCode(Conflict):
    pass


class DuplicateReceipt(Conflict):
    pass


class DuplicateUsername(Conflict):
    pass


class DuplicateEmail(Conflict):
    pass


class ReferencedEntity(Conflict):
    pass


class LearnerIneligible(IneligibleOperation):
    pass


class BookUnavailable(IneligibleOperation):
    pass


class EmptySelection(EmptyInput):
    pass
