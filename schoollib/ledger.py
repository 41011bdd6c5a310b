"""Liability ledger: what learners owe, and settling it with payments.

Two amounts are tracked per learner and must not be confused:

* ``outstanding_amount`` is the value of books currently out of the library
  (Active and Lost loans).
* ``total_outstanding_fees`` is money actually owed as a penalty
  (Lost loans only).

Paid loans count towards neither.
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from schoollib import models
from schoollib.database import atomic
from schoollib.errors import (
    BookNotFound,
    DuplicateReceipt,
    EmptySelection,
    LearnerNotFound,
    PaymentNotFound,
    TransactionNotFound,
    TransactionNotPayable,
)
from schoollib.logger import get_logger
from schoollib.models import TransactionStatus


logger = get_logger("ledger")

CENT = Decimal("0.01")


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT)


class LiabilityLedger:
    """
    Owns Payment and PaymentItem records; the only writer of the
    Lost -> Paid transaction transition.

    Args:
        db: Session the ledger reads and writes through
        clock: Callable returning the current datetime (receipt numbers,
            payment dates)
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = datetime.now):
        self.db = db
        self.clock = clock

    # ---- amounts

    def _price_sum(self, learner_id: int, statuses: Iterable[TransactionStatus]) -> Decimal:
        total = (
            self.db.query(func.sum(models.Book.price))
            .join(models.Transaction, models.Transaction.book_id == models.Book.id)
            .filter(
                models.Transaction.learner_id == learner_id,
                models.Transaction.status.in_(list(statuses)),
            )
            .scalar()
        )
        return _money(total)

    def outstanding_amount(self, learner_id: int) -> Decimal:
        """Value of every book the learner has not brought back (Active or Lost)."""
        return self._price_sum(
            learner_id, (TransactionStatus.ACTIVE, TransactionStatus.LOST)
        )

    def total_outstanding_fees(self, learner_id: int) -> Decimal:
        """Money owed for lost books that have not been paid for yet."""
        return self._price_sum(learner_id, (TransactionStatus.LOST,))

    def unpaid_lost_transactions(self, learner_id: int) -> List[models.Transaction]:
        return (
            self.db.query(models.Transaction)
            .filter(
                models.Transaction.learner_id == learner_id,
                models.Transaction.status == TransactionStatus.LOST,
            )
            .order_by(models.Transaction.created_at.desc(), models.Transaction.id.desc())
            .all()
        )

    # ---- receipts

    def receipt_exists(self, receipt_no: str) -> bool:
        return (
            self.db.query(models.Payment.id)
            .filter(models.Payment.receipt_no == receipt_no)
            .first()
            is not None
        )

    def generate_receipt_no(self) -> str:
        """
        Build a receipt number of the form RCP-YYYYMMDD-HHMMSS.

        Two payments in the same second would share that number, so a
        counter suffix (-2, -3, ...) is appended until it is unused.
        """
        base = self.clock().strftime("RCP-%Y%m%d-%H%M%S")
        receipt_no = base
        counter = 1
        while self.receipt_exists(receipt_no):
            counter += 1
            receipt_no = f"{base}-{counter}"
        return receipt_no

    # ---- settlement

    def process_payment(
        self,
        learner_id: int,
        transaction_ids: List[int],
        processed_by: int,
        amount=None,
        receipt_no: Optional[str] = None,
        notes: str = "",
    ) -> models.Payment:
        """
        Settle lost books for a learner with a single payment.

        Business Logic:
        1. At least one transaction must be selected
        2. A receipt number is generated when none is supplied
        3. The payment header is inserted
        4. For every transaction: it must exist, belong to the learner, be
           Lost and have a book; a PaymentItem snapshots the book's current
           price and the transaction becomes Paid
        5. Any failure rolls back the header, all items and all status
           changes

        The header amount is the caller's total when one is supplied, and the
        sum of the item amounts otherwise.

        Raises:
            EmptySelection, LearnerNotFound, DuplicateReceipt,
            TransactionNotFound, TransactionNotPayable, BookNotFound
        """
        if not transaction_ids:
            raise EmptySelection("No transactions selected for payment")
        if len(set(transaction_ids)) != len(transaction_ids):
            raise TransactionNotPayable("A transaction was selected more than once")

        with atomic(self.db):
            if self.db.get(models.Learner, learner_id) is None:
                raise LearnerNotFound(f"Learner with id {learner_id} not found")

            if receipt_no:
                if self.receipt_exists(receipt_no):
                    raise DuplicateReceipt(f"Receipt {receipt_no} already exists")
            else:
                receipt_no = self.generate_receipt_no()

            payment = models.Payment(
                receipt_no=receipt_no,
                learner_id=learner_id,
                amount=_money(amount),
                processed_by=processed_by,
                payment_date=self.clock(),
                notes=notes,
            )
            self.db.add(payment)
            self.db.flush()

            items_total = Decimal("0.00")
            for transaction_id in transaction_ids:
                item = self._settle(payment, learner_id, transaction_id)
                items_total += item.amount

            if amount is None:
                payment.amount = items_total
            elif _money(amount) != items_total:
                logger.warning(
                    "Payment total differs from settled items | receipt=%s supplied=%s items=%s",
                    receipt_no,
                    _money(amount),
                    items_total,
                )
            self.db.flush()

        self.db.refresh(payment)
        logger.info(
            "Payment processed | receipt=%s learner=%s amount=%s items=%s",
            payment.receipt_no,
            learner_id,
            payment.amount,
            len(transaction_ids),
        )
        return payment

    def _settle(
        self, payment: models.Payment, learner_id: int, transaction_id: int
    ) -> models.PaymentItem:
        transaction = self.db.get(models.Transaction, transaction_id)
        if transaction is None:
            raise TransactionNotFound(f"Transaction with id {transaction_id} not found")
        if transaction.learner_id != learner_id:
            raise TransactionNotPayable(
                f"Transaction {transaction_id} belongs to another learner"
            )
        if transaction.status != TransactionStatus.LOST:
            raise TransactionNotPayable(
                f"Transaction {transaction_id} is not a lost book "
                f"(status: {transaction.status.value})"
            )

        book = self.db.get(models.Book, transaction.book_id)
        if book is None:
            raise BookNotFound(f"Book with id {transaction.book_id} not found")

        item = models.PaymentItem(
            payment_id=payment.id,
            transaction_id=transaction.id,
            book_id=book.id,
            amount=_money(book.price),
        )
        self.db.add(item)

        transaction.status = TransactionStatus.PAID
        transaction.notes = f"Payment processed - Receipt: {payment.receipt_no}"
        self.db.flush()
        return item

    # ---- lookups

    def get_payment(self, payment_id: int) -> models.Payment:
        payment = self.db.get(models.Payment, payment_id)
        if payment is None:
            raise PaymentNotFound(f"Payment with id {payment_id} not found")
        return payment

    def get_by_receipt(self, receipt_no: str) -> models.Payment:
        payment = (
            self.db.query(models.Payment)
            .filter(models.Payment.receipt_no == receipt_no)
            .first()
        )
        if payment is None:
            raise PaymentNotFound(f"Payment with receipt {receipt_no} not found")
        return payment

    def payments_by_learner(self, learner_id: int) -> List[models.Payment]:
        return (
            self.db.query(models.Payment)
            .filter(models.Payment.learner_id == learner_id)
            .order_by(models.Payment.payment_date.desc(), models.Payment.id.desc())
            .all()
        )

    def payment_items(self, payment_id: int) -> List[models.PaymentItem]:
        return (
            self.db.query(models.PaymentItem)
            .filter(models.PaymentItem.payment_id == payment_id)
            .order_by(models.PaymentItem.id)
            .all()
        )
