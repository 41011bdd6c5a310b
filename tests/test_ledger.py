from schoollib import models
from schoollib.errors import (
    DuplicateReceipt,
    EmptyInput,
    EmptySelection,
    LearnerNotFound,
    NotFound,
    PaymentNotFound,
    TransactionNotFound,
    TransactionNotPayable,
)
from schoollib.ledger import LiabilityLedger
from schoollib.lending import LendingEngine
from schoollib.models import TransactionStatus

from datetime import date, datetime
from decimal import Decimal

import pytest


TODAY = date(2024, 6, 1)
NOW = datetime(2024, 6, 1, 10, 30, 0)


@pytest.fixture
def lending(db):
    return LendingEngine(db, clock=lambda: TODAY)


@pytest.fixture
def ledger(db):
    return LiabilityLedger(db, clock=lambda: NOW)


@pytest.fixture
def lost_loan(lending, make_book, make_learner):
    """A learner who has lost a book priced 150.00."""
    learner = make_learner()
    book = make_book(price="150.00")
    transaction = lending.borrow(learner.id, book.id, date(2024, 1, 10))
    lending.mark_lost(transaction.id)
    return learner, book, transaction


def test_lost_book_scenario(db, ledger, lost_loan, finance_user):
    """
    A lost book priced 150.00 is owed until it is paid for.

    Verifies:
    - Before payment the fees are 150.00
    - The payment holds one 150.00 item and the loan becomes Paid
    - Afterwards the loan counts towards neither amount
    """
    learner, book, transaction = lost_loan
    assert ledger.total_outstanding_fees(learner.id) == Decimal("150.00")
    assert ledger.outstanding_amount(learner.id) == Decimal("150.00")

    payment = ledger.process_payment(learner.id, [transaction.id], finance_user.id)

    assert payment.amount == Decimal("150.00")
    assert payment.receipt_no == "RCP-20240601-103000"
    assert payment.payment_date == NOW
    assert [(item.transaction_id, item.book_id, item.amount) for item in payment.items] == [
        (transaction.id, book.id, Decimal("150.00"))
    ]
    db.refresh(transaction)
    assert transaction.status == TransactionStatus.PAID
    assert transaction.notes == "Payment processed - Receipt: RCP-20240601-103000"
    assert ledger.total_outstanding_fees(learner.id) == Decimal("0.00")
    assert ledger.outstanding_amount(learner.id) == Decimal("0.00")
    assert ledger.unpaid_lost_transactions(learner.id) == []


def test_outstanding_amount_counts_active_and_lost(lending, ledger, make_book, make_learner):
    learner = make_learner()
    lending.borrow(learner.id, make_book(price="80.50").id, date(2024, 2, 1))
    lost = lending.borrow(learner.id, make_book(price="120.00").id, date(2024, 2, 1))
    returned = lending.borrow(learner.id, make_book(price="999.99").id, date(2024, 2, 1))
    lending.mark_lost(lost.id)
    lending.return_book(returned.id)

    assert ledger.outstanding_amount(learner.id) == Decimal("200.50")
    assert ledger.total_outstanding_fees(learner.id) == Decimal("120.00")


def test_amounts_for_learner_without_loans(ledger, make_learner):
    learner = make_learner()
    assert ledger.outstanding_amount(learner.id) == Decimal("0.00")
    assert ledger.total_outstanding_fees(learner.id) == Decimal("0.00")


def test_empty_selection_is_refused(db, ledger, lost_loan, finance_user):
    learner, _, _ = lost_loan

    with pytest.raises(EmptyInput) as exc_info:
        ledger.process_payment(learner.id, [], finance_user.id)

    assert isinstance(exc_info.value, EmptySelection)
    assert exc_info.value.reason == "No transactions selected for payment"
    assert db.query(models.Payment).count() == 0


def test_payment_settles_every_selected_loan(
    db, lending, ledger, make_book, make_learner, finance_user
):
    learner = make_learner()
    ids = []
    for price in ("150.00", "75.25"):
        transaction = lending.borrow(learner.id, make_book(price=price).id, date(2024, 1, 10))
        lending.mark_lost(transaction.id)
        ids.append(transaction.id)

    payment = ledger.process_payment(learner.id, ids, finance_user.id, notes="Cash")

    assert payment.amount == Decimal("225.25")
    assert payment.notes == "Cash"
    assert sorted(item.transaction_id for item in ledger.payment_items(payment.id)) == sorted(ids)
    for transaction_id in ids:
        assert db.get(models.Transaction, transaction_id).status == TransactionStatus.PAID


def test_one_invalid_id_rolls_back_everything(db, ledger, lost_loan, finance_user):
    """
    Settlement is all or nothing.

    Internal Working:
    1. The first id is a valid lost loan and gets settled in the session
    2. The second id does not exist
    3. The whole payment is rolled back

    Verifies:
    - No payment and no payment items remain
    - The valid loan is still Lost
    """
    learner, _, transaction = lost_loan

    with pytest.raises(NotFound) as exc_info:
        ledger.process_payment(learner.id, [transaction.id, 9999], finance_user.id)

    assert isinstance(exc_info.value, TransactionNotFound)
    assert db.query(models.Payment).count() == 0
    assert db.query(models.PaymentItem).count() == 0
    assert db.get(models.Transaction, transaction.id).status == TransactionStatus.LOST
    assert ledger.total_outstanding_fees(learner.id) == Decimal("150.00")


def test_only_lost_loans_are_payable(db, lending, ledger, make_book, make_learner, finance_user):
    learner = make_learner()
    active = lending.borrow(learner.id, make_book().id, date(2024, 1, 10))

    with pytest.raises(TransactionNotPayable) as exc_info:
        ledger.process_payment(learner.id, [active.id], finance_user.id)

    assert "not a lost book" in exc_info.value.reason
    assert db.get(models.Transaction, active.id).status == TransactionStatus.ACTIVE
    assert db.query(models.Payment).count() == 0


def test_paid_loan_cannot_be_paid_again(ledger, lost_loan, finance_user):
    learner, _, transaction = lost_loan
    ledger.process_payment(learner.id, [transaction.id], finance_user.id)

    with pytest.raises(TransactionNotPayable):
        ledger.process_payment(learner.id, [transaction.id], finance_user.id)


def test_other_learners_loan_is_not_payable(ledger, lost_loan, make_learner, finance_user):
    _, _, transaction = lost_loan
    stranger = make_learner(name="Other")

    with pytest.raises(TransactionNotPayable):
        ledger.process_payment(stranger.id, [transaction.id], finance_user.id)


def test_duplicate_ids_are_refused(ledger, lost_loan, finance_user):
    learner, _, transaction = lost_loan
    with pytest.raises(TransactionNotPayable):
        ledger.process_payment(learner.id, [transaction.id, transaction.id], finance_user.id)


def test_unknown_learner(ledger, lost_loan, finance_user):
    _, _, transaction = lost_loan
    with pytest.raises(LearnerNotFound):
        ledger.process_payment(999, [transaction.id], finance_user.id)


def test_item_amount_is_a_price_snapshot(db, ledger, lost_loan, finance_user):
    learner, book, transaction = lost_loan
    payment = ledger.process_payment(learner.id, [transaction.id], finance_user.id)

    book.price = Decimal("300.00")
    db.commit()

    assert ledger.payment_items(payment.id)[0].amount == Decimal("150.00")
    assert ledger.get_payment(payment.id).amount == Decimal("150.00")


def test_supplied_amount_is_recorded(ledger, lost_loan, finance_user):
    learner, _, transaction = lost_loan
    payment = ledger.process_payment(
        learner.id, [transaction.id], finance_user.id, amount=Decimal("140.00")
    )
    assert payment.amount == Decimal("140.00")
    assert payment.items[0].amount == Decimal("150.00")


def test_receipt_numbers_are_unique(lending, ledger, make_book, make_learner, finance_user):
    learner = make_learner()
    receipts = []
    for _ in range(3):
        transaction = lending.borrow(learner.id, make_book().id, date(2024, 1, 10))
        lending.mark_lost(transaction.id)
        receipts.append(
            ledger.process_payment(learner.id, [transaction.id], finance_user.id).receipt_no
        )

    assert receipts == [
        "RCP-20240601-103000",
        "RCP-20240601-103000-2",
        "RCP-20240601-103000-3",
    ]


def test_supplied_receipt_must_be_unused(lending, ledger, make_book, make_learner, finance_user):
    learner = make_learner()
    first = lending.borrow(learner.id, make_book().id, date(2024, 1, 10))
    second = lending.borrow(learner.id, make_book().id, date(2024, 1, 10))
    lending.mark_lost(first.id)
    lending.mark_lost(second.id)
    ledger.process_payment(learner.id, [first.id], finance_user.id, receipt_no="R-1")

    with pytest.raises(DuplicateReceipt):
        ledger.process_payment(learner.id, [second.id], finance_user.id, receipt_no="R-1")


def test_payment_lookups(ledger, lost_loan, finance_user):
    learner, _, transaction = lost_loan
    payment = ledger.process_payment(learner.id, [transaction.id], finance_user.id)

    assert ledger.get_by_receipt(payment.receipt_no).id == payment.id
    assert [p.id for p in ledger.payments_by_learner(learner.id)] == [payment.id]
    with pytest.raises(PaymentNotFound):
        ledger.get_payment(999)
    with pytest.raises(PaymentNotFound):
        ledger.get_by_receipt("RCP-missing")
