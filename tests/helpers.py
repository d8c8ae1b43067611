from datetime import date, datetime

from hostel_ledger.models import Book, Loan
from hostel_ledger.policy import ACTIVE_STATUSES

ISSUED_ON = date(2024, 1, 1)


def at(year, month, day, hour=10):
    return datetime(year, month, day, hour)


def assert_copies_conserved():
    for book in Book.query.all():
        active = Loan.query.filter(
            Loan.book_id == book.book_id, Loan.status.in_(ACTIVE_STATUSES)
        ).count()
        assert 0 <= book.available_copies <= book.total_copies
        assert book.available_copies + active == book.total_copies
