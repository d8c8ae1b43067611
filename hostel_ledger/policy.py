from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum

# Circulation rules
LOAN_PERIOD_DAYS = 15
FINE_PER_DAY = Decimal("5.00")
MAX_ACTIVE_LOANS = 3

CENTS = Decimal("0.01")


class LoanStatus(str, Enum):
    ISSUED = "issued"
    OVERDUE = "overdue"
    RETURNED = "returned"
    LOST = "lost"
    RECOVERED = "recovered"


ACTIVE_STATUSES = (LoanStatus.ISSUED.value, LoanStatus.OVERDUE.value)


def utcnow():
    """Naive UTC timestamp, the form stored in the database."""
    return datetime.utcnow()


def as_datetime(value=None):
    """Timestamp for a transition; bare dates mean the start of that day."""
    if value is None:
        return utcnow()
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def _as_date(value):
    if isinstance(value, datetime):
        return value.date()
    return value


def due_date_for(issue_date):
    return _as_date(issue_date) + timedelta(days=LOAN_PERIOD_DAYS)


def days_between(start, end):
    return (_as_date(end) - _as_date(start)).days


def compute_fine(due_date, effective_end):
    """Fine for every day strictly after ``due_date`` up to ``effective_end``."""
    days = max(0, days_between(due_date, effective_end))
    return (FINE_PER_DAY * days).quantize(CENTS)


def is_active(status):
    return status in ACTIVE_STATUSES


def derive_status(loan, now=None):
    """Return the loan's status as of ``now``.

    Active loans resolve to ``overdue`` once the current day is past the due
    date, whatever the stored bookkeeping value says.
    """
    if not is_active(loan.status):
        return loan.status
    now = now or utcnow()
    if _as_date(now) > loan.due_date:
        return LoanStatus.OVERDUE.value
    return LoanStatus.ISSUED.value


def effective_end(loan, now=None):
    if loan.actual_return_date is not None:
        return loan.actual_return_date
    if loan.lost_at is not None:
        return loan.lost_at
    return now or utcnow()


def days_overdue(loan, now=None):
    return max(0, days_between(loan.due_date, effective_end(loan, now)))


def current_fine(loan, now=None):
    """Fine as it stands: accruing for active loans, recorded otherwise."""
    if is_active(loan.status):
        return compute_fine(loan.due_date, effective_end(loan, now))
    return Decimal(loan.fine or 0).quantize(CENTS)


def as_date(value):
    if isinstance(value, date):
        return _as_date(value)
    return date.fromisoformat(str(value))
