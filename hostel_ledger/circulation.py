from decimal import Decimal, InvalidOperation

from sqlalchemy import or_

from .errors import (
    BookInCirculation,
    BookNotFound,
    DependencyError,
    DuplicateBookId,
    InvalidCopies,
    InvalidPrice,
    LoanLimitExceeded,
    LoanNotActive,
    LoanNotFound,
    LoanNotLost,
    MissingField,
    MissingStudent,
    NoCopiesAvailable,
    ValidationError,
)
from .locks import ledger_locks
from .logger import logger
from .models import Book, Loan, db
from .policy import (
    ACTIVE_STATUSES,
    CENTS,
    MAX_ACTIVE_LOANS,
    LoanStatus,
    as_date,
    as_datetime,
    compute_fine,
    current_fine,
    days_overdue,
    derive_status,
    due_date_for,
    is_active,
    utcnow,
)


def _required(value, name):
    value = (value or "").strip() if isinstance(value, str) else value
    if not value:
        raise MissingField(f"{name} is required")
    return value


def _price(value):
    try:
        price = Decimal(str(value if value is not None else 0))
    except InvalidOperation:
        raise InvalidPrice() from None
    if not price.is_finite() or price < 0:
        raise InvalidPrice()
    return price.quantize(CENTS)


def _copies(value):
    try:
        copies = int(value)
    except (TypeError, ValueError):
        raise InvalidCopies() from None
    if isinstance(value, bool) or copies != float(value) or copies <= 0:
        raise InvalidCopies()
    return copies


def _load_book(book_id, lock=False):
    book = db.session.get(Book, book_id, populate_existing=lock, with_for_update=lock)
    if book is None:
        raise BookNotFound(f"Book {book_id} not found")
    return book


def _load_loan(loan_id, lock=False):
    loan = db.session.get(Loan, loan_id, populate_existing=lock, with_for_update=lock)
    if loan is None:
        raise LoanNotFound(f"Loan {loan_id} not found")
    return loan


def _active_loans(student_id):
    return Loan.query.filter(
        Loan.student_id == student_id, Loan.status.in_(ACTIVE_STATUSES)
    ).count()


# ------------------------------------------------------
# INVENTORY
# ------------------------------------------------------

def list_books(search=None):
    query = Book.query
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Book.title.ilike(pattern),
                Book.author.ilike(pattern),
                Book.book_id.ilike(pattern),
            )
        )
    return query.order_by(Book.title, Book.book_id).all()


def get_book(book_id):
    return _load_book(book_id)


def add_book(title, author, book_id, price, total_copies):
    title = _required(title, "Title")
    book_id = _required(book_id, "Book id")
    price = _price(price)
    total_copies = _copies(total_copies)

    with ledger_locks.hold(("book", book_id)):
        if db.session.get(Book, book_id) is not None:
            raise DuplicateBookId(f"Book id {book_id} already exists")
        book = Book(
            book_id=book_id,
            title=title,
            author=(author or "").strip(),
            price=price,
            total_copies=total_copies,
            available_copies=total_copies,
        )
        db.session.add(book)
        db.session.commit()

    logger.info("book %s added with %s copies", book_id, total_copies)
    return book


def update_book(book_id, title=None, author=None, price=None, total_copies=None):
    if title is not None:
        title = _required(title, "Title")
    if price is not None:
        price = _price(price)
    if total_copies is not None:
        total_copies = _copies(total_copies)

    with ledger_locks.hold(("book", book_id)):
        book = _load_book(book_id, lock=True)
        if total_copies is not None:
            on_loan = book.total_copies - book.available_copies
            if total_copies < on_loan:
                raise InvalidCopies(
                    f"{on_loan} copies are on loan, total cannot drop to {total_copies}"
                )
            book.available_copies += total_copies - book.total_copies
            book.total_copies = total_copies
        if title is not None:
            book.title = title
        if author is not None:
            book.author = author.strip()
        if price is not None:
            book.price = price
        db.session.commit()

    logger.info("book %s updated", book_id)
    return book


def delete_book(book_id):
    with ledger_locks.hold(("book", book_id)):
        book = _load_book(book_id, lock=True)
        if Loan.query.filter_by(book_id=book_id).count():
            raise BookInCirculation(f"Book {book_id} has loan history and cannot be deleted")
        db.session.delete(book)
        db.session.commit()

    logger.info("book %s deleted", book_id)


# ------------------------------------------------------
# CIRCULATION
# ------------------------------------------------------

# available + active loans == total, for every book

def issue_book(book_id, student_id, issue_date=None):
    student_id = str(student_id).strip() if student_id is not None else ""
    if not student_id:
        raise MissingStudent()
    try:
        issue_date = as_date(issue_date) if issue_date else utcnow().date()
    except ValueError:
        raise ValidationError(f"Invalid issue date: {issue_date}") from None

    with ledger_locks.hold(("book", book_id), ("student", student_id)):
        book = _load_book(book_id, lock=True)

        if book.available_copies <= 0:
            raise NoCopiesAvailable(f"No copies of {book.title} are available")

        if _active_loans(student_id) >= MAX_ACTIVE_LOANS:
            raise LoanLimitExceeded(
                f"Student {student_id} already holds {MAX_ACTIVE_LOANS} books"
            )

        book.available_copies -= 1
        loan = Loan(
            book_id=book.book_id,
            student_id=student_id,
            issue_date=issue_date,
            due_date=due_date_for(issue_date),
            status=LoanStatus.ISSUED.value,
            fine=Decimal("0.00"),
        )
        db.session.add(loan)
        db.session.commit()

    logger.info("book %s issued to %s as loan %s", book_id, student_id, loan.id)
    return loan


def _transition(loan_id):
    """Locks for a loan transition: the loan and the book it belongs to."""
    loan = _load_loan(loan_id)
    return ledger_locks.hold(("book", loan.book_id), ("loan", loan.id))


def return_book(loan_id, now=None):
    now = as_datetime(now)

    with _transition(loan_id):
        loan = _load_loan(loan_id, lock=True)
        if not is_active(loan.status):
            raise LoanNotActive(f"Loan {loan_id} is already {loan.status}")
        book = _load_book(loan.book_id, lock=True)

        loan.fine = compute_fine(loan.due_date, now)
        loan.actual_return_date = now
        loan.status = LoanStatus.RETURNED.value
        book.available_copies += 1
        db.session.commit()

    logger.info("loan %s returned, fine %s", loan_id, loan.fine)
    return loan


def mark_lost(loan_id, now=None):
    now = as_datetime(now)

    with _transition(loan_id):
        loan = _load_loan(loan_id, lock=True)
        if not is_active(loan.status):
            raise LoanNotActive(f"Loan {loan_id} is already {loan.status}")
        book = _load_book(loan.book_id, lock=True)

        # overdue clock stops here; the replacement charge is the book's price
        replacement = Decimal(book.price or 0).quantize(CENTS)
        loan.replacement_charge = replacement
        loan.fine = compute_fine(loan.due_date, now) + replacement
        loan.lost_at = now
        loan.status = LoanStatus.LOST.value
        book.total_copies -= 1
        db.session.commit()

    logger.info("loan %s marked lost, fine %s", loan_id, loan.fine)
    return loan


def recover_book(loan_id, now=None):
    now = as_datetime(now)

    with _transition(loan_id):
        loan = _load_loan(loan_id, lock=True)
        if loan.status != LoanStatus.LOST.value:
            raise LoanNotLost(f"Loan {loan_id} is {loan.status}, only lost books can be recovered")
        book = _load_book(loan.book_id, lock=True)

        loan.status = LoanStatus.RECOVERED.value
        loan.recovered_at = now
        book.available_copies += 1
        book.total_copies += 1
        db.session.commit()

    logger.info("loan %s recovered", loan_id)
    return loan


def send_reminder(loan_id, hook, now=None):
    """Record a reminder and hand it to the notification hook.

    The bookkeeping is committed before dispatch; a failing gateway is logged
    and reported back as ``delivered=False`` without failing the call.
    """
    now = as_datetime(now)

    with ledger_locks.hold(("loan", loan_id)):
        loan = _load_loan(loan_id, lock=True)
        if not is_active(loan.status):
            raise LoanNotActive(f"Loan {loan_id} is {loan.status}, no reminder needed")
        loan.reminder_sent_at = now
        db.session.commit()
        payload = loan.to_dict(now)

    try:
        delivered = hook.send_reminder(payload)
    except DependencyError as exc:
        logger.warning("reminder for loan %s not delivered: %s", loan_id, exc.message)
        delivered = False
    return loan, delivered


def sweep_overdue(now=None):
    """Store ``overdue`` on every issued loan past its due date."""
    now = now or utcnow()
    candidates = [
        loan.id
        for loan in Loan.query.filter(
            Loan.status == LoanStatus.ISSUED.value, Loan.due_date < as_date(now)
        )
    ]

    flipped = 0
    for loan_id in candidates:
        with ledger_locks.hold(("loan", loan_id)):
            loan = _load_loan(loan_id, lock=True)
            still_issued = loan.status == LoanStatus.ISSUED.value
            if still_issued and derive_status(loan, now) == LoanStatus.OVERDUE.value:
                loan.status = LoanStatus.OVERDUE.value
                db.session.commit()
                flipped += 1

    if flipped:
        logger.info("overdue sweep flagged %s loan(s)", flipped)
    return flipped


# ------------------------------------------------------
# QUERIES
# ------------------------------------------------------

def get_loan(loan_id):
    return _load_loan(loan_id)


def list_issued():
    return (
        Loan.query.filter(Loan.status.in_(ACTIVE_STATUSES))
        .order_by(Loan.due_date, Loan.id)
        .all()
    )


def list_overdue(now=None):
    now = now or utcnow()
    loans = Loan.query.filter(
        Loan.status.in_(ACTIVE_STATUSES), Loan.due_date < as_date(now)
    ).all()
    loans = [l for l in loans if derive_status(l, now) == LoanStatus.OVERDUE.value]
    return sorted(loans, key=lambda l: (-days_overdue(l, now), l.id))


def loans_for_student(student_id):
    return (
        Loan.query.filter_by(student_id=str(student_id))
        .order_by(Loan.issue_date.desc(), Loan.id.desc())
        .all()
    )


def circulation_summary(now=None):
    now = now or utcnow()
    books = Book.query.all()
    active = list_issued()
    lost = Loan.query.filter_by(status=LoanStatus.LOST.value).count()
    return {
        "titles": len(books),
        "totalCopies": sum(b.total_copies for b in books),
        "availableCopies": sum(b.available_copies for b in books),
        "activeLoans": len(active),
        "overdueLoans": sum(1 for l in active if derive_status(l, now) == LoanStatus.OVERDUE.value),
        "lostLoans": lost,
        "accruedFines": float(sum((current_fine(l, now) for l in active), Decimal("0.00"))),
    }
