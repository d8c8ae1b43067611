from flask_sqlalchemy import SQLAlchemy
from datetime import datetime

from .policy import LoanStatus, current_fine, days_overdue, derive_status

db = SQLAlchemy()

REGULAR = "Regular"
ROOM_PURPOSES = (
    REGULAR,
    "Cooking Staff Room",
    "Digital Lab 1",
    "Digital Lab 2",
    "Study Room",
    "Common Room",
    "Storage Room",
    "Maintenance Room",
)

FEEDBACK_CATEGORIES = {
    "hostel": "Hostel Facilities",
    "food": "Food & Canteen",
    "cleanliness": "Cleanliness",
    "staff": "Staff Behavior",
    "internet": "Internet Connectivity",
    "security": "Security",
    "other": "Other",
}
PRIORITIES = ("low", "medium", "high", "urgent")


def _iso(value):
    return value.isoformat() if value is not None else None


def _money(value):
    return float(value) if value is not None else 0.0


class Room(db.Model):
    number = db.Column(db.Integer, primary_key=True, autoincrement=False)
    capacity = db.Column(db.Integer, nullable=False)
    purpose = db.Column(db.String(50), nullable=False, default=REGULAR)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    occupants = db.relationship(
        "RoomOccupant",
        backref="room",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="RoomOccupant.student_id",
    )

    @property
    def special_purpose(self):
        return self.purpose != REGULAR

    @property
    def occupant_ids(self):
        return [o.student_id for o in self.occupants]

    @property
    def is_full(self):
        return len(self.occupants) >= self.capacity

    def to_dict(self):
        return {
            "number": self.number,
            "capacity": self.capacity,
            "purpose": self.purpose,
            "specialPurpose": self.special_purpose,
            "occupantIds": self.occupant_ids,
            "occupancy": len(self.occupants),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


class RoomOccupant(db.Model):
    # primary key on student_id: a student sits in at most one room
    student_id = db.Column(db.String(64), primary_key=True)
    room_number = db.Column(db.Integer, db.ForeignKey("room.number"), nullable=False)
    assigned_at = db.Column(db.DateTime, default=datetime.utcnow)


class Book(db.Model):
    book_id = db.Column(db.String(64), primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    author = db.Column(db.String(255))
    price = db.Column(db.Numeric(10, 2), default=0)
    total_copies = db.Column(db.Integer, nullable=False, default=1)
    available_copies = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            "bookId": self.book_id,
            "title": self.title,
            "author": self.author,
            "price": _money(self.price),
            "totalCopies": self.total_copies,
            "availableCopies": self.available_copies,
        }


class Loan(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    book_id = db.Column(db.String(64), db.ForeignKey("book.book_id"), nullable=False, index=True)
    student_id = db.Column(db.String(64), nullable=False, index=True)
    issue_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=False)
    actual_return_date = db.Column(db.DateTime)
    status = db.Column(db.String(16), nullable=False, default=LoanStatus.ISSUED.value, index=True)
    fine = db.Column(db.Numeric(10, 2), default=0)
    replacement_charge = db.Column(db.Numeric(10, 2), default=0)
    reminder_sent_at = db.Column(db.DateTime)
    lost_at = db.Column(db.DateTime)
    recovered_at = db.Column(db.DateTime)

    book = db.relationship("Book", lazy=True)

    def to_dict(self, now=None):
        return {
            "loanId": self.id,
            "bookId": self.book_id,
            "bookTitle": self.book.title if self.book is not None else None,
            "studentId": self.student_id,
            "issueDate": _iso(self.issue_date),
            "dueDate": _iso(self.due_date),
            "actualReturnDate": _iso(self.actual_return_date),
            "status": derive_status(self, now),
            "daysOverdue": days_overdue(self, now),
            "fine": _money(current_fine(self, now)),
            "replacementCharge": _money(self.replacement_charge),
            "reminderSentAt": _iso(self.reminder_sent_at),
            "lostAt": _iso(self.lost_at),
            "recoveredAt": _iso(self.recovered_at),
        }


class Feedback(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.String(64), index=True)
    category = db.Column(db.String(20), nullable=False)
    rating = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text, nullable=False)
    anonymous = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    response = db.Column(db.Text)
    priority = db.Column(db.String(10), nullable=False, default="medium")
    is_resolved = db.Column(db.Boolean, nullable=False, default=False)
    responded_at = db.Column(db.DateTime)
    resolved_at = db.Column(db.DateTime)

    @property
    def status(self):
        if self.is_resolved:
            return "resolved"
        if self.response:
            return "responded"
        return "pending"

    def to_dict(self, reveal_student=False):
        hide = self.anonymous and not reveal_student
        return {
            "feedbackId": self.id,
            "studentId": None if hide else self.student_id,
            "category": self.category,
            "categoryLabel": FEEDBACK_CATEGORIES.get(self.category, self.category),
            "rating": self.rating,
            "comment": self.comment,
            "anonymous": bool(self.anonymous),
            "createdAt": _iso(self.created_at),
            "response": self.response,
            "priority": self.priority,
            "isResolved": bool(self.is_resolved),
            "status": self.status,
            "respondedAt": _iso(self.responded_at),
            "resolvedAt": _iso(self.resolved_at),
        }
