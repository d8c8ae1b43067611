from .errors import (
    EmptyComment,
    EmptyResponse,
    FeedbackNotFound,
    InvalidCategory,
    InvalidPriority,
    InvalidRating,
    MissingStudent,
)
from .locks import ledger_locks
from .logger import logger
from .models import FEEDBACK_CATEGORIES, PRIORITIES, Feedback, db
from .policy import utcnow

STATUSES = ("pending", "responded", "resolved")


def _rating(value):
    if isinstance(value, bool):
        raise InvalidRating()
    try:
        rating = int(value)
    except (TypeError, ValueError):
        raise InvalidRating() from None
    if rating != float(value) or not 1 <= rating <= 5:
        raise InvalidRating()
    return rating


def _load(feedback_id, lock=False):
    item = db.session.get(Feedback, feedback_id, populate_existing=lock, with_for_update=lock)
    if item is None:
        raise FeedbackNotFound(f"Feedback {feedback_id} not found")
    return item


def submit_feedback(student_id, category, rating, comment, anonymous=False):
    rating = _rating(rating)
    if category not in FEEDBACK_CATEGORIES:
        raise InvalidCategory(f"Unknown feedback category: {category}")
    comment = (comment or "").strip()
    if not comment:
        raise EmptyComment()
    student_id = str(student_id).strip() if student_id is not None else None
    if not student_id and not anonymous:
        raise MissingStudent("Student id is required for non-anonymous feedback")

    item = Feedback(
        student_id=student_id or None,
        category=category,
        rating=rating,
        comment=comment,
        anonymous=bool(anonymous),
        priority="medium",
        is_resolved=False,
    )
    db.session.add(item)
    db.session.commit()

    logger.info("feedback %s submitted (%s, rating %s)", item.id, category, rating)
    return item


def respond(feedback_id, response_text, priority="medium", is_resolved=False, now=None):
    response_text = (response_text or "").strip()
    if not response_text:
        raise EmptyResponse()
    priority = priority or "medium"
    if priority not in PRIORITIES:
        raise InvalidPriority(f"Unknown priority: {priority}")
    now = now or utcnow()

    with ledger_locks.hold(("feedback", feedback_id)):
        item = _load(feedback_id, lock=True)
        item.response = response_text
        item.priority = priority
        item.responded_at = now
        item.is_resolved = bool(is_resolved)
        item.resolved_at = now if is_resolved else None
        db.session.commit()

    logger.info("feedback %s responded (priority=%s, resolved=%s)", feedback_id, priority, bool(is_resolved))
    return item


def toggle_resolved(feedback_id, is_resolved, now=None):
    now = now or utcnow()

    with ledger_locks.hold(("feedback", feedback_id)):
        item = _load(feedback_id, lock=True)
        if item.is_resolved != bool(is_resolved):
            item.is_resolved = bool(is_resolved)
            item.resolved_at = now if is_resolved else None
        db.session.commit()

    logger.info("feedback %s marked %s", feedback_id, "resolved" if is_resolved else "unresolved")
    return item


def get_feedback(feedback_id):
    return _load(feedback_id)


def _matches(item, term):
    haystack = [
        item.comment,
        FEEDBACK_CATEGORIES.get(item.category, item.category),
        item.response or "",
    ]
    if not item.anonymous and item.student_id:
        haystack.append(item.student_id)
    return any(term in text.lower() for text in haystack)


def list_feedback(category=None, status=None, rating=None, search=None):
    query = Feedback.query
    if category:
        query = query.filter(Feedback.category == category)
    if rating:
        try:
            query = query.filter(Feedback.rating == int(rating))
        except (TypeError, ValueError):
            return []
    items = query.order_by(Feedback.created_at.desc(), Feedback.id.desc()).all()

    if status:
        items = [f for f in items if f.status == status]
    if search:
        term = search.strip().lower()
        items = [f for f in items if _matches(f, term)]
    return items


def feedback_for_student(student_id):
    return (
        Feedback.query.filter_by(student_id=str(student_id))
        .order_by(Feedback.created_at.desc(), Feedback.id.desc())
        .all()
    )


def feedback_stats():
    items = Feedback.query.all()
    total = len(items)

    by_status = {s: 0 for s in STATUSES}
    by_priority = {p: 0 for p in PRIORITIES}
    by_category = {c: 0 for c in FEEDBACK_CATEGORIES}
    by_rating = {r: 0 for r in range(1, 6)}
    for f in items:
        by_status[f.status] += 1
        by_priority[f.priority] = by_priority.get(f.priority, 0) + 1
        by_category[f.category] = by_category.get(f.category, 0) + 1
        by_rating[f.rating] = by_rating.get(f.rating, 0) + 1

    average = round(sum(f.rating for f in items) / total, 2) if total else 0.0
    return {
        "total": total,
        "averageRating": average,
        "byStatus": by_status,
        "byPriority": by_priority,
        "byCategory": by_category,
        "byRating": {str(r): n for r, n in by_rating.items()},
    }
