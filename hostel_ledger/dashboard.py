from . import circulation, feedback, rooms
from .errors import InvalidRole, MissingStudent
from .policy import utcnow

ROLES = ("admin", "warden", "student")


def _admin(now, student_id=None):
    return {
        "rooms": rooms.occupancy_summary(),
        "library": circulation.circulation_summary(now),
        "feedback": feedback.feedback_stats(),
        "nextRoomNumber": rooms.next_available_room_number(),
    }


def _warden(now, student_id=None):
    stats = feedback.feedback_stats()
    return {
        "rooms": rooms.occupancy_summary(),
        "library": circulation.circulation_summary(now),
        "overdue": [l.to_dict(now) for l in circulation.list_overdue(now)],
        "feedback": {"total": stats["total"], "byStatus": stats["byStatus"]},
    }


def _student(now, student_id=None):
    if not student_id:
        raise MissingStudent()
    room = rooms.room_for_student(student_id)
    return {
        "room": room.to_dict() if room is not None else None,
        "roommates": rooms.roommates(student_id),
        "loans": [l.to_dict(now) for l in circulation.loans_for_student(student_id)],
        "feedback": [
            f.to_dict(reveal_student=True) for f in feedback.feedback_for_student(student_id)
        ],
    }


_VIEWS = {"admin": _admin, "warden": _warden, "student": _student}


def summary_for(role, student_id=None, now=None):
    view = _VIEWS.get(role)
    if view is None:
        raise InvalidRole(f"Unknown role: {role}")
    return view(now or utcnow(), student_id)
