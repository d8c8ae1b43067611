from .errors import (
    AlreadyAssigned,
    DuplicateRoom,
    InvalidCapacity,
    InvalidPurpose,
    InvalidRoomNumber,
    MissingStudent,
    NotAssigned,
    RoomFull,
    RoomNotEmpty,
    RoomNotFound,
)
from .locks import ledger_locks
from .logger import logger
from .models import REGULAR, ROOM_PURPOSES, Room, RoomOccupant, db


def _positive_int(value, error):
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise error() from None
    if isinstance(value, bool) or number != float(value) or number <= 0:
        raise error()
    return number


def _student(student_id):
    student_id = str(student_id).strip() if student_id is not None else ""
    if not student_id:
        raise MissingStudent()
    return student_id


def _load(number, lock=False):
    room = db.session.get(Room, number, populate_existing=lock, with_for_update=lock)
    if room is None:
        raise RoomNotFound(f"Room {number} not found")
    return room


def _occupancy(number):
    return RoomOccupant.query.filter_by(room_number=number).count()


def list_rooms():
    return Room.query.order_by(Room.number).all()


def get_room(number):
    return _load(number)


def create_room(number, capacity, purpose=REGULAR):
    number = _positive_int(number, InvalidRoomNumber)
    capacity = _positive_int(capacity, InvalidCapacity)
    purpose = purpose or REGULAR
    if purpose not in ROOM_PURPOSES:
        raise InvalidPurpose(f"Unknown room purpose: {purpose}")

    with ledger_locks.hold(("room", number)):
        if db.session.get(Room, number) is not None:
            raise DuplicateRoom(f"Room {number} already exists")
        room = Room(number=number, capacity=capacity, purpose=purpose)
        db.session.add(room)
        db.session.commit()

    logger.info("room %s created (capacity=%s, purpose=%s)", number, capacity, purpose)
    return room


def update_room(number, capacity=None, purpose=None):
    number = _positive_int(number, InvalidRoomNumber)
    if capacity is not None:
        capacity = _positive_int(capacity, InvalidCapacity)
    if purpose is not None and purpose not in ROOM_PURPOSES:
        raise InvalidPurpose(f"Unknown room purpose: {purpose}")

    with ledger_locks.hold(("room", number)):
        room = _load(number, lock=True)
        if capacity is not None:
            occupied = _occupancy(number)
            if capacity < occupied:
                raise InvalidCapacity(
                    f"Capacity {capacity} is below current occupancy {occupied}"
                )
            room.capacity = capacity
        if purpose is not None:
            room.purpose = purpose
        db.session.commit()

    logger.info("room %s updated", number)
    return room


def assign_student(room_number, student_id):
    room_number = _positive_int(room_number, InvalidRoomNumber)
    student_id = _student(student_id)

    with ledger_locks.hold(("room", room_number), ("student", student_id)):
        room = _load(room_number, lock=True)

        current = RoomOccupant.query.filter_by(student_id=student_id).first()
        if current is not None:
            if current.room_number == room.number:
                raise AlreadyAssigned(f"Student {student_id} is already in room {room.number}")
            raise AlreadyAssigned(
                f"Student {student_id} already occupies room {current.room_number}"
            )

        if _occupancy(room.number) >= room.capacity:
            raise RoomFull(f"Room {room.number} is at full capacity ({room.capacity})")

        db.session.add(RoomOccupant(student_id=student_id, room_number=room.number))
        db.session.commit()

    logger.info("student %s assigned to room %s", student_id, room_number)
    return room


def remove_student(room_number, student_id):
    room_number = _positive_int(room_number, InvalidRoomNumber)
    student_id = _student(student_id)

    with ledger_locks.hold(("room", room_number), ("student", student_id)):
        room = _load(room_number, lock=True)
        occupant = RoomOccupant.query.filter_by(
            student_id=student_id, room_number=room.number
        ).first()
        if occupant is None:
            raise NotAssigned(f"Student {student_id} is not assigned to room {room.number}")
        db.session.delete(occupant)
        db.session.commit()

    logger.info("student %s removed from room %s", student_id, room_number)
    return room


def delete_room(room_number, force=False):
    room_number = _positive_int(room_number, InvalidRoomNumber)

    with ledger_locks.hold(("room", room_number)):
        room = _load(room_number, lock=True)
        occupants = RoomOccupant.query.filter_by(room_number=room.number).all()
        evicted = [o.student_id for o in occupants]
        if occupants and not force:
            raise RoomNotEmpty(
                f"Room {room.number} still has {len(occupants)} occupant(s)"
            )
        for occupant in occupants:
            db.session.delete(occupant)
        db.session.delete(room)
        db.session.commit()

    if evicted:
        logger.info("room %s force-deleted, unassigned %s", room_number, ", ".join(evicted))
    else:
        logger.info("room %s deleted", room_number)


def next_available_room_number():
    """Smallest positive number not yet used, or max + 1 when there is no gap."""
    expected = 1
    for (number,) in db.session.query(Room.number).order_by(Room.number):
        if number > expected:
            break
        expected = number + 1
    return expected


def room_for_student(student_id):
    occupant = RoomOccupant.query.filter_by(student_id=str(student_id)).first()
    if occupant is None:
        return None
    return occupant.room


def roommates(student_id):
    room = room_for_student(student_id)
    if room is None:
        return []
    return [sid for sid in room.occupant_ids if sid != str(student_id)]


def occupancy_summary():
    rooms = list_rooms()
    capacity = sum(r.capacity for r in rooms)
    occupied = sum(len(r.occupants) for r in rooms)
    return {
        "rooms": len(rooms),
        "specialPurposeRooms": sum(1 for r in rooms if r.special_purpose),
        "capacity": capacity,
        "occupied": occupied,
        "vacancies": capacity - occupied,
        "fullRooms": sum(1 for r in rooms if r.is_full),
    }
