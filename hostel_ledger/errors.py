class LedgerError(Exception):
    """Base class for every rejected engine operation."""

    default_message = "Operation failed"

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class NotFoundError(LedgerError):
    """Raised when a room, book, loan or feedback item does not exist."""


class CapacityError(LedgerError):
    """Raised when a bounded resource has no room left."""


class InvalidStateTransition(LedgerError):
    """Raised when the record is not in a state that allows the operation."""


class ValidationError(LedgerError):
    """Raised when input is rejected before any mutation is attempted."""


class DependencyError(LedgerError):
    """Raised when an external collaborator (notification gateway) fails."""


# Not found
class RoomNotFound(NotFoundError):
    default_message = "Room not found"


class BookNotFound(NotFoundError):
    default_message = "Book not found"


class LoanNotFound(NotFoundError):
    default_message = "Loan not found"


class FeedbackNotFound(NotFoundError):
    default_message = "Feedback not found"


# Capacity
class RoomFull(CapacityError):
    default_message = "Room is at full capacity"


class NoCopiesAvailable(CapacityError):
    default_message = "No copies available"


class LoanLimitExceeded(CapacityError):
    default_message = "Student already holds the maximum number of books"


# State
class LoanNotActive(InvalidStateTransition):
    default_message = "Loan is not active"


class LoanNotLost(InvalidStateTransition):
    default_message = "Only lost books can be recovered"


class RoomNotEmpty(InvalidStateTransition):
    default_message = "Room still has occupants"


class AlreadyAssigned(InvalidStateTransition):
    default_message = "Student is already assigned to a room"


class NotAssigned(InvalidStateTransition):
    default_message = "Student is not assigned to this room"


class BookInCirculation(InvalidStateTransition):
    default_message = "Book has loan history and cannot be deleted"


# Validation
class DuplicateRoom(ValidationError):
    default_message = "Room number already exists"


class DuplicateBookId(ValidationError):
    default_message = "Book id already exists"


class InvalidCapacity(ValidationError):
    default_message = "Capacity must be a positive integer"


class InvalidRoomNumber(ValidationError):
    default_message = "Room number must be a positive integer"


class InvalidCopies(ValidationError):
    default_message = "Total copies must be a positive integer"


class InvalidPrice(ValidationError):
    default_message = "Price must be a non-negative amount"


class MissingField(ValidationError):
    default_message = "Required field is missing"


class InvalidPurpose(ValidationError):
    default_message = "Unknown room purpose"


class InvalidRating(ValidationError):
    default_message = "Rating must be between 1 and 5"


class EmptyComment(ValidationError):
    default_message = "Comment cannot be empty"


class EmptyResponse(ValidationError):
    default_message = "Response cannot be empty"


class InvalidCategory(ValidationError):
    default_message = "Unknown feedback category"


class InvalidPriority(ValidationError):
    default_message = "Unknown priority"


class MissingStudent(ValidationError):
    default_message = "Student id is required"


class InvalidRole(ValidationError):
    default_message = "Unknown role"


# Mapping of error kinds to HTTP status codes
ERROR_STATUS = {
    NotFoundError: 404,
    CapacityError: 409,
    InvalidStateTransition: 409,
    ValidationError: 400,
    DependencyError: 502,
}


def status_for(exc):
    for kind in type(exc).__mro__:
        if kind in ERROR_STATUS:
            return ERROR_STATUS[kind]
    return 500
