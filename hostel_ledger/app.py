import re

import click
from flask import Blueprint, Flask, current_app, jsonify, request
from flask.cli import with_appcontext
from werkzeug.datastructures import MultiDict

from . import circulation, dashboard, feedback, rooms
from .config import Config
from .errors import LedgerError, ValidationError, status_for
from .forms import (
    BookForm,
    BookUpdateForm,
    FeedbackForm,
    IssueForm,
    RespondForm,
    ResolveForm,
    RoomForm,
    RoomUpdateForm,
)
from .logger import logger, set_level
from .models import db
from .notify import NotificationHook

api = Blueprint("api", __name__)


def create_app(config=Config):
    app = Flask(__name__)
    app.config.from_object(config)
    set_level(app.config.get("LOG_LEVEL", "INFO"))

    db.init_app(app)
    app.extensions["notification_hook"] = NotificationHook.from_config(app.config)

    app.register_blueprint(api)
    app.register_error_handler(LedgerError, handle_ledger_error)
    app.cli.add_command(sweep_overdue_command)

    # Auto-create DB tables
    with app.app_context():
        db.create_all()

    return app


def handle_ledger_error(exc):
    status = status_for(exc)
    logger.warning("%s %s rejected: %s (%s)", request.method, request.path, exc.message, type(exc).__name__)
    return jsonify({"success": False, "message": exc.message, "error": type(exc).__name__}), status


# ------------------------------------------------------
# HELPERS
# ------------------------------------------------------

def _snake(name):
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def _body():
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _form(form_cls):
    """Bind a JSON body (camelCase keys) to a form and validate it."""
    data = MultiDict({_snake(k): v for k, v in _body().items() if v is not None})
    form = form_cls(formdata=data)
    if not form.validate():
        problems = "; ".join(
            f"{form[name].label.text}: {', '.join(errors)}" for name, errors in form.errors.items()
        )
        raise ValidationError(problems)
    return form


def _flag(value):
    return str(value).lower() in ("1", "true", "yes")


def ok(data=None, message=None, status=200):
    payload = {"success": True}
    if data is not None:
        payload["data"] = data
    if message is not None:
        payload["message"] = message
    return jsonify(payload), status


def _hook():
    return current_app.extensions["notification_hook"]


# ------------------------------------------------------
# ROOMS
# ------------------------------------------------------

@api.get("/rooms")
def list_rooms():
    return ok([r.to_dict() for r in rooms.list_rooms()])


@api.post("/rooms")
def create_room():
    form = _form(RoomForm)
    number = form.number.data
    if number is None:
        number = rooms.next_available_room_number()
    room = rooms.create_room(number, form.capacity.data, form.purpose.data)
    return ok(room.to_dict(), status=201)


@api.get("/rooms/next-number")
def next_room_number():
    return ok({"number": rooms.next_available_room_number()})


@api.get("/rooms/number/<int:room_number>")
def get_room(room_number):
    return ok(rooms.get_room(room_number).to_dict())


@api.put("/rooms/number/<int:room_number>")
def update_room(room_number):
    form = _form(RoomUpdateForm)
    room = rooms.update_room(room_number, capacity=form.capacity.data, purpose=form.purpose.data or None)
    return ok(room.to_dict())


@api.delete("/rooms/number/<int:room_number>")
def delete_room(room_number):
    rooms.delete_room(room_number, force=_flag(request.args.get("force")))
    return ok(message=f"Room {room_number} deleted")


@api.post("/rooms/number/<int:room_number>/assign/<student_id>")
def assign_student(room_number, student_id):
    room = rooms.assign_student(room_number, student_id)
    return ok(room.to_dict())


@api.delete("/rooms/number/<int:room_number>/remove/<student_id>")
def remove_student(room_number, student_id):
    rooms.remove_student(room_number, student_id)
    return ok(message=f"Student {student_id} removed from room {room_number}")


@api.get("/rooms/student/<student_id>")
def student_room(student_id):
    room = rooms.room_for_student(student_id)
    return ok({
        "room": room.to_dict() if room is not None else None,
        "roommates": rooms.roommates(student_id),
    })


# ------------------------------------------------------
# BOOKS
# ------------------------------------------------------

@api.get("/books")
def list_books():
    q = request.args.get("q", "")
    return ok([b.to_dict() for b in circulation.list_books(q)])


@api.post("/books")
def add_book():
    form = _form(BookForm)
    book = circulation.add_book(
        form.title.data,
        form.author.data,
        str(form.book_id.data),
        form.price.data,
        form.total_copies.data,
    )
    return ok(book.to_dict(), status=201)


@api.get("/books/overdue")
def overdue_books():
    return ok([l.to_dict() for l in circulation.list_overdue()])


@api.get("/books/issued")
def issued_books():
    return ok([l.to_dict() for l in circulation.list_issued()])


@api.get("/books/student/<student_id>")
def student_books(student_id):
    return ok([l.to_dict() for l in circulation.loans_for_student(student_id)])


@api.get("/books/loans/<int:loan_id>")
def get_loan(loan_id):
    return ok(circulation.get_loan(loan_id).to_dict())


@api.get("/books/<book_id>")
def get_book(book_id):
    return ok(circulation.get_book(book_id).to_dict())


@api.put("/books/<book_id>")
def update_book(book_id):
    form = _form(BookUpdateForm)
    body = _body()
    book = circulation.update_book(
        book_id,
        title=form.title.data or None,
        author=form.author.data if body.get("author") is not None else None,
        price=form.price.data,
        total_copies=form.total_copies.data,
    )
    return ok(book.to_dict())


@api.delete("/books/<book_id>")
def delete_book(book_id):
    circulation.delete_book(book_id)
    return ok(message=f"Book {book_id} deleted")


# ------------------------------------------------------
# CIRCULATION
# ------------------------------------------------------

@api.post("/books/<book_id>/issue/<student_id>")
def issue_book(book_id, student_id):
    form = _form(IssueForm)
    loan = circulation.issue_book(book_id, student_id, form.issue_date.data)
    return ok(loan.to_dict(), status=201)


@api.put("/books/return/<int:loan_id>")
def return_book(loan_id):
    return ok(circulation.return_book(loan_id).to_dict())


@api.put("/books/mark-lost/<int:loan_id>")
def mark_lost(loan_id):
    return ok(circulation.mark_lost(loan_id).to_dict())


@api.put("/books/recover/<int:loan_id>")
def recover_book(loan_id):
    return ok(circulation.recover_book(loan_id).to_dict())


@api.post("/books/remind/<int:loan_id>")
def send_reminder(loan_id):
    loan, delivered = circulation.send_reminder(loan_id, _hook())
    message = "Reminder sent" if delivered else "Reminder recorded, delivery not confirmed"
    return ok(loan.to_dict(), message=message)


# ------------------------------------------------------
# FEEDBACK
# ------------------------------------------------------

@api.post("/feedback")
def submit_feedback():
    form = _form(FeedbackForm)
    item = feedback.submit_feedback(
        form.student_id.data,
        form.category.data,
        form.rating.data,
        form.comment.data,
        anonymous=form.anonymous.data,
    )
    return ok(item.to_dict(reveal_student=True), status=201)


@api.get("/feedback")
def list_feedback():
    items = feedback.list_feedback(
        category=request.args.get("category"),
        status=request.args.get("status"),
        rating=request.args.get("rating"),
        search=request.args.get("search"),
    )
    return ok([f.to_dict() for f in items])


@api.get("/feedback/stats")
def feedback_stats():
    return ok(feedback.feedback_stats())


@api.get("/feedback/student/<student_id>")
def student_feedback(student_id):
    items = feedback.feedback_for_student(student_id)
    return ok([f.to_dict(reveal_student=True) for f in items])


@api.get("/feedback/<int:feedback_id>")
def get_feedback(feedback_id):
    return ok(feedback.get_feedback(feedback_id).to_dict())


@api.post("/feedback/<int:feedback_id>/respond")
def respond_feedback(feedback_id):
    form = _form(RespondForm)
    item = feedback.respond(
        feedback_id, form.response.data, form.priority.data, form.is_resolved.data
    )
    return ok(item.to_dict())


@api.patch("/feedback/<int:feedback_id>/resolve")
def resolve_feedback(feedback_id):
    form = _form(ResolveForm)
    # an empty body means "resolve"
    is_resolved = form.is_resolved.data if "isResolved" in _body() else True
    return ok(feedback.toggle_resolved(feedback_id, is_resolved).to_dict())


# ------------------------------------------------------
# DASHBOARDS
# ------------------------------------------------------

@api.get("/dashboard/<role>")
def role_dashboard(role):
    return ok(dashboard.summary_for(role, student_id=request.args.get("studentId")))


# ------------------------------------------------------
# MAINTENANCE
# ------------------------------------------------------

@click.command("sweep-overdue")
@click.option("--remind", is_flag=True, help="Also send a reminder for every overdue loan.")
@with_appcontext
def sweep_overdue_command(remind):
    """Flag past-due loans as overdue."""
    flipped = circulation.sweep_overdue()
    click.echo(f"Flagged {flipped} loan(s) as overdue.")
    if remind:
        hook = _hook()
        sent = 0
        for loan in circulation.list_overdue():
            _, delivered = circulation.send_reminder(loan.id, hook)
            sent += int(delivered)
        click.echo(f"Delivered {sent} reminder(s).")


# ------------------------------------------------------
# RUN SERVER
# ------------------------------------------------------

if __name__ == "__main__":
    create_app().run(debug=True)
