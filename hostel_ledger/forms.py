from flask_wtf import FlaskForm
from wtforms import BooleanField, DateField, DecimalField, IntegerField, SelectField, StringField
from wtforms.validators import DataRequired, InputRequired, NumberRange, Optional

from .models import FEEDBACK_CATEGORIES, PRIORITIES, REGULAR, ROOM_PURPOSES


class WholeNumberField(IntegerField):
    """IntegerField that rejects 2.9 or true instead of truncating them."""

    def process_formdata(self, valuelist):
        if valuelist:
            raw = valuelist[0]
            if isinstance(raw, bool) or (isinstance(raw, float) and not raw.is_integer()):
                self.data = None
                raise ValueError(self.gettext("Not a valid integer value."))
        super().process_formdata(valuelist)


class RoomForm(FlaskForm):
    number = WholeNumberField("Room Number", validators=[Optional()])
    capacity = WholeNumberField("Capacity", validators=[InputRequired()])
    purpose = SelectField("Purpose", choices=[(p, p) for p in ROOM_PURPOSES], default=REGULAR)


class RoomUpdateForm(FlaskForm):
    capacity = WholeNumberField("Capacity", validators=[Optional()])
    purpose = SelectField(
        "Purpose", choices=[(p, p) for p in ROOM_PURPOSES], validators=[Optional()], validate_choice=False
    )


class BookForm(FlaskForm):
    title = StringField("Title", validators=[DataRequired()])
    author = StringField("Author")
    book_id = StringField("Book Id", validators=[DataRequired()])
    price = DecimalField("Price", places=2, default=0)
    total_copies = WholeNumberField("Total Copies", default=1)


class BookUpdateForm(FlaskForm):
    title = StringField("Title", validators=[Optional()])
    author = StringField("Author", validators=[Optional()])
    price = DecimalField("Price", places=2, validators=[Optional()])
    total_copies = WholeNumberField("Total Copies", validators=[Optional()])


class IssueForm(FlaskForm):
    issue_date = DateField("Issue Date", validators=[Optional()])


class FeedbackForm(FlaskForm):
    student_id = StringField("Student Id")
    category = SelectField("Category", choices=[(c, label) for c, label in FEEDBACK_CATEGORIES.items()])
    rating = WholeNumberField("Rating", validators=[InputRequired(), NumberRange(min=1, max=5)])
    comment = StringField("Comment", validators=[DataRequired()])
    anonymous = BooleanField("Anonymous")


class RespondForm(FlaskForm):
    response = StringField("Response", validators=[DataRequired()])
    priority = SelectField("Priority", choices=[(p, p) for p in PRIORITIES], default="medium")
    is_resolved = BooleanField("Resolved")


class ResolveForm(FlaskForm):
    is_resolved = BooleanField("Resolved", default=True)
