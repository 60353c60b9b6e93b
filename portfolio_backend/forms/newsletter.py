"""Newsletter forms."""

from wtforms import Form, StringField, TextAreaField, BooleanField, DateTimeField, FieldList, FormField
from wtforms.validators import AnyOf, DataRequired, Email, Length, Optional

from portfolio_backend.forms import APIForm
from portfolio_backend.forms.dashboard import DATETIME_FORMATS
from portfolio_backend.models.newsletter import TEMPLATE_CATEGORIES


class SubscribeForm(APIForm):
    """Public newsletter signup, also used for admin imports."""
    email = StringField('Email', validators=[
        DataRequired(message='Email is required'),
        Email(message='Please enter a valid email address')
    ])
    firstName = StringField('First name', validators=[Optional(), Length(max=50)])
    lastName = StringField('Last name', validators=[Optional(), Length(max=50)])


class ContentForm(Form):
    html = TextAreaField('HTML', validators=[DataRequired(message='HTML content is required')])
    text = TextAreaField('Text', validators=[Optional()])


class OptionalContentForm(Form):
    html = TextAreaField('HTML', validators=[Optional()])
    text = TextAreaField('Text', validators=[Optional()])


class TemplateForm(APIForm):
    """Create a newsletter; name, subject and HTML content are required."""
    name = StringField('Name', validators=[DataRequired(message='Name is required'), Length(max=100)])
    subject = StringField('Subject', validators=[DataRequired(message='Subject is required'), Length(max=200)])
    preheader = StringField('Preheader', validators=[Optional(), Length(max=150)])
    content = FormField(ContentForm)
    images = FieldList(StringField('Image'))
    scheduledDate = DateTimeField('Scheduled date', format=DATETIME_FORMATS, validators=[Optional()])
    isTemplate = BooleanField('Reusable template')
    templateCategory = StringField('Category', default='newsletter', validators=[
        Optional(), AnyOf(TEMPLATE_CATEGORIES, message='Unknown category')
    ])


class TemplateUpdateForm(TemplateForm):
    """Partial template update; only sent fields are applied."""
    name = StringField('Name', validators=[Optional(), Length(max=100)])
    subject = StringField('Subject', validators=[Optional(), Length(max=200)])
    content = FormField(OptionalContentForm)


class SendNewsletterForm(APIForm):
    confirm = BooleanField('Confirm')
