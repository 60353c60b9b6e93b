"""Dashboard project and message forms."""

from wtforms import Form, StringField, TextAreaField, IntegerField, DateTimeField, FieldList, FormField
from wtforms.validators import AnyOf, DataRequired, Length, NumberRange, Optional

from portfolio_backend.forms import APIForm
from portfolio_backend.models.project import PROJECT_TYPES, PROJECT_STATUSES, PROJECT_PRIORITIES
from portfolio_backend.models.message import MAX_CONTENT_LENGTH, MESSAGE_PRIORITIES

DATETIME_FORMATS = ['%Y-%m-%dT%H:%M:%S.%fZ', '%Y-%m-%dT%H:%M:%SZ', '%Y-%m-%dT%H:%M:%S',
                    '%Y-%m-%dT%H:%M', '%Y-%m-%d']


class ProjectForm(APIForm):
    """New project for one of the admin's customers."""
    name = StringField('Name', validators=[DataRequired(message='Name is required'), Length(max=200)])
    description = TextAreaField('Description', validators=[Optional(), Length(max=1000)])
    type = StringField('Type', default='website', validators=[
        Optional(), AnyOf(PROJECT_TYPES, message='Unknown project type')
    ])
    priority = StringField('Priority', default='medium', validators=[
        Optional(), AnyOf(PROJECT_PRIORITIES, message='Unknown priority')
    ])
    customerId = IntegerField('Customer', validators=[DataRequired(message='Customer is required')])
    deadline = DateTimeField('Deadline', format=DATETIME_FORMATS,
                             validators=[DataRequired(message='Deadline is required')])
    tags = FieldList(StringField('Tag', validators=[Length(max=50)]))


class ProjectUpdateForm(APIForm):
    """Partial project update; only sent fields are applied."""
    name = StringField('Name', validators=[Optional(), Length(min=1, max=200)])
    description = TextAreaField('Description', validators=[Optional(), Length(max=1000)])
    status = StringField('Status', validators=[
        Optional(), AnyOf(PROJECT_STATUSES, message='Unknown project status')
    ])
    priority = StringField('Priority', validators=[
        Optional(), AnyOf(PROJECT_PRIORITIES, message='Unknown priority')
    ])
    deadline = DateTimeField('Deadline', format=DATETIME_FORMATS, validators=[Optional()])
    progress = IntegerField('Progress', validators=[
        Optional(), NumberRange(min=0, max=100, message='Progress must be between 0 and 100')
    ])


class AttachmentForm(Form):
    """Metadata of an already uploaded file."""
    filename = StringField('Filename', validators=[DataRequired(message='Filename is required'), Length(max=255)])
    originalName = StringField('Original name', validators=[
        DataRequired(message='Original name is required'), Length(max=255)
    ])
    mimeType = StringField('MIME type', validators=[DataRequired(message='MIME type is required'), Length(max=100)])
    size = IntegerField('Size', validators=[Optional(), NumberRange(min=0, message='Size must not be negative')])
    path = StringField('Path', validators=[DataRequired(message='Path is required'), Length(max=500)])


class MessageForm(APIForm):
    """Message posted into a project."""
    projectId = IntegerField('Project', validators=[DataRequired(message='Project is required')])
    content = TextAreaField('Content', validators=[
        DataRequired(message='Content is required'),
        Length(max=MAX_CONTENT_LENGTH)
    ])
    priority = StringField('Priority', default='normal', validators=[
        Optional(), AnyOf(MESSAGE_PRIORITIES, message='Unknown priority')
    ])
    parentMessageId = IntegerField('Parent message', validators=[Optional()])
    attachments = FieldList(FormField(AttachmentForm))


class ReplyForm(APIForm):
    content = TextAreaField('Content', validators=[
        DataRequired(message='Content is required'),
        Length(max=MAX_CONTENT_LENGTH)
    ])


class AssignCustomerForm(APIForm):
    adminId = IntegerField('Admin', validators=[DataRequired(message='Admin is required')])
