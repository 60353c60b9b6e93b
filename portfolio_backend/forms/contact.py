"""Contact forms."""

from wtforms import StringField, TextAreaField, BooleanField, FieldList
from wtforms.validators import AnyOf, DataRequired, Length, Optional, Regexp

from portfolio_backend.forms import APIForm
from portfolio_backend.models.contact import (PROJECT_TYPES, BUDGETS, TIMELINES,
                                              STATUSES, PRIORITIES)

EMAIL_PATTERN = r'^[^\s@]+@[^\s@]+\.[^\s@]+$'


class ContactForm(APIForm):
    """Public contact form submission."""
    name = StringField('Name', validators=[
        DataRequired(message='Name is required'),
        Length(max=100)
    ])
    email = StringField('Email', validators=[
        DataRequired(message='Email is required'),
        Regexp(EMAIL_PATTERN, message='Please enter a valid email address')
    ])
    phone = StringField('Phone', validators=[Optional(), Length(max=50)])
    company = StringField('Company', validators=[Optional(), Length(max=100)])
    projectType = StringField('Project type', default='website', validators=[
        Optional(), AnyOf(PROJECT_TYPES, message='Unknown project type')
    ])
    budget = StringField('Budget', validators=[
        Optional(), AnyOf(BUDGETS, message='Unknown budget range')
    ])
    timeline = StringField('Timeline', validators=[
        Optional(), AnyOf(TIMELINES, message='Unknown timeline')
    ])
    message = TextAreaField('Message', validators=[
        DataRequired(message='Message is required'),
        Length(max=2000, message='Message must be at most 2000 characters')
    ])
    newsletter = BooleanField('Newsletter')


class ContactUpdateForm(APIForm):
    """Admin triage of a contact request."""
    status = StringField('Status', validators=[
        Optional(), AnyOf(STATUSES, message='Unknown status')
    ])
    priority = StringField('Priority', validators=[
        Optional(), AnyOf(PRIORITIES, message='Unknown priority')
    ])
    adminNotes = TextAreaField('Notes', validators=[Optional(), Length(max=1000)])
    tags = FieldList(StringField('Tag', validators=[Length(max=50)]))
    replied = BooleanField('Replied')
