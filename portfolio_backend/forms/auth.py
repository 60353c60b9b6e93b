"""Authentication forms."""

from wtforms import StringField, PasswordField, BooleanField
from wtforms.validators import DataRequired, Email, Length, Optional

from portfolio_backend.forms import APIForm


class LoginForm(APIForm):
    """Local login; an unknown email may opt into account creation."""
    email = StringField('Email', validators=[
        DataRequired(message='Email is required'),
        Email(message='Please enter a valid email address')
    ])
    password = PasswordField('Password', validators=[
        DataRequired(message='Password is required')
    ])
    confirmAccountCreation = BooleanField('Create account')


class ProfileForm(APIForm):
    """Editable profile fields."""
    firstName = StringField('First name', validators=[Optional(), Length(max=50)])
    lastName = StringField('Last name', validators=[Optional(), Length(max=50)])
    company = StringField('Company', validators=[Optional(), Length(max=100)])
