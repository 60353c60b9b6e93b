"""JSON request forms.

Payloads are flattened into WTForms' field naming (``content-html`` for
nested objects, ``tags-0`` for lists) so FormField and FieldList work on
JSON bodies the same way they do on HTML forms.
"""

from flask import request
from flask_wtf import FlaskForm
from werkzeug.datastructures import MultiDict
from wtforms import StringField, FieldList, FormField

from portfolio_backend.errors import ValidationError


def flatten_payload(payload, prefix=''):
    """Flatten a JSON object into WTForms-style keys; nulls are dropped."""
    items = []
    for key, value in payload.items():
        name = f'{prefix}{key}'
        if value is None:
            continue
        if isinstance(value, dict):
            items.extend(flatten_payload(value, prefix=f'{name}-'))
        elif isinstance(value, (list, tuple)):
            for index, entry in enumerate(value):
                if isinstance(entry, dict):
                    items.extend(flatten_payload(entry, prefix=f'{name}-{index}-'))
                elif entry is not None:
                    items.append((f'{name}-{index}', entry))
        else:
            items.append((name, value))
    return items


def non_string_fields(fields):
    """Names of text fields whose submitted value is not a JSON string."""
    names = []
    for field in fields:
        if isinstance(field, FormField):
            names.extend(non_string_fields(field.form))
        elif isinstance(field, FieldList):
            names.extend(non_string_fields(field.entries))
        elif isinstance(field, StringField):
            if any(not isinstance(value, str) for value in field.raw_data or ()):
                names.append(field.name)
    return names


class APIForm(FlaskForm):
    """Base form for JSON endpoints. Bearer tokens replace CSRF here."""

    class Meta:
        csrf = False

    def __init__(self, payload=None, **kwargs):
        if payload is None:
            payload = request.get_json(silent=True) or {}
        if not isinstance(payload, dict):
            raise ValidationError('Request body must be a JSON object')
        self.payload = payload
        super().__init__(formdata=MultiDict(flatten_payload(payload)), **kwargs)
        wrong_type = non_string_fields(self)
        if wrong_type:
            raise ValidationError('Validation failed',
                                  details={name: ['Must be a string'] for name in wrong_type})

    def provided(self, name):
        """Whether the client sent this field at all."""
        return self.payload.get(name) is not None

    def validate_or_raise(self):
        if not self.validate():
            raise ValidationError('Validation failed', details=self.errors)
        return self
