"""Database models package."""

from .user import User, Role, AuthProvider
from .project import Project
from .message import Message, MessageRead, MessageAttachment
from .contact import Contact
from .newsletter import NewsletterSubscriber, NewsletterTemplate, NewsletterSendLog

__all__ = [
    'User',
    'Role',
    'AuthProvider',
    'Project',
    'Message',
    'MessageRead',
    'MessageAttachment',
    'Contact',
    'NewsletterSubscriber',
    'NewsletterTemplate',
    'NewsletterSendLog',
]
