"""Newsletter subscribers, templates and per-recipient send logs."""

import re
import secrets
from datetime import datetime
from html import unescape

from sqlalchemy import event

from portfolio_backend.extensions import db

UNSUBSCRIBE_REASONS = ('user_request', 'bounce', 'spam_complaint', 'admin_action')
SUBSCRIBER_SOURCES = ('contact_form', 'newsletter_signup', 'manual_import', 'api')
TEMPLATE_STATUSES = ('draft', 'scheduled', 'sending', 'sent', 'failed')
TEMPLATE_CATEGORIES = ('announcement', 'newsletter', 'promotion', 'update', 'custom')

# Forward-only delivery lifecycle; the last three are terminal
LOG_STATUS_ORDER = ('pending', 'sent', 'delivered', 'opened', 'clicked')
LOG_TERMINAL_STATUSES = ('bounced', 'complained', 'failed')


def _token():
    return secrets.token_hex(32)


def html_to_text(html):
    """Plain-text rendition of an HTML body."""
    text = re.sub(r'<(script|style)[^>]*>.*?</\1>', ' ', html or '', flags=re.S | re.I)
    text = re.sub(r'<br\s*/?>|</p>|</h[1-6]>|</li>', '\n', text, flags=re.I)
    text = re.sub(r'<[^>]+>', ' ', text)
    text = unescape(text)
    lines = [re.sub(r'[ \t]+', ' ', line).strip() for line in text.splitlines()]
    return '\n'.join(line for line in lines if line)


class NewsletterSubscriber(db.Model):
    """A double opt-in newsletter subscription."""
    __tablename__ = 'newsletter_subscribers'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    first_name = db.Column(db.String(50))
    last_name = db.Column(db.String(50))
    is_confirmed = db.Column(db.Boolean, nullable=False, default=False)
    confirmation_token = db.Column(db.String(64), index=True)
    confirmed_at = db.Column(db.DateTime)
    unsubscribe_token = db.Column(db.String(64), unique=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    unsubscribed_at = db.Column(db.DateTime)
    unsubscribe_reason = db.Column(db.String(20))
    source = db.Column(db.String(20), nullable=False, default='newsletter_signup')
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))
    total_emails_received = db.Column(db.Integer, nullable=False, default=0)
    total_emails_opened = db.Column(db.Integer, nullable=False, default=0)
    last_opened_at = db.Column(db.DateTime)
    total_links_clicked = db.Column(db.Integer, nullable=False, default=0)
    last_clicked_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __init__(self, **kwargs):
        if kwargs.get('email'):
            kwargs['email'] = kwargs['email'].strip().lower()
        super().__init__(**kwargs)
        if not self.unsubscribe_token:
            self.generate_tokens()

    def generate_tokens(self):
        """Mint fresh confirmation and unsubscribe tokens."""
        self.confirmation_token = _token()
        self.unsubscribe_token = _token()

    def confirm(self):
        self.is_confirmed = True
        self.confirmed_at = datetime.utcnow()
        self.confirmation_token = None

    def unsubscribe(self, reason='user_request'):
        if reason not in UNSUBSCRIBE_REASONS:
            raise ValueError(f'Unknown unsubscribe reason: {reason}')
        self.is_active = False
        self.unsubscribed_at = datetime.utcnow()
        self.unsubscribe_reason = reason

    def reactivate(self, first_name=None, last_name=None):
        """Re-open a lapsed subscription; it must be confirmed again."""
        self.is_active = True
        self.is_confirmed = False
        self.confirmed_at = None
        self.unsubscribed_at = None
        self.unsubscribe_reason = None
        if first_name:
            self.first_name = first_name
        if last_name:
            self.last_name = last_name
        self.generate_tokens()

    @property
    def full_name(self):
        parts = [p for p in (self.first_name, self.last_name) if p]
        return ' '.join(parts) if parts else 'Unbekannt'

    @property
    def open_rate(self):
        if not self.total_emails_received:
            return 0
        return round(self.total_emails_opened / self.total_emails_received * 100)

    @classmethod
    def active_query(cls):
        return cls.query.filter_by(is_confirmed=True, is_active=True)

    @classmethod
    def get_active_subscribers(cls):
        """Confirmed and active subscribers, newest first."""
        return cls.active_query().order_by(cls.created_at.desc(), cls.id.desc()).all()

    @classmethod
    def find_by_email(cls, email):
        return cls.query.filter_by(email=email.strip().lower()).first()

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'firstName': self.first_name,
            'lastName': self.last_name,
            'fullName': self.full_name,
            'isConfirmed': self.is_confirmed,
            'confirmedAt': self.confirmed_at.isoformat() if self.confirmed_at else None,
            'isActive': self.is_active,
            'unsubscribedAt': self.unsubscribed_at.isoformat() if self.unsubscribed_at else None,
            'unsubscribeReason': self.unsubscribe_reason,
            'source': self.source,
            'totalEmailsReceived': self.total_emails_received,
            'totalEmailsOpened': self.total_emails_opened,
            'totalLinksClicked': self.total_links_clicked,
            'openRate': self.open_rate,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<NewsletterSubscriber {self.email}>'


class NewsletterTemplate(db.Model):
    """A newsletter issue or reusable template."""
    __tablename__ = 'newsletter_templates'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    subject = db.Column(db.String(200), nullable=False)
    preheader = db.Column(db.String(150))
    html_content = db.Column(db.Text, nullable=False)
    text_content = db.Column(db.Text)
    json_content = db.Column(db.JSON)
    images = db.Column(db.JSON, default=list)
    scheduled_date = db.Column(db.DateTime)
    is_scheduled = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(db.Enum(*TEMPLATE_STATUSES, name='template_status', native_enum=False, validate_strings=True),
                       nullable=False, default='draft', index=True)
    sent_count = db.Column(db.Integer, nullable=False, default=0)
    delivered_count = db.Column(db.Integer, nullable=False, default=0)
    opened_count = db.Column(db.Integer, nullable=False, default=0)
    clicked_count = db.Column(db.Integer, nullable=False, default=0)
    bounced_count = db.Column(db.Integer, nullable=False, default=0)
    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    sent_at = db.Column(db.DateTime)
    is_template = db.Column(db.Boolean, nullable=False, default=False)
    template_category = db.Column(db.String(20), nullable=False, default='newsletter')
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    created_by = db.relationship('User')
    send_logs = db.relationship('NewsletterSendLog', backref='newsletter', lazy='dynamic')

    @property
    def is_sent(self):
        return self.status == 'sent'

    @property
    def open_rate(self):
        if not self.sent_count:
            return 0
        return round(self.opened_count / self.sent_count * 100)

    @property
    def click_rate(self):
        if not self.opened_count:
            return 0
        return round(self.clicked_count / self.opened_count * 100)

    def schedule_for(self, date):
        if date is None:
            self.scheduled_date = None
            self.is_scheduled = False
            if self.status == 'scheduled':
                self.status = 'draft'
            return
        self.scheduled_date = date
        self.is_scheduled = True
        self.status = 'scheduled'

    def mark_as_sent(self, sent_count):
        self.status = 'sent'
        self.sent_at = datetime.utcnow()
        self.sent_count = sent_count

    def generate_preview(self, first_name='Max', last_name='Mustermann', email='preview@example.com'):
        """Subject and bodies with sample placeholder values."""
        values = {
            'firstName': first_name,
            'lastName': last_name,
            'fullName': f'{first_name} {last_name}',
            'email': email,
            'unsubscribeUrl': '#',
        }

        def fill(text):
            for key, value in values.items():
                text = text.replace('{{' + key + '}}', value)
            return text

        return {
            'subject': fill(self.subject),
            'preheader': self.preheader,
            'html': fill(self.html_content),
            'text': fill(self.text_content or html_to_text(self.html_content)),
        }

    @classmethod
    def get_scheduled_newsletters(cls, now=None):
        """Scheduled templates whose time has come."""
        now = now or datetime.utcnow()
        return cls.query.filter(
            cls.status == 'scheduled',
            cls.scheduled_date.isnot(None),
            cls.scheduled_date <= now,
        ).order_by(cls.scheduled_date.asc()).all()

    def to_dict(self, include_content=True):
        data = {
            'id': self.id,
            'name': self.name,
            'subject': self.subject,
            'preheader': self.preheader,
            'images': self.images or [],
            'scheduledDate': self.scheduled_date.isoformat() if self.scheduled_date else None,
            'isScheduled': self.is_scheduled,
            'status': self.status,
            'stats': {
                'sentCount': self.sent_count,
                'deliveredCount': self.delivered_count,
                'openedCount': self.opened_count,
                'clickedCount': self.clicked_count,
                'bouncedCount': self.bounced_count,
                'openRate': self.open_rate,
                'clickRate': self.click_rate,
            },
            'createdBy': self.created_by_id,
            'sentAt': self.sent_at.isoformat() if self.sent_at else None,
            'isTemplate': self.is_template,
            'templateCategory': self.template_category,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }
        if include_content:
            data['content'] = {
                'html': self.html_content,
                'text': self.text_content,
                'json': self.json_content,
            }
        return data

    def __repr__(self):
        return f'<NewsletterTemplate {self.name}>'


@event.listens_for(NewsletterTemplate, 'before_insert')
@event.listens_for(NewsletterTemplate, 'before_update')
def derive_text_content(mapper, connection, target):
    if target.html_content and not target.text_content:
        target.text_content = html_to_text(target.html_content)


class NewsletterSendLog(db.Model):
    """Outcome of one send attempt of a template to a subscriber."""
    __tablename__ = 'newsletter_send_logs'

    id = db.Column(db.Integer, primary_key=True)
    newsletter_id = db.Column(db.Integer, db.ForeignKey('newsletter_templates.id'), nullable=False, index=True)
    subscriber_id = db.Column(db.Integer, db.ForeignKey('newsletter_subscribers.id'), nullable=False, index=True)
    recipient_email = db.Column(db.String(120), nullable=False)
    subject = db.Column(db.String(200), nullable=False)
    status = db.Column(db.String(20), nullable=False, default='pending', index=True)
    sent_at = db.Column(db.DateTime)
    delivered_at = db.Column(db.DateTime)
    opened_at = db.Column(db.DateTime)
    first_clicked_at = db.Column(db.DateTime)
    open_count = db.Column(db.Integer, nullable=False, default=0)
    click_count = db.Column(db.Integer, nullable=False, default=0)
    error_message = db.Column(db.String(1000))
    retry_count = db.Column(db.Integer, nullable=False, default=0)
    provider_message_id = db.Column(db.String(255))
    provider_response = db.Column(db.JSON)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    subscriber = db.relationship('NewsletterSubscriber')

    def advance_status(self, status):
        """Move forward along the lifecycle; returns True if the status changed."""
        if self.status in LOG_TERMINAL_STATUSES:
            return False
        if status in LOG_TERMINAL_STATUSES:
            self.status = status
            return True
        if LOG_STATUS_ORDER.index(status) > LOG_STATUS_ORDER.index(self.status):
            self.status = status
            return True
        return False

    def mark_sent(self, provider_message_id=None, provider_response=None):
        self.advance_status('sent')
        self.sent_at = datetime.utcnow()
        self.provider_message_id = provider_message_id
        self.provider_response = provider_response

    @classmethod
    def find_for_tracking(cls, subscriber_id, newsletter_id):
        """The delivered log row for a (subscriber, newsletter) pair."""
        return cls.query.filter(
            cls.subscriber_id == subscriber_id,
            cls.newsletter_id == newsletter_id,
            cls.status.notin_(LOG_TERMINAL_STATUSES),
        ).order_by(cls.id.asc()).first()

    def to_dict(self):
        return {
            'id': self.id,
            'newsletterId': self.newsletter_id,
            'subscriberId': self.subscriber_id,
            'recipientEmail': self.recipient_email,
            'subject': self.subject,
            'status': self.status,
            'sentAt': self.sent_at.isoformat() if self.sent_at else None,
            'openedAt': self.opened_at.isoformat() if self.opened_at else None,
            'firstClickedAt': self.first_clicked_at.isoformat() if self.first_clicked_at else None,
            'openCount': self.open_count,
            'clickCount': self.click_count,
            'errorMessage': self.error_message,
            'providerMessageId': self.provider_message_id,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<NewsletterSendLog {self.recipient_email} {self.status}>'
