"""Contact form submissions."""

from datetime import datetime

from sqlalchemy import event

from portfolio_backend.extensions import db

PROJECT_TYPES = ('website', 'ecommerce', 'bewerbung', 'newsletter', 'consulting', 'custom')
BUDGETS = ('unter-2500', '2500-5000', '5000-10000', '10000-plus')
TIMELINES = ('asap', '1-month', '2-3-months', 'flexible')
STATUSES = ('new', 'read', 'in_progress', 'replied', 'responded',
            'newsletter_only', 'spam', 'archived', 'completed')
SOURCES = ('contact_page', 'newsletter_signup', 'direct_email', 'phone', 'other')
PRIORITIES = ('low', 'normal', 'high', 'urgent')

BUDGET_LABELS = {
    'unter-2500': 'Unter 2.500€',
    '2500-5000': '2.500€ - 5.000€',
    '5000-10000': '5.000€ - 10.000€',
    '10000-plus': 'Über 10.000€',
}

TIMELINE_LABELS = {
    'asap': 'So schnell wie möglich',
    '1-month': 'Innerhalb 1 Monat',
    '2-3-months': '2-3 Monate',
    'flexible': 'Flexibel',
}

BUDGET_PRIORITY = {
    '10000-plus': 'high',
    '5000-10000': 'normal',
}


class Contact(db.Model):
    """A message submitted through the public contact form."""
    __tablename__ = 'contacts'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), nullable=False, index=True)
    phone = db.Column(db.String(50))
    company = db.Column(db.String(100))
    project_type = db.Column(db.String(20), nullable=False, default='website')
    budget = db.Column(db.String(20))
    timeline = db.Column(db.String(20))
    message = db.Column(db.String(2000), nullable=False)
    newsletter = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(db.String(20), nullable=False, default='new', index=True)
    source = db.Column(db.Enum(*SOURCES, name='contact_source', native_enum=False, validate_strings=True),
                       nullable=False, default='contact_page')
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))
    is_replied = db.Column(db.Boolean, nullable=False, default=False)
    replied_at = db.Column(db.DateTime)
    replied_by = db.Column(db.String(120))
    admin_notes = db.Column(db.String(1000))
    priority = db.Column(db.String(10), nullable=False, default='normal')
    tags = db.Column(db.JSON, default=list)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    archived_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def budget_label(self):
        return BUDGET_LABELS.get(self.budget, 'Nicht angegeben')

    @property
    def timeline_label(self):
        return TIMELINE_LABELS.get(self.timeline, 'Nicht angegeben')

    def mark_as_read(self):
        if self.status == 'new':
            self.status = 'read'

    def mark_as_replied(self, replied_by=None):
        self.is_replied = True
        self.replied_at = datetime.utcnow()
        self.replied_by = replied_by
        self.status = 'replied'

    def archive(self):
        self.status = 'archived'
        self.is_active = False
        self.archived_at = datetime.utcnow()

    def add_tag(self, tag):
        tag = tag.strip().lower()
        tags = list(self.tags or [])
        if tag and tag not in tags:
            tags.append(tag)
            self.tags = tags

    def set_priority(self, priority):
        if priority not in PRIORITIES:
            raise ValueError(f'Unknown priority: {priority}')
        self.priority = priority

    def set_status(self, status):
        if status not in STATUSES:
            raise ValueError(f'Unknown status: {status}')
        if status == 'archived':
            self.archive()
        elif status in ('replied', 'responded'):
            self.mark_as_replied(self.replied_by)
            self.status = status
        else:
            self.status = status

    @classmethod
    def search(cls, term, query=None):
        """Case-insensitive match on name, email, company and message."""
        query = query if query is not None else cls.query
        pattern = f'%{term}%'
        return query.filter(db.or_(
            cls.name.ilike(pattern),
            cls.email.ilike(pattern),
            cls.company.ilike(pattern),
            cls.message.ilike(pattern),
        ))

    @classmethod
    def get_statistics(cls):
        total = cls.query.count()
        by_status = dict(db.session.query(cls.status, db.func.count(cls.id)).group_by(cls.status).all())
        by_type = dict(db.session.query(cls.project_type, db.func.count(cls.id)).group_by(cls.project_type).all())
        return {
            'total': total,
            'new': by_status.get('new', 0),
            'inProgress': by_status.get('in_progress', 0) + by_status.get('read', 0),
            'completed': sum(by_status.get(s, 0) for s in ('replied', 'responded', 'completed')),
            'newsletterSubscribers': cls.query.filter_by(newsletter=True).count(),
            'unreplied': cls.query.filter_by(is_replied=False, is_active=True).count(),
            'byStatus': by_status,
            'byProjectType': by_type,
        }

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'company': self.company,
            'projectType': self.project_type,
            'budget': self.budget,
            'budgetLabel': self.budget_label,
            'timeline': self.timeline,
            'timelineLabel': self.timeline_label,
            'message': self.message,
            'newsletter': self.newsletter,
            'status': self.status,
            'source': self.source,
            'isReplied': self.is_replied,
            'repliedAt': self.replied_at.isoformat() if self.replied_at else None,
            'repliedBy': self.replied_by,
            'adminNotes': self.admin_notes,
            'priority': self.priority,
            'tags': self.tags or [],
            'isActive': self.is_active,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<Contact {self.email}>'


@event.listens_for(Contact, 'before_insert')
def derive_triage_fields(mapper, connection, target):
    """Tag by project type and set priority from the budget."""
    target.email = target.email.strip().lower()
    tags = list(target.tags or [])
    if target.project_type and target.project_type not in tags:
        tags.append(target.project_type)
    target.tags = tags
    if target.budget in BUDGET_PRIORITY:
        target.priority = BUDGET_PRIORITY[target.budget]
