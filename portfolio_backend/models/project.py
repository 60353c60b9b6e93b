"""Customer projects tracked on the dashboard."""

from datetime import datetime

from portfolio_backend.extensions import db
from portfolio_backend.models.user import Role

PROJECT_TYPES = ('website', 'newsletter', 'bewerbung', 'ecommerce', 'custom')
PROJECT_PRIORITIES = ('low', 'medium', 'high')
PROJECT_STATUSES = ('planning', 'inProgress', 'review', 'completed', 'cancelled')

# Allowed status moves; completed and cancelled are terminal
STATUS_TRANSITIONS = {
    'planning': {'inProgress', 'cancelled'},
    'inProgress': {'review', 'completed', 'cancelled'},
    'review': {'inProgress', 'completed', 'cancelled'},
    'completed': set(),
    'cancelled': set(),
}


class Project(db.Model):
    """A piece of work an admin delivers for a customer."""
    __tablename__ = 'projects'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.String(1000))
    type = db.Column(db.String(20), nullable=False, default='website')
    status = db.Column(db.String(20), nullable=False, default='planning', index=True)
    priority = db.Column(db.String(10), nullable=False, default='medium')
    customer_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    assigned_admin_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    deadline = db.Column(db.DateTime, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    tags = db.Column(db.JSON, default=list)
    progress = db.Column(db.Integer, nullable=False, default=0)
    messages_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    customer = db.relationship('User', foreign_keys=[customer_id])
    assigned_admin = db.relationship('User', foreign_keys=[assigned_admin_id])
    messages = db.relationship('Message', back_populates='project', lazy='dynamic')

    def can_user_access(self, user):
        """Only the project's customer and its assigned admin may see it."""
        if user is None or not self.is_active:
            return False
        if user.role == Role.ADMIN:
            return self.assigned_admin_id == user.id
        elif user.role == Role.CUSTOMER:
            return self.customer_id == user.id
        raise ValueError(f'Unhandled role: {user.role}')

    def can_transition_to(self, status):
        return status == self.status or status in STATUS_TRANSITIONS.get(self.status, set())

    def update_status(self, status):
        """Move to a new status, keeping progress consistent."""
        if status not in PROJECT_STATUSES:
            raise ValueError(f'Unknown project status: {status}')
        if not self.can_transition_to(status):
            raise ValueError(f'Cannot change status from {self.status} to {status}')
        self.status = status
        if status == 'completed':
            self.progress = 100

    def set_progress(self, value):
        """Set progress 0-100; reaching 100 completes the project."""
        value = int(value)
        if value < 0 or value > 100:
            raise ValueError('Progress must be between 0 and 100')
        if value == 100:
            if not self.can_transition_to('completed'):
                raise ValueError(f'Cannot complete a project in status {self.status}')
            self.status = 'completed'
        elif self.status == 'completed':
            raise ValueError('A completed project stays at 100% progress')
        self.progress = value

    @property
    def is_overdue(self):
        return self.status not in ('completed', 'cancelled') and self.deadline < datetime.utcnow()

    @classmethod
    def query_for_user(cls, user):
        """Active projects visible to the user."""
        query = cls.query.filter_by(is_active=True)
        if user.role == Role.ADMIN:
            return query.filter_by(assigned_admin_id=user.id)
        elif user.role == Role.CUSTOMER:
            return query.filter_by(customer_id=user.id)
        raise ValueError(f'Unhandled role: {user.role}')

    @classmethod
    def find_active_projects(cls, user):
        """Projects still being worked on."""
        return cls.query_for_user(user).filter(
            cls.status.in_(('planning', 'inProgress', 'review'))
        ).order_by(cls.deadline.asc()).all()

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'type': self.type,
            'status': self.status,
            'priority': self.priority,
            'customerId': self.customer_id,
            'customerName': self.customer.full_name if self.customer else None,
            'assignedAdmin': self.assigned_admin_id,
            'deadline': self.deadline.isoformat() if self.deadline else None,
            'isOverdue': self.is_overdue if self.deadline else False,
            'tags': self.tags or [],
            'progress': self.progress,
            'messagesCount': self.messages_count,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f'<Project {self.name}>'
