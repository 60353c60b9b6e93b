"""User model and the closed Role enum."""

import enum
import logging
from datetime import datetime

from flask_login import UserMixin
from sqlalchemy import event

from portfolio_backend.extensions import db, bcrypt

logger = logging.getLogger(__name__)


class Role(str, enum.Enum):
    """Account roles. 'kunde' is the customer role."""
    ADMIN = 'admin'
    CUSTOMER = 'kunde'


class AuthProvider(str, enum.Enum):
    LOCAL = 'local'
    GOOGLE = 'google'
    GITHUB = 'github'


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class User(UserMixin, db.Model):
    """Admins and their customers."""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255))
    google_id = db.Column(db.String(64), unique=True)
    github_id = db.Column(db.String(64), unique=True)
    auth_provider = db.Column(
        db.Enum(AuthProvider, values_callable=_enum_values, native_enum=False, length=20),
        nullable=False, default=AuthProvider.LOCAL)
    role = db.Column(
        db.Enum(Role, values_callable=_enum_values, native_enum=False, length=20),
        nullable=False, default=Role.CUSTOMER, index=True)
    first_name = db.Column(db.String(50))
    last_name = db.Column(db.String(50))
    company = db.Column(db.String(100))
    avatar = db.Column(db.String(500))
    assigned_admin_id = db.Column(db.Integer, db.ForeignKey('users.id'), index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_email_verified = db.Column(db.Boolean, nullable=False, default=False)
    last_login = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    assigned_admin = db.relationship('User', remote_side=[id], backref=db.backref('customers', lazy='dynamic'))

    def __init__(self, **kwargs):
        if 'email' in kwargs and kwargs['email']:
            kwargs['email'] = kwargs['email'].strip().lower()
        super().__init__(**kwargs)

    def set_password(self, password):
        """Hash and set the password."""
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        """Check if password matches. OAuth-only accounts never match."""
        if not self.password_hash or not password:
            return False
        return bcrypt.check_password_hash(self.password_hash, password)

    def is_admin(self):
        """Check if user is admin."""
        return self.role == Role.ADMIN

    @property
    def full_name(self):
        parts = [p for p in (self.first_name, self.last_name) if p]
        return ' '.join(parts) if parts else self.email.split('@')[0]

    @property
    def display_name(self):
        if self.company:
            return f'{self.full_name} ({self.company})'
        return self.full_name

    def update_last_login(self):
        self.last_login = datetime.utcnow()

    def assign_admin(self, admin):
        """Assign this customer to an admin account."""
        if admin is None or admin.role != Role.ADMIN:
            raise ValueError('Assigned admin must have the admin role')
        self.assigned_admin = admin

    @classmethod
    def find_by_email(cls, email):
        if not email:
            return None
        return cls.query.filter_by(email=email.strip().lower()).first()

    @classmethod
    def find_customers_by_admin(cls, admin):
        return cls.query.filter_by(
            role=Role.CUSTOMER, assigned_admin_id=admin.id, is_active=True
        ).order_by(cls.created_at.desc()).all()

    @classmethod
    def find_by_oauth(cls, provider, provider_id):
        if provider == AuthProvider.GOOGLE:
            return cls.query.filter_by(google_id=provider_id).first()
        elif provider == AuthProvider.GITHUB:
            return cls.query.filter_by(github_id=provider_id).first()
        raise ValueError(f'Unsupported OAuth provider: {provider}')

    @classmethod
    def assign_unassigned_customers(cls, admin):
        """Attach every customer without an admin to the given admin."""
        customers = cls.query.filter_by(role=Role.CUSTOMER, assigned_admin_id=None).all()
        for customer in customers:
            customer.assign_admin(admin)
        return len(customers)

    @classmethod
    def get_stats(cls):
        stats = {}
        for role in Role:
            query = cls.query.filter_by(role=role)
            stats[role.value] = {
                'total': query.count(),
                'active': query.filter_by(is_active=True).count(),
                'verified': query.filter_by(is_email_verified=True).count(),
            }
        return stats

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'firstName': self.first_name,
            'lastName': self.last_name,
            'fullName': self.full_name,
            'displayName': self.display_name,
            'company': self.company,
            'avatar': self.avatar,
            'role': self.role.value if self.role else None,
            'authProvider': self.auth_provider.value if self.auth_provider else None,
            'assignedAdmin': self.assigned_admin_id,
            'isActive': self.is_active,
            'isEmailVerified': self.is_email_verified,
            'lastLogin': self.last_login.isoformat() if self.last_login else None,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<User {self.email}>'


@event.listens_for(User, 'before_insert')
def assign_default_admin(mapper, connection, target):
    """New customers without an admin go to the oldest active admin."""
    if target.role not in (None, Role.CUSTOMER) or target.assigned_admin_id is not None:
        return
    if target.assigned_admin is not None:
        return
    users = User.__table__
    admin_id = connection.execute(
        db.select(users.c.id)
        .where(users.c.role == Role.ADMIN, users.c.is_active.is_(True))
        .order_by(users.c.created_at.asc(), users.c.id.asc())
        .limit(1)
    ).scalar()
    if admin_id is None:
        logger.warning('No active admin available for new customer %s', target.email)
        return
    target.assigned_admin_id = admin_id
