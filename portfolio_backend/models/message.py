"""Project messages, read receipts and attachments."""

from datetime import datetime

from sqlalchemy import event

from portfolio_backend.extensions import db
from portfolio_backend.models.user import Role

SENDER_ROLES = ('admin', 'kunde', 'system')
MESSAGE_TYPES = ('text', 'file', 'image', 'system')
MESSAGE_PRIORITIES = ('low', 'normal', 'high', 'urgent')
MAX_CONTENT_LENGTH = 5000


class Message(db.Model):
    """A message posted into a project's conversation."""
    __tablename__ = 'messages'

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id'), nullable=False, index=True)
    sender_id = db.Column(db.Integer, db.ForeignKey('users.id'), index=True)
    sender_role = db.Column(db.Enum(*SENDER_ROLES, name='sender_role', native_enum=False, validate_strings=True),
                            nullable=False)
    sender_name = db.Column(db.String(120), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    content = db.Column(db.String(MAX_CONTENT_LENGTH), nullable=False)
    message_type = db.Column(db.Enum(*MESSAGE_TYPES, name='message_type', native_enum=False, validate_strings=True),
                             nullable=False, default='text')
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    parent_message_id = db.Column(db.Integer, db.ForeignKey('messages.id'))
    has_replies = db.Column(db.Boolean, nullable=False, default=False)
    priority = db.Column(db.String(10), nullable=False, default='normal')
    is_important = db.Column(db.Boolean, nullable=False, default=False)
    tags = db.Column(db.JSON, default=list)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    edited_at = db.Column(db.DateTime)
    deleted_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    project = db.relationship('Project', back_populates='messages')
    sender = db.relationship('User', foreign_keys=[sender_id])
    reads = db.relationship('MessageRead', backref='message', lazy='select', cascade='all, delete-orphan')
    attachments = db.relationship('MessageAttachment', backref='message', lazy='select',
                                  cascade='all, delete-orphan')
    replies = db.relationship('Message', backref=db.backref('parent', remote_side=[id]), lazy='dynamic')

    @classmethod
    def from_user(cls, project, user, content, **kwargs):
        """Build a message sent by a user into a project."""
        return cls(
            project=project,
            sender_id=user.id,
            sender_role=sender_role_for(user),
            sender_name=user.full_name,
            customer_id=project.customer_id,
            content=content,
            **kwargs
        )

    @classmethod
    def create_system_message(cls, project, content):
        message = cls(
            project=project,
            sender_role='system',
            sender_name='System',
            customer_id=project.customer_id,
            content=content,
            message_type='system',
        )
        db.session.add(message)
        return message

    def can_user_access(self, user):
        return self.is_active and self.project is not None and self.project.can_user_access(user)

    def is_read_by(self, user):
        return any(receipt.user_id == user.id for receipt in self.reads)

    def mark_as_read_by(self, user):
        """Record a read receipt; repeated calls keep a single receipt."""
        if self.is_read_by(user):
            return False
        self.reads.append(MessageRead(user_id=user.id))
        self.is_read = True
        return True

    def reply(self, user, content):
        reply = Message.from_user(self.project, user, content, parent_message_id=self.id)
        self.has_replies = True
        db.session.add(reply)
        return reply

    def add_attachment(self, filename, original_name, mime_type, size, path):
        attachment = MessageAttachment(
            filename=filename,
            original_name=original_name,
            mime_type=mime_type,
            size=size,
            path=path,
        )
        self.attachments.append(attachment)
        if self.message_type in (None, 'text'):
            self.message_type = 'image' if mime_type.startswith('image/') else 'file'
        return attachment

    def edit(self, content):
        self.content = content
        self.edited_at = datetime.utcnow()

    def soft_delete(self):
        self.is_active = False
        self.deleted_at = datetime.utcnow()

    @property
    def has_attachment(self):
        return len(self.attachments) > 0

    @classmethod
    def query_for_user(cls, user):
        """Active messages in projects the user can see."""
        from portfolio_backend.models.project import Project
        project_ids = Project.query_for_user(user).with_entities(Project.id).statement
        return cls.query.filter(cls.is_active.is_(True), cls.project_id.in_(project_ids))

    @classmethod
    def find_by_project(cls, project, limit=50):
        return cls.query.filter_by(project_id=project.id, is_active=True).order_by(
            cls.created_at.desc()).limit(limit).all()

    @classmethod
    def find_recent_by_user(cls, user, limit=10):
        return cls.query_for_user(user).order_by(cls.created_at.desc()).limit(limit).all()

    @classmethod
    def unread_query_for(cls, user):
        """Messages from others that the user has no receipt for."""
        read_ids = db.select(MessageRead.message_id).where(MessageRead.user_id == user.id)
        return cls.query_for_user(user).filter(
            db.or_(cls.sender_id.is_(None), cls.sender_id != user.id),
            cls.id.notin_(read_ids),
        )

    @classmethod
    def unread_count_for(cls, user):
        return cls.unread_query_for(user).count()

    @classmethod
    def mark_all_as_read_for(cls, user, project=None):
        query = cls.unread_query_for(user)
        if project is not None:
            query = query.filter(cls.project_id == project.id)
        messages = query.all()
        for message in messages:
            message.mark_as_read_by(user)
        return len(messages)

    @classmethod
    def get_conversation_thread(cls, parent):
        replies = parent.replies.filter_by(is_active=True).order_by(cls.created_at.asc(), cls.id.asc())
        return [parent] + replies.all()

    def to_dict(self, viewer=None):
        data = {
            'id': self.id,
            'projectId': self.project_id,
            'senderId': self.sender_id,
            'senderRole': self.sender_role,
            'senderName': self.sender_name,
            'customerId': self.customer_id,
            'content': self.content,
            'messageType': self.message_type,
            'isRead': self.is_read,
            'readBy': [r.to_dict() for r in self.reads],
            'parentMessageId': self.parent_message_id,
            'hasReplies': self.has_replies,
            'attachments': [a.to_dict() for a in self.attachments],
            'hasAttachment': self.has_attachment,
            'priority': self.priority,
            'isImportant': self.is_important,
            'tags': self.tags or [],
            'editedAt': self.edited_at.isoformat() if self.edited_at else None,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }
        if viewer is not None:
            data['isReadByMe'] = self.sender_id == viewer.id or self.is_read_by(viewer)
        return data

    def __repr__(self):
        return f'<Message {self.id} project={self.project_id}>'


class MessageRead(db.Model):
    """Read receipt: one row per reader and message."""
    __tablename__ = 'message_reads'
    __table_args__ = (db.UniqueConstraint('message_id', 'user_id', name='uq_message_read'),)

    id = db.Column(db.Integer, primary_key=True)
    message_id = db.Column(db.Integer, db.ForeignKey('messages.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    read_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {'userId': self.user_id, 'readAt': self.read_at.isoformat() if self.read_at else None}


class MessageAttachment(db.Model):
    """File metadata attached to a message."""
    __tablename__ = 'message_attachments'

    id = db.Column(db.Integer, primary_key=True)
    message_id = db.Column(db.Integer, db.ForeignKey('messages.id'), nullable=False)
    filename = db.Column(db.String(255), nullable=False)
    original_name = db.Column(db.String(255), nullable=False)
    mime_type = db.Column(db.String(100), nullable=False)
    size = db.Column(db.Integer, nullable=False)
    path = db.Column(db.String(500), nullable=False)
    uploaded_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'filename': self.filename,
            'originalName': self.original_name,
            'mimeType': self.mime_type,
            'size': self.size,
            'path': self.path,
            'uploadedAt': self.uploaded_at.isoformat() if self.uploaded_at else None,
        }


@event.listens_for(Message, 'after_insert')
def increment_project_message_count(mapper, connection, target):
    """Each stored message bumps its project's counter once."""
    from portfolio_backend.models.project import Project
    projects = Project.__table__
    connection.execute(
        projects.update()
        .where(projects.c.id == target.project_id)
        .values(messages_count=projects.c.messages_count + 1)
    )


def sender_role_for(user):
    """Message sender role for a user account."""
    if user.role == Role.ADMIN:
        return 'admin'
    elif user.role == Role.CUSTOMER:
        return 'kunde'
    raise ValueError(f'Unhandled role: {user.role}')
