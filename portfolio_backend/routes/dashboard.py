"""Dashboard for admins and their customers: projects, messages, profile."""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from portfolio_backend.errors import AuthorizationError, NotFoundError, ValidationError
from portfolio_backend.extensions import db
from portfolio_backend.forms.auth import ProfileForm
from portfolio_backend.forms.dashboard import (ProjectForm, ProjectUpdateForm, MessageForm,
                                               ReplyForm, AssignCustomerForm)
from portfolio_backend.models import User, Role, Project, Message
from portfolio_backend.utils.decorators import admin_required

logger = logging.getLogger(__name__)

dashboard_bp = Blueprint('dashboard', __name__)


def _get_project(project_id):
    """Project visible to the current user; anything else is reported as missing."""
    project = db.session.get(Project, project_id)
    if project is None or not project.can_user_access(current_user):
        raise NotFoundError('Project not found')
    return project


def _get_message(message_id):
    message = db.session.get(Message, message_id)
    if message is None or not message.can_user_access(current_user):
        raise NotFoundError('Message not found')
    return message


def _get_own_customer(customer_id):
    customer = db.session.get(User, customer_id)
    if customer is None or customer.role != Role.CUSTOMER or customer.assigned_admin_id != current_user.id:
        raise NotFoundError('Customer not found')
    return customer


def _role_stats(user):
    projects = Project.query_for_user(user)
    stats = {
        'totalProjects': projects.count(),
        'activeProjects': projects.filter(Project.status.in_(('planning', 'inProgress', 'review'))).count(),
        'completedProjects': projects.filter_by(status='completed').count(),
        'unreadMessages': Message.unread_count_for(user),
        'totalMessages': Message.query_for_user(user).count(),
    }
    if user.role == Role.ADMIN:
        stats['totalCustomers'] = User.query.filter_by(
            role=Role.CUSTOMER, assigned_admin_id=user.id, is_active=True).count()
    elif user.role == Role.CUSTOMER:
        stats['hasAssignedAdmin'] = user.assigned_admin_id is not None
    else:
        raise ValueError(f'Unhandled role: {user.role}')
    return stats


@dashboard_bp.route('/', strict_slashes=False)
@login_required
def overview():
    data = {
        'user': current_user.to_dict(),
        'projects': [p.to_dict() for p in Project.find_active_projects(current_user)],
        'recentMessages': [m.to_dict(viewer=current_user)
                           for m in Message.find_recent_by_user(current_user, limit=5)],
        'stats': _role_stats(current_user),
    }
    if current_user.role == Role.ADMIN:
        data['customers'] = [c.to_dict() for c in User.find_customers_by_admin(current_user)]
    elif current_user.role == Role.CUSTOMER:
        admin = current_user.assigned_admin
        data['assignedAdmin'] = {
            'id': admin.id,
            'name': admin.full_name,
            'email': admin.email,
            'avatar': admin.avatar,
        } if admin else None
    else:
        raise ValueError(f'Unhandled role: {current_user.role}')
    return jsonify({'success': True, 'data': data})


# -- projects -----------------------------------------------------------

@dashboard_bp.route('/projects')
@login_required
def list_projects():
    query = Project.query_for_user(current_user)
    status = request.args.get('status')
    if status:
        query = query.filter_by(status=status)
    projects = query.order_by(Project.updated_at.desc()).all()
    return jsonify({'success': True, 'data': [p.to_dict() for p in projects]})


@dashboard_bp.route('/projects', methods=['POST'])
@admin_required
def create_project():
    """Create a project for one of the admin's own customers."""
    form = ProjectForm().validate_or_raise()
    customer = db.session.get(User, form.customerId.data)
    if customer is None or customer.role != Role.CUSTOMER or not customer.is_active:
        raise ValidationError('Customer not found', details={'customerId': ['Unknown customer']})
    if customer.assigned_admin_id != current_user.id:
        raise ValidationError('Customer is not assigned to you',
                              details={'customerId': ['Customer is assigned to another admin']})

    project = Project(
        name=form.name.data.strip(),
        description=form.description.data or None,
        type=form.type.data or 'website',
        priority=form.priority.data or 'medium',
        status='planning',
        progress=0,
        customer_id=customer.id,
        assigned_admin_id=current_user.id,
        deadline=form.deadline.data,
        tags=[t.strip() for t in form.tags.data if t.strip()],
    )
    db.session.add(project)
    db.session.commit()
    logger.info('Project %s created for customer %s', project.id, customer.email)
    return jsonify({'success': True, 'message': 'Project created', 'data': project.to_dict()}), 201


@dashboard_bp.route('/projects/<int:project_id>')
@login_required
def get_project(project_id):
    project = _get_project(project_id)
    messages = Message.find_by_project(project)
    return jsonify({'success': True, 'data': {
        'project': project.to_dict(),
        'messages': [m.to_dict(viewer=current_user) for m in messages],
    }})


@dashboard_bp.route('/projects/<int:project_id>', methods=['PUT'])
@admin_required
def update_project(project_id):
    """Partial update; status and progress stay consistent."""
    project = _get_project(project_id)
    form = ProjectUpdateForm().validate_or_raise()
    previous_status = project.status
    try:
        if form.provided('name'):
            project.name = form.name.data.strip()
        if form.provided('description'):
            project.description = form.description.data
        if form.provided('priority'):
            project.priority = form.priority.data
        if form.provided('deadline'):
            project.deadline = form.deadline.data
        if form.provided('status'):
            project.update_status(form.status.data)
        if form.provided('progress'):
            project.set_progress(form.progress.data)
    except ValueError as exc:
        db.session.rollback()
        raise ValidationError(str(exc))

    if project.status != previous_status:
        Message.create_system_message(
            project, f'Projektstatus geändert: {previous_status} → {project.status}')
    db.session.commit()
    return jsonify({'success': True, 'message': 'Project updated', 'data': project.to_dict()})


@dashboard_bp.route('/projects/<int:project_id>', methods=['DELETE'])
@admin_required
def delete_project(project_id):
    """Soft delete."""
    project = _get_project(project_id)
    project.is_active = False
    db.session.commit()
    logger.info('Project %s deactivated', project.id)
    return jsonify({'success': True, 'message': 'Project deleted'})


# -- messages -----------------------------------------------------------

@dashboard_bp.route('/messages')
@login_required
def list_messages():
    project_id = request.args.get('projectId', type=int)
    if project_id is not None:
        messages = Message.find_by_project(_get_project(project_id))
    else:
        messages = Message.find_recent_by_user(current_user, limit=50)
    return jsonify({'success': True, 'data': {
        'messages': [m.to_dict(viewer=current_user) for m in messages],
        'unreadCount': Message.unread_count_for(current_user),
    }})


@dashboard_bp.route('/messages', methods=['POST'])
@login_required
def create_message():
    form = MessageForm().validate_or_raise()
    project = _get_project(form.projectId.data)
    parent = None
    if form.parentMessageId.data:
        parent = _get_message(form.parentMessageId.data)
        if parent.project_id != project.id:
            raise ValidationError('Parent message belongs to another project')

    if parent is not None:
        message = parent.reply(current_user, form.content.data.strip())
    else:
        message = Message.from_user(project, current_user, form.content.data.strip())
        db.session.add(message)
    message.priority = form.priority.data or 'normal'
    for entry in form.attachments.entries:
        attachment = entry.form
        message.add_attachment(attachment.filename.data, attachment.originalName.data,
                               attachment.mimeType.data, attachment.size.data or 0, attachment.path.data)
    db.session.commit()
    return jsonify({'success': True, 'message': 'Message sent',
                    'data': message.to_dict(viewer=current_user)}), 201


@dashboard_bp.route('/messages/<int:message_id>/reply', methods=['POST'])
@login_required
def reply_to_message(message_id):
    parent = _get_message(message_id)
    form = ReplyForm().validate_or_raise()
    reply = parent.reply(current_user, form.content.data.strip())
    db.session.commit()
    return jsonify({'success': True, 'data': reply.to_dict(viewer=current_user)}), 201


@dashboard_bp.route('/messages/<int:message_id>', methods=['PUT'])
@login_required
def edit_message(message_id):
    message = _get_message(message_id)
    if message.sender_id != current_user.id:
        raise AuthorizationError('Only the sender can edit this message')
    form = ReplyForm().validate_or_raise()
    message.edit(form.content.data.strip())
    db.session.commit()
    return jsonify({'success': True, 'data': message.to_dict(viewer=current_user)})


@dashboard_bp.route('/messages/<int:message_id>', methods=['DELETE'])
@login_required
def delete_message(message_id):
    """Soft delete by the sender or the project's admin."""
    message = _get_message(message_id)
    if message.sender_id != current_user.id and message.project.assigned_admin_id != current_user.id:
        raise AuthorizationError('Only the sender or the project admin can delete this message')
    message.soft_delete()
    db.session.commit()
    return jsonify({'success': True, 'message': 'Message deleted'})


@dashboard_bp.route('/messages/<int:message_id>/thread')
@login_required
def message_thread(message_id):
    message = _get_message(message_id)
    thread = Message.get_conversation_thread(message)
    return jsonify({'success': True, 'data': [m.to_dict(viewer=current_user) for m in thread]})


@dashboard_bp.route('/messages/<int:message_id>/read', methods=['PUT'])
@login_required
def mark_message_read(message_id):
    message = _get_message(message_id)
    message.mark_as_read_by(current_user)
    db.session.commit()
    return jsonify({'success': True, 'data': message.to_dict(viewer=current_user)})


@dashboard_bp.route('/messages/read-all', methods=['POST'])
@login_required
def mark_all_read():
    payload = request.get_json(silent=True) or {}
    project = None
    if payload.get('projectId') is not None:
        try:
            project = _get_project(int(payload['projectId']))
        except (TypeError, ValueError):
            raise ValidationError('projectId must be an integer')
    count = Message.mark_all_as_read_for(current_user, project)
    db.session.commit()
    return jsonify({'success': True, 'data': {'marked': count}})


# -- customers and profile ----------------------------------------------

@dashboard_bp.route('/customers')
@admin_required
def list_customers():
    customers = []
    for customer in User.find_customers_by_admin(current_user):
        data = customer.to_dict()
        data['projectCount'] = Project.query.filter_by(customer_id=customer.id, is_active=True).count()
        customers.append(data)
    return jsonify({'success': True, 'data': customers})


@dashboard_bp.route('/customers/<int:customer_id>/assign', methods=['PUT'])
@admin_required
def assign_customer(customer_id):
    """Hand one of your customers over to another admin."""
    customer = db.session.get(User, customer_id)
    if (customer is None or customer.role != Role.CUSTOMER
            or customer.assigned_admin_id not in (None, current_user.id)):
        raise NotFoundError('Customer not found')
    form = AssignCustomerForm().validate_or_raise()
    admin = db.session.get(User, form.adminId.data)
    if admin is None or not admin.is_active:
        raise ValidationError('Admin not found')
    try:
        customer.assign_admin(admin)
    except ValueError as exc:
        raise ValidationError(str(exc))
    db.session.commit()
    logger.info('Customer %s assigned to admin %s', customer.email, admin.email)
    return jsonify({'success': True, 'data': customer.to_dict()})


@dashboard_bp.route('/customers/<int:customer_id>', methods=['DELETE'])
@admin_required
def deactivate_customer(customer_id):
    """Accounts are never removed, only deactivated."""
    customer = _get_own_customer(customer_id)
    customer.is_active = False
    db.session.commit()
    logger.info('Customer %s deactivated', customer.email)
    return jsonify({'success': True, 'message': 'Customer deactivated'})


@dashboard_bp.route('/profile', methods=['PUT'])
@login_required
def update_profile():
    form = ProfileForm().validate_or_raise()
    if form.provided('firstName'):
        current_user.first_name = form.firstName.data.strip() or None
    if form.provided('lastName'):
        current_user.last_name = form.lastName.data.strip() or None
    if form.provided('company'):
        current_user.company = form.company.data.strip() or None
    db.session.commit()
    return jsonify({'success': True, 'message': 'Profile updated', 'data': current_user.to_dict()})


@dashboard_bp.route('/stats')
@login_required
def stats():
    data = _role_stats(current_user)
    if current_user.is_admin():
        data['users'] = User.get_stats()
        data['projectsByStatus'] = dict(
            Project.query_for_user(current_user)
            .with_entities(Project.status, db.func.count(Project.id))
            .group_by(Project.status).all())
    return jsonify({'success': True, 'data': data})
