"""Contact form intake and admin triage."""

import logging
from datetime import datetime

from flask import Blueprint, jsonify, request
from flask_login import current_user
from sqlalchemy.exc import SQLAlchemyError

from portfolio_backend.errors import EmailDeliveryError
from portfolio_backend.extensions import db, limiter
from portfolio_backend.forms.contact import ContactForm, ContactUpdateForm
from portfolio_backend.forms.newsletter import SubscribeForm
from portfolio_backend.models import Contact
from portfolio_backend.services.email_service import email_service
from portfolio_backend.services.newsletter_service import newsletter_service
from portfolio_backend.utils import client_ip, paginate
from portfolio_backend.utils.decorators import admin_required

logger = logging.getLogger(__name__)

contact_bp = Blueprint('contact', __name__)


def _notify(contact):
    """Owner notification and customer confirmation; failures never fail the request."""
    sent = {'admin': False, 'customer': False}
    try:
        sent['admin'] = email_service.send_contact_notification(contact) is not None
    except EmailDeliveryError:
        logger.warning('Owner notification for contact %s failed', contact.id)
    try:
        email_service.send_contact_confirmation(contact)
        sent['customer'] = True
    except EmailDeliveryError:
        logger.warning('Confirmation for contact %s failed', contact.id)
    return sent


def _enroll_in_newsletter(contact):
    """Newsletter opt-in from the contact form; the stored contact stands either way."""
    first_name, _, last_name = contact.name.partition(' ')
    try:
        subscriber, outcome = newsletter_service.subscribe(
            contact.email, first_name, last_name or None, source='contact_form',
            ip_address=contact.ip_address, user_agent=contact.user_agent)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception('Newsletter opt-in for contact %s failed', contact.id)
        return
    if outcome != 'already_subscribed':
        newsletter_service.send_confirmation_email(subscriber)


@contact_bp.route('/', methods=['POST'], strict_slashes=False)
@limiter.limit('3 per 15 minutes')
def submit():
    """Store a contact request and send the notification emails."""
    form = ContactForm().validate_or_raise()
    contact = Contact(
        name=form.name.data.strip(),
        email=form.email.data.strip(),
        phone=form.phone.data or None,
        company=form.company.data or None,
        project_type=form.projectType.data or 'website',
        budget=form.budget.data or None,
        timeline=form.timeline.data or None,
        message=form.message.data.strip(),
        newsletter=form.newsletter.data,
        status='new',
        source='contact_page',
        ip_address=client_ip(),
        user_agent=(request.user_agent.string or '')[:500],
    )
    db.session.add(contact)
    db.session.commit()
    logger.info('Contact request %s from %s', contact.id, contact.email)

    emails = _notify(contact)

    if contact.newsletter:
        _enroll_in_newsletter(contact)

    return jsonify({
        'success': True,
        'message': 'Thank you for your message. I will get back to you shortly.',
        'data': {
            'contactId': contact.id,
            'timestamp': contact.created_at.isoformat(),
            'emailsSent': emails,
        },
    })


@contact_bp.route('/newsletter', methods=['POST'])
@limiter.limit('3 per 15 minutes')
def quick_subscribe():
    """Newsletter signup from the contact page footer."""
    form = SubscribeForm().validate_or_raise()
    subscriber, outcome = newsletter_service.subscribe(
        form.email.data, form.firstName.data or None, form.lastName.data or None,
        source='contact_form', ip_address=client_ip(),
        user_agent=(request.user_agent.string or '')[:500])
    if outcome == 'already_subscribed':
        return jsonify({'success': True, 'alreadySubscribed': True,
                        'message': 'This email is already subscribed'})
    email_sent = newsletter_service.send_confirmation_email(subscriber)
    return jsonify({
        'success': True,
        'message': 'Please check your inbox to confirm your subscription',
        'data': {'email': subscriber.email, 'confirmationSent': email_sent},
    })


@contact_bp.route('/', methods=['GET'], strict_slashes=False)
@admin_required
def list_contacts():
    query = Contact.query
    status = request.args.get('status')
    if status:
        query = query.filter_by(status=status)
    search = request.args.get('search', '').strip()
    if search:
        query = Contact.search(search, query)
    result, pagination = paginate(query.order_by(Contact.created_at.desc()))
    return jsonify({
        'success': True,
        'data': {
            'contacts': [c.to_dict() for c in result.items],
            'pagination': pagination,
        },
    })


@contact_bp.route('/statistics')
@admin_required
def statistics():
    return jsonify({'success': True, 'data': Contact.get_statistics()})


@contact_bp.route('/<int:contact_id>')
@admin_required
def get_contact(contact_id):
    contact = db.get_or_404(Contact, contact_id)
    contact.mark_as_read()
    db.session.commit()
    return jsonify({'success': True, 'data': contact.to_dict()})


@contact_bp.route('/<int:contact_id>', methods=['PATCH'])
@admin_required
def update_contact(contact_id):
    """Admin triage: status, priority, notes, tags and replied flag."""
    contact = db.get_or_404(Contact, contact_id)
    form = ContactUpdateForm().validate_or_raise()
    if form.provided('status'):
        contact.set_status(form.status.data)
    if form.provided('priority'):
        contact.set_priority(form.priority.data)
    if form.provided('adminNotes'):
        contact.admin_notes = form.adminNotes.data
    if form.provided('tags'):
        contact.tags = []
        for tag in form.tags.data:
            contact.add_tag(tag)
    if form.replied.data and not contact.is_replied:
        contact.mark_as_replied(current_user.email)
    contact.updated_at = datetime.utcnow()
    db.session.commit()
    return jsonify({'success': True, 'data': contact.to_dict()})
