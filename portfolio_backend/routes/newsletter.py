"""Newsletter administration, public double opt-in and tracking endpoints."""

import base64
import logging
from urllib.parse import urlparse

from flask import Blueprint, Response, jsonify, redirect, request
from flask_login import current_user

from portfolio_backend.errors import NewsletterDispatchError, ValidationError
from portfolio_backend.extensions import db, limiter
from portfolio_backend.forms.newsletter import (SubscribeForm, TemplateForm, TemplateUpdateForm,
                                                SendNewsletterForm)
from portfolio_backend.models import NewsletterSubscriber, NewsletterTemplate, NewsletterSendLog
from portfolio_backend.services.newsletter_service import newsletter_service
from portfolio_backend.utils import client_ip, paginate
from portfolio_backend.utils.decorators import admin_required

logger = logging.getLogger(__name__)

newsletter_bp = Blueprint('newsletter', __name__)

# 1x1 transparent PNG
TRACKING_PIXEL = base64.b64decode(
    'iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII='
)


# -- subscribers (admin) --------------------------------------------------

@newsletter_bp.route('/subscribers')
@admin_required
def list_subscribers():
    query = NewsletterSubscriber.query
    status = request.args.get('status')
    if status == 'active':
        query = query.filter_by(is_active=True, is_confirmed=True)
    elif status == 'unconfirmed':
        query = query.filter_by(is_active=True, is_confirmed=False)
    elif status == 'unsubscribed':
        query = query.filter_by(is_active=False)
    search = request.args.get('search', '').strip()
    if search:
        pattern = f'%{search}%'
        query = query.filter(db.or_(
            NewsletterSubscriber.email.ilike(pattern),
            NewsletterSubscriber.first_name.ilike(pattern),
            NewsletterSubscriber.last_name.ilike(pattern),
        ))
    result, pagination = paginate(query.order_by(NewsletterSubscriber.created_at.desc()), default_limit=50)
    return jsonify({'success': True, 'data': {
        'subscribers': [s.to_dict() for s in result.items],
        'pagination': pagination,
    }})


@newsletter_bp.route('/subscribers', methods=['POST'])
@admin_required
def add_subscriber():
    """Manual import; the subscriber is confirmed immediately."""
    form = SubscribeForm().validate_or_raise()
    if NewsletterSubscriber.find_by_email(form.email.data):
        raise ValidationError('Subscriber already exists', code='ALREADY_EXISTS')
    subscriber = NewsletterSubscriber(
        email=form.email.data,
        first_name=form.firstName.data or None,
        last_name=form.lastName.data or None,
        source='manual_import',
    )
    subscriber.confirm()
    db.session.add(subscriber)
    db.session.commit()
    logger.info('Subscriber %s imported by %s', subscriber.email, current_user.email)
    return jsonify({'success': True, 'data': subscriber.to_dict()}), 201


@newsletter_bp.route('/subscribers/<int:subscriber_id>', methods=['DELETE'])
@admin_required
def remove_subscriber(subscriber_id):
    subscriber = db.get_or_404(NewsletterSubscriber, subscriber_id)
    subscriber.unsubscribe('admin_action')
    db.session.commit()
    return jsonify({'success': True, 'message': 'Subscriber removed'})


# -- templates (admin) ----------------------------------------------------

@newsletter_bp.route('/templates')
@admin_required
def list_templates():
    query = NewsletterTemplate.query
    status = request.args.get('status')
    if status:
        query = query.filter_by(status=status)
    result, pagination = paginate(query.order_by(NewsletterTemplate.created_at.desc()), default_limit=20)
    return jsonify({'success': True, 'data': {
        'templates': [t.to_dict(include_content=False) for t in result.items],
        'pagination': pagination,
    }})


@newsletter_bp.route('/templates/<int:template_id>')
@admin_required
def get_template(template_id):
    template = db.get_or_404(NewsletterTemplate, template_id)
    return jsonify({'success': True, 'data': template.to_dict()})


@newsletter_bp.route('/templates', methods=['POST'])
@admin_required
def create_template():
    form = TemplateForm().validate_or_raise()
    template = NewsletterTemplate(
        name=form.name.data.strip(),
        subject=form.subject.data.strip(),
        preheader=form.preheader.data or None,
        html_content=form.content.html.data,
        text_content=form.content.text.data or None,
        json_content=form.payload.get('content', {}).get('json'),
        images=[i for i in form.images.data if i],
        is_template=form.isTemplate.data,
        template_category=form.templateCategory.data or 'newsletter',
        created_by_id=current_user.id,
        status='draft',
    )
    template.schedule_for(form.scheduledDate.data)
    db.session.add(template)
    db.session.commit()
    logger.info('Newsletter template %s created', template.id)
    return jsonify({'success': True, 'data': template.to_dict()}), 201


@newsletter_bp.route('/templates/<int:template_id>', methods=['PUT'])
@admin_required
def update_template(template_id):
    template = db.get_or_404(NewsletterTemplate, template_id)
    if template.is_sent:
        raise ValidationError('A sent newsletter cannot be edited', code='ALREADY_SENT')
    form = TemplateUpdateForm().validate_or_raise()
    if form.provided('name') and form.name.data.strip():
        template.name = form.name.data.strip()
    if form.provided('subject') and form.subject.data.strip():
        template.subject = form.subject.data.strip()
    if form.provided('preheader'):
        template.preheader = form.preheader.data
    if form.provided('content'):
        if form.content.html.data:
            template.html_content = form.content.html.data
            # re-derived from the new HTML unless given
            template.text_content = form.content.text.data or None
        elif form.content.text.data:
            template.text_content = form.content.text.data
        if 'json' in form.payload['content']:
            template.json_content = form.payload['content']['json']
    if form.provided('images'):
        template.images = [i for i in form.images.data if i]
    if form.provided('isTemplate'):
        template.is_template = form.isTemplate.data
    if form.provided('templateCategory'):
        template.template_category = form.templateCategory.data
    if 'scheduledDate' in form.payload:
        template.schedule_for(form.scheduledDate.data)
    db.session.commit()
    return jsonify({'success': True, 'data': template.to_dict()})


@newsletter_bp.route('/templates/<int:template_id>', methods=['DELETE'])
@admin_required
def delete_template(template_id):
    template = db.get_or_404(NewsletterTemplate, template_id)
    if template.is_sent:
        raise ValidationError('A sent newsletter cannot be deleted', code='ALREADY_SENT')
    NewsletterSendLog.query.filter_by(newsletter_id=template.id).delete()
    db.session.delete(template)
    db.session.commit()
    return jsonify({'success': True, 'message': 'Template deleted'})


@newsletter_bp.route('/templates/<int:template_id>/preview', methods=['POST'])
@admin_required
def preview_template(template_id):
    template = db.get_or_404(NewsletterTemplate, template_id)
    payload = request.get_json(silent=True) or {}
    fields = {'firstName': 'first_name', 'lastName': 'last_name', 'email': 'email'}
    sample = {arg: str(payload[key]) for key, arg in fields.items() if payload.get(key)}
    return jsonify({'success': True, 'data': template.generate_preview(**sample)})


@newsletter_bp.route('/templates/<int:template_id>/send', methods=['POST'])
@admin_required
def send_template(template_id):
    """Two-step send: without confirm=true only the recipient count is returned."""
    template = db.get_or_404(NewsletterTemplate, template_id)
    if template.is_sent:
        raise NewsletterDispatchError('Newsletter has already been sent', code='ALREADY_SENT')
    form = SendNewsletterForm()
    if not form.confirm.data:
        return jsonify({
            'success': False,
            'requiresConfirmation': True,
            'message': 'Please confirm sending this newsletter',
            'data': {'subscriberCount': newsletter_service.subscriber_count()},
        })
    result = newsletter_service.send_newsletter(template.id)
    return jsonify({'success': True, 'message': 'Newsletter sent', 'data': result})


@newsletter_bp.route('/templates/<int:template_id>/logs')
@admin_required
def template_logs(template_id):
    template = db.get_or_404(NewsletterTemplate, template_id)
    query = NewsletterSendLog.query.filter_by(newsletter_id=template.id)
    status = request.args.get('status')
    if status:
        query = query.filter_by(status=status)
    result, pagination = paginate(query.order_by(NewsletterSendLog.id.asc()), default_limit=50)
    return jsonify({'success': True, 'data': {
        'logs': [log.to_dict() for log in result.items],
        'pagination': pagination,
    }})


@newsletter_bp.route('/stats')
@admin_required
def stats():
    return jsonify({'success': True, 'data': newsletter_service.get_stats()})


# -- public double opt-in -------------------------------------------------

@newsletter_bp.route('/subscribe', methods=['POST'])
@limiter.limit('5 per 15 minutes')
def subscribe():
    form = SubscribeForm().validate_or_raise()
    subscriber, outcome = newsletter_service.subscribe(
        form.email.data, form.firstName.data or None, form.lastName.data or None,
        source='newsletter_signup', ip_address=client_ip(),
        user_agent=(request.user_agent.string or '')[:500])
    if outcome == 'already_subscribed':
        return jsonify({'success': True, 'alreadySubscribed': True,
                        'message': 'You are already subscribed'})
    email_sent = newsletter_service.send_confirmation_email(subscriber)
    return jsonify({
        'success': True,
        'message': 'Please check your inbox to confirm your subscription',
        'data': {'email': subscriber.email, 'outcome': outcome, 'confirmationSent': email_sent},
    }), 201 if outcome == 'created' else 200


@newsletter_bp.route('/confirm/<token>')
def confirm(token):
    subscriber = newsletter_service.confirm(token)
    return jsonify({'success': True, 'message': 'Subscription confirmed',
                    'data': {'email': subscriber.email}})


@newsletter_bp.route('/unsubscribe/<token>', methods=['GET', 'POST'])
def unsubscribe(token):
    subscriber = newsletter_service.unsubscribe(token)
    return jsonify({'success': True, 'message': 'You have been unsubscribed',
                    'data': {'email': subscriber.email}})


# -- tracking -------------------------------------------------------------

def _tracking_ids(subscriber_id, newsletter_id):
    try:
        return int(subscriber_id), int(newsletter_id)
    except ValueError:
        return None


@newsletter_bp.route('/track/open/<subscriber_id>/<newsletter_id>')
def track_open(subscriber_id, newsletter_id):
    """Always answers with the pixel; tracking problems are only logged."""
    ids = _tracking_ids(subscriber_id, newsletter_id)
    if ids is not None:
        try:
            newsletter_service.track_open(*ids)
        except Exception:
            db.session.rollback()
            logger.exception('Open tracking failed for %s/%s', subscriber_id, newsletter_id)
    response = Response(TRACKING_PIXEL, mimetype='image/png')
    response.headers['Cache-Control'] = 'no-store, no-cache, must-revalidate, private'
    return response


@newsletter_bp.route('/track/click/<subscriber_id>/<newsletter_id>')
def track_click(subscriber_id, newsletter_id):
    """Redirect to the target whether or not the click could be recorded."""
    url = request.args.get('url', '').strip()
    if not url:
        raise ValidationError('Missing url parameter')
    if urlparse(url).scheme not in ('http', 'https'):
        raise ValidationError('Invalid url parameter')
    ids = _tracking_ids(subscriber_id, newsletter_id)
    if ids is not None:
        try:
            newsletter_service.track_click(*ids)
        except Exception:
            db.session.rollback()
            logger.exception('Click tracking failed for %s/%s', subscriber_id, newsletter_id)
    return redirect(url)
