"""Newsletter subscription, personalization, batched dispatch and tracking."""

import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from urllib.parse import quote

from flask import current_app
from markupsafe import escape

from portfolio_backend.errors import EmailDeliveryError, NewsletterDispatchError, NotFoundError
from portfolio_backend.extensions import db
from portfolio_backend.models import NewsletterSubscriber, NewsletterTemplate, NewsletterSendLog
from portfolio_backend.models.newsletter import SUBSCRIBER_SOURCES
from portfolio_backend.services.email_service import email_service

logger = logging.getLogger(__name__)

HREF_RE = re.compile(r'href="(https?://[^"]+)"', re.IGNORECASE)


def chunked(items, size):
    """Split a list into consecutive batches of at most `size` items."""
    if size < 1:
        raise ValueError('Batch size must be positive')
    return [items[i:i + size] for i in range(0, len(items), size)]


class NewsletterService:

    # -- subscription lifecycle ---------------------------------------

    def subscribe(self, email, first_name=None, last_name=None, source='newsletter_signup',
                  ip_address=None, user_agent=None):
        """Start or resume a double opt-in subscription.

        Returns (subscriber, outcome) where outcome is one of
        'already_subscribed', 'confirmation_resent', 'reactivated' or 'created'.
        """
        if source not in SUBSCRIBER_SOURCES:
            raise ValueError(f'Unknown subscriber source: {source}')
        subscriber = NewsletterSubscriber.find_by_email(email)
        if subscriber is not None:
            if subscriber.is_active and subscriber.is_confirmed:
                return subscriber, 'already_subscribed'
            if subscriber.is_active:
                if not subscriber.confirmation_token:
                    subscriber.generate_tokens()
                outcome = 'confirmation_resent'
            else:
                subscriber.reactivate(first_name, last_name)
                outcome = 'reactivated'
        else:
            subscriber = NewsletterSubscriber(
                email=email,
                first_name=first_name,
                last_name=last_name,
                source=source,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            db.session.add(subscriber)
            outcome = 'created'
        db.session.commit()
        logger.info('Newsletter subscription %s for %s', outcome, subscriber.email)
        return subscriber, outcome

    def send_confirmation_email(self, subscriber):
        """Best-effort double opt-in mail; returns whether it went out."""
        try:
            email_service.send_newsletter_confirmation(subscriber)
        except EmailDeliveryError:
            logger.warning('Confirmation email to %s failed', subscriber.email)
            return False
        return True

    def confirm(self, token):
        subscriber = NewsletterSubscriber.query.filter_by(confirmation_token=token, is_active=True).first()
        if subscriber is None:
            raise NewsletterDispatchError('Invalid or expired confirmation link', code='INVALID_TOKEN')
        subscriber.confirm()
        db.session.commit()
        logger.info('Subscriber %s confirmed', subscriber.email)
        return subscriber

    def unsubscribe(self, token, reason='user_request'):
        subscriber = NewsletterSubscriber.query.filter_by(unsubscribe_token=token).first()
        if subscriber is None:
            raise NotFoundError('Invalid unsubscribe link')
        if subscriber.is_active:
            subscriber.unsubscribe(reason)
            db.session.commit()
            logger.info('Subscriber %s unsubscribed (%s)', subscriber.email, reason)
        return subscriber

    # -- personalization ----------------------------------------------

    def unsubscribe_url(self, subscriber):
        return f"{current_app.config['FRONTEND_URL']}/newsletter/unsubscribe/{subscriber.unsubscribe_token}"

    def tracking_pixel_url(self, subscriber_id, template_id):
        return f"{current_app.config['BACKEND_URL']}/api/newsletter/track/open/{subscriber_id}/{template_id}"

    def click_tracking_url(self, subscriber_id, template_id, url):
        return (f"{current_app.config['BACKEND_URL']}/api/newsletter/track/click/"
                f"{subscriber_id}/{template_id}?url={quote(url, safe='')}")

    def personalize_content(self, template, subscriber):
        """Subject, HTML and text for one recipient, with tracking and unsubscribe links."""
        unsubscribe_url = self.unsubscribe_url(subscriber)
        values = {
            'firstName': subscriber.first_name or 'Newsletter-Abonnent',
            'lastName': subscriber.last_name or '',
            'fullName': subscriber.full_name,
            'email': subscriber.email,
            'unsubscribeUrl': unsubscribe_url,
        }

        def fill(text, markup=False):
            for key, value in values.items():
                text = text.replace('{{' + key + '}}', str(escape(value)) if markup else value)
            return text

        html = fill(template.html_content, markup=True)
        text = fill(template.text_content or '')

        if current_app.config.get('NEWSLETTER_TRACK_CLICKS'):
            def track(match):
                url = match.group(1)
                if url == unsubscribe_url:
                    return match.group(0)
                return f'href="{self.click_tracking_url(subscriber.id, template.id, url)}"'
            html = HREF_RE.sub(track, html)

        if unsubscribe_url not in html:
            footer = (
                '<div style="margin-top: 32px; padding-top: 16px; border-top: 1px solid #e5e7eb; '
                'font-size: 12px; color: #6b7280; text-align: center;">'
                'Sie erhalten diese E-Mail, weil Sie den Newsletter abonniert haben. '
                f'<a href="{unsubscribe_url}" style="color: #6b7280;">Abmelden</a></div>'
            )
            html = self._insert_before_body_end(html, footer)

        pixel = (f'<img src="{self.tracking_pixel_url(subscriber.id, template.id)}" '
                 'width="1" height="1" style="display:none;" alt="">')
        html = self._insert_before_body_end(html, pixel)

        if text:
            text = f'{text}\n\n---\nZum Abmelden: {unsubscribe_url}'

        return {
            'subject': fill(template.subject),
            'html': html,
            'text': text or None,
            'unsubscribe_url': unsubscribe_url,
        }

    @staticmethod
    def _insert_before_body_end(html, snippet):
        index = html.lower().rfind('</body>')
        if index == -1:
            return html + snippet
        return html[:index] + snippet + html[index:]

    # -- dispatch -----------------------------------------------------

    def subscriber_count(self):
        return NewsletterSubscriber.active_query().count()

    def send_newsletter(self, template_id):
        """Send a template to every confirmed, active subscriber in batches."""
        template = db.session.get(NewsletterTemplate, template_id)
        if template is None:
            raise NotFoundError('Newsletter not found')
        if template.is_sent:
            raise NewsletterDispatchError('Newsletter has already been sent', code='ALREADY_SENT')

        try:
            template.status = 'sending'
            db.session.commit()

            subscribers = NewsletterSubscriber.get_active_subscribers()
            if not subscribers:
                raise NewsletterDispatchError('No active subscribers found', code='NO_SUBSCRIBERS')

            app = current_app._get_current_object()
            batches = chunked(subscribers, app.config['NEWSLETTER_BATCH_SIZE'])
            delay = app.config['NEWSLETTER_BATCH_DELAY']
            logger.info('Sending newsletter %s to %d subscribers in %d batches',
                        template.id, len(subscribers), len(batches))

            sent_count = 0
            failed_count = 0
            for index, batch in enumerate(batches):
                sent, failed = self._send_batch(app, template, batch)
                sent_count += sent
                failed_count += failed
                logger.debug('Batch %d/%d: %d sent, %d failed', index + 1, len(batches), sent, failed)
                if delay and index < len(batches) - 1:
                    time.sleep(delay)

            template.mark_as_sent(sent_count)
            db.session.commit()
        except Exception:
            db.session.rollback()
            template.status = 'failed'
            db.session.commit()
            logger.exception('Newsletter %s dispatch failed', template_id)
            raise

        logger.info('Newsletter %s sent: %d delivered, %d failed', template.id, sent_count, failed_count)
        return {
            'templateId': template.id,
            'totalSubscribers': len(subscribers),
            'sentCount': sent_count,
            'failedCount': failed_count,
            'batches': len(batches),
            'sentAt': template.sent_at.isoformat(),
        }

    def _send_batch(self, app, template, batch):
        """Send one batch concurrently and record each recipient's outcome."""
        jobs = []
        failed = 0
        for subscriber in batch:
            try:
                content = self.personalize_content(template, subscriber)
            except Exception as exc:
                logger.exception('Personalizing newsletter %s for %s failed', template.id, subscriber.email)
                self._record_failure(template, subscriber, template.subject, exc)
                failed += 1
                continue
            log = NewsletterSendLog(
                newsletter_id=template.id,
                subscriber_id=subscriber.id,
                recipient_email=subscriber.email,
                subject=content['subject'],
                status='pending',
            )
            db.session.add(log)
            jobs.append((subscriber, log, subscriber.email, content))
        db.session.commit()

        with ThreadPoolExecutor(max_workers=max(len(jobs), 1)) as executor:
            futures = [executor.submit(self._deliver, app, email, content)
                       for _, _, email, content in jobs]

        sent = 0
        for (subscriber, log, email, content), future in zip(jobs, futures):
            try:
                result = future.result()
            except Exception as exc:
                logger.warning('Newsletter %s to %s failed: %s', template.id, email, exc)
                self._record_failure(template, subscriber, content['subject'], exc)
                failed += 1
                continue
            log.mark_sent(provider_message_id=result.get('messageId'), provider_response=result)
            subscriber.total_emails_received += 1
            sent += 1
        db.session.commit()
        return sent, failed

    @staticmethod
    def _deliver(app, email, content):
        with app.app_context():
            return email_service.send_email(
                email,
                content['subject'],
                content['html'],
                content['text'],
                headers={'List-Unsubscribe': f"<{content['unsubscribe_url']}>"},
            )

    @staticmethod
    def _record_failure(template, subscriber, subject, exc):
        db.session.add(NewsletterSendLog(
            newsletter_id=template.id,
            subscriber_id=subscriber.id,
            recipient_email=subscriber.email,
            subject=subject,
            status='failed',
            error_message=str(exc)[:1000],
        ))

    def process_scheduled_newsletters(self, now=None):
        """Send every scheduled newsletter that is due; failures are isolated per template."""
        results = []
        for template in NewsletterTemplate.get_scheduled_newsletters(now):
            template_id = template.id
            try:
                results.append({'success': True, **self.send_newsletter(template_id)})
            except Exception as exc:
                logger.error('Scheduled newsletter %s failed: %s', template_id, exc)
                results.append({'templateId': template_id, 'success': False, 'error': str(exc)})
        return results

    # -- tracking -----------------------------------------------------

    def track_open(self, subscriber_id, newsletter_id):
        """Record an open. Aggregate counters move on the first open only."""
        log = NewsletterSendLog.find_for_tracking(subscriber_id, newsletter_id)
        if log is None:
            return False
        now = datetime.utcnow()
        log.open_count += 1
        log.advance_status('opened')
        if log.opened_at is None:
            log.opened_at = now
            template = db.session.get(NewsletterTemplate, newsletter_id)
            if template is not None:
                template.opened_count += 1
            subscriber = log.subscriber
            if subscriber is not None:
                subscriber.total_emails_opened += 1
                subscriber.last_opened_at = now
        db.session.commit()
        return True

    def track_click(self, subscriber_id, newsletter_id):
        """Record a click; the first click also counts towards the template's clicks."""
        log = NewsletterSendLog.find_for_tracking(subscriber_id, newsletter_id)
        if log is None:
            return False
        now = datetime.utcnow()
        log.click_count += 1
        log.advance_status('clicked')
        if log.first_clicked_at is None:
            log.first_clicked_at = now
            template = db.session.get(NewsletterTemplate, newsletter_id)
            if template is not None:
                template.clicked_count += 1
        subscriber = log.subscriber
        if subscriber is not None:
            subscriber.total_links_clicked += 1
            subscriber.last_clicked_at = now
        db.session.commit()
        return True

    # -- reporting ----------------------------------------------------

    def get_stats(self):
        active = NewsletterSubscriber.query.filter_by(is_active=True)
        total = active.count()
        confirmed = active.filter_by(is_confirmed=True).count()
        recent = NewsletterTemplate.query.filter_by(status='sent').order_by(
            NewsletterTemplate.sent_at.desc()).limit(5).all()
        avg_open_rate = round(sum(t.open_rate for t in recent) / len(recent)) if recent else 0
        return {
            'totalSubscribers': total,
            'confirmedSubscribers': confirmed,
            'unconfirmedSubscribers': total - confirmed,
            'unsubscribed': NewsletterSubscriber.query.filter_by(is_active=False).count(),
            'totalNewslettersSent': NewsletterTemplate.query.filter_by(status='sent').count(),
            'scheduledNewsletters': NewsletterTemplate.query.filter_by(status='scheduled').count(),
            'avgOpenRate': avg_open_rate,
            'confirmationRate': round(confirmed / total * 100) if total else 0,
        }


newsletter_service = NewsletterService()
