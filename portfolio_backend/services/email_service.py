"""Outbound mail through Flask-Mail with the app's email templates."""

import logging
import secrets
import smtplib
import string

from flask import current_app, render_template
from flask_mail import Message

from portfolio_backend.errors import EmailDeliveryError
from portfolio_backend.extensions import mail
from portfolio_backend.models.newsletter import html_to_text

logger = logging.getLogger(__name__)

PASSWORD_SYMBOLS = '!@#$%^&*'
PASSWORD_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits + PASSWORD_SYMBOLS

PROVIDER_LABELS = {'google': 'Google', 'github': 'GitHub'}


def generate_random_password(length=12):
    """Random password with at least one upper, lower, digit and symbol."""
    if length < 4:
        raise ValueError('Password length must be at least 4')
    rng = secrets.SystemRandom()
    chars = [
        rng.choice(string.ascii_uppercase),
        rng.choice(string.ascii_lowercase),
        rng.choice(string.digits),
        rng.choice(PASSWORD_SYMBOLS),
    ]
    chars.extend(rng.choice(PASSWORD_ALPHABET) for _ in range(length - len(chars)))
    rng.shuffle(chars)
    return ''.join(chars)


class EmailService:
    """Thin wrapper around Flask-Mail; raises EmailDeliveryError on transport failure."""

    def send_email(self, to, subject, html, text=None, headers=None, reply_to=None):
        message = Message(
            subject=subject,
            recipients=[to],
            html=html,
            body=text or html_to_text(html),
            sender=current_app.config.get('MAIL_DEFAULT_SENDER'),
            reply_to=reply_to,
            extra_headers=headers,
        )
        try:
            mail.send(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error('Sending "%s" to %s failed: %s', subject, to, exc)
            raise EmailDeliveryError(f'Email delivery failed: {exc}') from exc
        logger.info('Sent "%s" to %s', subject, to)
        return {'messageId': message.msgId, 'accepted': [to]}

    def _render(self, template, **context):
        context.setdefault('site_url', current_app.config['FRONTEND_URL'])
        return render_template(template, **context)

    def send_login_credentials(self, user, password):
        subject = 'Ihre Zugangsdaten zum Kundenbereich'
        login_url = f"{current_app.config['FRONTEND_URL']}/login"
        html = self._render('email/login_credentials.html', subject=subject, user=user,
                            password=password, login_url=login_url)
        text = (f'Hallo {user.full_name},\n\nIhre Zugangsdaten:\nE-Mail: {user.email}\n'
                f'Passwort: {password}\n\nLogin: {login_url}\n')
        return self.send_email(user.email, subject, html, text)

    def send_oauth_welcome_email(self, user, provider):
        provider_label = PROVIDER_LABELS.get(provider, provider)
        subject = f'Willkommen! Ihre Anmeldung mit {provider_label}'
        html = self._render('email/oauth_welcome.html', subject=subject, user=user,
                            provider_label=provider_label,
                            dashboard_url=f"{current_app.config['FRONTEND_URL']}/dashboard")
        return self.send_email(user.email, subject, html)

    def send_contact_notification(self, contact):
        """Notify the site owner about a new contact request."""
        recipient = current_app.config.get('CONTACT_NOTIFY_EMAIL')
        if not recipient:
            logger.warning('CONTACT_NOTIFY_EMAIL not configured; skipping owner notification')
            return None
        subject = f'Neue Kontaktanfrage von {contact.name} ({contact.project_type})'
        html = self._render('email/contact_admin.html', subject=subject, contact=contact)
        return self.send_email(recipient, subject, html, reply_to=contact.email)

    def send_contact_confirmation(self, contact):
        subject = 'Vielen Dank für Ihre Anfrage'
        html = self._render('email/contact_confirmation.html', subject=subject, contact=contact)
        return self.send_email(contact.email, subject, html)

    def send_newsletter_confirmation(self, subscriber):
        """Double opt-in mail with the confirmation link."""
        subject = 'Bitte bestätigen Sie Ihre Newsletter-Anmeldung'
        confirm_url = (f"{current_app.config['FRONTEND_URL']}/newsletter/confirm/"
                       f"{subscriber.confirmation_token}")
        html = self._render('email/newsletter_confirmation.html', subject=subject,
                            subscriber=subscriber, confirm_url=confirm_url)
        return self.send_email(subscriber.email, subject, html)

    def test_connection(self):
        """Open and close an SMTP connection to check the settings."""
        try:
            with mail.connect():
                pass
        except (smtplib.SMTPException, OSError) as exc:
            logger.error('SMTP connection check failed: %s', exc)
            return False
        return True


email_service = EmailService()
