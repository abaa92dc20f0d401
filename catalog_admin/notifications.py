"""Outgoing admin email: Mailgun HTTP API first, SMTP as the fallback."""
import base64
import smtplib
import urllib.error
import urllib.parse
import urllib.request
from email.message import EmailMessage

from flask import current_app

MAILGUN_ENDPOINT = 'https://api.mailgun.net/v3/{domain}/messages'


def _header_safe(value, max_length=240):
    # CR/LF would let a caller smuggle extra headers in.
    collapsed = ' '.join(str(value or '').replace('\r', ' ').replace('\n', ' ').split())
    return collapsed[:max_length]


def _mailgun_send(subject, body, recipient, sender):
    config = current_app.config
    api_key = (config.get('MAILGUN_API_KEY') or '').strip()
    domain = (config.get('MAILGUN_DOMAIN') or '').strip()
    if not (api_key and domain):
        return None

    form = urllib.parse.urlencode({
        'from': sender,
        'to': recipient,
        'subject': subject,
        'text': body,
    }).encode('utf-8')
    credentials = base64.b64encode(f'api:{api_key}'.encode()).decode()
    http_request = urllib.request.Request(MAILGUN_ENDPOINT.format(domain=domain), data=form, method='POST')
    http_request.add_header('Authorization', f'Basic {credentials}')
    try:
        with urllib.request.urlopen(http_request, timeout=15):  # nosec B310
            pass
    except urllib.error.HTTPError as exc:
        detail = exc.read().decode('utf-8', errors='replace')
        current_app.logger.error('Mailgun rejected the message (%s): %s', exc.code, detail)
        return False
    except Exception:
        current_app.logger.exception('Mailgun delivery failed.')
        return False
    current_app.logger.info('Mailgun accepted the message for %s.', recipient)
    return True


def _smtp_send(subject, body, recipient, sender):
    config = current_app.config
    host = (config.get('SMTP_HOST') or '').strip()
    if not host:
        return None

    message = EmailMessage()
    message['Subject'] = subject
    message['From'] = sender
    message['To'] = recipient
    message.set_content(body)

    port = int(config.get('SMTP_PORT') or 587)
    use_ssl = bool(config.get('SMTP_USE_SSL'))
    client_class = smtplib.SMTP_SSL if use_ssl else smtplib.SMTP
    try:
        with client_class(host=host, port=port, timeout=12) as smtp:
            if config.get('SMTP_USE_TLS') and not use_ssl:
                smtp.starttls()
            username = config.get('SMTP_USERNAME') or ''
            password = config.get('SMTP_PASSWORD') or ''
            if username and password:
                smtp.login(username, password)
            smtp.send_message(message)
    except Exception:
        current_app.logger.exception('SMTP delivery failed.')
        return False
    return True


def send_email(subject, body, recipient):
    """Deliver one plain-text message. Returns False when nothing could send it."""
    recipient = _header_safe(recipient, max_length=320)
    if not recipient:
        return False
    sender = _header_safe(current_app.config.get('MAIL_FROM') or 'no-reply@localhost', max_length=254)
    subject = _header_safe(subject)

    for transport in (_mailgun_send, _smtp_send):
        delivered = transport(subject, body, recipient, sender)
        if delivered is not None:
            return delivered
    current_app.logger.warning('No email transport configured (MAILGUN_API_KEY+MAILGUN_DOMAIN or SMTP_HOST).')
    return False


def send_password_reset_email(recipient, reset_url):
    ttl_minutes = int(current_app.config.get('PASSWORD_RESET_TOKEN_TTL_SECONDS', 3600)) // 60
    body = '\n'.join([
        'A password reset was requested for your catalog admin account.',
        '',
        'Use this link to choose a new password:',
        reset_url,
        '',
        f'The link expires in {ttl_minutes} minutes and works only once.',
        'If you did not ask for a reset, you can ignore this email.',
    ])
    return send_email('[Catalog Admin] Reset your password', body, recipient)
