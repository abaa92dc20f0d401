"""Shared sanitization and validation helpers used by services and routes."""
import ipaddress
import re
from datetime import datetime, timezone
from urllib.parse import urlparse

import bleach
from flask import request
from slugify import slugify

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_STRIP_RE = re.compile(r"[\s().-]+")
PHONE_MIN_DIGITS = 10
PHONE_MAX_DIGITS = 15
WEB_SCHEMES = {'http', 'https'}
LINK_SCHEMES = {'http', 'https', 'mailto', 'tel'}
_TRUE_VALUES = {'1', 'true', 'yes', 'on'}
_FALSE_VALUES = {'0', 'false', 'no', 'off'}


def utc_now_naive():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def clean_text(value, max_length=255):
    if value is None:
        return ''
    return str(value).strip()[:max_length]


def sanitize_input(value, max_length=None):
    """Trim free text and escape any markup in it.

    bleach leaves existing character entities alone, so sanitizing an
    already sanitized value is a no-op.
    """
    text = '' if value is None else str(value).strip()
    cleaned = bleach.clean(text, tags=[], attributes={}, strip=False)
    if max_length is not None:
        cleaned = cleaned[:max_length]
    return cleaned


def make_slug(name):
    return slugify(name or '')


def coerce_order(value):
    try:
        parsed = int(value)
    except (TypeError, ValueError, OverflowError):
        try:
            parsed = int(float(value))
        except (TypeError, ValueError, OverflowError):
            return 0
    return max(0, parsed)


def as_flag(value, default=True):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if not text:
        return default
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    return default


def is_valid_email(value):
    return bool(EMAIL_RE.match(value or ''))


def is_valid_url(value):
    raw = (value or '').strip()
    if not raw or any(ch.isspace() for ch in raw):
        return False
    parsed = urlparse(raw)
    return parsed.scheme.lower() in WEB_SCHEMES and bool(parsed.netloc)


def is_valid_link_target(value):
    raw = (value or '').strip()
    if not raw:
        return False
    if raw.startswith('/') or raw.startswith('#'):
        return True
    if any(ch.isspace() for ch in raw):
        return False
    parsed = urlparse(raw)
    scheme = parsed.scheme.lower()
    if scheme in WEB_SCHEMES:
        return bool(parsed.netloc)
    if scheme in LINK_SCHEMES:
        return bool(parsed.path)
    return False


def is_valid_phone(value):
    raw = PHONE_STRIP_RE.sub('', (value or '').strip())
    if raw.startswith('+'):
        raw = raw[1:]
    return raw.isdigit() and PHONE_MIN_DIGITS <= len(raw) <= PHONE_MAX_DIGITS


def normalized_ip(value):
    candidate = (value or '').split(',', 1)[0].strip()
    if not candidate:
        return ''
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return ''


def get_request_ip():
    # request.remote_addr is proxy-aware when ProxyFix is enabled by app config.
    remote_ip = normalized_ip(request.remote_addr)
    return remote_ip or 'unknown'
