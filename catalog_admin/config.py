import os

basedir = os.path.abspath(os.path.dirname(__file__))


def _is_production_runtime():
    flask_env = (os.environ.get('FLASK_ENV') or '').strip().lower()
    app_env = (os.environ.get('APP_ENV') or '').strip().lower()
    return flask_env == 'production' or app_env == 'production'


def _as_bool(value, default=False):
    if value is None:
        return default
    return str(value).strip().lower() in {'1', 'true', 'yes', 'on'}


def _as_int(value, default):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value, default):
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _database_url():
    raw = (os.environ.get('DATABASE_URL') or '').strip()
    if raw.startswith('postgres://'):
        raw = raw.replace('postgres://', 'postgresql://', 1)
    if raw:
        return raw
    return 'sqlite:///' + os.path.join(basedir, 'catalog.db')


def _database_engine_options(database_url):
    if database_url.startswith('sqlite'):
        return {}
    return {
        'pool_pre_ping': True,
        'pool_recycle': 300,
    }


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or ''
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_ENGINE_OPTIONS = _database_engine_options(SQLALCHEMY_DATABASE_URI)
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Durable key/value file standing in for the browser's local storage.
    LOCAL_STORAGE_PATH = (os.environ.get('LOCAL_STORAGE_PATH') or '').strip() or os.path.join(
        basedir, 'local_storage.json'
    )

    LOGIN_MAX_ATTEMPTS = max(1, _as_int(os.environ.get('LOGIN_MAX_ATTEMPTS'), 5))
    LOGIN_LOCKOUT_SECONDS = max(1, _as_int(os.environ.get('LOGIN_LOCKOUT_SECONDS'), 15 * 60))
    RECENT_LOGIN_SECONDS = max(1, _as_int(os.environ.get('RECENT_LOGIN_SECONDS'), 300))
    MIN_PASSWORD_LENGTH = max(1, _as_int(os.environ.get('MIN_PASSWORD_LENGTH'), 6))
    PASSWORD_RESET_TOKEN_TTL_SECONDS = _as_int(os.environ.get('PASSWORD_RESET_TOKEN_TTL_SECONDS'), 3600)

    ADMIN_EMAIL = (os.environ.get('ADMIN_EMAIL') or 'admin@example.com').strip().lower()
    ADMIN_PASSWORD = os.environ.get('ADMIN_PASSWORD') or ''

    CSRF_ENABLED = _as_bool(os.environ.get('CSRF_ENABLED'), True)
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    SESSION_COOKIE_SECURE = _as_bool(
        os.environ.get('SESSION_COOKIE_SECURE'),
        ((os.environ.get('PREFERRED_URL_SCHEME') or '').lower() == 'https') or _is_production_runtime(),
    )
    REMEMBER_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_SAMESITE = 'Lax'
    REMEMBER_COOKIE_SECURE = SESSION_COOKIE_SECURE
    TRUST_PROXY_HEADERS = _as_bool(os.environ.get('TRUST_PROXY_HEADERS'), False)
    PREFERRED_URL_SCHEME = os.environ.get('PREFERRED_URL_SCHEME') or ('https' if SESSION_COOKIE_SECURE else 'http')
    APP_BASE_URL = (os.environ.get('APP_BASE_URL') or '').rstrip('/')
    HSTS_ENABLED = _as_bool(os.environ.get('HSTS_ENABLED'), True)
    HSTS_MAX_AGE = _as_int(os.environ.get('HSTS_MAX_AGE'), 31536000)
    HSTS_INCLUDE_SUBDOMAINS = _as_bool(os.environ.get('HSTS_INCLUDE_SUBDOMAINS'), True)
    PUBLIC_CACHE_SECONDS = max(0, _as_int(os.environ.get('PUBLIC_CACHE_SECONDS'), 120))

    SMTP_HOST = (os.environ.get('SMTP_HOST') or '').strip()
    SMTP_PORT = _as_int(os.environ.get('SMTP_PORT'), 587)
    SMTP_USERNAME = (os.environ.get('SMTP_USERNAME') or '').strip()
    SMTP_PASSWORD = os.environ.get('SMTP_PASSWORD') or ''
    SMTP_USE_TLS = _as_bool(os.environ.get('SMTP_USE_TLS'), True)
    SMTP_USE_SSL = _as_bool(os.environ.get('SMTP_USE_SSL'), False)
    MAIL_FROM = (os.environ.get('MAIL_FROM') or SMTP_USERNAME or 'no-reply@localhost').strip()

    MAILGUN_API_KEY = (os.environ.get('MAILGUN_API_KEY') or '').strip()
    MAILGUN_DOMAIN = (os.environ.get('MAILGUN_DOMAIN') or '').strip()

    SENTRY_DSN = (os.environ.get('SENTRY_DSN') or '').strip()
    SENTRY_ENVIRONMENT = (os.environ.get('SENTRY_ENVIRONMENT') or '').strip()
    SENTRY_TRACES_SAMPLE_RATE = _as_float(os.environ.get('SENTRY_TRACES_SAMPLE_RATE'), 0.0)
    LOG_JSON = _as_bool(os.environ.get('LOG_JSON'), True)
    LOG_LEVEL = (os.environ.get('LOG_LEVEL') or 'INFO').strip().upper()
