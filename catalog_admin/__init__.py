import json
import logging
import re
import secrets
import warnings

from flask import Flask, abort, g, has_request_context, jsonify, request, session
from flask_login import LoginManager
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from .auth_provider import SqlAuthProvider
from .config import Config
from .datastore import DataStoreError, SqlDocumentStore
from .local_storage import JsonFileStorage
from .models import User, db
from .services import EXTENSION_KEY, AdminServices

login_manager = LoginManager()
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._:-]{8,80}$")
_MUTATING_METHODS = ('POST', 'PUT', 'PATCH', 'DELETE')
_sentry_initialized = False


class JsonLogFormatter(logging.Formatter):
    def format(self, record):
        payload = {
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'time': self.formatTime(record, self.datefmt),
        }
        if has_request_context():
            payload.update(
                {
                    'request_id': getattr(g, 'request_id', ''),
                    'method': request.method,
                    'path': request.path,
                    'remote_ip': request.remote_addr,
                }
            )
        if record.exc_info:
            payload['exc_info'] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(app):
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    package_logger = logging.getLogger(__name__)
    package_logger.setLevel(level)
    app.logger.setLevel(level)
    if not app.config.get('LOG_JSON', True):
        return
    formatter = JsonLogFormatter()
    for handler in app.logger.handlers:
        handler.setFormatter(formatter)
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)
        package_logger.addHandler(handler)


@login_manager.user_loader
def load_user(user_id):
    try:
        parsed_id = int(user_id)
    except (TypeError, ValueError):
        return None
    return db.session.get(User, parsed_id)


def get_csrf_token():
    token = session.get('_csrf_token')
    if not token:
        token = secrets.token_urlsafe(32)
        session['_csrf_token'] = token
    return token


def init_sentry(app):
    global _sentry_initialized
    if _sentry_initialized:
        return

    dsn = (app.config.get('SENTRY_DSN') or '').strip()
    if not dsn:
        return

    try:
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

        sentry_sdk.init(
            dsn=dsn,
            integrations=[FlaskIntegration(), SqlalchemyIntegration()],
            traces_sample_rate=float(app.config.get('SENTRY_TRACES_SAMPLE_RATE') or 0.0),
            environment=(app.config.get('SENTRY_ENVIRONMENT') or None),
        )
        _sentry_initialized = True
        app.logger.info('Sentry monitoring enabled.')
    except Exception:
        app.logger.exception('Failed to initialize Sentry monitoring.')


def create_app(config_overrides=None, *, store=None, auth_provider=None, local_storage=None):
    """Build the admin app.

    ``store``, ``auth_provider`` and ``local_storage`` replace the SQL-backed
    document store, the Flask-Login account provider and the JSON storage
    file respectively; tests pass in-memory versions.
    """
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)
    configure_logging(app)

    if not app.config.get('SECRET_KEY'):
        app.config['SECRET_KEY'] = secrets.token_urlsafe(32)
        warnings.warn(
            'SECRET_KEY is not set, using a random key. '
            'Sessions and reset links will not survive restarts. '
            'Set the SECRET_KEY environment variable for production.',
            stacklevel=2,
        )

    if app.config.get('TRUST_PROXY_HEADERS'):
        # Only trust one proxy hop (the platform edge) when explicitly enabled.
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    init_sentry(app)

    db.init_app(app)
    login_manager.init_app(app)

    services = AdminServices(
        store=store if store is not None else SqlDocumentStore(db),
        auth_provider=auth_provider if auth_provider is not None else SqlAuthProvider(db),
        local_storage=local_storage if local_storage is not None else JsonFileStorage(app.config['LOCAL_STORAGE_PATH']),
        max_attempts=int(app.config.get('LOGIN_MAX_ATTEMPTS', 5)),
        lockout_seconds=int(app.config.get('LOGIN_LOCKOUT_SECONDS', 900)),
    )
    app.extensions[EXTENSION_KEY] = services

    @app.before_request
    def assign_request_id():
        incoming = (request.headers.get('X-Request-ID') or '').strip()
        if _REQUEST_ID_RE.match(incoming):
            g.request_id = incoming
        else:
            g.request_id = secrets.token_hex(16)

    @app.before_request
    def enforce_csrf():
        if request.method not in _MUTATING_METHODS or not app.config.get('CSRF_ENABLED', True):
            return
        expected = session.get('_csrf_token')
        provided = request.headers.get('X-CSRF-Token') or request.form.get('_csrf_token')
        if not expected or not provided or not secrets.compare_digest(expected, provided):
            abort(400, description='Invalid or missing CSRF token.')

    @app.after_request
    def add_security_headers(response):
        response.headers['X-Request-ID'] = getattr(g, 'request_id', '')
        response.headers.setdefault('X-Content-Type-Options', 'nosniff')
        response.headers.setdefault('X-Frame-Options', 'DENY')
        response.headers.setdefault('Referrer-Policy', 'strict-origin-when-cross-origin')
        response.headers.setdefault('Cross-Origin-Resource-Policy', 'same-origin')
        if request.is_secure and app.config.get('HSTS_ENABLED', True):
            hsts_max_age = max(0, int(app.config.get('HSTS_MAX_AGE', 31536000)))
            hsts_parts = [f'max-age={hsts_max_age}']
            if app.config.get('HSTS_INCLUDE_SUBDOMAINS', True):
                hsts_parts.append('includeSubDomains')
            response.headers.setdefault('Strict-Transport-Security', '; '.join(hsts_parts))
        if request.path.startswith('/admin'):
            response.headers.setdefault('X-Robots-Tag', 'noindex, nofollow, noarchive')
            response.headers['Cache-Control'] = 'no-store'
        return response

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        payload = {'success': False, 'error': error.description or error.name}
        if error.code == 400 and 'CSRF' in str(error.description or ''):
            payload['code'] = 'csrf'
        return jsonify(payload), error.code

    @app.errorhandler(500)
    def handle_server_error(error):
        return jsonify({'success': False, 'error': 'Internal server error.'}), 500

    @app.get('/healthz')
    def healthz():
        try:
            services.store.ping()
            return {'status': 'ok'}, 200
        except DataStoreError:
            app.logger.exception('Health check store probe failed.')
            return {'status': 'degraded'}, 503

    from .routes.admin import admin_bp
    from .routes.main import main_bp
    app.register_blueprint(main_bp, url_prefix='/api')
    app.register_blueprint(admin_bp, url_prefix='/admin')

    with app.app_context():
        try:
            db.create_all()
        except Exception:
            app.logger.exception('db.create_all() failed; tables may need manual migration.')
        if isinstance(services.auth_provider, SqlAuthProvider):
            try:
                from .seed import seed_database
                seed_database()
            except Exception:
                db.session.rollback()
                app.logger.exception('seed_database() failed; seeding skipped.')

    services.attempts.load()
    return app
