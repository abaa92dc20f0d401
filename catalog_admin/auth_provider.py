"""Authentication provider contract.

The admin only ever talks to an ``AuthProvider``: sign in and out, password
reset, and profile/email/password changes for the signed-in account.
Failures raise ``AuthProviderError`` carrying one of the provider codes
below; mapping them to user-facing text is the auth service's job.
"""
import logging
import secrets
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from urllib.parse import urlencode

from flask import current_app, has_request_context, session
from flask_login import current_user as flask_current_user, login_user, logout_user
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from .models import User
from .utils import clean_text, is_valid_email, utc_now_naive

logger = logging.getLogger(__name__)

USER_NOT_FOUND = 'auth/user-not-found'
WRONG_PASSWORD = 'auth/wrong-password'
INVALID_EMAIL = 'auth/invalid-email'
INVALID_CREDENTIAL = 'auth/invalid-credential'
TOO_MANY_REQUESTS = 'auth/too-many-requests'
NETWORK_REQUEST_FAILED = 'auth/network-request-failed'
REQUIRES_RECENT_LOGIN = 'auth/requires-recent-login'
WEAK_PASSWORD = 'auth/weak-password'
EMAIL_ALREADY_IN_USE = 'auth/email-already-in-use'
INVALID_ACTION_CODE = 'auth/invalid-action-code'
NO_CURRENT_USER = 'auth/no-current-user'
INTERNAL_ERROR = 'auth/internal-error'

AUTH_DUMMY_HASH = generate_password_hash('catalog-admin::dummy-auth-check')
SESSION_AUTH_AT_KEY = '_auth_at'
RESET_TOKEN_SALT = 'catalog-admin-password-reset'


class AuthProviderError(Exception):
    def __init__(self, code, message=''):
        super().__init__(message or code)
        self.code = code
        self.message = message


@dataclass(frozen=True)
class AuthUser:
    uid: str
    email: str
    display_name: str = ''
    photo_url: str = ''

    def to_dict(self):
        return asdict(self)


class AuthProvider(ABC):
    def __init__(self):
        self._listeners = []

    def subscribe(self, callback):
        """Call ``callback(user_or_none)`` on every sign-in and sign-out."""
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, user):
        for callback in list(self._listeners):
            try:
                callback(user)
            except Exception:
                logger.exception('Auth state listener failed.')

    @abstractmethod
    def sign_in(self, email, password):
        pass

    @abstractmethod
    def sign_out(self):
        pass

    @abstractmethod
    def current_user(self):
        pass

    @abstractmethod
    def send_password_reset(self, email):
        pass

    @abstractmethod
    def confirm_password_reset(self, token, new_password):
        pass

    @abstractmethod
    def update_profile(self, display_name=None, photo_url=None):
        pass

    @abstractmethod
    def update_email(self, new_email):
        pass

    @abstractmethod
    def update_password(self, new_password):
        pass


def _to_auth_user(user):
    return AuthUser(
        uid=str(user.id),
        email=user.email,
        display_name=user.display_name or '',
        photo_url=user.photo_url or '',
    )


class SqlAuthProvider(AuthProvider):
    """Admin accounts in the SQL ``User`` table, sessions through Flask-Login."""

    def __init__(self, db, mailer=None):
        super().__init__()
        self.db = db
        self.mailer = mailer

    def _commit(self):
        try:
            self.db.session.commit()
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            raise AuthProviderError(INTERNAL_ERROR, 'The account could not be saved.') from exc

    def _find_by_email(self, email):
        try:
            return User.query.filter_by(email=email).first()
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            raise AuthProviderError(NETWORK_REQUEST_FAILED, 'The account store is unavailable.') from exc

    def _signed_in_user(self):
        if not has_request_context() or not flask_current_user.is_authenticated:
            raise AuthProviderError(NO_CURRENT_USER, 'No user is signed in.')
        return flask_current_user._get_current_object()

    def _require_recent_login(self):
        signed_in_at = session.get(SESSION_AUTH_AT_KEY) or 0
        max_age = int(current_app.config.get('RECENT_LOGIN_SECONDS', 300))
        if time.time() - float(signed_in_at) > max_age:
            raise AuthProviderError(REQUIRES_RECENT_LOGIN, 'This operation requires a recent sign-in.')

    def _check_password_strength(self, password):
        min_length = int(current_app.config.get('MIN_PASSWORD_LENGTH', 6))
        if len(password or '') < min_length:
            raise AuthProviderError(WEAK_PASSWORD, f'Password should be at least {min_length} characters.')

    def _serializer(self):
        return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt=RESET_TOKEN_SALT)

    def sign_in(self, email, password):
        email = clean_text(email, 254).lower()
        if not is_valid_email(email):
            raise AuthProviderError(INVALID_EMAIL, 'The email address is badly formatted.')
        user = self._find_by_email(email)
        password_ok = False
        if user:
            password_ok = user.check_password(password or '')
        else:
            # Keep response timing closer for unknown accounts.
            check_password_hash(AUTH_DUMMY_HASH, password or '')
        if not (user and password_ok):
            raise AuthProviderError(INVALID_CREDENTIAL, 'The supplied credentials are incorrect.')

        session.clear()
        login_user(user)
        session[SESSION_AUTH_AT_KEY] = time.time()
        user.last_login_at = utc_now_naive()
        self._commit()
        auth_user = _to_auth_user(user)
        self._notify(auth_user)
        return auth_user

    def sign_out(self):
        logout_user()
        session.pop(SESSION_AUTH_AT_KEY, None)
        self._notify(None)

    def current_user(self):
        if not has_request_context() or not flask_current_user.is_authenticated:
            return None
        return _to_auth_user(flask_current_user)

    def send_password_reset(self, email):
        email = clean_text(email, 254).lower()
        if not is_valid_email(email):
            raise AuthProviderError(INVALID_EMAIL, 'The email address is badly formatted.')
        user = self._find_by_email(email)
        if user is None:
            raise AuthProviderError(USER_NOT_FOUND, 'There is no account for this email.')

        # The hash fingerprint makes a token useless once the password changes.
        token = self._serializer().dumps({'uid': user.id, 'fp': user.password_hash[-16:]})
        base = (current_app.config.get('APP_BASE_URL') or '').rstrip('/')
        reset_url = f"{base}/admin/password-reset/confirm?{urlencode({'token': token})}"
        mailer = self.mailer
        if mailer is None:
            from .notifications import send_password_reset_email as mailer
        if not mailer(user.email, reset_url):
            raise AuthProviderError(INTERNAL_ERROR, 'The password reset email could not be delivered.')

    def confirm_password_reset(self, token, new_password):
        max_age = int(current_app.config.get('PASSWORD_RESET_TOKEN_TTL_SECONDS', 3600))
        try:
            payload = self._serializer().loads(token or '', max_age=max_age)
        except SignatureExpired as exc:
            raise AuthProviderError(INVALID_ACTION_CODE, 'The reset link has expired.') from exc
        except BadSignature as exc:
            raise AuthProviderError(INVALID_ACTION_CODE, 'The reset link is invalid.') from exc

        user = self.db.session.get(User, payload.get('uid')) if isinstance(payload, dict) else None
        if user is None or not secrets.compare_digest(str(payload.get('fp', '')), user.password_hash[-16:]):
            raise AuthProviderError(INVALID_ACTION_CODE, 'The reset link is invalid.')
        self._check_password_strength(new_password)
        user.set_password(new_password)
        self._commit()

    def update_profile(self, display_name=None, photo_url=None):
        user = self._signed_in_user()
        if display_name is not None:
            user.display_name = clean_text(display_name, 120)
        if photo_url is not None:
            user.photo_url = clean_text(photo_url, 500)
        self._commit()
        return _to_auth_user(user)

    def update_email(self, new_email):
        user = self._signed_in_user()
        email = clean_text(new_email, 254).lower()
        if not is_valid_email(email):
            raise AuthProviderError(INVALID_EMAIL, 'The email address is badly formatted.')
        self._require_recent_login()
        existing = self._find_by_email(email)
        if existing is not None and existing.id != user.id:
            raise AuthProviderError(EMAIL_ALREADY_IN_USE, 'The email address is already in use.')
        user.email = email
        self._commit()
        auth_user = _to_auth_user(user)
        self._notify(auth_user)
        return auth_user

    def update_password(self, new_password):
        user = self._signed_in_user()
        self._require_recent_login()
        self._check_password_strength(new_password)
        user.set_password(new_password)
        self._commit()


class InMemoryAuthProvider(AuthProvider):
    """Single-session provider holding accounts in a dict; used by tests."""

    def __init__(self, clock=time.time, recent_login_seconds=300, min_password_length=6):
        super().__init__()
        self.clock = clock
        self.recent_login_seconds = recent_login_seconds
        self.min_password_length = min_password_length
        self.fail_with = None
        self.sign_in_calls = 0
        self.reset_tokens = {}
        self._accounts = {}
        self._current_email = None
        self._signed_in_at = 0.0

    def add_user(self, email, password, display_name=''):
        email = email.strip().lower()
        user = AuthUser(uid=secrets.token_hex(8), email=email, display_name=display_name)
        self._accounts[email] = {'user': user, 'password': password}
        return user

    def _raise_injected_failure(self):
        if self.fail_with:
            code, self.fail_with = self.fail_with, None
            raise AuthProviderError(code, f'Injected failure: {code}')

    def _current_account(self):
        if self._current_email is None:
            raise AuthProviderError(NO_CURRENT_USER, 'No user is signed in.')
        return self._accounts[self._current_email]

    def _require_recent_login(self):
        if self.clock() - self._signed_in_at > self.recent_login_seconds:
            raise AuthProviderError(REQUIRES_RECENT_LOGIN, 'This operation requires a recent sign-in.')

    def sign_in(self, email, password):
        self.sign_in_calls += 1
        self._raise_injected_failure()
        email = (email or '').strip().lower()
        if not is_valid_email(email):
            raise AuthProviderError(INVALID_EMAIL, 'The email address is badly formatted.')
        account = self._accounts.get(email)
        if account is None:
            raise AuthProviderError(USER_NOT_FOUND, 'There is no account for this email.')
        if account['password'] != password:
            raise AuthProviderError(WRONG_PASSWORD, 'The password is invalid.')
        self._current_email = email
        self._signed_in_at = self.clock()
        self._notify(account['user'])
        return account['user']

    def sign_out(self):
        self._raise_injected_failure()
        self._current_email = None
        self._notify(None)

    def current_user(self):
        if self._current_email is None:
            return None
        return self._accounts[self._current_email]['user']

    def send_password_reset(self, email):
        self._raise_injected_failure()
        email = (email or '').strip().lower()
        if not is_valid_email(email):
            raise AuthProviderError(INVALID_EMAIL, 'The email address is badly formatted.')
        if email not in self._accounts:
            raise AuthProviderError(USER_NOT_FOUND, 'There is no account for this email.')
        token = secrets.token_urlsafe(16)
        self.reset_tokens[token] = email
        return token

    def confirm_password_reset(self, token, new_password):
        self._raise_injected_failure()
        email = self.reset_tokens.pop(token, None)
        if email is None:
            raise AuthProviderError(INVALID_ACTION_CODE, 'The reset link is invalid.')
        if len(new_password or '') < self.min_password_length:
            raise AuthProviderError(WEAK_PASSWORD, 'Password is too weak.')
        self._accounts[email]['password'] = new_password

    def update_profile(self, display_name=None, photo_url=None):
        self._raise_injected_failure()
        account = self._current_account()
        user = account['user']
        account['user'] = AuthUser(
            uid=user.uid,
            email=user.email,
            display_name=user.display_name if display_name is None else display_name,
            photo_url=user.photo_url if photo_url is None else photo_url,
        )
        return account['user']

    def update_email(self, new_email):
        self._raise_injected_failure()
        account = self._current_account()
        email = (new_email or '').strip().lower()
        if not is_valid_email(email):
            raise AuthProviderError(INVALID_EMAIL, 'The email address is badly formatted.')
        self._require_recent_login()
        if email in self._accounts and email != self._current_email:
            raise AuthProviderError(EMAIL_ALREADY_IN_USE, 'The email address is already in use.')
        user = account['user']
        account['user'] = AuthUser(uid=user.uid, email=email, display_name=user.display_name, photo_url=user.photo_url)
        del self._accounts[self._current_email]
        self._accounts[email] = account
        self._current_email = email
        self._notify(account['user'])
        return account['user']

    def update_password(self, new_password):
        self._raise_injected_failure()
        account = self._current_account()
        self._require_recent_login()
        if len(new_password or '') < self.min_password_length:
            raise AuthProviderError(WEAK_PASSWORD, 'Password is too weak.')
        account['password'] = new_password
