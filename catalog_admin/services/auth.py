"""Admin sign-in, sign-out and account maintenance.

Wraps the injected auth provider with the login lockout policy and
best-effort audit events. Provider errors never leave this module; they
come back as ``Failure`` results carrying a readable message.
"""
import logging
import math

from ..auth_provider import (
    EMAIL_ALREADY_IN_USE,
    INVALID_ACTION_CODE,
    INVALID_CREDENTIAL,
    INVALID_EMAIL,
    NETWORK_REQUEST_FAILED,
    REQUIRES_RECENT_LOGIN,
    TOO_MANY_REQUESTS,
    USER_NOT_FOUND,
    WEAK_PASSWORD,
    WRONG_PASSWORD,
    AuthProviderError,
)
from ..datastore import SERVER_TIMESTAMP, DataStoreError
from ..local_storage import THEME_KEY, LocalStorageError
from ..results import CODE_LOCKED, CODE_UNAUTHENTICATED, Failure, Success
from .lockout import LOGIN_ATTEMPTS_KEY

logger = logging.getLogger(__name__)

AUDIT_COLLECTION = 'audit_logs'
PRESERVED_LOCAL_KEYS = (LOGIN_ATTEMPTS_KEY, THEME_KEY)

LOGIN_ERROR_MESSAGES = {
    USER_NOT_FOUND: 'User not found.',
    WRONG_PASSWORD: 'Incorrect password.',
    INVALID_EMAIL: 'Invalid email.',
    TOO_MANY_REQUESTS: 'Too many attempts. Try again later.',
    NETWORK_REQUEST_FAILED: 'Connection error. Check your network.',
    INVALID_CREDENTIAL: 'Invalid credentials.',
}
RESET_ERROR_MESSAGES = {
    USER_NOT_FOUND: 'Email not found.',
    INVALID_EMAIL: 'Invalid email.',
}
CONFIRM_RESET_ERROR_MESSAGES = {
    INVALID_ACTION_CODE: 'The reset link is invalid or has expired.',
    WEAK_PASSWORD: 'Password is too weak. Use at least 6 characters.',
}
EMAIL_ERROR_MESSAGES = {
    REQUIRES_RECENT_LOGIN: 'Sign in again to update your email.',
    INVALID_EMAIL: 'Invalid email.',
    EMAIL_ALREADY_IN_USE: 'This email is already in use.',
}
PASSWORD_ERROR_MESSAGES = {
    REQUIRES_RECENT_LOGIN: 'Sign in again to update your password.',
    WEAK_PASSWORD: 'Password is too weak. Use at least 6 characters.',
}
NOT_AUTHENTICATED_MESSAGE = 'User not authenticated.'
PASSWORD_TYPE_MESSAGE = 'Password must be text.'


def normalize_identifier(email):
    return str(email or '').strip().lower()


def _provider_failure(exc, messages, fallback=None):
    message = messages.get(exc.code) or fallback or exc.message or 'Unknown error.'
    return Failure(error=message, code=exc.code)


class AuthService:
    def __init__(self, provider, attempts, store=None, local_storage=None):
        self.provider = provider
        self.attempts = attempts
        self.store = store
        self.local_storage = local_storage

    def log_audit_event(self, event_type, user_id, context=None):
        if self.store is None:
            return
        context = context or {}
        try:
            self.store.add(AUDIT_COLLECTION, {
                'type': event_type,
                'user_id': user_id,
                'timestamp': SERVER_TIMESTAMP,
                'user_agent': context.get('user_agent') or '',
                'ip': context.get('ip'),
            })
        except DataStoreError:
            logger.warning('Could not record %s audit event for user %s.', event_type, user_id)

    def login(self, email, password, context=None):
        identifier = normalize_identifier(email)
        if not identifier or not password:
            return Failure.invalid(['Email and password are required.'])
        if not isinstance(password, str):
            return Failure.invalid([PASSWORD_TYPE_MESSAGE])

        if self.attempts.is_locked(identifier):
            seconds = self.attempts.remaining_lock_time(identifier)
            minutes = self.attempts.remaining_lock_minutes(identifier)
            unit = 'minute' if minutes == 1 else 'minutes'
            logger.warning('Rejected login for locked account %s.', identifier)
            return Failure(
                error=f'Account temporarily locked. Try again in {minutes} {unit}.',
                code=CODE_LOCKED,
                retry_after=math.ceil(seconds),
            )

        try:
            user = self.provider.sign_in(identifier, password)
        except AuthProviderError as exc:
            count = self.attempts.register_failure(identifier)
            logger.warning('Failed login for %s (%s, attempt %s).', identifier, exc.code, count)
            return _provider_failure(exc, LOGIN_ERROR_MESSAGES)

        self.attempts.clear(identifier)
        logger.info('Admin %s signed in.', user.uid)
        self.log_audit_event('login', user.uid, context)
        return Success(user.to_dict(), message='Signed in successfully.')

    def get_current_user(self):
        try:
            return self.provider.current_user()
        except AuthProviderError:
            logger.exception('Could not resolve the current user.')
            return None

    def is_authenticated(self):
        return self.get_current_user() is not None

    def on_auth_state_changed(self, callback):
        return self.provider.subscribe(callback)

    def clear_local_data(self):
        if self.local_storage is None:
            return
        try:
            self.local_storage.clear(preserve=PRESERVED_LOCAL_KEYS)
        except LocalStorageError:
            logger.warning('Could not clear local data.')

    def logout(self, context=None):
        user = self.get_current_user()
        if user is not None:
            self.log_audit_event('logout', user.uid, context)
        try:
            self.provider.sign_out()
        except AuthProviderError as exc:
            logger.exception('Sign-out failed.')
            return Failure(error=exc.message or 'Unable to sign out.', code=exc.code)
        self.clear_local_data()
        return Success(message='Signed out.')

    def reset_password(self, email):
        try:
            self.provider.send_password_reset(normalize_identifier(email))
        except AuthProviderError as exc:
            logger.warning('Password reset request failed (%s).', exc.code)
            return _provider_failure(exc, RESET_ERROR_MESSAGES)
        return Success(message='Password recovery email sent successfully.')

    def confirm_password_reset(self, token, new_password):
        if not isinstance(token, str):
            return Failure(error=CONFIRM_RESET_ERROR_MESSAGES[INVALID_ACTION_CODE], code=INVALID_ACTION_CODE)
        if not isinstance(new_password, str):
            return Failure.invalid([PASSWORD_TYPE_MESSAGE])
        try:
            self.provider.confirm_password_reset(token, new_password)
        except AuthProviderError as exc:
            logger.warning('Password reset confirmation failed (%s).', exc.code)
            return _provider_failure(exc, CONFIRM_RESET_ERROR_MESSAGES)
        return Success(message='Password updated successfully.')

    def _unauthenticated(self):
        return Failure(error=NOT_AUTHENTICATED_MESSAGE, code=CODE_UNAUTHENTICATED)

    def update_profile(self, data):
        if not self.is_authenticated():
            return self._unauthenticated()
        data = data or {}
        try:
            user = self.provider.update_profile(
                display_name=data.get('display_name'),
                photo_url=data.get('photo_url'),
            )
        except AuthProviderError as exc:
            logger.exception('Profile update failed.')
            return _provider_failure(exc, {})
        return Success(user.to_dict() if user else None, message='Profile updated successfully.')

    def update_email(self, new_email):
        if not self.is_authenticated():
            return self._unauthenticated()
        if not isinstance(new_email, str):
            return Failure(error=EMAIL_ERROR_MESSAGES[INVALID_EMAIL], code=INVALID_EMAIL)
        try:
            self.provider.update_email(new_email)
        except AuthProviderError as exc:
            logger.warning('Email update failed (%s).', exc.code)
            return _provider_failure(exc, EMAIL_ERROR_MESSAGES, fallback='Unable to update the email.')
        return Success(message='Email updated successfully.')

    def update_password(self, new_password):
        if not self.is_authenticated():
            return self._unauthenticated()
        if not isinstance(new_password, str):
            return Failure.invalid([PASSWORD_TYPE_MESSAGE])
        try:
            self.provider.update_password(new_password)
        except AuthProviderError as exc:
            logger.warning('Password update failed (%s).', exc.code)
            return _provider_failure(exc, PASSWORD_ERROR_MESSAGES, fallback='Unable to update the password.')
        return Success(message='Password updated successfully.')
