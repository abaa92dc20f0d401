import secrets

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from .models import User, db


def seed_database():
    """Create the first admin account and keep its password in sync with ADMIN_PASSWORD."""
    config = current_app.config
    admin_email = (config.get('ADMIN_EMAIL') or 'admin@example.com').strip().lower()
    env_password = config.get('ADMIN_PASSWORD') or ''

    existing_admin = User.query.filter_by(email=admin_email).first()
    if existing_admin is not None:
        if env_password and not existing_admin.check_password(env_password):
            try:
                existing_admin.set_password(env_password)
                db.session.commit()
            except SQLAlchemyError:
                db.session.rollback()
                current_app.logger.exception('Could not sync the admin password from ADMIN_PASSWORD.')
        return existing_admin

    if User.query.first() is not None:
        return None

    if not env_password:
        env_password = secrets.token_urlsafe(16)
        current_app.logger.warning(
            'ADMIN_PASSWORD not set. Seeded %s with a random password. '
            'Set ADMIN_PASSWORD and restart to rotate it to a known value.',
            admin_email,
        )
    admin = User(email=admin_email, display_name='Administrator')
    admin.set_password(env_password)
    db.session.add(admin)
    db.session.commit()
    return admin
