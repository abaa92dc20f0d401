from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from .utils import utc_now_naive

db = SQLAlchemy()


class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(254), unique=True, nullable=False, index=True)
    display_name = db.Column(db.String(120))
    photo_url = db.Column(db.String(500))
    password_hash = db.Column(db.String(256), nullable=False)
    password_changed_at = db.Column(db.DateTime, default=utc_now_naive)
    last_login_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utc_now_naive)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)
        self.password_changed_at = utc_now_naive()

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)


class Document(db.Model):
    """One document of a named collection, stored as a JSON object."""

    collection = db.Column(db.String(80), primary_key=True)
    doc_id = db.Column(db.String(64), primary_key=True)
    data_json = db.Column(db.Text, nullable=False, default='{}')
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)

    __table_args__ = (
        db.Index('ix_document_collection_created_at', 'collection', 'created_at'),
    )
