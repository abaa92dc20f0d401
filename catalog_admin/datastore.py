"""Document store contract used by every entity service.

Documents are plain dicts grouped in named collections and keyed by a
generated id. Reads return copies that carry their id under ``'id'``.
"""
import copy
import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .models import Document
from .utils import utc_now_naive

logger = logging.getLogger(__name__)


class _ServerTimestamp:
    def __repr__(self):
        return 'SERVER_TIMESTAMP'


# Placeholder replaced with the store's clock when a document is written.
SERVER_TIMESTAMP = _ServerTimestamp()


class DataStoreError(Exception):
    def __init__(self, code, message=''):
        super().__init__(message or code)
        self.code = code
        self.message = message or code


def _new_id():
    return uuid.uuid4().hex[:20]


def _resolve_server_values(data):
    now = None
    resolved = {}
    for key, value in data.items():
        if key == 'id':
            continue
        if value is SERVER_TIMESTAMP:
            if now is None:
                now = utc_now_naive().isoformat(timespec='microseconds')
            value = now
        resolved[key] = value
    return resolved


def _sort_key(value):
    if isinstance(value, bool):
        return (0, int(value), '')
    if isinstance(value, (int, float)):
        return (0, value, '')
    if isinstance(value, str):
        return (1, 0, value.casefold())
    return (2, 0, str(value))


def _sort_documents(documents, order_by, descending=False):
    if not order_by:
        return documents
    present = [doc for doc in documents if doc.get(order_by) is not None]
    missing = [doc for doc in documents if doc.get(order_by) is None]
    present.sort(key=lambda doc: _sort_key(doc[order_by]), reverse=descending)
    return present + missing


def _safe_json_loads(raw_value, fallback):
    if not raw_value:
        return fallback
    try:
        value = json.loads(raw_value)
    except (TypeError, json.JSONDecodeError):
        return fallback
    return value if isinstance(value, dict) else fallback


class DocumentStore(ABC):
    @abstractmethod
    def list(self, collection, order_by=None, descending=False):
        """Return every document of ``collection``, optionally ordered by a field."""

    @abstractmethod
    def get(self, collection, doc_id):
        """Return the document or ``None``."""

    @abstractmethod
    def add(self, collection, data):
        """Store a new document and return its generated id."""

    @abstractmethod
    def set(self, collection, doc_id, data, merge=False):
        """Create or replace (or merge into) the document with a known id."""

    @abstractmethod
    def update(self, collection, doc_id, data):
        """Merge fields into an existing document; raise ``not-found`` when absent."""

    @abstractmethod
    def delete(self, collection, doc_id):
        """Remove the document. Deleting a missing document is not an error."""

    @abstractmethod
    def where(self, collection, field, value, limit=None):
        """Return documents whose ``field`` equals ``value``."""

    @abstractmethod
    def batch_update(self, collection, updates):
        """Apply ``[(doc_id, fields), ...]`` atomically."""

    @abstractmethod
    def ping(self):
        """Return True when the backend answers."""


class InMemoryDocumentStore(DocumentStore):
    """Process-local store, used by tests and local experiments."""

    def __init__(self):
        self._collections = {}
        self._lock = threading.Lock()

    def _bucket(self, collection):
        return self._collections.setdefault(collection, {})

    @staticmethod
    def _export(doc_id, data):
        exported = copy.deepcopy(data)
        exported['id'] = doc_id
        return exported

    def list(self, collection, order_by=None, descending=False):
        with self._lock:
            documents = [self._export(doc_id, data) for doc_id, data in self._bucket(collection).items()]
        return _sort_documents(documents, order_by, descending)

    def get(self, collection, doc_id):
        with self._lock:
            data = self._bucket(collection).get(doc_id)
            return self._export(doc_id, data) if data is not None else None

    def add(self, collection, data):
        doc_id = _new_id()
        with self._lock:
            self._bucket(collection)[doc_id] = copy.deepcopy(_resolve_server_values(data))
        return doc_id

    def set(self, collection, doc_id, data, merge=False):
        resolved = copy.deepcopy(_resolve_server_values(data))
        with self._lock:
            bucket = self._bucket(collection)
            if merge and doc_id in bucket:
                bucket[doc_id].update(resolved)
            else:
                bucket[doc_id] = resolved

    def update(self, collection, doc_id, data):
        resolved = copy.deepcopy(_resolve_server_values(data))
        with self._lock:
            bucket = self._bucket(collection)
            if doc_id not in bucket:
                raise DataStoreError('not-found', f'No document to update: {collection}/{doc_id}')
            bucket[doc_id].update(resolved)

    def delete(self, collection, doc_id):
        with self._lock:
            self._bucket(collection).pop(doc_id, None)

    def where(self, collection, field, value, limit=None):
        matches = [doc for doc in self.list(collection) if doc.get(field) == value]
        return matches[:limit] if limit else matches

    def batch_update(self, collection, updates):
        updates = [(doc_id, _resolve_server_values(fields)) for doc_id, fields in updates]
        with self._lock:
            bucket = self._bucket(collection)
            missing = [doc_id for doc_id, _ in updates if doc_id not in bucket]
            if missing:
                raise DataStoreError('not-found', f'No document to update: {collection}/{missing[0]}')
            for doc_id, fields in updates:
                bucket[doc_id].update(copy.deepcopy(fields))

    def ping(self):
        return True


class SqlDocumentStore(DocumentStore):
    """Document store persisted through Flask-SQLAlchemy, one JSON row per document."""

    def __init__(self, db):
        self.db = db

    @contextmanager
    def _translate_errors(self, action):
        try:
            yield
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            raise DataStoreError('unavailable', f'Unable to {action}: the data store is unavailable.') from exc

    @staticmethod
    def _export(row):
        data = _safe_json_loads(row.data_json, {})
        data['id'] = row.doc_id
        return data

    def _row(self, collection, doc_id):
        return self.db.session.get(Document, (collection, doc_id))

    @staticmethod
    def _dump(data):
        return json.dumps(data, ensure_ascii=False)

    def list(self, collection, order_by=None, descending=False):
        with self._translate_errors('list documents'):
            rows = Document.query.filter_by(collection=collection).all()
        return _sort_documents([self._export(row) for row in rows], order_by, descending)

    def get(self, collection, doc_id):
        with self._translate_errors('read the document'):
            row = self._row(collection, doc_id)
        return self._export(row) if row else None

    def add(self, collection, data):
        doc_id = _new_id()
        with self._translate_errors('add the document'):
            self.db.session.add(
                Document(collection=collection, doc_id=doc_id, data_json=self._dump(_resolve_server_values(data)))
            )
            self.db.session.commit()
        return doc_id

    def set(self, collection, doc_id, data, merge=False):
        resolved = _resolve_server_values(data)
        with self._translate_errors('save the document'):
            row = self._row(collection, doc_id)
            if row is None:
                self.db.session.add(Document(collection=collection, doc_id=doc_id, data_json=self._dump(resolved)))
            else:
                current = _safe_json_loads(row.data_json, {}) if merge else {}
                current.update(resolved)
                row.data_json = self._dump(current)
            self.db.session.commit()

    def update(self, collection, doc_id, data):
        resolved = _resolve_server_values(data)
        with self._translate_errors('update the document'):
            row = self._row(collection, doc_id)
            if row is None:
                raise DataStoreError('not-found', f'No document to update: {collection}/{doc_id}')
            current = _safe_json_loads(row.data_json, {})
            current.update(resolved)
            row.data_json = self._dump(current)
            self.db.session.commit()

    def delete(self, collection, doc_id):
        with self._translate_errors('delete the document'):
            row = self._row(collection, doc_id)
            if row is not None:
                self.db.session.delete(row)
                self.db.session.commit()

    def where(self, collection, field, value, limit=None):
        matches = [doc for doc in self.list(collection) if doc.get(field) == value]
        return matches[:limit] if limit else matches

    def batch_update(self, collection, updates):
        with self._translate_errors('apply the batch'):
            rows = []
            for doc_id, fields in updates:
                row = self._row(collection, doc_id)
                if row is None:
                    self.db.session.rollback()
                    raise DataStoreError('not-found', f'No document to update: {collection}/{doc_id}')
                rows.append((row, _resolve_server_values(fields)))
            for row, fields in rows:
                current = _safe_json_loads(row.data_json, {})
                current.update(fields)
                row.data_json = self._dump(current)
            self.db.session.commit()

    def ping(self):
        with self._translate_errors('reach the data store'):
            self.db.session.execute(text('SELECT 1'))
        return True
