import uuid

import pytest

from catalog_admin import create_app
from catalog_admin.auth_provider import InMemoryAuthProvider
from catalog_admin.datastore import DataStoreError, InMemoryDocumentStore
from catalog_admin.local_storage import LocalStorageError, MemoryStorage

ADMIN_EMAIL = 'admin@example.com'
ADMIN_PASSWORD = 'admin123'


class FakeClock:
    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class RecordingStore(InMemoryDocumentStore):
    """In-memory store that remembers which operations were called."""

    def __init__(self):
        super().__init__()
        self.calls = []

    def list(self, collection, order_by=None, descending=False):
        self.calls.append(('list', collection))
        return super().list(collection, order_by=order_by, descending=descending)

    def get(self, collection, doc_id):
        self.calls.append(('get', collection))
        return super().get(collection, doc_id)

    def add(self, collection, data):
        self.calls.append(('add', collection))
        return super().add(collection, data)

    def set(self, collection, doc_id, data, merge=False):
        self.calls.append(('set', collection))
        return super().set(collection, doc_id, data, merge=merge)

    def update(self, collection, doc_id, data):
        self.calls.append(('update', collection))
        return super().update(collection, doc_id, data)

    def delete(self, collection, doc_id):
        self.calls.append(('delete', collection))
        return super().delete(collection, doc_id)

    def where(self, collection, field, value, limit=None):
        self.calls.append(('where', collection))
        return super().where(collection, field, value, limit=limit)

    def batch_update(self, collection, updates):
        self.calls.append(('batch_update', collection))
        return super().batch_update(collection, updates)


class UnavailableStore(InMemoryDocumentStore):
    """Every call fails the way an unreachable backend does."""

    def _fail(self, *args, **kwargs):
        raise DataStoreError('unavailable', 'backend down')

    list = get = add = set = update = delete = where = batch_update = ping = _fail


class BrokenStorage(MemoryStorage):
    def get_item(self, key):
        raise LocalStorageError('disk unavailable')

    def set_item(self, key, value):
        raise LocalStorageError('disk unavailable')

    def clear(self, preserve=()):
        raise LocalStorageError('disk unavailable')


def build_test_app(tmp_path, overrides=None, **collaborators):
    db_path = tmp_path / f'catalog_test_{uuid.uuid4().hex[:8]}.db'
    config = {
        'TESTING': True,
        'SECRET_KEY': 'test-secret-key',
        'SQLALCHEMY_DATABASE_URI': f'sqlite:///{db_path}',
        'LOCAL_STORAGE_PATH': str(tmp_path / f'local_storage_{uuid.uuid4().hex[:8]}.json'),
        'ADMIN_EMAIL': ADMIN_EMAIL,
        'ADMIN_PASSWORD': ADMIN_PASSWORD,
        'LOG_JSON': False,
    }
    if overrides:
        config.update(overrides)
    return create_app(config, **collaborators)


def fetch_csrf_token(client):
    response = client.get('/admin/session')
    assert response.status_code == 200
    token = response.get_json()['csrf_token']
    assert token
    return token


def admin_login(client, email=ADMIN_EMAIL, password=ADMIN_PASSWORD):
    response = client.post(
        '/admin/login',
        json={'email': email, 'password': password},
        headers={'X-CSRF-Token': fetch_csrf_token(client)},
    )
    assert response.status_code == 200, response.get_json()
    # Signing in may rotate the session, so hand back a fresh token.
    return fetch_csrf_token(client)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def store():
    return InMemoryDocumentStore()


@pytest.fixture()
def recording_store():
    return RecordingStore()


@pytest.fixture()
def unavailable_store():
    return UnavailableStore()


@pytest.fixture()
def broken_storage():
    return BrokenStorage()


@pytest.fixture()
def provider():
    auth = InMemoryAuthProvider()
    auth.add_user(ADMIN_EMAIL, ADMIN_PASSWORD, display_name='Administrator')
    return auth


@pytest.fixture()
def app(tmp_path, store, provider):
    return build_test_app(tmp_path, store=store, auth_provider=provider, local_storage=MemoryStorage())


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def logged_in(client):
    """A client already signed in, paired with a valid CSRF token."""
    return client, admin_login(client)
