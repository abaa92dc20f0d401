from urllib.parse import parse_qs, urlparse

import pytest

from catalog_admin.auth_provider import SqlAuthProvider
from catalog_admin.models import User, db

from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, admin_login, build_test_app, fetch_csrf_token


@pytest.fixture()
def outbox():
    return []


@pytest.fixture()
def sql_app(tmp_path, outbox):
    def mailer(recipient, reset_url):
        outbox.append((recipient, reset_url))
        return True

    return build_test_app(tmp_path, auth_provider=SqlAuthProvider(db, mailer=mailer))


@pytest.fixture()
def sql_client(sql_app):
    return sql_app.test_client()


def test_seeded_admin_can_sign_in_and_manage_catalog(sql_client):
    token = admin_login(sql_client)
    session = sql_client.get('/admin/session').get_json()
    assert session['authenticated'] is True
    assert session['user']['email'] == ADMIN_EMAIL

    created = sql_client.post('/admin/categories', json={'name': 'Tênis & Cia'}, headers={'X-CSRF-Token': token})
    assert created.status_code == 201
    listing = sql_client.get('/admin/categories').get_json()['data']
    assert [item['slug'] for item in listing] == ['tenis-cia']


def test_unknown_user_and_wrong_password_look_the_same(sql_client):
    token = fetch_csrf_token(sql_client)
    unknown = sql_client.post('/admin/login', json={'email': 'ghost@example.com', 'password': 'x1'}, headers={'X-CSRF-Token': token})
    wrong = sql_client.post('/admin/login', json={'email': ADMIN_EMAIL, 'password': 'x1'}, headers={'X-CSRF-Token': token})
    assert unknown.status_code == wrong.status_code == 401
    assert unknown.get_json() == wrong.get_json()
    assert wrong.get_json()['error'] == 'Invalid credentials.'


def test_login_with_mixed_case_email(sql_client):
    admin_login(sql_client, email='  Admin@Example.COM ')


def test_password_change_requires_minimum_length(sql_client, sql_app):
    token = admin_login(sql_client)
    weak = sql_client.put('/admin/profile/password', json={'password': '123'}, headers={'X-CSRF-Token': token})
    assert weak.status_code == 400
    assert weak.get_json()['error'] == 'Password is too weak. Use at least 6 characters.'

    changed = sql_client.put('/admin/profile/password', json={'password': 'brand-new-pass'}, headers={'X-CSRF-Token': token})
    assert changed.status_code == 200
    with sql_app.app_context():
        assert User.query.filter_by(email=ADMIN_EMAIL).first().check_password('brand-new-pass')


def test_sensitive_changes_require_recent_login(tmp_path):
    app = build_test_app(tmp_path, {'RECENT_LOGIN_SECONDS': 1})
    client = app.test_client()
    token = admin_login(client)
    with client.session_transaction() as session:
        session['_auth_at'] -= 60
    response = client.put('/admin/profile/email', json={'email': 'owner@example.com'}, headers={'X-CSRF-Token': token})
    assert response.status_code == 403
    assert response.get_json()['error'] == 'Sign in again to update your email.'


def test_password_reset_token_flow(sql_client, outbox):
    token = fetch_csrf_token(sql_client)
    missing = sql_client.post('/admin/password-reset', json={'email': 'ghost@example.com'}, headers={'X-CSRF-Token': token})
    assert missing.status_code == 400
    assert missing.get_json()['error'] == 'Email not found.'

    sent = sql_client.post('/admin/password-reset', json={'email': ADMIN_EMAIL}, headers={'X-CSRF-Token': token})
    assert sent.status_code == 200
    recipient, reset_url = outbox[-1]
    assert recipient == ADMIN_EMAIL
    reset_token = parse_qs(urlparse(reset_url).query)['token'][0]

    confirm = sql_client.post(
        '/admin/password-reset/confirm',
        json={'token': reset_token, 'password': 'fresh-secret'},
        headers={'X-CSRF-Token': token},
    )
    assert confirm.status_code == 200

    reused = sql_client.post(
        '/admin/password-reset/confirm',
        json={'token': reset_token, 'password': 'another-secret'},
        headers={'X-CSRF-Token': token},
    )
    assert reused.status_code == 400
    assert reused.get_json()['error'] == 'The reset link is invalid or has expired.'

    admin_login(sql_client, password='fresh-secret')


def test_reset_without_mail_transport_reports_failure(tmp_path):
    client = build_test_app(tmp_path).test_client()
    token = fetch_csrf_token(client)
    response = client.post('/admin/password-reset', json={'email': ADMIN_EMAIL}, headers={'X-CSRF-Token': token})
    assert response.status_code == 502
    assert response.get_json()['success'] is False


def test_admin_password_synced_from_config_on_start(tmp_path):
    db_uri = f"sqlite:///{tmp_path / 'shared.db'}"
    build_test_app(tmp_path, {'SQLALCHEMY_DATABASE_URI': db_uri})
    app = build_test_app(tmp_path, {'SQLALCHEMY_DATABASE_URI': db_uri, 'ADMIN_PASSWORD': 'rotated-pass'})
    client = app.test_client()
    admin_login(client, password='rotated-pass')
    token = fetch_csrf_token(client)
    old = client.post('/admin/login', json={'email': ADMIN_EMAIL, 'password': ADMIN_PASSWORD}, headers={'X-CSRF-Token': token})
    assert old.status_code == 401


def test_numeric_passwords_are_rejected_without_errors(sql_client):
    token = fetch_csrf_token(sql_client)
    login = sql_client.post('/admin/login', json={'email': ADMIN_EMAIL, 'password': 12345678}, headers={'X-CSRF-Token': token})
    assert login.status_code == 400

    token = admin_login(sql_client)
    update = sql_client.put('/admin/profile/password', json={'password': 12345678}, headers={'X-CSRF-Token': token})
    assert update.status_code == 400
    assert update.get_json()['error'] == 'Password must be text.'

    confirm = sql_client.post(
        '/admin/password-reset/confirm',
        json={'token': 7, 'password': 'fresh-secret'},
        headers={'X-CSRF-Token': token},
    )
    assert confirm.status_code == 400
