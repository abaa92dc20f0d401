import json

import pytest

from catalog_admin.local_storage import (
    JsonFileStorage,
    LocalStorageError,
    MemoryStorage,
    ThemePreference,
)
from catalog_admin.results import Failure, Success
from catalog_admin.utils import (
    as_flag,
    clean_text,
    coerce_order,
    is_valid_email,
    is_valid_link_target,
    is_valid_phone,
    is_valid_url,
    make_slug,
    sanitize_input,
)


@pytest.mark.parametrize('name, expected', [
    ('Tênis & Cia', 'tenis-cia'),
    ('Calçados', 'calcados'),
    ('  --Moda  Praia!! ', 'moda-praia'),
    ('Ação/Aventura 2024', 'acao-aventura-2024'),
])
def test_make_slug(name, expected):
    assert make_slug(name) == expected


@pytest.mark.parametrize('name', ['Tênis & Cia', 'Calçados', 'Já---é  Hora', '', 'ABC_def'])
def test_make_slug_is_idempotent(name):
    assert make_slug(make_slug(name)) == make_slug(name)


def test_sanitize_input_escapes_markup_once():
    once = sanitize_input('  <script>alert(1)</script> Tom & Jerry ')
    assert '<script>' not in once
    assert once.startswith('&lt;script&gt;')
    assert sanitize_input(once) == once


def test_clean_text_trims_and_truncates():
    assert clean_text(None) == ''
    assert clean_text('  hello  ') == 'hello'
    assert clean_text('abcdef', 3) == 'abc'


@pytest.mark.parametrize('value, expected', [
    ('7', 7), (3, 3), ('3.9', 3), (2.5, 2), ('abc', 0), ('', 0), (None, 0), ('-4', 0),
    (float('inf'), 0), (float('-inf'), 0), (float('nan'), 0), ('1e400', 0),
])
def test_coerce_order(value, expected):
    assert coerce_order(value) == expected


def test_as_flag():
    assert as_flag(None) is True
    assert as_flag('', default=False) is False
    assert as_flag('off') is False
    assert as_flag('0') is False
    assert as_flag('on', default=False) is True
    assert as_flag(False) is False
    assert as_flag('maybe', default=False) is False


def test_url_validation():
    assert is_valid_url('https://cdn.example.com/logo.png')
    assert is_valid_url('http://example.com')
    assert not is_valid_url('ftp://example.com/file')
    assert not is_valid_url('example.com')
    assert not is_valid_url('https://')
    assert not is_valid_url('https://exa mple.com')


def test_link_target_validation():
    assert is_valid_link_target('/promotions')
    assert is_valid_link_target('#contact')
    assert is_valid_link_target('https://example.com/sale')
    assert is_valid_link_target('mailto:sales@example.com')
    assert is_valid_link_target('tel:+5511999999999')
    assert not is_valid_link_target('not a url')
    assert not is_valid_link_target('javascript:alert(1)')
    assert not is_valid_link_target('promotions')
    assert not is_valid_link_target('')


def test_phone_and_email_validation():
    assert is_valid_phone('+55 (11) 99999-9999')
    assert is_valid_phone('11.9999.9999')
    assert not is_valid_phone('12345')
    assert not is_valid_phone('+55 11 9999 abcd')
    assert not is_valid_phone('1' * 16)
    assert is_valid_email('admin@example.com')
    assert not is_valid_email('admin@example')
    assert not is_valid_email('')


def test_results_serialize_to_legacy_shape():
    assert Success('abc123', message='Created.').to_dict() == {'success': True, 'message': 'Created.', 'id': 'abc123'}
    assert Success([1, 2]).to_dict() == {'success': True, 'data': [1, 2]}
    failure = Failure.invalid(['Name is required.', 'URL is required.'])
    assert not failure.ok
    assert failure.to_dict() == {
        'success': False,
        'error': 'Name is required.\nURL is required.',
        'errors': ['Name is required.', 'URL is required.'],
        'code': 'invalid',
    }


def test_theme_preference_defaults_and_toggles():
    storage = MemoryStorage()
    theme = ThemePreference(storage)
    assert theme.get() == 'light'
    assert theme.toggle() == 'dark'
    assert storage.get_item('theme') == 'dark'
    assert theme.set(' LIGHT ') == 'light'
    with pytest.raises(ValueError):
        theme.set('blue')


def test_theme_preference_falls_back_when_storage_breaks(broken_storage):
    theme = ThemePreference(broken_storage)
    assert theme.get() == 'light'
    assert theme.set('dark') == 'dark'


def test_json_file_storage_round_trip_and_clear(tmp_path):
    path = tmp_path / 'nested' / 'storage.json'
    storage = JsonFileStorage(str(path))
    assert storage.get_item('theme') is None

    storage.set_item('theme', 'dark')
    storage.set_item('login_attempts', '{}')
    storage.set_item('draft', 'x')
    assert json.loads(path.read_text(encoding='utf-8'))['theme'] == 'dark'

    storage.clear(preserve=('theme', 'login_attempts'))
    assert storage.get_item('draft') is None
    assert storage.get_item('theme') == 'dark'
    storage.remove_item('theme')
    assert storage.get_item('theme') is None


def test_json_file_storage_reports_corrupt_file(tmp_path):
    path = tmp_path / 'storage.json'
    path.write_text('[1, 2', encoding='utf-8')
    storage = JsonFileStorage(str(path))
    with pytest.raises(LocalStorageError):
        storage.get_item('theme')
