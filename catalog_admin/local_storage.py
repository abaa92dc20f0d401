"""Durable string key/value storage and the admin theme preference kept in it."""
import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)

THEME_KEY = 'theme'
THEME_LIGHT = 'light'
THEME_DARK = 'dark'
THEMES = (THEME_LIGHT, THEME_DARK)


class LocalStorageError(Exception):
    pass


class LocalStorage(ABC):
    @abstractmethod
    def get_item(self, key):
        """Return the stored string or ``None``."""

    @abstractmethod
    def set_item(self, key, value):
        pass

    @abstractmethod
    def remove_item(self, key):
        pass

    @abstractmethod
    def clear(self, preserve=()):
        """Drop every key except those listed in ``preserve``."""


class MemoryStorage(LocalStorage):
    def __init__(self, initial=None):
        self._items = dict(initial or {})

    def get_item(self, key):
        return self._items.get(key)

    def set_item(self, key, value):
        self._items[key] = str(value)

    def remove_item(self, key):
        self._items.pop(key, None)

    def clear(self, preserve=()):
        kept = {key: value for key, value in self._items.items() if key in preserve}
        self._items = kept


class JsonFileStorage(LocalStorage):
    """Key/value pairs kept in one JSON object on disk.

    Every write replaces the file atomically, so a crash never leaves a
    half-written document behind.
    """

    def __init__(self, path):
        self.path = os.path.abspath(path)
        self._lock = threading.Lock()

    def _read(self):
        try:
            with open(self.path, 'r', encoding='utf-8') as handle:
                data = json.load(handle)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            raise LocalStorageError(f'Unable to read {self.path}') from exc
        if not isinstance(data, dict):
            raise LocalStorageError(f'Unexpected content in {self.path}')
        return data

    def _write(self, data):
        directory = os.path.dirname(self.path)
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix='.storage-', suffix='.json', dir=directory)
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as handle:
                    json.dump(data, handle, ensure_ascii=False)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as exc:
            raise LocalStorageError(f'Unable to write {self.path}') from exc

    def get_item(self, key):
        with self._lock:
            value = self._read().get(key)
        return None if value is None else str(value)

    def set_item(self, key, value):
        with self._lock:
            data = self._read()
            data[key] = str(value)
            self._write(data)

    def remove_item(self, key):
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)

    def clear(self, preserve=()):
        with self._lock:
            try:
                data = self._read()
            except LocalStorageError:
                data = {}
            self._write({key: value for key, value in data.items() if key in preserve})


class ThemePreference:
    def __init__(self, storage):
        self.storage = storage

    def get(self):
        try:
            value = self.storage.get_item(THEME_KEY)
        except LocalStorageError:
            logger.warning('Theme preference could not be read; using the default.')
            return THEME_LIGHT
        return value if value in THEMES else THEME_LIGHT

    def set(self, theme):
        theme = (theme or '').strip().lower()
        if theme not in THEMES:
            raise ValueError(f'Unknown theme: {theme!r}')
        try:
            self.storage.set_item(THEME_KEY, theme)
        except LocalStorageError:
            logger.warning('Theme preference could not be saved.')
        return theme

    def toggle(self):
        return self.set(THEME_DARK if self.get() == THEME_LIGHT else THEME_LIGHT)
