"""Per-account login attempt tracking with a time-window lockout.

Records are keyed by account identifier and mirrored to durable local
storage after every change, so a restart keeps the counters. When storage
is missing or broken the tracker keeps working in memory for the lifetime
of the process.
"""
import json
import logging
import math
import threading
import time
from dataclasses import dataclass

from ..local_storage import LocalStorageError

logger = logging.getLogger(__name__)

LOGIN_ATTEMPTS_KEY = 'login_attempts'
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_LOCKOUT_SECONDS = 15 * 60


@dataclass
class AttemptRecord:
    count: int
    last_attempt: float


class LoginAttemptTracker:
    def __init__(
        self,
        storage=None,
        max_attempts=DEFAULT_MAX_ATTEMPTS,
        lockout_seconds=DEFAULT_LOCKOUT_SECONDS,
        clock=time.time,
    ):
        self.storage = storage
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds
        self.clock = clock
        self._records = {}
        self._lock = threading.RLock()

    def load(self):
        """Replace the in-memory records with the persisted mapping."""
        if self.storage is None:
            return
        try:
            raw = self.storage.get_item(LOGIN_ATTEMPTS_KEY)
        except LocalStorageError:
            logger.warning('Login attempts could not be loaded; starting empty.')
            return
        if not raw:
            return
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning('Stored login attempts are not valid JSON; ignoring them.')
            return
        records = {}
        if isinstance(payload, dict):
            for identifier, item in payload.items():
                try:
                    records[identifier] = AttemptRecord(
                        count=int(item['count']),
                        last_attempt=float(item['last_attempt']),
                    )
                except (KeyError, TypeError, ValueError):
                    continue
        with self._lock:
            self._records = records

    def save(self):
        if self.storage is None:
            return
        with self._lock:
            payload = {
                identifier: {'count': record.count, 'last_attempt': record.last_attempt}
                for identifier, record in self._records.items()
            }
        try:
            self.storage.set_item(LOGIN_ATTEMPTS_KEY, json.dumps(payload))
        except LocalStorageError:
            logger.warning('Login attempts could not be persisted; keeping them in memory only.')

    def is_locked(self, identifier):
        with self._lock:
            record = self._records.get(identifier)
            if record is None:
                return False
            if self.clock() - record.last_attempt > self.lockout_seconds:
                self.clear(identifier)
                return False
            return record.count >= self.max_attempts

    def register_failure(self, identifier):
        with self._lock:
            record = self._records.get(identifier)
            if record is None:
                record = AttemptRecord(count=0, last_attempt=self.clock())
                self._records[identifier] = record
            record.count += 1
            record.last_attempt = self.clock()
            count = record.count
        self.save()
        return count

    def clear(self, identifier):
        with self._lock:
            self._records.pop(identifier, None)
        self.save()

    def remaining_lock_time(self, identifier):
        """Seconds left in the lockout window, never negative."""
        with self._lock:
            record = self._records.get(identifier)
            if record is None:
                return 0.0
            return max(0.0, self.lockout_seconds - (self.clock() - record.last_attempt))

    def remaining_lock_minutes(self, identifier):
        return math.ceil(self.remaining_lock_time(identifier) / 60)

    def attempts(self, identifier):
        with self._lock:
            record = self._records.get(identifier)
            return record.count if record else 0
