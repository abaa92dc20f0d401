import json

from catalog_admin.local_storage import MemoryStorage
from catalog_admin.services.lockout import LOGIN_ATTEMPTS_KEY, LoginAttemptTracker

USER = 'user@x.com'


def make_tracker(clock, storage=None):
    return LoginAttemptTracker(storage if storage is not None else MemoryStorage(), clock=clock)


def test_locks_after_max_failures_within_window(clock):
    tracker = make_tracker(clock)
    for _ in range(4):
        tracker.register_failure(USER)
        clock.advance(5)
    assert not tracker.is_locked(USER)

    assert tracker.register_failure(USER) == 5
    assert tracker.is_locked(USER)
    assert tracker.remaining_lock_time(USER) == 900
    assert tracker.remaining_lock_minutes(USER) == 15


def test_lock_expires_and_record_is_cleared(clock):
    storage = MemoryStorage()
    tracker = make_tracker(clock, storage)
    for _ in range(5):
        tracker.register_failure(USER)

    clock.advance(900)
    assert tracker.is_locked(USER)

    clock.advance(1)
    assert not tracker.is_locked(USER)
    assert tracker.attempts(USER) == 0
    assert USER not in json.loads(storage.get_item(LOGIN_ATTEMPTS_KEY))


def test_clear_always_unlocks(clock):
    tracker = make_tracker(clock)
    for _ in range(7):
        tracker.register_failure(USER)
    tracker.clear(USER)
    assert not tracker.is_locked(USER)
    tracker.clear('never-seen@x.com')
    assert not tracker.is_locked('never-seen@x.com')


def test_remaining_lock_time_never_increases_and_never_negative(clock):
    tracker = make_tracker(clock)
    for _ in range(5):
        tracker.register_failure(USER)

    samples = []
    for _ in range(12):
        samples.append(tracker.remaining_lock_time(USER))
        clock.advance(97)
    assert samples == sorted(samples, reverse=True)
    assert all(value >= 0 for value in samples)
    assert tracker.remaining_lock_time(USER) == 0
    assert tracker.remaining_lock_time('nobody@x.com') == 0


def test_remaining_minutes_round_up(clock):
    tracker = make_tracker(clock)
    tracker.register_failure(USER)
    clock.advance(60.5)
    assert tracker.remaining_lock_minutes(USER) == 14


def test_records_survive_reload(clock):
    storage = MemoryStorage()
    first = make_tracker(clock, storage)
    for _ in range(5):
        first.register_failure(USER)

    second = make_tracker(clock, storage)
    assert not second.is_locked(USER)
    second.load()
    assert second.attempts(USER) == 5
    assert second.is_locked(USER)


def test_corrupt_persisted_data_is_ignored(clock):
    storage = MemoryStorage({LOGIN_ATTEMPTS_KEY: '{not json'})
    tracker = make_tracker(clock, storage)
    tracker.load()
    assert tracker.attempts(USER) == 0

    storage.set_item(LOGIN_ATTEMPTS_KEY, json.dumps({USER: {'count': 'x'}, 'ok@x.com': {'count': 2, 'last_attempt': clock()}}))
    tracker.load()
    assert tracker.attempts(USER) == 0
    assert tracker.attempts('ok@x.com') == 2


def test_tracker_works_in_memory_when_storage_fails(clock, broken_storage):
    tracker = make_tracker(clock, broken_storage)
    tracker.load()
    for expected in range(1, 6):
        assert tracker.register_failure(USER) == expected
    assert tracker.is_locked(USER)
    tracker.clear(USER)
    assert not tracker.is_locked(USER)


def test_tracker_without_storage(clock):
    tracker = LoginAttemptTracker(clock=clock, max_attempts=2, lockout_seconds=60)
    tracker.load()
    tracker.register_failure(USER)
    tracker.register_failure(USER)
    assert tracker.is_locked(USER)
    clock.advance(61)
    assert not tracker.is_locked(USER)
