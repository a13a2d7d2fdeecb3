"""Upload progress tracker tests."""

import pytest

from pdf_service.errors import NotFoundError
from pdf_service.uploads.progress import UploadProgressTracker, compute_percentage


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tracker(clock):
    return UploadProgressTracker(ttl_seconds=3600, clock=clock)


def test_initiate_creates_pending_session(tracker):
    upload_id = tracker.initiate()

    progress = tracker.get(upload_id)
    assert progress.status == "pending"
    assert progress.total == 0
    assert progress.loaded == 0
    assert progress.percentage == 0


def test_progress_percentage_follows_loaded_bytes(tracker):
    upload_id = tracker.initiate()
    tracker.start(upload_id, 1000)
    tracker.update(upload_id, 500)

    progress = tracker.get(upload_id)
    assert progress.status == "uploading"
    assert progress.loaded == 500
    assert progress.percentage == 50


def test_complete_sets_loaded_to_total(tracker):
    upload_id = tracker.initiate()
    tracker.start(upload_id, 1000)
    tracker.update(upload_id, 10)
    tracker.complete(upload_id)

    progress = tracker.get(upload_id)
    assert progress.status == "completed"
    assert progress.loaded == progress.total == 1000
    assert progress.percentage == 100


def test_fail_records_message(tracker):
    upload_id = tracker.initiate()
    tracker.start(upload_id, 1000)
    tracker.fail(upload_id, "connection reset")

    progress = tracker.get(upload_id)
    assert progress.status == "error"
    assert progress.error == "connection reset"


def test_start_unknown_session_raises_not_found(tracker):
    with pytest.raises(NotFoundError):
        tracker.start("does-not-exist", 100)


def test_updates_for_unknown_sessions_are_ignored(tracker):
    tracker.update("does-not-exist", 500)
    tracker.complete("does-not-exist")
    tracker.fail("does-not-exist", "boom")

    assert tracker.get("does-not-exist") is None
    assert len(tracker) == 0


def test_update_before_start_is_ignored(tracker):
    upload_id = tracker.initiate()
    tracker.update(upload_id, 500)

    progress = tracker.get(upload_id)
    assert progress.status == "pending"
    assert progress.loaded == 0


def test_update_after_completion_is_ignored(tracker):
    upload_id = tracker.initiate()
    tracker.start(upload_id, 1000)
    tracker.complete(upload_id)
    tracker.update(upload_id, 10)

    assert tracker.get(upload_id).loaded == 1000


def test_session_expires_after_idle_window(tracker, clock):
    upload_id = tracker.initiate()

    clock.advance(3599)
    assert tracker.get(upload_id) is not None

    clock.advance(1)
    assert tracker.get(upload_id) is None
    with pytest.raises(NotFoundError):
        tracker.start(upload_id, 100)


def test_transitions_reset_expiry(tracker, clock):
    upload_id = tracker.initiate()
    clock.advance(3000)
    tracker.start(upload_id, 100)
    clock.advance(3000)
    tracker.complete(upload_id)
    clock.advance(3000)

    assert tracker.get(upload_id).status == "completed"


def test_byte_updates_do_not_extend_session(tracker, clock):
    upload_id = tracker.initiate()
    tracker.start(upload_id, 1000)
    clock.advance(3000)
    tracker.update(upload_id, 900)
    clock.advance(600)

    assert tracker.get(upload_id) is None


def test_terminal_sessions_expire_too(tracker, clock):
    upload_id = tracker.initiate()
    tracker.start(upload_id, 10)
    tracker.complete(upload_id)
    clock.advance(3600)

    assert tracker.get(upload_id) is None


def test_purge_expired_removes_only_stale_sessions(tracker, clock):
    stale = tracker.initiate()
    clock.advance(1800)
    fresh = tracker.initiate()
    clock.advance(1800)

    assert tracker.purge_expired() == 1
    assert tracker.get(stale) is None
    assert tracker.get(fresh) is not None


def test_clear_drops_everything(tracker):
    tracker.initiate()
    tracker.initiate()
    tracker.clear()
    assert len(tracker) == 0


def test_compute_percentage():
    assert compute_percentage(0, 0) == 0
    assert compute_percentage(10, 0) == 0
    assert compute_percentage(1, 3) == 33
    assert compute_percentage(2, 3) == 67
    assert compute_percentage(1, 200) == 1  # 0.5 rounds up
    assert compute_percentage(1000, 1000) == 100
