from phototriage.engine.deletion_queue import DeletionQueue
from phototriage.library.models import AuthorizationStatus

from fakes import FakeAssetSource, make_photos


def make_queue(store, count=10, batch_size=10):
    source = FakeAssetSource(make_photos(count, prefix="d"))
    return source, DeletionQueue(source, store, batch_size=batch_size)


def test_flush_with_partial_failure(store):
    source, queue = make_queue(store)
    source.delete_failures = {"d03", "d07"}
    store.add_sensitive("d01")
    store.add_sensitive("d03")

    for i in range(10):
        queue.enqueue(f"d{i:02d}")
    assert queue.flush_due

    result = queue.flush()

    assert result.removed_count == 8
    assert sorted(result.failed_identifiers) == ["d03", "d07"]
    assert result.success is False
    assert len(source.delete_calls) == 1
    assert len(source.delete_calls[0]) == 10

    assert len(queue) == 0
    assert sorted(queue.failed_ids()) == ["d03", "d07"]
    assert queue.hidden_ids() == {"d03", "d07"}

    assert not store.is_sensitive("d01")
    assert store.is_sensitive("d03")


def test_enqueue_is_deduplicated(store):
    _, queue = make_queue(store)
    assert queue.enqueue("d01") is True
    assert queue.enqueue("d01") is False
    assert len(queue) == 1
    assert "d01" in queue


def test_flush_due_respects_setting(store):
    _, queue = make_queue(store, batch_size=5)
    for i in range(5):
        queue.enqueue(f"d{i:02d}")
    assert queue.flush_due

    queue.auto_flush = False
    assert not queue.flush_due


def test_already_deleted_assets_count_as_removed(store):
    source, queue = make_queue(store, count=2)
    queue.enqueue("d00")
    queue.enqueue("vanished")

    result = queue.flush()

    assert result.removed_count == 2
    assert result.success
    assert source.delete_calls == [["d00"]]


def test_source_exception_fails_whole_batch(store):
    source, queue = make_queue(store, count=3)
    source.delete_exception = RuntimeError("user cancelled")
    for i in range(3):
        queue.enqueue(f"d{i:02d}")

    result = queue.flush()

    assert result.removed_count == 0
    assert sorted(result.failed_identifiers) == ["d00", "d01", "d02"]
    assert result.error == "user cancelled"
    assert queue.hidden_ids() == {"d00", "d01", "d02"}
    assert len(source.assets) == 3


def test_clear_restores_queued_and_failed(store):
    source, queue = make_queue(store, count=3)
    source.delete_failures = {"d00"}
    queue.enqueue("d00")
    queue.flush()
    queue.enqueue("d01")

    restored = queue.clear()

    assert sorted(restored) == ["d00", "d01"]
    assert queue.hidden_ids() == set()


def test_retry_failed_requeues(store):
    source, queue = make_queue(store, count=2)
    source.delete_failures = {"d00"}
    queue.enqueue("d00")
    queue.flush()

    assert queue.retry_failed() == 1
    assert queue.queued_ids() == ["d00"]
    assert queue.failed_ids() == []

    source.delete_failures = set()
    result = queue.flush()
    assert result.removed_count == 1
    assert "d00" not in source.assets


def test_flush_skipped_when_unauthorized(store):
    source, queue = make_queue(store, count=2)
    source.status = AuthorizationStatus.DENIED
    queue.enqueue("d00")

    result = queue.flush()

    assert result.removed_count == 0
    assert source.delete_calls == []
    assert len(queue) == 1


def test_empty_flush_is_noop(store):
    source, queue = make_queue(store)
    result = queue.flush()
    assert result.success
    assert source.delete_calls == []
