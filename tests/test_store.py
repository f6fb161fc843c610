import threading

from drupot.store import EngagementStore


def test_flag_is_idempotent():
    store = EngagementStore()
    assert store.flag("203.0.113.5") is True
    before = store.snapshot()
    assert store.flag("203.0.113.5") is False
    assert store.snapshot() == before
    assert len(store) == 1


def test_flagged_source_stays_flagged():
    store = EngagementStore()
    store.flag("203.0.113.5")
    for other in ("198.51.100.1", "198.51.100.2", "203.0.113.5"):
        store.flag(other)
        assert store.is_flagged("203.0.113.5")
    assert "203.0.113.5" in store
    assert "192.0.2.1" not in store
    assert 12345 not in store


def test_concurrent_flagging_reports_first_writer_once():
    store = EngagementStore()
    results = []
    lock = threading.Lock()
    barrier = threading.Barrier(16)

    def worker():
        barrier.wait()
        outcome = store.flag("192.0.2.44")
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results.count(True) == 1
    assert store.snapshot() == {"192.0.2.44"}


def test_readers_run_alongside_writers():
    store = EngagementStore()
    stop = threading.Event()
    errors = []

    def reader():
        while not stop.is_set():
            try:
                store.is_flagged("10.0.0.1")
                len(store)
            except Exception as exc:  # pragma: no cover - surfaced by the assert
                errors.append(exc)

    readers = [threading.Thread(target=reader) for _ in range(4)]
    for thread in readers:
        thread.start()
    for i in range(500):
        store.flag(f"10.0.{i // 256}.{i % 256}")
    stop.set()
    for thread in readers:
        thread.join()

    assert not errors
    assert len(store) == 500


def test_reset_clears_for_tests():
    store = EngagementStore()
    store.flag("203.0.113.5")
    store.reset()
    assert len(store) == 0
    assert not store.is_flagged("203.0.113.5")
