from __future__ import annotations

import threading

from survey_core.sessions import SessionRegistry, Sweeper


def test_record_counts_up_within_window():
    reg = SessionRegistry(window=60)
    counts = [reg.record("s1", 100.0 + i) for i in range(5)]
    assert counts == [1, 2, 3, 4, 5]
    assert reg.count_in_window("s1", 104.0) == 5


def test_record_prunes_entries_older_than_window():
    reg = SessionRegistry(window=60)
    reg.record("s1", 0.0)
    reg.record("s1", 30.0)
    assert reg.record("s1", 61.0) == 2, "timestamp at t=0 should have left the window"
    assert reg.count_in_window("s1", 95.0) == 1


def test_count_in_window_is_read_only_and_zero_for_unknown():
    reg = SessionRegistry(window=60)
    assert reg.count_in_window("nobody", 10.0) == 0
    assert "nobody" not in reg
    reg.record("s1", 10.0)
    reg.count_in_window("s1", 20.0)
    reg.count_in_window("s1", 20.0)
    assert reg.count_in_window("s1", 20.0) == 1


def test_admit_denies_at_limit_and_reports_retry_after():
    reg = SessionRegistry(window=60)
    for i in range(3):
        ok, count, _ = reg.admit("s1", 3, 100.0 + i)
        assert ok and count == i + 1
    ok, count, retry = reg.admit("s1", 3, 110.0)
    assert not ok
    assert count == 3
    assert abs(retry - 50.0) < 1e-9, "oldest timestamp (100) expires at 160"
    assert reg.count_in_window("s1", 110.0) == 3, "a denied request is not recorded"


def test_admit_is_atomic_under_concurrency():
    reg = SessionRegistry(window=60)
    barrier = threading.Barrier(20)
    admitted: list[bool] = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        ok, _, _ = reg.admit("shared", 10, 500.0)
        with lock:
            admitted.append(ok)

    threads = [threading.Thread(target=worker) for _ in range(20)]
    for th in threads: th.start()
    for th in threads: th.join()

    assert admitted.count(True) == 10
    assert reg.count_in_window("shared", 500.0) == 10


def test_sweep_removes_only_stale_sessions():
    reg = SessionRegistry(window=60)
    reg.record("old", 0.0)
    reg.record("mixed", 0.0)
    reg.record("mixed", 250.0)
    reg.record("fresh", 290.0)

    removed = reg.sweep(now=301.0, stale_after=300.0)

    assert removed == 1
    assert "old" not in reg
    assert "mixed" in reg and "fresh" in reg
    assert len(reg) == 2


def test_create_issues_distinct_ids():
    reg = SessionRegistry()
    ids = {reg.create() for _ in range(50)}
    assert len(ids) == 50


def test_sweeper_runs_on_interval_and_stops():
    hits = threading.Event()
    sweeper = Sweeper(hits.set, interval=0.01)
    sweeper.start()
    try:
        assert hits.wait(2.0), "sweep function should run on its own"
        assert sweeper.running
    finally:
        sweeper.stop()
    assert not sweeper.running
