import threading

import pytest

from emberweb.threadpool import ThreadPool


def test_zero_threads_rejected():
    with pytest.raises(ValueError):
        ThreadPool(0)


def test_all_tasks_run_before_close_returns():
    results = []
    lock = threading.Lock()

    def record(value):
        with lock:
            results.append(value)

    with ThreadPool(4) as pool:
        for value in range(20):
            pool.add_task(lambda v=value: record(v))
    assert sorted(results) == list(range(20))
    with pytest.raises(RuntimeError):
        pool.add_task(lambda: record(99))
    assert 99 not in results


def test_single_worker_runs_tasks_in_order():
    results = []
    pool = ThreadPool(1)
    for value in range(5):
        pool.add_task(lambda v=value: results.append(v))
    pool.close()
    assert results == list(range(5))


def test_tasks_run_concurrently():
    barrier = threading.Barrier(2, timeout=2)
    passed = []
    lock = threading.Lock()

    def meet():
        barrier.wait()
        with lock:
            passed.append(True)

    with ThreadPool(2) as pool:
        pool.add_task(meet)
        pool.add_task(meet)
    assert passed == [True, True]
    with pytest.raises(RuntimeError):
        pool.add_task(meet)


def test_add_task_after_close_raises():
    pool = ThreadPool(2)
    pool.close()
    with pytest.raises(RuntimeError):
        pool.add_task(lambda: None)


def test_failing_task_does_not_stop_worker():
    results = []

    def fail():
        raise RuntimeError("boom")

    with ThreadPool(1) as pool:
        pool.add_task(fail)
        pool.add_task(lambda: results.append("after"))
    assert results == ["after"]