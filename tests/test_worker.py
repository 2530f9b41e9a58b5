import threading
import time

import pytest

from keeperlib.cancellation import CancelledError, background, with_cancel
from keeperlib.worker import (
    ProcessStoppedError,
    WorkerContextCancelledError,
    WorkerGroup,
    WorkItemResult,
    run_jobs,
)


def _collect(group, count, timeout=2.0):
    collected = []
    deadline = time.monotonic() + timeout
    while len(collected) < count and time.monotonic() < deadline:
        group.notify_result(0.01)
        collected.extend(group.results())
    return collected


def _job(ctx, value):
    if ctx.wait(0.02):
        raise ctx.err()
    return value


class _Counter:
    def __init__(self):
        self.result = 0
        self.errors = 0

    def __call__(self, value, err):
        if err is None:
            self.result += value
        else:
            self.errors += 1


def test_all_work_done():
    group = WorkerGroup(8, 1000)
    for n in range(10):
        group.do(background(), lambda ctx, n=n: n)
    results = _collect(group, 10)
    group.stop()
    assert sorted(r.data for r in results) == list(range(10))
    assert all(r.err is None and r.time >= 0 for r in results)


def test_wait_before_sending():
    group = WorkerGroup(8, 1000)
    time.sleep(0.1)
    for _ in range(10):
        group.do(background(), lambda ctx: True)
    results = _collect(group, 10)
    group.stop()
    assert len(results) == 10
    assert all(r.data is True for r in results)


def test_worker_names_are_bounded():
    group = WorkerGroup(2, 10)
    for _ in range(6):
        group.do(background(), lambda ctx: 1)
    results = _collect(group, 6)
    group.stop()
    assert len(results) == 6
    assert {r.worker for r in results} <= {"worker-1", "worker-2"}


def test_exception_is_captured_as_result():
    group = WorkerGroup(1, 1)

    def fail(ctx):
        raise ValueError("boom")

    group.do(background(), fail)
    results = _collect(group, 1)
    group.stop()
    assert len(results) == 1
    assert isinstance(results[0].err, ValueError)
    assert results[0].data is None


def test_results_are_cleared_after_reading():
    group = WorkerGroup(1, 1)
    group.do(background(), lambda ctx: 5)
    first = _collect(group, 1)
    group.stop()
    assert [r.data for r in first] == [5]
    assert group.results() == []


def test_notify_result_times_out_without_results():
    group = WorkerGroup(1, 1)
    assert group.notify_result(0.02) is False
    group.stop()


def test_error_on_context_already_cancelled():
    group = WorkerGroup(1, 1)
    ctx = with_cancel(background())
    ctx.cancel()
    with pytest.raises(WorkerContextCancelledError):
        group.do(ctx, lambda c: 1)
    group.stop()


def _fill(group, release):
    group.do(background(), lambda ctx: release.wait(2.0))
    group.do(background(), lambda ctx: 1)
    group.do(background(), lambda ctx: 1)


def test_error_on_cancel_and_full_queue():
    group = WorkerGroup(1, 1)
    release = threading.Event()
    _fill(group, release)

    ctx = with_cancel(background())
    timer = threading.Timer(0.05, ctx.cancel)
    timer.start()
    started = time.monotonic()
    try:
        with pytest.raises(WorkerContextCancelledError):
            group.do(ctx, lambda c: 1)
        assert time.monotonic() - started >= 0.03
    finally:
        timer.cancel()
        release.set()
        group.stop()


def test_error_on_stop_and_full_queue():
    group = WorkerGroup(1, 1)
    release = threading.Event()
    _fill(group, release)

    timer = threading.Timer(0.05, group.stop)
    timer.start()
    started = time.monotonic()
    try:
        with pytest.raises(ProcessStoppedError):
            group.do(background(), lambda c: 1)
        assert time.monotonic() - started >= 0.03
    finally:
        release.set()
        timer.join(1.0)


def test_stop_closes_queue_and_ends_run_context():
    group = WorkerGroup(1, 1)

    def slow(ctx):
        if ctx.wait(1.0):
            raise RuntimeError("error")
        return 1

    group.do(background(), slow)
    time.sleep(0.02)
    started = time.monotonic()
    group.stop()
    results = _collect(group, 1)
    assert time.monotonic() - started < 0.9
    assert len(results) == 1
    assert results[0].data is None
    assert isinstance(results[0].err, (RuntimeError, CancelledError))

    with pytest.raises(ProcessStoppedError):
        group.do(background(), lambda ctx: 0)


def test_work_item_result_fields():
    result = WorkItemResult("worker-1", 3, None, 0.5)
    assert (result.worker, result.data, result.err, result.time) == ("worker-1", 3, None, 0.5)


def test_run_all_jobs_to_completion():
    group = WorkerGroup(10, 100)
    counter = _Counter()
    run_jobs(background(), group, [1] * 100, _job, counter)
    group.stop()
    assert counter.result == 100
    assert counter.errors == 0


def test_cancel_jobs_before_complete():
    group = WorkerGroup(10, 100)
    counter = _Counter()
    ctx = with_cancel(background())
    timer = threading.Timer(0.1, ctx.cancel)
    timer.start()
    run_jobs(ctx, group, [1] * 100, _job, counter)
    group.stop()
    timer.cancel()
    assert counter.errors > 0
    assert 0 < counter.result < 100
    assert counter.errors < 100
    assert counter.result + counter.errors == 100


def test_small_queue_with_cancel():
    group = WorkerGroup(10, 10)
    counter = _Counter()
    ctx = with_cancel(background())
    timer = threading.Timer(0.1, ctx.cancel)
    timer.start()
    run_jobs(ctx, group, [1] * 100, _job, counter)
    group.stop()
    timer.cancel()
    assert counter.errors > 0
    assert 0 < counter.result < 100
    assert counter.errors < 100


def test_drain_jobs_on_stop():
    group = WorkerGroup(10, 100)
    counter = _Counter()
    timer = threading.Timer(0.1, group.stop)
    timer.start()
    run_jobs(background(), group, [1] * 100, _job, counter)
    timer.join(1.0)
    assert 0 < counter.result < 100
    assert counter.result + counter.errors == 100


def test_stop_with_small_queue():
    group = WorkerGroup(10, 10)
    counter = _Counter()
    timer = threading.Timer(0.1, group.stop)
    timer.start()
    run_jobs(background(), group, [1] * 100, _job, counter)
    timer.join(1.0)
    assert counter.errors > 0
    assert 0 < counter.result < 100
    assert counter.errors < 100


def test_run_jobs_with_cancelled_context_submits_nothing():
    group = WorkerGroup(2, 10)
    ctx = with_cancel(background())
    ctx.cancel()
    calls = []
    run_jobs(ctx, group, [1, 2, 3], _job, lambda value, err: calls.append(value))
    group.stop()
    assert calls == []