"""A bounded pool of worker threads fed from a work queue."""

from __future__ import annotations

import queue
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterable, Optional, TypeVar

from keeperlib.cancellation import Context, background, merge_contexts_with_cancel, with_cancel

T = TypeVar("T")
K = TypeVar("K")

_POLL = 0.005


class ProcessStoppedError(RuntimeError):
    """The worker group has been stopped."""


class WorkerContextCancelledError(RuntimeError):
    """The caller's context ended before work could be queued."""


@dataclass
class WorkItemResult(Generic[T]):
    """What one work item produced, which worker ran it and how long it took."""

    worker: str
    data: Optional[T]
    err: Optional[BaseException]
    time: float


WorkItem = Callable[[Context], T]


class WorkerGroup(Generic[T]):
    """Runs queued work items on at most ``workers`` threads at once.

    Each item is called with the group's service context and either returns
    a value or raises; both outcomes are collected as results.
    """

    def __init__(self, workers: int, queue_size: int) -> None:
        if workers <= 0:
            raise ValueError("a worker group needs at least one worker")
        self._max_workers = workers
        self._active_workers = 0
        self._idle: queue.SimpleQueue[str] = queue.SimpleQueue()
        # A queue size of zero means a direct hand-off; one slot is the closest match.
        self._queue: queue.Queue[WorkItem[T]] = queue.Queue(maxsize=max(queue_size, 1))
        self._svc = with_cancel(background())
        self._lock = threading.Lock()
        self._stopped = False
        self._drain = threading.Event()
        self._results_lock = threading.Lock()
        self._results: list[WorkItemResult[T]] = []
        self._notify = threading.Event()
        self._runner = threading.Thread(target=self._run, name="worker-group", daemon=True)
        self._runner.start()

    def do(self, ctx: Context, item: WorkItem[T]) -> None:
        """Queue ``item``, blocking while the queue is full.

        Raises WorkerContextCancelledError if ``ctx`` ends first and
        ProcessStoppedError if the group is stopped.
        """
        if ctx.err() is not None:
            raise WorkerContextCancelledError(
                "worker context cancelled; work not added to queue"
            )
        while True:
            with self._lock:
                if self._stopped:
                    raise ProcessStoppedError(
                        "worker process has stopped; work not added to queue"
                    )
                try:
                    self._queue.put_nowait(item)
                    return
                except queue.Full:
                    pass
            if ctx.wait(_POLL):
                raise WorkerContextCancelledError(
                    "worker context cancelled; work not added to queue"
                )

    def notify_result(self, timeout: Optional[float] = None) -> bool:
        """Wait until new results may be available; False on timeout."""
        if self._notify.wait(timeout):
            self._notify.clear()
            return True
        return False

    def results(self) -> list[WorkItemResult[T]]:
        """Return and clear the collected results, oldest first."""
        with self._results_lock:
            collected, self._results = self._results, []
        return collected

    def stop(self) -> None:
        """Refuse new work, cancel running items and drain the queue."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
        self._svc.cancel()
        self._drain.set()

    def __enter__(self) -> WorkerGroup[T]:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.stop()

    def _run(self) -> None:
        while not self._drain.is_set():
            try:
                item = self._queue.get(timeout=_POLL)
            except queue.Empty:
                continue
            self._dispatch(item)

        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return
            self._dispatch(item)

    def _dispatch(self, item: WorkItem[T]) -> None:
        if self._active_workers < self._max_workers:
            self._active_workers += 1
            name = f"worker-{self._active_workers}"
        else:
            name = self._idle.get()
        threading.Thread(target=self._work, args=(name, item), name=name, daemon=True).start()

    def _work(self, name: str, item: WorkItem[T]) -> None:
        start = time.monotonic()
        data: Optional[T] = None
        err: Optional[BaseException] = self._svc.err()
        if err is None:
            try:
                data = item(self._svc)
            except Exception as exc:
                err = exc
        self._store(WorkItemResult(name, data, err, time.monotonic() - start))
        self._idle.put(name)

    def _store(self, result: WorkItemResult[T]) -> None:
        with self._results_lock:
            self._results.append(result)
        self._notify.set()


def _job_item(job_ctx: Context, value: K, job_func: Callable[[Context, K], T]) -> WorkItem[T]:
    def work(svc_ctx: Context) -> T:
        ctx, cancel = merge_contexts_with_cancel(svc_ctx, job_ctx)
        try:
            return job_func(ctx, value)
        finally:
            cancel()

    return work


def run_jobs(
    ctx: Context,
    group: WorkerGroup[T],
    jobs: Iterable[K],
    job_func: Callable[[Context, K], T],
    result_func: Callable[[Optional[T], Optional[BaseException]], Any],
) -> None:
    """Run ``job_func`` over ``jobs`` on ``group`` and report every result.

    Submission stops early if ``ctx`` ends or the group stops; the call
    returns once every submitted job has been reported to ``result_func``.
    """
    submitted = 0
    for job in jobs:
        try:
            group.do(ctx, _job_item(ctx, job, job_func))
        except (ProcessStoppedError, WorkerContextCancelledError):
            break
        submitted += 1

    received = 0
    while received < submitted:
        group.notify_result(_POLL)
        for result in group.results():
            result_func(result.data, result.err)
            received += 1