"""Cancellation contexts that can be chained and merged across threads."""

from __future__ import annotations

import threading
import time
from typing import Any, Optional


class CancelledError(Exception):
    """The context was cancelled."""


class DeadlineExceededError(Exception):
    """The context's deadline passed."""


class Context:
    """A cancellation signal with an optional deadline and values.

    A context is cancelled when ``cancel`` is called, when its deadline
    passes, or when any of its parents is cancelled. Cancelling a context
    never affects its parents.
    """

    def __init__(
        self,
        parent: Optional[Context] = None,
        *,
        deadline: Optional[float] = None,
        values: Optional[dict[Any, Any]] = None,
    ) -> None:
        parents = (parent,) if parent is not None else ()
        self._setup(parents, parent, deadline, values, "context canceled")

    def _setup(
        self,
        parents: tuple[Context, ...],
        value_parent: Optional[Context],
        deadline: Optional[float],
        values: Optional[dict[Any, Any]],
        cancel_message: str,
    ) -> None:
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._err: Optional[BaseException] = None
        self._children: set[Context] = set()
        self._parents = parents
        self._value_parent = value_parent
        self._values = dict(values or {})
        self._own_deadline = deadline
        self._timer: Optional[threading.Timer] = None
        self._cancel_message = cancel_message

        for parent in parents:
            if not parent._add_child(self):
                self._cancel(parent.err())
                return

        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self._cancel(DeadlineExceededError("context deadline exceeded"))
                return
            with self._lock:
                if self._err is None:
                    timer = threading.Timer(
                        remaining,
                        self._cancel,
                        args=(DeadlineExceededError("context deadline exceeded"),),
                    )
                    timer.daemon = True
                    self._timer = timer
                    timer.start()

    def _add_child(self, child: Context) -> bool:
        with self._lock:
            if self._err is not None:
                return False
            self._children.add(child)
            return True

    def _remove_child(self, child: Context) -> None:
        with self._lock:
            self._children.discard(child)

    def _cancel(self, err: Optional[BaseException]) -> None:
        with self._lock:
            if self._err is not None:
                return
            self._err = err if err is not None else CancelledError(self._cancel_message)
            err = self._err
            children = list(self._children)
            self._children.clear()
            timer, self._timer = self._timer, None
        self._event.set()
        if timer is not None:
            timer.cancel()
        for child in children:
            child._cancel(err)
        for parent in self._parents:
            parent._remove_child(self)

    def cancel(self) -> None:
        """Cancel this context and every context derived from it."""
        self._cancel(CancelledError(self._cancel_message))

    def done(self) -> bool:
        """Return True once the context has been cancelled."""
        return self._event.is_set()

    def err(self) -> Optional[BaseException]:
        """Return why the context ended, or None while it is still live."""
        with self._lock:
            return self._err

    def deadline(self) -> Optional[float]:
        """Return the earliest monotonic deadline that applies, if any."""
        candidates = [self._own_deadline] + [p.deadline() for p in self._parents]
        present = [d for d in candidates if d is not None]
        return min(present) if present else None

    def value(self, key: Any) -> Any:
        """Look up ``key`` here, then along the value chain; None if absent."""
        if key in self._values:
            return self._values[key]
        if self._value_parent is not None:
            return self._value_parent.value(key)
        return None

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or ``timeout`` seconds pass; return done()."""
        return self._event.wait(timeout)

    def __enter__(self) -> Context:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.cancel()


class _Background(Context):
    """The root context: never cancelled, holds no children."""

    def __init__(self) -> None:
        self._setup((), None, None, None, "")

    def _add_child(self, child: Context) -> bool:
        return True

    def _remove_child(self, child: Context) -> None:
        return None

    def cancel(self) -> None:
        return None


_BACKGROUND = _Background()


def background() -> Context:
    """Return the root context, which is never cancelled."""
    return _BACKGROUND


def with_cancel(parent: Context) -> Context:
    """Return a cancellable child of ``parent``."""
    return Context(parent)


def with_timeout(parent: Context, seconds: float) -> Context:
    """Return a child of ``parent`` that is cancelled after ``seconds``."""
    return Context(parent, deadline=time.monotonic() + seconds)


def _merged(main: Context, other: Context) -> Context:
    ctx = Context.__new__(Context)
    ctx._setup((main, other), other, None, None, "merged context canceled")
    return ctx


def merge_contexts(main: Context, other: Context) -> Context:
    """Return a context that ends when either input ends.

    Values are looked up in ``other``.
    """
    return _merged(main, other)


def merge_contexts_with_cancel(main: Context, other: Context) -> tuple[Context, Any]:
    """Like ``merge_contexts``, also returning the merged context's cancel."""
    ctx = _merged(main, other)
    return ctx, ctx.cancel