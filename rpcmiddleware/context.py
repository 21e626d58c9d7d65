"""Request-scoped contexts carrying values, deadlines and cancellation."""

from __future__ import annotations

import threading
import time
import weakref
from typing import Any, Callable

_NO_KEY = object()
_PEER_KEY = object()
_NEVER = threading.Event()


class Canceled(Exception):
    """The context was cancelled."""

    def __init__(self, message: str = "context canceled") -> None:
        super().__init__(message)


class DeadlineExceeded(Exception):
    """The context's deadline passed."""

    def __init__(self, message: str = "context deadline exceeded") -> None:
        super().__init__(message)


class Context:
    """An immutable chain of values with an optional deadline and cancellation.

    Deadlines are absolute values of ``time.monotonic()``.
    """

    def __init__(self) -> None:
        self._parent: Context | None = None
        self._key: Any = _NO_KEY
        self._value: Any = None
        self._deadline: float | None = None
        self._canceller: Context | None = None
        self._lock = threading.Lock()
        self._err: BaseException | None = None
        self._event = threading.Event()
        self._children: weakref.WeakSet[Context] = weakref.WeakSet()

    def _child(
        self,
        *,
        key: Any = _NO_KEY,
        value: Any = None,
        deadline: float | None = None,
        cancellable: bool = False,
    ) -> Context:
        child = Context()
        child._parent = self
        child._key = key
        child._value = value
        child._deadline = self._deadline
        if deadline is not None and (child._deadline is None or deadline < child._deadline):
            child._deadline = deadline
        if cancellable:
            child._canceller = child
            if self._canceller is not None:
                self._canceller._adopt(child)
        else:
            child._canceller = self._canceller
        return child

    def _adopt(self, child: Context) -> None:
        with self._lock:
            if self._err is None:
                self._children.add(child)
                return
            err = self._err
        child._cancel(err)

    def _cancel(self, err: BaseException) -> None:
        with self._lock:
            if self._err is not None:
                return
            if self._deadline is not None and time.monotonic() >= self._deadline:
                err = DeadlineExceeded()
            self._err = err
            children = list(self._children)
            self._children.clear()
        self._event.set()
        for child in children:
            child._cancel(err)

    def with_value(self, key: Any, value: Any) -> Context:
        """Return a child context that maps ``key`` to ``value``."""
        return self._child(key=key, value=value)

    def value(self, key: Any) -> Any:
        """Return the value stored under ``key`` here or in an ancestor, or None."""
        node: Context | None = self
        while node is not None:
            if node._key is not _NO_KEY and node._key == key:
                return node._value
            node = node._parent
        return None

    def with_cancel(self) -> tuple[Context, Callable[[], None]]:
        """Return a cancellable child context and the function that cancels it."""
        child = self._child(cancellable=True)

        def cancel() -> None:
            child._cancel(Canceled())

        return child, cancel

    def with_timeout(self, timeout: float) -> tuple[Context, Callable[[], None]]:
        """Return a child context that expires after ``timeout`` seconds, and its cancel function."""
        child = self._child(deadline=time.monotonic() + timeout, cancellable=True)

        def cancel() -> None:
            child._cancel(Canceled())

        return child, cancel

    def deadline(self) -> float | None:
        """Return the effective deadline as a ``time.monotonic()`` value, or None."""
        return self._deadline

    def err(self) -> BaseException | None:
        """Return why the context is done, or None while it is still live."""
        canceller = self._canceller
        if canceller is not None and canceller._err is not None:
            return canceller._err
        if self._deadline is not None and time.monotonic() >= self._deadline:
            return DeadlineExceeded()
        return None

    def done(self) -> bool:
        """Return True once the context is cancelled or past its deadline."""
        return self.err() is not None

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the context is done or ``timeout`` seconds pass; return whether it is done."""
        event = self._canceller._event if self._canceller is not None else _NEVER
        end = None if timeout is None else time.monotonic() + timeout
        while True:
            if self.err() is not None:
                return True
            now = time.monotonic()
            if end is not None and now >= end:
                return False
            limits = [moment - now for moment in (end, self._deadline) if moment is not None]
            event.wait(max(0.0, min(limits)) if limits else None)


_BACKGROUND = Context()


def background() -> Context:
    """Return the empty root context, which is never done."""
    return _BACKGROUND


def with_peer(ctx: Context, address: str) -> Context:
    """Return a context recording the address of the remote peer."""
    return ctx.with_value(_PEER_KEY, address)


def peer_address(ctx: Context) -> str | None:
    """Return the peer address stored in ``ctx``, or None."""
    return ctx.value(_PEER_KEY)