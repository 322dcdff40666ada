# civicsync/core/subscription.py
from __future__ import annotations

import threading
from typing import Callable, Generic, List, TypeVar

T = TypeVar("T")


class Subscription:
    """Cancellable handle returned by every listener registration."""

    def __init__(self, on_cancel: Callable[[], None]):
        self._on_cancel = on_cancel
        self._lock = threading.Lock()
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
        self._on_cancel()


class Listeners(Generic[T]):
    """Ordered callback list; each `add` hands back its own Subscription."""

    def __init__(self):
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[T], None]] = []

    def add(self, callback: Callable[[T], None]) -> Subscription:
        with self._lock:
            self._callbacks.append(callback)
        return Subscription(lambda: self._remove(callback))

    def _remove(self, callback: Callable[[T], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def emit(self, value: T) -> None:
        with self._lock:
            callbacks = list(self._callbacks)
        for cb in callbacks:
            cb(value)

    def __len__(self) -> int:
        return len(self._callbacks)
