"""Observer registration with an explicit dispose contract."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K")


class Subscription:
    """Handle returned by subscribe(); dispose() stops delivery. Idempotent."""

    def __init__(self, on_dispose: Callable[[], None]) -> None:
        self._on_dispose: Callable[[], None] | None = on_dispose

    @property
    def disposed(self) -> bool:
        return self._on_dispose is None

    def dispose(self) -> None:
        if self._on_dispose is None:
            return
        callback, self._on_dispose = self._on_dispose, None
        callback()

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc: object) -> None:
        self.dispose()


class ObserverHub(Generic[K]):
    """Keyed observer lists. Observers for a key are called in registration order.

    A key of None registers a wildcard observer that sees every key.
    An observer that raises is logged and skipped; delivery to the
    remaining observers continues.
    """

    def __init__(self) -> None:
        self._observers: dict[K | None, list[Callable[..., Any]]] = {}

    def subscribe(self, key: K | None, callback: Callable[..., Any]) -> Subscription:
        self._observers.setdefault(key, []).append(callback)

        def _remove() -> None:
            callbacks = self._observers.get(key)
            if not callbacks:
                return
            try:
                callbacks.remove(callback)
            except ValueError:
                return
            if not callbacks:
                del self._observers[key]

        return Subscription(_remove)

    def has_observers(self, key: K | None) -> bool:
        return bool(self._observers.get(key)) or bool(self._observers.get(None))

    def emit(self, key: K, *args: Any) -> None:
        callbacks = list(self._observers.get(key, ()))
        if key is not None:
            callbacks.extend(self._observers.get(None, ()))
        for callback in callbacks:
            try:
                callback(*args)
            except Exception:
                logger.exception("Observer %r failed for %r", callback, key)

    def discard(self, key: K) -> None:
        """Forget every observer bound to a specific key."""
        self._observers.pop(key, None)

    def clear(self) -> None:
        self._observers.clear()
