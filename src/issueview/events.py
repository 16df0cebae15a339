"""Minimal publish/subscribe used for every notification in issueview.

Handlers run synchronously inside ``publish`` on the caller's thread (the
event loop thread), in subscription order. A handler that raises is logged and
does not prevent later handlers from running.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from .logging import get_logger

Handler = Callable[..., None]


class Subscription:
    """Token returned by :meth:`EventEmitter.subscribe`."""

    def __init__(self, emitter: EventEmitter, handler: Handler):
        self._emitter = emitter
        self._handler: Handler | None = handler

    @property
    def active(self) -> bool:
        return self._handler is not None

    def dispose(self) -> None:
        if self._handler is None:
            return
        self._emitter._remove(self)
        self._handler = None


class EventEmitter:
    def __init__(self, name: str = "event"):
        self.name = name
        self._subscriptions: list[Subscription] = []

    def subscribe(self, handler: Handler) -> Subscription:
        sub = Subscription(self, handler)
        self._subscriptions.append(sub)
        return sub

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.dispose()

    def publish(self, *args: Any) -> None:
        # Snapshot: handlers may (un)subscribe while we iterate
        for sub in list(self._subscriptions):
            handler = sub._handler
            if handler is None:
                continue
            try:
                handler(*args)
            except Exception as exc:
                get_logger().log_error(
                    f"listener for {self.name} failed",
                    error=str(exc),
                    operation="publish",
                )

    def __len__(self) -> int:
        return len(self._subscriptions)

    def _remove(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:  # already removed
            pass


class DisposableStore:
    """Collects subscriptions so an owner can drop them all at once."""

    def __init__(self) -> None:
        self._items: list[Subscription] = []

    def add(self, subscription: Subscription) -> Subscription:
        self._items.append(subscription)
        return subscription

    def dispose(self) -> None:
        items, self._items = self._items, []
        for item in items:
            item.dispose()

    def __len__(self) -> int:
        return len(self._items)


__all__ = ["DisposableStore", "EventEmitter", "Handler", "Subscription"]
