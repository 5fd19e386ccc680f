"""Per-resource-kind publish/subscribe channel.

Every mounted controller of a kind subscribes to the same channel. After a
successful load or mutation the owner publishes the full collection and the
other subscribers resynchronize from it without hitting the network.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Generic, TypeVar

import structlog

log = structlog.get_logger()

T = TypeVar("T")

Listener = Callable[[Sequence[T]], None]


class UpdateChannel(Generic[T]):
    def __init__(self, kind: str) -> None:
        self.kind = kind
        self._listeners: list[tuple[object | None, Listener[T]]] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: Listener[T], owner: object | None = None) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unsubscribes it.

        ``owner`` identifies the subscriber so its own publications are not
        echoed back to it.
        """
        entry = (owner, listener)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    def publish(self, collection: Sequence[T], source: object | None = None) -> int:
        """Deliver ``collection`` to every subscriber except ``source``.

        Returns the number of listeners notified. A failing listener is
        logged and skipped.
        """
        delivered = 0
        snapshot = list(collection)
        for owner, listener in list(self._listeners):
            if source is not None and owner is source:
                continue
            try:
                listener(snapshot)
            except Exception:
                log.warning("update_listener_error", kind=self.kind, exc_info=True)
                continue
            delivered += 1
        log.debug("update_published", kind=self.kind, items=len(snapshot), delivered=delivered)
        return delivered
