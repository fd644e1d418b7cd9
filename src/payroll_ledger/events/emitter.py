"""Synchronous event emitter.

Handlers subscribe by event class, by category, or to everything. A
handler that raises is logged and skipped; the remaining handlers still
run and the caller gets the exceptions back as a list.

Batches hold events until the surrounding block finishes, so a service can
emit while it works and have nothing published if the transaction fails.
Batch state is kept per thread; request handlers in the API share one
emitter.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from payroll_ledger.events.types import DomainEvent, EventCategory

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=DomainEvent)

EventHandler = Callable[[DomainEvent], None]


@dataclass(frozen=True)
class HandlerRegistration:
    """A handler and the filter it was registered with."""

    handler: EventHandler
    event_types: frozenset[str] | None = None  # None = any type
    categories: frozenset[EventCategory] | None = None  # None = any category

    def matches(self, event: DomainEvent) -> bool:
        if self.event_types is not None and event.event_type not in self.event_types:
            return False
        if self.categories is not None and event.category not in self.categories:
            return False
        return True


class EventEmitter:
    """Publishes domain events to registered handlers.

    Usage:
        emitter = EventEmitter()
        emitter.on(PayrollPaid, dispatcher.handle_payroll_paid)
        emitter.on_category(EventCategory.RECONCILIATION, page_operator)

        with emitter.batch() as batch:
            batch.add(posted)
            batch.add(paid)
        # both published here, or neither if the block raised
    """

    def __init__(self) -> None:
        self._handlers: list[HandlerRegistration] = []
        self._local = threading.local()

    def on(self, event_type: type[T] | list[type[T]], handler: EventHandler) -> None:
        """Subscribe to one event class or a list of them."""
        classes = event_type if isinstance(event_type, list) else [event_type]
        self._register(handler, event_types=frozenset(c.__name__ for c in classes))

    def on_category(
        self,
        category: EventCategory | list[EventCategory],
        handler: EventHandler,
    ) -> None:
        """Subscribe to every event in one or more categories."""
        categories = category if isinstance(category, list) else [category]
        self._register(handler, categories=frozenset(categories))

    def on_all(self, handler: EventHandler) -> None:
        """Subscribe to every event."""
        self._register(handler)

    def off(self, handler: EventHandler) -> None:
        """Remove every registration of ``handler``."""
        self._handlers = [reg for reg in self._handlers if reg.handler is not handler]

    def emit(self, event: DomainEvent) -> list[Exception]:
        """Publish an event, or queue it when a batch is open on this thread.

        Returns:
            Exceptions raised by handlers (always empty while batching)
        """
        pending = self._pending()
        if pending is not None:
            pending.append(event)
            return []
        return self._dispatch(event)

    def batch(self) -> EventBatch:
        """Context manager that publishes queued events when it exits cleanly."""
        return EventBatch(self)

    def _register(self, handler: EventHandler, **filters: Any) -> None:
        self._handlers.append(HandlerRegistration(handler=handler, **filters))

    def _dispatch(self, event: DomainEvent) -> list[Exception]:
        errors: list[Exception] = []
        for reg in self._handlers:
            if not reg.matches(event):
                continue
            try:
                reg.handler(event)
            except Exception as exc:
                logger.exception(
                    "Event handler %r failed on %s %s",
                    reg.handler,
                    event.event_type,
                    event.metadata.event_id,
                )
                errors.append(exc)
        return errors

    def _pending(self) -> list[DomainEvent] | None:
        return getattr(self._local, "pending", None)

    def _open_batch(self) -> None:
        self._local.pending = []

    def _close_batch(self, publish: bool) -> list[Exception]:
        events = self._pending() or []
        self._local.pending = None
        if not publish:
            if events:
                logger.debug("Discarded %d batched event(s)", len(events))
            return []

        errors: list[Exception] = []
        for event in events:
            errors.extend(self._dispatch(event))
        return errors


class EventBatch:
    """Collects events emitted inside a ``with`` block."""

    def __init__(self, emitter: EventEmitter) -> None:
        self._emitter = emitter
        self._errors: list[Exception] = []

    def __enter__(self) -> EventBatch:
        self._emitter._open_batch()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self._errors = self._emitter._close_batch(publish=exc_type is None)

    def add(self, event: DomainEvent) -> None:
        """Queue an event on the batch."""
        self._emitter.emit(event)

    @property
    def errors(self) -> list[Exception]:
        """Handler exceptions, available once the block has exited."""
        return self._errors
