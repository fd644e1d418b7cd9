"""Worker notifications for committed payments.

The dispatcher subscribes to PayrollPaid on the event emitter, so it only
ever runs after the payment transaction committed. Delivery is best
effort: a failure here is logged and reported back through the emitter's
error list but never undoes the payment.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Protocol
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from payroll_ledger.clock import Clock, SystemClock
from payroll_ledger.errors import PersistenceFailure
from payroll_ledger.events import EventEmitter, PayrollPaid
from payroll_ledger.models import Notification

logger = logging.getLogger(__name__)

SALARY_PAID_TYPE = "salary_paid"


@dataclass(frozen=True)
class NotificationMessage:
    """A notification addressed to one worker."""

    recipient_worker_id: UUID
    title: str
    message: str
    notification_type: str
    priority: str = "normal"
    related_id: UUID | None = None


class NotificationSink(Protocol):
    """Outbound channel (email, push, chat...) for notifications."""

    def deliver(self, message: NotificationMessage) -> None:
        ...


def build_payment_message(event: PayrollPaid) -> NotificationMessage:
    """The "salary paid" notification for a PayrollPaid event."""
    return NotificationMessage(
        recipient_worker_id=event.worker_id,
        title="Salary Payment Processed",
        message=(
            f"Your salary for period {event.period_start} to {event.period_end} "
            f"has been paid. Amount: ${event.amount:.2f}"
        ),
        notification_type=SALARY_PAID_TYPE,
        priority="high",
        related_id=event.payroll_record_id,
    )


class NotificationDispatcher:
    """Stores notifications and pushes them to any configured sinks.

    Each notification is written in its own short transaction, separate
    from the payment that triggered it.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        sinks: Iterable[NotificationSink] = (),
        clock: Clock | None = None,
    ):
        self.session_factory = session_factory
        self.sinks = list(sinks)
        self.clock = clock or SystemClock()

    def register(self, emitter: EventEmitter) -> None:
        """Subscribe to payment events."""
        emitter.on(PayrollPaid, self.handle_payroll_paid)

    def handle_payroll_paid(self, event: PayrollPaid) -> None:
        """Notify the worker that their salary was paid."""
        self.dispatch(build_payment_message(event))

    def dispatch(self, message: NotificationMessage) -> UUID:
        """Persist a notification, then hand it to every sink.

        Returns:
            The stored notification's id

        Raises:
            PersistenceFailure: the notification could not be stored
        """
        notification_id = self._store(message)

        failed = 0
        for sink in self.sinks:
            try:
                sink.deliver(message)
            except Exception:
                failed += 1
                logger.exception(
                    "Notification sink %r failed for notification %s", sink, notification_id
                )
        if failed:
            logger.warning(
                "Notification %s stored but %d of %d sinks failed",
                notification_id,
                failed,
                len(self.sinks),
            )
        return notification_id

    def _store(self, message: NotificationMessage) -> UUID:
        session = self.session_factory()
        try:
            notification = Notification(
                recipient_worker_id=message.recipient_worker_id,
                title=message.title,
                message=message.message,
                notification_type=message.notification_type,
                priority=message.priority,
                related_id=message.related_id,
                created_at=self.clock.now(),
            )
            session.add(notification)
            session.commit()
            return notification.notification_id
        except SQLAlchemyError as exc:
            session.rollback()
            raise PersistenceFailure(
                f"Could not store notification for worker {message.recipient_worker_id}"
            ) from exc
        finally:
            session.close()
