"""Post-commit notifications for invoice and payment changes.

Services publish an event only after their transaction has committed, once
per logical mutation, so listeners (dashboards, real-time UI bridges) never
observe state that could still be rolled back. Listener failures are logged
and never propagate: the mutation they describe is already durable.
"""
import inspect
from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, ClassVar, Dict, List
from uuid import UUID, uuid4

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, kw_only=True)
class InvoicingEvent:
    """Base class for invoicing domain events."""

    event_type: ClassVar[str] = "invoicing.event"

    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=datetime.utcnow)

    def to_payload(self) -> dict[str, Any]:
        """JSON-friendly payload for external transports."""
        payload = {"type": self.event_type}
        for key, value in asdict(self).items():
            if isinstance(value, (UUID, Decimal)):
                value = str(value)
            elif isinstance(value, datetime):
                value = value.isoformat()
            payload[key] = value
        return payload


@dataclass(frozen=True, kw_only=True)
class InvoiceUpdated(InvoicingEvent):
    """An invoice's committed status/balance after a mutation."""

    event_type: ClassVar[str] = "invoice.updated"

    invoice_id: UUID
    invoice_no: str
    status: str
    balance: Decimal
    received_amount: Decimal


@dataclass(frozen=True, kw_only=True)
class PaymentCreated(InvoicingEvent):
    event_type: ClassVar[str] = "payment.created"

    payment_id: UUID
    invoice_id: UUID
    invoice_no: str
    amount: Decimal
    round_off: Decimal
    method: str


@dataclass(frozen=True, kw_only=True)
class PaymentUpdated(InvoicingEvent):
    event_type: ClassVar[str] = "payment.updated"

    payment_id: UUID
    invoice_id: UUID
    amount: Decimal
    method: str


@dataclass(frozen=True, kw_only=True)
class PaymentDeleted(InvoicingEvent):
    event_type: ClassVar[str] = "payment.deleted"

    payment_id: UUID
    invoice_id: UUID


class EventPublisher:
    """
    In-process publisher for invoicing events.

    Subscribe by event type string (e.g. ``"invoice.updated"``) or ``"*"``
    for everything. Callbacks may be plain functions or coroutines and run in
    subscription order.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Callable[[InvoicingEvent], Any]]] = {}

    def subscribe(self, event_type: str, callback: Callable[[InvoicingEvent], Any]) -> None:
        """Register a callback for one event type, or ``"*"`` for all."""
        self._subscribers.setdefault(event_type, []).append(callback)

    def unsubscribe(self, event_type: str, callback: Callable[[InvoicingEvent], Any]) -> None:
        """Remove a previously registered callback if present."""
        callbacks = self._subscribers.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def clear(self) -> None:
        self._subscribers.clear()

    async def publish(self, event: InvoicingEvent) -> None:
        """
        Deliver an event to its subscribers.

        Args:
            event: Event to deliver
        """
        callbacks = self._subscribers.get(event.event_type, []) + self._subscribers.get("*", [])

        logger.info("invoicing_event_published", event_type=event.event_type, event_id=event.event_id,
                    subscribers=len(callbacks))

        for callback in callbacks:
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "invoicing_event_handler_failed",
                    handler=getattr(callback, "__name__", repr(callback)),
                    event_type=event.event_type,
                    event_id=event.event_id,
                )


# Process-wide publisher used by the services unless one is injected
event_publisher = EventPublisher()
