"""
EDI Audit Trail.

Audit storage is external; the pipeline writes through the ``AuditSink``
protocol. ``InMemoryAuditLog`` is the sink used for local runs and tests.
"""

from typing import Any, Callable, Optional, Protocol

from edi_pipeline.core.enums import AuditEventType
from edi_pipeline.schemas.audit import AuditDetails, AuditEvent
from edi_pipeline.schemas.claim import ActorIdentity
from edi_pipeline.utils.logging import get_logger

logger = get_logger(__name__)


class AuditSink(Protocol):
    """Destination for audit events."""

    async def create_audit_event(self, event: AuditEvent) -> None: ...


class InMemoryAuditLog:
    """Bounded in-memory audit store with query helpers."""

    def __init__(self, max_events: int = 100000):
        self._max_events = max_events
        self._events: list[AuditEvent] = []
        self._event_handlers: list[Callable[[AuditEvent], Any]] = []

    async def create_audit_event(self, event: AuditEvent) -> None:
        self._events.append(event)

        if len(self._events) > self._max_events:
            self._events = self._events[-self._max_events:]

        for handler in self._event_handlers:
            handler(event)

    def query(
        self,
        event_type: Optional[AuditEventType] = None,
        org_id: Optional[str] = None,
        claim_id: Optional[str] = None,
    ) -> list[AuditEvent]:
        """Events matching every given filter, oldest first."""
        results = self._events.copy()
        if event_type is not None:
            results = [e for e in results if e.type == event_type]
        if org_id is not None:
            results = [e for e in results if e.org_id == org_id]
        if claim_id is not None:
            results = [
                e for e in results if getattr(e.details, "claim_id", None) == claim_id
            ]
        return results

    def count(self, event_type: AuditEventType) -> int:
        return sum(1 for e in self._events if e.type == event_type)

    @property
    def events(self) -> list[AuditEvent]:
        return self._events.copy()

    def add_handler(self, handler: Callable[[AuditEvent], Any]) -> None:
        """Add a callback invoked for every stored event."""
        self._event_handlers.append(handler)

    def clear_events(self) -> None:
        self._events.clear()


class AuditRecorder:
    """
    Builds audit events for an actor and forwards them to a sink.

    A failing sink is logged and does not abort the EDI operation being
    audited.
    """

    def __init__(self, sink: AuditSink, enabled: bool = True):
        self.sink = sink
        self.enabled = enabled

    async def record(
        self,
        event_type: AuditEventType,
        actor: Optional[ActorIdentity],
        details: AuditDetails,
    ) -> Optional[AuditEvent]:
        if not self.enabled:
            return None

        event = AuditEvent(
            type=event_type,
            org_id=actor.org_id if actor else None,
            actor_user_id=actor.user_id if actor else None,
            ip=actor.ip_address if actor else None,
            user_agent=actor.user_agent if actor else None,
            details=details,
        )
        try:
            await self.sink.create_audit_event(event)
        except Exception as e:
            logger.error(f"Failed to write audit event {event_type.value}: {e}")
            return None
        return event
