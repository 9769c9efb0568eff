"""
External collaborator contracts for the ingestion orchestrator.

The orchestrator receives both collaborators through its constructor; there
is no module-level publisher handle.

    EmissionCalculator  ``calculate(record) -> CalculationOutcome``, called
                        synchronously once per persisted record.  May raise;
                        failures are recorded on the record.
    EventPublisher      ``publish(event_name, payload)``, fire-and-forget.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from carbon_kernel.domain.measurement import CalculationOutcome, MeasurementRecord
from carbon_kernel.logging_config import get_logger

logger = get_logger("ingestion.events")


@runtime_checkable
class EmissionCalculator(Protocol):
    def calculate(self, record: MeasurementRecord) -> CalculationOutcome:
        ...


@runtime_checkable
class EventPublisher(Protocol):
    def publish(self, event_name: str, payload: dict[str, Any]) -> None:
        ...


class LoggingEventPublisher:
    """Publisher that only writes each event to the structured log."""

    def publish(self, event_name: str, payload: dict[str, Any]) -> None:
        logger.info("event_published", extra={"event_name": event_name, "event_payload": payload})


@dataclass
class RecordingEventPublisher:
    """In-memory publisher for tests and replay tooling."""

    events: list[tuple[str, dict[str, Any]]] = field(default_factory=list)

    def publish(self, event_name: str, payload: dict[str, Any]) -> None:
        self.events.append((event_name, payload))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def clear(self) -> None:
        self.events.clear()
