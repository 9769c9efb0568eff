"""Ingestion services (orchestration and collaborator contracts)."""

from carbon_ingestion.services.collaborators import (
    EmissionCalculator,
    EventPublisher,
    LoggingEventPublisher,
    RecordingEventPublisher,
)
from carbon_ingestion.services.ingestion_orchestrator import IngestionOrchestrator

__all__ = [
    "EmissionCalculator",
    "EventPublisher",
    "IngestionOrchestrator",
    "LoggingEventPublisher",
    "RecordingEventPublisher",
]
