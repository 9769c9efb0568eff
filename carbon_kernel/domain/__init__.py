"""
Pure domain layer.

Value objects and decision functions with no ORM, database or clock
dependencies.  Everything here is immutable and deterministic.
"""

from carbon_kernel.domain.access import AccessDecision, DecisionCode, can_read, evaluate
from carbon_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from carbon_kernel.domain.collection import CollectionFrequency, is_overdue, next_due
from carbon_kernel.domain.cumulative import CumulativeState, FieldTally
from carbon_kernel.domain.measurement import (
    CalculationOutcome,
    CalculationStatus,
    EditSnapshot,
    MeasurementRecord,
)
from carbon_kernel.domain.org_chart import (
    ChartKind,
    ChartNode,
    IngestionChannel,
    OrgChart,
    ResolvedTarget,
    ScopeChannel,
    ScopeConfig,
    Tenant,
    TenantSnapshot,
)
from carbon_kernel.domain.roles import Actor, AssignmentEdge, Operation, OperationCategory, Role

__all__ = [
    "AccessDecision",
    "Actor",
    "AssignmentEdge",
    "CalculationOutcome",
    "CalculationStatus",
    "ChartKind",
    "ChartNode",
    "Clock",
    "CollectionFrequency",
    "CumulativeState",
    "DecisionCode",
    "DeterministicClock",
    "EditSnapshot",
    "FieldTally",
    "IngestionChannel",
    "MeasurementRecord",
    "Operation",
    "OperationCategory",
    "OrgChart",
    "ResolvedTarget",
    "Role",
    "ScopeChannel",
    "ScopeConfig",
    "SystemClock",
    "Tenant",
    "TenantSnapshot",
    "can_read",
    "evaluate",
    "is_overdue",
    "next_due",
]
