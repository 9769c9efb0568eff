"""
Typed exception hierarchy for the carbon data-collection gateway.

Every gateway error carries two class attributes:

    code     Machine-readable identifier, stable across releases
             (e.g. ``CHANNEL_DISABLED``).  Safe to return to API clients.
    outcome  The externally visible category the error belongs to.  Transport
             adapters map outcomes to status codes; batch reports group
             per-row failures by it.

Structured context (scope id, record id, offending value) is stored as
instance attributes so it survives logging and serialization.  The
``StructuredFormatter`` in ``carbon_kernel.logging_config`` copies these
attributes into the log line as ``exc_<name>`` fields.

Hierarchy::

    CarbonKernelError
    |
    +-- AuthorizationDeniedError            outcome=denied
    |
    +-- ValidationFailedError               outcome=validation_failed
    |   +-- InvalidRecordedAtError
    |   +-- EmptyPayloadError
    |   +-- MissingScopeConfigurationError
    |   +-- ChannelMismatchError
    |   +-- RecordNotEditableError
    |
    +-- ChannelDisabledError                outcome=channel_disabled
    |
    +-- NotFoundError                       outcome=not_found
    |   +-- TenantNotFoundError
    |   +-- ChartNotFoundError
    |   +-- NodeNotFoundError
    |   +-- ScopeNotFoundError
    |   +-- RecordNotFoundError
    |
    +-- PersistenceConflictError            outcome=conflict
    |   +-- DuplicateTimestampError
    |   +-- OutOfOrderRecordError
    |
    +-- DownstreamCalculationError          outcome=calculation_failed

Propagation:
    AuthorizationDeniedError and ChannelDisabledError are raised before any
    state is mutated.  ValidationFailedError and PersistenceConflictError
    abort a single record; in batch contexts the orchestrator collects them
    per row.  DownstreamCalculationError is recorded on the persisted record
    and never rolls it back.
"""


class CarbonKernelError(Exception):
    """Base exception for all gateway errors."""

    code: str = "CARBON_KERNEL_ERROR"
    outcome: str = "error"


# Authorization


class AuthorizationDeniedError(CarbonKernelError):
    """The actor may not perform the requested operation."""

    code: str = "AUTHORIZATION_DENIED"
    outcome: str = "denied"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


# Validation


class ValidationFailedError(CarbonKernelError):
    """Base exception for rejected input."""

    code: str = "VALIDATION_FAILED"
    outcome: str = "validation_failed"


class InvalidRecordedAtError(ValidationFailedError):
    """Date, time or timestamp could not be parsed."""

    code: str = "INVALID_RECORDED_AT"

    def __init__(self, value: str, expected: str):
        self.value = value
        self.expected = expected
        super().__init__(f"Invalid date/time {value!r}; expected {expected}")


class EmptyPayloadError(ValidationFailedError):
    """The submitted payload carries no measurement values."""

    code: str = "EMPTY_PAYLOAD"

    def __init__(self, detail: str = "Payload contains no data values"):
        super().__init__(detail)


class MissingScopeConfigurationError(ValidationFailedError):
    """The resolved scope lacks the configuration needed to normalize."""

    code: str = "MISSING_SCOPE_CONFIGURATION"

    def __init__(self, scope_id: str, missing: str):
        self.scope_id = scope_id
        self.missing = missing
        super().__init__(f"Scope {scope_id} has no {missing} configured")


class ChannelMismatchError(ValidationFailedError):
    """The scope is wired to a different input channel than the request."""

    code: str = "CHANNEL_MISMATCH"

    def __init__(self, scope_id: str, expected: str, requested: str):
        self.scope_id = scope_id
        self.expected = expected
        self.requested = requested
        super().__init__(
            f"Scope {scope_id} accepts {expected} input, not {requested}"
        )


class RecordNotEditableError(ValidationFailedError):
    """Only manual-channel records may be edited or deleted."""

    code: str = "RECORD_NOT_EDITABLE"

    def __init__(self, record_id: str, channel: str):
        self.record_id = record_id
        self.channel = channel
        super().__init__(
            f"Record {record_id} came from the {channel} channel; "
            "only manual records can be edited or deleted"
        )


# Channel state


class ChannelDisabledError(CarbonKernelError):
    """The scope's API/IoT connection is switched off."""

    code: str = "CHANNEL_DISABLED"
    outcome: str = "channel_disabled"

    def __init__(self, scope_id: str, channel: str):
        self.scope_id = scope_id
        self.channel = channel
        super().__init__(
            f"{channel} connection for scope {scope_id} is disabled"
        )


# Lookups


class NotFoundError(CarbonKernelError):
    """Base exception for missing tenants, charts, nodes, scopes, records."""

    code: str = "NOT_FOUND"
    outcome: str = "not_found"


class TenantNotFoundError(NotFoundError):
    code: str = "TENANT_NOT_FOUND"

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        super().__init__(f"Tenant not found: {tenant_id}")


class ChartNotFoundError(NotFoundError):
    code: str = "CHART_NOT_FOUND"

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        super().__init__(f"No active chart for tenant {tenant_id}")


class NodeNotFoundError(NotFoundError):
    code: str = "NODE_NOT_FOUND"

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node not found: {node_id}")


class ScopeNotFoundError(NotFoundError):
    code: str = "SCOPE_NOT_FOUND"

    def __init__(self, node_id: str, scope_id: str):
        self.node_id = node_id
        self.scope_id = scope_id
        super().__init__(f"Scope {scope_id} not found under node {node_id}")


class RecordNotFoundError(NotFoundError):
    code: str = "RECORD_NOT_FOUND"

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Measurement record not found: {record_id}")


# Persistence


class PersistenceConflictError(CarbonKernelError):
    """Base exception for ordering and uniqueness conflicts."""

    code: str = "PERSISTENCE_CONFLICT"
    outcome: str = "conflict"


class DuplicateTimestampError(PersistenceConflictError):
    """Two records in one batch share a timestamp for the same triple."""

    code: str = "DUPLICATE_TIMESTAMP"

    def __init__(self, recorded_at: str, indexes: list[int]):
        self.recorded_at = recorded_at
        self.indexes = indexes
        super().__init__(
            f"Entries {indexes} share timestamp {recorded_at}"
        )


class OutOfOrderRecordError(PersistenceConflictError):
    """A record is older than the cumulative watermark."""

    code: str = "OUT_OF_ORDER_RECORD"

    def __init__(self, recorded_at: str, watermark: str):
        self.recorded_at = recorded_at
        self.watermark = watermark
        super().__init__(
            f"Record at {recorded_at} is earlier than watermark {watermark}"
        )


# Calculation hand-off


class DownstreamCalculationError(CarbonKernelError):
    """The emission calculator failed for a persisted record."""

    code: str = "DOWNSTREAM_CALCULATION_FAILED"
    outcome: str = "calculation_failed"

    def __init__(self, record_id: str, detail: str):
        self.record_id = record_id
        self.detail = detail
        super().__init__(f"Calculation failed for record {record_id}: {detail}")
