"""
Access Control Evaluator -- hierarchical, chart-scoped permission decisions.

Responsibility:
    Decide whether an actor may perform an operation against a tenant and,
    where given, a node and scope of the tenant's chart.  Returns an
    ``AccessDecision`` carrying a client-displayable reason.

Architecture position:
    Kernel > Domain -- pure function over an already-loaded
    ``TenantSnapshot``.  Loading the tenant and its charts is the caller's
    job (see ``carbon_kernel.services.access_service``).

Evaluation order (first match wins):
    1. super_admin is always allowed.
    2. Tenant isolation: an actor bound to a different tenant, or a
       tenant-bound role without a tenant, is denied before any chart lookup.
    3. A missing or inactive tenant is denied.
    4. The ``(role, operation category)`` dispatch table decides.  The table
       has an entry for every pair, explicit denials included; completeness
       is verified at import time.

    An allowed decision names the ``AssignmentEdge`` that granted it.

Failure modes:
    None raised.  Missing tenants, charts, nodes and scopes are denials with
    ``DecisionCode.NOT_FOUND`` so callers can render a uniform 403/404.
"""

from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
from uuid import UUID

from carbon_kernel.domain.org_chart import ResolvedTarget, TenantSnapshot
from carbon_kernel.domain.roles import Actor, AssignmentEdge, Operation, OperationCategory, Role


class DecisionCode(str, Enum):
    ALLOWED = "ALLOWED"
    DENIED = "DENIED"
    NOT_FOUND = "NOT_FOUND"


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str
    code: DecisionCode = DecisionCode.DENIED
    # Assignment that granted the decision; None for super_admin and denials.
    edge: AssignmentEdge | None = None

    @classmethod
    def allow(cls, reason: str = "Allowed", edge: AssignmentEdge | None = None) -> "AccessDecision":
        return cls(allowed=True, reason=reason, code=DecisionCode.ALLOWED, edge=edge)

    @classmethod
    def deny(cls, reason: str, code: DecisionCode = DecisionCode.DENIED) -> "AccessDecision":
        return cls(allowed=False, reason=reason, code=code)


@dataclass(frozen=True)
class AccessRequest:
    actor: Actor
    tenant_id: UUID
    operation: Operation
    snapshot: TenantSnapshot
    node_id: str | None = None
    scope_id: str | None = None


Rule = Callable[[AccessRequest], AccessDecision]


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _governing_edge(request: AccessRequest) -> AssignmentEdge | None:
    """The edge tying a consultant to the tenant, if there is one."""
    tenant = request.snapshot.tenant
    actor = request.actor
    if actor.role is Role.CONSULTANT_ADMIN and tenant.created_by_id == actor.actor_id:
        return AssignmentEdge.TENANT_CREATOR
    if actor.role is Role.CONSULTANT and tenant.assigned_consultant_id == actor.actor_id:
        return AssignmentEdge.TENANT_CONSULTANT
    return None


def _via(decision: AccessDecision, edge: AssignmentEdge) -> AccessDecision:
    return replace(decision, edge=edge) if decision.allowed else decision


def _resolve(request: AccessRequest) -> tuple[ResolvedTarget | None, AccessDecision | None]:
    """Resolve the requested node/scope or produce the denial for its absence."""
    snapshot = request.snapshot
    if request.node_id is None:
        if request.scope_id is not None:
            return None, AccessDecision.deny("A node is required to address a scope")
        return None, None
    if not snapshot.has_chart:
        return None, AccessDecision.deny(
            "No active organization chart for this client", DecisionCode.NOT_FOUND
        )
    target = snapshot.resolve(request.node_id, request.scope_id)
    if target is None:
        if request.scope_id is not None and snapshot.resolve(request.node_id) is not None:
            return None, AccessDecision.deny(
                "Scope not found in organization or process chart",
                DecisionCode.NOT_FOUND,
            )
        return None, AccessDecision.deny(
            "Node not found in organization or process chart", DecisionCode.NOT_FOUND
        )
    return target, None


def _operation_phrase(operation: Operation) -> str:
    return operation.value.replace("_", " ")


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def _allow_always(request: AccessRequest) -> AccessDecision:
    return AccessDecision.allow("Super admin")


def _connectivity_consultant(request: AccessRequest) -> AccessDecision:
    edge = _governing_edge(request)
    if edge is not None:
        return AccessDecision.allow("Consultant governs this client", edge)
    return _connectivity_denied(request)


def _connectivity_denied(request: AccessRequest) -> AccessDecision:
    return AccessDecision.deny(
        "Only Super Admin, the Consultant Admin who created the client, "
        "or the currently assigned Consultant can "
        f"{_operation_phrase(request.operation)}"
    )


def _write_client_admin(request: AccessRequest) -> AccessDecision:
    _, missing = _resolve(request)
    if missing is not None:
        return missing
    return AccessDecision.allow("Client admin of this client", AssignmentEdge.TENANT_MEMBER)


def _write_employee_head(request: AccessRequest) -> AccessDecision:
    target, missing = _resolve(request)
    if missing is not None:
        return missing
    if target is None or target.node.head_id != request.actor.actor_id:
        return AccessDecision.deny("Employee head not assigned to this node")
    return AccessDecision.allow("Head of this node", AssignmentEdge.NODE_HEAD)


def _write_employee(request: AccessRequest) -> AccessDecision:
    target, missing = _resolve(request)
    if missing is not None:
        return missing
    if target is None or target.scope is None:
        return AccessDecision.deny("Employee not assigned to this scope")
    if request.actor.actor_id not in target.scope.assigned_employee_ids:
        return AccessDecision.deny("Employee not assigned to this scope")
    return AccessDecision.allow("Assigned to this scope", AssignmentEdge.SCOPE_EMPLOYEE)


def _write_denied(request: AccessRequest) -> AccessDecision:
    return AccessDecision.deny(
        f"Role {request.actor.role.value} cannot write measurement data"
    )


def _read_tenant_wide(request: AccessRequest) -> AccessDecision:
    _, missing = _resolve(request)
    if missing is not None:
        return missing
    return AccessDecision.allow("Tenant-wide read access", AssignmentEdge.TENANT_MEMBER)


def _read_consultant(request: AccessRequest) -> AccessDecision:
    edge = _governing_edge(request)
    if edge is None:
        return AccessDecision.deny("Consultant does not govern this client")
    return _via(_read_tenant_wide(request), edge)


def _read_employee_head(request: AccessRequest) -> AccessDecision:
    if request.node_id is None and request.scope_id is None:
        return AccessDecision.allow("List-level read", AssignmentEdge.TENANT_MEMBER)
    target, missing = _resolve(request)
    if missing is not None:
        return missing
    if target is None or target.node.head_id != request.actor.actor_id:
        return AccessDecision.deny("Employee head not assigned to this node")
    return AccessDecision.allow("Head of this node", AssignmentEdge.NODE_HEAD)


def _read_employee(request: AccessRequest) -> AccessDecision:
    if request.node_id is None and request.scope_id is None:
        return AccessDecision.allow("List-level read", AssignmentEdge.TENANT_MEMBER)
    target, missing = _resolve(request)
    if missing is not None:
        return missing
    actor_id = request.actor.actor_id
    if target is not None and target.scope is not None:
        if actor_id in target.scope.assigned_employee_ids:
            return AccessDecision.allow("Assigned to this scope", AssignmentEdge.SCOPE_EMPLOYEE)
        return AccessDecision.deny("Employee not assigned to this scope")
    if request.node_id is not None:
        assigned = request.snapshot.scopes_assigned_to(actor_id)
        if any(node_id == request.node_id for node_id, _ in assigned):
            return AccessDecision.allow("Assigned to a scope of this node", AssignmentEdge.SCOPE_EMPLOYEE)
    return AccessDecision.deny("Employee not assigned to this node")


def _admin_client_admin(request: AccessRequest) -> AccessDecision:
    _, missing = _resolve(request)
    if missing is not None:
        return missing
    return AccessDecision.allow("Client admin of this client", AssignmentEdge.TENANT_MEMBER)


def _admin_consultant(request: AccessRequest) -> AccessDecision:
    edge = _governing_edge(request)
    if edge is None:
        return AccessDecision.deny("Consultant does not govern this client")
    return _via(_admin_client_admin(request), edge)


def _admin_denied(request: AccessRequest) -> AccessDecision:
    return AccessDecision.deny(
        f"Role {request.actor.role.value} cannot {_operation_phrase(request.operation)}"
    )


_C = OperationCategory

DISPATCH_TABLE: dict[tuple[Role, OperationCategory], Rule] = {
    (Role.SUPER_ADMIN, _C.CONNECTIVITY): _allow_always,
    (Role.SUPER_ADMIN, _C.CONTENT_WRITE): _allow_always,
    (Role.SUPER_ADMIN, _C.READ): _allow_always,
    (Role.SUPER_ADMIN, _C.ADMINISTRATION): _allow_always,
    (Role.CONSULTANT_ADMIN, _C.CONNECTIVITY): _connectivity_consultant,
    (Role.CONSULTANT_ADMIN, _C.CONTENT_WRITE): _write_denied,
    (Role.CONSULTANT_ADMIN, _C.READ): _read_consultant,
    (Role.CONSULTANT_ADMIN, _C.ADMINISTRATION): _admin_consultant,
    (Role.CONSULTANT, _C.CONNECTIVITY): _connectivity_consultant,
    (Role.CONSULTANT, _C.CONTENT_WRITE): _write_denied,
    (Role.CONSULTANT, _C.READ): _read_consultant,
    (Role.CONSULTANT, _C.ADMINISTRATION): _admin_consultant,
    (Role.CLIENT_ADMIN, _C.CONNECTIVITY): _connectivity_denied,
    (Role.CLIENT_ADMIN, _C.CONTENT_WRITE): _write_client_admin,
    (Role.CLIENT_ADMIN, _C.READ): _read_tenant_wide,
    (Role.CLIENT_ADMIN, _C.ADMINISTRATION): _admin_client_admin,
    (Role.EMPLOYEE_HEAD, _C.CONNECTIVITY): _connectivity_denied,
    (Role.EMPLOYEE_HEAD, _C.CONTENT_WRITE): _write_employee_head,
    (Role.EMPLOYEE_HEAD, _C.READ): _read_employee_head,
    (Role.EMPLOYEE_HEAD, _C.ADMINISTRATION): _admin_denied,
    (Role.EMPLOYEE, _C.CONNECTIVITY): _connectivity_denied,
    (Role.EMPLOYEE, _C.CONTENT_WRITE): _write_employee,
    (Role.EMPLOYEE, _C.READ): _read_employee,
    (Role.EMPLOYEE, _C.ADMINISTRATION): _admin_denied,
    (Role.AUDITOR, _C.CONNECTIVITY): _connectivity_denied,
    (Role.AUDITOR, _C.CONTENT_WRITE): _write_denied,
    (Role.AUDITOR, _C.READ): _read_tenant_wide,
    (Role.AUDITOR, _C.ADMINISTRATION): _admin_denied,
    (Role.VIEWER, _C.CONNECTIVITY): _connectivity_denied,
    (Role.VIEWER, _C.CONTENT_WRITE): _write_denied,
    (Role.VIEWER, _C.READ): _read_tenant_wide,
    (Role.VIEWER, _C.ADMINISTRATION): _admin_denied,
}


def _missing_table_entries() -> list[tuple[Role, OperationCategory]]:
    return [
        (role, category)
        for role in Role
        for category in OperationCategory
        if (role, category) not in DISPATCH_TABLE
    ]


if _missing_table_entries():
    raise RuntimeError(f"Access dispatch table incomplete: {_missing_table_entries()}")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def evaluate(
    actor: Actor,
    tenant_id: UUID,
    operation: Operation,
    node_id: str | None = None,
    scope_id: str | None = None,
    snapshot: TenantSnapshot | None = None,
) -> AccessDecision:
    """Decide whether ``actor`` may perform ``operation``. Never raises."""
    if actor.role is Role.SUPER_ADMIN:
        return AccessDecision.allow("Super admin")

    if actor.tenant_id is not None and actor.tenant_id != tenant_id:
        return AccessDecision.deny("Tenant isolation: actor belongs to a different tenant")
    if actor.role.is_tenant_member and actor.tenant_id is None:
        return AccessDecision.deny("Tenant isolation: actor is not bound to a tenant")

    if snapshot is None or snapshot.tenant.tenant_id != tenant_id:
        return AccessDecision.deny("Client not found", DecisionCode.NOT_FOUND)
    if not snapshot.tenant.is_active:
        return AccessDecision.deny("Client is not active")

    request = AccessRequest(
        actor=actor,
        tenant_id=tenant_id,
        operation=operation,
        snapshot=snapshot,
        node_id=node_id,
        scope_id=scope_id,
    )
    return DISPATCH_TABLE[(actor.role, operation.category)](request)


def can_read(
    actor: Actor,
    tenant_id: UUID,
    node_id: str | None = None,
    scope_id: str | None = None,
    snapshot: TenantSnapshot | None = None,
) -> bool:
    """Coarse read check used by listing and status surfaces."""
    return evaluate(actor, tenant_id, Operation.READ, node_id, scope_id, snapshot).allowed
