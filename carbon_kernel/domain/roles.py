"""
Role hierarchy model.

Closed enumerations for the platform's roles, the operations the gateway
authorizes, and the assignment edges that connect actors to tenants, chart
nodes and scopes.  Pure data; the decision logic lives in
``carbon_kernel.domain.access``.

Hierarchy (top to bottom)::

    super_admin
      consultant_admin          creates tenants, governs its consultants
        consultant              assigned to tenants
          client_admin          administers one tenant
            client_employee_head  heads chart nodes
              employee          assigned to scopes
    auditor, viewer             read-only members of one tenant
"""

from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID


class Role(str, Enum):
    SUPER_ADMIN = "super_admin"
    CONSULTANT_ADMIN = "consultant_admin"
    CONSULTANT = "consultant"
    CLIENT_ADMIN = "client_admin"
    EMPLOYEE_HEAD = "client_employee_head"
    EMPLOYEE = "employee"
    AUDITOR = "auditor"
    VIEWER = "viewer"

    @property
    def is_tenant_member(self) -> bool:
        """Tenant-bound roles carry a tenant id; platform roles do not."""
        return self not in (
            Role.SUPER_ADMIN,
            Role.CONSULTANT_ADMIN,
            Role.CONSULTANT,
        )


class OperationCategory(str, Enum):
    CONNECTIVITY = "connectivity"
    CONTENT_WRITE = "content_write"
    READ = "read"
    ADMINISTRATION = "administration"


class Operation(str, Enum):
    # Channel wiring
    CONNECT = "connect"
    RECONNECT = "reconnect"
    DISCONNECT = "disconnect"
    SWITCH_CHANNEL = "switch_channel"
    # Measurement content
    MANUAL_ENTRY = "manual_entry"
    FILE_IMPORT = "file_import"
    EDIT_MANUAL = "edit_manual"
    DELETE_MANUAL = "delete_manual"
    API_PUSH = "api_push"
    IOT_PUSH = "iot_push"
    # Listing / status
    READ = "read"
    # Chart structure
    ASSIGN_HEAD = "assign_head"

    @property
    def category(self) -> OperationCategory:
        return _OPERATION_CATEGORIES[self]


_OPERATION_CATEGORIES: dict[Operation, OperationCategory] = {
    Operation.CONNECT: OperationCategory.CONNECTIVITY,
    Operation.RECONNECT: OperationCategory.CONNECTIVITY,
    Operation.DISCONNECT: OperationCategory.CONNECTIVITY,
    Operation.SWITCH_CHANNEL: OperationCategory.CONNECTIVITY,
    Operation.MANUAL_ENTRY: OperationCategory.CONTENT_WRITE,
    Operation.FILE_IMPORT: OperationCategory.CONTENT_WRITE,
    Operation.EDIT_MANUAL: OperationCategory.CONTENT_WRITE,
    Operation.DELETE_MANUAL: OperationCategory.CONTENT_WRITE,
    Operation.API_PUSH: OperationCategory.CONTENT_WRITE,
    Operation.IOT_PUSH: OperationCategory.CONTENT_WRITE,
    Operation.READ: OperationCategory.READ,
    Operation.ASSIGN_HEAD: OperationCategory.ADMINISTRATION,
}


class AssignmentEdge(str, Enum):
    """Relationship kinds the evaluator inspects."""

    TENANT_CREATOR = "tenant_creator"  # consultant_admin -> tenant
    TENANT_CONSULTANT = "tenant_consultant"  # consultant -> tenant
    TENANT_MEMBER = "tenant_member"  # client roles -> tenant
    NODE_HEAD = "node_head"  # employee head -> node
    SCOPE_EMPLOYEE = "scope_employee"  # employee -> scope


@dataclass(frozen=True)
class Actor:
    """
    Authenticated principal for one request.

    ``assignments`` mirrors the user record's owned node/scope ids.  It is
    informational: authorization reads head and employee assignments from
    the tenant's chart, which is the source of truth.
    """

    actor_id: UUID
    role: Role
    tenant_id: UUID | None = None
    assignments: frozenset[str] = field(default_factory=frozenset)
