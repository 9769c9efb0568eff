"""
Carbon Kernel - data-collection gateway core

Multi-tenant measurement ingestion for carbon accounting:
- Chart-scoped, role-hierarchical access decisions
- Per-(tenant, node, scope) cumulative ledgers kept in timestamp order
- Channel wiring (pull-API, IoT, manual) with connect/disconnect state
- Collection cadence and overdue tracking
"""

__version__ = "0.1.0"
