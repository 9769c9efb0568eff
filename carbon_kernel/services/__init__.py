"""Services for the gateway kernel (write side)."""

from carbon_kernel.services.access_service import AccessService
from carbon_kernel.services.chart_reader import OrganizationChartReader
from carbon_kernel.services.collection_service import (
    CollectionConfigService,
    CollectionStatus,
    CollectionSummary,
)
from carbon_kernel.services.connectivity_service import ConnectivityResult, ConnectivityService
from carbon_kernel.services.cumulative_service import (
    DEFAULT_LOCK_REGISTRY,
    CumulativeService,
    TripleLockRegistry,
)

__all__ = [
    "AccessService",
    "CollectionConfigService",
    "CollectionStatus",
    "CollectionSummary",
    "ConnectivityResult",
    "ConnectivityService",
    "CumulativeService",
    "DEFAULT_LOCK_REGISTRY",
    "OrganizationChartReader",
    "TripleLockRegistry",
]
