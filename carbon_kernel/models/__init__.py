"""ORM models. Importing this package registers every gateway table."""

from carbon_kernel.models.collection_config import CollectionConfigModel
from carbon_kernel.models.cumulative import CumulativeStateModel
from carbon_kernel.models.measurement import MeasurementRecordModel
from carbon_kernel.models.org_chart import OrgChartModel
from carbon_kernel.models.tenant import TenantModel

__all__ = [
    "CollectionConfigModel",
    "CumulativeStateModel",
    "MeasurementRecordModel",
    "OrgChartModel",
    "TenantModel",
]
