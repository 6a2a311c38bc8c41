"""
Utils package for shared utilities like logging, parsing and Pydantic schemas.
"""

from .errors import IngestionError, MetricUndefined, SpecError
from .schemas import (
    CampaignRecord,
    MetricSpec,
    FilterSpec,
    SortKey,
    ReportSpec,
    ReportResult,
    IngestionIssue,
    DataQualityReport,
)

__all__ = [
    "IngestionError",
    "MetricUndefined",
    "SpecError",
    "CampaignRecord",
    "MetricSpec",
    "FilterSpec",
    "SortKey",
    "ReportSpec",
    "ReportResult",
    "IngestionIssue",
    "DataQualityReport",
]
