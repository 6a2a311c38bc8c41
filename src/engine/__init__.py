"""
Engine package initializer.
Exports the loader and the aggregation engine.
"""

from .loader import CampaignLoader, CampaignDataset
from .engine import AggregationEngine, run_report, validate_spec

__all__ = [
    "CampaignLoader",
    "CampaignDataset",
    "AggregationEngine",
    "run_report",
    "validate_spec",
]
