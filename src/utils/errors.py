# src/utils/errors.py
from typing import Optional


class IngestionError(ValueError):
    """A single input row could not be turned into a CampaignRecord."""

    def __init__(self, reason: str, line: int, campaign_id: Optional[int] = None,
                 field: Optional[str] = None):
        super().__init__(f"line {line}: {reason}")
        self.reason = reason
        self.line = line
        self.campaign_id = campaign_id
        self.field = field


class MetricUndefined(ArithmeticError):
    """A metric cell has no value (zero denominator, too few points)."""


class SpecError(ValueError):
    """A report definition references unknown fields or an impossible aggregation."""
