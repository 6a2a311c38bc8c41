# src/utils/schemas.py
import json
import math
import datetime as dt
from typing import List, Dict, Any, Optional, Union, Literal

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from src.utils.errors import MetricUndefined
from src.utils.parse_utils import (
    DEFAULT_CURRENCY_SYMBOLS,
    parse_currency,
    parse_date,
    parse_decimal,
    parse_int,
)

# -----------------------------------------------------------
# Dataset schema definition
# -----------------------------------------------------------

REQUIRED_DATASET_COLUMNS = [
    "campaign_id",
    "company",
    "campaign_type",
    "target_audience",
    "duration",
    "channel_used",
    "conversion_rate",
    "acquisition_cost",
    "roi",
    "location",
    "date",
    "clicks",
    "impressions",
    "engagement_score",
    "customer_segment",
]

# Computed once at load time, never per report.
DERIVED_COLUMNS = {
    "conversions": "float",
    "month": "str",
}

FIELD_TYPES: Dict[str, str] = {
    "campaign_id": "int",
    "company": "str",
    "campaign_type": "str",
    "target_audience": "str",
    "duration": "str",
    "channel_used": "str",
    "conversion_rate": "float",
    "acquisition_cost": "float",
    "roi": "float",
    "location": "str",
    "date": "date",
    "clicks": "int",
    "impressions": "int",
    "engagement_score": "int",
    "customer_segment": "str",
    **DERIVED_COLUMNS,
}

NUMERIC_TYPES = {"int", "float"}


def is_numeric_field(name: str) -> bool:
    return FIELD_TYPES.get(name) in NUMERIC_TYPES


class CampaignRecord(BaseModel):
    """One campaign row with currency and date already normalized."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    campaign_id: int
    company: str
    campaign_type: str
    target_audience: str
    duration: str
    channel_used: str
    conversion_rate: float
    acquisition_cost: float = Field(ge=0.0)
    roi: float
    location: str
    date: dt.date
    clicks: int = Field(ge=0)
    impressions: int = Field(ge=0)
    engagement_score: int
    customer_segment: str

    @field_validator("campaign_id", "clicks", "impressions", "engagement_score", mode="before")
    @classmethod
    def _whole_number(cls, v):
        return parse_int(v)

    @field_validator("conversion_rate", "roi", mode="before")
    @classmethod
    def _decimal(cls, v):
        return parse_decimal(v)

    @field_validator("acquisition_cost", mode="before")
    @classmethod
    def _money(cls, v, info: ValidationInfo):
        ctx = info.context or {}
        return parse_currency(v, ctx.get("currency_symbols", DEFAULT_CURRENCY_SYMBOLS))

    @field_validator("date", mode="before")
    @classmethod
    def _day_first_date(cls, v, info: ValidationInfo):
        ctx = info.context or {}
        return parse_date(v, ctx.get("date_formats"))

    @property
    def conversions(self) -> float:
        return self.clicks * self.conversion_rate


# -----------------------------------------------------------
# Report definitions
# -----------------------------------------------------------

MetricKind = Literal[
    "sum",
    "avg",
    "min",
    "max",
    "count",
    "ratio_of_sums",
    "row_ratio",
    "weighted_avg",
    "correlation",
]

FilterOp = Literal[">", ">=", "<", "<=", "==", "!="]


class MetricSpec(BaseModel):
    name: str
    kind: MetricKind
    fields: List[str] = []
    numerator: List[str] = []
    denominator: List[str] = []
    weight: Optional[str] = None
    x: Optional[str] = None
    y: Optional[str] = None
    scale: float = 1.0

    def input_fields(self) -> List[str]:
        names = list(self.fields) + list(self.numerator) + list(self.denominator)
        names += [f for f in (self.weight, self.x, self.y) if f]
        return names


class FilterSpec(BaseModel):
    column: str
    op: FilterOp
    value: Optional[Union[int, float, str]] = None
    reference: Optional[Literal["mean", "median"]] = None


class SortKey(BaseModel):
    column: str
    descending: bool = True


class ReportSpec(BaseModel):
    name: str
    title: str = ""
    description: str = ""
    group_by: List[str] = []
    metrics: List[MetricSpec] = Field(min_length=1)
    where: List[FilterSpec] = []
    having: List[FilterSpec] = []
    order_by: List[SortKey] = []
    limit: Optional[int] = Field(default=None, ge=1)
    include_undefined: bool = False

    @property
    def columns(self) -> List[str]:
        return list(self.group_by) + [m.name for m in self.metrics]


# -----------------------------------------------------------
# Results & diagnostics
# -----------------------------------------------------------

class ReportResult(BaseModel):
    name: str
    title: str = ""
    columns: List[str]
    rows: List[Dict[str, Any]] = []
    undefined_rows: int = 0     # rows whose sort metric could not be computed
    excluded_rows: int = 0      # of those, dropped from the ranking

    def scalar(self, column: Optional[str] = None) -> Any:
        """Value of a single-row report; raises MetricUndefined if undefined."""
        if len(self.rows) != 1:
            raise ValueError(f"report {self.name} returned {len(self.rows)} rows, expected 1")
        column = column or self.columns[-1]
        value = self.rows[0][column]
        if value is None:
            raise MetricUndefined(f"{self.name}.{column} is undefined")
        return value

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.rows, columns=self.columns)

    def to_json(self) -> str:
        return json.dumps(self.model_dump(), indent=2, default=str)


def clean_value(value: Any) -> Any:
    """Turn numpy / pandas scalars into plain Python; NaN becomes None."""
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, pd.Timestamp):
        return value.date().isoformat()
    if hasattr(value, "item"):
        value = value.item()
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


class IngestionIssue(BaseModel):
    line: int
    campaign_id: Optional[int] = None
    field: Optional[str] = None
    reason: str
    severity: Literal["rejected", "flagged"] = "rejected"

    @property
    def identifier(self) -> str:
        if self.campaign_id is not None:
            return f"campaign {self.campaign_id}"
        return f"line {self.line}"


class DataQualityReport(BaseModel):
    rows_read: int = 0
    rows_loaded: int = 0
    rejected: List[IngestionIssue] = []
    flagged: List[IngestionIssue] = []

    @property
    def rejected_count(self) -> int:
        return len(self.rejected)

    @property
    def flagged_count(self) -> int:
        return len({(i.line, i.campaign_id) for i in self.flagged})

    def rejected_identifiers(self) -> List[str]:
        return [i.identifier for i in self.rejected]

    def flagged_by_reason(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for issue in self.flagged:
            key = issue.field or "record"
            counts[key] = counts.get(key, 0) + 1
        return counts

    def summary(self) -> Dict[str, Any]:
        return {
            "rows_read": self.rows_read,
            "rows_loaded": self.rows_loaded,
            "rejected_count": self.rejected_count,
            "rejected_ids": self.rejected_identifiers(),
            "flagged_count": self.flagged_count,
            "flagged_by_field": self.flagged_by_reason(),
        }
