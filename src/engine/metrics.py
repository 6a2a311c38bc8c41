"""
Metric kinds supported by the aggregation engine.

Every metric is evaluated in two steps: `prepare` derives per-row helper
columns (numerators, denominators, per-row ratios), the engine aggregates
them per group in one groupby pass, and `finalize` turns the aggregated
helpers into the metric column. Zero denominators produce NaN, which the
engine reports as an undefined cell.
"""

from typing import Callable, Dict, List, Tuple

import numpy as np
import pandas as pd
from scipy import stats

from src.utils.schemas import MetricSpec

# (helper column, groupby aggregation)
Helpers = List[Tuple[str, pd.Series, str]]


def product(frame: pd.DataFrame, names: List[str]) -> pd.Series:
    if len(names) == 1 and pd.api.types.is_integer_dtype(frame[names[0]]):
        # a lone int column keeps int64
        return frame[names[0]]

    out = pd.Series(1.0, index=frame.index)
    for name in names:
        out = out * frame[name].astype(float)
    return out


def safe_divide(numerator, denominator):
    """Element-wise division with zero denominators mapped to NaN."""
    num = pd.Series(numerator, dtype=float)
    den = pd.Series(denominator, dtype=float)
    return num / den.where(den != 0)


def pearson(x, y) -> float:
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)

    if x.size < 2 or np.ptp(x) == 0 or np.ptp(y) == 0:
        return float("nan")

    r, _ = stats.pearsonr(x, y)
    return float(r)


def helper(metric: MetricSpec, part: str) -> str:
    return f"__{metric.name}__{part}"


# -------------------------
# PREPARE
# -------------------------

def _prepare_fields(agg: str) -> Callable[[pd.DataFrame, MetricSpec], Helpers]:
    def prepare(frame: pd.DataFrame, metric: MetricSpec) -> Helpers:
        return [(helper(metric, "v"), product(frame, metric.fields), agg)]
    return prepare


def _prepare_count(frame: pd.DataFrame, metric: MetricSpec) -> Helpers:
    return []


def _prepare_ratio_of_sums(frame: pd.DataFrame, metric: MetricSpec) -> Helpers:
    return [
        (helper(metric, "num"), product(frame, metric.numerator), "sum"),
        (helper(metric, "den"), product(frame, metric.denominator), "sum"),
    ]


def _prepare_row_ratio(frame: pd.DataFrame, metric: MetricSpec) -> Helpers:
    ratio = safe_divide(product(frame, metric.numerator), product(frame, metric.denominator))
    return [(helper(metric, "v"), ratio, "mean")]


def _prepare_weighted_avg(frame: pd.DataFrame, metric: MetricSpec) -> Helpers:
    weight = frame[metric.weight].astype(float)
    return [
        (helper(metric, "num"), product(frame, metric.fields) * weight, "sum"),
        (helper(metric, "den"), weight, "sum"),
    ]


def _prepare_correlation(frame: pd.DataFrame, metric: MetricSpec) -> Helpers:
    # correlation needs the raw pairs, aggregated by the engine with `pearson`
    return [
        (helper(metric, "x"), frame[metric.x].astype(float), "pairs"),
        (helper(metric, "y"), frame[metric.y].astype(float), "pairs"),
    ]


PREPARE: Dict[str, Callable[[pd.DataFrame, MetricSpec], Helpers]] = {
    "sum": _prepare_fields("sum"),
    "avg": _prepare_fields("mean"),
    "min": _prepare_fields("min"),
    "max": _prepare_fields("max"),
    "count": _prepare_count,
    "ratio_of_sums": _prepare_ratio_of_sums,
    "row_ratio": _prepare_row_ratio,
    "weighted_avg": _prepare_weighted_avg,
    "correlation": _prepare_correlation,
}


def prepare(frame: pd.DataFrame, metric: MetricSpec) -> Helpers:
    return PREPARE[metric.kind](frame, metric)


# -------------------------
# FINALIZE
# -------------------------

def finalize(agg: pd.DataFrame, metric: MetricSpec, rows_col: str) -> pd.Series:
    kind = metric.kind

    if kind == "count":
        return agg[rows_col].astype("int64")

    if kind == "correlation":
        return agg[helper(metric, "r")]

    if kind in ("ratio_of_sums", "weighted_avg"):
        value = safe_divide(agg[helper(metric, "num")].to_numpy(), agg[helper(metric, "den")].to_numpy())
        value.index = agg.index
    else:
        value = agg[helper(metric, "v")]
        if kind in ("sum", "min", "max") and metric.scale == 1.0 \
                and pd.api.types.is_integer_dtype(value):
            return value
        value = value.astype(float)

    return value * metric.scale
