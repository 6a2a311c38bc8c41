# src/engine/engine.py

import operator
import time
from typing import Dict, Any, List

import numpy as np
import pandas as pd

from src.engine import metrics
from src.engine.loader import CampaignDataset
from src.utils.errors import SpecError
from src.utils.schemas import (
    FIELD_TYPES,
    FilterSpec,
    ReportResult,
    ReportSpec,
    clean_value,
    is_numeric_field,
)

OPS = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "==": operator.eq,
    "!=": operator.ne,
}

ROWS_COL = "__rows__"


# -------------------------
# SPEC VALIDATION
# -------------------------

def _require_fields(spec: ReportSpec, names: List[str], numeric: bool, where: str):
    for name in names:
        if name not in FIELD_TYPES:
            raise SpecError(f"{spec.name}: unknown field `{name}` in {where}")
        if numeric and not is_numeric_field(name):
            raise SpecError(
                f"{spec.name}: field `{name}` is {FIELD_TYPES[name]}, {where} needs a numeric field"
            )


def _check_filter(spec: ReportSpec, flt: FilterSpec, column_types: Dict[str, str], where: str):
    if flt.column not in column_types:
        raise SpecError(f"{spec.name}: {where} references unknown column `{flt.column}`")

    if (flt.value is None) == (flt.reference is None):
        raise SpecError(f"{spec.name}: {where} on `{flt.column}` needs exactly one of value or reference")

    ctype = column_types[flt.column]
    numeric = ctype in ("int", "float")

    if flt.reference is not None and not numeric:
        raise SpecError(f"{spec.name}: {where} compares `{flt.column}` to its {flt.reference}, "
                        f"but the column is {ctype}")

    if flt.value is not None:
        is_number = isinstance(flt.value, (int, float)) and not isinstance(flt.value, bool)
        if numeric and not is_number:
            raise SpecError(f"{spec.name}: {where} compares numeric `{flt.column}` to {flt.value!r}")
        if not numeric and is_number:
            raise SpecError(f"{spec.name}: {where} compares {ctype} `{flt.column}` to a number")
        if ctype == "date":
            try:
                pd.Timestamp(flt.value)
            except ValueError:
                raise SpecError(f"{spec.name}: {where} has an invalid date {flt.value!r}") from None


def validate_spec(spec: ReportSpec) -> None:
    """Fails fast with SpecError before any data is scanned."""

    _require_fields(spec, spec.group_by, numeric=False, where="group_by")

    columns = spec.columns
    dupes = sorted({c for c in columns if columns.count(c) > 1})
    if dupes:
        raise SpecError(f"{spec.name}: duplicate output columns {dupes}")

    for m in spec.metrics:
        if m.name.startswith("__"):
            raise SpecError(f"{spec.name}: metric name `{m.name}` is reserved")

        where = f"metric `{m.name}` ({m.kind})"
        if m.kind in ("sum", "avg", "min", "max"):
            if not m.fields:
                raise SpecError(f"{spec.name}: {where} needs at least one field")
        elif m.kind in ("ratio_of_sums", "row_ratio"):
            if not m.numerator or not m.denominator:
                raise SpecError(f"{spec.name}: {where} needs numerator and denominator")
        elif m.kind == "weighted_avg":
            if not m.fields or not m.weight:
                raise SpecError(f"{spec.name}: {where} needs fields and a weight")
        elif m.kind == "correlation":
            if not m.x or not m.y:
                raise SpecError(f"{spec.name}: {where} needs x and y")

        _require_fields(spec, m.input_fields(), numeric=True, where=where)

    for flt in spec.where:
        _check_filter(spec, flt, FIELD_TYPES, "where")

    output_types = {k: FIELD_TYPES[k] for k in spec.group_by}
    output_types.update({m.name: "float" for m in spec.metrics})

    for flt in spec.having:
        _check_filter(spec, flt, output_types, "having")

    for key in spec.order_by:
        if key.column not in output_types:
            raise SpecError(f"{spec.name}: order_by references unknown column `{key.column}`")


# -------------------------
# FILTERS
# -------------------------

def filter_mask(frame: pd.DataFrame, filters: List[FilterSpec]) -> pd.Series:
    """AND of all filters. Undefined values never pass."""
    mask = pd.Series(True, index=frame.index)

    for flt in filters:
        series = frame[flt.column]
        if flt.reference == "mean":
            target = series.mean()
        elif flt.reference == "median":
            target = series.median()
        elif pd.api.types.is_datetime64_any_dtype(series):
            target = pd.Timestamp(flt.value)
        else:
            target = flt.value

        if pd.isna(target):
            return pd.Series(False, index=frame.index)

        mask &= OPS[flt.op](series, target) & series.notna()

    return mask


# -------------------------
# ENGINE
# -------------------------

class AggregationEngine:
    """
    Evaluates a ReportSpec against an immutable CampaignDataset.
    Pure: never writes to the dataset, safe to call from several threads.
    """

    def __init__(self, logger=None):
        self.logger = logger

    def _aggregate(self, frame: pd.DataFrame, spec: ReportSpec) -> pd.DataFrame:
        keys = list(spec.group_by)

        work = pd.DataFrame({k: frame[k] for k in keys}, index=frame.index)
        work[ROWS_COL] = 1

        aggs: Dict[str, str] = {ROWS_COL: "sum"}
        pairs = []
        for m in spec.metrics:
            for col, series, func in metrics.prepare(frame, m):
                work[col] = series
                if func == "pairs":
                    continue
                aggs[col] = func
            if m.kind == "correlation":
                pairs.append(m)

        grouper = keys if keys else np.zeros(len(work), dtype=int)
        grouped = work.groupby(grouper, sort=True, dropna=False)
        agg = grouped.agg(aggs)

        for m in pairs:
            x, y = metrics.helper(m, "x"), metrics.helper(m, "y")
            if len(work):
                agg[metrics.helper(m, "r")] = grouped[[x, y]].apply(
                    lambda g: metrics.pearson(g[x], g[y])
                )
            else:
                agg[metrics.helper(m, "r")] = pd.Series(dtype=float)

        if not keys and agg.empty:
            # an ungrouped report over zero rows still yields its single row
            empty = {col: (work[col].sum() if func == "sum" else np.nan) for col, func in aggs.items()}
            empty[ROWS_COL] = 0
            empty.update({metrics.helper(m, "r"): np.nan for m in pairs})
            agg = pd.DataFrame([empty])

        out = agg.reset_index() if keys else agg.reset_index(drop=True)
        result = pd.DataFrame({k: out[k] for k in keys}, index=out.index)
        for m in spec.metrics:
            result[m.name] = metrics.finalize(out, m, ROWS_COL)
        return result

    def _rank(self, out: pd.DataFrame, spec: ReportSpec):
        metric_names = {m.name for m in spec.metrics}
        sort_metrics = [k.column for k in spec.order_by if k.column in metric_names]

        undefined = 0
        excluded = 0
        if sort_metrics:
            mask = out[sort_metrics].isna().any(axis=1)
            undefined = int(mask.sum())
            if undefined and not spec.include_undefined:
                out = out[~mask]
                excluded = undefined

        # successive stable sorts, least significant key first
        for key in reversed(spec.order_by):
            out = out.sort_values(
                key.column,
                ascending=not key.descending,
                kind="mergesort",
                na_position="last",
            )

        if spec.limit is not None:
            out = out.head(spec.limit)

        return out, undefined, excluded

    def run_report(self, dataset: CampaignDataset, spec: ReportSpec) -> ReportResult:
        validate_spec(spec)

        started = time.perf_counter()
        frame = dataset.frame

        if spec.where:
            frame = frame[filter_mask(frame, spec.where)]

        out = self._aggregate(frame, spec)

        if spec.having:
            out = out[filter_mask(out, spec.having)]

        out, undefined, excluded = self._rank(out, spec)

        columns = spec.columns
        rows: List[Dict[str, Any]] = [
            {col: clean_value(v) for col, v in row.items()}
            for row in out[columns].to_dict(orient="records")
        ]

        if self.logger:
            self.logger.info(
                f"Engine: {spec.name} → {len(rows)} rows "
                f"({undefined} undefined, {excluded} excluded) in {time.perf_counter() - started:.3f}s"
            )

        return ReportResult(
            name=spec.name,
            title=spec.title or spec.name,
            columns=columns,
            rows=rows,
            undefined_rows=undefined,
            excluded_rows=excluded,
        )


def run_report(dataset: CampaignDataset, spec: ReportSpec, logger=None) -> ReportResult:
    return AggregationEngine(logger=logger).run_report(dataset, spec)
