# src/reports/catalog.py

"""
Named business reports over the campaign table.

The first eight answer the core campaign questions (impressions, ROI,
locations, engagement, CTR, cost per conversion, CTR threshold, channel
conversions); the rest are the extended stakeholder set.
"""

from typing import Dict, Any, List, Optional

import yaml
from pydantic import ValidationError

from src.utils.errors import SpecError
from src.utils.schemas import FilterSpec, MetricSpec, ReportSpec, SortKey

DEFAULTS = {
    "ctr_threshold_pct": 5.0,
    "budget_cut_count": 10,
    "top_locations": 3,
}

CAMPAIGN = ["campaign_id", "company"]


def _ctr(name: str = "ctr") -> MetricSpec:
    return MetricSpec(name=name, kind="ratio_of_sums",
                      numerator=["clicks"], denominator=["impressions"], scale=100.0)


def _avg(name: str, *fields: str) -> MetricSpec:
    return MetricSpec(name=name, kind="avg", fields=list(fields))


def _sum(name: str, *fields: str) -> MetricSpec:
    return MetricSpec(name=name, kind="sum", fields=list(fields))


def _count(name: str = "campaigns") -> MetricSpec:
    return MetricSpec(name=name, kind="count")


def _desc(column: str) -> SortKey:
    return SortKey(column=column, descending=True)


def _asc(column: str) -> SortKey:
    return SortKey(column=column, descending=False)


def build_catalog(thresholds: Optional[Dict[str, Any]] = None) -> Dict[str, ReportSpec]:
    t = dict(DEFAULTS)
    t.update({k: v for k, v in (thresholds or {}).items() if v is not None})

    ctr_threshold = float(t["ctr_threshold_pct"])

    reports = [
        # -------------------------
        # Core questions
        # -------------------------
        ReportSpec(
            name="top_impressions",
            title="Campaigns by total impressions",
            group_by=["campaign_id"],
            metrics=[_sum("total_impressions", "impressions")],
            order_by=[_desc("total_impressions")],
        ),
        ReportSpec(
            name="highest_roi",
            title="Campaign with the highest ROI",
            group_by=CAMPAIGN,
            metrics=[_avg("roi", "roi")],
            order_by=[_desc("roi")],
            limit=1,
        ),
        ReportSpec(
            name="top_locations_by_impressions",
            title=f"Top {int(t['top_locations'])} locations by total impressions",
            group_by=["location"],
            metrics=[_sum("total_impressions", "impressions")],
            order_by=[_desc("total_impressions")],
            limit=int(t["top_locations"]),
        ),
        ReportSpec(
            name="avg_engagement_by_audience",
            title="Average engagement score by target audience",
            group_by=["target_audience"],
            metrics=[_avg("avg_engagement_score", "engagement_score")],
            order_by=[_desc("avg_engagement_score")],
        ),
        ReportSpec(
            name="overall_ctr",
            title="Overall click-through rate (%)",
            metrics=[_ctr("overall_ctr")],
        ),
        ReportSpec(
            name="cost_per_conversion",
            title="Most cost-effective campaigns (lowest cost per conversion)",
            group_by=CAMPAIGN,
            metrics=[MetricSpec(name="cost_per_conversion", kind="row_ratio",
                                numerator=["acquisition_cost"],
                                denominator=["conversion_rate", "clicks"])],
            order_by=[_asc("cost_per_conversion")],
        ),
        ReportSpec(
            name="ctr_above_threshold",
            title=f"Campaigns with CTR above {ctr_threshold:g}%",
            group_by=CAMPAIGN,
            metrics=[_ctr()],
            having=[FilterSpec(column="ctr", op=">", value=ctr_threshold)],
            order_by=[_desc("ctr")],
        ),
        ReportSpec(
            name="conversions_by_channel",
            title="Total conversions by channel (clicks x conversion rate)",
            group_by=["channel_used"],
            metrics=[_sum("total_conversions", "clicks", "conversion_rate")],
            order_by=[_desc("total_conversions")],
        ),
        # -------------------------
        # Extended stakeholder set
        # -------------------------
        ReportSpec(
            name="roi_per_impression",
            title="ROI per impression",
            group_by=CAMPAIGN,
            metrics=[MetricSpec(name="roi_per_impression", kind="row_ratio",
                                numerator=["roi"], denominator=["impressions"])],
            order_by=[_desc("roi_per_impression")],
        ),
        ReportSpec(
            name="conversions_per_1000_impressions",
            title="Conversions per 1000 impressions by channel",
            group_by=["channel_used"],
            metrics=[MetricSpec(name="conversions_per_1000_impressions", kind="ratio_of_sums",
                                numerator=["conversions"], denominator=["impressions"],
                                scale=1000.0)],
            order_by=[_desc("conversions_per_1000_impressions")],
        ),
        ReportSpec(
            name="cost_per_conversion_by_month",
            title="Cost per conversion by month",
            group_by=["month"],
            metrics=[
                MetricSpec(name="cost_per_conversion", kind="ratio_of_sums",
                           numerator=["acquisition_cost"], denominator=["conversions"]),
                _sum("total_spend", "acquisition_cost"),
                _sum("total_conversions", "conversions"),
            ],
            order_by=[_asc("month")],
        ),
        ReportSpec(
            name="high_ctr_high_roi",
            title="Campaigns with above-average CTR and ROI",
            group_by=CAMPAIGN,
            metrics=[_ctr(), _avg("roi", "roi")],
            having=[
                FilterSpec(column="ctr", op=">", reference="mean"),
                FilterSpec(column="roi", op=">", reference="mean"),
            ],
            order_by=[_desc("ctr"), _desc("roi")],
        ),
        ReportSpec(
            name="engagement_adjusted_roi",
            title="Engagement-adjusted ROI by campaign type",
            group_by=["campaign_type"],
            metrics=[
                _avg("engagement_adjusted_roi", "roi", "engagement_score"),
                MetricSpec(name="engagement_weighted_roi", kind="weighted_avg",
                           fields=["roi"], weight="engagement_score"),
                _avg("avg_roi", "roi"),
            ],
            order_by=[_desc("engagement_adjusted_roi")],
        ),
        ReportSpec(
            name="audience_segment_efficiency",
            title="Conversions per $1000 spend by audience and segment",
            group_by=["target_audience", "customer_segment"],
            metrics=[
                MetricSpec(name="conversions_per_1000_usd", kind="ratio_of_sums",
                           numerator=["conversions"], denominator=["acquisition_cost"],
                           scale=1000.0),
                _avg("avg_roi", "roi"),
                _count(),
            ],
            order_by=[_desc("conversions_per_1000_usd")],
        ),
        ReportSpec(
            name="low_engagement_high_impression",
            title="Segments with below-average engagement but above-average reach",
            group_by=["customer_segment", "channel_used"],
            metrics=[
                _avg("avg_engagement_score", "engagement_score"),
                _sum("total_impressions", "impressions"),
            ],
            having=[
                FilterSpec(column="avg_engagement_score", op="<", reference="mean"),
                FilterSpec(column="total_impressions", op=">", reference="mean"),
            ],
            order_by=[_desc("total_impressions")],
        ),
        ReportSpec(
            name="audience_channel_pairing",
            title="Audience x channel pairing performance",
            group_by=["target_audience", "channel_used"],
            metrics=[_avg("avg_roi", "roi"), _ctr(), _count()],
            order_by=[_desc("avg_roi")],
        ),
        ReportSpec(
            name="spend_vs_roi_by_company",
            title="Total spend versus average ROI by company",
            group_by=["company"],
            metrics=[_sum("total_spend", "acquisition_cost"), _avg("avg_roi", "roi"), _count()],
            order_by=[_desc("total_spend")],
        ),
        ReportSpec(
            name="cost_roi_correlation_by_channel",
            title="Correlation of acquisition cost and ROI by channel",
            group_by=["channel_used"],
            metrics=[
                MetricSpec(name="cost_roi_correlation", kind="correlation",
                           x="acquisition_cost", y="roi"),
                _count(),
            ],
            order_by=[_desc("cost_roi_correlation")],
        ),
        ReportSpec(
            name="budget_cut_candidates",
            title="Lowest conversions per dollar (budget cut candidates)",
            group_by=CAMPAIGN,
            metrics=[
                MetricSpec(name="conversions_per_dollar", kind="ratio_of_sums",
                           numerator=["conversions"], denominator=["acquisition_cost"]),
                _sum("spend", "acquisition_cost"),
            ],
            order_by=[_asc("conversions_per_dollar")],
            limit=int(t["budget_cut_count"]),
        ),
        ReportSpec(
            name="region_performance",
            title="Region performance ranking",
            group_by=["location"],
            metrics=[_avg("avg_roi", "roi"), _ctr(), _sum("total_conversions", "conversions")],
            order_by=[_desc("avg_roi")],
        ),
        ReportSpec(
            name="low_cost_high_engagement",
            title="Campaigns with below-average cost and above-average engagement",
            group_by=CAMPAIGN,
            metrics=[
                _sum("acquisition_cost", "acquisition_cost"),
                _avg("engagement_score", "engagement_score"),
            ],
            having=[
                FilterSpec(column="acquisition_cost", op="<", reference="mean"),
                FilterSpec(column="engagement_score", op=">", reference="mean"),
            ],
            order_by=[_desc("engagement_score"), _asc("acquisition_cost")],
        ),
        ReportSpec(
            name="underutilized_channel_engagement_roi",
            title="Underutilized channels ranked by engagement-adjusted ROI",
            group_by=["channel_used"],
            metrics=[_count(), _avg("engagement_adjusted_roi", "roi", "engagement_score")],
            having=[FilterSpec(column="campaigns", op="<", reference="mean")],
            order_by=[_desc("engagement_adjusted_roi")],
        ),
    ]

    return {r.name: r for r in reports}


def load_extra_reports(path: str) -> List[ReportSpec]:
    """Reads additional report definitions from a YAML `reports:` list."""
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    entries = raw.get("reports", []) if isinstance(raw, dict) else raw
    specs = []
    for i, entry in enumerate(entries or []):
        try:
            specs.append(ReportSpec.model_validate(entry))
        except ValidationError as e:
            name = entry.get("name", f"#{i}") if isinstance(entry, dict) else f"#{i}"
            raise SpecError(f"invalid report definition {name}: {e}") from e
    return specs


def select_reports(catalog: Dict[str, ReportSpec], names: Optional[List[str]] = None) -> List[ReportSpec]:
    """Catalog order when no names are given; otherwise the requested order."""
    if not names:
        return list(catalog.values())

    unknown = [n for n in names if n not in catalog]
    if unknown:
        raise SpecError(f"unknown report(s): {unknown}. Available: {list(catalog)}")
    return [catalog[n] for n in names]
