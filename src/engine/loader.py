import csv
import os
from typing import Dict, Any, List, Iterable, Optional, Tuple

import numpy as np
import pandas as pd
from pydantic import ValidationError
from scipy import stats

from src.utils.errors import IngestionError
from src.utils.parse_utils import (
    DEFAULT_CURRENCY_SYMBOLS,
    DEFAULT_DATE_FORMATS,
    month_bucket,
    parse_int,
)
from src.utils.schema_validator import validate_header
from src.utils.schemas import (
    REQUIRED_DATASET_COLUMNS,
    CampaignRecord,
    DataQualityReport,
    IngestionIssue,
)

FRAME_DTYPES = {
    "campaign_id": "int64",
    "conversion_rate": "float64",
    "acquisition_cost": "float64",
    "roi": "float64",
    "clicks": "int64",
    "impressions": "int64",
    "engagement_score": "int64",
    "conversions": "float64",
}

# placeholder cell for a row with more fields than the header
RAGGED = "\x00ragged"


class CampaignDataset:
    """
    Load-once, query-many view of the campaign table.
    Reports read `frame` but never write to it.
    """

    def __init__(self, frame: pd.DataFrame, quality: Optional[DataQualityReport] = None):
        self._frame = frame
        self.quality = quality or DataQualityReport(rows_read=len(frame), rows_loaded=len(frame))

    @classmethod
    def from_records(cls, records: Iterable[CampaignRecord],
                     quality: Optional[DataQualityReport] = None) -> "CampaignDataset":
        records = list(records)
        rows = [r.model_dump() for r in records]
        frame = pd.DataFrame(rows, columns=REQUIRED_DATASET_COLUMNS)

        frame["date"] = pd.to_datetime(frame["date"])
        frame["conversions"] = [r.conversions for r in records]
        frame["month"] = [month_bucket(r.date) for r in records]
        frame = frame.astype(FRAME_DTYPES)
        for col in ("company", "campaign_type", "target_audience", "duration",
                    "channel_used", "location", "customer_segment", "month"):
            frame[col] = frame[col].astype(object)

        return cls(frame, quality)

    @property
    def frame(self) -> pd.DataFrame:
        return self._frame

    def __len__(self) -> int:
        return len(self._frame)

    def summary(self) -> Dict[str, Any]:
        df = self._frame
        summary: Dict[str, Any] = {"n_rows": len(df)}

        if df.empty:
            summary.update({"date_min": None, "date_max": None, "campaign_count": 0,
                            "channels": [], "top_companies_by_spend": {}})
            return summary

        summary["date_min"] = str(df["date"].min().date())
        summary["date_max"] = str(df["date"].max().date())
        summary["campaign_count"] = int(df["campaign_id"].nunique())
        summary["channels"] = sorted(df["channel_used"].unique().tolist())
        summary["top_companies_by_spend"] = {
            k: float(v) for k, v in (
                df.groupby("company")["acquisition_cost"].sum()
                .sort_values(ascending=False, kind="mergesort").head(5).items()
            )
        }
        return summary


class CampaignLoader:
    def __init__(self, data_path: str,
                 schema_path: Optional[str] = None,
                 date_formats: Optional[List[str]] = None,
                 currency_symbols: str = DEFAULT_CURRENCY_SYMBOLS,
                 roi_outlier_zscore: Optional[float] = 3.0):
        self.data_path = data_path
        self.schema_path = schema_path
        self.date_formats = list(date_formats or DEFAULT_DATE_FORMATS)
        self.currency_symbols = currency_symbols
        self.roi_outlier_zscore = roi_outlier_zscore
        self.logger = None  # Orchestrator attaches logger
        self.dataset: Optional[CampaignDataset] = None

    def load(self) -> CampaignDataset:
        if self.dataset is None:
            self.dataset = self._load()
        return self.dataset

    # -------------------------------------------
    def _read_raw(self) -> Tuple[pd.DataFrame, List[List[str]]]:
        """
        Reads every cell as a string. Rows with too many fields are kept in
        place as RAGGED placeholder rows and their raw fields returned in order,
        so line numbers stay aligned with the file.
        """
        if not os.path.exists(self.data_path):
            raise FileNotFoundError(f"Input file not found: {self.data_path}")

        with open(self.data_path, "r", encoding="utf-8-sig", newline="") as f:
            width = len(next(csv.reader(f), []))

        ragged: List[List[str]] = []

        def on_bad_line(fields: List[str]) -> List[str]:
            ragged.append(fields)
            return [RAGGED] * width

        raw = pd.read_csv(
            self.data_path,
            dtype=str,
            keep_default_na=False,
            skipinitialspace=True,
            engine="python",
            on_bad_lines=on_bad_line,
        )
        raw.columns = validate_header(list(raw.columns), self.schema_path, logger=self.logger)
        return raw, ragged

    def _ragged_issue(self, fields: List[str], columns: List[str], line: int) -> IngestionIssue:
        campaign_id = None
        if "campaign_id" in columns:
            try:
                campaign_id = parse_int(fields[columns.index("campaign_id")])
            except ValueError:
                campaign_id = None
        return IngestionIssue(
            line=line, campaign_id=campaign_id,
            reason=f"expected {len(columns)} fields, saw {len(fields)}",
        )

    def _parse_row(self, raw: Dict[str, Any], line: int) -> CampaignRecord:
        payload = {col: raw.get(col) for col in REQUIRED_DATASET_COLUMNS}
        try:
            return CampaignRecord.model_validate(
                payload,
                context={"date_formats": self.date_formats,
                         "currency_symbols": self.currency_symbols},
            )
        except ValidationError as e:
            first = e.errors()[0]
            field = str(first["loc"][0]) if first.get("loc") else None
            try:
                campaign_id = parse_int(payload.get("campaign_id"))
            except ValueError:
                campaign_id = None
            raise IngestionError(f"{field}: {first['msg']}", line=line,
                                 campaign_id=campaign_id, field=field) from e

    @staticmethod
    def _row_flags(record: CampaignRecord, line: int) -> List[IngestionIssue]:
        flags = []
        if record.clicks > record.impressions:
            flags.append(IngestionIssue(
                line=line, campaign_id=record.campaign_id, field="clicks", severity="flagged",
                reason=f"clicks ({record.clicks}) exceed impressions ({record.impressions})",
            ))
        if not 0.0 <= record.conversion_rate <= 1.0:
            flags.append(IngestionIssue(
                line=line, campaign_id=record.campaign_id, field="conversion_rate",
                severity="flagged",
                reason=f"conversion_rate {record.conversion_rate} outside [0, 1]",
            ))
        return flags

    def _roi_outliers(self, frame: pd.DataFrame, lines: List[int]) -> List[IngestionIssue]:
        if not self.roi_outlier_zscore or len(frame) < 3:
            return []

        roi = frame["roi"].to_numpy(dtype=float)
        if np.ptp(roi) == 0:
            return []

        z = stats.zscore(roi)
        issues = []
        for pos in np.flatnonzero(np.abs(z) > self.roi_outlier_zscore):
            issues.append(IngestionIssue(
                line=lines[pos],
                campaign_id=int(frame["campaign_id"].iat[pos]),
                field="roi",
                severity="flagged",
                reason=f"roi {roi[pos]} is an outlier (z={z[pos]:.2f})",
            ))
        return issues

    # -------------------------------------------
    def _load(self) -> CampaignDataset:
        if self.logger:
            self.logger.info(f"Loader: reading {self.data_path}")

        raw, ragged = self._read_raw()
        quality = DataQualityReport(rows_read=len(raw))
        columns = list(raw.columns)
        ragged = iter(ragged)

        records: List[CampaignRecord] = []
        lines: List[int] = []
        seen_ids = set()

        # line 1 is the header
        for line, row in enumerate(raw.to_dict(orient="records"), start=2):
            if all(v == RAGGED for v in row.values()):
                issue = self._ragged_issue(next(ragged), columns, line)
                quality.rejected.append(issue)
                if self.logger:
                    self.logger.debug(f"Loader: rejected line {line}: {issue.reason}")
                continue

            try:
                record = self._parse_row(row, line)
            except IngestionError as e:
                quality.rejected.append(IngestionIssue(
                    line=e.line, campaign_id=e.campaign_id, field=e.field, reason=e.reason,
                ))
                if self.logger:
                    self.logger.debug(f"Loader: rejected {e}")
                continue

            if record.campaign_id in seen_ids:
                quality.rejected.append(IngestionIssue(
                    line=line, campaign_id=record.campaign_id, field="campaign_id",
                    reason=f"duplicate campaign_id {record.campaign_id}",
                ))
                continue

            seen_ids.add(record.campaign_id)
            quality.flagged.extend(self._row_flags(record, line))
            records.append(record)
            lines.append(line)

        dataset = CampaignDataset.from_records(records, quality)
        quality.flagged.extend(self._roi_outliers(dataset.frame, lines))
        quality.rows_loaded = len(records)

        if self.logger:
            self.logger.info(
                f"Loader: {quality.rows_loaded}/{quality.rows_read} rows loaded, "
                f"{quality.rejected_count} rejected, {quality.flagged_count} flagged"
            )
            if quality.rejected:
                self.logger.warning(f"Loader: rejected rows → {quality.rejected_identifiers()[:20]}")

        return dataset
