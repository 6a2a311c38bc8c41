# src/orchestrator/orchestrator.py

"""
Orchestrator for the campaign analysis reports.

Responsibilities:
- Load config
- Load + normalize the campaign CSV once
- Evaluate the requested reports (optionally in parallel)
- Log every run
- Save JSON + Markdown artifacts
"""
from ..utils.schema_validator import validate_schema, SchemaValidationError

import os
import json
import time
import yaml
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, List, Optional

# internal imports
from ..utils.logger import get_logger, close_logger
from ..utils.errors import SpecError
from ..utils.schemas import ReportResult, ReportSpec

from ..engine.engine import AggregationEngine, validate_spec
from ..engine.loader import CampaignLoader, CampaignDataset
from ..reports.catalog import build_catalog, load_extra_reports, select_reports

DEFAULTS = {
    "paths": {
        "data": "data/sample_campaigns.csv",
        "schema": "config/data_schema.yaml",
        "out_dir": "reports",
        "logs_dir": "logs",
        "extra_reports": None,
    },
    "loader": {
        "date_formats": None,
        "currency_symbols": "$€£¥₹",
    },
    "thresholds": {
        "roi_outlier_zscore": 3.0,
    },
    "engine": {
        "workers": 4,
        "precision": 4,
    },
}


def _safe_mkdir(path: str):
    """Create directory if missing."""
    os.makedirs(path, exist_ok=True)


def _utc_run_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")


def _section(config: Dict[str, Any], name: str) -> Dict[str, Any]:
    merged = dict(DEFAULTS.get(name, {}))
    merged.update(config.get(name) or {})
    return merged


class Orchestrator:
    def __init__(self, config_path: Optional[str] = "config/config.yaml",
                 config: Optional[Dict[str, Any]] = None,
                 data_path: Optional[str] = None,
                 workers: Optional[int] = None):

        # Load config
        if config is None:
            config = {}
            if config_path and Path(config_path).exists():
                with open(config_path, "r", encoding="utf-8") as f:
                    config = yaml.safe_load(f) or {}
        self.config: Dict[str, Any] = config

        paths = _section(self.config, "paths")
        loader_cfg = _section(self.config, "loader")
        self.thresholds = _section(self.config, "thresholds")
        engine_cfg = _section(self.config, "engine")

        self.workers = max(1, int(workers if workers is not None else engine_cfg["workers"]))
        self.precision = int(engine_cfg["precision"])
        self.schema_path = paths.get("schema")

        # Output folders
        self.out_dir = Path(paths["out_dir"])
        _safe_mkdir(str(self.out_dir))

        self.logs_dir = Path(paths["logs_dir"])
        _safe_mkdir(str(self.logs_dir))

        # Init logger
        self.run_id = _utc_run_id()
        self.logger = get_logger(self.run_id, logs_dir=str(self.logs_dir))

        # Report catalog
        self.catalog: Dict[str, ReportSpec] = build_catalog(self.thresholds)
        extra = paths.get("extra_reports")
        if extra:
            try:
                extra_specs = load_extra_reports(extra)
                for spec in extra_specs:
                    validate_spec(spec)
            except SpecError as e:
                self.logger.error(f"❌ Extra reports rejected: {e}")
                close_logger(self.logger)
                raise
            for spec in extra_specs:
                if spec.name in self.catalog:
                    self.logger.warning(f"Extra report `{spec.name}` overrides the built-in definition")
                self.catalog[spec.name] = spec

        # Loader + engine
        self.loader = CampaignLoader(
            data_path or paths["data"],
            schema_path=self.schema_path,
            date_formats=loader_cfg.get("date_formats"),
            currency_symbols=loader_cfg.get("currency_symbols") or DEFAULTS["loader"]["currency_symbols"],
            roi_outlier_zscore=self.thresholds.get("roi_outlier_zscore"),
        )
        self.loader.logger = self.logger
        self.engine = AggregationEngine(logger=self.logger)

        self.logger.info("Orchestrator initialized.")

    def close(self):
        close_logger(self.logger)

    # -------------------------------------------------------------------------
    # Report selection
    # -------------------------------------------------------------------------
    def select(self, names: Optional[List[str]] = None) -> List[ReportSpec]:
        names = names or self.config.get("reports") or None
        return select_reports(self.catalog, names)

    # -------------------------------------------------------------------------
    # Write JSON
    # -------------------------------------------------------------------------
    def _write_json(self, path: Path, data: Any):
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)

    # -------------------------------------------------------------------------
    # Report evaluation
    # -------------------------------------------------------------------------
    def _evaluate(self, dataset: CampaignDataset, specs: List[ReportSpec], run_meta: Dict[str, Any]) -> List[ReportResult]:
        if self.workers == 1 or len(specs) <= 1:
            outcomes = []
            for spec in specs:
                try:
                    outcomes.append(self.engine.run_report(dataset, spec))
                except Exception as e:
                    outcomes.append(e)
        else:
            with ThreadPoolExecutor(max_workers=self.workers) as executor:
                futures = [executor.submit(self.engine.run_report, dataset, spec) for spec in specs]
                outcomes = []
                for future in futures:
                    try:
                        outcomes.append(future.result())
                    except Exception as e:
                        outcomes.append(e)

        # results stay in catalog order whatever the worker count
        results = []
        for spec, outcome in zip(specs, outcomes):
            if isinstance(outcome, Exception):
                self.logger.error(f"Report {spec.name} failed: {outcome}")
                run_meta["errors"].append({"stage": "report", "report": spec.name, "error": str(outcome)})
                continue
            run_meta["reports_executed"].append(spec.name)
            results.append(outcome)
        return results

    # -------------------------------------------------------------------------
    # MAIN PIPELINE
    # -------------------------------------------------------------------------
    def run(self, report_names: Optional[List[str]] = None) -> Dict[str, str]:

        # fail fast on unknown names before touching the data
        specs = self.select(report_names)

        self.logger.info("=== Starting analysis run ===")
        self.logger.info(f"Reports: {[s.name for s in specs]}")

        started = time.perf_counter()
        run_meta: Dict[str, Any] = {
            "run_id": self.run_id,
            "reports": [s.name for s in specs],
            "data": self.loader.data_path,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "workers": self.workers,
            "errors": [],
            "reports_executed": [],
        }

        # ------------------------------
        # 1. LOAD + VALIDATE
        # ------------------------------
        try:
            self.logger.info("Loading dataset...")
            dataset = self.loader.load()
            validate_schema(dataset.frame, self.schema_path, logger=self.logger)
        except SchemaValidationError as e:
            self.logger.exception("Schema validation failed")
            raise RuntimeError(f"Schema validation failed: {e}") from e

        data_summary = dataset.summary()
        quality = dataset.quality
        self.logger.info(f"Data summary: {data_summary}")
        if quality.rejected_count:
            self.logger.warning(f"{quality.rejected_count} rows rejected during ingestion")

        # ------------------------------
        # 2. REPORTS
        # ------------------------------
        results = self._evaluate(dataset, specs, run_meta)

        # ------------------------------
        # 3. WRITE ARTIFACTS
        # ------------------------------
        results_path = self.out_dir / f"results_{self.run_id}.json"
        quality_path = self.out_dir / f"data_quality_{self.run_id}.json"
        report_path = self.out_dir / f"report_{self.run_id}.md"
        meta_path = self.out_dir / f"run_metadata_{self.run_id}.json"

        self._write_json(results_path, [r.model_dump() for r in results])
        self._write_json(quality_path, {
            "summary": quality.summary(),
            "rejected": [i.model_dump() for i in quality.rejected],
            "flagged": [i.model_dump() for i in quality.flagged],
        })

        self._build_report(report_path, results, data_summary, quality.summary(), specs)

        run_meta["elapsed_seconds"] = round(time.perf_counter() - started, 3)
        run_meta["artifacts"] = {
            "results": str(results_path),
            "data_quality": str(quality_path),
            "report": str(report_path),
        }
        self._write_json(meta_path, run_meta)

        self.logger.info("=== Analysis completed ===")

        return {
            "results": str(results_path),
            "data_quality": str(quality_path),
            "report": str(report_path),
            "metadata": str(meta_path),
        }

    # -------------------------------------------------------------------------
    # REPORT GENERATION
    # -------------------------------------------------------------------------
    def _fmt(self, value: Any) -> str:
        if value is None:
            return "n/a"
        if isinstance(value, float):
            text = f"{value:,.{self.precision}f}"
            return text.rstrip("0").rstrip(".") if "." in text else text
        return str(value)

    def _table(self, result: ReportResult) -> str:
        if not result.rows:
            return "*No rows.*\n"
        lines = [
            "| " + " | ".join(result.columns) + " |",
            "|" + "|".join("---" for _ in result.columns) + "|",
        ]
        for row in result.rows:
            lines.append("| " + " | ".join(self._fmt(row[c]) for c in result.columns) + " |")
        return "\n".join(lines) + "\n"

    def _build_report(self, report_path: Path, results: List[ReportResult],
                      data_summary: Dict[str, Any], quality: Dict[str, Any],
                      specs: List[ReportSpec]):

        descriptions = {s.name: s.description for s in specs}

        with open(report_path, "w", encoding="utf-8") as f:
            f.write("# Campaign Analysis Report\n")
            f.write(f"**Run ID:** `{self.run_id}`\n")
            f.write(f"**Dataset:** {self.loader.data_path}\n")
            f.write(f"**Timestamp:** {datetime.now(timezone.utc).isoformat()}\n\n")

            # Overview
            f.write("## Data Summary\n")
            f.write(f"- Rows loaded: **{quality['rows_loaded']}** of {quality['rows_read']}\n")
            f.write(f"- Rows rejected: **{quality['rejected_count']}**\n")
            f.write(f"- Rows flagged: **{quality['flagged_count']}**\n")
            f.write(f"- Date range: {data_summary.get('date_min')} → {data_summary.get('date_max')}\n\n")

            if quality["rejected_ids"]:
                shown = ", ".join(quality["rejected_ids"][:20])
                f.write(f"Rejected: {shown}\n\n")

            # Reports
            for result in results:
                f.write(f"## {result.title}\n")
                if descriptions.get(result.name):
                    f.write(f"{descriptions[result.name]}\n\n")
                f.write(self._table(result))
                if result.excluded_rows:
                    f.write(f"\n*{result.excluded_rows} row(s) with an undefined metric excluded from the ranking.*\n")
                f.write("\n")
