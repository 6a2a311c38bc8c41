import json
from pathlib import Path

import pytest

from src.orchestrator.orchestrator import Orchestrator
from src.utils.errors import SpecError

from conftest import ROOT


@pytest.fixture
def make_orchestrator(tmp_path, write_csv, campaign_rows):
    created = []

    def _make(workers=1, extra_reports=None, data=None, **overrides):
        config = {
            "paths": {
                "data": data or write_csv(campaign_rows + [{"campaign_id": 99, "date": "31/31/2021"}]),
                "schema": str(ROOT / "config" / "data_schema.yaml"),
                "out_dir": str(tmp_path / f"out_{len(created)}"),
                "logs_dir": str(tmp_path / "logs"),
                "extra_reports": extra_reports,
            },
            "engine": {"workers": workers, "precision": 2},
            **overrides,
        }
        orch = Orchestrator(config=config)
        created.append(orch)
        return orch

    yield _make

    for orch in created:
        orch.close()


def read_json(path):
    return json.loads(Path(path).read_text(encoding="utf-8"))


def test_run_writes_artifacts(make_orchestrator):
    orch = make_orchestrator()
    out = orch.run(["overall_ctr", "top_locations_by_impressions"])

    for key in ("results", "data_quality", "report", "metadata"):
        assert Path(out[key]).exists()

    results = read_json(out["results"])
    assert [r["name"] for r in results] == ["overall_ctr", "top_locations_by_impressions"]
    assert results[0]["rows"][0]["overall_ctr"] == pytest.approx(80 * 100 / 600)

    quality = read_json(out["data_quality"])
    assert quality["summary"]["rows_read"] == 5
    assert quality["summary"]["rows_loaded"] == 4
    assert quality["summary"]["rejected_ids"] == ["campaign 99"]
    assert quality["rejected"][0]["field"] == "date"

    meta = read_json(out["metadata"])
    assert meta["errors"] == []
    assert meta["reports_executed"] == ["overall_ctr", "top_locations_by_impressions"]

    report = Path(out["report"]).read_text(encoding="utf-8")
    assert "## Overall click-through rate (%)" in report
    assert "| 13.33 |" in report
    assert "| Miami | 300 |" in report
    assert "Rows rejected: **1**" in report


def test_all_reports_run_by_default(make_orchestrator):
    orch = make_orchestrator()
    out = orch.run()

    results = read_json(out["results"])
    assert [r["name"] for r in results] == list(orch.catalog)
    assert read_json(out["metadata"])["errors"] == []

    report = Path(out["report"]).read_text(encoding="utf-8")
    assert "undefined metric excluded from the ranking" in report


def test_config_report_list_is_used(make_orchestrator):
    orch = make_orchestrator(reports=["highest_roi"])
    results = read_json(orch.run()["results"])
    assert [r["name"] for r in results] == ["highest_roi"]


def test_parallel_and_sequential_runs_match(make_orchestrator):
    sequential = read_json(make_orchestrator(workers=1).run()["results"])
    parallel = read_json(make_orchestrator(workers=4).run()["results"])
    assert sequential == parallel


def test_unknown_report_fails_before_loading(make_orchestrator, tmp_path):
    orch = make_orchestrator(data=str(tmp_path / "missing.csv"))
    with pytest.raises(SpecError):
        orch.run(["no_such_report"])


def test_thresholds_from_config(make_orchestrator):
    orch = make_orchestrator(thresholds={"ctr_threshold_pct": 15, "top_locations": 2})
    assert orch.catalog["ctr_above_threshold"].title == "Campaigns with CTR above 15%"
    assert orch.catalog["top_locations_by_impressions"].limit == 2


def test_extra_reports_join_the_catalog(make_orchestrator, tmp_path):
    extra = tmp_path / "extra.yaml"
    extra.write_text(
        "reports:\n"
        "  - name: spend_by_segment\n"
        "    group_by: [customer_segment]\n"
        "    metrics:\n"
        "      - {name: spend, kind: sum, fields: [acquisition_cost]}\n",
        encoding="utf-8",
    )
    orch = make_orchestrator(extra_reports=str(extra))
    results = read_json(orch.run(["spend_by_segment"])["results"])

    assert results[0]["rows"] == [
        {"customer_segment": "Foodies", "spend": 3000.0},
        {"customer_segment": "Tech Enthusiasts", "spend": 900.0},
    ]


def test_invalid_extra_report_is_rejected(make_orchestrator, tmp_path):
    extra = tmp_path / "extra.yaml"
    extra.write_text(
        "reports:\n"
        "  - name: bad\n"
        "    metrics:\n"
        "      - {name: spend, kind: sum, fields: [budget]}\n",
        encoding="utf-8",
    )
    with pytest.raises(SpecError, match="unknown field"):
        make_orchestrator(extra_reports=str(extra))


def test_log_file_is_written(make_orchestrator, tmp_path):
    orch = make_orchestrator()
    orch.run(["overall_ctr"])

    log_file = tmp_path / "logs" / f"run_{orch.run_id}.log"
    assert log_file.exists()
    assert "Engine: overall_ctr" in log_file.read_text(encoding="utf-8")


def test_cli_reports_invalid_extra_reports(tmp_path, capsys):
    import run

    extra = tmp_path / "extra.yaml"
    extra.write_text("reports:\n  - name: bad\n    metrics: []\n", encoding="utf-8")
    config = tmp_path / "config.yaml"
    config.write_text(
        "paths:\n"
        f"  out_dir: {tmp_path / 'out'}\n"
        f"  logs_dir: {tmp_path / 'logs'}\n"
        f"  extra_reports: {extra}\n",
        encoding="utf-8",
    )

    assert run.main(["--config", str(config), "--list"]) == 2
    assert "Invalid report request" in capsys.readouterr().out


def test_cli_lists_reports(tmp_path, capsys):
    import run

    config = tmp_path / "config.yaml"
    config.write_text(
        f"paths:\n  out_dir: {tmp_path / 'out'}\n  logs_dir: {tmp_path / 'logs'}\n",
        encoding="utf-8",
    )

    assert run.main(["--config", str(config), "--list"]) == 0
    assert "overall_ctr" in capsys.readouterr().out
