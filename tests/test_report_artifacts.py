import json
from pathlib import Path

from rostersync import __version__
from rostersync.domain.models import DiagnosticItem, DiagnosticStage, RowRef
from rostersync.infra.artifacts.report_writer import createRunReport, finalizeReport, writeReportJson


def bad_id():
    return DiagnosticItem(stage=DiagnosticStage.PARSE, code="INVALID_NATIONAL_ID", field="national_id", message="bad")


def test_items_limit_truncates_but_counts_everything():
    report = createRunReport(runId="r1", command="parse", configSources=["cli"], itemsLimit=1)

    report.add_row(row_ref=RowRef(line_no=3), accepted=False, errors=[bad_id()])
    report.add_row(row_ref=RowRef(line_no=4), accepted=False, errors=[bad_id()])
    report.add_row(row_ref=RowRef(line_no=5), accepted=True, store=False)

    assert len(report.items) == 1
    assert report.meta.items_truncated
    assert report.summary.rows_total == 3
    assert report.summary.rows_rejected == 2
    assert report.summary.errors_by_code == {"INVALID_NATIONAL_ID": 2}
    assert report.derived_status() == "PARTIAL"


def test_key_failures_do_not_count_as_rows():
    report = createRunReport(runId="r3", command="sync", configSources=[])
    error = DiagnosticItem(stage=DiagnosticStage.APPLY, code="KEY_APPLY_FAILED", field="national_id", message="row not found")

    report.add_key_failure(row_ref=RowRef(line_no=None, national_id="00000000009"), error=error, op="delete", applied=False)

    assert report.summary.rows_total == 0
    item = report.to_dict()["items"][0]
    assert item["row_ref"]["row_id"] == "key:00000000009"
    assert item["diagnostics"][0]["stage"] == "APPLY"
    assert item["meta"] == {"op": "delete", "applied": False}


def test_write_report_json(tmp_path: Path):
    report = createRunReport(runId="r2", command="sync", configSources=[], source="roster.xlsx")
    report.add_op("insert", ok=2, count=2)
    finalizeReport(report, durationMs=12, logFile=None, registryDir="reg", reportDir=str(tmp_path))

    path = writeReportJson(report, str(tmp_path / "reports"))

    assert Path(path).name == "report_sync_r2.json"
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    assert data["status"] == "SUCCESS"
    assert data["meta"]["source"] == "roster.xlsx"
    assert data["meta"]["app_version"] == __version__
    assert data["meta"]["duration_ms"] == 12
    assert data["summary"]["ops"]["insert"] == {"ok": 2, "failed": 0, "count": 2}
    assert data["summary"]["errors_total"] == 0
    assert data["context"]["runtime"]["registry_dir"] == "reg"
    assert "config" not in data["context"]
