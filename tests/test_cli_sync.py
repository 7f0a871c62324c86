import json
import sqlite3
from pathlib import Path

from openpyxl import Workbook, load_workbook
from typer.testing import CliRunner

from rostersync.main import app

runner = CliRunner()


def employee_row(code, name, national_id, situation=1):
    cells = [None] * 29
    cells[0] = code
    cells[4] = name
    cells[11] = "MOTORISTA"
    cells[18] = "12A3"
    cells[22] = 45000
    cells[26] = situation
    cells[28] = national_id
    return cells


def write_roster(path: Path, employees, company="DS3 FLORESTAL LTDA"):
    wb = Workbook()
    ws = wb.active
    ws.append(["Relatório de funcionários"])
    ws.append([company])
    for code, name, national_id, situation in employees:
        ws.append(employee_row(code, name, national_id, situation))
    wb.save(path)
    return str(path)


def roster(n, start=1):
    return [(code, f"EMPLOYEE {code}", f"{code:011d}", 1) for code in range(start, start + n)]


def base_args(tmp_path: Path, run_id: str):
    return [
        "--run-id", run_id,
        "--log-dir", str(tmp_path / "logs"),
        "--report-dir", str(tmp_path / "reports"),
        "--registry-dir", str(tmp_path / "registry"),
        "--export-dir", str(tmp_path / "exports"),
        "--situation-table", "afastamento",
    ]


def registry_keys(tmp_path: Path):
    conn = sqlite3.connect(tmp_path / "registry" / "roster_registry.sqlite3")
    try:
        return sorted(row[0] for row in conn.execute("SELECT national_id FROM employees"))
    finally:
        conn.close()


def read_log(tmp_path: Path, command: str, run_id: str):
    return (tmp_path / "logs" / f"{command}_{run_id}.log").read_text(encoding="utf-8")


def read_report(tmp_path: Path, command: str, run_id: str):
    path = tmp_path / "reports" / f"report_{command}_{run_id}.json"
    return json.loads(path.read_text(encoding="utf-8"))


def sync(tmp_path: Path, run_id: str, xlsx: str, *extra):
    return runner.invoke(
        app,
        base_args(tmp_path, run_id) + ["sync", "--xlsx", xlsx, "--min-snapshot-size", "1", *extra],
    )


def test_sync_inserts_then_resync_is_idempotent(tmp_path: Path):
    xlsx = write_roster(tmp_path / "roster.xlsx", roster(3))

    first = sync(tmp_path, "run-1", xlsx)
    assert first.exit_code == 0, first.stdout
    assert "inserted=3 updated=0 deleted=0 failed=0" in first.stdout
    assert registry_keys(tmp_path) == [f"{n:011d}" for n in (1, 2, 3)]

    second = sync(tmp_path, "run-2", xlsx)
    assert second.exit_code == 0
    assert "inserted=0 updated=3 deleted=0" in second.stdout

    report = read_report(tmp_path, "sync", "run-2")
    assert report["status"] == "SUCCESS"
    assert report["context"]["sync"]["updated"] == 3
    assert report["context"]["reconcile"]["snapshot_total"] == 3
    assert report["meta"]["source"] == xlsx


def test_sync_deletes_keys_missing_from_snapshot(tmp_path: Path):
    sync(tmp_path, "run-1", write_roster(tmp_path / "full.xlsx", roster(3)))

    result = sync(tmp_path, "run-2", write_roster(tmp_path / "short.xlsx", roster(2)))

    assert result.exit_code == 0
    assert "deleted=1" in result.stdout
    assert registry_keys(tmp_path) == [f"{n:011d}" for n in (1, 2)]


def test_terminated_rows_are_excluded_and_reported(tmp_path: Path):
    employees = roster(2) + [(9, "GONE", f"{9:011d}", 8)]
    result = sync(tmp_path, "run-1", write_roster(tmp_path / "roster.xlsx", employees))

    assert result.exit_code == 0
    assert registry_keys(tmp_path) == [f"{n:011d}" for n in (1, 2)]
    report = read_report(tmp_path, "sync", "run-1")
    codes = [d["code"] for item in report["items"] for d in item["diagnostics"]]
    assert "TERMINATED_EMPLOYEE" in codes


def test_snapshot_below_floor_leaves_registry_unchanged(tmp_path: Path):
    sync(tmp_path, "run-1", write_roster(tmp_path / "full.xlsx", roster(3)))

    result = runner.invoke(
        app,
        base_args(tmp_path, "run-2")
        + ["sync", "--xlsx", write_roster(tmp_path / "short.xlsx", roster(1)), "--min-snapshot-size", "2"],
    )

    assert result.exit_code == 2
    assert registry_keys(tmp_path) == [f"{n:011d}" for n in (1, 2, 3)]
    report = read_report(tmp_path, "sync", "run-2")
    assert report["status"] == "FAILED"
    assert report["context"]["error"]["code"] == "SNAPSHOT_BELOW_FLOOR"


def test_dry_run_does_not_write(tmp_path: Path):
    result = sync(tmp_path, "run-1", write_roster(tmp_path / "roster.xlsx", roster(2)), "--dry-run")

    assert result.exit_code == 0
    assert "would_insert=2" in result.stdout
    assert registry_keys(tmp_path) == []


def test_full_replace_strategy(tmp_path: Path):
    sync(tmp_path, "run-1", write_roster(tmp_path / "full.xlsx", roster(3)))

    result = sync(
        tmp_path,
        "run-2",
        write_roster(tmp_path / "next.xlsx", roster(2, start=2)),
        "--strategy",
        "full_replace",
    )

    assert result.exit_code == 0
    assert "strategy=full_replace" in result.stdout
    assert registry_keys(tmp_path) == [f"{n:011d}" for n in (2, 3)]


def test_missing_situation_table_is_input_error(tmp_path: Path):
    xlsx = write_roster(tmp_path / "roster.xlsx", roster(2))
    args = [a for a in base_args(tmp_path, "run-1") if a not in ("--situation-table", "afastamento")]

    result = runner.invoke(app, args + ["sync", "--xlsx", xlsx, "--min-snapshot-size", "1"])

    assert result.exit_code == 2
    report = read_report(tmp_path, "sync", "run-1")
    assert report["context"]["error"]["code"] == "SITUATION_TABLE_NOT_CONFIRMED"


def test_parse_then_export_from_session(tmp_path: Path):
    sync(tmp_path, "run-1", write_roster(tmp_path / "first.xlsx", roster(2)))
    xlsx = write_roster(tmp_path / "roster.xlsx", roster(3))

    parsed = runner.invoke(app, base_args(tmp_path, "run-2") + ["parse", "--xlsx", xlsx, "--session", "s1"])
    assert parsed.exit_code == 0
    assert "session_id=s1 cached_records=3" in parsed.stdout

    out = tmp_path / "out" / "export.xlsx"
    exported = runner.invoke(app, base_args(tmp_path, "run-3") + ["export", "--session", "s1", "--out", str(out)])
    assert exported.exit_code == 0
    assert "rows=3" in exported.stdout

    ws = load_workbook(out)["Colaboradores"]
    rows = list(ws.iter_rows(values_only=True))
    assert rows[0][0] == "NOME"
    assert [r[2] for r in rows[1:]] == [f"{n:011d}" for n in (1, 2, 3)]
    # экспорт не меняет реестр
    assert registry_keys(tmp_path) == [f"{n:011d}" for n in (1, 2)]


def test_export_unknown_session_is_cache_miss(tmp_path: Path):
    result = runner.invoke(app, base_args(tmp_path, "run-1") + ["export", "--session", "nope"])

    assert result.exit_code == 2
    report = read_report(tmp_path, "export", "run-1")
    assert report["context"]["error"]["code"] == "SNAPSHOT_CACHE_MISS"


def test_export_requires_exactly_one_source(tmp_path: Path):
    result = runner.invoke(app, base_args(tmp_path, "run-1") + ["export"])

    assert result.exit_code == 2


def test_archive_and_registry_status(tmp_path: Path):
    sync(tmp_path, "run-1", write_roster(tmp_path / "roster.xlsx", roster(2)))

    archived = runner.invoke(app, base_args(tmp_path, "run-2") + ["archive", "--record-date", "2026-03-02"])
    assert archived.exit_code == 0
    assert "record_date=2026-03-02 archived=2" in archived.stdout

    status = runner.invoke(app, base_args(tmp_path, "run-3") + ["registry", "status"])
    assert status.exit_code == 0
    assert "employees=2 history=2" in status.stdout
    assert "last_archive_date=2026-03-02" in status.stdout


def test_archive_rejects_bad_date(tmp_path: Path):
    result = runner.invoke(app, base_args(tmp_path, "run-1") + ["archive", "--record-date", "02/03/2026"])

    assert result.exit_code == 2


def test_mass_delete_is_logged_for_manual_review(tmp_path: Path):
    sync(tmp_path, "run-1", write_roster(tmp_path / "full.xlsx", roster(10)))

    at_threshold = sync(tmp_path, "run-2", write_roster(tmp_path / "nine.xlsx", roster(9)))
    assert at_threshold.exit_code == 0
    assert "review the source export manually" not in read_log(tmp_path, "sync", "run-2")

    above = sync(tmp_path, "run-3", write_roster(tmp_path / "seven.xlsx", roster(7)))
    assert above.exit_code == 0
    warnings = [line for line in read_log(tmp_path, "sync", "run-3").splitlines() if "review the source export" in line]
    assert len(warnings) == 1
    assert " WARNING " in warnings[0]
    assert "Sync deletes 2 of 9 registry rows" in warnings[0]
    assert registry_keys(tmp_path) == [f"{n:011d}" for n in range(1, 8)]


def test_unknown_company_is_one_aggregated_warning(tmp_path: Path):
    xlsx = write_roster(tmp_path / "roster.xlsx", roster(3), company="ACME REFLORESTADORA LTDA")

    parsed = runner.invoke(app, base_args(tmp_path, "run-1") + ["parse", "--xlsx", xlsx, "--session", "s1"])
    assert parsed.exit_code == 0

    lines = [line for line in read_log(tmp_path, "parse", "run-1").splitlines() if "UNKNOWN_COMPANY" in line]
    assert len(lines) == 1
    assert " WARNING " in lines[0]
    assert "ACME REFLORESTADORA LTDA" in lines[0]
    assert "(rows=3)" in lines[0]
    report = read_report(tmp_path, "parse", "run-1")
    assert report["summary"]["warnings_by_code"]["UNKNOWN_COMPANY"] == 3
