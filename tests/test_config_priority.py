from typer.testing import CliRunner
from rostersync.main import app

runner = CliRunner()

def test_priority_cli_over_env_over_config(tmp_path, monkeypatch):
    cfg = tmp_path / "config.yml"
    cfg.write_text(
        "\n".join([
            f'registry_dir: "{tmp_path / "cfg_registry"}"',
            f'report_dir: "{tmp_path / "cfg_reports"}"',
            f'log_dir: "{tmp_path / "logs"}"',
            'situation_table: "cfg_table"',
            'log_level: "DEBUG"',
        ]),
        encoding="utf-8",
    )

    # ENV overrides config
    monkeypatch.setenv("ROSTER_REGISTRY_DIR", str(tmp_path / "env_registry"))
    monkeypatch.setenv("ROSTER_SITUATION_TABLE", "env_table")
    monkeypatch.setenv("ROSTER_LOG_LEVEL", "WARN")

    # CLI overrides env
    cliRegistry = tmp_path / "cli_registry"
    result = runner.invoke(
        app,
        [
            "--config", str(cfg),
            "--registry-dir", str(cliRegistry),
            "--situation-table", "afastamento",
            "registry", "status",
        ],
    )
    assert result.exit_code == 0
    assert f"registry_dir={cliRegistry} situation_table=afastamento" in result.stdout
    assert "log_level=WARN" in result.stdout
    assert "sources=['config', 'env', 'cli']" in result.stdout
    assert (cliRegistry / "roster_registry.sqlite3").exists()
    assert list((tmp_path / "cfg_reports").glob("report_registry-status_*.json"))

def test_invalid_env_number_is_input_error(tmp_path, monkeypatch):
    monkeypatch.setenv("ROSTER_MIN_SNAPSHOT_SIZE", "many")
    result = runner.invoke(
        app,
        ["--registry-dir", str(tmp_path / "registry"), "--log-dir", str(tmp_path / "logs"), "registry", "status"],
    )
    assert result.exit_code == 2
