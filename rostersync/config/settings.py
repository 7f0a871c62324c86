from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os
import yaml

APPLY_STRATEGIES = ("set_based", "full_replace")


@dataclass(frozen=True)
class Settings:
    # Paths
    registry_dir: str = "./registry"
    log_dir: str = "./logs"
    report_dir: str = "./reports"
    export_dir: str = "./exports"

    # Logging / reports
    log_level: str = "INFO"
    report_items_limit: int = 200

    # Reference data
    lookups_file: str | None = None
    situation_table: str | None = None

    # Reconciliation
    min_snapshot_size: int = 100
    apply_strategy: str = "set_based"
    delete_warn_ratio: float = 0.1

    # Snapshot cache
    snapshot_cache_ttl_seconds: int = 1800


@dataclass(frozen=True)
class LoadedSettings:
    settings: Settings
    sources_used: list[str]


_ENV_NAMES = {
    "registry_dir": "ROSTER_REGISTRY_DIR",
    "log_dir": "ROSTER_LOG_DIR",
    "report_dir": "ROSTER_REPORT_DIR",
    "export_dir": "ROSTER_EXPORT_DIR",
    "log_level": "ROSTER_LOG_LEVEL",
    "report_items_limit": "ROSTER_REPORT_ITEMS_LIMIT",
    "lookups_file": "ROSTER_LOOKUPS_FILE",
    "situation_table": "ROSTER_SITUATION_TABLE",
    "min_snapshot_size": "ROSTER_MIN_SNAPSHOT_SIZE",
    "apply_strategy": "ROSTER_APPLY_STRATEGY",
    "delete_warn_ratio": "ROSTER_DELETE_WARN_RATIO",
    "snapshot_cache_ttl_seconds": "ROSTER_SNAPSHOT_CACHE_TTL_SECONDS",
}

_INT_FIELDS = ("report_items_limit", "min_snapshot_size", "snapshot_cache_ttl_seconds")
_FLOAT_FIELDS = ("delete_warn_ratio",)


def _read_yaml_config(path: Path) -> dict:
    if not path.exists():
        return {}
    if not path.is_file():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            return {}
        return data


def _env_get(name: str) -> str | None:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return None
    return v.strip()


def _coerce(name: str, value):
    if value is None:
        return None
    if name in _INT_FIELDS:
        return int(value)
    if name in _FLOAT_FIELDS:
        return float(value)
    return value


def loadSettings(
    config_path: str | None,
    cli_overrides: dict,
) -> LoadedSettings:
    """
    Назначение:
        Собирает итоговые настройки запуска.

    Приоритет:
        CLI > ENV > config > defaults

    Ошибки:
        ValueError: некорректное число в ENV/config или неизвестная стратегия apply.
    """
    sources: list[str] = []
    defaults = Settings()

    # 1) config file
    cfg: dict = {}
    if config_path:
        cfg = _read_yaml_config(Path(config_path))
        if cfg:
            sources.append("config")

    # 2) env
    env = {key: _env_get(name) for key, name in _ENV_NAMES.items()}
    if any(v is not None for v in env.values()):
        sources.append("env")

    merged = {key: cfg.get(key, getattr(defaults, key)) for key in _ENV_NAMES}

    for key, value in env.items():
        if value is not None:
            merged[key] = value

    # 3) apply CLI overrides (only those explicitly passed)
    if any(v is not None for v in cli_overrides.values()):
        sources.append("cli")

    for k, v in cli_overrides.items():
        if v is None:
            continue
        merged[k] = v

    merged = {key: _coerce(key, value) for key, value in merged.items()}

    strategy = str(merged["apply_strategy"]).strip().lower()
    if strategy not in APPLY_STRATEGIES:
        raise ValueError(f"Unsupported apply_strategy: {merged['apply_strategy']}")

    settings = Settings(
        registry_dir=merged["registry_dir"],
        log_dir=merged["log_dir"],
        report_dir=merged["report_dir"],
        export_dir=merged["export_dir"],
        log_level=merged["log_level"],
        report_items_limit=merged["report_items_limit"],
        lookups_file=merged["lookups_file"],
        situation_table=merged["situation_table"],
        min_snapshot_size=merged["min_snapshot_size"],
        apply_strategy=strategy,
        delete_warn_ratio=merged["delete_warn_ratio"],
        snapshot_cache_ttl_seconds=merged["snapshot_cache_ttl_seconds"],
    )

    return LoadedSettings(settings=settings, sources_used=sources)
