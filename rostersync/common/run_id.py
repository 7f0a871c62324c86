from __future__ import annotations

import re
import uuid

# run_id входит в имена файлов лога и отчёта
_RUN_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,63}$")


def resolve_run_id(value: str | None) -> str:
    """
    Назначение:
        Возвращает переданный run_id или генерирует UUID4.

    Ошибки:
        ValueError, если run_id нельзя безопасно использовать в имени файла.
    """
    if not value:
        return str(uuid.uuid4())
    if not _RUN_ID_PATTERN.match(value):
        raise ValueError(f"run_id must match {_RUN_ID_PATTERN.pattern}: {value!r}")
    return value
