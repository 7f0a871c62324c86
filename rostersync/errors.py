from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass
class AppError(Exception):
    """
    Назначение:
        Базовая ошибка rostersync. Команды CLI ловят её целиком и пишут
        to_dict() в контекст отчёта.

    Поля:
        category: группа ошибки для отчёта (source/config/precondition/storage/concurrency)
        code: значение ErrorCode
        retryable: True, если вызывающий может повторить позже без изменений входа
    """

    category: str
    code: str
    message: str
    retryable: bool = False
    details: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(f"{self.code}: {self.message}")

    @property
    def exit_code(self) -> int:
        # 3: хранилище занято/недоступно, 2: вход или настройки
        return 3 if self.retryable else 2

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "category": self.category,
            "message": self.message,
            "retryable": self.retryable,
            "details": dict(self.details),
        }
