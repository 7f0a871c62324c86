from __future__ import annotations

import logging
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)s run=%(runId)s cmd=%(command)s comp=%(component)s %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"

_LEVEL_ALIASES = {"WARN": "WARNING"}
_ALLOWED_LEVELS = ("ERROR", "WARNING", "INFO", "DEBUG")


class RunContextFilter(logging.Filter):
    """
    Назначение:
        Проставляет runId/command/component в каждую запись лога команды,
        если вызывающий их не передал (например, сообщения сторонних библиотек).
    """

    def __init__(self, runId: str, command: str):
        super().__init__()
        self.runId = runId
        self.command = command

    def filter(self, record: logging.LogRecord) -> bool:
        record.command = self.command
        if not hasattr(record, "runId"):
            record.runId = self.runId
        if not hasattr(record, "component"):
            record.component = "core"
        return True


class LoggedStream:
    """
    Назначение:
        Обёртка над sys.stdout/sys.stderr: вывод идёт в исходный поток
        и построчно в лог команды.
    """

    def __init__(self, primary, logger: logging.Logger, level: int, runId: str, component: str):
        self.primary = primary
        self.logger = logger
        self.level = level
        self.runId = runId
        self.component = component
        self._pending = ""

    def write(self, s: str) -> int:
        written = self.primary.write(s)
        self._pending += s
        *lines, self._pending = self._pending.split("\n")
        for line in lines:
            self._log(line)
        return written

    def flush(self) -> None:
        self.primary.flush()
        self._log(self._pending)
        self._pending = ""

    def _log(self, line: str) -> None:
        if line.strip():
            logEvent(self.logger, self.level, self.runId, self.component, line.rstrip())


def mapLogLevel(levelName: str) -> int:
    """
    Назначение:
        ERROR|WARN|WARNING|INFO|DEBUG -> уровень logging.

    Ошибки:
        ValueError для неизвестного уровня.
    """
    value = (levelName or "").strip().upper()
    value = _LEVEL_ALIASES.get(value, value)
    if value not in _ALLOWED_LEVELS:
        raise ValueError(f"Unsupported log level: {levelName}")
    return getattr(logging, value)


def getLogFilePath(logDir: str, commandName: str, runId: str) -> Path:
    return Path(logDir) / f"{commandName}_{runId}.log"


def createCommandLogger(commandName: str, logDir: str, runId: str, logLevel: str) -> tuple[logging.Logger, str]:
    """
    Назначение:
        Логгер одной команды с файлом <logDir>/<command>_<runId>.log.
        Не передаёт записи корневому логгеру.
    """
    level = mapLogLevel(logLevel)
    logFilePath = getLogFilePath(logDir, commandName, runId)
    logFilePath.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(f"rostersync.{commandName}.{runId}")
    closeCommandLogger(logger)
    logger.propagate = False
    logger.setLevel(level)

    handler = logging.FileHandler(logFilePath, encoding="utf-8")
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))
    handler.addFilter(RunContextFilter(runId=runId, command=commandName))
    logger.addHandler(handler)

    return logger, str(logFilePath)


def closeCommandLogger(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def logEvent(logger: logging.Logger, level: int, runId: str, component: str, message: str) -> None:
    logger.log(level, message, extra={"runId": runId, "component": component})
