"""Structured logging configuration for the red-ai pipeline.

Managed runtime (Lambda / log_json) → JSON stdout, one object per line
Local                                → Color console + RotatingFileHandler (pipeline.log + error.log)
"""

import json
import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

# 런타임이 자동으로 주입하는 환경 변수
_MANAGED_RUNTIME_ENV = ("AWS_LAMBDA_FUNCTION_NAME", "K_SERVICE")


class JsonLineFormatter(logging.Formatter):
    """One JSON object per line, parseable by CloudWatch / Cloud Logging."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict = {
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "function": record.funcName,
            "line": record.lineno,
        }
        run_id = getattr(record, "run_id", None)
        if run_id:
            payload["run_id"] = run_id
        if record.exc_info and record.exc_info[1] is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


class ColorConsoleFormatter(logging.Formatter):
    """Local console: colored level tag, short run id when the record has one."""

    _LEVEL_COLORS = {
        logging.DEBUG: "36",
        logging.INFO: "32",
        logging.WARNING: "33",
        logging.ERROR: "31",
        logging.CRITICAL: "1;31",
    }

    def format(self, record: logging.LogRecord) -> str:
        code = self._LEVEL_COLORS.get(record.levelno, "0")
        source = record.name
        run_id = getattr(record, "run_id", None)
        if run_id:
            source += f" [{run_id[:8]}]"
        parts = [
            self.formatTime(record, self.datefmt),
            f"\033[{code}m{record.levelname:<7}\033[0m",
            f"{source}:",
            record.getMessage(),
        ]
        text = " ".join(parts)
        if record.exc_info and record.exc_info[1] is not None:
            text += "\n" + self.formatException(record.exc_info)
        return text


# (파일명, 최소 레벨): 전체 로그와 에러 전용 로그
_LOG_FILES = (("pipeline.log", logging.NOTSET), ("error.log", logging.ERROR))
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def is_managed_runtime() -> bool:
    return any(name in os.environ for name in _MANAGED_RUNTIME_ENV)


def _local_handlers(log_dir: str, max_bytes: int, backup_count: int) -> list[logging.Handler]:
    console = logging.StreamHandler()
    console.setFormatter(ColorConsoleFormatter(datefmt="%H:%M:%S"))
    handlers: list[logging.Handler] = [console]

    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    for filename, level in _LOG_FILES:
        handler = RotatingFileHandler(
            directory / filename, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        handlers.append(handler)
    return handlers


def setup_logging(
    *,
    log_level: str = "INFO",
    log_dir: str = "logs",
    max_bytes: int = 10_485_760,
    backup_count: int = 5,
    json_output: bool = False,
) -> None:
    """Configure the root logger.

    Managed runtimes have a read-only filesystem, so only stdout is used there.
    """
    if json_output or is_managed_runtime():
        stdout = logging.StreamHandler()
        stdout.setFormatter(JsonLineFormatter())
        handlers: list[logging.Handler] = [stdout]
    else:
        handlers = _local_handlers(log_dir, max_bytes, backup_count)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    for handler in handlers:
        root.addHandler(handler)

    for name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        uv_logger = logging.getLogger(name)
        uv_logger.handlers.clear()
        uv_logger.propagate = True
