"""
结构化日志配置

功能：
- 生产环境 JSON 格式输出，便于日志聚合
- 开发环境彩色控制台输出
- 请求 ID 追踪（X-Request-ID）

使用示例：
    from workbench.infra.logging import setup_logging, get_logger

    setup_logging()
    logger = get_logger(__name__)
    logger.info("调用提供商", extra={"provider": "ollama"})
"""

import logging
import sys
import json
import time
from datetime import datetime, timezone
from typing import Any
from contextvars import ContextVar

from workbench.config import get_settings

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

# LogRecord 自带的属性，不进入 extra
_STANDARD_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "taskName", "message",
}


def get_request_id() -> str | None:
    """获取当前请求 ID"""
    return request_id_var.get()


def set_request_id(request_id: str) -> None:
    """设置当前请求 ID"""
    request_id_var.set(request_id)


class JSONFormatter(logging.Formatter):
    """
    JSON 格式日志格式化器

    输出格式：
    {
        "timestamp": "2024-01-01T00:00:00.000Z",
        "level": "INFO",
        "logger": "workbench.infra.llm",
        "message": "...",
        "request_id": "abc123",
        "extra": {...}
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = get_request_id()
        if request_id:
            log_data["request_id"] = request_id

        if record.levelno <= logging.DEBUG:
            log_data["location"] = f"{record.pathname}:{record.lineno}"

        extra = {
            k: v for k, v in record.__dict__.items()
            if k not in _STANDARD_ATTRS and not k.startswith("_")
        }
        if extra:
            log_data["extra"] = extra

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """
    控制台日志格式化器（开发环境）

    2024-01-01 00:00:00 INFO     [request_id] logger_name - message
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        level = record.levelname
        color = self.COLORS.get(level, "")

        parts = [f"{timestamp} {color}{level:8}{self.RESET}"]

        request_id = get_request_id()
        if request_id:
            parts.append(f"[{request_id[:8]}]")

        parts.append(f"{record.name} -")
        parts.append(record.getMessage())

        result = " ".join(parts)
        if record.exc_info:
            result += "\n" + self.formatException(record.exc_info)
        return result


def setup_logging(
    level: str | None = None,
    json_format: bool | None = None,
) -> None:
    """
    配置应用日志

    Args:
        level: 日志级别，默认从配置读取
        json_format: 是否使用 JSON 格式，默认跟随 log_json 配置，
            未配置时非开发环境使用 JSON
    """
    settings = get_settings()

    if level is None:
        level = settings.log_level
    log_level = getattr(logging, level.upper(), logging.INFO)

    if json_format is None:
        json_format = settings.log_json
    if json_format is None:
        json_format = settings.environment not in ("dev", "development", "test")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if json_format else ConsoleFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # 降低第三方库日志级别
    for noisy_logger in (
        "uvicorn.access",
        "uvicorn.error",
        "httpx",
        "httpcore",
        "openai",
        "sqlalchemy.engine",
        "aiosqlite",
    ):
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    logging.getLogger("workbench").setLevel(log_level)


def get_logger(name: str) -> logging.Logger:
    """获取 logger 实例，name 通常使用 __name__"""
    return logging.getLogger(name)


class RequestTimer:
    """
    请求计时器

    使用示例：
        timer = RequestTimer()
        timer.mark("db")
        timer.mark("provider")
        timer.get_metrics()
        # {"total_ms": 150, "db_ms": 50, "provider_ms": 100}
    """

    def __init__(self):
        self.start_time = time.perf_counter()
        self.marks: list[tuple[str, float]] = []
        self._last_mark = self.start_time

    def mark(self, name: str) -> None:
        now = time.perf_counter()
        self.marks.append((name, now - self._last_mark))
        self._last_mark = now

    def get_metrics(self) -> dict[str, float]:
        """各阶段耗时（毫秒）"""
        total = time.perf_counter() - self.start_time
        metrics = {"total_ms": round(total * 1000, 2)}
        for name, duration in self.marks:
            metrics[f"{name}_ms"] = round(duration * 1000, 2)
        return metrics
