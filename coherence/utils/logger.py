"""coherence 日志配置

提供统一的日志配置，支持三种输出格式:
  - text: 人类可读格式
  - json: 结构化 JSON，便于 CI 流水线消费
  - teamcity: TeamCity 服务消息，WARNING/ERROR 会在构建日志中高亮
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone

TEXT_FORMAT = "%(asctime)s [%(levelname)-7s] %(name)s: %(message)s"

_TEAMCITY_ESCAPES = (
    ("|", "||"),
    ("'", "|'"),
    ("\r", "|r"),
    ("\n", "|n"),
    ("[", "|["),
    ("]", "|]"),
)


class JSONFormatter(logging.Formatter):
    """结构化 JSON 日志格式器

    输出格式:
        {
            "timestamp": "2024-01-01T12:00:00+00:00",
            "level": "INFO",
            "logger": "module.name",
            "message": "log message",
            "module": "filename",
            "function": "func_name",
            "line": 42,
            "exception": "traceback..." (仅在有异常时)
        }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            # 使用 record.created 而非 datetime.now()，记录事件发生时间而非格式化时间
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False)


def teamcity_escape(value: str) -> str:
    """按 TeamCity 服务消息规则转义"""
    for src, dst in _TEAMCITY_ESCAPES:
        value = value.replace(src, dst)
    return value


class TeamCityFormatter(logging.Formatter):
    """TeamCity 服务消息格式器

    WARNING 及以上输出为:
        ##teamcity[message text='...' status='WARNING']
    INFO/DEBUG 保持普通文本，避免刷屏。
    """

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if record.exc_info and record.exc_info[1]:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        if record.levelno < logging.WARNING:
            return message
        status = "ERROR" if record.levelno >= logging.ERROR else "WARNING"
        return f"##teamcity[message text='{teamcity_escape(message)}' status='{status}']"


def detect_format() -> str:
    """根据环境变量选择日志格式"""
    if os.getenv("COHERENCE_LOG_JSON", "") == "1":
        return "json"
    if os.getenv("TEAMCITY_VERSION") is not None:
        return "teamcity"
    return "text"


def setup_logging(level: str = "INFO", fmt: str = "text") -> None:
    """配置根日志器

    参数:
        level: 日志级别字符串（DEBUG, INFO, WARNING, ERROR, CRITICAL）
        fmt: "text" | "json" | "teamcity"

    说明:
        - 输出到 stderr
        - 自动清理已有 handlers，避免重复输出

    示例:
        >>> setup_logging("DEBUG")
        >>> setup_logging("INFO", fmt="teamcity")  # TeamCity 构建
    """
    root = logging.getLogger()

    # 清理已有 handlers，避免重复添加导致日志重复输出
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    elif fmt == "teamcity":
        handler.setFormatter(TeamCityFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root.addHandler(handler)


def reset_logging() -> None:
    """重置根日志器配置，常用于测试环境"""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
