"""DebugManager -- 分级结构化日志接收方

每条记录包含 message / data / source / category，同时转发给 structlog，
并在内存中保留最近的记录供调用方查看（降级链耗尽时逐次尝试的细节只在这里）。
"""

from collections import deque
from datetime import UTC, datetime
from typing import Any, Literal

import structlog
from pydantic import BaseModel, Field

LogLevel = Literal["debug", "info", "warn", "error"]

# 内存中保留的最大记录数
DEFAULT_MAX_ENTRIES = 1000


class DebugLogEntry(BaseModel):
    """单条调试日志"""

    level: LogLevel
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    source: str = "system"
    category: str = "general"
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class DebugManager:
    """调试日志管理器"""

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        self._entries: deque[DebugLogEntry] = deque(maxlen=max_entries)
        self._log = structlog.get_logger("modelrelay.debug")

    def debug(
        self,
        message: str,
        data: dict[str, Any] | None = None,
        source: str = "system",
        category: str = "debug",
    ) -> None:
        self._record("debug", message, data, source, category)

    def info(
        self,
        message: str,
        data: dict[str, Any] | None = None,
        source: str = "system",
        category: str = "info",
    ) -> None:
        self._record("info", message, data, source, category)

    def warn(
        self,
        message: str,
        data: dict[str, Any] | None = None,
        source: str = "system",
        category: str = "warning",
    ) -> None:
        self._record("warn", message, data, source, category)

    def error(
        self,
        message: str,
        data: dict[str, Any] | None = None,
        source: str = "system",
        category: str = "error",
    ) -> None:
        self._record("error", message, data, source, category)

    def get_logs(
        self,
        level: LogLevel | None = None,
        category: str | None = None,
    ) -> list[DebugLogEntry]:
        """按级别 / 分类过滤记录（按时间先后）"""
        return [
            e
            for e in self._entries
            if (level is None or e.level == level)
            and (category is None or e.category == category)
        ]

    def clear(self) -> None:
        """清空内存记录"""
        self._entries.clear()

    def _record(
        self,
        level: LogLevel,
        message: str,
        data: dict[str, Any] | None,
        source: str,
        category: str,
    ) -> None:
        entry = DebugLogEntry(
            level=level,
            message=message,
            data=data or {},
            source=source,
            category=category,
        )
        self._entries.append(entry)

        emit = self._log.warning if level == "warn" else getattr(self._log, level)
        emit(message, source=source, category=category, data=entry.data)
