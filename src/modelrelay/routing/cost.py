"""CostTracker -- 模型调用的用量与成本账本

FallbackOrchestrator 在每次模型尝试后调用 track_usage()。
成本计算双通道: litellm.cost_per_token() -> 按成本档位估算。
账本只保存在内存中，超过保留天数的记录在写入时清理。
"""

import csv
import io
import json
from datetime import UTC, datetime, timedelta
from typing import Literal, Protocol

import structlog
from litellm import cost_per_token as litellm_cost_per_token
from pydantic import BaseModel, Field
from ulid import ULID

from .catalog import ModelCatalog
from .models import CostTier, RequestKind, UsageEvent

log = structlog.get_logger()

Period = Literal["day", "week", "month"]

# 按档位估算的单价（USD / 1k tokens，不区分输入输出）
TIER_PRICE_PER_1K: dict[CostTier, float] = {
    CostTier.LOW: 0.001,
    CostTier.MEDIUM: 0.005,
    CostTier.HIGH: 0.02,
}

# 保留天数
MAX_HISTORY_DAYS = 30


class UsageSink(Protocol):
    """用量事件接收方"""

    def track_usage(
        self,
        *,
        model_id: str,
        input_tokens: int,
        output_tokens: int,
        total_tokens: int,
        response_time_ms: float,
        success: bool,
        error_type: str | None = None,
        request_type: RequestKind = RequestKind.TEXT,
    ) -> object: ...


class BudgetConfig(BaseModel):
    """预算配置（USD）"""

    daily_limit: float = Field(default=50.0, gt=0)
    weekly_limit: float = Field(default=300.0, gt=0)
    monthly_limit: float = Field(default=1000.0, gt=0)
    warning_threshold: float = Field(default=0.8, gt=0, le=1)
    critical_threshold: float = Field(default=0.95, gt=0, le=1)

    def limit_for(self, period: Period) -> float:
        return {
            "day": self.daily_limit,
            "week": self.weekly_limit,
            "month": self.monthly_limit,
        }[period]


class BudgetAlert(BaseModel):
    """预算告警"""

    period: Period
    severity: Literal["warning", "critical"]
    current_spending: float
    budget_limit: float
    percentage_used: float


def _start_of_period(now: datetime, period: Period) -> datetime:
    """周期起点（周从周一开始）"""
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "week":
        return start - timedelta(days=start.weekday())
    if period == "month":
        return start.replace(day=1)
    return start


class CostTracker:
    """内存用量账本

    所有成本计算方法不抛异常，定价缺失时降级为档位估算。
    """

    def __init__(
        self,
        catalog: ModelCatalog | None = None,
        budget: BudgetConfig | None = None,
        max_history_days: int = MAX_HISTORY_DAYS,
    ) -> None:
        """
        Args:
            catalog: 模型目录，用于档位估算
            budget: 预算配置，None 时使用默认值
            max_history_days: 账本保留天数
        """
        self._catalog = catalog or ModelCatalog()
        self.budget = budget or BudgetConfig()
        self._max_history = timedelta(days=max_history_days)
        self._events: list[UsageEvent] = []
        # 各周期最近一次告警级别，级别变化时才输出日志
        self._alert_severity: dict[str, str | None] = {}

    def track_usage(
        self,
        *,
        model_id: str,
        input_tokens: int,
        output_tokens: int,
        total_tokens: int,
        response_time_ms: float,
        success: bool,
        error_type: str | None = None,
        request_type: RequestKind = RequestKind.TEXT,
    ) -> UsageEvent:
        """记录一次模型尝试的用量"""
        event = UsageEvent(
            id=str(ULID()),
            model_id=model_id,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=total_tokens,
            cost_usd=self.calculate_cost(model_id, input_tokens, output_tokens),
            response_time_ms=response_time_ms,
            success=success,
            error_type=error_type,
            request_type=request_type,
        )
        self._events.append(event)
        self._prune(event.timestamp)

        self._log_alert_transitions(self.get_budget_alerts(event.timestamp))
        return event

    def calculate_cost(self, model_id: str, input_tokens: int, output_tokens: int) -> float:
        """计算 USD 成本

        双通道策略:
        1. 主路径: litellm.cost_per_token(model=model_id, ...)
        2. 兜底路径: 按模型成本档位估算（未知模型按 high 档）
        """
        try:
            prompt_cost, completion_cost = litellm_cost_per_token(
                model=model_id,
                prompt_tokens=input_tokens,
                completion_tokens=output_tokens,
            )
            total = prompt_cost + completion_cost
            if total >= 0:
                return float(total)
        except Exception as e:
            log.debug("cost_per_token_failed", model_id=model_id, error=str(e))

        model = self._catalog.get_model(model_id)
        tier = model.cost_tier if model is not None else CostTier.HIGH
        return (input_tokens + output_tokens) * TIER_PRICE_PER_1K[tier] / 1000

    def list_events(self, model_id: str | None = None) -> list[UsageEvent]:
        """列出账本记录，可按模型过滤"""
        if model_id is None:
            return list(self._events)
        return [e for e in self._events if e.model_id == model_id]

    def get_current_spending(self, period: Period, now: datetime | None = None) -> float:
        """当前周期内的累计花费"""
        start = _start_of_period(now or datetime.now(UTC), period)
        return sum(e.cost_usd for e in self._events if e.timestamp >= start)

    def get_budget_alerts(self, now: datetime | None = None) -> list[BudgetAlert]:
        """各周期的预算告警"""
        spending_by_period = self._spending_by_period(now or datetime.now(UTC))
        alerts: list[BudgetAlert] = []
        for period in ("day", "week", "month"):
            spending = spending_by_period[period]
            limit = self.budget.limit_for(period)
            used = spending / limit
            if used >= self.budget.critical_threshold:
                severity = "critical"
            elif used >= self.budget.warning_threshold:
                severity = "warning"
            else:
                continue
            alerts.append(
                BudgetAlert(
                    period=period,
                    severity=severity,
                    current_spending=spending,
                    budget_limit=limit,
                    percentage_used=used,
                )
            )
        return alerts

    def export_usage(self, fmt: Literal["json", "csv"] = "json") -> str:
        """导出账本"""
        if fmt == "csv":
            buffer = io.StringIO()
            writer = csv.writer(buffer, lineterminator="\n")
            writer.writerow(
                [
                    "timestamp",
                    "model_id",
                    "input_tokens",
                    "output_tokens",
                    "cost_usd",
                    "response_time_ms",
                    "success",
                ]
            )
            for e in self._events:
                writer.writerow(
                    [
                        e.timestamp.isoformat(),
                        e.model_id,
                        e.input_tokens,
                        e.output_tokens,
                        e.cost_usd,
                        e.response_time_ms,
                        e.success,
                    ]
                )
            return buffer.getvalue()

        return json.dumps([e.model_dump(mode="json") for e in self._events], indent=2)

    def _spending_by_period(self, now: datetime) -> dict[Period, float]:
        """单次遍历账本，汇总各周期花费"""
        periods: tuple[Period, ...] = ("day", "week", "month")
        starts = {period: _start_of_period(now, period) for period in periods}
        totals: dict[Period, float] = dict.fromkeys(periods, 0.0)
        for e in self._events:
            for period in periods:
                if e.timestamp >= starts[period]:
                    totals[period] += e.cost_usd
        return totals

    def _log_alert_transitions(self, alerts: list[BudgetAlert]) -> None:
        current = {a.period: a for a in alerts}
        for period in ("day", "week", "month"):
            alert = current.get(period)
            severity = alert.severity if alert is not None else None
            if severity == self._alert_severity.get(period):
                continue
            self._alert_severity[period] = severity
            if alert is not None and severity == "critical":
                log.warning(
                    "budget_critical",
                    period=period,
                    current_spending=round(alert.current_spending, 4),
                    budget_limit=alert.budget_limit,
                )

    def _prune(self, now: datetime) -> None:
        cutoff = now - self._max_history
        self._events = [e for e in self._events if e.timestamp >= cutoff]
