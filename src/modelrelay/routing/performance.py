"""PerformanceTracker -- 按模型的平滑性能统计

由 FallbackOrchestrator 实例持有，并以引用方式共享给需要查看统计的调用方。
统计只影响后续排序，不影响单次调用的正确性；update() 内部没有 await，
同一事件循环上的并发调用不会交错读写。
"""

from datetime import UTC, datetime
from functools import cmp_to_key

import structlog

from .models import PerformanceMetrics

log = structlog.get_logger()

# 响应时间 EMA 学习率
EMA_ALPHA = 0.3

# 成功率差值不超过此阈值时视为持平，改按响应时间排序（防抖动）
SUCCESS_RATE_TIE_THRESHOLD = 0.1


class PerformanceTracker:
    """模型性能统计

    每个模型首次 update() 时惰性创建统计，只有 reset() 会删除。
    """

    def __init__(self) -> None:
        self._metrics: dict[str, PerformanceMetrics] = {}

    def update(self, model_id: str, success: bool, response_time_ms: float) -> PerformanceMetrics:
        """记录一次模型调用结果

        Args:
            model_id: 模型 ID
            success: 是否成功
            response_time_ms: 本次耗时（毫秒）

        Returns:
            更新后的统计
        """
        existing = self._metrics.get(model_id)
        if existing is None:
            existing = PerformanceMetrics(model_id=model_id)

        total_requests = existing.total_requests + 1
        total_errors = existing.total_errors + (0 if success else 1)

        # 首个样本直接作为均值，不与 0 混合
        if existing.total_requests == 0:
            average = float(response_time_ms)
        else:
            average = (
                existing.average_response_time_ms * (1 - EMA_ALPHA)
                + response_time_ms * EMA_ALPHA
            )

        metrics = PerformanceMetrics(
            model_id=model_id,
            total_requests=total_requests,
            total_errors=total_errors,
            success_rate=(total_requests - total_errors) / total_requests,
            error_rate=total_errors / total_requests,
            average_response_time_ms=average,
            last_used=datetime.now(UTC),
        )
        self._metrics[model_id] = metrics
        return metrics

    def get_metrics(self, model_id: str) -> PerformanceMetrics | None:
        """查询单个模型的统计"""
        return self._metrics.get(model_id)

    def list_metrics(self) -> list[PerformanceMetrics]:
        """列出所有模型的统计"""
        return list(self._metrics.values())

    def reset(self) -> None:
        """清空全部统计"""
        self._metrics.clear()
        log.info("performance_metrics_reset")

    def sort_by_performance(self, model_ids: list[str]) -> list[str]:
        """按历史表现排序，返回新列表

        排序规则（稳定排序）:
            1. 有统计的模型排在无统计的模型之前
            2. 成功率降序，差值 <= 0.1 视为持平
            3. 平均响应时间升序
            无统计的模型之间保持输入顺序
        """
        return sorted(model_ids, key=cmp_to_key(self._compare))

    def _compare(self, a: str, b: str) -> int:
        metrics_a = self._metrics.get(a)
        metrics_b = self._metrics.get(b)

        if metrics_a is None and metrics_b is None:
            return 0
        if metrics_a is None:
            return 1
        if metrics_b is None:
            return -1

        success_diff = metrics_b.success_rate - metrics_a.success_rate
        if abs(success_diff) > SUCCESS_RATE_TIE_THRESHOLD:
            return 1 if success_diff > 0 else -1

        time_diff = metrics_a.average_response_time_ms - metrics_b.average_response_time_ms
        if time_diff == 0:
            return 0
        return 1 if time_diff > 0 else -1
