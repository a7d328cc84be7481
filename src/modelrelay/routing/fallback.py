"""FallbackOrchestrator -- 模型降级编排器

唯一入口 execute():
    1. 解析降级链（显式 ID 列表或链名）
    2. 按 requirements 过滤（能力、成本档位、token 上限、provider）
    3. 复杂查询（评分 > 0.7）优先推理模型、高成本档位
    4. 按历史表现重排
    5. 逐个模型交给 RetryExecutor 执行，成功即返回，失败则记录并尝试下一个
    6. 全部失败抛 AllModelsExhaustedError

同一次调用内的尝试严格串行，不做并行竞速。
"""

import time
from collections.abc import Callable
from typing import Any

import structlog

from .catalog import ChainRegistry, ModelCatalog
from .client import create_model_handle
from .complexity import QueryComplexityAnalyzer
from .config import RoutingConfig
from .cost import CostTracker, UsageSink
from .debug import DebugManager
from .exceptions import AllModelsExhaustedError, ChainConfigurationError
from .models import (
    COST_TIER_RANK,
    AttemptRecord,
    Capability,
    FallbackResult,
    ModelRequirements,
    OperationResult,
    PerformanceMetrics,
    RequestKind,
    RoutingContext,
)
from .performance import PerformanceTracker
from .retry import ErrorClassifier, Operation, RetryExecutor, classify_error

log = structlog.get_logger()

# 复杂度超过此阈值时优先推理模型
COMPLEXITY_THRESHOLD = 0.7

# operation 未上报 usage 时的 token 估算值
DEFAULT_INPUT_TOKENS = 1000
DEFAULT_OUTPUT_TOKENS = 500

_SOURCE = "FallbackOrchestrator"
_CATEGORY = "fallback"

ChainSelector = str | list[str] | tuple[str, ...]


def _elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000


class FallbackOrchestrator:
    """降级编排器

    PerformanceTracker 与 CostTracker 由实例持有，通过属性以引用方式共享。
    """

    def __init__(
        self,
        config: RoutingConfig | None = None,
        catalog: ModelCatalog | None = None,
        chains: ChainRegistry | None = None,
        performance: PerformanceTracker | None = None,
        cost_tracker: UsageSink | None = None,
        debug_manager: DebugManager | None = None,
        analyzer: QueryComplexityAnalyzer | None = None,
        retry_executor: RetryExecutor | None = None,
        classifier: ErrorClassifier = classify_error,
        handle_factory: Callable[[str], Any] | None = None,
    ) -> None:
        """初始化编排器

        Args:
            config: 路由配置，None 时使用默认值
            catalog: 模型目录，None 时使用默认目录
            chains: 降级链注册表，None 时使用默认链（传入自定义 catalog 时为空）
            performance: 性能统计，None 时新建
            cost_tracker: 用量接收方，None 时新建内存 CostTracker
            debug_manager: 调试日志接收方，None 时新建
            analyzer: 复杂度评分器
            retry_executor: 单模型重试执行器，None 时按 config 构建
            classifier: 错误归类函数（retry_executor 为 None 时生效）
            handle_factory: model_id -> handle，None 时按 config.llm_mode 创建
        """
        self.config = config or RoutingConfig()
        self.catalog = catalog or ModelCatalog()
        if chains is None:
            # 自定义目录不一定包含默认链引用的模型，此时从空注册表开始
            chains = ChainRegistry(self.catalog, chains=None if catalog is None else [])
        self.chains = chains
        self.performance = performance or PerformanceTracker()
        self.cost_tracker = cost_tracker or CostTracker(self.catalog)
        self.debug_manager = debug_manager or DebugManager()
        self._analyzer = analyzer or QueryComplexityAnalyzer()
        self.retry_executor = retry_executor or RetryExecutor(
            self.config.retry_policy(),
            classifier=classifier,
        )
        self._handle_factory = handle_factory or (
            lambda model_id: create_model_handle(model_id, self.config)
        )

    async def execute(
        self,
        chain_selector: ChainSelector,
        operation: Operation[Any],
        context: RoutingContext | None = None,
    ) -> FallbackResult:
        """带重试与降级的执行

        Args:
            chain_selector: 降级链名称，或显式的有序模型 ID 列表
            operation: async (model_id, handle) -> OperationResult | Any
            context: 可选查询文本与模型要求

        Returns:
            FallbackResult（success=True），data 为 operation 结果中的 data

        Raises:
            ChainConfigurationError: 链为空、链名未知或过滤后无可用模型
            AllModelsExhaustedError: 所有模型均失败，消息包含最后一次错误
        """
        models = self.get_ordered_models(chain_selector, context)
        attempts: list[AttemptRecord] = []
        start_time = time.monotonic()

        self.debug_manager.info(
            f"Starting fallback execution with {len(models)} models",
            {"chain": chain_selector, "models": models},
            _SOURCE,
            _CATEGORY,
        )

        for index, model_id in enumerate(models):
            handle = self._handle_factory(model_id)
            attempt_start = time.monotonic()

            try:
                outcome = await self.retry_executor.run(model_id, handle, operation)
            except Exception as e:
                response_time = _elapsed_ms(attempt_start)
                trigger = self.retry_executor.classifier(e)

                attempts.append(
                    AttemptRecord(
                        model_id=model_id,
                        attempt_index=index,
                        trigger=trigger,
                        response_time_ms=response_time,
                        error=str(e),
                    )
                )
                self.performance.update(model_id, False, response_time)
                self._track_usage(
                    model_id, response_time, success=False, error_type=trigger.value
                )
                self.debug_manager.warn(
                    f"Model {model_id} failed, attempting fallback",
                    {
                        "model_id": model_id,
                        "error": str(e),
                        "trigger": trigger.value,
                        "attempt_index": index,
                        "response_time_ms": round(response_time, 1),
                    },
                    _SOURCE,
                    _CATEGORY,
                )
                if index < len(models) - 1:
                    continue

                # 最后一个模型也失败，降级链耗尽
                self.debug_manager.error(
                    "All fallback models failed",
                    {
                        "total_models": len(models),
                        "attempts": len(attempts),
                        "total_time_ms": round(_elapsed_ms(start_time), 1),
                        "last_error": str(e),
                    },
                    _SOURCE,
                    _CATEGORY,
                )
                raise AllModelsExhaustedError(e, models_tried=len(models)) from e

            response_time = _elapsed_ms(attempt_start)
            result = (
                outcome if isinstance(outcome, OperationResult) else OperationResult(data=outcome)
            )
            self.performance.update(model_id, True, response_time)
            self._track_usage(model_id, response_time, success=True, result=result)

            total_time = _elapsed_ms(start_time)
            self.debug_manager.info(
                f"Fallback execution succeeded with model {model_id}",
                {
                    "model_id": model_id,
                    "response_time_ms": round(response_time, 1),
                    "fallbacks_used": index,
                    "total_time_ms": round(total_time, 1),
                },
                _SOURCE,
                _CATEGORY,
            )
            return FallbackResult(
                success=True,
                data=result.data,
                final_model=model_id,
                attempts=attempts,
                total_response_time_ms=total_time,
                fallbacks_used=index,
            )

    def get_ordered_models(
        self,
        chain_selector: ChainSelector,
        context: RoutingContext | None = None,
    ) -> list[str]:
        """解析并排序本次调用的模型列表（不发起调用）"""
        models = self._resolve_chain(chain_selector)

        if context is not None and context.requirements is not None:
            models = self._filter_by_requirements(models, context.requirements)
            if not models:
                raise ChainConfigurationError(
                    f"No model in chain satisfies requirements: "
                    f"{context.requirements.model_dump(exclude_none=True)}"
                )

        if context is not None and context.query:
            complexity = self._analyzer.score(context.query)
            if complexity.value > COMPLEXITY_THRESHOLD:
                models = self._prefer_capable_models(models)
                log.debug(
                    "complex_query_reordered",
                    complexity=round(complexity.value, 3),
                    models=models,
                )

        return self.performance.sort_by_performance(models)

    def get_performance_metrics(self) -> list[PerformanceMetrics]:
        """所有模型的性能统计"""
        return self.performance.list_metrics()

    def get_model_metrics(self, model_id: str) -> PerformanceMetrics | None:
        """单个模型的性能统计"""
        return self.performance.get_metrics(model_id)

    def reset_metrics(self) -> None:
        """清空性能统计"""
        self.performance.reset()

    def update_retry_policy(self, **changes: Any) -> None:
        """更新重试策略（如 max_attempts、timeout_ms）"""
        policy = self.retry_executor.policy
        self.retry_executor.policy = policy.model_validate(
            {**policy.model_dump(), **changes}
        )
        log.info("retry_policy_updated", **changes)

    def _resolve_chain(self, chain_selector: ChainSelector) -> list[str]:
        if isinstance(chain_selector, str):
            chain = self.chains.get_chain(chain_selector)
            if chain is None:
                raise ChainConfigurationError(f"Unknown fallback chain: {chain_selector}")
            return list(chain.models)

        models = list(chain_selector)
        if not models:
            raise ChainConfigurationError("No models available in fallback chain")
        return models

    def _filter_by_requirements(
        self,
        models: list[str],
        requirements: ModelRequirements,
    ) -> list[str]:
        """保留满足全部筛选条件的模型，目录中不存在的模型被剔除"""
        kept: list[str] = []
        for model_id in models:
            descriptor = self.catalog.get_model(model_id)
            if descriptor is not None and descriptor.satisfies(requirements):
                kept.append(model_id)
        return kept

    def _prefer_capable_models(self, models: list[str]) -> list[str]:
        """推理模型优先，其次成本档位降序；目录外模型排最后"""

        def key(model_id: str) -> tuple[int, int]:
            descriptor = self.catalog.get_model(model_id)
            if descriptor is None:
                return (1, 0)
            reasoning = Capability.REASONING in descriptor.capabilities
            return (0 if reasoning else 1, -COST_TIER_RANK[descriptor.cost_tier])

        return sorted(models, key=key)

    def _track_usage(
        self,
        model_id: str,
        response_time_ms: float,
        success: bool,
        result: OperationResult | None = None,
        error_type: str | None = None,
    ) -> None:
        """上报用量，operation 未提供 usage 时使用默认估算"""
        input_tokens = DEFAULT_INPUT_TOKENS
        output_tokens = DEFAULT_OUTPUT_TOKENS
        request_type = RequestKind.TEXT

        if result is not None:
            request_type = result.kind
            if result.usage is not None:
                input_tokens = result.usage.prompt_tokens
                output_tokens = result.usage.completion_tokens

        self.cost_tracker.track_usage(
            model_id=model_id,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            response_time_ms=response_time_ms,
            success=success,
            error_type=error_type,
            request_type=request_type,
        )
