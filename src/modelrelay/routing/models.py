"""数据模型 -- 模型目录、降级链、性能统计、尝试记录与调用结果

所有实体统一使用 pydantic 定义；目录类实体（ModelDescriptor / ChainDescriptor）不可变。
"""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CostTier(StrEnum):
    """成本档位"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# 成本档位排序权重（高成本优先时使用）
COST_TIER_RANK: dict[CostTier, int] = {
    CostTier.LOW: 1,
    CostTier.MEDIUM: 2,
    CostTier.HIGH: 3,
}


class Capability(StrEnum):
    """模型能力"""

    TEXT = "text"
    VISION = "vision"
    FUNCTION_CALLING = "function_calling"
    REASONING = "reasoning"


class ChainUseCase(StrEnum):
    """降级链用途"""

    GENERAL = "general"
    REASONING = "reasoning"
    VISION = "vision"
    BUDGET = "budget"


class FallbackTrigger(StrEnum):
    """单次尝试失败的归类原因"""

    RATE_LIMIT = "rate_limit"
    MODEL_UNAVAILABLE = "model_unavailable"
    TIMEOUT = "timeout"
    AUTHENTICATION_ERROR = "authentication_error"
    QUOTA_EXCEEDED = "quota_exceeded"
    UNKNOWN_ERROR = "unknown_error"


# 不在同一模型上重试的 trigger
NON_RETRYABLE_TRIGGERS: frozenset[FallbackTrigger] = frozenset(
    {FallbackTrigger.AUTHENTICATION_ERROR, FallbackTrigger.MODEL_UNAVAILABLE}
)


class RequestKind(StrEnum):
    """请求类型（用于成本归因）"""

    TEXT = "text"
    VISION = "vision"
    FUNCTION_CALL = "function_call"
    REASONING = "reasoning"


class ModelDescriptor(BaseModel):
    """后端模型描述，加载后不可变"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="模型 ID（如 openai/gpt-4o）")
    provider: str = Field(description="provider 名称")
    name: str = Field(description="展示名称")
    description: str = Field(default="", description="模型说明")
    cost_tier: CostTier = Field(description="成本档位")
    capabilities: frozenset[Capability] = Field(
        default=frozenset({Capability.TEXT}),
        description="能力集合",
    )
    max_tokens: int | None = Field(default=None, ge=1, description="上下文 token 上限")

    def has_capabilities(self, required: list[Capability] | None) -> bool:
        """是否具备全部所需能力"""
        return all(cap in self.capabilities for cap in required or [])

    def satisfies(self, requirements: "ModelRequirements") -> bool:
        """是否满足全部筛选条件（能力、成本档位、token 上限、provider）

        max_tokens 未声明的模型视为不受 token 上限约束。
        """
        if not self.has_capabilities(requirements.capabilities):
            return False
        if requirements.cost_tier is not None and self.cost_tier != requirements.cost_tier:
            return False
        if (
            requirements.max_tokens is not None
            and self.max_tokens is not None
            and self.max_tokens < requirements.max_tokens
        ):
            return False
        return requirements.provider is None or self.provider == requirements.provider


class ChainDescriptor(BaseModel):
    """命名降级链，models 顺序即动态重排前的默认优先级"""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="链名称（如 premium）")
    description: str = Field(default="", description="链用途描述")
    models: tuple[str, ...] = Field(description="有序模型 ID 列表")
    use_case: ChainUseCase = Field(default=ChainUseCase.GENERAL, description="用途")

    @field_validator("models")
    @classmethod
    def _require_models(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value:
            raise ValueError("降级链至少包含一个模型")
        return value


class ModelRequirements(BaseModel):
    """模型筛选条件，所有字段可选，取交集"""

    capabilities: list[Capability] | None = None
    cost_tier: CostTier | None = None
    max_tokens: int | None = Field(default=None, ge=1)
    provider: str | None = None


class RoutingContext(BaseModel):
    """execute() 的可选上下文，只影响排序和能力过滤"""

    query: str | None = None
    requirements: ModelRequirements | None = None


class RetryPolicy(BaseModel):
    """单模型重试策略"""

    max_attempts: int = Field(default=3, ge=1, description="单模型最大尝试次数")
    base_delay_ms: float = Field(default=1000, ge=0, description="退避基础延迟")
    max_delay_ms: float = Field(default=16000, ge=0, description="退避延迟上限")
    exponential_base: float = Field(default=2.0, ge=1.0, description="指数底数")
    jitter: bool = Field(default=True, description="是否叠加 [0, 1000ms) 随机抖动")
    timeout_ms: float = Field(default=30000, gt=0, description="单次尝试超时")


class ComplexityFactors(BaseModel):
    """复杂度评分的组成因子"""

    length: float = Field(ge=0.0, le=1.0)
    reasoning: bool = False
    multi_step: bool = False
    technical: bool = False


class ComplexityScore(BaseModel):
    """查询复杂度评分"""

    value: float = Field(ge=0.0, le=1.0)
    factors: ComplexityFactors


class PerformanceMetrics(BaseModel):
    """单模型的平滑性能统计"""

    model_id: str
    total_requests: int = Field(default=0, ge=0)
    total_errors: int = Field(default=0, ge=0)
    success_rate: float = 0.0
    error_rate: float = 0.0
    average_response_time_ms: float = Field(default=0.0, description="响应时间 EMA")
    last_used: datetime = Field(default_factory=lambda: datetime.now(UTC))


class AttemptRecord(BaseModel):
    """单个模型的失败记录，仅在一次 execute() 内有效"""

    model_id: str
    attempt_index: int = Field(ge=0, description="在有序链中的位置（从 0 开始）")
    trigger: FallbackTrigger
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    response_time_ms: float = Field(default=0.0, ge=0.0)
    error: str = Field(default="", description="底层错误信息")


class TokenUsage(BaseModel):
    """Token 使用统计

    key 命名对齐 OpenAI/LiteLLM：prompt_tokens / completion_tokens / total_tokens
    """

    prompt_tokens: int = Field(default=0, ge=0, description="输入 token 数")
    completion_tokens: int = Field(default=0, ge=0, description="输出 token 数")
    total_tokens: int = Field(default=0, ge=0, description="总 token 数")


class OperationResult(BaseModel):
    """operation 回调返回的带标签结果

    kind 与 usage 由调用方显式给出；usage 为 None 时成本统计使用默认估算值。
    """

    data: Any = None
    kind: RequestKind = RequestKind.TEXT
    usage: TokenUsage | None = None


class ModelCallResult(BaseModel):
    """模型 handle 的单次调用结果"""

    content: str = Field(description="响应文本")
    model_id: str = Field(description="请求的模型 ID")
    model_name: str = Field(default="", description="实际响应的模型名称")
    provider: str = Field(default="", description="实际 provider")
    duration_ms: int = Field(ge=0, description="端到端耗时（毫秒）")
    token_usage: TokenUsage = Field(default_factory=TokenUsage)

    def to_operation_result(self, kind: RequestKind = RequestKind.TEXT) -> OperationResult:
        """包装为 OperationResult，token 使用随结果上报"""
        return OperationResult(data=self, kind=kind, usage=self.token_usage)


class FallbackResult(BaseModel):
    """execute() 成功路径的返回值"""

    success: bool
    data: Any = None
    final_model: str
    attempts: list[AttemptRecord] = Field(default_factory=list)
    total_response_time_ms: float = Field(default=0.0, ge=0.0)
    fallbacks_used: int = Field(default=0, ge=0)


class UsageEvent(BaseModel):
    """CostTracker 账本条目"""

    id: str
    model_id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
    cost_usd: float = Field(default=0.0, ge=0.0)
    response_time_ms: float = Field(default=0.0, ge=0.0)
    success: bool = True
    error_type: str | None = None
    request_type: RequestKind = RequestKind.TEXT
