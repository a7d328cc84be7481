"""modelrelay routing -- 多模型重试与降级路由

包公开接口导出。
"""

# 目录与降级链
from .catalog import DEFAULT_MODEL_ID, ChainRegistry, ModelCatalog

# 模型 handle
from .client import GatewayModelClient, create_model_handle

# 核心组件
from .complexity import QueryComplexityAnalyzer

# 配置
from .config import RoutingConfig, load_routing_config

# 外部协作方
from .cost import BudgetAlert, BudgetConfig, CostTracker, UsageSink
from .debug import DebugLogEntry, DebugManager
from .echo_adapter import EchoModelClient

# 异常
from .exceptions import (
    AllModelsExhaustedError,
    AttemptTimeoutError,
    ChainConfigurationError,
    ModelCallError,
    ModelUnavailableError,
    QuotaExceededError,
    RateLimitedError,
    RoutingError,
    UnauthorizedError,
    UnknownModelError,
)
from .fallback import FallbackOrchestrator
from .logging_config import setup_logging

# 数据模型
from .models import (
    AttemptRecord,
    Capability,
    ChainDescriptor,
    ChainUseCase,
    ComplexityScore,
    CostTier,
    FallbackResult,
    FallbackTrigger,
    ModelCallResult,
    ModelDescriptor,
    ModelRequirements,
    OperationResult,
    PerformanceMetrics,
    RequestKind,
    RetryPolicy,
    RoutingContext,
    TokenUsage,
    UsageEvent,
)
from .performance import PerformanceTracker
from .retry import ErrorClassifier, RetryExecutor, classify_error

__all__ = [
    "AttemptRecord",
    "Capability",
    "ChainDescriptor",
    "ChainUseCase",
    "ComplexityScore",
    "CostTier",
    "FallbackResult",
    "FallbackTrigger",
    "ModelCallResult",
    "ModelDescriptor",
    "ModelRequirements",
    "OperationResult",
    "PerformanceMetrics",
    "RequestKind",
    "RetryPolicy",
    "RoutingContext",
    "TokenUsage",
    "UsageEvent",
    "DEFAULT_MODEL_ID",
    "ModelCatalog",
    "ChainRegistry",
    "QueryComplexityAnalyzer",
    "PerformanceTracker",
    "RetryExecutor",
    "ErrorClassifier",
    "classify_error",
    "FallbackOrchestrator",
    "GatewayModelClient",
    "EchoModelClient",
    "create_model_handle",
    "CostTracker",
    "UsageSink",
    "BudgetConfig",
    "BudgetAlert",
    "DebugManager",
    "DebugLogEntry",
    "RoutingConfig",
    "load_routing_config",
    "setup_logging",
    "RoutingError",
    "ModelCallError",
    "RateLimitedError",
    "ModelUnavailableError",
    "AttemptTimeoutError",
    "UnauthorizedError",
    "QuotaExceededError",
    "UnknownModelError",
    "ChainConfigurationError",
    "AllModelsExhaustedError",
]
