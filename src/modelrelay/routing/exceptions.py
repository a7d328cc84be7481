"""路由异常体系

单次尝试错误（ModelCallError 子类）携带 trigger，可通过重试或降级恢复；
调用级错误（ChainConfigurationError / AllModelsExhaustedError）直接抛给调用方。
"""

from .models import FallbackTrigger


class RoutingError(Exception):
    """路由包基础异常"""

    def __init__(self, message: str, recoverable: bool = True) -> None:
        """
        Args:
            message: 错误描述
            recoverable: 是否可通过重试或降级恢复
        """
        super().__init__(message)
        self.recoverable = recoverable


class ModelCallError(RoutingError):
    """单次模型调用失败

    由 operation 层（模型 handle）构造，trigger 决定 RetryExecutor 的重试策略。
    """

    trigger: FallbackTrigger = FallbackTrigger.UNKNOWN_ERROR

    def __init__(self, message: str, model_id: str = "") -> None:
        super().__init__(message, recoverable=True)
        self.model_id = model_id


class RateLimitedError(ModelCallError):
    """触发限流（429 / too many requests）"""

    trigger = FallbackTrigger.RATE_LIMIT


class ModelUnavailableError(ModelCallError):
    """模型不可用或不存在，不在同一模型上重试"""

    trigger = FallbackTrigger.MODEL_UNAVAILABLE


class AttemptTimeoutError(ModelCallError):
    """单次尝试超时"""

    trigger = FallbackTrigger.TIMEOUT


class UnauthorizedError(ModelCallError):
    """认证失败，不在同一模型上重试"""

    trigger = FallbackTrigger.AUTHENTICATION_ERROR


class QuotaExceededError(ModelCallError):
    """配额耗尽"""

    trigger = FallbackTrigger.QUOTA_EXCEEDED


class UnknownModelError(ModelCallError):
    """未归类的模型调用错误"""

    trigger = FallbackTrigger.UNKNOWN_ERROR


class ChainConfigurationError(RoutingError):
    """降级链配置错误（空链、未知链名、引用不存在的模型）"""

    error_type = "configuration_error"

    def __init__(self, message: str) -> None:
        super().__init__(message, recoverable=False)


class AllModelsExhaustedError(RoutingError):
    """降级链全部失败

    只携带最后一次错误；逐次尝试的细节通过日志输出，不随异常返回。
    """

    error_type = "all_models_exhausted"

    def __init__(self, last_error: Exception, models_tried: int) -> None:
        super().__init__(
            f"All fallback models failed. Last error: {last_error}",
            recoverable=False,
        )
        self.last_error = last_error
        self.models_tried = models_tried
