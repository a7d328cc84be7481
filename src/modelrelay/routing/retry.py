"""RetryExecutor -- 单模型尝试的重试、超时与指数退避

状态流转:
    ATTEMPT -> 成功 -> DONE
    ATTEMPT -> 失败 -> classify(error)
        不可重试（authentication_error / model_unavailable） -> FAIL
        可重试且仍有次数 -> 退避等待 -> ATTEMPT
        可重试但次数耗尽 -> FAIL
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, TypeVar

import structlog

from .exceptions import AttemptTimeoutError, ModelCallError
from .models import NON_RETRYABLE_TRIGGERS, FallbackTrigger, RetryPolicy

log = structlog.get_logger()

T = TypeVar("T")

Operation = Callable[[str, Any], Awaitable[T]]

# 抖动上限（毫秒）
JITTER_MAX_MS = 1000.0

# 文本匹配规则，按优先级排列，先匹配者生效
_MESSAGE_PATTERNS: tuple[tuple[FallbackTrigger, tuple[str, ...]], ...] = (
    (FallbackTrigger.RATE_LIMIT, ("rate limit", "too many requests")),
    (FallbackTrigger.MODEL_UNAVAILABLE, ("unavailable", "not found")),
    (FallbackTrigger.TIMEOUT, ("timeout", "timed out")),
    (FallbackTrigger.AUTHENTICATION_ERROR, ("auth", "unauthorized")),
    (FallbackTrigger.QUOTA_EXCEEDED, ("quota", "limit exceeded")),
)


class ErrorClassifier(Protocol):
    """错误归类接口，可注入替换默认实现"""

    def __call__(self, error: BaseException) -> FallbackTrigger: ...


def classify_error(error: BaseException) -> FallbackTrigger:
    """默认错误归类

    优先级:
        1. ModelCallError 子类 -> 自带 trigger
        2. TimeoutError -> timeout
        3. 错误信息的大小写不敏感子串匹配（未由 operation 层归类的第三方异常）
        4. unknown_error
    """
    if isinstance(error, ModelCallError):
        return error.trigger
    if isinstance(error, TimeoutError):
        return FallbackTrigger.TIMEOUT

    message = str(error).lower()
    for trigger, patterns in _MESSAGE_PATTERNS:
        if any(p in message for p in patterns):
            return trigger
    return FallbackTrigger.UNKNOWN_ERROR


def is_retryable(trigger: FallbackTrigger) -> bool:
    """该 trigger 是否允许在同一模型上重试"""
    return trigger not in NON_RETRYABLE_TRIGGERS


class RetryExecutor:
    """单模型重试执行器

    每次尝试与 timeout_ms 计时器竞争，超时抛 AttemptTimeoutError。
    退避等待使用 asyncio.sleep，只挂起当前任务。
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        classifier: ErrorClassifier = classify_error,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        """
        Args:
            policy: 重试策略，None 时使用默认值
            classifier: 错误归类函数
            sleep: 退避等待函数（秒），测试中可替换
            rng: [0, 1) 随机数源，用于抖动
        """
        self.policy = policy or RetryPolicy()
        self.classifier = classifier
        self._sleep = sleep
        self._rng = rng

    def compute_delay(self, retry_count: int) -> float:
        """计算第 retry_count 次重试前的等待时间（毫秒）

        delay = min(base * exponential_base ** retry_count, max_delay)，
        启用 jitter 时再叠加 [0, 1000) 毫秒随机值。
        """
        policy = self.policy
        try:
            grown = policy.base_delay_ms * policy.exponential_base**retry_count
        except OverflowError:
            # 指数项超出 float 范围，base 非 0 时必然超过上限
            grown = policy.max_delay_ms if policy.base_delay_ms > 0 else 0.0
        delay = min(grown, policy.max_delay_ms)
        if policy.jitter:
            delay += self._rng() * JITTER_MAX_MS
        return delay

    async def run(
        self,
        model_id: str,
        handle: Any,
        operation: Operation[T],
    ) -> T:
        """在单个模型上执行 operation，失败时按策略重试

        Args:
            model_id: 模型 ID
            handle: 模型 handle，原样传给 operation
            operation: async (model_id, handle) -> result

        Returns:
            operation 的返回值

        Raises:
            Exception: 不可重试或重试耗尽时抛出最后一次的底层异常
        """
        max_attempts = self.policy.max_attempts

        # 每次失败 retry 加一，达到 max_attempts - 1 时上抛，循环有界
        retry = 0
        while True:
            try:
                return await self._attempt(model_id, handle, operation)
            except Exception as e:
                trigger = self.classifier(e)

                if not is_retryable(trigger):
                    log.info(
                        "attempt_not_retryable",
                        model_id=model_id,
                        trigger=trigger.value,
                        error=str(e),
                    )
                    raise

                if retry >= max_attempts - 1:
                    log.info(
                        "attempt_retries_exhausted",
                        model_id=model_id,
                        trigger=trigger.value,
                        attempts=retry + 1,
                        error=str(e),
                    )
                    raise

                delay_ms = self.compute_delay(retry)
                log.debug(
                    "attempt_retry_scheduled",
                    model_id=model_id,
                    trigger=trigger.value,
                    retry=retry + 1,
                    delay_ms=round(delay_ms, 1),
                )
                await self._sleep(delay_ms / 1000)
                retry += 1

    async def _attempt(self, model_id: str, handle: Any, operation: Operation[T]) -> T:
        """单次尝试，与超时计时器竞争"""
        timeout_ms = self.policy.timeout_ms
        timer = asyncio.timeout(timeout_ms / 1000)
        try:
            async with timer:
                return await operation(model_id, handle)
        except TimeoutError as e:
            # operation 自身抛出的 TimeoutError 原样上抛
            if not timer.expired():
                raise
            raise AttemptTimeoutError(
                f"Operation timed out after {timeout_ms:g}ms", model_id=model_id
            ) from e
