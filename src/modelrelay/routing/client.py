"""GatewayModelClient -- 绑定单个模型 ID 的 LiteLLM Proxy handle

通过 litellm.acompletion() 调用 Proxy，把底层异常转换为带 trigger 的 ModelCallError，
供 RetryExecutor 决定是否在同一模型上重试。
"""

import time

import httpx
import litellm
import structlog
from litellm import acompletion

from .config import RoutingConfig
from .echo_adapter import EchoModelClient
from .exceptions import (
    AttemptTimeoutError,
    ModelCallError,
    ModelUnavailableError,
    QuotaExceededError,
    RateLimitedError,
    UnauthorizedError,
    UnknownModelError,
)
from .models import ModelCallResult, TokenUsage

log = structlog.get_logger()

# 健康检查超时（硬编码，应快速响应）
HEALTH_CHECK_TIMEOUT_S = 5

# 超时类异常
_TIMEOUT_ERROR_TYPES = (
    TimeoutError,
    httpx.TimeoutException,
    litellm.Timeout,
)

# 连接类异常（Proxy 或上游不可达）
_CONNECTION_ERROR_TYPES = (
    ConnectionError,
    httpx.ConnectError,
    litellm.APIConnectionError,
    litellm.ServiceUnavailableError,
    litellm.NotFoundError,
)


def _wrap_error(e: Exception, model_id: str) -> ModelCallError:
    """将 LiteLLM / httpx 异常转换为带 trigger 的 ModelCallError"""
    message = f"{type(e).__name__}: {e}"
    if isinstance(e, litellm.RateLimitError):
        if "quota" in str(e).lower():
            return QuotaExceededError(message, model_id=model_id)
        return RateLimitedError(message, model_id=model_id)
    if isinstance(e, litellm.AuthenticationError | litellm.PermissionDeniedError):
        return UnauthorizedError(message, model_id=model_id)
    # litellm.Timeout 同时继承 APIConnectionError，需先判断
    if isinstance(e, _TIMEOUT_ERROR_TYPES):
        return AttemptTimeoutError(message, model_id=model_id)
    if isinstance(e, _CONNECTION_ERROR_TYPES):
        return ModelUnavailableError(message, model_id=model_id)
    return UnknownModelError(message, model_id=model_id)


class GatewayModelClient:
    """LiteLLM Proxy 模型 handle

    每个实例绑定一个模型 ID，由 create_model_handle() 按尝试创建。
    """

    def __init__(
        self,
        model_id: str,
        proxy_base_url: str = "http://localhost:4000",
        proxy_api_key: str = "",
        timeout_s: float = 30,
    ) -> None:
        """
        Args:
            model_id: 模型 ID（Proxy model_name，如 openai/gpt-4o）
            proxy_base_url: Proxy 基础 URL
            proxy_api_key: Proxy 访问密钥（LITELLM_PROXY_KEY）
            timeout_s: 请求超时（秒）
        """
        self.model_id = model_id
        self._proxy_base_url = proxy_base_url.rstrip("/")
        self._proxy_api_key = proxy_api_key
        self._timeout_s = timeout_s

    async def complete(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs,
    ) -> ModelCallResult:
        """发送 chat completion 请求

        Args:
            messages: 消息列表，格式 [{"role": "user", "content": "..."}]
            temperature: 采样温度
            max_tokens: 最大生成 token 数，None 使用模型默认
            **kwargs: 其他 LiteLLM 支持的参数

        Returns:
            ModelCallResult

        Raises:
            ModelCallError: 调用失败，子类标明失败原因
        """
        start_time = time.monotonic()

        call_kwargs = {
            "model": self.model_id,
            "messages": messages,
            "api_base": self._proxy_base_url,
            "api_key": self._proxy_api_key or "no-key",
            "temperature": temperature,
            "timeout": self._timeout_s,
            **kwargs,
        }
        if max_tokens is not None:
            call_kwargs["max_tokens"] = max_tokens

        log.debug(
            "litellm_call_start",
            model_id=self.model_id,
            message_count=len(messages),
        )

        try:
            response = await acompletion(**call_kwargs)
        except Exception as e:
            duration_ms = int((time.monotonic() - start_time) * 1000)
            wrapped = _wrap_error(e, self.model_id)
            log.error(
                "litellm_call_failed",
                model_id=self.model_id,
                error=str(e),
                error_type=type(e).__name__,
                trigger=wrapped.trigger.value,
                duration_ms=duration_ms,
            )
            raise wrapped from e

        duration_ms = int((time.monotonic() - start_time) * 1000)
        content = response.choices[0].message.content or ""

        usage = getattr(response, "usage", None)
        token_usage = TokenUsage()
        if usage is not None:
            token_usage = TokenUsage(
                prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
                total_tokens=getattr(usage, "total_tokens", 0) or 0,
            )

        hidden = getattr(response, "_hidden_params", None)
        provider = ""
        if isinstance(hidden, dict):
            provider = hidden.get("custom_llm_provider", "") or ""

        log.info(
            "litellm_call_completed",
            model_id=self.model_id,
            duration_ms=duration_ms,
            total_tokens=token_usage.total_tokens,
        )

        return ModelCallResult(
            content=content,
            model_id=self.model_id,
            model_name=getattr(response, "model", "") or "",
            provider=provider,
            duration_ms=duration_ms,
            token_usage=token_usage,
        )

    async def health_check(self) -> bool:
        """检查 LiteLLM Proxy 可达性

        发送 GET {proxy_base_url}/health/liveliness 请求。
        此方法不抛出异常，不可达或异常时返回 False。
        """
        url = f"{self._proxy_base_url}/health/liveliness"
        try:
            async with httpx.AsyncClient() as http_client:
                resp = await http_client.get(url, timeout=HEALTH_CHECK_TIMEOUT_S)
                return resp.status_code == 200
        except Exception as e:
            log.debug("health_check_failed", url=url, error=str(e))
            return False


def create_model_handle(
    model_id: str,
    config: RoutingConfig,
) -> GatewayModelClient | EchoModelClient:
    """按配置的 llm_mode 为模型创建 handle"""
    if config.llm_mode == "echo":
        return EchoModelClient(model_id)
    return GatewayModelClient(
        model_id=model_id,
        proxy_base_url=config.proxy_base_url,
        proxy_api_key=config.proxy_api_key.get_secret_value(),
        timeout_s=config.timeout_ms / 1000,
    )
