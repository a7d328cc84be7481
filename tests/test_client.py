"""GatewayModelClient 单元测试

Mock litellm.acompletion()，验证 complete() 返回 ModelCallResult、
底层异常转换为带 trigger 的 ModelCallError、health_check() 返回 bool。
"""

from unittest.mock import MagicMock, patch

import httpx
import litellm
import pytest
from modelrelay.routing.client import GatewayModelClient, create_model_handle
from modelrelay.routing.config import RoutingConfig
from modelrelay.routing.echo_adapter import EchoModelClient
from modelrelay.routing.exceptions import (
    AttemptTimeoutError,
    ModelUnavailableError,
    QuotaExceededError,
    RateLimitedError,
    UnauthorizedError,
    UnknownModelError,
)
from modelrelay.routing.models import FallbackTrigger, ModelCallResult, RequestKind
from pydantic import SecretStr


@pytest.fixture
def client():
    """创建 GatewayModelClient 实例"""
    return GatewayModelClient(
        model_id="openai/gpt-4o",
        proxy_base_url="http://localhost:4000/",
        proxy_api_key="sk-test",
        timeout_s=30,
    )


def _make_mock_litellm_response(
    content: str = "Hello!",
    model: str = "gpt-4o",
    prompt_tokens: int = 10,
    completion_tokens: int = 20,
    total_tokens: int = 30,
):
    """构造 Mock LiteLLM acompletion 返回"""
    response = MagicMock()
    response.model = model

    choice = MagicMock()
    choice.message.content = content
    response.choices = [choice]

    usage = MagicMock()
    usage.prompt_tokens = prompt_tokens
    usage.completion_tokens = completion_tokens
    usage.total_tokens = total_tokens
    response.usage = usage

    response._hidden_params = {"custom_llm_provider": "openai"}
    return response


_MESSAGES = [{"role": "user", "content": "test"}]


class TestGatewayModelClientComplete:
    """complete() 方法测试"""

    @patch("modelrelay.routing.client.acompletion")
    async def test_successful_call(self, mock_acompletion, client):
        """成功调用返回完整 ModelCallResult"""
        mock_acompletion.return_value = _make_mock_litellm_response()

        result = await client.complete(messages=_MESSAGES)

        assert isinstance(result, ModelCallResult)
        assert result.content == "Hello!"
        assert result.model_id == "openai/gpt-4o"
        assert result.model_name == "gpt-4o"
        assert result.provider == "openai"
        assert result.duration_ms >= 0
        assert result.token_usage.total_tokens == 30

    @patch("modelrelay.routing.client.acompletion")
    async def test_call_kwargs(self, mock_acompletion, client):
        """模型 ID、Proxy 地址与密钥传递给 litellm"""
        mock_acompletion.return_value = _make_mock_litellm_response()

        await client.complete(messages=_MESSAGES, max_tokens=64, top_p=0.5)

        kwargs = mock_acompletion.call_args.kwargs
        assert kwargs["model"] == "openai/gpt-4o"
        assert kwargs["api_base"] == "http://localhost:4000"
        assert kwargs["api_key"] == "sk-test"
        assert kwargs["timeout"] == 30
        assert kwargs["max_tokens"] == 64
        assert kwargs["top_p"] == 0.5

    @patch("modelrelay.routing.client.acompletion")
    async def test_max_tokens_omitted_by_default(self, mock_acompletion, client):
        mock_acompletion.return_value = _make_mock_litellm_response()

        await client.complete(messages=_MESSAGES)

        assert "max_tokens" not in mock_acompletion.call_args.kwargs

    @patch("modelrelay.routing.client.acompletion")
    async def test_none_content_becomes_empty(self, mock_acompletion, client):
        mock_acompletion.return_value = _make_mock_litellm_response(content=None)

        result = await client.complete(messages=_MESSAGES)

        assert result.content == ""

    @patch("modelrelay.routing.client.acompletion")
    async def test_to_operation_result(self, mock_acompletion, client):
        """结果包装为 OperationResult 时携带 token 使用"""
        mock_acompletion.return_value = _make_mock_litellm_response()

        result = await client.complete(messages=_MESSAGES)
        tagged = result.to_operation_result(RequestKind.VISION)

        assert tagged.data is result
        assert tagged.kind is RequestKind.VISION
        assert tagged.usage.prompt_tokens == 10


class TestErrorWrapping:
    """底层异常 -> ModelCallError 转换测试"""

    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (ConnectionError("Connection refused"), ModelUnavailableError),
            (TimeoutError("timeout"), AttemptTimeoutError),
            (httpx.ConnectError("refused"), ModelUnavailableError),
            (RuntimeError("something odd"), UnknownModelError),
            (
                litellm.RateLimitError(
                    message="Too many requests", llm_provider="openai", model="gpt-4o"
                ),
                RateLimitedError,
            ),
            (
                litellm.RateLimitError(
                    message="You exceeded your current quota",
                    llm_provider="openai",
                    model="gpt-4o",
                ),
                QuotaExceededError,
            ),
            (
                litellm.AuthenticationError(
                    message="bad key", llm_provider="openai", model="gpt-4o"
                ),
                UnauthorizedError,
            ),
            (
                litellm.Timeout(message="read timeout", model="gpt-4o", llm_provider="openai"),
                AttemptTimeoutError,
            ),
        ],
    )
    @patch("modelrelay.routing.client.acompletion")
    async def test_wrapped_error_type(self, mock_acompletion, client, error, expected):
        mock_acompletion.side_effect = error

        with pytest.raises(expected) as exc_info:
            await client.complete(messages=_MESSAGES)

        assert exc_info.value.model_id == "openai/gpt-4o"
        assert exc_info.value.__cause__ is error
        assert type(error).__name__ in str(exc_info.value)

    @patch("modelrelay.routing.client.acompletion")
    async def test_non_retryable_trigger(self, mock_acompletion, client):
        mock_acompletion.side_effect = ConnectionError("Connection refused")

        with pytest.raises(ModelUnavailableError) as exc_info:
            await client.complete(messages=_MESSAGES)

        assert exc_info.value.trigger is FallbackTrigger.MODEL_UNAVAILABLE


class TestGatewayModelClientHealthCheck:
    """health_check() 方法测试"""

    @patch("httpx.AsyncClient.get")
    async def test_healthy_proxy(self, mock_get, client):
        mock_response = MagicMock()
        mock_response.status_code = 200
        mock_get.return_value = mock_response

        assert await client.health_check() is True
        assert mock_get.call_args.args[0] == "http://localhost:4000/health/liveliness"

    @patch("httpx.AsyncClient.get")
    async def test_unreachable_proxy(self, mock_get, client):
        """Proxy 不可达时返回 False"""
        mock_get.side_effect = httpx.ConnectError("Connection refused")

        assert await client.health_check() is False

    @patch("httpx.AsyncClient.get")
    async def test_server_error(self, mock_get, client):
        mock_response = MagicMock()
        mock_response.status_code = 500
        mock_get.return_value = mock_response

        assert await client.health_check() is False


class TestCreateModelHandle:
    """create_model_handle() 测试"""

    def test_echo_mode(self):
        handle = create_model_handle("openai/gpt-4o", RoutingConfig(llm_mode="echo"))
        assert isinstance(handle, EchoModelClient)
        assert handle.model_id == "openai/gpt-4o"

    def test_litellm_mode(self):
        config = RoutingConfig(
            proxy_base_url="http://proxy:9000",
            proxy_api_key=SecretStr("sk-proxy"),
            timeout_ms=5000,
        )

        handle = create_model_handle("openai/gpt-4o", config)

        assert isinstance(handle, GatewayModelClient)
        assert handle.model_id == "openai/gpt-4o"
        assert handle._proxy_base_url == "http://proxy:9000"
        assert handle._proxy_api_key == "sk-proxy"
        assert handle._timeout_s == 5
