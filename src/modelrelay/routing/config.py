"""RoutingConfig -- 路由配置加载

从环境变量加载配置，不硬编码 provider/模型名。
"""

import os
from typing import Literal

import structlog
from pydantic import BaseModel, Field, SecretStr

from .models import RetryPolicy

log = structlog.get_logger()


class RoutingConfig(BaseModel):
    """路由配置 -- 从环境变量加载

    环境变量:
        LITELLM_PROXY_URL: Proxy 地址（默认 http://localhost:4000）
        LITELLM_PROXY_KEY: Proxy 访问密钥
        MODELRELAY_LLM_MODE: 模型 handle 模式（litellm/echo）
        MODELRELAY_RETRY_ATTEMPTS: 单模型最大尝试次数（默认 3）
        MODELRELAY_TIMEOUT_MS: 单次尝试超时（毫秒，默认 30000）
        MODELRELAY_RETRY_BASE_DELAY_MS: 退避基础延迟（默认 1000）
        MODELRELAY_RETRY_MAX_DELAY_MS: 退避延迟上限（默认 16000）
        MODELRELAY_RETRY_JITTER: 是否启用抖动（默认 true）
    """

    proxy_base_url: str = Field(
        default="http://localhost:4000",
        description="LiteLLM Proxy 基础 URL",
    )
    proxy_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="Proxy 访问密钥（不是 LLM provider API key）",
    )
    llm_mode: Literal["litellm", "echo"] = Field(
        default="litellm",
        description="模型 handle 模式：litellm / echo",
    )
    retry_attempts: int = Field(default=3, ge=1, description="单模型最大尝试次数")
    timeout_ms: int = Field(default=30000, ge=1, description="单次尝试超时（毫秒）")
    retry_base_delay_ms: int = Field(default=1000, ge=0, description="退避基础延迟（毫秒）")
    retry_max_delay_ms: int = Field(default=16000, ge=0, description="退避延迟上限（毫秒）")
    retry_jitter: bool = Field(default=True, description="是否叠加随机抖动")

    def retry_policy(self) -> RetryPolicy:
        """构建 RetryExecutor 使用的重试策略"""
        return RetryPolicy(
            max_attempts=self.retry_attempts,
            base_delay_ms=self.retry_base_delay_ms,
            max_delay_ms=self.retry_max_delay_ms,
            jitter=self.retry_jitter,
            timeout_ms=self.timeout_ms,
        )


# 整数型环境变量 -> 字段名
_INT_ENV_FIELDS = {
    "MODELRELAY_RETRY_ATTEMPTS": "retry_attempts",
    "MODELRELAY_TIMEOUT_MS": "timeout_ms",
    "MODELRELAY_RETRY_BASE_DELAY_MS": "retry_base_delay_ms",
    "MODELRELAY_RETRY_MAX_DELAY_MS": "retry_max_delay_ms",
}


def load_routing_config() -> RoutingConfig:
    """从环境变量加载路由配置

    无法解析的数值型环境变量记录 warning 并使用默认值，不阻塞启动。

    Returns:
        RoutingConfig 实例
    """
    kwargs: dict = {}

    if val := os.environ.get("LITELLM_PROXY_URL"):
        kwargs["proxy_base_url"] = val

    if val := os.environ.get("LITELLM_PROXY_KEY"):
        kwargs["proxy_api_key"] = SecretStr(val)

    if val := os.environ.get("MODELRELAY_LLM_MODE"):
        kwargs["llm_mode"] = val

    for env_var, field in _INT_ENV_FIELDS.items():
        if val := os.environ.get(env_var):
            try:
                kwargs[field] = int(val)
            except ValueError:
                log.warning(
                    "invalid_config_value",
                    env_var=env_var,
                    value=val,
                    fallback=RoutingConfig.model_fields[field].default,
                )

    if val := os.environ.get("MODELRELAY_RETRY_JITTER"):
        kwargs["retry_jitter"] = val.strip().lower() in ("1", "true", "yes", "on")

    return RoutingConfig(**kwargs)
