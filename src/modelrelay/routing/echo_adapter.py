"""EchoModelClient -- 离线模型 handle

llm_mode=echo 时由 create_model_handle() 创建，接口与 GatewayModelClient 一致，不访问网络。
可预置失败序列，用于在离线环境下演练重试与降级。
"""

import asyncio
import time
from collections.abc import Iterable
from typing import Any

from .exceptions import ModelCallError
from .models import ModelCallResult, TokenUsage

# 无可回声内容时的占位文本
EMPTY_CONTENT = "(empty)"


def _content_text(content: Any) -> str:
    """取出消息 content 中的文本

    content 可以是字符串，也可以是 OpenAI 多模态格式的 part 列表
    （[{"type": "text", "text": ...}, {"type": "image_url", ...}]），后者只拼接 text part。
    """
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        texts = [
            part.get("text", "")
            for part in content
            if isinstance(part, dict) and part.get("type") == "text"
        ]
        return " ".join(t for t in texts if t)
    return ""


def _estimate_tokens(text: str) -> int:
    return len(text.split())


class EchoModelClient:
    """Echo 模型 handle

    complete(messages) 返回 "Echo: {最后一条 user content}"。
    failures 中的异常按顺序在前几次调用时抛出，耗尽后正常回声。
    """

    def __init__(
        self,
        model_id: str = "echo",
        latency_s: float = 0.01,
        failures: Iterable[ModelCallError] = (),
    ) -> None:
        """
        Args:
            model_id: 绑定的模型 ID
            latency_s: 模拟延迟（秒）
            failures: 预置失败序列
        """
        self.model_id = model_id
        self._latency_s = latency_s
        self._failures = list(failures)
        self.call_count = 0

    async def complete(
        self,
        messages: list[dict[str, Any]],
        **kwargs,
    ) -> ModelCallResult:
        """回声最后一条 user message

        Args:
            messages: 消息列表
            **kwargs: 与 GatewayModelClient 对齐，忽略

        Returns:
            ModelCallResult，provider="echo"，token 按空白切分的词数估算

        Raises:
            ModelCallError: 预置失败序列未耗尽时
        """
        start_time = time.monotonic()
        self.call_count += 1

        await asyncio.sleep(self._latency_s)

        if self._failures:
            raise self._failures.pop(0)

        user_content = self._extract_last_user_content(messages)
        response_text = f"Echo: {user_content}"
        prompt_tokens = _estimate_tokens(user_content)
        completion_tokens = _estimate_tokens(response_text)

        return ModelCallResult(
            content=response_text,
            model_id=self.model_id,
            model_name="echo",
            provider="echo",
            duration_ms=int((time.monotonic() - start_time) * 1000),
            token_usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
        )

    async def health_check(self) -> bool:
        return True

    @staticmethod
    def _extract_last_user_content(messages: list[dict[str, Any]]) -> str:
        """最后一条 user message 的文本；没有 user 消息时取最后一条消息"""
        for msg in reversed(messages):
            if msg.get("role") == "user":
                return _content_text(msg.get("content", ""))

        if messages:
            return _content_text(messages[-1].get("content")) or EMPTY_CONTENT
        return EMPTY_CONTENT
