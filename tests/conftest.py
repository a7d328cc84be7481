"""routing 包测试 fixtures"""

import os

# 使用 litellm 自带的本地价格表，避免导入时访问网络
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")

from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
from modelrelay.routing.catalog import ChainRegistry, ModelCatalog  # noqa: E402
from modelrelay.routing.debug import DebugManager  # noqa: E402
from modelrelay.routing.fallback import FallbackOrchestrator  # noqa: E402
from modelrelay.routing.models import (  # noqa: E402
    Capability,
    CostTier,
    ModelDescriptor,
    RetryPolicy,
)
from modelrelay.routing.retry import RetryExecutor  # noqa: E402


class ScriptedOperation:
    """按模型预设结果的 operation

    script: model_id -> 结果列表，依次消费，最后一个结果重复使用。
    结果为异常实例时抛出，否则作为返回值。
    """

    def __init__(self, script: dict[str, list]) -> None:
        self._script = {model_id: list(outcomes) for model_id, outcomes in script.items()}
        self.calls: list[str] = []
        self.handles: list = []

    async def __call__(self, model_id: str, handle):
        self.calls.append(model_id)
        self.handles.append(handle)
        outcomes = self._script[model_id]
        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def scripted():
    """ScriptedOperation 构造器"""
    return ScriptedOperation


@pytest.fixture
def fast_policy() -> RetryPolicy:
    """无退避、无抖动的重试策略"""
    return RetryPolicy(
        max_attempts=3,
        base_delay_ms=0,
        max_delay_ms=0,
        jitter=False,
        timeout_ms=1000,
    )


@pytest.fixture
def no_sleep() -> AsyncMock:
    """替代 asyncio.sleep，记录退避时长"""
    return AsyncMock()


@pytest.fixture
def test_catalog() -> ModelCatalog:
    """测试用小目录：A/B/C 为普通模型，thinker 支持推理"""

    def _model(model_id: str, tier: CostTier, *extra: Capability) -> ModelDescriptor:
        return ModelDescriptor(
            id=model_id,
            provider="acme",
            name=model_id,
            cost_tier=tier,
            capabilities=frozenset({Capability.TEXT, *extra}),
        )

    return ModelCatalog(
        [
            _model("A", CostTier.MEDIUM),
            _model("B", CostTier.HIGH),
            _model("C", CostTier.LOW),
            _model("thinker", CostTier.LOW, Capability.REASONING),
            _model("seer", CostTier.MEDIUM, Capability.VISION),
        ]
    )


@pytest.fixture
def make_orchestrator(test_catalog, fast_policy, no_sleep):
    """构造使用测试目录、Mock CostTracker 的编排器"""

    def _make(policy: RetryPolicy | None = None, chains: ChainRegistry | None = None):
        return FallbackOrchestrator(
            catalog=test_catalog,
            chains=chains,
            cost_tracker=MagicMock(),
            debug_manager=DebugManager(),
            retry_executor=RetryExecutor(policy or fast_policy, sleep=no_sleep),
            handle_factory=lambda model_id: f"handle:{model_id}",
        )

    return _make
