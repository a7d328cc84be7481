"""ModelCatalog / ChainRegistry -- 模型目录与降级链注册表

ModelCatalog 管理模型描述（能力、成本档位、token 上限）；
ChainRegistry 管理命名降级链（premium / reasoning / vision / budget）。
运行期间只读，链的增删只通过 add_chain() / remove_chain() 管理接口完成。
"""

import structlog

from .exceptions import ChainConfigurationError
from .models import (
    Capability,
    ChainDescriptor,
    ChainUseCase,
    CostTier,
    ModelDescriptor,
    ModelRequirements,
)

log = structlog.get_logger()

# 没有候选模型满足条件时返回的默认模型
DEFAULT_MODEL_ID = "openai/gpt-4o-mini"

# 相对成本评分（1-10，越高越贵）
_RELATIVE_COST: dict[CostTier, int] = {
    CostTier.LOW: 2,
    CostTier.MEDIUM: 5,
    CostTier.HIGH: 8,
}
_UNKNOWN_RELATIVE_COST = 5

_FULL = frozenset(
    {
        Capability.TEXT,
        Capability.VISION,
        Capability.FUNCTION_CALLING,
        Capability.REASONING,
    }
)


def _get_default_models() -> list[ModelDescriptor]:
    """获取默认模型目录"""
    return [
        ModelDescriptor(
            id="xai/grok-3-beta",
            provider="xai",
            name="Grok 3 Beta",
            description="xAI 旗舰推理模型",
            cost_tier=CostTier.HIGH,
            capabilities=_FULL,
            max_tokens=128000,
        ),
        ModelDescriptor(
            id="openai/gpt-4o",
            provider="openai",
            name="GPT-4o",
            description="OpenAI 多模态旗舰模型",
            cost_tier=CostTier.HIGH,
            capabilities=_FULL,
            max_tokens=128000,
        ),
        ModelDescriptor(
            id="anthropic/claude-3-7-sonnet-20250219",
            provider="anthropic",
            name="Claude 3.7 Sonnet",
            description="Anthropic 均衡模型",
            cost_tier=CostTier.HIGH,
            capabilities=_FULL,
            max_tokens=200000,
        ),
        ModelDescriptor(
            id="openai/gpt-4o-mini",
            provider="openai",
            name="GPT-4o Mini",
            description="OpenAI 高性价比模型",
            cost_tier=CostTier.MEDIUM,
            capabilities=frozenset(
                {Capability.TEXT, Capability.VISION, Capability.FUNCTION_CALLING}
            ),
            max_tokens=128000,
        ),
        ModelDescriptor(
            id="anthropic/claude-3-5-haiku-20241022",
            provider="anthropic",
            name="Claude 3.5 Haiku",
            description="Anthropic 低延迟模型",
            cost_tier=CostTier.MEDIUM,
            capabilities=frozenset({Capability.TEXT, Capability.FUNCTION_CALLING}),
            max_tokens=200000,
        ),
        ModelDescriptor(
            id="deepseek/deepseek-r1",
            provider="deepseek",
            name="DeepSeek R1",
            description="低成本推理模型",
            cost_tier=CostTier.LOW,
            capabilities=frozenset(
                {Capability.TEXT, Capability.FUNCTION_CALLING, Capability.REASONING}
            ),
            max_tokens=64000,
        ),
    ]


def _get_default_chains() -> list[ChainDescriptor]:
    """获取默认降级链"""
    return [
        ChainDescriptor(
            name="premium",
            description="最高质量模型优先",
            models=(
                "xai/grok-3-beta",
                "anthropic/claude-3-7-sonnet-20250219",
                "openai/gpt-4o",
                "openai/gpt-4o-mini",
            ),
            use_case=ChainUseCase.GENERAL,
        ),
        ChainDescriptor(
            name="reasoning",
            description="复杂推理任务",
            models=(
                "xai/grok-3-beta",
                "deepseek/deepseek-r1",
                "anthropic/claude-3-7-sonnet-20250219",
                "openai/gpt-4o-mini",
            ),
            use_case=ChainUseCase.REASONING,
        ),
        ChainDescriptor(
            name="vision",
            description="图像等多模态任务",
            models=(
                "anthropic/claude-3-7-sonnet-20250219",
                "openai/gpt-4o",
                "openai/gpt-4o-mini",
            ),
            use_case=ChainUseCase.VISION,
        ),
        ChainDescriptor(
            name="budget",
            description="成本优先",
            models=(
                "deepseek/deepseek-r1",
                "anthropic/claude-3-5-haiku-20241022",
                "openai/gpt-4o-mini",
            ),
            use_case=ChainUseCase.BUDGET,
        ),
    ]


class ModelCatalog:
    """模型目录 -- 按 ID 查询模型描述，按条件筛选模型

    迭代顺序即注册顺序，select_optimal_model() 依赖此顺序。
    """

    def __init__(self, models: list[ModelDescriptor] | None = None) -> None:
        """初始化模型目录

        Args:
            models: 模型描述列表，None 时使用默认目录
        """
        model_list = models if models is not None else _get_default_models()
        # 按 id 建立索引，去重（后注册的覆盖先注册的）
        self._models: dict[str, ModelDescriptor] = {}
        for model in model_list:
            self._models[model.id] = model

    def __contains__(self, model_id: str) -> bool:
        return model_id in self._models

    def get_model(self, model_id: str) -> ModelDescriptor | None:
        """按 ID 查询模型描述"""
        return self._models.get(model_id)

    def list_all(self) -> list[ModelDescriptor]:
        """按注册顺序列出所有模型"""
        return list(self._models.values())

    def get_models_by_capability(self, capability: Capability) -> list[str]:
        """查询具备某项能力的模型 ID"""
        return [m.id for m in self._models.values() if capability in m.capabilities]

    def get_models_by_cost_tier(self, cost_tier: CostTier) -> list[str]:
        """查询某成本档位的模型 ID"""
        return [m.id for m in self._models.values() if m.cost_tier == cost_tier]

    def select_optimal_model(self, requirements: ModelRequirements) -> str:
        """按条件选择模型

        条件之间取交集，返回第一个满足全部条件的模型（注册顺序），不做二次评分。
        没有候选时返回 DEFAULT_MODEL_ID 并记录 warning 日志。
        """
        candidates = [m for m in self.list_all() if m.satisfies(requirements)]

        if not candidates:
            log.warning(
                "no_model_matches_requirements",
                requirements=requirements.model_dump(exclude_none=True),
                default_model=DEFAULT_MODEL_ID,
            )
            return DEFAULT_MODEL_ID

        return candidates[0].id

    def recommend_cost_optimized(self, requirements: ModelRequirements) -> str:
        """从低成本档位开始，返回第一个满足条件的模型"""
        for tier in (CostTier.LOW, CostTier.MEDIUM, CostTier.HIGH):
            tiered = requirements.model_copy(update={"cost_tier": tier})
            model_id = self.select_optimal_model(tiered)
            model = self.get_model(model_id)
            if model is not None and model.cost_tier == tier:
                return model_id
        return DEFAULT_MODEL_ID

    def estimate_relative_cost(self, model_id: str) -> int:
        """相对成本评分（1-10），未知模型按中档计"""
        model = self.get_model(model_id)
        if model is None:
            return _UNKNOWN_RELATIVE_COST
        return _RELATIVE_COST[model.cost_tier]


class ChainRegistry:
    """降级链注册表

    每条链至少包含一个模型，且引用的模型必须存在于 ModelCatalog。
    """

    def __init__(
        self,
        catalog: ModelCatalog,
        chains: list[ChainDescriptor] | None = None,
    ) -> None:
        """初始化注册表

        Args:
            catalog: 模型目录，用于校验链中引用的模型
            chains: 降级链列表，None 时使用默认配置
        """
        self._catalog = catalog
        self._chains: dict[str, ChainDescriptor] = {}
        for chain in chains if chains is not None else _get_default_chains():
            self.add_chain(chain)

    def get_chain(self, name: str) -> ChainDescriptor | None:
        """按名称查询降级链"""
        return self._chains.get(name)

    def list_all(self) -> list[ChainDescriptor]:
        """列出所有降级链（按 name 排序）"""
        return sorted(self._chains.values(), key=lambda c: c.name)

    def add_chain(self, chain: ChainDescriptor) -> None:
        """注册或替换降级链

        Raises:
            ChainConfigurationError: 链中引用了目录中不存在的模型
        """
        missing = [m for m in chain.models if m not in self._catalog]
        if missing:
            raise ChainConfigurationError(
                f"Chain '{chain.name}' references unknown models: {', '.join(missing)}"
            )
        self._chains[chain.name] = chain
        log.debug("chain_registered", chain=chain.name, models=list(chain.models))

    def remove_chain(self, name: str) -> bool:
        """移除降级链，返回是否存在"""
        removed = self._chains.pop(name, None)
        if removed is not None:
            log.debug("chain_removed", chain=name)
        return removed is not None
