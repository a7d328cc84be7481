"""ModelCatalog / ChainRegistry 单元测试

验证默认目录与默认链、select_optimal_model() 交集过滤与默认值、
链注册时的模型引用校验。
"""

import pytest
from modelrelay.routing.catalog import DEFAULT_MODEL_ID, ChainRegistry, ModelCatalog
from modelrelay.routing.exceptions import ChainConfigurationError
from modelrelay.routing.models import (
    Capability,
    ChainDescriptor,
    CostTier,
    ModelRequirements,
)


class TestModelCatalog:
    """ModelCatalog 核心功能测试"""

    def test_default_models_count(self):
        catalog = ModelCatalog()
        assert len(catalog.list_all()) == 6

    def test_get_model(self):
        catalog = ModelCatalog()
        model = catalog.get_model("deepseek/deepseek-r1")
        assert model is not None
        assert model.cost_tier is CostTier.LOW
        assert Capability.REASONING in model.capabilities

    def test_get_model_not_exists(self):
        assert ModelCatalog().get_model("nope/nope") is None

    def test_contains(self):
        catalog = ModelCatalog()
        assert "openai/gpt-4o" in catalog
        assert "nope/nope" not in catalog

    def test_get_models_by_capability(self):
        catalog = ModelCatalog()
        vision = catalog.get_models_by_capability(Capability.VISION)
        assert "anthropic/claude-3-5-haiku-20241022" not in vision
        assert "openai/gpt-4o-mini" in vision

    def test_get_models_by_cost_tier(self):
        catalog = ModelCatalog()
        assert catalog.get_models_by_cost_tier(CostTier.LOW) == ["deepseek/deepseek-r1"]

    def test_estimate_relative_cost(self):
        catalog = ModelCatalog()
        assert catalog.estimate_relative_cost("deepseek/deepseek-r1") == 2
        assert catalog.estimate_relative_cost("openai/gpt-4o-mini") == 5
        assert catalog.estimate_relative_cost("openai/gpt-4o") == 8
        assert catalog.estimate_relative_cost("unknown/model") == 5


class TestSelectOptimalModel:
    """select_optimal_model() 测试"""

    def test_no_requirements_returns_first(self):
        catalog = ModelCatalog()
        assert catalog.select_optimal_model(ModelRequirements()) == "xai/grok-3-beta"

    def test_no_match_returns_default(self):
        """text + vision + low 没有候选时返回默认模型"""
        catalog = ModelCatalog()
        requirements = ModelRequirements(
            capabilities=[Capability.TEXT, Capability.VISION],
            cost_tier=CostTier.LOW,
        )
        assert catalog.select_optimal_model(requirements) == DEFAULT_MODEL_ID
        assert DEFAULT_MODEL_ID == "openai/gpt-4o-mini"

    def test_capability_and_tier_intersection(self):
        catalog = ModelCatalog()
        requirements = ModelRequirements(
            capabilities=[Capability.REASONING],
            cost_tier=CostTier.LOW,
        )
        assert catalog.select_optimal_model(requirements) == "deepseek/deepseek-r1"

    def test_max_tokens_filter(self):
        """max_tokens 要求筛掉上下文不足的模型"""
        catalog = ModelCatalog()
        requirements = ModelRequirements(max_tokens=150000)
        assert (
            catalog.select_optimal_model(requirements)
            == "anthropic/claude-3-7-sonnet-20250219"
        )

    def test_provider_filter(self):
        catalog = ModelCatalog()
        requirements = ModelRequirements(provider="openai")
        assert catalog.select_optimal_model(requirements) == "openai/gpt-4o"

    def test_recommend_cost_optimized(self):
        """从低档位开始找满足能力要求的模型"""
        catalog = ModelCatalog()
        assert (
            catalog.recommend_cost_optimized(ModelRequirements(capabilities=[Capability.VISION]))
            == "openai/gpt-4o-mini"
        )
        assert (
            catalog.recommend_cost_optimized(
                ModelRequirements(capabilities=[Capability.REASONING])
            )
            == "deepseek/deepseek-r1"
        )


class TestChainRegistry:
    """ChainRegistry 测试"""

    def test_default_chains(self):
        registry = ChainRegistry(ModelCatalog())
        names = [c.name for c in registry.list_all()]
        assert names == ["budget", "premium", "reasoning", "vision"]

    def test_default_chains_reference_catalog_models(self):
        catalog = ModelCatalog()
        registry = ChainRegistry(catalog)
        for chain in registry.list_all():
            assert chain.models
            assert all(model_id in catalog for model_id in chain.models)

    def test_get_chain(self):
        registry = ChainRegistry(ModelCatalog())
        chain = registry.get_chain("budget")
        assert chain is not None
        assert chain.models[0] == "deepseek/deepseek-r1"
        assert registry.get_chain("missing") is None

    def test_add_chain_with_unknown_model_rejected(self):
        registry = ChainRegistry(ModelCatalog(), chains=[])
        with pytest.raises(ChainConfigurationError) as exc_info:
            registry.add_chain(ChainDescriptor(name="bad", models=["openai/gpt-4o", "ghost/x"]))
        assert "ghost/x" in str(exc_info.value)
        assert registry.get_chain("bad") is None

    def test_add_and_remove_chain(self):
        registry = ChainRegistry(ModelCatalog(), chains=[])
        registry.add_chain(ChainDescriptor(name="mini", models=["openai/gpt-4o-mini"]))
        assert registry.get_chain("mini") is not None

        assert registry.remove_chain("mini") is True
        assert registry.remove_chain("mini") is False
        assert registry.list_all() == []
