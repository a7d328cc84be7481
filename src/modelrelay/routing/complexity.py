"""QueryComplexityAnalyzer -- 查询复杂度启发式评分

纯函数，结果只用于调整模型尝试顺序，从不用于拒绝模型。
"""

import re

from .models import ComplexityFactors, ComplexityScore

# 长度归一化分母（字符数）
LENGTH_NORMALIZER = 500

REASONING_WEIGHT = 0.3
MULTI_STEP_WEIGHT = 0.2
TECHNICAL_WEIGHT = 0.2

REASONING_KEYWORDS = frozenset(
    {
        "analyze",
        "compare",
        "evaluate",
        "explain",
        "reasoning",
        "logic",
        "think",
        "consider",
        "because",
        "therefore",
        "thus",
        "however",
    }
)

MULTI_STEP_KEYWORDS = frozenset(
    {
        "first",
        "second",
        "then",
        "next",
        "finally",
        "step",
        "process",
        "procedure",
        "sequence",
        "order",
    }
)

TECHNICAL_KEYWORDS = frozenset(
    {
        "code",
        "programming",
        "algorithm",
        "technical",
        "engineering",
        "mathematics",
        "scientific",
        "research",
        "analysis",
    }
)

_TOKEN_RE = re.compile(r"\w+")


class QueryComplexityAnalyzer:
    """查询复杂度评分器

    value = min(长度分 + 推理 0.3 + 多步骤 0.2 + 技术 0.2, 1.0)
    关键词按整词匹配（小写 \\w+ 切分）。
    """

    def score(self, query: str) -> ComplexityScore:
        """计算查询复杂度

        Args:
            query: 请求文本

        Returns:
            ComplexityScore，value 在 [0, 1]
        """
        tokens = set(_TOKEN_RE.findall(query.lower()))

        length_score = min(len(query) / LENGTH_NORMALIZER, 1.0)
        reasoning = not tokens.isdisjoint(REASONING_KEYWORDS)
        multi_step = not tokens.isdisjoint(MULTI_STEP_KEYWORDS)
        technical = not tokens.isdisjoint(TECHNICAL_KEYWORDS)

        total = (
            length_score
            + (REASONING_WEIGHT if reasoning else 0.0)
            + (MULTI_STEP_WEIGHT if multi_step else 0.0)
            + (TECHNICAL_WEIGHT if technical else 0.0)
        )

        return ComplexityScore(
            value=min(total, 1.0),
            factors=ComplexityFactors(
                length=length_score,
                reasoning=reasoning,
                multi_step=multi_step,
                technical=technical,
            ),
        )
