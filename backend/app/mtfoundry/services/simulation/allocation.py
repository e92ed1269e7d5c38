"""MTFoundry - Outcome Allocator

执行开始前，为每个关系预先计算精确的 (通过, 失败) 目标划分。

舍入规则：
- 有参考比例 r = passed/total：target_passed = round_half_up(total * r)
- 无参考比例：target_passed = floor(total * default_ratio)
- target_failed = total - target_passed（保证两者之和严格等于 total）
"""
from __future__ import annotations

import logging
import math
from fractions import Fraction
from typing import Mapping, Optional, Union

from mtfoundry.models.schemas import OutcomeSplit
from mtfoundry.services.simulation.catalog import (
    ReferenceRatio,
    RelationCatalog,
    get_catalog,
    normalize_name,
)

logger = logging.getLogger(__name__)

RatioLike = Union[ReferenceRatio, Mapping[str, int]]


def _as_fraction(value: float) -> Fraction:
    # str() 取最短十进制表示，避免 0.9 -> 0.90000000000000002220...
    return Fraction(str(value))


class OutcomeAllocator:
    """目标划分计算器（纯计算，无副作用）"""

    def __init__(
        self,
        reference_ratios: Optional[Mapping[str, RatioLike]] = None,
        *,
        default_ratio: Optional[float] = None,
        catalog: Optional[RelationCatalog] = None,
    ):
        catalog = catalog or get_catalog()
        if reference_ratios is None:
            reference_ratios = catalog.reference_ratios
        self._ratios: dict[str, ReferenceRatio] = {
            normalize_name(name): ReferenceRatio.model_validate(ratio)
            for name, ratio in reference_ratios.items()
        }
        ratio = catalog.default_pass_ratio if default_ratio is None else default_ratio
        if not 0 <= ratio <= 1:
            raise ValueError(f"default ratio must be within [0, 1], got {ratio}")
        self.default_ratio = _as_fraction(ratio)

    def reference_ratio(self, name: str) -> Optional[Fraction]:
        ref = self._ratios.get(normalize_name(name))
        if ref is None:
            return None
        return Fraction(ref.passed, ref.total)

    def split(self, name: str, total: int) -> OutcomeSplit:
        """计算单个关系的划分"""
        if total <= 0:
            return OutcomeSplit(relation=name, total=0, target_passed=0, target_failed=0)

        ratio = self.reference_ratio(name)
        if ratio is not None:
            passed = math.floor(total * ratio + Fraction(1, 2))
        else:
            passed = math.floor(total * self.default_ratio)
        passed = min(max(passed, 0), total)

        return OutcomeSplit(
            relation=name,
            total=total,
            target_passed=passed,
            target_failed=total - passed,
        )

    def allocate(self, totals: Mapping[str, int]) -> list[OutcomeSplit]:
        """为所有 total > 0 的关系计算划分（total == 0 的关系被排除）"""
        splits = [self.split(name, total) for name, total in totals.items() if total > 0]
        logger.debug(
            "outcome splits: "
            + ", ".join(f"{s.relation}={s.target_passed}/{s.target_failed}" for s in splits)
        )
        return splits
