"""Rate Model

带抖动的延迟计算，生成与执行循环共用。
"""

from __future__ import annotations

import random
from typing import Optional

DEFAULT_JITTER_FRACTION = 0.2


def jitter(
    base: float,
    *,
    fraction: float = DEFAULT_JITTER_FRACTION,
    rng: Optional[random.Random] = None,
) -> int:
    """返回 base ± fraction*base 范围内的随机延迟（整数时间单位）

    base <= 0 时结果钳制为 0。
    """
    if base <= 0:
        return 0
    rng = rng or random
    variation = base * fraction
    delay = base + rng.uniform(-variation, variation)
    return max(0, int(delay + 0.5))
