"""MTFoundry - Execution Scheduler

单一逻辑流的执行调度器：每一步随机选择一个仍有剩余容量的关系，
按收敛偏置规则抽取通过/失败，保证运行结束时每个关系的计数
严格等于 OutcomeAllocator 的目标划分。
"""
from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from mtfoundry.core.config import settings
from mtfoundry.models.run_status import ExecutionState
from mtfoundry.models.schemas import (
    ExecutionHistoryEntry,
    ExecutionStats,
    MRResult,
    OutcomeSplit,
)
from mtfoundry.services.event_service import EventBroker, get_event_broker
from mtfoundry.services.simulation.cancellation import CancellationToken
from mtfoundry.services.simulation.errors import (
    DuplicateRelationError,
    ExecutionAlreadyRunningError,
)
from mtfoundry.services.simulation.rate_model import jitter

logger = logging.getLogger(__name__)

EMPTY_CAPACITY_NOTICE = "No tests to execute. Please generate tests first."

CompletionCallback = Callable[[ExecutionStats], Optional[ExecutionHistoryEntry]]


def decide_outcome(remaining_passed: int, remaining_failed: int, rng: random.Random) -> bool:
    """收敛偏置规则

    两者都为正时以 remaining_passed / (remaining_passed + remaining_failed)
    的概率判定通过；只剩一种时强制取该结果。
    """
    if remaining_passed > 0 and remaining_failed > 0:
        return rng.random() < remaining_passed / (remaining_passed + remaining_failed)
    if remaining_passed > 0:
        return True
    if remaining_failed > 0:
        return False
    raise ValueError("relation has no remaining capacity")


@dataclass
class ExecutionStartResult:
    """执行启动结果"""
    started: bool
    total: int = 0
    notice: Optional[str] = None

    @staticmethod
    def ok(total: int) -> "ExecutionStartResult":
        return ExecutionStartResult(started=True, total=total)

    @staticmethod
    def empty() -> "ExecutionStartResult":
        return ExecutionStartResult(started=False, total=0, notice=EMPTY_CAPACITY_NOTICE)


class ExecutionScheduler:
    """执行调度器

    状态流转: IDLE → RUNNING → COMPLETED（或 CANCELLED）。
    同一时刻最多一个执行；运行中再次 start 会被拒绝。
    """

    def __init__(
        self,
        *,
        broker: Optional[EventBroker] = None,
        on_complete: Optional[CompletionCallback] = None,
        time_unit: Optional[float] = None,
        base_delay: Optional[int] = None,
        jitter_fraction: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ):
        self.broker = broker or get_event_broker()
        self.on_complete = on_complete
        self.time_unit = settings.TIME_UNIT_SECONDS if time_unit is None else time_unit
        self.base_delay = settings.EXECUTION_BASE_DELAY if base_delay is None else base_delay
        self.jitter_fraction = settings.JITTER_FRACTION if jitter_fraction is None else jitter_fraction
        self.rng = rng or random.Random()

        self.state = ExecutionState.IDLE
        self.stats = ExecutionStats()
        self.last_entry: Optional[ExecutionHistoryEntry] = None

        self._splits: dict[str, OutcomeSplit] = {}
        self._token: Optional[CancellationToken] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self.state == ExecutionState.RUNNING

    @property
    def splits(self) -> list[OutcomeSplit]:
        return list(self._splits.values())

    def snapshot(self) -> ExecutionStats:
        return self.stats.model_copy(deep=True)

    def reset(self, stats: Optional[ExecutionStats] = None) -> None:
        """重新初始化执行统计视图（运行中不允许）"""
        if self.is_running:
            raise ExecutionAlreadyRunningError()
        self.stats = stats or ExecutionStats()
        self.stats.is_executing = False

    # ------------------------------------------------------------
    # 运行控制
    # ------------------------------------------------------------

    def start(self, splits: Iterable[OutcomeSplit]) -> ExecutionStartResult:
        """启动执行

        Raises:
            ExecutionAlreadyRunningError: 已有执行在运行
        """
        if self.is_running:
            raise ExecutionAlreadyRunningError()

        active: dict[str, OutcomeSplit] = {}
        for split in splits:
            if split.total <= 0:
                continue
            if split.relation in active:
                raise DuplicateRelationError(split.relation)
            active[split.relation] = split

        total = sum(s.total for s in active.values())
        if total == 0:
            logger.info("execution requested with nothing to execute")
            self.broker.emit("execution.empty", {"notice": EMPTY_CAPACITY_NOTICE})
            return ExecutionStartResult.empty()

        self._splits = active
        self.stats = ExecutionStats(
            mr_results={name: MRResult() for name in active},
            is_executing=True,
        )
        self.last_entry = None
        self.state = ExecutionState.RUNNING
        self._token = CancellationToken()
        self._task = asyncio.create_task(self._run(self._token))

        logger.info(
            f"execution started: {total} test(s), "
            + ", ".join(f"{s.relation}={s.target_passed}/{s.target_failed}" for s in active.values())
        )
        self.broker.emit("execution.started", {
            "total": total,
            "splits": [s.model_dump() for s in active.values()],
        })
        return ExecutionStartResult.ok(total)

    def cancel(self) -> None:
        """停止执行（幂等）；保留最后发布的计数"""
        if not self.is_running:
            return
        self._token.cancel()
        self.state = ExecutionState.CANCELLED
        self.stats.is_executing = False
        logger.info(
            f"execution cancelled at {self.stats.total_executed}/"
            f"{sum(s.total for s in self._splits.values())}"
        )
        self.broker.emit("execution.cancelled", self.stats.model_dump())

    async def wait(self) -> ExecutionState:
        if self._task is not None:
            await asyncio.shield(self._task)
        return self.state

    # ------------------------------------------------------------
    # 步进
    # ------------------------------------------------------------

    async def _run(self, token: CancellationToken) -> None:
        while not token.cancelled:
            relation = self.step()
            if relation is None:
                self._complete()
                return
            self.broker.emit("execution.progress", {"relation": relation, **self.stats.model_dump()})
            delay = jitter(self.base_delay, fraction=self.jitter_fraction, rng=self.rng)
            if await token.sleep(delay * self.time_unit):
                return

    def available(self) -> list[str]:
        """仍有剩余容量的关系"""
        return [
            name
            for name, split in self._splits.items()
            if self.stats.mr_results[name].executed < split.total
        ]

    def step(self) -> Optional[str]:
        """执行一个测试；没有剩余容量时返回 None

        可用集合与剩余数在同一次同步调用中从运行计数重新计算。
        """
        candidates = self.available()
        if not candidates:
            return None

        name = self.rng.choice(candidates)
        split = self._splits[name]
        result = self.stats.mr_results[name]
        passed = decide_outcome(
            split.target_passed - result.passed,
            split.target_failed - result.failed,
            self.rng,
        )

        if passed:
            result.passed += 1
            self.stats.passed += 1
        else:
            result.failed += 1
            self.stats.failed += 1
        self.stats.recompute()
        return name

    def _complete(self) -> None:
        self.state = ExecutionState.COMPLETED
        self.stats.is_executing = False
        logger.info(
            f"execution completed: {self.stats.passed} passed, "
            f"{self.stats.failed} failed ({self.stats.success_rate}%)"
        )
        self.broker.emit("execution.completed", self.stats.model_dump())

        if self.on_complete is not None:
            self.last_entry = self.on_complete(self.snapshot())
            if self.last_entry is not None:
                self.broker.emit("history.recorded", self.last_entry.model_dump(mode="json"))
