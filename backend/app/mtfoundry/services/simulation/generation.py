"""MTFoundry - Test Generation

并发生成：每个蜕变关系一个 RelationProducer 任务，按各自速率发射测试；
GenerationCoordinator 汇总所有发射并维护聚合统计。

设计原则：
- 生产者只负责节奏（挂起 → 发射），不直接修改共享状态
- 所有发射经由单个 asyncio.Queue，由唯一的写入任务落地（单写入者）
- 整体完成 = 所有生产者返回（gather）+ 写入队列排空
"""
from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Iterable, Optional
from uuid import UUID, uuid4

from mtfoundry.core.config import settings
from mtfoundry.models.run_status import GenerationStatus
from mtfoundry.models.schemas import (
    DEFAULT_SUITE_NAME,
    GeneratedTest,
    GenerationStats,
    Relation,
    SeedArtifact,
)
from mtfoundry.services.event_service import EventBroker, get_event_broker
from mtfoundry.services.simulation.cancellation import CancellationToken
from mtfoundry.services.simulation.catalog import normalize_name
from mtfoundry.services.simulation.errors import (
    DuplicateRelationError,
    NoRelationsError,
    NoSeedSelectedError,
)
from mtfoundry.services.simulation.rate_model import jitter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Emission:
    """生产者发射的一次生成事件"""
    relation_id: UUID
    sequence: int  # 关系内序号，从 1 开始


class RelationProducer:
    """单个关系的生产者

    严格顺序地执行 target_count 次 (jitter 挂起 → 发射)；
    被取消时在下一次恢复点退出，不会再发射新的事件。
    """

    def __init__(
        self,
        relation: Relation,
        outbox: asyncio.Queue,
        token: CancellationToken,
        *,
        time_unit: float,
        jitter_fraction: float,
        rng: random.Random,
    ):
        self.relation = relation
        self.outbox = outbox
        self.token = token
        self.time_unit = time_unit
        self.jitter_fraction = jitter_fraction
        self.rng = rng
        self.emitted = 0

    async def run(self) -> int:
        """运行至目标数量或被取消

        Returns:
            实际发射数量
        """
        target = self.relation.target_count
        while self.emitted < target:
            delay = jitter(self.relation.base_rate, fraction=self.jitter_fraction, rng=self.rng)
            if await self.token.sleep(delay * self.time_unit):
                logger.debug(
                    f"producer for {self.relation.name} cancelled at {self.emitted}/{target}"
                )
                break
            self.emitted += 1
            self.outbox.put_nowait(Emission(self.relation.id, self.emitted))
        return self.emitted


class GenerationHandle:
    """一次生成运行的句柄"""

    def __init__(self, run_id: UUID, token: CancellationToken):
        self.run_id = run_id
        self.token = token
        self.status = GenerationStatus.RUNNING
        self._task: Optional[asyncio.Task] = None

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    async def wait(self) -> GenerationStatus:
        """等待运行结束（完成或取消后写入队列已排空）"""
        if self._task is not None:
            await asyncio.shield(self._task)
        return self.status


class GenerationCoordinator:
    """生成协调器

    拥有当前运行的关系集合、生成结果与聚合统计。
    读者（展示层）只读取快照，所有修改都在本类中完成。
    """

    def __init__(
        self,
        *,
        broker: Optional[EventBroker] = None,
        time_unit: Optional[float] = None,
        jitter_fraction: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ):
        self.broker = broker or get_event_broker()
        self.time_unit = settings.TIME_UNIT_SECONDS if time_unit is None else time_unit
        self.jitter_fraction = settings.JITTER_FRACTION if jitter_fraction is None else jitter_fraction
        self.rng = rng or random.Random()

        self.relations: list[Relation] = []
        self.generated_tests: list[GeneratedTest] = []
        self.stats = GenerationStats()
        self.seed: Optional[SeedArtifact] = None

        self._handle: Optional[GenerationHandle] = None
        self._index: dict[UUID, Relation] = {}
        self._relation_tokens: dict[UUID, CancellationToken] = {}
        self._test_counter = 0

    # ------------------------------------------------------------
    # 状态
    # ------------------------------------------------------------

    @property
    def current(self) -> Optional[GenerationHandle]:
        return self._handle

    @property
    def is_running(self) -> bool:
        return self._handle is not None and self._handle.status == GenerationStatus.RUNNING

    def snapshot(self) -> GenerationStats:
        return self.stats.model_copy(deep=True)

    # ------------------------------------------------------------
    # 关系集合
    # ------------------------------------------------------------

    def add_relation(self, relation: Relation) -> Relation:
        if any(normalize_name(r.name) == normalize_name(relation.name) for r in self.relations):
            raise DuplicateRelationError(relation.name)
        self.relations.append(relation)
        self._index[relation.id] = relation
        return relation

    def remove_relations(self, relation_ids: Iterable[UUID]) -> list[Relation]:
        """移除关系，并回滚它们对聚合统计与生成结果的贡献

        未知 ID 被忽略；正在运行的生产者会被取消。
        """
        ids = set(relation_ids)
        removed = [r for r in self.relations if r.id in ids]
        if not removed:
            return []

        for relation in removed:
            self.cancel_relation(relation.id)
            self._index.pop(relation.id, None)
            self.stats.mr_counts.pop(relation.name, None)

        removed_ids = {r.id for r in removed}
        removed_count = sum(r.generated_count for r in removed)
        self.relations[:] = [r for r in self.relations if r.id not in removed_ids]
        self.generated_tests[:] = [t for t in self.generated_tests if t.relation_id not in removed_ids]

        self.stats.total_generated = max(0, self.stats.total_generated - removed_count)
        if self.stats.total_generated == 0:
            self.stats.success_rate = 0

        logger.info(
            f"removed {len(removed)} relation(s), {removed_count} generated test(s) discarded"
        )
        self.broker.emit("generation.progress", self.stats.model_dump())
        return removed

    def reset(self, suite_name: str = DEFAULT_SUITE_NAME) -> None:
        """新建套件：清空关系、结果与统计"""
        self.cancel_run()
        self._handle = None
        self.relations = []
        self.generated_tests = []
        self.seed = None
        self.stats = GenerationStats(test_suite_name=suite_name)
        self._index = {}
        self._relation_tokens = {}
        self._test_counter = 0

    def load(
        self,
        relations: list[Relation],
        generated_tests: list[GeneratedTest],
        *,
        total_generated: int,
        suite_name: str,
        seed: Optional[SeedArtifact] = None,
    ) -> None:
        """用已保存的套件替换当前运行（统计按关系计数重建）"""
        self.cancel_run()
        self._handle = None
        self.relations = [r.model_copy() for r in relations]
        self.generated_tests = list(generated_tests)
        self.seed = seed
        self._index = {r.id: r for r in self.relations}
        self._relation_tokens = {}
        self._test_counter = len(self.generated_tests)
        self.stats = GenerationStats(
            total_generated=total_generated,
            success_rate=100,
            mr_counts={r.name: r.generated_count for r in self.relations},
            test_suite_name=suite_name,
        )

    # ------------------------------------------------------------
    # 运行
    # ------------------------------------------------------------

    def start_run(self, relations: Iterable[Relation], seed: Optional[SeedArtifact]) -> GenerationHandle:
        """启动一次生成运行

        前置条件（不满足时在任何状态变更前抛出 CallerError）：
        - 至少一个关系
        - 已选择种子测试

        正在进行的运行会被取代（取消）。
        """
        relations = list(relations)
        if not relations:
            raise NoRelationsError()
        if seed is None:
            raise NoSeedSelectedError()
        seen: set[str] = set()
        for relation in relations:
            key = normalize_name(relation.name)
            if key in seen:
                raise DuplicateRelationError(relation.name)
            seen.add(key)

        if self.is_running:
            logger.info(f"generation run {self._handle.run_id} superseded by a new run")
            self.cancel_run()

        # 重置本次运行状态
        self.relations = relations
        for relation in self.relations:
            relation.generated_count = 0
        self.generated_tests = []
        self.seed = seed
        self.stats = GenerationStats(success_rate=100, test_suite_name=self.stats.test_suite_name)
        self._index = {r.id: r for r in self.relations}
        self._test_counter = 0

        run_id = uuid4()
        handle = GenerationHandle(run_id, CancellationToken())
        queue: asyncio.Queue = asyncio.Queue()
        self._relation_tokens = {r.id: handle.token.child() for r in self.relations}
        producers = [
            RelationProducer(
                relation,
                queue,
                self._relation_tokens[relation.id],
                time_unit=self.time_unit,
                jitter_fraction=self.jitter_fraction,
                rng=self.rng,
            )
            for relation in self.relations
        ]

        self._handle = handle
        handle._task = asyncio.create_task(self._run(handle, producers, queue))

        logger.info(
            f"generation run {run_id} started: "
            + ", ".join(f"{r.name}={r.target_count}" for r in self.relations)
        )
        self.broker.emit("generation.started", {
            "run_id": str(run_id),
            "relations": {r.name: r.target_count for r in self.relations},
        })
        return handle

    def cancel_run(self, handle: Optional[GenerationHandle] = None) -> None:
        """协作式取消（幂等）；已发射的测试与计数保持不变"""
        handle = handle or self._handle
        if handle is None or handle.token.cancelled:
            return
        handle.token.cancel()
        logger.info(f"generation run {handle.run_id} cancellation requested")

    def cancel_relation(self, relation_id: UUID) -> bool:
        """只停止单个关系的生产者（幂等）；重复调用返回 False"""
        token = self._relation_tokens.pop(relation_id, None)
        if token is None or token.cancelled:
            return False
        token.cancel()
        return True

    async def _run(
        self,
        handle: GenerationHandle,
        producers: list[RelationProducer],
        queue: asyncio.Queue,
    ) -> None:
        writer = asyncio.create_task(self._drain(handle, queue))
        try:
            await asyncio.gather(*(p.run() for p in producers))
        finally:
            queue.put_nowait(None)
            await writer

        if handle.token.cancelled:
            handle.status = GenerationStatus.CANCELLED
            event_type = "generation.cancelled"
        else:
            handle.status = GenerationStatus.COMPLETED
            event_type = "generation.completed"

        if handle is self._handle:
            logger.info(
                f"generation run {handle.run_id} {handle.status.value}: "
                f"{self.stats.total_generated} test(s)"
            )
            self.broker.emit(event_type, {"run_id": str(handle.run_id), **self.stats.model_dump()})

    async def _drain(self, handle: GenerationHandle, queue: asyncio.Queue) -> None:
        """单写入者：按到达顺序落地所有发射"""
        while True:
            emission = await queue.get()
            if emission is None:
                break
            self._apply(handle, emission)

    def _apply(self, handle: GenerationHandle, emission: Emission) -> None:
        if handle is not self._handle:
            # 已被新运行取代
            return
        relation = self._index.get(emission.relation_id)
        if relation is None:
            # 关系已被移除
            return
        if relation.generated_count >= relation.target_count:
            return

        relation.generated_count += 1
        self._test_counter += 1
        seed = self.seed
        self.generated_tests.append(
            GeneratedTest(
                name=f"Test {self._test_counter}",
                relation_id=relation.id,
                mr_used=relation.name,
                image=seed.image if seed else None,
                expected_result=seed.expected_result if seed else "",
            )
        )

        self.stats.total_generated += 1
        self.stats.mr_counts[relation.name] = self.stats.mr_counts.get(relation.name, 0) + 1
        self.stats.success_rate = 100

        self.broker.emit("generation.progress", {
            "relation": relation.name,
            "generated_count": relation.generated_count,
            **self.stats.model_dump(),
        })
