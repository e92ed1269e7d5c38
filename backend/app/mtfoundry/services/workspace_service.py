"""MTFoundry - Workspace Service

当前运行的唯一所有者：套件信息、种子、关系集合、生成结果、
生成/执行统计与执行历史。展示层只读取 snapshot()。
"""
from __future__ import annotations

import logging
import random
from contextlib import contextmanager
from typing import Callable, Iterable, Mapping, Optional
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from mtfoundry.database.config import SessionLocal
from mtfoundry.models.schemas import (
    DEFAULT_SUITE_NAME,
    ExecutionHistoryEntry,
    ExecutionStats,
    GeneratedTest,
    GenerationStats,
    Relation,
    SavedTestSuite,
    SeedArtifact,
)
from mtfoundry.models.workspace_schemas import RelationOverride, WorkspaceState
from mtfoundry.services.event_service import EventBroker, get_event_broker
from mtfoundry.services.simulation.allocation import OutcomeAllocator, RatioLike
from mtfoundry.services.simulation.catalog import RelationCatalog, get_catalog, normalize_name
from mtfoundry.services.simulation.errors import (
    DuplicateRelationError,
    ExecutionAlreadyRunningError,
    GenerationInProgressError,
    SeedNotFoundError,
    SuiteNotFoundError,
)
from mtfoundry.services.simulation.execution import ExecutionScheduler, ExecutionStartResult
from mtfoundry.services.simulation.generation import GenerationCoordinator, GenerationHandle
from mtfoundry.services.simulation.history import HistoryRecorder
from mtfoundry.services.suite_store import SuiteStore

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


class MetamorphicWorkspace:
    """蜕变测试工作区"""

    def __init__(
        self,
        *,
        catalog: Optional[RelationCatalog] = None,
        broker: Optional[EventBroker] = None,
        session_factory: Optional[SessionFactory] = SessionLocal,
        reference_ratios: Optional[Mapping[str, RatioLike]] = None,
        time_unit: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ):
        self.catalog = catalog or get_catalog()
        self.broker = broker or get_event_broker()
        self.session_factory = session_factory
        self.reference_ratios = reference_ratios
        rng = rng or random.Random()

        self.coordinator = GenerationCoordinator(broker=self.broker, time_unit=time_unit, rng=rng)
        self.scheduler = ExecutionScheduler(
            broker=self.broker,
            on_complete=self._on_execution_complete,
            time_unit=time_unit,
            rng=rng,
        )
        self.recorder = HistoryRecorder()

        self.suite_id: Optional[UUID] = None
        self.description = ""
        self.seed: Optional[SeedArtifact] = None
        self._history_key: Optional[UUID] = None

        if self.session_factory is not None:
            with self._store() as store:
                self.recorder.load(store.load_history())

    @contextmanager
    def _store(self):
        if self.session_factory is None:
            raise RuntimeError("workspace has no persistence configured")
        db = self.session_factory()
        try:
            yield SuiteStore(db)
        finally:
            db.close()

    # ------------------------------------------------------------
    # 只读视图
    # ------------------------------------------------------------

    @property
    def suite_name(self) -> str:
        return self.coordinator.stats.test_suite_name

    @property
    def relations(self) -> list[Relation]:
        return self.coordinator.relations

    @property
    def generated_tests(self) -> list[GeneratedTest]:
        return self.coordinator.generated_tests

    @property
    def generation_stats(self) -> GenerationStats:
        return self.coordinator.stats

    @property
    def execution_stats(self) -> ExecutionStats:
        return self.scheduler.stats

    @property
    def is_generating(self) -> bool:
        return self.coordinator.is_running

    @property
    def history_key(self) -> UUID:
        """当前历史 key：已保存套件用套件 ID，否则使用临时 key"""
        if self.suite_id is not None:
            return self.suite_id
        if self._history_key is None:
            self._history_key = self.recorder.mint_transient_key()
        return self._history_key

    def history(self) -> list[ExecutionHistoryEntry]:
        return self.recorder.entries(self.history_key)

    def snapshot(self) -> WorkspaceState:
        return WorkspaceState(
            suite_id=self.suite_id,
            suite_name=self.suite_name,
            description=self.description,
            seed=self.seed,
            relations=[r.model_copy() for r in self.relations],
            generated_tests=list(self.generated_tests),
            generation_stats=self.coordinator.snapshot(),
            execution_stats=self.scheduler.snapshot(),
            is_generating=self.is_generating,
            execution_state=self.scheduler.state,
            history=self.history(),
        )

    # ------------------------------------------------------------
    # 套件信息
    # ------------------------------------------------------------

    def new_suite(self) -> None:
        """新建空白套件（取消进行中的生成/执行）"""
        self.scheduler.cancel()
        self.coordinator.reset(DEFAULT_SUITE_NAME)
        self.scheduler.reset()
        self.suite_id = None
        self.description = ""
        self.seed = None
        self._abandon_transient_history()
        logger.info("new test suite started")

    def _abandon_transient_history(self) -> None:
        """丢弃未保存套件的临时历史"""
        if self.recorder.is_transient(self._history_key):
            dropped = self.recorder.drop_suite(self._history_key)
            logger.debug(f"discarded {dropped} unsaved history entries")
        self._history_key = None

    def rename_suite(self, name: str) -> str:
        """重命名（空白名称被忽略）"""
        name = name.strip()
        if name:
            self.coordinator.stats.test_suite_name = name
        return self.suite_name

    def set_description(self, description: str) -> None:
        self.description = description

    def select_seed(self, seed: SeedArtifact) -> SeedArtifact:
        self.seed = seed
        return seed

    def select_seed_by_id(self, seed_id: UUID) -> SeedArtifact:
        with self._store() as store:
            seed = store.get_seed(seed_id)
        if seed is None:
            raise SeedNotFoundError(seed_id)
        return self.select_seed(seed)

    # ------------------------------------------------------------
    # 关系集合
    # ------------------------------------------------------------

    def add_relations(
        self,
        names: Iterable[str],
        overrides: Optional[Mapping[str, RelationOverride]] = None,
    ) -> list[Relation]:
        """按目录默认值添加关系；任一名称重复则整体拒绝"""
        overrides = {normalize_name(k): v for k, v in (overrides or {}).items()}
        existing = {normalize_name(r.name) for r in self.relations}
        new_relations: list[Relation] = []
        for raw_name in names:
            name = self.catalog.canonical_name(raw_name)
            if normalize_name(name) in existing:
                raise DuplicateRelationError(name)
            existing.add(normalize_name(name))

            defaults = self.catalog.lookup(name)
            override = overrides.get(normalize_name(name)) or RelationOverride()
            new_relations.append(Relation(
                name=name,
                type="".join(name.split()),
                target_count=defaults.target_count if override.target_count is None else override.target_count,
                base_rate=defaults.base_rate if override.base_rate is None else override.base_rate,
            ))

        for relation in new_relations:
            self.coordinator.add_relation(relation)
        return new_relations

    def remove_relations(self, relation_ids: Iterable[UUID]) -> list[Relation]:
        return self.coordinator.remove_relations(relation_ids)

    # ------------------------------------------------------------
    # 生成 / 执行
    # ------------------------------------------------------------

    def start_generation(self) -> GenerationHandle:
        if self.scheduler.is_running:
            self.scheduler.cancel()
        return self.coordinator.start_run(self.relations, self.seed)

    def cancel_generation(self) -> Optional[GenerationHandle]:
        """请求取消当前生成，返回被取消的句柄（无运行时为 None）"""
        handle = self.coordinator.current
        self.coordinator.cancel_run()
        return handle

    def allocator(self) -> OutcomeAllocator:
        return OutcomeAllocator(self.reference_ratios, catalog=self.catalog)

    def start_execution(self) -> ExecutionStartResult:
        """按当前生成结果启动执行

        Raises:
            GenerationInProgressError: 生成尚未结束
            ExecutionAlreadyRunningError: 已有执行在运行
        """
        if self.is_generating:
            raise GenerationInProgressError()
        if self.scheduler.is_running:
            raise ExecutionAlreadyRunningError()
        splits = self.allocator().allocate(self.generation_stats.mr_counts)
        return self.scheduler.start(splits)

    def cancel_execution(self) -> None:
        self.scheduler.cancel()

    def _on_execution_complete(self, stats: ExecutionStats) -> ExecutionHistoryEntry:
        key = self.history_key
        entry = self.recorder.record(key, stats)
        if self.session_factory is not None and not self.recorder.is_transient(key):
            with self._store() as store:
                store.append_history(key, entry)
        return entry

    # ------------------------------------------------------------
    # 历史
    # ------------------------------------------------------------

    def delete_history(self, entry_ids: Iterable[UUID]) -> list[UUID]:
        key = self.history_key
        deleted = self.recorder.delete(key, entry_ids)
        if deleted and self.session_factory is not None and not self.recorder.is_transient(key):
            with self._store() as store:
                store.delete_history(deleted)
        return deleted

    def show_history_entry(self, entry_id: UUID) -> ExecutionStats:
        """把历史记录载入当前执行统计视图"""
        entry = self.recorder.get(self.history_key, entry_id)
        self.scheduler.reset(ExecutionStats.from_history(entry))
        return self.execution_stats

    # ------------------------------------------------------------
    # 套件持久化
    # ------------------------------------------------------------

    def list_suites(self) -> list[SavedTestSuite]:
        with self._store() as store:
            return store.list_suites()

    def save_suite(self, name: Optional[str] = None, description: Optional[str] = None) -> SavedTestSuite:
        """保存当前运行；重新保存已加载的套件时沿用同一 ID"""
        if self.is_generating:
            raise GenerationInProgressError()
        if name is not None:
            self.rename_suite(name)
        if description is not None:
            self.description = description

        suite_id = self.suite_id or uuid4()
        suite = SavedTestSuite(
            id=suite_id,
            name=self.suite_name,
            description=self.description,
            seed=self.seed,
            relations=[r.model_copy() for r in self.relations],
            generated_tests=list(self.generated_tests),
            total_tests=self.generation_stats.total_generated,
        )
        with self._store() as store:
            store.put_suite(suite)
            if self.recorder.is_transient(self._history_key):
                self.recorder.rekey(self._history_key, suite_id)
                for entry in self.recorder.entries(suite_id):
                    store.append_history(suite_id, entry)
        self.suite_id = suite_id
        self._history_key = None
        return suite

    def load_suite(self, suite_id: UUID) -> SavedTestSuite:
        """用已保存的套件替换当前运行（执行统计清零）"""
        with self._store() as store:
            suite = store.get_suite(suite_id)
        if suite is None:
            raise SuiteNotFoundError(suite_id)

        self.scheduler.cancel()
        self.coordinator.load(
            suite.relations,
            suite.generated_tests,
            total_generated=suite.total_tests,
            suite_name=suite.name,
            seed=suite.seed,
        )
        self.scheduler.reset()
        self.suite_id = suite.id
        self.description = suite.description
        self.seed = suite.seed
        self._abandon_transient_history()
        logger.info(f"test suite loaded: {suite.name} ({suite.id})")
        return suite

    def delete_suite(self, suite_id: UUID) -> None:
        """删除套件及其执行历史"""
        with self._store() as store:
            if not store.delete_suite(suite_id):
                raise SuiteNotFoundError(suite_id)
        self.recorder.drop_suite(suite_id)
        if self.suite_id == suite_id:
            self.suite_id = None
            self._history_key = None


# 全局工作区
_workspace: Optional[MetamorphicWorkspace] = None


def get_workspace() -> MetamorphicWorkspace:
    """获取全局工作区"""
    global _workspace
    if _workspace is None:
        _workspace = MetamorphicWorkspace()
        logger.info("metamorphic workspace initialised")
    return _workspace


def set_workspace(workspace: Optional[MetamorphicWorkspace]) -> None:
    """设置全局工作区（用于测试）"""
    global _workspace
    _workspace = workspace
