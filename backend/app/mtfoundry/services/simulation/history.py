"""MTFoundry - History Recorder

把完成的执行冻结为不可变的 ExecutionHistoryEntry，按套件顺序追加。
"""
from __future__ import annotations

import logging
from typing import Iterable, Mapping, Optional
from uuid import UUID, uuid4

from mtfoundry.models.schemas import ExecutionHistoryEntry, ExecutionStats
from mtfoundry.services.simulation.errors import HistoryEntryNotFoundError

logger = logging.getLogger(__name__)


class HistoryRecorder:
    """按套件 ID 组织的执行历史日志

    没有关联套件时使用临时 key，保存套件后可通过 rekey() 迁移。
    """

    def __init__(self):
        self._log: dict[UUID, list[ExecutionHistoryEntry]] = {}
        self._transient: set[UUID] = set()

    def mint_transient_key(self) -> UUID:
        key = uuid4()
        self._transient.add(key)
        return key

    def is_transient(self, key: Optional[UUID]) -> bool:
        return key in self._transient

    def record(self, key: UUID, stats: ExecutionStats) -> ExecutionHistoryEntry:
        """冻结最终统计并追加到 key 对应的历史"""
        entry = ExecutionHistoryEntry(
            total_tests=stats.total_executed,
            passed=stats.passed,
            failed=stats.failed,
            success_rate=stats.success_rate,
            mr_results={name: result.model_copy() for name, result in stats.mr_results.items()},
        )
        self._log.setdefault(key, []).append(entry)
        logger.info(f"execution history recorded for {key}: {entry.id}")
        return entry

    def entries(self, key: Optional[UUID]) -> list[ExecutionHistoryEntry]:
        if key is None:
            return []
        return list(self._log.get(key, []))

    def get(self, key: Optional[UUID], entry_id: UUID) -> ExecutionHistoryEntry:
        for entry in self.entries(key):
            if entry.id == entry_id:
                return entry
        raise HistoryEntryNotFoundError(entry_id)

    def delete(self, key: Optional[UUID], entry_ids: Iterable[UUID]) -> list[UUID]:
        """批量删除，返回实际删除的 ID"""
        if key is None or key not in self._log:
            return []
        ids = set(entry_ids)
        kept, deleted = [], []
        for entry in self._log[key]:
            (deleted if entry.id in ids else kept).append(entry)
        self._log[key] = kept
        return [e.id for e in deleted]

    def drop_suite(self, key: UUID) -> int:
        """删除整个套件的历史（级联删除）"""
        self._transient.discard(key)
        return len(self._log.pop(key, []))

    def rekey(self, old: UUID, new: UUID) -> None:
        """把 old 下的历史迁移到 new 之后"""
        moved = self._log.pop(old, [])
        self._transient.discard(old)
        if moved:
            self._log.setdefault(new, []).extend(moved)

    def load(self, mapping: Mapping[UUID, list[ExecutionHistoryEntry]]) -> None:
        """从存储加载（替换内存中的持久化历史，保留临时历史）"""
        transient = {k: v for k, v in self._log.items() if k in self._transient}
        self._log = {key: list(entries) for key, entries in mapping.items()}
        self._log.update(transient)

    def export(self) -> dict[UUID, list[ExecutionHistoryEntry]]:
        return {
            key: list(entries)
            for key, entries in self._log.items()
            if key not in self._transient
        }
