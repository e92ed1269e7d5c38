"""MTFoundry - Suite Store

种子测试、测试套件与执行历史的持久化（SQLAlchemy）。
只在加载/保存边界被调用。
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from mtfoundry.database.models import HistoryRecord, SeedRecord, SuiteRecord
from mtfoundry.models.schemas import (
    ExecutionHistoryEntry,
    GeneratedTest,
    Relation,
    SavedTestSuite,
    SeedArtifact,
)

logger = logging.getLogger(__name__)


def _to_suite(record: SuiteRecord) -> SavedTestSuite:
    return SavedTestSuite(
        id=record.id,
        name=record.name,
        description=record.description or "",
        seed=SeedArtifact.model_validate(record.seed) if record.seed else None,
        relations=[Relation.model_validate(r) for r in record.relations or []],
        generated_tests=[GeneratedTest.model_validate(t) for t in record.generated_tests or []],
        total_tests=record.total_tests,
        saved_at=record.saved_at,
    )


def _to_entry(record: HistoryRecord) -> ExecutionHistoryEntry:
    return ExecutionHistoryEntry(
        id=record.id,
        timestamp=record.timestamp,
        total_tests=record.total_tests,
        passed=record.passed,
        failed=record.failed,
        success_rate=record.success_rate,
        mr_results=record.mr_results or {},
    )


class SuiteStore:
    def __init__(self, db: Session):
        self.db = db

    # ============================================================
    # Seeds
    # ============================================================

    def list_seeds(self) -> list[SeedArtifact]:
        records = self.db.query(SeedRecord).order_by(SeedRecord.registered_at.asc()).all()
        return [SeedArtifact.model_validate(r) for r in records]

    def get_seed(self, seed_id: UUID) -> Optional[SeedArtifact]:
        record = self.db.query(SeedRecord).filter(SeedRecord.id == seed_id).first()
        return SeedArtifact.model_validate(record) if record else None

    def put_seed(self, seed: SeedArtifact) -> SeedArtifact:
        record = self.db.query(SeedRecord).filter(SeedRecord.id == seed.id).first()
        if record is None:
            record = SeedRecord(id=seed.id)
            self.db.add(record)
        record.name = seed.name
        record.description = seed.description
        record.test_type = seed.test_type
        record.prompt = seed.prompt
        record.expected_result = seed.expected_result
        record.image = seed.image
        record.registered_at = seed.registered_at
        self.db.commit()
        return seed

    def delete_seed(self, seed_id: UUID) -> bool:
        record = self.db.query(SeedRecord).filter(SeedRecord.id == seed_id).first()
        if record is None:
            return False
        self.db.delete(record)
        self.db.commit()
        return True

    # ============================================================
    # Suites
    # ============================================================

    def list_suites(self) -> list[SavedTestSuite]:
        records = self.db.query(SuiteRecord).order_by(SuiteRecord.saved_at.asc()).all()
        return [_to_suite(r) for r in records]

    def get_suite(self, suite_id: UUID) -> Optional[SavedTestSuite]:
        record = self.db.query(SuiteRecord).filter(SuiteRecord.id == suite_id).first()
        return _to_suite(record) if record else None

    def put_suite(self, suite: SavedTestSuite) -> SavedTestSuite:
        """创建或覆盖套件（同一 ID 覆盖，历史保留）"""
        record = self.db.query(SuiteRecord).filter(SuiteRecord.id == suite.id).first()
        if record is None:
            record = SuiteRecord(id=suite.id)
            self.db.add(record)
        record.name = suite.name
        record.description = suite.description
        record.seed = suite.seed.model_dump(mode="json") if suite.seed else None
        record.relations = [r.model_dump(mode="json") for r in suite.relations]
        record.generated_tests = [t.model_dump(mode="json") for t in suite.generated_tests]
        record.total_tests = suite.total_tests
        record.saved_at = suite.saved_at
        self.db.commit()
        logger.info(f"test suite saved: {suite.name} ({suite.id})")
        return suite

    def delete_suite(self, suite_id: UUID) -> bool:
        """删除套件（执行历史级联删除）"""
        record = self.db.query(SuiteRecord).filter(SuiteRecord.id == suite_id).first()
        if record is None:
            return False
        self.db.delete(record)
        self.db.commit()
        logger.info(f"test suite deleted: {suite_id}")
        return True

    # ============================================================
    # History
    # ============================================================

    def load_history(self) -> dict[UUID, list[ExecutionHistoryEntry]]:
        history: dict[UUID, list[ExecutionHistoryEntry]] = {}
        records = self.db.query(HistoryRecord).order_by(
            HistoryRecord.suite_id, HistoryRecord.seq.asc()
        ).all()
        for record in records:
            history.setdefault(record.suite_id, []).append(_to_entry(record))
        return history

    def append_history(self, suite_id: UUID, entry: ExecutionHistoryEntry) -> bool:
        """追加历史；套件未持久化时返回 False"""
        if self.db.query(SuiteRecord).filter(SuiteRecord.id == suite_id).first() is None:
            return False
        if self.db.query(HistoryRecord).filter(HistoryRecord.id == entry.id).first() is not None:
            return True
        # 套件内 seq 单调递增，删除后不复用
        last_seq = self.db.query(func.coalesce(func.max(HistoryRecord.seq), -1)).filter(
            HistoryRecord.suite_id == suite_id
        ).scalar()
        seq = last_seq + 1
        self.db.add(HistoryRecord(
            id=entry.id,
            suite_id=suite_id,
            seq=seq,
            timestamp=entry.timestamp,
            total_tests=entry.total_tests,
            passed=entry.passed,
            failed=entry.failed,
            success_rate=entry.success_rate,
            mr_results={k: v.model_dump() for k, v in entry.mr_results.items()},
        ))
        self.db.commit()
        return True

    def delete_history(self, entry_ids: Iterable[UUID]) -> int:
        ids = list(entry_ids)
        if not ids:
            return 0
        deleted = self.db.query(HistoryRecord).filter(HistoryRecord.id.in_(ids)).delete(
            synchronize_session=False
        )
        self.db.commit()
        return deleted


def _strip_images(value):
    if isinstance(value, list):
        return [_strip_images(v) for v in value]
    if isinstance(value, dict):
        item = {k: _strip_images(v) for k, v in value.items()}
        image = item.get("image")
        if isinstance(image, str) and image.startswith("data:"):
            item["image"] = f"/placeholder-{item.get('id')}.jpg"
        return item
    return value


def export_records(items: Iterable[dict]) -> list[dict]:
    """导出 JSON：内联的 data: 图片替换为占位路径（包括嵌套的种子与生成用例）"""
    return [_strip_images(item) for item in items]
