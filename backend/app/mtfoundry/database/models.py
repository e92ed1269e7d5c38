"""MTFoundry - Database Models

SQLAlchemy 数据模型定义（种子测试、测试套件、执行历史）
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    JSON,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from mtfoundry.database.config import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SeedRecord(Base):
    """种子测试模型"""
    __tablename__ = "seed_tests"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    test_type = Column(String(100), nullable=False, default="image")
    prompt = Column(Text, nullable=False, default="")
    expected_result = Column(Text, nullable=False, default="")
    image = Column(Text, nullable=True)  # data URL 或文件路径
    registered_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class SuiteRecord(Base):
    """测试套件模型

    关系与生成结果以 JSON 快照保存；执行历史级联删除。
    """
    __tablename__ = "test_suites"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    seed = Column(JSON, nullable=True)  # SeedArtifact 快照
    relations = Column(JSON, nullable=False, default=list)
    generated_tests = Column(JSON, nullable=False, default=list)
    total_tests = Column(Integer, nullable=False, default=0)
    saved_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    # 关联
    history = relationship(
        "HistoryRecord",
        back_populates="suite",
        cascade="all, delete-orphan",
        order_by="HistoryRecord.seq",
    )


class HistoryRecord(Base):
    """执行历史模型（创建后不再修改）"""
    __tablename__ = "execution_history"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    suite_id = Column(UUID(as_uuid=True), ForeignKey("test_suites.id"), nullable=False, index=True)
    seq = Column(Integer, nullable=False, default=0)  # 套件内顺序
    timestamp = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    total_tests = Column(Integer, nullable=False, default=0)
    passed = Column(Integer, nullable=False, default=0)
    failed = Column(Integer, nullable=False, default=0)
    success_rate = Column(Integer, nullable=False, default=0)
    mr_results = Column(JSON, nullable=False, default=dict)

    # 关联
    suite = relationship("SuiteRecord", back_populates="history")
