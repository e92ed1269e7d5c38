"""MTFoundry - Domain Schemas

种子测试、蜕变关系、生成结果与执行统计的 Pydantic 数据模型
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator

DEFAULT_SUITE_NAME = "Untitled Test Suite"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def success_rate(passed: int, total: int) -> int:
    """整数百分比，四舍五入（half-up），分母为 0 时返回 0"""
    if total <= 0:
        return 0
    return (200 * passed + total) // (2 * total)


# ============================================================
# Seed & Relation
# ============================================================

class SeedArtifact(BaseModel):
    """种子测试（创建后不可变）"""
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: UUID = Field(default_factory=uuid4)
    name: str
    description: str = ""
    test_type: str = "image"
    prompt: str = ""
    expected_result: str = ""
    image: Optional[str] = Field(default=None, description="图片引用（data URL 或路径）")
    registered_at: datetime = Field(default_factory=utcnow)


class Relation(BaseModel):
    """蜕变关系

    generated_count 只由生成协调器的单写入路径递增。
    """
    id: UUID = Field(default_factory=uuid4)
    name: str
    type: str
    target_count: int
    base_rate: int
    generated_count: int = 0


class GeneratedTest(BaseModel):
    """生成的测试用例（创建后不可变）"""
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    name: str
    relation_id: Optional[UUID] = None
    mr_used: str
    image: Optional[str] = None
    expected_result: str = ""


# ============================================================
# Stats
# ============================================================

class GenerationStats(BaseModel):
    """生成统计（当前运行）"""
    total_generated: int = 0
    success_rate: int = 0
    mr_counts: dict[str, int] = Field(default_factory=dict)
    test_suite_name: str = DEFAULT_SUITE_NAME


class MRResult(BaseModel):
    passed: int = 0
    failed: int = 0

    @property
    def executed(self) -> int:
        return self.passed + self.failed


class OutcomeSplit(BaseModel):
    """单个关系的目标通过/失败划分"""
    model_config = ConfigDict(frozen=True)

    relation: str
    total: int = Field(ge=0)
    target_passed: int = Field(ge=0)
    target_failed: int = Field(ge=0)

    @model_validator(mode="after")
    def _check_sum(self) -> "OutcomeSplit":
        if self.target_passed + self.target_failed != self.total:
            raise ValueError(
                f"split for {self.relation!r} does not add up: "
                f"{self.target_passed} + {self.target_failed} != {self.total}"
            )
        return self


class ExecutionStats(BaseModel):
    """执行统计（每执行一个测试更新一次）"""
    total_executed: int = 0
    passed: int = 0
    failed: int = 0
    success_rate: int = 0
    mr_results: dict[str, MRResult] = Field(default_factory=dict)
    is_executing: bool = False

    def recompute(self) -> None:
        self.total_executed = self.passed + self.failed
        self.success_rate = success_rate(self.passed, self.total_executed)

    @classmethod
    def from_history(cls, entry: "ExecutionHistoryEntry") -> "ExecutionStats":
        """把历史记录复制到当前视图（不会重新激活执行）"""
        return cls(
            total_executed=entry.total_tests,
            passed=entry.passed,
            failed=entry.failed,
            success_rate=entry.success_rate,
            mr_results={k: v.model_copy() for k, v in entry.mr_results.items()},
            is_executing=False,
        )


# ============================================================
# History & Suite
# ============================================================

class ExecutionHistoryEntry(BaseModel):
    """执行历史（不可变快照）"""
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(default_factory=utcnow)
    total_tests: int
    passed: int
    failed: int
    success_rate: int
    mr_results: dict[str, MRResult] = Field(default_factory=dict)

    @field_serializer("timestamp")
    def serialize_dt(self, dt: datetime, _info):
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.isoformat().replace("+00:00", "Z")


class SavedTestSuite(BaseModel):
    """已保存的测试套件"""
    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(default_factory=uuid4)
    name: str
    description: str = ""
    seed: Optional[SeedArtifact] = None
    relations: list[Relation] = Field(default_factory=list)
    generated_tests: list[GeneratedTest] = Field(default_factory=list)
    total_tests: int = 0
    saved_at: datetime = Field(default_factory=utcnow)
