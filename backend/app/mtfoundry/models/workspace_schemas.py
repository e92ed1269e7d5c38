"""MTFoundry - Workspace Schemas

工作区 API 的请求/响应模型
"""
from __future__ import annotations

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from mtfoundry.models.run_status import ExecutionState
from mtfoundry.models.schemas import (
    ExecutionHistoryEntry,
    ExecutionStats,
    GeneratedTest,
    GenerationStats,
    Relation,
    SeedArtifact,
)


# ============================================================
# Request Schemas
# ============================================================

class SeedCreate(BaseModel):
    """注册种子测试请求"""
    name: str = Field(..., min_length=1)
    description: str = ""
    test_type: str = "image"
    prompt: str = ""
    expected_result: str = ""
    image: Optional[str] = None


class RelationOverride(BaseModel):
    """覆盖目录默认值"""
    target_count: Optional[int] = Field(default=None, ge=0)
    base_rate: Optional[int] = Field(default=None, ge=0)


class RelationAddRequest(BaseModel):
    """添加蜕变关系请求"""
    names: list[str] = Field(..., min_length=1)
    overrides: dict[str, RelationOverride] = Field(default_factory=dict)


class RelationRemoveRequest(BaseModel):
    ids: list[UUID] = Field(..., min_length=1)


class SeedSelectRequest(BaseModel):
    seed_id: UUID


class SuiteRenameRequest(BaseModel):
    name: str


class SuiteDescriptionRequest(BaseModel):
    description: str = ""


class BatchDeleteRequest(BaseModel):
    """按 ID 批量删除（种子测试或执行历史）"""
    ids: list[UUID] = Field(..., min_length=1)


class SuiteSaveRequest(BaseModel):
    """保存套件请求（字段为空则使用当前工作区的值）"""
    name: Optional[str] = None
    description: Optional[str] = None


# ============================================================
# Response Schemas
# ============================================================

class GenerationRunResponse(BaseModel):
    run_id: UUID
    relations: dict[str, int]


class ExecutionStartResponse(BaseModel):
    started: bool
    total: int = 0
    notice: Optional[str] = None


class BatchDeleteResult(BaseModel):
    """批量删除结果：未找到的 ID 不视为错误"""
    deleted_ids: list[UUID] = Field(default_factory=list)
    missing_ids: list[UUID] = Field(default_factory=list)

    @classmethod
    def partition(cls, requested: list[UUID], deleted: list[UUID]) -> "BatchDeleteResult":
        done = set(deleted)
        return cls(
            deleted_ids=[i for i in requested if i in done],
            missing_ids=[i for i in requested if i not in done],
        )


class WorkspaceState(BaseModel):
    """工作区快照（只读）"""
    suite_id: Optional[UUID]
    suite_name: str
    description: str
    seed: Optional[SeedArtifact]
    relations: list[Relation]
    generated_tests: list[GeneratedTest]
    generation_stats: GenerationStats
    execution_stats: ExecutionStats
    is_generating: bool
    execution_state: ExecutionState
    history: list[ExecutionHistoryEntry]
