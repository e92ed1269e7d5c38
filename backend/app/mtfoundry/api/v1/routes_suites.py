"""MTFoundry - Test Suite API Routes

测试套件保存/加载与执行历史 API 路由
"""
from uuid import UUID

from fastapi import APIRouter, Depends

from mtfoundry.api.deps import to_http_error, workspace_dep
from mtfoundry.models.schemas import ExecutionHistoryEntry, ExecutionStats, SavedTestSuite
from mtfoundry.models.workspace_schemas import (
    BatchDeleteRequest,
    BatchDeleteResult,
    SuiteSaveRequest,
    WorkspaceState,
)
from mtfoundry.services.simulation.errors import SimulationError
from mtfoundry.services.suite_store import export_records
from mtfoundry.services.workspace_service import MetamorphicWorkspace

router = APIRouter(tags=["suites"])


# ============================================================
# Suites
# ============================================================

@router.get("/suites", response_model=list[SavedTestSuite])
async def list_suites(ws: MetamorphicWorkspace = Depends(workspace_dep)):
    return ws.list_suites()


@router.get("/suites/export")
async def export_suites(ws: MetamorphicWorkspace = Depends(workspace_dep)):
    """导出测试套件 JSON（内联图片替换为占位路径）"""
    return export_records(s.model_dump(mode="json") for s in ws.list_suites())


@router.post("/suites", response_model=SavedTestSuite)
async def save_suite(req: SuiteSaveRequest, ws: MetamorphicWorkspace = Depends(workspace_dep)):
    """保存当前运行为测试套件"""
    try:
        return ws.save_suite(name=req.name, description=req.description)
    except SimulationError as e:
        raise to_http_error(e)


@router.post("/suites/{suite_id}/load", response_model=WorkspaceState)
async def load_suite(suite_id: UUID, ws: MetamorphicWorkspace = Depends(workspace_dep)):
    try:
        ws.load_suite(suite_id)
    except SimulationError as e:
        raise to_http_error(e)
    return ws.snapshot()


@router.delete("/suites/{suite_id}", status_code=204)
async def delete_suite(suite_id: UUID, ws: MetamorphicWorkspace = Depends(workspace_dep)):
    """删除测试套件（执行历史级联删除）"""
    try:
        ws.delete_suite(suite_id)
    except SimulationError as e:
        raise to_http_error(e)


# ============================================================
# History
# ============================================================

@router.get("/history", response_model=list[ExecutionHistoryEntry])
async def list_history(ws: MetamorphicWorkspace = Depends(workspace_dep)):
    """当前套件的执行历史"""
    return ws.history()


@router.post("/history/batch-delete", response_model=BatchDeleteResult)
async def delete_history(req: BatchDeleteRequest, ws: MetamorphicWorkspace = Depends(workspace_dep)):
    """批量删除当前套件的执行历史，返回实际删除的记录 ID"""
    return BatchDeleteResult.partition(req.ids, ws.delete_history(req.ids))


@router.post("/history/{entry_id}/show", response_model=ExecutionStats)
async def show_history_entry(entry_id: UUID, ws: MetamorphicWorkspace = Depends(workspace_dep)):
    """把历史记录载入当前执行统计视图"""
    try:
        return ws.show_history_entry(entry_id)
    except SimulationError as e:
        raise to_http_error(e)
