"""MTFoundry - Execution API Routes

执行控制 API 路由
"""
from fastapi import APIRouter, Depends, Query

from mtfoundry.api.deps import to_http_error, workspace_dep
from mtfoundry.models.schemas import ExecutionStats, OutcomeSplit
from mtfoundry.models.workspace_schemas import ExecutionStartResponse
from mtfoundry.services.simulation.errors import SimulationError
from mtfoundry.services.workspace_service import MetamorphicWorkspace

router = APIRouter(prefix="/executions", tags=["executions"])


@router.post("", response_model=ExecutionStartResponse)
async def start_execution(
    wait: bool = Query(False, description="等待执行结束后再返回"),
    ws: MetamorphicWorkspace = Depends(workspace_dep),
):
    """启动执行；没有可执行的测试时返回 started=false 与提示信息"""
    try:
        result = ws.start_execution()
    except SimulationError as e:
        raise to_http_error(e)
    if wait and result.started:
        await ws.scheduler.wait()
    return ExecutionStartResponse(started=result.started, total=result.total, notice=result.notice)


@router.post("/cancel", response_model=ExecutionStats)
async def cancel_execution(ws: MetamorphicWorkspace = Depends(workspace_dep)):
    ws.cancel_execution()
    return ws.scheduler.snapshot()


@router.get("/stats", response_model=ExecutionStats)
async def get_execution_stats(ws: MetamorphicWorkspace = Depends(workspace_dep)):
    return ws.scheduler.snapshot()


@router.get("/splits", response_model=list[OutcomeSplit])
async def preview_splits(ws: MetamorphicWorkspace = Depends(workspace_dep)):
    """预览当前生成结果的目标划分"""
    return ws.allocator().allocate(ws.generation_stats.mr_counts)
