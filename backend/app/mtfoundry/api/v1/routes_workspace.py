"""MTFoundry - Workspace API Routes

当前运行：套件信息、种子选择、关系集合与生成控制
"""
from fastapi import APIRouter, Depends, Query

from mtfoundry.api.deps import to_http_error, workspace_dep
from mtfoundry.models.schemas import Relation
from mtfoundry.models.workspace_schemas import (
    GenerationRunResponse,
    RelationAddRequest,
    RelationRemoveRequest,
    SeedSelectRequest,
    SuiteDescriptionRequest,
    SuiteRenameRequest,
    WorkspaceState,
)
from mtfoundry.services.simulation.catalog import RelationDefaults
from mtfoundry.services.simulation.errors import SimulationError
from mtfoundry.services.workspace_service import MetamorphicWorkspace

# 工作区只在事件循环线程上修改，路由均为 async def
router = APIRouter(prefix="/workspace", tags=["workspace"])


@router.get("", response_model=WorkspaceState)
async def get_state(ws: MetamorphicWorkspace = Depends(workspace_dep)):
    return ws.snapshot()


@router.get("/catalog", response_model=dict[str, RelationDefaults])
async def get_catalog(ws: MetamorphicWorkspace = Depends(workspace_dep)):
    """可选的蜕变关系及其默认值"""
    return ws.catalog.relations


@router.post("/new", response_model=WorkspaceState)
async def new_suite(ws: MetamorphicWorkspace = Depends(workspace_dep)):
    ws.new_suite()
    return ws.snapshot()


@router.put("/name", response_model=WorkspaceState)
async def rename_suite(req: SuiteRenameRequest, ws: MetamorphicWorkspace = Depends(workspace_dep)):
    ws.rename_suite(req.name)
    return ws.snapshot()


@router.put("/description", response_model=WorkspaceState)
async def set_description(req: SuiteDescriptionRequest, ws: MetamorphicWorkspace = Depends(workspace_dep)):
    ws.set_description(req.description)
    return ws.snapshot()


@router.put("/seed", response_model=WorkspaceState)
async def select_seed(req: SeedSelectRequest, ws: MetamorphicWorkspace = Depends(workspace_dep)):
    try:
        ws.select_seed_by_id(req.seed_id)
    except SimulationError as e:
        raise to_http_error(e)
    return ws.snapshot()


@router.post("/relations", response_model=list[Relation], status_code=201)
async def add_relations(req: RelationAddRequest, ws: MetamorphicWorkspace = Depends(workspace_dep)):
    try:
        return ws.add_relations(req.names, req.overrides)
    except SimulationError as e:
        raise to_http_error(e)


@router.post("/relations/remove", response_model=list[Relation])
async def remove_relations(req: RelationRemoveRequest, ws: MetamorphicWorkspace = Depends(workspace_dep)):
    return ws.remove_relations(req.ids)


@router.post("/generate", response_model=GenerationRunResponse)
async def start_generation(
    wait: bool = Query(False, description="等待生成结束后再返回"),
    ws: MetamorphicWorkspace = Depends(workspace_dep),
):
    """启动生成（取代正在进行的运行）"""
    try:
        handle = ws.start_generation()
    except SimulationError as e:
        raise to_http_error(e)
    if wait:
        await handle.wait()
    return GenerationRunResponse(
        run_id=handle.run_id,
        relations={r.name: r.target_count for r in ws.relations},
    )


@router.post("/generate/cancel", response_model=WorkspaceState)
async def cancel_generation(ws: MetamorphicWorkspace = Depends(workspace_dep)):
    """取消生成并等待写入队列排空，返回的快照不再处于生成中"""
    handle = ws.cancel_generation()
    if handle is not None:
        await handle.wait()
    return ws.snapshot()
