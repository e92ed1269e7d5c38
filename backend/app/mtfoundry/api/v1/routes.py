from fastapi import APIRouter

from mtfoundry.api.v1.routes_seeds import router as seeds_router
from mtfoundry.api.v1.routes_workspace import router as workspace_router
from mtfoundry.api.v1.routes_executions import router as executions_router
from mtfoundry.api.v1.routes_suites import router as suites_router
from mtfoundry.api.v1.routes_events import router as events_router

# v1 统一入口：所有 v1 API 都从 /api/v1 开始
router = APIRouter(prefix="/api/v1")

router.include_router(seeds_router)
router.include_router(workspace_router)
router.include_router(executions_router)
router.include_router(suites_router)
router.include_router(events_router)
