"""MTFoundry - API Dependencies

工作区依赖注入与异常到 HTTP 状态码的映射。
"""
from __future__ import annotations

from fastapi import HTTPException

from mtfoundry.services.simulation.errors import (
    CallerError,
    ExecutionAlreadyRunningError,
    GenerationInProgressError,
    HistoryEntryNotFoundError,
    SeedNotFoundError,
    SimulationError,
    SuiteNotFoundError,
)
from mtfoundry.services.workspace_service import MetamorphicWorkspace, get_workspace


def workspace_dep() -> MetamorphicWorkspace:
    """获取全局工作区（依赖注入，可在测试中覆盖）"""
    return get_workspace()


def to_http_error(exc: SimulationError) -> HTTPException:
    """模拟引擎异常 -> HTTPException"""
    if isinstance(exc, (SuiteNotFoundError, SeedNotFoundError, HistoryEntryNotFoundError)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (ExecutionAlreadyRunningError, GenerationInProgressError)):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, CallerError):
        return HTTPException(status_code=400, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))
