"""MTFoundry - Seed Test API Routes

种子测试注册 API 路由
"""
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from mtfoundry.database.config import get_db
from mtfoundry.models.schemas import SeedArtifact
from mtfoundry.models.workspace_schemas import BatchDeleteRequest, BatchDeleteResult, SeedCreate
from mtfoundry.services.suite_store import SuiteStore, export_records

router = APIRouter(prefix="/seeds", tags=["seeds"])


@router.post("", response_model=SeedArtifact, status_code=201)
def register_seed(req: SeedCreate, db: Session = Depends(get_db)):
    """注册种子测试"""
    seed = SeedArtifact(**req.model_dump())
    return SuiteStore(db).put_seed(seed)


@router.get("", response_model=list[SeedArtifact])
def list_seeds(db: Session = Depends(get_db)):
    return SuiteStore(db).list_seeds()


@router.get("/export")
def export_seeds(db: Session = Depends(get_db)):
    """导出种子测试 JSON（内联图片替换为占位路径）"""
    items = [s.model_dump(mode="json") for s in SuiteStore(db).list_seeds()]
    return export_records(items)


@router.get("/{seed_id}", response_model=SeedArtifact)
def get_seed(seed_id: UUID, db: Session = Depends(get_db)):
    seed = SuiteStore(db).get_seed(seed_id)
    if seed is None:
        raise HTTPException(status_code=404, detail="seed test not found")
    return seed


@router.delete("/{seed_id}", status_code=204)
def delete_seed(seed_id: UUID, db: Session = Depends(get_db)):
    if not SuiteStore(db).delete_seed(seed_id):
        raise HTTPException(status_code=404, detail="seed test not found")


@router.post("/batch-delete", response_model=BatchDeleteResult)
def batch_delete_seeds(req: BatchDeleteRequest, db: Session = Depends(get_db)):
    store = SuiteStore(db)
    deleted = [seed_id for seed_id in req.ids if store.delete_seed(seed_id)]
    return BatchDeleteResult.partition(req.ids, deleted)
