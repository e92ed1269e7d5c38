from contextlib import asynccontextmanager

from fastapi import FastAPI

from mtfoundry.api.v1.routes import router as v1_router
from mtfoundry.database.config import init_db
from mtfoundry.logging_config import setup_logging


@asynccontextmanager
async def lifespan(_app: FastAPI):
    setup_logging()
    init_db()
    yield


app = FastAPI(title="MTFoundry", lifespan=lifespan)
app.include_router(v1_router)


@app.get("/healthz", include_in_schema=False)
def healthz():
    return {"ok": True}
