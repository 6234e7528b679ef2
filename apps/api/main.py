import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from apps.api.jobs import start_scheduler, stop_scheduler
from apps.api.routers import build, hooks
from packages.db import create_all, engine, ensure_build_state, session_scope

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_all(engine)
    with session_scope() as db:
        ensure_build_state(db)
    start_scheduler()
    try:
        yield
    finally:
        stop_scheduler()


app = FastAPI(title="pagesmith", lifespan=lifespan)

app.include_router(build.router, prefix="/api")
app.include_router(hooks.router, prefix="/api")


@app.get("/", tags=["meta"])
async def root():
    return JSONResponse(
        {
            "app": "pagesmith",
            "status": "ok",
            "api_base": "/api",
            "docs": "/docs",
        }
    )
