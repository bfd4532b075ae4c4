from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from intentcad import __version__
from intentcad.api.jobs import JobStore, job_store
from intentcad.api.routes import router
from intentcad.config import Settings, settings as default_settings
from intentcad.kernel_bridge import KernelBridge
from intentcad.logging_setup import configure_logging
from intentcad.pipeline import DesignSession


def create_app(
    settings: Optional[Settings] = None,
    *,
    session: Optional[DesignSession] = None,
    jobs: Optional[JobStore] = None,
) -> FastAPI:
    settings = settings or default_settings
    session = session or DesignSession(KernelBridge(settings=settings))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings.ensure_artifacts_dir()
        await session.start()
        try:
            yield
        finally:
            await session.close()

    app = FastAPI(title="intentcad", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.session = session
    app.state.jobs = jobs if jobs is not None else job_store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


def main() -> None:
    import uvicorn

    configure_logging()
    uvicorn.run(create_app(), host="127.0.0.1", port=8000)
