import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from parking_logs.api.admin.audit import router as logs_router
from parking_logs.core.config import get_settings
from parking_logs.core.errors import register_exception_handlers
from parking_logs.core.logging import setup_logging
from parking_logs.db.mongo import get_logs_collection
from parking_logs.middleware.audit_capture import AuditCaptureMiddleware
from parking_logs.repositories.audit_repository import AuditRepository
from parking_logs.services.audit_service import AuditService

logger = logging.getLogger(__name__)


def create_app(audit_service: Optional[AuditService] = None) -> FastAPI:
    settings = get_settings()
    setup_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "audit_service", None) is None:
            app.state.audit_service = AuditService(AuditRepository(get_logs_collection()))
        service: AuditService = app.state.audit_service
        try:
            await service.repo.ensure_indexes()
        except Exception:
            # the store may come up later; ingestion tolerates it
            logger.error("Could not ensure log indexes", exc_info=True)
        logger.info("%s started (env=%s)", settings.app_name, settings.env)
        yield
        await service.drain()
        logger.info("%s stopped", settings.app_name)

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.audit_service = audit_service

    app.add_middleware(AuditCaptureMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # admin routers
    app.include_router(logs_router)

    @app.get("/")
    def root():
        return {"ok": True, "docs": "/docs"}

    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "parking_logs.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
