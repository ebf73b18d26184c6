import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from filevault.config import Settings, get_settings
from filevault.database import build_engine, build_session_maker, create_tables
from filevault.exceptions import FileVaultError, StoreFailure
from filevault.logging_config import setup_logging
from filevault.routes.auth import router as auth_router
from filevault.routes.health import router as health_router
from filevault.routes.storage import router as storage_router
from filevault.storage.s3 import S3Storage

logger = logging.getLogger(__name__)


async def handle_filevault_error(request: Request, exc: FileVaultError):
    if isinstance(exc, StoreFailure):
        # details are already logged where the store call failed
        return JSONResponse(status_code=exc.status_code, content={"detail": "An unexpected storage error occurred"})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    if settings.CREATE_TABLES:
        await create_tables(app.state.engine)
    app.state.storage.ensure_bucket()
    logger.info("File Vault started (environment=%s)", settings.ENVIRONMENT)
    yield
    await app.state.engine.dispose()


def create_app(settings: Settings | None = None, storage: S3Storage | None = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(title="File Vault API", lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = build_engine(settings)
    app.state.session_maker = build_session_maker(app.state.engine)
    app.state.storage = storage or S3Storage(settings)

    app.add_exception_handler(FileVaultError, handle_filevault_error)

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(storage_router)
    return app
