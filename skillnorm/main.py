# skillnorm/main.py
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse

from skillnorm.core.config import settings
from skillnorm.core.errors import CorpusFetchError, PipelineLockedError
from skillnorm.core.logging_config import get_logger, setup_logging
from skillnorm.db.base import Base
from skillnorm.db.session import engine

# Routers
from skillnorm.api.routes import router as api_router
from skillnorm.api.pipeline_routes import router as pipeline_router

logger = get_logger(__name__)


def create_app(create_tables: bool = True) -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.APP_NAME)

    # Root -> redirect to Swagger UI
    @app.get("/", include_in_schema=False)
    def root():
        return RedirectResponse(url="/docs")

    @app.exception_handler(PipelineLockedError)
    async def locked_handler(request: Request, exc: PipelineLockedError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(CorpusFetchError)
    async def corpus_handler(request: Request, exc: CorpusFetchError):
        logger.error(f"{request.url.path}: {exc}")
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    if create_tables:
        Base.metadata.create_all(bind=engine)

    app.include_router(api_router)       # /health, /skills, /jobs, /usage
    app.include_router(pipeline_router)  # /pipeline/*

    return app


app = create_app()
