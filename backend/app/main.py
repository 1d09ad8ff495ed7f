from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.api import api_router
from app.core.config import settings
from app.core.logging import app_logger, get_request_logger
from app.core.middleware import request_context_middleware
from app.core.exceptions import (
    ArticleServerException,
    AuthorizationError,
    ConcurrentModificationError,
    DatabaseError,
    NotFoundError,
    ValidationError,
)
from app.db.init import Database
from app.db.session import AsyncSessionLocal
from app.messaging.consumer import KafkaMessageConsumer
from app.messaging.publisher import create_publisher
from app.services.image_ingestion import ImageChangeHandler
from app.services.reference_store import reference_store
from app.services.scheduler import ArticleScheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """アプリケーションのライフサイクルを管理"""
    db = Database()
    scheduler = None
    consumer = None

    try:
        await db.init()

        # 参照データは起動時に一度読み込み、以降はスケジューラが更新する
        await reference_store.refresh(AsyncSessionLocal)

        app.state.publisher = create_publisher()

        if settings.SCHEDULER_ENABLED:
            scheduler = ArticleScheduler(AsyncSessionLocal, reference_store)
            scheduler.start()

        if settings.KAFKA_ENABLED:
            handler = ImageChangeHandler(AsyncSessionLocal)
            consumer = KafkaMessageConsumer([settings.KAFKA_IMAGE_CHANGED_TOPIC], handler.handle)
            consumer.start()
    except Exception as e:
        app_logger.error(f"Initialization failed: {str(e)}")
        raise

    app_logger.info(f"{settings.APP_NAME} started (reference version {reference_store.version})")
    yield

    app_logger.info("Shutting down application...")
    try:
        # 起動と逆順に止める
        if consumer is not None:
            await consumer.stop()
        if scheduler is not None:
            scheduler.shutdown()
        await app.state.publisher.close()
        await db.close()
    except Exception as e:
        app_logger.error(f"Error during shutdown: {str(e)}")


app = FastAPI(
    title=settings.APP_NAME,
    description="記事・イベント・お知らせの管理API",
    version=settings.APP_VERSION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)
app.middleware("http")(request_context_middleware)


def _status_code_for(exc: ArticleServerException) -> int:
    if isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, AuthorizationError):
        return status.HTTP_403_FORBIDDEN
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, ConcurrentModificationError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, DatabaseError):
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    return status.HTTP_400_BAD_REQUEST


@app.exception_handler(ArticleServerException)
async def article_server_exception_handler(request: Request, exc: ArticleServerException):
    logger = get_request_logger(request)
    status_code = _status_code_for(exc)
    if status_code >= 500:
        logger.error(f"Server error: {exc.message}")
    else:
        logger.warning(f"Business logic error: {exc.message}")

    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error_code": exc.error_code, "details": exc.details},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger = get_request_logger(request)

    # ctx.error に例外オブジェクトが入るとJSON化できない
    errors = []
    for error in exc.errors():
        ctx = error.get("ctx")
        if ctx and isinstance(ctx.get("error"), Exception):
            error = {**error, "ctx": {**ctx, "error": str(ctx["error"])}}
        errors.append(error)

    logger.warning(f"Validation error: {request.method} {request.url.path} Errors: {errors}")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": errors},
    )


app.include_router(api_router, prefix="/api/v1")


@app.get("/")
async def root():
    return {
        "message": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs_url": "/docs"
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "reference_version": reference_store.version}


if __name__ == "__main__":
    import uvicorn

    app_logger.info(
        f"Starting {settings.APP_NAME} in {settings.ENVIRONMENT} mode "
        f"(Log level: {settings.LOG_LEVEL})"
    )

    uvicorn.run(app, host="0.0.0.0", port=8000)
