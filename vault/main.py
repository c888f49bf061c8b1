"""Entry point for the vault service."""

import time
import uuid

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from common.logging_config import setup_logging
from vault import __version__, config
from vault.database import get_db_connection, init_database
from vault.exceptions import ErrorKind, VaultError
from vault.routes.file_routes import router as file_router
from vault.routes.sync_routes import router as sync_router
from vault.schemas.common import ErrorResponse
from vault.service_locator import get_queue_manager, get_tiered_store
from vault.sync.scheduler import SyncScheduler

logger = setup_logging('vault')

app = FastAPI(
    title="DocVault",
    description="Document storage with tiered replication",
    version=__version__
)

sync_scheduler = None

ERROR_STATUS_CODES = {
    ErrorKind.INVALID_TYPE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.PAYLOAD_TOO_LARGE: status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    ErrorKind.TOO_MANY_FILES: status.HTTP_400_BAD_REQUEST,
    ErrorKind.PROCESSING_FAILED: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.STORAGE_FULL: status.HTTP_507_INSUFFICIENT_STORAGE,
    ErrorKind.IO_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.TRANSFER_TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    ErrorKind.REMOTE_UNREACHABLE: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.REMOTE_REJECTED: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.CHECKSUM_MISMATCH: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.ALL_TIERS_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.SYNC_IN_PROGRESS: status.HTTP_409_CONFLICT,
    ErrorKind.SYNC_DISABLED: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Middleware to log all HTTP requests and responses.
    """
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    start_time = time.time()

    logger.info(f"Request started: {request.method} {request.url.path} [request_id={request_id}]")

    response = await call_next(request)

    duration = time.time() - start_time

    logger.info(
        f"Request completed: {request.method} {request.url.path} "
        f"status={response.status_code} duration={duration:.3f}s [request_id={request_id}]"
    )

    response.headers["X-Request-ID"] = request_id

    return response


@app.on_event("startup")
async def startup_event():
    """
    Initialize database and start the sync scheduler on application startup.
    """
    global sync_scheduler

    logger.info("Vault service starting up...")

    init_database()
    logger.info("Database initialized")

    store = get_tiered_store()
    if not store.remote_enabled:
        logger.info("No remote tier configured - replication disabled")
    elif config.SYNC_ENABLED:
        sync_scheduler = SyncScheduler(get_queue_manager())
        await sync_scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """
    Cleanup resources on application shutdown.
    """
    logger.info("Vault service shutting down...")

    if sync_scheduler:
        await sync_scheduler.stop()

    await get_tiered_store().close()


@app.exception_handler(VaultError)
async def vault_error_handler(request: Request, exc: VaultError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    status_code = ERROR_STATUS_CODES.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
    if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error(
            f"{exc.kind.value}: {exc} [request_id={request_id}] path={request.url.path}",
            exc_info=True
        )
    else:
        logger.warning(f"{exc.kind.value}: {exc} [request_id={request_id}] path={request.url.path}")
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(detail=str(exc), code=exc.kind.value).model_dump()
    )


app.include_router(file_router)
app.include_router(sync_router)


@app.get("/")
async def root():
    """
    Root endpoint for health check.
    """
    return {"message": "DocVault API", "status": "running"}


@app.get("/health")
async def health_check():
    """
    Health check endpoint for Docker healthcheck.
    Returns 200 if service is alive.
    """
    return {"status": "healthy", "service": "vault"}


@app.get("/ready")
async def ready_check():
    """
    Readiness check endpoint.
    Verifies database and remote tier connectivity.
    """
    try:
        with get_db_connection() as conn:
            conn.execute("SELECT 1")
        db_status = "ok"
    except Exception as e:
        db_status = f"error: {str(e)}"

    store = get_tiered_store()
    if not store.remote_enabled:
        remote_status = "disabled"
    else:
        try:
            remote_status = "ok" if await store.remote.ping() else "unreachable"
        except Exception as e:
            remote_status = f"error: {str(e)}"

    ready = db_status == "ok" and remote_status in ("ok", "disabled")
    status_code = status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE

    return JSONResponse(
        status_code=status_code,
        content={
            "ready": ready,
            "database": db_status,
            "remote_tier": remote_status
        }
    )


def main() -> None:
    """
    Start the FastAPI server with uvicorn.
    """
    uvicorn.run(
        "vault.main:app",
        host=config.VAULT_HOST,
        port=config.VAULT_PORT,
    )


if __name__ == "__main__":
    main()
