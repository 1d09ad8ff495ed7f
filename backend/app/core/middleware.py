import time
import uuid

from fastapi import Request

from app.core.logging import get_request_logger

REQUEST_ID_HEADER = "X-Request-ID"


async def request_context_middleware(request: Request, call_next):
    """リクエストIDの付与とアクセスログ

    上流から X-Request-ID が渡された場合はそれを引き継ぐ。
    """
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    request.state.request_id = request_id
    logger = get_request_logger(request)

    client = request.client.host if request.client else "unknown"
    logger.info(f"Request started: {request.method} {request.url.path} (Client: {client})")
    started = time.perf_counter()

    try:
        response = await call_next(request)
    except Exception as e:
        elapsed = time.perf_counter() - started
        logger.error(
            f"Request failed: {request.method} {request.url.path} Error: {str(e)} Process time: {elapsed:.3f}s",
            exc_info=True
        )
        raise

    elapsed = time.perf_counter() - started
    response.headers[REQUEST_ID_HEADER] = request_id
    response.headers["X-Process-Time"] = f"{elapsed:.6f}"
    logger.info(
        f"Request completed: {request.method} {request.url.path} "
        f"Status: {response.status_code} Process time: {elapsed:.3f}s"
    )
    return response
