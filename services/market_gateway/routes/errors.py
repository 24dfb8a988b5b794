"""
Translate gateway errors into the JSON bodies the dashboard expects
"""

from fastapi.responses import JSONResponse

from shared.errors import GatewayError, RateLimited, UpstreamError


def error_response(exc: GatewayError, upstream_message: str) -> JSONResponse:
    """
    429 {error, retryAfter} for local throttling, 429 {error} for provider
    quota, 500 {error} for upstream failures, 503 for the cache store.
    """
    content = exc.to_response()
    headers = None
    if isinstance(exc, UpstreamError):
        content = {"error": upstream_message}
    if isinstance(exc, RateLimited):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)
