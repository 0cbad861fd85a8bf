"""httpx client factory shared by the token and negotiate clients"""

import httpx
from loguru import logger

from inboxlink.shared.constants import DEFAULT_HTTP_TIMEOUT_SECONDS
from inboxlink.shared.logging import install_logging_bridge


async def _log_httpx_request(request: httpx.Request) -> None:
    """Log outbound requests with the Authorization header masked."""
    headers = {
        k: ("***" if k.lower() == "authorization" else v)
        for k, v in request.headers.items()
    }
    logger.debug(f"HTTPX request: {request.method} {request.url} {headers}")


async def _log_httpx_response(response: httpx.Response) -> None:
    """Log response status only, bodies may carry tokens."""
    logger.debug(
        f"HTTPX response: status={response.status_code} url={response.url}"
    )


def build_http_client(
    timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create an AsyncClient with request/response logging hooks.

    Args:
        timeout: Request timeout in seconds
        transport: Optional transport (tests inject ``httpx.MockTransport``)
    """
    install_logging_bridge()
    return httpx.AsyncClient(
        timeout=timeout,
        transport=transport,
        event_hooks={
            "request": [_log_httpx_request],
            "response": [_log_httpx_response],
        },
    )
