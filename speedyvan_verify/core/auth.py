"""Operator authentication for internal endpoints.

Internal callers (admin dashboard, booking workers) present the shared
``INTERNAL_API_KEY`` in the ``X-Internal-Key`` header.
"""

import secrets
from typing import Annotated

from fastapi import Header, HTTPException, Request, status

from speedyvan_verify.config import settings
from speedyvan_verify.logging_config import get_logger

logger = get_logger(__name__)

INTERNAL_KEY_HEADER = "X-Internal-Key"


async def require_internal_key(
    request: Request,
    x_internal_key: Annotated[str | None, Header(alias=INTERNAL_KEY_HEADER)] = None,
) -> None:
    """FastAPI dependency guarding operator-only endpoints.

    Raises:
        HTTPException 503: No internal key is configured.
        HTTPException 401: Header missing or wrong.
    """
    if not settings.internal_api_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Internal API is not configured",
        )

    if not x_internal_key or not secrets.compare_digest(
        x_internal_key.encode(), settings.internal_api_key.encode()
    ):
        client_ip = request.client.host if request.client else "unknown"
        logger.warning(
            "Rejected internal API call",
            path=request.url.path,
            client_ip=client_ip,
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid internal API key",
        )
