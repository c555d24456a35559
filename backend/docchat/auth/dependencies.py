"""FastAPI dependency resolving the calling user."""
import logging
from typing import Optional

from fastapi import HTTPException, Request

from docchat.config import get_config
from docchat.errors import Unauthorized

logger = logging.getLogger(__name__)


def read_user_id(request: Request) -> Optional[str]:
    """Caller id from the configured identity header, or None when blank."""
    header = get_config().auth.user_header
    user_id = (request.headers.get(header) or "").strip()
    if not user_id:
        logger.info("[auth] rejected %s %s: no %s header", request.method, request.url.path, header)
        return None
    return user_id


async def get_current_user_id(request: Request) -> str:
    """Return the caller id from the configured identity header.

    Raises:
        HTTPException 401: If the header is missing or blank.
    """
    user_id = read_user_id(request)
    if user_id is None:
        error = Unauthorized()
        raise HTTPException(status_code=error.status_code, detail=error.message)
    return user_id
