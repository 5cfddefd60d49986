"""FastAPI dependencies for the push endpoint."""

import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from netcontroller.core.config import settings
from netcontroller.services.push import ElementPusher


def get_pusher(request: Request) -> ElementPusher:
    """Return the pusher built during application startup."""
    pusher = getattr(request.app.state, "pusher", None)
    if pusher is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Network controller is not ready",
        )
    return pusher


async def require_push_key(
    x_api_key: Annotated[str | None, Header()] = None,
) -> None:
    """Reject push requests without the configured API key."""
    expected = settings.push_api_key
    if not expected:
        return
    if x_api_key is None or not secrets.compare_digest(x_api_key, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )


# Type aliases for dependency injection
Pusher = Annotated[ElementPusher, Depends(get_pusher)]
PushAuth = Annotated[None, Depends(require_push_key)]
