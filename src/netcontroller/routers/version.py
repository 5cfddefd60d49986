"""Public endpoints identifying the running controller."""

from fastapi import APIRouter

from netcontroller.core.version import get_version

COMPONENT = "network-controller"

router = APIRouter(tags=["version"])


@router.get("/api/version")
async def controller_version() -> dict[str, str]:
    """Build version of this network controller. No authentication."""
    return {"version": get_version(), "component": COMPONENT}


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
