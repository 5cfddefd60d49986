"""Push router used by the store to propagate a configuration immediately."""

from fastapi import APIRouter, Request, Response

from netcontroller.core.deps import PushAuth, Pusher

router = APIRouter(prefix="/api", tags=["push"])


@router.post("/push/{address}")
async def push_to_element(
    address: str,
    request: Request,
    pusher: Pusher,
    _: PushAuth,
) -> Response:
    """Contact one network element now instead of at the next cycle.

    The request body, when present, is sent as the element's new configuration.
    The response always carries the outcome as text, "OK" on success.
    """
    payload = await request.body()
    message, content_type = await pusher.push(address, payload or None)
    return Response(content=message, media_type=content_type)
