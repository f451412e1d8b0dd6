from typing import Literal

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from typing_extensions import TypedDict

router = APIRouter(tags=["Health"])


class HealthResponse(TypedDict):
    status: Literal["pass"]


@router.get("/health", responses={200: {"model": HealthResponse}})
async def health(request: Request):
    http = getattr(request.app.state, "http_client", None)
    if http is None or http.is_closed:
        return JSONResponse(
            status_code=500,
            content={"status": "fail", "reason": "registry client not available"},
        )

    return {"status": "pass"}
