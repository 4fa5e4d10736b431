from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from ..health import HealthReporter

router = APIRouter(tags=["probes"])


def _reporter(request: Request) -> HealthReporter:
    return request.app.state.health


@router.get("/health")
async def health(request: Request) -> JSONResponse:
    result = await _reporter(request).health()
    code = 200 if result.healthy else 503
    return JSONResponse(status_code=code, content=result.model_dump(mode="json"))


@router.get("/ready")
async def ready(request: Request) -> JSONResponse:
    result = _reporter(request).ready()
    code = 200 if result.ready else 503
    return JSONResponse(status_code=code, content=result.model_dump(exclude_none=True))


@router.get("/live")
async def live() -> dict:
    return HealthReporter.live()


@router.get("/metrics")
def metrics() -> Response:
    return Response(generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)
