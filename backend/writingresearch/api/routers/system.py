from __future__ import annotations

import time

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from writingresearch.api.services.runtime import get_service
from writingresearch.service import WritingService
from writingresearch.version import APP_VERSION


router = APIRouter()

_READY_CACHE_TTL_SECONDS = 30.0


@router.get("/")
def root() -> dict[str, str]:
    return {"service": "writingresearch-backend", "status": "running", "version": APP_VERSION}


@router.get("/health")
def health(service: WritingService = Depends(get_service)) -> dict[str, str]:
    return {"status": "ok", "environment": service.settings.app_env}


@router.get("/ready", response_model=None)
def ready(request: Request, service: WritingService = Depends(get_service)) -> JSONResponse:
    cache: dict[str, object] = request.app.state.ready_cache
    cached_at = float(cache.get("ts") or 0.0)
    if time.time() - cached_at <= _READY_CACHE_TTL_SECONDS and isinstance(cache.get("payload"), dict):
        return JSONResponse(status_code=200 if cache.get("ok") else 503, content=cache["payload"])

    payload: dict[str, object] = {"status": "ready", "environment": service.settings.app_env, "checks": {}}
    ok = True
    try:
        payload["checks"]["storage"] = service.backend.probe()
    except Exception as exc:
        ok = False
        payload["status"] = "not_ready"
        payload["checks"]["storage"] = {"ok": False, "backend": service.backend.backend_name, "error": str(exc)}

    cache.update({"ts": time.time(), "ok": ok, "payload": payload})
    return JSONResponse(status_code=200 if ok else 503, content=payload)
