from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path
from typing import Any, Literal, TypeVar

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from pydantic import BaseModel, Field

from .config import AppConfig, load_config
from .core import ResizeError, ResizeService
from .models import ResizeOptions
from .planner import selection_from_request
from .settings import Settings, get_settings

T = TypeVar("T")

_STATUS_BY_CODE: dict[str, int] = {
    "UNAUTHENTICATED": 401,
    "INVALID_WIDTH": 400,
    "UNKNOWN_PRESET": 400,
    "INVALID_DOCUMENT": 502,
    "FETCH_FAILED": 502,
}


class ScopeRange(BaseModel):
    start_index: int = Field(..., ge=0)
    end_index: int = Field(..., ge=0)


class ResizeRequest(BaseModel):
    target_width_cm: float = Field(..., gt=0, description="Target image width in centimeters")
    selected_image_ids: list[str] | None = Field(None, description="Explicit image ids to resize")
    scopes: list[ScopeRange] | None = Field(None, description="Offset ranges whose images are resized")
    preset: str | None = Field(None, description="Batch preset name")
    strategy: Literal["delete_insert", "property_update"] | None = Field(
        None, description="Overrides the configured planner strategy"
    )


async def run_sync(func: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
    """Execute *func* in a worker thread and return the result."""

    return await asyncio.to_thread(func, *args, **kwargs)


def get_service(request: Request) -> ResizeService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="SERVICE_UNAVAILABLE")
    return service


def get_access_token(authorization: str | None = Header(None)) -> str:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="UNAUTHENTICATED")
    return token.strip()


def _http_error(exc: ResizeError) -> HTTPException:
    return HTTPException(status_code=_STATUS_BY_CODE.get(exc.code, 500), detail=exc.code)


def create_app(
    config_path: Path | None = None,
    *,
    config: AppConfig | None = None,
    service: ResizeService | None = None,
    require_enabled: bool = True,
) -> FastAPI:
    settings = get_settings()
    config = config or _prepare_config(settings, config_path)
    if require_enabled and not config.runtime.enable_local_api:
        raise RuntimeError("Local API is disabled. Enable it via config.runtime.enable_local_api")
    app = FastAPI(title="Document Image Resizer", version="0.1.0")
    app.state.config = config
    app.state.service = service or ResizeService(config)

    @app.get("/health", tags=["health"])
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/v1/documents/{document_id}/structure", tags=["documents"])
    async def document_structure(
        document_id: str,
        token: str = Depends(get_access_token),
        resizer: ResizeService = Depends(get_service),
    ) -> dict[str, Any]:
        try:
            structure = await run_sync(resizer.structure, token, document_id)
        except ResizeError as exc:
            raise _http_error(exc) from exc
        return structure.to_payload()

    @app.post("/api/v1/documents/{document_id}/resize", tags=["documents"])
    async def resize_images(
        document_id: str,
        body: ResizeRequest,
        token: str = Depends(get_access_token),
        resizer: ResizeService = Depends(get_service),
    ) -> dict[str, Any]:
        scopes = [(scope.start_index, scope.end_index) for scope in body.scopes] if body.scopes is not None else None
        options = ResizeOptions(
            target_width_cm=body.target_width_cm,
            selection=selection_from_request(
                body.selected_image_ids,
                scopes,
                default=config.planner.default_selection,
            ),
            preset=body.preset,
            strategy=body.strategy,
        )
        try:
            result = await run_sync(resizer.resize, token, document_id, options)
        except ResizeError as exc:
            raise _http_error(exc) from exc
        execution = result.execution
        return {
            "run_id": result.run_id,
            "results": {
                "total": execution.total_count,
                "success": execution.success_count,
                "failed": execution.failed_count,
                "skipped": execution.skipped_count,
            },
            "new_id_mapping": execution.id_map,
            "message": result.summary,
            "warnings": result.warnings,
        }

    return app


def _prepare_config(settings: Settings, config_path: Path | None) -> AppConfig:
    config = load_config(config_path or settings.config_path)
    if settings.enable_local_api is not None:
        config.runtime.enable_local_api = settings.enable_local_api
    return config


__all__ = ["ResizeRequest", "create_app", "get_access_token", "get_service", "run_sync"]
