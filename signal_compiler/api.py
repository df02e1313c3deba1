# signal_compiler/api.py
from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import lru_cache
from typing import AsyncGenerator, Dict, List, Type

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from .catalog import PackCatalog
from .compile import DeadlinePolicy, SignalCompiler
from .exceptions import (
    AppError,
    InferenceMalformedResponseError,
    InferenceTimeoutError,
    InferenceTransportError,
    NoArtifactsError,
    NoCachedRunError,
    UnknownPackError,
)
from .llm import InferenceGateway, create_gateway
from .logging_utils import get_logger
from .render_report_md import render_report_markdown
from .settings import Settings, get_settings
from .store import FileRunStore, RunStore

LOGGER = get_logger(__name__)

HTTP_STATUS: Dict[Type[AppError], int] = {
    UnknownPackError: 400,
    NoCachedRunError: 404,
    NoArtifactsError: 422,
    InferenceTransportError: 502,
    InferenceMalformedResponseError: 502,
    InferenceTimeoutError: 504,
}


def status_for(exc: AppError) -> int:
    for cls in type(exc).__mro__:
        if cls in HTTP_STATUS:
            return HTTP_STATUS[cls]
    return 500


class HealthCheckResponse(BaseModel):
    """Liveness probe payload."""

    status: str = Field(..., description="Always 'ok' while the process serves requests")
    timestamp: datetime


class PackSummaryResponse(BaseModel):
    id: str
    name: str
    file_count: int


# ---- dependencies (overridable in tests) ----

@lru_cache
def get_catalog() -> PackCatalog:
    return PackCatalog.from_yaml(get_settings().packs_file)


@lru_cache
def get_store() -> RunStore:
    return FileRunStore(get_settings().runs_dir)


@lru_cache
def get_gateway() -> InferenceGateway:
    return create_gateway(get_settings())


def get_compiler(
    settings: Settings = Depends(get_settings),
    catalog: PackCatalog = Depends(get_catalog),
    store: RunStore = Depends(get_store),
    gateway: InferenceGateway = Depends(get_gateway),
) -> SignalCompiler:
    return SignalCompiler(
        catalog=catalog,
        store=store,
        gateway=gateway,
        search_roots=settings.search_roots,
        deadline=DeadlinePolicy(
            base_s=settings.inference_timeout_base_s,
            per_mb_s=settings.inference_timeout_per_mb_s,
            max_s=settings.inference_timeout_max_s,
        ),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    LOGGER.info(f"Starting {settings.app_name} v{settings.app_version} (provider={settings.llm_provider})")
    if settings.llm_provider == "gemini" and not settings.gemini_api_key:
        LOGGER.warning("SIGNAL_COMPILER_GEMINI_API_KEY not set; compiles will fall back to stored runs")
    yield
    LOGGER.info("Shutting down")


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        lifespan=lifespan,
        title=settings.app_name,
        version=settings.app_version,
        description="Evidence-verified signal packs from executive document bundles.",
    )

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        status = status_for(exc)
        log = LOGGER.error if status >= 500 else LOGGER.warning
        log(f"{request.method} {request.url.path} failed: {exc.kind}: {exc}")
        return JSONResponse(status_code=status, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        LOGGER.exception(f"{request.method} {request.url.path} failed unexpectedly: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": "InternalError", "detail": f"{type(exc).__name__}: {exc}"},
        )

    @app.get("/health", response_model=HealthCheckResponse, tags=["Health"])
    async def health_check() -> HealthCheckResponse:
        return HealthCheckResponse(status="ok", timestamp=datetime.now(timezone.utc))

    @app.get("/packs", response_model=List[PackSummaryResponse], tags=["Packs"])
    async def list_packs(catalog: PackCatalog = Depends(get_catalog)) -> List[PackSummaryResponse]:
        return [PackSummaryResponse(id=p.id, name=p.name, file_count=p.file_count) for p in catalog.list_packs()]

    @app.post("/packs/{pack_id}/compile", tags=["Compile"])
    async def compile_pack(pack_id: str, compiler: SignalCompiler = Depends(get_compiler)) -> JSONResponse:
        result = await compiler.compile(pack_id)
        return JSONResponse(content=result.pack.to_response())

    @app.post("/compile", tags=["Compile"])
    async def compile_default_pack(
        settings: Settings = Depends(get_settings),
        compiler: SignalCompiler = Depends(get_compiler),
    ) -> JSONResponse:
        result = await compiler.compile(settings.default_pack)
        return JSONResponse(content=result.pack.to_response())

    @app.get("/packs/{pack_id}/runs/latest", tags=["Export"])
    async def export_run(
        pack_id: str,
        catalog: PackCatalog = Depends(get_catalog),
        store: RunStore = Depends(get_store),
    ) -> JSONResponse:
        catalog.get(pack_id)
        record = store.load_latest(pack_id)
        if record is None:
            raise NoCachedRunError(f"No run stored for pack '{pack_id}'. Compile it first.")
        return JSONResponse(content=record.model_dump(mode="json"))

    @app.get("/packs/{pack_id}/report.md", tags=["Export"])
    async def export_report(
        pack_id: str,
        catalog: PackCatalog = Depends(get_catalog),
        store: RunStore = Depends(get_store),
    ) -> PlainTextResponse:
        catalog.get(pack_id)
        record = store.load_latest(pack_id)
        if record is None:
            raise NoCachedRunError(f"No run stored for pack '{pack_id}'. Compile it first.")
        return PlainTextResponse(render_report_markdown(record), media_type="text/markdown")

    return app


app = create_app()
