import os
import uuid
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from rich.console import Console
from app.api import health, info, download, files
from app.config.settings import config
from app.core.errors import FetchError
from app.core.logging import log_error, setup_logging
from app.core.state import state
from app.i18n import i18n
from app.infra.redis import init_redis, close_redis
from app.services.binary import YtDlpProvisioner
from app.services.orchestrator import FetchOrchestrator
from app.services.storage import StorageManager

console = Console()

app = FastAPI(
    title=config.api.title,
    version=config.api.version,
    docs_url="/docs" if config.api.debug else None,
    redoc_url=None
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.api.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.middleware("http")
async def assign_request_id(request: Request, call_next):
    request.state.request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
    response = await call_next(request)
    response.headers["X-Request-ID"] = request.state.request_id
    return response

@app.exception_handler(FetchError)
async def fetch_error_handler(request: Request, exc: FetchError):
    log_error(request, f"{exc.code}: {exc.message or ''}")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_payload(i18n.get(f"error.{exc.code}"))
    )

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": i18n.get("error.invalid_input"), "message": str(exc.errors()[:3])}
    )

# Routes
app.include_router(health.router, tags=["Health"])
app.include_router(info.router, prefix="/api", tags=["Info"])
app.include_router(download.router, prefix="/api", tags=["Download"])
app.include_router(files.router, prefix="/api", tags=["Saved downloads"])
app.include_router(files.static_router, tags=["Saved downloads"])

@app.on_event("startup")
async def startup_event():
    setup_logging(config.logging)

    storage = StorageManager(config)
    storage.resolve()
    console.print(f"[green]✓ Downloads directory: {storage.downloads_dir}[/green]")

    cookies = config.ytdlp.cookies_file
    state.cookies_present = bool(cookies) and os.path.isfile(cookies)
    if state.cookies_present:
        console.print(f"[green]✓ Cookie file found at {cookies}[/green]")
    else:
        console.print(f"[yellow]⚠ Cookie file not found at {cookies}, extractors run without cookies[/yellow]")

    # Resolution runs in the background; external-process attempts await it
    provisioner = YtDlpProvisioner(config.ytdlp)
    provisioner.start()

    state.storage = storage
    state.provisioner = provisioner
    state.orchestrator = FetchOrchestrator.from_config(config, storage, provisioner)
    state.redis = await init_redis(config.redis)

@app.on_event("shutdown")
async def shutdown_event():
    if state.orchestrator:
        await state.orchestrator.aclose()
    await close_redis()
