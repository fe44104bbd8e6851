"""FastAPI application exposing inspections over HTTP and WebSocket."""
import os
import platform
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shared.logger import get_logger

from . import __version__
from .config import Settings
from .dive import DiveAnalyzer, ImageAnalyzer
from .docker_client import DockerClient
from .exceptions import InspectorError
from .inspection import InspectionService
from .models import utc_now
from .progress import ProgressRelay, ProgressTracker
from .schemas import (
    ActiveInspectionsResponse,
    CancelResponse,
    DependencyStatus,
    ErrorResponse,
    HistoryEntrySchema,
    HistoryResponse,
    InspectHealthResponse,
    InspectionResponse,
    LocalImage,
    LocalImagesResponse,
    ProgressResponse,
    PullRequest,
    PullResponse,
    RemoveResponse,
    ServiceHealthResponse,
)
from .validation import is_valid_image_name, validate_image_name

logger = get_logger(__name__)

TEMP_FILE_MAX_AGE = 3600


def create_app(
    settings: Optional[Settings] = None,
    docker_client: Optional[DockerClient] = None,
    analyzer: Optional[ImageAnalyzer] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Configuration, read from the environment when omitted
        docker_client: Docker adapter, a fresh DockerClient when omitted
        analyzer: Image analyzer, a DiveAnalyzer built from settings when omitted
    """
    settings = settings or Settings.from_env()
    docker_client = docker_client or DockerClient()
    analyzer = analyzer or DiveAnalyzer(
        command=settings.dive_command,
        timeout=settings.analysis_timeout,
        max_concurrent=settings.max_concurrent_analyses,
        temp_dir=settings.temp_dir,
        mock_fallback=settings.mock_fallback,
    )
    relay = ProgressRelay(ProgressTracker(retention=settings.progress_retention))

    # -----------------------------------------------------------------------
    # Lifespan
    # -----------------------------------------------------------------------

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Dive Inspector API starting ({settings.environment})")
        if settings.mock_fallback:
            logger.warning("Mock fallback is enabled: failed analyses return sample data")
        if isinstance(analyzer, DiveAnalyzer):
            removed = analyzer.cleanup_temp_files(TEMP_FILE_MAX_AGE)
            if removed:
                logger.info(f"Removed {removed} stale dive report(s)")
        yield
        logger.info("Dive Inspector API stopped")

    app = FastAPI(
        title="Dive Inspector",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.started = time.time()
    app.state.docker = docker_client
    app.state.relay = relay
    app.state.service = InspectionService(docker_client, analyzer, relay)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        t0 = time.time()
        response = await call_next(request)
        logger.debug(
            f"{request.method} {request.url.path} -> {response.status_code} ({(time.time() - t0) * 1000:.0f} ms)"
        )
        return response

    @app.exception_handler(InspectorError)
    async def inspector_error_handler(request: Request, exc: InspectorError):
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=type(exc).__name__,
                message=str(exc),
                image_name=request.path_params.get("image_name"),
            ).model_dump(),
        )

    # -----------------------------------------------------------------------
    # Service health
    # -----------------------------------------------------------------------

    def service_health() -> ServiceHealthResponse:
        return ServiceHealthResponse(
            timestamp=utc_now(),
            uptime=round(time.time() - app.state.started, 3),
            version=__version__,
            environment=settings.environment,
            system={
                "platform": platform.system().lower(),
                "python_version": platform.python_version(),
                "pid": str(os.getpid()),
            },
            docker=DependencyStatus(available=docker_client.is_available()),
        )

    app.add_api_route("/health", service_health, methods=["GET"], response_model=ServiceHealthResponse)
    app.add_api_route("/api/health", service_health, methods=["GET"], response_model=ServiceHealthResponse)

    # -----------------------------------------------------------------------
    # Inspections
    # -----------------------------------------------------------------------

    @app.get("/api/inspect/health", response_model=InspectHealthResponse)
    async def inspect_health():
        return await app.state.service.health()

    @app.get("/api/inspect/active", response_model=ActiveInspectionsResponse)
    async def active_inspections():
        records = relay.tracker.active()
        return ActiveInspectionsResponse(
            count=len(records),
            inspections=[ProgressResponse(**r.to_dict()) for r in records],
        )

    @app.get("/api/inspect/{image_name:path}/status", response_model=ProgressResponse)
    async def inspection_status(image_name: str):
        image_name = validate_image_name(image_name)
        record = relay.tracker.get(image_name)
        if record is None:
            raise HTTPException(404, detail=f"No inspection in progress for {image_name}")
        return ProgressResponse(**record.to_dict())

    @app.post("/api/inspect/{image_name:path}", response_model=InspectionResponse)
    async def inspect_image(image_name: str):
        analysis = await app.state.service.inspect(image_name)
        return InspectionResponse(
            image_name=analysis.image_name,
            analysis=analysis.to_dict(),
            completed_at=utc_now(),
        )

    @app.delete("/api/inspect/{image_name:path}", response_model=CancelResponse)
    async def cancel_inspection(image_name: str):
        image_name = validate_image_name(image_name)
        record = await app.state.service.cancel(image_name)
        if record is None:
            raise HTTPException(404, detail=f"No inspection in progress for {image_name}")
        return CancelResponse(image_name=image_name)

    # -----------------------------------------------------------------------
    # Local images
    # -----------------------------------------------------------------------

    @app.get("/api/images/local", response_model=LocalImagesResponse)
    def list_local_images():
        images = [LocalImage(**img) for img in docker_client.list_images()]
        return LocalImagesResponse(count=len(images), images=images)

    @app.post("/api/images/pull", response_model=PullResponse)
    def pull_image(request: PullRequest):
        image_name = validate_image_name(request.image_name)
        docker_client.pull_image(image_name)
        return PullResponse(image_name=image_name, pulled_at=utc_now())

    @app.get("/api/images/{image_name:path}/history", response_model=HistoryResponse)
    def image_history(image_name: str):
        image_name = validate_image_name(image_name)
        entries = docker_client.get_history(image_name)
        return HistoryResponse(
            image_name=image_name,
            layers=[
                HistoryEntrySchema(
                    id=e.id, size=e.size, size_human=e.size_human, created_by=e.created_by, comment=e.comment
                )
                for e in entries
            ],
        )

    @app.delete("/api/images/{image_name:path}", response_model=RemoveResponse)
    def remove_image(image_name: str, force: bool = False):
        image_name = validate_image_name(image_name)
        docker_client.remove_image(image_name, force=force)
        return RemoveResponse(image_name=image_name, removed_at=utc_now())

    # -----------------------------------------------------------------------
    # WebSocket
    # -----------------------------------------------------------------------

    @app.websocket("/ws/inspect")
    async def inspection_updates(websocket: WebSocket):
        await websocket.accept()
        logger.info(f"WebSocket client connected: {websocket.client}")
        try:
            while True:
                try:
                    message = await websocket.receive_json()
                except (ValueError, KeyError):
                    # KeyError: binary frame with no text payload
                    await websocket.send_json({"event": "error", "data": {"message": "Messages must be JSON text"}})
                    continue

                image_name = None
                if isinstance(message, dict) and message.get("event") == "subscribe":
                    image_name = message.get("imageName") or message.get("image_name")

                if not image_name:
                    await websocket.send_json({"event": "error", "data": {"message": "Expected a subscribe event"}})
                elif not is_valid_image_name(image_name):
                    await websocket.send_json(
                        {"event": "error", "data": {"message": f"Invalid image name: {image_name}"}}
                    )
                else:
                    relay.subscribe(image_name, websocket)
                    await websocket.send_json({"event": "subscribed", "data": {"image_name": image_name}})
        except WebSocketDisconnect:
            logger.info("WebSocket client disconnected")
        finally:
            dropped = relay.unsubscribe(websocket)
            logger.debug(f"Dropped {len(dropped)} subscription(s) for {websocket.client}")

    return app
