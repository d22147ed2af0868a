import time
from typing import Awaitable, Callable, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from . import __version__
from .config import Settings, load_settings
from .engine import CaptureEngine
from .errors import CaptureApiError, ShutdownError, ValidationError
from .log import configure_logging, log_error, log_info
from .models import EXPORT_FORMATS, CaptureFormat, CaptureOptions, CaptureResult

UNSUPPORTED_FORMAT = "Unsupported format"
GENERIC_ERROR = "Internal server error"
BODY_TOO_LARGE = "Request body too large"


def get_engine(request: Request) -> CaptureEngine:
    return request.app.state.engine


# --- Generic Request Handler ---
async def handle_request(
    handler_func: Callable[[CaptureOptions], Awaitable[CaptureResult]],
    options: CaptureOptions,
    engine: CaptureEngine,
) -> CaptureResult:
    """Run a capture and map engine errors onto HTTP errors without leaking internals."""
    try:
        return await handler_func(options)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except ShutdownError:
        raise HTTPException(status_code=503, detail="Service is shutting down")
    except CaptureApiError as e:
        log_error(f"Capture of {options.target} failed, bailed")
        engine.reporter.report(e)
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)


# --- API Endpoints ---
api_router = APIRouter()


@api_router.get("/status")
async def status():
    return PlainTextResponse("Capture API is running.")


@api_router.post("/export/{format}")
async def export_endpoint(format: str, options: CaptureOptions, engine: CaptureEngine = Depends(get_engine)):
    if format not in {f.value for f in EXPORT_FORMATS}:
        raise HTTPException(status_code=422, detail=UNSUPPORTED_FORMAT)
    capture_format = CaptureFormat(format)

    async def handler(opts):
        return await engine.export(opts, capture_format)

    result = await handle_request(handler, options, engine)
    return Response(content=result.payload, media_type=result.content_type)


@api_router.post("/performance")
async def performance_endpoint(options: CaptureOptions, engine: CaptureEngine = Depends(get_engine)):
    result = await handle_request(engine.measure, options, engine)
    return Response(content=result.payload, media_type=result.content_type)


class BodySizeLimitMiddleware:
    """Answers 413 once a request body grows past max_bytes, chunked or not."""

    def __init__(self, app: ASGIApp, max_bytes: int):
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not self.max_bytes:
            await self.app(scope, receive, send)
            return

        length = Headers(scope=scope).get("content-length", "")
        if length.isdigit() and int(length) > self.max_bytes:
            response = JSONResponse(status_code=413, content={"detail": BODY_TOO_LARGE})
            await response(scope, receive, send)
            return

        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_bytes:
                    raise HTTPException(status_code=413, detail=BODY_TOO_LARGE)
            return message

        await self.app(scope, limited_receive, send)


def create_app(settings: Optional[Settings] = None, engine: Optional[CaptureEngine] = None) -> FastAPI:
    settings = settings or load_settings()

    app = FastAPI(
        title="Capture API",
        description="Renders web pages in headless Chromium and returns images, PDFs, HTML snapshots or timings",
        version=__version__,
    )
    app.state.settings = settings
    app.state.engine = engine or CaptureEngine(settings)

    app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.body_limit_bytes)

    # The pool monitor owns the console when enabled
    if not settings.monitor:
        @app.middleware("http")
        async def access_log(request: Request, call_next):
            start = time.time()
            response = await call_next(request)
            if request.url.path != "/status":
                client = request.client.host if request.client else "unknown"
                elapsed = (time.time() - start) * 1000
                log_info(f'{client} "{request.method} {request.url.path}" {response.status_code} - {elapsed:.2f} ms')
            return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept"],
    )

    @app.on_event("startup")
    async def _startup_engine():
        # uvicorn installs its handlers before startup runs
        configure_logging(settings.log_level)
        await app.state.engine.start()
        log_info(f"Capture API started (concurrency={settings.max_concurrency}, allow_private_networks={settings.allow_private_networks})")

    @app.on_event("shutdown")
    async def _shutdown_engine():
        await app.state.engine.close()
        log_info("Capture API stopped")

    app.include_router(api_router)
    return app
