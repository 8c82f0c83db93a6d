import datetime
import logging
import os
from typing import Callable, Optional

from fastapi import Depends, FastAPI, File, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from .config import ALLOWED_IMAGE_TYPES, ALLOWED_VIDEO_TYPES, GATEWAY, LOG_LEVEL, MAX_MB
from .errors import (
    CapabilityConfigurationError,
    CapabilityFailure,
    DFVDError,
    FileTooLarge,
    InvalidInput,
    InvalidPageRequest,
    PersistenceConflict,
    PersistenceError,
    PersistenceUnavailable,
    RenderInputIncomplete,
)
from .gateway import ClassificationGateway, FakeGateway, GeminiGateway
from .history import DEFAULT_PAGE, DEFAULT_PAGE_SIZE, INVALID_PAGE_MESSAGE, HistoryService
from .report import render_pdf, report_filename
from .store import ReportStore, get_report_store

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("dfvd.api")


# -----------------------------
# App / CORS
# -----------------------------
app = FastAPI(title="dfvd")

origins = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in origins if o.strip()],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DFVDError)
async def dfvd_error_handler(request: Request, exc: DFVDError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


# -----------------------------
# Dependencies
# -----------------------------
GatewayFactory = Callable[[], ClassificationGateway]


def build_gateway() -> ClassificationGateway:
    if GATEWAY == "fake":
        return FakeGateway()
    return GeminiGateway()


def get_gateway_factory() -> GatewayFactory:
    # The gateway is built inside the handlers so a missing credential is
    # reported by the endpoint rather than by dependency resolution.
    return build_gateway


def get_store() -> ReportStore:
    return get_report_store()


def _utc_now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat().replace("+00:00", "Z")


def _client_ip(request: Request) -> str:
    return (
        request.headers.get("x-forwarded-for")
        or request.headers.get("x-real-ip")
        or (request.client.host if request.client else None)
        or "unknown"
    )


def _too_big(nbytes: int) -> bool:
    return nbytes > MAX_MB * 1024 * 1024


def check_upload(content_type: Optional[str], nbytes: int) -> None:
    if _too_big(nbytes):
        raise FileTooLarge(f"File size too large. Maximum size is {MAX_MB}MB")
    if content_type not in ALLOWED_VIDEO_TYPES and content_type not in ALLOWED_IMAGE_TYPES:
        raise InvalidInput(
            "Invalid file type. Supported formats: MP4, AVI, MOV, WebM for videos; JPEG, PNG, WebP for images"
        )


# -----------------------------
# Analysis
# -----------------------------
@app.post("/api/detect-deepfake")
async def detect_deepfake(
    request: Request,
    file: Optional[UploadFile] = File(default=None),
    make_gateway: GatewayFactory = Depends(get_gateway_factory),
    store: ReportStore = Depends(get_store),
):
    if file is None:
        raise InvalidInput("No file provided")

    contents = await file.read()
    check_upload(file.content_type, len(contents))

    try:
        gateway = make_gateway()
        report = await gateway.analyze(contents, file.filename or "upload", file.content_type)
    except CapabilityConfigurationError as e:
        logger.error(f"Capability misconfigured: {e}")
        return JSONResponse(
            status_code=500,
            content={"error": "API configuration error. Please check server configuration."},
        )
    except CapabilityFailure as e:
        logger.error(f"Analysis failed: {e}")
        return JSONResponse(status_code=500, content={"error": f"Analysis failed: {e.message}"})

    # Persisting is best effort; the analysis is returned either way.
    try:
        stored = store.save(report, ip_address=_client_ip(request), user_agent=request.headers.get("user-agent") or "unknown")
        report = stored.to_report()
    except PersistenceConflict as e:
        logger.warning(f"Failed to save analysis log: {e}")
    except PersistenceError as e:
        logger.error(f"Failed to save analysis log to database: {e}")

    return {"success": True, "data": report.to_payload()}


@app.get("/api/detect-deepfake")
async def health(make_gateway: GatewayFactory = Depends(get_gateway_factory), store: ReportStore = Depends(get_store)):
    db_connected = store.ping()
    try:
        gateway = make_gateway()
        connected = await gateway.test_connection()
    except Exception as e:
        logger.warning(f"Health check failed: {e}")
        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "geminiConnected": False,
                "databaseConnected": db_connected,
                "error": str(e),
                "timestamp": _utc_now_iso(),
            },
        )
    return {
        "status": "online",
        "geminiConnected": connected,
        "databaseConnected": db_connected,
        "timestamp": _utc_now_iso(),
    }


# -----------------------------
# History
# -----------------------------
def _int_param(raw: Optional[str], default: int) -> int:
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise InvalidPageRequest(INVALID_PAGE_MESSAGE) from e


@app.get("/api/history")
def history(
    page: Optional[str] = Query(default=None),
    limit: Optional[str] = Query(default=None),
    verdict: Optional[str] = Query(default=None),
    store: ReportStore = Depends(get_store),
):
    # Parsed here so malformed values get the same 400 as out-of-range ones.
    page_number = _int_param(page, DEFAULT_PAGE)
    page_size = _int_param(limit, DEFAULT_PAGE_SIZE)
    try:
        result = HistoryService(store).list(page=page_number, page_size=page_size, verdict=verdict)
    except PersistenceUnavailable as e:
        logger.error(f"Error fetching analysis history: {e}")
        return JSONResponse(status_code=500, content={"error": "Failed to fetch analysis history"})

    return {
        "success": True,
        "data": {
            "analyses": [item.model_dump(mode="json", by_alias=True, exclude_none=True) for item in result.items],
            "pagination": result.pagination(),
        },
    }


@app.head("/api/history")
def history_probe(store: ReportStore = Depends(get_store)):
    return Response(status_code=200 if store.ping() else 500)


@app.get("/api/history/{report_id}")
def get_report(report_id: str, store: ReportStore = Depends(get_store)):
    stored = store.find_by_id(report_id)
    if stored is None:
        return JSONResponse(status_code=404, content={"error": "Report not found"})
    return {"success": True, "data": stored.model_dump(mode="json", by_alias=True, exclude_none=True)}


def _pdf_response(pdf: bytes, report_id: str) -> Response:
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{report_filename(report_id)}"'},
    )


@app.get("/api/history/{report_id}/pdf")
def get_report_pdf(report_id: str, store: ReportStore = Depends(get_store)):
    stored = store.find_by_id(report_id)
    if stored is None:
        return JSONResponse(status_code=404, content={"error": "Report not found"})
    return _pdf_response(render_pdf(stored.to_report()), stored.report_id)


# -----------------------------
# Export
# -----------------------------
class ExportIn(BaseModel):
    report: Optional[dict] = None


@app.post("/api/generate-pdf")
def generate_pdf(payload: ExportIn):
    if not payload.report:
        raise InvalidInput("No report data provided")
    try:
        pdf = render_pdf(payload.report)
    except RenderInputIncomplete:
        raise
    except Exception as e:
        logger.exception(f"Error generating PDF: {e}")
        return JSONResponse(status_code=500, content={"error": "Failed to generate PDF"})
    return _pdf_response(pdf, payload.report["reportId"])
