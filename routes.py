import logging
import re
from typing import Dict, Optional
from urllib.parse import quote

from fastapi import APIRouter, BackgroundTasks, Body, File, Header, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, Response

from analysis_service import AnalysisFailed
from auth import AuthClient, AuthError
from controller import (
    ANALYSIS_FAILED_MESSAGE,
    AnalysisInProgress,
    AnalyzerController,
    ExportFailed,
    NoImageSelected,
    NoReport,
)
from schemas import (
    AuthSession,
    Credentials,
    ExportOptions,
    ReportOut,
    SessionCreated,
    SessionSnapshot,
    UsageStats,
)
from state import SessionRegistry
from stats import has_role, usage_counts
from validation import UploadCandidate, UploadRejected

logger = logging.getLogger(__name__)

router = APIRouter()

_SESSION_ID = re.compile(r"^session_\d+_[0-9a-z]{9}$")
_NON_ASCII = re.compile(r"[^\x20-\x7e]")
CHUNK_SIZE = 1024 * 1024  # 1 MB


def _registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def _content_disposition(filename: str) -> str:
    """Attachment header with an ASCII fallback plus the RFC 5987 UTF-8 name."""
    fallback = _NON_ASCII.sub("_", filename)
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


def _controller(request: Request, session_id: str) -> AnalyzerController:
    if not _SESSION_ID.match(session_id):
        raise HTTPException(status_code=404, detail="Unknown session")
    controller = _registry(request).get(session_id)
    if controller is None:
        raise HTTPException(status_code=404, detail="Unknown session")
    return controller


@router.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@router.post("/sessions", response_model=SessionCreated, status_code=201)
async def create_session(request: Request) -> Dict[str, str]:
    controller = _registry(request).create()
    return {"session_id": controller.session_id}


@router.post("/sessions/{session_id}/upload", response_model=SessionSnapshot)
async def upload(session_id: str, request: Request, file: UploadFile = File(...)):
    controller = _controller(request, session_id)
    max_bytes = controller.policy.max_bytes

    # Read at most one byte past the limit; that is enough to reject it.
    content = bytearray()
    while len(content) <= max_bytes:
        chunk = await file.read(CHUNK_SIZE)
        if not chunk:
            break
        content.extend(chunk)

    candidate = UploadCandidate(
        filename=file.filename or "",
        content_type=file.content_type,
        data=bytes(content[: max_bytes + 1]),
    )

    try:
        controller.select_file(candidate)
    except UploadRejected as e:
        return JSONResponse(status_code=422, content={"detail": str(e), "reason": e.reason.value})
    except AnalysisInProgress as e:
        raise HTTPException(status_code=409, detail=str(e))

    return controller.snapshot()


async def run_analysis(controller: AnalyzerController, token: int) -> None:
    try:
        await controller.run_analysis(token)
    except AnalysisFailed:
        # Already recorded on the controller and in the usage log.
        pass


@router.post("/sessions/{session_id}/analyze", status_code=202)
async def analyze(session_id: str, request: Request, background_tasks: BackgroundTasks) -> Dict[str, str]:
    controller = _controller(request, session_id)

    try:
        token = controller.begin_analysis()
    except NoImageSelected as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AnalysisInProgress as e:
        raise HTTPException(status_code=409, detail=str(e))

    background_tasks.add_task(run_analysis, controller, token)

    return {"message": "analysis started"}


@router.get("/sessions/{session_id}/status", response_model=SessionSnapshot)
async def status(session_id: str, request: Request):
    return _controller(request, session_id).snapshot()


@router.get("/sessions/{session_id}/report", response_model=ReportOut)
async def report(session_id: str, request: Request) -> Dict[str, str]:
    controller = _controller(request, session_id)
    if not controller.has_report:
        if controller.last_error:
            raise HTTPException(status_code=404, detail=ANALYSIS_FAILED_MESSAGE)
        raise HTTPException(status_code=404, detail="Report not found")
    return {"analysis": controller.report}


@router.post("/sessions/{session_id}/export")
async def export_report(
    session_id: str,
    request: Request,
    options: Optional[ExportOptions] = Body(default=None),
) -> Response:
    """Render the current report as a PDF attachment."""
    controller = _controller(request, session_id)
    options = options or ExportOptions()

    try:
        result = await controller.export_pdf(title=options.title, filename=options.filename)
    except NoReport as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ExportFailed:
        raise HTTPException(
            status_code=500,
            detail="There was an error generating the PDF. Please try again.",
        )

    return Response(
        content=result.data,
        media_type="application/pdf",
        headers={"Content-Disposition": _content_disposition(result.filename)},
    )


@router.delete("/sessions/{session_id}", response_model=SessionSnapshot)
async def clear_session(session_id: str, request: Request):
    controller = _controller(request, session_id)
    controller.clear()
    snapshot = controller.snapshot()
    _registry(request).drop(session_id)
    return snapshot


def _auth_client(request: Request) -> AuthClient:
    return request.app.state.auth_client


@router.post("/auth/sign-in", response_model=AuthSession)
async def sign_in(credentials: Credentials, request: Request):
    try:
        return await _auth_client(request).sign_in(credentials.email, credentials.password)
    except AuthError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/auth/sign-up", response_model=AuthSession)
async def sign_up(credentials: Credentials, request: Request):
    try:
        return await _auth_client(request).sign_up(credentials.email, credentials.password)
    except AuthError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/stats", response_model=UsageStats)
async def stats(request: Request, authorization: Optional[str] = Header(default=None)):
    """Usage counts for the internal stats view; admins only."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Not signed in")
    token = authorization.split(" ", 1)[1].strip()

    try:
        user = await _auth_client(request).get_user(token)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=e.message)

    database = request.app.state.database
    if not await has_role(database, user.get("id", ""), "admin"):
        raise HTTPException(status_code=403, detail="Admin access required")

    counts = await usage_counts(database, request.app.state.usage_table)
    return {"total": sum(counts.values()), "by_event_type": counts}
