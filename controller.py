import base64
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from starlette.concurrency import run_in_threadpool

from analysis_service import AnalysisClient, AnalysisFailed
from log import UsageEventType, UsageLogger
from pdf_export import PdfExporter, PdfExportRequest, PdfImage, image_captions
from progress import ProgressEstimator
from sanitizer import html_to_text, sanitize_html
from validation import UploadCandidate, UploadPolicy, UploadRejected, validate_upload

logger = logging.getLogger(__name__)

ANALYSIS_FAILED_MESSAGE = "There was an error analyzing your image. Please try again."


class SessionState(str, Enum):
    EMPTY = "empty"
    IMAGE_LOADED = "image_loaded"
    ANALYZING = "analyzing"
    REPORT_READY = "report_ready"


class NoImageSelected(Exception):
    pass


class NoReport(Exception):
    pass


class AnalysisInProgress(Exception):
    pass


class ExportFailed(Exception):
    pass


@dataclass(frozen=True)
class UploadedImage:
    data_url: str
    content_type: str
    size: int
    filename: str

    @classmethod
    def from_candidate(cls, candidate: UploadCandidate, content_type: str) -> "UploadedImage":
        encoded = base64.b64encode(candidate.data).decode("ascii")
        return cls(
            data_url=f"data:{content_type};base64,{encoded}",
            content_type=content_type,
            size=candidate.size,
            filename=candidate.filename,
        )


class AnalyzerController:
    """
    Owns one analysis session: the uploaded image, the report and the
    progress estimate.

    empty -> image_loaded -> analyzing -> report_ready, with analyzing
    falling back to image_loaded on failure and clear() returning to empty
    from anywhere. The progress timer is stopped before leaving analyzing.
    """

    def __init__(
        self,
        session_id: str,
        analysis_client: AnalysisClient,
        usage_logger: UsageLogger,
        pdf_exporter: Optional[PdfExporter] = None,
        policy: UploadPolicy = UploadPolicy(),
        progress_interval: float = 1.2,
    ):
        self.session_id = session_id
        self.analysis_client = analysis_client
        self.usage_logger = usage_logger
        self.pdf_exporter = pdf_exporter or PdfExporter()
        self.policy = policy

        self.state = SessionState.EMPTY
        self.image: Optional[UploadedImage] = None
        self.report = ""
        self.last_error: Optional[str] = None
        self.progress = ProgressEstimator(progress_interval)
        # Incremented on clear so a late remote result is dropped.
        self._generation = 0

    def _log(self, event_type: UsageEventType, metadata: Optional[Dict[str, Any]] = None,
             error_message: Optional[str] = None) -> None:
        self.usage_logger.emit(event_type, self.session_id, metadata, error_message)

    @property
    def has_report(self) -> bool:
        return bool(self.report)

    def select_file(self, candidate: UploadCandidate) -> UploadedImage:
        if self.state == SessionState.ANALYZING:
            raise AnalysisInProgress("An analysis is already running")

        result = validate_upload(candidate, self.policy)
        if not result.valid:
            raise UploadRejected(result)

        self.image = UploadedImage.from_candidate(candidate, result.content_type)
        self.report = ""
        self.last_error = None
        self.progress.reset()
        self.state = SessionState.IMAGE_LOADED

        self._log(UsageEventType.UPLOAD, {"fileType": self.image.content_type, "fileSize": self.image.size})
        return self.image

    def begin_analysis(self) -> int:
        """
        Move to analyzing and start the progress timer. Returns a token
        that run_analysis() uses to detect an intervening clear().
        """
        if self.state == SessionState.ANALYZING:
            raise AnalysisInProgress("An analysis is already running")
        if self.image is None:
            raise NoImageSelected("Please upload a panorex image first")

        self.state = SessionState.ANALYZING
        self.report = ""
        self.last_error = None
        self.progress.start()
        self._log(UsageEventType.ANALYSIS_START)
        return self._generation

    async def run_analysis(self, token: int) -> str:
        if token != self._generation:
            return ""
        image = self.image
        try:
            raw = await self.analysis_client.analyze(image.data_url)
        except AnalysisFailed as e:
            if token != self._generation:
                return ""
            self.progress.abort()
            self.state = SessionState.IMAGE_LOADED
            self.last_error = ANALYSIS_FAILED_MESSAGE
            logger.warning("Analysis failed for session %s: %s", self.session_id, e.detail)
            self._log(UsageEventType.ANALYSIS_ERROR, error_message=e.detail)
            raise
        except Exception as e:
            if token != self._generation:
                return ""
            self.progress.abort()
            self.state = SessionState.IMAGE_LOADED
            self.last_error = ANALYSIS_FAILED_MESSAGE
            logger.exception("Unexpected error during analysis for session %s", self.session_id)
            self._log(UsageEventType.ANALYSIS_ERROR, error_message=str(e) or "Unknown error")
            raise AnalysisFailed(str(e) or "Unknown error") from e

        if token != self._generation:
            logger.info("Session %s was cleared during analysis; dropping result", self.session_id)
            return ""

        self.progress.complete()
        self.report = sanitize_html(raw)
        self.state = SessionState.REPORT_READY
        self._log(UsageEventType.ANALYSIS_SUCCESS)
        return self.report

    async def analyze(self) -> str:
        token = self.begin_analysis()
        return await self.run_analysis(token)

    async def export_pdf(self, title: str = "Orthodontic Treatment Plan",
                         filename: str = "orthodontic-treatment-plan"):
        if self.state != SessionState.REPORT_READY or not self.report:
            raise NoReport("Please generate a treatment plan first")

        self._log(UsageEventType.PDF_EXPORT_START)

        sources = [self.image.data_url] if self.image else []
        images = [PdfImage(src=src, caption=caption) for src, caption in zip(sources, image_captions(len(sources)))]

        # Pillow decoding and fpdf2 layout are CPU bound; keep them off the loop.
        result = await run_in_threadpool(self.pdf_exporter.export, PdfExportRequest(
            title=title,
            filename=filename,
            content_html=self.report,
            content_text=html_to_text(self.report),
            images=images,
        ))

        if not result.success:
            self._log(UsageEventType.PDF_EXPORT_ERROR, error_message=result.error or "PDF generation failed")
            raise ExportFailed(result.error or "PDF generation failed")

        self._log(UsageEventType.PDF_EXPORT_SUCCESS)
        return result

    def clear(self) -> None:
        self._generation += 1
        self.progress.reset()
        self.image = None
        self.report = ""
        self.last_error = None
        self.state = SessionState.EMPTY

    def snapshot(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "state": self.state.value,
            "progress": self.progress.value,
            "has_image": self.image is not None,
            "filename": self.image.filename if self.image else None,
            "content_type": self.image.content_type if self.image else None,
            "file_size": self.image.size if self.image else None,
            "has_report": self.has_report,
            "report": self.report,
            "error": self.last_error,
        }
