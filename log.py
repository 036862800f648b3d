import asyncio
import json
import logging
from enum import Enum
from typing import Any, Dict, Optional, Set

from databases import Database

logger = logging.getLogger(__name__)


class UsageEventType(str, Enum):
    UPLOAD = "upload"
    ANALYSIS_START = "analysis_start"
    ANALYSIS_SUCCESS = "analysis_success"
    ANALYSIS_ERROR = "analysis_error"
    PDF_EXPORT_START = "pdf_export_start"
    PDF_EXPORT_SUCCESS = "pdf_export_success"
    PDF_EXPORT_ERROR = "pdf_export_error"


class UsageLogger:
    """
    Best-effort writer for pipeline usage events.

    Writes never raise: a failing insert is logged and dropped so the
    analysis pipeline is never interrupted by telemetry.
    """

    def __init__(self, database: Optional[Database], table: str = "orthodontic_usage_logs"):
        self.database = database
        self.table = table
        self._pending: Set[asyncio.Task] = set()

    async def log_event(
        self,
        event_type: UsageEventType,
        session_id: str,
        metadata: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> None:
        if self.database is None:
            return

        query = f"""
            INSERT INTO {self.table}
            (event_type, session_id, metadata, error_message)
            VALUES (:event_type, :session_id, CAST(:metadata AS JSONB), :error_message)
        """

        try:
            await self.database.execute(
                query=query,
                values={
                    "event_type": UsageEventType(event_type).value,
                    "session_id": session_id,
                    "metadata": json.dumps(metadata) if metadata is not None else None,
                    "error_message": error_message,
                },
            )
        except Exception:
            logger.warning("Error logging usage event %s", event_type, exc_info=True)

    def emit(
        self,
        event_type: UsageEventType,
        session_id: str,
        metadata: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> None:
        """Schedule a write without waiting for it."""
        try:
            task = asyncio.get_running_loop().create_task(
                self.log_event(event_type, session_id, metadata, error_message)
            )
        except RuntimeError:
            logger.warning("No running event loop; dropping usage event %s", event_type)
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for every scheduled write to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
