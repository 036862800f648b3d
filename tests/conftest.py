import io
import os
from typing import Any, Dict, List, Optional

import pillow_heif
import pytest
from PIL import Image

from analysis_service import AnalysisFailed
from log import UsageLogger


def make_png(width: int = 64, height: int = 32, noise: bool = False) -> bytes:
    if noise:
        img = Image.frombytes("RGB", (width, height), os.urandom(width * height * 3))
    else:
        img = Image.new("RGB", (width, height), (200, 200, 200))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def make_jpeg(width: int = 64, height: int = 32) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), (90, 90, 90)).save(buf, format="JPEG")
    return buf.getvalue()


def make_heic(width: int = 64, height: int = 64) -> bytes:
    pillow_heif.register_heif_opener()
    buf = io.BytesIO()
    Image.new("RGB", (width, height), (120, 110, 100)).save(buf, format="HEIF")
    return buf.getvalue()


class FakeAnalysisClient:
    """Stands in for the remote function: returns `result` or raises `error`."""

    def __init__(self, result: str = "<p>ok</p>", error: Optional[Exception] = None):
        self.result = result
        self.error = error
        self.calls: List[str] = []

    async def analyze(self, data_url: str) -> str:
        self.calls.append(data_url)
        if self.error is not None:
            raise self.error
        return self.result

    async def aclose(self) -> None:
        pass


class RecordingUsageLogger(UsageLogger):
    def __init__(self):
        super().__init__(database=None)
        self.events: List[Dict[str, Any]] = []

    async def log_event(self, event_type, session_id, metadata=None, error_message=None) -> None:
        self.events.append({
            "event_type": event_type.value,
            "session_id": session_id,
            "metadata": metadata,
            "error_message": error_message,
        })

    def types(self) -> List[str]:
        return [event["event_type"] for event in self.events]


class FakeDatabase:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.executed: List[Dict[str, Any]] = []

    async def execute(self, query: str, values: Optional[Dict[str, Any]] = None):
        if self.fail:
            raise ConnectionError("database is down")
        self.executed.append({"query": query, "values": values})


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def usage_logger() -> RecordingUsageLogger:
    return RecordingUsageLogger()


@pytest.fixture
def failing_client() -> FakeAnalysisClient:
    return FakeAnalysisClient(error=AnalysisFailed("model timeout"))
