import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from schemas import AnalysisRequest, AnalysisResponse

logger = logging.getLogger(__name__)


class AnalysisFailed(Exception):
    """
    Remote analysis did not produce a report.

    str(exc) is safe to record in the usage log; the user only ever sees a
    generic message.
    """

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


def _error_message(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict) or not payload.get("error"):
        return None
    error = payload["error"]
    if isinstance(error, dict):
        return str(error.get("message") or error)
    return str(error)


class AnalysisClient:
    """
    Calls the remote analysis function with one data-URL encoded image.

    Construct one per application and pass it to the controllers; the
    HTTP client is closed by aclose() when this object created it.
    """

    def __init__(
        self,
        functions_url: str,
        api_key: str = "",
        function_name: str = "analyze-orthodontic-image",
        timeout: float = 120.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.functions_url = functions_url.rstrip("/")
        self.api_key = api_key
        self.function_name = function_name
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    @property
    def endpoint(self) -> str:
        return f"{self.functions_url}/{self.function_name}"

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
            headers["apikey"] = self.api_key
        return headers

    async def analyze(self, data_url: str) -> str:
        if not self.functions_url:
            raise AnalysisFailed("Backend is not fully configured yet. Please try again in a moment.")

        request = AnalysisRequest(images=[data_url])

        try:
            response = await self._http.post(
                self.endpoint,
                json=request.model_dump(),
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            raise AnalysisFailed(f"Failed to reach analysis function: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise AnalysisFailed(
                f"Analysis function returned a non-JSON response (HTTP {response.status_code})"
            ) from e

        message = _error_message(payload)
        if response.is_error or message:
            raise AnalysisFailed(message or f"Analysis function returned HTTP {response.status_code}")

        try:
            result = AnalysisResponse.model_validate(payload)
        except ValidationError as e:
            raise AnalysisFailed("Analysis response is missing the analysis text") from e

        if not result.analysis.strip():
            raise AnalysisFailed("Analysis response is empty")

        logger.info("Analysis completed (%d characters)", len(result.analysis))
        return result.analysis

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()
