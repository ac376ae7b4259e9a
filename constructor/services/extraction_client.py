# constructor/services/extraction_client.py
"""Client for the backend that scrapes web pages and transcribes videos."""
import logging
from typing import get_args

import httpx
from pydantic import BaseModel

from constructor.core.exceptions import ExtractionError
from constructor.models.graph import ExtractionStatus, Platform

logger = logging.getLogger(__name__)

_INSTAGRAM_MARKERS = ("instagram.com/p/", "instagram.com/reel/", "instagram.com/reels/")


class ExtractionResult(BaseModel):
    status: ExtractionStatus
    text: str | None = None
    title: str | None = None
    platform: Platform | None = None
    url: str | None = None
    error_message: str | None = None


def detect_platform(url: str) -> Platform:
    if "youtube.com" in url or "youtu.be" in url:
        return "youtube"
    if any(marker in url for marker in _INSTAGRAM_MARKERS):
        return "instagram"
    if "tiktok.com" in url:
        return "tiktok"
    return "web"


def _reported_platform(data: dict, url: str) -> Platform:
    platform = data.get("platform")
    if platform in get_args(Platform):
        return platform
    return detect_platform(url)


class ExtractionClient:
    def __init__(
        self,
        base_url: str = "http://localhost:3001",
        token: str = "",
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._transport = transport

    async def extract(self, url: str) -> ExtractionResult:
        """
        Routes video platforms to transcription and everything else to scraping.
        Never raises: failures come back as an `error` result.
        """
        if not url:
            return ExtractionResult(status="error", error_message="URL is required")

        platform = detect_platform(url)
        logger.info("Extracting content from %s", url, extra={"platform": platform})
        try:
            if platform == "web":
                return await self.extract_web(url)
            return await self.extract_video(url)
        except ExtractionError as exc:
            logger.warning("Extraction failed for %s: %s", url, exc.message)
            return ExtractionResult(status="error", error_message=exc.message)

    async def extract_video(self, url: str) -> ExtractionResult:
        data = await self._post("/api/transcribe", {"url": url})
        return ExtractionResult(
            status="success",
            text=data.get("text"),
            title=data.get("title"),
            platform=_reported_platform(data, url),
            url=url,
        )

    async def extract_web(self, url: str) -> ExtractionResult:
        data = await self._post("/api/scrape", {"url": url})
        return ExtractionResult(
            status="success",
            text=data.get("text"),
            title=data.get("title"),
            platform="web",
            url=url,
        )

    async def _post(self, endpoint: str, payload: dict) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(endpoint, json=payload, headers=headers)
        except httpx.RequestError as e:
            raise ExtractionError(f"Failed to reach extraction service at {self.base_url}: {e}") from e

        if response.is_error:
            raise ExtractionError(self._error_message(response))

        try:
            data = response.json()
        except ValueError as e:
            raise ExtractionError("Extraction service returned an invalid response") from e
        if not isinstance(data, dict):
            raise ExtractionError("Extraction service returned an invalid response")
        return data

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if isinstance(body, dict) and body.get("error"):
            return str(body["error"])
        return f"HTTP {response.status_code}"
