"""
HTTP client for the dubbing relay's ``/api`` endpoints.

Used by the translation session; every non-2xx answer or transport
failure is raised as ``RelayError`` carrying the relay's message.
"""

import logging
from typing import Optional
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from configs.config import get_config
from src.dubbing.models import DubbingMetadata, UploadResult

logger = logging.getLogger(__name__)

cfg = get_config()


class RelayError(Exception):
    """Raised when a relay call fails."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _parse(model, response: httpx.Response):
    try:
        return model.model_validate(response.json())
    except (ValueError, ValidationError) as exc:
        raise RelayError(f"Unexpected response from relay: {exc}") from exc


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text.strip() or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("message") or body)
    return str(body)


class RelayClient:
    """Async client bound to one relay base URL."""

    def __init__(
        self,
        base_url: str = cfg.RELAY_URL,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        if http_client is None:
            http_client = httpx.AsyncClient(
                base_url=self.base_url, timeout=cfg.CLIENT_TIMEOUT_SECONDS
            )
        self._http = http_client

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise RelayError(f"Could not reach relay: {exc}") from exc
        logger.debug("%s %s -> %d", method, path, response.status_code)
        if response.is_error:
            raise RelayError(_error_message(response), status_code=response.status_code)
        return response

    # ── URLs ─────────────────────────────────────────────────────────────

    def audio_path(self, dubbing_id: str, target_lang: str) -> str:
        return f"/api/translations/{dubbing_id}/audio?{urlencode({'target_lang': target_lang})}"

    def audio_url(self, dubbing_id: str, target_lang: str) -> str:
        return f"{self.base_url}{self.audio_path(dubbing_id, target_lang)}"

    def download_url(self, dubbing_id: str, target_lang: str) -> str:
        query = urlencode({"target_lang": target_lang})
        return f"{self.base_url}/api/translations/{dubbing_id}/download?{query}"

    # ── Calls ────────────────────────────────────────────────────────────

    async def upload(
        self,
        audio: bytes,
        source_lang: str,
        target_lang: str,
        filename: str = "recording.webm",
        content_type: str = "audio/webm",
    ) -> UploadResult:
        response = await self._request(
            "POST",
            "/api/upload",
            files={"audio": (filename, audio, content_type)},
            data={"source_lang": source_lang, "target_lang": target_lang},
        )
        return _parse(UploadResult, response)

    async def get_status(self, dubbing_id: str) -> DubbingMetadata:
        response = await self._request("GET", f"/api/translations/{dubbing_id}/status")
        return _parse(DubbingMetadata, response)

    async def fetch_audio(self, dubbing_id: str, target_lang: str) -> bytes:
        response = await self._request("GET", self.audio_path(dubbing_id, target_lang))
        return response.content

    async def fetch_transcript(
        self,
        dubbing_id: str,
        source_lang: str,
        target_lang: str,
        language: str = "target",
        format_type: str = cfg.DEFAULT_TRANSCRIPT_FORMAT,
    ) -> str:
        params = {
            "language": language,
            "target_lang": target_lang,
            "source_lang": source_lang,
            "format": format_type,
        }
        response = await self._request(
            "GET", f"/api/translations/{dubbing_id}/transcript", params=params
        )
        return response.text

    async def aclose(self) -> None:
        await self._http.aclose()
