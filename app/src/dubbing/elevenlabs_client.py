"""
Thin async client for the ElevenLabs dubbing REST API.

Only the five calls the relay forwards are implemented:

    POST /v1/dubbing                                  — create a dubbing job
    GET  /v1/dubbing/{id}                             — job metadata / status
    GET  /v1/dubbing/{id}/audio/{language_code}       — dubbed audio stream
    GET  /v1/dubbing/{id}/transcript/{language_code}  — SRT / WebVTT transcript

Every failure (missing key, transport error, non-2xx or undecodable
response) is raised as ``DubbingServiceError`` so routes have a single
exception to map.
"""

import logging
from typing import AsyncIterator, Dict, Optional

import httpx

from configs.config import get_config

logger = logging.getLogger(__name__)

cfg = get_config()

AUDIO_CHUNK_SIZE = 64 * 1024


class DubbingServiceError(Exception):
    """Raised when the dubbing service cannot fulfil a request."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def is_client_error(self) -> bool:
        return self.status_code is not None and 400 <= self.status_code < 500


def _error_message(response: httpx.Response) -> str:
    """Pull a readable message out of an ElevenLabs error body."""
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return text or response.reason_phrase or f"HTTP {response.status_code}"

    detail = body.get("detail", body) if isinstance(body, dict) else body
    if isinstance(detail, dict):
        return str(detail.get("message") or detail.get("status") or detail)
    return str(detail)


def _json_body(response: httpx.Response) -> Dict:
    """Decode a successful response body as a JSON object."""
    try:
        payload = response.json()
    except ValueError as exc:
        logger.error(
            "Non-JSON body from %s (%d): %.200s",
            response.request.url, response.status_code, response.text,
        )
        raise DubbingServiceError(
            "Unexpected response from dubbing service", status_code=response.status_code
        ) from exc
    if not isinstance(payload, dict):
        raise DubbingServiceError(
            "Unexpected response from dubbing service", status_code=response.status_code
        )
    return payload


class ElevenLabsDubbingClient:
    """Async wrapper around one shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        api_key: str,
        base_url: str = cfg.ELEVENLABS_BASE_URL,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._api_key = api_key
        if http_client is None:
            timeout = httpx.Timeout(
                cfg.ELEVENLABS_TIMEOUT_SECONDS,
                connect=cfg.ELEVENLABS_CONNECT_TIMEOUT_SECONDS,
            )
            http_client = httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._http = http_client

    # ── Helpers ──────────────────────────────────────────────────────────

    def _headers(self) -> Dict[str, str]:
        if not self._api_key:
            raise DubbingServiceError(
                "ELEVENLABS_API_KEY environment variable is not set. "
                "Cannot reach the dubbing service."
            )
        return {"xi-api-key": self._api_key}

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        headers = self._headers()
        try:
            response = await self._http.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("%s %s failed: %s", method, url, exc)
            raise DubbingServiceError(f"Dubbing service unreachable: {exc}") from exc

        if response.is_error:
            message = _error_message(response)
            logger.warning(
                "%s %s returned %d: %s", method, url, response.status_code, message
            )
            raise DubbingServiceError(message, status_code=response.status_code)
        return response

    # ── Endpoints ────────────────────────────────────────────────────────

    async def create_dubbing(
        self,
        audio: bytes,
        filename: str,
        content_type: Optional[str],
        source_lang: str,
        target_lang: str,
    ) -> Dict:
        """Start a dubbing job and return ``{dubbing_id, expected_duration_sec}``."""
        files = {"file": (filename, audio, content_type or "application/octet-stream")}
        data = {"source_lang": source_lang, "target_lang": target_lang}
        logger.info(
            "Submitting %d bytes for dubbing (%s -> %s)",
            len(audio), source_lang, target_lang,
        )
        response = await self._request("POST", "/v1/dubbing", files=files, data=data)
        payload = _json_body(response)
        logger.info(
            "Dubbing job %s created (expected %ss)",
            payload.get("dubbing_id"), payload.get("expected_duration_sec"),
        )
        return payload

    async def get_dubbing_metadata(self, dubbing_id: str) -> Dict:
        """Return the job metadata, including its ``status``."""
        response = await self._request("GET", f"/v1/dubbing/{dubbing_id}")
        payload = _json_body(response)
        logger.debug("Dubbing job %s status: %s", dubbing_id, payload.get("status"))
        return payload

    async def stream_dubbed_audio(
        self, dubbing_id: str, language_code: str
    ) -> AsyncIterator[bytes]:
        """
        Open the dubbed-audio stream and return an iterator over its chunks.

        The upstream status is checked before returning, so errors surface
        before the relay starts its own response.
        """
        url = f"/v1/dubbing/{dubbing_id}/audio/{language_code}"
        request = self._http.build_request("GET", url, headers=self._headers())
        try:
            response = await self._http.send(request, stream=True)
        except httpx.HTTPError as exc:
            logger.error("GET %s failed: %s", url, exc)
            raise DubbingServiceError(f"Dubbing service unreachable: {exc}") from exc

        if response.is_error:
            await response.aread()
            await response.aclose()
            message = _error_message(response)
            logger.warning("GET %s returned %d: %s", url, response.status_code, message)
            raise DubbingServiceError(message, status_code=response.status_code)

        logger.info("Streaming dubbed audio for %s (%s)", dubbing_id, language_code)
        return self._iter_chunks(response)

    @staticmethod
    async def _iter_chunks(response: httpx.Response) -> AsyncIterator[bytes]:
        try:
            async for chunk in response.aiter_bytes(AUDIO_CHUNK_SIZE):
                yield chunk
        finally:
            await response.aclose()

    async def get_transcript(
        self, dubbing_id: str, language_code: str, format_type: str
    ) -> str:
        """Return the transcript body for one language as plain text."""
        response = await self._request(
            "GET",
            f"/v1/dubbing/{dubbing_id}/transcript/{language_code}",
            params={"format_type": format_type},
        )
        return response.text

    async def aclose(self) -> None:
        await self._http.aclose()


# ── Process-wide instance ────────────────────────────────────────────────

_client: Optional[ElevenLabsDubbingClient] = None


def get_dubbing_client() -> ElevenLabsDubbingClient:
    """FastAPI dependency returning the shared client, created on first use."""
    global _client
    if _client is None:
        _client = ElevenLabsDubbingClient(api_key=cfg.ELEVENLABS_API_KEY)
        logger.info("ElevenLabs client initialised for %s", cfg.ELEVENLABS_BASE_URL)
    return _client


async def close_dubbing_client() -> None:
    """Close the shared client, if one was created."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
        logger.info("ElevenLabs client closed")
