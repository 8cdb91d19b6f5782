"""
Data models for the dubbing module.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict

from configs.config import get_config

cfg = get_config()


class UploadResult(BaseModel):
    """Body returned by ``POST /api/upload`` (ElevenLabs create-dubbing response)."""

    model_config = ConfigDict(extra="allow")

    dubbing_id: str
    expected_duration_sec: Optional[float] = None


class DubbingMetadata(BaseModel):
    """Body returned by the status endpoint; unknown service fields are kept."""

    model_config = ConfigDict(extra="allow")

    status: str
    dubbing_id: Optional[str] = None
    name: Optional[str] = None
    target_languages: list[str] = []
    error: Optional[str] = None


def normalize_status(status: Optional[str]) -> str:
    return (status or "").strip().lower()


def is_terminal_status(status: Optional[str]) -> bool:
    """True once the service will not change the job any further."""
    return normalize_status(status) in cfg.TERMINAL_STATUSES


def is_failed_status(status: Optional[str]) -> bool:
    return normalize_status(status) in cfg.FAILED_STATUSES
