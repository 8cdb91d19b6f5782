"""
Shared utility functions and singletons used across multiple modules.
"""

from typing import Optional

from slowapi import Limiter
from slowapi.util import get_remote_address


# ── Shared rate-limiter instance ─────────────────────────────────────────
# Created here (not in main.py) so that route modules can import it
# without a circular dependency.
limiter = Limiter(key_func=get_remote_address)


def resolve_language(value: Optional[str], default: str) -> str:
    """Return a trimmed language code, falling back to ``default`` when blank."""
    value = (value or "").strip()
    return value if value else default


def pick_transcript_language(language: str, source_lang: str, target_lang: str) -> str:
    """Map the ``source``/``target`` selector onto a concrete language code."""
    return source_lang if language == "source" else target_lang
