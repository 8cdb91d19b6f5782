"""
Subtitle utilities for dubbing transcripts.

The dubbing service returns transcripts as SRT or WebVTT.  The
conversation log only shows the spoken text, so these helpers parse the
cue blocks and drop numbering, timestamps, the ``WEBVTT`` header and
``NOTE`` blocks.
"""

import re

TIMESTAMP_LINE_PATTERN = re.compile(
    r"^\s*(?P<start>\d+(?::\d{2}){1,2}[.,]\d{1,3})"
    r"\s*-->\s*"
    r"(?P<end>\d+(?::\d{2}){1,2}[.,]\d{1,3})"
)


def srt_timestamp_to_seconds(timestamp: str) -> float:
    """Convert ``HH:MM:SS,mmm`` (or WebVTT ``MM:SS.mmm``) to seconds."""
    parts = timestamp.strip().replace(",", ".").split(":")
    seconds = 0.0
    for part in parts:
        seconds = seconds * 60 + float(part)
    return seconds


def parse_subtitle_entries(body: str) -> list:
    """
    Parse an SRT or WebVTT body into cue tuples.

    Blocks without a timestamp line (the ``WEBVTT`` header, ``NOTE`` and
    ``STYLE`` blocks) are skipped.  Cue identifiers, numeric or not, are
    whatever precedes the timestamp line and are ignored.

    Returns:
        List of (start_seconds, end_seconds, text) tuples.
    """
    entries = []
    normalized = body.replace("\r\n", "\n").replace("\r", "\n").lstrip("\ufeff")

    for block in re.split(r"\n\s*\n", normalized):
        lines = [line for line in block.split("\n") if line.strip()]
        for idx, line in enumerate(lines):
            match = TIMESTAMP_LINE_PATTERN.match(line)
            if not match:
                continue
            text = " ".join(part.strip() for part in lines[idx + 1:])
            if text:
                entries.append((
                    srt_timestamp_to_seconds(match.group("start")),
                    srt_timestamp_to_seconds(match.group("end")),
                    text,
                ))
            break

    return entries


def transcript_to_text(body: str) -> str:
    """Return the cue text of a transcript, one cue per line."""
    return "\n".join(text for _, _, text in parse_subtitle_entries(body))
