"""
Append-only log of completed translations.
"""

import itertools
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Iterator, List, Optional


@dataclass(frozen=True)
class ConversationEntry:
    """Snapshot of one finished dubbing job."""

    entry_id: int
    dubbing_id: str
    source_lang: str
    target_lang: str
    source_audio: bytes
    translated_audio: bytes
    audio_url: str
    download_url: str
    created_at: datetime
    transcript: Optional[str] = None


class ConversationLog:
    """Ordered entries; the only mutation after append is attaching a transcript."""

    def __init__(self) -> None:
        self._entries: List[ConversationEntry] = []
        self._ids = itertools.count(1)

    def append(
        self,
        dubbing_id: str,
        source_lang: str,
        target_lang: str,
        source_audio: bytes,
        translated_audio: bytes,
        audio_url: str,
        download_url: str,
    ) -> ConversationEntry:
        entry = ConversationEntry(
            entry_id=next(self._ids),
            dubbing_id=dubbing_id,
            source_lang=source_lang,
            target_lang=target_lang,
            source_audio=source_audio,
            translated_audio=translated_audio,
            audio_url=audio_url,
            download_url=download_url,
            created_at=datetime.now(timezone.utc),
        )
        self._entries.append(entry)
        return entry

    def attach_transcript(self, entry_id: int, transcript: str) -> ConversationEntry:
        for idx, entry in enumerate(self._entries):
            if entry.entry_id == entry_id:
                updated = replace(entry, transcript=transcript)
                self._entries[idx] = updated
                return updated
        raise KeyError(f"No conversation entry {entry_id}")

    def get(self, entry_id: int) -> ConversationEntry:
        for entry in self._entries:
            if entry.entry_id == entry_id:
                return entry
        raise KeyError(f"No conversation entry {entry_id}")

    @property
    def entries(self) -> List[ConversationEntry]:
        return list(self._entries)

    def __iter__(self) -> Iterator[ConversationEntry]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)
