"""
Command-line front end for the translation session.

Usage:
    dubbing-client recording.webm --source en --target es
    dubbing-client recording.webm --swap --output reply.mp3
"""

import argparse
import asyncio
import logging
import mimetypes
from pathlib import Path
from typing import List, Optional

from configs.config import get_config
from logging_config import setup_logging
from src.client.relay_client import RelayClient
from src.client.session import SessionState, TranslationSession

logger = logging.getLogger(__name__)

cfg = get_config()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Dub a recorded audio file through the speech dubbing relay"
    )
    parser.add_argument("audio_file", help="Recorded audio to translate")
    parser.add_argument("--source", default=cfg.DEFAULT_SOURCE_LANG, help="Source language code (default: %(default)s)")
    parser.add_argument("--target", default=cfg.DEFAULT_TARGET_LANG, help="Target language code (default: %(default)s)")
    parser.add_argument("--server", default=cfg.RELAY_URL, help="Relay base URL (default: %(default)s)")
    parser.add_argument("--output", default=None, help="Where to save the dubbed audio")
    parser.add_argument("--swap", action="store_true", help="Swap source and target before submitting")
    return parser


def print_status(session: TranslationSession) -> None:
    print(f"[{session.state.value}] {session.status_message}")


async def translate_file(args: argparse.Namespace) -> int:
    audio_path = Path(args.audio_file)
    audio = audio_path.read_bytes()
    content_type = mimetypes.guess_type(audio_path.name)[0] or "application/octet-stream"

    relay = RelayClient(args.server)
    session = TranslationSession(relay, source_lang=args.source, target_lang=args.target)
    if args.swap:
        session.swap_languages()
    session.add_listener(print_status)

    try:
        job = await session.submit(audio, filename=audio_path.name, content_type=content_type)
        if job is None:
            return 1
        if await session.wait_until_settled() is SessionState.ERROR:
            return 1
        await session.wait_for_transcripts()

        entry = session.conversation.entries[-1]
        output = Path(args.output or f"translated_{entry.dubbing_id}_{entry.target_lang}.mp3")
        output.write_bytes(entry.translated_audio)
        logger.info("Saved %d bytes of dubbed audio to %s", len(entry.translated_audio), output)

        print(f"{entry.source_lang} -> {entry.target_lang} ({entry.created_at:%H:%M:%S})")
        print(f"Audio saved to {output}")
        print(f"Download: {entry.download_url}")
        if entry.transcript:
            print("Transcript:")
            print(entry.transcript)
        return 0
    finally:
        await session.aclose()
        await relay.aclose()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()
    return asyncio.run(translate_file(args))


if __name__ == "__main__":
    raise SystemExit(main())
