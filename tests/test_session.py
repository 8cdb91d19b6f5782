import asyncio

import httpx
import pytest

from conftest import make_relay
from src.client.session import SessionState, TranslationSession

SRT_BODY = "1\n00:00:00,000 --> 00:00:01,200\nHola mundo\n"

STATUS_PATH = "/api/translations/abc123/status"
AUDIO_PATH = "/api/translations/abc123/audio?target_lang=es"


class FakeRelayService:
    """Answers relay requests and records them, in order, next to sleeps."""

    def __init__(self, statuses=("done",), upload=None, transcript=None, audio=None):
        self.events = []
        self.statuses = list(statuses)
        self.upload = upload or httpx.Response(
            200, json={"dubbing_id": "abc123", "expected_duration_sec": 5}
        )
        self.transcript = transcript or httpx.Response(200, text=SRT_BODY)
        self.audio = audio or httpx.Response(200, content=b"dubbed-mp3")
        self.status_seen = None

    def handler(self, request):
        path = request.url.raw_path.decode()
        self.events.append(path)
        if path == "/api/upload":
            return self.upload
        if path.endswith("/status"):
            if self.status_seen is not None:
                self.status_seen.set()
            status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
            if isinstance(status, httpx.Response):
                return status
            return httpx.Response(200, json={"status": status})
        if "/audio" in path:
            return self.audio
        if "/transcript" in path:
            return self.transcript
        return httpx.Response(404, json={"detail": "Not Found"})

    async def sleep(self, seconds):
        self.events.append(("sleep", seconds))
        await asyncio.sleep(0)

    def paths(self):
        return [event for event in self.events if isinstance(event, str)]


async def _run_to_completion(service, **session_kwargs):
    session = TranslationSession(make_relay(service.handler), sleep=service.sleep, **session_kwargs)
    job = await session.submit(b"recorded-voice")
    before_delay = list(service.events)
    await session.wait_until_settled()
    await session.wait_for_transcripts()
    return session, job, before_delay


def test_polls_after_expected_duration_and_fetches_audio_once():
    service = FakeRelayService(statuses=["in progress", "done"])

    session, job, before_delay = asyncio.run(_run_to_completion(service))

    assert before_delay == ["/api/upload"]
    assert service.events[:6] == [
        "/api/upload",
        ("sleep", 5),
        STATUS_PATH,
        ("sleep", 3),
        STATUS_PATH,
        AUDIO_PATH,
    ]
    assert service.paths().count(AUDIO_PATH) == 1
    assert STATUS_PATH not in service.paths()[service.paths().index(AUDIO_PATH):]
    assert session.state is SessionState.DONE
    assert job.dubbing_id == "abc123"
    assert job.status == "done"
    assert job.audio == b"dubbed-mp3"


def test_same_dubbing_id_used_for_every_call():
    service = FakeRelayService(statuses=["dubbing", "dubbed"])

    asyncio.run(_run_to_completion(service))

    job_paths = [path for path in service.paths() if path.startswith("/api/translations/")]
    assert job_paths
    assert all(path.startswith("/api/translations/abc123/") for path in job_paths)


@pytest.mark.parametrize("terminal", ["done", "dubbed", "Dubbed"])
def test_terminal_statuses_stop_polling(terminal):
    service = FakeRelayService(statuses=[terminal])

    session, _, _ = asyncio.run(_run_to_completion(service))

    assert service.paths().count(STATUS_PATH) == 1
    assert session.state is SessionState.DONE


def test_completed_job_is_logged_with_transcript():
    service = FakeRelayService(statuses=["done"])

    session, _, _ = asyncio.run(_run_to_completion(service))

    [entry] = session.conversation.entries
    assert entry.dubbing_id == "abc123"
    assert (entry.source_lang, entry.target_lang) == ("en", "es")
    assert entry.source_audio == b"recorded-voice"
    assert entry.translated_audio == b"dubbed-mp3"
    assert entry.audio_url == "http://relay.test" + AUDIO_PATH
    assert entry.download_url.endswith("/api/translations/abc123/download?target_lang=es")
    assert entry.transcript == "Hola mundo"
    assert session.job.transcript == "Hola mundo"
    assert (
        "/api/translations/abc123/transcript?language=target&target_lang=es&source_lang=en&format=srt"
        in service.paths()
    )


def test_upload_failure_reports_error_without_polling():
    service = FakeRelayService(
        upload=httpx.Response(500, json={"detail": "An internal error occurred during upload."})
    )

    async def scenario():
        session = TranslationSession(make_relay(service.handler), sleep=service.sleep)
        job = await session.submit(b"recorded-voice")
        await asyncio.sleep(0)
        return session, job

    session, job = asyncio.run(scenario())

    assert job is None
    assert session.state is SessionState.ERROR
    assert "An internal error occurred during upload." in session.status_message
    assert session.error == session.status_message
    assert service.events == ["/api/upload"]


def test_transcript_not_found_keeps_audio_only_entry():
    service = FakeRelayService(
        statuses=["done"],
        transcript=httpx.Response(404, json={"detail": "Transcript not found"}),
    )

    session, _, _ = asyncio.run(_run_to_completion(service))

    [entry] = session.conversation.entries
    assert entry.translated_audio == b"dubbed-mp3"
    assert entry.transcript is None
    assert session.state is SessionState.DONE
    assert session.error is None


def test_missing_expected_duration_uses_fallback():
    service = FakeRelayService(upload=httpx.Response(200, json={"dubbing_id": "abc123"}))

    session, job, _ = asyncio.run(_run_to_completion(service, fallback_duration=10))

    assert job.expected_duration_sec == 10
    assert service.events[1] == ("sleep", 10)


def test_status_error_halts_polling():
    service = FakeRelayService(
        statuses=["in progress", httpx.Response(502, json={"detail": "Bad gateway"})]
    )

    session, _, _ = asyncio.run(_run_to_completion(service))

    assert session.state is SessionState.ERROR
    assert "Bad gateway" in session.status_message
    assert service.paths().count(STATUS_PATH) == 2
    assert AUDIO_PATH not in service.paths()
    assert session.conversation.entries == []


def test_failed_status_surfaces_service_error():
    def handler(request):
        path = request.url.raw_path.decode()
        if path == "/api/upload":
            return httpx.Response(200, json={"dubbing_id": "abc123", "expected_duration_sec": 1})
        return httpx.Response(200, json={"status": "failed", "error": "No speech detected"})

    async def scenario():
        async def no_wait(seconds):
            await asyncio.sleep(0)

        session = TranslationSession(make_relay(handler), sleep=no_wait)
        await session.submit(b"silence")
        return await session.wait_until_settled(), session

    state, session = asyncio.run(scenario())

    assert state is SessionState.ERROR
    assert "No speech detected" in session.error


def test_new_recording_cancels_deferred_check():
    service = FakeRelayService()

    async def scenario():
        gate = asyncio.Event()

        async def gated_sleep(seconds):
            service.events.append(("sleep", seconds))
            await gate.wait()

        session = TranslationSession(make_relay(service.handler), sleep=gated_sleep)
        await session.submit(b"recorded-voice")
        pending = session.pending
        for _ in range(3):
            await asyncio.sleep(0)

        session.start_recording()
        await asyncio.sleep(0)
        gate.set()
        for _ in range(5):
            await asyncio.sleep(0)
        return session, pending

    session, pending = asyncio.run(scenario())

    assert pending.deferred_check.cancelled()
    assert pending.poll_timer is None
    assert session.pending is None
    assert session.job is None
    assert session.state is SessionState.RECORDING
    assert STATUS_PATH not in service.paths()


def test_swapping_languages_cancels_polling():
    service = FakeRelayService(statuses=["in progress"])

    async def scenario():
        gate = asyncio.Event()
        service.status_seen = asyncio.Event()

        async def sleep(seconds):
            service.events.append(("sleep", seconds))
            if seconds == 5:
                await asyncio.sleep(0)
            else:
                await gate.wait()

        session = TranslationSession(make_relay(service.handler), sleep=sleep)
        await session.submit(b"recorded-voice")
        pending = session.pending
        await asyncio.wait_for(service.status_seen.wait(), timeout=1)
        for _ in range(3):
            await asyncio.sleep(0)

        session.swap_languages()
        await asyncio.sleep(0)
        gate.set()
        for _ in range(5):
            await asyncio.sleep(0)
        return session, pending

    session, pending = asyncio.run(scenario())

    assert pending.poll_timer.cancelled()
    assert service.paths().count(STATUS_PATH) == 1
    assert (session.source_lang, session.target_lang) == ("es", "en")
    assert session.state is SessionState.IDLE
    assert session.job is None


def test_upload_finishing_after_new_recording_is_discarded():
    async def scenario():
        upload_started = asyncio.Event()
        release = asyncio.Event()
        events = []

        async def handler(request):
            path = request.url.raw_path.decode()
            events.append(path)
            if path == "/api/upload":
                upload_started.set()
                await release.wait()
                return httpx.Response(200, json={"dubbing_id": "stale1", "expected_duration_sec": 1})
            return httpx.Response(200, json={"status": "done"})

        async def sleep(seconds):
            events.append(("sleep", seconds))

        session = TranslationSession(make_relay(handler), sleep=sleep)
        submit = asyncio.create_task(session.submit(b"old-voice"))
        await upload_started.wait()
        session.start_recording()
        release.set()
        job = await submit
        for _ in range(5):
            await asyncio.sleep(0)
        return session, job, events

    session, job, events = asyncio.run(scenario())

    assert job is None
    assert session.pending is None
    assert session.state is SessionState.RECORDING
    assert events == ["/api/upload"]


def test_listeners_see_each_transition():
    service = FakeRelayService(statuses=["in progress", "done"])

    async def scenario():
        seen = []
        session = TranslationSession(make_relay(service.handler), sleep=service.sleep)
        session.add_listener(lambda s: seen.append(s.state))
        await session.submit(b"recorded-voice")
        await session.wait_until_settled()
        await session.wait_for_transcripts()
        await session.aclose()
        return seen

    seen = asyncio.run(scenario())

    assert seen[:5] == [
        SessionState.UPLOADING,
        SessionState.PROCESSING,
        SessionState.PROCESSING,
        SessionState.FETCHING,
        SessionState.DONE,
    ]


def test_audio_fetch_failure_reports_error():
    service = FakeRelayService(
        statuses=["done"], audio=httpx.Response(500, json={"detail": "boom"})
    )

    session, _, _ = asyncio.run(_run_to_completion(service))

    assert session.state is SessionState.ERROR
    assert session.error == "Audio fetch failed: boom"
    assert session.conversation.entries == []
    assert service.paths().count(AUDIO_PATH) == 1
    assert not any("/transcript" in path for path in service.paths())


def test_new_recording_during_audio_fetch_discards_result():
    async def scenario():
        audio_started = asyncio.Event()
        release = asyncio.Event()
        events = []

        async def handler(request):
            path = request.url.raw_path.decode()
            events.append(path)
            if path == "/api/upload":
                return httpx.Response(200, json={"dubbing_id": "abc123", "expected_duration_sec": 0})
            if path.endswith("/status"):
                return httpx.Response(200, json={"status": "done"})
            audio_started.set()
            await release.wait()
            return httpx.Response(200, content=b"late-audio")

        async def sleep(seconds):
            await asyncio.sleep(0)

        session = TranslationSession(make_relay(handler), sleep=sleep)
        await session.submit(b"recorded-voice")
        pending = session.pending
        await asyncio.wait_for(audio_started.wait(), timeout=1)
        state_during_fetch = session.state

        session.start_recording()
        release.set()
        for _ in range(5):
            await asyncio.sleep(0)
        return session, pending, state_during_fetch, events

    session, pending, state_during_fetch, events = asyncio.run(scenario())

    assert state_during_fetch is SessionState.FETCHING
    assert pending.poll_timer.cancelled()
    assert session.state is SessionState.RECORDING
    assert session.job is None
    assert session.conversation.entries == []
    assert not any("/transcript" in event for event in events)


def test_failing_listener_does_not_stall_session():
    service = FakeRelayService(statuses=["in progress", "done"])

    async def scenario():
        calls = []

        def listener(session):
            calls.append(session.state)
            if len(calls) == 3:
                raise RuntimeError("listener bug")

        session = TranslationSession(make_relay(service.handler), sleep=service.sleep)
        session.add_listener(listener)
        await session.submit(b"recorded-voice")
        state = await asyncio.wait_for(session.wait_until_settled(), timeout=1)
        await session.wait_for_transcripts()
        return state, session, calls

    state, session, calls = asyncio.run(scenario())

    assert state is SessionState.DONE
    assert calls[2] is SessionState.PROCESSING
    assert len(session.conversation.entries) == 1
