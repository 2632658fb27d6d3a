import asyncio
from types import SimpleNamespace
from typing import Callable

from teleconsult.internal_core.contracts import TranscriptSegment
from teleconsult.internal_core.transcribe import TranscriptionStreamManager, aws_transcribe
from teleconsult.internal_core.transcribe.aws_transcribe import AwsTranscribeStreamingProvider, _result_text


class FakeTranscriptEvent:
    def __init__(self, *results) -> None:
        self.transcript = SimpleNamespace(results=list(results))


def _result(text: str, is_partial: bool = True, items: tuple = ()) -> SimpleNamespace:
    alternative = SimpleNamespace(transcript=text, items=[SimpleNamespace(content=c) for c in items])
    return SimpleNamespace(is_partial=is_partial, alternatives=[alternative])


class EchoStream:
    """Answers every audio event with a transcript of its bytes."""

    def __init__(self, log: list) -> None:
        self.log = log
        self.events: asyncio.Queue = asyncio.Queue()
        self.input_stream = self
        self.output_stream = self._output()

    async def send_audio_event(self, audio_chunk: bytes) -> None:
        self.log.append(("send", audio_chunk))
        await self.events.put(object())
        await self.events.put(FakeTranscriptEvent(_result(audio_chunk.decode("utf-8")), _result("")))

    async def end_stream(self) -> None:
        self.log.append("end_stream")
        await self.events.put(
            FakeTranscriptEvent(_result("", is_partial=False, items=("fin", "de", "consulta")))
        )
        await self.events.put(None)

    async def _output(self):
        while True:
            event = await self.events.get()
            if event is None:
                return
            yield event


class TickingStream:
    """Emits a partial every 10 ms until end_stream has finished; end_stream is slow."""

    def __init__(self, log: list) -> None:
        self.log = log
        self.ended = False
        self.input_stream = self
        self.output_stream = self._output()

    async def send_audio_event(self, audio_chunk: bytes) -> None:
        self.log.append(("send", audio_chunk))

    async def end_stream(self) -> None:
        self.log.append("end_stream_begin")
        await asyncio.sleep(0.05)
        self.log.append("end_stream_done")
        self.ended = True

    async def _output(self):
        while not self.ended:
            await asyncio.sleep(0.01)
            yield FakeTranscriptEvent(_result("tick"))


class SilentOutput:
    def __aiter__(self):
        return self

    async def __anext__(self):
        await asyncio.Event().wait()
        raise StopAsyncIteration


class ResetStream:
    """Upstream drops the connection on the first audio event and never answers."""

    def __init__(self) -> None:
        self.input_stream = self
        self.output_stream = SilentOutput()
        self.ended = False

    async def send_audio_event(self, audio_chunk: bytes) -> None:
        raise RuntimeError("connection reset while sending audio")

    async def end_stream(self) -> None:
        self.ended = True


def _install(monkeypatch, stream) -> list:
    calls: list = []

    class FakeClient:
        def __init__(self, region: str) -> None:
            calls.append({"region": region})

        async def start_stream_transcription(self, **kwargs):
            calls.append(kwargs)
            return stream

    monkeypatch.setattr(aws_transcribe, "TranscribeStreamingClient", FakeClient)
    monkeypatch.setattr(aws_transcribe, "TranscriptEvent", FakeTranscriptEvent)
    return calls


async def _wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)


def _manager() -> TranscriptionStreamManager:
    return TranscriptionStreamManager(
        lambda: AwsTranscribeStreamingProvider(region="eu-west-1"),
        sample_rate_hz=16000,
        language_code="es-ES",
    )


def test_result_text_prefers_transcript_and_falls_back_to_items() -> None:
    assert _result_text(_result("  hola  ")) == "hola"
    assert _result_text(_result("", items=("dolor", "de", "cabeza"))) == "dolor de cabeza"
    assert _result_text(SimpleNamespace(alternatives=[])) == ""
    assert _result_text(SimpleNamespace()) == ""


def test_events_map_to_results_and_end_stream_is_sent(monkeypatch) -> None:
    log: list = []

    async def scenario() -> tuple[list, list]:
        calls = _install(monkeypatch, EchoStream(log))

        async def audio():
            yield b"hola"
            yield b"adios"

        provider = AwsTranscribeStreamingProvider(region="eu-west-1")
        results = [
            r async for r in provider.open_stream(audio(), sample_rate_hz=8000, language_code="es-US")
        ]
        return calls, results

    calls, results = asyncio.run(scenario())
    assert calls == [
        {"region": "eu-west-1"},
        {"language_code": "es-US", "media_sample_rate_hz": 8000, "media_encoding": "pcm"},
    ]
    assert [(r.text, r.is_partial) for r in results] == [
        ("hola", True),
        ("adios", True),
        ("fin de consulta", False),
    ]
    assert log == [("send", b"hola"), ("send", b"adios"), "end_stream"]


def test_stop_still_delivers_end_stream_while_results_keep_arriving(monkeypatch) -> None:
    log: list = []
    results: list[TranscriptSegment] = []
    errors: list = []

    async def scenario() -> int:
        _install(monkeypatch, TickingStream(log))
        manager = _manager()
        handle = manager.start("ws-1", "room", "medico", on_result=results.append, on_error=errors.append)
        await manager.push_chunk("ws-1", b"a")
        await _wait_until(lambda: len(results) >= 1)
        assert manager.stop("ws-1") is True
        delivered_at_stop = len(results)
        await asyncio.wait_for(handle.task, timeout=2.0)
        return delivered_at_stop

    delivered_at_stop = asyncio.run(scenario())
    assert log == [("send", b"a"), "end_stream_begin", "end_stream_done"]
    assert len(results) == delivered_at_stop
    assert errors == []


def test_send_failure_is_reported_and_releases_pushers(monkeypatch) -> None:
    stream = ResetStream()
    errors: list = []

    async def scenario() -> bool:
        _install(monkeypatch, stream)
        manager = _manager()
        handle = manager.start("ws-1", "room", "paciente", on_result=lambda _s: None, on_error=errors.append)
        for chunk in (b"a", b"b", b"c"):
            await asyncio.wait_for(manager.push_chunk("ws-1", chunk), timeout=1.0)
        await _wait_until(lambda: bool(errors))
        await asyncio.wait_for(handle.task, timeout=1.0)
        return manager.is_streaming("ws-1")

    still_streaming = asyncio.run(scenario())
    assert still_streaming is False
    assert len(errors) == 1
    assert "connection reset while sending audio" in str(errors[0])
    assert stream.ended is False
