from __future__ import annotations

import json
import re
import threading
import time

import pytest
import requests

from immem.analyzer import (
    AnalyzeRequest,
    AnalyzeResponse,
    AnalyzerBusyError,
    AnalyzerError,
    AnalyzerService,
    AnalyzerTimeoutError,
    AnalyzerUnavailableError,
    CachedAnalyzer,
    HttpTransport,
    LocalTransport,
    RemoteAnalyzer,
    WARM_UP_TEXT,
)
from immem.tokens import Token
from immem.words import NOUN, Word


class _StubBackend:
    def __init__(self, fail_on: str | None = None) -> None:
        self.calls: list[str] = []
        self.fail_on = fail_on

    def analyze(self, text: str) -> list[Word]:
        self.calls.append(text)
        if text == self.fail_on:
            raise RuntimeError("dictionary exploded")
        return [
            Word(surface=ch, lemma=ch, part_of_speech=NOUN, tokens=[Token(surface=ch, base=ch)])
            for ch in text
        ]


def _wait_for(predicate, timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(0.01)


def test_service_warms_up_once() -> None:
    backend = _StubBackend()
    service = AnalyzerService(backend)
    assert service.status()["initialized"] is False
    service.analyze("猫")
    service.analyze("犬")
    assert backend.calls == [WARM_UP_TEXT, "猫", "犬"]
    assert service.status()["ready"] is True


def test_service_reports_failures_in_envelope() -> None:
    service = AnalyzerService(_StubBackend(fail_on="壊"))
    response = service.handle(AnalyzeRequest(request_id="r1", text="壊"))
    assert response.success is False
    assert response.request_id == "r1"
    assert "dictionary exploded" in response.error
    assert service.status()["handled"] == 0


def test_response_payload_survives_json() -> None:
    service = AnalyzerService(_StubBackend())
    payload = json.loads(json.dumps(service.handle(AnalyzeRequest("r2", "猫犬")).to_payload()))
    assert payload["type"] == "ANALYZE_RESPONSE"
    response = AnalyzeResponse.from_payload(payload)
    assert response.success is True
    assert [w.surface for w in response.words] == ["猫", "犬"]


def test_request_payload_validation() -> None:
    request = AnalyzeRequest.from_payload({"requestId": "r3", "text": "猫"})
    assert request.to_payload() == {"type": "ANALYZE_TEXT", "requestId": "r3", "text": "猫"}
    with pytest.raises(ValueError):
        AnalyzeRequest.from_payload({"text": "猫"})
    with pytest.raises(ValueError):
        AnalyzeRequest.from_payload({"requestId": "r4", "text": 3})


def test_remote_analyzer_over_local_transport() -> None:
    seen: list[str] = []
    transport = LocalTransport(AnalyzerService(_StubBackend()))

    def _recording(request: AnalyzeRequest) -> AnalyzeResponse:
        seen.append(request.request_id)
        return transport(request)

    with RemoteAnalyzer(_recording) as analyzer:
        assert [w.surface for w in analyzer.analyze("猫犬")] == ["猫", "犬"]
        analyzer.analyze("鳥")
        assert analyzer.pending_count == 0
    assert len(set(seen)) == 2
    assert all(re.fullmatch(r"analyze_\d+_\d+", request_id) for request_id in seen)


def test_remote_analyzer_raises_backend_error() -> None:
    with RemoteAnalyzer(LocalTransport(AnalyzerService(_StubBackend(fail_on="壊")))) as analyzer:
        with pytest.raises(AnalyzerError, match="dictionary exploded"):
            analyzer.analyze("壊")


def test_remote_analyzer_times_out() -> None:
    release = threading.Event()
    finished = threading.Event()

    def _slow(request: AnalyzeRequest) -> AnalyzeResponse:
        release.wait(2.0)
        finished.set()
        return AnalyzeResponse(request_id=request.request_id, success=True)

    analyzer = RemoteAnalyzer(_slow, timeout=0.05)
    try:
        with pytest.raises(AnalyzerTimeoutError):
            analyzer.analyze("猫")
        # The request is forgotten while its transport call is still running.
        assert analyzer.pending_count == 0
        assert not finished.is_set()
    finally:
        release.set()
        analyzer.close()


def test_remote_analyzer_bounds_pending_requests() -> None:
    release = threading.Event()

    def _blocking(request: AnalyzeRequest) -> AnalyzeResponse:
        release.wait(2.0)
        return AnalyzeResponse(request_id=request.request_id, success=True)

    analyzer = RemoteAnalyzer(_blocking, max_pending=1, timeout=5.0)
    results: list[list[Word]] = []
    worker = threading.Thread(target=lambda: results.append(analyzer.analyze("猫")))
    worker.start()
    try:
        _wait_for(lambda: analyzer.pending_count == 1)
        with pytest.raises(AnalyzerBusyError):
            analyzer.analyze("犬")
    finally:
        release.set()
        worker.join(timeout=2.0)
        analyzer.close()
    assert results == [[]]


def test_remote_analyzer_rejects_mismatched_response() -> None:
    def _confused(request: AnalyzeRequest) -> AnalyzeResponse:
        return AnalyzeResponse(request_id="someone_else", success=True)

    with RemoteAnalyzer(_confused) as analyzer:
        with pytest.raises(AnalyzerError, match="someone_else"):
            analyzer.analyze("猫")


def test_closed_remote_analyzer_refuses_requests() -> None:
    analyzer = RemoteAnalyzer(LocalTransport(AnalyzerService(_StubBackend())))
    analyzer.close()
    with pytest.raises(AnalyzerError):
        analyzer.analyze("猫")


class _FakeResponse:
    def __init__(self, status_code: int, payload: object) -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = json.dumps(payload)

    def json(self) -> object:
        return self._payload


class _FakeSession:
    def __init__(self, outcome) -> None:
        self.outcome = outcome
        self.posts: list[tuple[str, dict]] = []

    def post(self, url: str, json=None, timeout=None):
        self.posts.append((url, json))
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


def test_http_transport_posts_envelope() -> None:
    payload = {"type": "ANALYZE_RESPONSE", "requestId": "r5", "success": True, "words": []}
    session = _FakeSession(_FakeResponse(200, payload))
    transport = HttpTransport("http://127.0.0.1:2047/", session=session)
    response = transport(AnalyzeRequest("r5", "猫"))
    assert response.success is True
    assert session.posts == [
        ("http://127.0.0.1:2047/api/analyze", {"type": "ANALYZE_TEXT", "requestId": "r5", "text": "猫"})
    ]


@pytest.mark.parametrize(
    ("outcome", "error"),
    [
        (requests.ConnectionError("refused"), AnalyzerUnavailableError),
        (requests.Timeout("slow"), AnalyzerTimeoutError),
        (_FakeResponse(500, {"detail": "boom"}), AnalyzerError),
    ],
)
def test_http_transport_maps_failures(outcome, error) -> None:
    transport = HttpTransport("http://127.0.0.1:2047", session=_FakeSession(outcome))
    with pytest.raises(error):
        transport(AnalyzeRequest("r6", "猫"))


def test_cache_hits_within_ttl_and_expires_after() -> None:
    now = [100.0]
    backend = _StubBackend()
    cache = CachedAnalyzer(backend, ttl=30.0, clock=lambda: now[0])
    first = cache.analyze("猫")
    second = cache.analyze("猫")
    assert [w.surface for w in second] == [w.surface for w in first]
    assert backend.calls == ["猫"]
    assert (cache.hits, cache.misses) == (1, 1)
    now[0] += 31.0
    cache.analyze("猫")
    assert backend.calls == ["猫", "猫"]


def test_cache_results_are_isolated_from_callers() -> None:
    backend = _StubBackend()
    cache = CachedAnalyzer(backend, clock=lambda: 0.0)
    missed = cache.analyze("猫犬")
    missed[0].surface = "鳥"
    missed[0].tokens.clear()
    missed.pop()
    hit = cache.analyze("猫犬")
    assert [w.surface for w in hit] == ["猫", "犬"]
    assert hit[0].tokens == [Token(surface="猫", base="猫")]
    hit[1].lemma = "変"
    assert cache.analyze("猫犬")[1].lemma == "犬"
    assert backend.calls == ["猫犬"]


def test_cache_evicts_least_recently_used() -> None:
    backend = _StubBackend()
    cache = CachedAnalyzer(backend, max_entries=2, clock=lambda: 0.0)
    cache.analyze("猫")
    cache.analyze("犬")
    cache.analyze("猫")
    cache.analyze("鳥")
    assert len(cache) == 2
    backend.calls.clear()
    cache.analyze("猫")
    cache.analyze("犬")
    assert backend.calls == ["犬"]
    cache.clear()
    assert len(cache) == 0
