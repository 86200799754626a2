"""
Request/response plumbing between callers and the process that owns the
tokenizer.

:class:`AnalyzerService` wraps one explicitly constructed backend and answers
analysis envelopes. :class:`RemoteAnalyzer` sends envelopes through a
transport (in-process or HTTP), tracks them in a bounded pending table keyed
by correlation id and enforces a per-request timeout. :class:`CachedAnalyzer`
memoizes results for identical text for a short time.
"""

from __future__ import annotations

import copy
import itertools
import threading
import time
from collections import OrderedDict
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Callable, Mapping, Protocol

import requests

from .logging_utils import debug_log
from .words import Word, deserialize_words, serialize_words

__all__ = [
    "AnalyzeRequest",
    "AnalyzeResponse",
    "AnalyzerBusyError",
    "AnalyzerError",
    "AnalyzerService",
    "AnalyzerTimeoutError",
    "AnalyzerUnavailableError",
    "CachedAnalyzer",
    "HttpTransport",
    "LocalTransport",
    "RemoteAnalyzer",
]

DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_MAX_PENDING = 32
DEFAULT_CACHE_TTL = 30.0
DEFAULT_CACHE_SIZE = 100
WARM_UP_TEXT = "テスト"
ANALYZE_REQUEST_TYPE = "ANALYZE_TEXT"
ANALYZE_RESPONSE_TYPE = "ANALYZE_RESPONSE"


class AnalyzerError(RuntimeError):
    """Raised when an analysis request fails."""


class AnalyzerTimeoutError(AnalyzerError, TimeoutError):
    """Raised when no response arrives within the request timeout."""


class AnalyzerUnavailableError(AnalyzerError, ConnectionError):
    """Raised when the analysis service cannot be reached."""


class AnalyzerBusyError(AnalyzerError):
    """Raised when the pending-request table is full."""


class _Backend(Protocol):
    def analyze(self, text: str) -> list[Word]: ...


@dataclass
class AnalyzeRequest:
    request_id: str
    text: str

    def to_payload(self) -> dict[str, object]:
        return {"type": ANALYZE_REQUEST_TYPE, "requestId": self.request_id, "text": self.text}

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> "AnalyzeRequest":
        request_id = payload.get("requestId")
        text = payload.get("text")
        if not isinstance(request_id, str) or not request_id:
            raise ValueError("requestId is required.")
        if not isinstance(text, str):
            raise ValueError("text must be a string.")
        return cls(request_id=request_id, text=text)


@dataclass
class AnalyzeResponse:
    request_id: str
    success: bool
    words: list[Word] = field(default_factory=list)
    error: str | None = None

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "type": ANALYZE_RESPONSE_TYPE,
            "requestId": self.request_id,
            "success": self.success,
        }
        if self.success:
            payload["words"] = serialize_words(self.words)
        else:
            payload["error"] = self.error or "Analysis failed"
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> "AnalyzeResponse":
        if not isinstance(payload, Mapping):
            raise AnalyzerError("Malformed analysis response.")
        request_id = payload.get("requestId")
        if not isinstance(request_id, str):
            raise AnalyzerError("Analysis response is missing requestId.")
        success = payload.get("success") is True
        raw_words = payload.get("words")
        words = deserialize_words(raw_words) if isinstance(raw_words, list) else []
        error = payload.get("error")
        return cls(
            request_id=request_id,
            success=success,
            words=words,
            error=error if isinstance(error, str) else None,
        )


Transport = Callable[[AnalyzeRequest], AnalyzeResponse]


class AnalyzerService:
    """Answers analysis envelopes with a single, long-lived backend."""

    def __init__(self, backend: _Backend) -> None:
        self._backend = backend
        self._lock = threading.Lock()
        self._initialized = False
        self._handled = 0

    def warm_up(self) -> None:
        with self._lock:
            if self._initialized:
                return
            self._backend.analyze(WARM_UP_TEXT)
            self._initialized = True
        debug_log("analyzer", "Analyzer service initialized")

    def analyze(self, text: str) -> list[Word]:
        self.warm_up()
        return self._backend.analyze(text)

    def handle(self, request: AnalyzeRequest) -> AnalyzeResponse:
        try:
            words = self.analyze(request.text)
        except Exception as exc:  # reported to the caller through the envelope
            debug_log("analyzer", f"Analysis failed (request {request.request_id}): {exc}")
            return AnalyzeResponse(
                request_id=request.request_id,
                success=False,
                error=str(exc) or exc.__class__.__name__,
            )
        with self._lock:
            self._handled += 1
        debug_log("analyzer", f"Analyzed {len(words)} words (request {request.request_id})")
        return AnalyzeResponse(request_id=request.request_id, success=True, words=words)

    def status(self) -> dict[str, object]:
        with self._lock:
            return {
                "initialized": self._initialized,
                "ready": self._initialized,
                "handled": self._handled,
            }


class LocalTransport:
    def __init__(self, service: AnalyzerService) -> None:
        self._service = service

    def __call__(self, request: AnalyzeRequest) -> AnalyzeResponse:
        return self._service.handle(request)


class HttpTransport:
    """POSTs analysis envelopes to a running ``immem web`` service."""

    def __init__(
        self,
        base_url: str,
        *,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    def __call__(self, request: AnalyzeRequest) -> AnalyzeResponse:
        url = f"{self.base_url}/api/analyze"
        try:
            response = self._session.post(url, json=request.to_payload(), timeout=self.timeout)
        except requests.Timeout as exc:
            raise AnalyzerTimeoutError(f"Analysis service at {self.base_url} timed out") from exc
        except requests.RequestException as exc:
            raise AnalyzerUnavailableError(
                f"Analysis service at {self.base_url} is unreachable: {exc}"
            ) from exc
        if response.status_code != 200:
            raise AnalyzerError(
                f"Analysis service returned HTTP {response.status_code}: {response.text[:200]}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise AnalyzerError("Analysis service returned invalid JSON") from exc
        return AnalyzeResponse.from_payload(payload)


class RemoteAnalyzer:
    """Client side of the analysis envelope exchange.

    A request that times out leaves the pending table at once, but its
    transport call keeps running on its worker thread until it returns;
    ``Future.cancel`` cannot interrupt it. A transport that hangs therefore
    ties up workers (at most ``min(max_pending, 8)``) while
    :attr:`pending_count` reports them free, and later requests queue behind
    it. Give blocking transports their own timeout (``HttpTransport`` does).
    """

    def __init__(
        self,
        transport: Transport,
        *,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        max_pending: int = DEFAULT_MAX_PENDING,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        if max_pending < 1:
            raise ValueError("max_pending must be at least 1.")
        self._transport = transport
        self._timeout = timeout
        self._max_pending = max_pending
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=min(max_pending, 8),
            thread_name_prefix="immem-analyze",
        )
        self._pending: dict[str, Future] = {}
        self._lock = threading.Lock()
        self._counter = itertools.count(1)
        self._closed = False

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def _next_request_id(self) -> str:
        return f"analyze_{int(time.time() * 1000)}_{next(self._counter)}"

    def analyze(self, text: str) -> list[Word]:
        request = AnalyzeRequest(request_id=self._next_request_id(), text=text)
        with self._lock:
            if self._closed:
                raise AnalyzerError("Analyzer has been closed.")
            if len(self._pending) >= self._max_pending:
                raise AnalyzerBusyError(
                    f"Too many pending analysis requests ({self._max_pending})."
                )
            future = self._executor.submit(self._transport, request)
            self._pending[request.request_id] = future
        try:
            response = future.result(timeout=self._timeout)
        except AnalyzerError:
            raise
        except FutureTimeoutError as exc:
            future.cancel()
            raise AnalyzerTimeoutError(
                f"Analysis request timed out ({self._timeout:g}s)."
            ) from exc
        except CancelledError as exc:
            raise AnalyzerError("Analysis request was cancelled.") from exc
        finally:
            with self._lock:
                self._pending.pop(request.request_id, None)
        return self._handle_response(request, response)

    def _handle_response(self, request: AnalyzeRequest, response: AnalyzeResponse) -> list[Word]:
        if response.request_id != request.request_id:
            raise AnalyzerError(f"Received response for unknown request id {response.request_id!r}.")
        if not response.success:
            raise AnalyzerError(response.error or "Analysis failed.")
        return response.words

    def close(self) -> None:
        with self._lock:
            pending = list(self._pending.values())
            self._pending.clear()
            self._closed = True
        for future in pending:
            future.cancel()
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> "RemoteAnalyzer":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class CachedAnalyzer:
    """Time-boxed LRU cache in front of any analyzer; keyed by exact text."""

    def __init__(
        self,
        analyzer: _Backend,
        *,
        ttl: float = DEFAULT_CACHE_TTL,
        max_entries: int = DEFAULT_CACHE_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._analyzer = analyzer
        self._ttl = ttl
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, list[Word]]] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def analyze(self, text: str) -> list[Word]:
        now = self._clock()
        with self._lock:
            cached = self._entries.get(text)
            if cached is not None:
                stored_at, words = cached
                if now - stored_at < self._ttl:
                    self._entries.move_to_end(text)
                    self.hits += 1
                    return copy.deepcopy(words)
                del self._entries[text]
            self.misses += 1
        words = self._analyzer.analyze(text)
        with self._lock:
            # The cache keeps its own copy; hits hand out fresh copies of it.
            self._entries[text] = (now, copy.deepcopy(words))
            self._entries.move_to_end(text)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)
        return words

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
