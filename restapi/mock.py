"""Deterministic in-memory transport for testing REST call sites.

``MockRestAdapter`` replaces the network with scripted outcomes. Each call to
``send`` resolves exactly one scripted entry, taken from (in order):

1. the behavior plan the adapter was constructed with, if not exhausted
2. the per-route queue for the request's ``(method, url)``
3. the default queue

If none of these has an entry, ``MockConfigurationError`` is raised. An
unscripted call is a broken test, never a silent 200.

Behaviors:
    PassBehavior - return a fixed response, or the next queued one
    DelayBehavior - sleep cooperatively, then resolve an inner behavior
    RejectBehavior - return an error-status response (not a transport error)
    DropBehavior - fail with a retryable CONNECT error
    ReplayBehavior - return the n-th response previously recorded for the route
    ConnectErrorBehavior / TimeoutErrorBehavior / TransportErrorBehavior -
        raise the configured RestError verbatim

Every resolution, including those made during client retries, is appended
to the adapter's call history before ``send`` returns or raises.

Example:
    mock = MockRestAdapter()
    mock.queue_get_response(
        "https://api.example.com/v1/ping",
        MockResponse.json(200, {"ok": True, "request_id": "ping-42"}),
    )
    client = Client.with_transport(mock)
    ping = await client.execute_json_checked(
        RestRequest.get("https://api.example.com/v1/ping"), Ping
    )
    assert mock.call_count() == 1
"""

import asyncio
import logging
import threading
import time
from collections import deque
from collections.abc import Iterable
from enum import Enum
from typing import Any, ClassVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from restapi._json import encode_json
from restapi._transport import RestTransport
from restapi.exceptions import MockConfigurationError, RestError, RestErrorKind
from restapi.models import Header, RestRequest, RestResponse, RestTransportState

logger = logging.getLogger(__name__)


# =============================================================================
# Scripted responses
# =============================================================================


class MockResponse(BaseModel):
    """A canned HTTP response returned by the mock transport.

    Attributes:
        status: HTTP status code.
        headers: Ordered (name, value) pairs.
        body: Response body bytes, returned untouched.
    """

    model_config = ConfigDict(frozen=True)

    status: int
    headers: tuple[Header, ...] = ()
    body: bytes = b""

    @classmethod
    def new(cls, status: int, body: bytes | bytearray | str = b"") -> "MockResponse":
        if isinstance(body, str):
            body = body.encode("utf-8")
        return cls(status=status, body=bytes(body))

    @classmethod
    def from_bytes(cls, status: int, body: bytes, content_type: str = "application/octet-stream") -> "MockResponse":
        return cls.new(status, body).with_header("Content-Type", content_type)

    @classmethod
    def text(cls, status: int, body: str) -> "MockResponse":
        return cls.new(status, body).with_header("Content-Type", "text/plain; charset=utf-8")

    @classmethod
    def json(cls, status: int, payload: Any) -> "MockResponse":
        """Build a response whose body is ``payload`` serialized as JSON.

        Raises:
            RestError: DECODE if ``payload`` cannot be serialized.
        """
        return cls.new(status, encode_json(payload)).with_header(
            "Content-Type", "application/json"
        )

    @classmethod
    def text_error(cls, status: int, message: str) -> "MockResponse":
        return cls.text(status, message)

    @classmethod
    def json_error(cls, status: int, payload: Any) -> "MockResponse":
        return cls.json(status, payload)

    def with_header(self, name: str, value: str) -> "MockResponse":
        return self.model_copy(update={"headers": self.headers + ((name, value),)})

    def to_response(self, elapsed: float = 0.0) -> RestResponse:
        return RestResponse(
            status=self.status, headers=self.headers, body=self.body, elapsed=elapsed
        )


# =============================================================================
# Behaviors
# =============================================================================


class MockBehavior(BaseModel):
    """Base of the closed set of scripted mock outcomes.

    Use the factory classmethods rather than instantiating variants directly.
    """

    model_config = ConfigDict(frozen=True)

    @classmethod
    def pass_through(cls, response: MockResponse | None = None) -> "PassBehavior":
        """Return ``response``, or the next queued entry when None."""
        return PassBehavior(response=response)

    @classmethod
    def delay(cls, seconds: float, then: "MockEntry | None" = None) -> "DelayBehavior":
        """Sleep ``seconds``, then resolve ``then`` (a pass-through by default).

        ``then`` may be a ``MockResponse``, which is returned as-is after the delay.
        """
        return DelayBehavior(seconds=seconds, then=then if then is not None else PassBehavior())

    @classmethod
    def reject(cls, status: int, message: str) -> "RejectBehavior":
        return RejectBehavior(status=status, message=message)

    @classmethod
    def drop(cls) -> "DropBehavior":
        return DropBehavior()

    @classmethod
    def replay(cls, index: int) -> "ReplayBehavior":
        return ReplayBehavior(index=index)

    @classmethod
    def connect_error(
        cls, message: str, status: int | None = None, retryable: bool = True
    ) -> "ConnectErrorBehavior":
        return ConnectErrorBehavior(message=message, status=status, retryable=retryable)

    @classmethod
    def timeout_error(
        cls, message: str, status: int | None = None, retryable: bool = True
    ) -> "TimeoutErrorBehavior":
        return TimeoutErrorBehavior(message=message, status=status, retryable=retryable)

    @classmethod
    def transport_error(
        cls, message: str, status: int | None = None, retryable: bool = False
    ) -> "TransportErrorBehavior":
        return TransportErrorBehavior(message=message, status=status, retryable=retryable)


class PassBehavior(MockBehavior):
    response: MockResponse | None = None


class DelayBehavior(MockBehavior):
    seconds: float = Field(..., ge=0)
    then: MockBehavior = Field(default_factory=PassBehavior)

    @field_validator("then", mode="before")
    @classmethod
    def _coerce_then(cls, value: Any) -> Any:
        if isinstance(value, MockResponse):
            return PassBehavior(response=value)
        return value


class RejectBehavior(MockBehavior):
    """An application-level error response; the retry loop sees its status."""

    status: int = Field(..., ge=400, le=599)
    message: str = "rejected"


class DropBehavior(MockBehavior):
    pass


class ReplayBehavior(MockBehavior):
    index: int = Field(..., ge=0)


class ErrorBehavior(MockBehavior):
    """Raise a transport-level ``RestError`` exactly as configured."""

    error_kind: ClassVar[RestErrorKind]

    message: str
    status: int | None = None
    retryable: bool = False

    def to_error(self) -> RestError:
        return RestError(self.error_kind, self.message, self.status, self.retryable)


class ConnectErrorBehavior(ErrorBehavior):
    error_kind: ClassVar[RestErrorKind] = RestErrorKind.CONNECT


class TimeoutErrorBehavior(ErrorBehavior):
    error_kind: ClassVar[RestErrorKind] = RestErrorKind.TIMEOUT


class TransportErrorBehavior(ErrorBehavior):
    error_kind: ClassVar[RestErrorKind] = RestErrorKind.TRANSPORT


MockEntry = Union[MockResponse, MockBehavior]


def _as_behavior(entry: MockEntry) -> MockBehavior:
    if isinstance(entry, MockResponse):
        return PassBehavior(response=entry)
    if isinstance(entry, MockBehavior):
        return entry
    raise TypeError(f"expected MockResponse or MockBehavior, got {type(entry).__name__}")


# =============================================================================
# Scenarios and behavior plans
# =============================================================================


class MockScenarioStepKind(str, Enum):
    PASS = "pass"
    DELAY = "delay"
    REJECT = "reject"
    DROP = "drop"
    REPLAY = "replay"


class MockScenarioStep(BaseModel):
    """One step of a ``MockScenario``; optional fields depend on ``kind``."""

    model_config = ConfigDict(frozen=True)

    kind: MockScenarioStepKind
    status: int | None = None
    message: str | None = None
    delay: float | None = None
    index: int | None = None

    def to_behavior(self) -> MockBehavior:
        if self.kind is MockScenarioStepKind.PASS:
            return PassBehavior()
        if self.kind is MockScenarioStepKind.DELAY:
            return DelayBehavior(seconds=self.delay or 0.0)
        if self.kind is MockScenarioStepKind.REJECT:
            return RejectBehavior(status=self.status or 500, message=self.message or "rejected")
        if self.kind is MockScenarioStepKind.DROP:
            return DropBehavior()
        if self.kind is MockScenarioStepKind.REPLAY:
            return ReplayBehavior(index=self.index or 0)
        raise ValueError(f"unknown scenario step kind: {self.kind}")


class MockScenario:
    """Fluent builder for a sequence of scenario steps.

    Example:
        scenario = MockScenario().reject(503, "busy").delay(0.01).pass_()
        mock = MockRestAdapter.from_scenario(scenario)
    """

    def __init__(self, steps: Iterable[MockScenarioStep] = ()) -> None:
        self.steps: list[MockScenarioStep] = list(steps)

    def __len__(self) -> int:
        return len(self.steps)

    def push(self, step: MockScenarioStep) -> "MockScenario":
        self.steps.append(step)
        return self

    def pass_(self) -> "MockScenario":
        return self.push(MockScenarioStep(kind=MockScenarioStepKind.PASS))

    def delay(self, seconds: float) -> "MockScenario":
        return self.push(MockScenarioStep(kind=MockScenarioStepKind.DELAY, delay=seconds))

    def reject(self, status: int, message: str) -> "MockScenario":
        return self.push(
            MockScenarioStep(kind=MockScenarioStepKind.REJECT, status=status, message=message)
        )

    def drop_response(self) -> "MockScenario":
        return self.push(MockScenarioStep(kind=MockScenarioStepKind.DROP))

    def replay(self, index: int) -> "MockScenario":
        return self.push(MockScenarioStep(kind=MockScenarioStepKind.REPLAY, index=index))


class MockBehaviorPlan:
    """Ordered, consumable script of behaviors, popped front to back.

    Attributes:
        strict: When True, a call arriving while the plan is empty raises
            ``MockConfigurationError`` instead of falling back to the queues.
            An empty strict plan therefore rejects every call.
    """

    def __init__(self, behaviors: Iterable[MockBehavior] = (), strict: bool = False) -> None:
        self._behaviors: deque[MockBehavior] = deque()
        self.strict = strict
        self.extend(behaviors)

    def __len__(self) -> int:
        return len(self._behaviors)

    def __repr__(self) -> str:
        return f"MockBehaviorPlan({list(self._behaviors)!r}, strict={self.strict})"

    def push(self, behavior: MockBehavior) -> "MockBehaviorPlan":
        self._behaviors.append(_as_behavior(behavior))
        return self

    def extend(self, behaviors: Iterable[MockBehavior]) -> "MockBehaviorPlan":
        for behavior in behaviors:
            self.push(behavior)
        return self

    def pop(self) -> MockBehavior | None:
        """Remove and return the next behavior, or None when exhausted."""
        return self._behaviors.popleft() if self._behaviors else None

    def copy(self) -> "MockBehaviorPlan":
        return MockBehaviorPlan(self._behaviors, strict=self.strict)

    @classmethod
    def scenario(cls, scenario: MockScenario, strict: bool = False) -> "MockBehaviorPlan":
        """Build a plan from a scenario's steps."""
        return cls((step.to_behavior() for step in scenario.steps), strict=strict)


# =============================================================================
# Call history
# =============================================================================


class CallRecord(BaseModel):
    """One resolved attempt against the mock transport.

    Attributes:
        sequence: Zero-based position in the adapter's history.
        timestamp: Wall-clock time the attempt resolved.
        request: The request as sent.
        behavior: The behavior the attempt resolved to. A pass-through that
            drew from the queues, or a delay, records the queued or inner
            behavior that produced the outcome.
        response: The response returned, if any.
        error: The error raised, if any.
        config_error: Message of the ``MockConfigurationError`` raised when
            a consumed entry could not be resolved (empty queues, replay
            index out of range).
        cancelled: True when the attempt was cancelled while pending. This
            covers the client's per-attempt deadline as well as caller
            cancellation; on a deadline the caller receives a TIMEOUT
            ``RestError`` while the record carries no error.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    sequence: int
    timestamp: float
    request: RestRequest
    behavior: MockBehavior
    response: RestResponse | None = None
    error: RestError | None = None
    config_error: str | None = None
    cancelled: bool = False

    @property
    def route_key(self) -> tuple[str, str]:
        return self.request.route_key

    @property
    def status(self) -> int | None:
        """Status of the response, or of the error when it carries one."""
        if self.response is not None:
            return self.response.status
        if self.error is not None:
            return self.error.status
        return None


class MockRestStateSnapshot(BaseModel):
    """Point-in-time view of a mock adapter's counters and queues."""

    model_config = ConfigDict(frozen=True)

    state: RestTransportState
    request_count: int
    last_url: str | None
    last_status: int | None
    behavior_remaining: int
    response_queue_len: int
    route_queue_len: int
    call_count: int
    elapsed_total: float
    last_error: str | None


# =============================================================================
# Adapter
# =============================================================================


class MockRestAdapter(RestTransport):
    """Scripted transport with per-route queues and call recording.

    Queues and history belong to this instance and live as long as it does;
    nothing is ever cleared implicitly. All mutation happens under one lock,
    so concurrent callers consume each queued entry exactly once.
    """

    def __init__(self, behavior_plan: MockBehaviorPlan | None = None) -> None:
        """Initialize the adapter.

        Args:
            behavior_plan: Behaviors consumed before any queued entry. The
                plan is copied; later changes to the argument have no effect.
        """
        self._lock = threading.Lock()
        self._plan = behavior_plan.copy() if behavior_plan is not None else MockBehaviorPlan()
        self._default_queue: deque[MockBehavior] = deque()
        self._route_queues: dict[tuple[str, str], deque[MockBehavior]] = {}
        self._calls: list[CallRecord] = []

        self._state = RestTransportState.IDLE
        self._request_count = 0
        self._last_url: str | None = None
        self._last_status: int | None = None
        self._last_error: str | None = None
        self._elapsed_total = 0.0

    @classmethod
    def with_behavior_plan(cls, behavior_plan: MockBehaviorPlan) -> "MockRestAdapter":
        return cls(behavior_plan)

    @classmethod
    def from_scenario(cls, scenario: MockScenario, strict: bool = False) -> "MockRestAdapter":
        return cls(MockBehaviorPlan.scenario(scenario, strict=strict))

    # -------------------------------------------------------------------------
    # Queueing
    # -------------------------------------------------------------------------

    def queue_response(self, entry: MockEntry) -> None:
        """Push a response or behavior onto the default queue."""
        behavior = _as_behavior(entry)
        with self._lock:
            self._default_queue.append(behavior)

    queue_behavior = queue_response

    def queue_route_response(self, method: str, url: str, entry: MockEntry) -> None:
        """Push a response or behavior onto the queue for ``(method, url)``."""
        behavior = _as_behavior(entry)
        key = (method.strip().upper(), url)
        with self._lock:
            self._route_queues.setdefault(key, deque()).append(behavior)

    def queue_get_response(self, url: str, entry: MockEntry) -> None:
        self.queue_route_response("GET", url, entry)

    def queue_post_response(self, url: str, entry: MockEntry) -> None:
        self.queue_route_response("POST", url, entry)

    def queue_error_response(
        self, url: str, status: int, body: bytes | str, method: str = "GET"
    ) -> None:
        self.queue_route_response(method, url, MockResponse.new(status, body))

    def queue_error_text(self, url: str, status: int, message: str, method: str = "GET") -> None:
        self.queue_route_response(method, url, MockResponse.text_error(status, message))

    def queue_error_json(self, url: str, status: int, payload: Any, method: str = "GET") -> None:
        """Queue a JSON error body for a route.

        Raises:
            RestError: DECODE if ``payload`` cannot be serialized.
        """
        self.queue_route_response(method, url, MockResponse.json_error(status, payload))

    # -------------------------------------------------------------------------
    # Call history
    # -------------------------------------------------------------------------

    @property
    def calls(self) -> tuple[CallRecord, ...]:
        with self._lock:
            return tuple(self._calls)

    def _matching(self, method: str | None, url: str | None) -> list[CallRecord]:
        wanted_method = method.strip().upper() if method else None
        with self._lock:
            return [
                call
                for call in self._calls
                if (wanted_method is None or call.request.method == wanted_method)
                and (url is None or call.request.url == url)
            ]

    def call_count(self, method: str | None = None, url: str | None = None) -> int:
        """Count recorded attempts, optionally filtered by method and/or URL."""
        return len(self._matching(method, url))

    def calls_for_route(self, method: str, url: str) -> list[CallRecord]:
        return self._matching(method, url)

    def last_call(self, method: str | None = None, url: str | None = None) -> CallRecord | None:
        matching = self._matching(method, url)
        return matching[-1] if matching else None

    def snapshot(self) -> MockRestStateSnapshot:
        with self._lock:
            return MockRestStateSnapshot(
                state=self._state,
                request_count=self._request_count,
                last_url=self._last_url,
                last_status=self._last_status,
                behavior_remaining=len(self._plan),
                response_queue_len=len(self._default_queue),
                route_queue_len=sum(len(q) for q in self._route_queues.values()),
                call_count=len(self._calls),
                elapsed_total=self._elapsed_total,
                last_error=self._last_error,
            )

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def _pop_queued(self, request: RestRequest) -> MockBehavior:
        """Pop from the route queue, then the default queue. Caller holds the lock."""
        queue = self._route_queues.get(request.route_key)
        if queue:
            return queue.popleft()
        if self._default_queue:
            return self._default_queue.popleft()
        raise MockConfigurationError(
            "no mock response queued", method=request.method, url=request.url
        )

    def _next_entry(self, request: RestRequest) -> MockBehavior:
        """Pick the scripted entry for a new attempt. Caller holds the lock."""
        behavior = self._plan.pop()
        if behavior is not None:
            return behavior
        if self._plan.strict:
            raise MockConfigurationError(
                "behavior plan exhausted", method=request.method, url=request.url
            )
        return self._pop_queued(request)

    def _replayed(self, request: RestRequest, index: int) -> RestResponse:
        with self._lock:
            history = [
                call.response
                for call in self._calls
                if call.route_key == request.route_key and call.response is not None
            ]
        if index >= len(history):
            raise MockConfigurationError(
                f"replay index {index} out of range ({len(history)} responses recorded)",
                method=request.method,
                url=request.url,
            )
        return history[index]

    async def _resolve(
        self, request: RestRequest, resolved: list[MockBehavior], start: float
    ) -> RestResponse:
        """Resolve the last behavior in ``resolved`` to a response or an error.

        Behaviors reached through a pass-through or a delay are appended to
        ``resolved``, so its last element is always the one being resolved.
        """
        while True:
            behavior = resolved[-1]
            if isinstance(behavior, PassBehavior):
                if behavior.response is not None:
                    return behavior.response.to_response(time.perf_counter() - start)
                with self._lock:
                    resolved.append(self._pop_queued(request))
            elif isinstance(behavior, DelayBehavior):
                await asyncio.sleep(behavior.seconds)
                resolved.append(behavior.then)
            elif isinstance(behavior, RejectBehavior):
                return RestResponse(
                    status=behavior.status,
                    headers=(("Content-Type", "text/plain; charset=utf-8"),),
                    body=behavior.message.encode("utf-8"),
                    elapsed=time.perf_counter() - start,
                )
            elif isinstance(behavior, DropBehavior):
                raise RestError.connect("mock transport dropped the connection", retryable=True)
            elif isinstance(behavior, ReplayBehavior):
                return self._replayed(request, behavior.index)
            elif isinstance(behavior, ErrorBehavior):
                raise behavior.to_error()
            else:
                raise TypeError(f"unsupported mock behavior: {type(behavior).__name__}")

    def _record(
        self,
        request: RestRequest,
        behavior: MockBehavior,
        response: RestResponse | None = None,
        error: RestError | None = None,
        config_error: str | None = None,
        cancelled: bool = False,
    ) -> None:
        """Append a call record and update counters. Caller holds the lock."""
        self._calls.append(
            CallRecord(
                sequence=len(self._calls),
                timestamp=time.time(),
                request=request,
                behavior=behavior,
                response=response,
                error=error,
                config_error=config_error,
                cancelled=cancelled,
            )
        )
        if response is not None:
            self._state = RestTransportState.IDLE
            self._last_status = response.status
            self._last_error = None
            self._elapsed_total += response.elapsed
        elif error is not None:
            self._state = RestTransportState.ERROR
            self._last_status = error.status
            self._last_error = error.message
        elif config_error is not None:
            self._state = RestTransportState.ERROR
            self._last_status = None
            self._last_error = config_error
        else:
            self._state = RestTransportState.IDLE

    async def send(self, request: RestRequest) -> RestResponse:
        start = time.perf_counter()
        try:
            with self._lock:
                self._request_count += 1
                self._last_url = request.url
                self._state = RestTransportState.BUSY
                resolved = [self._next_entry(request)]

            try:
                response = await self._resolve(request, resolved, start)
            except RestError as e:
                with self._lock:
                    self._record(request, resolved[-1], error=e)
                logger.debug(f"mock {request.method} {request.url} -> {e.kind.value} error")
                raise
            except MockConfigurationError as e:
                # A consumed entry is always recorded
                with self._lock:
                    self._record(request, resolved[-1], config_error=str(e))
                raise
            except asyncio.CancelledError:
                with self._lock:
                    self._record(request, resolved[-1], cancelled=True)
                raise
        except MockConfigurationError as e:
            with self._lock:
                self._state = RestTransportState.ERROR
                self._last_error = str(e)
            logger.warning(f"Mock transport misconfigured: {e}")
            raise

        with self._lock:
            self._record(request, resolved[-1], response=response)
        logger.debug(f"mock {request.method} {request.url} -> {response.status}")
        return response
