"""Value types for the REST client.

This module defines the request/response values passed between the client
facade and its transports, plus the request-scoped retry policy:

- RetryPolicy: opt-in per-status retry budgets
- RestRequest: immutable description of one HTTP call, built fluently
- RestResponse: the outcome of one successful transport attempt

All models are frozen. Every ``with_*`` call returns a new instance, so a
request handed to ``Client.execute`` can never change underneath it.
"""

from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from restapi._json import decode_json, encode_json
from restapi.exceptions import RestError

T = TypeVar("T")

# HTTP methods with request shortcuts; any other token is still accepted
HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]

Header = tuple[str, str]


class RestTransportState(str, Enum):
    """Coarse state of a transport, as reported by mock snapshots."""

    IDLE = "idle"
    BUSY = "busy"
    ERROR = "error"


def _check_budget(max_retries: int) -> int:
    if max_retries < 0:
        raise ValueError("max_retries must be >= 0")
    return max_retries


class RetryPolicy(BaseModel):
    """Mapping from response status to the number of additional attempts.

    The default policy is empty: no status and no transport error is ever
    retried unless the caller asks for it.

    Attributes:
        statuses: Explicit per-status retry budgets.
        client_errors: Budget applied to every 4xx status without an
            explicit entry (the "all 4xx" wildcard).
        transport_errors: Budget for retryable transport-level errors
            (connect, timeout, dropped connection). Status entries never
            cover these.
    """

    model_config = ConfigDict(frozen=True)

    statuses: dict[int, int] = Field(default_factory=dict)
    client_errors: int | None = None
    transport_errors: int | None = None

    @property
    def is_empty(self) -> bool:
        """True when no retry of any kind is configured."""
        return not self.statuses and not self.client_errors and not self.transport_errors

    def budget_for_status(self, status: int) -> int:
        """Return the retry budget for a response status.

        An explicit entry wins over the 4xx wildcard.
        """
        if status in self.statuses:
            return self.statuses[status]
        if 400 <= status < 500 and self.client_errors is not None:
            return self.client_errors
        return 0

    def covers_status(self, status: int) -> bool:
        """Return whether a response with ``status`` is entitled to a retry."""
        return self.budget_for_status(status) > 0

    def budget_for_transport_error(self) -> int:
        """Return the retry budget for retryable transport errors."""
        return self.transport_errors or 0

    def with_statuses(self, statuses: Iterable[int], max_retries: int, *, extend: bool) -> "RetryPolicy":
        """Return a copy with ``statuses`` set to ``max_retries``.

        With ``extend=False`` the explicit table is replaced; the wildcard
        and transport budgets are kept either way.
        """
        _check_budget(max_retries)
        table = dict(self.statuses) if extend else {}
        for status in statuses:
            table[int(status)] = max_retries
        return self.model_copy(update={"statuses": table})


class RestRequest(BaseModel):
    """Description of one HTTP call.

    Construct with a method and URL, then chain ``with_*`` calls. The pair
    ``(method, url)`` is the route key the mock transport uses for lookup.

    Example:
        request = (
            RestRequest.post("https://api.example.com/v1/jobs")
            .with_json({"name": "reindex"})
            .with_timeout(5.0)
            .with_retry_on_status(503, 2)
        )

    Attributes:
        method: Upper-cased HTTP method.
        url: Absolute URL.
        headers: Ordered (name, value) pairs; duplicates are preserved.
        body: Optional request body bytes.
        timeout: Per-attempt timeout in seconds, or None for the client
            default.
        retry_policy: Request-scoped retry policy (empty by default).
        skip_response_headers: Ask the transport not to materialize response
            headers. Set by the client's ``*_direct`` entrypoints.
    """

    model_config = ConfigDict(frozen=True)

    method: str = Field(..., description="HTTP method")
    url: str = Field(..., description="Absolute request URL")
    headers: tuple[Header, ...] = Field((), description="Ordered request headers")
    body: bytes | None = Field(None, description="Request body")
    timeout: float | None = Field(None, description="Per-attempt timeout in seconds")
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    skip_response_headers: bool = False

    @field_validator("method")
    @classmethod
    def _normalize_method(cls, value: str) -> str:
        value = value.strip().upper()
        if not value:
            raise ValueError("method must not be empty")
        return value

    @field_validator("timeout")
    @classmethod
    def _check_timeout(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            raise ValueError("timeout must be > 0 when provided")
        return value

    def __init__(self, method: str, url: str, **data: Any) -> None:
        super().__init__(method=method, url=url, **data)

    @classmethod
    def get(cls, url: str) -> "RestRequest":
        return cls("GET", url)

    @classmethod
    def post(cls, url: str) -> "RestRequest":
        return cls("POST", url)

    @classmethod
    def put(cls, url: str) -> "RestRequest":
        return cls("PUT", url)

    @classmethod
    def patch(cls, url: str) -> "RestRequest":
        return cls("PATCH", url)

    @classmethod
    def delete(cls, url: str) -> "RestRequest":
        return cls("DELETE", url)

    @property
    def route_key(self) -> tuple[str, str]:
        """The ``(method, url)`` pair identifying this request's route."""
        return (self.method, self.url)

    # Fluent configuration

    def with_header(self, name: str, value: str) -> "RestRequest":
        """Return a copy with one header appended."""
        return self.model_copy(update={"headers": self.headers + ((name, value),)})

    def with_headers(self, headers: Mapping[str, str] | Iterable[Header]) -> "RestRequest":
        """Return a copy with every given header appended in order."""
        items = headers.items() if isinstance(headers, Mapping) else headers
        return self.model_copy(
            update={"headers": self.headers + tuple((k, v) for k, v in items)}
        )

    def with_body(self, body: bytes | bytearray | memoryview | str) -> "RestRequest":
        """Return a copy carrying ``body``. Strings are UTF-8 encoded."""
        if isinstance(body, str):
            body = body.encode("utf-8")
        return self.model_copy(update={"body": bytes(body)})

    def with_json(self, payload: Any) -> "RestRequest":
        """Return a copy whose body is ``payload`` serialized as JSON."""
        return self.with_body(encode_json(payload)).with_header(
            "Content-Type", "application/json"
        )

    def with_timeout(self, seconds: float) -> "RestRequest":
        """Return a copy with a per-attempt timeout in seconds."""
        if seconds <= 0:
            raise ValueError("timeout must be > 0")
        return self.model_copy(update={"timeout": float(seconds)})

    def with_retry_policy(self, policy: RetryPolicy) -> "RestRequest":
        """Return a copy whose retry policy is replaced by ``policy``."""
        return self.model_copy(update={"retry_policy": policy})

    def with_retry_on_status(self, status: int, max_retries: int) -> "RestRequest":
        """Retry responses with ``status`` up to ``max_retries`` more times.

        Merges into the existing table, overriding a previous entry for the
        same status.
        """
        return self.with_retry_policy(
            self.retry_policy.with_statuses([status], max_retries, extend=True)
        )

    def with_retry_on_statuses(self, statuses: Iterable[int], max_retries: int) -> "RestRequest":
        """Replace the per-status table with ``statuses`` at ``max_retries``."""
        return self.with_retry_policy(
            self.retry_policy.with_statuses(statuses, max_retries, extend=False)
        )

    def with_retry_on_statuses_extend(
        self, statuses: Iterable[int], max_retries: int
    ) -> "RestRequest":
        """Add ``statuses`` at ``max_retries`` to the existing per-status table."""
        return self.with_retry_policy(
            self.retry_policy.with_statuses(statuses, max_retries, extend=True)
        )

    def with_retry_on_4xx(self, max_retries: int) -> "RestRequest":
        """Retry every 4xx status without an explicit entry up to ``max_retries``."""
        _check_budget(max_retries)
        return self.with_retry_policy(
            self.retry_policy.model_copy(update={"client_errors": max_retries})
        )

    def with_retry_on_transport_error(self, max_retries: int) -> "RestRequest":
        """Retry retryable transport errors up to ``max_retries`` more times."""
        _check_budget(max_retries)
        return self.with_retry_policy(
            self.retry_policy.model_copy(update={"transport_errors": max_retries})
        )

    def without_response_headers(self) -> "RestRequest":
        """Return a copy that asks the transport to skip response headers."""
        if self.skip_response_headers:
            return self
        return self.model_copy(update={"skip_response_headers": True})


class RestResponse(BaseModel):
    """Result of one transport attempt that produced an HTTP response.

    ``body`` holds exactly the bytes the transport received. Non-2xx
    responses are ordinary values; only the checked client entrypoints turn
    them into errors.

    Attributes:
        status: HTTP status code.
        headers: Ordered (name, value) pairs (empty on the direct path).
        body: Raw response bytes.
        elapsed: Seconds spent on the attempt.
    """

    model_config = ConfigDict(frozen=True)

    status: int
    headers: tuple[Header, ...] = ()
    body: bytes = b""
    elapsed: float = 0.0

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300

    @property
    def text(self) -> str:
        """The body decoded as UTF-8, with replacement for invalid bytes."""
        return self.body.decode("utf-8", errors="replace")

    def header(self, name: str) -> str | None:
        """Return the first header value matching ``name`` (case-insensitive)."""
        wanted = name.lower()
        for key, value in self.headers:
            if key.lower() == wanted:
                return value
        return None

    def json(self, target: type[T]) -> T:
        """Decode the body into ``target`` directly from bytes.

        Raises:
            RestError: DECODE, not retryable, on malformed or mismatched JSON.
        """
        return decode_json(self.body, target, status=self.status)

    def error_for_status(self, retryable: bool = False) -> RestError | None:
        """Return a REJECTED error for statuses >= 400, else None."""
        if self.status < 400:
            return None
        message = self.text or f"HTTP {self.status} error"
        return RestError.rejected(self.status, message, retryable=retryable)
