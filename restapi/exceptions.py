"""Exception hierarchy for the REST client library.

Every ordinary failure of a request (connection refused, deadline exceeded,
rejected status, undecodable body) is raised as a single exception type,
``RestError``, whose ``kind`` is drawn from a closed enum. Callers branch on
``kind`` and ``retryable`` rather than on a class hierarchy, because the same
kind can be retryable in one context and terminal in another.

``MockConfigurationError`` is deliberately unrelated to ``RestError``: it
signals a broken test setup (for example, no response queued for a route)
and must never be caught by code that handles production failures.

Exception Hierarchy:
    RestError (kind: RestErrorKind)
    ├── CONNECT - could not establish an attempt
    ├── TIMEOUT - attempt exceeded its deadline
    ├── REJECTED - well-formed response with a failure status
    ├── TRANSPORT - generic attempt failure
    └── DECODE - body could not be parsed into the requested type

    MockConfigurationError - mock transport used without a scripted outcome

Example:
    Handling a checked JSON call::

        try:
            ping = await client.execute_json_checked(request, Ping)
        except RestError as e:
            if e.kind is RestErrorKind.REJECTED:
                print(f"server said {e.status}: {e.message}")
            elif e.retryable:
                schedule_later(request)
            else:
                raise
"""

from enum import Enum


class RestErrorKind(str, Enum):
    """Closed set of failure kinds for a REST call."""

    CONNECT = "connect"
    TIMEOUT = "timeout"
    REJECTED = "rejected"
    TRANSPORT = "transport"
    DECODE = "decode"


class RestError(Exception):
    """A classified failure of one REST call.

    Instances are immutable after construction. ``retryable`` is supplied by
    whichever layer produced the error and is never recomputed from ``kind``.

    Attributes:
        kind: The failure category.
        message: Human-readable error description.
        status: HTTP status associated with the failure, if any.
        retryable: Whether retrying the same request may succeed.
    """

    __slots__ = ("kind", "message", "status", "retryable")

    def __init__(
        self,
        kind: RestErrorKind,
        message: str,
        status: int | None = None,
        retryable: bool = False,
    ) -> None:
        """Initialize the error.

        Args:
            kind: The failure category.
            message: Human-readable error description.
            status: HTTP status associated with the failure, if any.
            retryable: Whether retrying the same request may succeed.
        """
        object.__setattr__(self, "kind", RestErrorKind(kind))
        object.__setattr__(self, "message", message)
        object.__setattr__(self, "status", status)
        object.__setattr__(self, "retryable", retryable)
        super().__init__(message)

    def __setattr__(self, name: str, value: object) -> None:
        if name in self.__slots__:
            raise AttributeError(f"RestError.{name} is read-only")
        super().__setattr__(name, value)

    def __str__(self) -> str:
        """Return string representation including kind and status."""
        parts = [f"rest error {self.kind.value}"]
        if self.status is not None:
            parts.append(f"status={self.status}")
        parts.append(f"retryable={self.retryable}")
        parts.append(self.message)
        return " ".join(parts)

    def __repr__(self) -> str:
        return (
            f"RestError(kind={self.kind.value!r}, message={self.message!r}, "
            f"status={self.status!r}, retryable={self.retryable!r})"
        )

    def __reduce__(self):
        return (type(self), (self.kind, self.message, self.status, self.retryable))

    def is_retryable(self) -> bool:
        """Return whether the producing layer marked this error retryable."""
        return self.retryable

    @classmethod
    def connect(
        cls, message: str, status: int | None = None, retryable: bool = True
    ) -> "RestError":
        """Build a CONNECT error (retryable unless told otherwise)."""
        return cls(RestErrorKind.CONNECT, message, status, retryable)

    @classmethod
    def timeout(
        cls, message: str, status: int | None = None, retryable: bool = True
    ) -> "RestError":
        """Build a TIMEOUT error (retryable unless told otherwise)."""
        return cls(RestErrorKind.TIMEOUT, message, status, retryable)

    @classmethod
    def rejected(cls, status: int, message: str, retryable: bool = False) -> "RestError":
        """Build a REJECTED error for a response with a failure status."""
        return cls(RestErrorKind.REJECTED, message, status, retryable)

    @classmethod
    def transport(
        cls, message: str, status: int | None = None, retryable: bool = False
    ) -> "RestError":
        """Build a generic TRANSPORT error."""
        return cls(RestErrorKind.TRANSPORT, message, status, retryable)

    @classmethod
    def decode(
        cls, message: str, status: int | None = None, retryable: bool = False
    ) -> "RestError":
        """Build a DECODE error. Decode failures are not retryable by default."""
        return cls(RestErrorKind.DECODE, message, status, retryable)


class MockConfigurationError(Exception):
    """The mock transport was asked for an outcome nobody scripted.

    Raised when a request reaches a ``MockRestAdapter`` with no behavior
    planned and nothing queued for its route or the default queue, or when a
    replay refers to a response that was never recorded.

    Attributes:
        message: Human-readable error description.
        method: HTTP method of the offending request, if known.
        url: URL of the offending request, if known.
    """

    def __init__(
        self,
        message: str,
        method: str | None = None,
        url: str | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            method: HTTP method of the offending request.
            url: URL of the offending request.
        """
        self.message = message
        self.method = method
        self.url = url
        super().__init__(message)

    def __str__(self) -> str:
        """Return string representation including the route if available."""
        if self.method and self.url:
            return f"{self.message} (route: {self.method} {self.url})"
        return self.message
