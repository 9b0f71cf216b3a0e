"""Client facade for the REST library.

``Client`` owns a transport and layers the request-scoped retry loop and the
typed JSON entrypoints on top of a single ``execute`` primitive:

- execute / execute_checked: raw responses, with or without status checks
- execute_json / execute_json_checked: decode the body into a type
- *_direct variants: same, but the transport skips response headers
- get / get_url / post / post_json / post_json_response: verb conveniences

Example:
    Production usage::

        async with Client() as client:
            ping = await client.execute_json_checked(
                RestRequest.get("https://api.example.com/v1/ping")
                .with_retry_on_status(503, 2),
                Ping,
            )

    Deterministic tests::

        mock = MockRestAdapter()
        mock.queue_get_response(url, MockResponse.text(200, '{"ok":true}'))
        client = Client.with_transport(mock)
"""

import asyncio
import logging
from typing import Any, TypeVar

from restapi._transport import HttpxTransport, RestTransport
from restapi.config import ClientConfig
from restapi.exceptions import RestError
from restapi.models import RestRequest, RestResponse

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Client:
    """Executes requests against a pluggable transport.

    The client never retries unless the request's retry policy says so, and
    never turns a non-2xx response into an error outside the ``*_checked``
    entrypoints.

    Attributes:
        transport: The transport every attempt is sent through.
        config: Defaults applied to requests (per-attempt timeout).
    """

    def __init__(
        self,
        transport: RestTransport | None = None,
        config: ClientConfig | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            transport: Transport to send attempts through. Defaults to an
                ``HttpxTransport`` built from ``config``.
            config: Client configuration. Defaults to ``ClientConfig()``.
        """
        self.config = config or ClientConfig()
        self.transport = transport if transport is not None else HttpxTransport(self.config)

    @classmethod
    def with_transport(
        cls, transport: RestTransport, config: ClientConfig | None = None
    ) -> "Client":
        """Create a client around an existing transport."""
        return cls(transport=transport, config=config)

    async def aclose(self) -> None:
        """Close the transport and release its resources."""
        await self.transport.aclose()

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def _attempt(self, request: RestRequest) -> RestResponse:
        """Send one attempt under the request's per-attempt deadline."""
        timeout = request.timeout or self.config.timeout
        try:
            return await asyncio.wait_for(self.transport.send(request), timeout)
        except asyncio.TimeoutError as e:
            raise RestError.timeout(
                f"{request.method} {request.url} exceeded {timeout}s", retryable=True
            ) from e

    async def execute(self, request: RestRequest) -> RestResponse:
        """Execute ``request``, retrying only as its retry policy allows.

        Attempts are strictly sequential. Responses with a status covered by
        the policy are retried until that status's budget is spent; retryable
        transport errors are retried only under an explicit transport budget.

        Args:
            request: The request to send.

        Returns:
            The last response received, whatever its status.

        Raises:
            RestError: The last transport error, once no retry applies.
        """
        policy = request.retry_policy
        status_budgets: dict[int, int] = {}
        transport_budget = policy.budget_for_transport_error()
        attempt = 0

        while True:
            attempt += 1
            try:
                response = await self._attempt(request)
            except RestError as e:
                if e.retryable and transport_budget > 0:
                    transport_budget -= 1
                    logger.info(
                        f"Retrying {request.method} {request.url} after {e.kind.value} error "
                        f"(attempt {attempt}, {transport_budget} transport retries left)"
                    )
                    continue
                if e.retryable and policy.transport_errors:
                    logger.warning(
                        f"Transport retry budget exhausted for {request.method} {request.url} "
                        f"after {attempt} attempts: {e.message}"
                    )
                raise

            status = response.status
            if status not in status_budgets:
                status_budgets[status] = policy.budget_for_status(status)
            remaining = status_budgets[status]
            if remaining > 0:
                status_budgets[status] = remaining - 1
                logger.info(
                    f"Retrying {request.method} {request.url} after status {status} "
                    f"(attempt {attempt}, {remaining - 1} retries left for {status})"
                )
                continue

            if policy.covers_status(status):
                logger.warning(
                    f"Retry budget exhausted for status {status} on "
                    f"{request.method} {request.url} after {attempt} attempts"
                )
            logger.debug(f"{request.method} {request.url} finished with {status} after {attempt} attempts")
            return response

    def _check_status(self, request: RestRequest, response: RestResponse) -> RestResponse:
        error = response.error_for_status(
            retryable=request.retry_policy.covers_status(response.status)
        )
        if error is not None:
            raise error
        return response

    async def execute_checked(self, request: RestRequest) -> RestResponse:
        """Execute ``request`` and reject any terminal status >= 400.

        Raises:
            RestError: REJECTED with the status and body text, or any
                transport error from ``execute``.
        """
        response = await self.execute(request)
        return self._check_status(request, response)

    async def execute_json(self, request: RestRequest, target: type[T]) -> T:
        """Execute ``request`` and decode the body into ``target``.

        The status is not checked; an error body that does not match
        ``target`` surfaces as a DECODE error.
        """
        response = await self.execute(request)
        return response.json(target)

    async def execute_json_checked(self, request: RestRequest, target: type[T]) -> T:
        """Execute ``request``, reject statuses >= 400, then decode the body."""
        response = await self.execute_checked(request)
        return response.json(target)

    async def execute_direct(self, request: RestRequest) -> RestResponse:
        """Like ``execute``, without materializing response headers."""
        return await self.execute(request.without_response_headers())

    async def execute_json_direct(self, request: RestRequest, target: type[T]) -> T:
        """Like ``execute_json``, without materializing response headers."""
        return await self.execute_json(request.without_response_headers(), target)

    async def execute_json_checked_direct(self, request: RestRequest, target: type[T]) -> T:
        """Like ``execute_json_checked``, without materializing response headers."""
        return await self.execute_json_checked(request.without_response_headers(), target)

    # Verb conveniences

    async def get(self, request: RestRequest) -> RestResponse:
        return await self.execute(request)

    async def get_url(self, url: str) -> RestResponse:
        """GET ``url`` with default settings."""
        return await self.execute(RestRequest.get(url))

    async def post(self, url: str, body: bytes | str) -> RestResponse:
        """POST raw ``body`` to ``url``."""
        return await self.execute(RestRequest.post(url).with_body(body))

    async def post_json(self, url: str, payload: Any) -> RestResponse:
        """POST ``payload`` as JSON and return the raw response."""
        return await self.execute(RestRequest.post(url).with_json(payload))

    async def post_json_response(self, url: str, payload: Any, target: type[T]) -> T:
        """POST ``payload`` as JSON and decode a checked response into ``target``."""
        return await self.execute_json_checked_direct(
            RestRequest.post(url).with_json(payload), target
        )
