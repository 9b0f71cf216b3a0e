"""Transport abstraction and the production httpx transport.

A transport performs exactly one network attempt per ``send`` call and never
retries on its own; retry decisions belong to ``Client``. Everything the
client needs to classify an attempt is in the returned ``RestResponse`` or
the raised ``RestError``.

This is an internal module. Import from `restapi` instead.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any

import httpx

from restapi.config import ClientConfig
from restapi.exceptions import RestError
from restapi.models import RestRequest, RestResponse

logger = logging.getLogger(__name__)


class RestTransport(ABC):
    """Capability interface: send one request, get one response or error."""

    @abstractmethod
    async def send(self, request: RestRequest) -> RestResponse:
        """Perform a single attempt for ``request``.

        Returns:
            The response, whatever its status.

        Raises:
            RestError: If the attempt failed before a response was received.
        """

    async def aclose(self) -> None:
        """Release transport resources. The default has nothing to release."""
        return None


class HttpxTransport(RestTransport):
    """Production transport backed by ``httpx.AsyncClient``.

    Connection pooling, TLS and redirects are httpx's business; this class
    only translates between the client's value types and httpx, and maps
    httpx failures onto ``RestError`` kinds.

    Attributes:
        config: The client configuration in effect.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            config: Timeout, header and TLS settings. Defaults to
                ``ClientConfig()``.
            transport: Custom httpx transport (e.g., ``httpx.MockTransport``
                or ``httpx.ASGITransport`` for testing).
        """
        self.config = config or ClientConfig()
        self._client = httpx.AsyncClient(
            timeout=self.config.timeout,
            headers=self.config.base_headers(),
            follow_redirects=self.config.follow_redirects,
            verify=self.config.verify_tls,
            transport=transport,
        )

    async def aclose(self) -> None:
        """Close the underlying httpx client."""
        await self._client.aclose()

    async def __aenter__(self) -> "HttpxTransport":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def send(self, request: RestRequest) -> RestResponse:
        timeout = request.timeout or self.config.timeout

        try:
            http_request = self._client.build_request(
                request.method,
                request.url,
                headers=list(request.headers),
                content=request.body,
                timeout=timeout,
            )
        except (httpx.InvalidURL, ValueError) as e:
            raise RestError.transport(
                f"invalid request {request.method} {request.url}: {e}",
                retryable=False,
            ) from e

        start = time.perf_counter()
        try:
            response = await self._client.send(http_request)
        except httpx.ConnectError as e:
            raise RestError.connect(
                f"failed to connect to {request.url}: {e}", retryable=True
            ) from e
        except httpx.TimeoutException as e:
            raise RestError.timeout(
                f"request to {request.url} timed out after {timeout}s", retryable=True
            ) from e
        except (httpx.RemoteProtocolError, httpx.ReadError) as e:
            # The peer went away mid-response
            raise RestError.transport(
                f"connection dropped while reading {request.url}: {e}", retryable=True
            ) from e
        except httpx.HTTPError as e:
            raise RestError.transport(
                f"request to {request.url} failed: {e}", retryable=False
            ) from e
        elapsed = time.perf_counter() - start

        logger.debug(
            f"{request.method} {request.url} -> {response.status_code} "
            f"({len(response.content)} bytes, {elapsed:.3f}s)"
        )

        if request.skip_response_headers:
            headers: tuple[tuple[str, str], ...] = ()
        else:
            headers = tuple(response.headers.multi_items())

        return RestResponse(
            status=response.status_code,
            headers=headers,
            body=response.content,
            elapsed=elapsed,
        )
