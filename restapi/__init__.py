"""Transport-agnostic REST client with a deterministic mock transport.

This package executes HTTP requests through a pluggable transport, applies
an opt-in, request-scoped retry policy, and decodes JSON response bodies
straight from the transport's bytes into typed values.

Example:
    Production usage::

        from restapi import Client, RestRequest

        async with Client() as client:
            response = await client.execute(
                RestRequest.get("https://api.example.com/v1/ping")
                .with_retry_on_status(503, 2)
            )

    Testing a call site without a network::

        from restapi import Client, MockResponse, MockRestAdapter

        mock = MockRestAdapter()
        mock.queue_get_response(
            "https://api.example.com/v1/ping",
            MockResponse.text_error(503, "rate limited"),
        )
        client = Client.with_transport(mock)

Exports:
    Client: Facade with the retry loop and typed JSON entrypoints.
    RestRequest, RestResponse, RetryPolicy: Value types.
    RestTransport, HttpxTransport: Transport interface and production transport.
    ClientConfig: Client settings.

    Mock transport:
        MockRestAdapter, MockResponse, MockBehavior (and its variants),
        MockBehaviorPlan, MockScenario, CallRecord, MockRestStateSnapshot.

    Exceptions:
        RestError, RestErrorKind: Classified request failures.
        MockConfigurationError: Mock used without a scripted outcome.
"""

from restapi._transport import HttpxTransport, RestTransport
from restapi.client import Client
from restapi.config import DEFAULT_TIMEOUT, ClientConfig
from restapi.exceptions import MockConfigurationError, RestError, RestErrorKind
from restapi.mock import (
    CallRecord,
    ConnectErrorBehavior,
    DelayBehavior,
    DropBehavior,
    ErrorBehavior,
    MockBehavior,
    MockBehaviorPlan,
    MockEntry,
    MockResponse,
    MockRestAdapter,
    MockRestStateSnapshot,
    MockScenario,
    MockScenarioStep,
    MockScenarioStepKind,
    PassBehavior,
    RejectBehavior,
    ReplayBehavior,
    TimeoutErrorBehavior,
    TransportErrorBehavior,
)
from restapi.models import (
    HttpMethod,
    RestRequest,
    RestResponse,
    RestTransportState,
    RetryPolicy,
)

__all__ = [
    # Client
    "Client",
    "ClientConfig",
    "DEFAULT_TIMEOUT",
    # Models
    "HttpMethod",
    "RestRequest",
    "RestResponse",
    "RestTransportState",
    "RetryPolicy",
    # Transports
    "HttpxTransport",
    "RestTransport",
    # Mock transport
    "CallRecord",
    "ConnectErrorBehavior",
    "DelayBehavior",
    "DropBehavior",
    "ErrorBehavior",
    "MockBehavior",
    "MockBehaviorPlan",
    "MockEntry",
    "MockResponse",
    "MockRestAdapter",
    "MockRestStateSnapshot",
    "MockScenario",
    "MockScenarioStep",
    "MockScenarioStepKind",
    "PassBehavior",
    "RejectBehavior",
    "ReplayBehavior",
    "TimeoutErrorBehavior",
    "TransportErrorBehavior",
    # Exceptions
    "MockConfigurationError",
    "RestError",
    "RestErrorKind",
]
