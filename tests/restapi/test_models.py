"""Unit tests for the REST client value types.

This module tests restapi/models.py:

1. RestRequest:
   - Construction, method normalization and verb shortcuts
   - Fluent configuration returns new instances and never mutates
   - Body, JSON body, header and timeout configuration
   - Retry-policy builders: merge, replace, extend, 4xx wildcard,
     transport bucket

2. RetryPolicy:
   - Empty by default
   - Budget lookup with explicit entries winning over the 4xx wildcard

3. RestResponse:
   - Success flag, text and header access
   - Direct typed JSON decoding and decode errors
   - error_for_status classification
"""

import pytest
from pydantic import BaseModel, ValidationError

from restapi.exceptions import RestError, RestErrorKind
from restapi.models import RestRequest, RestResponse, RetryPolicy

URL = "https://api.example.com/v1/items"


class Item(BaseModel):
    id: int
    name: str


# =============================================================================
# RestRequest Tests
# =============================================================================

class TestRestRequestConstruction:
    """Tests for building requests."""

    def test_positional_method_and_url(self) -> None:
        request = RestRequest("GET", URL)

        assert request.method == "GET"
        assert request.url == URL
        assert request.headers == ()
        assert request.body is None
        assert request.timeout is None
        assert request.retry_policy.is_empty
        assert request.skip_response_headers is False

    def test_method_is_upper_cased(self) -> None:
        assert RestRequest("post", URL).method == "POST"

    def test_empty_method_rejected(self) -> None:
        with pytest.raises(ValidationError):
            RestRequest(" ", URL)

    @pytest.mark.parametrize(
        "factory, method",
        [
            (RestRequest.get, "GET"),
            (RestRequest.post, "POST"),
            (RestRequest.put, "PUT"),
            (RestRequest.patch, "PATCH"),
            (RestRequest.delete, "DELETE"),
        ],
    )
    def test_verb_shortcuts(self, factory, method: str) -> None:
        assert factory(URL).method == method

    def test_route_key_is_method_and_url(self) -> None:
        assert RestRequest.post(URL).route_key == ("POST", URL)

    def test_requests_are_frozen(self) -> None:
        request = RestRequest.get(URL)

        with pytest.raises(ValidationError):
            request.url = "https://elsewhere.example.com"  # type: ignore[misc]


class TestRestRequestConfiguration:
    """Tests for the fluent with_* configuration calls."""

    def test_with_calls_return_new_instances(self) -> None:
        """Configuring a request never changes the original."""
        original = RestRequest.get(URL)

        configured = original.with_header("X-Trace", "abc").with_timeout(5.0)

        assert configured is not original
        assert original.headers == ()
        assert original.timeout is None
        assert configured.headers == (("X-Trace", "abc"),)
        assert configured.timeout == 5.0

    def test_with_body_accepts_bytes_and_str(self) -> None:
        assert RestRequest.post(URL).with_body(b"\x00\x01").body == b"\x00\x01"
        assert RestRequest.post(URL).with_body("héllo").body == "héllo".encode("utf-8")

    def test_with_json_encodes_and_sets_content_type(self) -> None:
        request = RestRequest.post(URL).with_json({"ok": True, "n": 1})

        assert request.body == b'{"ok":true,"n":1}'
        assert ("Content-Type", "application/json") in request.headers

    def test_with_json_unserializable_payload_is_decode_error(self) -> None:
        with pytest.raises(RestError) as exc_info:
            RestRequest.post(URL).with_json(object())

        assert exc_info.value.kind is RestErrorKind.DECODE

    def test_headers_keep_order_and_duplicates(self) -> None:
        request = (
            RestRequest.get(URL)
            .with_header("Accept", "application/json")
            .with_headers({"X-A": "1", "X-B": "2"})
            .with_headers([("X-A", "3")])
        )

        assert request.headers == (
            ("Accept", "application/json"),
            ("X-A", "1"),
            ("X-B", "2"),
            ("X-A", "3"),
        )

    @pytest.mark.parametrize("seconds", [0, -1.5])
    def test_non_positive_timeout_rejected(self, seconds: float) -> None:
        with pytest.raises(ValueError):
            RestRequest.get(URL).with_timeout(seconds)

    def test_without_response_headers(self) -> None:
        request = RestRequest.get(URL).without_response_headers()

        assert request.skip_response_headers is True
        assert request.without_response_headers() is request


class TestRetryConfiguration:
    """Tests for retry-policy builder calls on RestRequest."""

    def test_with_retry_on_status_merges(self) -> None:
        request = (
            RestRequest.get(URL)
            .with_retry_on_status(503, 2)
            .with_retry_on_status(502, 1)
            .with_retry_on_status(503, 4)
        )

        assert request.retry_policy.statuses == {503: 4, 502: 1}

    def test_with_retry_on_statuses_replaces_table(self) -> None:
        request = (
            RestRequest.get(URL)
            .with_retry_on_status(500, 1)
            .with_retry_on_statuses([502, 503], 2)
        )

        assert request.retry_policy.statuses == {502: 2, 503: 2}

    def test_with_retry_on_statuses_keeps_wildcard_and_transport_budgets(self) -> None:
        request = (
            RestRequest.get(URL)
            .with_retry_on_4xx(1)
            .with_retry_on_transport_error(3)
            .with_retry_on_statuses([503], 2)
        )

        assert request.retry_policy.client_errors == 1
        assert request.retry_policy.transport_errors == 3

    def test_with_retry_on_statuses_extend_adds(self) -> None:
        request = (
            RestRequest.get(URL)
            .with_retry_on_status(500, 1)
            .with_retry_on_statuses_extend([502, 503], 2)
        )

        assert request.retry_policy.statuses == {500: 1, 502: 2, 503: 2}

    def test_extend_composed_with_4xx_wildcard(self) -> None:
        request = RestRequest.get(URL).with_retry_on_statuses_extend([503], 2).with_retry_on_4xx(2)
        policy = request.retry_policy

        assert policy.budget_for_status(503) == 2
        assert policy.budget_for_status(404) == 2
        assert policy.budget_for_status(429) == 2
        assert policy.budget_for_status(500) == 0

    def test_negative_budgets_rejected(self) -> None:
        with pytest.raises(ValueError):
            RestRequest.get(URL).with_retry_on_status(503, -1)
        with pytest.raises(ValueError):
            RestRequest.get(URL).with_retry_on_4xx(-1)
        with pytest.raises(ValueError):
            RestRequest.get(URL).with_retry_on_transport_error(-1)

    def test_retry_configuration_does_not_touch_original(self) -> None:
        original = RestRequest.get(URL).with_retry_on_status(503, 1)

        original.with_retry_on_statuses_extend([429], 3)

        assert original.retry_policy.statuses == {503: 1}


# =============================================================================
# RetryPolicy Tests
# =============================================================================

class TestRetryPolicy:
    """Tests for budget lookup."""

    def test_default_policy_is_empty(self) -> None:
        policy = RetryPolicy()

        assert policy.is_empty
        assert policy.budget_for_status(503) == 0
        assert policy.budget_for_transport_error() == 0

    def test_explicit_entry_wins_over_wildcard(self) -> None:
        policy = RetryPolicy(statuses={429: 1}, client_errors=5)

        assert policy.budget_for_status(429) == 1
        assert policy.budget_for_status(404) == 5

    def test_wildcard_only_covers_4xx(self) -> None:
        policy = RetryPolicy(client_errors=2)

        assert policy.covers_status(400)
        assert policy.covers_status(499)
        assert not policy.covers_status(399)
        assert not policy.covers_status(500)

    def test_zero_budget_does_not_cover(self) -> None:
        policy = RetryPolicy(statuses={503: 0})
        assert not policy.covers_status(503)

    def test_status_entries_never_cover_transport_errors(self) -> None:
        policy = RetryPolicy(statuses={503: 3}, client_errors=3)
        assert policy.budget_for_transport_error() == 0


# =============================================================================
# RestResponse Tests
# =============================================================================

class TestRestResponse:
    """Tests for response accessors."""

    def test_is_success(self) -> None:
        assert RestResponse(status=204).is_success
        assert not RestResponse(status=302).is_success
        assert not RestResponse(status=503).is_success

    def test_text_replaces_invalid_utf8(self) -> None:
        response = RestResponse(status=200, body=b"ok \xff")
        assert response.text == "ok �"

    def test_header_lookup_is_case_insensitive(self) -> None:
        response = RestResponse(
            status=200,
            headers=(("Content-Type", "application/json"), ("X-Id", "1"), ("x-id", "2")),
        )

        assert response.header("content-type") == "application/json"
        assert response.header("X-ID") == "1"
        assert response.header("missing") is None

    def test_json_decodes_directly_into_model(self) -> None:
        response = RestResponse(status=200, body=b'{"id": 7, "name": "widget"}')

        assert response.json(Item) == Item(id=7, name="widget")

    def test_json_decodes_into_builtin_generics(self) -> None:
        response = RestResponse(status=200, body=b"[1, 2, 3]")

        assert response.json(list[int]) == [1, 2, 3]

    def test_json_malformed_body_is_decode_error(self) -> None:
        response = RestResponse(status=200, body=b"not-json")

        with pytest.raises(RestError) as exc_info:
            response.json(Item)

        error = exc_info.value
        assert error.kind is RestErrorKind.DECODE
        assert error.retryable is False
        assert error.status == 200

    def test_json_schema_mismatch_is_decode_error(self) -> None:
        response = RestResponse(status=200, body=b'{"id": "seven"}')

        with pytest.raises(RestError) as exc_info:
            response.json(Item)

        assert exc_info.value.kind is RestErrorKind.DECODE

    def test_error_for_status_below_400_is_none(self) -> None:
        assert RestResponse(status=200).error_for_status() is None
        assert RestResponse(status=399).error_for_status() is None

    def test_error_for_status_carries_status_and_body(self) -> None:
        error = RestResponse(status=503, body=b"rate limited").error_for_status(retryable=True)

        assert error is not None
        assert error.kind is RestErrorKind.REJECTED
        assert error.status == 503
        assert error.message == "rate limited"
        assert error.retryable is True

    def test_error_for_status_with_empty_body(self) -> None:
        error = RestResponse(status=500).error_for_status()

        assert error is not None
        assert error.message == "HTTP 500 error"
