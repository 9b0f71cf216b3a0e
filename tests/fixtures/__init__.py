"""Test fixtures for the REST client.

- transport: mock adapter, mock-backed client, and a FastAPI app served over
  httpx's ASGITransport for end-to-end tests
"""
