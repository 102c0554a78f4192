"""
Shared test fixtures for the SpaceNexus cache service.

Provides:
- Controllable millisecond clock for cache tests
- Fake upstream server for E2E tests
"""

import pytest
from pytest_httpserver import HTTPServer


class FakeClock:
    """Controllable epoch-milliseconds clock for deterministic cache tests."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture(scope="module")
def fake_upstream():
    """
    A real HTTP server that impersonates upstream data providers.

    Tests configure what the server returns by clearing it and registering
    new expectations.
    """
    server = HTTPServer(host="127.0.0.1")
    server.expect_request("/news").respond_with_json({"articles": []})
    server.start()
    yield server
    server.clear()
    if server.is_running():
        server.stop()
