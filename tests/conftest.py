"""Shared fixtures for eureka-client tests."""

from typing import Dict, List, Optional, Set

import httpx
import pytest


class FakeRegistry:
    """
    In-memory stand-in for one or more Eureka servers.

    Requests to hosts listed in down_hosts fail with a connection error;
    every other request gets the configured status and body.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.down_hosts: Set[str] = set()
        self.status = 204
        self.body = b""
        self.statuses: Dict[str, int] = {}

    def respond(self, status: int, body: bytes = b"", host: Optional[str] = None) -> None:
        if host is None:
            self.status = status
            self.body = body
        else:
            self.statuses[host] = status

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host in self.down_hosts:
            raise httpx.ConnectError("connection refused", request=request)
        status = self.statuses.get(request.url.host, self.status)
        return httpx.Response(status, content=self.body, headers={"Content-Type": "application/xml"})

    @property
    def hosts(self) -> List[str]:
        return [r.url.host for r in self.requests]

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def registry():
    """Fake Eureka servers."""
    return FakeRegistry()


@pytest.fixture
def transport(registry):
    """httpx transport routed to the fake registry."""
    return httpx.MockTransport(registry.handler)
