"""
Shared fixtures: an in-memory stand-in for the Replicate API and a fake clock.
"""

import os
import sys
from typing import Any, Optional, Union

import httpx
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import Config

API_HOST = "api.replicate.com"

StatusReply = Union[dict, Exception]


class FakeReplicate:
    """Routes httpx requests to canned submission, status and file replies."""

    def __init__(self):
        self.submit_reply: tuple[int, Any] = (201, {"id": "job123", "status": "starting"})
        self.status_replies: list[StatusReply] = [{"id": "job123", "status": "processing"}]
        self.files: dict[str, tuple[bytes, dict]] = {}
        self.cancel_reply: int = 200
        self.requests: list[httpx.Request] = []

    # --- setup helpers -------------------------------------------------

    def set_statuses(self, *replies: StatusReply):
        self.status_replies = list(replies)

    def add_file(self, url: str, content: bytes, headers: Optional[dict] = None):
        self.files[url] = (content, headers or {})

    # --- counters ------------------------------------------------------

    def calls(self, method: str, fragment: str = "") -> list[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method and fragment in r.url.path
        ]

    @property
    def submit_calls(self) -> list[httpx.Request]:
        return [r for r in self.calls("POST", "/models/")]

    @property
    def status_calls(self) -> list[httpx.Request]:
        return [
            r for r in self.calls("GET", "/predictions/")
            if r.url.host == API_HOST
        ]

    @property
    def cancel_calls(self) -> list[httpx.Request]:
        return self.calls("POST", "/cancel")

    @property
    def download_calls(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.host != API_HOST]

    # --- transport -----------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.url.host != API_HOST:
            url = str(request.url)
            if url not in self.files:
                return httpx.Response(404, text="not found")
            content, headers = self.files[url]
            return httpx.Response(200, content=content, headers=headers)

        if request.method == "POST" and path.endswith("/cancel"):
            return httpx.Response(self.cancel_reply, json={"status": "canceled"})

        if request.method == "POST" and "/models/" in path:
            status_code, body = self.submit_reply
            if isinstance(body, (dict, list)):
                return httpx.Response(status_code, json=body)
            return httpx.Response(status_code, text=str(body))

        if request.method == "GET" and path.startswith("/v1/predictions/"):
            reply = self.status_replies.pop(0) if len(self.status_replies) > 1 else self.status_replies[0]
            if isinstance(reply, Exception):
                raise reply
            return httpx.Response(200, json=reply)

        return httpx.Response(404, json={"detail": "unknown endpoint"})

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


class FakeClock:
    """Monotonic clock that only moves when something sleeps."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_service() -> FakeReplicate:
    return FakeReplicate()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config(tmp_path) -> Config:
    cfg = Config()
    cfg.api.api_base = "https://api.replicate.com/v1"
    cfg.polling.interval_seconds = 1.0
    cfg.polling.timeout_seconds = 30.0
    cfg.polling.max_consecutive_errors = 3
    cfg.storage.output_dir = str(tmp_path / "output")
    cfg.storage.credentials_path = str(tmp_path / "settings.json")
    cfg.cancel_remote_on_abort = False
    return cfg


@pytest.fixture
def png_file(tmp_path):
    path = tmp_path / "frame.png"
    path.write_bytes(b"\x89PNG\r\n\x1a\n" + b"\x00" * 32)
    return path
