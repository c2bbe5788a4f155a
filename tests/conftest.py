"""
Shared fixtures.

FakeGemini is a scripted stand-in for the remote API served through
httpx.MockTransport, so GeminiClient runs its real HTTP code with no network.
"""

import json
from collections import deque
from typing import Any, Dict, List

import httpx
import pytest

from backend.gemini_client import GeminiClient

BASE_URL = "https://gemini.test/v1beta"
API_KEY = "test-key"
VIDEO_URI = "https://files.test/v1beta/files/abc:download?alt=media"


class FakeGemini:
    def __init__(self):
        self.predict_response: Dict[str, Any] = {
            "predictions": [{"bytesBase64Encoded": "UE5HREFUQQ==", "mimeType": "image/png"}]
        }
        self.content_response: Dict[str, Any] = {
            "candidates": [{"content": {"parts": [{"text": "done"}]}}]
        }
        self.submit_response: Dict[str, Any] = {"name": "operations/op-0", "done": False}
        self.operations: deque = deque()
        self.video_status = 200
        self.video_bytes = b"VIDEO-BYTES"
        self.status_overrides: Dict[str, int] = {}
        self.requests: List[httpx.Request] = []

    def queue_operations(self, *ops: Dict[str, Any]) -> None:
        self.operations.extend(ops)

    @property
    def polls(self) -> List[httpx.Request]:
        return [r for r in self.requests if "/operations/" in r.url.path]

    @property
    def downloads(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.host == "files.test"]

    def body(self, request: httpx.Request) -> Dict[str, Any]:
        return json.loads(request.content)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        for suffix, status in self.status_overrides.items():
            if path.endswith(suffix):
                return httpx.Response(status, json={"error": {"message": "server exploded"}})

        if request.url.host == "files.test":
            if self.video_status != 200:
                return httpx.Response(self.video_status)
            return httpx.Response(200, content=self.video_bytes, headers={"content-type": "video/mp4"})
        if path.endswith(":predict"):
            return httpx.Response(200, json=self.predict_response)
        if path.endswith(":generateContent"):
            return httpx.Response(200, json=self.content_response)
        if path.endswith(":predictLongRunning"):
            return httpx.Response(200, json=self.submit_response)
        if "/operations/" in path:
            if not self.operations:
                return httpx.Response(200, json={"name": path.split("/v1beta/", 1)[1], "done": False})
            return httpx.Response(200, json=self.operations.popleft())
        return httpx.Response(404, json={"error": {"message": f"unknown path {path}"}})


class RecordingSleep:
    def __init__(self):
        self.calls: List[float] = []
        self.hooks: List = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        for hook in self.hooks:
            hook(len(self.calls))


def done_with_video(name: str = "operations/op-final", uri: str = VIDEO_URI) -> Dict[str, Any]:
    return {"name": name, "done": True, "response": {"generatedVideos": [{"video": {"uri": uri}}]}}


@pytest.fixture
def fake_gemini():
    return FakeGemini()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
async def make_client(fake_gemini, recording_sleep, tmp_path):
    http_clients: List[httpx.AsyncClient] = []

    def _make(**overrides) -> GeminiClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake_gemini.handler))
        http_clients.append(http_client)
        kwargs = dict(
            api_key=API_KEY,
            base_url=BASE_URL,
            poll_interval=10.0,
            max_polls=50,
            media_dir=str(tmp_path / "media"),
            http_client=http_client,
            sleep=recording_sleep,
        )
        kwargs.update(overrides)
        return GeminiClient(**kwargs)

    yield _make

    for http_client in http_clients:
        await http_client.aclose()
