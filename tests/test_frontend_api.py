"""Tests for the UI's backend client (requests is mocked)."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from backend.errors import PollTimeoutError, StudioError, UpstreamError
from backend.model import EncodedImage, VideoConfig
from frontend import api


def response(status=200, json=None, content=b""):
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status
    resp.ok = status < 400
    resp.content = content
    if json is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = json
    return resp


class TestCalls:
    def test_generate_image(self):
        with patch("frontend.api.requests.request") as request:
            request.return_value = response(json={"image": {"data": "QUJD", "mime_type": "image/png"}})

            image = api.call_generate_image("a cat", "1:1")

        assert image == EncodedImage(data="QUJD", mime_type="image/png")
        method, url = request.call_args.args
        assert method == "POST"
        assert url.endswith("/images/generate")
        assert request.call_args.kwargs["json"] == {"prompt": "a cat", "aspect_ratio": "1:1"}

    def test_edit_image_keeps_order(self):
        parts = [{"text": "a"}, {"inline_data": {"mime_type": "image/png", "data": "QQ=="}}, {"text": "b"}]
        with patch("frontend.api.requests.request") as request:
            request.return_value = response(json={"parts": parts})

            result = api.call_edit_image("blue", EncodedImage(data="QQ==", mime_type="image/png"))

        assert [p.text for p in result] == ["a", None, "b"]

    def test_error_detail_becomes_studio_error(self):
        with patch("frontend.api.requests.request") as request:
            request.return_value = response(status=502, json={"detail": "No image was generated."})

            with pytest.raises(StudioError, match="No image was generated."):
                api.call_generate_image("a cat", "1:1")

    def test_error_without_body(self):
        with patch("frontend.api.requests.request") as request:
            request.return_value = response(status=500)

            with pytest.raises(StudioError, match=r"Service error \(500\)"):
                api.call_generate_image("a cat", "1:1")

    def test_connection_failure(self):
        with patch("frontend.api.requests.request", side_effect=requests.ConnectionError("refused")):
            with pytest.raises(UpstreamError, match="Could not reach the backend"):
                api.call_generate_image("a cat", "1:1")

    def test_submit_video_payload(self):
        with patch("frontend.api.requests.request") as request:
            request.return_value = response(json={"job_id": "j1", "status": "waiting"})
            config = VideoConfig(aspect_ratio="1:1", duration_seconds=2,
                                 image=EncodedImage(data="QQ==", mime_type="image/webp"))

            assert api.submit_video("s1", "a cat", config) == "j1"

        assert request.call_args.kwargs["json"] == {
            "owner_id": "s1",
            "prompt": "a cat",
            "aspect_ratio": "1:1",
            "duration_seconds": 2,
            "image": {"data": "QQ==", "mime_type": "image/webp"},
        }

    def test_release_ignores_unknown_job(self):
        with patch("frontend.api.requests.request") as request:
            request.return_value = response(status=404, json={"detail": "Job does not exist."})
            api.release_video("gone")


class TestPollVideo:
    def _status(self, status):
        return response(json={"job_id": "j1", "status": status, "error_message": None, "polls": 0})

    def test_polls_until_done(self):
        sleep = MagicMock()
        ticks = []
        with patch("frontend.api.requests.request") as request:
            request.side_effect = [self._status("waiting"), self._status("processing"), self._status("done")]

            status = api.poll_video("j1", poll_interval=0.5, on_tick=ticks.append, sleep=sleep)

        assert status.status == "done"
        assert [t.status for t in ticks] == ["waiting", "processing", "done"]
        assert sleep.call_count == 2
        sleep.assert_called_with(0.5)

    def test_error_is_terminal(self):
        with patch("frontend.api.requests.request", return_value=self._status("error")):
            assert api.poll_video("j1", sleep=MagicMock()).status == "error"

    def test_timeout(self):
        with patch("frontend.api.requests.request", return_value=self._status("processing")):
            with pytest.raises(PollTimeoutError):
                api.poll_video("j1", timeout_sec=-1, sleep=MagicMock())
