"""Tests for the view-side panels: validation, state transitions, video ownership."""

import io
from unittest.mock import MagicMock

import pytest

from backend.errors import StudioError, UpstreamError
from backend.model import EditResultPart, EncodedImage, VideoJobStatus
from frontend.panels import (
    VIDEO_PROGRESS_MESSAGES,
    EditPanel,
    GeneratePanel,
    PanelState,
    ProgressMessages,
    VideoPanel,
    validate_upload,
)


class FakeUpload(io.BytesIO):
    def __init__(self, data=b"img", name="pic.png", type="image/png"):
        super().__init__(data)
        self.name = name
        self.type = type


def video_api(statuses=("done",), video=b"MP4DATA"):
    api = MagicMock()
    counter = iter(range(100))
    api.submit_video.side_effect = lambda owner, prompt, config: f"job-{next(counter)}"
    api.poll_video.side_effect = [
        VideoJobStatus(job_id="x", status=s, error_message=None if s == "done" else "boom")
        for s in statuses
    ]
    api.download_video.return_value = video
    return api


# ---------------------------------------------------------------------------
# PanelState / ProgressMessages
# ---------------------------------------------------------------------------

class TestPanelState:
    def test_transitions(self):
        state = PanelState()
        assert state.status == "idle"

        state.start()
        assert state.loading

        state.succeed("result")
        assert (state.status, state.result, state.error) == ("success", "result", None)

        state.start()
        state.fail("bad")
        assert (state.status, state.result, state.error) == ("error", None, "bad")

        state.reset()
        assert state.status == "idle"


class TestProgressMessages:
    def test_rotates_every_five_seconds_and_wraps(self):
        now = [0.0]
        progress = ProgressMessages(clock=lambda: now[0])

        assert progress.current() == VIDEO_PROGRESS_MESSAGES[0]
        now[0] = 5.0
        assert progress.current() == VIDEO_PROGRESS_MESSAGES[1]
        now[0] = 5.0 * len(VIDEO_PROGRESS_MESSAGES)
        assert progress.current() == VIDEO_PROGRESS_MESSAGES[0]

    def test_restart(self):
        now = [0.0]
        progress = ProgressMessages(clock=lambda: now[0])
        now[0] = 12.0
        progress.restart()
        assert progress.current() == VIDEO_PROGRESS_MESSAGES[0]


# ---------------------------------------------------------------------------
# Generate / edit
# ---------------------------------------------------------------------------

class TestGeneratePanel:
    def test_blank_prompt_never_calls_service(self):
        api = MagicMock()
        panel = GeneratePanel(api=api)

        assert panel.run("   ", "1:1") is None
        assert panel.state.error == "Please enter a prompt."
        api.call_generate_image.assert_not_called()

    def test_success_returns_data_uri(self):
        api = MagicMock()
        api.call_generate_image.return_value = EncodedImage(data="QUJD", mime_type="image/png")
        panel = GeneratePanel(api=api)

        assert panel.run("Sunset Beach", "16:9") == "data:image/png;base64,QUJD"
        assert panel.state.status == "success"
        assert panel.download_name == "sunset-beach.png"
        api.call_generate_image.assert_called_once_with("Sunset Beach", "16:9")

    def test_failure_shows_message(self):
        api = MagicMock()
        api.call_generate_image.side_effect = UpstreamError("Failed to generate image.")
        panel = GeneratePanel(api=api)

        panel.run("a cat", "1:1")

        assert panel.state.status == "error"
        assert panel.state.error == "Failed to generate image."


class TestEditPanel:
    def test_requires_image_and_prompt(self):
        api = MagicMock()
        panel = EditPanel(api=api)

        panel.run("make it blue", None)
        assert panel.state.error == "Please provide both an image and an editing prompt."
        panel.run("", FakeUpload())
        assert panel.state.error == "Please provide both an image and an editing prompt."
        api.call_edit_image.assert_not_called()

    def test_text_file_rejected_before_network(self):
        api = MagicMock()
        panel = EditPanel(api=api)

        panel.run("make it blue", FakeUpload(name="notes.txt", type="text/plain"))

        assert panel.state.error == "Please select a valid image file (JPEG, PNG, WebP)."
        api.call_edit_image.assert_not_called()

    @pytest.mark.parametrize("mime", ["image/png", "image/jpeg", "image/webp"])
    def test_images_accepted(self, mime):
        api = MagicMock()
        api.call_edit_image.return_value = [EditResultPart(text="ok")]
        panel = EditPanel(api=api)

        parts = panel.run("make it blue", FakeUpload(type=mime))

        assert [p.text for p in parts] == ["ok"]
        image = api.call_edit_image.call_args.args[1]
        assert image.mime_type == mime
        assert image.data == "aW1n"


def test_validate_upload():
    assert validate_upload(None) is None
    assert validate_upload(FakeUpload(type="image/webp")) is None
    assert validate_upload(FakeUpload(type="text/plain")) is not None


# ---------------------------------------------------------------------------
# Video
# ---------------------------------------------------------------------------

class TestVideoPanel:
    def test_blank_prompt(self, tmp_path):
        api = video_api()
        panel = VideoPanel("s1", api=api, media_dir=str(tmp_path))

        assert panel.run("", "16:9", 4) is None
        assert panel.state.error == "Please enter a prompt to generate a video."
        api.submit_video.assert_not_called()

    def test_bad_seed_image(self, tmp_path):
        api = video_api()
        panel = VideoPanel("s1", api=api, media_dir=str(tmp_path))

        panel.run("a cat", "16:9", 4, uploaded=FakeUpload(type="text/plain"))

        assert panel.state.status == "error"
        api.submit_video.assert_not_called()

    def test_success_holds_video(self, tmp_path):
        api = video_api()
        panel = VideoPanel("s1", api=api, media_dir=str(tmp_path))

        resource = panel.run("A Cat Surfing", "9:16", 8, uploaded=FakeUpload())

        assert resource.read_bytes() == b"MP4DATA"
        assert panel.video is resource
        assert panel.download_name == "a-cat-surfing.mp4"
        owner, prompt, config = api.submit_video.call_args.args
        assert owner == "s1"
        assert config.duration_seconds == 8
        assert config.image.mime_type == "image/png"

    def test_new_result_releases_previous_once(self, tmp_path):
        api = video_api(statuses=("done", "done"))
        panel = VideoPanel("s1", api=api, media_dir=str(tmp_path))

        first = panel.run("a cat", "16:9", 4)
        second = panel.run("a dog", "16:9", 4)

        assert first.released
        assert not second.released
        assert panel.video is second
        api.release_video.assert_called_once_with("job-0")

    def test_remote_failure(self, tmp_path):
        api = video_api(statuses=("error",))
        panel = VideoPanel("s1", api=api, media_dir=str(tmp_path))

        assert panel.run("a cat", "16:9", 4) is None
        assert panel.state.error == "boom"
        assert panel.video is None
        api.download_video.assert_not_called()

    def test_teardown_releases_once(self, tmp_path):
        api = video_api()
        panel = VideoPanel("s1", api=api, media_dir=str(tmp_path))
        resource = panel.run("a cat", "16:9", 4)

        panel.teardown()
        panel.teardown()

        assert resource.released
        assert panel.video is None
        assert panel.state.status == "idle"
        api.release_video.assert_called_once_with("job-0")

    def test_teardown_survives_release_failure(self, tmp_path):
        api = video_api()
        api.release_video.side_effect = StudioError("backend down")
        panel = VideoPanel("s1", api=api, media_dir=str(tmp_path))
        resource = panel.run("a cat", "16:9", 4)

        panel.teardown()

        assert resource.released
