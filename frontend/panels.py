import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Literal, Optional

from backend.errors import StudioError, ValidationError
from backend.model import EditResultPart, EncodedImage, VideoConfig, VideoJobStatus
from backend.resources import MediaSlot, VideoResource
from backend.utils import download_name, encode_file, to_data_uri, validate_image_type

from . import api as default_api

logger = logging.getLogger(__name__)

PanelStatus = Literal["idle", "loading", "success", "error"]

VIDEO_PROGRESS_MESSAGES = [
    "Warming up the video engine...",
    "Gathering pixels and prompts...",
    "Directing the digital actors...",
    "This can take a few minutes, please wait...",
    "Rendering the final cut...",
    "Polishing the frames...",
    "Almost there, adding the finishing touches...",
]


@dataclass
class PanelState:
    status: PanelStatus = "idle"
    result: Any = None
    error: Optional[str] = None

    @property
    def loading(self) -> bool:
        return self.status == "loading"

    def start(self) -> None:
        self.status = "loading"
        self.result = None
        self.error = None

    def succeed(self, result: Any) -> None:
        self.status = "success"
        self.result = result
        self.error = None

    def fail(self, message: str) -> None:
        self.status = "error"
        self.result = None
        self.error = message

    def reset(self) -> None:
        self.status = "idle"
        self.result = None
        self.error = None


class ProgressMessages:
    """Cosmetic message rotation while a video is rendering (one step per 5s)."""

    def __init__(self, messages: Optional[List[str]] = None, period: float = 5.0,
                 clock: Callable[[], float] = time.monotonic):
        self.messages = messages or VIDEO_PROGRESS_MESSAGES
        self.period = period
        self._clock = clock
        self._started = clock()

    def restart(self) -> None:
        self._started = self._clock()

    def current(self) -> str:
        steps = int((self._clock() - self._started) // self.period)
        return self.messages[steps % len(self.messages)]


def require_image(uploaded: Any) -> EncodedImage:
    """Validate the upload's type, then encode it. Nothing is cached."""
    validate_image_type(getattr(uploaded, "type", None))
    return encode_file(uploaded)


class GeneratePanel:
    def __init__(self, api=default_api):
        self.api = api
        self.state = PanelState()
        self.prompt = ""

    def run(self, prompt: str, aspect_ratio: str) -> Optional[str]:
        """Returns the image as a data URI, or None with state.error set."""
        if not prompt or not prompt.strip():
            self.state.fail("Please enter a prompt.")
            return None
        self.prompt = prompt
        self.state.start()
        try:
            image = self.api.call_generate_image(prompt, aspect_ratio)
        except StudioError as e:
            self.state.fail(e.message)
            return None
        uri = to_data_uri(image.mime_type, image.data)
        self.state.succeed(uri)
        return uri

    @property
    def download_name(self) -> str:
        return download_name(self.prompt, "generated-image", "png")


class EditPanel:
    def __init__(self, api=default_api):
        self.api = api
        self.state = PanelState()

    def run(self, prompt: str, uploaded: Any) -> Optional[List[EditResultPart]]:
        if uploaded is None or not prompt or not prompt.strip():
            self.state.fail("Please provide both an image and an editing prompt.")
            return None
        try:
            image = require_image(uploaded)
        except StudioError as e:
            self.state.fail(e.message)
            return None
        self.state.start()
        try:
            parts = self.api.call_edit_image(prompt, image)
        except StudioError as e:
            self.state.fail(e.message)
            return None
        self.state.succeed(parts)
        return parts


class VideoPanel:
    """
    Holds the video currently on screen. A new result releases the previous
    one; teardown() releases whatever is left, once.
    """

    def __init__(self, owner_id: str, api=default_api, media_dir: Optional[str] = None,
                 poll_interval: float = 2.0, timeout_sec: float = 1200.0):
        self.owner_id = owner_id
        self.api = api
        self.media_dir = media_dir
        self.poll_interval = poll_interval
        self.timeout_sec = timeout_sec
        self.state = PanelState()
        self.slot = MediaSlot()
        self.progress = ProgressMessages()
        self.prompt = ""
        self.job_id: Optional[str] = None
        self._torn_down = False

    @property
    def video(self) -> Optional[VideoResource]:
        return self.slot.current

    @property
    def download_name(self) -> str:
        return download_name(self.prompt, "generated-video", "mp4")

    def run(self, prompt: str, aspect_ratio: str, duration_seconds: int,
            uploaded: Any = None,
            on_tick: Optional[Callable[[VideoJobStatus], None]] = None) -> Optional[VideoResource]:
        if not prompt or not prompt.strip():
            self.state.fail("Please enter a prompt to generate a video.")
            return None
        try:
            image = require_image(uploaded) if uploaded is not None else None
        except StudioError as e:
            self.state.fail(e.message)
            return None

        self.prompt = prompt
        self.state.start()
        self.progress.restart()
        self._drop_current()

        config = VideoConfig(aspect_ratio=aspect_ratio, duration_seconds=duration_seconds, image=image)
        try:
            self.job_id = self.api.submit_video(self.owner_id, prompt, config)
            status = self.api.poll_video(
                self.job_id, timeout_sec=self.timeout_sec,
                poll_interval=self.poll_interval, on_tick=on_tick,
            )
            if status.status != "done":
                raise StudioError(status.error_message or "Video generation failed.")
            data = self.api.download_video(self.job_id)
        except StudioError as e:
            self.state.fail(e.message)
            return None

        resource = VideoResource.from_bytes(data, media_dir=self.media_dir)
        self.slot.replace(resource)
        self.state.succeed(resource)
        return resource

    def _drop_current(self) -> None:
        self.slot.clear()
        if self.job_id is not None:
            job_id, self.job_id = self.job_id, None
            try:
                self.api.release_video(job_id)
            except StudioError as e:
                logger.warning("[VideoPanel] Could not release job %s: %s", job_id, e.message)

    def teardown(self) -> None:
        if self._torn_down:
            return
        self._torn_down = True
        self._drop_current()
        self.state.reset()


def validate_upload(uploaded: Any) -> Optional[str]:
    """Error message for a bad upload, or None when it is acceptable."""
    if uploaded is None:
        return None
    try:
        validate_image_type(getattr(uploaded, "type", None))
    except ValidationError as e:
        return e.message
    return None
