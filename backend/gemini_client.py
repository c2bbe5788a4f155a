import asyncio
import json
import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from config.settings import settings

from .errors import (
    FetchError,
    MissingCredentialError,
    MissingResultError,
    NoResultError,
    PollTimeoutError,
    StudioError,
    UpstreamError,
    ValidationError,
)
from .model import EditResultPart, VideoConfig
from .resources import VideoResource

logger = logging.getLogger(__name__)

PollCallback = Callable[[int, Dict[str, Any]], None]


def redact_key(url: str) -> str:
    return re.sub(r"(key=)[^&]+", r"\1***", url)


def describe_operation_error(error: Any) -> str:
    """
    Turn whatever the operation put in its `error` field into one readable line.
    Handles {"message": "..."}, a plain string, nested {"error": {...}}
    and anything else (serialized as JSON).
    """
    if error is None:
        return "Video generation failed."
    if isinstance(error, str):
        return error.strip() or "Video generation failed."
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
        if isinstance(message, dict):
            return describe_operation_error(message)
        nested = error.get("error")
        if isinstance(nested, (str, dict)) and nested:
            return describe_operation_error(nested)
    try:
        text = json.dumps(error, sort_keys=True, default=str)
    except (TypeError, ValueError):
        text = repr(error)
    return text or "Video generation failed."


def extract_video_uri(operation: Dict[str, Any]) -> Optional[str]:
    """
    Find the first generated video URI in a finished operation, or None.
    Accepts both `generatedVideos` and the REST `generateVideoResponse.generatedSamples`.
    """
    response = operation.get("response") or {}
    videos = response.get("generatedVideos")
    if not videos:
        videos = (response.get("generateVideoResponse") or {}).get("generatedSamples")
    if not videos:
        return None
    video = (videos[0] or {}).get("video") or {}
    return video.get("uri") or None


class GeminiClient:
    """
    Async client for image generation, image editing and video generation.
    The API key stays inside this object; callers only get media back.
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        image_model: str = "imagen-4.0-generate-001",
        edit_model: str = "gemini-2.5-flash-image-preview",
        video_model: str = "veo-2.0-generate-001",
        poll_interval: float = 10.0,
        max_polls: int = 90,
        timeout: float = 120.0,
        media_dir: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if not api_key:
            raise MissingCredentialError()
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.image_model = image_model
        self.edit_model = edit_model
        self.video_model = video_model
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self.media_dir = media_dir
        self._sleep = sleep
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, **overrides) -> "GeminiClient":
        kwargs = dict(
            api_key=settings.GEMINI_API_KEY,
            base_url=settings.GEMINI_BASE_URL,
            image_model=settings.IMAGE_MODEL,
            edit_model=settings.EDIT_MODEL,
            video_model=settings.VIDEO_MODEL,
            poll_interval=settings.VIDEO_POLL_INTERVAL,
            max_polls=settings.VIDEO_MAX_POLLS,
            timeout=settings.REQUEST_TIMEOUT,
            media_dir=settings.MEDIA_DIR,
        )
        kwargs.update(overrides)
        return cls(**kwargs)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "GeminiClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json", "x-goog-api-key": self._api_key}

    def _check(self, r: httpx.Response) -> Dict[str, Any]:
        if r.is_error:
            logger.error(
                "[GeminiClient] %s %s returned %s: %s",
                r.request.method, redact_key(str(r.request.url)), r.status_code, r.text[:500],
            )
        r.raise_for_status()
        return r.json()

    async def _call_model(self, model: str, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/models/{model}:{method}"
        r = await self._http.post(url, json=payload, headers=self._headers)
        return self._check(r)

    async def _refresh_operation(self, operation: Dict[str, Any]) -> Dict[str, Any]:
        name = operation.get("name")
        if not name:
            raise UpstreamError("Video operation handle has no name.")
        r = await self._http.get(f"{self.base_url}/{name}", headers=self._headers)
        return self._check(r)

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    async def generate_image(self, prompt: str, aspect_ratio: str) -> str:
        """Returns the base64 PNG of the first generated image."""
        if not prompt or not prompt.strip():
            raise ValidationError("Please enter a prompt.")

        payload = {
            "instances": [{"prompt": prompt}],
            "parameters": {
                "sampleCount": 1,
                "aspectRatio": aspect_ratio,
                "outputOptions": {"mimeType": "image/png"},
            },
        }
        try:
            data = await self._call_model(self.image_model, "predict", payload)
            predictions = [p for p in data.get("predictions") or [] if p.get("bytesBase64Encoded")]
            if not predictions:
                raise NoResultError("No image was generated.")
            logger.info("[GeminiClient] Generated image, aspect_ratio=%s", aspect_ratio)
            return predictions[0]["bytesBase64Encoded"]
        except StudioError:
            raise
        except Exception as e:
            logger.exception("[GeminiClient] Error generating image: %s", e)
            raise UpstreamError("Failed to generate image. Please check the logs for details.") from e

    async def edit_image(self, prompt: str, image_data: str, mime_type: str) -> List[EditResultPart]:
        """Single round-trip edit. Parts come back in the order the model sent them."""
        if not image_data or not prompt or not prompt.strip():
            raise ValidationError("Please provide both an image and an editing prompt.")

        payload = {
            "contents": [
                {
                    "parts": [
                        {"inlineData": {"data": image_data, "mimeType": mime_type}},
                        {"text": prompt},
                    ]
                }
            ],
            "generationConfig": {"responseModalities": ["IMAGE", "TEXT"]},
        }
        try:
            data = await self._call_model(self.edit_model, "generateContent", payload)
            candidates = data.get("candidates") or []
            parts = ((candidates[0].get("content") or {}).get("parts") if candidates else None) or []
            if not parts:
                raise NoResultError("No edited content was returned.")
            logger.info("[GeminiClient] Edit returned %d part(s)", len(parts))
            return [EditResultPart.from_api(p) for p in parts]
        except StudioError:
            raise
        except Exception as e:
            logger.exception("[GeminiClient] Error editing image: %s", e)
            raise UpstreamError("Failed to edit image. Please check the logs for details.") from e

    # ------------------------------------------------------------------
    # Video
    # ------------------------------------------------------------------

    async def submit_video(self, prompt: str, config: VideoConfig) -> Dict[str, Any]:
        """Start the long-running job and return its first operation handle."""
        instance: Dict[str, Any] = {"prompt": prompt}
        if config.image is not None:
            instance["image"] = {
                "bytesBase64Encoded": config.image.data,
                "mimeType": config.image.mime_type,
            }
        payload = {
            "instances": [instance],
            "parameters": {
                "sampleCount": 1,
                "aspectRatio": config.aspect_ratio,
                "durationSeconds": config.duration_seconds,
            },
        }
        operation = await self._call_model(self.video_model, "predictLongRunning", payload)
        logger.info("[GeminiClient] Submitted video job: %s", operation.get("name"))
        return operation

    async def wait_for_operation(
        self,
        operation: Dict[str, Any],
        cancel_event: Optional[asyncio.Event] = None,
        on_poll: Optional[PollCallback] = None,
    ) -> Dict[str, Any]:
        """
        Poll until `done`. Every poll uses the handle returned by the previous one.
        """
        polls = 0
        while not operation.get("done"):
            if cancel_event is not None and cancel_event.is_set():
                logger.info("[GeminiClient] Polling cancelled after %d poll(s)", polls)
                raise asyncio.CancelledError()
            if self.max_polls and polls >= self.max_polls:
                raise PollTimeoutError(
                    f"Timed out waiting for the video after {polls} status checks."
                )
            await self._sleep(self.poll_interval)
            if cancel_event is not None and cancel_event.is_set():
                logger.info("[GeminiClient] Polling cancelled after %d poll(s)", polls)
                raise asyncio.CancelledError()
            operation = await self._refresh_operation(operation)
            polls += 1
            logger.debug("[GeminiClient] Poll #%d done=%s", polls, bool(operation.get("done")))
            if on_poll is not None:
                on_poll(polls, operation)
        logger.info("[GeminiClient] Operation finished after %d poll(s)", polls)
        return operation

    async def fetch_video(self, uri: str) -> VideoResource:
        """Download the finished video with the key as a query parameter."""
        url = httpx.URL(uri).copy_merge_params({"key": self._api_key})
        r = await self._http.get(url, follow_redirects=True)
        if r.is_error:
            logger.error(
                "[GeminiClient] Video download from %s failed: %s %s",
                redact_key(str(r.request.url)), r.status_code, r.reason_phrase,
            )
            raise FetchError(r.reason_phrase or str(r.status_code))
        content_type = r.headers.get("content-type", "").split(";")[0].strip()
        mime_type = content_type if content_type.startswith("video/") else "video/mp4"
        return await asyncio.to_thread(
            VideoResource.from_bytes, r.content, media_dir=self.media_dir, mime_type=mime_type
        )

    async def generate_video(
        self,
        prompt: str,
        config: VideoConfig,
        cancel_event: Optional[asyncio.Event] = None,
        on_poll: Optional[PollCallback] = None,
    ) -> VideoResource:
        """
        Submit, poll every `poll_interval` seconds until done, then download.
        The returned VideoResource belongs to the caller, who must release it.
        """
        if not prompt or not prompt.strip():
            raise ValidationError("Please enter a prompt to generate a video.")

        try:
            operation = await self.submit_video(prompt, config)
            operation = await self.wait_for_operation(operation, cancel_event, on_poll)

            if operation.get("error"):
                logger.error("[GeminiClient] Video generation operation failed: %s", operation["error"])
                raise UpstreamError(describe_operation_error(operation["error"]))

            uri = extract_video_uri(operation)
            if not uri:
                logger.error("[GeminiClient] Finished operation has no video: %s", operation)
                raise MissingResultError()

            return await self.fetch_video(uri)
        except StudioError:
            raise
        except Exception as e:
            logger.exception("[GeminiClient] Error generating video: %s", e)
            raise UpstreamError("Failed to generate video. Please check the logs for details.") from e
