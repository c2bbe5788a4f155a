import time
from typing import Callable, List, Optional

import requests

from backend.errors import PollTimeoutError, StudioError, UpstreamError
from backend.model import (
    EditResultPart,
    EncodedImage,
    VideoConfig,
    VideoJobStatus,
)
from config.settings import settings

BACKEND_URL = settings.BACKEND_URL


def _request(method: str, path: str, **kwargs) -> requests.Response:
    """Send one request to the backend; network failures become UpstreamError."""
    try:
        return requests.request(method, f"{BACKEND_URL}{path}", **kwargs)
    except requests.RequestException as e:
        raise UpstreamError(f"Could not reach the backend at {BACKEND_URL}: {e}") from e


def _raise_for_detail(resp: requests.Response) -> None:
    """Turn an error response into a StudioError carrying the service's message."""
    if resp.ok:
        return
    try:
        detail = resp.json().get("detail")
    except ValueError:
        detail = None
    if not isinstance(detail, str) or not detail:
        detail = f"Service error ({resp.status_code})"
    raise StudioError(detail)


def call_generate_image(prompt: str, aspect_ratio: str) -> EncodedImage:
    """POST /images/generate -> the generated PNG"""
    resp = _request(
        "POST", "/images/generate",
        json={"prompt": prompt, "aspect_ratio": aspect_ratio},
        timeout=180,
    )
    _raise_for_detail(resp)
    return EncodedImage(**resp.json()["image"])


def call_edit_image(prompt: str, image: EncodedImage) -> List[EditResultPart]:
    """POST /images/edit -> ordered text / image parts"""
    resp = _request(
        "POST", "/images/edit",
        json={"prompt": prompt, "image": image.model_dump()},
        timeout=180,
    )
    _raise_for_detail(resp)
    return [EditResultPart(**p) for p in resp.json()["parts"]]


def submit_video(owner_id: str, prompt: str, config: VideoConfig) -> str:
    """POST /videos -> job_id"""
    payload = {
        "owner_id": owner_id,
        "prompt": prompt,
        "aspect_ratio": config.aspect_ratio,
        "duration_seconds": config.duration_seconds,
    }
    if config.image is not None:
        payload["image"] = config.image.model_dump()
    resp = _request("POST", "/videos", json=payload, timeout=30)
    _raise_for_detail(resp)
    return resp.json()["job_id"]


def get_video_status(job_id: str) -> VideoJobStatus:
    resp = _request("GET", f"/videos/{job_id}", timeout=10)
    _raise_for_detail(resp)
    return VideoJobStatus(**resp.json())


def poll_video(
    job_id: str,
    timeout_sec: float = 1200.0,
    poll_interval: float = 2.0,
    on_tick: Optional[Callable[[VideoJobStatus], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> VideoJobStatus:
    """Poll GET /videos/{job_id} until done / error / cancelled"""
    start = time.time()
    while True:
        status = get_video_status(job_id)
        if on_tick is not None:
            on_tick(status)

        if status.status in ("done", "error", "cancelled"):
            return status

        if time.time() - start > timeout_sec:
            raise PollTimeoutError("Timed out waiting for the video. Please try again!")

        sleep(poll_interval)


def download_video(job_id: str) -> bytes:
    resp = _request("GET", f"/videos/{job_id}/content", timeout=120)
    _raise_for_detail(resp)
    return resp.content


def release_video(job_id: str) -> None:
    resp = _request("DELETE", f"/videos/{job_id}", timeout=10)
    if resp.status_code != 404:
        _raise_for_detail(resp)
