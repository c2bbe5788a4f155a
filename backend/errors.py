# backend/errors.py
from typing import Optional


class StudioError(Exception):
    """Base error. `message` is always safe to show to the user."""

    default_message = "An unexpected error occurred."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(StudioError):
    default_message = "Invalid input."


class ReadError(StudioError):
    default_message = "Could not read the selected file."


class NoResultError(StudioError):
    default_message = "The service returned no result."


class MissingResultError(StudioError):
    default_message = "Video generation completed, but no download link was found."


class UpstreamError(StudioError):
    default_message = "The generation service failed. Please check the logs for details."


class PollTimeoutError(UpstreamError):
    default_message = "Timed out waiting for the video to finish."


class FetchError(StudioError):
    default_message = "Failed to fetch video."

    def __init__(self, status_text: str = ""):
        self.status_text = status_text
        super().__init__(f"Failed to fetch video: {status_text}" if status_text else None)


class MissingCredentialError(StudioError):
    default_message = "GEMINI_API_KEY environment variable is not set."


class UnknownJobError(StudioError):
    default_message = "Job does not exist."


class JobConflictError(StudioError):
    default_message = "A video is already being generated for this session."
