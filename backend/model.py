# backend/model.py
from pydantic import BaseModel, Field
from typing import Optional, Literal, List

AspectRatio = Literal["1:1", "16:9", "9:16", "4:3", "3:4"]

IMAGE_ASPECT_RATIOS: List[str] = ["1:1", "16:9", "9:16", "4:3", "3:4"]
VIDEO_ASPECT_RATIOS: List[str] = ["16:9", "9:16", "1:1", "4:3", "3:4"]
VIDEO_DURATIONS: List[int] = [2, 4, 8, 16]
DEFAULT_VIDEO_DURATION = 4

JobStatus = Literal["waiting", "processing", "done", "error", "cancelled"]


class EncodedImage(BaseModel):
    data: str  # base64
    mime_type: str


class InlineData(BaseModel):
    mime_type: str
    data: str


class EditResultPart(BaseModel):
    """Either a text fragment or an inline media fragment."""

    text: Optional[str] = None
    inline_data: Optional[InlineData] = None

    @classmethod
    def from_api(cls, part: dict) -> "EditResultPart":
        inline = part.get("inlineData") or part.get("inline_data")
        if inline:
            return cls(
                inline_data=InlineData(
                    mime_type=inline.get("mimeType") or inline.get("mime_type") or "image/png",
                    data=inline.get("data", ""),
                )
            )
        return cls(text=part.get("text"))


class VideoConfig(BaseModel):
    aspect_ratio: AspectRatio = "16:9"
    duration_seconds: int = DEFAULT_VIDEO_DURATION
    image: Optional[EncodedImage] = None


class GenerateImageRequest(BaseModel):
    prompt: str
    aspect_ratio: AspectRatio = "1:1"


class GenerateImageResponse(BaseModel):
    image: EncodedImage


class EditImageRequest(BaseModel):
    prompt: str
    image: EncodedImage


class EditImageResponse(BaseModel):
    parts: List[EditResultPart]


class VideoRequest(BaseModel):
    owner_id: str
    prompt: str
    aspect_ratio: AspectRatio = "16:9"
    duration_seconds: int = Field(default=DEFAULT_VIDEO_DURATION, gt=0)
    image: Optional[EncodedImage] = None

    def to_config(self) -> VideoConfig:
        return VideoConfig(
            aspect_ratio=self.aspect_ratio,
            duration_seconds=self.duration_seconds,
            image=self.image,
        )


class VideoSubmitResponse(BaseModel):
    job_id: str
    status: JobStatus


class VideoJobStatus(BaseModel):
    job_id: str
    status: JobStatus
    error_message: Optional[str] = None
    polls: int = 0
