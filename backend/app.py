# backend/app.py

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import FileResponse, JSONResponse

from config.settings import configure_logging, settings
from .errors import (
    FetchError,
    JobConflictError,
    MissingResultError,
    NoResultError,
    PollTimeoutError,
    ReadError,
    StudioError,
    UnknownJobError,
    UpstreamError,
    ValidationError,
)
from .gemini_client import GeminiClient
from .jobs import VideoJobManager
from .model import (
    EditImageRequest,
    EditImageResponse,
    EncodedImage,
    GenerateImageRequest,
    GenerateImageResponse,
    VideoJobStatus,
    VideoRequest,
    VideoSubmitResponse,
)
from .utils import validate_image_type

logger = logging.getLogger(__name__)

# order matters: subclasses before their parents
ERROR_STATUS = [
    (ValidationError, 400),
    (ReadError, 400),
    (UnknownJobError, 404),
    (JobConflictError, 409),
    (PollTimeoutError, 504),
    (NoResultError, 502),
    (MissingResultError, 502),
    (FetchError, 502),
    (UpstreamError, 502),
]


def status_for(error: StudioError) -> int:
    for cls, code in ERROR_STATUS:
        if isinstance(error, cls):
            return code
    return 500


def create_app(client: GeminiClient | None = None) -> FastAPI:
    """
    Build the service. Without an explicit client one is created from settings
    at startup, which fails if GEMINI_API_KEY is missing.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        gemini = client or GeminiClient.from_settings()
        app.state.client = gemini
        app.state.jobs = VideoJobManager(gemini, ttl=settings.VIDEO_JOB_TTL)
        sweeper = asyncio.create_task(app.state.jobs.run_sweeper(settings.VIDEO_JOB_SWEEP_INTERVAL))
        logger.info("[API] Started, image=%s edit=%s video=%s",
                    gemini.image_model, gemini.edit_model, gemini.video_model)
        try:
            yield
        finally:
            sweeper.cancel()
            await asyncio.gather(sweeper, return_exceptions=True)
            await app.state.jobs.shutdown()
            await gemini.aclose()
            logger.info("[API] Stopped")

    app = FastAPI(title="AI Photo Studio Service", lifespan=lifespan)

    @app.exception_handler(StudioError)
    async def studio_error_handler(request: Request, exc: StudioError):
        return JSONResponse(status_code=status_for(exc), content={"detail": exc.message})

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post("/images/generate", response_model=GenerateImageResponse)
    async def generate_image(req: GenerateImageRequest, request: Request):
        if not req.prompt.strip():
            raise HTTPException(status_code=400, detail="Please enter a prompt.")
        data = await request.app.state.client.generate_image(req.prompt, req.aspect_ratio)
        return GenerateImageResponse(image=EncodedImage(data=data, mime_type="image/png"))

    @app.post("/images/edit", response_model=EditImageResponse)
    async def edit_image(req: EditImageRequest, request: Request):
        if not req.prompt.strip() or not req.image.data:
            raise HTTPException(status_code=400, detail="Please provide both an image and an editing prompt.")
        validate_image_type(req.image.mime_type)
        parts = await request.app.state.client.edit_image(req.prompt, req.image.data, req.image.mime_type)
        return EditImageResponse(parts=parts)

    @app.post("/videos", response_model=VideoSubmitResponse)
    async def submit_video(req: VideoRequest, request: Request):
        if not req.prompt.strip():
            raise HTTPException(status_code=400, detail="Please enter a prompt to generate a video.")
        if req.image is not None:
            validate_image_type(req.image.mime_type)
        job = request.app.state.jobs.submit(req.owner_id, req.prompt, req.to_config())
        return VideoSubmitResponse(job_id=job.job_id, status=job.status)

    @app.get("/videos/{job_id}", response_model=VideoJobStatus)
    async def video_status(job_id: str, request: Request):
        """
        Job status; poll this until done / error.
        """
        return request.app.state.jobs.status(job_id)

    @app.get("/videos/{job_id}/content")
    async def video_content(job_id: str, request: Request):
        jobs: VideoJobManager = request.app.state.jobs
        job = jobs.get(job_id)
        resource = job.slot.current
        if job.status != "done" or resource is None:
            raise HTTPException(status_code=409, detail="Video is not ready.")
        return FileResponse(resource.path, media_type=resource.mime_type)

    @app.delete("/videos/{job_id}")
    async def release_video(job_id: str, request: Request):
        released = request.app.state.jobs.release(job_id)
        return {"job_id": job_id, "released": released}

    return app


app = create_app()
