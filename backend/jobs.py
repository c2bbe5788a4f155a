# backend/jobs.py

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from .errors import JobConflictError, StudioError, UnknownJobError
from .gemini_client import GeminiClient
from .model import JobStatus, VideoConfig, VideoJobStatus
from .resources import MediaSlot, VideoResource
from .utils import gen_job_id

logger = logging.getLogger(__name__)


@dataclass
class VideoJob:
    job_id: str
    owner_id: str
    prompt: str
    config: VideoConfig
    status: JobStatus = "waiting"
    error_message: Optional[str] = None
    polls: int = 0
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    task: Optional[asyncio.Task] = None
    slot: MediaSlot = field(default_factory=MediaSlot)
    finished_at: Optional[float] = None

    @property
    def in_flight(self) -> bool:
        return self.status in ("waiting", "processing")

    def to_status(self) -> VideoJobStatus:
        return VideoJobStatus(
            job_id=self.job_id,
            status=self.status,
            error_message=self.error_message,
            polls=self.polls,
        )


class VideoJobManager:
    """
    Runs video generations as background tasks, at most one in flight per owner.
    Each finished job owns its VideoResource until released, or until it has
    been finished for `ttl` seconds and a sweep evicts it.
    """

    def __init__(self, client: GeminiClient, ttl: float = 3600.0,
                 clock: Callable[[], float] = time.monotonic):
        self.client = client
        self.ttl = ttl
        self._clock = clock
        self._jobs: Dict[str, VideoJob] = {}
        self._by_owner: Dict[str, str] = {}

    def submit(self, owner_id: str, prompt: str, config: VideoConfig) -> VideoJob:
        self.sweep()
        previous_id = self._by_owner.get(owner_id)
        if previous_id is not None:
            previous = self._jobs.get(previous_id)
            if previous is not None and previous.in_flight:
                raise JobConflictError()
            # the owner's last result is superseded by the new request
            self.release(previous_id)

        job = VideoJob(job_id=gen_job_id(), owner_id=owner_id, prompt=prompt, config=config)
        self._jobs[job.job_id] = job
        self._by_owner[owner_id] = job.job_id
        job.task = asyncio.create_task(self._process_job(job))
        logger.info("[VideoJobs] Job %s submitted for owner %s, prompt=%s...",
                    job.job_id, owner_id, prompt[:50])
        return job

    async def _process_job(self, job: VideoJob) -> None:
        job.status = "processing"

        def on_poll(count: int, _operation: dict) -> None:
            job.polls = count

        try:
            resource = await self.client.generate_video(
                job.prompt, job.config, cancel_event=job.cancel_event, on_poll=on_poll
            )
        except asyncio.CancelledError:
            job.status = "cancelled"
            logger.info("[VideoJobs] Job %s cancelled", job.job_id)
            return
        except StudioError as e:
            job.status = "error"
            job.error_message = e.message
            logger.warning("[VideoJobs] Job %s failed: %s", job.job_id, e.message)
            return
        finally:
            # the seed image only lives as long as the remote request
            job.config = job.config.model_copy(update={"image": None})
            job.finished_at = self._clock()

        if job.cancel_event.is_set():
            # released while the download was finishing
            resource.release()
            job.status = "cancelled"
            return
        job.slot.replace(resource)
        job.status = "done"
        logger.info("[VideoJobs] Job %s completed successfully", job.job_id)

    def get(self, job_id: str) -> VideoJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise UnknownJobError()
        return job

    def status(self, job_id: str) -> VideoJobStatus:
        return self.get(job_id).to_status()

    def resource(self, job_id: str) -> Optional[VideoResource]:
        return self.get(job_id).slot.current

    def cancel(self, job_id: str) -> None:
        job = self.get(job_id)
        if not job.in_flight:
            return
        job.cancel_event.set()
        if job.task is not None and not job.task.done():
            job.task.cancel()
        job.status = "cancelled"
        job.config = job.config.model_copy(update={"image": None})
        job.finished_at = self._clock()

    def sweep(self) -> int:
        """Release jobs that finished more than `ttl` seconds ago. Returns how many."""
        if self.ttl <= 0:
            return 0
        now = self._clock()
        expired = [
            job_id for job_id, job in self._jobs.items()
            if not job.in_flight and job.finished_at is not None and now - job.finished_at >= self.ttl
        ]
        for job_id in expired:
            self.release(job_id)
        if expired:
            logger.info("[VideoJobs] Evicted %d expired job(s)", len(expired))
        return len(expired)

    async def run_sweeper(self, interval: float = 60.0) -> None:
        """Sweep forever; run as a background task for the service's lifetime."""
        while True:
            await asyncio.sleep(interval)
            self.sweep()

    def release(self, job_id: str) -> bool:
        """Cancel if running, drop the video file and forget the job. Safe to repeat."""
        job = self._jobs.pop(job_id, None)
        if job is None:
            return False
        job.cancel_event.set()
        if job.task is not None and not job.task.done():
            job.task.cancel()
        job.slot.clear()
        if self._by_owner.get(job.owner_id) == job_id:
            del self._by_owner[job.owner_id]
        logger.info("[VideoJobs] Job %s released", job_id)
        return True

    async def shutdown(self) -> None:
        tasks = [j.task for j in self._jobs.values() if j.task is not None and not j.task.done()]
        for job_id in list(self._jobs):
            self.release(job_id)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def __len__(self) -> int:
        return len(self._jobs)
