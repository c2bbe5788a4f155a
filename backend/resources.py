# backend/resources.py
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class VideoResource:
    """
    A generated video held in a file owned by whoever holds this object.
    release() deletes the file; calling it again is a no-op.
    """

    def __init__(self, path: Path, mime_type: str = "video/mp4"):
        self.path = Path(path)
        self.mime_type = mime_type
        self._released = False
        self._lock = threading.Lock()

    @classmethod
    def from_bytes(cls, data: bytes, media_dir: Optional[str] = None,
                   mime_type: str = "video/mp4", suffix: str = ".mp4") -> "VideoResource":
        if media_dir:
            Path(media_dir).mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(prefix="video_", suffix=suffix, dir=media_dir)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        logger.info("[VideoResource] Wrote %d bytes to %s", len(data), name)
        return cls(Path(name), mime_type=mime_type)

    @property
    def released(self) -> bool:
        return self._released

    @property
    def size(self) -> int:
        self._check_alive()
        return self.path.stat().st_size

    def read_bytes(self) -> bytes:
        self._check_alive()
        return self.path.read_bytes()

    def release(self) -> bool:
        """Returns True only for the call that actually released the file."""
        with self._lock:
            if self._released:
                return False
            self._released = True
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        logger.info("[VideoResource] Released %s", self.path)
        return True

    def _check_alive(self) -> None:
        if self._released:
            raise ValueError(f"Video resource {self.path.name} was already released")

    def __enter__(self) -> "VideoResource":
        return self

    def __exit__(self, *exc) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "released" if self._released else "live"
        return f"VideoResource({str(self.path)!r}, {state})"


class MediaSlot:
    """
    Holds at most one VideoResource. Replacing or clearing releases the old one.
    """

    def __init__(self):
        self._current: Optional[VideoResource] = None

    @property
    def current(self) -> Optional[VideoResource]:
        return self._current

    def replace(self, resource: Optional[VideoResource]) -> None:
        previous = self._current
        if previous is resource:
            return
        self._current = resource
        if previous is not None:
            previous.release()

    def clear(self) -> None:
        self.replace(None)

    def __bool__(self) -> bool:
        return self._current is not None
