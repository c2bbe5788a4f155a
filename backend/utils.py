import base64
import mimetypes
import re
import uuid
from pathlib import Path
from typing import Any, Optional

from .errors import ReadError, ValidationError
from .model import EncodedImage

ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/webp")
INVALID_FILE_MESSAGE = "Please select a valid image file (JPEG, PNG, WebP)."

SLUG_MAX_LENGTH = 50


def validate_image_type(mime_type: Optional[str]) -> str:
    """
    Accept only JPEG / PNG / WebP. Called before any encoding or network work.
    """
    if mime_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError(INVALID_FILE_MESSAGE)
    return mime_type


def _declared_type(source: Any) -> Optional[str]:
    # Streamlit UploadedFile exposes .type, plain files only have a name
    declared = getattr(source, "type", None)
    if isinstance(declared, str) and declared:
        return declared
    name = getattr(source, "name", None)
    if isinstance(source, (str, Path)):
        name = str(source)
    if name:
        return mimetypes.guess_type(str(name))[0]
    return None


def _read_bytes(source: Any) -> bytes:
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)
    if isinstance(source, (str, Path)):
        return Path(source).read_bytes()
    if hasattr(source, "getvalue"):
        return source.getvalue()
    if hasattr(source, "read"):
        if hasattr(source, "seek"):
            source.seek(0)
        return source.read()
    raise TypeError(f"Unsupported file source: {type(source).__name__}")


def encode_file(source: Any, mime_type: Optional[str] = None) -> EncodedImage:
    """
    Read a user-selected file and return its base64 payload plus media type.
    The encoding is produced fresh on every call.
    """
    try:
        raw = _read_bytes(source)
    except (OSError, TypeError, ValueError) as e:
        raise ReadError(f"Could not read the selected file: {e}") from e

    mime = mime_type or _declared_type(source) or "application/octet-stream"
    return EncodedImage(data=base64.b64encode(raw).decode("ascii"), mime_type=mime)


def slugify_filename(prompt: Optional[str], default: str) -> str:
    """
    "  A Bold CAT!! " -> "a-bold-cat!!". Empty prompt -> default.
    """
    slug = re.sub(r"\s+", "-", (prompt or "").strip().lower())[:SLUG_MAX_LENGTH]
    return slug or default


def download_name(prompt: Optional[str], default: str, extension: str) -> str:
    return f"{slugify_filename(prompt, default)}.{extension}"


def extension_for(mime_type: Optional[str], fallback: str = "png") -> str:
    if not mime_type or "/" not in mime_type:
        return fallback
    return mime_type.split("/", 1)[1] or fallback


def to_data_uri(mime_type: str, data: str) -> str:
    return f"data:{mime_type};base64,{data}"


def gen_job_id() -> str:
    return str(uuid.uuid4())
