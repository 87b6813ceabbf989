import base64
import binascii
import io
import re
import uuid
from datetime import datetime
from typing import NamedTuple, Tuple

from PIL import Image, UnidentifiedImageError

from app.core.errors import ValidationError


MAX_UPLOAD_SIZE = 10 * 1024 * 1024  # 10MB
ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp", "image/gif")
STORABLE_RESULT_TYPES = ("image/png", "image/jpeg", "image/webp")

EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,", re.IGNORECASE)


class ImageInfo(NamedTuple):
    width: int
    height: int
    format: str


def validate_upload(content_type: str, size: int) -> None:
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError("Invalid file type. Allowed: JPG, PNG, WEBP, GIF")
    if size > MAX_UPLOAD_SIZE:
        raise ValidationError("File too large. Maximum size is 10MB")
    if size == 0:
        raise ValidationError("File is empty")


def decode_base64_image(data: str, fallback_mime: str = "image/png") -> Tuple[bytes, str]:
    """Decode a raw base64 string or a data URL. Returns (bytes, mime type)."""
    mime = fallback_mime
    match = _DATA_URL_RE.match(data)
    if match:
        mime = match.group("mime").lower()
        data = data[match.end():]
    try:
        return base64.b64decode(data, validate=True), mime
    except (binascii.Error, ValueError):
        raise ValidationError("Invalid base64 image data")


def inspect_image(data: bytes) -> ImageInfo:
    try:
        with Image.open(io.BytesIO(data)) as img:
            return ImageInfo(width=img.width, height=img.height, format=(img.format or "").lower())
    except (UnidentifiedImageError, OSError):
        raise ValidationError("File is not a valid image")


def normalize_result_image(data: bytes, mime_type: str) -> Tuple[bytes, str, ImageInfo]:
    """
    Make a generated image storable: png/jpeg/webp pass through, anything else
    is re-encoded to PNG.
    """
    with Image.open(io.BytesIO(data)) as img:
        info = ImageInfo(width=img.width, height=img.height, format=(img.format or "").lower())
        mime_type = (mime_type or "").lower()
        if mime_type in STORABLE_RESULT_TYPES:
            return data, mime_type, info
        buf = io.BytesIO()
        img.save(buf, format="PNG")
    return buf.getvalue(), "image/png", ImageInfo(info.width, info.height, "png")


def build_storage_key(prefix: str, user_id: int, mime_type: str) -> str:
    timestamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S")
    unique_id = str(uuid.uuid4())[:8]
    ext = EXTENSIONS.get(mime_type.lower(), "png")
    return f"{prefix}/{user_id}/{timestamp}_{unique_id}.{ext}"
