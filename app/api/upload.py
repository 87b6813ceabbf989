import logging
import re
from typing import Annotated, Optional

from botocore.exceptions import ClientError
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from app.api.deps import get_current_user
from app.core.errors import ConfigurationError
from app.models.user import User
from app.schemas.upload import Base64UploadRequest, UploadResult
from app.services.images import build_storage_key, decode_base64_image, inspect_image, validate_upload
from app.services.s3 import is_storage_configured, upload_bytes_to_s3


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/upload", tags=["upload"])


def normalize_filename(filename: str) -> str:
    """
    Normalize filename: replace spaces with underscores, remove special characters.
    Keeps only: letters, numbers, dots, dashes, underscores.
    """
    normalized = filename.replace(" ", "_")
    normalized = re.sub(r"[^a-zA-Z0-9._-]", "", normalized)
    return normalized


def _require_storage() -> None:
    if not is_storage_configured():
        raise ConfigurationError("Image upload service not configured. Please contact administrator.")


def _store_style_image(user: User, data: bytes, mime_type: str, file_name: Optional[str]) -> UploadResult:
    validate_upload(mime_type, len(data))
    info = inspect_image(data)
    key = build_storage_key("styles", user.id, mime_type)

    try:
        url = upload_bytes_to_s3(data, key, content_type=mime_type)
    except ClientError as e:
        error_code = e.response.get("Error", {}).get("Code", "Unknown")
        logger.error("Style image upload failed for user %s: %s", user.id, error_code)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to upload image",
        )

    logger.info("Stored style image %s (%s bytes) for user %s", key, len(data), user.id)
    return UploadResult(
        url=url,
        file_name=normalize_filename(file_name or "") or key.rsplit("/", 1)[-1],
        size=len(data),
        mime_type=mime_type,
        width=info.width,
        height=info.height,
        format=info.format,
    )


@router.post("/style-image", response_model=UploadResult)
async def upload_style_image(
    current_user: Annotated[User, Depends(get_current_user)],
    image: UploadFile = File(...),
) -> UploadResult:
    """
    Upload a style reference image (multipart field "image").

    JPG, PNG, WEBP or GIF up to 10MB.
    """
    _require_storage()
    content_type = (image.content_type or "").lower()
    file_content = await image.read()
    return _store_style_image(current_user, file_content, content_type, image.filename)


@router.post("/base64", response_model=UploadResult)
def upload_base64(
    payload: Base64UploadRequest,
    current_user: Annotated[User, Depends(get_current_user)],
) -> UploadResult:
    _require_storage()
    data, mime_type = decode_base64_image(payload.image, fallback_mime=(payload.mime_type or "image/png").lower())
    return _store_style_image(current_user, data, mime_type, payload.file_name)
