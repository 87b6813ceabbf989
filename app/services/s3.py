import io
import logging
from functools import lru_cache
from typing import BinaryIO, Optional
from urllib.parse import urlparse

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from app.core.config import get_settings
from app.core.errors import ConfigurationError


logger = logging.getLogger(__name__)


def is_storage_configured() -> bool:
    return get_settings().s3_configured


@lru_cache
def get_s3_client():
    settings = get_settings()
    if not settings.s3_configured:
        raise ConfigurationError(
            "Image upload service not configured. Please contact administrator."
        )

    # Regional virtual-hosted-style endpoint (bucket.s3.region.amazonaws.com)
    # avoids 301 redirects from the generic endpoint
    s3_config = Config(
        region_name=settings.AWS_S3_REGION,
        signature_version="s3v4",
        s3={"addressing_style": "virtual"},
    )

    client_kwargs = {
        "aws_access_key_id": settings.AWS_ACCESS_KEY_ID,
        "aws_secret_access_key": settings.AWS_SECRET_ACCESS_KEY,
        "region_name": settings.AWS_S3_REGION,
        "config": s3_config,
    }
    # Only custom endpoints (MinIO, DigitalOcean Spaces, etc.) need endpoint_url
    if settings.AWS_S3_ENDPOINT_URL:
        client_kwargs["endpoint_url"] = settings.AWS_S3_ENDPOINT_URL.strip()

    logger.info(
        "S3 client configured: bucket=%s region=%s endpoint=%s",
        settings.AWS_S3_BUCKET_NAME,
        settings.AWS_S3_REGION,
        settings.AWS_S3_ENDPOINT_URL or "aws",
    )
    return boto3.client("s3", **client_kwargs)


def get_file_url(key: str) -> str:
    """Public URL of an object in the configured bucket."""
    settings = get_settings()
    if settings.AWS_S3_ENDPOINT_URL:
        # Custom endpoint (e.g., MinIO, DigitalOcean Spaces)
        return f"{settings.AWS_S3_ENDPOINT_URL.rstrip('/')}/{settings.AWS_S3_BUCKET_NAME}/{key}"
    return f"https://{settings.AWS_S3_BUCKET_NAME}.s3.{settings.AWS_S3_REGION}.amazonaws.com/{key}"


def upload_fileobj_to_s3(file_obj: BinaryIO, key: str, content_type: str = "image/png") -> str:
    """
    Upload a file-like object and return its public URL.

    Raises:
        ConfigurationError: storage credentials are missing
        ClientError: the upload itself failed
    """
    settings = get_settings()
    client = get_s3_client()
    if hasattr(file_obj, "seek"):
        file_obj.seek(0)
    try:
        client.put_object(
            Bucket=settings.AWS_S3_BUCKET_NAME,
            Key=key,
            Body=file_obj.read(),
            ContentType=content_type,
        )
    except ClientError as e:
        error_code = e.response.get("Error", {}).get("Code", "Unknown")
        error_message = e.response.get("Error", {}).get("Message", str(e))
        logger.error(
            "S3 upload failed: %s - %s (bucket=%s key=%s region=%s)",
            error_code,
            error_message,
            settings.AWS_S3_BUCKET_NAME,
            key,
            settings.AWS_S3_REGION,
        )
        raise
    return get_file_url(key)


def upload_bytes_to_s3(data: bytes, key: str, content_type: str = "image/png") -> str:
    return upload_fileobj_to_s3(io.BytesIO(data), key, content_type=content_type)


def _extract_key_from_url(url: str) -> Optional[str]:
    """Get the S3 key from https://bucket.s3.region.amazonaws.com/key or endpoint/bucket/key."""
    if not url:
        return None
    parsed = urlparse(url)
    path = parsed.path.lstrip("/")
    if not path:
        return None

    bucket_prefix = f"{get_settings().AWS_S3_BUCKET_NAME}/"
    if path.startswith(bucket_prefix):
        path = path[len(bucket_prefix):]
    return path or None


def delete_file_from_s3(key: str) -> bool:
    try:
        get_s3_client().delete_object(
            Bucket=get_settings().AWS_S3_BUCKET_NAME,
            Key=key,
        )
        return True
    except ClientError as e:
        logger.warning("Error deleting %s from S3: %s", key, e)
        return False


def delete_file_by_url(url: str) -> bool:
    if not is_storage_configured():
        return False
    key = _extract_key_from_url(url)
    if not key:
        logger.warning("Could not extract S3 key from url: %s", url)
        return False
    return delete_file_from_s3(key)
