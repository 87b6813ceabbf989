import base64
import hashlib
import hmac
import time
from datetime import datetime, timedelta, timezone
from typing import Mapping, Optional

import bcrypt
from jose import JWTError, jwt

from app.core.config import get_settings
from app.core.errors import WebhookVerificationError


def hash_password(password: str) -> str:
    # Truncate password to 72 bytes (bcrypt limit)
    password_bytes = password.encode("utf-8")[:72]
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password_bytes, salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    password_bytes = plain_password.encode("utf-8")[:72]
    hashed_bytes = hashed_password.encode("utf-8")
    return bcrypt.checkpw(password_bytes, hashed_bytes)


def _create_token(data: dict, expires_delta: timedelta, secret_key: str) -> str:
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, secret_key, algorithm=settings.JWT_ALGORITHM)


def create_access_token(user_id: int) -> str:
    settings = get_settings()
    return _create_token(
        {"sub": str(user_id)},
        timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES),
        settings.JWT_SECRET_KEY,
    )


def create_refresh_token(user_id: int) -> str:
    settings = get_settings()
    return _create_token(
        {"sub": str(user_id)},
        timedelta(days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS),
        settings.JWT_REFRESH_SECRET_KEY,
    )


def decode_user_id(token: str, secret_key: str) -> Optional[int]:
    """Return the user id stored in a token's "sub" claim, or None if the token is invalid."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, secret_key, algorithms=[settings.JWT_ALGORITHM])
        user_id_raw = payload.get("sub")
        if user_id_raw is None:
            return None
        # sub is issued as a string
        return int(user_id_raw)
    except (JWTError, ValueError, TypeError):
        return None


# Standard Webhooks signing scheme (used by Polar):
# base64(HMAC-SHA256(key, "{webhook-id}.{webhook-timestamp}.{body}")), sent as "v1,<sig>"

def _webhook_key(secret: str) -> bytes:
    if secret.startswith("whsec_"):
        return base64.b64decode(secret[len("whsec_"):])
    # Polar hands out raw secrets and signs with their UTF-8 bytes
    return secret.encode("utf-8")


def sign_webhook_payload(secret: str, msg_id: str, timestamp: int, body: bytes) -> str:
    content = f"{msg_id}.{timestamp}.".encode("utf-8") + body
    digest = hmac.new(_webhook_key(secret), content, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def verify_webhook_signature(
    body: bytes,
    headers: Mapping[str, str],
    secret: str,
    tolerance_seconds: int = 300,
    now: Optional[float] = None,
) -> str:
    """
    Verify a Standard Webhooks signature.

    Returns the webhook id on success, raises WebhookVerificationError otherwise.
    """
    msg_id = headers.get("webhook-id")
    msg_timestamp = headers.get("webhook-timestamp")
    msg_signature = headers.get("webhook-signature")
    if not msg_id or not msg_timestamp or not msg_signature:
        raise WebhookVerificationError("Missing required headers")

    try:
        timestamp = int(msg_timestamp)
    except ValueError:
        raise WebhookVerificationError("Invalid signature headers")

    current = time.time() if now is None else now
    if abs(current - timestamp) > tolerance_seconds:
        raise WebhookVerificationError("Message timestamp outside tolerance")

    expected = sign_webhook_payload(secret, msg_id, timestamp, body)
    for versioned in msg_signature.split(" "):
        version, _, signature = versioned.partition(",")
        if version == "v1" and hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8")):
            return msg_id

    raise WebhookVerificationError("No matching signature found")
