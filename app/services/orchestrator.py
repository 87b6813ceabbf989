"""
Generation lifecycle.

submit_generation validates a request, charges credits and writes the
"processing" record in one transaction, then hands the generation id to a
background worker and returns without waiting. run_generation is the
worker side: it is the only writer of the terminal state.
"""
import logging
from typing import Dict, NamedTuple, Optional

from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.errors import InsufficientCreditsError, NotFoundError, ValidationError
from app.core.models_catalog import DEFAULT_DIMENSIONS, ModelSpec, get_model_by_id, resolve_model
from app.models.chat import MESSAGE_COMPLETED, MESSAGE_FAILED, MESSAGE_PENDING, Chat
from app.models.generation import GENERATION_FAILED, GENERATION_PROCESSING, Generation
from app.models.user import User
from app.schemas.generation import MAX_PROMPT_LENGTH
from app.services import ai, s3
from app.services.chat import create_message, get_chat, update_message
from app.services.credits import deduct_credits, get_credits
from app.services.generations import complete_generation, create_generation, fail_generation
from app.services.images import build_storage_key, normalize_result_image
from app.services.style_references import get_style_reference, increment_usage


logger = logging.getLogger(__name__)

QUEUE_FAILURE_MESSAGE = "Failed to queue generation"


class Submission(NamedTuple):
    generation_id: str
    status: str
    credits_remaining: int
    model: ModelSpec
    chat_id: Optional[str] = None
    assistant_message_id: Optional[str] = None


def validate_generation_request(prompt: Optional[str]) -> str:
    if not prompt or not prompt.strip():
        raise ValidationError("Prompt is required")
    if len(prompt) > MAX_PROMPT_LENGTH:
        raise ValidationError(f"Prompt must be less than {MAX_PROMPT_LENGTH} characters")
    return prompt


def _enqueue(generation_id: str) -> None:
    from app.workers.tasks import process_generation_task

    process_generation_task.delay(generation_id)


def submit_generation(
    db: Session,
    user: User,
    prompt: str,
    style_image_url: Optional[str] = None,
    style_image_name: Optional[str] = None,
    style_reference_id: Optional[str] = None,
    model_id: Optional[str] = None,
    output_style: Optional[str] = None,
    chat_id: Optional[str] = None,
) -> Submission:
    cost = get_settings().GENERATION_CREDIT_COST

    # 1. validate before any side effect
    prompt = validate_generation_request(prompt)

    # 2. cheap balance check, no record is written when it fails
    balance = get_credits(db, user.id)
    if balance.credits < cost:
        raise InsufficientCreditsError(balance=balance.credits)

    # 3. static allow-list with default fallback
    model = resolve_model(model_id)

    chat: Optional[Chat] = None
    if chat_id:
        chat = get_chat(db, chat_id, user.id)
        if not chat:
            raise NotFoundError("Chat not found")

    if style_reference_id:
        reference = get_style_reference(db, style_reference_id, user.id)
        if not reference:
            raise NotFoundError("Style reference not found")
        style_image_url = style_image_url or reference.image_url
        style_image_name = style_image_name or reference.name
    if not style_image_url:
        raise ValidationError("Style image is required")

    # 4 + 5. record and charge commit together or not at all
    generation_id = create_generation(
        db,
        user_id=user.id,
        prompt=prompt,
        style_image_url=style_image_url,
        model=model.id,
        credits_used=cost,
        dimensions=dict(DEFAULT_DIMENSIONS),
        style_image_name=style_image_name,
        output_style=output_style,
        chat_id=chat.id if chat else None,
        commit=False,
    )
    generation = db.get(Generation, generation_id)

    charge = deduct_credits(db, user.id, cost, commit=False)
    if not charge.success:
        # Balance dropped between the check and the charge
        db.rollback()
        logger.warning(
            "Credit deduction failed for user %s after balance check (balance=%s)",
            user.id,
            charge.balance,
        )
        raise InsufficientCreditsError(balance=charge.balance)

    if style_reference_id:
        increment_usage(db, style_reference_id, commit=False)

    assistant_message_id = None
    if chat:
        create_message(db, chat.id, "user", prompt, images=[style_image_url], commit=False)
        assistant = create_message(db, chat.id, "assistant", "", status=MESSAGE_PENDING, commit=False)
        assistant_message_id = assistant.id
        chat.is_generating = True
        generation.meta = {**generation.meta, "assistantMessageId": assistant_message_id}
        db.add(chat)

    user.generation_count = (user.generation_count or 0) + 1
    db.add(user)
    db.add(generation)
    db.commit()
    logger.info(
        "Generation %s submitted by user %s (model=%s, credits left=%s)",
        generation_id,
        user.id,
        model.id,
        charge.balance,
    )

    # 6. fire and forget
    status = GENERATION_PROCESSING
    try:
        _enqueue(generation_id)
    except Exception:
        logger.exception("Failed to queue generation %s", generation_id)
        if fail_generation(db, generation_id, QUEUE_FAILURE_MESSAGE):
            _resolve_chat_message(db, generation_id, MESSAGE_FAILED, error=QUEUE_FAILURE_MESSAGE)
        status = GENERATION_FAILED

    return Submission(
        generation_id=generation_id,
        status=status,
        credits_remaining=charge.balance,
        model=model,
        chat_id=chat_id if chat else None,
        assistant_message_id=assistant_message_id,
    )


def _resolve_chat_message(
    db: Session,
    generation_id: str,
    status: str,
    image_url: Optional[str] = None,
    error: Optional[str] = None,
) -> None:
    """Mirror the generation outcome onto its pending assistant message."""
    generation = db.get(Generation, generation_id)
    if generation is None or not generation.chat_id:
        return
    message_id = (generation.meta or {}).get("assistantMessageId")
    try:
        if message_id:
            updates: Dict[str, object] = {"status": status, "error": error}
            if image_url:
                updates["images"] = [image_url]
            update_message(db, generation.chat_id, message_id, updates, commit=False)
        chat = db.get(Chat, generation.chat_id)
        if chat is not None:
            chat.is_generating = False
            db.add(chat)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Failed to update chat message for generation %s", generation_id)


def _model_metadata(model: ModelSpec) -> Dict[str, object]:
    return {
        "id": model.id,
        "name": model.name,
        "type": model.type,
        "provider": model.provider,
        "cost": model.cost,
    }


def run_generation(db: Session, generation_id: str) -> Optional[str]:
    """
    Call the model for a processing generation and write the terminal state.

    Returns the final status, or None when there was nothing to do.
    """
    generation = db.get(Generation, generation_id)
    if generation is None:
        logger.warning("Generation %s not found, skipping", generation_id)
        return None
    if generation.is_terminal:
        logger.info("Generation %s already %s, skipping", generation_id, generation.status)
        return None

    logger.info("Generation %s starting", generation_id)
    model = get_model_by_id(generation.model) or resolve_model(None)
    prompt = generation.prompt
    style_image_url = generation.style_image_url
    user_id = generation.user_id

    try:
        image_bytes, mime_type = ai.generate_image(prompt, style_image_url, model, generation.output_style)
        if not image_bytes:
            raise ValueError("Empty image returned by model")
        image_bytes, mime_type, info = normalize_result_image(image_bytes, mime_type)
        key = build_storage_key("generated", user_id, mime_type)
        result_url = s3.upload_bytes_to_s3(image_bytes, key, mime_type)
    except Exception as exc:
        logger.exception("Generation %s failed", generation_id)
        db.rollback()
        message = str(exc) or "Unknown error occurred"
        if fail_generation(db, generation_id, message):
            _resolve_chat_message(db, generation_id, MESSAGE_FAILED, error=message)
        return GENERATION_FAILED

    completed = complete_generation(
        db,
        generation_id,
        result_url,
        {
            "dimensions": {"width": info.width, "height": info.height},
            "format": info.format,
            "mimeType": mime_type,
            "styleImageUrl": style_image_url,
            "model": _model_metadata(model),
        },
    )
    if completed:
        _resolve_chat_message(db, generation_id, MESSAGE_COMPLETED, image_url=result_url)
        logger.info("Generation %s completed: %s", generation_id, result_url)
    return db.get(Generation, generation_id).status
