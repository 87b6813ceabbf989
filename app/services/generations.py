import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.models.generation import (
    GENERATION_COMPLETED,
    GENERATION_FAILED,
    GENERATION_PROCESSING,
    Generation,
)


logger = logging.getLogger(__name__)


def create_generation(
    db: Session,
    *,
    user_id: int,
    prompt: str,
    style_image_url: str,
    model: str,
    credits_used: int,
    dimensions: Dict[str, int],
    style_image_name: Optional[str] = None,
    output_style: Optional[str] = None,
    chat_id: Optional[str] = None,
    commit: bool = True,
) -> str:
    """Write a new generation row in "processing" state and return its id."""
    generation = Generation(
        user_id=user_id,
        chat_id=chat_id,
        prompt=prompt,
        style_image_url=style_image_url,
        model=model,
        output_style=output_style,
        status=GENERATION_PROCESSING,
        credits_used=credits_used,
        meta={
            "dimensions": dimensions,
            "styleImageName": style_image_name,
        },
    )
    db.add(generation)
    if commit:
        db.commit()
    else:
        db.flush()
    return generation.id


def get_generation(db: Session, generation_id: str, user_id: int) -> Optional[Generation]:
    # Ownership is part of the lookup so foreign ids look exactly like missing ones
    return (
        db.query(Generation)
        .filter(Generation.id == generation_id, Generation.user_id == user_id)
        .first()
    )


def list_user_generations(db: Session, user_id: int, limit: int = 20, offset: int = 0) -> List[Generation]:
    return (
        db.query(Generation)
        .filter(Generation.user_id == user_id)
        .order_by(Generation.created_at.desc(), Generation.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )


def count_user_generations(db: Session, user_id: int) -> int:
    return db.query(Generation).filter(Generation.user_id == user_id).count()


def update_generation(db: Session, generation_id: str, updates: Dict[str, Any], only_processing: bool = True) -> bool:
    """
    Apply `updates` to a generation. By default only a "processing" row is touched,
    which makes every terminal transition single-shot.

    Returns True when a row was updated.
    """
    query = db.query(Generation).filter(Generation.id == generation_id)
    if only_processing:
        query = query.filter(Generation.status == GENERATION_PROCESSING)
    values = {getattr(Generation, key): value for key, value in updates.items()}
    values[Generation.updated_at] = datetime.utcnow()
    updated = query.update(values, synchronize_session=False)
    db.commit()
    # Other objects in the session may hold the old state
    db.expire_all()
    return updated > 0


def complete_generation(
    db: Session,
    generation_id: str,
    generated_image_url: str,
    metadata: Optional[Dict[str, Any]] = None,
) -> bool:
    current = db.query(Generation.meta).filter(Generation.id == generation_id).scalar()
    merged = dict(current or {})
    merged.update(metadata or {})
    updated = update_generation(
        db,
        generation_id,
        {
            "status": GENERATION_COMPLETED,
            "generated_image_url": generated_image_url,
            "meta": merged,
        },
    )
    if not updated:
        logger.warning("Generation %s is not processing, completion ignored", generation_id)
    return updated


def fail_generation(db: Session, generation_id: str, error_message: str) -> bool:
    updated = update_generation(
        db,
        generation_id,
        {
            "status": GENERATION_FAILED,
            "error_message": error_message,
        },
    )
    if not updated:
        logger.warning("Generation %s is not processing, failure ignored", generation_id)
    return updated


def delete_generation(db: Session, generation_id: str, user_id: int) -> bool:
    generation = get_generation(db, generation_id, user_id)
    if not generation:
        return False
    db.delete(generation)
    db.commit()
    return True
