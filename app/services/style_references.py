from datetime import datetime
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.models.style_reference import StyleReference


def create_style_reference(
    db: Session,
    user_id: int,
    name: str,
    image_url: str,
    description: Optional[str] = None,
) -> StyleReference:
    reference = StyleReference(
        user_id=user_id,
        name=name,
        image_url=image_url,
        description=description,
        usage_count=0,
    )
    db.add(reference)
    db.commit()
    db.refresh(reference)
    return reference


def get_style_reference(db: Session, reference_id: str, user_id: int) -> Optional[StyleReference]:
    return (
        db.query(StyleReference)
        .filter(StyleReference.id == reference_id, StyleReference.user_id == user_id)
        .first()
    )


def list_user_style_references(db: Session, user_id: int) -> List[StyleReference]:
    return (
        db.query(StyleReference)
        .filter(StyleReference.user_id == user_id)
        .order_by(StyleReference.created_at.desc())
        .all()
    )


def get_most_used_style_references(db: Session, user_id: int, limit: int = 10) -> List[StyleReference]:
    return (
        db.query(StyleReference)
        .filter(StyleReference.user_id == user_id)
        .order_by(StyleReference.usage_count.desc(), StyleReference.created_at.desc())
        .limit(limit)
        .all()
    )


def increment_usage(db: Session, reference_id: str, commit: bool = True) -> None:
    db.execute(
        update(StyleReference)
        .where(StyleReference.id == reference_id)
        .values(usage_count=StyleReference.usage_count + 1, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    if commit:
        db.commit()


def delete_style_reference(db: Session, reference_id: str, user_id: int) -> bool:
    reference = get_style_reference(db, reference_id, user_id)
    if not reference:
        return False
    db.delete(reference)
    db.commit()
    return True
