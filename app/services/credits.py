"""
Credit ledger: one balance row per user.

Balance changes are single conditional UPDATE statements, so concurrent
deductions can never push a balance below zero and concurrent top-ups are
never lost. Insufficient credit is reported through CreditResult, not raised.
"""
import logging
from datetime import datetime
from typing import NamedTuple, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.models.credits import UserCredits


logger = logging.getLogger(__name__)


class CreditsInfo(NamedTuple):
    credits: int
    total_used: int


class CreditResult(NamedTuple):
    success: bool
    balance: int


def default_credits() -> int:
    return get_settings().DEFAULT_USER_CREDITS


def _get_record(db: Session, user_id: int) -> Optional[UserCredits]:
    return db.query(UserCredits).filter(UserCredits.user_id == user_id).first()


def _current_balance(db: Session, user_id: int) -> int:
    return db.execute(
        select(UserCredits.credits).where(UserCredits.user_id == user_id)
    ).scalar_one()


def _get_or_create(db: Session, user_id: int, initial: int, commit: bool = True) -> UserCredits:
    record = _get_record(db, user_id)
    if record:
        return record

    record = UserCredits(user_id=user_id, credits=initial, total_credits_used=0)
    db.add(record)
    if not commit:
        db.flush()
        return record

    try:
        db.commit()
    except IntegrityError:
        # Another request created the row first
        db.rollback()
        record = _get_record(db, user_id)
        if record is None:
            raise
        return record
    db.refresh(record)
    logger.info("Created credit balance for user %s with %s credits", user_id, initial)
    return record


def _check_amount(amount: int) -> None:
    if amount < 0:
        raise ValueError("Credit amount must not be negative")


def get_credits(db: Session, user_id: int) -> CreditsInfo:
    """Return the user's balance, creating it with the default grant on first access."""
    record = _get_or_create(db, user_id, default_credits())
    return CreditsInfo(credits=record.credits, total_used=record.total_credits_used)


def has_sufficient_credits(db: Session, user_id: int, amount: int = 1) -> bool:
    record = _get_record(db, user_id)
    if record is None:
        return default_credits() >= amount
    return record.credits >= amount


def deduct_credits(db: Session, user_id: int, amount: int = 1, commit: bool = True) -> CreditResult:
    """
    Atomically take `amount` credits and add them to the usage counter.

    With commit=False the change joins the caller's transaction, which then
    decides whether to commit or roll back.
    """
    _check_amount(amount)
    record = _get_or_create(db, user_id, default_credits(), commit=commit)

    result = db.execute(
        update(UserCredits)
        .where(UserCredits.user_id == user_id, UserCredits.credits >= amount)
        .values(
            credits=UserCredits.credits - amount,
            total_credits_used=UserCredits.total_credits_used + amount,
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    db.expire(record)
    if result.rowcount == 0:
        return CreditResult(success=False, balance=_current_balance(db, user_id))

    balance = _current_balance(db, user_id)
    if commit:
        db.commit()
    return CreditResult(success=True, balance=balance)


def add_credits(db: Session, user_id: int, amount: int, commit: bool = True) -> CreditResult:
    """Top up the balance. A missing balance row is created holding exactly `amount`."""
    _check_amount(amount)
    record = _get_record(db, user_id)
    if record is None:
        record = UserCredits(user_id=user_id, credits=amount, total_credits_used=0)
        db.add(record)
        db.flush()
    else:
        db.execute(
            update(UserCredits)
            .where(UserCredits.user_id == user_id)
            .values(credits=UserCredits.credits + amount, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        db.expire(record)

    balance = _current_balance(db, user_id)
    if commit:
        db.commit()
    return CreditResult(success=True, balance=balance)


def reset_credits(db: Session, user_id: int, amount: int, commit: bool = True) -> CreditResult:
    """Set the balance to an absolute value. The usage counter is left untouched."""
    _check_amount(amount)
    record = _get_record(db, user_id)
    now = datetime.utcnow()
    if record is None:
        record = UserCredits(user_id=user_id, credits=amount, total_credits_used=0, last_reset_at=now)
        db.add(record)
    else:
        record.credits = amount
        record.last_reset_at = now
        db.add(record)

    if commit:
        db.commit()
        db.refresh(record)
    else:
        db.flush()
    return CreditResult(success=True, balance=record.credits)
