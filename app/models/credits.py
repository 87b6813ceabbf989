from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import relationship

from app.core.database import Base


class UserCredits(Base):
    __tablename__ = "user_credits"
    __table_args__ = (
        UniqueConstraint("user_id", name="uq_user_credits_user_id"),
        CheckConstraint("credits >= 0", name="ck_user_credits_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    credits = Column(Integer, nullable=False, default=0)
    total_credits_used = Column(Integer, nullable=False, default=0)
    last_reset_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="credits")
