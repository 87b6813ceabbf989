from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint

from app.core.database import Base


class CreditPackage(Base):
    __tablename__ = "credit_packages"
    __table_args__ = (
        UniqueConstraint("polar_product_id", name="uq_credit_packages_polar_product_id"),
    )

    id = Column(String(64), primary_key=True)  # slug, e.g. credits-10
    name = Column(String(255), nullable=False)
    credits = Column(Integer, nullable=False)
    price = Column(Integer, nullable=False)  # minor currency units
    currency = Column(String(8), nullable=False, default="usd")
    polar_product_id = Column(String(128), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
