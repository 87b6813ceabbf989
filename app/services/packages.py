import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.errors import NotFoundError, ValidationError
from app.models.credit_package import CreditPackage
from app.models.credits import UserCredits
from app.models.user import User
from app.services.credits import reset_credits


logger = logging.getLogger(__name__)

DEFAULT_CREDIT_PACKAGES: List[Dict[str, Any]] = [
    {
        "id": "credits-10",
        "polar_product_id": "ad039347-4617-4589-a559-05d7c8695800",
        "name": "10 Credits",
        "credits": 10,
        "price": 500,
    },
    {
        "id": "credits-50",
        "polar_product_id": "00000000-0000-0000-0000-000000000002",
        "name": "50 Credits",
        "credits": 50,
        "price": 2000,
    },
    {
        "id": "credits-100",
        "polar_product_id": "00000000-0000-0000-0000-000000000003",
        "name": "100 Credits",
        "credits": 100,
        "price": 3500,
    },
]


def list_packages(db: Session) -> List[CreditPackage]:
    return db.query(CreditPackage).order_by(CreditPackage.price).all()


def get_package_by_product_id(db: Session, product_id: str) -> Optional[CreditPackage]:
    return db.query(CreditPackage).filter(CreditPackage.polar_product_id == product_id).first()


def create_package(db: Session, data: Dict[str, Any]) -> CreditPackage:
    if db.get(CreditPackage, data["id"]):
        raise ValidationError(f"Package {data['id']} already exists")
    if get_package_by_product_id(db, data["polar_product_id"]):
        raise ValidationError("Another package already uses this product id")

    package = CreditPackage(currency="usd", **data)
    db.add(package)
    db.commit()
    db.refresh(package)
    logger.info("Created credit package %s (%s credits)", package.id, package.credits)
    return package


def update_package(db: Session, package_id: str, updates: Dict[str, Any]) -> CreditPackage:
    package = db.get(CreditPackage, package_id)
    if not package:
        raise NotFoundError("Package not found")
    product_id = updates.get("polar_product_id")
    if product_id:
        other = get_package_by_product_id(db, product_id)
        if other and other.id != package_id:
            raise ValidationError("Another package already uses this product id")
    for field, value in updates.items():
        if value is None:
            raise ValidationError(f"{field} cannot be null")
        setattr(package, field, value)
    db.add(package)
    db.commit()
    db.refresh(package)
    return package


def delete_package(db: Session, package_id: str) -> None:
    package = db.get(CreditPackage, package_id)
    if not package:
        raise NotFoundError("Package not found")
    db.delete(package)
    db.commit()


def seed_credit_packages(db: Session) -> int:
    """Insert or refresh the default packages. Returns how many were written."""
    for item in DEFAULT_CREDIT_PACKAGES:
        package = db.get(CreditPackage, item["id"])
        if package is None:
            package = CreditPackage(currency="usd", **item)
        else:
            for field, value in item.items():
                setattr(package, field, value)
        db.add(package)
    db.commit()
    return len(DEFAULT_CREDIT_PACKAGES)


def list_users_with_credits(db: Session) -> List[Dict[str, Any]]:
    rows = (
        db.query(User, UserCredits.credits)
        .outerjoin(UserCredits, UserCredits.user_id == User.id)
        .order_by(User.created_at.desc())
        .all()
    )
    return [
        {
            "id": user.id,
            "name": user.name,
            "email": user.email,
            "role": user.role,
            "created_at": user.created_at,
            "credits": credits,
        }
        for user, credits in rows
    ]


def update_user_credit_balance(db: Session, user_id: int, credits: int) -> int:
    if not db.get(User, user_id):
        raise NotFoundError("User not found")
    result = reset_credits(db, user_id, credits)
    logger.info("Admin set credits of user %s to %s", user_id, credits)
    return result.balance
