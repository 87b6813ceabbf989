from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_admin
from app.core.database import get_db
from app.models.user import User
from app.schemas.admin import AdminUserOut, PackageCreate, PackageUpdate, UserCreditsUpdate
from app.schemas.generation import CreditPackageOut
from app.services import packages as package_service


router = APIRouter(prefix="/api/admin", tags=["admin"])


def _package(package) -> dict:
    return CreditPackageOut.model_validate(package).model_dump(by_alias=True)


@router.get("/packages")
def list_packages(
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    return {"success": True, "packages": [_package(p) for p in package_service.list_packages(db)]}


@router.post("/packages", status_code=status.HTTP_201_CREATED)
def create_package(
    payload: PackageCreate,
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    package = package_service.create_package(db, payload.model_dump())
    return {"success": True, "package": _package(package)}


@router.put("/packages/{package_id}")
def update_package(
    package_id: str,
    payload: PackageUpdate,
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    package = package_service.update_package(db, package_id, payload.model_dump(exclude_none=True))
    return {"success": True, "package": _package(package)}


@router.delete("/packages/{package_id}")
def delete_package(
    package_id: str,
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    package_service.delete_package(db, package_id)
    return {"success": True}


@router.get("/users")
def list_users(
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    users = package_service.list_users_with_credits(db)
    return {
        "success": True,
        "users": [AdminUserOut(**user).model_dump(by_alias=True, mode="json") for user in users],
    }


@router.put("/users/{user_id}/credits")
def set_user_credits(
    user_id: int,
    payload: UserCreditsUpdate,
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    balance = package_service.update_user_credit_balance(db, user_id, payload.credits)
    return {"success": True, "userId": user_id, "credits": balance}
