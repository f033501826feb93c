"""User (staff) repository. Passwords are hashed here and nowhere else."""
from __future__ import annotations

from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import Field
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from . import config
from .errors import Conflict, InvalidCredential, ValidationError
from .models import User
from .schemas import CamelModel
from .security import hash_password, normalize_permissions, permissions_to_list, verify_password

MIN_PASSWORD_LEN = config.PASSWORD_MIN_LENGTH

RoleName = Literal["admin", "manager", "staff", "cashier", "kitchen"]


class PermissionIn(CamelModel):
    module: str
    actions: Any = None
    model_config = CamelModel.model_config | {"extra": "allow"}


class UserOut(CamelModel):
    id: str
    shop_id: str
    name: str
    email: str
    role: str
    permissions: List[dict]
    is_active: bool
    phone: Optional[str] = None
    address: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_db(cls, u: User) -> "UserOut":
        return cls(
            id=u.id,
            shop_id=u.shop_id,
            name=u.name,
            email=u.email,
            role=u.role,
            permissions=permissions_to_list(normalize_permissions(u.permissions)),
            is_active=u.is_active,
            phone=u.phone,
            address=u.address,
            created_at=u.created_at,
        )


class UserBrief(CamelModel):
    id: str
    name: str
    email: str
    role: str
    shop_id: str


def _check_password(raw: str) -> None:
    if not raw or len(raw) < MIN_PASSWORD_LEN:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LEN} characters long")


def canonical_permissions(raw: Any) -> list[dict]:
    if raw and isinstance(raw, list):
        raw = [p.model_dump(by_alias=True, exclude_none=True) if isinstance(p, CamelModel) else p for p in raw]
    return permissions_to_list(normalize_permissions(raw))


def email_taken(s: Session, email: str, shop_id: Optional[str] = None) -> bool:
    stmt = select(func.count()).select_from(User).where(func.lower(User.email) == email.lower())
    if shop_id is not None:
        stmt = stmt.where(User.shop_id == shop_id)
    return bool(s.execute(stmt).scalar_one())


def create_user(
    s: Session,
    *,
    shop_id: str,
    name: str,
    email: str,
    password: str,
    role: str = "staff",
    permissions: Any = None,
    phone: Optional[str] = None,
    address: Optional[str] = None,
) -> User:
    """Adds (without committing) a user with a freshly hashed password."""
    email = (email or "").strip().lower()
    if not email or not (name or "").strip():
        raise ValidationError("Name and email are required")
    _check_password(password)
    if email_taken(s, email, shop_id):
        raise Conflict("User already exists")
    u = User(
        shop_id=shop_id,
        name=name.strip(),
        email=email,
        password_hash=hash_password(password),
        role=role,
        permissions=canonical_permissions(permissions),
        phone=phone,
        address=address,
        is_active=True,
    )
    s.add(u)
    return u


def set_password(u: User, current: str, new: str) -> None:
    if not verify_password(current or "", u.password_hash):
        raise InvalidCredential("Current password is incorrect", status_code=400)
    _check_password(new)
    u.password_hash = hash_password(new)


def find_login(s: Session, shop_id: str, email: str) -> Optional[User]:
    stmt = select(User).where(
        User.shop_id == shop_id,
        func.lower(User.email) == (email or "").strip().lower(),
        User.is_active.is_(True),
    )
    return s.execute(stmt).scalar_one_or_none()


class StaffCreate(CamelModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password: str
    role: RoleName = "staff"
    permissions: List[PermissionIn] = Field(default_factory=list)
    phone: Optional[str] = None
    address: Optional[str] = None
