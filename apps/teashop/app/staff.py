from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import Field
from sqlalchemy import func

from .db import TenantScope
from .errors import Conflict
from .models import User
from .schemas import CamelModel, MessageOut
from .security import Identity, require_permission, tenant_scope
from .users import PermissionIn, RoleName, StaffCreate, UserOut, canonical_permissions, create_user

log = logging.getLogger("teashop.staff")

router = APIRouter(prefix="/staff", tags=["staff"])


@router.get("", response_model=List[UserOut])
def list_staff(
    role: str = "",
    active: Optional[bool] = None,
    ident: Identity = Depends(require_permission("staff", "read")),
    scope: TenantScope = Depends(tenant_scope),
):
    stmt = scope.select(User)
    if role:
        stmt = stmt.where(User.role == role)
    if active is not None:
        stmt = stmt.where(User.is_active.is_(active))
    return [UserOut.from_db(u) for u in scope.all(stmt.order_by(User.name.asc()))]


@router.get("/{staff_id}", response_model=UserOut)
def get_staff(
    staff_id: str,
    ident: Identity = Depends(require_permission("staff", "read")),
    scope: TenantScope = Depends(tenant_scope),
):
    return UserOut.from_db(scope.get_or_404(User, staff_id, "Staff member"))


@router.post("", response_model=UserOut, status_code=201)
def create_staff(
    req: StaffCreate,
    ident: Identity = Depends(require_permission("staff", "create")),
    scope: TenantScope = Depends(tenant_scope),
):
    u = create_user(
        scope.s,
        shop_id=scope.shop_id,
        name=req.name,
        email=req.email,
        password=req.password,
        role=req.role,
        permissions=req.permissions,
        phone=req.phone,
        address=req.address,
    )
    scope.s.commit()
    scope.s.refresh(u)
    log.info("staff created", extra={"shop_id": scope.shop_id, "user_id": u.id, "by": ident.user_id})
    return UserOut.from_db(u)


class StaffUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[str] = None
    role: Optional[RoleName] = None
    permissions: Optional[List[PermissionIn]] = None
    is_active: Optional[bool] = None
    phone: Optional[str] = None
    address: Optional[str] = None


@router.put("/{staff_id}", response_model=UserOut)
def update_staff(
    staff_id: str,
    req: StaffUpdate,
    ident: Identity = Depends(require_permission("staff", "update")),
    scope: TenantScope = Depends(tenant_scope),
):
    u = scope.get_or_404(User, staff_id, "Staff member")
    # Passwords only change through /auth/password.
    data = req.model_dump(exclude_unset=True)
    if data.get("email"):
        email = data["email"].strip().lower()
        clash = scope.s.execute(
            scope.select(User).where(func.lower(User.email) == email, User.id != u.id)
        ).first()
        if clash:
            raise Conflict("Email already exists")
        u.email = email
    if data.get("name"):
        u.name = data["name"].strip()
    if data.get("role"):
        u.role = data["role"]
    if "permissions" in data:
        u.permissions = canonical_permissions(req.permissions or [])
    for key in ("is_active", "phone", "address"):
        if key in data:
            setattr(u, key, data[key])
    scope.s.commit()
    scope.s.refresh(u)
    return UserOut.from_db(u)


@router.delete("/{staff_id}", response_model=MessageOut)
def deactivate_staff(
    staff_id: str,
    ident: Identity = Depends(require_permission("staff", "delete")),
    scope: TenantScope = Depends(tenant_scope),
):
    u = scope.get_or_404(User, staff_id, "Staff member")
    u.is_active = False
    scope.s.commit()
    log.info("staff deactivated", extra={"shop_id": scope.shop_id, "user_id": u.id, "by": ident.user_id})
    return MessageOut(message="Staff member deactivated successfully")


class PermissionsReq(CamelModel):
    permissions: List[PermissionIn]


@router.patch("/{staff_id}/permissions", response_model=UserOut)
def update_permissions(
    staff_id: str,
    req: PermissionsReq,
    ident: Identity = Depends(require_permission("staff", "update")),
    scope: TenantScope = Depends(tenant_scope),
):
    u = scope.get_or_404(User, staff_id, "Staff member")
    u.permissions = canonical_permissions(req.permissions)
    scope.s.commit()
    scope.s.refresh(u)
    return UserOut.from_db(u)
