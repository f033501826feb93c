from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy import or_

from .db import TenantScope
from .errors import Conflict, InsufficientPoints
from .models import Customer, Order
from .orders import OrderOut, OrderPage, orders_out, paginate
from .schemas import CamelModel, MessageOut
from .security import Identity, current_identity, require_permission, tenant_scope

log = logging.getLogger("teashop.customers")

router = APIRouter(prefix="/customers", tags=["customers"])

RECENT_ORDERS = 10

SORTABLE = {
    "name": Customer.name,
    "phone": Customer.phone,
    "email": Customer.email,
    "loyaltyPoints": Customer.loyalty_points,
    "totalSpent": Customer.total_spent,
    "visitCount": Customer.visit_count,
    "lastVisit": Customer.last_visit,
    "createdAt": Customer.created_at,
}


class CustomerAddress(CamelModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None


class Preferences(CamelModel):
    favorite_items: List[str] = Field(default_factory=list)
    dietary_restrictions: List[str] = Field(default_factory=list)
    notes: Optional[str] = None


class CustomerCreate(CamelModel):
    name: str = Field(min_length=1)
    email: Optional[str] = None
    phone: str = Field(min_length=1)
    address: Optional[CustomerAddress] = None
    preferences: Optional[Preferences] = None


class CustomerUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = Field(default=None, min_length=1)
    address: Optional[CustomerAddress] = None
    preferences: Optional[Preferences] = None
    is_active: Optional[bool] = None


class CustomerOut(CamelModel):
    id: str
    name: str
    email: Optional[str]
    phone: str
    address: dict
    loyalty_points: int
    total_spent: float
    visit_count: int
    last_visit: Optional[datetime]
    preferences: dict
    is_active: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


class CustomerDetail(CamelModel):
    customer: CustomerOut
    recent_orders: List[OrderOut]


def _dump(model) -> dict:
    return model.model_dump(by_alias=True, exclude_none=True) if model is not None else {}


def _phone_taken(scope: TenantScope, phone: str, exclude_id: Optional[str] = None) -> bool:
    stmt = scope.select(Customer, Customer.id).where(Customer.phone == phone)
    if exclude_id:
        stmt = stmt.where(Customer.id != exclude_id)
    return scope.s.execute(stmt).first() is not None


def adjust_loyalty(scope: TenantScope, customer_id: str, points: int, operation: str) -> Customer:
    c = scope.get_or_404(Customer, customer_id, "Customer")
    delta = points if operation == "add" else -points
    if not scope.increment(Customer, c.id, loyalty_points=delta):
        scope.s.rollback()
        raise InsufficientPoints()
    scope.s.commit()
    scope.s.refresh(c)
    return c


@router.get("", response_model=List[CustomerOut])
def list_customers(
    search: str = "",
    sortBy: str = "name",
    order: Literal["asc", "desc"] = "asc",
    ident: Identity = Depends(current_identity),
    scope: TenantScope = Depends(tenant_scope),
):
    stmt = scope.select(Customer)
    if search:
        like = f"%{search.strip()}%"
        stmt = stmt.where(or_(Customer.name.ilike(like), Customer.email.ilike(like), Customer.phone.ilike(like)))
    col = SORTABLE.get(sortBy, Customer.name)
    return scope.all(stmt.order_by(col.asc() if order == "asc" else col.desc()))


@router.get("/{customer_id}", response_model=CustomerDetail)
def get_customer(customer_id: str, ident: Identity = Depends(current_identity), scope: TenantScope = Depends(tenant_scope)):
    c = scope.get_or_404(Customer, customer_id, "Customer")
    recent = scope.all(
        scope.select(Order).where(Order.customer_id == c.id).order_by(Order.created_at.desc()).limit(RECENT_ORDERS)
    )
    return CustomerDetail(customer=CustomerOut.model_validate(c), recent_orders=orders_out(scope, recent))


@router.post("", response_model=CustomerOut, status_code=201)
def create_customer(
    req: CustomerCreate,
    ident: Identity = Depends(require_permission("customers", "create")),
    scope: TenantScope = Depends(tenant_scope),
):
    phone = req.phone.strip()
    if _phone_taken(scope, phone):
        raise Conflict("Customer with this phone number already exists")
    c = Customer(
        name=req.name.strip(),
        email=req.email.strip().lower() if req.email else None,
        phone=phone,
        address=_dump(req.address),
        preferences=_dump(req.preferences),
    )
    scope.add(c)
    scope.s.commit()
    scope.s.refresh(c)
    return c


@router.put("/{customer_id}", response_model=CustomerOut)
def update_customer(
    customer_id: str,
    req: CustomerUpdate,
    ident: Identity = Depends(require_permission("customers", "update")),
    scope: TenantScope = Depends(tenant_scope),
):
    # loyaltyPoints only moves through /loyalty.
    c = scope.get_or_404(Customer, customer_id, "Customer")
    data = req.model_dump(exclude_unset=True)
    if req.phone:
        phone = req.phone.strip()
        if _phone_taken(scope, phone, exclude_id=c.id):
            raise Conflict("Customer with this phone number already exists")
        c.phone = phone
    if req.name:
        c.name = req.name.strip()
    if "email" in data:
        c.email = req.email.strip().lower() if req.email else None
    if "address" in data:
        c.address = _dump(req.address)
    if "preferences" in data:
        c.preferences = _dump(req.preferences)
    if req.is_active is not None:
        c.is_active = req.is_active
    scope.s.commit()
    scope.s.refresh(c)
    return c


@router.delete("/{customer_id}", response_model=MessageOut)
def deactivate_customer(
    customer_id: str,
    ident: Identity = Depends(require_permission("customers", "delete")),
    scope: TenantScope = Depends(tenant_scope),
):
    c = scope.get_or_404(Customer, customer_id, "Customer")
    c.is_active = False
    scope.s.commit()
    return MessageOut(message="Customer deactivated successfully")


class LoyaltyReq(CamelModel):
    points: int = Field(gt=0)
    operation: Literal["add", "subtract"]


@router.patch("/{customer_id}/loyalty", response_model=CustomerOut)
def update_loyalty(
    customer_id: str,
    req: LoyaltyReq,
    ident: Identity = Depends(require_permission("customers", "update")),
    scope: TenantScope = Depends(tenant_scope),
):
    c = adjust_loyalty(scope, customer_id, req.points, req.operation)
    log.info(
        "loyalty adjusted",
        extra={"shop_id": scope.shop_id, "customer_id": c.id, "operation": req.operation, "points": req.points},
    )
    return c


@router.get("/{customer_id}/orders", response_model=OrderPage)
def customer_orders(
    customer_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=200),
    ident: Identity = Depends(current_identity),
    scope: TenantScope = Depends(tenant_scope),
):
    c = scope.get_or_404(Customer, customer_id, "Customer")
    return paginate(scope, scope.select(Order).where(Order.customer_id == c.id), page, limit)
