from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import Field
from sqlalchemy import or_

from .db import TenantScope
from .models import Supplier
from .schemas import CamelModel, MessageOut
from .security import Identity, current_identity, require_permission, tenant_scope

router = APIRouter(prefix="/suppliers", tags=["suppliers"])

PaymentTerms = Literal["immediate", "15-days", "30-days", "45-days"]


class Address(CamelModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class SupplierProduct(CamelModel):
    name: str
    category: Optional[str] = None
    price_per_unit: Optional[float] = Field(default=None, ge=0)
    unit: Optional[str] = None


class SupplierCreate(CamelModel):
    name: str = Field(min_length=1)
    contact_person: str = Field(min_length=1)
    email: str = Field(min_length=3)
    phone: str = Field(min_length=1)
    address: Optional[Address] = None
    products: List[SupplierProduct] = Field(default_factory=list)
    payment_terms: PaymentTerms = "30-days"
    rating: int = Field(default=3, ge=1, le=5)
    is_active: bool = True


class SupplierUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)
    contact_person: Optional[str] = Field(default=None, min_length=1)
    email: Optional[str] = Field(default=None, min_length=3)
    phone: Optional[str] = Field(default=None, min_length=1)
    address: Optional[Address] = None
    products: Optional[List[SupplierProduct]] = None
    payment_terms: Optional[PaymentTerms] = None
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    is_active: Optional[bool] = None


class SupplierOut(CamelModel):
    id: str
    name: str
    contact_person: str
    email: str
    phone: str
    address: dict
    products: list
    payment_terms: str
    rating: int
    is_active: bool
    total_orders: int
    total_amount: float
    last_order: Optional[datetime]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


def _dump(model) -> dict:
    return model.model_dump(by_alias=True, exclude_none=True) if model is not None else {}


@router.get("", response_model=List[SupplierOut])
def list_suppliers(
    active: Optional[bool] = None,
    search: str = "",
    ident: Identity = Depends(current_identity),
    scope: TenantScope = Depends(tenant_scope),
):
    stmt = scope.select(Supplier)
    if active is not None:
        stmt = stmt.where(Supplier.is_active.is_(active))
    if search:
        like = f"%{search.strip()}%"
        stmt = stmt.where(
            or_(Supplier.name.ilike(like), Supplier.contact_person.ilike(like), Supplier.email.ilike(like))
        )
    return scope.all(stmt.order_by(Supplier.name.asc()))


@router.get("/{supplier_id}", response_model=SupplierOut)
def get_supplier(supplier_id: str, ident: Identity = Depends(current_identity), scope: TenantScope = Depends(tenant_scope)):
    return scope.get_or_404(Supplier, supplier_id, "Supplier")


@router.post("", response_model=SupplierOut, status_code=201)
def create_supplier(
    req: SupplierCreate,
    ident: Identity = Depends(require_permission("suppliers", "create")),
    scope: TenantScope = Depends(tenant_scope),
):
    sup = Supplier(
        name=req.name.strip(),
        contact_person=req.contact_person.strip(),
        email=req.email.strip().lower(),
        phone=req.phone.strip(),
        address=_dump(req.address),
        products=[_dump(p) for p in req.products],
        payment_terms=req.payment_terms,
        rating=req.rating,
        is_active=req.is_active,
    )
    scope.add(sup)
    scope.s.commit()
    scope.s.refresh(sup)
    return sup


@router.put("/{supplier_id}", response_model=SupplierOut)
def update_supplier(
    supplier_id: str,
    req: SupplierUpdate,
    ident: Identity = Depends(require_permission("suppliers", "update")),
    scope: TenantScope = Depends(tenant_scope),
):
    # totalOrders/totalAmount/lastOrder are owned by stock-in.
    sup = scope.get_or_404(Supplier, supplier_id, "Supplier")
    data = req.model_dump(exclude_unset=True)
    if "address" in data:
        sup.address = _dump(req.address)
    if req.products is not None:
        sup.products = [_dump(p) for p in req.products]
    if req.email:
        sup.email = req.email.strip().lower()
    for key in ("name", "contact_person", "phone", "payment_terms", "rating", "is_active"):
        if data.get(key) is not None:
            setattr(sup, key, data[key])
    scope.s.commit()
    scope.s.refresh(sup)
    return sup


@router.delete("/{supplier_id}", response_model=MessageOut)
def delete_supplier(
    supplier_id: str,
    ident: Identity = Depends(require_permission("suppliers", "delete")),
    scope: TenantScope = Depends(tenant_scope),
):
    sup = scope.get_or_404(Supplier, supplier_id, "Supplier")
    scope.delete(sup)
    scope.s.commit()
    return MessageOut(message="Supplier deleted successfully")
