from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import Field

from .db import TenantScope
from .models import InventoryItem, StockIn, Supplier
from .schemas import CamelModel, MessageOut, date_range
from .security import Identity, current_identity, require_permission, tenant_scope
from .stock import StockInCreate, StockOperation, adjust_stock, low_stock_query, record_stock_in

router = APIRouter(prefix="/inventory", tags=["inventory"])
stockin_router = APIRouter(prefix="/stockin", tags=["inventory"])

InventoryCategory = Literal["tea-leaves", "milk", "sugar", "spices", "snacks", "cups", "others"]
InventoryUnit = Literal["kg", "g", "l", "ml", "pieces", "packets", "bottles"]


class InventoryCreate(CamelModel):
    name: str = Field(min_length=1)
    category: InventoryCategory
    current_stock: float = Field(default=0, ge=0)
    min_stock: float = Field(default=0, ge=0)
    max_stock: Optional[float] = Field(default=None, ge=0)
    unit: InventoryUnit
    cost_per_unit: float = Field(default=0, ge=0)
    supplier: Optional[str] = None
    expiry_date: Optional[datetime] = None
    batch_number: Optional[str] = None
    location: Optional[str] = None


class InventoryUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)
    category: Optional[InventoryCategory] = None
    min_stock: Optional[float] = Field(default=None, ge=0)
    max_stock: Optional[float] = Field(default=None, ge=0)
    unit: Optional[InventoryUnit] = None
    cost_per_unit: Optional[float] = Field(default=None, ge=0)
    supplier: Optional[str] = None
    expiry_date: Optional[datetime] = None
    batch_number: Optional[str] = None
    location: Optional[str] = None


class InventoryOut(CamelModel):
    id: str
    name: str
    category: str
    current_stock: float
    min_stock: float
    max_stock: Optional[float]
    unit: str
    cost_per_unit: float
    supplier: Optional[dict]
    expiry_date: Optional[datetime]
    batch_number: Optional[str]
    location: Optional[str]
    last_restocked: Optional[datetime]
    is_low_stock: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


def _supplier_ref(scope: TenantScope, supplier_id: Optional[str]) -> Optional[dict]:
    sup = scope.get(Supplier, supplier_id)
    if sup is None:
        return None
    return {"id": sup.id, "name": sup.name, "contactPerson": sup.contact_person, "phone": sup.phone}


def inventory_out(scope: TenantScope, item: InventoryItem) -> InventoryOut:
    return InventoryOut(
        id=item.id,
        name=item.name,
        category=item.category,
        current_stock=item.current_stock,
        min_stock=item.min_stock,
        max_stock=item.max_stock,
        unit=item.unit,
        cost_per_unit=item.cost_per_unit,
        supplier=_supplier_ref(scope, item.supplier_id),
        expiry_date=item.expiry_date,
        batch_number=item.batch_number,
        location=item.location,
        last_restocked=item.last_restocked,
        is_low_stock=(item.current_stock or 0) <= (item.min_stock or 0),
        created_at=item.created_at,
        updated_at=item.updated_at,
    )


@router.get("", response_model=List[InventoryOut])
def list_inventory(
    category: str = "",
    lowStock: bool = False,
    ident: Identity = Depends(current_identity),
    scope: TenantScope = Depends(tenant_scope),
):
    stmt = low_stock_query(scope) if lowStock else scope.select(InventoryItem)
    if category:
        stmt = stmt.where(InventoryItem.category == category)
    return [inventory_out(scope, i) for i in scope.all(stmt.order_by(InventoryItem.name.asc()))]


@router.get("/alerts/low-stock", response_model=List[InventoryOut])
def low_stock_alerts(
    ident: Identity = Depends(current_identity),
    scope: TenantScope = Depends(tenant_scope),
):
    stmt = low_stock_query(scope).order_by(InventoryItem.current_stock.asc())
    return [inventory_out(scope, i) for i in scope.all(stmt)]


@router.get("/{item_id}", response_model=InventoryOut)
def get_inventory_item(
    item_id: str,
    ident: Identity = Depends(current_identity),
    scope: TenantScope = Depends(tenant_scope),
):
    return inventory_out(scope, scope.get_or_404(InventoryItem, item_id, "Inventory item"))


@router.post("", response_model=InventoryOut, status_code=201)
def create_inventory_item(
    req: InventoryCreate,
    ident: Identity = Depends(require_permission("inventory", "create")),
    scope: TenantScope = Depends(tenant_scope),
):
    supplier_id = scope.get_or_404(Supplier, req.supplier, "Supplier").id if req.supplier else None
    item = InventoryItem(
        name=req.name.strip(),
        category=req.category,
        current_stock=req.current_stock,
        min_stock=req.min_stock,
        max_stock=req.max_stock,
        unit=req.unit,
        cost_per_unit=req.cost_per_unit,
        supplier_id=supplier_id,
        expiry_date=req.expiry_date,
        batch_number=req.batch_number,
        location=req.location,
    )
    scope.add(item)
    scope.s.commit()
    scope.s.refresh(item)
    return inventory_out(scope, item)


@router.put("/{item_id}", response_model=InventoryOut)
def update_inventory_item(
    item_id: str,
    req: InventoryUpdate,
    ident: Identity = Depends(require_permission("inventory", "update")),
    scope: TenantScope = Depends(tenant_scope),
):
    # currentStock only moves via /stock and /stockin.
    item = scope.get_or_404(InventoryItem, item_id, "Inventory item")
    data = req.model_dump(exclude_unset=True)
    if "supplier" in data:
        item.supplier_id = scope.get_or_404(Supplier, req.supplier, "Supplier").id if req.supplier else None
    for key in ("name", "category", "min_stock", "unit", "cost_per_unit"):
        if data.get(key) is not None:
            setattr(item, key, data[key])
    for key in ("max_stock", "expiry_date", "batch_number", "location"):
        if key in data:
            setattr(item, key, data[key])
    scope.s.commit()
    scope.s.refresh(item)
    return inventory_out(scope, item)


class StockReq(CamelModel):
    quantity: float = Field(gt=0)
    operation: StockOperation


@router.patch("/{item_id}/stock", response_model=InventoryOut)
def update_stock(
    item_id: str,
    req: StockReq,
    ident: Identity = Depends(require_permission("inventory", "update")),
    scope: TenantScope = Depends(tenant_scope),
):
    return inventory_out(scope, adjust_stock(scope, item_id, req.quantity, req.operation))


@router.delete("/{item_id}", response_model=MessageOut)
def delete_inventory_item(
    item_id: str,
    ident: Identity = Depends(require_permission("inventory", "delete")),
    scope: TenantScope = Depends(tenant_scope),
):
    item = scope.get_or_404(InventoryItem, item_id, "Inventory item")
    scope.delete(item)
    scope.s.commit()
    return MessageOut(message="Inventory item deleted successfully")


class StockInOut(CamelModel):
    id: str
    supplier: Optional[dict]
    product: Optional[dict]
    quantity: float
    unit: str
    unit_price: float
    total_price: float
    invoice_number: Optional[str]
    purchase_date: Optional[datetime]
    notes: Optional[str]
    created_at: Optional[datetime]


def stock_in_out(scope: TenantScope, rec: StockIn) -> StockInOut:
    product = scope.get(InventoryItem, rec.product_id)
    return StockInOut(
        id=rec.id,
        supplier=_supplier_ref(scope, rec.supplier_id),
        product={"id": product.id, "name": product.name, "unit": product.unit} if product else None,
        quantity=rec.quantity,
        unit=rec.unit,
        unit_price=rec.unit_price,
        total_price=rec.total_price,
        invoice_number=rec.invoice_number,
        purchase_date=rec.purchase_date,
        notes=rec.notes,
        created_at=rec.created_at,
    )


@stockin_router.post("", response_model=StockInOut, status_code=201)
def create_stock_in(
    req: StockInCreate,
    ident: Identity = Depends(require_permission("inventory", "create")),
    scope: TenantScope = Depends(tenant_scope),
):
    return stock_in_out(scope, record_stock_in(scope, req))


@stockin_router.get("", response_model=List[StockInOut])
def list_stock_ins(
    supplier: str = "",
    product: str = "",
    startDate: str = "",
    endDate: str = "",
    ident: Identity = Depends(current_identity),
    scope: TenantScope = Depends(tenant_scope),
):
    stmt = scope.select(StockIn)
    if supplier:
        stmt = stmt.where(StockIn.supplier_id == supplier)
    if product:
        stmt = stmt.where(StockIn.product_id == product)
    window = date_range(startDate, endDate)
    if window:
        stmt = stmt.where(StockIn.purchase_date >= window[0], StockIn.purchase_date <= window[1])
    return [stock_in_out(scope, r) for r in scope.all(stmt.order_by(StockIn.purchase_date.desc()))]
