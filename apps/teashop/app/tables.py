from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import Field
from sqlalchemy import func

from . import events
from .db import TenantScope
from .errors import Conflict, InvalidState
from .models import Customer, Order, Table
from .schemas import CamelModel, MessageOut
from .security import Identity, current_identity, require_permission, tenant_scope

router = APIRouter(prefix="/tables", tags=["tables"])

TableStatus = Literal["available", "occupied", "reserved", "maintenance"]
TableLocation = Literal["indoor", "outdoor", "private"]


class TableCreate(CamelModel):
    number: str = Field(min_length=1)
    capacity: int = Field(default=2, ge=1)
    status: TableStatus = "available"
    location: TableLocation = "indoor"


class TableUpdate(CamelModel):
    number: Optional[str] = Field(default=None, min_length=1)
    capacity: Optional[int] = Field(default=None, ge=1)
    status: Optional[TableStatus] = None
    location: Optional[TableLocation] = None
    current_order: Optional[str] = None


class TableOut(CamelModel):
    id: str
    number: str
    capacity: int
    status: str
    location: str
    current_order: Optional[dict]
    reservation: Optional[dict]
    last_cleaned: Optional[datetime]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


def table_out(scope: TenantScope, t: Table) -> TableOut:
    current = None
    o = scope.get(Order, t.current_order_id)
    if o is not None:
        current = {"id": o.id, "orderNumber": o.order_number, "total": o.total, "status": o.status}
    reservation = None
    if t.reservation:
        reservation = dict(t.reservation)
        c = scope.get(Customer, reservation.get("customer"))
        reservation["customer"] = {"id": c.id, "name": c.name, "phone": c.phone} if c else None
    return TableOut(
        id=t.id,
        number=t.number,
        capacity=t.capacity,
        status=t.status,
        location=t.location,
        current_order=current,
        reservation=reservation,
        last_cleaned=t.last_cleaned,
        created_at=t.created_at,
        updated_at=t.updated_at,
    )


def _number_taken(scope: TenantScope, number: str, exclude_id: Optional[str] = None) -> bool:
    stmt = scope.select(Table, Table.id).where(Table.number == number)
    if exclude_id:
        stmt = stmt.where(Table.id != exclude_id)
    return scope.s.execute(stmt).first() is not None


@router.get("", response_model=List[TableOut])
def list_tables(
    status: str = "",
    location: str = "",
    ident: Identity = Depends(current_identity),
    scope: TenantScope = Depends(tenant_scope),
):
    stmt = scope.select(Table)
    if status:
        stmt = stmt.where(Table.status == status)
    if location:
        stmt = stmt.where(Table.location == location)
    # "2" before "10"
    stmt = stmt.order_by(func.length(Table.number).asc(), Table.number.asc())
    return [table_out(scope, t) for t in scope.all(stmt)]


@router.get("/{table_id}", response_model=TableOut)
def get_table(table_id: str, ident: Identity = Depends(current_identity), scope: TenantScope = Depends(tenant_scope)):
    return table_out(scope, scope.get_or_404(Table, table_id, "Table"))


@router.post("", response_model=TableOut, status_code=201)
def create_table(
    req: TableCreate,
    ident: Identity = Depends(require_permission("tables", "create")),
    scope: TenantScope = Depends(tenant_scope),
):
    number = req.number.strip()
    if _number_taken(scope, number):
        raise Conflict("Table number already exists")
    t = Table(number=number, capacity=req.capacity, status=req.status, location=req.location)
    scope.add(t)
    scope.s.commit()
    scope.s.refresh(t)
    return table_out(scope, t)


@router.put("/{table_id}", response_model=TableOut)
def update_table(
    table_id: str,
    req: TableUpdate,
    ident: Identity = Depends(require_permission("tables", "update")),
    scope: TenantScope = Depends(tenant_scope),
):
    t = scope.get_or_404(Table, table_id, "Table")
    data = req.model_dump(exclude_unset=True)
    if req.number:
        number = req.number.strip()
        if _number_taken(scope, number, exclude_id=t.id):
            raise Conflict("Table number already exists")
        t.number = number
    if "current_order" in data:
        t.current_order_id = scope.get_or_404(Order, req.current_order, "Order").id if req.current_order else None
    for key in ("capacity", "status", "location"):
        if data.get(key) is not None:
            setattr(t, key, data[key])
    scope.s.commit()
    scope.s.refresh(t)
    return table_out(scope, t)


class TableStatusReq(CamelModel):
    status: TableStatus


@router.patch("/{table_id}/status", response_model=TableOut)
def set_table_status(
    table_id: str,
    req: TableStatusReq,
    ident: Identity = Depends(require_permission("tables", "update")),
    scope: TenantScope = Depends(tenant_scope),
):
    t = scope.get_or_404(Table, table_id, "Table")
    t.status = req.status
    scope.s.commit()
    scope.s.refresh(t)
    out = table_out(scope, t)
    events.publish(scope.shop_id, events.TABLE_STATUS_UPDATE, out)
    return out


@router.delete("/{table_id}", response_model=MessageOut)
def delete_table(
    table_id: str,
    ident: Identity = Depends(require_permission("tables", "delete")),
    scope: TenantScope = Depends(tenant_scope),
):
    t = scope.get_or_404(Table, table_id, "Table")
    scope.delete(t)
    scope.s.commit()
    return MessageOut(message="Table deleted successfully")


class ReservationReq(CamelModel):
    customer: str
    reservation_time: datetime
    duration: int = Field(default=60, ge=1)
    special_requests: Optional[str] = None


@router.post("/{table_id}/reservation", response_model=TableOut)
def reserve_table(
    table_id: str,
    req: ReservationReq,
    ident: Identity = Depends(require_permission("tables", "update")),
    scope: TenantScope = Depends(tenant_scope),
):
    t = scope.get_or_404(Table, table_id, "Table")
    customer = scope.get_or_404(Customer, req.customer, "Customer")
    if t.status != "available":
        raise InvalidState("Table is not available for reservation")
    t.status = "reserved"
    t.reservation = {
        "customer": customer.id,
        "reservationTime": req.reservation_time.isoformat(),
        "duration": req.duration,
        "specialRequests": req.special_requests,
    }
    scope.s.commit()
    scope.s.refresh(t)
    return table_out(scope, t)


@router.delete("/{table_id}/reservation", response_model=TableOut)
def cancel_reservation(
    table_id: str,
    ident: Identity = Depends(require_permission("tables", "update")),
    scope: TenantScope = Depends(tenant_scope),
):
    t = scope.get_or_404(Table, table_id, "Table")
    t.status = "available"
    t.reservation = None
    scope.s.commit()
    scope.s.refresh(t)
    return table_out(scope, t)
