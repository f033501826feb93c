"""
Order lifecycle.

Lines are priced from the tenant's menu at the moment of create/update and
the name/price are snapshotted onto each line; later menu edits never move
an existing order's totals. Tax is always 0, so total == subtotal.

Status is a free choice from ORDER_STATUSES (no transition graph); the only
guarded transition is the permanent delete, which needs `cancelled`.
"""
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Literal, Optional, Tuple

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError

from . import events
from .db import TenantScope, new_id
from .errors import Internal, InvalidState, NotFound, Unavailable, ValidationError
from .models import Customer, MenuItem, Order, OrderLine, Table, User, utcnow
from .schemas import CamelModel, MessageOut, date_range, page_count, parse_when
from .security import Identity, current_identity, require_permission, tenant_scope

log = logging.getLogger("teashop.orders")

router = APIRouter(prefix="/orders", tags=["orders"])

ORDER_NUMBER_ATTEMPTS = 8

OrderStatus = Literal["pending", "confirmed", "preparing", "ready", "served", "completed", "cancelled"]
OrderType = Literal["dine-in", "takeaway", "delivery"]
PaymentMethod = Literal["cash", "card", "qr", "online"]
PaymentStatus = Literal["pending", "paid", "refunded"]


class OrderItemIn(CamelModel):
    menu_item: str
    quantity: int = Field(default=1, ge=1)
    special_instructions: str = ""


class OrderCreate(CamelModel):
    items: List[OrderItemIn]
    customer: Optional[str] = None
    table: Optional[str] = None
    order_type: OrderType
    payment_method: PaymentMethod
    notes: Optional[str] = None
    estimated_time: int = Field(default=15, ge=0)


class OrderUpdate(CamelModel):
    items: Optional[List[OrderItemIn]] = None
    customer: Optional[str] = None
    table: Optional[str] = None
    order_type: Optional[OrderType] = None
    status: Optional[OrderStatus] = None
    payment_method: Optional[PaymentMethod] = None
    payment_status: Optional[PaymentStatus] = None
    notes: Optional[str] = None
    estimated_time: Optional[int] = Field(default=None, ge=0)
    actual_time: Optional[int] = Field(default=None, ge=0)


class OrderLineOut(CamelModel):
    menu_item: Optional[dict]
    name: str
    quantity: int
    price: float
    special_instructions: str


class OrderOut(CamelModel):
    id: str
    order_number: str
    customer: Optional[dict]
    items: List[OrderLineOut]
    table: Optional[dict]
    order_type: str
    status: str
    subtotal: float
    tax: float
    discount: float
    total: float
    payment_method: str
    payment_status: str
    staff: Optional[dict]
    notes: Optional[str]
    estimated_time: Optional[int]
    actual_time: Optional[int]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


class OrderPage(CamelModel):
    orders: List[OrderOut]
    total_pages: int
    current_page: int
    total: int


@dataclass
class PricedLine:
    menu_item_id: str
    name: str
    price: float
    quantity: int
    special_instructions: str = ""
    category: str = ""


def generate_order_number(now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    return f"ORD{now:%y%m%d}{secrets.randbelow(10000):04d}"


def price_lines(
    scope: TenantScope, items: Iterable[OrderItemIn], *, require_available: bool = True
) -> Tuple[List[PricedLine], float]:
    lines: List[PricedLine] = []
    subtotal = 0.0
    for it in items:
        m = scope.get(MenuItem, it.menu_item)
        if m is None:
            raise NotFound(f"Menu item {it.menu_item} not found")
        if require_available and not m.is_available:
            raise Unavailable(f"{m.name} is not available")
        lines.append(PricedLine(m.id, m.name, m.price, it.quantity, it.special_instructions or "", m.category))
        subtotal += m.price * it.quantity
    return lines, round(subtotal, 2)


def _line_rows(order_id: str, lines: List[PricedLine]) -> List[OrderLine]:
    return [
        OrderLine(
            order_id=order_id,
            position=pos,
            menu_item_id=ln.menu_item_id,
            name=ln.name,
            price=ln.price,
            quantity=ln.quantity,
            special_instructions=ln.special_instructions,
            category=ln.category,
        )
        for pos, ln in enumerate(lines)
    ]


def _check_refs(scope: TenantScope, customer_id: Optional[str], table_id: Optional[str]) -> None:
    if customer_id:
        scope.get_or_404(Customer, customer_id, "Customer")
    if table_id:
        scope.get_or_404(Table, table_id, "Table")


def _insert_with_number(scope: TenantScope, build: Callable[[str], Order], lines: List[PricedLine]) -> Order:
    """Insert a freshly built order, drawing a new number on collision."""
    for _ in range(ORDER_NUMBER_ATTEMPTS):
        number = generate_order_number()
        if scope.s.execute(select(Order.id).where(Order.order_number == number)).first() is not None:
            continue
        order = build(number)
        scope.add(order)
        scope.s.add_all(_line_rows(order.id, lines))
        try:
            scope.s.commit()
        except IntegrityError:
            scope.s.rollback()
            log.warning("order number collision", extra={"shop_id": scope.shop_id, "order_number": number})
            continue
        return order
    raise Internal("Could not allocate an order number. Please try again.")


def create_order(scope: TenantScope, staff_id: str, req: OrderCreate) -> Order:
    if not req.items:
        raise ValidationError("Order must contain at least one item")
    lines, subtotal = price_lines(scope, req.items)
    _check_refs(scope, req.customer, req.table)

    def build(number: str) -> Order:
        return Order(
            id=new_id(),
            order_number=number,
            customer_id=req.customer or None,
            table_id=req.table or None,
            order_type=req.order_type,
            status="pending",
            subtotal=subtotal,
            tax=0.0,
            discount=0.0,
            total=subtotal,
            payment_method=req.payment_method,
            payment_status="pending",
            staff_id=staff_id,
            notes=req.notes,
            estimated_time=req.estimated_time,
        )

    order = _insert_with_number(scope, build, lines)
    scope.s.refresh(order)
    log.info(
        "order created",
        extra={"shop_id": scope.shop_id, "order_id": order.id, "order_number": order.order_number, "total": order.total},
    )
    events.publish(scope.shop_id, events.NEW_ORDER, order_out(scope, order))
    return order


def update_order(scope: TenantScope, order_id: str, req: OrderUpdate) -> Order:
    order = scope.get_or_404(Order, order_id, "Order")
    data = req.model_dump(exclude_unset=True)
    lines = None
    if req.items is not None:
        if not req.items:
            raise ValidationError("Order must contain at least one item")
        lines, subtotal = price_lines(scope, req.items, require_available=False)
    _check_refs(scope, data.get("customer"), data.get("table"))

    # Without new items the stored line snapshots and totals stay as placed.
    if lines is not None:
        scope.s.execute(delete(OrderLine).where(OrderLine.order_id == order.id))
        scope.s.add_all(_line_rows(order.id, lines))
        order.subtotal = subtotal
        order.tax = 0.0
        order.total = subtotal
    if "customer" in data:
        order.customer_id = data["customer"] or None
    if "table" in data:
        order.table_id = data["table"] or None
    for key in ("order_type", "status", "payment_method", "payment_status", "estimated_time"):
        if data.get(key) is not None:
            setattr(order, key, data[key])
    for key in ("notes", "actual_time"):
        if key in data:
            setattr(order, key, data[key])
    scope.s.commit()
    scope.s.refresh(order)
    return order


def set_status(scope: TenantScope, order_id: str, status: str) -> Order:
    order = scope.get_or_404(Order, order_id, "Order")
    order.status = status
    scope.s.commit()
    scope.s.refresh(order)
    events.publish(scope.shop_id, events.ORDER_STATUS_UPDATE, order_out(scope, order))
    return order


def cancel_order(scope: TenantScope, order_id: str) -> Order:
    order = scope.get_or_404(Order, order_id, "Order")
    order.status = "cancelled"
    scope.s.commit()
    scope.s.refresh(order)
    events.publish(scope.shop_id, events.ORDER_CANCELLED, order_out(scope, order))
    return order


def delete_order_permanently(scope: TenantScope, order_id: str) -> None:
    order = scope.get_or_404(Order, order_id, "Order")
    if order.status != "cancelled":
        raise InvalidState("Only cancelled orders can be permanently deleted")
    oid = order.id
    scope.s.execute(delete(OrderLine).where(OrderLine.order_id == oid))
    scope.delete(order)
    scope.s.commit()
    log.info("order deleted", extra={"shop_id": scope.shop_id, "order_id": oid})
    events.publish(scope.shop_id, events.ORDER_DELETED, {"orderId": oid})


def orders_out(scope: TenantScope, orders: List[Order]) -> List[OrderOut]:
    """Populated views for a batch of orders, loading each reference once."""
    if not orders:
        return []
    ids = [o.id for o in orders]
    lines_by_order: Dict[str, List[OrderLine]] = {}
    rows = scope.s.execute(
        select(OrderLine).where(OrderLine.order_id.in_(ids)).order_by(OrderLine.position.asc())
    ).scalars()
    for ln in rows:
        lines_by_order.setdefault(ln.order_id, []).append(ln)

    def load(model, wanted) -> dict:
        wanted = {w for w in wanted if w}
        if not wanted:
            return {}
        return {r.id: r for r in scope.all(scope.select(model).where(model.id.in_(wanted)))}

    menu = load(MenuItem, (ln.menu_item_id for lns in lines_by_order.values() for ln in lns))
    customers = load(Customer, (o.customer_id for o in orders))
    tables = load(Table, (o.table_id for o in orders))
    staff = load(User, (o.staff_id for o in orders))

    out = []
    for o in orders:
        c = customers.get(o.customer_id)
        t = tables.get(o.table_id)
        u = staff.get(o.staff_id)
        items = []
        for ln in lines_by_order.get(o.id, []):
            m = menu.get(ln.menu_item_id)
            items.append(
                OrderLineOut(
                    menu_item={"id": ln.menu_item_id, "name": m.name if m else ln.name, "price": m.price if m else ln.price},
                    name=ln.name,
                    quantity=ln.quantity,
                    price=ln.price,
                    special_instructions=ln.special_instructions or "",
                )
            )
        out.append(
            OrderOut(
                id=o.id,
                order_number=o.order_number,
                customer={"id": c.id, "name": c.name, "phone": c.phone} if c else None,
                items=items,
                table={"id": t.id, "number": t.number} if t else None,
                order_type=o.order_type,
                status=o.status,
                subtotal=o.subtotal,
                tax=o.tax,
                discount=o.discount,
                total=o.total,
                payment_method=o.payment_method,
                payment_status=o.payment_status,
                staff={"id": u.id, "name": u.name} if u else None,
                notes=o.notes,
                estimated_time=o.estimated_time,
                actual_time=o.actual_time,
                created_at=o.created_at,
                updated_at=o.updated_at,
            )
        )
    return out


def order_out(scope: TenantScope, order: Order) -> OrderOut:
    return orders_out(scope, [order])[0]


def paginate(scope: TenantScope, stmt, page: int, limit: int) -> OrderPage:
    total = scope.s.execute(select(func.count()).select_from(stmt.order_by(None).subquery())).scalar_one()
    rows = scope.all(stmt.order_by(Order.created_at.desc()).limit(limit).offset((page - 1) * limit))
    return OrderPage(orders=orders_out(scope, rows), total_pages=page_count(total, limit), current_page=page, total=total)


@router.get("", response_model=OrderPage)
def list_orders(
    status: str = "",
    orderType: str = "",
    date: str = "",
    startDate: str = "",
    endDate: str = "",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=200),
    ident: Identity = Depends(current_identity),
    scope: TenantScope = Depends(tenant_scope),
):
    stmt = scope.select(Order)
    if status:
        stmt = stmt.where(Order.status == status)
    if orderType:
        stmt = stmt.where(Order.order_type == orderType)
    if date:
        stmt = stmt.where(Order.created_at >= parse_when(date), Order.created_at <= parse_when(date, end_of_day=True))
    else:
        window = date_range(startDate, endDate)
        if window:
            stmt = stmt.where(Order.created_at >= window[0], Order.created_at <= window[1])
    return paginate(scope, stmt, page, limit)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: str, ident: Identity = Depends(current_identity), scope: TenantScope = Depends(tenant_scope)):
    return order_out(scope, scope.get_or_404(Order, order_id, "Order"))


@router.post("", response_model=OrderOut, status_code=201)
def post_order(
    req: OrderCreate,
    ident: Identity = Depends(require_permission("orders", "create")),
    scope: TenantScope = Depends(tenant_scope),
):
    return order_out(scope, create_order(scope, ident.user_id, req))


@router.put("/{order_id}", response_model=OrderOut)
def put_order(
    order_id: str,
    req: OrderUpdate,
    ident: Identity = Depends(require_permission("orders", "update")),
    scope: TenantScope = Depends(tenant_scope),
):
    return order_out(scope, update_order(scope, order_id, req))


class StatusReq(CamelModel):
    status: OrderStatus


@router.patch("/{order_id}/status", response_model=OrderOut)
def patch_status(
    order_id: str,
    req: StatusReq,
    ident: Identity = Depends(require_permission("orders", "update")),
    scope: TenantScope = Depends(tenant_scope),
):
    return order_out(scope, set_status(scope, order_id, req.status))


@router.delete("/{order_id}", response_model=MessageOut)
def delete_order(
    order_id: str,
    ident: Identity = Depends(require_permission("orders", "delete")),
    scope: TenantScope = Depends(tenant_scope),
):
    cancel_order(scope, order_id)
    return MessageOut(message="Order cancelled successfully")


@router.delete("/{order_id}/permanent", response_model=MessageOut)
def delete_order_permanent(
    order_id: str,
    ident: Identity = Depends(require_permission("orders", "delete")),
    scope: TenantScope = Depends(tenant_scope),
):
    delete_order_permanently(scope, order_id)
    return MessageOut(message="Order permanently deleted successfully")
