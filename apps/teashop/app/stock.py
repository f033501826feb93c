"""
Stock adjustment engine.

Stock only moves through `adjust_stock` (manual add/subtract) and
`record_stock_in` (goods receipt). Both use atomic column increments so
concurrent requests cannot lose updates, and a subtract can never take
`current_stock` below zero.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Literal, Optional

from pydantic import Field

from . import events
from .db import TenantScope
from .errors import InsufficientStock
from .models import InventoryItem, StockIn, Supplier, utcnow
from .schemas import CamelModel

log = logging.getLogger("teashop.stock")

StockOperation = Literal["add", "subtract"]


def is_low(item: InventoryItem) -> bool:
    return (item.current_stock or 0) <= (item.min_stock or 0)


def low_stock_query(scope: TenantScope):
    return scope.select(InventoryItem).where(InventoryItem.current_stock <= InventoryItem.min_stock)


def adjust_stock(scope: TenantScope, item_id: str, quantity: float, operation: StockOperation) -> InventoryItem:
    item = scope.get_or_404(InventoryItem, item_id, "Inventory item")
    if operation == "add":
        scope.increment(InventoryItem, item.id, {"last_restocked": utcnow()}, current_stock=quantity)
    else:
        if not scope.increment(InventoryItem, item.id, current_stock=-quantity):
            scope.s.rollback()
            raise InsufficientStock()
    scope.s.commit()
    scope.s.refresh(item)
    log.info(
        "stock adjusted",
        extra={"shop_id": scope.shop_id, "item_id": item.id, "operation": operation, "quantity": quantity},
    )
    if is_low(item):
        events.publish(
            scope.shop_id,
            events.LOW_STOCK_ALERT,
            {"item": item.name, "currentStock": item.current_stock, "minStock": item.min_stock},
        )
    return item


class StockInCreate(CamelModel):
    supplier: str
    product: str
    quantity: float = Field(gt=0)
    unit: Optional[str] = None
    unit_price: float = Field(ge=0)
    total_price: Optional[float] = Field(default=None, ge=0)
    invoice_number: Optional[str] = None
    purchase_date: Optional[datetime] = None
    notes: Optional[str] = None


def record_stock_in(scope: TenantScope, req: StockInCreate) -> StockIn:
    """
    Goods receipt: bumps the product's stock, the supplier's purchase
    statistics and stores the receipt, all in one transaction.
    """
    product = scope.get_or_404(InventoryItem, req.product, "Inventory item")
    supplier = scope.get_or_404(Supplier, req.supplier, "Supplier")
    when = req.purchase_date or utcnow()
    total = req.total_price if req.total_price is not None else round(req.quantity * req.unit_price, 2)
    try:
        scope.increment(InventoryItem, product.id, {"last_restocked": when}, current_stock=req.quantity)
        scope.increment(Supplier, supplier.id, {"last_order": when}, total_orders=1, total_amount=total)
        rec = StockIn(
            supplier_id=supplier.id,
            product_id=product.id,
            quantity=req.quantity,
            unit=req.unit or product.unit,
            unit_price=req.unit_price,
            total_price=total,
            invoice_number=req.invoice_number,
            purchase_date=when,
            notes=req.notes,
        )
        scope.add(rec)
        scope.s.commit()
    except Exception:
        scope.s.rollback()
        log.exception("stock-in failed", extra={"shop_id": scope.shop_id, "product_id": product.id})
        raise
    scope.s.refresh(rec)
    log.info(
        "stock-in recorded",
        extra={"shop_id": scope.shop_id, "product_id": product.id, "supplier_id": supplier.id, "quantity": req.quantity},
    )
    return rec
