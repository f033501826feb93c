"""
Read-only reporting over a shop's data.

Revenue figures count `completed` orders only. A date window applies when
both `startDate` and `endDate` are given.
"""
from __future__ import annotations

from collections import OrderedDict
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy import func, select

from .customers import CustomerOut
from .db import TenantScope
from .inventory import inventory_out
from .models import Customer, InventoryItem, Order, OrderLine
from .schemas import date_range
from .security import Identity, require_permission, tenant_scope
from .stock import low_stock_query

router = APIRouter(prefix="/reports", tags=["reports"])

TOP_CUSTOMERS = 10
LOYALTY_BOUNDARIES = (0, 100, 500, 1000, 5000)


def completed_filter(scope: TenantScope, start: Optional[str], end: Optional[str]) -> list:
    conds = [Order.shop_id == scope.shop_id, Order.status == "completed"]
    window = date_range(start, end)
    if window:
        conds += [Order.created_at >= window[0], Order.created_at <= window[1]]
    return conds


def _lines_query(conds: list, *columns):
    return (
        select(*columns)
        .select_from(OrderLine)
        .join(Order, Order.id == OrderLine.order_id)
        .where(*conds)
    )


def _bucket_by(rows, fmt: str, total_key: str, count_key: str, label: str) -> list:
    out: "OrderedDict[str, dict]" = OrderedDict()
    for created_at, total in rows:
        key = created_at.strftime(fmt)
        slot = out.setdefault(key, {label: key, total_key: 0.0, count_key: 0})
        slot[total_key] = round(slot[total_key] + (total or 0), 2)
        slot[count_key] += 1
    return [out[k] for k in sorted(out)]


def loyalty_bucket(points: int):
    if points is None or points < LOYALTY_BOUNDARIES[0] or points >= LOYALTY_BOUNDARIES[-1]:
        return "Other"
    lower = LOYALTY_BOUNDARIES[0]
    for b in LOYALTY_BOUNDARIES:
        if points >= b:
            lower = b
    return lower


@router.get("/sales")
def sales_report(
    startDate: str = "",
    endDate: str = "",
    ident: Identity = Depends(require_permission("reports", "read")),
    scope: TenantScope = Depends(tenant_scope),
):
    conds = completed_filter(scope, startDate, endDate)
    total, count = scope.s.execute(
        select(func.coalesce(func.sum(Order.total), 0.0), func.count(Order.id)).where(*conds)
    ).one()

    revenue = func.sum(OrderLine.price * OrderLine.quantity)
    by_category = scope.s.execute(
        _lines_query(conds, OrderLine.category, revenue, func.sum(OrderLine.quantity)).group_by(OrderLine.category)
    ).all()

    by_payment = scope.s.execute(
        select(Order.payment_method, func.sum(Order.total), func.count(Order.id)).where(*conds).group_by(Order.payment_method)
    ).all()

    daily = scope.s.execute(select(Order.created_at, Order.total).where(*conds)).all()

    return {
        "totalSales": {"total": round(total or 0.0, 2), "count": count},
        "salesByCategory": [
            {"category": cat, "total": round(t or 0.0, 2), "quantity": int(q or 0)} for cat, t, q in by_category
        ],
        "salesByPayment": [
            {"paymentMethod": pm, "total": round(t or 0.0, 2), "count": c} for pm, t, c in by_payment
        ],
        "dailySales": _bucket_by(daily, "%Y-%m-%d", "total", "count", "date"),
    }


@router.get("/products")
def products_report(
    startDate: str = "",
    endDate: str = "",
    ident: Identity = Depends(require_permission("reports", "read")),
    scope: TenantScope = Depends(tenant_scope),
):
    conds = completed_filter(scope, startDate, endDate)
    qty = func.sum(OrderLine.quantity)
    rows = scope.s.execute(
        _lines_query(
            conds,
            OrderLine.menu_item_id,
            func.max(OrderLine.name),
            qty,
            func.sum(OrderLine.price * OrderLine.quantity),
            func.avg(OrderLine.price),
        )
        .group_by(OrderLine.menu_item_id)
        .order_by(qty.desc())
    ).all()
    return [
        {
            "menuItem": mid,
            "name": name,
            "totalQuantity": int(q or 0),
            "totalRevenue": round(rev or 0.0, 2),
            "avgPrice": round(avg or 0.0, 2),
        }
        for mid, name, q, rev, avg in rows
    ]


@router.get("/customers")
def customers_report(
    ident: Identity = Depends(require_permission("reports", "read")),
    scope: TenantScope = Depends(tenant_scope),
):
    top = scope.all(
        scope.select(Customer).where(Customer.is_active.is_(True)).order_by(Customer.total_spent.desc()).limit(TOP_CUSTOMERS)
    )

    created = scope.s.execute(scope.select(Customer, Customer.created_at)).scalars().all()
    acquisition: "OrderedDict[str, int]" = OrderedDict()
    for ts in created:
        key = ts.strftime("%Y-%m")
        acquisition[key] = acquisition.get(key, 0) + 1

    counts: dict = {}
    for pts in scope.s.execute(scope.select(Customer, Customer.loyalty_points)).scalars().all():
        b = loyalty_bucket(pts)
        counts[b] = counts.get(b, 0) + 1
    distribution = [{"bucket": b, "count": counts[b]} for b in LOYALTY_BOUNDARIES[:-1] if b in counts]
    if "Other" in counts:
        distribution.append({"bucket": "Other", "count": counts["Other"]})

    return {
        "topCustomers": [CustomerOut.model_validate(c).model_dump(by_alias=True) for c in top],
        "customerAcquisition": [{"month": k, "newCustomers": acquisition[k]} for k in sorted(acquisition)],
        "loyaltyDistribution": distribution,
    }


@router.get("/inventory")
def inventory_report(
    ident: Identity = Depends(require_permission("reports", "read")),
    scope: TenantScope = Depends(tenant_scope),
):
    levels = scope.all(scope.select(InventoryItem).order_by(InventoryItem.name.asc()))
    low = scope.all(low_stock_query(scope).order_by(InventoryItem.name.asc()))
    total_value = scope.s.execute(
        scope.select(InventoryItem, func.coalesce(func.sum(InventoryItem.current_stock * InventoryItem.cost_per_unit), 0.0))
    ).scalar_one()
    return {
        "inventoryLevels": [inventory_out(scope, i).model_dump(by_alias=True) for i in levels],
        "lowStockItems": [inventory_out(scope, i).model_dump(by_alias=True) for i in low],
        "totalValue": round(total_value or 0.0, 2),
    }


@router.get("/financial")
def financial_report(
    startDate: str = "",
    endDate: str = "",
    ident: Identity = Depends(require_permission("reports", "read")),
    scope: TenantScope = Depends(tenant_scope),
):
    conds = completed_filter(scope, startDate, endDate)
    revenue, tax, discount, count = scope.s.execute(
        select(
            func.coalesce(func.sum(Order.total), 0.0),
            func.coalesce(func.sum(Order.tax), 0.0),
            func.coalesce(func.sum(Order.discount), 0.0),
            func.count(Order.id),
        ).where(*conds)
    ).one()
    monthly = scope.s.execute(select(Order.created_at, Order.total).where(*conds)).all()
    return {
        "summary": {
            "totalRevenue": round(revenue, 2),
            "totalTax": round(tax, 2),
            "totalDiscount": round(discount, 2),
            "orderCount": count,
        },
        "monthlyRevenue": _bucket_by(monthly, "%Y-%m", "revenue", "orders", "month"),
    }
