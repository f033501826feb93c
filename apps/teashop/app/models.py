from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base, fk, new_id, table_args


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


ROLES = ("admin", "manager", "staff", "cashier", "kitchen")
ORDER_STATUSES = ("pending", "confirmed", "preparing", "ready", "served", "completed", "cancelled")
ORDER_TYPES = ("dine-in", "takeaway", "delivery")
PAYMENT_METHODS = ("cash", "card", "qr", "online")
PAYMENT_STATUSES = ("pending", "paid", "refunded")
TABLE_STATUSES = ("available", "occupied", "reserved", "maintenance")
TABLE_LOCATIONS = ("indoor", "outdoor", "private")


class Shop(Base):
    __tablename__ = "shops"
    __table_args__ = table_args()
    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    shop_id: Mapped[str] = mapped_column(String(4), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(200))
    address: Mapped[str] = mapped_column(String(400), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class User(Base):
    __tablename__ = "users"
    __table_args__ = table_args(UniqueConstraint("shop_id", "email", name="uq_users_shop_email"))
    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    shop_id: Mapped[str] = mapped_column(String(4), index=True)
    name: Mapped[str] = mapped_column(String(120))
    email: Mapped[str] = mapped_column(String(200))
    password_hash: Mapped[str] = mapped_column(String(200))
    role: Mapped[str] = mapped_column(String(16), default="staff")
    # [{"module": "orders", "actions": ["create", ...]}] as stored; normalised on load
    permissions: Mapped[list] = mapped_column(JSON, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), default=None)
    address: Mapped[Optional[str]] = mapped_column(String(400), default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = table_args(UniqueConstraint("shop_id", "phone", name="uq_customers_shop_phone"))
    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    shop_id: Mapped[str] = mapped_column(String(4), index=True)
    name: Mapped[str] = mapped_column(String(120))
    email: Mapped[Optional[str]] = mapped_column(String(200), default=None)
    phone: Mapped[str] = mapped_column(String(32))
    address: Mapped[dict] = mapped_column(JSON, default=dict)
    loyalty_points: Mapped[int] = mapped_column(Integer, default=0)
    total_spent: Mapped[float] = mapped_column(Float, default=0.0)
    visit_count: Mapped[int] = mapped_column(Integer, default=0)
    last_visit: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=utcnow)
    preferences: Mapped[dict] = mapped_column(JSON, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Supplier(Base):
    __tablename__ = "suppliers"
    __table_args__ = table_args()
    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    shop_id: Mapped[str] = mapped_column(String(4), index=True)
    name: Mapped[str] = mapped_column(String(200))
    contact_person: Mapped[str] = mapped_column(String(120))
    email: Mapped[str] = mapped_column(String(200))
    phone: Mapped[str] = mapped_column(String(32))
    address: Mapped[dict] = mapped_column(JSON, default=dict)
    products: Mapped[list] = mapped_column(JSON, default=list)
    payment_terms: Mapped[str] = mapped_column(String(16), default="30-days")
    rating: Mapped[int] = mapped_column(Integer, default=3)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    # only ever moved by stock-in receipts
    total_orders: Mapped[int] = mapped_column(Integer, default=0)
    total_amount: Mapped[float] = mapped_column(Float, default=0.0)
    last_order: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class InventoryItem(Base):
    __tablename__ = "inventory_items"
    __table_args__ = table_args()
    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    shop_id: Mapped[str] = mapped_column(String(4), index=True)
    name: Mapped[str] = mapped_column(String(200))
    category: Mapped[str] = mapped_column(String(32))
    current_stock: Mapped[float] = mapped_column(Float, default=0.0)
    min_stock: Mapped[float] = mapped_column(Float, default=0.0)
    max_stock: Mapped[Optional[float]] = mapped_column(Float, default=None)
    unit: Mapped[str] = mapped_column(String(16))
    cost_per_unit: Mapped[float] = mapped_column(Float, default=0.0)
    supplier_id: Mapped[Optional[str]] = mapped_column(String(32), ForeignKey(fk("suppliers.id"), ondelete="SET NULL"), default=None)
    expiry_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=None)
    batch_number: Mapped[Optional[str]] = mapped_column(String(80), default=None)
    location: Mapped[Optional[str]] = mapped_column(String(120), default=None)
    last_restocked: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class MenuItem(Base):
    __tablename__ = "menu_items"
    __table_args__ = table_args()
    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    shop_id: Mapped[str] = mapped_column(String(4), index=True)
    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[Optional[str]] = mapped_column(String(1000), default=None)
    category: Mapped[str] = mapped_column(String(32))
    price: Mapped[float] = mapped_column(Float)
    cost: Mapped[float] = mapped_column(Float, default=0.0)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True)
    # [{"ingredient": <inventory id>, "quantity": 2, "unit": "g"}]; informational only
    ingredients: Mapped[list] = mapped_column(JSON, default=list)
    preparation_time: Mapped[int] = mapped_column(Integer, default=5)
    tags: Mapped[list] = mapped_column(JSON, default=list)
    nutrition_info: Mapped[dict] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Table(Base):
    __tablename__ = "tables"
    __table_args__ = table_args(UniqueConstraint("shop_id", "number", name="uq_tables_shop_number"))
    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    shop_id: Mapped[str] = mapped_column(String(4), index=True)
    number: Mapped[str] = mapped_column(String(16))
    capacity: Mapped[int] = mapped_column(Integer, default=2)
    status: Mapped[str] = mapped_column(String(16), default="available")
    location: Mapped[str] = mapped_column(String(16), default="indoor")
    current_order_id: Mapped[Optional[str]] = mapped_column(String(32), default=None)
    # {"customer": id, "reservationTime": iso, "duration": minutes, "specialRequests": str}
    reservation: Mapped[Optional[dict]] = mapped_column(JSON, default=None)
    last_cleaned: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = table_args()
    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    shop_id: Mapped[str] = mapped_column(String(4), index=True)
    order_number: Mapped[str] = mapped_column(String(16), unique=True)
    customer_id: Mapped[Optional[str]] = mapped_column(String(32), default=None)
    table_id: Mapped[Optional[str]] = mapped_column(String(32), default=None)
    order_type: Mapped[str] = mapped_column(String(16))
    status: Mapped[str] = mapped_column(String(16), default="pending")
    subtotal: Mapped[float] = mapped_column(Float, default=0.0)
    tax: Mapped[float] = mapped_column(Float, default=0.0)
    discount: Mapped[float] = mapped_column(Float, default=0.0)
    total: Mapped[float] = mapped_column(Float, default=0.0)
    payment_method: Mapped[str] = mapped_column(String(16))
    payment_status: Mapped[str] = mapped_column(String(16), default="pending")
    staff_id: Mapped[str] = mapped_column(String(32))
    notes: Mapped[Optional[str]] = mapped_column(Text, default=None)
    estimated_time: Mapped[int] = mapped_column(Integer, default=15)
    actual_time: Mapped[Optional[int]] = mapped_column(Integer, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class OrderLine(Base):
    __tablename__ = "order_lines"
    __table_args__ = table_args()
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(String(32), ForeignKey(fk("orders.id"), ondelete="CASCADE"), index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)
    menu_item_id: Mapped[str] = mapped_column(String(32))
    # snapshots taken when the line was priced
    name: Mapped[str] = mapped_column(String(200))
    category: Mapped[str] = mapped_column(String(40), default="")
    price: Mapped[float] = mapped_column(Float)
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    special_instructions: Mapped[str] = mapped_column(String(400), default="")


class StockIn(Base):
    __tablename__ = "stock_ins"
    __table_args__ = table_args()
    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    shop_id: Mapped[str] = mapped_column(String(4), index=True)
    supplier_id: Mapped[str] = mapped_column(String(32))
    product_id: Mapped[str] = mapped_column(String(32))
    quantity: Mapped[float] = mapped_column(Float)
    unit: Mapped[str] = mapped_column(String(16))
    unit_price: Mapped[float] = mapped_column(Float)
    total_price: Mapped[float] = mapped_column(Float)
    invoice_number: Mapped[Optional[str]] = mapped_column(String(80), default=None)
    purchase_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    notes: Mapped[Optional[str]] = mapped_column(String(1000), default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class Setting(Base):
    __tablename__ = "settings"
    __table_args__ = table_args()
    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    shop_id: Mapped[str] = mapped_column(String(4), unique=True)
    shop: Mapped[dict] = mapped_column(JSON, default=dict)
    tax: Mapped[dict] = mapped_column(JSON, default=dict)
    payments: Mapped[dict] = mapped_column(JSON, default=dict)
    notifications: Mapped[dict] = mapped_column(JSON, default=dict)
    system: Mapped[dict] = mapped_column(JSON, default=dict)


class NotificationTemplates(Base):
    __tablename__ = "notification_templates"
    __table_args__ = table_args()
    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    shop_id: Mapped[str] = mapped_column(String(4), unique=True)
    email: Mapped[dict] = mapped_column(JSON, default=dict)
    sms: Mapped[dict] = mapped_column(JSON, default=dict)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
