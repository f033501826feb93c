"""
Storage plumbing: engine, sessions and the tenant scope.

`TenantScope` is the only way route and service code touches tenant-owned
tables. Every statement it builds conjoins `shop_id = <current tenant>`,
so an id belonging to another shop simply does not resolve.
"""
from __future__ import annotations

import uuid
from typing import Iterator, Optional, Type, TypeVar

from sqlalchemy import create_engine, select, text, update
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session
from sqlalchemy.pool import StaticPool

from . import config
from .errors import NotFound


class Base(DeclarativeBase):
    pass


def table_args(*args) -> tuple:
    return (*args, {"schema": config.DB_SCHEMA} if config.DB_SCHEMA else {})


def fk(target: str) -> str:
    return f"{config.DB_SCHEMA}.{target}" if config.DB_SCHEMA else target


def new_id() -> str:
    return uuid.uuid4().hex


def make_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url.rstrip("/").endswith("sqlite+pysqlite:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, future=True, **kwargs)
    return create_engine(url, future=True, pool_pre_ping=True)


engine = make_engine(config.DB_URL)


def create_all(bind: Optional[Engine] = None) -> None:
    # Models register themselves on import.
    from . import models  # noqa: F401

    Base.metadata.create_all(bind or engine)


def get_session() -> Iterator[Session]:
    with Session(engine) as s:
        yield s


def ping() -> None:
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))


M = TypeVar("M")


class TenantScope:
    """A session bound to one shop."""

    def __init__(self, session: Session, shop_id: str):
        if not shop_id:
            raise ValueError("shop_id required")
        self.s = session
        self.shop_id = shop_id

    def select(self, model: Type[M], *columns):
        stmt = select(*columns) if columns else select(model)
        return stmt.where(model.shop_id == self.shop_id)

    def update(self, model: Type[M]):
        return update(model).where(model.shop_id == self.shop_id)

    def get(self, model: Type[M], obj_id: Optional[str]) -> Optional[M]:
        if not obj_id:
            return None
        stmt = select(model).where(model.id == str(obj_id), model.shop_id == self.shop_id)
        return self.s.execute(stmt).scalar_one_or_none()

    def get_or_404(self, model: Type[M], obj_id: Optional[str], label: str) -> M:
        obj = self.get(model, obj_id)
        if obj is None:
            raise NotFound(f"{label} not found")
        return obj

    def all(self, stmt) -> list:
        return list(self.s.execute(stmt).scalars().all())

    def increment(self, model: Type[M], obj_id: str, values: Optional[dict] = None, **deltas) -> bool:
        """
        Single-statement `col = col + delta` update. A negative delta is
        guarded by `col >= -delta` so the counter never drops below zero;
        returns False when the guard (or the tenant filter) matched nothing.
        """
        stmt = self.update(model).where(model.id == obj_id)
        assignments = dict(values or {})
        for name, delta in deltas.items():
            col = getattr(model, name)
            if delta < 0:
                stmt = stmt.where(col >= -delta)
            assignments[name] = col + delta
        res = self.s.execute(stmt.values(**assignments).execution_options(synchronize_session=False))
        return res.rowcount > 0

    def add(self, obj: M) -> M:
        obj.shop_id = self.shop_id
        self.s.add(obj)
        return obj

    def delete(self, obj) -> None:
        if obj.shop_id != self.shop_id:
            raise NotFound()
        self.s.delete(obj)
