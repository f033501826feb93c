from __future__ import annotations

import copy
from typing import Any, Callable, Dict, Literal, Type, TypeVar

from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError

from .db import TenantScope
from .models import Setting
from .security import Identity, current_identity, require_permission, tenant_scope

router = APIRouter(prefix="/settings", tags=["settings"])

Section = Literal["shop", "tax", "payments", "notifications", "system"]

DEFAULTS: Dict[str, Dict[str, Any]] = {
    "shop": {
        "name": "",
        "address": "",
        "phone": "",
        "email": "",
        "logo": None,
        "currency": "USD",
        "timezone": "UTC",
    },
    "tax": {"rate": 0.1, "inclusive": False},
    "payments": {"methods": ["cash", "card", "qr", "online"], "defaultMethod": "cash"},
    "notifications": {"email": True, "sms": True, "push": True},
    "system": {"theme": "light", "language": "en", "dateFormat": "MM/DD/YYYY", "currency": "USD"},
}

R = TypeVar("R")


def get_or_create(scope: TenantScope, model: Type[R], factory: Callable[[], R]) -> R:
    """The shop's single `model` row, created on first access."""
    row = scope.s.execute(scope.select(model)).scalar_one_or_none()
    if row is not None:
        return row
    row = scope.add(factory())
    try:
        scope.s.commit()
    except IntegrityError:
        # created concurrently
        scope.s.rollback()
        return scope.s.execute(scope.select(model)).scalar_one()
    scope.s.refresh(row)
    return row


def shop_settings(scope: TenantScope) -> Setting:
    return get_or_create(scope, Setting, lambda: Setting(**copy.deepcopy(DEFAULTS)))


def settings_out(row: Setting) -> dict:
    return {"shopId": row.shop_id, **{name: getattr(row, name) or {} for name in DEFAULTS}}


@router.get("")
def get_settings(ident: Identity = Depends(current_identity), scope: TenantScope = Depends(tenant_scope)):
    return settings_out(shop_settings(scope))


@router.put("/{section}")
def update_section(
    section: Section,
    patch: Dict[str, Any],
    ident: Identity = Depends(require_permission("settings", "update")),
    scope: TenantScope = Depends(tenant_scope),
):
    row = shop_settings(scope)
    merged = {**(getattr(row, section) or {}), **patch}
    setattr(row, section, merged)
    scope.s.commit()
    return merged
