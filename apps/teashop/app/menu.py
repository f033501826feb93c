from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import Field

from .db import TenantScope
from .errors import NotFound
from .models import InventoryItem, MenuItem
from .schemas import CamelModel, MessageOut
from .security import Identity, current_identity, require_permission, tenant_scope

router = APIRouter(prefix="/menu", tags=["menu"])

MenuCategory = Literal["tea", "coffee", "snacks", "desserts", "beverages"]
IngredientUnit = Literal["ml", "l", "g", "kg", "pcs", "tbsp", "tsp"]


class IngredientIn(CamelModel):
    ingredient: str
    quantity: float = Field(gt=0)
    unit: IngredientUnit


class NutritionInfo(CamelModel):
    calories: Optional[float] = None
    protein: Optional[float] = None
    carbs: Optional[float] = None
    fat: Optional[float] = None


class MenuItemCreate(CamelModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    category: MenuCategory
    price: float = Field(ge=0)
    cost: float = Field(ge=0)
    is_available: bool = True
    ingredients: List[IngredientIn] = Field(default_factory=list)
    preparation_time: int = Field(default=5, ge=0)
    tags: List[str] = Field(default_factory=list)
    nutrition_info: Optional[NutritionInfo] = None


class MenuItemUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    category: Optional[MenuCategory] = None
    price: Optional[float] = Field(default=None, ge=0)
    cost: Optional[float] = Field(default=None, ge=0)
    is_available: Optional[bool] = None
    ingredients: Optional[List[IngredientIn]] = None
    preparation_time: Optional[int] = Field(default=None, ge=0)
    tags: Optional[List[str]] = None
    nutrition_info: Optional[NutritionInfo] = None


class IngredientOut(CamelModel):
    ingredient: Optional[dict]
    quantity: float
    unit: str


class MenuItemOut(CamelModel):
    id: str
    name: str
    description: Optional[str]
    category: str
    price: float
    cost: float
    is_available: bool
    ingredients: List[IngredientOut]
    preparation_time: int
    tags: List[str]
    nutrition_info: dict
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


def _ingredients_in(scope: TenantScope, items: List[IngredientIn]) -> list[dict]:
    out = []
    for ing in items:
        if scope.get(InventoryItem, ing.ingredient) is None:
            raise NotFound(f"Ingredient {ing.ingredient} not found")
        out.append({"ingredient": ing.ingredient, "quantity": ing.quantity, "unit": ing.unit})
    return out


def menu_item_out(scope: TenantScope, m: MenuItem) -> MenuItemOut:
    ids = [i.get("ingredient") for i in (m.ingredients or []) if i.get("ingredient")]
    inv = {}
    if ids:
        rows = scope.all(scope.select(InventoryItem).where(InventoryItem.id.in_(ids)))
        inv = {r.id: {"id": r.id, "name": r.name, "unit": r.unit, "currentStock": r.current_stock} for r in rows}
    return MenuItemOut(
        id=m.id,
        name=m.name,
        description=m.description,
        category=m.category,
        price=m.price,
        cost=m.cost,
        is_available=m.is_available,
        ingredients=[
            IngredientOut(ingredient=inv.get(i.get("ingredient")), quantity=i.get("quantity", 0), unit=i.get("unit", ""))
            for i in (m.ingredients or [])
        ],
        preparation_time=m.preparation_time,
        tags=list(m.tags or []),
        nutrition_info=dict(m.nutrition_info or {}),
        created_at=m.created_at,
        updated_at=m.updated_at,
    )


@router.get("", response_model=List[MenuItemOut])
def list_menu(
    category: str = "",
    available: Optional[bool] = None,
    ident: Identity = Depends(current_identity),
    scope: TenantScope = Depends(tenant_scope),
):
    stmt = scope.select(MenuItem)
    if category:
        stmt = stmt.where(MenuItem.category == category)
    if available is not None:
        stmt = stmt.where(MenuItem.is_available.is_(available))
    return [menu_item_out(scope, m) for m in scope.all(stmt.order_by(MenuItem.name.asc()))]


@router.get("/{item_id}", response_model=MenuItemOut)
def get_menu_item(item_id: str, ident: Identity = Depends(current_identity), scope: TenantScope = Depends(tenant_scope)):
    return menu_item_out(scope, scope.get_or_404(MenuItem, item_id, "Menu item"))


@router.post("", response_model=MenuItemOut, status_code=201)
def create_menu_item(
    req: MenuItemCreate,
    ident: Identity = Depends(require_permission("menu", "create")),
    scope: TenantScope = Depends(tenant_scope),
):
    m = MenuItem(
        name=req.name.strip(),
        description=req.description,
        category=req.category,
        price=req.price,
        cost=req.cost,
        is_available=req.is_available,
        ingredients=_ingredients_in(scope, req.ingredients),
        preparation_time=req.preparation_time,
        tags=req.tags,
        nutrition_info=req.nutrition_info.model_dump(exclude_none=True) if req.nutrition_info else {},
    )
    scope.add(m)
    scope.s.commit()
    scope.s.refresh(m)
    return menu_item_out(scope, m)


@router.put("/{item_id}", response_model=MenuItemOut)
def update_menu_item(
    item_id: str,
    req: MenuItemUpdate,
    ident: Identity = Depends(require_permission("menu", "update")),
    scope: TenantScope = Depends(tenant_scope),
):
    m = scope.get_or_404(MenuItem, item_id, "Menu item")
    data = req.model_dump(exclude_unset=True)
    if "ingredients" in data:
        m.ingredients = _ingredients_in(scope, req.ingredients or [])
    if "nutrition_info" in data:
        m.nutrition_info = req.nutrition_info.model_dump(exclude_none=True) if req.nutrition_info else {}
    for key in ("name", "description", "category", "price", "cost", "is_available", "preparation_time", "tags"):
        if key in data and (data[key] is not None or key == "description"):
            setattr(m, key, data[key])
    scope.s.commit()
    scope.s.refresh(m)
    return menu_item_out(scope, m)


@router.delete("/{item_id}", response_model=MessageOut)
def delete_menu_item(
    item_id: str,
    ident: Identity = Depends(require_permission("menu", "delete")),
    scope: TenantScope = Depends(tenant_scope),
):
    # Past orders keep their own name/price snapshot of the item.
    m = scope.get_or_404(MenuItem, item_id, "Menu item")
    scope.delete(m)
    scope.s.commit()
    return MessageOut(message="Menu item deleted successfully")


class AvailabilityReq(CamelModel):
    is_available: bool


@router.patch("/{item_id}/availability", response_model=MenuItemOut)
def set_availability(
    item_id: str,
    req: AvailabilityReq,
    ident: Identity = Depends(require_permission("menu", "update")),
    scope: TenantScope = Depends(tenant_scope),
):
    m = scope.get_or_404(MenuItem, item_id, "Menu item")
    m.is_available = req.is_available
    scope.s.commit()
    scope.s.refresh(m)
    return menu_item_out(scope, m)
