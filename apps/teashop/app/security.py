"""
Identity & permission layer.

A request is authenticated once: the bearer token is verified, the user row
is re-read (so deactivated staff lose access immediately) and the stored
permission list is normalised into a frozen set of (module, action) pairs.
Nothing below the boundary ever looks at the raw permission shape again.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, FrozenSet, Iterable, Optional, Tuple, Union

from fastapi import Depends, Request
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from . import config
from .db import TenantScope, get_session
from .errors import Forbidden, InvalidCredential, Unauthenticated
from .models import User

log = logging.getLogger("teashop.security")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=config.BCRYPT_ROUNDS)

Permission = Tuple[str, str]

MODULES = (
    "orders",
    "menu",
    "inventory",
    "staff",
    "customers",
    "tables",
    "suppliers",
    "reports",
    "settings",
    "notifications",
)
CRUD = ("create", "read", "update", "delete")

# Granted to the owner account created at signup.
OWNER_PERMISSIONS = [
    {"module": "orders", "actions": list(CRUD)},
    {"module": "menu", "actions": list(CRUD)},
    {"module": "inventory", "actions": list(CRUD)},
    {"module": "staff", "actions": list(CRUD)},
    {"module": "customers", "actions": list(CRUD)},
    {"module": "tables", "actions": list(CRUD)},
    {"module": "suppliers", "actions": list(CRUD)},
    {"module": "reports", "actions": ["read"]},
    {"module": "settings", "actions": ["read", "update"]},
    {"module": "notifications", "actions": ["read", "update"]},
]


def hash_password(raw: str) -> str:
    return pwd_context.hash(raw)


def verify_password(raw: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(raw, hashed)
    except (ValueError, TypeError):
        return False


def normalize_permissions(raw: Any) -> FrozenSet[Permission]:
    """
    Accepts every stored permission shape and returns (module, action) pairs:

      {"module": "orders", "actions": ["create", "read"]}
      {"module": "orders", "actions": {"create": true, "read": false}}
      {"module": "orders", "create": true, "read": true}
    """
    pairs = set()
    if not isinstance(raw, (list, tuple)):
        return frozenset()
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        module = str(entry.get("module") or "").strip()
        if not module:
            continue
        actions = entry.get("actions")
        if isinstance(actions, (list, tuple, set)):
            pairs.update((module, str(a)) for a in actions if a)
        elif isinstance(actions, dict):
            pairs.update((module, str(a)) for a, on in actions.items() if on is True)
        else:
            pairs.update((module, k) for k, v in entry.items() if k not in ("module", "actions") and v is True)
    return frozenset(pairs)


def permissions_to_list(perms: Iterable[Permission]) -> list[dict]:
    """Canonical stored/wire form: one entry per module with a sorted action list."""
    by_module: dict[str, set] = {}
    for module, action in perms:
        by_module.setdefault(module, set()).add(action)
    return [{"module": m, "actions": sorted(a)} for m, a in sorted(by_module.items())]


@dataclass(frozen=True)
class AdminRole:
    def allows(self, module: str, action: str) -> bool:
        return True


@dataclass(frozen=True)
class ScopedRole:
    permissions: FrozenSet[Permission] = field(default_factory=frozenset)

    def allows(self, module: str, action: str) -> bool:
        return (module, action) in self.permissions


Role = Union[AdminRole, ScopedRole]


def role_for(role_name: str, raw_permissions: Any) -> Role:
    if role_name == "admin":
        return AdminRole()
    return ScopedRole(normalize_permissions(raw_permissions))


@dataclass(frozen=True)
class Identity:
    user_id: str
    shop_id: str
    role_name: str
    role: Role
    name: str
    email: str

    @property
    def is_admin(self) -> bool:
        return isinstance(self.role, AdminRole)

    def can(self, module: str, action: str) -> bool:
        return self.role.allows(module, action)


def create_access_token(user: User, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=config.TOKEN_TTL_HOURS))
    claims = {
        "userId": user.id,
        "shopId": user.shop_id,
        "role": user.role,
        "permissions": permissions_to_list(normalize_permissions(user.permissions)),
        "exp": expire,
    }
    return jwt.encode(claims, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def extract_token(request: Request) -> Optional[str]:
    raw = (request.headers.get("Authorization") or "").strip()
    if raw:
        if raw.lower().startswith("bearer "):
            raw = raw[7:].strip()
        return raw or None
    legacy = (request.headers.get("auth-token") or "").strip()
    return legacy or None


def resolve_identity(token: Optional[str], s: Session) -> Identity:
    if not token:
        raise Unauthenticated()
    try:
        claims = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except JWTError:
        # Expired, malformed and forged tokens look the same to the caller.
        raise InvalidCredential("Invalid token")
    user_id = claims.get("userId")
    user = s.get(User, str(user_id)) if user_id else None
    if user is None or not user.is_active:
        raise InvalidCredential("Invalid token or inactive user")
    return Identity(
        user_id=user.id,
        shop_id=user.shop_id,
        role_name=user.role,
        role=role_for(user.role, user.permissions),
        name=user.name,
        email=user.email,
    )


def current_identity(request: Request, s: Session = Depends(get_session)) -> Identity:
    ident = resolve_identity(extract_token(request), s)
    request.state.identity = ident
    return ident


def tenant_scope(ident: Identity = Depends(current_identity), s: Session = Depends(get_session)) -> TenantScope:
    return TenantScope(s, ident.shop_id)


def require_permission(module: str, action: str) -> Callable[..., Identity]:
    def _dep(ident: Identity = Depends(current_identity)) -> Identity:
        if not ident.can(module, action):
            log.info(
                "permission denied",
                extra={"user_id": ident.user_id, "shop_id": ident.shop_id, "perm": f"{module}:{action}"},
            )
            raise Forbidden()
        return ident

    return _dep


def require_admin(ident: Identity = Depends(current_identity)) -> Identity:
    if not ident.is_admin:
        raise Forbidden("Only admin can add staff")
    return ident
