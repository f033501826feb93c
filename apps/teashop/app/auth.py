from __future__ import annotations

import logging
import secrets
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from .db import get_session
from .errors import Conflict, Internal, InvalidCredential, NotFound
from .models import Shop, User
from .schemas import CamelModel, MessageOut
from .security import (
    OWNER_PERMISSIONS,
    Identity,
    create_access_token,
    current_identity,
    require_admin,
    verify_password,
)
from .users import PermissionIn, RoleName, UserBrief, UserOut, create_user, email_taken, find_login, set_password

log = logging.getLogger("teashop.auth")

router = APIRouter(prefix="/auth", tags=["auth"])

SHOP_ID_ATTEMPTS = 50


def generate_shop_id(s: Session) -> str:
    for _ in range(SHOP_ID_ATTEMPTS):
        candidate = str(1000 + secrets.randbelow(9000))
        if s.execute(select(Shop.id).where(Shop.shop_id == candidate)).first() is None:
            return candidate
    raise Internal("Shop ID generation failed. Please try again.")


class SignupReq(CamelModel):
    shop_name: str = Field(min_length=1)
    address: str = ""
    owner_name: str = Field(min_length=1)
    owner_email: str = Field(min_length=3)
    owner_password: str = Field(min_length=1)


class ShopOut(CamelModel):
    name: str
    address: str
    shop_id: str


class SignupOut(CamelModel):
    shop_id: str
    message: str
    shop: ShopOut
    user: UserBrief


@router.post("/signup-shop", response_model=SignupOut, status_code=201)
def signup_shop(req: SignupReq, s: Session = Depends(get_session)):
    if email_taken(s, req.owner_email):
        raise Conflict("User with this email already exists")
    shop_id = generate_shop_id(s)
    shop = Shop(shop_id=shop_id, name=req.shop_name.strip(), address=req.address or "")
    s.add(shop)
    user = create_user(
        s,
        shop_id=shop_id,
        name=req.owner_name,
        email=req.owner_email,
        password=req.owner_password,
        role="admin",
        permissions=OWNER_PERMISSIONS,
    )
    s.commit()
    log.info("shop signed up", extra={"shop_id": shop_id, "user_id": user.id})
    return SignupOut(
        shop_id=shop_id,
        message="Shop and admin created successfully.",
        shop=ShopOut(name=shop.name, address=shop.address, shop_id=shop_id),
        user=UserBrief(id=user.id, name=user.name, email=user.email, role=user.role, shop_id=shop_id),
    )


class LoginReq(CamelModel):
    shop_id: str
    email: str
    password: str


class LoginOut(CamelModel):
    token: str
    user: UserBrief


@router.post("/login", response_model=LoginOut)
def login(req: LoginReq, s: Session = Depends(get_session)):
    user = find_login(s, req.shop_id.strip(), req.email)
    if user is None or not verify_password(req.password, user.password_hash):
        log.info("login failed", extra={"shop_id": req.shop_id})
        raise InvalidCredential("Invalid credentials", status_code=400)
    log.info("login", extra={"shop_id": user.shop_id, "user_id": user.id})
    return LoginOut(
        token=create_access_token(user),
        user=UserBrief(id=user.id, name=user.name, email=user.email, role=user.role, shop_id=user.shop_id),
    )


class RegisterReq(CamelModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password: str
    role: RoleName = "staff"
    permissions: List[PermissionIn] = Field(default_factory=list)


class RegisterOut(CamelModel):
    message: str
    user: UserBrief


@router.post("/register", response_model=RegisterOut, status_code=201)
def register(req: RegisterReq, ident: Identity = Depends(require_admin), s: Session = Depends(get_session)):
    user = create_user(
        s,
        shop_id=ident.shop_id,
        name=req.name,
        email=req.email,
        password=req.password,
        role=req.role,
        permissions=req.permissions,
    )
    s.commit()
    log.info("staff registered", extra={"shop_id": ident.shop_id, "user_id": user.id, "by": ident.user_id})
    return RegisterOut(
        message="User created successfully",
        user=UserBrief(id=user.id, name=user.name, email=user.email, role=user.role, shop_id=user.shop_id),
    )


def _self(ident: Identity, s: Session) -> User:
    u = s.get(User, ident.user_id)
    if u is None:
        raise NotFound("User not found")
    return u


@router.get("/me", response_model=UserOut)
def me(ident: Identity = Depends(current_identity), s: Session = Depends(get_session)):
    return UserOut.from_db(_self(ident, s))


class ProfileReq(CamelModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


@router.put("/profile", response_model=UserOut)
def update_profile(req: ProfileReq, ident: Identity = Depends(current_identity), s: Session = Depends(get_session)):
    u = _self(ident, s)
    if req.name:
        u.name = req.name.strip()
    if "phone" in req.model_fields_set:
        u.phone = req.phone
    if "address" in req.model_fields_set:
        u.address = req.address
    s.commit()
    s.refresh(u)
    return UserOut.from_db(u)


class PasswordReq(CamelModel):
    current_password: str
    new_password: str


@router.put("/password", response_model=MessageOut)
def change_password(req: PasswordReq, ident: Identity = Depends(current_identity), s: Session = Depends(get_session)):
    u = _self(ident, s)
    set_password(u, req.current_password, req.new_password)
    s.commit()
    log.info("password changed", extra={"shop_id": ident.shop_id, "user_id": ident.user_id})
    return MessageOut(message="Password updated successfully")
