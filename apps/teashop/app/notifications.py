"""
Per-shop notification templates and (logged) dispatch.

Templates use `{{placeholder}}` markers filled from the `data` of a send
request. Delivery itself is not wired to a provider; a send renders the
template and writes an audit log line.
"""
from __future__ import annotations

import copy
import logging
import re
from typing import Any, Dict, Literal

from fastapi import APIRouter, Depends
from pydantic import Field

from .db import TenantScope
from .errors import NotFound
from .models import NotificationTemplates
from .schemas import CamelModel
from .security import Identity, current_identity, require_permission, tenant_scope
from .settings import get_or_create

log = logging.getLogger("teashop.notifications")

router = APIRouter(prefix="/notifications", tags=["notifications"])

DEFAULT_TEMPLATES: Dict[str, Dict[str, Dict[str, str]]] = {
    "email": {
        "orderConfirmation": {
            "subject": "Order Confirmation - {{orderNumber}}",
            "body": "Dear {{customerName}}, your order {{orderNumber}} has been confirmed. Total: {{total}}. Thank you!",
        },
        "orderReady": {
            "subject": "Order Ready - {{orderNumber}}",
            "body": "Dear {{customerName}}, your order {{orderNumber}} is ready for pickup/delivery.",
        },
    },
    "sms": {
        "orderConfirmation": {"message": "Order {{orderNumber}} confirmed. Total: {{total}}. Thank you!"},
        "orderReady": {"message": "Order {{orderNumber}} is ready for pickup/delivery."},
    },
}

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def render(text: str, data: Dict[str, Any]) -> str:
    """Fill `{{name}}` markers; unknown names are left as-is."""

    def sub(m: "re.Match[str]") -> str:
        key = m.group(1)
        return str(data[key]) if key in data and data[key] is not None else m.group(0)

    return _PLACEHOLDER.sub(sub, text or "")


def shop_templates(scope: TenantScope) -> NotificationTemplates:
    return get_or_create(
        scope,
        NotificationTemplates,
        lambda: NotificationTemplates(
            email=copy.deepcopy(DEFAULT_TEMPLATES["email"]), sms=copy.deepcopy(DEFAULT_TEMPLATES["sms"])
        ),
    )


def _channel(row: NotificationTemplates, method: str, kind: str) -> Dict[str, str]:
    templates = getattr(row, method) or {}
    if kind not in templates:
        raise NotFound("Template not found")
    return templates[kind]


@router.get("/templates")
def get_templates(ident: Identity = Depends(current_identity), scope: TenantScope = Depends(tenant_scope)):
    row = shop_templates(scope)
    return {"email": row.email or {}, "sms": row.sms or {}}


class EmailTemplateReq(CamelModel):
    subject: str
    body: str


class SmsTemplateReq(CamelModel):
    message: str


@router.put("/templates/email/{kind}")
def update_email_template(
    kind: str,
    req: EmailTemplateReq,
    ident: Identity = Depends(require_permission("notifications", "update")),
    scope: TenantScope = Depends(tenant_scope),
):
    row = shop_templates(scope)
    _channel(row, "email", kind)
    row.email = {**row.email, kind: {"subject": req.subject, "body": req.body}}
    scope.s.commit()
    return row.email[kind]


@router.put("/templates/sms/{kind}")
def update_sms_template(
    kind: str,
    req: SmsTemplateReq,
    ident: Identity = Depends(require_permission("notifications", "update")),
    scope: TenantScope = Depends(tenant_scope),
):
    row = shop_templates(scope)
    _channel(row, "sms", kind)
    row.sms = {**row.sms, kind: {"message": req.message}}
    scope.s.commit()
    return row.sms[kind]


class SendReq(CamelModel):
    type: str
    method: Literal["email", "sms"]
    recipient: str = Field(min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)


@router.post("/send")
def send_notification(
    req: SendReq,
    ident: Identity = Depends(current_identity),
    scope: TenantScope = Depends(tenant_scope),
):
    template = _channel(shop_templates(scope), req.method, req.type)
    rendered = {key: render(text, req.data) for key, text in template.items()}
    log.info(
        "notification dispatched",
        extra={"shop_id": scope.shop_id, "method": req.method, "template": req.type, "by": ident.user_id},
    )
    return {"message": "Notification sent successfully", "rendered": rendered}
