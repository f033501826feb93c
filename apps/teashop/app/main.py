import asyncio
import logging

from fastapi import APIRouter, FastAPI
from starlette.middleware.trustedhost import TrustedHostMiddleware

from teashop_shared import Lifecycle, RequestIDMiddleware, add_standard_health, configure_cors, setup_json_logging

from . import auth, customers, inventory, menu, notifications, orders, realtime, reports, settings, staff, suppliers, tables
from . import config, db
from .errors import install_error_handlers
from .events import hub

log = logging.getLogger("teashop")

lifecycle = Lifecycle()

app = FastAPI(
    title="Tea Shop API",
    version="1.0.0",
    lifespan=lifecycle.lifespan,
    docs_url="/api/docs" if config.ENABLE_DOCS else None,
    redoc_url=None,
    openapi_url="/api/openapi.json" if config.ENABLE_DOCS else None,
)
setup_json_logging(config.LOG_LEVEL)
app.add_middleware(RequestIDMiddleware)
configure_cors(app, config.ALLOWED_ORIGINS)
add_standard_health(app, path="/api/health", checks={"database": db.ping})
install_error_handlers(app)

if config.ALLOWED_HOSTS:
    _allowed_hosts = list(config.ALLOWED_HOSTS)
    # Keep local health checks working even if ALLOWED_HOSTS is minimal.
    for _extra in ("localhost", "127.0.0.1", "testserver"):
        if _extra not in _allowed_hosts:
            _allowed_hosts.append(_extra)
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=_allowed_hosts)


@lifecycle.on_startup
def on_startup():
    config.assert_safe_config()
    db.create_all()
    hub.bind_loop(asyncio.get_running_loop())
    log.info("startup", extra={"env": config.ENV})


@lifecycle.on_shutdown
def on_shutdown():
    hub.unbind_loop()


api = APIRouter(prefix="/api")
for _module in (auth, menu, orders, inventory, staff, customers, tables, suppliers, reports, settings, notifications):
    api.include_router(_module.router)
api.include_router(inventory.stockin_router)
api.include_router(realtime.router)
app.include_router(api)
