import logging
import os
from typing import Callable, Mapping, Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

log = logging.getLogger("teashop.health")

HealthCheck = Callable[[], None]


def add_standard_health(
    app: FastAPI,
    path: str = "/health",
    env_key: str = "ENV",
    checks: Optional[Mapping[str, HealthCheck]] = None,
):
    """
    Liveness plus named readiness checks. A check passes when it returns
    without raising; any failure turns the answer into 503 `degraded`.
    """
    checks = dict(checks or {})

    @app.get(path, include_in_schema=False)
    def _health():
        results = {}
        for name, check in checks.items():
            try:
                check()
                results[name] = "ok"
            except Exception:
                log.exception("health check failed", extra={"check": name})
                results[name] = "error"
        healthy = all(v == "ok" for v in results.values())
        return JSONResponse(
            status_code=200 if healthy else 503,
            content={
                "status": "ok" if healthy else "degraded",
                "env": os.getenv(env_key, "dev"),
                "service": app.title,
                "version": app.version,
                "checks": results,
            },
        )
