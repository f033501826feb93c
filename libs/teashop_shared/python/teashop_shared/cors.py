from __future__ import annotations

from typing import Sequence

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

DEV_ORIGINS = ("http://localhost:5173", "http://127.0.0.1:5173")


def parse_origins(raw: str | None) -> list[str]:
    return [o.strip().rstrip("/") for o in (raw or "").split(",") if o.strip()]


def configure_cors(app: FastAPI, origins: Sequence[str], expose_headers: Sequence[str] = ("X-Request-ID",)) -> None:
    origins = list(origins) or list(DEV_ORIGINS)
    # Browsers reject credentialed requests against a wildcard origin.
    wildcard = "*" in origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if wildcard else origins,
        allow_credentials=not wildcard,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=list(expose_headers),
    )
