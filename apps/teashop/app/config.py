import os

from teashop_shared.cors import parse_origins


def _env_or(key: str, default: str) -> str:
    v = os.getenv(key)
    return v if v is not None else default


DEFAULT_JWT_SECRET = "dev-secret-change-me"

ENV = _env_or("ENV", "dev").strip().lower()
DB_URL = _env_or("TEASHOP_DB_URL", _env_or("DB_URL", "sqlite+pysqlite:////tmp/teashop.db"))
DB_SCHEMA = os.getenv("DB_SCHEMA") if not DB_URL.startswith("sqlite") else None

JWT_SECRET = _env_or("JWT_SECRET", DEFAULT_JWT_SECRET)
JWT_ALGORITHM = _env_or("JWT_ALGORITHM", "HS256")
TOKEN_TTL_HOURS = int(_env_or("TOKEN_TTL_HOURS", "8"))
BCRYPT_ROUNDS = int(_env_or("BCRYPT_ROUNDS", "12"))
PASSWORD_MIN_LENGTH = max(1, int(_env_or("PASSWORD_MIN_LENGTH", "1")))

ALLOWED_ORIGINS = parse_origins(_env_or("ALLOWED_ORIGINS", os.getenv("CORS_ORIGIN", "")))
ALLOWED_HOSTS = [h.strip() for h in _env_or("ALLOWED_HOSTS", "").split(",") if h.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL")

# Interactive API docs are off in prod unless explicitly enabled.
ENABLE_DOCS = ENV in ("dev", "test") or os.getenv("ENABLE_API_DOCS_IN_PROD", "").lower() in (
    "1",
    "true",
    "yes",
    "on",
)


def is_prod_env() -> bool:
    return ENV in ("prod", "production", "staging")


def assert_safe_config() -> None:
    """
    Fail fast when a production deployment still runs with the
    development token secret.
    """
    if is_prod_env() and JWT_SECRET == DEFAULT_JWT_SECRET:
        raise RuntimeError("JWT_SECRET must be set when ENV is prod/staging")
