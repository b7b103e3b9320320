import os
from dataclasses import dataclass

DEFAULT_DATABASE_URL = "postgresql+psycopg://localhost/crm"
DEFAULT_PORT = 8080


@dataclass(frozen=True)
class Settings:
    env: str
    database_url: str
    database_url_is_fallback: bool
    port: int
    log_level: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def normalize_database_url(url: str) -> str:
    """
    Map bare postgres URLs onto the psycopg 3 dialect.
    SQLAlchemy no longer accepts the `postgres://` scheme.
    """
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+psycopg://" + url[len(prefix):]
    return url


def _port(raw: str) -> int:
    if not raw:
        return DEFAULT_PORT
    try:
        port = int(raw)
    except ValueError:
        port = 0
    if port < 1 or port > 65535:
        raise RuntimeError(f"Invalid PORT value '{raw}'. Must be integer 1-65535.")
    return port


def load_settings() -> Settings:
    raw_url = _getenv("CRM_DB_CONNECTION_STRING") or _getenv("DATABASE_URL")
    return Settings(
        env=_getenv("ENV", "development"),
        database_url=normalize_database_url(raw_url or DEFAULT_DATABASE_URL),
        database_url_is_fallback=not raw_url,
        port=_port(_getenv("PORT")),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
    )


def load_config() -> dict:
    s = load_settings()
    return {
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "DATABASE_URL_IS_FALLBACK": s.database_url_is_fallback,
        "PORT": s.port,
        "LOG_LEVEL": s.log_level,
    }
