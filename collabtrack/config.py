# collabtrack/config.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv


ALLOWED_MIME_TYPES = (
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "text/plain",
    "text/csv",
    "application/zip",
    "application/x-rar-compressed",
)

DEFAULT_ORIGINS = (
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
)


@dataclass(frozen=True)
class Settings:
    secret_key: str
    database_url: str = "sqlite:///./collabtrack.db"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7
    reset_token_expire_minutes: int = 15
    frontend_base_url: str = "http://localhost:3000"
    cors_origins: tuple[str, ...] = DEFAULT_ORIGINS
    upload_dir: str = "./uploads"
    max_file_size: int = 10 * 1024 * 1024
    allowed_mime_types: tuple[str, ...] = field(default=ALLOWED_MIME_TYPES)
    log_level: str = "INFO"
    sql_echo: bool = False
    environment: str = "development"
    bcrypt_rounds: int = 12
    host: str = "0.0.0.0"
    port: int = 5000


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Build :class:`Settings` from the process environment (and ``.env``)."""
    # ---------------- ENV ----------------
    load_dotenv(dotenv_path=env_file)

    secret_key = os.getenv("SECRET_KEY")
    if not secret_key:
        raise RuntimeError("SECRET_KEY missing in environment / .env!")

    origins = list(DEFAULT_ORIGINS)
    frontend_origin = os.getenv("FRONTEND_ORIGIN")
    if frontend_origin and frontend_origin not in origins:
        origins.append(frontend_origin)

    return Settings(
        secret_key=secret_key,
        database_url=os.getenv("DATABASE_URL", "sqlite:///./collabtrack.db"),
        algorithm=os.getenv("ALGORITHM", "HS256"),
        access_token_expire_minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 7))),
        reset_token_expire_minutes=int(os.getenv("RESET_TOKEN_EXPIRE_MINUTES", "15")),
        frontend_base_url=os.getenv("FRONTEND_BASE_URL", "http://localhost:3000"),
        cors_origins=tuple(origins),
        upload_dir=os.getenv("UPLOAD_DIR", "./uploads"),
        max_file_size=int(os.getenv("MAX_FILE_SIZE", str(10 * 1024 * 1024))),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        sql_echo=_env_bool("SQL_ECHO"),
        environment=os.getenv("ENVIRONMENT", "development"),
        bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", "12")),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "5000")),
    )
