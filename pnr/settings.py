from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Core
    db_path: str = os.getenv("PNR_DB_PATH", "pnr.db")
    proxy_container: str = os.getenv("PNR_PROXY_CONTAINER", "system-caddy")
    logging_network: str = os.getenv("PNR_LOGGING_NETWORK", "logging-net")
    projects_file: str = os.getenv("PNR_PROJECTS_FILE", "projects.env")
    docker_timeout_s: int = _env_int("PNR_DOCKER_TIMEOUT_S", 30)

    # Proxy
    caddy_config: str = os.getenv("PNR_CADDY_CONFIG", "/etc/caddy/Caddyfile")
    caddy_image: str = os.getenv("PNR_CADDY_IMAGE", "caddy:2-alpine")

    # API basic auth
    api_user: str = os.getenv("PNR_API_USER", "admin")
    api_password: str | None = os.getenv("PNR_API_PASSWORD")

    # Email alerting (optional)
    enable_email: bool = _env_bool("PNR_ENABLE_EMAIL", False)
    smtp_host: str = os.getenv("PNR_SMTP_HOST", "smtp.gmail.com")
    smtp_port: int = _env_int("PNR_SMTP_PORT", 587)
    smtp_user: str | None = os.getenv("PNR_SMTP_USER")
    smtp_password: str | None = os.getenv("PNR_SMTP_PASSWORD")
    email_from: str | None = os.getenv("PNR_EMAIL_FROM")
    email_to: str | None = os.getenv("PNR_EMAIL_TO")


settings = Settings()
