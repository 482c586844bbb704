from __future__ import annotations

import os
import secrets
import shutil
import subprocess
from dataclasses import dataclass, field
from datetime import datetime, timezone

import docker
from docker.errors import APIError, ContainerError, ImageNotFound
from dotenv import dotenv_values

from . import db
from .docker_ops import daemon_errors
from .errors import InfrastructureUnavailable, ProvisionError, TargetConfigError
from .models import TargetRule
from .settings import settings
from .targets import render_projects_file, rules_from_values

PASSWORD_LENGTH = 32
PASSWORD_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789!@#%^*_+-="

GRAFANA_UID = 472
LOKI_UID = 10001

# relative path -> owner uid (None: leave ownership alone)
DATA_DIRS: dict[str, int | None] = {
    "caddy/data": None,
    "caddy/config": None,
    "logging/grafana/data": GRAFANA_UID,
    "logging/loki/data": LOKI_UID,
}

REQUIRED_ENV_KEYS = ("GRAFANA_ADMIN_PASSWORD", "CADDY_BASIC_AUTH_HASH")


def check_docker(client: docker.DockerClient) -> None:
    with daemon_errors("ping"):
        try:
            client.ping()
        except APIError as e:
            raise InfrastructureUnavailable(f"Docker daemon is not running or not accessible: {e}") from e


def check_compose() -> None:
    """Fail unless the Docker Compose v2 CLI (``docker compose``) is usable."""
    try:
        result = subprocess.run(["docker", "compose", "version"], capture_output=True, text=True, timeout=5)
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        raise InfrastructureUnavailable(
            f"Docker Compose is not available ({e}); install it: https://docs.docker.com/compose/install/"
        ) from e
    if result.returncode != 0:
        raise InfrastructureUnavailable(
            "Docker Compose is not available; install it: https://docs.docker.com/compose/install/"
        )


def generate_password(length: int = PASSWORD_LENGTH) -> str:
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def hash_password(client: docker.DockerClient, password: str, image: str | None = None) -> str:
    """Return a bcrypt hash produced by ``caddy hash-password`` in a throwaway container."""
    image = image or settings.caddy_image
    with daemon_errors("hash-password"):
        try:
            out = client.containers.run(image, ["caddy", "hash-password", "--plaintext", password], remove=True)
        except (ContainerError, ImageNotFound, APIError) as e:
            raise ProvisionError(f"Failed to generate bcrypt hash (make sure Docker can pull {image}): {e}") from e
    hashed = (out.decode(errors="replace") if isinstance(out, bytes) else str(out or "")).strip()
    if not hashed:
        raise ProvisionError(f"Failed to generate bcrypt hash: empty output from {image}")
    return hashed


def _stamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def write_env_file(path: str, grafana_password: str, caddy_hash: str, admin_email: str, overwrite: bool = False) -> str:
    """Write the stack's .env. Returns "created", "overwritten" or "kept"."""
    status = "created"
    if os.path.exists(path):
        if not overwrite:
            return "kept"
        shutil.copyfile(path, f"{path}.backup")
        status = "overwritten"

    body = f"""# SYSTEM-INFRAS ENVIRONMENT CONFIGURATION
# Generated by pnr init on {_stamp()}
# NEVER commit this file to version control

# Grafana
GRAFANA_ADMIN_USER=admin
GRAFANA_ADMIN_PASSWORD='{grafana_password}'

# Caddy basic auth (username: admin)
CADDY_BASIC_AUTH_HASH='{caddy_hash}'

# Admin email for Let's Encrypt notifications
ADMIN_EMAIL={admin_email}

# Logging
LOKI_RETENTION_HOURS=336
"""
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(body)
    return status


def write_credentials_file(path: str, grafana_password: str, caddy_password: str) -> None:
    body = f"""# SYSTEM-INFRAS CREDENTIALS
# Generated on {_stamp()}
#
# Save these credentials somewhere safe, then DELETE this file:
#   rm {path}

GRAFANA:
  Username: admin
  Password: {grafana_password}

CADDY BASIC AUTH (for protected endpoints):
  Username: admin
  Password: {caddy_password}
"""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.write(body)
    os.chmod(path, 0o600)


def write_projects_file(path: str, rules: list[TargetRule], overwrite: bool = False) -> str:
    if os.path.exists(path) and not overwrite:
        return "kept"
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(render_projects_file(rules))
    return "created"


def _chown_tree(top: str, uid: int) -> None:
    os.chown(top, uid, uid)
    for dirpath, dirnames, filenames in os.walk(top):
        for name in dirnames + filenames:
            os.chown(os.path.join(dirpath, name), uid, uid)


def setup_directories(root: str, chown: bool = True) -> list[str]:
    """Create the stack's data directories. Returns warnings (ownership problems)."""
    warnings: list[str] = []
    for rel, uid in DATA_DIRS.items():
        path = os.path.join(root, rel)
        os.makedirs(path, exist_ok=True)
        if uid is None or not chown:
            continue
        try:
            _chown_tree(path, uid)
        except (PermissionError, OSError) as e:
            warnings.append(f"Could not set ownership of {rel} to {uid}:{uid} ({e}); run: sudo chown -R {uid}:{uid} {rel}")
    return warnings


def validate_setup(root: str, projects_file: str = "projects.env") -> list[str]:
    """Return every problem found with the provisioned layout (empty means OK)."""
    problems: list[str] = []

    env_path = os.path.join(root, ".env")
    if not os.path.isfile(env_path):
        problems.append(".env file not found")
    else:
        values = dotenv_values(env_path)
        for key in REQUIRED_ENV_KEYS:
            if not values.get(key):
                problems.append(f"{key} not set in .env")

    projects_path = os.path.join(root, projects_file)
    if not os.path.isfile(projects_path):
        problems.append(f"{projects_file} file not found")
    else:
        try:
            if not rules_from_values(dotenv_values(projects_path)):
                problems.append(f"No TARGETS, PROJECTS or NETWORKS declared in {projects_file}")
        except TargetConfigError as e:
            problems.append(f"Invalid target in {projects_file}: {e}")

    for rel in DATA_DIRS:
        if not os.path.isdir(os.path.join(root, rel)):
            problems.append(f"{rel} directory not found")

    for name in ("docker-compose.yml", "Caddyfile"):
        if not os.path.isfile(os.path.join(root, name)):
            problems.append(f"{name} not found")

    return problems


@dataclass
class InitResult:
    env_status: str
    projects_status: str
    grafana_password: str | None = None
    caddy_password: str | None = None
    credentials_path: str | None = None
    warnings: list[str] = field(default_factory=list)
    problems: list[str] = field(default_factory=list)


def initialize(
    client: docker.DockerClient,
    root: str,
    admin_email: str,
    rules: list[TargetRule],
    overwrite: bool = False,
    chown: bool = True,
    projects_file: str = "projects.env",
) -> InitResult:
    """Provision secrets, env files and directories for the stack.

    Raises ProvisionError when a projects file would be written with no rules.
    """
    projects_path = os.path.join(root, projects_file)
    if not rules and (overwrite or not os.path.exists(projects_path)):
        raise ProvisionError(f"No targets given for {projects_file}; pass --target or --project")

    check_docker(client)
    check_compose()

    env_path = os.path.join(root, ".env")
    grafana_password = caddy_password = credentials_path = None
    if os.path.exists(env_path) and not overwrite:
        env_status = "kept"
    else:
        grafana_password = generate_password()
        caddy_password = generate_password()
        caddy_hash = hash_password(client, caddy_password)
        env_status = write_env_file(env_path, grafana_password, caddy_hash, admin_email, overwrite=overwrite)
        credentials_path = os.path.join(root, ".credentials")
        write_credentials_file(credentials_path, grafana_password, caddy_password)
        db.log_event("INFO", f".env {env_status}; credentials saved to {credentials_path}")

    projects_status = write_projects_file(projects_path, rules, overwrite=overwrite)
    warnings = setup_directories(root, chown=chown)
    for w in warnings:
        db.log_event("WARN", w)

    return InitResult(
        env_status=env_status,
        projects_status=projects_status,
        grafana_password=grafana_password,
        caddy_password=caddy_password,
        credentials_path=credentials_path,
        warnings=warnings,
        problems=validate_setup(root, projects_file),
    )
