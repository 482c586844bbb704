from __future__ import annotations

import secrets

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from pnr import db
from pnr.api_models import EndpointState, ReconcileRequest, ReconcileResponse
from pnr.bootstrap import run_bootstrap
from pnr.docker_ops import DockerRuntime
from pnr.errors import InfrastructureUnavailable, TargetConfigError
from pnr.models import TargetSet
from pnr.reload import DockerReloadTrigger
from pnr.settings import settings
from pnr.targets import load_target_set, parse_rule

app = FastAPI(title="Proxy Network Reconciler")
security = HTTPBasic()


def get_runtime() -> DockerRuntime:
    try:
        return DockerRuntime.from_env()
    except InfrastructureUnavailable as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e


def get_reloader(runtime: DockerRuntime = Depends(get_runtime)) -> DockerReloadTrigger:
    return DockerReloadTrigger(runtime.client)


def get_current_username(credentials: HTTPBasicCredentials = Depends(security)) -> str:
    # No password configured means nobody gets in.
    expected = settings.api_password or ""
    ok_user = secrets.compare_digest(credentials.username, settings.api_user)
    ok_pass = bool(expected) and secrets.compare_digest(credentials.password, expected)
    if not (ok_user and ok_pass):
        raise HTTPException(status_code=401, detail="Invalid credentials", headers={"WWW-Authenticate": "Basic"})
    return credentials.username


@app.on_event("startup")
def startup() -> None:
    db.init_db()


@app.get("/health")
def health() -> dict:
    return {"status": "healthy"}


@app.get("/events")
def events(limit: int = 100, username: str = Depends(get_current_username)) -> list[dict]:
    return db.latest_events(max(1, min(limit, 1000)))


@app.get("/endpoint", response_model=EndpointState)
def endpoint_state(
    container: str | None = None,
    username: str = Depends(get_current_username),
    runtime: DockerRuntime = Depends(get_runtime),
) -> EndpointState:
    name = container or settings.proxy_container
    try:
        exists = runtime.exists(name)
        running = exists and runtime.is_running(name)
        networks = sorted(runtime.attached_networks(name)) if exists else []
    except InfrastructureUnavailable as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e
    return EndpointState(endpoint=name, exists=exists, running=running, networks=networks)


@app.post("/reconcile", response_model=ReconcileResponse)
def reconcile(
    req: ReconcileRequest,
    username: str = Depends(get_current_username),
    runtime: DockerRuntime = Depends(get_runtime),
    reloader: DockerReloadTrigger = Depends(get_reloader),
) -> ReconcileResponse:
    try:
        if req.targets is None:
            targets = load_target_set(settings.projects_file, settings.logging_network)
        else:
            targets = TargetSet(tuple(parse_rule(t) for t in req.targets)).with_shared(settings.logging_network)
    except TargetConfigError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    endpoint = req.container or settings.proxy_container
    db.log_event("INFO", f"Reconcile requested by {username}", endpoint=endpoint)
    try:
        result = run_bootstrap(
            runtime,
            reloader if req.reload else None,
            targets,
            endpoint,
            settings.logging_network,
        )
    except InfrastructureUnavailable as e:
        db.log_event("ERROR", str(e), endpoint=endpoint)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e
    return ReconcileResponse(**result.as_dict())
