from __future__ import annotations

from pydantic import BaseModel, Field


class ReconcileRequest(BaseModel):
    targets: list[str] | None = Field(
        None,
        description="Rules like 'prefix:acme' or 'exact:shared-net'. Defaults to the projects file.",
    )
    container: str | None = Field(None, description="Proxy container name (defaults to PNR_PROXY_CONTAINER)")
    reload: bool = Field(True, description="Reload the proxy configuration afterwards")


class OutcomeModel(BaseModel):
    kind: str
    subject: str
    detail: str | None = None


class ReconcileResponse(BaseModel):
    endpoint: str
    logging_network: str
    network_action: str
    report: list[OutcomeModel]
    reload_status: str
    reload_error: str | None = None
    reload_hint: str | None = None
    errors: list[str] = []
    exit_code: int


class EndpointState(BaseModel):
    endpoint: str
    exists: bool
    running: bool
    networks: list[str]
