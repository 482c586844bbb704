import os as _os
import sys
from dataclasses import replace

import pytest

# Ensure project root is importable (so `import main` / `import cli` work without installing)
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from pnr import db  # noqa: E402
from pnr.errors import AttachError, CreateError, InfrastructureUnavailable, ReloadError  # noqa: E402


class FakeRuntime:
    """In-memory stand-in for the Docker runtime, recording every call."""

    def __init__(self, networks=(), endpoints=None, fail_attach=None, fail_create=None):
        self.networks = set(networks)
        # endpoint id -> {"running": bool, "networks": set[str]}
        self.endpoints = {}
        for name, state in (endpoints or {}).items():
            self.endpoints[name] = {"running": state.get("running", True), "networks": set(state.get("networks", ()))}
        self.fail_attach = dict(fail_attach or {})
        self.fail_create = fail_create
        self.unavailable = False
        self.calls = []

    def _call(self, *call):
        self.calls.append(call)
        if self.unavailable:
            raise InfrastructureUnavailable("daemon down")

    def calls_named(self, name):
        return [c for c in self.calls if c[0] == name]

    def exists(self, endpoint_id):
        self._call("exists", endpoint_id)
        return endpoint_id in self.endpoints

    def is_running(self, endpoint_id):
        self._call("is_running", endpoint_id)
        return endpoint_id in self.endpoints and self.endpoints[endpoint_id]["running"]

    def attached_networks(self, endpoint_id):
        self._call("attached_networks", endpoint_id)
        return set(self.endpoints.get(endpoint_id, {}).get("networks", ()))

    def network_exists(self, name):
        self._call("network_exists", name)
        return name in self.networks

    def list_networks_by_prefix(self, prefix):
        self._call("list_networks_by_prefix", prefix)
        return {n for n in self.networks if n.startswith(prefix)}

    def attach(self, endpoint_id, network):
        self._call("attach", endpoint_id, network)
        if network in self.fail_attach:
            raise AttachError(network, self.fail_attach[network])
        if network not in self.networks:
            raise AttachError(network, "network not found")
        self.endpoints[endpoint_id]["networks"].add(network)

    def create_network(self, name):
        self._call("create_network", name)
        if self.fail_create:
            raise CreateError(name, self.fail_create)
        self.networks.add(name)


class FakeReloader:
    def __init__(self, fail_with=None):
        self.fail_with = fail_with
        self.reloaded = []

    def reload(self, endpoint_id):
        self.reloaded.append(endpoint_id)
        if self.fail_with:
            raise ReloadError(endpoint_id, 1, self.fail_with)
        return "ok"

    def validate_hint(self, endpoint_id):
        return f"docker exec {endpoint_id} caddy validate --config /etc/caddy/Caddyfile"


@pytest.fixture(autouse=True)
def event_db(tmp_path, monkeypatch):
    """Point the event log at a per-test sqlite file."""
    monkeypatch.setattr(db, "settings", replace(db.settings, db_path=str(tmp_path / "events.db")))
    return db


@pytest.fixture
def fake_runtime():
    return FakeRuntime


@pytest.fixture
def fake_reloader():
    return FakeReloader
