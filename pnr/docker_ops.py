from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from typing import Iterator

import docker
import requests
from docker.errors import APIError, DockerException, NotFound

from .errors import AttachError, CreateError, InfrastructureUnavailable
from .settings import settings

logger = logging.getLogger(__name__)


NETWORK_NAME_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.\-]{0,127}$")


def validate_network_name(name: str) -> None:
    if not NETWORK_NAME_RE.match(name):
        raise ValueError(
            f"Invalid network name {name!r}. Use letters/numbers and -._, starting with a letter or number."
        )


@contextmanager
def daemon_errors(operation: str) -> Iterator[None]:
    """Turn transport-level failures into InfrastructureUnavailable.

    NotFound/APIError are left alone so callers can decide what they mean.
    """
    try:
        yield
    except APIError:
        raise
    except (DockerException, requests.exceptions.RequestException) as e:
        raise InfrastructureUnavailable(f"Docker daemon unavailable during {operation}: {e}") from e


class DockerRuntime:
    """Container runtime query/mutation interface backed by the Docker SDK.

    Every call goes to the daemon; nothing is cached between calls because the
    network graph is mutated by other operators and tools.
    """

    def __init__(self, client: docker.DockerClient):
        self.client = client

    @classmethod
    def from_env(cls, timeout_s: int | None = None) -> "DockerRuntime":
        with daemon_errors("client setup"):
            client = docker.from_env(timeout=timeout_s or settings.docker_timeout_s)
        return cls(client)

    def ping(self) -> None:
        with daemon_errors("ping"):
            try:
                self.client.ping()
            except APIError as e:
                raise InfrastructureUnavailable(f"Docker daemon is not responding: {e}") from e

    def _container(self, endpoint_id: str):
        with daemon_errors(f"inspect {endpoint_id}"):
            try:
                return self.client.containers.get(endpoint_id)
            except NotFound:
                return None
            except APIError as e:
                raise InfrastructureUnavailable(f"Cannot inspect container {endpoint_id}: {e}") from e

    def exists(self, endpoint_id: str) -> bool:
        return self._container(endpoint_id) is not None

    def is_running(self, endpoint_id: str) -> bool:
        cont = self._container(endpoint_id)
        if cont is None:
            return False
        state = (cont.attrs or {}).get("State") or {}
        if "Running" in state:
            return bool(state["Running"])
        return cont.status == "running"

    def attached_networks(self, endpoint_id: str) -> set[str]:
        cont = self._container(endpoint_id)
        if cont is None:
            return set()
        networks = ((cont.attrs or {}).get("NetworkSettings") or {}).get("Networks") or {}
        return set(networks.keys())

    def _list_networks(self, name_filter: str) -> list[str]:
        with daemon_errors("network list"):
            try:
                # The daemon's name filter is a substring match; callers re-check.
                return [n.name for n in self.client.networks.list(names=[name_filter])]
            except APIError as e:
                raise InfrastructureUnavailable(f"Cannot list networks: {e}") from e

    def network_exists(self, name: str) -> bool:
        return name in self._list_networks(name)

    def list_networks_by_prefix(self, prefix: str) -> set[str]:
        return {n for n in self._list_networks(prefix) if n.startswith(prefix)}

    def attach(self, endpoint_id: str, network: str) -> None:
        with daemon_errors(f"attach {endpoint_id} to {network}"):
            try:
                self.client.networks.get(network).connect(endpoint_id)
            except NotFound as e:
                raise AttachError(network, f"not found: {e.explanation or e}") from e
            except APIError as e:
                raise AttachError(network, str(e.explanation or e)) from e
        logger.debug("Attached %s to %s", endpoint_id, network)

    def create_network(self, name: str) -> None:
        try:
            validate_network_name(name)
        except ValueError as e:
            raise CreateError(name, str(e)) from e
        with daemon_errors(f"create network {name}"):
            try:
                self.client.networks.create(name, driver="bridge")
            except APIError as e:
                raise CreateError(name, str(e.explanation or e)) from e
        logger.debug("Created network %s", name)
