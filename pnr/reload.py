from __future__ import annotations

import docker
from docker.errors import APIError, NotFound

from .docker_ops import daemon_errors
from .errors import ReloadError
from .settings import settings


class DockerReloadTrigger:
    """Runs the proxy's own reload/validate commands inside its container."""

    def __init__(self, client: docker.DockerClient, config_path: str | None = None):
        self.client = client
        self.config_path = config_path or settings.caddy_config

    def _exec(self, endpoint_id: str, action: str) -> str:
        cmd = ["caddy", action, "--config", self.config_path]
        with daemon_errors(f"caddy {action}"):
            try:
                cont = self.client.containers.get(endpoint_id)
                result = cont.exec_run(cmd)
            except NotFound as e:
                raise ReloadError(endpoint_id, None, f"container not found: {e.explanation or e}") from e
            except APIError as e:
                raise ReloadError(endpoint_id, None, str(e.explanation or e)) from e

        exit_code, output = result
        text = output.decode(errors="replace") if isinstance(output, bytes) else str(output or "")
        if exit_code != 0:
            raise ReloadError(endpoint_id, exit_code, text)
        return text

    def reload(self, endpoint_id: str) -> str:
        return self._exec(endpoint_id, "reload")

    def validate(self, endpoint_id: str) -> str:
        return self._exec(endpoint_id, "validate")

    def validate_hint(self, endpoint_id: str) -> str:
        return f"docker exec {endpoint_id} caddy validate --config {self.config_path}"
