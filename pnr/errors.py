from __future__ import annotations


class InfrastructureUnavailable(Exception):
    """The Docker daemon could not be queried at all. Always fatal."""


class AttachError(Exception):
    def __init__(self, network: str, cause: str):
        super().__init__(f"attach to '{network}' failed: {cause}")
        self.network = network
        self.cause = cause


class CreateError(Exception):
    def __init__(self, network: str, cause: str):
        super().__init__(f"create network '{network}' failed: {cause}")
        self.network = network
        self.cause = cause


class ReloadError(Exception):
    def __init__(self, endpoint: str, exit_code: int | None, output: str):
        super().__init__(f"reload of '{endpoint}' failed (exit {exit_code}): {output.strip()}")
        self.endpoint = endpoint
        self.exit_code = exit_code
        self.output = output


class TargetConfigError(ValueError):
    pass


class ProvisionError(RuntimeError):
    pass
