from __future__ import annotations

from typing import Iterable, Protocol

from . import db
from .errors import AttachError, CreateError
from .models import NetworkRef, Outcome, OutcomeKind, ReconciliationReport, TargetRule, TargetSet


class ContainerRuntime(Protocol):
    def exists(self, endpoint_id: str) -> bool: ...

    def is_running(self, endpoint_id: str) -> bool: ...

    def attached_networks(self, endpoint_id: str) -> set[str]: ...

    def network_exists(self, name: str) -> bool: ...

    def list_networks_by_prefix(self, prefix: str) -> set[str]: ...

    def attach(self, endpoint_id: str, network: str) -> None: ...

    def create_network(self, name: str) -> None: ...


def ensure_network(runtime: ContainerRuntime, name: str) -> str:
    """Create ``name`` unless it already exists. Returns "exists" or "created".

    Raises CreateError if the daemon refuses the create and the network
    still does not exist afterwards.
    """
    if runtime.network_exists(name):
        db.log_event("INFO", f"Network exists: {name}", network=name)
        return "exists"
    try:
        runtime.create_network(name)
    except CreateError:
        if not runtime.network_exists(name):
            raise
        db.log_event("INFO", f"Network exists: {name} (created concurrently)", network=name)
        return "exists"
    db.log_event("INFO", f"Created network: {name}", network=name)
    return "created"


def prefix_stem(identifier: str) -> str:
    return f"{identifier}-"


class Reconciler:
    """Makes an endpoint's network membership include every declared target.

    Holds no state between calls: membership is queried from the runtime for
    every target, right before deciding whether to attach.
    """

    def __init__(self, runtime: ContainerRuntime):
        self.runtime = runtime

    def resolve(self, rule: TargetRule) -> list[NetworkRef] | None:
        """Resolve a rule to concrete networks.

        Returns None for an exact rule whose network does not exist, and an
        empty list for a prefix with no matches.
        """
        if rule.kind == "exact":
            if not self.runtime.network_exists(rule.value):
                return None
            return [NetworkRef(rule.value)]

        stem = prefix_stem(rule.value)
        names = {n for n in self.runtime.list_networks_by_prefix(stem) if n.startswith(stem)}
        return [NetworkRef(n) for n in sorted(names)]

    def reconcile(self, endpoint_id: str, targets: TargetSet | Iterable[TargetRule]) -> ReconciliationReport:
        if not self.runtime.exists(endpoint_id):
            db.log_event("WARN", f"Endpoint '{endpoint_id}' not found; skipping network attachment", endpoint=endpoint_id)
            return ReconciliationReport(endpoint_id, (Outcome(OutcomeKind.ENDPOINT_NOT_FOUND, endpoint_id),))
        if not self.runtime.is_running(endpoint_id):
            db.log_event("WARN", f"Endpoint '{endpoint_id}' is not running; skipping network attachment", endpoint=endpoint_id)
            return ReconciliationReport(endpoint_id, (Outcome(OutcomeKind.ENDPOINT_NOT_RUNNING, endpoint_id),))

        entries: list[Outcome] = []
        seen: set[str] = set()
        for rule in targets:
            resolved = self.resolve(rule)
            if resolved is None:
                entries.append(self._record(endpoint_id, Outcome(OutcomeKind.TARGET_MISSING, rule.value, "network does not exist")))
                continue
            if not resolved:
                entries.append(
                    self._record(
                        endpoint_id,
                        Outcome(OutcomeKind.EMPTY_PREFIX_MATCH, rule.value, f"no networks found with prefix {prefix_stem(rule.value)}"),
                    )
                )
                continue
            for ref in resolved:
                if ref.name in seen:
                    continue
                seen.add(ref.name)
                entries.append(self._record(endpoint_id, self._reconcile_one(endpoint_id, ref)))

        return ReconciliationReport(endpoint_id, tuple(entries))

    def _reconcile_one(self, endpoint_id: str, ref: NetworkRef) -> Outcome:
        # Re-read membership right before acting; earlier answers may be stale.
        if ref.name in self.runtime.attached_networks(endpoint_id):
            return Outcome(OutcomeKind.ALREADY_CONNECTED, ref.name)
        try:
            self.runtime.attach(endpoint_id, ref.name)
        except AttachError as e:
            return Outcome(OutcomeKind.ATTACH_FAILED, ref.name, e.cause)
        return Outcome(OutcomeKind.CONNECTED, ref.name)

    def _record(self, endpoint_id: str, outcome: Outcome) -> Outcome:
        level = "WARN" if outcome.is_warning else "INFO"
        message = f"{outcome.kind.value}: {outcome.subject}"
        if outcome.detail:
            message += f" ({outcome.detail})"
        network = outcome.subject if outcome.kind != OutcomeKind.EMPTY_PREFIX_MATCH else None
        db.log_event(level, message, endpoint=endpoint_id, network=network)
        return outcome
