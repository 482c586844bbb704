from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from . import db
from .alerts import send_email
from .errors import CreateError, ReloadError
from .models import OutcomeKind, ReconciliationReport, TargetSet
from .reconciler import ContainerRuntime, Reconciler, ensure_network


class ReloadTrigger(Protocol):
    def reload(self, endpoint_id: str) -> str: ...

    def validate_hint(self, endpoint_id: str) -> str: ...


@dataclass
class BootstrapResult:
    endpoint: str
    logging_network: str
    network_action: str  # exists|created|failed
    report: ReconciliationReport
    reload_status: str  # reloaded|failed|skipped|disabled
    reload_error: str | None = None
    reload_hint: str | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def exit_code(self) -> int:
        # attach problems are warnings; only a failed reload fails the run
        return 1 if self.reload_status == "failed" else 0

    def as_dict(self) -> dict:
        return {
            "endpoint": self.endpoint,
            "logging_network": self.logging_network,
            "network_action": self.network_action,
            "report": self.report.as_dict()["entries"],
            "reload_status": self.reload_status,
            "reload_error": self.reload_error,
            "reload_hint": self.reload_hint,
            "errors": list(self.errors),
            "exit_code": self.exit_code,
        }


def run_bootstrap(
    runtime: ContainerRuntime,
    reloader: ReloadTrigger | None,
    targets: TargetSet,
    endpoint_id: str,
    logging_network: str,
) -> BootstrapResult:
    """Ensure the logging network, reconcile the endpoint, then reload once.

    InfrastructureUnavailable from the runtime propagates to the caller.
    Pass ``reloader=None`` to skip the reload step.
    """
    errors: list[str] = []
    try:
        network_action = ensure_network(runtime, logging_network)
    except CreateError as e:
        network_action = "failed"
        errors.append(str(e))
        db.log_event("ERROR", str(e), network=logging_network)

    report = Reconciler(runtime).reconcile(endpoint_id, targets)

    reload_error = None
    reload_hint = None
    if reloader is None:
        reload_status = "disabled"
    elif report.short_circuited:
        reload_status = "skipped"
        db.log_event("WARN", _skip_message(report), endpoint=endpoint_id)
    else:
        try:
            reloader.reload(endpoint_id)
        except ReloadError as e:
            reload_status = "failed"
            reload_error = str(e)
            reload_hint = reloader.validate_hint(endpoint_id)
            db.log_event("ERROR", f"Failed to reload configuration: {e}", endpoint=endpoint_id)
        else:
            reload_status = "reloaded"
            db.log_event("INFO", "Configuration reloaded", endpoint=endpoint_id)

    result = BootstrapResult(
        endpoint=endpoint_id,
        logging_network=logging_network,
        network_action=network_action,
        report=report,
        reload_status=reload_status,
        reload_error=reload_error,
        reload_hint=reload_hint,
        errors=errors,
    )
    _maybe_alert(result)
    return result


def _skip_message(report: ReconciliationReport) -> str:
    if report.kinds == [OutcomeKind.ENDPOINT_NOT_FOUND]:
        return "Container not found, skipping reload"
    return "Container is not running, skipping reload"


def _maybe_alert(result: BootstrapResult) -> None:
    failed = result.report.networks(OutcomeKind.ATTACH_FAILED)
    if result.reload_status != "failed" and not failed:
        return
    subject = f"PNR bootstrap problems on {result.endpoint}"
    lines = [f"Endpoint: {result.endpoint}", f"Reload: {result.reload_status}"]
    if result.reload_error:
        lines.append(f"Reload error: {result.reload_error}")
    for e in result.report.entries:
        if e.kind == OutcomeKind.ATTACH_FAILED:
            lines.append(f"Attach failed: {e.subject} ({e.detail})")
    send_email(subject, "\n".join(lines))


_TAGS = {
    OutcomeKind.ALREADY_CONNECTED: ("OK", "{endpoint} connected to: {subject}"),
    OutcomeKind.CONNECTED: ("OK", "Connected {endpoint} to: {subject}"),
    OutcomeKind.ATTACH_FAILED: ("WARN", "Could not connect {endpoint} to {subject}: {detail}"),
    OutcomeKind.TARGET_MISSING: ("WARN", "Network not found: {subject}"),
    OutcomeKind.EMPTY_PREFIX_MATCH: ("INFO", "No networks found with prefix: {subject}-"),
    OutcomeKind.ENDPOINT_NOT_FOUND: ("WARN", "Container '{subject}' not found; start the stack, then run bootstrap again"),
    OutcomeKind.ENDPOINT_NOT_RUNNING: ("WARN", "Container '{subject}' is not running; start the stack, then run bootstrap again"),
}


def render_report(result: BootstrapResult) -> list[str]:
    """Operator-facing lines, one per outcome, then a summary."""
    lines: list[str] = []
    if result.network_action == "created":
        lines.append(f"[OK] Created logging network: {result.logging_network}")
    elif result.network_action == "exists":
        lines.append(f"[OK] Logging network exists: {result.logging_network}")
    for err in result.errors:
        lines.append(f"[ERROR] {err}")

    for entry in result.report:
        tag, template = _TAGS[entry.kind]
        lines.append(f"[{tag}] " + template.format(endpoint=result.endpoint, subject=entry.subject, detail=entry.detail))

    if result.reload_status == "reloaded":
        lines.append("[OK] Configuration reloaded")
    elif result.reload_status == "failed":
        lines.append(f"[ERROR] Failed to reload configuration: {result.reload_error}")
        if result.reload_hint:
            lines.append(f"[INFO] Check the config with: {result.reload_hint}")
    elif result.reload_status == "skipped":
        lines.append(f"[WARN] {_skip_message(result.report)}")

    lines.append("")
    lines.append("Networks connected:")
    attached = result.report.attached
    for name in attached:
        suffix = " (logging infrastructure)" if name == result.logging_network else ""
        lines.append(f"  - {name}{suffix}")
    if not attached:
        lines.append("  - (none)")
    for entry in result.report:
        if entry.kind == OutcomeKind.EMPTY_PREFIX_MATCH:
            lines.append(f"  - (no networks found for {entry.subject})")
    return lines
