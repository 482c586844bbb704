from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class ManagedEndpoint:
    id: str
    running: bool


@dataclass(frozen=True)
class NetworkRef:
    name: str


@dataclass(frozen=True)
class TargetRule:
    """One declared membership rule: ``exact`` (literal name) or ``prefix`` (project id)."""

    kind: str  # exact|prefix
    value: str

    def __post_init__(self) -> None:
        if self.kind not in {"exact", "prefix"}:
            raise ValueError(f"Unknown target rule kind: {self.kind!r}")
        if not self.value or any(ch.isspace() for ch in self.value):
            raise ValueError(f"Invalid target rule value: {self.value!r}")

    @classmethod
    def exact(cls, name: str) -> "TargetRule":
        return cls("exact", name)

    @classmethod
    def prefix(cls, identifier: str) -> "TargetRule":
        return cls("prefix", identifier)

    def __str__(self) -> str:
        return f"{self.kind}:{self.value}"


@dataclass(frozen=True)
class TargetSet:
    rules: tuple[TargetRule, ...] = ()

    def __iter__(self):
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self.rules)

    def with_shared(self, network: str) -> "TargetSet":
        """Return a copy with ``exact(network)`` first, dropping any duplicate of it."""
        shared = TargetRule.exact(network)
        return TargetSet((shared,) + tuple(r for r in self.rules if r != shared))


class OutcomeKind(str, Enum):
    ALREADY_CONNECTED = "already_connected"
    CONNECTED = "connected"
    ATTACH_FAILED = "attach_failed"
    TARGET_MISSING = "target_missing"
    EMPTY_PREFIX_MATCH = "empty_prefix_match"
    ENDPOINT_NOT_FOUND = "endpoint_not_found"
    ENDPOINT_NOT_RUNNING = "endpoint_not_running"


WARNING_KINDS = frozenset(
    {
        OutcomeKind.ATTACH_FAILED,
        OutcomeKind.TARGET_MISSING,
        OutcomeKind.ENDPOINT_NOT_FOUND,
        OutcomeKind.ENDPOINT_NOT_RUNNING,
    }
)

SHORT_CIRCUIT_KINDS = frozenset({OutcomeKind.ENDPOINT_NOT_FOUND, OutcomeKind.ENDPOINT_NOT_RUNNING})


@dataclass(frozen=True)
class Outcome:
    kind: OutcomeKind
    subject: str  # network name, prefix identifier or endpoint id
    detail: str | None = None

    @property
    def is_warning(self) -> bool:
        return self.kind in WARNING_KINDS

    def as_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "subject": self.subject, "detail": self.detail}


@dataclass(frozen=True)
class ReconciliationReport:
    endpoint: str
    entries: tuple[Outcome, ...] = field(default_factory=tuple)

    def __iter__(self):
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def kinds(self) -> list[OutcomeKind]:
        return [e.kind for e in self.entries]

    @property
    def short_circuited(self) -> bool:
        return len(self.entries) == 1 and self.entries[0].kind in SHORT_CIRCUIT_KINDS

    @property
    def warnings(self) -> list[Outcome]:
        return [e for e in self.entries if e.is_warning]

    def networks(self, kind: OutcomeKind) -> set[str]:
        return {e.subject for e in self.entries if e.kind == kind}

    @property
    def attached(self) -> list[str]:
        """Networks the endpoint is on after this run, in report order."""
        wanted = {OutcomeKind.ALREADY_CONNECTED, OutcomeKind.CONNECTED}
        return [e.subject for e in self.entries if e.kind in wanted]

    def as_dict(self) -> dict[str, Any]:
        return {"endpoint": self.endpoint, "entries": [e.as_dict() for e in self.entries]}
