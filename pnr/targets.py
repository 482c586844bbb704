from __future__ import annotations

import os
import re

from dotenv import dotenv_values

from .errors import TargetConfigError
from .models import TargetRule, TargetSet

_SPLIT_RE = re.compile(r"[\s,]+")


def _tokens(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [t for t in _SPLIT_RE.split(raw.strip()) if t]


def parse_rule(token: str) -> TargetRule:
    """Parse ``exact:<name>`` / ``prefix:<identifier>``."""
    kind, sep, value = token.partition(":")
    if not sep:
        raise TargetConfigError(f"Target {token!r} must look like exact:<name> or prefix:<project>")
    try:
        return TargetRule(kind.strip().lower(), value.strip())
    except ValueError as e:
        raise TargetConfigError(str(e)) from e


def rules_from_values(values: dict[str, str | None]) -> list[TargetRule]:
    """Build typed rules from the TARGETS / PROJECTS / NETWORKS keys of a projects file.

    PROJECTS entries are prefix rules and NETWORKS entries are exact rules, as
    in the older shell-sourced files.
    """
    rules: list[TargetRule] = []
    for token in _tokens(values.get("TARGETS")):
        rules.append(parse_rule(token))
    try:
        rules.extend(TargetRule.prefix(p) for p in _tokens(values.get("PROJECTS")))
        rules.extend(TargetRule.exact(n) for n in _tokens(values.get("NETWORKS")))
    except ValueError as e:
        raise TargetConfigError(str(e)) from e

    out: list[TargetRule] = []
    for r in rules:
        if r not in out:
            out.append(r)
    return out


def load_target_set(path: str, logging_network: str) -> TargetSet:
    """Load declared rules from ``path``; the shared logging network always comes first."""
    if not os.path.isfile(path):
        raise TargetConfigError(
            f"projects file not found at: {path} (copy projects.env.example to projects.env and configure your projects)"
        )
    rules = rules_from_values(dotenv_values(path))
    if not rules:
        raise TargetConfigError(f"No TARGETS, PROJECTS or NETWORKS declared in {path}")
    return TargetSet(tuple(rules)).with_shared(logging_network)


def render_projects_file(rules: list[TargetRule]) -> str:
    targets = " ".join(str(r) for r in rules)
    return (
        "# Networks the proxy should join.\n"
        "#   prefix:<project>  every network named <project>-*\n"
        "#   exact:<name>      one network by name\n"
        f'TARGETS="{targets}"\n'
    )
