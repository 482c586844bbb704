from __future__ import annotations

import argparse
import json
import logging
import os
import sys

import docker
import requests
from docker.errors import DockerException

from pnr import db
from pnr.bootstrap import render_report, run_bootstrap
from pnr.docker_ops import DockerRuntime
from pnr.errors import InfrastructureUnavailable, ProvisionError, TargetConfigError
from pnr.models import TargetRule
from pnr.provision import initialize, validate_setup
from pnr.reload import DockerReloadTrigger
from pnr.settings import settings
from pnr.targets import load_target_set, parse_rule


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _err(msg: str) -> None:
    print(f"[ERROR] {msg}", file=sys.stderr)


def _rules_from_args(args: argparse.Namespace) -> list[TargetRule]:
    rules = [parse_rule(t) for t in (args.target or [])]
    rules.extend(TargetRule.prefix(p) for p in (args.project or []))
    return rules


def cmd_bootstrap(args: argparse.Namespace) -> int:
    try:
        targets = load_target_set(args.projects_file, args.logging_network)
    except TargetConfigError as e:
        _err(str(e))
        return 1

    try:
        runtime = DockerRuntime.from_env()
        runtime.ping()
        reloader = None if args.no_reload else DockerReloadTrigger(runtime.client, args.caddy_config)
        result = run_bootstrap(runtime, reloader, targets, args.container, args.logging_network)
    except InfrastructureUnavailable as e:
        db.log_event("ERROR", str(e), endpoint=args.container)
        _err(str(e))
        return 1

    if args.json:
        _print(result.as_dict())
    else:
        print("\n".join(render_report(result)))
    return result.exit_code


def cmd_init(args: argparse.Namespace) -> int:
    try:
        rules = _rules_from_args(args)
    except ValueError as e:
        _err(str(e))
        return 1

    root = os.path.abspath(args.root)
    try:
        client = docker.from_env(timeout=settings.docker_timeout_s)
        res = initialize(
            client,
            root,
            args.email,
            rules,
            overwrite=args.overwrite,
            chown=not args.no_chown,
            projects_file=os.path.basename(args.projects_file),
        )
    except DockerException as e:
        _err(f"Docker daemon is not running or not accessible: {e}")
        return 1
    except (InfrastructureUnavailable, ProvisionError) as e:
        _err(str(e))
        return 1

    print(f"[OK] .env {res.env_status}")
    print(f"[OK] {os.path.basename(args.projects_file)} {res.projects_status}")
    for w in res.warnings:
        print(f"[WARN] {w}")
    if res.grafana_password:
        print("")
        print("IMPORTANT - SAVE THESE CREDENTIALS")
        print("  Grafana:          admin / " + res.grafana_password)
        print("  Caddy basic auth: admin / " + (res.caddy_password or ""))
        print(f"  Also saved to {res.credentials_path}; delete it after saving them elsewhere.")
    for p in res.problems:
        print(f"[WARN] {p}")
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    problems = validate_setup(os.path.abspath(args.root), os.path.basename(args.projects_file))
    for p in problems:
        _err(p)
    if problems:
        _err(f"Validation failed with {len(problems)} error(s)")
        return 1
    print("[OK] All validations passed")
    return 0


def _auth(args: argparse.Namespace) -> tuple[str, str]:
    return (args.user, args.password or "")


def cmd_events(args: argparse.Namespace) -> int:
    r = requests.get(f"{args.api.rstrip('/')}/events", params={"limit": args.limit}, auth=_auth(args), timeout=10)
    _print(r.json())
    return 0 if r.ok else 1


def cmd_reconcile_remote(args: argparse.Namespace) -> int:
    payload = {
        "targets": args.target or None,
        "container": args.container,
        "reload": not args.no_reload,
    }
    r = requests.post(f"{args.api.rstrip('/')}/reconcile", json=payload, auth=_auth(args), timeout=120)
    body = r.json()
    _print(body)
    if not r.ok:
        return 1
    return int(body.get("exit_code", 0))


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="pnr", description="Proxy Network Reconciler CLI")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    s_boot = sub.add_parser("bootstrap", help="Connect the proxy to project networks and reload it")
    s_boot.add_argument("--projects-file", default=settings.projects_file)
    s_boot.add_argument("--container", default=settings.proxy_container)
    s_boot.add_argument("--logging-network", default=settings.logging_network)
    s_boot.add_argument("--caddy-config", default=settings.caddy_config)
    s_boot.add_argument("--no-reload", action="store_true", help="Skip the configuration reload")
    s_boot.add_argument("--json", action="store_true", help="Print the result as JSON")
    s_boot.set_defaults(func=cmd_bootstrap)

    s_init = sub.add_parser("init", help="Generate secrets, env files and data directories")
    s_init.add_argument("--root", default=".")
    s_init.add_argument("--email", default="admin@example.com", help="Admin email for Let's Encrypt notifications")
    s_init.add_argument("--target", action="append", help="Rule like prefix:acme or exact:shared-net (repeatable)")
    s_init.add_argument("--project", action="append", help="Shortcut for --target prefix:<project> (repeatable)")
    s_init.add_argument("--projects-file", default=settings.projects_file)
    s_init.add_argument("--overwrite", action="store_true", help="Overwrite existing .env / projects file (backs up .env)")
    s_init.add_argument("--no-chown", action="store_true", help="Do not change data directory ownership")
    s_init.set_defaults(func=cmd_init)

    s_val = sub.add_parser("validate", help="Check the provisioned layout")
    s_val.add_argument("--root", default=".")
    s_val.add_argument("--projects-file", default=settings.projects_file)
    s_val.set_defaults(func=cmd_validate)

    for name, func, help_text in (
        ("events", cmd_events, "Show recent events from a running API"),
        ("reconcile-remote", cmd_reconcile_remote, "Ask a running API to reconcile"),
    ):
        s = sub.add_parser(name, help=help_text)
        s.add_argument("--api", default="http://localhost:8000", help="API base URL")
        s.add_argument("--user", default=settings.api_user)
        s.add_argument("--password", default=settings.api_password)
        s.set_defaults(func=func)
        if name == "events":
            s.add_argument("--limit", type=int, default=20)
        else:
            s.add_argument("--target", action="append")
            s.add_argument("--container")
            s.add_argument("--no-reload", action="store_true")

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
