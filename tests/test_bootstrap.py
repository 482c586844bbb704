import pytest

from pnr import bootstrap
from pnr.bootstrap import render_report, run_bootstrap
from pnr.errors import InfrastructureUnavailable
from pnr.models import OutcomeKind, TargetRule, TargetSet

PROXY = "system-caddy"
LOGS = "logging-net"


def _targets(*rules):
    return TargetSet(tuple(rules)).with_shared(LOGS)


def test_full_run_creates_logging_network_connects_and_reloads(fake_runtime, fake_reloader):
    rt = fake_runtime(networks={"acme-web", "acme-db"}, endpoints={PROXY: {"networks": {"acme-web"}}})
    reloader = fake_reloader()

    result = run_bootstrap(rt, reloader, _targets(TargetRule.prefix("acme")), PROXY, LOGS)

    assert result.network_action == "created"
    assert result.report.entries[0].subject == LOGS
    assert result.report.networks(OutcomeKind.CONNECTED) == {LOGS, "acme-db"}
    assert result.report.networks(OutcomeKind.ALREADY_CONNECTED) == {"acme-web"}
    assert reloader.reloaded == [PROXY]
    assert result.reload_status == "reloaded"
    assert result.exit_code == 0


def test_second_run_is_all_already_connected(fake_runtime, fake_reloader):
    rt = fake_runtime(networks={"acme-web"}, endpoints={PROXY: {}})
    targets = _targets(TargetRule.prefix("acme"))
    run_bootstrap(rt, fake_reloader(), targets, PROXY, LOGS)

    again = run_bootstrap(rt, fake_reloader(), targets, PROXY, LOGS)
    assert again.network_action == "exists"
    assert set(again.report.kinds) == {OutcomeKind.ALREADY_CONNECTED}


def test_missing_endpoint_skips_reload_and_succeeds(fake_runtime, fake_reloader):
    rt = fake_runtime(networks={"acme-web"}, endpoints={})
    reloader = fake_reloader()

    result = run_bootstrap(rt, reloader, _targets(TargetRule.prefix("acme")), PROXY, LOGS)

    assert result.report.kinds == [OutcomeKind.ENDPOINT_NOT_FOUND]
    assert result.reload_status == "skipped"
    assert reloader.reloaded == []
    assert result.exit_code == 0


def test_attach_failures_are_warnings_only(fake_runtime, fake_reloader):
    rt = fake_runtime(networks={"acme-web"}, endpoints={PROXY: {}}, fail_attach={"acme-web": "boom"})
    result = run_bootstrap(rt, fake_reloader(), _targets(TargetRule.prefix("acme")), PROXY, LOGS)

    assert result.report.networks(OutcomeKind.ATTACH_FAILED) == {"acme-web"}
    assert result.exit_code == 0


def test_reload_failure_fails_the_run_but_keeps_attachments(fake_runtime, fake_reloader):
    rt = fake_runtime(networks={"acme-web"}, endpoints={PROXY: {}})
    result = run_bootstrap(rt, fake_reloader(fail_with="bad Caddyfile"), _targets(TargetRule.prefix("acme")), PROXY, LOGS)

    assert result.reload_status == "failed"
    assert "bad Caddyfile" in result.reload_error
    assert result.exit_code == 1
    assert "acme-web" in rt.endpoints[PROXY]["networks"]


def test_no_reloader_disables_reload(fake_runtime):
    rt = fake_runtime(networks=set(), endpoints={PROXY: {}})
    result = run_bootstrap(rt, None, _targets(), PROXY, LOGS)
    assert result.reload_status == "disabled"


def test_logging_network_create_failure_is_recorded(fake_runtime, fake_reloader):
    rt = fake_runtime(networks=set(), endpoints={PROXY: {}}, fail_create="permission denied")
    result = run_bootstrap(rt, fake_reloader(), _targets(), PROXY, LOGS)

    assert result.network_action == "failed"
    assert "permission denied" in result.errors[0]
    assert result.report.kinds == [OutcomeKind.TARGET_MISSING]
    assert result.exit_code == 0


def test_infrastructure_failure_propagates(fake_runtime, fake_reloader):
    rt = fake_runtime(endpoints={PROXY: {}})
    rt.unavailable = True
    with pytest.raises(InfrastructureUnavailable):
        run_bootstrap(rt, fake_reloader(), _targets(), PROXY, LOGS)


def test_alert_sent_only_on_problems(fake_runtime, fake_reloader, monkeypatch):
    sent = []
    monkeypatch.setattr(bootstrap, "send_email", lambda subject, body: sent.append((subject, body)) or True)

    rt = fake_runtime(networks={"acme-web"}, endpoints={PROXY: {}})
    run_bootstrap(rt, fake_reloader(), _targets(TargetRule.prefix("acme")), PROXY, LOGS)
    assert sent == []

    rt = fake_runtime(networks={"acme-web"}, endpoints={PROXY: {}}, fail_attach={"acme-web": "gone"})
    run_bootstrap(rt, fake_reloader(), _targets(TargetRule.prefix("acme")), PROXY, LOGS)
    assert len(sent) == 1
    assert "Attach failed: acme-web (gone)" in sent[0][1]


def test_render_report_lines(fake_runtime, fake_reloader):
    rt = fake_runtime(networks={"acme-web"}, endpoints={PROXY: {}})
    targets = _targets(TargetRule.prefix("acme"), TargetRule.prefix("ghost"), TargetRule.exact("nope"))
    lines = render_report(run_bootstrap(rt, fake_reloader(), targets, PROXY, LOGS))

    assert lines[0] == f"[OK] Created logging network: {LOGS}"
    assert f"[OK] Connected {PROXY} to: acme-web" in lines
    assert "[INFO] No networks found with prefix: ghost-" in lines
    assert "[WARN] Network not found: nope" in lines
    assert "[OK] Configuration reloaded" in lines
    assert f"  - {LOGS} (logging infrastructure)" in lines
    assert "  - (no networks found for ghost)" in lines


def test_render_report_for_failed_reload(fake_runtime, fake_reloader):
    rt = fake_runtime(networks=set(), endpoints={PROXY: {}})
    lines = render_report(run_bootstrap(rt, fake_reloader(fail_with="oops"), _targets(), PROXY, LOGS))
    assert any(line.startswith("[ERROR] Failed to reload configuration") for line in lines)
    assert any("caddy validate" in line for line in lines)


def test_skip_message_names_the_short_circuit(fake_runtime, fake_reloader):
    missing = fake_runtime(networks=set(), endpoints={})
    lines = render_report(run_bootstrap(missing, fake_reloader(), _targets(), PROXY, LOGS))
    assert "[WARN] Container not found, skipping reload" in lines

    stopped = fake_runtime(networks=set(), endpoints={PROXY: {"running": False}})
    lines = render_report(run_bootstrap(stopped, fake_reloader(), _targets(), PROXY, LOGS))
    assert "[WARN] Container is not running, skipping reload" in lines


def test_failed_reload_hint_is_in_json(fake_runtime, fake_reloader):
    rt = fake_runtime(networks=set(), endpoints={PROXY: {}})
    body = run_bootstrap(rt, fake_reloader(fail_with="oops"), _targets(), PROXY, LOGS).as_dict()
    assert "caddy validate" in body["reload_hint"]
