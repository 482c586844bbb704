from dataclasses import replace

from pnr import alerts


class _FakeSMTP:
    sent = []

    def __init__(self, host, port, timeout=None):
        self.host = host

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, user, password):
        pass

    def sendmail(self, sender, to, body):
        _FakeSMTP.sent.append((sender, to))


def test_disabled_by_default(monkeypatch):
    monkeypatch.setattr(alerts, "settings", replace(alerts.settings, enable_email=False))
    assert alerts.send_email("subject", "body") is False


def test_incomplete_smtp_settings(monkeypatch):
    monkeypatch.setattr(alerts, "settings", replace(alerts.settings, enable_email=True, smtp_user=None))
    assert alerts.send_email("subject", "body") is False


def test_sends_when_configured(monkeypatch):
    monkeypatch.setattr(
        alerts,
        "settings",
        replace(
            alerts.settings,
            enable_email=True,
            smtp_user="u",
            smtp_password="p",
            email_from="pnr@example.com",
            email_to="ops@example.com",
        ),
    )
    monkeypatch.setattr(alerts.smtplib, "SMTP", _FakeSMTP)
    _FakeSMTP.sent.clear()

    assert alerts.send_email("subject", "body") is True
    assert _FakeSMTP.sent == [("pnr@example.com", ["ops@example.com"])]
