"""
Tests: ops alert webhook, heartbeat and the outbound webhook gateway.

The shared ``webhook_gateway`` singleton gets a mocked ``_session`` so no
HTTP call leaves the process.
"""

from unittest.mock import MagicMock

import pytest
import requests

from eventhub.integrations.webhook_gateway import WebhookGateway, webhook_gateway
from eventhub.models.scheduling import CronAlertLog
from eventhub.services.alerting import HEARTBEAT_JOB, ping_alert_webhook, report_cron_failure

WEBHOOK_URL = "https://hooks.example.com/ops"


def _response(status=200, body="", json_body=None):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.text = body
    if json_body is not None:
        resp.headers = {"content-type": "application/json"}
        resp.json.return_value = json_body
    else:
        resp.headers = {"content-type": "text/plain"}
    return resp


@pytest.fixture()
def http(monkeypatch):
    session = MagicMock()
    monkeypatch.setattr(webhook_gateway, "_session", session)
    return session


@pytest.fixture()
def webhook_configured(app, monkeypatch):
    monkeypatch.setitem(app.config, "CRON_ALERT_WEBHOOK_URL", WEBHOOK_URL)


# ═══════════════════════════════════════════════════════════════════════════
#  WebhookGateway
# ═══════════════════════════════════════════════════════════════════════════

class TestWebhookGateway:
    def test_success_parses_json(self):
        session = MagicMock()
        session.post.return_value = _response(200, '{"ok": true}', {"ok": True})
        result = WebhookGateway(session).post_json(WEBHOOK_URL, {"a": 1}, bearer_token="tok")

        assert result.ok is True
        assert result.data == {"ok": True}
        headers = session.post.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer tok"

    def test_http_error(self):
        session = MagicMock()
        session.post.return_value = _response(502, "bad gateway")
        result = WebhookGateway(session).post_json(WEBHOOK_URL, {})

        assert result.ok is False
        assert result.status_code == 502
        assert result.error == "HTTP 502: bad gateway"

    def test_timeout(self):
        session = MagicMock()
        session.post.side_effect = requests.Timeout()
        result = WebhookGateway(session).post_json(WEBHOOK_URL, {}, timeout=3)

        assert result.ok is False
        assert result.status_code is None
        assert "timed out" in result.error

    def test_network_error(self):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("refused")
        result = WebhookGateway(session).post_json(WEBHOOK_URL, {})

        assert result.ok is False
        assert result.to_dict()["status"] == 0
        assert "refused" in result.error


# ═══════════════════════════════════════════════════════════════════════════
#  Failure alerts
# ═══════════════════════════════════════════════════════════════════════════

class TestReportCronFailure:
    def test_logged_without_webhook(self, http):
        report_cron_failure("sla-reminders", "Boom", {"failed": 2})

        http.post.assert_not_called()
        alert = CronAlertLog.query.one()
        assert alert.severity == "error"
        assert alert.detail == '{"failed": 2}'
        assert alert.response_body == "Webhook URL not configured"

    def test_posts_and_records_response(self, http, webhook_configured):
        http.post.return_value = _response(200, '{"received": true}', {"received": True})

        report_cron_failure("weekly-digest", "Digest failed", "db gone")

        payload = http.post.call_args.kwargs["json"]
        assert payload["job"] == "weekly-digest"
        assert payload["message"] == "Digest failed"
        assert payload["timestamp"] == "2025-05-01T00:00:00.000Z"
        alert = CronAlertLog.query.one()
        assert alert.response_status == 200
        assert alert.response_body == '{"received": true}'

    def test_webhook_rejection_still_logged(self, http, webhook_configured):
        http.post.return_value = _response(500, "nope")

        report_cron_failure("ai-dispatch", "Dispatch failed")

        alert = CronAlertLog.query.one()
        assert alert.response_status == 500
        assert alert.detail == "HTTP 500: nope"


class TestHeartbeat:
    def test_skipped_without_webhook(self, http):
        result = ping_alert_webhook()

        assert result == {"ok": False, "status": 0, "body": "Webhook URL not configured"}
        alert = CronAlertLog.query.one()
        assert alert.job == HEARTBEAT_JOB
        assert alert.severity == "info"

    def test_success(self, http, webhook_configured):
        http.post.return_value = _response(204, "")

        result = ping_alert_webhook()

        assert result["ok"] is True
        assert result["status"] == 204
        assert CronAlertLog.query.one().severity == "success"

    def test_rejected(self, http, webhook_configured):
        http.post.return_value = _response(410, "gone")

        result = ping_alert_webhook()

        assert result["ok"] is False
        assert result["status"] == 410
        alert = CronAlertLog.query.one()
        assert alert.severity == "error"
        assert alert.message == "Cron alert webhook heartbeat failed"

    def test_network_failure(self, http, webhook_configured):
        http.post.side_effect = requests.ConnectionError("dns")

        result = ping_alert_webhook()

        assert result["ok"] is False
        assert result["status"] == 0
        assert CronAlertLog.query.one().message == "Cron alert webhook heartbeat failed to send"

    def test_cron_endpoint_heartbeat_ok(self, client, http, webhook_configured):
        http.post.return_value = _response(200, "ok")

        res = client.get("/api/cron/alert-heartbeat",
                         headers={"Authorization": "Bearer test-cron-secret"})

        assert res.status_code == 200
        assert res.get_json()["ok"] is True
