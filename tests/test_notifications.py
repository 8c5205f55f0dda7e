"""
Notification & email tests: in-app inbox, test email, email log.
"""

import time

from tracker.models import db
from tracker.models.notification import Notification
from tracker.models.scheduling import EmailLog
from tracker.services.email_service import EmailService
from tracker.services.notification import NotificationService


def _notify(user, title, **kw):
    return NotificationService.create(user_id=user.id, title=title, **kw)


class TestInbox:
    def test_list_newest_first_with_unread_count(self, client, alice, bob, alice_headers):
        _notify(alice, "first")
        second = _notify(alice, "second")
        _notify(bob, "not mine")
        second.mark_read()
        db.session.commit()

        body = client.get("/api/notifications", headers=alice_headers).get_json()
        assert [n["title"] for n in body["notifications"]] == ["second", "first"]
        assert body["unread_count"] == 1

    def test_list_requires_auth(self, client):
        assert client.get("/api/notifications").status_code == 401

    def test_mark_read(self, client, alice, alice_headers):
        n = _notify(alice, "hello")
        res = client.put(f"/api/notifications/{n.id}/read", headers=alice_headers)
        assert res.status_code == 200
        assert res.get_json()["is_read"] is True

    def test_cannot_mark_other_users_notification(self, client, bob, alice_headers):
        n = _notify(bob, "private")
        assert client.put(f"/api/notifications/{n.id}/read", headers=alice_headers).status_code == 404
        assert db.session.get(Notification, n.id).is_read is False

    def test_read_all(self, client, alice, bob, alice_headers):
        _notify(alice, "a")
        _notify(alice, "b")
        _notify(bob, "c")
        body = client.put("/api/notifications/read-all", headers=alice_headers).get_json()
        assert body["updated"] == 2
        assert NotificationService.unread_count(alice.id) == 0
        assert NotificationService.unread_count(bob.id) == 1

    def test_clear_all(self, client, alice, bob, alice_headers):
        _notify(alice, "a")
        _notify(bob, "b")
        body = client.delete("/api/notifications/clear-all", headers=alice_headers).get_json()
        assert body["deleted"] == 1
        assert Notification.query.filter_by(user_id=alice.id).count() == 0
        assert Notification.query.filter_by(user_id=bob.id).count() == 1


class TestAssignmentNotifications:
    def test_admin_assigning_creator_notifies_assignee(self, client, admin_headers, alice):
        from conftest import activity_payload

        res = client.post("/api/activities", headers=admin_headers,
                          json=activity_payload(assigned_to=alice.id))
        assert res.status_code == 201
        note = Notification.query.filter_by(user_id=alice.id).one()
        assert note.type == "assignment"
        assert note.activity_id == res.get_json()["id"]

    def test_assignment_email_when_owner_has_address(self, client, admin_headers, alice):
        from conftest import activity_payload

        alice.notify_email = "alice@example.com"
        db.session.commit()
        client.post("/api/activities", headers=admin_headers,
                    json=activity_payload(assigned_to=alice.id))
        log = EmailLog.query.filter_by(recipient="alice@example.com").one()
        assert log.template_name == "assignment"
        assert log.status == "sent"

    def test_slow_smtp_does_not_delay_create(self, app, client, admin_headers, alice, monkeypatch):
        from conftest import activity_payload

        alice.notify_email = "alice@example.com"
        db.session.commit()
        monkeypatch.setitem(app.config, "EMAIL_ASYNC", True)
        monkeypatch.setitem(app.config, "MAIL_SERVER", "smtp.example.com")

        def slow_smtp(*, to_email, subject, html_body):
            time.sleep(1.5)
            raise OSError("connection timed out")

        monkeypatch.setattr(EmailService, "_send_smtp", staticmethod(slow_smtp))

        started = time.monotonic()
        res = client.post("/api/activities", headers=admin_headers,
                          json=activity_payload(assigned_to=alice.id))
        elapsed = time.monotonic() - started

        assert res.status_code == 201
        assert elapsed < 1.0
        assert Notification.query.filter_by(user_id=alice.id).count() == 1

        EmailService.wait_for_pending(timeout=5)
        db.session.expire_all()
        log = EmailLog.query.filter_by(recipient="alice@example.com").one()
        assert log.status == "failed"
        assert "timed out" in log.error_message


# ═══════════════════════════════════════════════════════════════════════════
#  EMAIL
# ═══════════════════════════════════════════════════════════════════════════

class TestEmail:
    def test_send_test_email_logged_in_test_mode(self, client, alice_headers):
        res = client.post("/api/notifications/test", headers=alice_headers,
                          json={"email": "someone@example.com"})
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "sent"
        assert "test mode" in body["message"]

        log = EmailLog.query.one()
        assert log.recipient == "someone@example.com"
        assert log.template_name == "test"
        assert log.sent_at is not None

    def test_email_required(self, client, alice_headers):
        assert client.post("/api/notifications/test", headers=alice_headers, json={}).status_code == 400

    def test_email_must_be_valid(self, client, alice_headers):
        res = client.post("/api/notifications/test", headers=alice_headers, json={"email": "not-an-email"})
        assert res.status_code == 400
        assert EmailLog.query.count() == 0

    def test_activity_email_subject(self, alice, make_activity):
        activity = make_activity(alice, activity_name="Backup restore")
        log = EmailService.send_activity_email("a@example.com", activity, "reminder")
        assert log.subject == 'Reminder: Activity "Backup restore" starts in 3 days'
        assert log.activity_id == activity.id

    def test_unknown_template(self, alice, make_activity):
        activity = make_activity(alice)
        assert EmailService.send_activity_email("a@example.com", activity, "nope") is None

    def test_smtp_failure_recorded(self, app, monkeypatch, alice, make_activity):
        import smtplib

        def boom(**kwargs):
            raise smtplib.SMTPException("relay refused")

        activity = make_activity(alice)
        monkeypatch.setitem(app.config, "MAIL_SERVER", "smtp.example.com")
        monkeypatch.setattr(EmailService, "_send_smtp", staticmethod(boom))
        log = EmailService.send_activity_email("a@example.com", activity, "weekly")
        assert log.status == "failed"
        assert "relay refused" in log.error_message


class TestEmailLogEndpoint:
    def _seed(self):
        for i in range(3):
            EmailService.send(to_email=f"u{i}@example.com", subject=f"s{i}", html_body="<p/>")
        failed = EmailService.send(to_email="x@example.com", subject="bad", html_body="<p/>")
        failed.status = "failed"
        db.session.commit()

    def test_admin_pages_and_filters(self, client, admin_headers):
        self._seed()
        body = client.get("/api/email-logs?limit=2", headers=admin_headers).get_json()
        assert body["total"] == 4
        assert len(body["items"]) == 2
        assert body["items"][0]["subject"] == "bad"

        body = client.get("/api/email-logs?status=failed", headers=admin_headers).get_json()
        assert [i["recipient"] for i in body["items"]] == ["x@example.com"]

    def test_client_forbidden(self, client, alice_headers):
        assert client.get("/api/email-logs", headers=alice_headers).status_code == 403
