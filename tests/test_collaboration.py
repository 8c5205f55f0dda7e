"""
Collaboration tests: comments, attachments, dependencies, templates.
"""

import io
import os

from tracker.models import db
from tracker.models.collaboration import ActivityDependency, ActivityTemplate, Attachment, Comment
from tracker.models.notification import Notification


def _upload(client, activity_id, headers, content=b"hello world", name="report.txt"):
    return client.post(
        f"/api/activities/{activity_id}/attachments",
        headers=headers,
        data={"file": (io.BytesIO(content), name)},
        content_type="multipart/form-data",
    )


# ═══════════════════════════════════════════════════════════════════════════
#  COMMENTS
# ═══════════════════════════════════════════════════════════════════════════

class TestComments:
    def test_add_and_list(self, client, alice, bob_headers, alice_headers, make_activity):
        activity = make_activity(alice)
        res = client.post(f"/api/activities/{activity.id}/comments", headers=alice_headers,
                          json={"comment_text": "  first  "})
        assert res.status_code == 201
        assert res.get_json()["comment_text"] == "first"
        client.post(f"/api/activities/{activity.id}/comments", headers=bob_headers,
                    json={"comment_text": "second"})

        rows = client.get(f"/api/activities/{activity.id}/comments", headers=alice_headers).get_json()
        assert [r["comment_text"] for r in rows] == ["second", "first"]
        assert rows[0]["username"] == "bob"

    def test_blank_comment_rejected(self, client, alice, alice_headers, make_activity):
        activity = make_activity(alice)
        res = client.post(f"/api/activities/{activity.id}/comments", headers=alice_headers,
                          json={"comment_text": "   "})
        assert res.status_code == 400

    def test_comment_on_missing_activity(self, client, alice_headers):
        res = client.post("/api/activities/999/comments", headers=alice_headers, json={"comment_text": "x"})
        assert res.status_code == 404

    def test_delete_own_or_admin(self, client, alice, bob_headers, alice_headers, admin_headers, make_activity):
        activity = make_activity(alice)
        cid = client.post(f"/api/activities/{activity.id}/comments", headers=alice_headers,
                          json={"comment_text": "mine"}).get_json()["id"]
        assert client.delete(f"/api/comments/{cid}", headers=bob_headers).status_code == 403
        assert client.delete(f"/api/comments/{cid}", headers=admin_headers).status_code == 200
        assert db.session.get(Comment, cid) is None
        assert client.delete(f"/api/comments/{cid}", headers=admin_headers).status_code == 404


# ═══════════════════════════════════════════════════════════════════════════
#  ATTACHMENTS
# ═══════════════════════════════════════════════════════════════════════════

class TestAttachments:
    def test_upload_list_download(self, app, client, alice, alice_headers, make_activity):
        activity = make_activity(alice)
        res = _upload(client, activity.id, alice_headers)
        assert res.status_code == 201
        body = res.get_json()
        assert body["original_name"] == "report.txt"
        assert body["file_size"] == len(b"hello world")
        assert body["filename"].endswith("-report.txt")
        assert os.path.isfile(os.path.join(app.config["UPLOAD_FOLDER"], body["filename"]))

        rows = client.get(f"/api/activities/{activity.id}/attachments", headers=alice_headers).get_json()
        assert rows[0]["uploaded_by_name"] == "alice"

        res = client.get(f"/api/attachments/{body['id']}/download", headers=alice_headers)
        assert res.status_code == 200
        assert res.data == b"hello world"
        assert "report.txt" in res.headers["Content-Disposition"]

    def test_unsafe_name_is_sanitized(self, client, alice, alice_headers, make_activity):
        activity = make_activity(alice)
        body = _upload(client, activity.id, alice_headers, name="../../etc/passwd").get_json()
        assert "/" not in body["filename"]
        assert ".." not in body["filename"]

    def test_missing_file(self, client, alice, alice_headers, make_activity):
        activity = make_activity(alice)
        res = client.post(f"/api/activities/{activity.id}/attachments", headers=alice_headers,
                          data={}, content_type="multipart/form-data")
        assert res.status_code == 400

    def test_too_large_rejected_before_write(self, app, client, alice, alice_headers, make_activity):
        activity = make_activity(alice)
        app.config["MAX_UPLOAD_BYTES"] = 16
        res = _upload(client, activity.id, alice_headers, content=b"x" * 64)
        assert res.status_code == 413
        assert res.get_json()["code"] == "ERR_UPLOAD_TOO_LARGE"
        assert Attachment.query.count() == 0
        folder = app.config["UPLOAD_FOLDER"]
        assert not os.path.isdir(folder) or os.listdir(folder) == []

    def test_download_missing_file(self, app, client, alice, alice_headers, make_activity):
        activity = make_activity(alice)
        body = _upload(client, activity.id, alice_headers).get_json()
        os.remove(os.path.join(app.config["UPLOAD_FOLDER"], body["filename"]))
        res = client.get(f"/api/attachments/{body['id']}/download", headers=alice_headers)
        assert res.status_code == 404

    def test_download_missing_row(self, client, alice_headers):
        assert client.get("/api/attachments/999/download", headers=alice_headers).status_code == 404

    def test_delete_removes_file(self, app, client, alice, alice_headers, bob_headers, make_activity):
        activity = make_activity(alice)
        body = _upload(client, activity.id, alice_headers).get_json()
        path = os.path.join(app.config["UPLOAD_FOLDER"], body["filename"])

        assert client.delete(f"/api/attachments/{body['id']}", headers=bob_headers).status_code == 403
        assert client.delete(f"/api/attachments/{body['id']}", headers=alice_headers).status_code == 200
        assert not os.path.exists(path)
        assert Attachment.query.count() == 0


# ═══════════════════════════════════════════════════════════════════════════
#  DEPENDENCIES
# ═══════════════════════════════════════════════════════════════════════════

class TestDependencies:
    def test_add_notifies_owner(self, client, alice, bob_headers, make_activity):
        dependent = make_activity(alice, activity_name="Deploy")
        blocker = make_activity(alice, activity_name="Build")
        res = client.post(f"/api/activities/{dependent.id}/dependencies", headers=bob_headers,
                          json={"depends_on_activity_id": blocker.id})
        assert res.status_code == 201
        body = res.get_json()
        assert body["dependency_type"] == "blocks"
        assert body["depends_on_name"] == "Build"
        assert body["depends_on_status"] == "Planned"

        note = Notification.query.filter_by(user_id=alice.id, type="dependency").one()
        assert note.title == "New Dependency Added"
        assert note.activity_id == dependent.id

    def test_list_and_delete(self, client, alice, alice_headers, make_activity):
        a = make_activity(alice, activity_name="A")
        b = make_activity(alice, activity_name="B")
        client.post(f"/api/activities/{a.id}/dependencies", headers=alice_headers,
                    json={"depends_on_activity_id": b.id, "dependency_type": "relates"})
        rows = client.get(f"/api/activities/{a.id}/dependencies", headers=alice_headers).get_json()
        assert [r["dependency_type"] for r in rows] == ["relates"]

        res = client.delete(f"/api/dependencies/{rows[0]['id']}", headers=alice_headers)
        assert res.status_code == 200
        assert ActivityDependency.query.count() == 0

    def test_target_must_exist(self, client, alice, alice_headers, make_activity):
        a = make_activity(alice)
        res = client.post(f"/api/activities/{a.id}/dependencies", headers=alice_headers,
                          json={"depends_on_activity_id": 999})
        assert res.status_code == 404

    def test_self_dependency_rejected(self, client, alice, alice_headers, make_activity):
        a = make_activity(alice)
        res = client.post(f"/api/activities/{a.id}/dependencies", headers=alice_headers,
                          json={"depends_on_activity_id": a.id})
        assert res.status_code == 400

    def test_cycles_are_allowed(self, client, alice, alice_headers, make_activity):
        a = make_activity(alice, activity_name="A")
        b = make_activity(alice, activity_name="B")
        client.post(f"/api/activities/{a.id}/dependencies", headers=alice_headers,
                    json={"depends_on_activity_id": b.id})
        res = client.post(f"/api/activities/{b.id}/dependencies", headers=alice_headers,
                          json={"depends_on_activity_id": a.id})
        assert res.status_code == 201


# ═══════════════════════════════════════════════════════════════════════════
#  TEMPLATES
# ═══════════════════════════════════════════════════════════════════════════

class TestTemplates:
    def test_crud(self, client, alice_headers):
        res = client.post("/api/templates", headers=alice_headers,
                          json={"template_name": "Monthly patching", "priority": "High", "gxp_scope": "No"})
        assert res.status_code == 201
        tid = res.get_json()["id"]

        assert client.get("/api/templates", headers=alice_headers).get_json()[0]["template_name"] == "Monthly patching"
        body = client.get(f"/api/templates/{tid}", headers=alice_headers).get_json()
        assert body["priority"] == "High"
        assert body["created_by_name"] == "alice"

        assert client.delete(f"/api/templates/{tid}", headers=alice_headers).status_code == 200
        assert ActivityTemplate.query.count() == 0

    def test_name_required(self, client, alice_headers):
        assert client.post("/api/templates", headers=alice_headers, json={"priority": "High"}).status_code == 400

    def test_invalid_enum(self, client, alice_headers):
        res = client.post("/api/templates", headers=alice_headers,
                          json={"template_name": "x", "priority": "Urgent"})
        assert res.status_code == 400

    def test_delete_other_users_template(self, client, alice_headers, bob_headers, admin_headers):
        tid = client.post("/api/templates", headers=alice_headers,
                          json={"template_name": "x"}).get_json()["id"]
        assert client.delete(f"/api/templates/{tid}", headers=bob_headers).status_code == 403
        assert client.delete(f"/api/templates/{tid}", headers=admin_headers).status_code == 200

    def test_missing_template(self, client, alice_headers):
        assert client.get("/api/templates/999", headers=alice_headers).status_code == 404
