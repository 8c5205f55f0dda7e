"""
Activity lifecycle tests.

Covers:
  - Sprint / year derivation
  - Create validation, duplicate detection, admin assignment
  - List views (all / my / shared) and filters incl. archived
  - Update permissions and the change description
  - Archive / unarchive, stats, sprint progress
  - Delete (admin) and its cleanup of dependent rows
  - History and the audit trail
"""

from datetime import date

import pytest

from conftest import activity_payload
from tracker.models import db
from tracker.models.activity import Activity, EditHistory, calculate_sprint, make_unique_identifier
from tracker.models.collaboration import ActivityDependency, Attachment, Comment
from tracker.models.notification import Notification
from tracker.services.activity_service import percentage


# ═══════════════════════════════════════════════════════════════════════════
#  DERIVED FIELDS
# ═══════════════════════════════════════════════════════════════════════════

class TestDerivedFields:
    @pytest.mark.parametrize("month,sprint", [
        (1, 1), (3, 1), (4, 2), (6, 2), (7, 3), (9, 3), (10, 4), (12, 4),
    ])
    def test_sprint_is_quarter(self, month, sprint):
        assert calculate_sprint(date(2025, month, 15)) == sprint

    def test_unique_identifier_normalizes_name(self):
        assert make_unique_identifier("  Patch   Server ", date(2025, 2, 10), 7) == "patch_server_2025-02-10_7"

    @pytest.mark.parametrize("completed,total,expected", [
        (0, 0, 0), (1, 3, 33), (2, 3, 67), (1, 2, 50), (1, 8, 13), (3, 3, 100),
    ])
    def test_percentage_rounds_half_up(self, completed, total, expected):
        assert percentage(completed, total) == expected


# ═══════════════════════════════════════════════════════════════════════════
#  CREATE
# ═══════════════════════════════════════════════════════════════════════════

class TestCreate:
    def test_create_derives_sprint_and_year(self, client, alice, alice_headers):
        res = client.post("/api/activities", headers=alice_headers, json=activity_payload())
        assert res.status_code == 201
        body = res.get_json()
        assert body["sprint"] == 1
        activity = db.session.get(Activity, body["id"])
        assert activity.activity_year == 2025
        assert activity.created_by == alice.id
        assert activity.owner_id == alice.id
        assert activity.owner_name == "alice"
        assert activity.unique_identifier == f"patch_server_2025-02-10_{alice.id}"

    def test_create_writes_created_history(self, client, alice_headers):
        res = client.post("/api/activities", headers=alice_headers, json=activity_payload())
        rows = EditHistory.query.filter_by(activity_id=res.get_json()["id"]).all()
        assert len(rows) == 1
        assert rows[0].field_changed == "created"

    def test_missing_required_fields(self, client, alice_headers):
        res = client.post("/api/activities", headers=alice_headers, json={"activity_name": "x"})
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_REQUIRED"
        assert {"gxp_scope", "priority", "risk_level", "activity_date", "status"} <= set(body["details"])

    def test_invalid_enum_value(self, client, alice_headers):
        res = client.post("/api/activities", headers=alice_headers,
                          json=activity_payload(priority="Urgent"))
        assert res.status_code == 400
        assert "priority" in res.get_json()["details"]

    def test_invalid_date(self, client, alice_headers):
        res = client.post("/api/activities", headers=alice_headers,
                          json=activity_payload(activity_date="not-a-date"))
        assert res.status_code == 400

    def test_duplicate_activity(self, client, alice_headers):
        client.post("/api/activities", headers=alice_headers, json=activity_payload())
        res = client.post("/api/activities", headers=alice_headers,
                          json=activity_payload(activity_name="patch  SERVER"))
        assert res.status_code == 409
        assert res.get_json()["duplicate"] is True
        assert Activity.query.count() == 1

    def test_same_name_different_creator_allowed(self, client, alice_headers, bob_headers):
        assert client.post("/api/activities", headers=alice_headers, json=activity_payload()).status_code == 201
        assert client.post("/api/activities", headers=bob_headers, json=activity_payload()).status_code == 201

    def test_admin_assigns_to_user(self, client, admin_headers, alice):
        res = client.post("/api/activities", headers=admin_headers,
                          json=activity_payload(assigned_to=alice.id))
        activity = db.session.get(Activity, res.get_json()["id"])
        assert activity.created_by == alice.id
        assert activity.owner_id == alice.id
        notes = Notification.query.filter_by(user_id=alice.id).all()
        assert [n.type for n in notes] == ["assignment"]

    def test_client_assigned_to_is_ignored(self, client, alice, alice_headers, bob):
        res = client.post("/api/activities", headers=alice_headers,
                          json=activity_payload(assigned_to=bob.id))
        assert db.session.get(Activity, res.get_json()["id"]).created_by == alice.id

    def test_backup_person_is_notified(self, client, alice_headers, bob):
        bob.notify_email = "bob@example.com"
        db.session.commit()
        res = client.post("/api/activities", headers=alice_headers,
                          json=activity_payload(backup_person=bob.id))
        assert res.status_code == 201
        note = Notification.query.filter_by(user_id=bob.id).one()
        assert note.type == "backup_assignment"
        from tracker.models.scheduling import EmailLog
        log = EmailLog.query.filter_by(recipient="bob@example.com").one()
        assert log.template_name == "backup_assignment"
        assert log.status == "sent"


# ═══════════════════════════════════════════════════════════════════════════
#  LIST VIEWS
# ═══════════════════════════════════════════════════════════════════════════

class TestListViews:
    def test_all_view_admin_only(self, client, admin_headers, alice_headers):
        assert client.get("/api/activities", headers=admin_headers).status_code == 200
        assert client.get("/api/activities", headers=alice_headers).status_code == 403

    def test_my_view_excludes_shared(self, client, alice, alice_headers, make_activity):
        make_activity(alice, activity_name="Private")
        make_activity(alice, activity_name="Public", is_shared=True)
        names = [a["activity_name"] for a in client.get("/api/activities/my", headers=alice_headers).get_json()]
        assert names == ["Private"]

    def test_my_view_includes_backup_role(self, client, alice, bob, bob_headers, make_activity):
        make_activity(alice, backup_person=bob.id)
        rows = client.get("/api/activities/my", headers=bob_headers).get_json()
        assert len(rows) == 1
        assert rows[0]["backup_person_name"] == "bob"
        assert rows[0]["created_by_name"] == "alice"

    def test_shared_view(self, client, alice, bob_headers, make_activity):
        make_activity(alice, activity_name="Public", is_shared=True)
        make_activity(alice, activity_name="Private")
        names = [a["activity_name"] for a in client.get("/api/activities/shared", headers=bob_headers).get_json()]
        assert names == ["Public"]

    def test_ordering_and_filters(self, client, alice, admin_headers, make_activity):
        make_activity(alice, activity_name="Late", activity_date="2025-11-01")
        make_activity(alice, activity_name="Early", activity_date="2025-01-05", status="Completed")
        make_activity(alice, activity_name="Middle", activity_date="2025-05-20")

        rows = client.get("/api/activities", headers=admin_headers).get_json()
        assert [a["activity_name"] for a in rows] == ["Early", "Middle", "Late"]

        rows = client.get("/api/activities?sprint=2", headers=admin_headers).get_json()
        assert [a["activity_name"] for a in rows] == ["Middle"]

        rows = client.get("/api/activities?startDate=2025-02-01&endDate=2025-12-31",
                          headers=admin_headers).get_json()
        assert [a["activity_name"] for a in rows] == ["Middle", "Late"]

        rows = client.get("/api/activities?status=Completed", headers=admin_headers).get_json()
        assert [a["activity_name"] for a in rows] == ["Early"]

    def test_round_trip_fields(self, client, alice, alice_headers):
        payload = activity_payload(
            description="Monthly patching", department="Local IT", it_type="Local IT",
            gxp_impact="non-GxP", business_benefit="Security", tco_value="1250.50",
            progress_percentage=40,
        )
        client.post("/api/activities", headers=alice_headers, json=payload)
        row = client.get("/api/activities/my", headers=alice_headers).get_json()[0]
        for field in ("activity_name", "gxp_scope", "priority", "risk_level", "activity_date",
                      "status", "description", "department", "it_type", "gxp_impact", "business_benefit"):
            assert row[field] == payload[field]
        assert row["tco_value"] == 1250.5
        assert row["progress_percentage"] == 40
        assert row["sprint"] == 1
        assert row["activity_year"] == 2025

    def test_get_single_activity_visibility(self, client, alice, alice_headers, bob_headers,
                                            admin_headers, make_activity):
        activity = make_activity(alice)
        assert client.get(f"/api/activities/{activity.id}", headers=alice_headers).status_code == 200
        assert client.get(f"/api/activities/{activity.id}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/activities/{activity.id}", headers=bob_headers).status_code == 403
        assert client.get("/api/activities/999", headers=alice_headers).status_code == 404


# ═══════════════════════════════════════════════════════════════════════════
#  UPDATE
# ═══════════════════════════════════════════════════════════════════════════

class TestUpdate:
    def test_other_client_forbidden_admin_allowed(self, client, alice, bob_headers, admin_headers, make_activity):
        activity = make_activity(alice)
        res = client.put(f"/api/activities/{activity.id}", headers=bob_headers,
                         json=activity_payload(status="Completed"))
        assert res.status_code == 403

        res = client.put(f"/api/activities/{activity.id}", headers=admin_headers,
                         json=activity_payload(status="Completed"))
        assert res.status_code == 200

        latest = (EditHistory.query.filter_by(activity_id=activity.id)
                  .order_by(EditHistory.id.desc()).first())
        assert latest.field_changed == "updated"
        assert latest.change_description == 'Status: "Planned" → "Completed"'
        assert EditHistory.query.filter_by(activity_id=activity.id).count() == 2

    def test_update_recomputes_sprint(self, client, alice, alice_headers, make_activity):
        activity = make_activity(alice)
        res = client.put(f"/api/activities/{activity.id}", headers=alice_headers,
                         json=activity_payload(activity_date="2025-08-01"))
        assert res.get_json()["sprint"] == 3
        refreshed = db.session.get(Activity, activity.id)
        assert refreshed.sprint == 3
        assert refreshed.unique_identifier.endswith(f"2025-08-01_{alice.id}")

    def test_multiple_changes_joined(self, client, alice, alice_headers, make_activity):
        activity = make_activity(alice)
        client.put(f"/api/activities/{activity.id}", headers=alice_headers,
                   json=activity_payload(activity_name="Patch DB", priority="Low"))
        latest = (EditHistory.query.filter_by(activity_id=activity.id)
                  .order_by(EditHistory.id.desc()).first())
        assert latest.change_description == 'Name: "Patch server" → "Patch DB"; Priority: "High" → "Low"'

    def test_unwatched_change_generic_description(self, client, alice, alice_headers, make_activity):
        activity = make_activity(alice)
        client.put(f"/api/activities/{activity.id}", headers=alice_headers,
                   json=activity_payload(description="new text"))
        latest = (EditHistory.query.filter_by(activity_id=activity.id)
                  .order_by(EditHistory.id.desc()).first())
        assert latest.change_description == "Activity updated"

    def test_update_collision_is_duplicate(self, client, alice, alice_headers, make_activity):
        make_activity(alice, activity_name="First")
        second = make_activity(alice, activity_name="Second")
        res = client.put(f"/api/activities/{second.id}", headers=alice_headers,
                         json=activity_payload(activity_name="First"))
        assert res.status_code == 409
        assert res.get_json()["duplicate"] is True
        assert db.session.get(Activity, second.id).activity_name == "Second"

    def test_update_missing(self, client, alice_headers):
        assert client.put("/api/activities/999", headers=alice_headers,
                          json=activity_payload()).status_code == 404

    def test_update_sets_last_editor(self, client, alice, admin, admin_headers, make_activity):
        activity = make_activity(alice)
        client.put(f"/api/activities/{activity.id}", headers=admin_headers, json=activity_payload())
        row = client.get(f"/api/activities/{activity.id}", headers=admin_headers).get_json()
        assert row["last_edited_by_name"] == "admin"


# ═══════════════════════════════════════════════════════════════════════════
#  ARCHIVE / STATS / PROGRESS
# ═══════════════════════════════════════════════════════════════════════════

class TestArchive:
    def test_archive_hides_from_default_views(self, client, alice, alice_headers, make_activity):
        activity = make_activity(alice)
        res = client.post(f"/api/activities/{activity.id}/archive", headers=alice_headers)
        assert res.status_code == 200

        assert client.get("/api/activities/my", headers=alice_headers).get_json() == []
        rows = client.get("/api/activities/my?archived=include", headers=alice_headers).get_json()
        assert [a["id"] for a in rows] == [activity.id]
        rows = client.get("/api/activities/my?archived=only", headers=alice_headers).get_json()
        assert rows[0]["is_archived"] is True

    def test_archive_stats(self, client, alice, alice_headers, make_activity):
        archived = make_activity(alice, activity_name="Old")
        make_activity(alice, activity_name="Current")
        client.post(f"/api/activities/{archived.id}/archive", headers=alice_headers)

        stats = client.get("/api/activities/stats", headers=alice_headers).get_json()
        assert stats["total"] == 1
        assert stats["archived"] == 1
        assert stats["by_status"]["Planned"] == 1

    def test_unarchive(self, client, alice, alice_headers, make_activity):
        activity = make_activity(alice)
        client.post(f"/api/activities/{activity.id}/archive", headers=alice_headers)
        client.post(f"/api/activities/{activity.id}/unarchive", headers=alice_headers)
        assert len(client.get("/api/activities/my", headers=alice_headers).get_json()) == 1
        kinds = [h.field_changed for h in EditHistory.query.filter_by(activity_id=activity.id)
                 .order_by(EditHistory.id)]
        assert kinds == ["created", "archived", "unarchived"]

    def test_archive_forbidden_for_other_client(self, client, alice, bob_headers, make_activity):
        activity = make_activity(alice)
        assert client.post(f"/api/activities/{activity.id}/archive", headers=bob_headers).status_code == 403

    def test_invalid_archived_filter(self, client, alice_headers):
        assert client.get("/api/activities/my?archived=maybe", headers=alice_headers).status_code == 400


class TestSprintProgress:
    def test_empty_sprints_report_zero(self, client, alice_headers):
        progress = client.get("/api/activities/sprint-progress", headers=alice_headers).get_json()
        assert [p["sprint"] for p in progress] == [1, 2, 3, 4]
        assert all(p["percentage"] == 0 and p["total"] == 0 for p in progress)

    def test_progress_counts(self, client, alice, alice_headers, make_activity):
        make_activity(alice, activity_name="a", status="Completed")
        make_activity(alice, activity_name="b", status="Completed")
        make_activity(alice, activity_name="c")
        archived = make_activity(alice, activity_name="d", status="Completed")
        client.post(f"/api/activities/{archived.id}/archive", headers=alice_headers)

        q1 = client.get("/api/activities/sprint-progress", headers=alice_headers).get_json()[0]
        assert q1 == {"sprint": 1, "total": 3, "completed": 2, "percentage": 67}


class TestAnalytics:
    def test_dashboard_breakdowns(self, client, alice, alice_headers, make_activity):
        make_activity(alice, activity_name="a", it_type="Corp IT", gxp_impact="GxP",
                      department="Local IT", tco_value="100.00", status="Completed")
        make_activity(alice, activity_name="b", it_type="Corp IT", gxp_impact="GxP",
                      department="Local IT", tco_value="300.00")
        body = client.get("/api/analytics/dashboard", headers=alice_headers).get_json()
        assert body["itTypeComparison"] == [
            {"it_type": "Corp IT", "total": 2, "completed": 1, "in_progress": 0, "planned": 1},
        ]
        assert body["gxpDistribution"] == [{"it_type": "Corp IT", "gxp_impact": "GxP", "count": 2}]
        assert body["departmentBreakdown"] == [{"department": "Local IT", "total": 2, "completed": 1}]
        assert body["tcoSummary"] == [{"it_type": "Corp IT", "total_tco": 400.0, "avg_tco": 200.0}]
        assert body["priorityDistribution"] == [{"priority": "High", "count": 2}]


# ═══════════════════════════════════════════════════════════════════════════
#  DELETE / HISTORY
# ═══════════════════════════════════════════════════════════════════════════

class TestDelete:
    def test_delete_requires_admin(self, client, alice, alice_headers, make_activity):
        activity = make_activity(alice)
        assert client.delete(f"/api/activities/{activity.id}", headers=alice_headers).status_code == 403

    def test_delete_missing(self, client, admin_headers):
        assert client.delete("/api/activities/999", headers=admin_headers).status_code == 404

    def test_delete_cleans_up(self, client, alice, bob, admin_headers, make_activity):
        activity = make_activity(alice, backup_person=bob.id)
        other = make_activity(alice, activity_name="Other")
        db.session.add_all([
            Comment(activity_id=activity.id, user_id=alice.id, comment_text="hi"),
            Attachment(activity_id=activity.id, filename="f.txt", original_name="f.txt", uploaded_by=alice.id),
            ActivityDependency(activity_id=other.id, depends_on_activity_id=activity.id),
        ])
        db.session.commit()
        activity_id = activity.id

        res = client.delete(f"/api/activities/{activity_id}", headers=admin_headers)
        assert res.status_code == 200

        assert db.session.get(Activity, activity_id) is None
        assert EditHistory.query.filter_by(activity_id=activity_id).count() == 0
        assert Comment.query.filter_by(activity_id=activity_id).count() == 0
        assert Attachment.query.filter_by(activity_id=activity_id).count() == 0
        assert ActivityDependency.query.count() == 0
        note = Notification.query.filter_by(user_id=bob.id).one()
        assert note.activity_id is None


class TestHistory:
    def test_history_newest_first(self, client, alice, alice_headers, make_activity):
        activity = make_activity(alice)
        client.put(f"/api/activities/{activity.id}", headers=alice_headers,
                   json=activity_payload(status="In Progress"))
        rows = client.get(f"/api/activities/{activity.id}/history", headers=alice_headers).get_json()
        assert [r["field_changed"] for r in rows] == ["updated", "created"]
        assert rows[0]["edited_by_name"] == "alice"

    def test_my_history_alias(self, client, alice, alice_headers, make_activity):
        activity = make_activity(alice)
        res = client.get(f"/api/activities/{activity.id}/my-history", headers=alice_headers)
        assert res.status_code == 200
        assert len(res.get_json()) == 1

    def test_history_forbidden_for_non_creator(self, client, alice, bob_headers, make_activity):
        activity = make_activity(alice, is_shared=True)
        assert client.get(f"/api/activities/{activity.id}/history", headers=bob_headers).status_code == 403

    def test_audit_trail_admin_only(self, client, alice, alice_headers, admin_headers, make_activity):
        make_activity(alice)
        assert client.get("/api/activities/audit/all-history", headers=alice_headers).status_code == 403
        rows = client.get("/api/activities/audit/all-history", headers=admin_headers).get_json()
        assert rows[0]["activity_name"] == "Patch server"

    def test_unknown_history_kind_rejected(self, alice, make_activity):
        activity = make_activity(alice)
        with pytest.raises(ValueError):
            EditHistory(activity_id=activity.id, edited_by=alice.id, field_changed="renamed")
