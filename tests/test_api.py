"""
Tests: HTTP surface (problems, invitations, tokens, notifications, scheduler, audit, health).
"""

from datetime import timedelta

from app.models import db
from app.models.audit import write_audit
from app.models.notification import Notification
from app.utils.helpers import utcnow


# ═══════════════════════════════════════════════════════════════════════════
#  PROBLEMS
# ═══════════════════════════════════════════════════════════════════════════


class TestProblemAPI:
    def test_draft_submit_invite_flow(self, client, make_user, make_consultant):
        owner = make_user(tokens_balance=12)
        consultant = make_consultant()

        res = client.post("/api/v1/problems", json={
            "user_id": owner.id, "problem_statement": "GL balances drift after close",
        })
        assert res.status_code == 201
        problem_id = res.get_json()["id"]
        assert res.get_json()["status"] == "draft"

        res = client.post(f"/api/v1/problems/{problem_id}/submit")
        assert res.status_code == 200
        assert res.get_json()["submission_fee"] == 5

        res = client.post(f"/api/v1/problems/{problem_id}/invitations",
                          json={"consultant_ids": [consultant.id], "invited_by": owner.id})
        assert res.status_code == 201
        assert res.get_json()["total"] == 1

        res = client.get(f"/api/v1/problems/{problem_id}")
        body = res.get_json()
        assert body["status"] == "matching"
        assert [i["consultant_id"] for i in body["invitations"]] == [consultant.id]

    def test_missing_statement(self, client, make_user):
        res = client.post("/api/v1/problems", json={"user_id": make_user().id})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_submit_insufficient_balance(self, client, make_user):
        owner = make_user(tokens_balance=1)
        problem_id = client.post("/api/v1/problems", json={
            "user_id": owner.id, "problem_statement": "x",
        }).get_json()["id"]

        res = client.post(f"/api/v1/problems/{problem_id}/submit")

        assert res.status_code == 422
        body = res.get_json()
        assert body["code"] == "ERR_INSUFFICIENT_BALANCE"
        assert body["details"] == {"required": 5, "available": 1}

    def test_unknown_problem(self, client):
        res = client.get("/api/v1/problems/424242")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_bad_consultant_ids(self, client, make_user, make_problem):
        problem = make_problem(make_user(), status="submitted")
        res = client.post(f"/api/v1/problems/{problem.id}/invitations", json={"consultant_ids": "1,2"})
        assert res.status_code == 400

    def test_non_json_body_rejected(self, client):
        res = client.post("/api/v1/problems", data="user_id=1", content_type="text/plain")
        assert res.status_code == 415


# ═══════════════════════════════════════════════════════════════════════════
#  INVITATIONS
# ═══════════════════════════════════════════════════════════════════════════


class TestInvitationAPI:
    def test_list_and_accept(self, client, make_user, make_consultant, make_problem, make_invitation):
        consultant = make_consultant()
        problem = make_problem(make_user())
        inv = make_invitation(problem, consultant, invited_at=utcnow() - timedelta(hours=1))

        res = client.get(f"/api/v1/consultants/{consultant.id}/invitations?status=pending")
        assert res.status_code == 200
        items = res.get_json()["items"]
        assert [i["id"] for i in items] == [inv.id]
        assert items[0]["is_expired"] is False

        res = client.post(f"/api/v1/invitations/{inv.id}/accept", json={"consultant_id": consultant.id})
        assert res.status_code == 200
        assert res.get_json()["status"] == "accepted"

    def test_decline_expired_invitation(self, client, make_user, make_consultant, make_problem,
                                        make_invitation):
        consultant = make_consultant()
        inv = make_invitation(make_problem(make_user()), consultant,
                              invited_at=utcnow() - timedelta(hours=30),
                              expires_at=utcnow() - timedelta(hours=6))

        res = client.post(f"/api/v1/invitations/{inv.id}/decline",
                          json={"consultant_id": consultant.id, "reason": "busy"})

        assert res.status_code == 422
        assert res.get_json()["details"]["expired"] is True

    def test_consultant_id_required(self, client):
        res = client.post("/api/v1/invitations/1/accept", json={})
        assert res.status_code == 400

    def test_invalid_status_filter(self, client):
        res = client.get("/api/v1/consultants/1/invitations?status=bogus")
        assert res.status_code == 400


# ═══════════════════════════════════════════════════════════════════════════
#  TOKENS
# ═══════════════════════════════════════════════════════════════════════════


class TestTokenAPI:
    def test_purchase_then_balance(self, client, make_user):
        user = make_user(tokens_balance=0)

        res = client.post(f"/api/v1/users/{user.id}/tokens/purchase", json={"amount": 20})
        assert res.status_code == 201
        assert res.get_json()["balance_after"] == 20

        body = client.get(f"/api/v1/users/{user.id}/tokens").get_json()
        assert body["tokens_balance"] == 20
        assert body["transactions"][0]["type"] == "purchase"

    def test_purchase_rejects_bad_amount(self, client, make_user):
        user = make_user()
        for amount in (0, -5, "10", True):
            res = client.post(f"/api/v1/users/{user.id}/tokens/purchase", json={"amount": amount})
            assert res.status_code == 400

    def test_unknown_user(self, client):
        assert client.get("/api/v1/users/424242/tokens").status_code == 404


# ═══════════════════════════════════════════════════════════════════════════
#  NOTIFICATIONS + PREFERENCES
# ═══════════════════════════════════════════════════════════════════════════


class TestNotificationAPI:
    def _notify(self, user, message="hello"):
        n = Notification(user_id=user.id, type="system", title="Notification", message=message)
        db.session.add(n)
        db.session.commit()
        return n

    def test_list_and_mark_read(self, client, make_user):
        user = make_user()
        first = self._notify(user, "one")
        self._notify(user, "two")

        body = client.get(f"/api/v1/users/{user.id}/notifications").get_json()
        assert body["total"] == 2
        assert body["unread_count"] == 2

        res = client.patch(f"/api/v1/notifications/{first.id}/read")
        assert res.status_code == 200
        assert res.get_json()["is_read"] is True

        body = client.get(f"/api/v1/users/{user.id}/notifications?unread_only=true").get_json()
        assert [n["message"] for n in body["items"]] == ["two"]

    def test_read_all(self, client, make_user):
        user = make_user()
        self._notify(user)
        self._notify(user)
        res = client.post(f"/api/v1/users/{user.id}/notifications/read-all")
        assert res.get_json() == {"marked_read": 2}

    def test_mark_unknown_notification(self, client):
        assert client.patch("/api/v1/notifications/424242/read").status_code == 404

    def test_preferences_upsert(self, client, make_user):
        user = make_user()
        url = f"/api/v1/users/{user.id}/notification-preferences"

        res = client.put(url, json={"notification_type": "problem_refunded", "email_enabled": False})
        assert res.status_code == 200
        assert res.get_json()["email"] is False

        res = client.put(url, json={"notification_type": "problem_refunded", "push_enabled": False})
        body = res.get_json()
        assert body["email"] is False and body["push"] is False
        assert client.get(url).get_json()["total"] == 1

    def test_preferences_reject_unknown_type(self, client, make_user):
        res = client.put(f"/api/v1/users/{make_user().id}/notification-preferences",
                         json={"notification_type": "spam"})
        assert res.status_code == 400


# ═══════════════════════════════════════════════════════════════════════════
#  SCHEDULER
# ═══════════════════════════════════════════════════════════════════════════


class TestSchedulerAPI:
    def test_trigger_toggle_and_list(self, client):
        from app.services.scheduler_service import SchedulerService
        SchedulerService.ensure_jobs_registered()

        res = client.post("/api/v1/scheduler/jobs/expire_invitations/trigger")
        assert res.status_code == 200
        assert res.get_json()["status"] == "success"

        res = client.patch("/api/v1/scheduler/jobs/expire_invitations/toggle", json={"enabled": False})
        assert res.get_json()["is_enabled"] is False

        res = client.post("/api/v1/scheduler/jobs/expire_invitations/trigger")
        assert res.get_json()["status"] == "skipped"

        jobs = client.get("/api/v1/scheduler/jobs").get_json()["jobs"]
        assert jobs[0]["run_count"] == 1

    def test_trigger_unknown_job(self, client):
        assert client.post("/api/v1/scheduler/jobs/nope/trigger").status_code == 404

    def test_toggle_requires_flag(self, client):
        assert client.patch("/api/v1/scheduler/jobs/expire_invitations/toggle", json={}).status_code == 400


# ═══════════════════════════════════════════════════════════════════════════
#  AUDIT + HEALTH
# ═══════════════════════════════════════════════════════════════════════════


class TestAuditAPI:
    def test_filters(self, client):
        write_audit(entity_type="consultant_invitation", entity_id=1, action="invitation_expired")
        write_audit(entity_type="problem_submission", entity_id=7, action="problem_refunded")
        db.session.commit()

        body = client.get("/api/v1/audit?entity_type=problem_submission").get_json()
        assert body["total"] == 1
        assert body["audit_logs"][0]["entity_id"] == "7"

        body = client.get("/api/v1/audit?action=invitation").get_json()
        assert [a["action"] for a in body["audit_logs"]] == ["invitation_expired"]

        log_id = body["audit_logs"][0]["id"]
        assert client.get(f"/api/v1/audit/{log_id}").status_code == 200
        assert client.get("/api/v1/audit/424242").status_code == 404


class TestHealthAPI:
    def test_ready(self, client):
        assert client.get("/api/v1/health/ready").get_json() == {"status": "ok"}

    def test_live(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        body = res.get_json()
        assert body["checks"]["database"]["status"] == "ok"
        assert body["checks"]["invitation_sweep"]["status"] == "not_registered"
        assert "X-Request-ID" in res.headers

    def test_stale_sweep_reported(self, client):
        from app.services.scheduler_service import SchedulerService
        SchedulerService.ensure_jobs_registered()

        sweep = client.get("/api/v1/health/live").get_json()["checks"]["invitation_sweep"]

        assert sweep["status"] == "never_run"
        assert sweep["stale"] is True


class TestErrorResponses:
    def test_unknown_route_is_coded(self, client):
        res = client.get("/api/v1/nowhere")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_method_not_allowed(self, client):
        res = client.delete("/api/v1/problems")
        assert res.status_code == 405
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"
