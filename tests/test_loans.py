"""
Tests for loan applications.

These tests verify:
  - Applying stores a pending application with a LOAN-... reference and
    emails the lending desk
  - A failed desk email doesn't lose the application (email_sent=false)
  - Amount, term, employment type and custom purpose are validated
  - Members only see their own applications, newest first
  - Admins list and review applications; decisions are final
"""

import re

import pytest

from app.config import settings


def _application(**overrides) -> dict:
    payload = {
        "amount": "5000.00",
        "term_months": 24,
        "employment_type": "full-time",
        "purpose": "home-improvement",
    }
    payload.update(overrides)
    return payload


async def _apply(client, member, **overrides):
    return await client.post("/loans/apply", json=_application(**overrides), headers=member.headers)


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------

class TestApply:
    """Tests for POST /loans/apply."""

    async def test_apply_success(self, client, member, notifier):
        response = await _apply(client, member)

        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert data["email_sent"] is True
        application = data["application"]
        assert re.fullmatch(r"LOAN-\d{13}-[A-Z0-9]{9}", application["application_id"])
        assert application["amount_cents"] == 500000
        assert application["term_months"] == 24
        assert application["status"] == "pending"
        assert application["custom_purpose"] is None
        assert application["submitted_at"].endswith("Z")

        desk_mail = notifier.messages[-1]
        assert desk_mail["recipient"] == settings.LOAN_NOTIFY_EMAIL
        assert application["application_id"] in desk_mail["subject"]
        assert member.email in desk_mail["body"]
        assert "5000.00" in desk_mail["body"]

    async def test_failed_desk_email_keeps_application(self, client, member, notifier):
        notifier.fail = True
        response = await _apply(client, member)

        assert response.status_code == 201
        assert response.json()["email_sent"] is False

        listed = await client.get("/loans/my-applications", headers=member.headers)
        assert len(listed.json()) == 1

    async def test_other_purpose_keeps_custom_purpose(self, client, member):
        response = await _apply(client, member, purpose="other", custom_purpose="Wedding")
        assert response.status_code == 201
        assert response.json()["application"]["custom_purpose"] == "Wedding"

    async def test_custom_purpose_dropped_for_named_purpose(self, client, member):
        response = await _apply(client, member, custom_purpose="ignored")
        assert response.status_code == 201
        assert response.json()["application"]["custom_purpose"] is None

    @pytest.mark.parametrize(
        "overrides",
        [
            {"amount": "99.99"},
            {"amount": "-100"},
            {"term_months": 18},
            {"employment_type": "retired"},
            {"purpose": "other"},
            {"purpose": ""},
        ],
        ids=["below-minimum", "negative", "bad-term", "bad-employment", "other-without-detail", "empty-purpose"],
    )
    async def test_invalid_applications_rejected(self, client, member, overrides):
        response = await _apply(client, member, **overrides)
        assert response.status_code == 422
        assert response.json()["error_type"] == "validation_error"

    async def test_admin_cannot_apply(self, client, admin):
        response = await _apply(client, admin)
        assert response.status_code == 403

    async def test_requires_token(self, client):
        response = await client.post("/loans/apply", json=_application())
        assert response.status_code == 401


# ---------------------------------------------------------------------------
# Member views
# ---------------------------------------------------------------------------

class TestMyApplications:
    """Tests for GET /loans/my-applications and /loans/application/{id}."""

    async def test_lists_own_applications_newest_first(self, client, member, second_member):
        first = (await _apply(client, member, amount="1000.00")).json()["application"]
        second = (await _apply(client, member, amount="2000.00")).json()["application"]
        await _apply(client, second_member)

        response = await client.get("/loans/my-applications", headers=member.headers)
        assert response.status_code == 200
        ids = [a["application_id"] for a in response.json()]
        assert ids == [second["application_id"], first["application_id"]]

    async def test_get_own_application(self, client, member):
        application_id = (await _apply(client, member)).json()["application"]["application_id"]

        response = await client.get(f"/loans/application/{application_id}", headers=member.headers)
        assert response.status_code == 200
        assert response.json()["application_id"] == application_id

    async def test_someone_elses_application_is_not_found(self, client, member, second_member):
        application_id = (await _apply(client, member)).json()["application"]["application_id"]

        response = await client.get(
            f"/loans/application/{application_id}", headers=second_member.headers
        )
        assert response.status_code == 404
        assert response.json()["error_type"] == "loan_application_not_found"
        assert response.json()["detail"] == "Application not found"

    async def test_unknown_application_is_not_found(self, client, member):
        response = await client.get("/loans/application/LOAN-0-NOPE", headers=member.headers)
        assert response.status_code == 404


# ---------------------------------------------------------------------------
# Admin review
# ---------------------------------------------------------------------------

class TestAdminReview:
    """Tests for /admin/loan-applications."""

    async def test_admin_lists_and_filters(self, client, member, second_member, admin):
        pending = (await _apply(client, member)).json()["application"]["application_id"]
        reviewed = (await _apply(client, second_member)).json()["application"]["application_id"]
        await client.patch(
            f"/admin/loan-applications/{reviewed}",
            json={"status": "under_review"},
            headers=admin.headers,
        )

        everything = await client.get("/admin/loan-applications", headers=admin.headers)
        assert {a["application_id"] for a in everything.json()} == {pending, reviewed}

        only_pending = await client.get(
            "/admin/loan-applications", params={"status": "pending"}, headers=admin.headers
        )
        assert [a["application_id"] for a in only_pending.json()] == [pending]
        assert only_pending.json()[0]["user_id"] == str(member.user_id)

    async def test_approve_records_reviewer(self, client, member, admin):
        application_id = (await _apply(client, member)).json()["application"]["application_id"]

        response = await client.patch(
            f"/admin/loan-applications/{application_id}",
            json={"status": "approved", "notes": "Income verified"},
            headers=admin.headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "approved"
        assert data["notes"] == "Income verified"
        assert data["reviewed_by"] == str(admin.user_id)
        assert data["reviewed_at"].endswith("Z")

        mine = await client.get(f"/loans/application/{application_id}", headers=member.headers)
        assert mine.json()["status"] == "approved"

    async def test_decision_is_final(self, client, member, admin):
        application_id = (await _apply(client, member)).json()["application"]["application_id"]
        await client.patch(
            f"/admin/loan-applications/{application_id}",
            json={"status": "rejected"},
            headers=admin.headers,
        )

        response = await client.patch(
            f"/admin/loan-applications/{application_id}",
            json={"status": "approved"},
            headers=admin.headers,
        )
        assert response.status_code == 409
        assert response.json()["error_type"] == "loan_application_closed"

    async def test_cannot_move_back_to_pending(self, client, member, admin):
        application_id = (await _apply(client, member)).json()["application"]["application_id"]
        response = await client.patch(
            f"/admin/loan-applications/{application_id}",
            json={"status": "pending"},
            headers=admin.headers,
        )
        assert response.status_code == 422

    async def test_member_cannot_review(self, client, member):
        application_id = (await _apply(client, member)).json()["application"]["application_id"]
        response = await client.patch(
            f"/admin/loan-applications/{application_id}",
            json={"status": "approved"},
            headers=member.headers,
        )
        assert response.status_code == 403
