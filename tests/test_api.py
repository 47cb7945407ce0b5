"""
HTTP API tests: authentication, the error envelope and the main flows
through the registration, finance and org blueprints.
"""

import io

import jwt as pyjwt
import openpyxl
import pytest

from portal.models.auth import ROLE_ADMIN, ROLE_COLLAB, ROLE_COORD
from portal.services.jwt_service import decode_access_token, generate_access_token

FINANCE_PAYLOAD = {
    "company": "CPFL Piratininga",
    "coordination": "Cubatão",
    "requestKind": "Reembolso",
    "trainingOperational": "Sim",
    "dateStart": "2026-03-02",
    "description": "Táxi até a subestação de Cubatão",
    "expenseType": "Transporte",
    "amountBrl": "1.234,56",
    "attachments": [{"url": "https://files.test/recibo.pdf", "filename": "recibo.pdf"}],
}


@pytest.fixture()
def owner(make_profile):
    return make_profile("Maria Souza", roles=[ROLE_COLLAB])


@pytest.fixture()
def coordinator(make_profile, seed_org):
    seed_org()
    return make_profile("Coordenadora", roles=[ROLE_COORD], team_id="DJTB-CUB")


def _create(client, headers, **overrides):
    res = client.post("/api/v1/finance-requests", json={**FINANCE_PAYLOAD, **overrides}, headers=headers)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


# ═════════════════════════════════════════════════════════════════════════
# Tokens & public endpoints
# ═════════════════════════════════════════════════════════════════════════


class TestAuthentication:
    def test_token_round_trip(self):
        token = generate_access_token("abc")
        payload = decode_access_token(token)
        assert payload["sub"] == "abc"
        assert payload["type"] == "access"

    def test_expired_token_rejected(self):
        token = generate_access_token("abc", expires_in=-10)
        with pytest.raises(pyjwt.ExpiredSignatureError):
            decode_access_token(token)

    def test_missing_token(self, client):
        res = client.get("/api/v1/me/scope")
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHORIZED"

    def test_tampered_token(self, client, owner, auth_headers):
        headers = auth_headers(owner.id)
        headers["Authorization"] += "x"
        res = client.get("/api/v1/me/scope", headers=headers)
        assert res.status_code == 401

    def test_expired_token_over_http(self, client, owner):
        token = generate_access_token(owner.id, expires_in=-10)
        res = client.get("/api/v1/me/scope", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401
        assert res.get_json()["error"] == "Token expired"

    def test_token_for_unknown_profile(self, client, auth_headers):
        res = client.get("/api/v1/me/scope", headers=auth_headers("ghost"))
        assert res.status_code == 401

    def test_health_is_public(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"

    def test_live_reports_database(self, client):
        body = client.get("/api/v1/health/live").get_json()
        assert body["checks"]["database"]["status"] == "ok"
        assert body["checks"]["side_effects"]["failures"] == {}

    def test_request_id_header(self, client):
        res = client.get("/api/v1/health", headers={"X-Request-ID": "req-123"})
        assert res.headers["X-Request-ID"] == "req-123"
        assert "X-Request-Duration-Ms" in res.headers


class TestParseAmount:
    def test_parses_brl(self, client):
        body = client.post("/api/v1/finance/parse-amount", json={"amount": "1.234,56"}).get_json()
        assert body == {"input": "1.234,56", "cents": 123456, "formatted": "1234,56"}

    def test_unparseable(self, client):
        body = client.post("/api/v1/finance/parse-amount", json={"amount": "dez reais"}).get_json()
        assert body["cents"] is None
        assert body["formatted"] is None


# ═════════════════════════════════════════════════════════════════════════
# Org & scope
# ═════════════════════════════════════════════════════════════════════════


class TestOrgEndpoints:
    def test_my_scope(self, client, coordinator, auth_headers):
        body = client.get("/api/v1/me/scope", headers=auth_headers(coordinator.id)).get_json()
        assert body["effective_role"] == ROLE_COORD
        assert body["division_id"] == "DJTB"
        assert body["studio_access"] is True

    def test_derive(self, client, coordinator, auth_headers):
        res = client.get("/api/v1/org/derive?code=djtb%20cub", headers=auth_headers(coordinator.id))
        assert res.get_json() == {
            "code": "DJTB-CUB",
            "org": {"division_id": "DJTB", "coord_id": "DJTB-CUB", "team_id": "DJTB-CUB"},
        }

    def test_derive_requires_code(self, client, coordinator, auth_headers):
        res = client.get("/api/v1/org/derive", headers=auth_headers(coordinator.id))
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_INVALID"
        assert body["details"] == {"code": "required"}

    def test_in_scope(self, client, coordinator, auth_headers):
        headers = auth_headers(coordinator.id)
        assert client.get("/api/v1/org/in-scope?code=DJTB-SAN", headers=headers).get_json()["in_scope"] is True
        assert client.get("/api/v1/org/in-scope?code=DJTV-VOT", headers=headers).get_json()["in_scope"] is False

    def test_unknown_route(self, client, owner, auth_headers):
        res = client.get("/api/v1/nowhere", headers=auth_headers(owner.id))
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"


# ═════════════════════════════════════════════════════════════════════════
# Registrations
# ═════════════════════════════════════════════════════════════════════════


class TestRegistrationEndpoints:
    def test_list_and_approve(self, client, coordinator, make_registration, auth_headers):
        reg = make_registration("DJTB-SAN")
        make_registration("DJTV-VOT")
        headers = auth_headers(coordinator.id)

        listed = client.get("/api/v1/registrations/pending", headers=headers).get_json()
        assert listed["total"] == 1
        assert listed["items"][0]["id"] == reg.id

        res = client.post(f"/api/v1/registrations/{reg.id}/approve", json={"notes": "ok"}, headers=headers)
        assert res.status_code == 200
        body = res.get_json()
        assert body["success"] is True
        assert body["registration_id"] == reg.id
        assert body["account_id"]

        again = client.post(f"/api/v1/registrations/{reg.id}/approve", json={}, headers=headers)
        assert again.status_code == 404
        assert again.get_json() == {"error": "PendingRegistration not found", "code": "ERR_NOT_FOUND"}

    def test_approve_out_of_scope(self, client, coordinator, make_registration, auth_headers):
        reg = make_registration("DJT-PLAN")
        res = client.post(f"/api/v1/registrations/{reg.id}/approve", json={}, headers=auth_headers(coordinator.id))
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"

    def test_reject_requires_notes(self, client, coordinator, make_registration, auth_headers):
        reg = make_registration()
        res = client.post(f"/api/v1/registrations/{reg.id}/reject", json={}, headers=auth_headers(coordinator.id))
        assert res.status_code == 400
        assert res.get_json()["details"] == {"notes": "required"}

    def test_non_object_body(self, client, coordinator, make_registration, auth_headers):
        reg = make_registration()
        res = client.post(
            f"/api/v1/registrations/{reg.id}/reject", json=["notes"], headers=auth_headers(coordinator.id),
        )
        assert res.status_code == 400


# ═════════════════════════════════════════════════════════════════════════
# Finance
# ═════════════════════════════════════════════════════════════════════════


class TestFinanceEndpoints:
    def test_create_and_list_mine(self, client, owner, auth_headers):
        headers = auth_headers(owner.id)
        created = _create(client, headers)
        assert created["status"] == "Enviado"
        assert created["training_operational"] is True

        mine = client.get("/api/v1/finance-requests", headers=headers).get_json()
        assert mine["total"] == 1
        assert mine["items"][0]["protocol"] == created["protocol"]

    def test_create_validation_envelope(self, client, owner, auth_headers):
        res = client.post(
            "/api/v1/finance-requests",
            json={**FINANCE_PAYLOAD, "amountBrl": "", "attachments": []},
            headers=auth_headers(owner.id),
        )
        assert res.status_code == 400
        body = res.get_json()
        assert set(body) == {"error", "code", "details"}
        assert {"amountBrl", "attachments"} <= set(body["details"])

    def test_detail_and_cancel(self, client, owner, auth_headers):
        headers = auth_headers(owner.id)
        created = _create(client, headers)

        detail = client.get(f"/api/v1/finance-requests/{created['id']}", headers=headers).get_json()
        assert detail["permissions"]["can_cancel"] is True
        assert len(detail["history"]) == 1

        res = client.post(f"/api/v1/finance-requests/{created['id']}/cancel", headers=headers)
        assert res.get_json()["status"] == "Cancelado"

        again = client.post(f"/api/v1/finance-requests/{created['id']}/cancel", headers=headers)
        assert again.status_code == 409
        assert again.get_json()["code"] == "ERR_CONFLICT_STATE"

    def test_admin_list_is_forbidden_for_requesters(self, client, owner, auth_headers):
        res = client.get("/api/v1/admin/finance-requests", headers=auth_headers(owner.id))
        assert res.status_code == 403

    def test_admin_status_update(self, client, owner, coordinator, auth_headers):
        created = _create(client, auth_headers(owner.id))
        res = client.patch(
            f"/api/v1/admin/finance-requests/{created['id']}/status",
            json={"status": "Em Análise", "observation": "Conferindo"},
            headers=auth_headers(coordinator.id),
        )
        assert res.status_code == 200
        assert res.get_json()["status"] == "Em análise"
        assert res.get_json()["last_observation"] == "Conferindo"

        cancel = client.patch(
            f"/api/v1/admin/finance-requests/{created['id']}/status",
            json={"status": "Cancelado"},
            headers=auth_headers(coordinator.id),
        )
        assert cancel.status_code == 409

    def test_admin_list_and_exports(self, client, owner, coordinator, auth_headers):
        created = _create(client, auth_headers(owner.id))
        headers = auth_headers(coordinator.id)

        listed = client.get("/api/v1/admin/finance-requests?status=all", headers=headers).get_json()
        assert listed["total"] == 1

        csv_res = client.get("/api/v1/admin/finance-requests?export=csv", headers=headers)
        assert csv_res.status_code == 200
        assert csv_res.mimetype == "text/csv"
        assert csv_res.headers["Content-Disposition"] == 'attachment; filename="finance-requests.csv"'
        text = csv_res.get_data(as_text=True)
        assert created["protocol"] in text
        assert '"1234,56"' in text

        xlsx_res = client.get("/api/v1/admin/finance-requests?export=XLSX", headers=headers)
        assert xlsx_res.status_code == 200
        ws = openpyxl.load_workbook(io.BytesIO(xlsx_res.data)).active
        assert ws.cell(row=2, column=1).value == created["protocol"]

        bad = client.get("/api/v1/admin/finance-requests?export=pdf", headers=headers)
        assert bad.status_code == 400
        assert "export" in bad.get_json()["details"]

    def test_owner_delete_and_admin_purge(self, client, owner, coordinator, make_profile, auth_headers):
        first = _create(client, auth_headers(owner.id))
        res = client.delete(f"/api/v1/finance-requests/{first['id']}", headers=auth_headers(owner.id))
        assert res.status_code == 200
        assert res.get_json()["deleted"]["protocol"] == first["protocol"]

        second = _create(client, auth_headers(owner.id))
        client.get(f"/api/v1/finance-requests/{second['id']}", headers=auth_headers(coordinator.id))
        blocked = client.delete(f"/api/v1/finance-requests/{second['id']}", headers=auth_headers(owner.id))
        assert blocked.status_code == 409

        admin = make_profile(roles=[ROLE_ADMIN])
        purged = client.delete(f"/api/v1/finance-requests/{second['id']}", headers=auth_headers(admin.id))
        assert purged.status_code == 200
        missing = client.get(f"/api/v1/finance-requests/{second['id']}", headers=auth_headers(admin.id))
        assert missing.status_code == 404
