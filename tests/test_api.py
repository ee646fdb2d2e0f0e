"""HTTP API tests: payroll class endpoints, session scoping and health."""

import asyncio

import jwt
import pytest
from httpx import ASGITransport, AsyncClient

from payroll import routing
from payroll.app import app
from payroll.settings import get_settings
from tests.conftest import MASTER_SCHEMA


@pytest.fixture
async def client(router, monkeypatch):
    monkeypatch.setattr(routing, "_router", router)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def bearer(claims: dict, secret: str | None = None) -> dict:
    jwt_config = get_settings().JWT
    token = jwt.encode(
        claims, secret or jwt_config.SECRET_KEY, algorithm=jwt_config.ALGORITHM
    )
    return {"Authorization": f"Bearer {token}"}


async def test_list_payroll_classes(client):
    response = await client.get("/api/v1/payroll-classes")
    assert response.status_code == 200

    body = response.json()
    ids = [item["id"] for item in body["data"]]
    assert ids[0] == "MASTER"
    assert body["data"][0]["is_master"] is True
    assert "OFFICERS" not in ids
    assert body["total_count"] == len(ids)
    names = {item["id"]: item["display_name"] for item in body["data"]}
    assert names["DIV_B"] == "Pension"


async def test_list_active_payroll_classes(client):
    response = await client.get("/api/v1/payroll-classes", params={"active_only": True})
    ids = [item["id"] for item in response.json()["data"]]
    assert "JUNIOR" not in ids


async def test_current_class_from_token(client, router):
    response = await client.get(
        "/api/v1/payroll-classes/current",
        headers=bearer({"current_class": "DIV_A", "sub": "42"}),
    )
    assert response.status_code == 200

    data = response.json()["data"]
    assert data["tenant_id"] == "DIV_A"
    assert data["schema_name"] == "div_a"
    assert data["display_name"] == "Civilian"
    assert data["session_id"] == response.headers["X-Request-ID"]
    # The binding lives only as long as the request.
    assert router.active_sessions() == []


async def test_primary_class_claim_when_no_current_class(client):
    response = await client.get(
        "/api/v1/payroll-classes/current",
        headers=bearer({"primary_class": "DIV_B", "sub": "42"}),
    )
    assert response.status_code == 200
    assert response.json()["data"]["schema_name"] == "div_b"


async def test_class_header_cannot_choose_the_class(client):
    headers = bearer({"current_class": "DIV_B", "sub": "42"})
    headers["X-Payroll-Class"] = "DIV_C"
    response = await client.get("/api/v1/payroll-classes/current", headers=headers)
    assert response.json()["data"]["schema_name"] == "div_b"

    anonymous = await client.get(
        "/api/v1/payroll-classes/current", headers={"X-Payroll-Class": "DIV_C"}
    )
    assert anonymous.json()["data"]["schema_name"] == MASTER_SCHEMA


async def test_invalid_token_is_rejected(client, router):
    response = await client.get(
        "/api/v1/payroll-classes/current",
        headers=bearer({"current_class": "DIV_B"}, secret="another-secret-of-sufficient-length"),
    )
    assert response.status_code == 403
    assert response.json()["errors"][0]["type"] == "NOT_ENOUGH_PERMISSION"
    assert router.active_sessions() == []


async def test_request_without_class_uses_default_schema(client):
    response = await client.get("/api/v1/payroll-classes/current")
    assert response.json()["data"]["schema_name"] == MASTER_SCHEMA


async def test_unknown_class_claim_falls_back(client):
    response = await client.get(
        "/api/v1/payroll-classes/current",
        headers=bearer({"current_class": "NOT_A_CLASS", "sub": "42"}),
    )
    assert response.status_code == 200
    assert response.json()["data"]["schema_name"] == MASTER_SCHEMA


async def test_switch_class_issues_a_token_for_later_requests(client, router):
    claims = {"sub": "42", "user_id": 7, "primary_class": "DIV_A", "current_class": "DIV_A"}
    response = await client.post(
        "/api/v1/payroll-classes/current",
        json={"payroll_class": "div_c"},
        headers=bearer(claims),
    )
    assert response.status_code == 200

    data = response.json()["data"]
    assert data["tenant_id"] == "DIV_C"
    assert data["schema_name"] == "div_c"
    assert data["display_name"] == "NYSC"
    assert data["is_primary"] is False
    assert data["token_type"] == "Bearer"

    jwt_config = get_settings().JWT
    issued = jwt.decode(
        data["token"], jwt_config.SECRET_KEY, algorithms=[jwt_config.ALGORITHM]
    )
    assert issued["current_class"] == "DIV_C"
    assert issued["primary_class"] == "DIV_A"
    assert issued["user_id"] == 7
    assert "exp" in issued

    # The switch outlives the request that made it.
    later = await client.get(
        "/api/v1/payroll-classes/current",
        headers={"Authorization": f"Bearer {data['token']}"},
    )
    assert later.json()["data"]["schema_name"] == "div_c"
    assert router.active_sessions() == []
    assert router.default_tenant == MASTER_SCHEMA


async def test_switch_class_requires_a_token(client, router):
    response = await client.post(
        "/api/v1/payroll-classes/current", json={"payroll_class": "DIV_C"}
    )
    assert response.status_code == 403
    assert response.json()["errors"][0]["type"] == "NOT_ENOUGH_PERMISSION"
    assert router.active_sessions() == []


@pytest.mark.parametrize("payroll_class", ["JUNIOR", "NOT_A_CLASS"])
async def test_switch_to_inactive_or_unknown_class_is_rejected(client, payroll_class):
    response = await client.post(
        "/api/v1/payroll-classes/current",
        json={"payroll_class": payroll_class},
        headers=bearer({"sub": "42", "primary_class": "DIV_A"}),
    )
    assert response.status_code == 400
    assert response.json()["errors"][0]["type"] == "INVALID_OPERATION"


async def test_reset_to_primary_class(client):
    response = await client.post(
        "/api/v1/payroll-classes/current/reset",
        headers=bearer({"sub": "42", "primary_class": "DIV_A", "current_class": "DIV_C"}),
    )
    assert response.status_code == 200

    data = response.json()["data"]
    assert data["schema_name"] == "div_a"
    assert data["is_primary"] is True

    later = await client.get(
        "/api/v1/payroll-classes/current",
        headers={"Authorization": f"Bearer {data['token']}"},
    )
    assert later.json()["data"]["tenant_id"] == "DIV_A"


async def test_reset_without_primary_class_is_rejected(client):
    response = await client.post(
        "/api/v1/payroll-classes/current/reset",
        headers=bearer({"sub": "42", "current_class": "DIV_C"}),
    )
    assert response.status_code == 400


async def test_switch_class_rejects_blank_name(client):
    response = await client.post(
        "/api/v1/payroll-classes/current",
        json={"payroll_class": "   "},
        headers=bearer({"sub": "42", "primary_class": "DIV_A"}),
    )
    assert response.status_code == 422


async def test_reload_registry(client, server):
    server.registry_rows.append(
        {"id": "DIV_E", "schema_name": "div_e", "display_name": "New", "is_active": True}
    )
    response = await client.post("/api/v1/payroll-classes/reload")
    assert response.status_code == 200
    assert response.json()["data"]["master_class"] == "MASTER"

    listed = await client.get("/api/v1/payroll-classes")
    assert "DIV_E" in [item["id"] for item in listed.json()["data"]]


async def test_reload_failure_is_service_unavailable(client, server):
    server.reachable = False
    response = await client.post("/api/v1/payroll-classes/reload")
    assert response.status_code == 503
    assert response.headers["Retry-After"] == "1"


async def test_database_health_reports_request_schema(client, server):
    response = await client.get(
        "/api/v1/health/database", headers=bearer({"current_class": "DIV_D"})
    )
    assert response.status_code == 200

    body = response.json()
    assert body["status"] == "healthy"
    assert body["current_database"] == "div_d"
    assert body["pool"]["initialized"] is True
    assert server.selections[-1].schema == "div_d"


async def test_concurrent_requests_stay_on_their_own_class(client, server):
    classes = ["MASTER", "DIV_A", "DIV_B", "DIV_C", "DIV_D"] * 4

    responses = await asyncio.gather(
        *(
            client.get(
                "/api/v1/health/database",
                headers=bearer({"current_class": payroll_class}),
            )
            for payroll_class in classes
        )
    )

    expected = {
        "MASTER": MASTER_SCHEMA,
        "DIV_A": "div_a",
        "DIV_B": "div_b",
        "DIV_C": "div_c",
        "DIV_D": "div_d",
    }
    for payroll_class, response in zip(classes, responses):
        assert response.json()["current_database"] == expected[payroll_class]
    sessions = {}
    for statement in server.queries:
        sessions.setdefault(statement.session_id, set()).add(statement.schema)
    assert len(sessions) == len(classes)
    assert all(len(schemas) == 1 for schemas in sessions.values())
