"""Tests for institution settings and profile endpoints."""

import pytest
from httpx import AsyncClient

from conftest import auth_headers
from schoolops.core.rbac import Role


@pytest.mark.asyncio
async def test_get_settings_creates_defaults(async_client: AsyncClient, make_user):
    principal = await make_user(Role.PRINCIPAL)
    response = await async_client.get("/api/v1/settings", headers=auth_headers(principal))

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["institution"]["name"] == "Springfield High"
    assert data["settings"]["academic_year"] == "2024-2025"
    assert data["settings"]["terms_per_year"] == 3
    assert data["settings"]["currency"] == "USD"
    assert data["settings"]["timezone"] == "UTC"


@pytest.mark.asyncio
@pytest.mark.parametrize("role", [Role.TEACHER, Role.STAFF, Role.STUDENT, Role.PARENT])
async def test_settings_forbidden_for_non_privileged(async_client: AsyncClient, make_user, role):
    user = await make_user(role)
    read = await async_client.get("/api/v1/settings", headers=auth_headers(user))
    assert read.status_code == 403

    write = await async_client.put(
        "/api/v1/settings", json={"terms_per_year": 2}, headers=auth_headers(user)
    )
    assert write.status_code == 403


@pytest.mark.asyncio
async def test_update_settings(async_client: AsyncClient, make_user):
    admin = await make_user(Role.ADMIN)
    response = await async_client.put(
        "/api/v1/settings",
        json={"academic_year": "2025-2026", "late_fee_percent": 2.5, "currency": "eur"},
        headers=auth_headers(admin),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["meta"] == {"action": "institution-settings"}
    assert body["data"]["settings"]["academic_year"] == "2025-2026"
    assert body["data"]["settings"]["late_fee_percent"] == 2.5
    assert body["data"]["settings"]["currency"] == "EUR"
    # untouched fields keep their values
    assert body["data"]["settings"]["terms_per_year"] == 3

    again = await async_client.get("/api/v1/settings", headers=auth_headers(admin))
    assert again.json()["data"]["settings"]["currency"] == "EUR"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"academic_year": "2025-2027"},
        {"academic_year": "25-26"},
        {"terms_per_year": 0},
        {"late_fee_percent": 101},
        {"currency": "EURO"},
    ],
)
async def test_update_settings_validation(async_client: AsyncClient, make_user, payload):
    admin = await make_user(Role.ADMIN)
    response = await async_client.put("/api/v1/settings", json=payload, headers=auth_headers(admin))

    assert response.status_code == 422
    body = response.json()
    assert body["data"] is None
    assert body["error"]["code"] == "VALIDATION_ERROR"
    assert body["error"]["details"]


@pytest.mark.asyncio
async def test_update_profile(async_client: AsyncClient, make_user):
    principal = await make_user(Role.PRINCIPAL)
    response = await async_client.put(
        "/api/v1/settings/profile",
        json={"name": "Springfield Elementary", "phone": "555-0100"},
        headers=auth_headers(principal),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["meta"] == {"action": "profile"}
    assert body["data"]["institution"]["name"] == "Springfield Elementary"
    assert body["data"]["institution"]["phone"] == "555-0100"
    assert body["data"]["institution"]["slug"] == "springfield-high"


@pytest.mark.asyncio
async def test_settings_are_per_institution(async_client: AsyncClient, make_user, other_institution):
    ours = await make_user(Role.ADMIN)
    theirs = await make_user(Role.ADMIN, institution_id=other_institution.id)

    await async_client.put("/api/v1/settings", json={"currency": "GBP"}, headers=auth_headers(ours))
    response = await async_client.get("/api/v1/settings", headers=auth_headers(theirs))

    assert response.json()["data"]["institution"]["name"] == "Shelbyville Academy"
    assert response.json()["data"]["settings"]["currency"] == "USD"
