"""API tests for phone number management."""

import json

import httpx
import pytest

from voicedesk.database.models import PhoneNumber


def key(raw: str) -> dict[str, str]:
    return {"X-API-Key": raw}


async def add_number(db_session, tenant, number="+14155551234", **fields) -> PhoneNumber:
    phone = PhoneNumber(
        organization_id=tenant.organization_id,
        number=number,
        retell_phone_number_id=number,
        **fields,
    )
    db_session.add(phone)
    await db_session.commit()
    return phone


class TestAddPhoneNumber:
    """Tests for POST /phone-numbers."""

    async def test_purchase_binds_bot(self, client, tenant, settings, respx_mock):
        route = respx_mock.post(f"{settings.retell_base_url}/create-phone-number").mock(
            return_value=httpx.Response(201, json={"phone_number": "+14155557777", "area_code": 415})
        )

        response = await client.post(
            "/api/v1/phone-numbers",
            json={"area_code": 415, "nickname": "Main line", "bot_id": str(tenant.bot_id)},
            headers=key(tenant.admin_key),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["number"] == "+14155557777"
        assert body["inbound_bot_id"] == str(tenant.bot_id)
        assert body["outbound_bot_id"] == str(tenant.bot_id)

        sent = json.loads(route.calls.last.request.content)
        assert sent == {
            "area_code": 415,
            "nickname": "Main line",
            "inbound_agent_id": tenant.agent_id,
            "outbound_agent_id": tenant.agent_id,
        }

    async def test_purchase_released_when_number_taken(self, client, db_session, tenant, settings, respx_mock):
        await add_number(db_session, tenant, "+14155557777")
        respx_mock.post(f"{settings.retell_base_url}/create-phone-number").mock(
            return_value=httpx.Response(201, json={"phone_number": "+14155557777"})
        )
        release = respx_mock.delete(url__startswith=f"{settings.retell_base_url}/delete-phone-number/").mock(
            return_value=httpx.Response(204)
        )

        response = await client.post("/api/v1/phone-numbers", json={}, headers=key(tenant.admin_key))

        assert response.status_code == 409
        assert release.called

    async def test_import_normalises_number(self, client, tenant, settings, respx_mock):
        route = respx_mock.post(f"{settings.retell_base_url}/import-phone-number").mock(
            return_value=httpx.Response(201, json={})
        )

        response = await client.post(
            "/api/v1/phone-numbers?action=import",
            json={"phone_number": "+1 415-555-8888", "termination_uri": "acme.pstn.example.com"},
            headers=key(tenant.admin_key),
        )

        assert response.status_code == 201
        assert response.json()["number"] == "+14155558888"
        sent = json.loads(route.calls.last.request.content)
        assert sent["phone_number"] == "+14155558888"
        assert sent["termination_uri"] == "acme.pstn.example.com"

    @pytest.mark.respx(assert_all_called=False)
    async def test_import_rejects_claimed_number(self, client, db_session, tenant, settings, respx_mock):
        await add_number(db_session, tenant, "+14155558888")
        route = respx_mock.post(f"{settings.retell_base_url}/import-phone-number")

        response = await client.post(
            "/api/v1/phone-numbers?action=import",
            json={"phone_number": "+14155558888"},
            headers=key(tenant.admin_key),
        )

        assert response.status_code == 409
        assert not route.called

    async def test_invalid_body(self, client, tenant):
        response = await client.post(
            "/api/v1/phone-numbers",
            json={"area_code": 12},
            headers=key(tenant.admin_key),
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid input"

    async def test_customers_cannot_add(self, client, tenant):
        response = await client.post(
            "/api/v1/phone-numbers",
            json={},
            headers=key(tenant.restaurant_key),
        )

        assert response.status_code == 403


class TestPhoneNumberVisibility:
    async def test_customer_sees_assigned_only(self, client, db_session, tenant):
        await add_number(db_session, tenant, "+14155551111", assigned_user_id=tenant.restaurant_id)
        await add_number(db_session, tenant, "+14155552222")

        response = await client.get("/api/v1/phone-numbers", headers=key(tenant.restaurant_key))
        assert [n["number"] for n in response.json()["numbers"]] == ["+14155551111"]

        response = await client.get("/api/v1/phone-numbers", headers=key(tenant.admin_key))
        assert response.json()["total"] == 2


class TestUpdateAndDelete:
    async def test_rebinding_pushes_agent(self, client, db_session, tenant, settings, respx_mock):
        phone = await add_number(db_session, tenant)
        route = respx_mock.patch(url__startswith=f"{settings.retell_base_url}/update-phone-number/").mock(
            return_value=httpx.Response(200, json={"phone_number": "+14155551234"})
        )

        response = await client.patch(
            f"/api/v1/phone-numbers/{phone.id}",
            json={"inbound_bot_id": str(tenant.bot_id)},
            headers=key(tenant.admin_key),
        )

        assert response.status_code == 200
        assert response.json()["inbound_bot_id"] == str(tenant.bot_id)
        assert response.json()["outbound_bot_id"] is None
        assert json.loads(route.calls.last.request.content) == {"inbound_agent_id": tenant.agent_id}

    async def test_remote_failure_keeps_binding(self, client, db_session, tenant, settings, respx_mock):
        phone = await add_number(db_session, tenant)
        respx_mock.patch(url__startswith=f"{settings.retell_base_url}/update-phone-number/").mock(
            return_value=httpx.Response(500, json={"error": "boom"})
        )

        response = await client.patch(
            f"/api/v1/phone-numbers/{phone.id}",
            json={"inbound_bot_id": str(tenant.bot_id)},
            headers=key(tenant.admin_key),
        )

        assert response.status_code == 502
        await db_session.refresh(phone)
        assert phone.inbound_bot_id is None

    async def test_delete_is_best_effort(self, client, db_session, tenant, settings, respx_mock):
        phone = await add_number(db_session, tenant)
        respx_mock.delete(url__startswith=f"{settings.retell_base_url}/delete-phone-number/").mock(
            return_value=httpx.Response(404, json={"error": "not found"})
        )

        response = await client.delete(f"/api/v1/phone-numbers/{phone.id}", headers=key(tenant.admin_key))

        assert response.status_code == 200
        assert response.json() == {"success": True, "remote_deleted": False}
        response = await client.get(f"/api/v1/phone-numbers/{phone.id}", headers=key(tenant.admin_key))
        assert response.status_code == 404


class TestAssign:
    async def test_assign_and_unassign(self, client, db_session, tenant):
        phone = await add_number(db_session, tenant)

        response = await client.post(
            f"/api/v1/phone-numbers/{phone.id}/assign",
            json={"user_id": str(tenant.hotel_id)},
            headers=key(tenant.admin_key),
        )
        assert response.json()["assigned_user_id"] == str(tenant.hotel_id)

        response = await client.post(
            f"/api/v1/phone-numbers/{phone.id}/assign",
            json={"user_id": None},
            headers=key(tenant.admin_key),
        )
        assert response.json()["assigned_user_id"] is None

    async def test_admin_is_not_a_customer(self, client, db_session, tenant):
        phone = await add_number(db_session, tenant)

        response = await client.post(
            f"/api/v1/phone-numbers/{phone.id}/assign",
            json={"user_id": str(tenant.admin_id)},
            headers=key(tenant.admin_key),
        )

        assert response.status_code == 404
