"""API tests for the lifecycle and tool-call webhooks."""

import json

from sqlalchemy import select

from voicedesk.database.models import Bot, CallStatus, Organization, WebhookLog
from voicedesk.tools.builtin import BuiltinTools
from voicedesk.tools.definitions import BUILTIN_TOOLS
from voicedesk.webhooks.signature import compute_signature

LIFECYCLE_URL = "/api/v1/webhooks/retell"
TOOL_CALL_URL = "/api/v1/webhooks/tool-call"


def started_body(organization_id, call_id="call_test_1") -> bytes:
    payload = {
        "event": "call_started",
        "call": {
            "call_id": call_id,
            "start_timestamp": 1_700_000_000_000,
            "metadata": {"organizationId": str(organization_id)},
        },
    }
    return json.dumps(payload, separators=(",", ":")).encode()


def signed(body: bytes, secret: str) -> dict[str, str]:
    return {"content-type": "application/json", "x-retell-signature": compute_signature(body, secret)}


class TestLifecycleWebhook:
    """Tests for POST /webhooks/retell."""

    async def test_valid_event_applied(self, client, db_session, tenant, settings, make_call):
        call = await make_call()
        body = started_body(tenant.organization_id)

        response = await client.post(LIFECYCLE_URL, content=body, headers=signed(body, settings.retell_webhook_secret))

        assert response.status_code == 200
        assert response.json() == {"success": True, "event": "CALL_STARTED"}
        await db_session.refresh(call)
        assert call.status == CallStatus.IN_PROGRESS

    async def test_bad_signature_rejected_and_audited(self, client, db_session, tenant, make_call):
        call = await make_call()
        body = started_body(tenant.organization_id)

        response = await client.post(LIFECYCLE_URL, content=body, headers=signed(body, "wrong-secret"))

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid signature"}
        await db_session.refresh(call)
        assert call.status == CallStatus.PENDING

        log = await db_session.scalar(select(WebhookLog))
        assert log.processed is False
        assert log.error == "Invalid signature"
        assert log.organization_id == str(tenant.organization_id)

    async def test_missing_signature_rejected(self, client, tenant, make_call):
        await make_call()
        body = started_body(tenant.organization_id)

        response = await client.post(LIFECYCLE_URL, content=body, headers={"content-type": "application/json"})

        assert response.status_code == 401

    async def test_unconfigured_secret(self, client, tenant, settings, make_call):
        settings.retell_webhook_secret = ""
        await make_call()
        body = started_body(tenant.organization_id)

        response = await client.post(LIFECYCLE_URL, content=body, headers=signed(body, "anything"))

        assert response.status_code == 500
        assert response.json() == {"error": "Webhook not configured"}

    async def test_organization_secret_overrides_shared(self, client, db_session, tenant, settings, make_call):
        organization = await db_session.get(Organization, tenant.organization_id)
        organization.retell_webhook_secret = "whsec_acme_only"
        await db_session.commit()
        await make_call()
        body = started_body(tenant.organization_id)

        shared = await client.post(LIFECYCLE_URL, content=body, headers=signed(body, settings.retell_webhook_secret))
        own = await client.post(LIFECYCLE_URL, content=body, headers=signed(body, "whsec_acme_only"))

        assert shared.status_code == 401
        assert own.status_code == 200

    async def test_non_json_body(self, client, settings, tenant):
        body = b"not json at all"

        response = await client.post(LIFECYCLE_URL, content=body, headers=signed(body, settings.retell_webhook_secret))

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid payload"

    async def test_unknown_call(self, client, db_session, settings, tenant):
        body = started_body(tenant.organization_id, call_id="call_nowhere")

        response = await client.post(LIFECYCLE_URL, content=body, headers=signed(body, settings.retell_webhook_secret))

        assert response.status_code == 404
        log = await db_session.scalar(select(WebhookLog))
        assert log.error == "Call not found in database"

    async def test_unknown_event_acknowledged(self, client, settings, tenant, make_call):
        await make_call()
        body = json.dumps(
            {
                "event": "call_transferred",
                "call": {"call_id": "call_test_1", "metadata": {"organizationId": str(tenant.organization_id)}},
            }
        ).encode()

        response = await client.post(LIFECYCLE_URL, content=body, headers=signed(body, settings.retell_webhook_secret))

        assert response.status_code == 200
        assert response.json()["event"] == "UNKNOWN"


class TestToolCallWebhook:
    """Tests for POST /webhooks/tool-call."""

    async def test_executes_builtin_tool(self, client, db_session, tenant, make_call):
        bot = await db_session.get(Bot, tenant.bot_id)
        bot.custom_tools = [BUILTIN_TOOLS["get_call_info"]]
        await db_session.commit()
        await make_call()

        response = await client.post(
            TOOL_CALL_URL,
            json={"call_id": "call_test_1", "tool_call_id": "tc_1", "tool_name": "get_call_info", "arguments": {}},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["tool_call_id"] == "tc_1"
        assert "error" not in body
        assert json.loads(body["result"])["status"] == "PENDING"

    async def test_unknown_tool(self, client, tenant, make_call):
        await make_call()

        response = await client.post(TOOL_CALL_URL, json={"call_id": "call_test_1", "tool_name": "teleport"})

        assert response.status_code == 200
        assert response.json() == {"result": "Error: Tool 'teleport' not found", "error": True}

    async def test_unrecoverable_call(self, client, settings, tenant):
        settings.retell_api_key = ""

        response = await client.post(TOOL_CALL_URL, json={"call_id": "call_ghost", "tool_name": "get_call_info"})

        assert response.status_code == 404
        assert response.json() == {"error": "Call not found"}

    async def test_unexpected_failure_envelope(self, client, db_session, tenant, make_call, monkeypatch):
        bot = await db_session.get(Bot, tenant.bot_id)
        bot.custom_tools = [BUILTIN_TOOLS["get_call_info"]]
        await db_session.commit()
        await make_call()

        async def explode(self, name, arguments):
            raise RuntimeError("database fell over")

        monkeypatch.setattr(BuiltinTools, "execute", explode)

        response = await client.post(
            TOOL_CALL_URL, json={"call_id": "call_test_1", "tool_call_id": "tc_2", "tool_name": "get_call_info"}
        )

        assert response.status_code == 500
        assert response.json() == {"result": "Error executing tool", "tool_call_id": "tc_2", "error": True}

    async def test_malformed_body(self, client, tenant):
        response = await client.post(TOOL_CALL_URL, json={"tool_name": "get_call_info"})

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid input"
