"""Unit tests for the platform client and credential resolution."""

import httpx
import pytest

from voicedesk.database.models import Organization
from voicedesk.errors import CredentialMissing, RemoteApiError
from voicedesk.retell.client import RetellClient
from voicedesk.retell.credentials import (
    SOURCE_FALLBACK,
    SOURCE_ORGANIZATION,
    Credential,
    CredentialResolver,
    mask_secret,
)
from voicedesk.retell.schemas import MalformedEntry, RemoteAgent


@pytest.fixture
def retell_client(settings) -> RetellClient:
    return RetellClient(api_key="key_test_abcdef", base_url=settings.retell_base_url)


class TestMaskSecret:
    """Tests for operator-facing secret previews."""

    def test_unset(self):
        assert mask_secret(None) == "not_set"
        assert mask_secret("") == "not_set"

    def test_short_values_fully_masked(self):
        assert mask_secret("abcd1234") == "********"

    def test_long_values_show_edges(self):
        assert mask_secret("key_live_123456") == "key_...3456"

    def test_credential_repr_hides_key(self):
        credential = Credential(api_key="key_live_123456", source=SOURCE_FALLBACK)
        assert "key_live_123456" not in repr(credential)
        assert credential.preview == "key_...3456"


class TestRetellClient:
    """Tests for request and error handling."""

    async def test_sends_bearer_token(self, retell_client, settings, respx_mock):
        route = respx_mock.get(f"{settings.retell_base_url}/get-agent/agent_1").mock(
            return_value=httpx.Response(200, json={"agent_id": "agent_1", "agent_name": "Desk"})
        )

        agent = await retell_client.get_agent("agent_1")

        assert agent.agent_name == "Desk"
        assert route.calls.last.request.headers["Authorization"] == "Bearer key_test_abcdef"

    async def test_error_status_raises(self, retell_client, settings, respx_mock):
        respx_mock.get(f"{settings.retell_base_url}/get-agent/agent_1").mock(
            return_value=httpx.Response(401, text="Unauthorized")
        )

        with pytest.raises(RemoteApiError) as exc_info:
            await retell_client.get_agent("agent_1")

        error = exc_info.value
        assert error.remote_status == 401
        assert error.raw_body == "Unauthorized"
        assert error.path == "/get-agent/agent_1"
        assert error.status_code == 502

    async def test_transport_failure_has_status_zero(self, retell_client, settings, respx_mock):
        respx_mock.get(f"{settings.retell_base_url}/list-agents").mock(
            side_effect=httpx.ConnectError("connection refused")
        )

        with pytest.raises(RemoteApiError) as exc_info:
            await retell_client.list_agents()

        assert exc_info.value.remote_status == 0

    async def test_empty_body_decodes_to_empty_object(self, retell_client, settings, respx_mock):
        respx_mock.delete(f"{settings.retell_base_url}/delete-agent/agent_1").mock(
            return_value=httpx.Response(204)
        )
        assert await retell_client.call("DELETE", "/delete-agent/agent_1") == {}

    async def test_list_shape_enforced(self, retell_client, settings, respx_mock):
        respx_mock.get(f"{settings.retell_base_url}/list-phone-numbers").mock(
            return_value=httpx.Response(200, json={"numbers": []})
        )

        with pytest.raises(RemoteApiError):
            await retell_client.list_phone_numbers()

    async def test_malformed_list_entries_marked(self, retell_client, settings, respx_mock):
        respx_mock.get(f"{settings.retell_base_url}/list-agents").mock(
            return_value=httpx.Response(
                200, json=[{"agent_id": "agent_1"}, "junk", {"agent_id": "agent_2", "agent_name": 7}]
            )
        )

        agents = await retell_client.list_agents()

        assert isinstance(agents[0], RemoteAgent)
        assert agents[0].agent_id == "agent_1"
        assert isinstance(agents[1], MalformedEntry)
        assert agents[1].label("agent_id") == "<malformed entry>"
        assert isinstance(agents[2], MalformedEntry)
        assert agents[2].label("agent_id") == "agent_2"
        assert agents[2].error == "invalid fields: agent_name"

    async def test_unknown_fields_preserved(self, retell_client, settings, respx_mock):
        respx_mock.post(f"{settings.retell_base_url}/v2/create-phone-call").mock(
            return_value=httpx.Response(201, json={"call_id": "call_1", "telephony_identifier": {"sid": "x"}})
        )

        call = await retell_client.create_phone_call({"from_number": "+14155551234", "to_number": "+14155550000"})

        assert call.call_id == "call_1"
        assert call.model_extra["telephony_identifier"] == {"sid": "x"}


class TestCredentialResolver:
    """Tests for per-tenant key lookup."""

    async def test_organization_key_wins(self, db_session, tenant, settings):
        organization = await db_session.get(Organization, tenant.organization_id)
        organization.retell_api_key = "key_acme_private"
        await db_session.commit()

        credential = await CredentialResolver(db_session, settings).resolve(tenant.organization_id)

        assert credential.api_key == "key_acme_private"
        assert credential.source == SOURCE_ORGANIZATION

    async def test_fallback_key(self, db_session, tenant, settings):
        credential = await CredentialResolver(db_session, settings).resolve(str(tenant.organization_id))

        assert credential.api_key == settings.retell_api_key
        assert credential.source == SOURCE_FALLBACK

    async def test_missing_everywhere(self, db_session, tenant, settings):
        settings.retell_api_key = ""

        with pytest.raises(CredentialMissing):
            await CredentialResolver(db_session, settings).resolve(tenant.organization_id)

        status = await CredentialResolver(db_session, settings).describe(tenant.organization_id)
        assert status == {"configured": False, "source": None, "key_preview": "not_set"}

    async def test_probe_reports_reachability(self, db_session, tenant, settings, respx_mock):
        respx_mock.post(f"{settings.retell_base_url}/v2/list-calls").mock(
            return_value=httpx.Response(200, json=[{"call_id": "c1"}, {"call_id": "c2"}])
        )

        status = await CredentialResolver(db_session, settings).probe(tenant.organization_id)

        assert status["configured"] is True
        assert status["reachable"] is True
        assert status["recent_calls"] == 2
        assert status["key_preview"] == "key_...6789"

    async def test_probe_reports_remote_error(self, db_session, tenant, settings, respx_mock):
        respx_mock.post(f"{settings.retell_base_url}/v2/list-calls").mock(
            return_value=httpx.Response(401, text="bad key")
        )

        status = await CredentialResolver(db_session, settings).probe(tenant.organization_id)

        assert status["reachable"] is False
        assert status["remote_status"] == 401
