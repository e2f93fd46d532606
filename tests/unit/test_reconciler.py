"""Unit tests for agent and phone number reconciliation."""

import httpx
import pytest
from sqlalchemy import select

from voicedesk.database.models import Bot, CustomerType, Organization, PhoneNumber, User, UserRole
from voicedesk.errors import CredentialMissing, RemoteApiError
from voicedesk.retell.client import RetellClient
from voicedesk.retell.schemas import RemoteAgent, RemotePhoneNumber
from voicedesk.sync.reconciler import BotReconciler, PhoneNumberReconciler, SyncResult


@pytest.fixture
def retell_client(settings) -> RetellClient:
    return RetellClient(api_key="key_test", base_url=settings.retell_base_url)


async def other_organization(db, slug="globex"):
    organization = Organization(name=slug.title(), slug=slug)
    db.add(organization)
    await db.flush()
    return organization


class TestSyncResult:
    def test_record_error_counts_as_skipped(self):
        result = SyncResult(created=1)
        result.record_error("agent_x", ValueError("boom"))
        assert result.skipped == 1
        assert result.errors == ["agent_x: boom"]
        assert result.message == "Sync completed: 1 created, 0 updated, 1 skipped"


class TestBotReconciler:
    """Tests for importing remote agents."""

    async def test_creates_and_updates(self, db_session, tenant, settings, retell_client):
        agents = [
            RemoteAgent(agent_id=tenant.agent_id, agent_name="Renamed Desk", voice_id="11labs-Bella"),
            RemoteAgent(agent_id="agent_new", agent_name="Night Line"),
        ]

        result = await BotReconciler(db_session, settings).reconcile(
            tenant.organization_id, agents, retell_client, acting_user_id=tenant.admin_id
        )

        assert (result.created, result.updated, result.skipped) == (1, 1, 0)
        existing = await db_session.get(Bot, tenant.bot_id)
        assert existing.name == "Renamed Desk"
        assert existing.voice_id == "11labs-Bella"

        imported = await db_session.scalar(select(Bot).where(Bot.retell_agent_id == "agent_new"))
        assert imported.organization_id == tenant.organization_id
        assert imported.created_by_id == tenant.admin_id
        assert imported.model == settings.default_bot_model
        assert imported.description == "Imported from voice platform"

    async def test_partial_failure_continues(self, db_session, tenant, settings, retell_client):
        """Test that bad items are skipped while the rest are committed."""
        foreign = await other_organization(db_session)
        db_session.add(
            Bot(
                organization_id=foreign.id,
                retell_agent_id="agent_foreign",
                name="Foreign",
                custom_tools=[],
                boosted_keywords=[],
            )
        )
        await db_session.commit()

        agents = [
            RemoteAgent(agent_id="agent_a", agent_name="A"),
            RemoteAgent(agent_name="No Id"),
            RemoteAgent(agent_id="agent_foreign", agent_name="Stolen"),
            RemoteAgent(agent_id="agent_b"),
        ]

        result = await BotReconciler(db_session, settings).reconcile(tenant.organization_id, agents, retell_client)

        assert result.created == 2
        assert result.skipped == 2
        assert len(result.errors) == 2
        assert result.errors[0].startswith("No Id:")
        assert "another organization" in result.errors[1]

        names = set(
            (await db_session.execute(
                select(Bot.name).where(Bot.organization_id == tenant.organization_id)
            )).scalars()
        )
        assert {"A", "Imported Bot agent_b"} <= names

        foreign_bot = await db_session.scalar(select(Bot).where(Bot.retell_agent_id == "agent_foreign"))
        assert foreign_bot.name == "Foreign"

    async def test_llm_settings_fetched(self, db_session, tenant, settings, retell_client, respx_mock):
        respx_mock.get(f"{settings.retell_base_url}/get-retell-llm/llm_new").mock(
            return_value=httpx.Response(
                200,
                json={"llm_id": "llm_new", "model": "gpt-4o", "general_prompt": "Take orders."},
            )
        )
        agent = RemoteAgent(
            agent_id="agent_llm",
            response_engine={"type": "retell-llm", "llm_id": "llm_new"},
        )

        await BotReconciler(db_session, settings).reconcile(tenant.organization_id, [agent], retell_client)

        bot = await db_session.scalar(select(Bot).where(Bot.retell_agent_id == "agent_llm"))
        assert bot.retell_llm_id == "llm_new"
        assert bot.model == "gpt-4o"
        assert bot.general_prompt == "Take orders."
        assert bot.begin_message == settings.default_begin_message

    async def test_llm_fetch_failure_uses_defaults(self, db_session, tenant, settings, retell_client, respx_mock):
        respx_mock.get(f"{settings.retell_base_url}/get-retell-llm/llm_gone").mock(
            return_value=httpx.Response(404, json={"error": "not found"})
        )
        agent = RemoteAgent(agent_id="agent_x", response_engine={"type": "retell-llm", "llm_id": "llm_gone"})

        result = await BotReconciler(db_session, settings).reconcile(tenant.organization_id, [agent], retell_client)

        assert result.created == 1
        bot = await db_session.scalar(select(Bot).where(Bot.retell_agent_id == "agent_x"))
        assert bot.model == settings.default_bot_model

    async def test_sync_without_credential_aborts(self, db_session, tenant, settings):
        settings.retell_api_key = ""
        with pytest.raises(CredentialMissing):
            await BotReconciler(db_session, settings).sync(tenant.organization_id)

    async def test_sync_list_failure_aborts(self, db_session, tenant, settings, respx_mock):
        respx_mock.get(f"{settings.retell_base_url}/list-agents").mock(
            return_value=httpx.Response(500, text="upstream down")
        )
        with pytest.raises(RemoteApiError) as exc_info:
            await BotReconciler(db_session, settings).sync(tenant.organization_id)
        assert exc_info.value.remote_status == 500

    async def test_sync_skips_undecodable_agent(self, db_session, tenant, settings, respx_mock):
        """Test that one agent with a wrongly typed field does not sink the listing."""
        respx_mock.get(f"{settings.retell_base_url}/list-agents").mock(
            return_value=httpx.Response(
                200,
                json=[
                    {"agent_id": "agent_p1", "agent_name": "One"},
                    {"agent_id": "agent_bad", "agent_name": 12345},
                    {"agent_id": "agent_p2", "agent_name": "Two"},
                ],
            )
        )

        result = await BotReconciler(db_session, settings).sync(tenant.organization_id)

        assert result.created + result.updated == 2
        assert result.skipped == 1
        assert len(result.errors) == 1
        assert result.errors[0].startswith("agent_bad: Malformed remote agent")
        names = set(
            (await db_session.execute(
                select(Bot.name).where(Bot.retell_agent_id.in_(["agent_p1", "agent_bad", "agent_p2"]))
            )).scalars()
        )
        assert names == {"One", "Two"}


class TestPhoneNumberReconciler:
    """Tests for importing remote phone numbers."""

    async def test_creates_with_bot_bindings(self, db_session, tenant, settings):
        numbers = [
            RemotePhoneNumber(
                phone_number="+14155551234",
                inbound_agent_id=tenant.agent_id,
                outbound_agent_id="agent_unknown",
                nickname="Main line",
            )
        ]

        result = await PhoneNumberReconciler(db_session, settings).reconcile(tenant.organization_id, numbers)

        assert result.created == 1
        phone = await db_session.scalar(select(PhoneNumber).where(PhoneNumber.number == "+14155551234"))
        assert phone.inbound_bot_id == tenant.bot_id
        assert phone.outbound_bot_id is None
        assert phone.nickname == "Main line"

    async def test_claims_number_from_other_organization(self, db_session, tenant, settings):
        """Test that an existing number moves to the syncing organization."""
        foreign = await other_organization(db_session)
        owner = User(
            organization_id=foreign.id,
            email="owner@globex.test",
            role=UserRole.CUSTOMER,
            customer_type=CustomerType.RESTAURANT,
        )
        db_session.add(owner)
        await db_session.flush()
        db_session.add(
            PhoneNumber(
                organization_id=foreign.id,
                number="+14155550000",
                retell_phone_number_id="+14155550000",
                nickname="Globex line",
                assigned_user_id=owner.id,
            )
        )
        await db_session.commit()

        result = await PhoneNumberReconciler(db_session, settings).reconcile(
            tenant.organization_id,
            [RemotePhoneNumber(phone_number="+1 (415) 555-0000", inbound_agent_id=tenant.agent_id)],
        )

        assert (result.created, result.updated) == (0, 1)
        phone = await db_session.scalar(select(PhoneNumber).where(PhoneNumber.number == "+14155550000"))
        assert phone.organization_id == tenant.organization_id
        assert phone.assigned_user_id is None
        assert phone.inbound_bot_id == tenant.bot_id
        assert phone.nickname == "Globex line"

    async def test_invalid_numbers_skipped(self, db_session, tenant, settings):
        numbers = [
            RemotePhoneNumber(phone_number="123"),
            RemotePhoneNumber(),
            RemotePhoneNumber(phone_number="+442071838750"),
        ]

        result = await PhoneNumberReconciler(db_session, settings).reconcile(tenant.organization_id, numbers)

        assert result.created == 1
        assert result.skipped == 2
        assert result.errors[1].startswith("<missing phone_number>:")

    async def test_sync_skips_undecodable_number(self, db_session, tenant, settings, respx_mock):
        respx_mock.get(f"{settings.retell_base_url}/list-phone-numbers").mock(
            return_value=httpx.Response(
                200,
                json=[
                    {"phone_number": "+14155550001"},
                    {"phone_number": 14155550002},
                    "junk",
                    {"phone_number": "+14155550003"},
                ],
            )
        )

        result = await PhoneNumberReconciler(db_session, settings).sync(tenant.organization_id)

        assert (result.created, result.updated, result.skipped) == (2, 0, 2)
        assert result.errors[0].startswith("14155550002: Malformed remote phone number")
        assert result.errors[1].startswith("<malformed entry>:")
        numbers = set(
            (await db_session.execute(
                select(PhoneNumber.number).where(PhoneNumber.organization_id == tenant.organization_id)
            )).scalars()
        )
        assert numbers == {"+14155550001", "+14155550003"}
