"""Unit tests for bot editing/removal and knowledge base linking."""

import json

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import select

from voicedesk.bots.schemas import BotCreate, BotUpdate
from voicedesk.bots.service import BotService
from voicedesk.database.models import Bot, BotAssignment, BotKnowledgeBase, KnowledgeBase, PhoneNumber
from voicedesk.errors import RemoteApiError, ValidationError
from voicedesk.knowledge.linker import KnowledgeBaseLinker
from voicedesk.knowledge.service import KnowledgeBaseService


def sent_json(route) -> dict:
    return json.loads(route.calls.last.request.content)


class TestBotCreate:
    """Tests for provisioning bots remotely."""

    async def test_creates_llm_then_agent(self, db_session, tenant, settings, respx_mock):
        llm_route = respx_mock.post(f"{settings.retell_base_url}/create-retell-llm").mock(
            return_value=httpx.Response(201, json={"llm_id": "llm_new"})
        )
        agent_route = respx_mock.post(f"{settings.retell_base_url}/create-agent").mock(
            return_value=httpx.Response(201, json={"agent_id": "agent_new"})
        )

        bot = await BotService(db_session, settings).create(
            tenant.restaurant,
            BotCreate(name="Orders", voice_id="11labs-Adrian", general_prompt="Take orders."),
        )

        assert bot.retell_agent_id == "agent_new"
        assert bot.retell_llm_id == "llm_new"
        assert sent_json(llm_route)["begin_message"] == settings.default_begin_message
        agent_body = sent_json(agent_route)
        assert agent_body["response_engine"] == {"type": "retell-llm", "llm_id": "llm_new"}
        assert agent_body["webhook_url"] == "https://voicedesk.test/api/v1/webhooks/retell"

        # Customers who create a bot are assigned to it
        assignment = await db_session.scalar(
            select(BotAssignment).where(BotAssignment.bot_id == bot.id)
        )
        assert assignment.user_id == tenant.restaurant_id

    async def test_agent_failure_leaves_no_bot(self, db_session, tenant, settings, respx_mock):
        respx_mock.post(f"{settings.retell_base_url}/create-retell-llm").mock(
            return_value=httpx.Response(201, json={"llm_id": "llm_new"})
        )
        respx_mock.post(f"{settings.retell_base_url}/create-agent").mock(
            return_value=httpx.Response(422, json={"error": "bad voice"})
        )

        with pytest.raises(RemoteApiError) as exc_info:
            await BotService(db_session, settings).create(
                tenant.admin,
                BotCreate(name="Orders", voice_id="nope", general_prompt="Take orders."),
            )

        assert exc_info.value.remote_status == 422
        assert await db_session.scalar(select(Bot).where(Bot.name == "Orders")) is None


class TestBotUpdate:
    """Tests for remote-first editing."""

    async def test_remote_failure_aborts_local_change(self, db_session, tenant, settings, respx_mock):
        respx_mock.patch(f"{settings.retell_base_url}/update-agent/{tenant.agent_id}").mock(
            return_value=httpx.Response(500, text="internal")
        )

        with pytest.raises(RemoteApiError):
            await BotService(db_session, settings).update(tenant.admin, tenant.bot_id, BotUpdate(name="Lobby"))

        bot = await db_session.get(Bot, tenant.bot_id)
        await db_session.refresh(bot)
        assert bot.name == "Front Desk"

    async def test_patches_agent_and_llm(self, db_session, tenant, settings, respx_mock):
        agent_route = respx_mock.patch(f"{settings.retell_base_url}/update-agent/{tenant.agent_id}").mock(
            return_value=httpx.Response(200, json={"agent_id": tenant.agent_id})
        )
        llm_route = respx_mock.patch(f"{settings.retell_base_url}/update-retell-llm/llm_acme_1").mock(
            return_value=httpx.Response(200, json={"llm_id": "llm_acme_1"})
        )

        bot = await BotService(db_session, settings).update(
            tenant.admin,
            tenant.bot_id,
            BotUpdate(name="Lobby", general_prompt="Greet guests."),
        )

        assert bot.name == "Lobby"
        assert bot.general_prompt == "Greet guests."
        assert sent_json(agent_route) == {"agent_name": "Lobby"}
        assert sent_json(llm_route) == {"general_prompt": "Greet guests."}

    async def test_local_only_change_skips_remote(self, db_session, tenant, settings):
        bot = await BotService(db_session, settings).update(
            tenant.admin, tenant.bot_id, BotUpdate(description="Main reception")
        )
        assert bot.description == "Main reception"


class TestBotDelete:
    """Tests for best-effort remote removal."""

    async def test_remote_failures_do_not_block(self, db_session, tenant, settings, respx_mock):
        respx_mock.delete(f"{settings.retell_base_url}/delete-agent/{tenant.agent_id}").mock(
            return_value=httpx.Response(404, json={"error": "gone"})
        )
        respx_mock.delete(f"{settings.retell_base_url}/delete-retell-llm/llm_acme_1").mock(
            return_value=httpx.Response(204)
        )
        db_session.add(
            PhoneNumber(
                organization_id=tenant.organization_id,
                number="+14155551234",
                inbound_bot_id=tenant.bot_id,
                outbound_bot_id=tenant.bot_id,
            )
        )
        await db_session.commit()

        outcome = await BotService(db_session, settings).delete(tenant.admin, tenant.bot_id)

        assert outcome == {"remote_agent_deleted": False, "remote_llm_deleted": True}
        assert await db_session.scalar(select(Bot).where(Bot.id == tenant.bot_id)) is None
        phone = await db_session.scalar(select(PhoneNumber).where(PhoneNumber.number == "+14155551234"))
        await db_session.refresh(phone)
        assert phone.inbound_bot_id is None
        assert phone.outbound_bot_id is None

    async def test_missing_credential_still_deletes(self, db_session, tenant, settings):
        settings.retell_api_key = ""

        outcome = await BotService(db_session, settings).delete(tenant.admin, tenant.bot_id)

        assert outcome == {"remote_agent_deleted": False, "remote_llm_deleted": False}
        assert await db_session.scalar(select(Bot).where(Bot.id == tenant.bot_id)) is None


@pytest_asyncio.fixture
async def knowledge_bases(db_session, tenant):
    created = []
    for name in ("Menu", "Policies"):
        knowledge_base = KnowledgeBase(
            organization_id=tenant.organization_id,
            retell_knowledge_base_id=f"kb_{name.lower()}",
            name=name,
            texts=[f"{name} text"],
        )
        db_session.add(knowledge_base)
        created.append(knowledge_base)
    await db_session.commit()
    return [knowledge_base.id for knowledge_base in created]


class TestKnowledgeBaseLinker:
    """Tests for keeping the remote knowledge base list in step."""

    async def test_assign_pushes_full_list(self, db_session, tenant, settings, respx_mock, knowledge_bases):
        route = respx_mock.patch(f"{settings.retell_base_url}/update-retell-llm/llm_acme_1").mock(
            return_value=httpx.Response(200, json={"llm_id": "llm_acme_1"})
        )
        linker = KnowledgeBaseLinker(db_session, settings)

        await linker.assign(tenant.organization_id, tenant.bot_id, knowledge_bases[0])
        await linker.assign(tenant.organization_id, tenant.bot_id, knowledge_bases[1], top_k=5, filter_score=0.8)

        assert sent_json(route) == {
            "knowledge_base_ids": [
                {"knowledge_base_id": "kb_menu", "top_k": 3, "filter_score": 0.5},
                {"knowledge_base_id": "kb_policies", "top_k": 5, "filter_score": 0.8},
            ]
        }
        assignments = await linker.list_assignments(tenant.organization_id, tenant.bot_id)
        assert [a.knowledge_base_id for a in assignments] == knowledge_bases

    async def test_unassign_pushes_remaining(self, db_session, tenant, settings, respx_mock, knowledge_bases):
        route = respx_mock.patch(f"{settings.retell_base_url}/update-retell-llm/llm_acme_1").mock(
            return_value=httpx.Response(200, json={"llm_id": "llm_acme_1"})
        )
        linker = KnowledgeBaseLinker(db_session, settings)
        first = await linker.assign(tenant.organization_id, tenant.bot_id, knowledge_bases[0])
        await linker.assign(tenant.organization_id, tenant.bot_id, knowledge_bases[1])

        await linker.unassign(tenant.organization_id, tenant.bot_id, first.id)

        assert sent_json(route) == {
            "knowledge_base_ids": [{"knowledge_base_id": "kb_policies", "top_k": 3, "filter_score": 0.5}]
        }
        remaining = await linker.list_assignments(tenant.organization_id, tenant.bot_id)
        assert len(remaining) == 1

    async def test_remote_failure_leaves_no_assignment(
        self, db_session, tenant, settings, respx_mock, knowledge_bases
    ):
        respx_mock.patch(f"{settings.retell_base_url}/update-retell-llm/llm_acme_1").mock(
            return_value=httpx.Response(400, json={"error": "unknown knowledge base"})
        )

        with pytest.raises(RemoteApiError):
            await KnowledgeBaseLinker(db_session, settings).assign(
                tenant.organization_id, tenant.bot_id, knowledge_bases[0]
            )

        assignment_id = await db_session.scalar(select(BotKnowledgeBase.id).where(BotKnowledgeBase.bot_id == tenant.bot_id))
        assert assignment_id is None

    async def test_bot_without_llm_rejected(self, db_session, tenant, settings, knowledge_bases):
        bot = await db_session.get(Bot, tenant.bot_id)
        bot.retell_llm_id = None
        await db_session.commit()

        with pytest.raises(ValidationError):
            await KnowledgeBaseLinker(db_session, settings).assign(
                tenant.organization_id, tenant.bot_id, knowledge_bases[0]
            )

    async def test_parameters_validated(self, db_session, tenant, settings, knowledge_bases):
        linker = KnowledgeBaseLinker(db_session, settings)
        with pytest.raises(ValidationError):
            await linker.assign(tenant.organization_id, tenant.bot_id, knowledge_bases[0], top_k=0)
        with pytest.raises(ValidationError):
            await linker.assign(tenant.organization_id, tenant.bot_id, knowledge_bases[0], filter_score=1.5)

    async def test_assign_then_unassign_round_trip(
        self, db_session, tenant, settings, respx_mock, knowledge_bases
    ):
        route = respx_mock.patch(f"{settings.retell_base_url}/update-retell-llm/llm_acme_1").mock(
            return_value=httpx.Response(200, json={"llm_id": "llm_acme_1"})
        )
        linker = KnowledgeBaseLinker(db_session, settings)

        assignment = await linker.assign(tenant.organization_id, tenant.bot_id, knowledge_bases[0])
        assert sent_json(route)["knowledge_base_ids"] == [
            {"knowledge_base_id": "kb_menu", "top_k": 3, "filter_score": 0.5}
        ]

        await linker.unassign(tenant.organization_id, tenant.bot_id, assignment.id)

        assert route.call_count == 2
        assert sent_json(route) == {"knowledge_base_ids": []}
        assert await linker.list_assignments(tenant.organization_id, tenant.bot_id) == []


async def second_bot(db_session, tenant) -> Bot:
    bot = Bot(
        organization_id=tenant.organization_id,
        retell_agent_id="agent_acme_2",
        retell_llm_id="llm_acme_2",
        name="Night Line",
        custom_tools=[],
        boosted_keywords=[],
    )
    db_session.add(bot)
    await db_session.commit()
    return bot


class TestKnowledgeBaseDelete:
    """Tests for removing a knowledge base that bots still use."""

    async def link_both_bots(self, db_session, tenant, settings, respx_mock, knowledge_bases):
        night = await second_bot(db_session, tenant)
        routes = {
            llm_id: respx_mock.patch(f"{settings.retell_base_url}/update-retell-llm/{llm_id}").mock(
                return_value=httpx.Response(200, json={"llm_id": llm_id})
            )
            for llm_id in ("llm_acme_1", "llm_acme_2")
        }
        linker = KnowledgeBaseLinker(db_session, settings)
        menu, policies = knowledge_bases
        await linker.assign(tenant.organization_id, tenant.bot_id, menu)
        await linker.assign(tenant.organization_id, tenant.bot_id, policies)
        await linker.assign(tenant.organization_id, night.id, menu)
        return night, routes

    async def test_repushes_every_bot_without_it(
        self, db_session, tenant, settings, respx_mock, knowledge_bases
    ):
        night, routes = await self.link_both_bots(db_session, tenant, settings, respx_mock, knowledge_bases)
        remote_delete = respx_mock.delete(f"{settings.retell_base_url}/knowledge-base/kb_menu").mock(
            return_value=httpx.Response(204)
        )
        menu, policies = knowledge_bases

        await KnowledgeBaseService(db_session, settings).delete(tenant.organization_id, menu)

        assert sent_json(routes["llm_acme_1"]) == {
            "knowledge_base_ids": [{"knowledge_base_id": "kb_policies", "top_k": 3, "filter_score": 0.5}]
        }
        assert sent_json(routes["llm_acme_2"]) == {"knowledge_base_ids": []}
        assert remote_delete.called

        assert await db_session.scalar(select(KnowledgeBase.id).where(KnowledgeBase.id == menu)) is None
        remaining = (
            await db_session.execute(select(BotKnowledgeBase.bot_id, BotKnowledgeBase.knowledge_base_id))
        ).all()
        assert remaining == [(tenant.bot_id, policies)]

    @pytest.mark.respx(assert_all_called=False)
    async def test_push_failure_keeps_knowledge_base(
        self, db_session, tenant, settings, respx_mock, knowledge_bases
    ):
        night, routes = await self.link_both_bots(db_session, tenant, settings, respx_mock, knowledge_bases)
        routes["llm_acme_2"].mock(return_value=httpx.Response(500, text="internal"))
        remote_delete = respx_mock.delete(f"{settings.retell_base_url}/knowledge-base/kb_menu")
        menu, _ = knowledge_bases

        with pytest.raises(RemoteApiError):
            await KnowledgeBaseService(db_session, settings).delete(tenant.organization_id, menu)
        await db_session.rollback()

        assert not remote_delete.called
        assert await db_session.scalar(select(KnowledgeBase.id).where(KnowledgeBase.id == menu)) == menu
        links = (
            await db_session.execute(
                select(BotKnowledgeBase.bot_id).where(BotKnowledgeBase.knowledge_base_id == menu)
            )
        ).scalars().all()
        assert set(links) == {tenant.bot_id, night.id}
