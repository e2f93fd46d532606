"""Unit tests for the operator CLI."""

from click.testing import CliRunner
from sqlalchemy import func, select

from voicedesk import __version__
from voicedesk.cli import DEMO_PHONE_NUMBER, cli, seed_demo
from voicedesk.database.models import APIKey, PhoneNumber, RoomType, User


class TestSeed:
    """Tests for the demo tenant seed."""

    async def test_seed_creates_tenant(self, db_session):
        rows = await seed_demo(db_session)

        assert [role for _, role, _ in rows] == ["ADMIN", "CUSTOMER", "CUSTOMER"]
        assert all(raw_key.startswith("vd_live_") for _, _, raw_key in rows)

        phone = await db_session.scalar(select(PhoneNumber).where(PhoneNumber.number == DEMO_PHONE_NUMBER))
        restaurant = await db_session.scalar(select(User).where(User.email == "restaurant@demo.voicedesk.local"))
        assert phone.assigned_user_id == restaurant.id

        rooms = await db_session.scalar(select(func.count()).select_from(RoomType))
        assert rooms == 3

    async def test_seed_is_idempotent(self, db_session):
        await seed_demo(db_session)
        rows = await seed_demo(db_session)

        assert all(raw_key is None for _, _, raw_key in rows)
        assert await db_session.scalar(select(func.count()).select_from(User)) == 3
        assert await db_session.scalar(select(func.count()).select_from(APIKey)) == 3
        assert await db_session.scalar(select(func.count()).select_from(RoomType)) == 3


class TestCommands:
    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_sync_requires_org(self):
        result = CliRunner().invoke(cli, ["sync-bots"])
        assert result.exit_code != 0
        assert "--org" in result.output
