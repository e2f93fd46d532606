"""VoiceDesk operator CLI."""

import asyncio
import sys
from typing import Optional

import click
from rich.console import Console
from rich.table import Table
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from voicedesk import __version__
from voicedesk.auth.dependencies import generate_api_key
from voicedesk.config import get_settings
from voicedesk.database.session import AsyncSessionLocal, close_db, init_db
from voicedesk.database.models import (
    APIKey,
    CustomerType,
    Organization,
    PhoneNumber,
    RoomType,
    User,
    UserRole,
)
from voicedesk.errors import VoiceDeskError
from voicedesk.sync.reconciler import BotReconciler, PhoneNumberReconciler, SyncResult

console = Console()

DEMO_ORGANIZATION_SLUG = "demo-org"
DEMO_PHONE_NUMBER = "+14155551234"

DEMO_USERS = (
    ("admin@demo.voicedesk.local", "Demo Admin", UserRole.ADMIN, CustomerType.GENERAL),
    ("restaurant@demo.voicedesk.local", "Demo Restaurant", UserRole.CUSTOMER, CustomerType.RESTAURANT),
    ("hotel@demo.voicedesk.local", "Demo Hotel", UserRole.CUSTOMER, CustomerType.HOTEL),
)

DEMO_ROOM_TYPES = (
    ("Standard", "Queen bed, city view", 120.0, 2, 3),
    ("Deluxe", "King bed, balcony", 180.0, 2, 2),
    ("Family Suite", "Two bedrooms, kitchenette", 260.0, 5, 1),
)


@click.group()
@click.version_option(version=__version__, prog_name="voicedesk")
def cli():
    """VoiceDesk - manage tenants, bots and phone numbers.

    \b
    Examples:
      voicedesk init-db
      voicedesk seed
      voicedesk sync-bots --org demo-org
    """


@cli.command("serve")
@click.option("--host", default=None, help="Bind address (defaults to HOST)")
@click.option("--port", default=None, type=int, help="Port (defaults to PORT)")
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Run the API server."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "voicedesk.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload or settings.debug,
        log_level=settings.log_level,
    )


@cli.command("init-db")
def init_db_command():
    """Create database tables from the ORM metadata."""

    async def run():
        await init_db()
        await close_db()

    asyncio.run(run())
    console.print("[green]✓[/green] Database initialized")


async def seed_demo(db: AsyncSession) -> list[tuple[str, str, Optional[str]]]:
    """Create the demo tenant. Safe to run repeatedly.

    Returns ``(email, role, raw_api_key)`` rows; the key is ``None`` for
    users that already existed, since only key hashes are stored.
    """
    result = await db.execute(select(Organization).where(Organization.slug == DEMO_ORGANIZATION_SLUG))
    organization = result.scalar_one_or_none()
    if organization is None:
        organization = Organization(name="Demo Organization", slug=DEMO_ORGANIZATION_SLUG)
        db.add(organization)
        await db.flush()

    created: list[tuple[str, str, Optional[str]]] = []
    users: dict[CustomerType, User] = {}
    for email, name, role, customer_type in DEMO_USERS:
        result = await db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()
        raw_key = None
        if user is None:
            user = User(
                organization_id=organization.id,
                email=email,
                name=name,
                role=role,
                customer_type=customer_type,
            )
            db.add(user)
            await db.flush()
            raw_key, key_hash = generate_api_key()
            db.add(APIKey(user_id=user.id, key_hash=key_hash, name="seed"))
        users[customer_type] = user
        created.append((email, role.value, raw_key))

    result = await db.execute(select(PhoneNumber).where(PhoneNumber.number == DEMO_PHONE_NUMBER))
    if result.scalar_one_or_none() is None:
        db.add(
            PhoneNumber(
                organization_id=organization.id,
                number=DEMO_PHONE_NUMBER,
                retell_phone_number_id=DEMO_PHONE_NUMBER,
                nickname="Demo line",
                assigned_user_id=users[CustomerType.RESTAURANT].id,
            )
        )

    hotel = users[CustomerType.HOTEL]
    result = await db.execute(select(RoomType.name).where(RoomType.customer_id == hotel.id))
    existing_rooms = set(result.scalars().all())
    for name, description, price, max_guests, total_rooms in DEMO_ROOM_TYPES:
        if name not in existing_rooms:
            db.add(
                RoomType(
                    organization_id=organization.id,
                    customer_id=hotel.id,
                    name=name,
                    description=description,
                    price_per_night=price,
                    max_guests=max_guests,
                    total_rooms=total_rooms,
                )
            )

    await db.commit()
    return created


@cli.command("seed")
def seed():
    """Create the demo organization, users and phone number."""

    async def run():
        await init_db()
        async with AsyncSessionLocal() as db:
            rows = await seed_demo(db)
        await close_db()
        return rows

    rows = asyncio.run(run())

    table = Table(title=f"Demo users ({DEMO_ORGANIZATION_SLUG})")
    table.add_column("Email", style="cyan")
    table.add_column("Role")
    table.add_column("API key")
    for email, role, raw_key in rows:
        table.add_row(email, role, raw_key or "[dim]existing, not shown[/dim]")
    console.print(table)
    if any(raw_key for _, _, raw_key in rows):
        console.print("[yellow]![/yellow] API keys are shown once. Store them now.")


async def _run_sync(slug: str, kind: str) -> SyncResult:
    settings = get_settings()
    async with AsyncSessionLocal() as db:
        result = await db.execute(select(Organization).where(Organization.slug == slug))
        organization = result.scalar_one_or_none()
        if organization is None:
            raise click.ClickException(f"Organization '{slug}' not found")

        try:
            if kind == "bots":
                admin = await db.execute(
                    select(User.id)
                    .where(User.organization_id == organization.id, User.role == UserRole.ADMIN)
                    .order_by(User.created_at)
                    .limit(1)
                )
                return await BotReconciler(db, settings).sync(
                    organization.id, acting_user_id=admin.scalar_one_or_none()
                )
            return await PhoneNumberReconciler(db, settings).sync(organization.id)
        finally:
            await close_db()


def _print_sync_result(title: str, result: SyncResult) -> None:
    table = Table(title=title)
    table.add_column("Created", justify="right", style="green")
    table.add_column("Updated", justify="right", style="cyan")
    table.add_column("Skipped", justify="right", style="yellow")
    table.add_row(str(result.created), str(result.updated), str(result.skipped))
    console.print(table)
    for error in result.errors:
        console.print(f"[red]✗[/red] {error}")
    console.print(result.message)


def _sync(slug: str, kind: str, title: str) -> None:
    try:
        result = asyncio.run(_run_sync(slug, kind))
    except VoiceDeskError as e:
        console.print(f"[red]✗[/red] {e.message}")
        sys.exit(1)
    _print_sync_result(title, result)


@cli.command("sync-bots")
@click.option("--org", "slug", required=True, help="Organization slug")
def sync_bots(slug: str):
    """Import agents from the voice platform as bots."""
    _sync(slug, "bots", f"Bot sync: {slug}")


@cli.command("sync-numbers")
@click.option("--org", "slug", required=True, help="Organization slug")
def sync_numbers(slug: str):
    """Import phone numbers from the voice platform."""
    _sync(slug, "numbers", f"Phone number sync: {slug}")


def main():
    cli()


if __name__ == "__main__":
    main()
