"""
Shared fixtures for the reminder engine tests.

Provides:
- A throwaway SQLite database (file-backed, so several sessions can share it)
- A seeder for organizations, logins, inventory files and reminders
- A scripted in-process SMTP server
- Recording stand-ins for the mailer and the Webex notifier
"""

import asyncio
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from inventory_portal.core.config import Settings
from inventory_portal.models import (
    ActorType,
    AppSettings,
    AuditAction,
    AuditLog,
    AuditScope,
    Base,
    InventoryFile,
    InventoryFileStatus,
    InventoryItem,
    InventoryItemStatus,
    Organization,
    ReminderApproval,
    ReminderStatus,
)


# Monday
NOW = datetime(2026, 10, 19, 14, 0, tzinfo=timezone.utc)
# Friday of the previous week: 6 business days before NOW
LAST_WEEK_FRIDAY = datetime(2026, 10, 9, 14, 0, tzinfo=timezone.utc)
# Friday just before NOW: 1 business day before NOW
FRIDAY = datetime(2026, 10, 16, 14, 0, tzinfo=timezone.utc)


# =============================================================================
# DATABASE
# =============================================================================


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'portal.db'}"


@pytest.fixture
async def db_engine(database_url):
    engine = create_async_engine(database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        reminder_timezone="UTC",
        smtp_from_email="inventaire@portal.test",
        smtp_helo_domain="portal.test",
        system_actor_name="System Reminder",
        system_actor_email="inventaire@portal.test",
    )


@pytest.fixture
def clock():
    return lambda: NOW


# =============================================================================
# SEEDING
# =============================================================================


class PortalSeeder:
    """Commits fixture rows through independent sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def _add(self, *rows):
        async with self._session_factory() as session:
            async with session.begin():
                session.add_all(rows)
        return rows[0]

    async def app_settings(self, **overrides: Any) -> AppSettings:
        values = {
            "id": AppSettings.GLOBAL_ID,
            "reminder_email_enabled": True,
            "reminder_business_days": 5,
            "reminder_follow_up_business_days": 5,
            "webex_enabled": False,
            "webex_notify_on_reminder": True,
        }
        values.update(overrides)
        return await self._add(AppSettings(**values))

    async def organization(self, org_code: str = "ORG-001", **overrides: Any) -> Organization:
        values = {
            "id": uuid4(),
            "org_code": org_code,
            "display_name": f"Organisation {org_code}",
            "is_active": True,
            "reminder_notifications_enabled": True,
            "support_contact_email": "soutien@portal.test",
        }
        values.update(overrides)
        return await self._add(Organization(**values))

    async def login(
        self,
        organization: Organization,
        at: datetime = LAST_WEEK_FRIDAY,
        email: str | None = "contact@org.test",
    ) -> AuditLog:
        return await self._add(AuditLog(
            id=uuid4(),
            scope=AuditScope.ORG_ACCESS,
            scope_id=str(organization.id),
            actor_type=ActorType.ORG,
            actor_name="Contact",
            actor_email=email,
            action=AuditAction.ORG_LOGIN.value,
            details={},
            created_at=at,
        ))

    async def inventory_file(
        self,
        organization: Organization,
        total: int = 10,
        confirmed: int = 3,
        status: InventoryFileStatus = InventoryFileStatus.PUBLISHED,
        imported_at: datetime = LAST_WEEK_FRIDAY,
    ) -> InventoryFile:
        inventory_file = InventoryFile(
            id=uuid4(),
            organization_id=organization.id,
            source_filename="inventaire.xlsx",
            status=status,
            imported_at=imported_at,
        )
        items = [
            InventoryItem(
                id=uuid4(),
                inventory_file_id=inventory_file.id,
                row_number=row,
                status=InventoryItemStatus.CONFIRMED if row <= confirmed else InventoryItemStatus.PENDING,
            )
            for row in range(1, total + 1)
        ]
        # Parent first so the items' foreign key resolves
        await self._add(inventory_file)
        if items:
            await self._add(*items)
        return inventory_file

    async def reminder(
        self,
        organization: Organization,
        inventory_file: InventoryFile,
        status: ReminderStatus = ReminderStatus.PENDING_APPROVAL,
        recipient_email: str = "contact@org.test",
        requested_at: datetime = FRIDAY,
        **overrides: Any,
    ) -> ReminderApproval:
        values = {
            "id": uuid4(),
            "organization_id": organization.id,
            "inventory_file_id": inventory_file.id,
            "recipient_email": recipient_email,
            "remaining_count": 7,
            "total_count": 10,
            "status": status,
            "requested_at": requested_at,
        }
        values.update(overrides)
        return await self._add(ReminderApproval(**values))


@pytest.fixture
def seed(session_factory) -> PortalSeeder:
    return PortalSeeder(session_factory)


# =============================================================================
# SMTP
# =============================================================================


class FakeSmtpServer:
    """
    Scripted SMTP relay.

    ``replies`` maps a command verb (HELO, MAIL, RCPT, DATA, QUIT) or
    END_DATA to the raw reply text; multi-line replies use CRLF inside the
    value. ``greeting=None`` makes the server stay silent after accept.
    """

    def __init__(self):
        self.greeting: str | None = "220 relay.test ESMTP ready"
        self.replies: dict[str, str] = {
            "HELO": "250 relay.test",
            "MAIL": "250 2.1.0 OK",
            "RCPT": "250 2.1.5 OK",
            "DATA": "354 End data with <CR><LF>.<CR><LF>",
            "END_DATA": "250 2.0.0 queued",
            "QUIT": "221 2.0.0 bye",
        }
        self.commands: list[str] = []
        self.data_lines: list[str] = []
        self.accepted_messages = 0
        self.closed = asyncio.Event()
        self._server: asyncio.AbstractServer | None = None
        self.port: int | None = None

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        self._server.close()
        await self._server.wait_closed()

    async def _reply(self, writer: asyncio.StreamWriter, text: str) -> None:
        writer.write((text + "\r\n").encode("utf-8"))
        await writer.drain()

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            if self.greeting is not None:
                await self._reply(writer, self.greeting)

            in_data = False
            while True:
                raw = await reader.readline()
                if not raw:
                    break
                line = raw.decode("utf-8").rstrip("\r\n")

                if in_data:
                    if line == ".":
                        in_data = False
                        if self.replies["END_DATA"].startswith("2"):
                            self.accepted_messages += 1
                        await self._reply(writer, self.replies["END_DATA"])
                    else:
                        self.data_lines.append(line)
                    continue

                self.commands.append(line)
                verb = line.split(" ", 1)[0].split(":", 1)[0].upper()
                reply = self.replies.get(verb, "500 5.5.1 unknown command")
                await self._reply(writer, reply)
                if verb == "DATA" and reply.startswith("354"):
                    in_data = True
        except ConnectionError:
            pass
        finally:
            self.closed.set()
            writer.close()


@pytest.fixture
async def smtp_server():
    server = FakeSmtpServer()
    await server.start()
    yield server
    await server.stop()


# =============================================================================
# COLLABORATOR STAND-INS
# =============================================================================


class RecordingMailer:
    """Collects messages instead of talking to a relay."""

    def __init__(self):
        self.sent = []
        self.error: Exception | None = None

    async def send(self, message) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append(message)


class RecordingNotifier:
    """Collects Webex notifications; raises when ``error`` is set."""

    def __init__(self):
        self.calls: list[dict[str, Any]] = []
        self.error: Exception | None = None

    async def notify_reminder_sent(self, app_settings, **kwargs) -> None:
        if self.error is not None:
            raise self.error
        self.calls.append(kwargs)


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()
