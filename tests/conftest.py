"""
Shared fixtures: a file-backed SQLite database per test, in-process fakes for
the realtime channel, email queue and file store, and a seeded catalogue.

Each service call runs in its own session, as it would per request.
"""

from __future__ import annotations

import hashlib
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import pytest
from sqlalchemy import event, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel, select

import gtcflow.models  # noqa: F401
from gtcflow.core.storage import StoredFile
from gtcflow.core.token_store import InMemoryTokenStore
from gtcflow.core.tokens import TokenAuthority, hash_password
from gtcflow.models.sector import GtcPoint, Sector, Service
from gtcflow.models.user import User
from gtcflow.schemas.common import Role
from gtcflow.services.accounts import AccountService
from gtcflow.services.conventions import ConventionService
from gtcflow.services.notifications import NotificationDispatcher
from gtcflow.services.onboarding import OnboardingService

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\ntrailer\n<<>>\n%%EOF\n"
PASSWORD = "correct-horse-battery"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeRealtime:
    def __init__(self):
        self.events: list[tuple[uuid.UUID, str, dict]] = []

    async def publish(self, user_id, kind, payload):
        self.events.append((user_id, kind, payload))

    def kinds_for(self, user_id) -> list[str]:
        return [kind for uid, kind, _ in self.events if uid == user_id]


class FakeEmailQueue:
    def __init__(self):
        self.jobs = []
        self.fail_for: set[str] = set()

    async def enqueue(self, job):
        if self.fail_for & set(job.recipients):
            raise ConnectionError("email queue unavailable")
        self.jobs.append(job)

    def sent_to(self, address: str) -> list:
        return [j for j in self.jobs if address in j.recipients]


class MemoryFileStore:
    def __init__(self):
        self.files: dict[str, bytes] = {}
        self.removed: list[str] = []

    async def put(self, content: bytes, mime: str, original_name: str) -> StoredFile:
        file_name = f"{uuid.uuid4()}-{original_name}"
        path = f"/2026/10/{file_name}"
        self.files[path] = content
        return StoredFile(
            file_name=file_name,
            path=path,
            mime=mime,
            size=len(content),
            checksum=hashlib.sha256(content).hexdigest(),
        )

    async def remove(self, path: str) -> None:
        self.removed.append(path)
        self.files.pop(path, None)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'gtc.db'}")

    @event.listens_for(eng.sync_engine, "connect")
    def _sqlite_pragmas(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def realtime():
    return FakeRealtime()


@pytest.fixture
def email_queue():
    return FakeEmailQueue()


@pytest.fixture
def files():
    return MemoryFileStore()


@pytest.fixture
def token_store():
    return InMemoryTokenStore()


@pytest.fixture
def authority(token_store):
    return TokenAuthority(token_store, secret="test-secret-key-with-enough-length")


@pytest.fixture
def dispatcher(session_factory, realtime, email_queue):
    return NotificationDispatcher(session_factory, realtime, email_queue)


# ---------------------------------------------------------------------------
# Seeded world
# ---------------------------------------------------------------------------


@dataclass
class World:
    session_factory: async_sessionmaker
    dispatcher: NotificationDispatcher
    authority: TokenAuthority
    files: MemoryFileStore
    sector: Sector
    other_sector: Sector
    service_x: Service
    service_y: Service
    point: GtcPoint
    admin: User
    owner: User
    point_user: User
    stray_user: User
    extra: dict = field(default_factory=dict)

    @asynccontextmanager
    async def conventions(self):
        async with self.session_factory() as session:
            yield ConventionService(session, self.dispatcher, self.files)

    @asynccontextmanager
    async def onboarding(self):
        async with self.session_factory() as session:
            yield OnboardingService(session, self.dispatcher, self.authority, self.files)

    @asynccontextmanager
    async def accounts(self):
        async with self.session_factory() as session:
            yield AccountService(session, self.dispatcher, self.authority)

    async def count(self, model, *where) -> int:
        async with self.session_factory() as session:
            result = await session.execute(select(func.count()).select_from(model).where(*where))
            return int(result.scalar_one())

    async def all(self, model, *where) -> list:
        async with self.session_factory() as session:
            result = await session.execute(select(model).where(*where))
            return list(result.scalars().all())

    async def get(self, model, ident):
        async with self.session_factory() as session:
            return await session.get(model, ident)


@pytest.fixture
async def world(session_factory, dispatcher, authority, files) -> World:
    async with session_factory() as session:
        sector = Sector(name="Training")
        other = Sector(name="Logistics")
        session.add_all([sector, other])
        await session.flush()

        service_x = Service(code="X", name="Courses", sector_id=sector.id)
        service_y = Service(code="Y", name="Shipping", sector_id=other.id)
        point = GtcPoint(name="Point One", email="point@example.com", sector_id=sector.id)
        session.add_all([service_x, service_y, point])
        await session.flush()

        admin = User(
            email="admin@example.com",
            name="Admin",
            role=Role.ADMIN.value,
            password_hash=hash_password(PASSWORD),
        )
        owner = User(email="owner@example.com", name="Owner", role=Role.SECTOR_OWNER.value, sector_id=sector.id)
        point_user = User(
            email="pointuser@example.com", name="Point User", role=Role.GTC_POINT.value, gtc_point_id=point.id
        )
        stray_user = User(email="stray@example.com", name="Stray", role=Role.GTC_POINT.value)
        session.add_all([admin, owner, point_user, stray_user])
        await session.commit()

    return World(
        session_factory=session_factory,
        dispatcher=dispatcher,
        authority=authority,
        files=files,
        sector=sector,
        other_sector=other,
        service_x=service_x,
        service_y=service_y,
        point=point,
        admin=admin,
        owner=owner,
        point_user=point_user,
        stray_user=stray_user,
    )
