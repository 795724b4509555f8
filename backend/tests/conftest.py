# tests/conftest.py — Shared test fixtures
import os
from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Use SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///./test.db"
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["PANEL_REDIRECT_URLS"] = "http://localhost:3000/authorize"
os.environ["ENVIRONMENT"] = "test"

import crypto_utils
from bot_actions import BotActions
from cdn import ChunkStore
from config import CdnScope
from database import get_db_session
from exceptions import InfrastructureError
from models import Base, Bot, User
from notifier import ChatNotifier
from oauth import OAuthIdentity, OAuthProvider
from state import PanelState
from ttl_cache import RateLimiter, TTLCache
from main import app

REDIRECT_URL = "http://localhost:3000/authorize"
FROZEN_NOW = 1_700_000_015.0


class FakeOAuthProvider(OAuthProvider):
    """The code is the Discord user id; ``bad-code`` fails the exchange."""

    def __init__(self):
        self.exchanged = []

    def authorize_url(self, redirect_url: str) -> str:
        return f"https://discord.test/oauth2/authorize?redirect_uri={redirect_url}"

    async def exchange_code(self, code: str, redirect_url: str) -> str:
        if code == "bad-code":
            raise InfrastructureError("Failed to exchange OAuth2 code", status_code=502)
        self.exchanged.append(code)
        return code

    async def fetch_identity(self, access_token: str) -> OAuthIdentity:
        return OAuthIdentity(id=access_token, username=f"user-{access_token}")


class RecordingNotifier(ChatNotifier):
    def __init__(self):
        self.sent = []

    async def send(self, notification) -> None:
        self.sent.append(notification)


@pytest.fixture
def frozen_clock(monkeypatch):
    """Pin the TOTP clock so codes never straddle a 30s step."""
    monkeypatch.setattr(crypto_utils, "time", SimpleNamespace(time=lambda: FROZEN_NOW))
    return FROZEN_NOW


@pytest.fixture
def cdn_root(tmp_path):
    root = tmp_path / "cdn"
    root.mkdir()
    return root


@pytest.fixture
def panel_state(tmp_path, cdn_root):
    state = PanelState(
        oauth=FakeOAuthProvider(),
        notifier=RecordingNotifier(),
        bot_actions=BotActions(),
        chunks=ChunkStore(TTLCache(600)),
        rpc_limiter=RateLimiter(420, 5),
        cdn_scopes={"ibl@main": CdnScope(path=str(cdn_root), exposed_url="https://cdn.test")},
    )
    previous = app.state.panel
    app.state.panel = state
    yield state
    app.state.panel = previous


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    engine = create_async_engine(TEST_DB_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine):
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_engine, panel_state):
    """HTTP test client with overridden DB dependency"""
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def create_user(db_session, user_id: str, **flags) -> User:
    user = User(user_id=user_id, username=f"user-{user_id}", api_token=f"api-token-{user_id}", **flags)
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def plain_user(db_session):
    """A site user with no staff flags"""
    return await create_user(db_session, "100")


@pytest_asyncio.fixture
async def staff_user(db_session):
    return await create_user(db_session, "200", staff=True)


@pytest_asyncio.fixture
async def admin_user(db_session):
    return await create_user(db_session, "300", staff=True, admin=True)


@pytest_asyncio.fixture
async def head_user(db_session):
    """Head developer: head tier through iblhdev"""
    return await create_user(db_session, "400", staff=True, ibldev=True, iblhdev=True)


@pytest_asyncio.fixture
async def owner_user(db_session):
    return await create_user(db_session, "500", staff=True, admin=True, hadmin=True, owner=True)


async def panel(client: AsyncClient, query: str, **fields):
    return await client.post("/", json={"query": query, **fields})


async def login(client: AsyncClient, user: User) -> str:
    res = await panel(client, "Login", code=user.user_id, redirect_url=REDIRECT_URL)
    assert res.status_code == 200, res.text
    return res.text


async def enroll(client: AsyncClient, token: str) -> bytes:
    """Fetch the MFA enrollment secret for a pending session."""
    res = await panel(client, "LoginMfaCheckStatus", login_token=token)
    assert res.status_code == 200, res.text
    return crypto_utils.decode_secret(res.json()["info"]["secret"])


async def login_active(client: AsyncClient, user: User) -> str:
    """Login + MFA enrollment + activation; requires the ``frozen_clock`` fixture."""
    token = await login(client, user)
    secret = await enroll(client, token)
    res = await panel(client, "LoginActivateSession", login_token=token, otp=crypto_utils.generate_totp(secret))
    assert res.status_code == 204, res.text
    return token


async def create_bot(db_session, bot_id: str, **fields) -> Bot:
    fields.setdefault("client_id", bot_id)
    bot = Bot(bot_id=bot_id, **fields)
    db_session.add(bot)
    await db_session.commit()
    return bot


async def reload(db_session, model, key):
    """Re-read a row written through the API by another session."""
    return await db_session.get(model, key, populate_existing=True)
