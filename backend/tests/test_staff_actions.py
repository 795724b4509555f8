# tests/test_staff_actions.py — API-token gated staff REST endpoints
import pytest
from httpx import AsyncClient

from models import Bot, BotType
from tests.conftest import create_bot, reload


def _headers(user):
    return {"Authorization": user.api_token}


@pytest.mark.asyncio
class TestStaffAuth:
    async def test_missing_token_is_bare_401(self, client: AsyncClient, staff_user):
        res = await client.post("/panel/bots/approve", json={
            "staff_id": staff_user.user_id, "bot_id": "900", "reason": "looks good",
        })
        assert res.status_code == 401
        assert res.content == b""

    async def test_wrong_token(self, client: AsyncClient, staff_user):
        res = await client.post("/panel/bots/deny", headers={"Authorization": "nope"}, json={
            "staff_id": staff_user.user_id, "bot_id": "900", "reason": "spam",
        })
        assert res.status_code == 401

    async def test_other_users_token(self, client: AsyncClient, staff_user, admin_user):
        res = await client.post("/panel/bots/deny", headers=_headers(admin_user), json={
            "staff_id": staff_user.user_id, "bot_id": "900", "reason": "spam",
        })
        assert res.status_code == 401

    async def test_non_staff(self, client: AsyncClient, plain_user):
        res = await client.post("/panel/bots/deny", headers=_headers(plain_user), json={
            "staff_id": plain_user.user_id, "bot_id": "900", "reason": "spam",
        })
        assert res.status_code == 401

    async def test_head_endpoints_need_head(self, client: AsyncClient, admin_user):
        res = await client.post("/panel/bots/votes-reset", headers=_headers(admin_user), json={
            "staff_id": admin_user.user_id, "bot_id": "900", "reason": "abuse",
        })
        assert res.status_code == 401


@pytest.mark.asyncio
class TestQueueActions:
    async def test_approve(self, client: AsyncClient, staff_user, db_session, panel_state):
        await create_bot(db_session, "900", client_id="901")
        res = await client.post("/panel/bots/approve", headers=_headers(staff_user), json={
            "staff_id": staff_user.user_id, "bot_id": "900", "reason": "looks good",
        })
        assert res.status_code == 200
        data = res.json()
        assert data["done"] is True
        assert "client_id=901" in data["context"]
        assert (await reload(db_session, Bot, "900")).type == BotType.APPROVED.value
        assert panel_state.notifier.sent[-1].title == "Bot Approved"

    async def test_deny(self, client: AsyncClient, staff_user, db_session):
        await create_bot(db_session, "900", type=BotType.CLAIMED.value, claimed_by="200")
        res = await client.post("/panel/bots/deny", headers=_headers(staff_user), json={
            "staff_id": staff_user.user_id, "bot_id": "900", "reason": "broken commands",
        })
        assert res.status_code == 204
        bot = await reload(db_session, Bot, "900")
        assert bot.type == BotType.DENIED.value
        assert bot.approval_note == "broken commands"

    async def test_action_failure_body(self, client: AsyncClient, staff_user, db_session):
        await create_bot(db_session, "900", type=BotType.APPROVED.value)
        res = await client.post("/panel/bots/approve", headers=_headers(staff_user), json={
            "staff_id": staff_user.user_id, "bot_id": "900", "reason": "again",
        })
        assert res.status_code == 400
        assert res.json() == {"done": False, "reason": "Bot is not pending review", "context": None}


@pytest.mark.asyncio
class TestHeadActions:
    async def test_vote_reset(self, client: AsyncClient, head_user, db_session):
        await create_bot(db_session, "900", votes=50)
        res = await client.post("/panel/bots/votes-reset", headers=_headers(head_user), json={
            "staff_id": head_user.user_id, "bot_id": "900", "reason": "vote abuse",
        })
        assert res.status_code == 204
        assert (await reload(db_session, Bot, "900")).votes == 0

    async def test_vote_reset_all(self, client: AsyncClient, head_user, db_session):
        await create_bot(db_session, "900", votes=5)
        await create_bot(db_session, "910", votes=7)
        res = await client.post("/panel/bots/votes-reset/all", headers=_headers(head_user), json={
            "staff_id": head_user.user_id, "reason": "monthly reset",
        })
        assert res.status_code == 204
        assert (await reload(db_session, Bot, "910")).votes == 0

    async def test_unverify(self, client: AsyncClient, head_user, db_session):
        await create_bot(db_session, "900", type=BotType.APPROVED.value)
        res = await client.post("/panel/bots/unverify", headers=_headers(head_user), json={
            "staff_id": head_user.user_id, "bot_id": "900", "reason": "went offline",
        })
        assert res.status_code == 204
        assert (await reload(db_session, Bot, "900")).type == BotType.PENDING.value

    async def test_unverify_pending_bot_fails(self, client: AsyncClient, head_user, db_session):
        await create_bot(db_session, "900")
        res = await client.post("/panel/bots/unverify", headers=_headers(head_user), json={
            "staff_id": head_user.user_id, "bot_id": "900", "reason": "went offline",
        })
        assert res.status_code == 400
        assert res.json()["done"] is False
