# bot_actions.py — Bot moderation actions shared by RPC methods and the staff REST endpoints
# - Every action runs in one transaction and notifies the staff channel after commit
# - Failures are BotActionError (400) and leave the bot untouched

import logging
from typing import Optional
from urllib.parse import urlencode

from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from database import atomic
from exceptions import PanelError
from models import Bot, BotType, utcnow
from notifier import ChatNotifier, Notification

logger = logging.getLogger("arcadia-panel.bot_actions")

QUEUE_STATES = (BotType.PENDING.value, BotType.CLAIMED.value)
VERIFIED_STATES = (BotType.APPROVED.value, BotType.CERTIFIED.value)


class BotActionError(PanelError):
    status_code = 400


class ActionResult(BaseModel):
    done: bool = True
    reason: Optional[str] = None
    context: Optional[str] = None


def default_invite(client_id: str) -> str:
    query = urlencode({"client_id": client_id, "scope": "bot applications.commands", "permissions": 0})
    return f"https://discord.com/api/oauth2/authorize?{query}"


class BotActions:
    """Domain actions over the ``bots`` table.

    Subclass and override to route actions elsewhere; tests swap in a recording subclass.
    """

    async def _load(self, db: AsyncSession, bot_id: str) -> Bot:
        result = await db.execute(select(Bot).where(Bot.bot_id == bot_id).with_for_update())
        bot = result.scalar_one_or_none()
        if bot is None:
            raise BotActionError("Bot not found")
        return bot

    async def _notify(self, notifier: ChatNotifier, title: str, bot_id: str, staff_id: str,
                      reason: str, **extra) -> None:
        fields = {"Bot": f"<@{bot_id}>", "Staff": f"<@{staff_id}>", "Reason": reason}
        fields.update({name: str(value) for name, value in extra.items()})
        await notifier.send(Notification(title=title, description=f"<@{bot_id}>", fields=fields))

    # ============================================================
    # QUEUE
    # ============================================================

    async def claim(self, db: AsyncSession, notifier: ChatNotifier, bot_id: str, staff_id: str,
                    reason: str) -> None:
        async with atomic(db):
            bot = await self._load(db, bot_id)
            if bot.type == BotType.CLAIMED.value:
                raise BotActionError(f"Bot is already claimed by <@{bot.claimed_by}>")
            if bot.type != BotType.PENDING.value:
                raise BotActionError("Bot is not pending review")
            bot.type = BotType.CLAIMED.value
            bot.claimed_by = staff_id
            bot.last_claimed = utcnow()
        logger.info(f"Bot {bot_id} claimed by {staff_id}")
        await self._notify(notifier, "Bot Claimed", bot_id, staff_id, reason)

    async def unclaim(self, db: AsyncSession, notifier: ChatNotifier, bot_id: str, staff_id: str,
                      reason: str) -> None:
        async with atomic(db):
            bot = await self._load(db, bot_id)
            if bot.type != BotType.CLAIMED.value:
                raise BotActionError("Bot is not claimed")
            bot.type = BotType.PENDING.value
            bot.claimed_by = None
        logger.info(f"Bot {bot_id} unclaimed by {staff_id}")
        await self._notify(notifier, "Bot Unclaimed", bot_id, staff_id, reason)

    async def approve(self, db: AsyncSession, notifier: ChatNotifier, bot_id: str, staff_id: str,
                      reason: str) -> ActionResult:
        async with atomic(db):
            bot = await self._load(db, bot_id)
            if bot.type not in QUEUE_STATES:
                raise BotActionError("Bot is not pending review")
            bot.type = BotType.APPROVED.value
            bot.claimed_by = staff_id
            bot.approval_note = reason
            invite = bot.invite or default_invite(bot.client_id)
        logger.info(f"Bot {bot_id} approved by {staff_id}")
        await self._notify(notifier, "Bot Approved", bot_id, staff_id, reason)
        return ActionResult(done=True, reason=None, context=invite)

    async def deny(self, db: AsyncSession, notifier: ChatNotifier, bot_id: str, staff_id: str,
                   reason: str) -> None:
        async with atomic(db):
            bot = await self._load(db, bot_id)
            if bot.type not in QUEUE_STATES:
                raise BotActionError("Bot is not pending review")
            bot.type = BotType.DENIED.value
            bot.claimed_by = staff_id
            bot.approval_note = reason
        logger.info(f"Bot {bot_id} denied by {staff_id}")
        await self._notify(notifier, "Bot Denied", bot_id, staff_id, reason)

    async def unverify(self, db: AsyncSession, notifier: ChatNotifier, bot_id: str, staff_id: str,
                       reason: str) -> None:
        async with atomic(db):
            bot = await self._load(db, bot_id)
            if bot.type not in VERIFIED_STATES:
                raise BotActionError("Bot is not approved or certified")
            bot.type = BotType.PENDING.value
            bot.claimed_by = None
        logger.info(f"Bot {bot_id} unverified by {staff_id}")
        await self._notify(notifier, "Bot Unverified", bot_id, staff_id, reason)

    # ============================================================
    # PREMIUM / VOTES
    # ============================================================

    async def premium_add(self, db: AsyncSession, notifier: ChatNotifier, bot_id: str, staff_id: str,
                          reason: str, time_period_hours: int) -> None:
        if time_period_hours <= 0:
            raise BotActionError("Premium time period must be positive")
        async with atomic(db):
            bot = await self._load(db, bot_id)
            if bot.type not in VERIFIED_STATES:
                raise BotActionError("Only approved or certified bots can be given premium")
            bot.premium = True
            bot.premium_period_length_hours = time_period_hours
            bot.start_premium_period = utcnow()
        logger.info(f"Premium added to {bot_id} by {staff_id} for {time_period_hours}h")
        await self._notify(notifier, "Premium Added", bot_id, staff_id, reason, Hours=time_period_hours)

    async def premium_remove(self, db: AsyncSession, notifier: ChatNotifier, bot_id: str, staff_id: str,
                             reason: str) -> None:
        async with atomic(db):
            bot = await self._load(db, bot_id)
            if not bot.premium:
                raise BotActionError("Bot does not have premium")
            bot.premium = False
            bot.premium_period_length_hours = None
            bot.start_premium_period = None
        logger.info(f"Premium removed from {bot_id} by {staff_id}")
        await self._notify(notifier, "Premium Removed", bot_id, staff_id, reason)

    async def vote_reset(self, db: AsyncSession, notifier: ChatNotifier, bot_id: str, staff_id: str,
                         reason: str) -> None:
        async with atomic(db):
            bot = await self._load(db, bot_id)
            bot.votes = 0
        logger.info(f"Votes of {bot_id} reset by {staff_id}")
        await self._notify(notifier, "Votes Reset", bot_id, staff_id, reason)

    async def vote_reset_all(self, db: AsyncSession, notifier: ChatNotifier, staff_id: str,
                             reason: str) -> int:
        async with atomic(db):
            result = await db.execute(update(Bot).where(Bot.votes != 0).values(votes=0))
            affected = result.rowcount or 0
        logger.warning(f"Votes of all bots reset by {staff_id} ({affected} bots)")
        await notifier.send(Notification(
            title="All Votes Reset",
            description=f"Votes of {affected} bots were reset",
            fields={"Staff": f"<@{staff_id}>", "Reason": reason},
            color=0xFF0000,
        ))
        return affected

    # ============================================================
    # REMOVAL / CERTIFICATION
    # ============================================================

    async def force_remove(self, db: AsyncSession, notifier: ChatNotifier, bot_id: str, staff_id: str,
                           reason: str, kick: bool) -> None:
        async with atomic(db):
            bot = await self._load(db, bot_id)
            await db.delete(bot)
        logger.warning(f"Bot {bot_id} force removed by {staff_id} (kick={kick})")
        await self._notify(notifier, "Bot Force Removed", bot_id, staff_id, reason, Kick=kick)

    async def certify_add(self, db: AsyncSession, notifier: ChatNotifier, bot_id: str, staff_id: str,
                          reason: str) -> None:
        async with atomic(db):
            bot = await self._load(db, bot_id)
            if bot.type != BotType.APPROVED.value:
                raise BotActionError("Bot must be approved before it can be certified")
            bot.type = BotType.CERTIFIED.value
        logger.info(f"Bot {bot_id} certified by {staff_id}")
        await self._notify(notifier, "Bot Certified", bot_id, staff_id, reason)

    async def certify_remove(self, db: AsyncSession, notifier: ChatNotifier, bot_id: str, staff_id: str,
                             reason: str) -> None:
        async with atomic(db):
            bot = await self._load(db, bot_id)
            if bot.type != BotType.CERTIFIED.value:
                raise BotActionError("Bot is not certified")
            bot.type = BotType.APPROVED.value
        logger.info(f"Certification removed from {bot_id} by {staff_id}")
        await self._notify(notifier, "Bot Uncertified", bot_id, staff_id, reason)
