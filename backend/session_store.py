# session_store.py — Persistence for login auth chains and MFA panel data
#
# Every function takes the caller's AsyncSession and never commits; callers
# group multi-row changes inside ``database.atomic(db)``.

from typing import Optional

from sqlalchemy import select, delete, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from models import AuthChain, PanelData, SessionState, User


async def get_user(db: AsyncSession, user_id: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.user_id == user_id))
    return result.scalar_one_or_none()


async def get_session_by_token(db: AsyncSession, token: str) -> Optional[AuthChain]:
    result = await db.execute(select(AuthChain).where(AuthChain.token == token))
    return result.scalars().first()


async def count_sessions(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        select(func.count()).select_from(AuthChain).where(AuthChain.user_id == user_id)
    )
    return result.scalar() or 0


async def delete_user_sessions(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(delete(AuthChain).where(AuthChain.user_id == user_id))
    return result.rowcount or 0


async def delete_session(db: AsyncSession, token: str) -> int:
    result = await db.execute(delete(AuthChain).where(AuthChain.token == token))
    return result.rowcount or 0


async def create_session(db: AsyncSession, user_id: str, paneldata_ref: str, token: str) -> AuthChain:
    chain = AuthChain(
        user_id=user_id,
        paneldata_ref=paneldata_ref,
        token=token,
        state=SessionState.PENDING.value,
    )
    db.add(chain)
    await db.flush()
    return chain


async def activate_session(db: AsyncSession, token: str) -> int:
    result = await db.execute(
        update(AuthChain)
        .where(AuthChain.token == token)
        .values(state=SessionState.ACTIVE.value)
    )
    return result.rowcount or 0


async def get_panel_data(db: AsyncSession, user_id: str) -> Optional[PanelData]:
    result = await db.execute(select(PanelData).where(PanelData.user_id == user_id))
    return result.scalar_one_or_none()


async def create_panel_data(db: AsyncSession, user_id: str, mfa_secret: str) -> PanelData:
    data = PanelData(user_id=user_id, mfa_secret=mfa_secret, mfa_verified=False)
    db.add(data)
    await db.flush()
    return data


async def set_mfa_secret(db: AsyncSession, user_id: str, mfa_secret: str) -> None:
    await db.execute(
        update(PanelData).where(PanelData.user_id == user_id).values(mfa_secret=mfa_secret)
    )


async def set_mfa_verified(db: AsyncSession, user_id: str, verified: bool) -> None:
    await db.execute(
        update(PanelData).where(PanelData.user_id == user_id).values(mfa_verified=verified)
    )
