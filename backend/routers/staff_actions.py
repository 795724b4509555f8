# routers/staff_actions.py — API-token gated bot actions for staff tooling
#
# The Authorization header must equal the stored api_token of ``staff_id``.
# approve/deny need the staff flag; the rest need head (hadmin or iblhdev).

from typing import Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from auth import AuthService
from bot_actions import BotActionError
from database import get_db_session
from state import PanelState, get_panel_state

router = APIRouter(prefix="/panel/bots", tags=["Staff Actions"])


# --- Schemas ---

class StaffBotRequest(BaseModel):
    staff_id: str
    bot_id: str
    reason: str = Field(..., min_length=1, max_length=4096)


class StaffRequest(BaseModel):
    staff_id: str
    reason: str = Field(..., min_length=1, max_length=4096)


def _failed(e: BotActionError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"done": False, "reason": e.message, "context": None})


# ============================================================
# QUEUE ACTIONS (staff)
# ============================================================

@router.post("/approve")
async def approve_bot(
    data: StaffBotRequest,
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db_session),
    state: PanelState = Depends(get_panel_state),
):
    await AuthService.verify_api_token(db, data.staff_id, authorization)
    try:
        result = await state.bot_actions.approve(db, state.notifier, data.bot_id, data.staff_id, data.reason)
    except BotActionError as e:
        return _failed(e)
    return result


@router.post("/deny", status_code=204)
async def deny_bot(
    data: StaffBotRequest,
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db_session),
    state: PanelState = Depends(get_panel_state),
):
    await AuthService.verify_api_token(db, data.staff_id, authorization)
    try:
        await state.bot_actions.deny(db, state.notifier, data.bot_id, data.staff_id, data.reason)
    except BotActionError as e:
        return _failed(e)
    return Response(status_code=204)


# ============================================================
# MANAGEMENT ACTIONS (head)
# ============================================================

@router.post("/votes-reset", status_code=204)
async def vote_reset_bot(
    data: StaffBotRequest,
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db_session),
    state: PanelState = Depends(get_panel_state),
):
    await AuthService.verify_api_token(db, data.staff_id, authorization, require_head=True)
    try:
        await state.bot_actions.vote_reset(db, state.notifier, data.bot_id, data.staff_id, data.reason)
    except BotActionError as e:
        return _failed(e)
    return Response(status_code=204)


@router.post("/votes-reset/all", status_code=204)
async def vote_reset_all_bots(
    data: StaffRequest,
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db_session),
    state: PanelState = Depends(get_panel_state),
):
    await AuthService.verify_api_token(db, data.staff_id, authorization, require_head=True)
    try:
        await state.bot_actions.vote_reset_all(db, state.notifier, data.staff_id, data.reason)
    except BotActionError as e:
        return _failed(e)
    return Response(status_code=204)


@router.post("/unverify", status_code=204)
async def unverify_bot(
    data: StaffBotRequest,
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db_session),
    state: PanelState = Depends(get_panel_state),
):
    await AuthService.verify_api_token(db, data.staff_id, authorization, require_head=True)
    try:
        await state.bot_actions.unverify(db, state.notifier, data.bot_id, data.staff_id, data.reason)
    except BotActionError as e:
        return _failed(e)
    return Response(status_code=204)
