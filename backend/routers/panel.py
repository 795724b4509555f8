# routers/panel.py — Single tagged-union command endpoint for the staff panel
#
# Body: {"query": "<Variant>", ...fields}. Each variant maps to one handler in
# HANDLERS; handlers authenticate from ``login_token`` and check capabilities.

import asyncio
import logging
from typing import Annotated, Any, Awaitable, Callable, Dict, List, Literal, Optional, Union

from fastapi import APIRouter, Body, Depends
from fastapi.responses import FileResponse, PlainTextResponse, Response
from pydantic import BaseModel, Base64Bytes, Field
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

import cdn
import config
import partners
import rpc
from auth import AuthService
from capabilities import Capability
from database import get_db_session
from exceptions import NotFoundError, ValidationError, INVALID_VERSION
from models import Bot, BotType, DiscordUserCache, TargetType
from state import PanelState, get_panel_state

logger = logging.getLogger("arcadia-panel.panel")

router = APIRouter(tags=["Panel"])

RPC_DENIED = "You do not have permission to use RPC right now"
QUEUE_DENIED = "You do not have permission to access the bot queue right now"
BOTS_DENIED = "You do not have permission to manage bots right now"
CDN_DENIED = "You do not have permission to manage the CDN right now"
PARTNERS_DENIED = "You do not have permission to manage partners right now"


# ============================================================
# QUERY VARIANTS
# ============================================================

class Authed(BaseModel):
    login_token: str


class Hello(BaseModel):
    query: Literal["Hello"]
    version: int


class GetLoginUrl(BaseModel):
    query: Literal["GetLoginUrl"]
    version: int
    redirect_url: str


class Login(BaseModel):
    query: Literal["Login"]
    code: str
    redirect_url: str


class LoginMfaCheckStatus(Authed):
    query: Literal["LoginMfaCheckStatus"]


class LoginActivateSession(Authed):
    query: Literal["LoginActivateSession"]
    otp: str


class LoginResetMfa(Authed):
    query: Literal["LoginResetMfa"]
    otp: str


class Logout(Authed):
    query: Literal["Logout"]


class GetIdentity(Authed):
    query: Literal["GetIdentity"]


class GetUserDetails(BaseModel):
    query: Literal["GetUserDetails"]
    user_id: str


class GetUserPerms(BaseModel):
    query: Literal["GetUserPerms"]
    user_id: str


class GetCapabilities(Authed):
    query: Literal["GetCapabilities"]


class GetCoreConstants(Authed):
    query: Literal["GetCoreConstants"]


class BotQueue(Authed):
    query: Literal["BotQueue"]


class ExecuteRpc(Authed):
    query: Literal["ExecuteRpc"]
    target_type: TargetType
    method: rpc.RpcMethod


class GetRpcMethods(Authed):
    query: Literal["GetRpcMethods"]
    filtered: bool = False


class GetRpcTargetTypes(Authed):
    query: Literal["GetRpcTargetTypes"]


class GetRpcLogEntries(Authed):
    query: Literal["GetRpcLogEntries"]


class SearchEntitys(Authed):
    query: Literal["SearchEntitys"]
    target_type: TargetType
    search: str = Field(..., min_length=1, max_length=200)


class UploadCdnFileChunk(Authed):
    query: Literal["UploadCdnFileChunk"]
    chunk: Base64Bytes


class ListCdnScopes(Authed):
    query: Literal["ListCdnScopes"]


class GetMainCdnScope(Authed):
    query: Literal["GetMainCdnScope"]


# --- CDN asset actions ---

class ListPath(BaseModel):
    action: Literal["ListPath"]


class ReadFile(BaseModel):
    action: Literal["ReadFile"]


class CreateFolder(BaseModel):
    action: Literal["CreateFolder"]


class AddFile(BaseModel):
    action: Literal["AddFile"]
    overwrite: bool = False
    chunks: List[str]
    sha512: str


class CopyFile(BaseModel):
    action: Literal["CopyFile"]
    overwrite: bool = False
    delete_original: bool = False
    copy_to: str


class Delete(BaseModel):
    action: Literal["Delete"]


CdnAssetAction = Annotated[
    Union[ListPath, ReadFile, CreateFolder, AddFile, CopyFile, Delete],
    Field(discriminator="action"),
]


class UpdateCdnAsset(Authed):
    query: Literal["UpdateCdnAsset"]
    cdn_scope: str
    name: str = ""
    path: str = ""
    action: CdnAssetAction


class GetPartnerList(Authed):
    query: Literal["GetPartnerList"]


class AddPartner(Authed):
    query: Literal["AddPartner"]
    partner: partners.CreatePartner


class DeletePartner(Authed):
    query: Literal["DeletePartner"]
    partner_id: str


PanelQueryVariant = Union[
    Hello, GetLoginUrl, Login, LoginMfaCheckStatus, LoginActivateSession, LoginResetMfa, Logout,
    GetIdentity, GetUserDetails, GetUserPerms, GetCapabilities, GetCoreConstants,
    BotQueue, ExecuteRpc, GetRpcMethods, GetRpcTargetTypes, GetRpcLogEntries, SearchEntitys,
    UploadCdnFileChunk, ListCdnScopes, GetMainCdnScope, UpdateCdnAsset,
    GetPartnerList, AddPartner, DeletePartner,
]


# --- Response schemas ---

class PartialUser(BaseModel):
    id: str
    username: str
    display_name: str
    avatar: str
    bot: bool


class PartialBot(BaseModel):
    bot_id: str
    client_id: str
    user: Optional[PartialUser] = None
    claimed_by: Optional[str] = None
    approval_note: str
    short: str
    type: str
    votes: int
    shards: int
    library: str
    invite_clicks: int
    clicks: int
    servers: int
    mentionable: List[str]
    invite: str


def no_content() -> Response:
    return Response(status_code=204)


# ============================================================
# ENTITY HELPERS
# ============================================================

async def _partial_users(db: AsyncSession, ids: List[str]) -> Dict[str, PartialUser]:
    if not ids:
        return {}
    result = await db.execute(select(DiscordUserCache).where(DiscordUserCache.id.in_(ids)))
    return {
        u.id: PartialUser(
            id=u.id, username=u.username, display_name=u.display_name, avatar=u.avatar, bot=u.bot,
        )
        for u in result.scalars().all()
    }


async def _partial_bots(db: AsyncSession, bots: List[Bot]) -> List[PartialBot]:
    users = await _partial_users(db, [b.bot_id for b in bots])
    return [
        PartialBot(
            bot_id=b.bot_id, client_id=b.client_id, user=users.get(b.bot_id),
            claimed_by=b.claimed_by, approval_note=b.approval_note, short=b.short, type=b.type,
            votes=b.votes, shards=b.shards, library=b.library, invite_clicks=b.invite_clicks,
            clicks=b.clicks, servers=b.servers,
            mentionable=[f"<@{b.owner_id}>"] if b.owner_id else [],
            invite=b.invite,
        )
        for b in bots
    ]


# ============================================================
# AUTH HANDLERS
# ============================================================

async def handle_hello(q: Hello, db: AsyncSession, state: PanelState):
    if q.version != config.PANEL_VERSION:
        raise ValidationError(INVALID_VERSION)
    return {"description": config.INSTANCE_DESCRIPTION, "warnings": config.INSTANCE_WARNINGS}


async def handle_get_login_url(q: GetLoginUrl, db: AsyncSession, state: PanelState):
    return PlainTextResponse(AuthService.get_login_url(state.oauth, q.version, q.redirect_url))


async def handle_login(q: Login, db: AsyncSession, state: PanelState):
    token = await AuthService.login(db, state.oauth, q.code, q.redirect_url)
    return PlainTextResponse(token)


async def handle_mfa_check_status(q: LoginMfaCheckStatus, db: AsyncSession, state: PanelState):
    return await AuthService.mfa_check_status(db, q.login_token)


async def handle_activate_session(q: LoginActivateSession, db: AsyncSession, state: PanelState):
    await AuthService.activate_session(db, q.login_token, q.otp)
    return no_content()


async def handle_reset_mfa(q: LoginResetMfa, db: AsyncSession, state: PanelState):
    await AuthService.reset_mfa(db, q.login_token, q.otp)
    return no_content()


async def handle_logout(q: Logout, db: AsyncSession, state: PanelState):
    removed = await AuthService.logout(db, q.login_token)
    return PlainTextResponse(str(removed))


async def handle_get_identity(q: GetIdentity, db: AsyncSession, state: PanelState):
    return await AuthService.check_auth(db, q.login_token)


async def handle_get_user_details(q: GetUserDetails, db: AsyncSession, state: PanelState):
    users = await _partial_users(db, [q.user_id])
    if q.user_id not in users:
        raise NotFoundError("User not found")
    return users[q.user_id]


async def handle_get_user_perms(q: GetUserPerms, db: AsyncSession, state: PanelState):
    return await AuthService.get_user_perms(db, q.user_id)


async def handle_get_capabilities(q: GetCapabilities, db: AsyncSession, state: PanelState):
    caps = await AuthService.get_capabilities(db, q.login_token)
    return sorted(cap.value for cap in caps)


async def handle_get_core_constants(q: GetCoreConstants, db: AsyncSession, state: PanelState):
    await AuthService.check_auth(db, q.login_token)
    return {
        "frontend_url": config.FRONTEND_URL,
        "infernoplex_url": config.INFERNOPLEX_URL,
        "cdn_url": config.CDN_URL,
        "popplio_url": config.POPPLIO_URL,
        "htmlsanitize_url": config.HTMLSANITIZE_URL,
        "servers": {
            "main": config.MAIN_SERVER_ID,
            "staff": config.STAFF_SERVER_ID,
            "testing": config.TESTING_SERVER_ID,
        },
    }


# ============================================================
# BOTS / RPC HANDLERS
# ============================================================

async def handle_bot_queue(q: BotQueue, db: AsyncSession, state: PanelState):
    await AuthService.require_capability(db, q.login_token, Capability.VIEW_BOT_QUEUE, QUEUE_DENIED)
    result = await db.execute(
        select(Bot)
        .where(Bot.type.in_([BotType.PENDING.value, BotType.CLAIMED.value]))
        .order_by(Bot.created_at)
    )
    return await _partial_bots(db, list(result.scalars().all()))


async def handle_search_entitys(q: SearchEntitys, db: AsyncSession, state: PanelState):
    if q.target_type != TargetType.BOT:
        await AuthService.check_auth(db, q.login_token)
        return PlainTextResponse("Searching this target type is not implemented", status_code=501)

    await AuthService.require_capability(db, q.login_token, Capability.BOT_MANAGEMENT, BOTS_DENIED)
    pattern = f"%{q.search.lower()}%"
    result = await db.execute(
        select(Bot)
        .outerjoin(DiscordUserCache, DiscordUserCache.id == Bot.bot_id)
        .where(or_(
            Bot.bot_id == q.search,
            Bot.client_id == q.search,
            func.lower(DiscordUserCache.username).like(pattern),
        ))
        .order_by(Bot.created_at)
    )
    return await _partial_bots(db, list(result.scalars().unique().all()))


async def handle_execute_rpc(q: ExecuteRpc, db: AsyncSession, state: PanelState):
    auth_data = await AuthService.require_capability(db, q.login_token, Capability.RPC, RPC_DENIED)
    flags = await AuthService.get_role_flags(db, auth_data.user_id)
    ctx = rpc.RpcContext(
        db=db,
        notifier=state.notifier,
        actions=state.bot_actions,
        user_id=auth_data.user_id,
        target_type=q.target_type,
    )
    outcome = await rpc.execute_rpc(ctx, flags, q.method, state.rpc_limiter)
    if outcome.content is None:
        return no_content()
    return PlainTextResponse(str(outcome.content))


async def handle_get_rpc_methods(q: GetRpcMethods, db: AsyncSession, state: PanelState):
    auth_data = await AuthService.require_capability(db, q.login_token, Capability.RPC, RPC_DENIED)
    flags = await AuthService.get_role_flags(db, auth_data.user_id) if q.filtered else None
    return rpc.list_methods(flags)


async def handle_get_rpc_target_types(q: GetRpcTargetTypes, db: AsyncSession, state: PanelState):
    await AuthService.require_capability(db, q.login_token, Capability.RPC, RPC_DENIED)
    return rpc.list_target_types()


async def handle_get_rpc_log_entries(q: GetRpcLogEntries, db: AsyncSession, state: PanelState):
    await AuthService.require_capability(db, q.login_token, Capability.RPC, RPC_DENIED)
    return await rpc.list_log_entries(db)


# ============================================================
# CDN HANDLERS
# ============================================================

async def handle_upload_chunk(q: UploadCdnFileChunk, db: AsyncSession, state: PanelState):
    await AuthService.require_capability(db, q.login_token, Capability.CDN_MANAGEMENT, CDN_DENIED)
    return PlainTextResponse(state.chunks.upload(q.chunk))


async def handle_list_cdn_scopes(q: ListCdnScopes, db: AsyncSession, state: PanelState):
    await AuthService.require_capability(db, q.login_token, Capability.CDN_MANAGEMENT, CDN_DENIED)
    return {name: scope.model_dump() for name, scope in state.cdn_scopes.items()}


async def handle_get_main_cdn_scope(q: GetMainCdnScope, db: AsyncSession, state: PanelState):
    await AuthService.require_capability(db, q.login_token, Capability.CDN_MANAGEMENT, CDN_DENIED)
    return PlainTextResponse(config.MAIN_SCOPE)


async def _cdn_list_path(loc: cdn.AssetLocation, action: ListPath, state: PanelState):
    return await asyncio.to_thread(cdn.list_path, loc)


async def _cdn_read_file(loc: cdn.AssetLocation, action: ReadFile, state: PanelState):
    path = await asyncio.to_thread(cdn.read_file, loc)
    return FileResponse(path, media_type="application/octet-stream")


async def _cdn_create_folder(loc: cdn.AssetLocation, action: CreateFolder, state: PanelState):
    await asyncio.to_thread(cdn.create_folder, loc)


async def _cdn_add_file(loc: cdn.AssetLocation, action: AddFile, state: PanelState):
    await cdn.add_file(loc, state.chunks, action.chunks, action.sha512, action.overwrite)


async def _cdn_copy_file(loc: cdn.AssetLocation, action: CopyFile, state: PanelState):
    await asyncio.to_thread(cdn.copy_file, loc, action.copy_to, action.overwrite, action.delete_original)


async def _cdn_delete(loc: cdn.AssetLocation, action: Delete, state: PanelState):
    await asyncio.to_thread(cdn.delete, loc)


# Filesystem work runs in a worker thread; None means 204
CDN_ACTIONS: Dict[str, Callable[[cdn.AssetLocation, Any, PanelState], Awaitable[Any]]] = {
    "ListPath": _cdn_list_path,
    "ReadFile": _cdn_read_file,
    "CreateFolder": _cdn_create_folder,
    "AddFile": _cdn_add_file,
    "CopyFile": _cdn_copy_file,
    "Delete": _cdn_delete,
}


async def handle_update_cdn_asset(q: UpdateCdnAsset, db: AsyncSession, state: PanelState):
    auth_data = await AuthService.require_capability(db, q.login_token, Capability.CDN_MANAGEMENT, CDN_DENIED)
    loc = cdn.resolve(state.cdn_scopes, q.cdn_scope, q.path, q.name)
    action = q.action

    result = await CDN_ACTIONS[action.action](loc, action, state)
    if result is not None:
        return result

    logger.info(f"{auth_data.user_id} ran {action.action} on {q.cdn_scope}:{q.path}/{q.name}")
    return no_content()


# ============================================================
# PARTNER HANDLERS
# ============================================================

async def handle_get_partner_list(q: GetPartnerList, db: AsyncSession, state: PanelState):
    await AuthService.require_capability(db, q.login_token, Capability.PARTNER_MANAGEMENT, PARTNERS_DENIED)
    return await partners.list_partners(db)


async def handle_add_partner(q: AddPartner, db: AsyncSession, state: PanelState):
    await AuthService.require_capability(db, q.login_token, Capability.PARTNER_MANAGEMENT, PARTNERS_DENIED)
    await partners.add_partner(db, state.cdn_scopes, q.partner)
    return no_content()


async def handle_delete_partner(q: DeletePartner, db: AsyncSession, state: PanelState):
    await AuthService.require_capability(db, q.login_token, Capability.PARTNER_MANAGEMENT, PARTNERS_DENIED)
    await partners.delete_partner(db, state.cdn_scopes, q.partner_id)
    return no_content()


Handler = Callable[[Any, AsyncSession, PanelState], Awaitable[Any]]

HANDLERS: Dict[str, Handler] = {
    "Hello": handle_hello,
    "GetLoginUrl": handle_get_login_url,
    "Login": handle_login,
    "LoginMfaCheckStatus": handle_mfa_check_status,
    "LoginActivateSession": handle_activate_session,
    "LoginResetMfa": handle_reset_mfa,
    "Logout": handle_logout,
    "GetIdentity": handle_get_identity,
    "GetUserDetails": handle_get_user_details,
    "GetUserPerms": handle_get_user_perms,
    "GetCapabilities": handle_get_capabilities,
    "GetCoreConstants": handle_get_core_constants,
    "BotQueue": handle_bot_queue,
    "ExecuteRpc": handle_execute_rpc,
    "GetRpcMethods": handle_get_rpc_methods,
    "GetRpcTargetTypes": handle_get_rpc_target_types,
    "GetRpcLogEntries": handle_get_rpc_log_entries,
    "SearchEntitys": handle_search_entitys,
    "UploadCdnFileChunk": handle_upload_chunk,
    "ListCdnScopes": handle_list_cdn_scopes,
    "GetMainCdnScope": handle_get_main_cdn_scope,
    "UpdateCdnAsset": handle_update_cdn_asset,
    "GetPartnerList": handle_get_partner_list,
    "AddPartner": handle_add_partner,
    "DeletePartner": handle_delete_partner,
}


# ============================================================
# ENDPOINT
# ============================================================

@router.post("/")
async def panel_query(
    body: Annotated[PanelQueryVariant, Body(discriminator="query")],
    db: AsyncSession = Depends(get_db_session),
    state: PanelState = Depends(get_panel_state),
):
    return await HANDLERS[body.query](body, db, state)
