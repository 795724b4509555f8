# rpc.py — RPC method registry and dispatcher
# Features:
# - Closed set of tagged methods (pydantic discriminated union on ``method``)
# - Per-method tier, label, description, target types and field descriptors
# - Central tier + target type enforcement, per-user rate limit, rpc_logs audit trail

import logging
from dataclasses import dataclass
from typing import Annotated, Any, Awaitable, Callable, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bot_actions import BotActions
from capabilities import PermissionTier, RoleFlags, tier_satisfies
from exceptions import AuthorizationError, PanelError, ValidationError
from models import RpcLog, RpcLogState, TargetType
from notifier import ChatNotifier
from ttl_cache import RateLimiter

logger = logging.getLogger("arcadia-panel.rpc")


# ============================================================
# METHOD VARIANTS
# ============================================================

class RpcMethodBase(BaseModel):
    target_id: str = Field(..., min_length=1)
    reason: str = Field(..., min_length=3, max_length=4096)


class Claim(RpcMethodBase):
    method: Literal["Claim"] = "Claim"


class Unclaim(RpcMethodBase):
    method: Literal["Unclaim"] = "Unclaim"


class Approve(RpcMethodBase):
    method: Literal["Approve"] = "Approve"


class Deny(RpcMethodBase):
    method: Literal["Deny"] = "Deny"


class Unverify(RpcMethodBase):
    method: Literal["Unverify"] = "Unverify"


class PremiumAdd(RpcMethodBase):
    method: Literal["PremiumAdd"] = "PremiumAdd"
    time_period_hours: int = Field(..., gt=0)


class PremiumRemove(RpcMethodBase):
    method: Literal["PremiumRemove"] = "PremiumRemove"


class VoteReset(RpcMethodBase):
    method: Literal["VoteReset"] = "VoteReset"


class VoteResetAll(RpcMethodBase):
    method: Literal["VoteResetAll"] = "VoteResetAll"


class ForceRemove(RpcMethodBase):
    method: Literal["ForceRemove"] = "ForceRemove"
    kick: bool = False


class CertifyAdd(RpcMethodBase):
    method: Literal["CertifyAdd"] = "CertifyAdd"


class CertifyRemove(RpcMethodBase):
    method: Literal["CertifyRemove"] = "CertifyRemove"


RpcMethod = Annotated[
    Union[
        Claim, Unclaim, Approve, Deny, Unverify, PremiumAdd, PremiumRemove,
        VoteReset, VoteResetAll, ForceRemove, CertifyAdd, CertifyRemove,
    ],
    Field(discriminator="method"),
]


# ============================================================
# CONTEXT
# ============================================================

@dataclass
class RpcContext:
    db: AsyncSession
    notifier: ChatNotifier
    actions: BotActions
    user_id: str
    target_type: TargetType


@dataclass
class RpcOutcome:
    """``content`` None means the method has nothing to return (204)."""
    content: Optional[Any] = None


# Runs a method against the bot actions and returns the response text, if any
Runner = Callable[[RpcContext, Any], Awaitable[Optional[str]]]


def _no_extra(method: RpcMethodBase) -> Dict[str, Any]:
    return {}


def _on_bot(pick: Callable[[BotActions], Callable[..., Awaitable[Any]]],
            extra: Callable[[Any], Dict[str, Any]] = _no_extra) -> Runner:
    """Runner for actions taking ``(db, notifier, bot_id, staff_id, reason, **extra)``."""
    async def run(ctx: RpcContext, method) -> Optional[str]:
        result = await pick(ctx.actions)(
            ctx.db, ctx.notifier, method.target_id, ctx.user_id, method.reason, **extra(method)
        )
        return result.context if result is not None else None
    return run


async def _reset_all_votes(ctx: RpcContext, method: VoteResetAll) -> Optional[str]:
    affected = await ctx.actions.vote_reset_all(ctx.db, ctx.notifier, ctx.user_id, method.reason)
    return f"Reset votes of {affected} bots"


# ============================================================
# REGISTRY
# ============================================================

class RpcField(BaseModel):
    id: str
    label: str
    field_type: str
    icon: str
    placeholder: str


class RpcMethodDescriptor(BaseModel):
    id: str
    label: str
    description: str
    needs_perms: PermissionTier
    supported_target_types: List[TargetType]
    fields: List[RpcField]


def _text(id: str, label: str, placeholder: str, icon: str = "material-symbols:info") -> RpcField:
    return RpcField(id=id, label=label, field_type="Text", icon=icon, placeholder=placeholder)


TARGET_FIELD = _text("target_id", "Target ID", "The ID of the target to act on", "ic:twotone-access-time-filled")
REASON_FIELD = RpcField(
    id="reason", label="Reason", field_type="Textarea",
    icon="material-symbols:question-mark", placeholder="Reason for performing this action",
)


@dataclass(frozen=True)
class RpcMethodSpec:
    model: type
    label: str
    description: str
    tier: PermissionTier
    run: Runner
    targets: tuple = (TargetType.BOT,)
    extra_fields: tuple = ()

    @property
    def id(self) -> str:
        return self.model.model_fields["method"].default

    def describe(self) -> RpcMethodDescriptor:
        return RpcMethodDescriptor(
            id=self.id,
            label=self.label,
            description=self.description,
            needs_perms=self.tier,
            supported_target_types=list(self.targets),
            fields=[TARGET_FIELD, *self.extra_fields, REASON_FIELD],
        )


_REGISTRY = [
    RpcMethodSpec(Claim, "Claim Bot", "Claim a bot for review", PermissionTier.STAFF,
                  _on_bot(lambda a: a.claim)),
    RpcMethodSpec(Unclaim, "Unclaim Bot", "Release a claimed bot back to the queue", PermissionTier.STAFF,
                  _on_bot(lambda a: a.unclaim)),
    RpcMethodSpec(Approve, "Approve Bot", "Approve a bot in the queue", PermissionTier.STAFF,
                  _on_bot(lambda a: a.approve)),
    RpcMethodSpec(Deny, "Deny Bot", "Deny a bot in the queue", PermissionTier.STAFF,
                  _on_bot(lambda a: a.deny)),
    RpcMethodSpec(Unverify, "Unverify Bot", "Send an approved bot back to the queue", PermissionTier.HEAD,
                  _on_bot(lambda a: a.unverify)),
    RpcMethodSpec(
        PremiumAdd, "Add Premium", "Give a bot premium for a time period", PermissionTier.HEAD,
        _on_bot(lambda a: a.premium_add, lambda m: {"time_period_hours": m.time_period_hours}),
        extra_fields=(RpcField(
            id="time_period_hours", label="Time Period", field_type="Hour",
            icon="material-symbols:timer", placeholder="Time period in hours",
        ),),
    ),
    RpcMethodSpec(PremiumRemove, "Remove Premium", "Remove premium from a bot", PermissionTier.HEAD,
                  _on_bot(lambda a: a.premium_remove)),
    RpcMethodSpec(VoteReset, "Reset Votes", "Reset the votes of a bot", PermissionTier.HEAD,
                  _on_bot(lambda a: a.vote_reset)),
    RpcMethodSpec(VoteResetAll, "Reset All Votes", "Reset the votes of every bot on the list",
                  PermissionTier.OWNER, _reset_all_votes),
    RpcMethodSpec(
        ForceRemove, "Force Remove", "Forcefully delete a bot from the list", PermissionTier.ADMIN,
        _on_bot(lambda a: a.force_remove, lambda m: {"kick": m.kick}),
        extra_fields=(RpcField(
            id="kick", label="Kick", field_type="Boolean",
            icon="mdi:boot", placeholder="Also kick the bot from the main server",
        ),),
    ),
    RpcMethodSpec(CertifyAdd, "Certify Bot", "Certify an approved bot", PermissionTier.HEAD,
                  _on_bot(lambda a: a.certify_add)),
    RpcMethodSpec(CertifyRemove, "Uncertify Bot", "Remove certification from a bot", PermissionTier.HEAD,
                  _on_bot(lambda a: a.certify_remove)),
]

RPC_METHODS: Dict[str, RpcMethodSpec] = {spec.id: spec for spec in _REGISTRY}


def list_methods(flags: Optional[RoleFlags] = None) -> List[RpcMethodDescriptor]:
    """All methods, or only those ``flags`` reach when given."""
    return [
        spec.describe() for spec in _REGISTRY
        if flags is None or tier_satisfies(flags.tier, spec.tier)
    ]


def list_target_types() -> List[str]:
    return [t.value for t in TargetType]


# ============================================================
# DISPATCH
# ============================================================

async def _record(db: AsyncSession, user_id: str, method: RpcMethodBase, target_type: TargetType,
                  error: Optional[str]) -> None:
    db.add(RpcLog(
        user_id=user_id,
        method=method.method,
        target_type=target_type.value,
        data=method.model_dump(exclude={"method"}),
        state=RpcLogState.FAILED.value if error else RpcLogState.SUCCESS.value,
        error=error,
    ))
    await db.commit()


async def execute_rpc(ctx: RpcContext, flags: RoleFlags, method: RpcMethodBase,
                      limiter: RateLimiter) -> RpcOutcome:
    """Run ``method`` for an already authenticated caller holding the Rpc capability."""
    spec = RPC_METHODS[method.method]

    if not tier_satisfies(flags.tier, spec.tier):
        logger.warning(f"{ctx.user_id} tried {spec.id} without {spec.tier.value} tier")
        raise AuthorizationError(f"You need {spec.tier.value} permissions to use this RPC method")

    if ctx.target_type not in spec.targets:
        raise ValidationError(f"{spec.id} does not support target type {ctx.target_type.value}")

    limiter.check(f"rpc:{ctx.user_id}")

    try:
        outcome = RpcOutcome(content=await spec.run(ctx, method))
    except PanelError as e:
        await _record(ctx.db, ctx.user_id, method, ctx.target_type, e.message)
        logger.info(f"RPC {spec.id} on {method.target_id} by {ctx.user_id} failed: {e.message}")
        raise

    await _record(ctx.db, ctx.user_id, method, ctx.target_type, None)
    logger.info(f"RPC {spec.id} on {method.target_id} by {ctx.user_id} succeeded")
    return outcome


class RpcLogEntry(BaseModel):
    id: str
    user_id: str
    method: str
    target_type: str
    data: Dict[str, Any]
    state: str
    error: Optional[str] = None
    created_at: Optional[str] = None


async def list_log_entries(db: AsyncSession, limit: int = 500) -> List[RpcLogEntry]:
    result = await db.execute(select(RpcLog).order_by(RpcLog.created_at.desc()).limit(limit))
    return [
        RpcLogEntry(
            id=row.id, user_id=row.user_id, method=row.method, target_type=row.target_type,
            data=row.data or {}, state=row.state, error=row.error,
            created_at=row.created_at.isoformat() if row.created_at else None,
        )
        for row in result.scalars().all()
    ]
