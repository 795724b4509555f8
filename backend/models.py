# models.py — Database models for the staff panel
# - Site tables the panel reads and mutates (users, bots, discord user cache, partners)
# - Panel-owned tables (MFA panel data, login auth chain, RPC log)
# - Both panel auth tables cascade-delete with their owning user

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, String, DateTime, JSON, Boolean, Integer,
    ForeignKey, Text, Index,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


# ============================================================
# ENUMS
# ============================================================

class SessionState(str, PyEnum):
    PENDING = "pending"
    ACTIVE = "active"


class BotType(str, PyEnum):
    PENDING = "pending"
    CLAIMED = "claimed"
    APPROVED = "approved"
    DENIED = "denied"
    CERTIFIED = "certified"
    BANNED = "banned"


class TargetType(str, PyEnum):
    BOT = "Bot"
    SERVER = "Server"
    TEAM = "Team"
    PACK = "Pack"


class RpcLogState(str, PyEnum):
    SUCCESS = "success"
    FAILED = "failed"


# ============================================================
# USERS (site-owned; panel reads role flags and api tokens)
# ============================================================

class User(Base):
    __tablename__ = "users"

    user_id = Column(String, primary_key=True)
    username = Column(String, nullable=False, default="")
    owner = Column(Boolean, nullable=False, default=False)
    hadmin = Column(Boolean, nullable=False, default=False)
    iblhdev = Column(Boolean, nullable=False, default=False)
    ibldev = Column(Boolean, nullable=False, default=False)
    admin = Column(Boolean, nullable=False, default=False)
    staff = Column(Boolean, nullable=False, default=False)
    api_token = Column(String, nullable=False, default=new_uuid)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    panel_data = relationship("PanelData", back_populates="user", uselist=False, passive_deletes=True)
    auth_chains = relationship("AuthChain", back_populates="user", passive_deletes=True)


class DiscordUserCache(Base):
    __tablename__ = "internal_user_cache__discord"

    id = Column(String, primary_key=True)
    username = Column(String, nullable=False, index=True)
    display_name = Column(String, nullable=False, default="")
    avatar = Column(String, nullable=False, default="")
    bot = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)


# ============================================================
# BOTS (RPC / staff action targets)
# ============================================================

class Bot(Base):
    __tablename__ = "bots"

    bot_id = Column(String, primary_key=True)
    client_id = Column(String, nullable=False, index=True)
    owner_id = Column(String, ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True, index=True)
    type = Column(String, nullable=False, default=BotType.PENDING.value, index=True)
    claimed_by = Column(String, nullable=True)
    last_claimed = Column(DateTime(timezone=True), nullable=True)
    approval_note = Column(Text, nullable=False, default="")
    short = Column(String, nullable=False, default="")
    invite = Column(String, nullable=False, default="")
    votes = Column(Integer, nullable=False, default=0)
    shards = Column(Integer, nullable=False, default=0)
    library = Column(String, nullable=False, default="custom")
    invite_clicks = Column(Integer, nullable=False, default=0)
    clicks = Column(Integer, nullable=False, default=0)
    servers = Column(Integer, nullable=False, default=0)
    premium = Column(Boolean, nullable=False, default=False)
    premium_period_length_hours = Column(Integer, nullable=True)
    start_premium_period = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    __table_args__ = (
        Index("idx_bots_type_created", "type", "created_at"),
    )


# ============================================================
# STAFF PANEL AUTH
# ============================================================

class PanelData(Base):
    """Per-user MFA record. One row per staff member, created at first login."""
    __tablename__ = "staffpanel__paneldata"

    itag = Column(String, unique=True, nullable=False, default=new_uuid)
    user_id = Column(String, ForeignKey("users.user_id", ondelete="CASCADE"), primary_key=True)
    mfa_secret = Column(String, nullable=False)
    mfa_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    user = relationship("User", back_populates="panel_data")


class AuthChain(Base):
    """A login session. Tokens are several KB long, so there is no index on them."""
    __tablename__ = "staffpanel__authchain"

    itag = Column(String, primary_key=True, default=new_uuid)
    paneldata_ref = Column(
        String, ForeignKey("staffpanel__paneldata.itag", ondelete="CASCADE"), nullable=False,
    )
    user_id = Column(String, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    state = Column(String, nullable=False, default=SessionState.PENDING.value)

    user = relationship("User", back_populates="auth_chains")


# ============================================================
# RPC LOG
# ============================================================

class RpcLog(Base):
    __tablename__ = "rpc_logs"

    id = Column(String, primary_key=True, default=new_uuid)
    user_id = Column(String, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    method = Column(String, nullable=False, index=True)
    target_type = Column(String, nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    state = Column(String, nullable=False, default=RpcLogState.SUCCESS.value)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)


# ============================================================
# PARTNERS
# ============================================================

class PartnerType(Base):
    __tablename__ = "partner_types"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    short = Column(String, nullable=False, default="")
    icon = Column(String, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), default=utcnow)


class Partner(Base):
    __tablename__ = "partners"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    image_type = Column(String, nullable=False)
    short = Column(String, nullable=False, default="")
    links = Column(JSON, nullable=False, default=list)  # [{"name": ..., "value": "https://..."}]
    type = Column(String, ForeignKey("partner_types.id"), nullable=False)
    user_id = Column(String, ForeignKey("users.user_id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
