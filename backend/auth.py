# auth.py — Staff panel authentication protocol
# Features:
# - Discord OAuth2 code exchange with a redirect allow-list
# - Opaque multi-KB login tokens, one live session per user
# - pending → active session activation behind TOTP
# - MFA enrollment (otpauth URI + SVG QR) and reset
# - Capability lookup per token, API token checks for the staff REST endpoints

import logging
from datetime import datetime
from typing import Optional, Set

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

import config
import crypto_utils
import session_store
from capabilities import Capability, RoleFlags, derive_capabilities
from database import atomic
from exceptions import (
    AuthenticationError, AuthorizationError, ValidationError, ConflictError,
    IntegrityError, NotFoundError, InfrastructureError,
    INVALID_OR_EXPIRED_TOKEN, SESSION_ALREADY_ACTIVE, INVALID_PANEL_DATA,
    MFA_NOT_SETUP, MFA_INVALID_CODE, NOT_STAFF, INVALID_REDIRECT, INVALID_VERSION,
)
from models import PanelData, SessionState, User
from oauth import OAuthProvider

logger = logging.getLogger("arcadia-panel.auth")


# ============================================================
# PYDANTIC SCHEMAS
# ============================================================

class AuthData(BaseModel):
    user_id: str
    created_at: Optional[datetime] = None
    state: str


class MfaLoginSecret(BaseModel):
    qr_code: str
    otp_url: str
    secret: str


class MfaLogin(BaseModel):
    info: Optional[MfaLoginSecret] = None


class UserPerms(BaseModel):
    user_id: str
    owner: bool
    head: bool
    admin: bool
    staff: bool
    ibldev: bool
    tier: Optional[str] = None


# ============================================================
# AUTH SERVICE
# ============================================================

class AuthService:
    """Login/session state machine for the staff panel"""

    @staticmethod
    def get_login_url(provider: OAuthProvider, version: int, redirect_url: str) -> str:
        if version != config.PANEL_VERSION:
            raise ValidationError(INVALID_VERSION)
        if redirect_url not in config.REDIRECT_URLS:
            raise ValidationError(INVALID_REDIRECT)
        return provider.authorize_url(redirect_url)

    @staticmethod
    async def login(db: AsyncSession, provider: OAuthProvider, code: str, redirect_url: str) -> str:
        if redirect_url not in config.REDIRECT_URLS:
            raise ValidationError(INVALID_REDIRECT)

        access_token = await provider.exchange_code(code, redirect_url)
        identity = await provider.fetch_identity(access_token)

        user = await session_store.get_user(db, identity.id)
        if not user or not user.staff:
            logger.info(f"Rejected panel login for non-staff identity {identity.id}")
            raise AuthorizationError(NOT_STAFF)

        token = crypto_utils.gen_login_token()

        async with atomic(db):
            # Single live session per user
            await session_store.delete_user_sessions(db, user.user_id)

            panel_data = await session_store.get_panel_data(db, user.user_id)
            if panel_data is None:
                placeholder = crypto_utils.encode_secret(crypto_utils.generate_totp_secret())
                panel_data = await session_store.create_panel_data(db, user.user_id, placeholder)

            await session_store.create_session(db, user.user_id, panel_data.itag, token)

        logger.info(f"Issued pending panel session for {user.user_id}")
        return token

    @staticmethod
    async def check_auth_insecure(db: AsyncSession, token: str) -> AuthData:
        """Resolve a session in any state. Only for the MFA setup phase."""
        if not token:
            raise AuthenticationError(INVALID_OR_EXPIRED_TOKEN)
        chain = await session_store.get_session_by_token(db, token)
        if chain is None:
            raise AuthenticationError(INVALID_OR_EXPIRED_TOKEN)
        return AuthData(user_id=chain.user_id, created_at=chain.created_at, state=chain.state)

    @staticmethod
    async def check_auth(db: AsyncSession, token: str) -> AuthData:
        auth_data = await AuthService.check_auth_insecure(db, token)
        if auth_data.state != SessionState.ACTIVE.value:
            raise AuthenticationError(INVALID_OR_EXPIRED_TOKEN)
        return auth_data

    @staticmethod
    async def _require_panel_data(db: AsyncSession, user_id: str, missing: str) -> PanelData:
        panel_data = await session_store.get_panel_data(db, user_id)
        if panel_data is None:
            raise ValidationError(missing)
        return panel_data

    @staticmethod
    def _verify_otp(panel_data: PanelData, otp: str) -> None:
        try:
            secret = crypto_utils.decode_secret(panel_data.mfa_secret)
        except ValueError as e:
            logger.error(f"Stored MFA secret for {panel_data.user_id} is corrupt: {e}")
            raise InfrastructureError(INVALID_PANEL_DATA) from e
        if not crypto_utils.verify_totp(otp, secret, window=0):
            raise IntegrityError(MFA_INVALID_CODE)

    @staticmethod
    async def mfa_check_status(db: AsyncSession, token: str) -> MfaLogin:
        auth_data = await AuthService.check_auth_insecure(db, token)
        if auth_data.state != SessionState.PENDING.value:
            raise ConflictError(SESSION_ALREADY_ACTIVE)

        async with atomic(db):
            panel_data = await AuthService._require_panel_data(db, auth_data.user_id, INVALID_PANEL_DATA)
            if panel_data.mfa_verified:
                return MfaLogin(info=None)

            secret = crypto_utils.encode_secret(crypto_utils.generate_totp_secret())
            await session_store.set_mfa_secret(db, auth_data.user_id, secret)

        otp_url = crypto_utils.otp_uri(secret)
        logger.info(f"Issued MFA enrollment secret for {auth_data.user_id}")
        return MfaLogin(info=MfaLoginSecret(
            qr_code=crypto_utils.render_qr_svg(otp_url),
            otp_url=otp_url,
            secret=secret,
        ))

    @staticmethod
    async def activate_session(db: AsyncSession, token: str, otp: str) -> None:
        auth_data = await AuthService.check_auth_insecure(db, token)
        if auth_data.state != SessionState.PENDING.value:
            raise ConflictError(SESSION_ALREADY_ACTIVE)

        async with atomic(db):
            panel_data = await AuthService._require_panel_data(db, auth_data.user_id, MFA_NOT_SETUP)
            AuthService._verify_otp(panel_data, otp)
            await session_store.activate_session(db, token)
            await session_store.set_mfa_verified(db, auth_data.user_id, True)

        logger.info(f"Activated panel session for {auth_data.user_id}")

    @staticmethod
    async def reset_mfa(db: AsyncSession, token: str, otp: str) -> None:
        auth_data = await AuthService.check_auth(db, token)

        async with atomic(db):
            panel_data = await AuthService._require_panel_data(db, auth_data.user_id, MFA_NOT_SETUP)
            AuthService._verify_otp(panel_data, otp)
            await session_store.set_mfa_verified(db, auth_data.user_id, False)
            revoked = await session_store.delete_user_sessions(db, auth_data.user_id)

        logger.info(f"Reset MFA for {auth_data.user_id}, revoked {revoked} session(s)")

    @staticmethod
    async def logout(db: AsyncSession, token: str) -> int:
        async with atomic(db):
            removed = await session_store.delete_session(db, token)
        return removed

    @staticmethod
    async def get_role_flags(db: AsyncSession, user_id: str) -> RoleFlags:
        user = await session_store.get_user(db, user_id)
        if user is None:
            # A session always belongs to an existing user (cascade delete)
            raise AuthenticationError(INVALID_OR_EXPIRED_TOKEN)
        return RoleFlags.from_user(user)

    @staticmethod
    async def get_capabilities(db: AsyncSession, token: str) -> Set[Capability]:
        auth_data = await AuthService.check_auth(db, token)
        flags = await AuthService.get_role_flags(db, auth_data.user_id)
        return derive_capabilities(flags)

    @staticmethod
    async def require_capability(db: AsyncSession, token: str, capability: Capability, message: str) -> AuthData:
        """Resolve an active session and insist its user holds ``capability``."""
        auth_data = await AuthService.check_auth(db, token)
        flags = await AuthService.get_role_flags(db, auth_data.user_id)
        if capability not in derive_capabilities(flags):
            raise AuthorizationError(message)
        return auth_data

    @staticmethod
    async def get_user_perms(db: AsyncSession, user_id: str) -> UserPerms:
        user = await session_store.get_user(db, user_id)
        if user is None:
            raise NotFoundError("User not found")
        flags = RoleFlags.from_user(user)
        return UserPerms(
            user_id=user.user_id,
            owner=flags.owner,
            head=flags.head,
            admin=flags.admin,
            staff=flags.staff,
            ibldev=bool(user.ibldev),
            tier=flags.tier.value if flags.tier else None,
        )

    @staticmethod
    async def verify_api_token(db: AsyncSession, staff_id: str, authorization: Optional[str],
                               require_head: bool = False) -> User:
        """Check the per-user API token used by the staff REST endpoints.

        Every failure is the same bare 401 so callers learn nothing about the user.
        """
        user = await session_store.get_user(db, staff_id)
        if user is None or not authorization:
            raise AuthenticationError("")
        if not crypto_utils.constant_time_equals(user.api_token or "", authorization):
            raise AuthenticationError("")
        allowed = RoleFlags.from_user(user).head if require_head else bool(user.staff)
        if not allowed:
            raise AuthenticationError("")
        return user
