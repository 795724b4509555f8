# capabilities.py — Role flags → permission tier → capabilities
from dataclasses import dataclass
from enum import Enum as PyEnum
from typing import Optional, Set


class Capability(str, PyEnum):
    VIEW_BOT_QUEUE = "ViewBotQueue"
    BOT_MANAGEMENT = "BotManagement"
    RPC = "Rpc"
    CDN_MANAGEMENT = "CdnManagement"
    PARTNER_MANAGEMENT = "PartnerManagement"


class PermissionTier(str, PyEnum):
    OWNER = "Owner"
    HEAD = "Head"
    ADMIN = "Admin"
    STAFF = "Staff"


TIER_HIERARCHY = {
    PermissionTier.OWNER: 4,
    PermissionTier.HEAD: 3,
    PermissionTier.ADMIN: 2,
    PermissionTier.STAFF: 1,
}

# Minimum tier that grants each capability
CAPABILITY_TIERS = {
    Capability.VIEW_BOT_QUEUE: PermissionTier.STAFF,
    Capability.BOT_MANAGEMENT: PermissionTier.STAFF,
    Capability.RPC: PermissionTier.ADMIN,
    Capability.CDN_MANAGEMENT: PermissionTier.ADMIN,
    Capability.PARTNER_MANAGEMENT: PermissionTier.ADMIN,
}


@dataclass(frozen=True)
class RoleFlags:
    owner: bool = False
    head: bool = False
    admin: bool = False
    staff: bool = False

    @classmethod
    def from_user(cls, user) -> "RoleFlags":
        """Build flags from a ``users`` row; head covers head admins and head developers."""
        return cls(
            owner=bool(user.owner),
            head=bool(user.hadmin or user.iblhdev),
            admin=bool(user.admin),
            staff=bool(user.staff),
        )

    @property
    def tier(self) -> Optional[PermissionTier]:
        if self.owner:
            return PermissionTier.OWNER
        if self.head:
            return PermissionTier.HEAD
        if self.admin:
            return PermissionTier.ADMIN
        if self.staff:
            return PermissionTier.STAFF
        return None


def tier_satisfies(held: Optional[PermissionTier], required: PermissionTier) -> bool:
    if held is None:
        return False
    return TIER_HIERARCHY[held] >= TIER_HIERARCHY[required]


def derive_capabilities(flags: RoleFlags) -> Set[Capability]:
    held = flags.tier
    return {cap for cap, required in CAPABILITY_TIERS.items() if tier_satisfies(held, required)}
