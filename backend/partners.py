# partners.py — Partner listing, creation and deletion
import os
import shutil
import logging
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import config
from config import CdnScope
from database import atomic
from exceptions import ValidationError, ConflictError, NotFoundError
from models import Partner, PartnerType, User

logger = logging.getLogger("arcadia-panel.partners")

MAX_AVATAR_SIZE = 100_000_000


# --- Schemas ---

class PartnerLink(BaseModel):
    name: str
    value: str


class CreatePartner(BaseModel):
    id: str = Field(..., min_length=1, max_length=100, pattern=r'^[A-Za-z0-9_-]+$')
    name: str = Field(..., min_length=1, max_length=200)
    image_type: str = Field(..., min_length=1, max_length=10, pattern=r'^[A-Za-z0-9]+$')
    short: str = Field(..., min_length=1, max_length=1000)
    links: List[PartnerLink]
    type: str
    user_id: str


class PartnerOut(BaseModel):
    id: str
    name: str
    image_type: str
    short: str
    links: List[PartnerLink]
    type: str
    user_id: str
    created_at: Optional[datetime] = None


class PartnerTypeOut(BaseModel):
    id: str
    name: str
    short: str
    icon: str
    created_at: Optional[datetime] = None


class Partners(BaseModel):
    partners: List[PartnerOut]
    partner_types: List[PartnerTypeOut]


def _avatar_path(scopes: Dict[str, CdnScope], partner_id: str, image_type: str) -> str:
    scope = scopes.get(config.MAIN_SCOPE)
    if scope is None:
        raise ValidationError("Main scope not found")
    return os.path.join(scope.path, "partners", f"{partner_id}.{image_type}")


def _check_links(links: List[PartnerLink]) -> None:
    if not links:
        raise ValidationError("Links cannot be empty")
    for link in links:
        if not link.name:
            raise ValidationError("Link name cannot be empty")
        if not link.value:
            raise ValidationError("Link URL cannot be empty")
        if not link.value.startswith("https://"):
            raise ValidationError("Link URL must start with https://")


# ============================================================
# OPERATIONS
# ============================================================

async def list_partners(db: AsyncSession) -> Partners:
    partners = (await db.execute(select(Partner).order_by(Partner.created_at))).scalars().all()
    types = (await db.execute(select(PartnerType).order_by(PartnerType.id))).scalars().all()
    return Partners(
        partners=[
            PartnerOut(
                id=p.id, name=p.name, image_type=p.image_type, short=p.short,
                links=[PartnerLink(**link) for link in (p.links or [])],
                type=p.type, user_id=p.user_id, created_at=p.created_at,
            )
            for p in partners
        ],
        partner_types=[
            PartnerTypeOut(id=t.id, name=t.name, short=t.short, icon=t.icon, created_at=t.created_at)
            for t in types
        ],
    )


async def add_partner(db: AsyncSession, scopes: Dict[str, CdnScope], partner: CreatePartner) -> None:
    if await db.get(PartnerType, partner.type) is None:
        raise ValidationError("Partner type does not exist")

    # Avatar must already be uploaded through the CDN
    path = _avatar_path(scopes, partner.id, partner.image_type)
    if not os.path.isfile(path):
        raise ValidationError("Image does not exist")
    size = os.path.getsize(path)
    if size > MAX_AVATAR_SIZE:
        raise ValidationError("Image is too large")
    if size == 0:
        raise ValidationError("Image is empty")

    _check_links(partner.links)

    if await db.get(User, partner.user_id) is None:
        raise ValidationError("User does not exist")

    async with atomic(db):
        if await db.get(Partner, partner.id) is not None:
            raise ConflictError("Partner already exists")
        db.add(Partner(
            id=partner.id,
            name=partner.name,
            image_type=partner.image_type,
            short=partner.short,
            links=[link.model_dump() for link in partner.links],
            type=partner.type,
            user_id=partner.user_id,
        ))

    logger.info(f"Added partner {partner.id}")


async def delete_partner(db: AsyncSession, scopes: Dict[str, CdnScope], partner_id: str) -> None:
    async with atomic(db):
        partner = await db.get(Partner, partner_id)
        if partner is None:
            raise NotFoundError("Partner does not exist")
        path = _avatar_path(scopes, partner_id, partner.image_type)
        await db.delete(partner)

    # Avatar goes only once the row deletion has committed
    try:
        if os.path.islink(path) or os.path.isfile(path):
            os.remove(path)
        elif os.path.isdir(path):
            shutil.rmtree(path)
    except OSError as e:
        logger.error(f"Deleted partner {partner_id} but could not remove its avatar {path}: {e}")

    logger.info(f"Deleted partner {partner_id}")
