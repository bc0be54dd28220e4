from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_
from sqlalchemy.exc import IntegrityError
from typing import List, Optional
import logging

from khata.core.exceptions import ConflictError, NotFoundError, ValidationError
from khata.modules.partners.models import PartnerLink
from khata.modules.partners import schemas
from khata.modules.users.models import User
from khata.modules.users.services import UserService

logger = logging.getLogger(__name__)


def to_partner_response(link: PartnerLink) -> schemas.PartnerResponse:
    partner = link.partner_user
    return schemas.PartnerResponse(
        id=link.id,
        username=partner.username,
        name=partner.name,
        wallet_address=partner.wallet_address,
    )


class PartnerService:
    """Owner -> partner registry"""

    @staticmethod
    async def add_partner(db: AsyncSession, owner_wallet: str, partner_username: str) -> schemas.PartnerResponse:
        """Link the user named ``partner_username`` to the owner's partner list"""
        owner = await UserService.resolve_by_wallet(db, owner_wallet, role="Owner user")

        partner = await UserService.find_by_username(db, partner_username)
        if not partner:
            raise NotFoundError(f'No user found with username "{partner_username}". Ask them to sign up first.')

        if partner.id == owner.id:
            raise ValidationError("You cannot add yourself as a partner.")

        existing = await db.execute(
            select(PartnerLink).where(
                and_(PartnerLink.owner_user_id == owner.id, PartnerLink.partner_user_id == partner.id)
            )
        )
        if existing.scalar_one_or_none():
            raise ConflictError("This partner is already in your list.")

        link = PartnerLink(owner_user_id=owner.id, partner_user_id=partner.id)
        try:
            db.add(link)
            await db.commit()
            await db.refresh(link)
            await db.refresh(link, ["partner_user"])
        except IntegrityError:
            await db.rollback()
            raise ConflictError("This partner is already in your list.")

        logger.info(f"Partner {partner.username} added for owner {owner.username}")
        return to_partner_response(link)

    @staticmethod
    async def list_partners(db: AsyncSession, owner_wallet: str) -> List[schemas.PartnerResponse]:
        owner = await UserService.resolve_by_wallet(db, owner_wallet, role="Owner user")
        result = await db.execute(
            select(PartnerLink)
            .where(PartnerLink.owner_user_id == owner.id)
            .order_by(PartnerLink.created_at)
        )
        return [to_partner_response(link) for link in result.scalars().all()]

    @staticmethod
    async def get_owner_partner(db: AsyncSession, owner: User, partner_id: str) -> Optional[PartnerLink]:
        """Partner link ``partner_id`` if it belongs to ``owner``"""
        result = await db.execute(
            select(PartnerLink).where(
                and_(PartnerLink.id == partner_id, PartnerLink.owner_user_id == owner.id)
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def list_owner_links(db: AsyncSession, owner: User) -> List[PartnerLink]:
        result = await db.execute(select(PartnerLink).where(PartnerLink.owner_user_id == owner.id))
        return list(result.scalars().all())
