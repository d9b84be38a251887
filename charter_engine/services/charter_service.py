"""Charter registry: maps charters to captains and holds the price list."""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow
from ..core.exceptions import NotFoundError, ValidationError
from ..models.charter import Charter
from ..schemas.charter import CreateCharterRequest, UpdateCharterPriceRequest

logger = logging.getLogger(__name__)


def parse_uuid(value: str, field: str) -> UUID:
    """Parse a client-supplied id, reporting malformed ids as a field violation."""
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError(detail=f"'{value}' is not a valid id", field=field)


class CharterService:
    """Service for charter-related operations."""
    
    def __init__(self, db: AsyncSession):
        self.db = db
    
    async def create_charter(self, request: CreateCharterRequest) -> Charter:
        """
        Register a charter for a captain.
        
        Args:
            request: Charter creation request
            
        Returns:
            Created charter entity
        """
        charter = Charter(
            captain_id=request.captain_id,
            name=request.name,
            price_half_day=request.price_half_day,
            price_full_day=request.price_full_day,
            currency=request.currency
        )
        
        self.db.add(charter)
        await self.db.commit()
        await self.db.refresh(charter)
        
        logger.info(
            "Charter created successfully",
            extra={
                "charter_id": str(charter.id),
                "captain_id": charter.captain_id,
                "price_half_day": charter.price_half_day,
                "price_full_day": charter.price_full_day
            }
        )
        
        return charter
    
    async def update_price(self, request: UpdateCharterPriceRequest) -> Charter:
        """
        Change a charter's price list. Price alerts pick the change up on their next scan.
        
        Raises:
            NotFoundError: If charter not found
            ValidationError: If neither price is given
        """
        if request.price_half_day is None and request.price_full_day is None:
            raise ValidationError(
                detail="At least one of price_half_day or price_full_day is required",
                field="price_half_day"
            )
        
        charter = await self.get_charter_by_id_or_raise(parse_uuid(request.charter_id, "charter_id"))
        previous = (charter.price_half_day, charter.price_full_day)
        
        if request.price_half_day is not None:
            charter.price_half_day = request.price_half_day
        if request.price_full_day is not None:
            charter.price_full_day = request.price_full_day
        charter.price_updated_at = utcnow()
        
        await self.db.commit()
        await self.db.refresh(charter)
        
        logger.info(
            "Charter price updated",
            extra={
                "charter_id": str(charter.id),
                "previous_half_day": previous[0],
                "previous_full_day": previous[1],
                "price_half_day": charter.price_half_day,
                "price_full_day": charter.price_full_day
            }
        )
        
        return charter
    
    async def get_charter_by_id(self, charter_id: UUID) -> Optional[Charter]:
        """Get charter by ID."""
        stmt = select(Charter).where(Charter.id == charter_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()
    
    async def get_charter_by_id_or_raise(self, charter_id: UUID) -> Charter:
        """
        Get charter by ID or raise NotFoundError.
        
        Raises:
            NotFoundError: If charter not found
        """
        charter = await self.get_charter_by_id(charter_id)
        if not charter:
            raise NotFoundError(
                resource_type="charter",
                resource_id=str(charter_id)
            )
        return charter
