from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import ListingNotFound, TransientStoreError
from app.models.listing import Listing

UNKNOWN_LISTING_TITLE = "Unknown listing"


@dataclass(frozen=True)
class ListingSummary:
    id: UUID
    title: str
    price: Optional[Decimal] = None
    thumbnail_url: Optional[str] = None
    category_name: Optional[str] = None
    owner_id: Optional[UUID] = None

    @classmethod
    def placeholder(cls, listing_id: UUID) -> "ListingSummary":
        return cls(id=listing_id, title=UNKNOWN_LISTING_TITLE)

    @classmethod
    def from_listing(cls, listing: Listing) -> "ListingSummary":
        return cls(
            id=listing.id,
            title=listing.title,
            price=listing.price,
            thumbnail_url=listing.thumbnail_url,
            category_name=listing.category_name,
            owner_id=listing.owner_id,
        )


class ListingCatalog:
    """Read-only view of the listing catalog."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_summaries(self, listing_ids: Iterable[UUID]) -> Dict[UUID, ListingSummary]:
        ids = {lid for lid in listing_ids if lid is not None}
        if not ids:
            return {}
        try:
            result = await self.db.execute(select(Listing).where(Listing.id.in_(ids)))
        except DBAPIError as exc:
            await self.db.rollback()
            raise TransientStoreError("Listing lookup failed") from exc
        return {listing.id: ListingSummary.from_listing(listing) for listing in result.scalars().all()}

    async def get_listing_summary(self, listing_id: UUID) -> ListingSummary:
        summary = (await self.get_summaries([listing_id])).get(listing_id)
        if summary is None:
            raise ListingNotFound(f"Listing {listing_id} not found")
        return summary
