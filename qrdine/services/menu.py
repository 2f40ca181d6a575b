"""
Menu Catalog

Read-side lookups consumed by order placement, plus the availability
toggle staff use when a dish runs out.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from qrdine.core.errors import NotFoundError
from qrdine.models import MenuItem
from qrdine.schemas import MenuItemResponse
from qrdine.services.realtime import EventBroadcaster, Events

logger = logging.getLogger(__name__)


class MenuCatalog:
    def __init__(self, session: AsyncSession, broadcaster: Optional[EventBroadcaster] = None):
        self.session = session
        self.broadcaster = broadcaster

    async def find_by_id(self, item_id: int) -> Optional[MenuItem]:
        return await self.session.get(MenuItem, item_id)

    async def get_item(self, item_id: int) -> MenuItem:
        item = await self.find_by_id(item_id)
        if item is None:
            raise NotFoundError("Menu item not found", detail={"menu_item_id": item_id})
        return item

    async def list_items(
        self,
        category: Optional[str] = None,
        available_only: bool = False,
    ) -> list[MenuItem]:
        query = select(MenuItem).order_by(MenuItem.category, MenuItem.name)
        if category:
            query = query.where(MenuItem.category == category)
        if available_only:
            query = query.where(MenuItem.is_available.is_(True))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def toggle_availability(self, item_id: int) -> MenuItem:
        item = await self.get_item(item_id)
        item.is_available = not item.is_available
        await self.session.commit()
        await self.session.refresh(item)

        logger.info(
            f"Menu item #{item.id} {'enabled' if item.is_available else 'disabled'}"
        )
        if self.broadcaster is not None:
            await self.broadcaster.broadcast_global(
                Events.MENU_UPDATE,
                {
                    "action": "availability-change",
                    "item": MenuItemResponse.model_validate(item).model_dump(mode="json"),
                },
            )
        return item
