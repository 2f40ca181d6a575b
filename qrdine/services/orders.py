"""
Order Lifecycle Engine

Guest order placement, staff status progression and table payment.

Status workflow:
    PENDING → PREPARING → READY → SERVED

Transitions are forward-only. Re-applying the current status is an
idempotent success (the event is still broadcast), moving backwards is a
CONFLICT, and forward jumps are allowed. Payment is tracked separately
from status: a paid order can no longer change status.

Events:
    order:new    → kitchen, waiter, cashier, admin rooms + table room
    order:update → every connection + table room
    bill:paid    → table room + cashier, waiter, admin rooms
"""

import logging
from decimal import Decimal
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from qrdine.core.config import get_settings
from qrdine.core.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from qrdine.models import (
    Bill,
    Order,
    OrderStatus,
    PaymentMethod,
    RestaurantTable,
    UserRole,
    utcnow,
)
from qrdine.schemas import (
    BillPreview,
    BillResponse,
    OrderItemRequest,
    OrderResponse,
    PaymentResponse,
)
from qrdine.schemas import BillTotals as BillTotalsResponse
from qrdine.services.auth import Identity, IdentityGate
from qrdine.services.billing import bill_lines_from_orders, calculate_bill
from qrdine.services.menu import MenuCatalog
from qrdine.services.realtime import EventBroadcaster, Events
from qrdine.services.tables import TableRegistry

logger = logging.getLogger(__name__)


# =============================================================================
# ROLE SETS
# =============================================================================

STATUS_ROLES = (UserRole.KITCHEN, UserRole.WAITER, UserRole.CASHIER, UserRole.ADMIN)
PAYMENT_ROLES = (UserRole.CASHIER, UserRole.ADMIN)
ORDER_VIEW_ROLES = STATUS_ROLES + (UserRole.MANAGER,)
NEW_ORDER_ROOMS = (UserRole.KITCHEN, UserRole.WAITER, UserRole.CASHIER, UserRole.ADMIN)
BILL_PAID_ROOMS = (UserRole.CASHIER, UserRole.WAITER, UserRole.ADMIN)


def serialize_order(order: Order) -> dict[str, Any]:
    return OrderResponse.model_validate(order).model_dump(mode="json")


def parse_status(value: Optional[str]) -> OrderStatus:
    """
    Raises:
        ValidationError: Missing or unknown status
    """
    if value is None or not str(value).strip():
        raise ValidationError("Status is required")
    try:
        return OrderStatus(str(value).strip().upper())
    except ValueError:
        raise ValidationError(
            f"Invalid status: {value}",
            detail={"allowed": [s.value for s in OrderStatus]},
        )


def parse_payment_method(value: Optional[str]) -> PaymentMethod:
    if value is None or not str(value).strip():
        return PaymentMethod.CASH
    try:
        return PaymentMethod(str(value).strip().lower())
    except ValueError:
        raise ValidationError(
            f"Invalid payment method: {value}",
            detail={"allowed": [m.value for m in PaymentMethod]},
        )


class OrderLifecycleEngine:
    """
    Order operations bound to one database session.

    Args:
        session: Database session for this request
        broadcaster: Realtime publisher (None disables events)
    """

    def __init__(self, session: AsyncSession, broadcaster: Optional[EventBroadcaster] = None):
        self.session = session
        self.broadcaster = broadcaster
        self.menu = MenuCatalog(session)
        self.tables = TableRegistry(session)

    # =========================================================================
    # PLACEMENT
    # =========================================================================

    async def place_order(
        self,
        table_number: Optional[str],
        items: Iterable[OrderItemRequest],
    ) -> Order:
        """
        Place a guest order for a table.

        Every requested item is resolved before anything is written, so an
        unknown or unavailable item rejects the whole order.

        Raises:
            ValidationError: Missing table number or no items
            NotFoundError: Unknown table or menu item
            ConflictError: Menu item currently unavailable
        """
        items = list(items or [])
        if table_number is None or not str(table_number).strip():
            raise ValidationError("Table number is required")
        if not items:
            raise ValidationError("Order must contain at least one item")

        table = await self.tables.get_table_by_number(str(table_number).strip())

        snapshots = []
        for line in items:
            menu_item = await self.menu.find_by_id(line.menu_item_id)
            if menu_item is None:
                raise NotFoundError(
                    f"Menu item {line.menu_item_id} not found",
                    detail={"menu_item_id": line.menu_item_id},
                )
            if not menu_item.is_available:
                raise ConflictError(
                    f"Menu item {menu_item.name} is currently unavailable",
                    detail={"menu_item_id": menu_item.id},
                )
            snapshots.append({
                "menu_item_id": menu_item.id,
                "name": menu_item.name,
                "quantity": line.quantity,
                "price": menu_item.price,
            })

        order = Order(table_id=table.id, items=snapshots, status=OrderStatus.PENDING)
        self.session.add(order)
        await self.session.flush()

        self.tables.occupy(table, order.id)
        await self.session.commit()
        await self.session.refresh(order)

        logger.info(
            f"Order #{order.id} placed at table {table.table_number} "
            f"({sum(s['quantity'] for s in snapshots)} items)"
        )

        if self.broadcaster is not None:
            payload = serialize_order(order)
            await self.broadcaster.broadcast_to_roles(NEW_ORDER_ROOMS, Events.ORDER_NEW, payload)
            await self.broadcaster.broadcast_to_table(table.id, Events.ORDER_NEW, payload)
        return order

    # =========================================================================
    # STATUS
    # =========================================================================

    async def update_status(
        self,
        order_id: int,
        new_status: Optional[str],
        actor: Optional[Identity] = None,
    ) -> Order:
        """
        Move an order along the workflow.

        Args:
            order_id: Order to update
            new_status: Target status name (case-insensitive)
            actor: Caller identity; role-checked when given

        Raises:
            PermissionDeniedError: Actor role not allowed
            NotFoundError: Unknown order
            ValidationError: Missing or unknown status
            ConflictError: Backwards transition or order already paid
        """
        if actor is not None and not IdentityGate.authorize(actor, STATUS_ROLES):
            raise PermissionDeniedError(
                f"User role {actor.role.value} is not authorized to update order status"
            )

        order = await self.get_order(order_id)
        target = parse_status(new_status)

        if order.is_paid:
            raise ConflictError(
                "Order has already been paid",
                detail={"order_id": order.id},
            )
        if target.rank < order.status.rank:
            raise ConflictError(
                f"Cannot move order from {order.status.value} back to {target.value}",
                detail={"from": order.status.value, "to": target.value},
            )

        previous = order.status
        if target != previous:
            order.status = target
            await self.session.commit()
            await self.session.refresh(order)
            logger.info(f"Order #{order.id} status {previous.value} -> {target.value}")
        else:
            logger.debug(f"Order #{order.id} already {target.value}")

        if self.broadcaster is not None:
            payload = serialize_order(order)
            await self.broadcaster.broadcast_global(Events.ORDER_UPDATE, payload)
            await self.broadcaster.broadcast_to_table(order.table_id, Events.ORDER_UPDATE, payload)
        return order

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_order(self, order_id: int) -> Order:
        order = await self.session.get(Order, order_id)
        if order is None:
            raise NotFoundError("Order not found", detail={"order_id": order_id})
        return order

    async def list_orders(
        self,
        status: Optional[str] = None,
        table_id: Optional[int] = None,
        unpaid_only: bool = False,
    ) -> list[Order]:
        query = select(Order).order_by(Order.created_at, Order.id)
        if status:
            query = query.where(Order.status == parse_status(status))
        if table_id is not None:
            query = query.where(Order.table_id == table_id)
        if unpaid_only:
            query = query.where(Order.is_paid.is_(False))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def _unpaid_orders(self, table_id: int) -> list[Order]:
        return await self.list_orders(table_id=table_id, unpaid_only=True)

    # =========================================================================
    # BILLING
    # =========================================================================

    async def preview_bill(self, table_id: int, discount: float = 0) -> BillPreview:
        """Running bill over the table's unpaid orders. Nothing is persisted."""
        await self.tables.get_table(table_id)
        orders = await self._unpaid_orders(table_id)
        totals = calculate_bill(bill_lines_from_orders(orders), discount=Decimal(str(discount)))
        return BillPreview(
            table_id=table_id,
            orders=[OrderResponse.model_validate(o) for o in orders],
            totals=BillTotalsResponse(**totals.as_floats(), currency=get_settings().currency),
        )

    async def mark_paid(
        self,
        table_id: int,
        method: Optional[str] = None,
        discount: float = 0,
        actor: Optional[Identity] = None,
    ) -> PaymentResponse:
        """
        Settle every unpaid order of a table and free the table.

        A Bill is persisted only when there was something to pay; paying an
        already settled table still frees it and emits the event.

        Raises:
            PermissionDeniedError: Actor role not allowed
            NotFoundError: Unknown table
            ValidationError: Unknown method or invalid discount
        """
        if actor is not None and not IdentityGate.authorize(actor, PAYMENT_ROLES):
            raise PermissionDeniedError(
                f"User role {actor.role.value} is not authorized to process payments"
            )

        table: RestaurantTable = await self.tables.get_table(table_id)
        payment_method = parse_payment_method(method)
        orders = await self._unpaid_orders(table_id)

        bill = None
        if orders:
            totals = calculate_bill(bill_lines_from_orders(orders), discount=Decimal(str(discount)))
            bill = Bill(
                table_id=table_id,
                order_ids=[o.id for o in orders],
                payment_method=payment_method,
                paid=True,
                processed_by_id=actor.id if actor else None,
                **totals.as_floats(),
            )
            self.session.add(bill)
            await self.session.flush()

            paid_at = utcnow()
            for order in orders:
                order.is_paid = True
                order.paid_at = paid_at
                order.payment_method = payment_method
                order.bill_id = bill.id

        self.tables.release(table)
        await self.session.commit()
        if bill is not None:
            await self.session.refresh(bill)

        logger.info(
            f"Table {table.table_number} paid by {payment_method.value}: "
            f"{len(orders)} orders, total {bill.grand_total if bill else 0:.2f} {get_settings().currency}"
        )

        if self.broadcaster is not None:
            payload = {"tableId": table_id, "method": payment_method.value}
            await self.broadcaster.broadcast_to_table(table_id, Events.BILL_PAID, payload)
            await self.broadcaster.broadcast_to_roles(BILL_PAID_ROOMS, Events.BILL_PAID, payload)

        return PaymentResponse(
            table_id=table_id,
            method=payment_method,
            paid_orders=len(orders),
            bill=BillResponse.model_validate(bill) if bill is not None else None,
        )
