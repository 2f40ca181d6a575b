"""
Table Registry

Owns table identity, seating metadata, occupancy and the embedded
reservation / maintenance lists.

Invariant: current_guests never exceeds capacity. Every mutation checks
the merged state BEFORE touching the entity, so a rejected change leaves
the table exactly as it was.

Events (all to the admin role-room unless noted):
    table-created, table-updated, table-deleted, table-issue,
    waiter-assigned (also to the waiter room)
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from qrdine.core.config import get_settings
from qrdine.core.errors import ConflictError, InternalError, NotFoundError, ValidationError
from qrdine.models import (
    MaintenanceLogEntry,
    MaintenanceStatus,
    Order,
    Reservation,
    ReservationStatus,
    RestaurantTable,
    TableSection,
    TableStatus,
    User,
    UserRole,
    utcnow,
)
from qrdine.schemas import (
    DailyStats,
    ReservationCreate,
    TableCreate,
    TableResponse,
    TableUpdate,
)
from qrdine.services.auth import Identity
from qrdine.services.qrcode import BaseQRCodeService, table_menu_url
from qrdine.services.realtime import EventBroadcaster, Events

logger = logging.getLogger(__name__)


def serialize_table(table: RestaurantTable) -> dict[str, Any]:
    return TableResponse.model_validate(table).model_dump(mode="json")


def _check_guest_capacity(guests: int, capacity: int) -> None:
    if guests > capacity:
        raise ConflictError(
            "Current guests cannot exceed table capacity",
            detail={"current_guests": guests, "capacity": capacity},
        )


class TableRegistry:
    """
    Table lifecycle operations.

    Args:
        session: Database session for this request
        broadcaster: Realtime publisher (None disables events)
        qr_service: QR payload generator (None skips QR generation)
    """

    def __init__(
        self,
        session: AsyncSession,
        broadcaster: Optional[EventBroadcaster] = None,
        qr_service: Optional[BaseQRCodeService] = None,
    ):
        self.session = session
        self.broadcaster = broadcaster
        self.qr_service = qr_service
        self.settings = get_settings()

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    async def get_table(self, table_id: int) -> RestaurantTable:
        table = await self.session.get(RestaurantTable, table_id)
        if table is None:
            raise NotFoundError("Table not found", detail={"table_id": table_id})
        return table

    async def find_by_number(self, table_number: str) -> Optional[RestaurantTable]:
        result = await self.session.execute(
            select(RestaurantTable).where(RestaurantTable.table_number == str(table_number))
        )
        return result.scalar_one_or_none()

    async def get_table_by_number(self, table_number: str) -> RestaurantTable:
        table = await self.find_by_number(table_number)
        if table is None:
            raise NotFoundError("Table not found", detail={"table_number": table_number})
        return table

    async def list_tables(
        self,
        status: Optional[TableStatus] = None,
        section: Optional[TableSection] = None,
    ) -> list[RestaurantTable]:
        query = select(RestaurantTable).order_by(RestaurantTable.table_number)
        if status is not None:
            query = query.where(RestaurantTable.status == status)
        if section is not None:
            query = query.where(RestaurantTable.section == section)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    # =========================================================================
    # CRUD
    # =========================================================================

    async def create_table(self, data: TableCreate) -> RestaurantTable:
        _check_guest_capacity(data.current_guests, data.capacity)
        if await self.find_by_number(data.table_number) is not None:
            raise ConflictError(
                f"Table number {data.table_number} already exists",
                detail={"table_number": data.table_number},
            )

        table = RestaurantTable(
            table_number=data.table_number,
            capacity=data.capacity,
            section=data.section,
            status=data.status,
            current_guests=data.current_guests,
            is_active=data.is_active,
        )
        table.qr_code = await self._generate_qr(data.table_number)

        self.session.add(table)
        await self._commit_unique(data.table_number)
        await self.session.refresh(table)

        logger.info(f"Table {table.table_number} created (id={table.id})")
        await self._emit_roles([UserRole.ADMIN], Events.TABLE_CREATED, serialize_table(table))
        return table

    async def update_table(self, table_id: int, patch: TableUpdate) -> RestaurantTable:
        table = await self.get_table(table_id)
        changes = patch.model_dump(exclude_unset=True)
        # Explicit nulls mean "leave unchanged"
        changes = {k: v for k, v in changes.items() if v is not None}

        capacity = changes.get("capacity", table.capacity)
        guests = changes.get("current_guests", table.current_guests)
        _check_guest_capacity(guests, capacity)

        new_number = changes.get("table_number")
        renumbered = new_number is not None and new_number != table.table_number
        if renumbered and await self.find_by_number(new_number) is not None:
            raise ConflictError(
                f"Table number {new_number} already exists",
                detail={"table_number": new_number},
            )

        qr_code = await self._generate_qr(new_number) if renumbered else None

        for field, value in changes.items():
            setattr(table, field, value)
        if renumbered:
            table.qr_code = qr_code

        await self._commit_unique(table.table_number)
        await self.session.refresh(table)

        logger.info(f"Table {table.table_number} updated: {sorted(changes)}")
        await self._emit_roles([UserRole.ADMIN], Events.TABLE_UPDATED, serialize_table(table))
        return table

    async def delete_table(self, table_id: int) -> None:
        table = await self.get_table(table_id)

        if table.status == TableStatus.OCCUPIED:
            raise ConflictError(
                "Cannot delete an occupied table",
                detail={"table_id": table_id, "status": table.status.value},
            )

        order_count = await self.session.scalar(
            select(func.count(Order.id)).where(Order.table_id == table_id)
        )
        if order_count:
            raise ConflictError(
                "Table has order history; deactivate it instead of deleting",
                detail={"table_id": table_id, "orders": order_count},
            )

        await self.session.delete(table)
        await self.session.commit()

        logger.info(f"Table {table.table_number} deleted (id={table_id})")
        await self._emit_roles([UserRole.ADMIN], Events.TABLE_DELETED, {"table_id": table_id})

    # =========================================================================
    # STAFF ACTIONS
    # =========================================================================

    async def assign_waiter(self, table_id: int, waiter_id: int) -> RestaurantTable:
        table = await self.get_table(table_id)
        waiter = await self.session.get(User, waiter_id)
        if waiter is None or not waiter.is_active:
            raise NotFoundError("Waiter not found", detail={"waiter_id": waiter_id})
        if waiter.role != UserRole.WAITER:
            raise ValidationError(
                f"User {waiter.username} is not a waiter",
                detail={"waiter_id": waiter_id, "role": waiter.role.value},
            )

        table.assigned_waiter_id = waiter.id
        await self.session.commit()
        await self.session.refresh(table)

        logger.info(f"Waiter {waiter.username} assigned to table {table.table_number}")
        await self._emit_roles(
            [UserRole.WAITER, UserRole.ADMIN],
            Events.WAITER_ASSIGNED,
            serialize_table(table),
        )
        return table

    async def report_issue(self, table_id: int, issue: str, reporter: Identity) -> RestaurantTable:
        if not issue or not issue.strip():
            raise ValidationError("Issue description is required")

        table = await self.get_table(table_id)
        table.maintenance_log.append(
            MaintenanceLogEntry(
                issue=issue.strip(),
                reported_date=utcnow(),
                reported_by_id=reporter.id,
            )
        )
        table.status = TableStatus.MAINTENANCE
        await self.session.commit()
        await self.session.refresh(table)

        logger.warning(f"Issue reported on table {table.table_number} by {reporter.username}: {issue}")
        await self._emit_roles(
            [UserRole.ADMIN],
            Events.TABLE_ISSUE,
            {
                "table_id": table.id,
                "table_number": table.table_number,
                "issue": issue.strip(),
                "reported_by": reporter.username,
            },
        )
        return table

    async def resolve_issue(
        self,
        table_id: int,
        entry_id: int,
        resolver: Identity,
        notes: Optional[str] = None,
    ) -> RestaurantTable:
        table = await self.get_table(table_id)
        entry = next((e for e in table.maintenance_log if e.id == entry_id), None)
        if entry is None:
            raise NotFoundError("Maintenance entry not found", detail={"entry_id": entry_id})
        if entry.status == MaintenanceStatus.RESOLVED:
            raise ConflictError("Issue already resolved", detail={"entry_id": entry_id})

        entry.status = MaintenanceStatus.RESOLVED
        entry.resolved_date = utcnow()
        entry.resolved_by_id = resolver.id
        entry.notes = notes

        if not self._has_open_issues(table) and table.status == TableStatus.MAINTENANCE:
            table.status = (
                TableStatus.OCCUPIED if table.current_order_id else TableStatus.AVAILABLE
            )

        await self.session.commit()
        await self.session.refresh(table)

        logger.info(f"Issue #{entry_id} on table {table.table_number} resolved by {resolver.username}")
        await self._emit_roles([UserRole.ADMIN], Events.TABLE_UPDATED, serialize_table(table))
        return table

    async def clear_table(self, table_id: int) -> RestaurantTable:
        table = await self.get_table(table_id)
        self.release(table)
        table.last_order_time = utcnow()
        table.total_orders_today = (table.total_orders_today or 0) + 1
        await self.session.commit()
        await self.session.refresh(table)

        logger.info(f"Table {table.table_number} cleared")
        await self._emit_roles(
            [UserRole.ADMIN, UserRole.WAITER],
            Events.TABLE_UPDATED,
            serialize_table(table),
        )
        return table

    # =========================================================================
    # RESERVATIONS
    # =========================================================================

    async def add_reservation(
        self,
        table_id: int,
        data: ReservationCreate,
        creator: Optional[Identity] = None,
    ) -> RestaurantTable:
        table = await self.get_table(table_id)

        if data.guest_count > table.capacity:
            raise ConflictError(
                "Reservation guest count exceeds table capacity",
                detail={"guest_count": data.guest_count, "capacity": table.capacity},
            )

        if data.status == ReservationStatus.CONFIRMED:
            if table.status == TableStatus.MAINTENANCE:
                raise ConflictError("Table is under maintenance", detail={"table_id": table_id})
            clash = self._find_conflict(table, data.date, data.start_time, data.end_time)
            if clash is not None:
                raise ConflictError(
                    "Table already reserved for that time",
                    detail={"reservation_id": clash.id},
                )

        table.reservations.append(
            Reservation(
                date=data.date,
                start_time=data.start_time,
                end_time=data.end_time,
                customer_name=data.customer_name,
                customer_phone=data.customer_phone,
                customer_email=data.customer_email,
                guest_count=data.guest_count,
                status=data.status,
                special_requests=data.special_requests,
                created_by_id=creator.id if creator else None,
            )
        )
        await self.session.commit()
        await self.session.refresh(table)

        logger.info(
            f"Reservation for {data.customer_name} on table {table.table_number} "
            f"({data.start_time:%Y-%m-%d %H:%M} - {data.end_time:%H:%M}, {data.status.value})"
        )
        await self._emit_roles([UserRole.ADMIN], Events.TABLE_UPDATED, serialize_table(table))
        return table

    async def is_available_at(
        self,
        table_id: int,
        on_date: date,
        start: datetime,
        end: datetime,
    ) -> bool:
        """
        False if the table is under maintenance or a confirmed reservation
        on the same date overlaps [start, end).
        """
        if end <= start:
            raise ValidationError("End time must be after start time")
        table = await self.get_table(table_id)
        if table.status == TableStatus.MAINTENANCE:
            return False
        return self._find_conflict(table, on_date, start, end) is None

    @staticmethod
    def _find_conflict(
        table: RestaurantTable,
        on_date: date,
        start: datetime,
        end: datetime,
    ) -> Optional[Reservation]:
        return next(
            (
                r for r in table.reservations
                if r.status == ReservationStatus.CONFIRMED
                and r.date == on_date
                and r.overlaps(start, end)
            ),
            None,
        )

    # =========================================================================
    # ORDER LIFECYCLE HOOKS (no commit; the order engine owns the transaction)
    # =========================================================================

    def occupy(self, table: RestaurantTable, order_id: int) -> None:
        table.current_order_id = order_id
        if table.status != TableStatus.MAINTENANCE:
            table.status = TableStatus.OCCUPIED

    def release(self, table: RestaurantTable) -> None:
        table.status = TableStatus.MAINTENANCE if self._has_open_issues(table) else TableStatus.AVAILABLE
        table.current_order_id = None
        table.current_guests = 0

    @staticmethod
    def _has_open_issues(table: RestaurantTable) -> bool:
        return any(e.status != MaintenanceStatus.RESOLVED for e in table.maintenance_log)

    # =========================================================================
    # STATISTICS
    # =========================================================================

    async def daily_stats(self) -> DailyStats:
        today = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)

        total_orders = await self.session.scalar(
            select(func.coalesce(func.sum(RestaurantTable.total_orders_today), 0))
            .where(RestaurantTable.last_order_time >= today)
        )
        busy = await self.session.scalar(
            select(func.count(RestaurantTable.id))
            .where(RestaurantTable.status == TableStatus.OCCUPIED)
        )
        maintenance = await self.session.scalar(
            select(func.count(RestaurantTable.id))
            .where(RestaurantTable.status == TableStatus.MAINTENANCE)
        )
        total = await self.session.scalar(select(func.count(RestaurantTable.id)))

        return DailyStats(
            total_orders=total_orders or 0,
            busy_tables=busy or 0,
            tables_in_maintenance=maintenance or 0,
            total_tables=total or 0,
        )

    async def reset_daily_counters(self) -> int:
        result = await self.session.execute(
            update(RestaurantTable)
            .where(RestaurantTable.total_orders_today != 0)
            .values(total_orders_today=0)
        )
        await self.session.commit()
        logger.info(f"Daily order counters reset on {result.rowcount} tables")
        return result.rowcount

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _generate_qr(self, table_number: str) -> Optional[str]:
        if self.qr_service is None:
            return None
        result = await self.qr_service.generate(
            table_menu_url(self.settings.frontend_url, table_number)
        )
        if not result.success:
            logger.error(f"QR code generation failed for table {table_number}: {result.error_message}")
            raise InternalError(
                "QR code generation failed",
                detail={"table_number": table_number, "reason": result.error_message},
            )
        return result.payload

    async def _commit_unique(self, table_number: str) -> None:
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise ConflictError(
                f"Table number {table_number} already exists",
                detail={"table_number": table_number},
            )

    async def _emit_roles(self, roles: list[UserRole], event: str, payload: Any) -> None:
        if self.broadcaster is not None:
            await self.broadcaster.broadcast_to_roles(roles, event, payload)
