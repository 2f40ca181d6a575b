"""
FastAPI Application Entry Point

QR Dine Table Ordering - guests scan a table QR code, browse the menu and
order; kitchen, waiters and cashiers follow the order in real time.

Endpoints:
    - /api/auth/*: Staff login, token refresh, current identity
    - /api/users: Staff account administration
    - /api/menu: Menu browsing and availability toggle
    - /api/tables: Table registry, reservations, maintenance
    - /api/orders: Guest placement and staff status progression
    - /api/billing: Running bill and table payment
    - /health: System health check
    - /ws: Real-time channel (explicit room join)
"""

import asyncio
import json
import logging
import sys
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Any, Optional

import redis.asyncio as aioredis
from fastapi import Depends, FastAPI, Header, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from qrdine.core.config import get_settings, setup_logging
from qrdine.core.errors import ErrorKind, ServiceError, ValidationError
from qrdine.database import engine, get_db, init_db
from qrdine.models import TableSection, TableStatus, UserRole
from qrdine.schemas import (
    ApiResponse,
    AssignWaiterRequest,
    AvailabilityResponse,
    ErrorResponse,
    HealthResponse,
    LoginRequest,
    MenuItemResponse,
    OrderCreate,
    OrderResponse,
    PaymentRequest,
    ReportIssueRequest,
    ReservationCreate,
    ResolveIssueRequest,
    StatusUpdate,
    TableCreate,
    TableResponse,
    TableUpdate,
    TokenResponse,
    UserCreate,
    UserResponse,
    UserUpdate,
)
from qrdine.services.auth import CredentialStore, Identity, IdentityGate
from qrdine.services.menu import MenuCatalog
from qrdine.services.orders import (
    ORDER_VIEW_ROLES,
    PAYMENT_ROLES,
    STATUS_ROLES,
    OrderLifecycleEngine,
)
from qrdine.services.qrcode import get_qr_service
from qrdine.services.realtime import Connection, ConnectionManager, EventBroadcaster, RoomKey
from qrdine.services.tables import TableRegistry
from qrdine.services.users import UserDirectory

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

TABLE_ADMIN_ROLES = (UserRole.ADMIN, UserRole.MANAGER)
CLEAR_TABLE_ROLES = (UserRole.WAITER, UserRole.CASHIER, UserRole.ADMIN, UserRole.MANAGER)
RESERVATION_ROLES = (UserRole.ADMIN, UserRole.MANAGER, UserRole.WAITER)
BILL_VIEW_ROLES = (UserRole.CASHIER, UserRole.ADMIN, UserRole.WAITER)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    await init_db()
    logger.info("Database initialized")

    qr_service = get_qr_service()
    logger.info(f"QR Service: {qr_service.provider_name}")

    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"Missing production config: {missing}")

    logger.info("Application ready")

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await engine.dispose()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "QR code table ordering: guests order from their table, staff follow "
        "orders and payments in real time."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url, "*"] if settings.is_development else [settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Realtime layer is owned by the app and handed to services per request
app.state.connections = ConnectionManager()
app.state.broadcaster = EventBroadcaster(app.state.connections)


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_broadcaster(request: Request) -> EventBroadcaster:
    return request.app.state.broadcaster


async def get_gate(db: AsyncSession = Depends(get_db)) -> IdentityGate:
    return IdentityGate(CredentialStore(db))


async def get_current_identity(
    authorization: Optional[str] = Header(None),
    gate: IdentityGate = Depends(get_gate),
) -> Identity:
    return await gate.authenticate(authorization)


def require_roles(*roles: UserRole):
    """Dependency factory: authenticated identity whose role is in `roles`."""

    async def dependency(
        identity: Identity = Depends(get_current_identity),
        gate: IdentityGate = Depends(get_gate),
    ) -> Identity:
        return gate.require(identity, roles)

    return dependency


def get_table_registry(
    db: AsyncSession = Depends(get_db),
    broadcaster: EventBroadcaster = Depends(get_broadcaster),
) -> TableRegistry:
    return TableRegistry(db, broadcaster=broadcaster, qr_service=get_qr_service())


def get_order_engine(
    db: AsyncSession = Depends(get_db),
    broadcaster: EventBroadcaster = Depends(get_broadcaster),
) -> OrderLifecycleEngine:
    return OrderLifecycleEngine(db, broadcaster=broadcaster)


def get_menu_catalog(
    db: AsyncSession = Depends(get_db),
    broadcaster: EventBroadcaster = Depends(get_broadcaster),
) -> MenuCatalog:
    return MenuCatalog(db, broadcaster=broadcaster)


def ok(data: Any = None, message: Optional[str] = None) -> dict[str, Any]:
    return ApiResponse(message=message, data=data).model_dump(mode="json", by_alias=True)


def _table(table) -> TableResponse:
    return TableResponse.model_validate(table)


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "restaurant": settings.restaurant_name,
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> HealthResponse:
    """Verify all system components are operational."""

    db_status = "healthy"
    try:
        await db.execute(select(1))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    redis_status = "healthy"
    try:
        client = aioredis.from_url(settings.redis_url, socket_timeout=2)
        try:
            await client.ping()
        finally:
            await client.aclose()
    except Exception as e:
        redis_status = f"unhealthy: {str(e)}"
        logger.error(f"Redis health check failed: {e}")

    qr_service = get_qr_service()
    qr_status = "healthy" if await qr_service.health_check() else "unhealthy"

    # Redis only backs the nightly worker; requests keep flowing without it
    overall = "operational" if db_status == qr_status == "healthy" else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        redis=redis_status,
        qr_service=qr_status,
        realtime_connections=request.app.state.connections.connection_count,
        timestamp=datetime.now(timezone.utc),
    )


# =============================================================================
# AUTH ENDPOINTS
# =============================================================================

def _token_response(token: str, user) -> dict[str, Any]:
    return ok(
        TokenResponse(
            token=token,
            expires_in=IdentityGate.token_lifetime_seconds(),
            user=UserResponse.model_validate(user),
        )
    )


@app.post("/api/auth/login", tags=["Auth"], responses={401: {"model": ErrorResponse}})
async def login(
    credentials: LoginRequest,
    gate: IdentityGate = Depends(get_gate),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    token, identity = await gate.login(credentials.username, credentials.password)
    user = await UserDirectory(db).get_user(identity.id)
    return _token_response(token, user)


@app.post("/api/auth/refresh", tags=["Auth"])
async def refresh_token(
    authorization: Optional[str] = Header(None),
    gate: IdentityGate = Depends(get_gate),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    token, identity = await gate.refresh(authorization)
    user = await UserDirectory(db).get_user(identity.id)
    return _token_response(token, user)


@app.get("/api/auth/me", tags=["Auth"])
async def current_user(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    user = await UserDirectory(db).get_user(identity.id)
    return ok(UserResponse.model_validate(user))


# =============================================================================
# USER ENDPOINTS
# =============================================================================

@app.get("/api/users", tags=["Users"])
async def list_users(
    role: Optional[UserRole] = Query(None),
    _: Identity = Depends(require_roles(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    users = await UserDirectory(db).list_users(role)
    return ok([UserResponse.model_validate(u) for u in users])


@app.post("/api/users", status_code=201, tags=["Users"])
async def create_user(
    data: UserCreate,
    identity: Identity = Depends(require_roles(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    user = await UserDirectory(db).create_user(data, identity)
    return ok(UserResponse.model_validate(user), "User created")


@app.put("/api/users/{user_id}", tags=["Users"])
async def update_user(
    user_id: int,
    patch: UserUpdate,
    identity: Identity = Depends(require_roles(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    user = await UserDirectory(db).update_user(user_id, patch, identity)
    return ok(UserResponse.model_validate(user), "User updated")


@app.delete("/api/users/{user_id}", tags=["Users"])
async def deactivate_user(
    user_id: int,
    identity: Identity = Depends(require_roles(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    user = await UserDirectory(db).deactivate_user(user_id, identity)
    return ok(UserResponse.model_validate(user), "User deactivated")


# =============================================================================
# MENU ENDPOINTS
# =============================================================================

@app.get("/api/menu", tags=["Menu"])
async def list_menu(
    category: Optional[str] = Query(None),
    available_only: bool = Query(False),
    menu: MenuCatalog = Depends(get_menu_catalog),
) -> dict[str, Any]:
    items = await menu.list_items(category=category, available_only=available_only)
    return ok([MenuItemResponse.model_validate(i) for i in items])


@app.get("/api/menu/{item_id}", tags=["Menu"])
async def get_menu_item(
    item_id: int,
    menu: MenuCatalog = Depends(get_menu_catalog),
) -> dict[str, Any]:
    return ok(MenuItemResponse.model_validate(await menu.get_item(item_id)))


@app.patch("/api/menu/{item_id}/toggle-availability", tags=["Menu"])
async def toggle_menu_item(
    item_id: int,
    _: Identity = Depends(require_roles(UserRole.ADMIN, UserRole.MANAGER)),
    menu: MenuCatalog = Depends(get_menu_catalog),
) -> dict[str, Any]:
    item = await menu.toggle_availability(item_id)
    return ok(MenuItemResponse.model_validate(item), "Availability updated")


# =============================================================================
# TABLE ENDPOINTS
# =============================================================================
# Static paths are registered before /api/tables/{table_id}

@app.get("/api/tables/stats/daily", tags=["Tables"])
async def daily_table_stats(
    _: Identity = Depends(require_roles(*TABLE_ADMIN_ROLES)),
    tables: TableRegistry = Depends(get_table_registry),
) -> dict[str, Any]:
    return ok(await tables.daily_stats())


@app.get("/api/tables/by-number/{table_number}", tags=["Tables"])
async def get_table_by_number(
    table_number: str,
    tables: TableRegistry = Depends(get_table_registry),
) -> dict[str, Any]:
    """Guest lookup after scanning a table QR code."""
    return ok(_table(await tables.get_table_by_number(table_number)))


@app.get("/api/tables", tags=["Tables"])
async def list_tables(
    status: Optional[str] = Query(None),
    section: Optional[str] = Query(None),
    _: Identity = Depends(get_current_identity),
    tables: TableRegistry = Depends(get_table_registry),
) -> dict[str, Any]:
    try:
        status_filter = TableStatus(status) if status else None
        section_filter = TableSection(section) if section else None
    except ValueError as e:
        raise ValidationError(str(e))

    rows = await tables.list_tables(status=status_filter, section=section_filter)
    return ok([_table(t) for t in rows])


@app.get("/api/tables/{table_id}", tags=["Tables"])
async def get_table(
    table_id: int,
    _: Identity = Depends(get_current_identity),
    tables: TableRegistry = Depends(get_table_registry),
) -> dict[str, Any]:
    return ok(_table(await tables.get_table(table_id)))


@app.post("/api/tables", status_code=201, tags=["Tables"])
async def create_table(
    data: TableCreate,
    _: Identity = Depends(require_roles(*TABLE_ADMIN_ROLES)),
    tables: TableRegistry = Depends(get_table_registry),
) -> dict[str, Any]:
    return ok(_table(await tables.create_table(data)), "Table created")


@app.put("/api/tables/{table_id}", tags=["Tables"])
async def update_table(
    table_id: int,
    patch: TableUpdate,
    _: Identity = Depends(require_roles(*TABLE_ADMIN_ROLES)),
    tables: TableRegistry = Depends(get_table_registry),
) -> dict[str, Any]:
    return ok(_table(await tables.update_table(table_id, patch)), "Table updated")


@app.delete("/api/tables/{table_id}", tags=["Tables"])
async def delete_table(
    table_id: int,
    _: Identity = Depends(require_roles(UserRole.ADMIN)),
    tables: TableRegistry = Depends(get_table_registry),
) -> dict[str, Any]:
    await tables.delete_table(table_id)
    return ok({"table_id": table_id}, "Table deleted")


@app.post("/api/tables/{table_id}/assign-waiter", tags=["Tables"])
async def assign_waiter(
    table_id: int,
    data: AssignWaiterRequest,
    _: Identity = Depends(require_roles(*TABLE_ADMIN_ROLES)),
    tables: TableRegistry = Depends(get_table_registry),
) -> dict[str, Any]:
    return ok(_table(await tables.assign_waiter(table_id, data.waiter_id)), "Waiter assigned")


@app.post("/api/tables/{table_id}/report-issue", tags=["Tables"])
async def report_issue(
    table_id: int,
    data: ReportIssueRequest,
    identity: Identity = Depends(get_current_identity),
    tables: TableRegistry = Depends(get_table_registry),
) -> dict[str, Any]:
    return ok(_table(await tables.report_issue(table_id, data.issue, identity)), "Issue reported")


@app.post("/api/tables/{table_id}/resolve-issue/{entry_id}", tags=["Tables"])
async def resolve_issue(
    table_id: int,
    entry_id: int,
    data: Optional[ResolveIssueRequest] = None,
    identity: Identity = Depends(require_roles(*TABLE_ADMIN_ROLES)),
    tables: TableRegistry = Depends(get_table_registry),
) -> dict[str, Any]:
    notes = data.notes if data else None
    table = await tables.resolve_issue(table_id, entry_id, identity, notes)
    return ok(_table(table), "Issue resolved")


@app.post("/api/tables/{table_id}/clear", tags=["Tables"])
async def clear_table(
    table_id: int,
    _: Identity = Depends(require_roles(*CLEAR_TABLE_ROLES)),
    tables: TableRegistry = Depends(get_table_registry),
) -> dict[str, Any]:
    return ok(_table(await tables.clear_table(table_id)), "Table cleared")


@app.post("/api/tables/{table_id}/reservations", status_code=201, tags=["Tables"])
async def add_reservation(
    table_id: int,
    data: ReservationCreate,
    identity: Identity = Depends(require_roles(*RESERVATION_ROLES)),
    tables: TableRegistry = Depends(get_table_registry),
) -> dict[str, Any]:
    table = await tables.add_reservation(table_id, data, identity)
    return ok(_table(table), "Reservation added")


@app.get("/api/tables/{table_id}/availability", tags=["Tables"])
async def table_availability(
    table_id: int,
    on_date: date = Query(..., alias="date"),
    start_time: datetime = Query(...),
    end_time: datetime = Query(...),
    _: Identity = Depends(get_current_identity),
    tables: TableRegistry = Depends(get_table_registry),
) -> dict[str, Any]:
    available = await tables.is_available_at(table_id, on_date, start_time, end_time)
    return ok(
        AvailabilityResponse(
            table_id=table_id,
            date=on_date,
            start_time=start_time,
            end_time=end_time,
            available=available,
        )
    )


# =============================================================================
# ORDER ENDPOINTS
# =============================================================================

@app.post(
    "/api/orders",
    status_code=201,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Place Order (Guest)",
)
async def place_order(
    data: OrderCreate,
    orders: OrderLifecycleEngine = Depends(get_order_engine),
) -> dict[str, Any]:
    """
    Place an order from a table. No login: the table number comes from
    the scanned QR code.
    """
    order = await orders.place_order(data.table_number, data.items)
    return ok(OrderResponse.model_validate(order), "Order placed successfully")


@app.get("/api/orders", tags=["Orders"])
async def list_orders(
    status: Optional[str] = Query(None),
    table_id: Optional[int] = Query(None),
    unpaid_only: bool = Query(False),
    _: Identity = Depends(require_roles(*ORDER_VIEW_ROLES)),
    orders: OrderLifecycleEngine = Depends(get_order_engine),
) -> dict[str, Any]:
    rows = await orders.list_orders(status=status, table_id=table_id, unpaid_only=unpaid_only)
    return ok([OrderResponse.model_validate(o) for o in rows])


@app.get("/api/orders/{order_id}", tags=["Orders"])
async def get_order(
    order_id: int,
    orders: OrderLifecycleEngine = Depends(get_order_engine),
) -> dict[str, Any]:
    return ok(OrderResponse.model_validate(await orders.get_order(order_id)))


@app.put("/api/orders/{order_id}/status", tags=["Orders"])
async def update_order_status(
    order_id: int,
    data: StatusUpdate,
    identity: Identity = Depends(require_roles(*STATUS_ROLES)),
    orders: OrderLifecycleEngine = Depends(get_order_engine),
) -> dict[str, Any]:
    order = await orders.update_status(order_id, data.status, identity)
    return ok(OrderResponse.model_validate(order), "Order status updated")


# =============================================================================
# BILLING ENDPOINTS
# =============================================================================

@app.get("/api/billing/{table_id}", tags=["Billing"])
async def preview_bill(
    table_id: int,
    discount: float = Query(0, ge=0),
    _: Identity = Depends(require_roles(*BILL_VIEW_ROLES)),
    orders: OrderLifecycleEngine = Depends(get_order_engine),
) -> dict[str, Any]:
    return ok(await orders.preview_bill(table_id, discount))


@app.post("/api/billing/pay/{table_id}", tags=["Billing"])
async def pay_table(
    table_id: int,
    payment: Optional[PaymentRequest] = None,
    identity: Identity = Depends(require_roles(*PAYMENT_ROLES)),
    orders: OrderLifecycleEngine = Depends(get_order_engine),
) -> dict[str, Any]:
    payment = payment or PaymentRequest()
    result = await orders.mark_paid(table_id, payment.method, payment.discount, identity)
    return ok(result, "Payment processed")


# =============================================================================
# REAL-TIME CHANNEL
# =============================================================================

async def handle_socket_message(
    manager: ConnectionManager,
    connection: Connection,
    message: Any,
) -> None:
    """
    Apply one client frame.

    Frames:
        {"action": "join-room", "room": "<role>"}
        {"action": "join-table", "table_id": <id>}
        {"action": "leave", "room": "<role>"} or {"action": "leave", "table_id": <id>}
    """
    if not isinstance(message, dict):
        await connection.send("error", {"message": "Frame must be a JSON object"})
        return

    action = message.get("action")
    try:
        if action == "join-room":
            room = RoomKey.for_role(message.get("room"))
        elif action == "join-table":
            room = RoomKey.for_table(message.get("table_id"))
        elif action == "leave":
            room = (
                RoomKey.for_table(message["table_id"])
                if "table_id" in message
                else RoomKey.for_role(message.get("room"))
            )
        else:
            await connection.send("error", {"message": f"Unknown action: {action}"})
            return
    except ValueError as e:
        await connection.send("error", {"message": str(e)})
        return

    if action == "leave":
        manager.leave(connection, room)
        await connection.send("left", {"room": str(room)})
    else:
        manager.join(connection, room)
        await connection.send("joined", {"room": str(room)})


@app.websocket("/ws")
async def realtime_socket(websocket: WebSocket) -> None:
    manager: ConnectionManager = websocket.app.state.connections
    await websocket.accept()
    connection = manager.connect(Connection(websocket))

    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(frame.get("code", 1000))
            raw = frame.get("text")
            if raw is None:
                await connection.send("error", {"message": "Only text frames are supported"})
                continue
            try:
                message = json.loads(raw)
            except ValueError:
                await connection.send("error", {"message": "Invalid JSON"})
                continue
            await handle_socket_message(manager, connection, message)
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(connection)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.kind.value} on {request.url.path}: {exc.message}")
    else:
        logger.debug(f"{exc.kind.value} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": ErrorKind.VALIDATION_ERROR.value,
            "message": errors[0]["msg"] if errors else "Invalid request",
            "detail": errors,
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": ErrorKind.INTERNAL.value,
            "message": "An unexpected error occurred",
            "detail": str(exc) if settings.debug else None,
        },
    )


# =============================================================================
# ENTRY POINT
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "qrdine.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
    )
