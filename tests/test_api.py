import pytest

from qrdine.models import TableStatus, UserRole
from qrdine.services.realtime import Connection, RoomKey

from tests.conftest import TEST_PASSWORD, FakeSocket, auth_header


@pytest.fixture
async def staff(make_user):
    return {
        role: await make_user(role.value, role)
        for role in (UserRole.ADMIN, UserRole.MANAGER, UserRole.KITCHEN, UserRole.WAITER, UserRole.CASHIER)
    }


@pytest.fixture
async def menu(make_item):
    return await make_item("Curry", 100.0), await make_item("Naan", 50.0)


def listen(app, *rooms) -> FakeSocket:
    socket = FakeSocket()
    connection = app.state.connections.connect(Connection(socket))
    for room in rooms:
        app.state.connections.join(connection, room)
    return socket


# =============================================================================
# HEALTH & AUTH
# =============================================================================

async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["database"] == "healthy"
    assert body["qr_service"] == "healthy"
    assert body["realtime_connections"] == 0


async def test_login_and_me(client, staff):
    response = await client.post("/api/auth/login", json={"username": "kitchen", "password": TEST_PASSWORD})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["user"]["role"] == "kitchen"
    assert data["expires_in"] == 24 * 60 * 60

    me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['token']}"})
    assert me.json()["data"]["username"] == "kitchen"


async def test_bad_login_uses_error_envelope(client, staff):
    response = await client.post("/api/auth/login", json={"username": "kitchen", "password": "wrong"})

    assert response.status_code == 401
    assert response.json() == {
        "success": False,
        "error": "UNAUTHENTICATED",
        "message": "Invalid username or password",
        "detail": None,
    }


async def test_staff_route_without_token(client):
    response = await client.get("/api/orders")
    assert response.status_code == 401
    assert response.json()["error"] == "UNAUTHENTICATED"


async def test_deactivated_user_is_rejected(client, make_user):
    ghost = await make_user("ghost", UserRole.KITCHEN, is_active=False)
    response = await client.get("/api/orders", headers=auth_header(ghost))
    assert response.status_code == 401


# =============================================================================
# GUEST FLOW
# =============================================================================

async def test_guest_looks_up_table_and_orders(app, client, make_table, menu):
    table = await make_table("T5")
    curry, naan = menu
    kitchen = listen(app, RoomKey.for_role("kitchen"))

    lookup = await client.get("/api/tables/by-number/T5")
    assert lookup.json()["data"]["id"] == table.id

    response = await client.post(
        "/api/orders",
        json={
            "tableNumber": "T5",
            "items": [{"menuItemId": curry.id, "quantity": 2}, {"menuItemId": naan.id, "quantity": 1}],
        },
    )

    assert response.status_code == 201
    order = response.json()["data"]
    assert order["status"] == "PENDING"
    assert order["subtotal"] == 250.0
    assert kitchen.events == ["order:new"]

    public = await client.get(f"/api/orders/{order['id']}")
    assert public.json()["data"]["items"][0]["name"] == "Curry"


async def test_order_with_no_items(client, make_table):
    await make_table("T5")
    response = await client.post("/api/orders", json={"tableNumber": "T5", "items": []})

    assert response.status_code == 400
    assert response.json()["error"] == "VALIDATION_ERROR"


async def test_malformed_order_body_is_a_validation_error(client, make_table, menu):
    await make_table("T5")
    response = await client.post(
        "/api/orders", json={"tableNumber": "T5", "items": [{"menuItemId": menu[0].id, "quantity": 0}]}
    )

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "VALIDATION_ERROR"


async def test_unknown_table_is_not_found(client, menu):
    response = await client.post("/api/orders", json={"tableNumber": "99", "items": [{"menuItemId": menu[0].id, "quantity": 1}]})
    assert response.status_code == 404
    assert response.json()["error"] == "NOT_FOUND"


# =============================================================================
# STAFF FLOW
# =============================================================================

async def test_full_service_cycle(app, client, staff, make_table, menu):
    table = await make_table("T5")
    curry, naan = menu
    guest = listen(app, RoomKey.for_table(table.id))

    placed = await client.post(
        "/api/orders",
        json={"tableNumber": "T5", "items": [{"menuItemId": curry.id, "quantity": 2}, {"menuItemId": naan.id, "quantity": 1}]},
    )
    order_id = placed.json()["data"]["id"]

    kitchen = auth_header(staff[UserRole.KITCHEN])
    for status in ("PREPARING", "READY"):
        response = await client.put(f"/api/orders/{order_id}/status", json={"status": status}, headers=kitchen)
        assert response.status_code == 200
    served = await client.put(
        f"/api/orders/{order_id}/status", json={"status": "SERVED"}, headers=auth_header(staff[UserRole.WAITER])
    )
    assert served.json()["data"]["status"] == "SERVED"

    preview = await client.get(f"/api/billing/{table.id}", headers=auth_header(staff[UserRole.WAITER]))
    assert preview.json()["data"]["totals"]["grand_total"] == 320.0
    assert preview.json()["data"]["totals"]["currency"] == "INR"

    paid = await client.post(
        f"/api/billing/pay/{table.id}",
        json={"method": "upi", "discount": 20},
        headers=auth_header(staff[UserRole.CASHIER]),
    )
    assert paid.status_code == 200
    data = paid.json()["data"]
    assert data["paid_orders"] == 1
    assert data["tableId"] == table.id
    assert "table_id" not in data
    assert data["bill"]["grand_total"] == 300.0

    tables = await client.get("/api/tables", headers=kitchen)
    assert tables.json()["data"][0]["status"] == TableStatus.AVAILABLE.value

    assert guest.events == ["order:new"] + ["order:update"] * 6 + ["bill:paid"]
    assert guest.frames[-1]["data"] == {"tableId": table.id, "method": "upi"}


async def test_backwards_status_is_conflict(client, staff, make_table, menu):
    await make_table("T5")
    placed = await client.post("/api/orders", json={"tableNumber": "T5", "items": [{"menuItemId": menu[0].id, "quantity": 1}]})
    order_id = placed.json()["data"]["id"]
    headers = auth_header(staff[UserRole.KITCHEN])

    await client.put(f"/api/orders/{order_id}/status", json={"status": "SERVED"}, headers=headers)
    response = await client.put(f"/api/orders/{order_id}/status", json={"status": "PENDING"}, headers=headers)

    assert response.status_code == 409
    assert response.json()["error"] == "CONFLICT"


async def test_kitchen_cannot_take_payment(client, staff, make_table):
    table = await make_table("T5")
    response = await client.post(
        f"/api/billing/pay/{table.id}", json={"method": "cash"}, headers=auth_header(staff[UserRole.KITCHEN])
    )
    assert response.status_code == 403
    assert response.json()["error"] == "FORBIDDEN"


async def test_manager_cannot_update_status(client, staff, make_table, menu):
    await make_table("T5")
    placed = await client.post("/api/orders", json={"tableNumber": "T5", "items": [{"menuItemId": menu[0].id, "quantity": 1}]})
    response = await client.put(
        f"/api/orders/{placed.json()['data']['id']}/status",
        json={"status": "READY"},
        headers=auth_header(staff[UserRole.MANAGER]),
    )
    assert response.status_code == 403


async def test_superadmin_bypasses_role_lists(client, make_user, make_table):
    owner = await make_user("owner", UserRole.STAFF, is_super_admin=True)
    table = await make_table("T5")
    response = await client.post(
        f"/api/billing/pay/{table.id}", json={"method": "cash"}, headers=auth_header(owner)
    )
    assert response.status_code == 200


# =============================================================================
# TABLES & MENU
# =============================================================================

async def test_table_admin_endpoints(app, client, staff):
    admins = listen(app, RoomKey.for_role("admin"))
    headers = auth_header(staff[UserRole.MANAGER])

    created = await client.post("/api/tables", json={"tableNumber": "12", "capacity": 4}, headers=headers)
    assert created.status_code == 201
    table_id = created.json()["data"]["id"]

    conflict = await client.put(f"/api/tables/{table_id}", json={"currentGuests": 9}, headers=headers)
    assert conflict.status_code == 409

    assigned = await client.post(
        f"/api/tables/{table_id}/assign-waiter",
        json={"waiterId": staff[UserRole.WAITER].id},
        headers=headers,
    )
    assert assigned.json()["data"]["assigned_waiter_id"] == staff[UserRole.WAITER].id

    stats = await client.get("/api/tables/stats/daily", headers=headers)
    assert stats.json()["data"]["total_tables"] == 1

    # Only admins may delete
    forbidden = await client.delete(f"/api/tables/{table_id}", headers=headers)
    assert forbidden.status_code == 403
    deleted = await client.delete(f"/api/tables/{table_id}", headers=auth_header(staff[UserRole.ADMIN]))
    assert deleted.status_code == 200

    assert admins.events == ["table-created", "waiter-assigned", "table-deleted"]


async def test_waiter_cannot_create_tables(client, staff):
    response = await client.post(
        "/api/tables", json={"tableNumber": "1", "capacity": 2}, headers=auth_header(staff[UserRole.WAITER])
    )
    assert response.status_code == 403


async def test_capacity_out_of_range(client, staff):
    response = await client.post(
        "/api/tables", json={"tableNumber": "1", "capacity": 21}, headers=auth_header(staff[UserRole.ADMIN])
    )
    assert response.status_code == 400


async def test_report_issue_and_reservation_endpoints(client, staff, make_table):
    table = await make_table("7")
    waiter = auth_header(staff[UserRole.WAITER])

    reservation = await client.post(
        f"/api/tables/{table.id}/reservations",
        json={
            "date": "2026-03-14",
            "start_time": "2026-03-14T18:00:00Z",
            "end_time": "2026-03-14T20:00:00Z",
            "customer_name": "Asha",
            "guest_count": 2,
            "status": "confirmed",
        },
        headers=waiter,
    )
    assert reservation.status_code == 201

    availability = await client.get(
        f"/api/tables/{table.id}/availability",
        params={"date": "2026-03-14", "start_time": "2026-03-14T20:00:00Z", "end_time": "2026-03-14T21:00:00Z"},
        headers=waiter,
    )
    assert availability.json()["data"]["available"] is True

    issue = await client.post(f"/api/tables/{table.id}/report-issue", json={"issue": "Spill"}, headers=waiter)
    assert issue.json()["data"]["status"] == "maintenance"

    entry_id = issue.json()["data"]["maintenance_log"][0]["id"]
    resolved = await client.post(
        f"/api/tables/{table.id}/resolve-issue/{entry_id}",
        json={"notes": "Mopped"},
        headers=auth_header(staff[UserRole.MANAGER]),
    )
    assert resolved.json()["data"]["status"] == "available"


async def test_toggle_menu_availability_broadcasts_globally(app, client, staff, menu):
    everyone = listen(app)
    curry, _ = menu

    response = await client.patch(
        f"/api/menu/{curry.id}/toggle-availability", headers=auth_header(staff[UserRole.MANAGER])
    )

    assert response.json()["data"]["is_available"] is False
    assert everyone.frames[0]["event"] == "menu-update"
    assert everyone.frames[0]["data"]["action"] == "availability-change"

    listing = await client.get("/api/menu", params={"available_only": True})
    assert [item["name"] for item in listing.json()["data"]] == ["Naan"]


# =============================================================================
# USERS
# =============================================================================

async def test_delete_user_deactivates(client, staff):
    admin = auth_header(staff[UserRole.ADMIN])
    waiter = staff[UserRole.WAITER]

    response = await client.delete(f"/api/users/{waiter.id}", headers=admin)

    assert response.status_code == 200
    assert response.json()["data"]["is_active"] is False

    locked_out = await client.get("/api/auth/me", headers=auth_header(waiter))
    assert locked_out.status_code == 401


async def test_user_admin_requires_admin(client, staff):
    response = await client.get("/api/users", headers=auth_header(staff[UserRole.MANAGER]))
    assert response.status_code == 403
