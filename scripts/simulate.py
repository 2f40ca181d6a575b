"""
Rush Hour Simulation Script

Fires concurrent guest orders at seeded tables, then walks every order
through the kitchen workflow and settles each table, the way a busy
service would. Run `python scripts/seed.py` first.

Run from project root: python scripts/simulate.py
"""

import argparse
import asyncio
import random
import sys
import time
from datetime import datetime
from typing import Any

import httpx

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:4000"
TOTAL_ORDERS = 40
STAFF_PASSWORD = "password123"

WORKFLOW = ["PREPARING", "READY", "SERVED"]


async def login(client: httpx.AsyncClient, username: str) -> dict[str, str]:
    response = await client.post(
        f"{API_BASE_URL}/api/auth/login",
        json={"username": username, "password": STAFF_PASSWORD},
    )
    response.raise_for_status()
    token = response.json()["data"]["token"]
    return {"Authorization": f"Bearer {token}"}


def generate_items(menu: list[dict]) -> list[dict[str, int]]:
    """Pick 1-4 random available dishes."""
    picks = random.sample(menu, k=min(len(menu), random.randint(1, 4)))
    return [{"menuItemId": item["id"], "quantity": random.randint(1, 3)} for item in picks]


# =============================================================================
# GUEST ORDERS
# =============================================================================

async def send_guest_order(
    client: httpx.AsyncClient,
    order_num: int,
    table_number: str,
    menu: list[dict],
) -> dict[str, Any]:
    """Place one order as a guest (no credentials)."""
    start_time = time.time()
    try:
        response = await client.post(
            f"{API_BASE_URL}/api/orders",
            json={"tableNumber": table_number, "items": generate_items(menu)},
            timeout=30.0,
        )
        elapsed = round(time.time() - start_time, 3)

        if response.status_code == 201:
            data = response.json()["data"]
            return {
                "order_num": order_num,
                "success": True,
                "order_id": data["id"],
                "table_id": data["table_id"],
                "subtotal": data["subtotal"],
                "time": elapsed,
            }
        return {
            "order_num": order_num,
            "success": False,
            "error": response.text[:100],
            "time": elapsed,
        }
    except httpx.HTTPError as e:
        return {
            "order_num": order_num,
            "success": False,
            "error": str(e)[:100],
            "time": round(time.time() - start_time, 3),
        }


# =============================================================================
# STAFF WORKFLOW
# =============================================================================

async def progress_order(
    client: httpx.AsyncClient,
    headers: dict[str, str],
    order_id: int,
) -> bool:
    """Move an order PENDING → SERVED, one step at a time."""
    for status in WORKFLOW:
        response = await client.put(
            f"{API_BASE_URL}/api/orders/{order_id}/status",
            json={"status": status},
            headers=headers,
        )
        if response.status_code != 200:
            print(f"   Order #{order_id} stuck before {status}: {response.text[:80]}")
            return False
        await asyncio.sleep(random.uniform(0, 0.05))
    return True


async def settle_table(
    client: httpx.AsyncClient,
    headers: dict[str, str],
    table_id: int,
) -> dict[str, Any]:
    method = random.choice(["cash", "card", "upi"])
    response = await client.post(
        f"{API_BASE_URL}/api/billing/pay/{table_id}",
        json={"method": method},
        headers=headers,
    )
    if response.status_code != 200:
        return {"table_id": table_id, "success": False, "error": response.text[:100]}
    bill = response.json()["data"]["bill"] or {}
    return {
        "table_id": table_id,
        "success": True,
        "method": method,
        "grand_total": bill.get("grand_total", 0.0),
    }


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(num_orders: int = TOTAL_ORDERS, skip_payment: bool = False) -> dict[str, Any]:
    print("=" * 70)
    print("RUSH HOUR SIMULATION")
    print("=" * 70)
    print(f"Total Orders: {num_orders}")
    print(f"Target: {API_BASE_URL}")
    print(f"Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient(timeout=30.0) as client:
        kitchen = await login(client, "chef")
        cashier = await login(client, "cashier")

        menu = (await client.get(f"{API_BASE_URL}/api/menu", params={"available_only": True})).json()["data"]
        tables = (await client.get(f"{API_BASE_URL}/api/tables", headers=kitchen)).json()["data"]
        open_tables = [t for t in tables if t["status"] != "maintenance"]
        if not menu or not open_tables:
            print("Nothing to order from: run scripts/seed.py first")
            return {"total": 0, "successful": 0, "failed": 0}

        print("\nFiring guest orders...\n")
        results = await asyncio.gather(*(
            send_guest_order(client, i + 1, random.choice(open_tables)["table_number"], menu)
            for i in range(num_orders)
        ))
        successful = [r for r in results if r["success"]]
        failed = [r for r in results if not r["success"]]

        print("Kitchen working through the queue...\n")
        progressed = await asyncio.gather(*(
            progress_order(client, kitchen, r["order_id"]) for r in successful
        ))

        payments = []
        if not skip_payment:
            print("Settling tables...\n")
            table_ids = sorted({r["table_id"] for r in successful})
            payments = await asyncio.gather(*(
                settle_table(client, cashier, table_id) for table_id in table_ids
            ))

    total_time = round(time.time() - start_time, 2)

    print("=" * 70)
    print("SIMULATION RESULTS")
    print("=" * 70)
    print(f"\nPlaced: {len(successful)}/{num_orders}")
    print(f"Failed: {len(failed)}/{num_orders}")
    print(f"Served: {sum(progressed)}/{len(successful)}")
    print(f"Total Time: {total_time}s")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        print("\nPerformance Metrics:")
        print(f"   Average Response: {avg_time}s")
        print(f"   Fastest: {min(r['time'] for r in successful)}s")
        print(f"   Slowest: {max(r['time'] for r in successful)}s")

    if payments:
        paid = [p for p in payments if p["success"]]
        revenue = sum(p["grand_total"] for p in paid)
        print(f"\nTables settled: {len(paid)}/{len(payments)}")
        print(f"   Revenue: {revenue:.2f}")

    if failed:
        print("\nFailed Order Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Order #{f['order_num']}: {f.get('error', 'Unknown error')}")

    print("=" * 70)

    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
        "results": results,
    }


async def test_single_flows() -> bool:
    """Pre-flight: the service is up and the demo accounts exist."""
    async with httpx.AsyncClient() as client:
        print("\nHealth Check...")
        response = await client.get(f"{API_BASE_URL}/health")
        if response.status_code != 200:
            print(f"   Failed: {response.text}")
            return False
        data = response.json()
        print(f"   Status: {data.get('status')}")
        print(f"   Database: {data.get('database')}")
        print(f"   Redis: {data.get('redis')}")

        print("\nStaff Login...")
        try:
            await login(client, "chef")
        except httpx.HTTPStatusError as e:
            print(f"   Failed: {e.response.text[:100]}")
            return False
        print("   OK")
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Rush Hour Simulation Script")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--no-payment", action="store_true", help="Leave tables unpaid")
    parser.add_argument("--skip-tests", action="store_true", help="Skip pre-flight checks")
    args = parser.parse_args()

    if not args.skip_tests and not asyncio.run(test_single_flows()):
        print("\nPre-flight checks failed. Is the API running and seeded?")
        sys.exit(1)

    asyncio.run(run_simulation(args.orders, skip_payment=args.no_payment))
