"""
Dining Room Simulation Script

Simulates a busy dining room: many tables browse the menu, order, pay,
call servers and leave reviews concurrently while a kitchen loop pushes
orders through the workflow.
Run from project root: python scripts/simulate.py --restaurant-id <id>

Version: 1.0.0
"""

import asyncio
import sys
import os
import random
import time
import argparse
from datetime import datetime
from typing import Any, Optional

import httpx
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tableside.client import TableOrderingClient, TableOrderingError  # noqa: E402

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_TABLES = 20

FIRST_NAMES = ["John", "Jane", "Mike", "Sarah", "Tom", "Emma", "David", "Lisa", "Chris", "Amy"]
SERVER_MESSAGES = [None, "Need more water", "Can we get the check?", "Extra napkins please"]
REVIEW_COMMENTS = [
    "Great food and quick service!",
    "Pizza was a bit cold but the staff fixed it.",
    "Loved ordering from the table, no waiting.",
    "Decent food, would come back.",
]
SAMPLE_MENU = [
    {
        "name": "Margherita Pizza",
        "description": "Fresh mozzarella, tomato sauce, basil",
        "price": "14.99",
        "category": "pizza",
        "allergens": ["gluten", "dairy"],
        "is_vegetarian": True,
        "customizations": [{
            "name": "Crust Type",
            "type": "single",
            "required": True,
            "options": [{"name": "Thin", "price": "0"}, {"name": "Thick", "price": "1.50"}],
        }],
    },
    {"name": "Caesar Salad", "description": "Romaine, parmesan, croutons", "price": "8.99", "category": "salads"},
    {"name": "Garlic Bread", "description": "Toasted with herb butter", "price": "5.99", "category": "sides"},
    {"name": "Tiramisu", "description": "Espresso soaked ladyfingers", "price": "7.99", "category": "desserts"},
    {"name": "Sparkling Water", "description": "500ml bottle", "price": "3.49", "category": "drinks"},
]


# =============================================================================
# SETUP
# =============================================================================

async def create_demo_restaurant(client: httpx.AsyncClient, num_tables: int) -> str:
    """Create a restaurant with tables T1..Tn and load the sample menu through the bulk endpoint."""
    response = await client.post(
        f"{API_BASE_URL}/restaurants",
        json={"name": f"Simulation Bistro {datetime.now():%H%M%S}", "tax_rate": "0.08"},
    )
    response.raise_for_status()
    restaurant_id = response.json()["data"]["id"]

    for table_num in range(1, num_tables + 1):
        response = await client.post(
            f"{API_BASE_URL}/restaurants/{restaurant_id}/tables",
            json={"table_number": f"T{table_num}", "capacity": random.choice([2, 4, 6])},
        )
        response.raise_for_status()

    response = await client.post(
        f"{API_BASE_URL}/restaurants/{restaurant_id}/menu/bulk-upload",
        json={"items": SAMPLE_MENU},
    )
    response.raise_for_status()
    return restaurant_id


def build_cart(menu: dict[str, Any]) -> list[dict[str, Any]]:
    """Pick a random cart, choosing an option for every required group."""
    items = [item for entries in menu["categories"].values() for item in entries]
    cart = []
    for item in random.sample(items, k=min(len(items), random.randint(1, 3))):
        selections = {}
        for group in item["customizations"]:
            if group.get("required") and group.get("options"):
                selections[group["name"]] = random.choice(group["options"])["name"]
        cart.append({
            "menu_item_id": item["id"],
            "quantity": random.randint(1, 3),
            "selections": selections,
        })
    return cart


# =============================================================================
# TABLE SIMULATION
# =============================================================================

async def simulate_table(restaurant_id: str, table_num: int) -> dict[str, Any]:
    """One party at one table: order, pay, maybe call a server, maybe review."""
    table_id = f"T{table_num}"
    start_time = time.time()
    result: dict[str, Any] = {"table": table_id, "success": False}

    async with TableOrderingClient(API_BASE_URL, restaurant_id, table_id, timeout=30.0) as table:
        try:
            menu = await table.get_menu()
            order = await table.create_order(
                build_cart(menu), customer_name=random.choice(FIRST_NAMES)
            )
            result["order_id"] = order["id"]
            result["total"] = float(order["total"])

            await table.create_payment_intent(order["id"])
            try:
                paid = await table.confirm_payment(order["id"])
                result["paid"] = paid["payment_status"] == "completed"
            except TableOrderingError as e:
                # Declines are expected in mock mode
                result["paid"] = False
                result["decline"] = e.detail

            if random.random() < 0.3:
                await table.call_server(random.choice(SERVER_MESSAGES))
                result["called_server"] = True

            if random.random() < 0.5:
                await table.submit_review(
                    random.choice(FIRST_NAMES), random.randint(3, 5), random.choice(REVIEW_COMMENTS)
                )
                result["reviewed"] = True

            result["success"] = True
        except TableOrderingError as e:
            result["error"] = str(e)[:100]

    result["time"] = round(time.time() - start_time, 3)
    return result


async def run_kitchen(restaurant_id: str, stop_event: asyncio.Event, interval: float = 1.0) -> int:
    """Advance every open order one step per pass until told to stop."""
    advanced = 0
    async with httpx.AsyncClient(base_url=API_BASE_URL, timeout=30.0) as client:
        while not stop_event.is_set():
            response = await client.get(f"/restaurants/{restaurant_id}/orders")
            for order in response.json().get("data", []):
                if order["status"] in ("served", "completed", "cancelled"):
                    continue
                step = await client.post(f"/orders/{order['id']}/advance")
                if step.status_code == 200:
                    advanced += 1
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue
    return advanced


async def watch_one_order(restaurant_id: str, order_id: str, deadline: float) -> None:
    async with TableOrderingClient(API_BASE_URL, restaurant_id, "watch") as table:
        async for order in table.watch_order(order_id, interval=1.0, deadline=deadline):
            print(f"   👀 Order {order_id[:8]}: {order['status']} / {order['payment_status']}")


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(
    restaurant_id: Optional[str] = None,
    num_tables: int = TOTAL_TABLES,
    with_kitchen: bool = True,
) -> dict[str, Any]:
    print("=" * 70)
    print("🍽️  DINING ROOM SIMULATION")
    print("=" * 70)
    print(f"📋 Tables: {num_tables}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    if restaurant_id is None:
        async with httpx.AsyncClient() as client:
            restaurant_id = await create_demo_restaurant(client, num_tables)
        print(f"\n🏠 Created demo restaurant {restaurant_id}")

    stop_event = asyncio.Event()
    kitchen = asyncio.create_task(run_kitchen(restaurant_id, stop_event)) if with_kitchen else None

    start_time = time.time()
    results = await asyncio.gather(*[
        simulate_table(restaurant_id, i + 1) for i in range(num_tables)
    ])

    placed = [r for r in results if r.get("order_id")]
    if placed and with_kitchen:
        print("\n👨‍🍳 Watching one order through the kitchen...\n")
        await watch_one_order(restaurant_id, placed[0]["order_id"], deadline=15.0)

    stop_event.set()
    advanced = await kitchen if kitchen else 0
    total_time = round(time.time() - start_time, 2)

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]
    paid = [r for r in successful if r.get("paid")]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"\n✅ Tables served: {len(successful)}/{num_tables}")
    print(f"💳 Paid: {len(paid)}  Declined: {len(successful) - len(paid)}")
    print(f"🔔 Server calls: {len([r for r in successful if r.get('called_server')])}")
    print(f"⭐ Reviews: {len([r for r in successful if r.get('reviewed')])}")
    print(f"👨‍🍳 Kitchen steps: {advanced}")
    print(f"⏱️  Total Time: {total_time}s")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        revenue = sum(r["total"] for r in paid)
        print(f"\n📈 Average table flow: {avg_time}s")
        print(f"   💰 Paid Revenue: ${revenue:.2f}")

    if failed:
        print(f"\n⚠️  Failed Tables (showing first 5):")
        for f in failed[:5]:
            print(f"   {f['table']}: {f.get('error', 'Unknown error')}")

    print("=" * 70)
    return {
        "restaurant_id": restaurant_id,
        "total": num_tables,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
        "results": results,
    }


async def check_health() -> bool:
    async with httpx.AsyncClient() as client:
        print("\n🧪 Health Check...")
        try:
            response = await client.get(f"{API_BASE_URL}/health")
        except httpx.HTTPError as e:
            print(f"   ❌ API not reachable: {e}")
            return False
        data = response.json()
        print(f"   Status: {data.get('status')}")
        print(f"   Database: {data.get('database')}")
        print(f"   Redis: {data.get('redis')}")
        return response.status_code == 200


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Dining Room Simulation Script")
    parser.add_argument("--restaurant-id", help="Existing restaurant (default: create a demo one)")
    parser.add_argument("--tables", type=int, default=TOTAL_TABLES, help="Number of tables")
    parser.add_argument("--no-kitchen", action="store_true", help="Do not advance orders")
    parser.add_argument("--url", default=API_BASE_URL, help="API base URL")
    args = parser.parse_args()

    API_BASE_URL = args.url.rstrip("/")

    if not asyncio.run(check_health()):
        print("\n❌ Pre-flight check failed. Start the API first.")
        sys.exit(1)

    asyncio.run(run_simulation(args.restaurant_id, args.tables, not args.no_kitchen))
