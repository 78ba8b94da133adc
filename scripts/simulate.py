"""
Checkout Rush Simulation

Fires many concurrent checkouts at a running API to exercise atomic
order creation, then settles one table session and prints the results.
Run from project root: python scripts/simulate.py --orders 50

The menu must already contain the ids passed with --menu-ids.
"""

import argparse
import asyncio
import random
import sys
import time
import uuid
from datetime import datetime
from typing import Any

import httpx

API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 50
TABLE_COUNT = 8

FIRST_NAMES = ["Budi", "Siti", "Andi", "Dewi", "Rina", "Agus", "Putri", "Joko", "Maya", "Eko"]
NOTES = [None, "No ice", "Extra spicy", "Less sugar", "Separate plates"]


def generate_random_customer() -> dict[str, str]:
    """Generate random customer info."""
    name = random.choice(FIRST_NAMES)
    return {
        "customer_name": name,
        "customer_phone": f"08{random.randint(1000000000, 9999999999)}",
        "customer_email": f"{name.lower()}{random.randint(1, 999)}@example.com",
    }


def generate_random_items(menu_ids: list[int]) -> list[dict]:
    """Generate random basket lines."""
    return [
        {"menu_id": random.choice(menu_ids), "qty": random.randint(1, 3)}
        for _ in range(random.randint(1, 4))
    ]


def generate_checkout_payload(menu_ids: list[int], table: int, token: str) -> dict[str, Any]:
    """Generate payload for /api/orders endpoint."""
    return {
        "table_number": table,
        "customer_token": token,
        **generate_random_customer(),
        "customer_note": random.choice(NOTES),
        "items": generate_random_items(menu_ids),
    }


async def send_checkout(
    client: httpx.AsyncClient,
    base_url: str,
    order_num: int,
    payload: dict[str, Any],
) -> dict[str, Any]:
    """Send one checkout and time it."""
    start_time = time.time()

    try:
        response = await client.post(f"{base_url}/api/orders", json=payload, timeout=30.0)
        elapsed = round(time.time() - start_time, 3)

        if response.status_code == 201:
            data = response.json()
            return {
                "order_num": order_num,
                "success": True,
                "order_code": data["order_code"],
                "total": data["total"],
                "table": payload["table_number"],
                "token": payload["customer_token"],
                "time": elapsed,
            }
        return {
            "order_num": order_num,
            "success": False,
            "error": f"{response.status_code} {response.text[:100]}",
            "time": elapsed,
        }
    except httpx.HTTPError as e:
        return {
            "order_num": order_num,
            "success": False,
            "error": str(e)[:100],
            "time": round(time.time() - start_time, 3),
        }


async def run_simulation(base_url: str, num_orders: int, menu_ids: list[int]) -> dict[str, Any]:
    """
    Run the checkout rush.

    Args:
        base_url: API root
        num_orders: Number of concurrent checkouts
        menu_ids: Menu ids to build baskets from
    """
    print("=" * 70)
    print("🔥 CHECKOUT RUSH - HIGH CONCURRENCY TEST")
    print("=" * 70)
    print(f"📋 Total Orders: {num_orders}")
    print(f"🎯 Target: {base_url}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    # A handful of sessions per table so some sessions hold several orders
    sessions = [
        (table, uuid.uuid4().hex[:12])
        for table in range(1, TABLE_COUNT + 1)
        for _ in range(2)
    ]

    start_time = time.time()
    async with httpx.AsyncClient() as client:
        tasks = []
        for i in range(num_orders):
            table, token = random.choice(sessions)
            payload = generate_checkout_payload(menu_ids, table, token)
            tasks.append(send_checkout(client, base_url, i + 1, payload))
        results = await asyncio.gather(*tasks)

        successful = [r for r in results if r["success"]]
        failed = [r for r in results if not r["success"]]

        paid = 0
        if successful:
            first = successful[0]
            response = await client.patch(
                f"{base_url}/api/orders/pay",
                json={"table_number": first["table"], "customer_token": first["token"]},
            )
            if response.status_code == 200:
                paid = response.json()["orders_paid"]

    total_time = round(time.time() - start_time, 2)
    codes = [r["order_code"] for r in successful]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"\n✅ Successful Orders: {len(successful)}/{num_orders}")
    print(f"❌ Failed Orders: {len(failed)}/{num_orders}")
    print(f"🔑 Unique Order Codes: {len(set(codes))}/{len(codes)}")
    print(f"💳 Orders settled for first session: {paid}")
    print(f"⏱️  Total Time: {total_time}s")

    if successful:
        times = [r["time"] for r in successful]
        print("\n📈 Performance Metrics:")
        print(f"   Average Response: {round(sum(times) / len(times), 3)}s")
        print(f"   Fastest: {min(times)}s")
        print(f"   Slowest: {max(times)}s")
        print(f"   💰 Total Billed: {sum(r['total'] for r in successful)}")

    if failed:
        print("\n⚠️  Failed Order Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Order #{f['order_num']}: {f.get('error', 'Unknown error')}")

    print("=" * 70)

    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "paid": paid,
        "total_time": total_time,
    }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Checkout Rush Simulation")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--base-url", default=API_BASE_URL, help="API root URL")
    parser.add_argument(
        "--menu-ids",
        default="1,2,3,4",
        help="Comma-separated menu ids to order from",
    )
    args = parser.parse_args()

    menu_ids = [int(m) for m in args.menu_ids.split(",") if m.strip()]
    if not menu_ids:
        print("❌ At least one menu id is required")
        sys.exit(1)

    summary = asyncio.run(run_simulation(args.base_url, args.orders, menu_ids))
    sys.exit(0 if summary["failed"] == 0 else 1)
