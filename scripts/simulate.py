"""
Concurrency Simulation Script

Fires many web orders at one branch at the same time and checks that every
accepted order got its own order number. Runs against the development
server seeded with the demo menu (branch "branch-centro").

Run from project root: python scripts/simulate.py --orders 100
"""

import argparse
import asyncio
import random
import sys
import time
import uuid
from collections import Counter
from datetime import datetime
from typing import Any

import httpx

# Configuration
API_BASE_URL = "http://localhost:8001"
BRANCH_ID = "branch-centro"
TOTAL_ORDERS = 50

# Sample data for random orders
FIRST_NAMES = ["Ana", "Bruno", "Carla", "Diego", "Elena", "Facundo", "Gabriela", "Hugo", "Ines", "Juan"]
LAST_NAMES = ["Pérez", "Gómez", "Rodríguez", "Fernández", "López", "Díaz", "Martínez", "Sosa"]
STREETS = ["San Martín", "Colón", "Vélez Sarsfield", "Dean Funes", "Chacabuco", "Obispo Trejo"]
MENU_LINES = [
    {"item_id": "burger-classic"},
    {"item_id": "burger-classic", "extras": [{"name": "Cheddar"}]},
    {"item_id": "burger-classic", "extras": [{"name": "Bacon", "quantity": 2}], "removals": ["Onion"]},
    {"item_id": "burger-classic", "exclude_promotions": True},
    {"item_id": "fries"},
    {"item_id": "soda"},
]


def generate_random_lines() -> list[dict]:
    """Random cart; burgers keep most carts above the delivery minimum."""
    lines = [dict(random.choice(MENU_LINES[:4]), quantity=random.randint(1, 2))]
    for _ in range(random.randint(0, 3)):
        lines.append(dict(random.choice(MENU_LINES), quantity=random.randint(1, 3)))
    return lines


def generate_order_payload() -> dict[str, Any]:
    """Generate payload for the /api/orders endpoint."""
    service_type = random.choice(["pickup", "delivery"])
    payload = {
        "branch_id": BRANCH_ID,
        "service_type": service_type,
        "customer_name": f"{random.choice(FIRST_NAMES)} {random.choice(LAST_NAMES)}",
        "customer_phone": f"351-{random.randint(100, 999)}-{random.randint(1000, 9999)}",
        "payment_method": random.choice(["cash", "mercadopago"]),
        "idempotency_key": str(uuid.uuid4()),
        "lines": generate_random_lines(),
    }
    if service_type == "delivery":
        payload["delivery_address"] = f"{random.choice(STREETS)} {random.randint(1, 2500)}"
        if random.random() < 0.5:
            # Within a few kilometres of the demo branch
            payload["delivery_lat"] = -31.4201 + random.uniform(-0.03, 0.03)
            payload["delivery_lng"] = -64.1888 + random.uniform(-0.03, 0.03)
            payload["delivery_cost_estimate"] = 1800
    return payload


async def send_order(client: httpx.AsyncClient, order_num: int) -> dict[str, Any]:
    """Send one order and record the outcome."""
    payload = generate_order_payload()
    start_time = time.time()

    try:
        response = await client.post(f"{API_BASE_URL}/api/orders", json=payload, timeout=30.0)
        elapsed = round(time.time() - start_time, 3)

        if response.status_code == 200:
            data = response.json()
            return {
                "order_num": order_num,
                "success": True,
                "order_number": data.get("order_number"),
                "tracking_code": data.get("tracking_code"),
                "status": data.get("status"),
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


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(num_orders: int = TOTAL_ORDERS) -> dict[str, Any]:
    """
    Fire ``num_orders`` concurrent orders and verify order numbering.

    Args:
        num_orders: Number of orders to submit at once
    """
    print("=" * 70)
    print("🔥 CONCURRENCY SIMULATION - ORDER NUMBERING")
    print("=" * 70)
    print(f"📋 Total Orders: {num_orders}")
    print(f"🎯 Target: {API_BASE_URL} (branch {BRANCH_ID})")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()
    async with httpx.AsyncClient() as client:
        results = await asyncio.gather(*[send_order(client, i + 1) for i in range(num_orders)])
    total_time = round(time.time() - start_time, 2)

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]
    numbers = Counter(r["order_number"] for r in successful)
    duplicates = {number: count for number, count in numbers.items() if count > 1}

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"\n✅ Accepted Orders: {len(successful)}/{num_orders}")
    print(f"❌ Rejected Orders: {len(failed)}/{num_orders}")
    print(f"⏱️  Total Time: {total_time}s")

    if successful:
        times = [r["time"] for r in successful]
        print(f"\n📈 Performance Metrics:")
        print(f"   Average Response: {round(sum(times) / len(times), 3)}s")
        print(f"   Fastest: {min(times)}s")
        print(f"   Slowest: {max(times)}s")
        print(f"   Order numbers: {min(numbers)} - {max(numbers)}")

    if duplicates:
        print(f"\n🚨 DUPLICATE ORDER NUMBERS: {duplicates}")
    else:
        print("\n✅ Every accepted order has a distinct order number")

    if failed:
        print(f"\n⚠️  Rejection Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Request #{f['order_num']}: {f.get('error', 'Unknown error')}")

    print("=" * 70)

    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "duplicates": duplicates,
        "total_time": total_time,
        "results": results,
    }


async def preflight() -> bool:
    """Health check and one tracked order before the burst."""
    async with httpx.AsyncClient() as client:
        print("\n1️⃣ Health Check...")
        response = await client.get(f"{API_BASE_URL}/health")
        if response.status_code != 200:
            print(f"   ❌ Failed: {response.text}")
            return False
        data = response.json()
        print(f"   ✅ Status: {data.get('status')}")
        print(f"   Order store: {data.get('order_store')}")
        print(f"   Geo service: {data.get('geo_service')}")

        print("\n2️⃣ Single Order + Tracking...")
        response = await client.post(f"{API_BASE_URL}/api/orders", json=generate_order_payload())
        if response.status_code != 200:
            print(f"   ⚠️ Response: {response.text[:100]}")
            return True
        created = response.json()
        print(f"   ✅ Order #{created['order_number']} ({created['status']})")

        response = await client.get(f"{API_BASE_URL}/api/orders/track/{created['tracking_code']}")
        if response.status_code == 200:
            print(f"   ✅ Tracked: total ${response.json().get('total')}")
        else:
            print(f"   ❌ Tracking failed: {response.text[:100]}")
            return False
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Concurrency Simulation Script")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--skip-preflight", action="store_true", help="Skip the preflight checks")
    args = parser.parse_args()

    if not args.skip_preflight:
        if not asyncio.run(preflight()):
            print("\n❌ Preflight failed. Is the server running?")
            sys.exit(1)

    summary = asyncio.run(run_simulation(num_orders=args.orders))
    sys.exit(1 if summary["duplicates"] else 0)
