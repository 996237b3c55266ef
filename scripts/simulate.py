"""
Chaos Simulation Script

Drives many chat conversations at once against a running API to check
that sessions, carts and placements hold up under concurrency.
Run from project root: python scripts/simulate.py

Each simulated device walks the full flow:
    init -> 1 -> item numbers -> 0 -> 99 -> 2 -> payment initialize -> verify

With --double-submit every device sends its "2" (pay now) twice in
parallel; exactly one order per device must come out of it.

Author: Khalil_Bannouri
Version: 1.0.0
"""

import asyncio
import sys
import random
import time
import argparse
from datetime import datetime
from typing import Any, Optional

import httpx

# Configuration
API_BASE_URL = "http://localhost:3000"
TOTAL_DEVICES = 50
MENU_ITEM_IDS = list(range(1, 11))  # Default seeded menu


async def send(
    client: httpx.AsyncClient,
    device_id: str,
    message: str,
) -> dict[str, Any]:
    response = await client.post(
        f"{API_BASE_URL}/api/chat/message",
        json={"deviceId": device_id, "message": message},
        timeout=30.0,
    )
    response.raise_for_status()
    return response.json()


async def pay(
    client: httpx.AsyncClient,
    device_id: str,
    order_id: int,
) -> Optional[str]:
    """Initialize and immediately verify a mock checkout. Returns the reference."""
    response = await client.post(
        f"{API_BASE_URL}/api/payment/initialize",
        json={
            "orderId": order_id,
            "email": f"{device_id[:8]}@example.com",
            "deviceId": device_id,
        },
        timeout=30.0,
    )
    response.raise_for_status()
    reference = response.json()["reference"]

    response = await client.get(
        f"{API_BASE_URL}/api/payment/verify/{reference}",
        timeout=30.0,
    )
    response.raise_for_status()
    return reference if response.json().get("success") else None


# =============================================================================
# CONVERSATION SIMULATION
# =============================================================================

async def run_conversation(
    client: httpx.AsyncClient,
    device_num: int,
    double_submit: bool = False,
) -> dict[str, Any]:
    """Walk one device from greeting to a paid order."""
    start_time = time.time()

    try:
        response = await client.post(f"{API_BASE_URL}/api/chat/init", json={}, timeout=30.0)
        response.raise_for_status()
        device_id = response.json()["deviceId"]

        await send(client, device_id, "1")
        for _ in range(random.randint(1, 4)):
            await send(client, device_id, str(random.choice(MENU_ITEM_IDS)))
        await send(client, device_id, "0")
        await send(client, device_id, "99")

        if double_submit:
            replies = await asyncio.gather(
                send(client, device_id, "2"),
                send(client, device_id, "2"),
            )
        else:
            replies = [await send(client, device_id, "2")]

        placed = [r for r in replies if r.get("requiresPayment")]
        if not placed:
            raise RuntimeError(f"No order placed: {replies[0]['message'][:60]}")

        order = placed[0]
        reference = await pay(client, device_id, order["orderId"])

        response = await client.get(
            f"{API_BASE_URL}/api/orders",
            params={"deviceId": device_id},
            timeout=30.0,
        )
        response.raise_for_status()
        orders = response.json()["orders"]

        elapsed = round(time.time() - start_time, 3)
        return {
            "device_num": device_num,
            "success": reference is not None and len(orders) == 1,
            "order_id": order["orderId"],
            "total": float(order["amount"]),
            "orders_for_device": len(orders),
            "paid": reference is not None,
            "time": elapsed,
        }
    except Exception as e:
        elapsed = round(time.time() - start_time, 3)
        return {
            "device_num": device_num,
            "success": False,
            "error": str(e)[:100],
            "time": elapsed,
        }


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(
    num_devices: int = TOTAL_DEVICES,
    double_submit: bool = False,
) -> dict[str, Any]:
    """
    Run the chaos simulation.

    Args:
        num_devices: Number of concurrent conversations
        double_submit: Send the placement command twice per device
    """
    print("=" * 70)
    print("🔥 CHAOS SIMULATION - CONCURRENT CONVERSATIONS")
    print("=" * 70)
    print(f"📋 Devices: {num_devices}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"🔁 Double submit: {double_submit}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient() as client:
        tasks = [
            run_conversation(client, i + 1, double_submit=double_submit)
            for i in range(num_devices)
        ]
        results = await asyncio.gather(*tasks)

    total_time = round(time.time() - start_time, 2)

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]
    duplicated = [r for r in results if r.get("orders_for_device", 0) > 1]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)

    print(f"\n✅ Completed Conversations: {len(successful)}/{num_devices}")
    print(f"❌ Failed Conversations: {len(failed)}/{num_devices}")
    print(f"⚠️  Devices With Duplicate Orders: {len(duplicated)}")
    print(f"⏱️  Total Time: {total_time}s")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        total_revenue = sum(r.get("total", 0) for r in successful)

        print("\n📈 Performance Metrics:")
        print(f"   Average Conversation: {avg_time}s")
        print(f"   Fastest: {min(r['time'] for r in successful)}s")
        print(f"   Slowest: {max(r['time'] for r in successful)}s")
        print(f"   💰 Total Revenue: {total_revenue:,.2f}")

    if failed:
        print("\n⚠️  Failure Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Device #{f['device_num']}: {f.get('error', 'duplicate or unpaid order')}")

    print("=" * 70)

    return {
        "total": num_devices,
        "successful": len(successful),
        "failed": len(failed),
        "duplicated": len(duplicated),
        "total_time": total_time,
        "results": results,
    }


async def check_health() -> bool:
    """Pre-flight check before the simulation."""
    async with httpx.AsyncClient() as client:
        print("\n1️⃣ Health Check...")
        try:
            response = await client.get(f"{API_BASE_URL}/health", timeout=10.0)
        except httpx.HTTPError as e:
            print(f"   ❌ Unreachable: {e}")
            return False

        if response.status_code != 200:
            print(f"   ❌ Failed: {response.text}")
            return False

        data = response.json()
        print(f"   ✅ Status: {data.get('status')}")
        print(f"   Database: {data.get('database')}")
        print(f"   Payment: {data.get('payment_service')}")
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Chaos Simulation Script")
    parser.add_argument("--devices", type=int, default=TOTAL_DEVICES, help="Number of devices")
    parser.add_argument("--double-submit", action="store_true", help="Send pay-now twice per device")
    parser.add_argument("--url", default=API_BASE_URL, help="API base URL")
    parser.add_argument("--skip-health", action="store_true", help="Skip the health check")
    args = parser.parse_args()

    API_BASE_URL = args.url.rstrip("/")

    if not args.skip_health and not asyncio.run(check_health()):
        print("\n❌ Pre-flight check failed. Is the API running?")
        sys.exit(1)

    summary = asyncio.run(
        run_simulation(num_devices=args.devices, double_submit=args.double_submit)
    )
    sys.exit(0 if summary["failed"] == 0 else 1)
