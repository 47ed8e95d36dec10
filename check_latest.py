"""
Check a running backend: health, latest reading, devices.

Usage:
    python check_latest.py [BASE_URL]     (default: http://localhost:8000)
"""

import asyncio
import sys

import httpx


async def check_latest(base_url: str) -> int:
    async with httpx.AsyncClient(base_url=base_url, timeout=10.0) as client:
        print("Checking health...")
        try:
            response = await client.get("/health")
            print(f"Health: {response.status_code} {response.text}")
        except httpx.HTTPError as e:
            print(f"Health Error: {e}")
            return 1

        print("\nLatest reading:")
        response = await client.get("/latest-readings")
        if response.status_code == 404:
            print("  No readings found in database!")
        else:
            response.raise_for_status()
            data = response.json()
            for metric in ("ph", "turbidity", "temperature"):
                item = data[metric]
                print(f"  {metric}: {item['value']} {item.get('unit') or ''} ({item['status']}, range {item['range']})")
            print(f"  devices: {data['deviceStatus']}, last update {data['lastUpdate']}")

        print("\nDevices:")
        response = await client.get("/device-status")
        response.raise_for_status()
        for device in response.json():
            print(
                f"  #{device['id']} {device['name']}: {device['status']} "
                f"heartbeat={device['heartbeat']} signal={device['signal']} "
                f"freshness={device['freshnessMinutes']}min"
            )

        response = await client.get("/history", params={"limit": 1000})
        response.raise_for_status()
        print(f"\nReadings in history (up to 1000): {len(response.json())}")
    return 0


if __name__ == "__main__":
    url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"
    sys.exit(asyncio.run(check_latest(url)))
