#!/usr/bin/env python3
"""FlowGuard sensor simulator.

Posts readings the way the field device does, at a fixed cadence, with
optional surges that push the rotation count over the DANGER threshold.

Usage:
    # One device reporting every 5 seconds for 2 minutes
    python -m tools.simulator.simulate --server http://localhost:8000 --duration 120

    # Force a sustained surge between 30s and 90s
    python -m tools.simulator.simulate --surge-start 30 --surge-end 90

    # Old firmware that sends short field names
    python -m tools.simulator.simulate --short-names
"""

from __future__ import annotations

import argparse
import asyncio
import json
import random
import time
from dataclasses import dataclass

import httpx


@dataclass
class SimDevice:
    lat: float
    lon: float
    pulses: int = 0
    rotations: int = 0
    sent: int = 0
    danger: int = 0
    errors: int = 0


def next_rotations(base: int, surging: bool) -> int:
    """Rotation count for one interval: quiet jitter, or a surge well above 120."""
    if surging:
        return random.randint(130, 220)
    return max(0, base + random.randint(-3, 3))


def make_payload(device: SimDevice, short_names: bool) -> dict:
    if short_names:
        return {"p": device.pulses, "r": device.rotations,
                "la": round(device.lat, 6), "lo": round(device.lon, 6)}
    return {"pulses": device.pulses, "rotations": device.rotations,
            "lat": round(device.lat, 6), "lon": round(device.lon, 6)}


async def run_device(client: httpx.AsyncClient, device: SimDevice, args: argparse.Namespace) -> None:
    start = time.monotonic()
    end_time = start + args.duration
    base = args.base_rotations

    while time.monotonic() < end_time:
        elapsed = time.monotonic() - start
        surging = args.surge_start <= elapsed < args.surge_end
        device.rotations = next_rotations(base, surging)
        device.pulses = device.rotations * args.pulses_per_rotation

        # GPS jitter around a fixed installation point
        device.lat += random.uniform(-0.00001, 0.00001)
        device.lon += random.uniform(-0.00001, 0.00001)

        try:
            resp = await client.post(
                f"{args.server}/api/update",
                content=json.dumps(make_payload(device, args.short_names)),
                headers={"content-type": "application/json"},
            )
            if resp.status_code == 200:
                device.sent += 1
                if resp.json().get("status") == "DANGER":
                    device.danger += 1
            else:
                device.errors += 1
        except httpx.RequestError:
            device.errors += 1

        await asyncio.sleep(args.interval)


async def run_simulation(args: argparse.Namespace) -> None:
    center_lat, center_lon = args.center
    device = SimDevice(lat=center_lat, lon=center_lon)

    print(f"Starting simulation: every {args.interval}s for {args.duration}s")
    print(f"  Location: {center_lat:.4f}, {center_lon:.4f}")
    print(f"  Surge window: {args.surge_start}s - {args.surge_end}s")
    print(f"  Server: {args.server}")
    print()

    async with httpx.AsyncClient(timeout=10.0) as client:
        await run_device(client, device, args)

        print("\nSimulation complete")
        print(f"  Readings sent: {device.sent}")
        print(f"  DANGER responses: {device.danger}")
        print(f"  Errors: {device.errors}")

        try:
            resp = await client.get(f"{args.server}/api/stats")
        except httpx.RequestError:
            return
        if resp.status_code == 200:
            stats = resp.json()
            print("\nServer stats:")
            print(f"  Readings received: {stats['readings_received']}")
            print(f"  History appended: {stats['history']['appended']}")
            print(f"  Alerts sent: {stats['alerts']['sent']}")
            print(f"  Alerts failed: {stats['alerts']['failed']}")


def main():
    parser = argparse.ArgumentParser(description="FlowGuard sensor simulator")
    parser.add_argument("--server", default="http://localhost:8000", help="Server URL")
    parser.add_argument("--duration", type=int, default=60, help="Simulation duration in seconds")
    parser.add_argument("--interval", type=float, default=5.0, help="Seconds between readings")
    parser.add_argument("--base-rotations", type=int, default=40, help="Quiet rotation count")
    parser.add_argument("--pulses-per-rotation", type=int, default=4)
    parser.add_argument("--surge-start", type=float, default=float("inf"),
                        help="Seconds after start when a surge begins")
    parser.add_argument("--surge-end", type=float, default=float("inf"),
                        help="Seconds after start when the surge ends")
    parser.add_argument("--center", type=str, default="19.0760,72.8777",
                        help="Device lat,lon")
    parser.add_argument("--short-names", action="store_true",
                        help="Send p/r/la/lo instead of long field names")

    args = parser.parse_args()

    lat, lon = args.center.split(",")
    args.center = (float(lat), float(lon))

    asyncio.run(run_simulation(args))


if __name__ == "__main__":
    main()
