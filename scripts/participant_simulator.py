#!/usr/bin/env python3
"""
Community Grid Participant Simulator

Simulates participants walking around the map:
- One WebSocket connection per participant on /ws/grid
- Random-walk position fixes relayed as `position_fix` messages
- Occasional geolocation errors relayed as `position_error` messages
- Final claim count and statistics read over the REST API
"""

import asyncio
import json
import logging
import random
import sys
import traceback
from typing import Any, Dict, Optional, Tuple

import aiohttp
import websockets
from websockets.exceptions import ConnectionClosedError, WebSocketException
import argparse

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("participant_simulator")


class ParticipantSimulator:
    """Drives a set of simulated participants against one server."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        start_lng: float = 85.3072,
        start_lat: float = 27.7042,
        step_degrees: float = 0.0002,
        error_rate: float = 0.0,
        max_retries: int = 3,
        seed: Optional[int] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.ws_base_url = base_url.replace('http://', 'ws://').replace('https://', 'wss://').rstrip('/')
        self.start_lng = start_lng
        self.start_lat = start_lat
        self.step_degrees = step_degrees
        self.error_rate = error_rate
        self.max_retries = max_retries
        self.rng = random.Random(seed)
        self.session: Optional[aiohttp.ClientSession] = None
        self.results: Dict[str, Dict[str, int]] = {}
        logger.info(f"Participant simulator initialized for {self.base_url}")

    async def __aenter__(self):
        self.session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=30))
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.session:
            await self.session.close()

    async def get_json(self, endpoint: str) -> Dict[str, Any]:
        """GET with retries and exponential backoff."""
        url = f"{self.base_url}{endpoint}"
        for attempt in range(self.max_retries):
            try:
                async with self.session.get(url) as response:
                    response.raise_for_status()
                    return await response.json()
            except aiohttp.ClientError as e:
                if attempt == self.max_retries - 1:
                    logger.error(f"GET {url} failed after {self.max_retries} attempts: {e}")
                    raise
                wait_time = 2 ** attempt
                logger.warning(f"GET {url} attempt {attempt + 1} failed: {e}. Retrying in {wait_time}s...")
                await asyncio.sleep(wait_time)

    def _next_position(self, lng: float, lat: float) -> Tuple[float, float]:
        return (
            lng + self.rng.uniform(-self.step_degrees, self.step_degrees),
            lat + self.rng.uniform(-self.step_degrees, self.step_degrees),
        )

    async def _listen(self, name: str, websocket) -> None:
        counters = self.results[name]
        async for raw in websocket:
            try:
                message = json.loads(raw)
            except json.JSONDecodeError as e:
                logger.warning(f"[{name}] Invalid JSON received: {e}")
                continue
            message_type = message.get("type")
            if message_type == "claim_result":
                status = message.get("status", "unknown")
                counters[status] = counters.get(status, 0) + 1
            elif message_type == "claim_count":
                counters["last_count"] = message.get("count", 0)
            elif message_type == "position_status" and message.get("status"):
                logger.info(f"[{name}] status: {message['status']['message']}")

    async def run_participant(self, name: str, steps: int, interval: float) -> bool:
        ws_url = f"{self.ws_base_url}/ws/grid"
        self.results[name] = {}
        lng, lat = self.start_lng, self.start_lat
        try:
            async with websockets.connect(ws_url) as websocket:
                logger.info(f"[{name}] connected to {ws_url}")
                listener = asyncio.create_task(self._listen(name, websocket))
                for _ in range(steps):
                    if self.rng.random() < self.error_rate:
                        await websocket.send(json.dumps({"type": "position_error", "code": self.rng.choice([1, 2, 3])}))
                    else:
                        lng, lat = self._next_position(lng, lat)
                        await websocket.send(json.dumps({"type": "position_fix", "lng": lng, "lat": lat}))
                    await asyncio.sleep(interval)
                # let the last replies arrive
                await asyncio.sleep(max(interval, 0.5))
                listener.cancel()
                await asyncio.gather(listener, return_exceptions=True)
            return True
        except ConnectionClosedError:
            logger.warning(f"[{name}] connection closed by server")
            return False
        except (WebSocketException, OSError) as e:
            logger.error(f"[{name}] WebSocket error: {e}")
            return False

    async def run(self, participants: int, steps: int, interval: float) -> Dict[str, Any]:
        health = await self.get_json("/health")
        logger.info(f"Server health: {health.get('status')} (replica {health.get('replica_id')})")

        outcomes = await asyncio.gather(*(
            self.run_participant(f"participant-{index}", steps, interval)
            for index in range(participants)
        ))
        count = await self.get_json("/api/v1/claims/count")
        stats = await self.get_json("/api/v1/claims/stats")
        return {
            "connected": sum(1 for ok in outcomes if ok),
            "participants": self.results,
            "claim_count": count["count"],
            "statistics": stats["statistics"],
        }


async def main():
    parser = argparse.ArgumentParser(description="Community Grid Participant Simulator")
    parser.add_argument("--url", default="http://localhost:8000", help="Server URL")
    parser.add_argument("--participants", type=int, default=3, help="Number of simulated participants")
    parser.add_argument("--steps", type=int, default=20, help="Position fixes per participant")
    parser.add_argument("--interval", type=float, default=0.2, help="Seconds between fixes")
    parser.add_argument("--start-lng", type=float, default=85.3072)
    parser.add_argument("--start-lat", type=float, default=27.7042)
    parser.add_argument("--step", type=float, default=0.0002, help="Max random-walk step in degrees")
    parser.add_argument("--error-rate", type=float, default=0.05, help="Probability of a geolocation error per step")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        async with ParticipantSimulator(
            base_url=args.url,
            start_lng=args.start_lng,
            start_lat=args.start_lat,
            step_degrees=args.step,
            error_rate=args.error_rate,
            seed=args.seed,
        ) as simulator:
            results = await simulator.run(args.participants, args.steps, args.interval)
    except KeyboardInterrupt:
        logger.info("Simulation interrupted by user")
        return
    except Exception as e:
        logger.error(f"Simulation failed: {e}")
        if args.verbose:
            logger.error(traceback.format_exc())
        sys.exit(1)

    print("\n" + "=" * 60)
    print("COMMUNITY GRID SIMULATION RESULTS")
    print("=" * 60)
    for name, counters in results["participants"].items():
        print(f"{name:<20} {counters}")
    print("-" * 60)
    print(f"Connected participants: {results['connected']}/{args.participants}")
    print(f"TOTAL BLOCKS FILLED: {results['claim_count']}")
    print(f"Statistics: {results['statistics']}")
    print("=" * 60)

    sys.exit(0 if results["connected"] == args.participants else 1)


if __name__ == "__main__":
    asyncio.run(main())
