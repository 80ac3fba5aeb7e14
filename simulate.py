#!/usr/bin/env python3
"""
Run a host and a few listeners in one process and watch them converge.

Usage:
    python simulate.py [--listeners 3] [--duration 20] [--max-drift 0.8] [--verbose]

Listeners get slightly wrong playback rates so drift builds up and has to be corrected.
"""

import argparse
import asyncio
import random
import sys

from backend import InMemoryBackend
from logging_config import get_logger, setup_logging
from media import format_time
from player import ManagedPlayer, simulated_player_factory
from session import RoomSession, SessionRoles, create_room

logger = get_logger("simulate")


def parse_args():
    parser = argparse.ArgumentParser(description="SyncStream drift correction simulation")
    parser.add_argument("--listeners", "-n", type=int, default=3)
    parser.add_argument("--duration", "-d", type=float, default=20.0, help="seconds to run")
    parser.add_argument("--media", "-m", default="", help="YouTube URL or id (demo video if empty)")
    parser.add_argument("--max-drift", type=float, default=0.8)
    parser.add_argument("--heartbeat-ms", type=int, default=2000)
    parser.add_argument("--tick-ms", type=int, default=1000)
    parser.add_argument("--verbose", "-v", action="store_true")
    return parser.parse_args()


async def run(args) -> int:
    store = InMemoryBackend()
    timing = dict(heartbeat_interval_ms=args.heartbeat_ms, tick_interval_ms=args.tick_ms, max_drift=args.max_drift)

    host_roles = SessionRoles()
    state = create_room(store, host_roles, args.media)
    host = RoomSession(store, host_roles, ManagedPlayer(simulated_player_factory()), **timing)
    await host.join(state.room_id)
    logger.info(f"Room {state.room_id} created for video {state.video_id}")

    listeners = []
    for i in range(args.listeners):
        rate = 1.0 + random.uniform(-0.05, 0.05)
        session = RoomSession(store, SessionRoles(), ManagedPlayer(simulated_player_factory(rate=rate)), **timing)
        await session.join(state.room_id)
        session.grant_playback()
        listeners.append((f"listener-{i}", rate, session))

    async def report():
        while True:
            await asyncio.sleep(max(args.tick_ms, 1000) / 1000)
            for name, rate, session in listeners:
                tick = session.last_tick
                if tick:
                    logger.info(f"{name} (rate {rate:.3f}) at {format_time(tick.local_time)} "
                                f"drift={tick.drift:.2f}s {','.join(tick.commands) or '-'}")

    reporter = asyncio.create_task(report())
    try:
        host.play()
        await asyncio.sleep(args.duration / 2)
        host.seek(host.player.get_current_time() + 30)
        await asyncio.sleep(args.duration / 4)
        host.pause()
        await asyncio.sleep(args.duration / 4)
    finally:
        reporter.cancel()
        for _, _, session in listeners:
            await session.leave()
        await host.leave()
    return 0


def main():
    args = parse_args()
    setup_logging(log_level="DEBUG" if args.verbose else "INFO")
    try:
        sys.exit(asyncio.run(run(args)))
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    main()
