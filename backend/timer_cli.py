"""Command-line doomscroll timer.

    python timer_cli.py start
    python timer_cli.py status
    python timer_cli.py stop
    python timer_cli.py run      # foreground, syncs every 30 seconds
"""
import argparse
import asyncio
import logging
import os
import signal
import sys

import tracker
from storage import SnapshotStore, load_session, save_session
from sync import SessionSyncer, TodayClient, now_ms, run_session

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = os.path.join(os.path.expanduser("~"), ".doomscroll-timer.json")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Time how long you are doomscrolling for.")
    parser.add_argument("command", choices=["start", "stop", "reset", "status", "run"])
    parser.add_argument("--server", default=os.getenv("TIMER_SERVER_URL"),
                        help="Timer API base URL (or TIMER_SERVER_URL)")
    parser.add_argument("--token", default=os.getenv("TIMER_TOKEN"),
                        help="Bearer token from the identity provider (or TIMER_TOKEN)")
    parser.add_argument("--state-file", default=os.getenv("TIMER_STATE_FILE", DEFAULT_STATE_FILE),
                        help="Where the local timer snapshot is kept")
    return parser


def describe(state: tracker.TimerState, current: int, total_ms: int | None = None) -> str:
    elapsed_ms = tracker.elapsed(state, current)
    running = "Currently doomscrolling..." if isinstance(state, tracker.Running) else "Not running"
    lines = [f"{tracker.format_elapsed(elapsed_ms)}  {running}"]
    miles = tracker.miles_run(elapsed_ms)
    if miles > 0:
        lines.append(f"You could have run {miles} {'mile' if miles == 1 else 'miles'}!")
    if total_ms is not None:
        lines.append(f"Today: {tracker.format_elapsed(total_ms)}")
    return "\n".join(lines)


def make_client(args) -> TodayClient | None:
    if not args.server or not args.token:
        return None
    return TodayClient(args.server, args.token)


async def sync_once(args, elapsed_ms: int, last_synced: int, reset: bool = False) -> tuple[int, int | None]:
    """Push the pending delta; returns the new sync point and the displayed total.

    With ``reset`` the sync point is moved back to zero once the pending
    time has been sent, matching a timer that starts over.
    """
    client = make_client(args)
    syncer = SessionSyncer(client, last_synced_ms=last_synced)
    if client is None:
        logger.warning("No server configured, keeping time locally")
    else:
        async with client:
            if await syncer.sync(elapsed_ms) is None:
                await syncer.refresh()

    total = syncer.display_total(elapsed_ms) if syncer.confirmed_total_ms is not None else None
    if reset:
        syncer.rebase(0)
    return syncer.last_synced_ms, total


async def show_status(args, state: tracker.TimerState, last_synced: int, current: int) -> str:
    client = make_client(args)
    if client is None:
        return describe(state, current)
    async with client:
        syncer = SessionSyncer(client, last_synced_ms=last_synced)
        await syncer.refresh()
        elapsed_ms = tracker.elapsed(state, current)
        total = syncer.display_total(elapsed_ms) if syncer.confirmed_total_ms is not None else None
        return describe(state, current, total)


async def run_foreground(args, store: SnapshotStore) -> str:
    client = make_client(args)
    if client is None:
        raise SystemExit("run needs --server and --token")

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            pass

    def print_tick(state, syncer):
        current = now_ms()
        total = syncer.display_total(tracker.elapsed(state, current))
        print(f"\r{tracker.format_elapsed(tracker.elapsed(state, current))}  "
              f"(today {tracker.format_elapsed(total)})", end="", flush=True)

    async with client:
        state, syncer = await run_session(client, store, stop_event=stop_event, on_tick=print_tick)
    print()
    current = now_ms()
    return describe(state, current, syncer.display_total(tracker.elapsed(state, current)))


def main(argv=None) -> int:
    logging.basicConfig(level=logging.INFO)
    args = build_parser().parse_args(argv)
    store = SnapshotStore(args.state_file)
    current = now_ms()
    state, last_synced = load_session(store, current)

    if args.command == "start":
        state = tracker.start(state, current)
        save_session(store, state, last_synced)
        print(describe(state, current))
    elif args.command == "stop":
        state = tracker.stop(state, current)
        last_synced, total = asyncio.run(sync_once(args, state.elapsed_ms, last_synced))
        save_session(store, state, last_synced)
        print(describe(state, current, total))
    elif args.command == "reset":
        state = tracker.stop(state, current)
        last_synced, _ = asyncio.run(sync_once(args, state.elapsed_ms, last_synced, reset=True))
        state = tracker.reset(state)
        save_session(store, state, last_synced)
        print(describe(state, current))
    elif args.command == "status":
        print(asyncio.run(show_status(args, state, last_synced, current)))
    elif args.command == "run":
        print(asyncio.run(run_foreground(args, store)))
    return 0


if __name__ == "__main__":
    sys.exit(main())
