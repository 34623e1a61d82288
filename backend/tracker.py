"""Stopwatch state for one viewing session. Pure logic, no I/O.

Times are epoch milliseconds supplied by the caller. A state value is never
mutated; every transition returns a new one.
"""
from dataclasses import dataclass
from typing import Union

MILE_SECONDS = 330  # 5:30 pace


@dataclass(frozen=True)
class Idle:
    @property
    def elapsed_ms(self) -> int:
        return 0


@dataclass(frozen=True)
class Running:
    since_ms: int
    elapsed_ms: int = 0


@dataclass(frozen=True)
class Stopped:
    elapsed_ms: int


TimerState = Union[Idle, Running, Stopped]


def elapsed(state: TimerState, now_ms: int) -> int:
    """Elapsed time including the not-yet-folded running stretch."""
    if isinstance(state, Running):
        return state.elapsed_ms + max(0, now_ms - state.since_ms)
    return state.elapsed_ms


def start(state: TimerState, now_ms: int) -> TimerState:
    if isinstance(state, Running):
        return state
    return Running(since_ms=now_ms, elapsed_ms=state.elapsed_ms)


def tick(state: TimerState, now_ms: int) -> TimerState:
    """Fold the running stretch into elapsed and rebase ``since`` to now."""
    if not isinstance(state, Running):
        return state
    return Running(since_ms=now_ms, elapsed_ms=elapsed(state, now_ms))


def stop(state: TimerState, now_ms: int) -> TimerState:
    if not isinstance(state, Running):
        return state
    return Stopped(elapsed_ms=elapsed(state, now_ms))


def reset(state: TimerState) -> TimerState:
    return Idle()


def to_snapshot(state: TimerState) -> dict:
    """Serialize to the locally persisted ``{startTime, elapsedTime, isRunning}`` shape."""
    if isinstance(state, Running):
        return {"startTime": state.since_ms, "elapsedTime": state.elapsed_ms, "isRunning": True}
    return {"startTime": None, "elapsedTime": state.elapsed_ms, "isRunning": False}


def from_snapshot(data, now_ms: int) -> TimerState:
    """Rehydrate a snapshot, projecting wall-clock time forward if it was running.

    Anything malformed loads as a fresh Idle timer.
    """
    if not isinstance(data, dict):
        return Idle()

    elapsed_ms = data.get("elapsedTime", 0)
    start_ms = data.get("startTime")
    if isinstance(elapsed_ms, bool) or not isinstance(elapsed_ms, (int, float)) or elapsed_ms < 0:
        return Idle()
    elapsed_ms = int(elapsed_ms)

    if data.get("isRunning") is True and isinstance(start_ms, (int, float)) and not isinstance(start_ms, bool):
        return tick(Running(since_ms=int(start_ms), elapsed_ms=elapsed_ms), now_ms)
    if elapsed_ms == 0:
        return Idle()
    return Stopped(elapsed_ms=elapsed_ms)


def format_elapsed(ms: int) -> str:
    """``M:SS`` below an hour, ``H:MM:SS`` above."""
    total_seconds = max(0, ms) // 1000
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"


def miles_run(ms: int) -> int:
    """Whole miles that could have been run at a 5:30 pace in the same time."""
    return (max(0, ms) // 1000) // MILE_SECONDS
