"""Client side of the daily total: sends session deltas to the timer API."""
import asyncio
import logging
import time

import httpx
from pydantic import ValidationError

import tracker
from dates import current_date
from schemas import TodayResponse
from storage import SnapshotStore, load_session, save_session

logger = logging.getLogger(__name__)

SYNC_INTERVAL_SECONDS = 30.0
TICK_INTERVAL_SECONDS = 1.0


class SyncError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def now_ms() -> int:
    return int(time.time() * 1000)


class TodayClient:
    """Thin async wrapper around ``GET /today`` and ``POST /today``."""

    def __init__(self, base_url: str, token: str, transport: httpx.AsyncBaseTransport | None = None,
                 timeout: float = 10.0):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_today(self) -> TodayResponse:
        return await self._request("GET")

    async def add_time(self, additional_time_ms: int) -> TodayResponse:
        return await self._request("POST", json={"additional_time_ms": additional_time_ms})

    async def _request(self, method: str, **kwargs) -> TodayResponse:
        try:
            response = await self._client.request(method, "/today", **kwargs)
        except httpx.HTTPError as e:
            raise SyncError(f"{method} /today failed: {e}") from e

        if response.is_error:
            try:
                message = response.json().get("error") or response.text
            except (ValueError, AttributeError):
                message = response.text
            raise SyncError(f"{method} /today returned {response.status_code}: {message}",
                            status_code=response.status_code)

        try:
            return TodayResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise SyncError(f"{method} /today returned an unexpected body") from e


class SessionSyncer:
    """Tracks the sync point and the server-confirmed daily total.

    The two counters are kept apart from the local elapsed time and only
    combined in ``display_total``. A confirmed total from an earlier day
    no longer counts once ``today`` moves on.
    """

    def __init__(self, client: TodayClient | None, last_synced_ms: int = 0, today=current_date):
        self.client = client
        self.last_synced_ms = last_synced_ms
        self.today = today
        self.confirmed_total_ms: int | None = None
        self.confirmed_date: str | None = None

    def pending(self, elapsed_ms: int) -> int:
        return max(0, elapsed_ms - self.last_synced_ms)

    def rebase(self, elapsed_ms: int = 0) -> None:
        self.last_synced_ms = elapsed_ms

    def display_total(self, elapsed_ms: int) -> int:
        confirmed = self.confirmed_total_ms or 0
        if self.confirmed_date is not None and self.confirmed_date != self.today():
            confirmed = 0
        return confirmed + self.pending(elapsed_ms)

    def _confirm(self, result: TodayResponse) -> None:
        self.confirmed_total_ms = result.total_time_ms
        self.confirmed_date = result.date

    async def refresh(self) -> TodayResponse | None:
        if self.client is None:
            return None
        try:
            result = await self.client.get_today()
        except SyncError as e:
            logger.warning(f"Could not fetch today's total: {e}")
            return None
        self._confirm(result)
        return result

    async def sync(self, elapsed_ms: int) -> TodayResponse | None:
        """Send the unsynced delta, if any.

        The sync point advances even when the request fails, so a failed
        delta is dropped rather than re-sent. Without a client nothing is
        sent and the sync point stays put.
        """
        delta = self.pending(elapsed_ms)
        if delta <= 0 or self.client is None:
            return None

        try:
            result = await self.client.add_time(delta)
        except SyncError as e:
            logger.warning(f"Dropped {delta}ms delta: {e}")
            return None
        finally:
            self.last_synced_ms = elapsed_ms

        self._confirm(result)
        logger.info(f"Synced {delta}ms, today's total is {result.total_time_ms}ms")
        return result


async def run_session(client: TodayClient, store: SnapshotStore, *,
                      tick_interval: float = TICK_INTERVAL_SECONDS,
                      sync_interval: float = SYNC_INTERVAL_SECONDS,
                      clock=now_ms, stop_event: asyncio.Event | None = None,
                      on_tick=None):
    """Run the timer until ``stop_event`` is set, syncing on a fixed interval.

    The session resumes from the stored snapshot. On exit the timer is
    stopped and a final sync is made. Returns the final state and syncer.
    """
    stop_event = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()

    state, last_synced = load_session(store, clock())
    state = tracker.start(state, clock())
    syncer = SessionSyncer(client, last_synced_ms=last_synced)
    save_session(store, state, syncer.last_synced_ms)
    await syncer.refresh()

    last_sync_at = loop.time()
    try:
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=tick_interval)
            except asyncio.TimeoutError:
                pass

            current = clock()
            state = tracker.tick(state, current)
            if loop.time() - last_sync_at >= sync_interval:
                await syncer.sync(tracker.elapsed(state, current))
                last_sync_at = loop.time()
            save_session(store, state, syncer.last_synced_ms)
            if on_tick is not None:
                on_tick(state, syncer)
    finally:
        current = clock()
        state = tracker.stop(state, current)
        await syncer.sync(tracker.elapsed(state, current))
        save_session(store, state, syncer.last_synced_ms)

    return state, syncer
